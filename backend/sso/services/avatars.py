"""
Avatar linkage between an identity record and the blob store.

The record holds (avatar_url, avatar_path) as a pair; both are written or
cleared in a single save.
"""
import logging
import time
from typing import Optional

from sso.core.errors import NotFoundError, UpstreamError, ValidationError
from sso.core.security import Claims
from sso.models.user import User
from sso.services.blob_store import BlobStore, BlobStoreError, StoredObject, best_effort_cleanup

logger = logging.getLogger("uvicorn.error")

ALLOWED_MIME_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}
MAX_AVATAR_BYTES = 5 * 1024 * 1024  # 5 MiB


def validate_upload(content_type: Optional[str], size: int) -> None:
    """Reject disallowed types and oversize files before any storage call."""
    if content_type not in ALLOWED_MIME_TYPES:
        raise ValidationError("Invalid file type. Only JPEG, PNG, GIF, and WebP are allowed.")
    if size > MAX_AVATAR_BYTES:
        raise ValidationError("File too large. Maximum size is 5MB.")


def avatar_path(user_id: str, filename: Optional[str], content_type: str, now_ms: Optional[int] = None) -> str:
    """users/<id>/<epoch ms>.<ext>; extension from the filename, else from the MIME type."""
    ext = ""
    if filename and "." in filename:
        ext = filename.rsplit(".", 1)[1].lower()
    if not ext.isalnum():
        ext = ALLOWED_MIME_TYPES[content_type]
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"users/{user_id}/{now_ms}.{ext}"


async def _get_user(claims: Claims) -> User:
    user = await User.get_or_none(id=claims.id)
    if not user:
        raise NotFoundError("User not found")
    return user


async def upload_avatar(
    claims: Claims,
    *,
    filename: Optional[str],
    content_type: Optional[str],
    data: bytes,
    store: BlobStore,
) -> StoredObject:
    validate_upload(content_type, len(data))
    user = await _get_user(claims)

    # A stale blob must not block the new upload
    if user.avatar_path:
        result = await best_effort_cleanup(store, user.avatar_path)
        if not result.ok:
            logger.info("[avatar] continuing upload for user=%s despite cleanup failure", user.id)

    path = avatar_path(str(user.id), filename, content_type)
    try:
        stored = await store.upload(path, data, content_type)
    except BlobStoreError as e:
        raise UpstreamError("Failed to upload file") from e

    user.set_avatar(stored.url, stored.path)
    await user.save()
    logger.info("[avatar] user=%s avatar set to %s", user.id, stored.path)
    return stored


async def remove_avatar(claims: Claims, store: BlobStore) -> None:
    user = await _get_user(claims)
    if not user.avatar_path:
        raise NotFoundError("No avatar to delete")

    try:
        await store.delete(user.avatar_path)
    except BlobStoreError as e:
        raise UpstreamError("Failed to delete file") from e

    user.clear_avatar()
    await user.save()
    logger.info("[avatar] user=%s avatar removed", user.id)


async def get_avatar_url(claims: Claims) -> Optional[str]:
    user = await _get_user(claims)
    return user.avatar_url
