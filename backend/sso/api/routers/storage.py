# sso/api/routers/storage.py
from fastapi import APIRouter, Depends, File, UploadFile

from sso.api.deps import get_blob_store, get_current_claims
from sso.core.errors import ValidationError
from sso.core.security import Claims
from sso.schemas.storage import AvatarOut, UploadOut
from sso.services import avatars
from sso.services.blob_store import BlobStore

router = APIRouter(prefix="/storage", tags=["storage"])


@router.post("/upload")
async def upload(
    file: UploadFile | None = File(default=None),
    claims: Claims = Depends(get_current_claims),
    store: BlobStore = Depends(get_blob_store),
):
    """
    Upload a new avatar for the caller.

    Only JPEG, PNG, GIF and WebP up to 5 MiB are accepted; the previous
    avatar is removed on a best-effort basis first.
    """
    if file is None:
        raise ValidationError("Please upload a single file")

    # Read one byte past the limit so oversize files are detected without buffering them whole
    data = await file.read(avatars.MAX_AVATAR_BYTES + 1)
    stored = await avatars.upload_avatar(
        claims,
        filename=file.filename,
        content_type=file.content_type,
        data=data,
        store=store,
    )
    return UploadOut(path=stored.path, url=stored.url).model_dump()


@router.delete("/avatar")
async def delete_avatar(
    claims: Claims = Depends(get_current_claims),
    store: BlobStore = Depends(get_blob_store),
):
    await avatars.remove_avatar(claims, store)
    return {"success": True, "message": "Avatar deleted successfully"}


@router.get("/avatar")
async def get_avatar(claims: Claims = Depends(get_current_claims)):
    url = await avatars.get_avatar_url(claims)
    return AvatarOut(avatarUrl=url).model_dump()
