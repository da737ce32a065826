"""
Blob Store Interface

Avatar files live in external object storage; the identity record keeps
only the public URL and the storage path. Production uses the Supabase
Storage REST API.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

import httpx

logger = logging.getLogger("uvicorn.error")


class BlobStoreError(Exception):
    """Raised when the storage backend rejects or fails a request."""


@dataclass
class StoredObject:
    """Result of a successful upload"""
    path: str  # Path inside the bucket (used for deletion)
    url: str   # Public URL (used for display)


@dataclass
class CleanupResult:
    """Outcome of a best-effort delete; never raised, only logged"""
    path: str
    ok: bool
    error: Optional[str] = None


class BlobStore(ABC):
    """Abstract blob store. Implementations must be safe for concurrent use."""

    @abstractmethod
    async def upload(self, path: str, data: bytes, content_type: str) -> StoredObject:
        """Store ``data`` at ``path`` (overwriting) and return its reference."""

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Remove the object at ``path``. Raises BlobStoreError on failure."""

    @abstractmethod
    def public_url(self, path: str) -> str:
        """Public URL for ``path``; does not contact the backend."""


async def best_effort_cleanup(store: BlobStore, path: Optional[str]) -> CleanupResult:
    """
    Delete a stale blob without letting failures reach the caller.

    Used before re-uploading an avatar and after deleting an account: the
    primary operation must succeed even if the old object cannot be removed.
    """
    if not path:
        return CleanupResult(path="", ok=True)
    try:
        await store.delete(path)
    except Exception as e:
        logger.warning("[storage] best-effort cleanup failed for %s: %s", path, e)
        return CleanupResult(path=path, ok=False, error=str(e))
    return CleanupResult(path=path, ok=True)


class SupabaseBlobStore(BlobStore):
    """
    Supabase Storage over its REST API.

    Endpoints used:
    - POST   {url}/storage/v1/object/{bucket}/{path}      upload (x-upsert)
    - DELETE {url}/storage/v1/object/{bucket}             {"prefixes": [path]}
    - GET    {url}/storage/v1/object/public/{bucket}/{path}  public access
    """

    def __init__(
        self,
        base_url: str,
        service_key: str,
        bucket: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self._service_key = service_key
        self._timeout = timeout
        self._transport = transport  # Injected in tests (httpx.MockTransport)

    @property
    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._service_key}",
            "apikey": self._service_key,
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{quote(path)}"

    async def upload(self, path: str, data: bytes, content_type: str) -> StoredObject:
        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{quote(path)}"
        headers = {**self._headers, "Content-Type": content_type, "x-upsert": "true"}
        try:
            async with self._client() as client:
                resp = await client.post(url, headers=headers, content=data)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("[storage] upload of %s failed: %s", path, e)
            raise BlobStoreError(f"upload failed: {e}") from e

        logger.info("[storage] uploaded %s (%d bytes)", path, len(data))
        return StoredObject(path=path, url=self.public_url(path))

    async def delete(self, path: str) -> None:
        url = f"{self.base_url}/storage/v1/object/{self.bucket}"
        try:
            async with self._client() as client:
                resp = await client.request("DELETE", url, headers=self._headers, json={"prefixes": [path]})
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("[storage] delete of %s failed: %s", path, e)
            raise BlobStoreError(f"delete failed: {e}") from e
        logger.info("[storage] deleted %s", path)
