"""Storage service for the hosted object storage (source files)."""

import logging
from typing import Iterable, List, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import UpstreamFailure

logger = logging.getLogger(__name__)


class StorageService:
    """Uploads and removes source files in the hosted storage bucket."""

    def __init__(self, bucket: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = settings.SUPABASE_URL.rstrip("/")
        self.bucket = bucket or settings.STORAGE_BUCKET
        self.base_api_url = f"{self.url}/storage/v1"
        self.headers = {
            "Authorization": f"Bearer {settings.SUPABASE_SERVICE_ROLE_KEY}",
            "apikey": settings.SUPABASE_SERVICE_ROLE_KEY,
        }
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, timeout=settings.HTTP_TIMEOUT_SECONDS)

    async def upload_file(self, path: str, content: bytes, content_type: str) -> str:
        """Upload `content` to `path` inside the bucket and return the stored path.

        Raises:
            UpstreamFailure: If the storage API rejects the upload or is unreachable.
        """
        upload_url = f"{self.base_api_url}/object/{self.bucket}/{path}"
        try:
            async with self._client() as client:
                response = await client.post(
                    upload_url,
                    headers={**self.headers, "Content-Type": content_type or "application/octet-stream"},
                    content=content,
                )
        except httpx.HTTPError as e:
            logger.error(f"Error uploading {path} to storage: {str(e)}")
            raise UpstreamFailure(f"Storage upload error: {str(e)}", original_error=e)

        if response.status_code not in (200, 201):
            logger.error(f"Failed to upload {path} to storage ({response.status_code}): {response.text}")
            raise UpstreamFailure(f"Upload failed: {response.text}")
        return path

    async def remove_files(self, paths: Iterable[str]) -> List[str]:
        """Delete the given object paths; returns the paths sent for removal."""
        paths = [p for p in paths if p]
        if not paths:
            return []
        try:
            async with self._client() as client:
                response = await client.request(
                    "DELETE",
                    f"{self.base_api_url}/object/{self.bucket}",
                    headers=self.headers,
                    json={"prefixes": paths},
                )
        except httpx.HTTPError as e:
            raise UpstreamFailure(f"Storage remove error: {str(e)}", original_error=e)

        if response.status_code != 200:
            raise UpstreamFailure(f"Remove failed: {response.text}")
        return paths
