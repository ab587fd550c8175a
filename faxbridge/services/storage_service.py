"""Object storage backends for inbound media and outbound documents."""

from pathlib import Path
from typing import Optional, Protocol

import httpx

from faxbridge.core.exceptions import StorageError
from faxbridge.utils.logging import get_logger

LOGGER = get_logger(__name__)


class StorageBackend(Protocol):
    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store ``data`` under ``key`` and return its locator."""
        ...

    async def get(self, key: str) -> Optional[bytes]:
        ...

    async def presigned_url(self, key: str, ttl_seconds: int) -> str:
        ...


class SupabaseStorage:
    """Supabase storage API over httpx."""

    def __init__(self, url: str, service_role_key: str, bucket: str, timeout: float = 30.0):
        self.url = url.rstrip("/")
        self.bucket = bucket
        self.timeout = timeout
        self.base_api_url = f"{self.url}/storage/v1"
        self.headers = {
            "Authorization": f"Bearer {service_role_key}",
            "apikey": service_role_key,
        }

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Upload an object, overwriting any existing one.

        Args:
            key: Object path within the bucket
            data: Object content
            content_type: MIME type

        Returns:
            The object key

        Raises:
            StorageError: If the upload fails
        """
        upload_url = f"{self.base_api_url}/object/{self.bucket}/{key}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    upload_url,
                    headers={**self.headers, "Content-Type": content_type, "x-upsert": "true"},
                    content=data,
                )
        except httpx.HTTPError as e:
            LOGGER.error(f"Error uploading to Supabase: {str(e)}", exc_info=True, extra={"key": key})
            raise StorageError(f"Storage upload error: {str(e)}", original_error=e)

        if response.status_code != 200:
            LOGGER.error(
                f"Failed to upload file to Supabase: {response.text}",
                extra={"bucket": self.bucket, "key": key, "status_code": response.status_code},
            )
            raise StorageError(f"Upload failed: {response.text}")

        LOGGER.info("Uploaded object", extra={"bucket": self.bucket, "key": key, "size_bytes": len(data)})
        return key

    async def get(self, key: str) -> Optional[bytes]:
        """Download an object.

        Returns:
            The content, or None if the object does not exist
        """
        url = f"{self.base_api_url}/object/authenticated/{self.bucket}/{key}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, headers=self.headers)
        except httpx.HTTPError as e:
            raise StorageError(f"Storage download error: {str(e)}", original_error=e)

        if response.status_code in (400, 404):
            return None
        if response.status_code != 200:
            raise StorageError(f"Download failed ({response.status_code}): {response.text}")
        return response.content

    async def presigned_url(self, key: str, ttl_seconds: int) -> str:
        """Generate a time-limited signed URL for an object.

        Raises:
            StorageError: If URL generation fails
        """
        url = f"{self.base_api_url}/object/sign/{self.bucket}/{key}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, headers=self.headers, json={"expiresIn": ttl_seconds})
        except httpx.HTTPError as e:
            LOGGER.error(f"Error generating signed URL: {str(e)}", exc_info=True)
            raise StorageError(f"Signed URL error: {str(e)}", original_error=e)

        if response.status_code != 200:
            LOGGER.error(
                f"Failed to generate signed URL: {response.text}",
                extra={"bucket": self.bucket, "key": key, "status_code": response.status_code},
            )
            raise StorageError(f"Signed URL generation failed: {response.text}")

        signed_path = response.json().get("signedURL")
        if not signed_path:
            raise StorageError("Supabase response did not contain signedURL")

        # Supabase returns a path relative to the storage API root
        if signed_path.startswith("/"):
            if not signed_path.startswith("/storage/v1"):
                signed_path = f"/storage/v1{signed_path}"
            return f"{self.url}{signed_path}"
        return signed_path


class LocalStorage:
    """Filesystem storage for development and mock delivery."""

    def __init__(self, root: str):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise StorageError(f"Key escapes storage root: {key}")
        return path

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Local storage write failed: {str(e)}", original_error=e)
        LOGGER.debug("Stored object locally", extra={"key": key, "size_bytes": len(data)})
        return key

    async def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageError(f"Local storage read failed: {str(e)}", original_error=e)

    async def presigned_url(self, key: str, ttl_seconds: int) -> str:
        return self._path(key).as_uri()
