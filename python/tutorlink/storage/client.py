"""Supabase Storage client abstraction.

Provides:
- Signed upload URLs (for direct browser uploads)
- Signed download URLs (for secure file access)
- Object deletion

All methods receive the full object key directly; no prefix manipulation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from uuid import uuid4

import httpx

from tutorlink.config import get_settings
from tutorlink.logging import get_logger

logger = get_logger(__name__)

REQUEST_TIMEOUT_S = 30.0


@dataclass(frozen=True)
class SignedUpload:
    """Signed upload target. The browser PUTs the file to url."""

    key: str
    url: str
    token: str


class StorageError(Exception):
    """Storage operation error."""

    def __init__(self, message: str, code: str = "E_STORAGE_ERROR"):
        super().__init__(message)
        self.message = message
        self.code = code


class StorageClientBase(ABC):
    """Abstract base class for storage client implementations."""

    @abstractmethod
    def sign_upload(self, key: str, *, content_type: str, expires_in: int = 3600) -> SignedUpload:
        """Create a signed upload URL for direct browser upload.

        Raises:
            StorageError: If signing fails.
        """
        ...

    @abstractmethod
    def sign_download(self, key: str, *, expires_in: int = 3600) -> str:
        """Create a signed download URL.

        Raises:
            StorageError: If signing fails.
        """
        ...

    @abstractmethod
    def delete_object(self, key: str) -> None:
        """Delete an object. Deleting a missing object is not an error.

        Raises:
            StorageError: If the storage service rejects the delete.
        """
        ...


class StorageClient(StorageClientBase):
    """Supabase Storage client over httpx."""

    def __init__(self, supabase_url: str, service_key: str, bucket: str = "uploads"):
        self._base_url = supabase_url.rstrip("/")
        self._bucket = bucket
        self._storage_url = f"{self._base_url}/storage/v1"
        self._headers = {
            "Authorization": f"Bearer {service_key}",
            "apikey": service_key,
        }

    def _absolute(self, signed_path: str) -> str:
        """Supabase returns signed URLs relative to either the host or /storage/v1."""
        if signed_path.startswith(("http://", "https://")):
            return signed_path
        if signed_path.startswith("/storage/"):
            return f"{self._base_url}{signed_path}"
        return f"{self._storage_url}/{signed_path.lstrip('/')}"

    def sign_upload(self, key: str, *, content_type: str, expires_in: int = 3600) -> SignedUpload:
        url = f"{self._storage_url}/object/upload/sign/{self._bucket}/{key}"

        with httpx.Client() as client:
            response = client.post(
                url,
                headers={**self._headers, "x-upsert": "false"},
                json={"expiresIn": expires_in, "contentType": content_type},
                timeout=REQUEST_TIMEOUT_S,
            )

        if response.status_code != 200:
            raise StorageError(
                f"Failed to sign upload: {response.status_code} {response.text}",
                code="E_SIGN_UPLOAD_FAILED",
            )

        data = response.json()
        signed_url = data.get("url", "")
        if not signed_url:
            raise StorageError(
                "Failed to sign upload: missing signed URL", code="E_SIGN_UPLOAD_FAILED"
            )
        token = data.get("token") or ""
        if not token and "token=" in signed_url:
            token = signed_url.split("token=")[1].split("&")[0]

        return SignedUpload(key=key, url=self._absolute(signed_url), token=token)

    def sign_download(self, key: str, *, expires_in: int = 3600) -> str:
        url = f"{self._storage_url}/object/sign/{self._bucket}/{key}"

        with httpx.Client() as client:
            response = client.post(
                url,
                headers=self._headers,
                json={"expiresIn": expires_in},
                timeout=REQUEST_TIMEOUT_S,
            )

        if response.status_code != 200:
            raise StorageError(
                f"Failed to sign download: {response.status_code} {response.text}",
                code="E_SIGN_DOWNLOAD_FAILED",
            )

        data = response.json()
        signed_path = data.get("signedURL") or data.get("signedUrl") or ""
        if not signed_path:
            raise StorageError(
                "Failed to sign download: missing signed URL", code="E_SIGN_DOWNLOAD_FAILED"
            )
        return self._absolute(signed_path)

    def delete_object(self, key: str) -> None:
        url = f"{self._storage_url}/object/{self._bucket}/{key}"

        with httpx.Client() as client:
            response = client.delete(url, headers=self._headers, timeout=REQUEST_TIMEOUT_S)

        if response.status_code not in (200, 204, 404):
            logger.warning(
                "storage_delete_failed", key=key, status_code=response.status_code
            )
            raise StorageError(f"Failed to delete object: {response.status_code}")


class FakeStorageClient(StorageClientBase):
    """In-memory storage client for local development and tests."""

    def __init__(self):
        self._objects: dict[str, tuple[bytes, str]] = {}
        self.signed_uploads: dict[str, str] = {}

    def sign_upload(self, key: str, *, content_type: str, expires_in: int = 3600) -> SignedUpload:
        token = f"fake-token-{uuid4()}"
        self.signed_uploads[key] = content_type
        return SignedUpload(
            key=key,
            url=f"https://fake-storage.test/upload/{key}?token={token}",
            token=token,
        )

    def sign_download(self, key: str, *, expires_in: int = 3600) -> str:
        return f"https://fake-storage.test/download/{key}?token=fake-{uuid4()}"

    def delete_object(self, key: str) -> None:
        self._objects.pop(key, None)

    # Test helper methods

    def put_object(self, key: str, content: bytes, content_type: str = "image/png") -> None:
        self._objects[key] = (content, content_type)

    def has_object(self, key: str) -> bool:
        return key in self._objects


def get_storage_client() -> StorageClientBase:
    """StorageClient when Supabase credentials are configured, FakeStorageClient otherwise."""
    settings = get_settings()

    if settings.storage_configured:
        return StorageClient(
            supabase_url=settings.supabase_url,  # type: ignore[arg-type]
            service_key=settings.supabase_service_key,  # type: ignore[arg-type]
            bucket=settings.storage_bucket,
        )

    return FakeStorageClient()
