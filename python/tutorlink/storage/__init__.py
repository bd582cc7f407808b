"""Object storage for user uploads (Supabase Storage).

Provides:
- StorageClient for the Supabase Storage REST API
- FakeStorageClient for local development and tests
- Upload key conventions (uploads/{user_id}/...)
"""

from tutorlink.storage.client import (
    FakeStorageClient,
    SignedUpload,
    StorageClient,
    StorageClientBase,
    StorageError,
    get_storage_client,
)
from tutorlink.storage.paths import build_upload_key, is_owned_upload_key, user_upload_prefix

__all__ = [
    "StorageClient",
    "StorageClientBase",
    "StorageError",
    "FakeStorageClient",
    "SignedUpload",
    "get_storage_client",
    "build_upload_key",
    "is_owned_upload_key",
    "user_upload_prefix",
]
