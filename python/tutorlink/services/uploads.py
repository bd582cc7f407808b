"""Upload service layer.

Signs direct-to-storage upload and download URLs and deletes uploads.

Key invariants:
- Upload keys are always uploads/{user_id}/{epoch_ms}-{file_name}
- Download and delete require the key to sit under the viewer's own
  prefix; admins may act on any key
- Storage failures surface as E_SIGN_UPLOAD_FAILED, E_SIGN_DOWNLOAD_FAILED
  or E_STORAGE_ERROR without leaking the storage response
"""

from tutorlink.auth.middleware import Viewer
from tutorlink.config import get_settings
from tutorlink.errors import ApiError, ApiErrorCode, ForbiddenError, InvalidRequestError
from tutorlink.logging import get_logger
from tutorlink.schemas.upload import DownloadUrlOut, UploadUrlOut
from tutorlink.storage.client import StorageClientBase, StorageError
from tutorlink.storage.paths import UPLOADS_ROOT, build_upload_key, is_owned_upload_key

logger = get_logger(__name__)


def _check_key_access(viewer: Viewer, key: str) -> None:
    """Raises InvalidRequestError for malformed keys, ForbiddenError for foreign ones."""
    if not key or key.startswith("/") or not key.startswith(f"{UPLOADS_ROOT}/"):
        raise InvalidRequestError(ApiErrorCode.E_INVALID_UPLOAD_KEY, "Invalid upload key")
    if ".." in key.split("/"):
        raise InvalidRequestError(ApiErrorCode.E_INVALID_UPLOAD_KEY, "Invalid upload key")
    if viewer.is_admin:
        return
    if not is_owned_upload_key(viewer.user_id, key):
        raise ForbiddenError(ApiErrorCode.E_UPLOAD_ACCESS_DENIED, "Upload belongs to another user")


def create_upload_url(
    storage: StorageClientBase,
    viewer: Viewer,
    file_name: str,
    content_type: str,
    now_ms: int | None = None,
) -> UploadUrlOut:
    """Sign an upload URL for a new object under the viewer's prefix.

    Raises:
        InvalidRequestError(E_INVALID_UPLOAD_KEY): File name sanitizes to nothing.
        ApiError(E_SIGN_UPLOAD_FAILED): Storage refused to sign.
    """
    settings = get_settings()
    try:
        key = build_upload_key(viewer.user_id, file_name, now_ms=now_ms)
    except ValueError:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_UPLOAD_KEY, "File name has no usable characters"
        ) from None

    try:
        signed = storage.sign_upload(
            key, content_type=content_type, expires_in=settings.signed_url_expiry_s
        )
    except StorageError as e:
        logger.error("upload_sign_failed", key=key, error=e.message)
        raise ApiError(ApiErrorCode.E_SIGN_UPLOAD_FAILED, "Failed to create upload URL") from e

    return UploadUrlOut(url=signed.url, key=key, expires_in=settings.signed_url_expiry_s)


def create_download_url(storage: StorageClientBase, viewer: Viewer, key: str) -> DownloadUrlOut:
    """Sign a download URL for an upload the viewer owns.

    Raises:
        InvalidRequestError(E_INVALID_UPLOAD_KEY): Malformed key.
        ForbiddenError(E_UPLOAD_ACCESS_DENIED): Key outside the viewer's prefix.
        ApiError(E_SIGN_DOWNLOAD_FAILED): Storage refused to sign.
    """
    _check_key_access(viewer, key)
    settings = get_settings()

    try:
        url = storage.sign_download(key, expires_in=settings.signed_url_expiry_s)
    except StorageError as e:
        logger.error("download_sign_failed", key=key, error=e.message)
        raise ApiError(
            ApiErrorCode.E_SIGN_DOWNLOAD_FAILED, "Failed to create download URL"
        ) from e

    return DownloadUrlOut(url=url, expires_in=settings.signed_url_expiry_s)


def delete_upload(storage: StorageClientBase, viewer: Viewer, key: str) -> None:
    """Delete an upload the viewer owns. Deleting a missing object succeeds.

    Raises:
        InvalidRequestError(E_INVALID_UPLOAD_KEY): Malformed key.
        ForbiddenError(E_UPLOAD_ACCESS_DENIED): Key outside the viewer's prefix.
        ApiError(E_STORAGE_ERROR): Storage rejected the delete.
    """
    _check_key_access(viewer, key)
    try:
        storage.delete_object(key)
    except StorageError as e:
        logger.error("upload_delete_failed", key=key, error=e.message)
        raise ApiError(ApiErrorCode.E_STORAGE_ERROR, "Failed to delete upload") from e

    logger.info("upload_deleted", key=key, admin=viewer.is_admin)
