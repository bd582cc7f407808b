"""Tests for the upload service and routes.

Tests cover:
- Upload keys land under the viewer's own prefix
- Download/delete restricted to the owner; admins may act on any key
- Malformed keys rejected
- Storage failures mapped to API errors
"""

from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from tests.helpers import admin_headers, auth_headers
from tutorlink.auth.middleware import Viewer
from tutorlink.errors import ApiError, ApiErrorCode
from tutorlink.services import uploads as uploads_service
from tutorlink.services.uploads import create_download_url, create_upload_url, delete_upload
from tutorlink.storage.client import FakeStorageClient, StorageError
from tutorlink.storage.paths import build_upload_key


@pytest.fixture
def owner() -> Viewer:
    return Viewer(user_id=uuid4())


class TestCreateUploadUrl:
    def test_key_is_under_viewer_prefix(self, owner: Viewer, storage: FakeStorageClient):
        out = create_upload_url(storage, owner, "../../secret.png", "image/png", now_ms=42)

        assert out.key == f"uploads/{owner.user_id}/42-secret.png"
        assert out.url.startswith("https://fake-storage.test/upload/")
        assert out.expires_in == 3600

    def test_unusable_file_name(self, owner: Viewer, storage: FakeStorageClient):
        with pytest.raises(ApiError) as exc_info:
            create_upload_url(storage, owner, "///", "image/png")

        assert exc_info.value.code == ApiErrorCode.E_INVALID_UPLOAD_KEY

    def test_storage_failure(self, owner: Viewer):
        storage = MagicMock()
        storage.sign_upload.side_effect = StorageError("boom", code="E_SIGN_UPLOAD_FAILED")

        with pytest.raises(ApiError) as exc_info:
            create_upload_url(storage, owner, "a.png", "image/png")

        assert exc_info.value.code == ApiErrorCode.E_SIGN_UPLOAD_FAILED
        assert "boom" not in exc_info.value.message


class TestKeyAccess:
    def test_owner_can_download_and_delete(self, owner: Viewer, storage: FakeStorageClient):
        key = build_upload_key(owner.user_id, "a.png")
        storage.put_object(key, b"png")

        out = create_download_url(storage, owner, key)
        delete_upload(storage, owner, key)

        assert key in out.url
        assert not storage.has_object(key)

    def test_other_user_denied(self, owner: Viewer, storage: FakeStorageClient):
        key = build_upload_key(uuid4(), "a.png")

        for action in (create_download_url, delete_upload):
            with pytest.raises(ApiError) as exc_info:
                action(storage, owner, key)
            assert exc_info.value.code == ApiErrorCode.E_UPLOAD_ACCESS_DENIED

    def test_admin_bypasses_ownership(self, storage: FakeStorageClient):
        admin = Viewer(user_id=uuid4(), is_admin=True)
        key = build_upload_key(uuid4(), "a.png")

        assert create_download_url(storage, admin, key).url

    @pytest.mark.parametrize(
        "key",
        ["", "/uploads/x/a.png", "avatars/x/a.png", "uploads/{user}/../{other}/a.png"],
    )
    def test_malformed_keys(self, storage: FakeStorageClient, key: str):
        admin = Viewer(user_id=uuid4(), is_admin=True)
        key = key.format(user=admin.user_id, other=uuid4())

        with pytest.raises(ApiError) as exc_info:
            create_download_url(storage, admin, key)

        assert exc_info.value.code == ApiErrorCode.E_INVALID_UPLOAD_KEY

    def test_delete_storage_failure(self, owner: Viewer):
        storage = MagicMock()
        storage.delete_object.side_effect = StorageError("Failed to delete object: 500")

        with pytest.raises(ApiError) as exc_info:
            delete_upload(storage, owner, build_upload_key(owner.user_id, "a.png"))

        assert exc_info.value.code == ApiErrorCode.E_STORAGE_ERROR

    def test_events_are_structured(self, owner: Viewer, monkeypatch):
        logger = MagicMock()
        monkeypatch.setattr(uploads_service, "logger", logger)
        storage = MagicMock()
        storage.delete_object.side_effect = [None, StorageError("Failed to delete object: 500")]
        key = build_upload_key(owner.user_id, "a.png")

        delete_upload(storage, owner, key)
        with pytest.raises(ApiError):
            delete_upload(storage, owner, key)

        logger.info.assert_called_once_with("upload_deleted", key=key, admin=False)
        logger.error.assert_called_once_with(
            "upload_delete_failed", key=key, error="Failed to delete object: 500"
        )


class TestUploadRoutes:
    def test_sign_then_download(self, auth_client, storage: FakeStorageClient):
        user_id = uuid4()

        signed = auth_client.post(
            "/uploads",
            json={"fileName": "avatar.png", "contentType": "image/png"},
            headers=auth_headers(user_id),
        )
        key = signed.json()["data"]["key"]
        download = auth_client.get(
            "/uploads/download", params={"key": key}, headers=auth_headers(user_id)
        )

        assert signed.status_code == 201
        assert key.startswith(f"uploads/{user_id}/")
        assert storage.signed_uploads[key] == "image/png"
        assert download.status_code == 200

    def test_delete_foreign_key_forbidden_unless_admin(self, auth_client):
        key = build_upload_key(uuid4(), "a.png")

        denied = auth_client.delete(
            "/uploads", params={"key": key}, headers=auth_headers(uuid4())
        )
        allowed = auth_client.delete(
            "/uploads", params={"key": key}, headers=admin_headers(uuid4())
        )

        assert denied.status_code == 403
        assert denied.json()["error"]["code"] == "E_UPLOAD_ACCESS_DENIED"
        assert allowed.status_code == 204
