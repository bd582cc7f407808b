"""Integration tests for the authentication middleware.

Tests the full auth flow including:
- Bearer token validation
- Public paths
- Viewer claims (email, admin flag)
- GET /me endpoint
"""

import time

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient

from tests.helpers import (
    admin_headers,
    auth_headers,
    create_test_user_id,
    mint_expired_token,
    mint_test_token,
)
from tutorlink.auth.middleware import viewer_from_claims


def _token_signed_by_stranger(user_id) -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    now = int(time.time())
    payload = {
        "sub": str(user_id),
        "iss": "test-issuer",
        "aud": "test-audience",
        "iat": now,
        "exp": now + 3600,
    }
    return jwt.encode(payload, pem, algorithm="RS256")


class TestAuthBoundary:
    """Unauthenticated requests are rejected before any handler runs."""

    def test_no_authorization_header(self, auth_client: TestClient):
        response = auth_client.get("/me")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "E_UNAUTHENTICATED"

    def test_wrong_authorization_format(self, auth_client: TestClient):
        response = auth_client.get("/me", headers={"Authorization": "Basic abc"})

        assert response.status_code == 401

    def test_empty_bearer_token(self, auth_client: TestClient):
        response = auth_client.get("/me", headers={"Authorization": "Bearer   "})

        assert response.status_code == 401

    def test_invalid_token_bad_signature(self, auth_client: TestClient):
        token = _token_signed_by_stranger(create_test_user_id())

        response = auth_client.get("/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "E_UNAUTHENTICATED"

    def test_expired_token(self, auth_client: TestClient):
        token = mint_expired_token(create_test_user_id())

        response = auth_client.get("/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert "expired" in response.json()["error"]["message"].lower()

    def test_wrong_audience(self, auth_client: TestClient):
        token = mint_test_token(create_test_user_id(), audience="someone-else")

        response = auth_client.get("/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_non_uuid_subject(self, auth_client: TestClient):
        token = mint_test_token("not-a-uuid")

        response = auth_client.get("/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert "uuid" in response.json()["error"]["message"].lower()

    def test_auth_failure_carries_request_id(self, auth_client: TestClient):
        response = auth_client.get("/me")

        assert "X-Request-ID" in response.headers
        assert response.json()["error"]["request_id"] == response.headers["X-Request-ID"]


class TestGetMe:
    def test_me_returns_identity_from_token(self, auth_client: TestClient):
        user_id = create_test_user_id()

        response = auth_client.get("/me", headers=auth_headers(user_id, email="a@b.test"))

        assert response.status_code == 200
        assert response.json()["data"] == {
            "user_id": str(user_id),
            "email": "a@b.test",
            "is_admin": False,
        }

    def test_me_reports_admin_flag(self, auth_client: TestClient):
        user_id = create_test_user_id()

        response = auth_client.get("/me", headers=admin_headers(user_id))

        assert response.json()["data"]["is_admin"] is True


class TestViewerFromClaims:
    def test_missing_app_metadata_is_not_admin(self):
        user_id = create_test_user_id()

        viewer = viewer_from_claims({"sub": str(user_id)})

        assert viewer.user_id == user_id
        assert viewer.email is None
        assert viewer.is_admin is False
