"""Unit tests for token verifiers.

Tests the SupabaseJwksVerifier (with a mocked JWKS client) and the
test-only MockJwtVerifier.
"""

import time
from unittest.mock import MagicMock, patch
from uuid import uuid4

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.exceptions import DecodeError, PyJWKClientError

from tests.helpers import mint_expired_token, mint_test_token
from tests.support.verifier import MockJwtVerifier
from tutorlink.auth.verifier import SupabaseJwksVerifier
from tutorlink.errors import ApiError, ApiErrorCode

ISSUER = "https://test.supabase.co/auth/v1"


class TestSupabaseJwksVerifier:
    """All tests mock the JWKS client; no network access."""

    @pytest.fixture
    def rsa_keypair(self):
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        return private_key, private_key.public_key()

    @pytest.fixture
    def verifier(self):
        return SupabaseJwksVerifier(
            jwks_url=f"{ISSUER}/.well-known/jwks.json",
            issuer=f"{ISSUER}/",
            audiences=["authenticated"],
        )

    def mint_token(self, private_key, sub: str, **overrides) -> str:
        now = int(time.time())
        payload = {
            "sub": sub,
            "iss": ISSUER,
            "aud": "authenticated",
            "iat": now,
            "exp": now + 3600,
            **overrides,
        }
        pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return jwt.encode(payload, pem, algorithm="RS256", headers={"kid": "test-key-id"})

    def jwks_client_returning(self, public_key) -> MagicMock:
        signing_key = MagicMock()
        signing_key.key = public_key
        client = MagicMock()
        client.get_signing_key_from_jwt.return_value = signing_key
        return client

    def test_valid_token(self, verifier, rsa_keypair):
        private_key, public_key = rsa_keypair
        user_id = str(uuid4())
        token = self.mint_token(private_key, user_id)

        with patch.object(
            verifier, "_get_jwks_client", return_value=self.jwks_client_returning(public_key)
        ):
            claims = verifier.verify(token)

        assert claims["sub"] == user_id
        assert claims["aud"] == "authenticated"

    def test_issuer_trailing_slash_is_normalized(self, verifier):
        assert verifier.issuer == ISSUER

    def test_invalid_signature(self, verifier, rsa_keypair):
        stranger = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        token = self.mint_token(stranger, str(uuid4()))

        with patch.object(
            verifier, "_get_jwks_client", return_value=self.jwks_client_returning(rsa_keypair[1])
        ):
            with pytest.raises(ApiError) as exc_info:
                verifier.verify(token)

        assert exc_info.value.code == ApiErrorCode.E_UNAUTHENTICATED

    def test_expired_token(self, verifier, rsa_keypair):
        private_key, public_key = rsa_keypair
        token = self.mint_token(private_key, str(uuid4()), exp=int(time.time()) - 3600)

        with patch.object(
            verifier, "_get_jwks_client", return_value=self.jwks_client_returning(public_key)
        ):
            with pytest.raises(ApiError) as exc_info:
                verifier.verify(token)

        assert exc_info.value.message == "Token expired"

    def test_clock_skew_accepted(self, verifier, rsa_keypair):
        """Tokens expired by less than 60s are still accepted."""
        private_key, public_key = rsa_keypair
        token = self.mint_token(private_key, str(uuid4()), exp=int(time.time()) - 30)

        with patch.object(
            verifier, "_get_jwks_client", return_value=self.jwks_client_returning(public_key)
        ):
            assert verifier.verify(token)["iss"] == ISSUER

    def test_wrong_issuer(self, verifier, rsa_keypair):
        private_key, public_key = rsa_keypair
        token = self.mint_token(private_key, str(uuid4()), iss="https://evil.example")

        with patch.object(
            verifier, "_get_jwks_client", return_value=self.jwks_client_returning(public_key)
        ):
            with pytest.raises(ApiError) as exc_info:
                verifier.verify(token)

        assert "issuer" in exc_info.value.message.lower()

    def test_wrong_audience(self, verifier, rsa_keypair):
        private_key, public_key = rsa_keypair
        token = self.mint_token(private_key, str(uuid4()), aud="anon")

        with patch.object(
            verifier, "_get_jwks_client", return_value=self.jwks_client_returning(public_key)
        ):
            with pytest.raises(ApiError) as exc_info:
                verifier.verify(token)

        assert "audience" in exc_info.value.message.lower()

    def test_invalid_sub_format(self, verifier, rsa_keypair):
        private_key, public_key = rsa_keypair
        token = self.mint_token(private_key, "user-42")

        with patch.object(
            verifier, "_get_jwks_client", return_value=self.jwks_client_returning(public_key)
        ):
            with pytest.raises(ApiError) as exc_info:
                verifier.verify(token)

        assert "uuid" in exc_info.value.message.lower()

    def test_kid_miss_triggers_refresh(self, verifier, rsa_keypair):
        private_key, public_key = rsa_keypair
        user_id = str(uuid4())
        token = self.mint_token(private_key, user_id)
        signing_key = MagicMock()
        signing_key.key = public_key
        client = MagicMock()
        client.get_signing_key_from_jwt.side_effect = [
            PyJWKClientError("Unable to find a signing key that matches"),
            signing_key,
        ]

        with patch.object(verifier, "_get_jwks_client", return_value=client) as get_client:
            claims = verifier.verify(token)

        assert claims["sub"] == user_id
        get_client.assert_called_with(refresh=True)

    def test_kid_not_found_after_refresh(self, verifier, rsa_keypair):
        token = self.mint_token(rsa_keypair[0], str(uuid4()))
        client = MagicMock()
        client.get_signing_key_from_jwt.side_effect = PyJWKClientError(
            "Unable to find a signing key that matches"
        )

        with patch.object(verifier, "_get_jwks_client", return_value=client):
            with pytest.raises(ApiError) as exc_info:
                verifier.verify(token)

        assert exc_info.value.code == ApiErrorCode.E_UNAUTHENTICATED
        assert "signing key" in exc_info.value.message.lower()

    def test_jwks_fetch_failure(self, verifier):
        client = MagicMock()
        client.get_signing_key_from_jwt.side_effect = PyJWKClientError(
            "Fail to fetch data from the url"
        )

        with patch.object(verifier, "_get_jwks_client", return_value=client):
            with pytest.raises(ApiError) as exc_info:
                verifier.verify("some.fake.token")

        assert exc_info.value.code == ApiErrorCode.E_AUTH_UNAVAILABLE
        assert exc_info.value.status_code == 503

    def test_malformed_token(self, verifier):
        client = MagicMock()
        client.get_signing_key_from_jwt.side_effect = DecodeError("Not enough segments")

        with patch.object(verifier, "_get_jwks_client", return_value=client):
            with pytest.raises(ApiError) as exc_info:
                verifier.verify("garbage")

        assert exc_info.value.code == ApiErrorCode.E_UNAUTHENTICATED


class TestMockJwtVerifier:
    def test_valid_token(self):
        user_id = uuid4()

        claims = MockJwtVerifier().verify(mint_test_token(user_id))

        assert claims["sub"] == str(user_id)

    def test_expired_token(self):
        with pytest.raises(ApiError) as exc_info:
            MockJwtVerifier().verify(mint_expired_token(uuid4()))

        assert exc_info.value.code == ApiErrorCode.E_UNAUTHENTICATED

    def test_wrong_issuer(self):
        with pytest.raises(ApiError):
            MockJwtVerifier().verify(mint_test_token(uuid4(), issuer="other"))
