"""Token verification.

Provides:
- TokenVerifier: Protocol for token verification
- SupabaseJwksVerifier: Verifier using the Supabase JWKS endpoint

Note: Test-only verifiers are in tests/support/verifier.py
"""

import threading
from typing import Any, Protocol
from uuid import UUID

import jwt
from jwt import PyJWKClient
from jwt.exceptions import (
    DecodeError,
    ExpiredSignatureError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidSignatureError,
    InvalidTokenError,
    PyJWKClientError,
)

from tutorlink.errors import ApiError, ApiErrorCode, NotAuthenticatedError
from tutorlink.logging import get_logger

logger = get_logger(__name__)

CLOCK_SKEW_SECONDS = 60


class TokenVerifier(Protocol):
    """Verify a bearer token and return its decoded claims.

    Raises:
        NotAuthenticatedError: Token is invalid, expired, or malformed.
        ApiError(E_AUTH_UNAVAILABLE): JWKS endpoint unreachable.
    """

    def verify(self, token: str) -> dict[str, Any]: ...


class SupabaseJwksVerifier:
    """Token verifier backed by the Supabase JWKS endpoint.

    Validates:
    - Signature via JWKS (RS256 or ES256)
    - exp with a 60s clock skew
    - iss matches the configured issuer (trailing slash stripped)
    - aud is one of the configured audiences
    - sub is a UUID
    """

    def __init__(
        self,
        jwks_url: str,
        issuer: str,
        audiences: list[str],
        cache_ttl: int = 3600,
    ):
        self.jwks_url = jwks_url
        self.issuer = issuer.rstrip("/")
        self.audiences = audiences
        self.cache_ttl = cache_ttl

        self._jwks_client: PyJWKClient | None = None
        self._jwks_lock = threading.Lock()

    def _new_client(self) -> PyJWKClient:
        return PyJWKClient(self.jwks_url, cache_keys=True, lifespan=self.cache_ttl)

    def _get_jwks_client(self, refresh: bool = False) -> PyJWKClient:
        with self._jwks_lock:
            if self._jwks_client is None or refresh:
                self._jwks_client = self._new_client()
            return self._jwks_client

    def verify(self, token: str) -> dict[str, Any]:
        try:
            signing_key = self._get_signing_key(token)
        except DecodeError as e:
            logger.warning("auth_failure", reason="decode_error")
            raise NotAuthenticatedError(message="Invalid token format") from e
        except PyJWKClientError as e:
            logger.warning("auth_failure", reason="jwks_unavailable", error=str(e))
            raise ApiError(
                ApiErrorCode.E_AUTH_UNAVAILABLE,
                "Authentication service unavailable",
            ) from e

        try:
            payload = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256", "ES256"],
                audience=self.audiences,
                issuer=self.issuer,
                leeway=CLOCK_SKEW_SECONDS,
                options={"require": ["exp", "iss", "sub"], "verify_aud": True},
            )
        except ExpiredSignatureError as e:
            logger.warning("auth_failure", reason="expired_token")
            raise NotAuthenticatedError(message="Token expired") from e
        except InvalidSignatureError as e:
            logger.warning("auth_failure", reason="invalid_signature")
            raise NotAuthenticatedError(message="Invalid token signature") from e
        except InvalidIssuerError as e:
            logger.warning("auth_failure", reason="invalid_issuer")
            raise NotAuthenticatedError(message="Invalid token issuer") from e
        except InvalidAudienceError as e:
            logger.warning("auth_failure", reason="invalid_audience")
            raise NotAuthenticatedError(message="Invalid token audience") from e
        except DecodeError as e:
            logger.warning("auth_failure", reason="decode_error")
            raise NotAuthenticatedError(message="Invalid token format") from e
        except InvalidTokenError as e:
            logger.warning("auth_failure", reason="invalid_token", error=str(e))
            raise NotAuthenticatedError(message="Invalid token") from e

        validate_subject(payload)
        return payload

    def _get_signing_key(self, token: str) -> Any:
        """Fetch the signing key, refreshing the JWKS once on a kid miss."""
        client = self._get_jwks_client()
        try:
            return client.get_signing_key_from_jwt(token)
        except PyJWKClientError as e:
            if "Unable to find" not in str(e) and "kid" not in str(e).lower():
                raise
            logger.info("jwks_refresh_on_kid_miss")
            client = self._get_jwks_client(refresh=True)
            try:
                return client.get_signing_key_from_jwt(token)
            except PyJWKClientError as retry_e:
                logger.warning("auth_failure", reason="kid_not_found")
                raise NotAuthenticatedError(
                    message="Invalid token: signing key not found"
                ) from retry_e


def validate_subject(payload: dict[str, Any]) -> UUID:
    """Require a UUID `sub` claim; it is the caller's stable identity."""
    sub = payload.get("sub")
    if not sub:
        logger.warning("auth_failure", reason="missing_sub")
        raise NotAuthenticatedError(message="Invalid token: missing sub")
    try:
        return UUID(sub)
    except (ValueError, TypeError) as e:
        logger.warning("auth_failure", reason="invalid_sub")
        raise NotAuthenticatedError(message="Invalid token: sub is not a valid UUID") from e
