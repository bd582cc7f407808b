"""Test helpers for authentication and common test operations.

Provides:
- Token minting for test authentication
- Header generation for test requests
"""

import time
from uuid import UUID, uuid4

import jwt

from tests.support.verifier import MockJwtVerifier

DEFAULT_ISSUER = "test-issuer"
DEFAULT_AUDIENCE = "test-audience"
DEFAULT_EXPIRES_IN = 3600  # 1 hour


def mint_test_token(
    user_id: UUID | str,
    expires_in: int = DEFAULT_EXPIRES_IN,
    issuer: str = DEFAULT_ISSUER,
    audience: str = DEFAULT_AUDIENCE,
    **extra_claims,
) -> str:
    """Mint an RS256 token MockJwtVerifier accepts."""
    now = int(time.time())
    payload = {
        "sub": str(user_id),
        "iss": issuer,
        "aud": audience,
        "iat": now,
        "exp": now + expires_in,
        **extra_claims,
    }
    return jwt.encode(payload, MockJwtVerifier.get_private_key(), algorithm="RS256")


def mint_expired_token(user_id: UUID | str) -> str:
    """Mint a token that expired 1 hour ago (beyond the clock skew)."""
    return mint_test_token(user_id, expires_in=-3600)


def auth_headers(user_id: UUID | str, **token_kwargs) -> dict[str, str]:
    """Return headers dict with valid Authorization for the given user."""
    token = mint_test_token(user_id, **token_kwargs)
    return {"Authorization": f"Bearer {token}"}


def admin_headers(user_id: UUID | str) -> dict[str, str]:
    return auth_headers(user_id, app_metadata={"is_admin": True})


def create_test_user_id() -> UUID:
    return uuid4()
