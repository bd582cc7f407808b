"""Authentication module.

This module provides:
- Token verification (Supabase JWKS verifier)
- Auth middleware for FastAPI
- Viewer identity attached to request state

Note: Test-only verifiers are in tests/support/verifier.py
"""

from tutorlink.auth.middleware import AuthMiddleware, Viewer, get_viewer
from tutorlink.auth.verifier import SupabaseJwksVerifier, TokenVerifier

__all__ = [
    "AuthMiddleware",
    "Viewer",
    "get_viewer",
    "SupabaseJwksVerifier",
    "TokenVerifier",
]
