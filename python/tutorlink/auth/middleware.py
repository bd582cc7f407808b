"""Authentication middleware for FastAPI.

Provides:
- AuthMiddleware: Global bearer token verification
- Viewer: Authenticated caller identity
- get_viewer: Dependency for accessing the viewer in route handlers
"""

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from tutorlink.auth.verifier import TokenVerifier
from tutorlink.errors import ApiError, ApiErrorCode, NotAuthenticatedError
from tutorlink.logging import get_logger
from tutorlink.responses import error_response

logger = get_logger(__name__)

AUTHORIZATION_HEADER = "authorization"

# Paths that don't require authentication
PUBLIC_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}


@dataclass(frozen=True)
class Viewer:
    """Authenticated viewer identity.

    Attributes:
        user_id: The viewer's user ID (from JWT sub claim).
        email: Email claim, when present.
        is_admin: True when app_metadata.is_admin is set on the token.
    """

    user_id: UUID
    email: str | None = None
    is_admin: bool = False


def viewer_from_claims(payload: dict[str, Any]) -> Viewer:
    app_metadata = payload.get("app_metadata") or {}
    return Viewer(
        user_id=UUID(payload["sub"]),
        email=payload.get("email"),
        is_admin=bool(app_metadata.get("is_admin", False)),
    )


class AuthMiddleware(BaseHTTPMiddleware):
    """Reject unauthenticated requests to non-public paths.

    Order of checks:
    1. Skip if public path
    2. Extract bearer token
    3. Verify token via TokenVerifier
    4. Attach Viewer to request state
    """

    def __init__(self, app: ASGIApp, verifier: TokenVerifier):
        super().__init__(app)
        self.verifier = verifier

    async def dispatch(self, request: Request, call_next) -> JSONResponse:
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        token = self._extract_bearer_token(request)
        if token is None:
            return self._error_json_response(
                ApiErrorCode.E_UNAUTHENTICATED, "Authentication required", 401
            )

        try:
            payload = self.verifier.verify(token)
        except ApiError as e:
            return self._error_json_response(e.code, e.message, e.status_code)

        request.state.viewer = viewer_from_claims(payload)
        return await call_next(request)

    def _extract_bearer_token(self, request: Request) -> str | None:
        auth_header = request.headers.get(AUTHORIZATION_HEADER)
        if not auth_header:
            logger.warning("auth_failure", reason="missing_header", request_path=request.url.path)
            return None

        if not auth_header.lower().startswith("bearer "):
            logger.warning(
                "auth_failure", reason="invalid_header_format", request_path=request.url.path
            )
            return None

        token = auth_header[7:].strip()
        return token or None

    def _error_json_response(
        self, code: ApiErrorCode, message: str, status_code: int
    ) -> JSONResponse:
        return JSONResponse(status_code=status_code, content=error_response(code, message))


def get_viewer(request: Request) -> Viewer:
    """FastAPI dependency returning the authenticated viewer.

    Raises:
        NotAuthenticatedError: If the middleware did not attach a viewer.
    """
    viewer = getattr(request.state, "viewer", None)
    if viewer is None:
        raise NotAuthenticatedError()
    return viewer
