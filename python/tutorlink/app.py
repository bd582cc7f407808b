"""FastAPI application creation and configuration.

Registers exception handlers, auth middleware, request-id middleware and
routes, and owns the lifecycle of the shared realtime hub and storage
client.

Middleware Ordering:
- Middleware runs in reverse order of registration
- RequestIDMiddleware is added LAST so it runs FIRST (outermost)
- Every response, including auth failures, carries X-Request-ID

Actual execution order per request:
1. RequestIDMiddleware (sets request_id, starts timer)
2. AuthMiddleware (verifies bearer token, sets viewer)
3. Route handler
4. AuthMiddleware (returns response)
5. RequestIDMiddleware (logs, sets response header)

Realtime:
- Without REDIS_URL the hub is in-process only
- With REDIS_URL seqs come from Redis and a relay thread forwards events
  published by other API processes into the local hub
"""

import json
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tutorlink.api.routes import create_api_router
from tutorlink.auth.middleware import AuthMiddleware
from tutorlink.auth.verifier import SupabaseJwksVerifier, TokenVerifier
from tutorlink.config import get_settings
from tutorlink.errors import ApiError, ApiErrorCode
from tutorlink.logging import configure_logging, get_logger
from tutorlink.middleware.request_id import RequestIDMiddleware
from tutorlink.realtime.hub import RealtimeHub
from tutorlink.realtime.redis_bridge import create_redis_hub
from tutorlink.responses import (
    api_error_handler,
    error_response,
    http_exception_handler,
    unhandled_exception_handler,
)
from tutorlink.storage.client import get_storage_client

logger = get_logger(__name__)


def create_token_verifier() -> SupabaseJwksVerifier:
    """Create the Supabase JWKS verifier from settings.

    Every environment uses the same verifier; only the JWKS URL, issuer and
    audiences change.
    """
    settings = get_settings()

    return SupabaseJwksVerifier(
        jwks_url=settings.supabase_jwks_url,  # type: ignore[arg-type]
        issuer=settings.normalized_issuer,  # type: ignore[arg-type]
        audiences=settings.audience_list,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the realtime hub and storage client; stop the relay on shutdown.

    Resources already placed on app.state (tests) are left as they are.
    """
    settings = get_settings()
    relay = None

    if getattr(app.state, "realtime_hub", None) is None:
        if settings.redis_url:
            app.state.realtime_hub, relay = create_redis_hub(
                settings.redis_url,
                max_pending=settings.realtime_max_pending,
                gap_timeout_s=settings.realtime_gap_timeout_s,
            )
            relay.start()
            logger.info("realtime_hub_initialized", backend="redis")
        else:
            app.state.realtime_hub = RealtimeHub(
                max_pending=settings.realtime_max_pending,
                gap_timeout_s=settings.realtime_gap_timeout_s,
            )
            logger.info("realtime_hub_initialized", backend="memory")

    if getattr(app.state, "storage_client", None) is None:
        app.state.storage_client = get_storage_client()
        logger.info(
            "storage_client_initialized",
            backend="supabase" if settings.storage_configured else "fake",
        )

    yield

    if relay is not None:
        relay.stop()
        logger.info("realtime_relay_stopped")


def create_app(
    skip_auth_middleware: bool = False,
    token_verifier: TokenVerifier | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        skip_auth_middleware: If True, skip adding auth middleware (for testing).
        token_verifier: Optional custom token verifier (for testing).
    """
    settings = get_settings()
    configure_logging(json_format=settings.log_json, level=settings.log_level)

    app = FastAPI(
        title="TutorLink API",
        description="Access and contract layer for the TutorLink tutoring marketplace",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.realtime_hub = None
    app.state.storage_client = None

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request validation errors (including malformed JSON)."""
        first = exc.errors()[0] if exc.errors() else None
        message = "Invalid request"
        if first is not None:
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"Invalid request: {location} {first.get('msg', '')}".strip()
        return JSONResponse(
            status_code=400,
            content=error_response(ApiErrorCode.E_INVALID_REQUEST, message),
        )

    @app.middleware("http")
    async def catch_json_decode_errors(request: Request, call_next):
        """Reject malformed JSON bodies before they reach route handlers."""
        if request.method in ("POST", "PUT", "PATCH"):
            content_type = request.headers.get("content-type", "")
            if "application/json" in content_type:
                body = await request.body()
                if body:
                    try:
                        json.loads(body)
                    except json.JSONDecodeError:
                        return JSONResponse(
                            status_code=400,
                            content=error_response(
                                ApiErrorCode.E_INVALID_REQUEST, "Malformed JSON body"
                            ),
                        )
        return await call_next(request)

    app.include_router(create_api_router())

    if not skip_auth_middleware:
        verifier = token_verifier or create_token_verifier()
        app.add_middleware(AuthMiddleware, verifier=verifier)
        logger.info("auth_middleware_enabled", env=settings.tutorlink_env.value)

    return app


def add_request_id_middleware(app: FastAPI, log_requests: bool = True) -> None:
    """Add request-id middleware to the app.

    Call AFTER all other middleware is added, so it runs FIRST and every
    response includes X-Request-ID, including auth failures.
    """
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)
    logger.info("request_id_middleware_enabled")
