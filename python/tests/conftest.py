"""Pytest configuration and fixtures for TutorLink tests.

Test isolation strategy:
- The schema is created once per session from the ORM metadata
- SQLite in-memory by default; set TEST_DATABASE_URL to run against Postgres
- Tests that use db_session get a savepoint-joined session that rolls back
- API tests share that session through a get_db override
- Auth tests use auth_client with tokens from tests.helpers
"""

import os
from collections.abc import Generator

os.environ.setdefault("TUTORLINK_ENV", "test")
os.environ.setdefault("DATABASE_URL", os.environ.get("TEST_DATABASE_URL", "sqlite://"))
os.environ.setdefault("SUPABASE_JWKS_URL", "https://auth.example.test/.well-known/jwks.json")
os.environ.setdefault("SUPABASE_ISSUER", "test-issuer")
os.environ.setdefault("SUPABASE_AUDIENCES", "test-audience")
os.environ.setdefault("LOG_JSON", "false")

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from tests.support.verifier import MockJwtVerifier
from tests.utils.db import TestDatabaseManager
from tutorlink.app import add_request_id_middleware, create_app
from tutorlink.auth.middleware import AuthMiddleware
from tutorlink.config import clear_settings_cache
from tutorlink.db.engine import create_db_engine
from tutorlink.db.models import Base
from tutorlink.db.session import get_db
from tutorlink.realtime.hub import RealtimeHub
from tutorlink.storage.client import FakeStorageClient


def get_test_database_url() -> str:
    return os.environ.get("TEST_DATABASE_URL", "sqlite://")


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    """One engine and schema for the whole test session."""
    engine = create_db_engine(get_test_database_url())
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine: Engine) -> Generator[Session, None, None]:
    """Provide a database session with savepoint isolation."""
    with TestDatabaseManager(engine) as session:
        yield session


@pytest.fixture
def hub() -> RealtimeHub:
    return RealtimeHub(max_pending=10)


@pytest.fixture
def storage() -> FakeStorageClient:
    return FakeStorageClient()


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """FastAPI test client without auth middleware, for public endpoints."""
    app = create_app(skip_auth_middleware=True)
    add_request_id_middleware(app, log_requests=False)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def authenticated_app(
    db_session: Session, hub: RealtimeHub, storage: FakeStorageClient
) -> FastAPI:
    """App with auth middleware using MockJwtVerifier and the test session."""
    app = create_app(skip_auth_middleware=True)
    app.add_middleware(AuthMiddleware, verifier=MockJwtVerifier())
    add_request_id_middleware(app, log_requests=False)

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.state.realtime_hub = hub
    app.state.storage_client = storage
    return app


@pytest.fixture
def auth_client(authenticated_app: FastAPI) -> Generator[TestClient, None, None]:
    """Authenticated test client. Use tests.helpers.auth_headers() per request."""
    with TestClient(authenticated_app) as client:
        yield client


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset the settings cache before each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
