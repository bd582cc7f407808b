"""Tests for application configuration."""

import pytest
from pydantic import ValidationError

from tutorlink.config import Environment, Settings


def _make_settings(**overrides) -> Settings:
    """Build a Settings instance with test defaults + overrides."""
    defaults = {
        "DATABASE_URL": "postgresql+psycopg://localhost/test",
        "TUTORLINK_ENV": "test",
        "SUPABASE_JWKS_URL": "http://localhost:54321/auth/v1/.well-known/jwks.json",
        "SUPABASE_ISSUER": "http://localhost:54321/auth/v1/",
        "SUPABASE_AUDIENCES": "authenticated, anon ,",
    }
    defaults.update(overrides)
    return Settings(**defaults)


class TestAuthSettings:
    """Supabase auth settings are required in every environment."""

    def test_audiences_are_split_and_trimmed(self):
        s = _make_settings()
        assert s.audience_list == ["authenticated", "anon"]

    def test_issuer_trailing_slash_stripped(self):
        s = _make_settings()
        assert s.normalized_issuer == "http://localhost:54321/auth/v1"

    @pytest.mark.parametrize(
        "missing", ["SUPABASE_JWKS_URL", "SUPABASE_ISSUER", "SUPABASE_AUDIENCES"]
    )
    def test_missing_auth_setting_rejected(self, missing, monkeypatch):
        monkeypatch.delenv(missing, raising=False)
        with pytest.raises(ValidationError, match=missing):
            _make_settings(**{missing: ""})


class TestStorageSettings:
    """Storage credentials are only required outside local and test."""

    def test_test_env_without_storage_is_fake_backed(self):
        s = _make_settings()
        assert s.tutorlink_env == Environment.TEST
        assert s.storage_configured is False

    def test_prod_requires_storage_credentials(self, monkeypatch):
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.delenv("SUPABASE_SERVICE_KEY", raising=False)
        with pytest.raises(ValidationError, match="SUPABASE_URL"):
            _make_settings(TUTORLINK_ENV="prod")

    def test_prod_with_storage_credentials(self):
        s = _make_settings(
            TUTORLINK_ENV="prod",
            SUPABASE_URL="https://project.supabase.co",
            SUPABASE_SERVICE_KEY="service-key",
        )
        assert s.storage_configured is True
        assert s.storage_bucket == "uploads"


class TestRetryAndRealtimeSettings:
    def test_defaults(self):
        s = _make_settings()
        assert s.profile_create_attempts == 3
        assert s.profile_create_retry_delay_s == 1.0
        assert s.realtime_max_pending == 100
        assert s.redis_url is None

    def test_zero_attempts_rejected(self):
        with pytest.raises(ValidationError, match="PROFILE_CREATE_ATTEMPTS"):
            _make_settings(PROFILE_CREATE_ATTEMPTS=0)
