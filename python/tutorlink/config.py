"""Application settings loaded from environment variables.

Environment Configuration:
    TUTORLINK_ENV: Deployment environment (local | test | staging | prod)
    DATABASE_URL: Database connection string (required)

Auth Configuration (required in all environments):
    SUPABASE_JWKS_URL: Full URL to Supabase JWKS endpoint
    SUPABASE_ISSUER: Expected JWT issuer (trailing slash stripped)
    SUPABASE_AUDIENCES: Comma-separated list of allowed audiences

Storage Configuration (required in staging/prod):
    SUPABASE_URL: Supabase project URL
    SUPABASE_SERVICE_KEY: Service role key used to sign storage URLs
    STORAGE_BUCKET: Bucket holding user uploads

Realtime:
    REDIS_URL: Optional. When set, change events are relayed through Redis
    pub/sub so every API process sees them.
    REALTIME_MAX_PENDING: Gap buffer bound per subscription (default 100)
    REALTIME_KEEPALIVE_S: Idle seconds between SSE keepalive comments (default 15)
    REALTIME_GAP_TIMEOUT_S: Seconds to wait for a missing seq before skipping it (default 5)

Logging:
    LOG_JSON: JSON lines when true (default), console rendering otherwise
    LOG_LEVEL: Root log level (default INFO)
"""

from enum import Enum
from functools import lru_cache
from typing import Annotated

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Environment(str, Enum):
    """Valid deployment environments."""

    LOCAL = "local"
    TEST = "test"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    """Application configuration.

    Validation rules:
    - DATABASE_URL is always required
    - SUPABASE_JWKS_URL, SUPABASE_ISSUER, SUPABASE_AUDIENCES are required in all environments
    - SUPABASE_URL and SUPABASE_SERVICE_KEY are required in staging and prod only
    """

    tutorlink_env: Environment = Field(default=Environment.LOCAL, alias="TUTORLINK_ENV")
    database_url: Annotated[str, Field(alias="DATABASE_URL")]

    # Supabase auth settings
    supabase_jwks_url: str | None = Field(default=None, alias="SUPABASE_JWKS_URL")
    supabase_issuer: str | None = Field(default=None, alias="SUPABASE_ISSUER")
    supabase_audiences: str | None = Field(default=None, alias="SUPABASE_AUDIENCES")

    # Supabase Storage settings
    supabase_url: str | None = Field(default=None, alias="SUPABASE_URL")
    supabase_service_key: str | None = Field(default=None, alias="SUPABASE_SERVICE_KEY")
    storage_bucket: str = Field(default="uploads", alias="STORAGE_BUCKET")
    signed_url_expiry_s: int = Field(default=3600, alias="SIGNED_URL_EXPIRY_S")  # 1 hour

    # Realtime
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    realtime_max_pending: int = Field(default=100, alias="REALTIME_MAX_PENDING")
    realtime_keepalive_s: float = Field(default=15.0, alias="REALTIME_KEEPALIVE_S")
    realtime_gap_timeout_s: float = Field(default=5.0, alias="REALTIME_GAP_TIMEOUT_S")

    # Signup profile creation retry
    profile_create_attempts: int = Field(default=3, alias="PROFILE_CREATE_ATTEMPTS")
    profile_create_retry_delay_s: float = Field(default=1.0, alias="PROFILE_CREATE_RETRY_DELAY_S")

    log_json: bool = Field(default=True, alias="LOG_JSON")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def validate_required_settings(self) -> "Settings":
        """Ensure required settings are set for the current environment."""
        missing_auth = []
        if not self.supabase_jwks_url:
            missing_auth.append("SUPABASE_JWKS_URL")
        if not self.supabase_issuer:
            missing_auth.append("SUPABASE_ISSUER")
        if not self.supabase_audiences:
            missing_auth.append("SUPABASE_AUDIENCES")

        if missing_auth:
            raise ValueError(
                f"Missing required Supabase auth settings: {', '.join(missing_auth)}. "
                "Set these environment variables or add them to .env."
            )

        if self.tutorlink_env in (Environment.STAGING, Environment.PROD):
            missing_storage = [
                name
                for name, value in (
                    ("SUPABASE_URL", self.supabase_url),
                    ("SUPABASE_SERVICE_KEY", self.supabase_service_key),
                )
                if not value
            ]
            if missing_storage:
                raise ValueError(
                    f"{', '.join(missing_storage)} required for "
                    f"TUTORLINK_ENV={self.tutorlink_env.value}"
                )

        if self.realtime_gap_timeout_s <= 0:
            raise ValueError("REALTIME_GAP_TIMEOUT_S must be positive")

        if self.profile_create_attempts < 1:
            raise ValueError("PROFILE_CREATE_ATTEMPTS must be at least 1")

        return self

    @property
    def audience_list(self) -> list[str]:
        """Parse comma-separated audiences into a list."""
        if self.supabase_audiences:
            return [a.strip() for a in self.supabase_audiences.split(",") if a.strip()]
        return []

    @property
    def normalized_issuer(self) -> str | None:
        """Return issuer with trailing slash stripped."""
        if self.supabase_issuer:
            return self.supabase_issuer.rstrip("/")
        return None

    @property
    def storage_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Raises:
        ValidationError: If required settings are missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
