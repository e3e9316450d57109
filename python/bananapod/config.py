"""Application settings loaded from environment variables.

Environment Configuration:
    BANANAPOD_ENV: Deployment environment (local | test | staging | prod)
    DATABASE_URL: SQLAlchemy connection string (required)

Key-Value Store:
    REDIS_URL: Redis connection string for the user-key allowlist and
        video operation handles. Optional in local/test (in-memory store).

Upstream Provider:
    GEMINI_API_KEY: Google Generative Language API key (required in staging/prod)
    GEMINI_BASE_URL: API base URL (override for proxies / test doubles)
    GEMINI_IMAGE_MODEL / GEMINI_VIDEO_MODEL: Model identifiers

Media Storage:
    SUPABASE_URL, SUPABASE_SERVICE_KEY: Supabase Storage credentials.
        Optional in local/test (in-memory store).
    STORAGE_BUCKET: Bucket holding generated media
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
    - GEMINI_API_KEY, REDIS_URL, SUPABASE_URL and SUPABASE_SERVICE_KEY are
      required in staging and prod only
    """

    bananapod_env: Environment = Field(default=Environment.LOCAL, alias="BANANAPOD_ENV")
    database_url: Annotated[str, Field(alias="DATABASE_URL")]

    # Key-value store
    redis_url: str | None = Field(default=None, alias="REDIS_URL")

    # Upstream provider
    gemini_api_key: str | None = Field(default=None, alias="GEMINI_API_KEY")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com", alias="GEMINI_BASE_URL"
    )
    gemini_image_model: str = Field(
        default="gemini-3-pro-image-preview", alias="GEMINI_IMAGE_MODEL"
    )
    gemini_video_model: str = Field(default="veo-3.1-generate-preview", alias="GEMINI_VIDEO_MODEL")
    upstream_timeout_s: int = Field(default=120, alias="UPSTREAM_TIMEOUT_S")

    # Supabase Storage
    supabase_url: str | None = Field(default=None, alias="SUPABASE_URL")
    supabase_service_key: str | None = Field(default=None, alias="SUPABASE_SERVICE_KEY")
    storage_bucket: str = Field(default="media", alias="STORAGE_BUCKET")

    # Sessions
    session_cookie_secure: bool = Field(default=True, alias="SESSION_COOKIE_SECURE")
    session_ttl_s: int = Field(default=60 * 60 * 24 * 30, alias="SESSION_TTL_S")  # 30 days

    # Video operations
    video_op_ttl_s: int = Field(default=60 * 60 * 24, alias="VIDEO_OP_TTL_S")  # 24h
    video_poll_interval_s: int = Field(default=10, alias="VIDEO_POLL_INTERVAL_S")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def validate_required_settings(self) -> "Settings":
        """Ensure deployed environments have real backends configured."""
        if self.bananapod_env in (Environment.STAGING, Environment.PROD):
            missing = []
            if not self.gemini_api_key:
                missing.append("GEMINI_API_KEY")
            if not self.redis_url:
                missing.append("REDIS_URL")
            if not self.supabase_url:
                missing.append("SUPABASE_URL")
            if not self.supabase_service_key:
                missing.append("SUPABASE_SERVICE_KEY")
            if missing:
                raise ValueError(
                    f"Missing required settings for BANANAPOD_ENV={self.bananapod_env.value}: "
                    f"{', '.join(missing)}"
                )

        if self.session_ttl_s < 1 or self.video_op_ttl_s < 1:
            raise ValueError("SESSION_TTL_S and VIDEO_OP_TTL_S must be >= 1")

        return self

    @property
    def uses_storage_backend(self) -> bool:
        """Whether Supabase Storage credentials are configured."""
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
