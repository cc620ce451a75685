"""
Featur — Application Configuration

Every tunable comes from the environment or a local ``.env`` file.  Call
``get_settings()`` rather than constructing ``Settings`` directly; the
instance is parsed once per process.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Featur backend."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Database – Cloud SQL via Unix socket or plain URL
    # ------------------------------------------------------------------ #
    DATABASE_URL: str
    DB_USER: str = "featur_user"
    DB_PASSWORD: str = ""
    DB_NAME: str = "featur"
    CLOUD_SQL_INSTANCE_CONNECTION: str = ""
    CLOUD_SQL_USE_UNIX_SOCKET: bool = True

    # ------------------------------------------------------------------ #
    # Redis – cross-process fan-out for live conversation updates.
    # Empty means in-process notifications only.
    # ------------------------------------------------------------------ #
    REDIS_URL: str = ""

    # ------------------------------------------------------------------ #
    # Media store (Google Cloud Storage)
    # ------------------------------------------------------------------ #
    GCP_PROJECT_ID: str = ""
    GCS_BUCKET_NAME: str = ""
    MEDIA_PUBLIC_BASE_URL: str = "https://storage.googleapis.com"

    # ------------------------------------------------------------------ #
    # Runtime
    # ------------------------------------------------------------------ #
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGINS: str = "*"

    # ------------------------------------------------------------------ #
    # Discovery similarity weights
    #   score = STYLE_WEIGHT × |styles ∩| + INTEREST_WEIGHT × |interests ∩|
    # ------------------------------------------------------------------ #
    STYLE_OVERLAP_WEIGHT: int = 2
    INTEREST_OVERLAP_WEIGHT: int = 1
    DISCOVERY_DEFAULT_LIMIT: int = 20
    DISCOVERY_CANDIDATE_POOL: int = 200
    SEARCH_RESULT_LIMIT: int = 100

    # ------------------------------------------------------------------ #
    # Messaging / featured
    # ------------------------------------------------------------------ #
    MESSAGE_PAGE_SIZE: int = 50
    FEATURED_LIMIT: int = 20

    # ------------------------------------------------------------------ #
    # Retry policy for idempotent store writes
    # ------------------------------------------------------------------ #
    STORE_RETRY_ATTEMPTS: int = 3
    STORE_RETRY_MAX_WAIT: float = 2.0

    # ------------------------------------------------------------------ #
    # Derived helpers
    # ------------------------------------------------------------------ #
    @property
    def allowed_origins_list(self) -> list[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @field_validator("STYLE_OVERLAP_WEIGHT", "INTEREST_OVERLAP_WEIGHT")
    @classmethod
    def _weight_must_be_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"Weight must be non-negative, got {v}")
        return v

    @field_validator("STORE_RETRY_ATTEMPTS")
    @classmethod
    def _attempts_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"STORE_RETRY_ATTEMPTS must be at least 1, got {v}")
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide ``Settings``, validated on first use."""
    return Settings()  # type: ignore[call-arg]
