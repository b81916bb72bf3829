"""
Folio Configuration Management

Centralized configuration using Pydantic Settings for type-safe environment
variable loading with validation. Every field can be overridden with a
``FOLIO_`` prefixed environment variable or an entry in ``.env``.
"""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


SnapshotBackend = Literal["memory", "sql", "redis"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FOLIO_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ═══════════════════════════════════════════════════════════════
    # APPLICATION
    # ═══════════════════════════════════════════════════════════════
    app_name: str = Field(default="folio", description="Application name")
    app_env: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_json: bool = Field(default=False, description="Render logs as JSON")

    # ═══════════════════════════════════════════════════════════════
    # SNAPSHOT STORE (local persisted cache)
    # ═══════════════════════════════════════════════════════════════
    snapshot_backend: SnapshotBackend = Field(
        default="sql", description="Backend for persisted query snapshots"
    )
    snapshot_sql_url: str = Field(
        default="sqlite+aiosqlite:///folio_snapshots.db",
        description="SQLAlchemy async URL for the snapshot database",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0", description="Redis URL for the redis backend"
    )
    snapshot_key_prefix: str = Field(
        default="folio:snapshot:", description="Key prefix used by the redis backend"
    )

    # ═══════════════════════════════════════════════════════════════
    # CONNECTIVITY
    # ═══════════════════════════════════════════════════════════════
    connectivity_probe_url: str = Field(
        default="https://clients3.google.com/generate_204",
        description="URL probed to decide whether the device is online",
    )
    connectivity_timeout_seconds: float = Field(
        default=3.0, description="Timeout for a single connectivity probe"
    )

    # ═══════════════════════════════════════════════════════════════
    # BOOK CATALOG SEARCH
    # ═══════════════════════════════════════════════════════════════
    books_api_base_url: str = Field(
        default="https://www.googleapis.com/books/v1",
        description="Book catalog API base URL",
    )
    books_api_key: str | None = Field(default=None, description="Book catalog API key")
    books_language: str = Field(default="en", description="Default search language")
    books_max_results: int = Field(
        default=40, ge=1, le=40, description="Max results requested per search"
    )
    search_timeout_seconds: float = Field(
        default=10.0, description="Timeout applied to each search strategy"
    )

    @field_validator("connectivity_timeout_seconds", "search_timeout_seconds")
    @classmethod
    def validate_positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be positive")
        return v

    @field_validator("snapshot_key_prefix")
    @classmethod
    def validate_key_prefix(cls, v: str) -> str:
        if not v:
            raise ValueError("snapshot_key_prefix cannot be empty")
        return v

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    if settings.is_production and settings.snapshot_backend == "memory":
        logger.warning("Memory snapshot backend in production: cache will not survive restarts")
    return settings
