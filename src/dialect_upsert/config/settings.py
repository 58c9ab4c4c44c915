"""
Configuration management for Dialect Upsert.

This module provides environment-based configuration using Pydantic BaseSettings,
so the same engine can run against development, staging and production
databases without code changes while keeping credentials out of the source.

All fields are read from environment variables with the ``UPSERT_`` prefix
(``UPSERT_DB_BATCH_SIZE=500``) or from an optional ``.env`` file.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from dialect_upsert.io.loader.coercion import CoercionFormats
    from dialect_upsert.io.loader.models import CommitStrategy

# Determine project root for resolving .env by default
PROJECT_ROOT = Path(__file__).resolve().parents[3]
DEFAULT_ENV_FILE = PROJECT_ROOT / ".env"
ENV_FILE_OVERRIDE = os.getenv("UPSERT_ENV_FILE")
if ENV_FILE_OVERRIDE:
    env_file_candidate = Path(ENV_FILE_OVERRIDE).expanduser()
    if not env_file_candidate.is_absolute():
        env_file_candidate = PROJECT_ROOT / env_file_candidate
    SETTINGS_ENV_FILE = env_file_candidate
else:
    SETTINGS_ENV_FILE = DEFAULT_ENV_FILE

COMMIT_BY_ROWS = "rows"
COMMIT_BY_PROFILE = "profile"


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    Fields:
    - DATABASE_URL: SQLAlchemy URL used by the CLI (optional for library use)
    - LOG_LEVEL: Logging level (uppercase)
    - DB_BATCH_SIZE: Rows per flush for commit-by-rows (0 = commit by profile)
    - DB_COMMIT_OPTION: Default commit strategy ("rows" or "profile")
    - METADATA_CACHE_SIZE: Tables kept in the metadata cache before eviction
    - date_format / time_format / timestamp_format / timestamp_tz_format:
      ``strptime`` patterns used when coercing strings into temporal columns
    """

    DATABASE_URL: Optional[str] = Field(
        default=None,
        description="SQLAlchemy database URL",
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (uppercase)",
    )
    DB_BATCH_SIZE: int = Field(
        default=1000,
        description="Number of records flushed together under commit-by-rows",
    )
    DB_COMMIT_OPTION: Literal["rows", "profile"] = Field(
        default=COMMIT_BY_ROWS,
        description="Default commit strategy",
    )
    METADATA_CACHE_SIZE: int = Field(
        default=64,
        description="Maximum number of table snapshots held by the metadata cache",
    )

    # Temporal parsing patterns
    date_format: str = Field(default="%Y-%m-%d", description="DATE column pattern")
    time_format: str = Field(default="%H:%M:%S", description="TIME column pattern")
    timestamp_format: str = Field(
        default="%Y-%m-%d %H:%M:%S", description="TIMESTAMP column pattern"
    )
    timestamp_tz_format: str = Field(
        default="%Y-%m-%d %H:%M:%S%z",
        description="TIMESTAMP WITH TIME ZONE column pattern",
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.upper()

    @field_validator("DB_BATCH_SIZE")
    @classmethod
    def _validate_batch_size(cls, value: int) -> int:
        if value < 0:
            raise ValueError("DB_BATCH_SIZE cannot be negative")
        return value

    @field_validator("METADATA_CACHE_SIZE")
    @classmethod
    def _validate_cache_size(cls, value: int) -> int:
        if value < 1:
            raise ValueError("METADATA_CACHE_SIZE must be at least 1")
        return value

    @model_validator(mode="after")
    def _normalize_database_url(self) -> "Settings":
        """Rewrite the deprecated ``postgres://`` scheme for SQLAlchemy."""
        if self.DATABASE_URL and self.DATABASE_URL.startswith("postgres://"):
            self.DATABASE_URL = self.DATABASE_URL.replace(
                "postgres://", "postgresql://", 1
            )
        return self

    def coercion_formats(self) -> "CoercionFormats":
        """Build the temporal patterns used by the value coercer."""
        from dialect_upsert.io.loader.coercion import CoercionFormats

        return CoercionFormats(
            date_format=self.date_format,
            time_format=self.time_format,
            timestamp_format=self.timestamp_format,
            timestamp_tz_format=self.timestamp_tz_format,
        )

    def commit_strategy(self) -> "CommitStrategy":
        """
        Resolve the default commit strategy.

        A batch size of zero always means commit-by-profile, mirroring the
        behaviour of an unset batch count.
        """
        from dialect_upsert.io.loader.models import CommitStrategy

        if self.DB_COMMIT_OPTION == COMMIT_BY_PROFILE or self.DB_BATCH_SIZE == 0:
            return CommitStrategy.by_profile()
        return CommitStrategy.by_rows(self.DB_BATCH_SIZE)

    model_config = SettingsConfigDict(
        env_prefix="UPSERT_",
        env_file=str(SETTINGS_ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are loaded once and reused across
    the application lifecycle. Tests that change the environment should call
    ``get_settings.cache_clear()``.

    Returns:
        Settings instance with loaded configuration
    """
    return Settings()
