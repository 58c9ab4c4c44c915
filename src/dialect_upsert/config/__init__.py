"""Configuration management for Dialect Upsert.

This module provides centralized configuration loaded from environment variables
with validation using Pydantic BaseSettings.

Usage:
    >>> from dialect_upsert.config import get_settings
    >>> settings = get_settings()
    >>> settings.DB_BATCH_SIZE
    1000
"""

from dialect_upsert.config.settings import (
    COMMIT_BY_PROFILE,
    COMMIT_BY_ROWS,
    Settings,
    get_settings,
)

__all__ = [
    "COMMIT_BY_PROFILE",
    "COMMIT_BY_ROWS",
    "Settings",
    "get_settings",
]
