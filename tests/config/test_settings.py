"""Unit tests for the configuration framework.

Tests verify:
- Defaults for batching, commit option and temporal patterns
- UPSERT_-prefixed environment variables override defaults
- Validation of batch size and cache size
- Commit strategy resolution from settings
- Singleton behavior of get_settings
"""

import pytest
from pydantic import ValidationError

from dialect_upsert.config.settings import Settings, get_settings


def _settings() -> Settings:
    # Ignore any .env file on the developer machine
    return Settings(_env_file=None)


@pytest.mark.unit
def test_defaults(monkeypatch):
    for name in ("UPSERT_DATABASE_URL", "UPSERT_DB_BATCH_SIZE", "UPSERT_DB_COMMIT_OPTION"):
        monkeypatch.delenv(name, raising=False)

    settings = _settings()

    assert settings.DATABASE_URL is None
    assert settings.DB_BATCH_SIZE == 1000
    assert settings.DB_COMMIT_OPTION == "rows"
    assert settings.METADATA_CACHE_SIZE == 64
    assert settings.date_format == "%Y-%m-%d"
    assert settings.timestamp_tz_format == "%Y-%m-%d %H:%M:%S%z"


@pytest.mark.unit
def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("UPSERT_DB_BATCH_SIZE", "250")
    monkeypatch.setenv("UPSERT_LOG_LEVEL", "debug")
    monkeypatch.setenv("UPSERT_DATE_FORMAT", "%d/%m/%Y")

    settings = _settings()

    assert settings.DB_BATCH_SIZE == 250
    assert settings.LOG_LEVEL == "DEBUG"
    assert settings.coercion_formats().date_format == "%d/%m/%Y"


@pytest.mark.unit
def test_negative_batch_size_rejected(monkeypatch):
    monkeypatch.setenv("UPSERT_DB_BATCH_SIZE", "-5")

    with pytest.raises(ValidationError) as exc_info:
        _settings()

    assert "cannot be negative" in str(exc_info.value)


@pytest.mark.unit
def test_cache_size_must_be_positive(monkeypatch):
    monkeypatch.setenv("UPSERT_METADATA_CACHE_SIZE", "0")

    with pytest.raises(ValidationError):
        _settings()


@pytest.mark.unit
def test_unknown_commit_option_rejected(monkeypatch):
    monkeypatch.setenv("UPSERT_DB_COMMIT_OPTION", "hourly")

    with pytest.raises(ValidationError):
        _settings()


@pytest.mark.unit
def test_postgres_scheme_normalized(monkeypatch):
    monkeypatch.setenv("UPSERT_DATABASE_URL", "postgres://user:pw@db:5432/sales")

    assert _settings().DATABASE_URL == "postgresql://user:pw@db:5432/sales"


@pytest.mark.unit
@pytest.mark.parametrize(
    "batch_size,option,by_profile,threshold",
    [
        ("500", "rows", False, 500),
        ("0", "rows", True, None),
        ("500", "profile", True, None),
    ],
)
def test_commit_strategy(monkeypatch, batch_size, option, by_profile, threshold):
    monkeypatch.setenv("UPSERT_DB_BATCH_SIZE", batch_size)
    monkeypatch.setenv("UPSERT_DB_COMMIT_OPTION", option)

    strategy = _settings().commit_strategy()

    assert strategy.by_profile_mode is by_profile
    assert strategy.threshold == threshold


@pytest.mark.unit
def test_get_settings_is_cached():
    assert get_settings() is get_settings()
