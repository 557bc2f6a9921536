"""
Configuration tests.
"""

import pytest

from impacttrace.config import Settings, get_settings


def test_get_settings_returns_settings() -> None:
    """get_settings returns a cached Settings instance."""
    settings = get_settings()
    assert isinstance(settings, Settings)
    assert get_settings() is settings


def test_settings_defaults() -> None:
    settings = get_settings()
    assert settings.app_name == "ImpactTrace"
    assert settings.storage_bucket == "evidence"
    assert settings.storage_base_url == ""


def test_test_environment_uses_sqlite_and_no_debounce() -> None:
    settings = get_settings()
    assert settings.database_url == "sqlite://"
    assert settings.match_debounce_seconds == 0


def test_generic_postgres_url_gets_psycopg_driver(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5432/impact")
    assert Settings().database_url == "postgresql+psycopg://u:p@db:5432/impact"


def test_storage_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """STORAGE_* variables configure the file store."""
    monkeypatch.setenv("STORAGE_BASE_URL", "https://files.example.com/")
    monkeypatch.setenv("STORAGE_BUCKET", "proof")
    monkeypatch.setenv("STORAGE_API_KEY", "key-123")
    monkeypatch.setenv("STORAGE_TIMEOUT", "12.5")
    monkeypatch.setenv("MATCH_DEBOUNCE_SECONDS", "0.5")

    settings = Settings()

    assert settings.storage_base_url == "https://files.example.com"
    assert settings.storage_bucket == "proof"
    assert settings.storage_api_key == "key-123"
    assert settings.storage_timeout == 12.5
    assert settings.match_debounce_seconds == 0.5
