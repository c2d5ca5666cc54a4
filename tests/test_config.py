"""Tests for Settings validation."""

import pytest

from sigil.core.config import Settings


def make_settings(**values) -> Settings:
    return Settings(_env_file=None, **values)  # type: ignore[call-arg]


def test_test_environment_skips_validation():
    settings = make_settings(APP_ENV="test", DATABASE_URL="", REPLICATE_API_TOKEN="")

    assert settings.database_url == ""


def test_missing_database_and_providers_rejected():
    with pytest.raises(ValueError) as exc_info:
        make_settings(
            APP_ENV="production", DATABASE_URL="", REPLICATE_API_TOKEN="", GEMINI_API_KEY=""
        )

    message = str(exc_info.value)
    assert "DATABASE_URL" in message
    assert "REPLICATE_API_TOKEN or GEMINI_API_KEY" in message


def test_single_provider_is_enough():
    settings = make_settings(
        APP_ENV="production",
        DATABASE_URL="postgresql+psycopg://u:p@db/sigil",
        GEMINI_API_KEY="g-key",
        REPLICATE_API_TOKEN="",
    )

    assert settings.gemini_api_key == "g-key"
    assert settings.dispatch_max_attempts == 3
    assert settings.stuck_min_age_minutes == 10


def test_cors_origins_list():
    settings = make_settings(
        APP_ENV="test", CORS_ORIGINS="http://localhost:3000, https://app.example.com,"
    )

    assert settings.cors_origins_list == ["http://localhost:3000", "https://app.example.com"]
