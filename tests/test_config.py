"""Tests for settings loading and production validation."""

from __future__ import annotations

import pytest

from textback_agent.config import (
    Settings,
    get_settings,
    require_valid_settings,
    validate_production_settings,
)


class TestSettings:
    def test_environment_overrides(self):
        settings = get_settings()

        assert settings.environment == "test"
        assert settings.sms.provider == "mock"
        assert settings.database.url == "sqlite+aiosqlite:///:memory:"

    def test_nested_env_override(self, monkeypatch):
        monkeypatch.setenv("TEXTBACK_CONVERSATION__MAX_MESSAGES", "8")

        assert Settings().conversation.max_messages == 8

    def test_defaults(self):
        settings = Settings()

        assert settings.conversation.timeout_hours == 72
        assert settings.suppression.cooldown_days == 7
        assert settings.booking.max_range_days == 60


class TestProductionValidation:
    def test_development_is_not_checked(self):
        settings = Settings(environment="development")
        settings.ai.provider = "groq"

        assert validate_production_settings(settings) == []

    def test_missing_credentials(self):
        settings = Settings(environment="production")
        settings.ai.provider = "groq"
        settings.ai.groq.api_key = ""
        settings.sms.provider = "twilio"
        settings.calendar.type = "google"

        errors = validate_production_settings(settings)

        assert len(errors) == 4
        assert any("GROQ__API_KEY" in e for e in errors)
        assert any("ACCOUNT_SID" in e for e in errors)

    def test_require_valid_settings_raises(self, monkeypatch):
        monkeypatch.setenv("TEXTBACK_ENV", "production")
        monkeypatch.delenv("TEXTBACK_AI__GROQ__API_KEY", raising=False)
        get_settings.cache_clear()

        with pytest.raises(ValueError, match="Production configuration errors"):
            require_valid_settings()
