"""Application configuration."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """Database configuration."""

    url: str = "sqlite+aiosqlite:///data/textback_agent.db"
    echo: bool = False


class ConversationSettings(BaseModel):
    """Conversation lifecycle limits.

    Passed to the session manager as explicit values so they can be tuned
    per deployment and pinned in tests.
    """

    timeout_hours: int = 72
    max_messages: int = 20
    duplicate_window_seconds: int = 30

    # Prior messages included in the AI prompt
    history_limit: int = 20


class SuppressionSettings(BaseModel):
    """Outreach suppression configuration."""

    # Used when the business has no sms_cooldown_days of its own
    cooldown_days: int = 7


class BookingSettings(BaseModel):
    """Slot scheduling defaults."""

    default_slot_minutes: int = 30
    default_buffer_minutes: int = 0
    default_range_days: int = 14
    max_range_days: int = 60

    # Calendar events younger than this are not reconciled
    reconcile_grace_minutes: int = 60


class GroqSettings(BaseModel):
    """Groq LLM settings."""

    api_key: str = ""
    model: str = "llama-3.3-70b-versatile"


class AISettings(BaseModel):
    """AI completion configuration."""

    provider: str = "groq"  # groq, mock
    temperature: float = 0.7
    max_tokens: int = 256
    timeout_seconds: float = 15.0
    fallback_message: str = (
        "I'm having trouble right now. Someone from our team will get back to you shortly!"
    )
    groq: GroqSettings = Field(default_factory=GroqSettings)


class TwilioSettings(BaseModel):
    """Twilio integration configuration."""

    account_sid: str = ""
    auth_token: str = ""
    from_number: str = ""
    messaging_service_sid: str = ""
    status_callback_url: str = ""

    # Reject webhooks without a valid X-Twilio-Signature
    validate_signatures: bool = False
    # Public base URL Twilio signs against, when behind a proxy
    public_base_url: str = ""


class SMSSettings(BaseModel):
    """SMS gateway configuration."""

    provider: str = "mock"  # twilio, mock
    twilio: TwilioSettings = Field(default_factory=TwilioSettings)


class GoogleCalendarSettings(BaseModel):
    """Google Calendar integration settings."""

    # Authentication - use either credentials_file or credentials_json
    credentials_file: str = ""
    credentials_json: str = ""

    # Used when the business has no calendar_id of its own
    calendar_id: str = "primary"

    max_retries: int = 2
    retry_base_delay: float = 0.5


class CalendarSettings(BaseModel):
    """Calendar configuration."""

    type: str = "local"  # local, google
    google: GoogleCalendarSettings = Field(default_factory=GoogleCalendarSettings)


class Settings(BaseSettings):
    """Application settings.

    Loaded from:
    1. Environment variables (TEXTBACK_*)
    2. configs/{environment}.yaml
    3. configs/default.yaml
    """

    model_config = SettingsConfigDict(
        env_prefix="TEXTBACK_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    environment: str = "development"
    debug: bool = True

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Subsystems
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    conversation: ConversationSettings = Field(default_factory=ConversationSettings)
    suppression: SuppressionSettings = Field(default_factory=SuppressionSettings)
    booking: BookingSettings = Field(default_factory=BookingSettings)
    ai: AISettings = Field(default_factory=AISettings)
    sms: SMSSettings = Field(default_factory=SMSSettings)
    calendar: CalendarSettings = Field(default_factory=CalendarSettings)


def _lower_keys(value: Any) -> Any:
    # Nested keys from TEXTBACK_A__B variables keep the variable's case
    if isinstance(value, dict):
        return {str(key).lower(): _lower_keys(item) for key, item in value.items()}
    return value


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings object loaded from config files and environment.
    """
    from dynaconf import Dynaconf

    config_dir = Path(os.getenv("TEXTBACK_CONFIG_DIR", "configs"))
    env = os.getenv("TEXTBACK_ENV", "development")

    settings_files = []
    if (config_dir / "default.yaml").exists():
        settings_files.append(str(config_dir / "default.yaml"))
    if (config_dir / f"{env}.yaml").exists():
        settings_files.append(str(config_dir / f"{env}.yaml"))

    dynaconf = Dynaconf(
        envvar_prefix="TEXTBACK",
        settings_files=settings_files,
        load_dotenv=True,
    )

    config_dict: dict[str, Any] = {}
    for key in dynaconf.keys():
        if not key.startswith("_"):
            config_dict[key.lower()] = _lower_keys(dynaconf[key])

    config_dict["environment"] = env

    return Settings(**config_dict)


def validate_production_settings(settings: Settings) -> list[str]:
    """Validate settings for production readiness.

    Returns:
        List of validation error messages (empty if all valid).
    """
    errors: list[str] = []

    if settings.environment not in ("production", "staging", "prod"):
        return errors

    if settings.ai.provider == "groq" and not settings.ai.groq.api_key:
        errors.append("TEXTBACK_AI__GROQ__API_KEY must be set when the Groq provider is used")

    if settings.sms.provider == "twilio":
        if not settings.sms.twilio.account_sid:
            errors.append("TEXTBACK_SMS__TWILIO__ACCOUNT_SID must be set for Twilio")
        if not settings.sms.twilio.auth_token:
            errors.append("TEXTBACK_SMS__TWILIO__AUTH_TOKEN must be set for Twilio")

    if settings.calendar.type == "google":
        google = settings.calendar.google
        if not google.credentials_file and not google.credentials_json:
            errors.append(
                "TEXTBACK_CALENDAR__GOOGLE__CREDENTIALS_FILE or CREDENTIALS_JSON "
                "must be set for Google Calendar"
            )

    return errors


def require_valid_settings() -> Settings:
    """Get settings and raise if production validation fails.

    Raises:
        ValueError: If production settings are invalid.
    """
    settings = get_settings()
    errors = validate_production_settings(settings)

    if errors:
        error_list = "\n  - ".join(errors)
        raise ValueError(f"Production configuration errors:\n  - {error_list}")

    return settings
