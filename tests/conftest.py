"""Pytest configuration and fixtures for Textback Agent tests."""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

# Set test environment before settings are first loaded
os.environ["TEXTBACK_ENV"] = "test"
os.environ["TEXTBACK_DATABASE__URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["TEXTBACK_SMS__PROVIDER"] = "mock"
os.environ["TEXTBACK_AI__PROVIDER"] = "mock"
os.environ["TEXTBACK_CALENDAR__TYPE"] = "local"

from textback_agent.ai import MockCompletionProvider  # noqa: E402
from textback_agent.config import Settings  # noqa: E402
from textback_agent.domain import Business  # noqa: E402
from textback_agent.integrations.calendar.local import LocalCalendarIntegration  # noqa: E402
from textback_agent.integrations.sms import MockSMSGateway  # noqa: E402
from textback_agent.services import Stores, build_services  # noqa: E402

BUSINESS_PHONE = "+15550001000"
CALLER_PHONE = "+15551234567"

WEEKDAY_HOURS = {
    day: {"open": "09:00", "close": "17:00"}
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
}


class FakeClock:
    """Settable clock; the engine reads it through ``clock()``."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def reset_singletons():
    """Drop cached settings, collaborators and circuit breakers between tests."""
    from textback_agent.ai import reset_completion_provider
    from textback_agent.config import get_settings
    from textback_agent.core.retry import reset_circuit_breakers
    from textback_agent.dependencies import reset_services
    from textback_agent.integrations.calendar import reset_calendar_integration
    from textback_agent.integrations.sms import reset_sms_gateway

    def reset() -> None:
        get_settings.cache_clear()
        reset_services()
        reset_sms_gateway()
        reset_completion_provider()
        reset_calendar_integration()
        reset_circuit_breakers()

    reset()
    yield
    reset()


@pytest.fixture
def now() -> datetime:
    """Monday 2024-01-15 09:10 in New York."""
    return datetime(2024, 1, 15, 14, 10, tzinfo=timezone.utc)


@pytest.fixture
def clock(now) -> FakeClock:
    return FakeClock(now)


@pytest.fixture
def business() -> Business:
    return Business(
        id=uuid4(),
        name="Bright Smile Dental",
        slug="bright-smile",
        phone_number=BUSINESS_PHONE,
        timezone="America/New_York",
        slot_duration_minutes=30,
        buffer_minutes=0,
        business_hours=WEEKDAY_HOURS,
        services=["Cleaning", {"name": "Whitening", "price": 199}],
    )


@pytest.fixture
def stores(business) -> Stores:
    stores = Stores.memory()
    stores.businesses.add(business)
    return stores


@pytest.fixture
def sms() -> MockSMSGateway:
    return MockSMSGateway()


@pytest.fixture
def ai() -> MockCompletionProvider:
    return MockCompletionProvider()


@pytest.fixture
def calendar() -> LocalCalendarIntegration:
    return LocalCalendarIntegration()


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def services(settings, stores, sms, ai, calendar, clock):
    """Fully wired engine over in-memory stores."""
    return build_services(settings, stores, sms=sms, ai=ai, calendar=calendar, clock=clock)
