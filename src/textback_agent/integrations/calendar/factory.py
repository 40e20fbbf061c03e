"""Calendar Integration Factory.

Creates the calendar integration selected by configuration:
- local: in-process calendar (default)
- google: Google Calendar via service account
"""

from __future__ import annotations

from textback_agent.config import get_settings
from textback_agent.core.log import get_logger
from textback_agent.integrations.calendar.base import CalendarIntegration
from textback_agent.integrations.calendar.local import LocalCalendarIntegration

log = get_logger(__name__)

_calendar_integration: CalendarIntegration | None = None


def get_calendar_integration() -> CalendarIntegration:
    """Get the configured calendar integration (singleton)."""
    global _calendar_integration

    if _calendar_integration is not None:
        return _calendar_integration

    settings = get_settings()
    calendar_type = settings.calendar.type

    log.info("Initializing calendar integration", type=calendar_type)

    if calendar_type == "google":
        from textback_agent.integrations.calendar.google import GoogleCalendarIntegration
        from textback_agent.integrations.calendar.google_auth import (
            GoogleCalendarAuth,
            GoogleCalendarAuthError,
        )

        google_settings = settings.calendar.google
        try:
            auth = GoogleCalendarAuth(
                credentials_file=google_settings.credentials_file or None,
                credentials_json=google_settings.credentials_json or None,
            )
            _calendar_integration = GoogleCalendarIntegration(
                auth=auth,
                max_retries=google_settings.max_retries,
                retry_base_delay=google_settings.retry_base_delay,
            )
        except GoogleCalendarAuthError as e:
            log.error("Failed to initialize Google Calendar", error=str(e))
            log.warning("Falling back to local calendar")
            _calendar_integration = LocalCalendarIntegration()

    else:
        if calendar_type != "local":
            log.warning("Unknown calendar type, using local", type=calendar_type)
        _calendar_integration = LocalCalendarIntegration()

    return _calendar_integration


def reset_calendar_integration() -> None:
    """Reset the calendar integration (for testing)."""
    global _calendar_integration
    _calendar_integration = None
