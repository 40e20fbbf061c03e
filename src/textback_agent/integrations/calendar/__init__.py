"""Calendar integrations."""

from textback_agent.integrations.calendar.base import (
    BusyInterval,
    CalendarIntegration,
    EventDetails,
)
from textback_agent.integrations.calendar.factory import (
    get_calendar_integration,
    reset_calendar_integration,
)
from textback_agent.integrations.calendar.local import LocalCalendarIntegration

__all__ = [
    "BusyInterval",
    "CalendarIntegration",
    "EventDetails",
    "LocalCalendarIntegration",
    "get_calendar_integration",
    "reset_calendar_integration",
]
