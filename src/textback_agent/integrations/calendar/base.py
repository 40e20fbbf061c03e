"""Base calendar integration interface.

The engine treats the calendar as the external system of record for
busy time and as a best-effort mirror for booked appointments.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class BusyInterval:
    """Half-open busy period ``[start, end)`` in UTC."""

    start: datetime
    end: datetime


@dataclass
class EventDetails:
    """What gets written into a mirrored calendar event."""

    summary: str
    description: str = ""
    timezone: str = "UTC"
    metadata: dict[str, Any] = field(default_factory=dict)


class CalendarIntegration(ABC):
    """Abstract base class for calendar integrations.

    All calendar implementations must implement:
    - list_busy_intervals: busy periods overlapping a range
    - create_event: mirror a booked appointment
    - delete_event: remove a mirrored event, tolerating "already gone"
    - event_exists: whether a mirrored event is still present
    """

    @abstractmethod
    async def list_busy_intervals(
        self,
        calendar_id: str,
        start: datetime,
        end: datetime,
    ) -> list[BusyInterval]:
        """Busy periods overlapping ``[start, end)``."""

    @abstractmethod
    async def create_event(
        self,
        calendar_id: str,
        start: datetime,
        end: datetime,
        details: EventDetails,
    ) -> str:
        """Create an event.

        Returns:
            Calendar event ID
        """

    @abstractmethod
    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        """Delete an event. An event that no longer exists is not an error."""

    @abstractmethod
    async def event_exists(self, calendar_id: str, event_id: str) -> bool:
        """Check whether an event still exists (cancelled events do not)."""
