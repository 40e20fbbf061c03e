"""Local calendar integration.

Keeps events in process memory. Used in development when no external
calendar is configured, and as the calendar double in tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

from textback_agent.core.log import get_logger
from textback_agent.integrations.calendar.base import (
    BusyInterval,
    CalendarIntegration,
    EventDetails,
)

log = get_logger(__name__)


@dataclass
class LocalEvent:
    id: str
    calendar_id: str
    start: datetime
    end: datetime
    details: EventDetails


class LocalCalendarIntegration(CalendarIntegration):
    """In-memory calendar.

    ``busy`` holds extra busy periods per calendar that do not correspond
    to events, e.g. time the owner blocked by hand.
    """

    def __init__(self) -> None:
        self.events: dict[str, LocalEvent] = {}
        self.busy: dict[str, list[BusyInterval]] = {}

    def add_busy(self, calendar_id: str, start: datetime, end: datetime) -> None:
        self.busy.setdefault(calendar_id, []).append(BusyInterval(start=start, end=end))

    async def list_busy_intervals(
        self,
        calendar_id: str,
        start: datetime,
        end: datetime,
    ) -> list[BusyInterval]:
        intervals = list(self.busy.get(calendar_id, []))
        intervals.extend(
            BusyInterval(start=event.start, end=event.end)
            for event in self.events.values()
            if event.calendar_id == calendar_id
        )
        return sorted(
            (i for i in intervals if i.start < end and i.end > start),
            key=lambda i: i.start,
        )

    async def create_event(
        self,
        calendar_id: str,
        start: datetime,
        end: datetime,
        details: EventDetails,
    ) -> str:
        event_id = f"local_{uuid4().hex}"
        self.events[event_id] = LocalEvent(
            id=event_id,
            calendar_id=calendar_id,
            start=start,
            end=end,
            details=details,
        )
        log.info("Local calendar event created", event_id=event_id, start=start.isoformat())
        return event_id

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        if self.events.pop(event_id, None) is None:
            log.debug("Local calendar event already gone", event_id=event_id)

    async def event_exists(self, calendar_id: str, event_id: str) -> bool:
        return event_id in self.events
