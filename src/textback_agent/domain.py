"""Domain types shared by stores, engine and API.

Stores convert ORM rows into these dataclasses so the engine never
touches a live database session.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, time, timedelta
from enum import Enum
from typing import Any
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo


class ConversationStatus(str, Enum):
    """Conversation lifecycle states. Only ACTIVE accepts AI turns."""

    ACTIVE = "active"
    APPOINTMENT_BOOKED = "appointment_booked"
    NEEDS_REVIEW = "needs_review"
    COMPLETED = "completed"
    NO_RESPONSE = "no_response"


class MessageDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class AppointmentStatus(str, Enum):
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingSource(str, Enum):
    SMS = "sms"
    WEBSITE = "website"


class SuppressionReason(str, Enum):
    COOLDOWN = "cooldown"
    EXISTING_CONTACT = "existing_contact"
    BLOCKED = "blocked"


WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

DEFAULT_BUSINESS_HOURS: dict[str, dict[str, str] | None] = {
    "monday": {"open": "09:00", "close": "17:00"},
    "tuesday": {"open": "09:00", "close": "17:00"},
    "wednesday": {"open": "09:00", "close": "17:00"},
    "thursday": {"open": "09:00", "close": "17:00"},
    "friday": {"open": "09:00", "close": "17:00"},
    "saturday": None,
    "sunday": None,
}


@dataclass(frozen=True)
class DayHours:
    """Opening hours for one weekday, in business-local wall time."""

    open: time
    close: time

    @classmethod
    def from_strings(cls, open_str: str, close_str: str) -> "DayHours":
        open_h, open_m = map(int, open_str.split(":"))
        close_h, close_m = map(int, close_str.split(":"))
        return cls(open=time(open_h, open_m), close=time(close_h, close_m))


def parse_business_hours(raw: dict[str, Any] | None) -> dict[int, DayHours]:
    """Parse the stored ``{"monday": {"open": "09:00", "close": "17:00"}}`` layout.

    Missing or null days are closed. Days whose close is not after open
    are treated as closed. A missing mapping falls back to Mon-Fri 9-17.

    Returns:
        Mapping of weekday index (Monday=0) to hours
    """
    source = raw if raw else DEFAULT_BUSINESS_HOURS
    hours: dict[int, DayHours] = {}
    for index, day in enumerate(WEEKDAYS):
        entry = source.get(day)
        if not entry or not entry.get("open") or not entry.get("close"):
            continue
        parsed = DayHours.from_strings(entry["open"], entry["close"])
        if parsed.close <= parsed.open:
            continue
        hours[index] = parsed
    return hours


@dataclass
class Business:
    """Business profile, read-only to the engine."""

    id: UUID
    name: str
    slug: str
    phone_number: str
    timezone: str = "America/New_York"
    slot_duration_minutes: int = 30
    buffer_minutes: int = 0
    business_hours: dict[str, Any] | None = None
    services: list[Any] = field(default_factory=list)
    calendar_enabled: bool = False
    calendar_id: str | None = None
    require_notes: bool = False
    ai_greeting: str | None = None
    ai_context: str | None = None
    ai_instructions: str | None = None
    missed_call_ai_enabled: bool = True
    sms_cooldown_days: int | None = None
    cooldown_bypass_numbers: list[str] = field(default_factory=list)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone or "America/New_York")

    @property
    def hours(self) -> dict[int, DayHours]:
        return parse_business_hours(self.business_hours)

    @property
    def slot_duration(self) -> timedelta:
        return timedelta(minutes=self.slot_duration_minutes or 30)

    @property
    def buffer(self) -> timedelta:
        return timedelta(minutes=max(self.buffer_minutes or 0, 0))

    def service_names(self) -> list[str]:
        """Service names; entries may be plain strings or ``{"name", "price"}`` objects."""
        names: list[str] = []
        for entry in self.services or []:
            if isinstance(entry, dict) and isinstance(entry.get("name"), str):
                names.append(entry["name"])
            else:
                names.append(str(entry))
        return names


@dataclass
class Conversation:
    business_id: UUID
    caller_phone: str
    created_at: datetime
    last_message_at: datetime
    id: UUID = field(default_factory=uuid4)
    status: ConversationStatus = ConversationStatus.ACTIVE
    caller_name: str | None = None
    intent: str | None = None
    service_requested: str | None = None
    summary: str | None = None
    message_count: int = 0

    @property
    def is_active(self) -> bool:
        return self.status == ConversationStatus.ACTIVE

    def copy(self) -> "Conversation":
        return replace(self)


@dataclass
class Message:
    conversation_id: UUID
    direction: MessageDirection
    content: str
    created_at: datetime
    id: UUID = field(default_factory=uuid4)
    provider_message_id: str | None = None
    provider_status: str | None = None


@dataclass
class Appointment:
    business_id: UUID
    customer_name: str
    customer_phone: str
    service_type: str
    scheduled_at: datetime
    timezone: str
    duration_minutes: int
    created_at: datetime
    id: UUID = field(default_factory=uuid4)
    conversation_id: UUID | None = None
    customer_email: str | None = None
    status: AppointmentStatus = AppointmentStatus.CONFIRMED
    notes: str | None = None
    calendar_event_id: str | None = None
    source: BookingSource = BookingSource.SMS

    @property
    def ends_at(self) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.duration_minutes)

    def copy(self) -> "Appointment":
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": str(self.id),
            "business_id": str(self.business_id),
            "conversation_id": str(self.conversation_id) if self.conversation_id else None,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "service_type": self.service_type,
            "scheduled_at": self.scheduled_at.isoformat(),
            "timezone": self.timezone,
            "duration_minutes": self.duration_minutes,
            "status": self.status.value,
            "notes": self.notes,
            "calendar_event_id": self.calendar_event_id,
            "source": self.source.value,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class SuppressionRecord:
    business_id: UUID
    caller_phone: str
    reason: SuppressionReason
    created_at: datetime
    id: UUID = field(default_factory=uuid4)
    last_outreach_at: datetime | None = None


@dataclass
class CustomerInfo:
    """Customer details submitted with a booking."""

    name: str
    phone: str
    service: str
    email: str | None = None
    notes: str | None = None
