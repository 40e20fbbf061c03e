"""Store interfaces injected into the engine.

Every method is a single atomic operation against the backing store.
Methods that must not race (conversation creation, message append,
status transitions, slot booking) are conditional writes rather than a
read followed by a separate write.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from textback_agent.domain import (
    Appointment,
    AppointmentStatus,
    Business,
    Conversation,
    ConversationStatus,
    Message,
    SuppressionRecord,
)


class BusinessStore(ABC):
    """Read-only access to business profiles."""

    @abstractmethod
    async def get(self, business_id: UUID) -> Business | None: ...

    @abstractmethod
    async def get_by_slug(self, slug: str) -> Business | None: ...

    @abstractmethod
    async def get_by_phone(self, phone: str) -> Business | None:
        """Resolve the business that owns a provisioned number."""


class SuppressionStore(ABC):
    """Block list, contact book, outreach cooldown log and suppression records."""

    @abstractmethod
    async def is_blocked(self, business_id: UUID, phone: str) -> bool: ...

    @abstractmethod
    async def is_contact(self, business_id: UUID, phone: str) -> bool: ...

    @abstractmethod
    async def last_outreach_at(self, business_id: UUID, phone: str) -> datetime | None: ...

    @abstractmethod
    async def record_outreach(self, business_id: UUID, phone: str, at: datetime) -> None: ...

    @abstractmethod
    async def add_record(self, record: SuppressionRecord) -> None: ...

    @abstractmethod
    async def list_records(self, business_id: UUID) -> list[SuppressionRecord]: ...


class ConversationStore(ABC):
    """Conversations and their append-only messages."""

    @abstractmethod
    async def get(self, conversation_id: UUID) -> Conversation | None: ...

    @abstractmethod
    async def get_or_create_active(
        self,
        business_id: UUID,
        caller_phone: str,
        now: datetime,
        timeout: timedelta,
    ) -> tuple[Conversation, bool]:
        """Return the unexpired active conversation or create one.

        An active conversation created before ``now - timeout`` is closed as
        ``completed`` in the same operation so a fresh one can take its place.

        Returns:
            The conversation and whether it was created by this call
        """

    @abstractmethod
    async def get_latest(
        self,
        business_id: UUID,
        caller_phone: str,
        since: datetime,
    ) -> Conversation | None:
        """Most recent conversation of any status created at or after ``since``."""

    @abstractmethod
    async def append_message(
        self,
        message: Message,
        max_messages: int | None = None,
    ) -> bool:
        """Append a message and bump the conversation's counter.

        With ``max_messages`` the append only happens while the conversation
        is active and below the cap.

        Returns:
            False if the guarded append was refused
        """

    @abstractmethod
    async def find_recent_inbound(
        self,
        conversation_id: UUID,
        content: str,
        since: datetime,
    ) -> Message | None: ...

    @abstractmethod
    async def list_messages(
        self,
        conversation_id: UUID,
        limit: int | None = None,
    ) -> list[Message]:
        """Messages oldest first; ``limit`` keeps only the newest ones."""

    @abstractmethod
    async def transition(
        self,
        conversation_id: UUID,
        expected: ConversationStatus,
        target: ConversationStatus,
        **fields: Any,
    ) -> bool:
        """Compare-and-swap the status, updating extra fields on success."""

    @abstractmethod
    async def set_caller_name(self, conversation_id: UUID, name: str) -> bool:
        """Set the caller name only if it is still empty."""

    @abstractmethod
    async def update_message_delivery(
        self,
        message_id: UUID,
        provider_message_id: str | None,
        provider_status: str | None,
    ) -> None: ...

    @abstractmethod
    async def update_status_by_provider_id(
        self,
        provider_message_id: str,
        provider_status: str,
    ) -> bool: ...


class AppointmentStore(ABC):
    """Appointments with an atomic check-and-create."""

    @abstractmethod
    async def get(self, appointment_id: UUID) -> Appointment | None: ...

    @abstractmethod
    async def list_confirmed_between(
        self,
        business_id: UUID,
        start: datetime,
        end: datetime,
    ) -> list[Appointment]:
        """Confirmed appointments whose start falls in ``[start, end)``."""

    @abstractmethod
    async def list_for_business(self, business_id: UUID) -> list[Appointment]: ...

    @abstractmethod
    async def get_confirmed_for_conversation(
        self,
        conversation_id: UUID,
    ) -> Appointment | None: ...

    @abstractmethod
    async def insert_if_free(self, appointment: Appointment, buffer: timedelta) -> Appointment:
        """Insert a confirmed appointment unless it overlaps another.

        The overlap check and the insert form one operation. Overlap uses
        existing confirmed appointments widened by ``buffer`` on both sides.

        Raises:
            SlotTakenError: If the slot is no longer free
        """

    @abstractmethod
    async def set_status(
        self,
        appointment_id: UUID,
        status: AppointmentStatus,
        expected: AppointmentStatus | None = None,
    ) -> bool: ...

    @abstractmethod
    async def set_calendar_event(self, appointment_id: UUID, event_id: str | None) -> None: ...

    @abstractmethod
    async def delete(self, appointment_id: UUID) -> bool: ...


def overlaps(
    start: datetime,
    end: datetime,
    other_start: datetime,
    other_end: datetime,
    buffer: timedelta = timedelta(0),
) -> bool:
    """Half-open interval overlap with ``other`` widened by ``buffer``."""
    return start < other_end + buffer and end > other_start - buffer


# Appointments never run longer than this; bounds the overlap query window.
MAX_APPOINTMENT_SPAN = timedelta(hours=24)
