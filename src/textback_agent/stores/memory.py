"""In-memory stores for tests and local experiments.

Methods contain no awaits between their read and write, so each call is
atomic with respect to other tasks on the same event loop.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from textback_agent.core.exceptions import SlotTakenError
from textback_agent.core.phone import normalize_phone, phones_match
from textback_agent.domain import (
    Appointment,
    AppointmentStatus,
    Business,
    Conversation,
    ConversationStatus,
    Message,
    MessageDirection,
    SuppressionRecord,
)
from textback_agent.stores.base import (
    AppointmentStore,
    BusinessStore,
    ConversationStore,
    SuppressionStore,
    overlaps,
)


class InMemoryBusinessStore(BusinessStore):
    def __init__(self, businesses: list[Business] | None = None):
        self.businesses: dict[UUID, Business] = {b.id: b for b in businesses or []}

    def add(self, business: Business) -> Business:
        self.businesses[business.id] = business
        return business

    async def get(self, business_id: UUID) -> Business | None:
        return self.businesses.get(business_id)

    async def get_by_slug(self, slug: str) -> Business | None:
        return next((b for b in self.businesses.values() if b.slug == slug), None)

    async def get_by_phone(self, phone: str) -> Business | None:
        return next(
            (b for b in self.businesses.values() if phones_match(b.phone_number, phone)),
            None,
        )


class InMemorySuppressionStore(SuppressionStore):
    def __init__(self) -> None:
        self.blocked: dict[UUID, list[str]] = {}
        self.contacts: dict[UUID, list[str]] = {}
        self.outreach: dict[tuple[UUID, str], datetime] = {}
        self.records: list[SuppressionRecord] = []

    def block(self, business_id: UUID, phone: str) -> None:
        self.blocked.setdefault(business_id, []).append(normalize_phone(phone))

    def add_contact(self, business_id: UUID, phone: str) -> None:
        self.contacts.setdefault(business_id, []).append(normalize_phone(phone))

    async def is_blocked(self, business_id: UUID, phone: str) -> bool:
        return any(phones_match(p, phone) for p in self.blocked.get(business_id, []))

    async def is_contact(self, business_id: UUID, phone: str) -> bool:
        return any(phones_match(p, phone) for p in self.contacts.get(business_id, []))

    async def last_outreach_at(self, business_id: UUID, phone: str) -> datetime | None:
        return self.outreach.get((business_id, normalize_phone(phone)))

    async def record_outreach(self, business_id: UUID, phone: str, at: datetime) -> None:
        self.outreach[(business_id, normalize_phone(phone))] = at

    async def add_record(self, record: SuppressionRecord) -> None:
        self.records.append(record)

    async def list_records(self, business_id: UUID) -> list[SuppressionRecord]:
        return [r for r in reversed(self.records) if r.business_id == business_id]


class InMemoryConversationStore(ConversationStore):
    def __init__(self) -> None:
        self.conversations: dict[UUID, Conversation] = {}
        self.messages: list[Message] = []

    async def get(self, conversation_id: UUID) -> Conversation | None:
        conversation = self.conversations.get(conversation_id)
        return conversation.copy() if conversation else None

    def _active(self, business_id: UUID, caller_phone: str) -> Conversation | None:
        return next(
            (
                c
                for c in self.conversations.values()
                if c.business_id == business_id
                and c.caller_phone == caller_phone
                and c.status == ConversationStatus.ACTIVE
            ),
            None,
        )

    async def get_or_create_active(
        self,
        business_id: UUID,
        caller_phone: str,
        now: datetime,
        timeout: timedelta,
    ) -> tuple[Conversation, bool]:
        current = self._active(business_id, caller_phone)
        if current is not None and current.created_at >= now - timeout:
            return current.copy(), False
        if current is not None:
            current.status = ConversationStatus.COMPLETED
            current.summary = "Conversation expired"

        created = Conversation(
            business_id=business_id,
            caller_phone=caller_phone,
            created_at=now,
            last_message_at=now,
        )
        self.conversations[created.id] = created
        return created.copy(), True

    async def get_latest(
        self,
        business_id: UUID,
        caller_phone: str,
        since: datetime,
    ) -> Conversation | None:
        candidates = [
            c
            for c in self.conversations.values()
            if c.business_id == business_id
            and c.caller_phone == caller_phone
            and c.created_at >= since
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda c: c.last_message_at).copy()

    async def append_message(
        self,
        message: Message,
        max_messages: int | None = None,
    ) -> bool:
        conversation = self.conversations.get(message.conversation_id)
        if conversation is None:
            return False
        if max_messages is not None and (
            conversation.status != ConversationStatus.ACTIVE
            or conversation.message_count >= max_messages
        ):
            return False
        conversation.message_count += 1
        conversation.last_message_at = message.created_at
        self.messages.append(message)
        return True

    async def find_recent_inbound(
        self,
        conversation_id: UUID,
        content: str,
        since: datetime,
    ) -> Message | None:
        return next(
            (
                m
                for m in self.messages
                if m.conversation_id == conversation_id
                and m.direction == MessageDirection.INBOUND
                and m.content == content
                and m.created_at >= since
            ),
            None,
        )

    async def list_messages(
        self,
        conversation_id: UUID,
        limit: int | None = None,
    ) -> list[Message]:
        selected = sorted(
            (m for m in self.messages if m.conversation_id == conversation_id),
            key=lambda m: m.created_at,
        )
        if limit is not None:
            selected = selected[-limit:] if limit > 0 else []
        return selected

    async def transition(
        self,
        conversation_id: UUID,
        expected: ConversationStatus,
        target: ConversationStatus,
        **fields: Any,
    ) -> bool:
        conversation = self.conversations.get(conversation_id)
        if conversation is None or conversation.status != expected:
            return False
        conversation.status = target
        for name, value in fields.items():
            setattr(conversation, name, value)
        return True

    async def set_caller_name(self, conversation_id: UUID, name: str) -> bool:
        conversation = self.conversations.get(conversation_id)
        if conversation is None or conversation.caller_name:
            return False
        conversation.caller_name = name
        return True

    async def update_message_delivery(
        self,
        message_id: UUID,
        provider_message_id: str | None,
        provider_status: str | None,
    ) -> None:
        for message in self.messages:
            if message.id == message_id:
                message.provider_message_id = provider_message_id
                message.provider_status = provider_status

    async def update_status_by_provider_id(
        self,
        provider_message_id: str,
        provider_status: str,
    ) -> bool:
        found = False
        for message in self.messages:
            if message.provider_message_id == provider_message_id:
                message.provider_status = provider_status
                found = True
        return found


class InMemoryAppointmentStore(AppointmentStore):
    def __init__(self) -> None:
        self.appointments: dict[UUID, Appointment] = {}

    async def get(self, appointment_id: UUID) -> Appointment | None:
        appointment = self.appointments.get(appointment_id)
        return appointment.copy() if appointment else None

    async def list_confirmed_between(
        self,
        business_id: UUID,
        start: datetime,
        end: datetime,
    ) -> list[Appointment]:
        return sorted(
            (
                a.copy()
                for a in self.appointments.values()
                if a.business_id == business_id
                and a.status == AppointmentStatus.CONFIRMED
                and start <= a.scheduled_at < end
            ),
            key=lambda a: a.scheduled_at,
        )

    async def list_for_business(self, business_id: UUID) -> list[Appointment]:
        return sorted(
            (a.copy() for a in self.appointments.values() if a.business_id == business_id),
            key=lambda a: a.scheduled_at,
        )

    async def get_confirmed_for_conversation(
        self,
        conversation_id: UUID,
    ) -> Appointment | None:
        return next(
            (
                a.copy()
                for a in self.appointments.values()
                if a.conversation_id == conversation_id
                and a.status == AppointmentStatus.CONFIRMED
            ),
            None,
        )

    async def insert_if_free(self, appointment: Appointment, buffer: timedelta) -> Appointment:
        for existing in self.appointments.values():
            if (
                existing.business_id == appointment.business_id
                and existing.status == AppointmentStatus.CONFIRMED
                and overlaps(
                    appointment.scheduled_at,
                    appointment.ends_at,
                    existing.scheduled_at,
                    existing.ends_at,
                    buffer,
                )
            ):
                raise SlotTakenError(
                    "That time slot is no longer available",
                    details={"slot_start": appointment.scheduled_at.isoformat()},
                )
        stored = appointment.copy()
        self.appointments[stored.id] = stored
        return stored.copy()

    async def set_status(
        self,
        appointment_id: UUID,
        status: AppointmentStatus,
        expected: AppointmentStatus | None = None,
    ) -> bool:
        appointment = self.appointments.get(appointment_id)
        if appointment is None or (expected is not None and appointment.status != expected):
            return False
        appointment.status = status
        return True

    async def set_calendar_event(self, appointment_id: UUID, event_id: str | None) -> None:
        appointment = self.appointments.get(appointment_id)
        if appointment is not None:
            appointment.calendar_event_id = event_id

    async def delete(self, appointment_id: UUID) -> bool:
        return self.appointments.pop(appointment_id, None) is not None
