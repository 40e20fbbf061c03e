"""Tests for the SQLAlchemy stores against a real SQLite database."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import uuid4
from zoneinfo import ZoneInfo

import pytest

from textback_agent.core.exceptions import DuplicateBookingError, SlotTakenError
from textback_agent.db.models import BlockedNumberModel, ContactModel
from textback_agent.domain import (
    Appointment,
    AppointmentStatus,
    ConversationStatus,
    CustomerInfo,
    Message,
    MessageDirection,
    SuppressionReason,
    SuppressionRecord,
)
from textback_agent.engine.scheduler import SlotScheduler
from textback_agent.engine.sessions import SessionConfig, SessionManager
from textback_agent.engine.suppression import SuppressionEngine

NY = ZoneInfo("America/New_York")
NOW = datetime(2024, 1, 15, 14, 10, tzinfo=timezone.utc)
CALLER = "+15551234567"
TIMEOUT = timedelta(hours=72)


def appointment_at(business, start: datetime, **kwargs) -> Appointment:
    return Appointment(
        business_id=business.id,
        customer_name=kwargs.pop("customer_name", "Sarah Lee"),
        customer_phone=CALLER,
        service_type="Cleaning",
        scheduled_at=start,
        timezone=business.timezone,
        duration_minutes=30,
        created_at=NOW,
        **kwargs,
    )


class TestBusinessStore:
    @pytest.mark.asyncio
    async def test_lookups(self, sql_stores, db_business):
        assert (await sql_stores.businesses.get(db_business.id)).name == "Bright Smile Dental"
        assert (await sql_stores.businesses.get_by_slug("bright-smile")).id == db_business.id
        assert await sql_stores.businesses.get_by_slug("other") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("phone", ["+15550001000", "(555) 000-1000", "15550001000"])
    async def test_get_by_phone_ignores_formatting(self, sql_stores, db_business, phone):
        business = await sql_stores.businesses.get_by_phone(phone)

        assert business is not None
        assert business.id == db_business.id
        assert business.services[1] == {"name": "Whitening", "price": 199}
        assert business.hours

    @pytest.mark.asyncio
    async def test_unknown_phone(self, sql_stores):
        assert await sql_stores.businesses.get_by_phone("+15559990000") is None


class TestSuppressionStore:
    @pytest.mark.asyncio
    async def test_contact_and_block_lists(self, sql_stores, session_factory, db_business):
        async with session_factory() as session:
            session.add(ContactModel(business_id=db_business.id, phone_number="5551234567"))
            session.add(BlockedNumberModel(business_id=db_business.id, phone_number="5557654321"))
            await session.commit()

        assert await sql_stores.suppression.is_contact(db_business.id, "+1 (555) 123-4567")
        assert not await sql_stores.suppression.is_blocked(db_business.id, CALLER)
        assert await sql_stores.suppression.is_blocked(db_business.id, "+15557654321")

    @pytest.mark.asyncio
    async def test_outreach_upsert(self, sql_stores, db_business):
        store = sql_stores.suppression
        assert await store.last_outreach_at(db_business.id, CALLER) is None

        await store.record_outreach(db_business.id, CALLER, NOW)
        await store.record_outreach(db_business.id, "(555) 123-4567", NOW + timedelta(days=8))

        assert await store.last_outreach_at(db_business.id, CALLER) == NOW + timedelta(days=8)

    @pytest.mark.asyncio
    async def test_engine_records_suppression(self, sql_stores, db_business):
        engine = SuppressionEngine(sql_stores.suppression, default_cooldown_days=7)
        await engine.record_outreach(db_business, CALLER, NOW)

        decision = await engine.should_suppress(db_business, CALLER, NOW + timedelta(days=1))

        assert decision.suppress is True
        assert decision.reason == SuppressionReason.COOLDOWN
        records = await sql_stores.suppression.list_records(db_business.id)
        assert [r.reason for r in records] == [SuppressionReason.COOLDOWN]

    @pytest.mark.asyncio
    async def test_records_newest_first(self, sql_stores, db_business):
        for offset, reason in enumerate([SuppressionReason.BLOCKED, SuppressionReason.COOLDOWN]):
            await sql_stores.suppression.add_record(
                SuppressionRecord(
                    business_id=db_business.id,
                    caller_phone=CALLER,
                    reason=reason,
                    created_at=NOW + timedelta(minutes=offset),
                )
            )

        records = await sql_stores.suppression.list_records(db_business.id)

        assert [r.reason for r in records] == [SuppressionReason.COOLDOWN, SuppressionReason.BLOCKED]


class TestConversationStore:
    @pytest.mark.asyncio
    async def test_get_or_create_active(self, sql_stores, db_business):
        store = sql_stores.conversations

        first, created = await store.get_or_create_active(db_business.id, CALLER, NOW, TIMEOUT)
        again, created_again = await store.get_or_create_active(
            db_business.id, CALLER, NOW + timedelta(hours=1), TIMEOUT
        )

        assert created is True
        assert created_again is False
        assert again.id == first.id
        assert again.created_at == NOW

    @pytest.mark.asyncio
    async def test_expired_conversation_is_closed(self, sql_stores, db_business):
        store = sql_stores.conversations
        first, _ = await store.get_or_create_active(db_business.id, CALLER, NOW, TIMEOUT)

        second, created = await store.get_or_create_active(
            db_business.id, CALLER, NOW + timedelta(hours=73), TIMEOUT
        )

        assert created is True
        assert second.id != first.id
        expired = await store.get(first.id)
        assert expired.status == ConversationStatus.COMPLETED
        assert expired.summary == "Conversation expired"

    @pytest.mark.asyncio
    async def test_concurrent_open_yields_one_conversation(self, sql_stores, db_business):
        manager = SessionManager(sql_stores.conversations)

        results = await asyncio.gather(
            *(manager.open_conversation(db_business, CALLER, NOW) for _ in range(5))
        )

        assert len({conversation.id for conversation, _ in results}) == 1
        assert sum(created for _, created in results) == 1

    @pytest.mark.asyncio
    async def test_message_cap(self, sql_stores, db_business):
        store = sql_stores.conversations
        conversation, _ = await store.get_or_create_active(db_business.id, CALLER, NOW, TIMEOUT)

        accepted = [
            await store.append_message(
                Message(
                    conversation_id=conversation.id,
                    direction=MessageDirection.INBOUND,
                    content=f"message {i}",
                    created_at=NOW + timedelta(seconds=i),
                ),
                max_messages=3,
            )
            for i in range(4)
        ]

        assert accepted == [True, True, True, False]
        assert (await store.get(conversation.id)).message_count == 3
        assert [m.content for m in await store.list_messages(conversation.id, limit=2)] == [
            "message 1",
            "message 2",
        ]

    @pytest.mark.asyncio
    async def test_transition_compare_and_swap(self, sql_stores, db_business):
        store = sql_stores.conversations
        conversation, _ = await store.get_or_create_active(db_business.id, CALLER, NOW, TIMEOUT)

        moved = await store.transition(
            conversation.id,
            ConversationStatus.ACTIVE,
            ConversationStatus.NEEDS_REVIEW,
            intent="human_needed",
        )
        moved_again = await store.transition(
            conversation.id, ConversationStatus.ACTIVE, ConversationStatus.COMPLETED
        )

        assert moved is True
        assert moved_again is False
        stored = await store.get(conversation.id)
        assert stored.status == ConversationStatus.NEEDS_REVIEW
        assert stored.intent == "human_needed"

    @pytest.mark.asyncio
    async def test_caller_name_set_once(self, sql_stores, db_business):
        store = sql_stores.conversations
        conversation, _ = await store.get_or_create_active(db_business.id, CALLER, NOW, TIMEOUT)

        assert await store.set_caller_name(conversation.id, "Sarah") is True
        assert await store.set_caller_name(conversation.id, "Someone Else") is False
        assert (await store.get(conversation.id)).caller_name == "Sarah"

    @pytest.mark.asyncio
    async def test_delivery_status(self, sql_stores, db_business):
        store = sql_stores.conversations
        conversation, _ = await store.get_or_create_active(db_business.id, CALLER, NOW, TIMEOUT)
        message = Message(
            conversation_id=conversation.id,
            direction=MessageDirection.OUTBOUND,
            content="Hi!",
            created_at=NOW,
        )
        await store.append_message(message)

        await store.update_message_delivery(message.id, "SM1", "pending")
        assert await store.update_status_by_provider_id("SM1", "delivered") is True
        assert await store.update_status_by_provider_id("SM404", "delivered") is False

        [stored] = await store.list_messages(conversation.id)
        assert stored.provider_message_id == "SM1"
        assert stored.provider_status == "delivered"

    @pytest.mark.asyncio
    async def test_find_recent_inbound(self, sql_stores, db_business):
        store = sql_stores.conversations
        conversation, _ = await store.get_or_create_active(db_business.id, CALLER, NOW, TIMEOUT)
        await store.append_message(
            Message(
                conversation_id=conversation.id,
                direction=MessageDirection.INBOUND,
                content="Hello",
                created_at=NOW,
            )
        )

        assert await store.find_recent_inbound(conversation.id, "Hello", NOW - timedelta(seconds=30))
        assert not await store.find_recent_inbound(conversation.id, "Hello", NOW + timedelta(seconds=1))


class TestAppointmentStore:
    @pytest.mark.asyncio
    async def test_overlap_rejected(self, sql_stores, db_business):
        store = sql_stores.appointments
        start = datetime(2024, 1, 16, 10, 0, tzinfo=NY)
        await store.insert_if_free(appointment_at(db_business, start), timedelta(0))

        with pytest.raises(SlotTakenError):
            await store.insert_if_free(
                appointment_at(db_business, start + timedelta(minutes=15), customer_name="Tom"),
                timedelta(0),
            )

    @pytest.mark.asyncio
    async def test_buffer_applies(self, sql_stores, db_business):
        store = sql_stores.appointments
        start = datetime(2024, 1, 16, 10, 0, tzinfo=NY)
        await store.insert_if_free(appointment_at(db_business, start), timedelta(minutes=15))

        with pytest.raises(SlotTakenError):
            await store.insert_if_free(
                appointment_at(db_business, start + timedelta(minutes=30)), timedelta(minutes=15)
            )

    @pytest.mark.asyncio
    async def test_cancelled_slot_can_be_rebooked(self, sql_stores, db_business):
        store = sql_stores.appointments
        start = datetime(2024, 1, 16, 10, 0, tzinfo=NY)
        first = await store.insert_if_free(appointment_at(db_business, start), timedelta(0))

        assert await store.set_status(
            first.id, AppointmentStatus.CANCELLED, expected=AppointmentStatus.CONFIRMED
        )
        second = await store.insert_if_free(appointment_at(db_business, start), timedelta(0))

        assert second.status == AppointmentStatus.CONFIRMED
        assert len(await store.list_for_business(db_business.id)) == 2

    @pytest.mark.asyncio
    async def test_set_status_compare_and_swap(self, sql_stores, db_business):
        store = sql_stores.appointments
        created = await store.insert_if_free(
            appointment_at(db_business, datetime(2024, 1, 16, 10, 0, tzinfo=NY)), timedelta(0)
        )
        await store.set_status(created.id, AppointmentStatus.COMPLETED)

        assert not await store.set_status(
            created.id, AppointmentStatus.CANCELLED, expected=AppointmentStatus.CONFIRMED
        )
        assert (await store.get(created.id)).status == AppointmentStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_calendar_event_and_delete(self, sql_stores, db_business):
        store = sql_stores.appointments
        created = await store.insert_if_free(
            appointment_at(db_business, datetime(2024, 1, 16, 10, 0, tzinfo=NY)), timedelta(0)
        )

        await store.set_calendar_event(created.id, "evt_1")
        assert (await store.get(created.id)).calendar_event_id == "evt_1"

        assert await store.delete(created.id) is True
        assert await store.delete(created.id) is False

    @pytest.mark.asyncio
    async def test_times_round_trip_as_utc(self, sql_stores, db_business):
        start = datetime(2024, 1, 16, 10, 0, tzinfo=NY)
        created = await sql_stores.appointments.insert_if_free(
            appointment_at(db_business, start), timedelta(0)
        )

        stored = await sql_stores.appointments.get(created.id)

        assert stored.scheduled_at == start
        assert stored.scheduled_at.tzinfo == timezone.utc


class TestSchedulerOnSQL:
    @pytest.mark.asyncio
    async def test_concurrent_bookings_for_one_slot(self, sql_stores, db_business):
        scheduler = SlotScheduler(sql_stores.appointments)
        slot = datetime(2024, 1, 16, 10, 0, tzinfo=NY)

        results = await asyncio.gather(
            *(
                scheduler.create_booking(
                    db_business,
                    slot,
                    CustomerInfo(name=f"Customer {i}", phone=f"+1555000200{i}", service="Cleaning"),
                    NOW,
                )
                for i in range(5)
            ),
            return_exceptions=True,
        )

        booked = [r for r in results if isinstance(r, Appointment)]
        assert len(booked) == 1
        assert all(isinstance(r, SlotTakenError) for r in results if r not in booked)

    @pytest.mark.asyncio
    async def test_one_booking_per_conversation(self, sql_stores, db_business):
        scheduler = SlotScheduler(sql_stores.appointments)
        conversation, _ = await sql_stores.conversations.get_or_create_active(
            db_business.id, CALLER, NOW, TIMEOUT
        )
        customer = CustomerInfo(name="Sarah Lee", phone=CALLER, service="Cleaning")

        await scheduler.create_booking(
            db_business, datetime(2024, 1, 16, 10, 0, tzinfo=NY), customer, NOW, conversation.id
        )

        with pytest.raises(DuplicateBookingError):
            await scheduler.create_booking(
                db_business, datetime(2024, 1, 16, 11, 0, tzinfo=NY), customer, NOW, conversation.id
            )

    @pytest.mark.asyncio
    async def test_reconciliation_completes_past_appointments(self, sql_stores, db_business):
        scheduler = SlotScheduler(sql_stores.appointments)
        created = await scheduler.create_booking(
            db_business,
            datetime(2024, 1, 16, 10, 0, tzinfo=NY),
            CustomerInfo(name="Sarah Lee", phone=CALLER, service="Cleaning"),
            NOW,
        )

        [listed] = await scheduler.list_appointments(db_business, NOW + timedelta(days=2))

        assert listed.id == created.id
        assert listed.status == AppointmentStatus.COMPLETED
        assert (await sql_stores.appointments.get(created.id)).status == AppointmentStatus.COMPLETED
