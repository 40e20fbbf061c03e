"""Tests for the conversation session manager."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from textback_agent.domain import ConversationStatus, MessageDirection
from textback_agent.engine.sessions import (
    EXPIRED_SUMMARY,
    MESSAGE_LIMIT_SUMMARY,
    OPT_OUT_MESSAGE,
    OPT_OUT_SUMMARY,
    InboundAction,
    SessionConfig,
    SessionManager,
    closing_message,
    is_stop_word,
    post_booking_message,
)
from textback_agent.stores.memory import InMemoryConversationStore

CALLER_PHONE = "+15551234567"


@pytest.fixture
def store():
    return InMemoryConversationStore()


@pytest.fixture
def manager(store):
    return SessionManager(store, SessionConfig(max_messages=4))


class TestStopWords:
    @pytest.mark.parametrize("content", ["STOP", " stop ", "Unsubscribe", "cancel", "QUIT"])
    def test_stop_words(self, content):
        assert is_stop_word(content) is True

    @pytest.mark.parametrize("content", ["please stop texting", "stopping by", "", "start"])
    def test_not_stop_words(self, content):
        assert is_stop_word(content) is False


class TestConversationLookup:
    """Tests for finding and creating conversations."""

    @pytest.mark.asyncio
    async def test_first_inbound_creates_conversation(self, manager, store, business, now):
        outcome = await manager.accept_inbound(business, CALLER_PHONE, "Hi", now)

        assert outcome.action == InboundAction.PROCEED
        assert outcome.should_invoke_ai is True
        assert outcome.conversation.status == ConversationStatus.ACTIVE
        assert outcome.conversation.message_count == 1
        assert outcome.message.direction == MessageDirection.INBOUND
        assert len(store.conversations) == 1

    @pytest.mark.asyncio
    async def test_phone_formats_share_a_conversation(self, manager, store, business, now):
        first = await manager.accept_inbound(business, "(555) 123-4567", "Hi", now)
        second = await manager.accept_inbound(
            business, "+1 555 123 4567", "Are you open?", now + timedelta(minutes=1)
        )

        assert first.conversation.caller_phone == CALLER_PHONE
        assert second.conversation.id == first.conversation.id
        assert len(store.conversations) == 1

    @pytest.mark.asyncio
    async def test_open_conversation_reports_creation(self, manager, business, now):
        conversation, created = await manager.open_conversation(business, CALLER_PHONE, now)
        again, created_again = await manager.open_conversation(business, CALLER_PHONE, now)

        assert created is True
        assert created_again is False
        assert again.id == conversation.id

    @pytest.mark.asyncio
    async def test_expired_conversation_is_replaced(self, manager, store, business, now):
        first = await manager.accept_inbound(business, CALLER_PHONE, "Hi", now)

        later = now + timedelta(hours=73)
        second = await manager.accept_inbound(business, CALLER_PHONE, "Hi again", later)

        assert second.action == InboundAction.PROCEED
        assert second.conversation.id != first.conversation.id
        expired = await store.get(first.conversation.id)
        assert expired.status == ConversationStatus.COMPLETED
        assert expired.summary == EXPIRED_SUMMARY

    @pytest.mark.asyncio
    async def test_find_active(self, manager, business, now):
        assert await manager.find_active(business, CALLER_PHONE, now) is None

        conversation, _ = await manager.open_conversation(business, CALLER_PHONE, now)
        assert (await manager.find_active(business, CALLER_PHONE, now)).id == conversation.id

        await manager.complete(conversation.id, "done")
        assert await manager.find_active(business, CALLER_PHONE, now) is None

    @pytest.mark.asyncio
    async def test_concurrent_inbound_share_one_conversation(self, manager, store, business, now):
        outcomes = await asyncio.gather(
            *(
                manager.accept_inbound(business, CALLER_PHONE, f"message {i}", now)
                for i in range(3)
            )
        )

        assert {o.conversation.id for o in outcomes} == {outcomes[0].conversation.id}
        assert len(store.conversations) == 1
        assert len(store.messages) == 3


class TestInboundScreening:
    """Tests for opt-out, duplicates and the message cap."""

    @pytest.mark.asyncio
    async def test_opt_out_closes_conversation(self, manager, store, business, now):
        first = await manager.accept_inbound(business, CALLER_PHONE, "Hi", now)

        outcome = await manager.accept_inbound(
            business, CALLER_PHONE, "STOP", now + timedelta(minutes=1)
        )

        assert outcome.action == InboundAction.OPT_OUT
        assert outcome.reply == OPT_OUT_MESSAGE
        assert "START" not in outcome.reply
        assert outcome.should_invoke_ai is False
        conversation = await store.get(first.conversation.id)
        assert conversation.status == ConversationStatus.COMPLETED
        assert conversation.summary == OPT_OUT_SUMMARY
        assert [m.content for m in store.messages] == ["Hi"]

    @pytest.mark.asyncio
    async def test_opt_out_without_conversation(self, manager, store, business, now):
        outcome = await manager.accept_inbound(business, CALLER_PHONE, "stop", now)

        assert outcome.action == InboundAction.OPT_OUT
        assert outcome.conversation is None
        assert store.conversations == {}

    @pytest.mark.asyncio
    async def test_duplicate_within_window(self, manager, store, business, now):
        await manager.accept_inbound(business, CALLER_PHONE, "Hi", now, provider_message_id="SM1")

        outcome = await manager.accept_inbound(
            business, CALLER_PHONE, "Hi", now + timedelta(seconds=10), provider_message_id="SM1"
        )

        assert outcome.action == InboundAction.DUPLICATE
        assert outcome.reply is None
        assert len(store.messages) == 1

    @pytest.mark.asyncio
    async def test_same_text_after_window_is_new(self, manager, store, business, now):
        await manager.accept_inbound(business, CALLER_PHONE, "Hi", now)

        outcome = await manager.accept_inbound(
            business, CALLER_PHONE, "Hi", now + timedelta(seconds=31)
        )

        assert outcome.action == InboundAction.PROCEED
        assert len(store.messages) == 2

    @pytest.mark.asyncio
    async def test_message_cap_closes_conversation(self, manager, store, business, now):
        for i in range(4):
            outcome = await manager.accept_inbound(
                business, CALLER_PHONE, f"message {i}", now + timedelta(minutes=i)
            )
            assert outcome.action == InboundAction.PROCEED

        capped = await manager.accept_inbound(
            business, CALLER_PHONE, "one more", now + timedelta(minutes=5)
        )

        assert capped.action == InboundAction.CAP_REACHED
        assert capped.reply == closing_message(business)
        assert capped.conversation.status == ConversationStatus.COMPLETED
        assert capped.conversation.summary == MESSAGE_LIMIT_SUMMARY
        assert capped.conversation.message_count == 4
        assert len(store.messages) == 4

        after = await manager.accept_inbound(
            business, CALLER_PHONE, "hello?", now + timedelta(minutes=6)
        )

        assert after.action == InboundAction.CLOSED
        assert after.reply is None
        assert store.messages[-1].content == "hello?"

    @pytest.mark.asyncio
    async def test_outbound_counts_toward_cap(self, manager, business, now):
        first = await manager.accept_inbound(business, CALLER_PHONE, "Hi", now)
        for i in range(3):
            await manager.record_outbound(first.conversation.id, f"reply {i}", now)

        outcome = await manager.accept_inbound(
            business, CALLER_PHONE, "still there?", now + timedelta(minutes=1)
        )

        assert outcome.action == InboundAction.CAP_REACHED

    @pytest.mark.asyncio
    async def test_post_booking_reply_is_sent_once(self, manager, store, business, now):
        first = await manager.accept_inbound(business, CALLER_PHONE, "Book me", now)
        assert await manager.mark_booked(first.conversation.id, "Cleaning") is True

        thanks = await manager.accept_inbound(
            business, CALLER_PHONE, "Thanks!", now + timedelta(minutes=1)
        )
        again = await manager.accept_inbound(
            business, CALLER_PHONE, "See you", now + timedelta(minutes=2)
        )

        assert thanks.action == InboundAction.POST_BOOKING
        assert thanks.reply == post_booking_message(business)
        assert again.action == InboundAction.CLOSED
        assert again.reply is None
        conversation = await store.get(first.conversation.id)
        assert conversation.status == ConversationStatus.COMPLETED
        assert [m.content for m in store.messages] == ["Book me", "Thanks!", "See you"]

    @pytest.mark.asyncio
    async def test_needs_review_gets_no_reply(self, manager, business, now):
        first = await manager.accept_inbound(business, CALLER_PHONE, "This is awful", now)
        await manager.escalate(first.conversation.id, "Upset customer")

        outcome = await manager.accept_inbound(
            business, CALLER_PHONE, "Hello??", now + timedelta(minutes=1)
        )

        assert outcome.action == InboundAction.CLOSED
        assert outcome.conversation.status == ConversationStatus.NEEDS_REVIEW

    @pytest.mark.asyncio
    async def test_duplicate_on_closed_conversation(self, manager, store, business, now):
        first = await manager.accept_inbound(business, CALLER_PHONE, "This is awful", now)
        await manager.escalate(first.conversation.id, "Upset customer")
        later = now + timedelta(minutes=1)

        await manager.accept_inbound(business, CALLER_PHONE, "Hello??", later)
        outcome = await manager.accept_inbound(
            business, CALLER_PHONE, "Hello??", later + timedelta(seconds=5)
        )

        assert outcome.action == InboundAction.DUPLICATE
        assert outcome.reply is None
        assert [m.content for m in store.messages].count("Hello??") == 1


class TestTransitions:
    """Tests for one-way status transitions and outbound bookkeeping."""

    @pytest.mark.asyncio
    async def test_mark_booked_sets_intent(self, manager, store, business, now):
        conversation, _ = await manager.open_conversation(business, CALLER_PHONE, now)

        await manager.mark_booked(conversation.id, "Cleaning")

        stored = await store.get(conversation.id)
        assert stored.status == ConversationStatus.APPOINTMENT_BOOKED
        assert stored.intent == "book_appointment"
        assert stored.service_requested == "Cleaning"

    @pytest.mark.asyncio
    async def test_escalate_records_reason(self, manager, store, business, now):
        conversation, _ = await manager.open_conversation(business, CALLER_PHONE, now)

        await manager.escalate(conversation.id, "Wants a manager")

        stored = await store.get(conversation.id)
        assert stored.status == ConversationStatus.NEEDS_REVIEW
        assert stored.intent == "human_needed"
        assert stored.summary == "Wants a manager"

    @pytest.mark.asyncio
    async def test_closed_states_are_terminal(self, manager, business, now):
        conversation, _ = await manager.open_conversation(business, CALLER_PHONE, now)
        await manager.escalate(conversation.id, "Upset")

        assert await manager.mark_booked(conversation.id, "Cleaning") is False
        assert await manager.complete(conversation.id) is False

    @pytest.mark.asyncio
    async def test_caller_name_is_set_once(self, manager, store, business, now):
        conversation, _ = await manager.open_conversation(business, CALLER_PHONE, now)

        assert await manager.capture_name(conversation.id, "Sarah") is True
        assert await manager.capture_name(conversation.id, "Bob") is False
        assert (await store.get(conversation.id)).caller_name == "Sarah"

    @pytest.mark.asyncio
    async def test_outbound_is_stored_on_closed_conversation(self, manager, store, business, now):
        conversation, _ = await manager.open_conversation(business, CALLER_PHONE, now)
        await manager.complete(conversation.id)

        message = await manager.record_outbound(conversation.id, "Bye!", now)

        assert message.direction == MessageDirection.OUTBOUND
        assert (await store.get(conversation.id)).message_count == 1

    @pytest.mark.asyncio
    async def test_delivery_status_updates(self, manager, store, business, now):
        conversation, _ = await manager.open_conversation(business, CALLER_PHONE, now)
        message = await manager.record_outbound(conversation.id, "Hello", now)

        await manager.record_delivery(message, "SM123", "sent")
        updated = await manager.update_delivery_status("SM123", "delivered")
        unknown = await manager.update_delivery_status("SM999", "delivered")

        assert updated is True
        assert unknown is False
        assert store.messages[0].provider_status == "delivered"

    @pytest.mark.asyncio
    async def test_history_is_chronological_and_limited(self, manager, business, now):
        conversation, _ = await manager.open_conversation(business, CALLER_PHONE, now)
        for i in range(3):
            await manager.record_outbound(conversation.id, f"m{i}", now + timedelta(seconds=i))

        history = await manager.history(conversation.id, limit=2)

        assert [m.content for m in history] == ["m1", "m2"]
