"""Conversation Session Manager.

Owns the lifecycle of one caller's text exchange with one business:
finding or creating the active conversation, screening inbound texts
(opt-out keywords, retransmissions, the message cap) and moving the
conversation through its one-way state machine::

    active -> appointment_booked | needs_review | completed | no_response

Work for one (business, caller) pair is serialized with a keyed lock;
the store's conditional writes keep it safe across processes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from textback_agent.config import ConversationSettings
from textback_agent.core.locks import KeyedLock
from textback_agent.core.log import get_logger
from textback_agent.core.phone import to_e164
from textback_agent.domain import (
    Business,
    Conversation,
    ConversationStatus,
    Message,
    MessageDirection,
)
from textback_agent.stores.base import ConversationStore

log = get_logger(__name__)

STOP_WORDS = frozenset({"stop", "unsubscribe", "cancel", "quit"})

OPT_OUT_MESSAGE = "You've been unsubscribed."
MESSAGE_LIMIT_SUMMARY = "Conversation ended - message limit reached"
EXPIRED_SUMMARY = "Conversation expired"
OPT_OUT_SUMMARY = "Caller opted out"


def closing_message(business: Business) -> str:
    return (
        "Thanks for chatting! For further assistance, please call us directly "
        f"at {business.phone_number}."
    )


def post_booking_message(business: Business) -> str:
    return (
        "Your appointment is all set! If you need to reschedule or have questions, "
        f"call us directly at {business.phone_number}."
    )


def is_stop_word(content: str) -> bool:
    return (content or "").strip().lower() in STOP_WORDS


@dataclass(frozen=True)
class SessionConfig:
    """Conversation limits."""

    timeout_hours: int = 72
    max_messages: int = 20
    duplicate_window_seconds: int = 30

    @classmethod
    def from_settings(cls, settings: ConversationSettings) -> "SessionConfig":
        return cls(
            timeout_hours=settings.timeout_hours,
            max_messages=settings.max_messages,
            duplicate_window_seconds=settings.duplicate_window_seconds,
        )

    @property
    def timeout(self) -> timedelta:
        return timedelta(hours=self.timeout_hours)

    @property
    def duplicate_window(self) -> timedelta:
        return timedelta(seconds=self.duplicate_window_seconds)


class InboundAction(str, Enum):
    """What the orchestrator should do with an inbound text."""

    PROCEED = "proceed"  # stored; run an AI turn
    OPT_OUT = "opt_out"  # send the unsubscribe acknowledgement
    DUPLICATE = "duplicate"  # retransmission; nothing stored, no reply
    CAP_REACHED = "cap_reached"  # conversation closed; send the closing message
    POST_BOOKING = "post_booking"  # stored; send the one final message
    CLOSED = "closed"  # stored on a closed conversation; no reply


@dataclass
class InboundOutcome:
    action: InboundAction
    conversation: Conversation | None = None
    message: Message | None = None
    reply: str | None = None

    @property
    def should_invoke_ai(self) -> bool:
        return self.action == InboundAction.PROCEED


class SessionManager:
    """Conversation lifecycle for (business, caller) pairs.

    Usage:
        manager = SessionManager(store, SessionConfig(max_messages=20))
        outcome = await manager.accept_inbound(business, "+15551234567", "Hi", now)
        if outcome.should_invoke_ai:
            ...
    """

    def __init__(
        self,
        store: ConversationStore,
        config: SessionConfig | None = None,
        locks: KeyedLock | None = None,
    ):
        self._store = store
        self.config = config or SessionConfig()
        self._locks = locks or KeyedLock()

    # -----------------------------------------------------------------
    # Lookup
    # -----------------------------------------------------------------

    async def open_conversation(
        self,
        business: Business,
        caller_phone: str,
        now: datetime,
    ) -> tuple[Conversation, bool]:
        """Active conversation for the caller and whether it was just created."""
        phone = to_e164(caller_phone)
        async with self._locks.hold((business.id, phone)):
            return await self._open(business, phone, now)

    async def get_or_create_active_conversation(
        self,
        business: Business,
        caller_phone: str,
        now: datetime,
    ) -> Conversation:
        conversation, _ = await self.open_conversation(business, caller_phone, now)
        return conversation

    async def _open(
        self,
        business: Business,
        phone: str,
        now: datetime,
    ) -> tuple[Conversation, bool]:
        conversation, created = await self._store.get_or_create_active(
            business.id, phone, now, self.config.timeout
        )
        if created:
            log.info(
                "Conversation started",
                conversation_id=str(conversation.id),
                business_id=str(business.id),
                caller=phone,
            )
        return conversation, created

    async def find_active(
        self,
        business: Business,
        caller_phone: str,
        now: datetime,
    ) -> Conversation | None:
        """The unexpired active conversation, without creating one."""
        latest = await self._store.get_latest(
            business.id, to_e164(caller_phone), now - self.config.timeout
        )
        return latest if latest is not None and latest.is_active else None

    async def get(self, conversation_id) -> Conversation | None:
        return await self._store.get(conversation_id)

    async def history(self, conversation_id, limit: int | None = None) -> list[Message]:
        return await self._store.list_messages(conversation_id, limit)

    # -----------------------------------------------------------------
    # Inbound screening
    # -----------------------------------------------------------------

    async def accept_inbound(
        self,
        business: Business,
        caller_phone: str,
        content: str,
        now: datetime,
        provider_message_id: str | None = None,
    ) -> InboundOutcome:
        """Screen an inbound text and store it when it belongs in a conversation.

        Returns:
            The action for the orchestrator, with the conversation and the
            stored message when there is one
        """
        phone = to_e164(caller_phone)
        async with self._locks.hold((business.id, phone)):
            if is_stop_word(content):
                return await self._opt_out(business, phone, now)

            latest = await self._store.get_latest(business.id, phone, now - self.config.timeout)

            if latest is not None and not latest.is_active:
                return await self._accept_on_closed(business, latest, content, now, provider_message_id)

            conversation, _ = await self._open(business, phone, now)
            return await self._accept_on_active(
                business, conversation, content, now, provider_message_id
            )

    async def _opt_out(self, business: Business, phone: str, now: datetime) -> InboundOutcome:
        latest = await self._store.get_latest(business.id, phone, now - self.config.timeout)
        if latest is not None and latest.is_active:
            await self._store.transition(
                latest.id,
                ConversationStatus.ACTIVE,
                ConversationStatus.COMPLETED,
                summary=OPT_OUT_SUMMARY,
            )
        log.info("Caller opted out", business_id=str(business.id), caller=phone)
        return InboundOutcome(
            action=InboundAction.OPT_OUT,
            conversation=latest,
            reply=OPT_OUT_MESSAGE,
        )

    async def _is_retransmission(self, conversation: Conversation, content: str, now: datetime) -> bool:
        duplicate = await self._store.find_recent_inbound(
            conversation.id, content, now - self.config.duplicate_window
        )
        if duplicate is None:
            return False
        log.info("Duplicate inbound ignored", conversation_id=str(conversation.id))
        return True

    async def _accept_on_closed(
        self,
        business: Business,
        conversation: Conversation,
        content: str,
        now: datetime,
        provider_message_id: str | None,
    ) -> InboundOutcome:
        if await self._is_retransmission(conversation, content, now):
            return InboundOutcome(action=InboundAction.DUPLICATE, conversation=conversation)

        message = self._inbound(conversation, content, now, provider_message_id)
        await self._store.append_message(message)

        if conversation.status == ConversationStatus.APPOINTMENT_BOOKED and await self._store.transition(
            conversation.id,
            ConversationStatus.APPOINTMENT_BOOKED,
            ConversationStatus.COMPLETED,
        ):
            log.info("Post-booking reply", conversation_id=str(conversation.id))
            return InboundOutcome(
                action=InboundAction.POST_BOOKING,
                conversation=conversation,
                message=message,
                reply=post_booking_message(business),
            )

        log.debug(
            "Inbound stored on closed conversation",
            conversation_id=str(conversation.id),
            status=conversation.status.value,
        )
        return InboundOutcome(action=InboundAction.CLOSED, conversation=conversation, message=message)

    async def _accept_on_active(
        self,
        business: Business,
        conversation: Conversation,
        content: str,
        now: datetime,
        provider_message_id: str | None,
    ) -> InboundOutcome:
        if await self._is_retransmission(conversation, content, now):
            return InboundOutcome(action=InboundAction.DUPLICATE, conversation=conversation)

        message = self._inbound(conversation, content, now, provider_message_id)
        if await self._store.append_message(message, max_messages=self.config.max_messages):
            return InboundOutcome(
                action=InboundAction.PROCEED,
                conversation=await self._store.get(conversation.id),
                message=message,
            )

        if await self._store.transition(
            conversation.id,
            ConversationStatus.ACTIVE,
            ConversationStatus.COMPLETED,
            summary=MESSAGE_LIMIT_SUMMARY,
        ):
            log.warning(
                "Conversation hit message limit",
                conversation_id=str(conversation.id),
                max_messages=self.config.max_messages,
            )
            return InboundOutcome(
                action=InboundAction.CAP_REACHED,
                conversation=await self._store.get(conversation.id),
                reply=closing_message(business),
            )

        # Closed between lookup and append.
        await self._store.append_message(message)
        return InboundOutcome(
            action=InboundAction.CLOSED,
            conversation=await self._store.get(conversation.id),
            message=message,
        )

    @staticmethod
    def _inbound(
        conversation: Conversation,
        content: str,
        now: datetime,
        provider_message_id: str | None,
    ) -> Message:
        return Message(
            conversation_id=conversation.id,
            direction=MessageDirection.INBOUND,
            content=content,
            created_at=now,
            provider_message_id=provider_message_id,
            provider_status="received" if provider_message_id else None,
        )

    # -----------------------------------------------------------------
    # Outbound and transitions
    # -----------------------------------------------------------------

    async def record_outbound(
        self,
        conversation_id,
        content: str,
        now: datetime,
    ) -> Message:
        """Append an outbound message; never refused, even on a closed conversation."""
        message = Message(
            conversation_id=conversation_id,
            direction=MessageDirection.OUTBOUND,
            content=content,
            created_at=now,
        )
        await self._store.append_message(message)
        return message

    async def record_delivery(
        self,
        message: Message,
        provider_message_id: str | None,
        provider_status: str | None,
    ) -> None:
        message.provider_message_id = provider_message_id
        message.provider_status = provider_status
        await self._store.update_message_delivery(message.id, provider_message_id, provider_status)

    async def update_delivery_status(self, provider_message_id: str, provider_status: str) -> bool:
        return await self._store.update_status_by_provider_id(provider_message_id, provider_status)

    async def capture_name(self, conversation_id, name: str) -> bool:
        """Set the caller name once; later captures are ignored."""
        return await self._store.set_caller_name(conversation_id, name)

    async def mark_booked(self, conversation_id, service: str) -> bool:
        moved = await self._store.transition(
            conversation_id,
            ConversationStatus.ACTIVE,
            ConversationStatus.APPOINTMENT_BOOKED,
            intent="book_appointment",
            service_requested=service,
        )
        if moved:
            log.info("Conversation booked", conversation_id=str(conversation_id))
        return moved

    async def escalate(self, conversation_id, reason: str | None = None) -> bool:
        moved = await self._store.transition(
            conversation_id,
            ConversationStatus.ACTIVE,
            ConversationStatus.NEEDS_REVIEW,
            intent="human_needed",
            summary=reason,
        )
        if moved:
            log.warning(
                "Conversation escalated for review",
                conversation_id=str(conversation_id),
                reason=reason,
            )
        return moved

    async def complete(self, conversation_id, summary: str | None = None) -> bool:
        return await self._store.transition(
            conversation_id,
            ConversationStatus.ACTIVE,
            ConversationStatus.COMPLETED,
            summary=summary,
        )
