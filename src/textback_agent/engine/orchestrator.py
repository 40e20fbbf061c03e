"""Response Orchestrator.

Runs one inbound text through the engine::

    resolve business -> screen + store inbound -> prompt -> AI completion
    -> directives -> scheduler / session effects -> store + send reply

AI failures and timeouts produce a fixed fallback reply with no
directives applied, and are never retried so one inbound text can never
yield two replies.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from textback_agent.ai.base import CompletionProvider
from textback_agent.core.exceptions import (
    BookingValidationError,
    CompletionError,
    DuplicateBookingError,
    SlotTakenError,
)
from textback_agent.core.log import get_logger
from textback_agent.core.phone import to_e164
from textback_agent.domain import Appointment, Business, Conversation, CustomerInfo, Message
from textback_agent.engine.directives import (
    BookDirective,
    Directive,
    EscalateDirective,
    NameCapturedDirective,
    extract,
)
from textback_agent.engine.prompts import build_history, build_system_prompt
from textback_agent.engine.scheduler import SlotScheduler, parse_slot_datetime
from textback_agent.engine.sessions import InboundAction, SessionManager
from textback_agent.integrations.sms.base import SMSGateway, SMSMessage
from textback_agent.stores.base import BusinessStore

log = get_logger(__name__)

DEFAULT_FALLBACK_MESSAGE = (
    "I'm having trouble right now. Someone from our team will get back to you shortly!"
)
EMPTY_REPLY_MESSAGE = "Got it, thanks! Someone from our team will follow up if needed."
BOOKING_FAILED_MESSAGE = "Sorry, I couldn't book that time. Could you pick another one?"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class InboundEvent:
    """Inbound text from the messaging gateway."""

    from_phone: str
    to_phone: str
    body: str
    message_id: str | None = None


@dataclass
class TurnResult:
    """What happened to one inbound event."""

    action: str
    conversation_id: UUID | None = None
    reply: str | None = None
    directives: list[Directive] = field(default_factory=list)
    appointment: Appointment | None = None
    used_fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "conversation_id": str(self.conversation_id) if self.conversation_id else None,
            "reply": self.reply,
            "directives": [type(d).__name__ for d in self.directives],
            "appointment_id": str(self.appointment.id) if self.appointment else None,
            "used_fallback": self.used_fallback,
        }


class Messenger:
    """Stores outbound messages and hands them to the SMS gateway."""

    def __init__(self, sessions: SessionManager, sms: SMSGateway):
        self._sessions = sessions
        self._sms = sms

    async def send(
        self,
        business: Business,
        to_phone: str,
        body: str,
        now: datetime,
        conversation_id: UUID | None = None,
    ) -> Message | None:
        """Send ``body``; attach it to the conversation when there is one."""
        message = None
        if conversation_id is not None:
            message = await self._sessions.record_outbound(conversation_id, body, now)

        result = await self._sms.send(
            SMSMessage(to=to_e164(to_phone), body=body, from_number=business.phone_number)
        )
        if not result.success:
            log.error(
                "Outbound SMS failed",
                business_id=str(business.id),
                conversation_id=str(conversation_id) if conversation_id else None,
                error=result.error_message,
            )

        if message is not None:
            await self._sessions.record_delivery(message, result.message_id, result.status.value)
        return message


class ResponseOrchestrator:
    """Coordinates one conversational turn.

    Args:
        businesses: Resolves the business from the number that was texted
        sessions: Conversation lifecycle
        scheduler: Booking side effects
        ai: Completion collaborator
        messenger: Outbound delivery
        history_limit: Prior messages included in the prompt
        ai_timeout: Seconds before the completion is abandoned
        fallback_message: Reply when the completion fails
        slot_lookahead_days: Days of open slots offered in the prompt
        max_prompt_slots: Open slots listed in the prompt
        clock: Returns the current aware UTC time
    """

    def __init__(
        self,
        businesses: BusinessStore,
        sessions: SessionManager,
        scheduler: SlotScheduler,
        ai: CompletionProvider,
        messenger: Messenger,
        history_limit: int = 20,
        ai_timeout: float = 15.0,
        fallback_message: str = DEFAULT_FALLBACK_MESSAGE,
        slot_lookahead_days: int = 3,
        max_prompt_slots: int = 8,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._businesses = businesses
        self._sessions = sessions
        self._scheduler = scheduler
        self._ai = ai
        self._messenger = messenger
        self._history_limit = history_limit
        self._ai_timeout = ai_timeout
        self._fallback_message = fallback_message
        self._slot_lookahead_days = slot_lookahead_days
        self._max_prompt_slots = max_prompt_slots
        self._clock = clock

    async def handle_inbound(self, event: InboundEvent) -> TurnResult:
        business = await self._businesses.get_by_phone(event.to_phone)
        if business is None:
            log.info("Inbound for unknown number dropped", to=event.to_phone)
            return TurnResult(action="unknown_business")

        now = self._clock()
        outcome = await self._sessions.accept_inbound(
            business, event.from_phone, event.body, now, event.message_id
        )
        conversation = outcome.conversation
        conversation_id = conversation.id if conversation else None

        if not outcome.should_invoke_ai:
            if outcome.reply:
                await self._messenger.send(
                    business, event.from_phone, outcome.reply, self._clock(), conversation_id
                )
            return TurnResult(
                action=outcome.action.value,
                conversation_id=conversation_id,
                reply=outcome.reply,
            )

        raw, used_fallback = await self._complete(business, conversation, now)
        if used_fallback:
            reply, directives = raw, []
        else:
            reply, directives = extract(raw)

        appointment = None
        if directives:
            reply, appointment = await self._apply(business, conversation, reply, directives, now)

        if not reply:
            reply = EMPTY_REPLY_MESSAGE

        await self._messenger.send(
            business, conversation.caller_phone, reply, self._clock(), conversation.id
        )

        return TurnResult(
            action=InboundAction.PROCEED.value,
            conversation_id=conversation.id,
            reply=reply,
            directives=directives,
            appointment=appointment,
            used_fallback=used_fallback,
        )

    async def _complete(
        self,
        business: Business,
        conversation: Conversation,
        now: datetime,
    ) -> tuple[str, bool]:
        history = await self._sessions.history(conversation.id, limit=self._history_limit)
        today = now.astimezone(business.tz).date()
        availability = await self._scheduler.list_available_slots(
            business,
            today,
            today + timedelta(days=self._slot_lookahead_days),
            now,
        )
        system_prompt = build_system_prompt(
            business, now, availability.slots[: self._max_prompt_slots]
        )

        try:
            raw = await asyncio.wait_for(
                self._ai.complete(system_prompt, build_history(history)),
                timeout=self._ai_timeout,
            )
        except asyncio.TimeoutError:
            log.warning(
                "AI completion timed out",
                conversation_id=str(conversation.id),
                timeout=self._ai_timeout,
            )
            return self._fallback_message, True
        except CompletionError as e:
            log.error(
                "AI completion failed",
                conversation_id=str(conversation.id),
                error=str(e),
            )
            return self._fallback_message, True

        return raw, False

    async def _apply(
        self,
        business: Business,
        conversation: Conversation,
        reply: str,
        directives: list[Directive],
        now: datetime,
    ) -> tuple[str, Appointment | None]:
        current = await self._sessions.get(conversation.id)
        if current is None or not current.is_active:
            log.warning(
                "Directives dropped, conversation no longer active",
                conversation_id=str(conversation.id),
                status=current.status.value if current else None,
            )
            return reply, None

        appointment = None
        for directive in directives:
            if isinstance(directive, NameCapturedDirective):
                await self._sessions.capture_name(conversation.id, directive.name)

            elif isinstance(directive, BookDirective):
                try:
                    appointment = await self._book(business, conversation, directive, now)
                except (SlotTakenError, BookingValidationError) as e:
                    log.info(
                        "Booking directive rejected",
                        conversation_id=str(conversation.id),
                        error=e.error_code,
                        message=e.message,
                    )
                    reply = BOOKING_FAILED_MESSAGE
                except DuplicateBookingError:
                    log.info("Conversation already booked", conversation_id=str(conversation.id))

            elif isinstance(directive, EscalateDirective):
                await self._sessions.escalate(conversation.id, directive.reason)

        return reply, appointment

    async def _book(
        self,
        business: Business,
        conversation: Conversation,
        directive: BookDirective,
        now: datetime,
    ) -> Appointment:
        slot_start = parse_slot_datetime(directive.datetime, business.tz)
        appointment = await self._scheduler.create_booking(
            business,
            slot_start,
            CustomerInfo(
                name=directive.name,
                phone=conversation.caller_phone,
                service=directive.service,
                notes=directive.notes or None,
            ),
            now,
            conversation_id=conversation.id,
        )
        await self._sessions.capture_name(conversation.id, directive.name)
        await self._sessions.mark_booked(conversation.id, directive.service)
        return appointment
