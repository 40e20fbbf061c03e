"""Missed-call trigger.

Turns a dial-status callback into the first outreach text. Runs the
Suppression Engine exactly once per missed call; replies inside an
existing conversation never reach it.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from textback_agent.core.log import get_logger
from textback_agent.domain import SuppressionReason
from textback_agent.engine.orchestrator import Messenger, utc_now
from textback_agent.engine.prompts import greeting_for
from textback_agent.engine.sessions import SessionManager
from textback_agent.engine.suppression import SuppressionEngine
from textback_agent.stores.base import BusinessStore

log = get_logger(__name__)

TRIGGER_STATUSES = frozenset({"no-answer", "busy", "failed"})
MIN_MACHINE_DURATION_SECONDS = 2


@dataclass
class MissedCallEvent:
    """Dial status reported by the voice gateway after forwarding a call."""

    to_phone: str
    caller_phone: str
    dial_status: str
    answered_by: str | None = None
    duration_seconds: int | None = None


@dataclass
class MissedCallResult:
    action: str
    conversation_id: UUID | None = None
    reason: SuppressionReason | None = None


def is_missed(event: MissedCallEvent) -> bool:
    """No-answer, busy or failed always count; a completed call counts when
    voicemail (or an unknown party) picked up for at least two seconds."""
    status = (event.dial_status or "").strip().lower()
    if status in TRIGGER_STATUSES:
        return True
    if status != "completed":
        return False

    answered_by = (event.answered_by or "").lower()
    if "machine" not in answered_by and "unknown" not in answered_by:
        return False
    return event.duration_seconds is not None and event.duration_seconds >= MIN_MACHINE_DURATION_SECONDS


class MissedCallHandler:
    """Sends the greeting text for a missed call, subject to suppression."""

    def __init__(
        self,
        businesses: BusinessStore,
        suppression: SuppressionEngine,
        sessions: SessionManager,
        messenger: Messenger,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._businesses = businesses
        self._suppression = suppression
        self._sessions = sessions
        self._messenger = messenger
        self._clock = clock

    async def handle(self, event: MissedCallEvent) -> MissedCallResult:
        business = await self._businesses.get_by_phone(event.to_phone)
        if business is None:
            log.info("Dial status for unknown number dropped", to=event.to_phone)
            return MissedCallResult(action="unknown_business")

        if not is_missed(event):
            log.debug(
                "Call handled, no outreach",
                business_id=str(business.id),
                dial_status=event.dial_status,
                answered_by=event.answered_by,
            )
            return MissedCallResult(action="ignored")

        if not business.missed_call_ai_enabled:
            log.info("Missed-call texting disabled", business_id=str(business.id))
            return MissedCallResult(action="disabled")

        now = self._clock()

        existing = await self._sessions.find_active(business, event.caller_phone, now)
        if existing is not None:
            log.info("Existing conversation reused", conversation_id=str(existing.id))
            return MissedCallResult(action="existing_conversation", conversation_id=existing.id)

        decision = await self._suppression.should_suppress(business, event.caller_phone, now)
        if decision.suppress:
            return MissedCallResult(action="suppressed", reason=decision.reason)

        conversation, created = await self._sessions.open_conversation(
            business, event.caller_phone, now
        )
        if not created:
            return MissedCallResult(action="existing_conversation", conversation_id=conversation.id)

        await self._messenger.send(
            business, conversation.caller_phone, greeting_for(business), now, conversation.id
        )
        await self._suppression.record_outreach(business, conversation.caller_phone, now)

        log.info(
            "Missed-call greeting sent",
            business_id=str(business.id),
            conversation_id=str(conversation.id),
        )
        return MissedCallResult(action="greeted", conversation_id=conversation.id)
