"""Suppression Engine.

Decides whether a missed call may trigger automated outreach at all.
Checked once per missed call, never for replies inside an existing
conversation.

Order of checks (first match wins):
1. Block list -> blocked
2. Contact book, unless on the cooldown bypass list -> existing_contact
3. Cooldown bypass list -> allowed regardless of cooldown
4. Outreach sent within the cooldown window -> cooldown
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from textback_agent.core.log import get_logger
from textback_agent.core.phone import normalize_phone, phones_match
from textback_agent.domain import Business, SuppressionReason, SuppressionRecord
from textback_agent.stores.base import SuppressionStore

log = get_logger(__name__)

DEFAULT_COOLDOWN_DAYS = 7


@dataclass(frozen=True)
class SuppressionDecision:
    """Outcome of a suppression check. Not an error either way."""

    suppress: bool
    reason: SuppressionReason | None = None
    last_outreach_at: datetime | None = None

    @classmethod
    def allow(cls) -> "SuppressionDecision":
        return cls(suppress=False)


def is_cooldown_bypass(business: Business, caller_phone: str) -> bool:
    return any(
        isinstance(entry, str) and entry.strip() and phones_match(caller_phone, entry.strip())
        for entry in business.cooldown_bypass_numbers or []
    )


class SuppressionEngine:
    """Evaluates block list, contact book and outreach cooldown.

    Args:
        store: Suppression store
        default_cooldown_days: Used when the business sets no cooldown
    """

    def __init__(self, store: SuppressionStore, default_cooldown_days: int | None = None):
        self._store = store
        self._default_cooldown_days = default_cooldown_days

    def cooldown_days(self, business: Business) -> int:
        """Business override, then configured default, then 7 days."""
        if business.sms_cooldown_days is not None and business.sms_cooldown_days > 0:
            return business.sms_cooldown_days
        if self._default_cooldown_days is not None and self._default_cooldown_days > 0:
            return self._default_cooldown_days
        return DEFAULT_COOLDOWN_DAYS

    async def should_suppress(
        self,
        business: Business,
        caller_phone: str,
        now: datetime,
    ) -> SuppressionDecision:
        decision = await self._evaluate(business, caller_phone, now)

        if decision.suppress:
            await self._store.add_record(
                SuppressionRecord(
                    business_id=business.id,
                    caller_phone=caller_phone,
                    reason=decision.reason,
                    created_at=now,
                    last_outreach_at=decision.last_outreach_at,
                )
            )
            log.info(
                "Outreach suppressed",
                business_id=str(business.id),
                caller=caller_phone,
                reason=decision.reason.value,
            )

        return decision

    async def _evaluate(
        self,
        business: Business,
        caller_phone: str,
        now: datetime,
    ) -> SuppressionDecision:
        if await self._store.is_blocked(business.id, caller_phone):
            return SuppressionDecision(suppress=True, reason=SuppressionReason.BLOCKED)

        bypass = is_cooldown_bypass(business, caller_phone)

        if (
            not bypass
            and len(normalize_phone(caller_phone)) >= 10
            and await self._store.is_contact(business.id, caller_phone)
        ):
            return SuppressionDecision(suppress=True, reason=SuppressionReason.EXISTING_CONTACT)

        if bypass:
            return SuppressionDecision.allow()

        last_sent = await self._store.last_outreach_at(business.id, caller_phone)
        cutoff = now - timedelta(days=self.cooldown_days(business))
        if last_sent is not None and last_sent >= cutoff:
            return SuppressionDecision(
                suppress=True,
                reason=SuppressionReason.COOLDOWN,
                last_outreach_at=last_sent,
            )

        return SuppressionDecision.allow()

    async def record_outreach(self, business: Business, caller_phone: str, now: datetime) -> None:
        """Start the cooldown window; call after an automated message went out."""
        await self._store.record_outreach(business.id, caller_phone, now)
