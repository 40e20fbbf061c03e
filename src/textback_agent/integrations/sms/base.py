"""Outbound SMS gateway contract and the in-process mock gateway."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from textback_agent.core.log import get_logger
from textback_agent.core.phone import to_e164

log = get_logger(__name__)

# GSM 03.38 basic character set; any other character forces UCS-2 encoding
GSM7_ALPHABET = frozenset(
    "@£$¥èéùìòÇ\nØø\rÅåΔ_ΦΓΛΩΠΨΣΘΞ ÆæßÉ"
    "!\"#¤%&'()*+,-./0123456789:;<=>?"
    "¡ABCDEFGHIJKLMNOPQRSTUVWXYZÄÖÑÜ§"
    "¿abcdefghijklmnopqrstuvwxyzäöñüà"
)


def count_segments(text: str) -> int:
    """Billable segments for ``text``.

    A single GSM-7 message holds 160 characters, a UCS-2 one 70. Longer
    messages are split with a concatenation header, leaving 153 and 67.
    """
    single, part = (160, 153) if set(text) <= GSM7_ALPHABET else (70, 67)
    if len(text) <= single:
        return 1
    return -(-len(text) // part)


class SMSStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    RECEIVED = "received"
    UNKNOWN = "unknown"


@dataclass
class SMSMessage:
    to: str
    body: str
    from_number: str | None = None


@dataclass
class SMSResult:
    """Outcome of one send; ``message_id`` is the provider's message id."""

    success: bool
    message_id: str | None = None
    status: SMSStatus = SMSStatus.UNKNOWN
    provider: str = ""
    error_message: str | None = None
    sent_at: datetime | None = None
    segments: int = 1


class SMSGateway(ABC):
    """Sends single text messages.

    ``send`` never raises for delivery problems. Failures come back as an
    unsuccessful SMSResult so the turn can still be persisted.
    """

    @abstractmethod
    async def send(self, message: SMSMessage) -> SMSResult: ...

    async def close(self) -> None:
        """Release network resources."""

    def normalize_phone(self, phone: str) -> str:
        return to_e164(phone)

    def calculate_segments(self, text: str) -> int:
        return count_segments(text)


class MockSMSGateway(SMSGateway):
    """Records messages instead of sending them."""

    def __init__(self) -> None:
        self._outbox: list[dict[str, Any]] = []

    async def send(self, message: SMSMessage) -> SMSResult:
        entry = {
            "message_id": f"mock_{uuid4().hex}",
            "to": self.normalize_phone(message.to),
            "from": message.from_number,
            "body": message.body,
        }
        self._outbox.append(entry)

        segments = self.calculate_segments(message.body)
        log.info("Mock SMS sent", message_id=entry["message_id"], to=entry["to"], segments=segments)

        return SMSResult(
            success=True,
            message_id=entry["message_id"],
            status=SMSStatus.SENT,
            provider="mock",
            sent_at=datetime.now(timezone.utc),
            segments=segments,
        )

    def get_sent_messages(self) -> list[dict[str, Any]]:
        """Recorded messages, oldest first."""
        return list(self._outbox)

    def clear_sent_messages(self) -> None:
        self._outbox.clear()
