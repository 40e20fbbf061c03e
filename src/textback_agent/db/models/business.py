"""Business profile ORM models.

The engine only reads these rows: business configuration, the contact
book used to recognize existing customers and the per-business block list.
"""
from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from textback_agent.db.base import Base, TimestampMixin, UUIDMixin
from textback_agent.domain import Business


class BusinessModel(Base, UUIDMixin, TimestampMixin):
    """Business profile ORM model."""

    __tablename__ = "businesses"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
        comment="Public booking page key",
    )
    phone_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        comment="Provisioned SMS/voice number, E.164",
    )
    timezone: Mapped[str] = mapped_column(
        String(64),
        default="America/New_York",
        nullable=False,
    )

    # Booking configuration
    slot_duration_minutes: Mapped[int] = mapped_column(Integer, default=30, nullable=False)
    buffer_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    business_hours: Mapped[dict[str, Any] | None] = mapped_column(
        nullable=True,
        comment='{"monday": {"open": "09:00", "close": "17:00"}, "saturday": null, ...}',
    )
    services: Mapped[list[Any]] = mapped_column(default=list, nullable=False)
    calendar_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    calendar_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    require_notes: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # AI persona
    ai_greeting: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_context: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_instructions: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Outreach policy
    missed_call_ai_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sms_cooldown_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cooldown_bypass_numbers: Mapped[list[Any]] = mapped_column(default=list, nullable=False)

    def to_domain(self) -> Business:
        return Business(
            id=self.id,
            name=self.name,
            slug=self.slug,
            phone_number=self.phone_number,
            timezone=self.timezone,
            slot_duration_minutes=self.slot_duration_minutes,
            buffer_minutes=self.buffer_minutes,
            business_hours=self.business_hours,
            services=list(self.services or []),
            calendar_enabled=self.calendar_enabled,
            calendar_id=self.calendar_id,
            require_notes=self.require_notes,
            ai_greeting=self.ai_greeting,
            ai_context=self.ai_context,
            ai_instructions=self.ai_instructions,
            missed_call_ai_enabled=self.missed_call_ai_enabled,
            sms_cooldown_days=self.sms_cooldown_days,
            cooldown_bypass_numbers=list(self.cooldown_bypass_numbers or []),
        )


class ContactModel(Base, UUIDMixin, TimestampMixin):
    """Known customer of a business (the contact book)."""

    __tablename__ = "contacts"

    business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
    )
    phone_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Normalized digits",
    )
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_contacts_business_phone", "business_id", "phone_number"),
    )


class BlockedNumberModel(Base, UUIDMixin, TimestampMixin):
    """Number that must never receive automated outreach."""

    __tablename__ = "blocked_numbers"

    business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
    )
    phone_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Normalized digits",
    )
    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_blocked_numbers_business_phone", "business_id", "phone_number"),
    )
