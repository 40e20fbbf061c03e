"""Suppression log and outreach cooldown ORM models."""
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from textback_agent.db.base import Base, UUIDMixin
from textback_agent.domain import SuppressionReason, SuppressionRecord


class SuppressionRecordModel(Base, UUIDMixin):
    """Why an automated outreach was not sent. Insert-only."""

    __tablename__ = "suppression_records"

    business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
    )
    caller_phone: Mapped[str] = mapped_column(String(50), nullable=False)
    reason: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment="cooldown, existing_contact, blocked",
    )
    last_outreach_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (
        Index("ix_suppression_records_business_created", "business_id", "created_at"),
    )

    def to_domain(self) -> SuppressionRecord:
        return SuppressionRecord(
            id=self.id,
            business_id=self.business_id,
            caller_phone=self.caller_phone,
            reason=SuppressionReason(self.reason),
            last_outreach_at=self.last_outreach_at,
            created_at=self.created_at,
        )


class OutreachLogModel(Base, UUIDMixin):
    """Last automated outreach per (business, phone); drives the cooldown."""

    __tablename__ = "outreach_log"

    business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
    )
    phone_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Normalized digits",
    )
    last_sent_at: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint("business_id", "phone_number", name="uq_outreach_log_business_phone"),
    )
