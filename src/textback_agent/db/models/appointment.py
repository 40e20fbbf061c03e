"""Appointment ORM model."""
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from textback_agent.db.base import Base, UUIDMixin
from textback_agent.domain import Appointment, AppointmentStatus, BookingSource


class AppointmentModel(Base, UUIDMixin):
    """Appointment record ORM model.

    Stores:
    - Customer contact details (denormalized)
    - Absolute start instant plus the business timezone it was booked in
    - Status and the mirrored calendar event, if any

    At most one confirmed appointment may start at a given instant for a
    business; the partial unique index rejects a concurrent duplicate
    even when two processes pass the overlap check at once.
    """

    __tablename__ = "appointments"

    business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
    )
    conversation_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("conversations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    service_type: Mapped[str] = mapped_column(String(255), nullable=False)

    scheduled_at: Mapped[datetime] = mapped_column(nullable=False, comment="UTC start instant")
    timezone: Mapped[str] = mapped_column(String(64), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=30, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AppointmentStatus.CONFIRMED.value,
        comment="confirmed, completed, cancelled",
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    calendar_event_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    source: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=BookingSource.SMS.value,
        comment="sms or website",
    )
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (
        Index("ix_appointments_business_scheduled", "business_id", "scheduled_at"),
        Index(
            "uq_appointments_confirmed_slot",
            "business_id",
            "scheduled_at",
            unique=True,
            sqlite_where=text("status = 'confirmed'"),
            postgresql_where=text("status = 'confirmed'"),
        ),
    )

    @classmethod
    def from_domain(cls, appointment: Appointment) -> "AppointmentModel":
        return cls(
            id=appointment.id,
            business_id=appointment.business_id,
            conversation_id=appointment.conversation_id,
            customer_name=appointment.customer_name,
            customer_phone=appointment.customer_phone,
            customer_email=appointment.customer_email,
            service_type=appointment.service_type,
            scheduled_at=appointment.scheduled_at,
            timezone=appointment.timezone,
            duration_minutes=appointment.duration_minutes,
            status=appointment.status.value,
            notes=appointment.notes,
            calendar_event_id=appointment.calendar_event_id,
            source=appointment.source.value,
            created_at=appointment.created_at,
        )

    def to_domain(self) -> Appointment:
        return Appointment(
            id=self.id,
            business_id=self.business_id,
            conversation_id=self.conversation_id,
            customer_name=self.customer_name,
            customer_phone=self.customer_phone,
            customer_email=self.customer_email,
            service_type=self.service_type,
            scheduled_at=self.scheduled_at,
            timezone=self.timezone,
            duration_minutes=self.duration_minutes,
            status=AppointmentStatus(self.status),
            notes=self.notes,
            calendar_event_id=self.calendar_event_id,
            source=BookingSource(self.source),
            created_at=self.created_at,
        )
