"""Slot Scheduler.

Computes open appointment slots from business hours, confirmed
appointments and calendar busy time, and books them with an atomic
check-and-create so two requests for one slot cannot both succeed.

Slots step from opening time by the business's slot duration. A slot is
open when ``[start, start + duration)`` does not overlap a confirmed
appointment widened by the buffer on both sides, does not overlap a
calendar busy interval and does not start in the past.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo

from textback_agent.core.exceptions import (
    AppointmentStateError,
    BookingValidationError,
    CalendarIntegrationError,
    DuplicateBookingError,
    SlotTakenError,
)
from textback_agent.core.locks import KeyedLock
from textback_agent.core.log import get_logger
from textback_agent.domain import (
    Appointment,
    AppointmentStatus,
    BookingSource,
    Business,
    CustomerInfo,
)
from textback_agent.integrations.calendar.base import (
    BusyInterval,
    CalendarIntegration,
    EventDetails,
)
from textback_agent.stores.base import MAX_APPOINTMENT_SPAN, AppointmentStore, overlaps

log = get_logger(__name__)

_DATETIME_FORMATS = (
    "%Y-%m-%d %I:%M %p",
    "%Y-%m-%d %I:%M%p",
    "%Y-%m-%d %I %p",
    "%Y-%m-%d %I%p",
)


@dataclass(frozen=True)
class Slot:
    """A bookable start time in the business's timezone."""

    start: datetime
    end: datetime

    @property
    def display(self) -> str:
        return self.start.strftime("%I:%M %p").lstrip("0")

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "display": self.display,
        }


@dataclass
class SlotAvailability:
    """Available slots, plus whether an empty "today" means fully consumed.

    ``all_consumed_today`` is True only when the range is just today, the
    business has hours today and none of them are left. An empty list with
    the flag False means no hours are configured for the range.
    """

    slots: list[Slot] = field(default_factory=list)
    all_consumed_today: bool = False


def parse_slot_datetime(value: str, tz: ZoneInfo) -> datetime:
    """Parse an AI or form supplied start time.

    Accepts ISO 8601 (``2024-01-18 14:00``, ``2024-01-18T14:00:00``, with or
    without offset) and ``2024-01-18 2:00 PM``. Times without an offset are
    business-local wall time.

    Raises:
        BookingValidationError: If the value is not a recognizable datetime
    """
    text = (value or "").strip()
    parsed: datetime | None = None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        for fmt in _DATETIME_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        raise BookingValidationError(
            "Unrecognized appointment time",
            details={"datetime": value},
        )
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def format_appointment_time(appointment: Appointment) -> tuple[str, str]:
    """``("Thu, Jan 18", "2:00 PM")`` in the appointment's timezone."""
    local = appointment.scheduled_at.astimezone(ZoneInfo(appointment.timezone))
    return (
        f"{local.strftime('%a, %b')} {local.day}",
        local.strftime("%I:%M %p").lstrip("0"),
    )


def confirmation_message(business: Business, appointment: Appointment) -> str:
    day, at = format_appointment_time(appointment)
    return (
        f"Confirmed! Your appointment with {business.name} is scheduled for {day} at {at}. "
        "Reply to this number if you need to reschedule."
    )


def cancellation_message(business: Business, appointment: Appointment) -> str:
    day, at = format_appointment_time(appointment)
    return (
        f"Your appointment with {business.name} for {day} at {at} has been cancelled. "
        "Please contact us to reschedule."
    )


class SlotScheduler:
    """Availability, booking and reconciliation for appointments.

    Args:
        store: Appointment store with atomic insert
        calendar: Calendar collaborator; None disables busy checks and mirroring
        default_calendar_id: Used when a business has no calendar id
        reconcile_grace: Calendar events younger than this are not reconciled
        locks: Keyed lock shared by schedulers in this process
    """

    def __init__(
        self,
        store: AppointmentStore,
        calendar: CalendarIntegration | None = None,
        default_calendar_id: str = "primary",
        reconcile_grace: timedelta = timedelta(minutes=60),
        locks: KeyedLock | None = None,
    ):
        self._store = store
        self._calendar = calendar
        self._default_calendar_id = default_calendar_id
        self._reconcile_grace = reconcile_grace
        self._locks = locks or KeyedLock()

    def _calendar_for(self, business: Business) -> tuple[CalendarIntegration, str] | None:
        if self._calendar is None or not business.calendar_enabled:
            return None
        return self._calendar, business.calendar_id or self._default_calendar_id

    # -----------------------------------------------------------------
    # Availability
    # -----------------------------------------------------------------

    def candidate_starts(self, business: Business, day: date) -> list[datetime]:
        """Slot starts inside business hours for ``day``, ignoring bookings."""
        hours = business.hours.get(day.weekday())
        if hours is None:
            return []

        tz = business.tz
        duration = business.slot_duration
        start = datetime.combine(day, hours.open, tzinfo=tz)
        close = datetime.combine(day, hours.close, tzinfo=tz)

        starts = []
        while start + duration <= close:
            starts.append(start)
            start = start + duration
        return starts

    async def _busy_intervals(
        self,
        business: Business,
        start: datetime,
        end: datetime,
    ) -> list[BusyInterval]:
        target = self._calendar_for(business)
        if target is None:
            return []
        calendar, calendar_id = target
        try:
            return await calendar.list_busy_intervals(calendar_id, start, end)
        except CalendarIntegrationError as e:
            log.warning(
                "Calendar busy lookup failed, using appointments only",
                business_id=str(business.id),
                error=str(e),
            )
            return []

    async def list_available_slots(
        self,
        business: Business,
        start_date: date,
        end_date: date,
        now: datetime,
    ) -> SlotAvailability:
        """Open slots for every day in ``[start_date, end_date]``, chronological.

        Raises:
            BookingValidationError: If the range is reversed
        """
        if end_date < start_date:
            raise BookingValidationError(
                "Start date must be before end date",
                details={"start": start_date.isoformat(), "end": end_date.isoformat()},
            )

        tz = business.tz
        duration = business.slot_duration
        buffer = business.buffer
        window_start = datetime.combine(start_date, time.min, tzinfo=tz).astimezone(timezone.utc)
        window_end = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=tz).astimezone(
            timezone.utc
        )

        booked = await self._store.list_confirmed_between(
            business.id,
            window_start - buffer - MAX_APPOINTMENT_SPAN,
            window_end + buffer,
        )
        busy = await self._busy_intervals(business, window_start, window_end)

        slots: list[Slot] = []
        day = start_date
        while day <= end_date:
            for start in self.candidate_starts(business, day):
                end = start + duration
                if start < now:
                    continue
                if any(overlaps(start, end, a.scheduled_at, a.ends_at, buffer) for a in booked):
                    continue
                if any(overlaps(start, end, b.start, b.end) for b in busy):
                    continue
                slots.append(Slot(start=start, end=end))
            day += timedelta(days=1)

        today = now.astimezone(tz).date()
        all_consumed_today = (
            not slots
            and start_date == end_date == today
            and bool(self.candidate_starts(business, today))
        )
        return SlotAvailability(slots=slots, all_consumed_today=all_consumed_today)

    # -----------------------------------------------------------------
    # Booking
    # -----------------------------------------------------------------

    def _validate(
        self,
        business: Business,
        slot_start: datetime,
        customer: CustomerInfo,
        now: datetime,
    ) -> CustomerInfo:
        cleaned = CustomerInfo(
            name=(customer.name or "").strip(),
            phone=(customer.phone or "").strip(),
            service=(customer.service or "").strip(),
            email=(customer.email or "").strip() or None,
            notes=(customer.notes or "").strip() or None,
        )

        missing = [name for name in ("name", "phone", "service") if not getattr(cleaned, name)]
        if business.require_notes and not cleaned.notes:
            missing.append("notes")
        if missing:
            raise BookingValidationError(
                f"Missing required fields: {', '.join(missing)}",
                details={"missing": missing},
            )

        if slot_start.tzinfo is None:
            raise BookingValidationError("Slot start must include a timezone")
        if slot_start < now:
            raise BookingValidationError(
                "Cannot book appointments in the past",
                details={"slot_start": slot_start.isoformat()},
            )

        local = slot_start.astimezone(business.tz)
        if local not in self.candidate_starts(business, local.date()):
            raise BookingValidationError(
                "Requested time is not a bookable slot",
                details={"slot_start": slot_start.isoformat()},
            )
        return cleaned

    async def create_booking(
        self,
        business: Business,
        slot_start: datetime,
        customer: CustomerInfo,
        now: datetime,
        conversation_id: UUID | None = None,
    ) -> Appointment:
        """Book a slot.

        The availability check and the insert happen as one operation per
        business. Calendar mirroring afterwards is best effort.

        Raises:
            BookingValidationError: Missing fields, past or misaligned slot
            DuplicateBookingError: Conversation already holds a booking
            SlotTakenError: Slot overlaps a booking or busy calendar time
        """
        customer = self._validate(business, slot_start, customer, now)
        start = slot_start.astimezone(timezone.utc)
        end = start + business.slot_duration

        async with self._locks.hold(business.id):
            if conversation_id is not None:
                existing = await self._store.get_confirmed_for_conversation(conversation_id)
                if existing is not None:
                    raise DuplicateBookingError(
                        "This conversation already has a confirmed appointment",
                        details={"appointment_id": str(existing.id)},
                    )

            busy = await self._busy_intervals(business, start, end)
            if any(overlaps(start, end, b.start, b.end) for b in busy):
                raise SlotTakenError(
                    "That time slot is no longer available",
                    details={"slot_start": start.isoformat()},
                )

            appointment = await self._store.insert_if_free(
                Appointment(
                    business_id=business.id,
                    conversation_id=conversation_id,
                    customer_name=customer.name,
                    customer_phone=customer.phone,
                    customer_email=customer.email,
                    service_type=customer.service,
                    scheduled_at=start,
                    timezone=business.timezone,
                    duration_minutes=business.slot_duration_minutes or 30,
                    notes=customer.notes,
                    created_at=now,
                    source=BookingSource.SMS if conversation_id else BookingSource.WEBSITE,
                ),
                business.buffer,
            )

        log.info(
            "Booking created",
            appointment_id=str(appointment.id),
            business_id=str(business.id),
            scheduled_at=start.isoformat(),
            source=appointment.source.value,
        )

        await self._mirror(business, appointment)
        return appointment

    async def _mirror(self, business: Business, appointment: Appointment) -> None:
        target = self._calendar_for(business)
        if target is None:
            return
        calendar, calendar_id = target

        description = [f"Phone: {appointment.customer_phone}"]
        if appointment.customer_email:
            description.append(f"Email: {appointment.customer_email}")
        if appointment.notes:
            description.append(f"Notes: {appointment.notes}")

        try:
            event_id = await calendar.create_event(
                calendar_id,
                appointment.scheduled_at,
                appointment.ends_at,
                EventDetails(
                    summary=f"{appointment.service_type} - {appointment.customer_name}",
                    description="\n".join(description),
                    timezone=appointment.timezone,
                    metadata={
                        "appointment_id": str(appointment.id),
                        "source": appointment.source.value,
                    },
                ),
            )
        except CalendarIntegrationError as e:
            log.error(
                "Calendar mirroring failed, booking kept",
                appointment_id=str(appointment.id),
                error=str(e),
            )
            return

        await self._store.set_calendar_event(appointment.id, event_id)
        appointment.calendar_event_id = event_id

    async def _remove_event(self, business: Business, appointment: Appointment) -> None:
        target = self._calendar_for(business)
        if target is None or not appointment.calendar_event_id:
            return
        calendar, calendar_id = target
        try:
            await calendar.delete_event(calendar_id, appointment.calendar_event_id)
        except CalendarIntegrationError as e:
            log.warning(
                "Calendar event removal failed",
                appointment_id=str(appointment.id),
                event_id=appointment.calendar_event_id,
                error=str(e),
            )

    async def cancel_booking(self, business: Business, appointment: Appointment) -> Appointment:
        """Mark a confirmed appointment cancelled and drop its calendar event.

        Raises:
            AppointmentStateError: If the appointment is not confirmed
        """
        moved = await self._store.set_status(
            appointment.id,
            AppointmentStatus.CANCELLED,
            expected=AppointmentStatus.CONFIRMED,
        )
        if not moved:
            raise AppointmentStateError(
                "Only confirmed appointments can be cancelled",
                details={"appointment_id": str(appointment.id), "status": appointment.status.value},
            )

        await self._remove_event(business, appointment)
        log.info("Booking cancelled", appointment_id=str(appointment.id))

        cancelled = appointment.copy()
        cancelled.status = AppointmentStatus.CANCELLED
        return cancelled

    async def delete_booking(self, business: Business, appointment: Appointment) -> bool:
        deleted = await self._store.delete(appointment.id)
        if deleted and appointment.status == AppointmentStatus.CONFIRMED:
            await self._remove_event(business, appointment)
        log.info("Booking deleted", appointment_id=str(appointment.id), deleted=deleted)
        return deleted

    # -----------------------------------------------------------------
    # Read path
    # -----------------------------------------------------------------

    async def list_appointments(self, business: Business, now: datetime) -> list[Appointment]:
        """All appointments for the business, reconciled before returning.

        Confirmed appointments that have ended become completed. Confirmed
        appointments whose mirrored calendar event no longer exists become
        cancelled.
        """
        appointments = await self._store.list_for_business(business.id)
        target = self._calendar_for(business)

        for appointment in appointments:
            if appointment.status != AppointmentStatus.CONFIRMED:
                continue

            if appointment.ends_at <= now:
                if await self._store.set_status(
                    appointment.id,
                    AppointmentStatus.COMPLETED,
                    expected=AppointmentStatus.CONFIRMED,
                ):
                    appointment.status = AppointmentStatus.COMPLETED
                continue

            if (
                target is None
                or not appointment.calendar_event_id
                or appointment.created_at > now - self._reconcile_grace
            ):
                continue

            calendar, calendar_id = target
            try:
                exists = await calendar.event_exists(calendar_id, appointment.calendar_event_id)
            except CalendarIntegrationError as e:
                log.warning(
                    "Calendar reconciliation skipped",
                    appointment_id=str(appointment.id),
                    error=str(e),
                )
                continue

            if not exists and await self._store.set_status(
                appointment.id,
                AppointmentStatus.CANCELLED,
                expected=AppointmentStatus.CONFIRMED,
            ):
                appointment.status = AppointmentStatus.CANCELLED
                log.info(
                    "Appointment cancelled, calendar event removed externally",
                    appointment_id=str(appointment.id),
                    event_id=appointment.calendar_event_id,
                )

        return appointments
