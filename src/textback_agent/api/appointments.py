"""Appointment management endpoints."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel

from textback_agent.api.bookings import resolve_business
from textback_agent.core.exceptions import AppointmentNotFoundError, BusinessNotFoundError
from textback_agent.core.log import get_logger
from textback_agent.dependencies import ServicesDep
from textback_agent.domain import Appointment, Business
from textback_agent.engine.scheduler import cancellation_message
from textback_agent.services import Services

log = get_logger(__name__)

router = APIRouter(tags=["Appointments"])


class AppointmentResponse(BaseModel):
    appointment: dict[str, Any]


class AppointmentListResponse(BaseModel):
    appointments: list[dict[str, Any]]
    total: int


async def _load(services: Services, appointment_id: UUID) -> tuple[Business, Appointment]:
    appointment = await services.stores.appointments.get(appointment_id)
    if appointment is None:
        raise AppointmentNotFoundError(
            "Appointment not found", details={"appointment_id": str(appointment_id)}
        )
    business = await services.stores.businesses.get(appointment.business_id)
    if business is None:
        raise BusinessNotFoundError(
            "Business not found", details={"business_id": str(appointment.business_id)}
        )
    return business, appointment


@router.get("/businesses/{slug}/appointments", response_model=AppointmentListResponse)
async def list_appointments(slug: str, services: ServicesDep) -> AppointmentListResponse:
    """All appointments, reconciled with the calendar before returning."""
    business = await resolve_business(services, slug)
    appointments = await services.scheduler.list_appointments(business, services.clock())
    return AppointmentListResponse(
        appointments=[a.to_dict() for a in appointments],
        total=len(appointments),
    )


@router.post("/appointments/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(appointment_id: UUID, services: ServicesDep) -> AppointmentResponse:
    """Cancel a confirmed appointment and text the customer."""
    business, appointment = await _load(services, appointment_id)
    cancelled = await services.scheduler.cancel_booking(business, appointment)

    await services.messenger.send(
        business,
        cancelled.customer_phone,
        cancellation_message(business, cancelled),
        services.clock(),
    )
    return AppointmentResponse(appointment=cancelled.to_dict())


@router.delete("/appointments/{appointment_id}", status_code=204)
async def delete_appointment(appointment_id: UUID, services: ServicesDep) -> None:
    business, appointment = await _load(services, appointment_id)
    await services.scheduler.delete_booking(business, appointment)
