"""Public booking surface for the booking page.

Same contracts as the Slot Scheduler, keyed by business slug.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from textback_agent.core.exceptions import BookingValidationError, BusinessNotFoundError
from textback_agent.core.log import get_logger
from textback_agent.dependencies import ServicesDep, SettingsDep
from textback_agent.domain import Business, CustomerInfo
from textback_agent.engine.scheduler import confirmation_message
from textback_agent.services import Services

log = get_logger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


class SlotsResponse(BaseModel):
    business_name: str
    timezone: str
    slot_duration_minutes: int
    services: list[dict[str, Any]]
    slots: list[dict[str, Any]]
    all_consumed_today: bool


class BookingRequest(BaseModel):
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_phone: str = Field(..., min_length=1, max_length=32)
    customer_email: str | None = Field(default=None, max_length=320)
    service_type: str = Field(..., min_length=1, max_length=200)
    slot_start: datetime
    notes: str | None = Field(default=None, max_length=2000)


class BookingResponse(BaseModel):
    appointment: dict[str, Any]


async def resolve_business(services: Services, slug: str) -> Business:
    business = await services.stores.businesses.get_by_slug(slug)
    if business is None:
        raise BusinessNotFoundError("Business not found", details={"slug": slug})
    return business


def _service_options(business: Business) -> list[dict[str, Any]]:
    """``{value, label}`` entries; priced services show the price in the label."""
    options = []
    for entry in business.services or []:
        if isinstance(entry, dict) and isinstance(entry.get("name"), str):
            price = entry.get("price")
            label = f"{entry['name']} - ${price}" if isinstance(price, (int, float)) else entry["name"]
            options.append({"value": entry["name"], "label": label})
        else:
            options.append({"value": str(entry), "label": str(entry)})
    return options


@router.get("/{slug}/slots", response_model=SlotsResponse)
async def get_available_slots(
    slug: str,
    services: ServicesDep,
    settings: SettingsDep,
    start: date | None = Query(default=None, description="First day, YYYY-MM-DD"),
    end: date | None = Query(default=None, description="Last day, YYYY-MM-DD"),
) -> SlotsResponse:
    business = await resolve_business(services, slug)
    now = services.clock()

    today = now.astimezone(business.tz).date()
    start = start or today
    end = end or start + timedelta(days=settings.booking.default_range_days)
    if (end - start).days > settings.booking.max_range_days:
        raise BookingValidationError(
            "Date range too large",
            details={"max_range_days": settings.booking.max_range_days},
        )

    availability = await services.scheduler.list_available_slots(business, start, end, now)

    return SlotsResponse(
        business_name=business.name,
        timezone=business.timezone,
        slot_duration_minutes=business.slot_duration_minutes,
        services=_service_options(business),
        slots=[slot.to_dict() for slot in availability.slots],
        all_consumed_today=availability.all_consumed_today,
    )


@router.post("/{slug}", response_model=BookingResponse, status_code=201)
async def create_booking(slug: str, request: BookingRequest, services: ServicesDep) -> BookingResponse:
    """Book a slot from the booking page and text the customer a confirmation."""
    business = await resolve_business(services, slug)
    now = services.clock()

    appointment = await services.scheduler.create_booking(
        business,
        request.slot_start,
        CustomerInfo(
            name=request.customer_name,
            phone=request.customer_phone,
            service=request.service_type,
            email=request.customer_email,
            notes=request.notes,
        ),
        now,
    )

    await services.messenger.send(
        business,
        appointment.customer_phone,
        confirmation_message(business, appointment),
        now,
    )

    return BookingResponse(appointment=appointment.to_dict())
