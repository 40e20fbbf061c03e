"""Google Calendar Integration.

Implements CalendarIntegration for the Google Calendar API:
- FreeBusy queries for availability checking
- Event creation for mirrored bookings
- Event deletion for cancellations
- Event lookup for reconciliation
"""

from __future__ import annotations

import asyncio
import functools
from datetime import datetime, timezone
from typing import Any

from googleapiclient.errors import HttpError

from textback_agent.core.exceptions import CalendarIntegrationError
from textback_agent.core.log import get_logger
from textback_agent.integrations.calendar.base import (
    BusyInterval,
    CalendarIntegration,
    EventDetails,
)
from textback_agent.integrations.calendar.google_auth import GoogleCalendarAuth

log = get_logger(__name__)

_RETRYABLE_STATUSES = {429, 500, 502, 503, 504}
_GONE_STATUSES = {404, 410}


def _parse_google_time(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _http_status(error: HttpError) -> int | None:
    status = getattr(error, "status_code", None)
    if status is None and getattr(error, "resp", None) is not None:
        status = getattr(error.resp, "status", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


class GoogleCalendarIntegration(CalendarIntegration):
    """Google Calendar implementation of CalendarIntegration.

    The API client is synchronous, so every request runs in the default
    executor. Transient failures (429, 5xx, network) are retried with
    exponential backoff up to ``max_retries`` attempts in total.

    Usage:
        auth = GoogleCalendarAuth(credentials_file="/path/to/creds.json")
        calendar = GoogleCalendarIntegration(auth=auth)
        busy = await calendar.list_busy_intervals("owner@example.com", start, end)
    """

    def __init__(
        self,
        auth: GoogleCalendarAuth,
        max_retries: int = 2,
        retry_base_delay: float = 0.5,
        request_timeout: float = 10.0,
    ):
        """Initialize Google Calendar integration.

        Args:
            auth: Google Calendar authentication handler
            max_retries: Total attempts per API call
            retry_base_delay: Base delay for exponential backoff
            request_timeout: Seconds before a single request is abandoned
        """
        self._auth = auth
        self._max_retries = max(1, max_retries)
        self._retry_base_delay = retry_base_delay
        self._request_timeout = request_timeout

    async def _execute_with_retry(self, operation: str, request_factory: Any) -> Any:
        """Build and execute a Google API request with retry.

        Args:
            operation: Operation name for logging
            request_factory: Callable returning a request object with ``execute``

        Raises:
            HttpError: Non-retryable API errors, for callers that inspect status
            CalendarIntegrationError: When retries are exhausted
        """
        loop = asyncio.get_running_loop()
        last_error: Exception | None = None

        for attempt in range(self._max_retries):
            try:
                request = request_factory()
                return await asyncio.wait_for(
                    loop.run_in_executor(None, functools.partial(request.execute)),
                    timeout=self._request_timeout,
                )

            except HttpError as e:
                status = _http_status(e)
                if status not in _RETRYABLE_STATUSES:
                    raise
                last_error = e

            except (asyncio.TimeoutError, ConnectionError, OSError) as e:
                last_error = e

            if attempt + 1 < self._max_retries:
                delay = self._retry_base_delay * (2**attempt)
                log.warning(
                    "Transient calendar error, retrying",
                    operation=operation,
                    attempt=attempt + 1,
                    delay=delay,
                    error=str(last_error),
                )
                await asyncio.sleep(delay)

        raise CalendarIntegrationError(
            f"{operation} failed after {self._max_retries} attempts: {last_error}",
            details={"operation": operation},
            cause=last_error,
        )

    async def list_busy_intervals(
        self,
        calendar_id: str,
        start: datetime,
        end: datetime,
    ) -> list[BusyInterval]:
        service = self._auth.get_calendar_service()
        body = {
            "timeMin": start.astimezone(timezone.utc).isoformat(),
            "timeMax": end.astimezone(timezone.utc).isoformat(),
            "timeZone": "UTC",
            "items": [{"id": calendar_id}],
        }

        try:
            result = await self._execute_with_retry(
                "freebusy.query",
                lambda: service.freebusy().query(body=body),
            )
        except HttpError as e:
            raise CalendarIntegrationError(
                f"freebusy.query failed: {e}", details={"calendar_id": calendar_id}, cause=e
            ) from e

        calendar = result.get("calendars", {}).get(calendar_id, {})
        if calendar.get("errors"):
            raise CalendarIntegrationError(
                "Calendar not accessible",
                details={"calendar_id": calendar_id, "errors": calendar["errors"]},
            )

        return [
            BusyInterval(
                start=_parse_google_time(period["start"]),
                end=_parse_google_time(period["end"]),
            )
            for period in calendar.get("busy", [])
        ]

    async def create_event(
        self,
        calendar_id: str,
        start: datetime,
        end: datetime,
        details: EventDetails,
    ) -> str:
        service = self._auth.get_calendar_service()
        event = {
            "summary": details.summary,
            "description": details.description,
            "start": {"dateTime": start.isoformat(), "timeZone": details.timezone},
            "end": {"dateTime": end.isoformat(), "timeZone": details.timezone},
            "extendedProperties": {
                "private": {key: str(value) for key, value in details.metadata.items()},
            },
        }

        try:
            result = await self._execute_with_retry(
                "events.insert",
                lambda: service.events().insert(calendarId=calendar_id, body=event),
            )
        except HttpError as e:
            raise CalendarIntegrationError(
                f"events.insert failed: {e}", details={"calendar_id": calendar_id}, cause=e
            ) from e

        event_id = result.get("id")
        if not event_id:
            raise CalendarIntegrationError("events.insert returned no event id")

        log.info("Calendar event created", calendar_id=calendar_id, event_id=event_id)
        return event_id

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        service = self._auth.get_calendar_service()
        try:
            await self._execute_with_retry(
                "events.delete",
                lambda: service.events().delete(calendarId=calendar_id, eventId=event_id),
            )
        except HttpError as e:
            if _http_status(e) in _GONE_STATUSES:
                log.info("Calendar event already gone", event_id=event_id)
                return
            raise CalendarIntegrationError(
                f"events.delete failed: {e}", details={"event_id": event_id}, cause=e
            ) from e

        log.info("Calendar event deleted", calendar_id=calendar_id, event_id=event_id)

    async def event_exists(self, calendar_id: str, event_id: str) -> bool:
        service = self._auth.get_calendar_service()
        try:
            event = await self._execute_with_retry(
                "events.get",
                lambda: service.events().get(calendarId=calendar_id, eventId=event_id),
            )
        except HttpError as e:
            if _http_status(e) in _GONE_STATUSES:
                return False
            raise CalendarIntegrationError(
                f"events.get failed: {e}", details={"event_id": event_id}, cause=e
            ) from e

        return bool(event) and event.get("status") != "cancelled"
