"""Service-account credentials for the Google Calendar API.

A business shares its calendar with the service account address and
stores the calendar ID on its profile; one account serves every business.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from google.oauth2 import service_account
from googleapiclient import discovery

from textback_agent.core.exceptions import CalendarIntegrationError
from textback_agent.core.log import get_logger

log = get_logger(__name__)

# FreeBusy and event reads/writes all fall under the full calendar scope
CALENDAR_SCOPES = ["https://www.googleapis.com/auth/calendar"]


class GoogleCalendarAuthError(CalendarIntegrationError):
    error_code = "GOOGLE_CALENDAR_AUTH_ERROR"


class GoogleCalendarAuth:
    """Lazily loads credentials and builds the Calendar v3 client.

    Credentials come either from a key file path or from the key file's JSON
    content, which is how they arrive through environment variables.
    """

    def __init__(
        self,
        credentials_file: str | None = None,
        credentials_json: str | None = None,
        scopes: list[str] | None = None,
    ):
        if not credentials_file and not credentials_json:
            raise GoogleCalendarAuthError(
                "No Google Calendar credentials provided. "
                "Set credentials_file or credentials_json."
            )
        self._credentials_file = credentials_file
        self._credentials_json = credentials_json
        self._scopes = list(scopes or CALENDAR_SCOPES)
        self._credentials: Any = None
        self._service: Any = None

    def _from_json(self) -> Any:
        try:
            info = json.loads(self._credentials_json or "")
        except json.JSONDecodeError as e:
            raise GoogleCalendarAuthError(f"Invalid credentials JSON: {e}", cause=e) from e
        return service_account.Credentials.from_service_account_info(info, scopes=self._scopes)

    def _from_file(self) -> Any:
        path = Path(self._credentials_file or "")
        if not path.is_file():
            raise GoogleCalendarAuthError(f"Credentials file not found: {path}")
        return service_account.Credentials.from_service_account_file(
            str(path), scopes=self._scopes
        )

    def get_credentials(self) -> Any:
        if self._credentials is not None:
            return self._credentials

        loader = self._from_json if self._credentials_json else self._from_file
        try:
            self._credentials = loader()
        except GoogleCalendarAuthError:
            raise
        except (ValueError, KeyError) as e:
            # google-auth rejects malformed key material with these
            raise GoogleCalendarAuthError(f"Failed to load credentials: {e}", cause=e) from e

        log.debug(
            "Google credentials loaded",
            source="json" if self._credentials_json else "file",
        )
        return self._credentials

    def get_calendar_service(self) -> Any:
        if self._service is None:
            credentials = self.get_credentials()
            try:
                self._service = discovery.build(
                    "calendar", "v3", credentials=credentials, cache_discovery=False
                )
            except Exception as e:
                raise GoogleCalendarAuthError(
                    f"Failed to create Calendar service: {e}", cause=e
                ) from e
            log.info("Google Calendar service initialized")
        return self._service

    def refresh_credentials(self) -> None:
        """Forget the cached credentials and client; the next call reloads both."""
        self._credentials = None
        self._service = None

    @property
    def service_account_email(self) -> str | None:
        try:
            return getattr(self.get_credentials(), "service_account_email", None)
        except GoogleCalendarAuthError:
            return None
