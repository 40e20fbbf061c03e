"""Textback Agent Exception Hierarchy.

Provides structured error handling with context preservation
and proper HTTP status code mapping.
"""

from __future__ import annotations

from typing import Any


class TextbackError(Exception):
    """Base exception for all Textback Agent errors.

    Provides:
    - Structured error context
    - HTTP status code mapping
    - Logging-friendly representation
    """

    status_code: int = 500
    error_code: str = "TEXTBACK_ERROR"

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message
            details: Additional context for debugging
            cause: Original exception if wrapping
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert to API-friendly dictionary."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        parts = [f"{self.error_code}: {self.message}"]
        if self.details:
            parts.append(f"details={self.details}")
        if self.cause:
            parts.append(f"cause={self.cause}")
        return " | ".join(parts)


# =============================================================================
# Not-found Errors
# =============================================================================


class NotFoundError(TextbackError):
    """Base class for lookups that resolved nothing."""

    status_code = 404
    error_code = "NOT_FOUND"


class BusinessNotFoundError(NotFoundError):
    """No business for the given slug, id or phone number."""

    error_code = "BUSINESS_NOT_FOUND"


class AppointmentNotFoundError(NotFoundError):
    """Appointment with given ID not found."""

    error_code = "APPOINTMENT_NOT_FOUND"


# =============================================================================
# Booking Errors
# =============================================================================


class BookingError(TextbackError):
    """Base class for booking errors."""

    status_code = 400
    error_code = "BOOKING_ERROR"


class BookingValidationError(BookingError):
    """Booking request is missing fields or targets an invalid slot."""

    error_code = "BOOKING_VALIDATION_ERROR"


class SlotTakenError(BookingError):
    """Requested slot overlaps a confirmed appointment or a busy interval.

    Clients should re-query availability.
    """

    status_code = 409
    error_code = "SLOT_TAKEN"


class DuplicateBookingError(BookingError):
    """The conversation or customer already holds a confirmed booking."""

    status_code = 409
    error_code = "DUPLICATE_BOOKING"


class AppointmentStateError(BookingError):
    """Appointment is not in a state that allows the operation."""

    error_code = "APPOINTMENT_STATE_ERROR"


# =============================================================================
# Collaborator Errors
# =============================================================================


class CompletionError(TextbackError):
    """AI completion failed or timed out."""

    status_code = 503
    error_code = "COMPLETION_ERROR"


class IntegrationError(TextbackError):
    """Base class for external integration errors."""

    status_code = 502
    error_code = "INTEGRATION_ERROR"


class CalendarIntegrationError(IntegrationError):
    """Calendar integration failed."""

    error_code = "CALENDAR_INTEGRATION_ERROR"


class CircuitOpenError(IntegrationError):
    """Circuit breaker is open, calls are short-circuited."""

    status_code = 503
    error_code = "CIRCUIT_OPEN"
