"""
Booking engine error taxonomy.

Every failure the engine reports to a caller is one of these. The HTTP layer
maps them to status codes through ``status_code`` and ``code``; nothing below
the route handlers raises ``HTTPException`` directly.
"""

from typing import Any, Optional

from .core.responses import ErrorCodes


class BookingError(Exception):
    """Base class for failures surfaced to API callers."""
    status_code: int = 500
    code: str = ErrorCodes.INTERNAL_ERROR

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(BookingError):
    """Raised when required fields are missing or malformed."""
    status_code = 400
    code = ErrorCodes.VALIDATION_ERROR

    def __init__(self, fields: list[str], message: str = "Validation failed"):
        self.fields = fields
        super().__init__(message, details={"fields": fields})


class InvalidTransitionError(ValidationError):
    """Raised when a status change is not permitted by the booking lifecycle."""
    code = ErrorCodes.INVALID_TRANSITION

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(
            ["status"],
            message=f"Cannot change booking status from {current} to {requested}",
        )


class NotFoundError(BookingError):
    """Raised when a referenced booking, service or staff member is absent."""
    status_code = 404
    code = ErrorCodes.NOT_FOUND


class SlotConflictError(BookingError):
    """Raised when an active booking already occupies the requested interval."""
    status_code = 409
    code = ErrorCodes.SLOT_CONFLICT

    def __init__(self, message: str = "Time slot already booked", details: Optional[dict[str, Any]] = None):
        super().__init__(message, details)


class NotificationError(BookingError):
    """Raised only by endpoints whose whole purpose is delivering an email."""
    status_code = 502
    code = ErrorCodes.NOTIFICATION_FAILED


class TransientError(BookingError):
    """Storage timed out or was unreachable. Safe for the caller to retry."""
    status_code = 503
    code = ErrorCodes.STORAGE_UNAVAILABLE
