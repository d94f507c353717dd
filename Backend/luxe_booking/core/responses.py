"""
Standardized Error Response Module

Provides consistent error formatting across all API endpoints.

RESPONSE FORMAT:
    Error:
        {
            "message": "Human-readable message",
            "error": {
                "code": "ERROR_CODE",
                "message": "Human-readable message",
                "details": {...}  # Optional extra context
            },
            "status": "error"
        }

    Successful responses return the resource itself (booking, slot list,
    stats) without a wrapper, matching what booking front-ends already consume.

ERROR CODES:
    - VALIDATION_ERROR: Request data failed validation (400)
    - INVALID_TRANSITION: Status change not allowed by the lifecycle (400)
    - NOT_FOUND: Referenced booking, service or staff member absent (404)
    - SLOT_CONFLICT: Active booking already occupies the interval (409)
    - NOTIFICATION_FAILED: Email collaborator rejected the message (502)
    - STORAGE_UNAVAILABLE: Storage timed out or is unreachable (503)
    - INTERNAL_ERROR: Server-side error (500)
"""

from typing import Any, Optional

from pydantic import BaseModel


class ErrorDetail(BaseModel):
    """Structured error information."""
    code: str
    message: str
    details: Optional[dict[str, Any]] = None


# ============================================================================
# COMMON ERROR CODES
# ============================================================================

class ErrorCodes:
    """Standard error codes for API responses."""

    # Validation errors (400)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_TRANSITION = "INVALID_TRANSITION"

    # Not found errors (404)
    NOT_FOUND = "NOT_FOUND"

    # Conflict errors (409)
    SLOT_CONFLICT = "SLOT_CONFLICT"

    # Upstream / storage errors (502, 503)
    NOTIFICATION_FAILED = "NOTIFICATION_FAILED"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"

    # Server errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def error_response(
    code: str,
    message: str,
    details: Optional[dict] = None,
) -> dict:
    """
    Create a standardized error response dict.

    The top-level ``message`` mirrors ``error.message`` for clients that only
    read a flat message.
    """
    error = ErrorDetail(code=code, message=message, details=details or None)
    response = {
        "message": message,
        "error": error.model_dump(exclude_none=True),
        "status": "error",
    }
    return response
