"""
Standardized error response format.

Successful responses return the resource itself (a composed QR code, a list
of them, or the raw platform payload). Errors that carry a body use:

    {
        "error": {
            "code": "ERROR_CODE",
            "message": "Human-readable message",
            "details": {...}  # Optional extra context
        },
        "status": "error"
    }

ERROR CODES:
    - AUTHENTICATION_REQUIRED: No valid Shopify session
    - NOT_FOUND: QR code not found for this shop
    - VALIDATION_ERROR: Request data failed validation
    - DATABASE_ERROR: The record store failed
    - UPSTREAM_ERROR: The Shopify Admin API failed
    - INTERNAL_ERROR: Anything else
"""

from typing import Any, Optional

from pydantic import BaseModel


class ErrorDetail(BaseModel):
    """Structured error information."""
    code: str
    message: str
    details: Optional[dict[str, Any]] = None


class ErrorCodes:
    """Standard error codes for API responses."""

    # 401
    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"

    # 404
    NOT_FOUND = "NOT_FOUND"

    # 422
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # 500 / 502
    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"


def error_response(
    code: str,
    message: str,
    details: Optional[dict] = None,
) -> dict:
    """
    Create a standardized error response dict.
    """
    response = {
        "error": ErrorDetail(code=code, message=message).model_dump(exclude_none=True),
        "status": "error",
    }
    if details:
        response["error"]["details"] = details
    return response
