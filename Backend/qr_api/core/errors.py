"""
Application error taxonomy.

Every failure the API reports is one of these tagged kinds. The exception
handlers registered in main.py map each kind to its own status code and
body, so a request with bad input is never reported the same way as a
database outage.

    KIND              STATUS   BODY
    unauthenticated   401      plain text
    not_found         404      empty
    validation        422      error envelope
    storage           500      error envelope
    platform          502      error envelope
"""

from typing import Any, Optional, Union

from fastapi import status

from .responses import ErrorCodes


SESSION_NOT_FOUND_MESSAGE = "Could not find a Shopify session"


class QRCodeAppError(Exception):
    """Base class for all errors surfaced at the request boundary."""

    kind: str = "internal"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = ErrorCodes.INTERNAL_ERROR

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ShopSessionNotFound(QRCodeAppError):
    """No valid session token, or no stored session for the shop it names."""

    kind = "unauthenticated"
    status_code = status.HTTP_401_UNAUTHORIZED
    code = ErrorCodes.AUTHENTICATION_REQUIRED

    def __init__(self, reason: str = SESSION_NOT_FOUND_MESSAGE):
        # reason is for logs only; the client always sees the fixed message
        self.reason = reason
        super().__init__(SESSION_NOT_FOUND_MESSAGE)


class QRCodeNotFound(QRCodeAppError):
    """The id does not exist, is not a valid id, or belongs to another shop."""

    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    code = ErrorCodes.NOT_FOUND

    def __init__(self, qr_code_id: Union[int, str]):
        self.qr_code_id = qr_code_id
        super().__init__(f"QR code {qr_code_id} not found")


class QRCodeValidationError(QRCodeAppError):
    kind = "validation"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = ErrorCodes.VALIDATION_ERROR


class StorageError(QRCodeAppError):
    kind = "storage"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = ErrorCodes.DATABASE_ERROR


class PlatformError(QRCodeAppError):
    """The Shopify Admin API call failed or returned something unusable."""

    kind = "platform"
    status_code = status.HTTP_502_BAD_GATEWAY
    code = ErrorCodes.UPSTREAM_ERROR
