"""
Core module - configuration, database, error taxonomy, and response formatting.
"""
from .config import get_settings
from .db import get_session, Base, engine, AsyncSessionLocal
from .errors import (
    QRCodeAppError,
    ShopSessionNotFound,
    QRCodeNotFound,
    QRCodeValidationError,
    StorageError,
    PlatformError,
)
from .responses import (
    ErrorDetail,
    ErrorCodes,
    error_response,
)

__all__ = [
    # Config
    "get_settings",
    # Database
    "get_session",
    "Base",
    "engine",
    "AsyncSessionLocal",
    # Errors
    "QRCodeAppError",
    "ShopSessionNotFound",
    "QRCodeNotFound",
    "QRCodeValidationError",
    "StorageError",
    "PlatformError",
    # Responses
    "ErrorDetail",
    "ErrorCodes",
    "error_response",
]
