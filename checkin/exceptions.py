"""
Wedding Check-In — Custom Exception Hierarchy
===============================================

What:  Application-specific exceptions for the check-in QR workflow.
How:   Each exception carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by the check-in service and middleware; caught by global handlers.

Exception Hierarchy:
    CheckInServiceError (base)
    ├── ConfigurationError       → 500 (signing secret missing/placeholder)
    ├── InvalidQRCodeError       → 400 (scanned data could not be read)
    ├── ValidationError          → 400 (request input the client can fix)
    ├── QRGenerationError        → 500 (image rendering failed)
    └── RateLimitExceededError   → 429 Too Many Requests

Note what is NOT here: an invalid or expired check-in code. That is an
everyday outcome at the check-in desk and is returned as data
(CheckInValidation), so staff can read the reasons and check the guest in
manually.
"""

from typing import Any, Dict, Optional


class CheckInServiceError(Exception):
    """
    Base exception for all check-in service errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned for 5xx errors)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ConfigurationError(CheckInServiceError):
    """
    Raised when the signing secret is missing or still the placeholder.

    When:    Before any code is signed or verified.
    HTTP:    500 Internal Server Error

    Not retryable: the operator has to set QR_CODE_SECRET and restart.
    """

    def __init__(
        self,
        message: str = "QR_CODE_SECRET environment variable must be set to a secure value",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class InvalidQRCodeError(CheckInServiceError):
    """
    Raised when scanned data cannot be decoded.

    What:    Malformed base64, non-UTF-8 bytes, broken JSON, a JSON value that
             is not an object, or a scanned URL without a `data` parameter.
    HTTP:    400 Bad Request

    Kept separate from validation results so the UI can say "could not read
    this code" rather than "this code is invalid or expired".
    """

    def __init__(
        self,
        message: str = "Invalid QR code data",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ValidationError(CheckInServiceError):
    """
    Raised when client input fails validation.

    When:    Guest record without an ID, unusable render options.
    HTTP:    400 Bad Request
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class QRGenerationError(CheckInServiceError):
    """
    Raised when the QR image could not be rendered.

    When:    The URL is too long for the largest QR version at the requested
             error-correction level, or Pillow fails to encode the PNG.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "Failed to generate QR code",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(CheckInServiceError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP:    429 Too Many Requests, with a Retry-After header.
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
