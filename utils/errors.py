from http import HTTPStatus
from typing import Any, Dict, Optional


class AppError(Exception):
    """
    Base class for every expected failure raised by the application.

    Each subclass carries the HTTP status it surfaces as, so the API layer
    can turn any of them into a response envelope without a lookup table.

    Attributes:
        message (str): Human-readable description of the failure
        status_code (HTTPStatus): HTTP status reported to the client
        details (Dict[str, Any]): Optional structured context for logging
    """
    status_code: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details: Dict[str, Any] = details
        super().__init__(self.message)


class ValidationError(AppError):
    """Malformed input shape, rejected before reaching core logic."""
    status_code = HTTPStatus.BAD_REQUEST
    default_message = "Invalid input data"


class ParseError(AppError):
    """Uploaded spreadsheet is unreadable or holds no data rows."""
    status_code = HTTPStatus.BAD_REQUEST
    default_message = "Failed to process Excel file"


class NotFoundError(AppError):
    status_code = HTTPStatus.NOT_FOUND
    default_message = "Resource not found"


class ConflictError(AppError):
    """Duplicate membership or invitation."""
    status_code = HTTPStatus.CONFLICT
    default_message = "Resource already exists"


class ForbiddenError(AppError):
    status_code = HTTPStatus.FORBIDDEN
    default_message = "You do not have permission to perform this action"


class InvalidTokenError(AppError):
    """Bad signature, expired token, or invitation no longer pending."""
    status_code = HTTPStatus.BAD_REQUEST
    default_message = "Invalid invitation token"


class AuthenticationError(AppError):
    status_code = HTTPStatus.UNAUTHORIZED
    default_message = "Authentication required"
