# auth/errors.py
"""
Error taxonomy for authentication operations.

Every failing auth operation raises exactly one AuthServiceError subclass.
Provider-specific exceptions never escape the service layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional


class ErrorKind(str, Enum):
    """Closed set of failure kinds surfaced to callers."""

    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    EMAIL_NOT_CONFIRMED = "EMAIL_NOT_CONFIRMED"
    SESSION_ERROR = "SESSION_ERROR"
    EXPIRED_TOKEN = "EXPIRED_TOKEN"
    SERVICE_ERROR = "SERVICE_ERROR"


@dataclass(frozen=True)
class ErrorDetail:
    """Field-level error detail (e.g. a form field that failed validation)."""

    field: str
    message: str

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message}


class AuthServiceError(Exception):
    """
    Base authentication error.

    Attributes:
        kind: One of the ErrorKind values
        message: Human-readable, safe to show to the user
        cause: Original provider error or exception (for logs only)
        details: Optional field-level details
        http_status: Status code the web layer should answer with
    """

    kind: ErrorKind = ErrorKind.SERVICE_ERROR
    default_message: str = "An unexpected error occurred"
    default_status: int = 500

    def __init__(
        self,
        message: Optional[str] = None,
        cause: Optional[Any] = None,
        details: Optional[List[ErrorDetail]] = None,
        http_status: Optional[int] = None,
    ):
        self.message = message or self.default_message
        super().__init__(self.message)
        self.cause = cause
        self.details = details
        self.http_status = http_status or self.default_status

    @property
    def code(self) -> str:
        return self.kind.value

    def to_dict(self) -> dict:
        """Standard error body for API responses."""
        error = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = [detail.to_dict() for detail in self.details]
        return {"success": False, "error": error}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.code}, message={self.message!r})"


class InvalidCredentialsError(AuthServiceError):
    """Wrong password and unknown email, deliberately indistinguishable."""

    kind = ErrorKind.INVALID_CREDENTIALS
    default_message = "Invalid email or password"
    default_status = 401


class EmailNotConfirmedError(AuthServiceError):
    """Account exists but the email address is not verified yet."""

    kind = ErrorKind.EMAIL_NOT_CONFIRMED
    default_message = "Please verify your email before logging in"
    default_status = 403


class SessionError(AuthServiceError):
    """Current session is invalid or expired."""

    kind = ErrorKind.SESSION_ERROR
    default_message = "Session has expired. Please log in again."
    default_status = 401


class ExpiredTokenError(AuthServiceError):
    """One-time token recognized but expired."""

    kind = ErrorKind.EXPIRED_TOKEN
    default_message = "Verification token has expired"
    default_status = 401


class ServiceError(AuthServiceError):
    """Catch-all for provider, network and unexpected failures."""

    kind = ErrorKind.SERVICE_ERROR
