"""
Provider error classification.

The service maps provider errors onto the error taxonomy through these
predicates. Swapping providers means supplying another classifier rather
than touching the service.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from auth.providers.base import IdentityProviderError

SESSION_ERROR_CODES = frozenset(
    {"session_expired", "invalid_session", "no_session", "session_not_found", "bad_jwt"}
)


def _message(err: "IdentityProviderError") -> str:
    return (getattr(err, "message", None) or str(err) or "").lower()


def _code(err: "IdentityProviderError") -> Optional[str]:
    return getattr(err, "code", None)


class ErrorClassifier(ABC):
    """Named predicates over provider errors."""

    @abstractmethod
    def is_email_unconfirmed(self, err: Optional["IdentityProviderError"]) -> bool:
        pass

    @abstractmethod
    def is_expired_token(self, err: Optional["IdentityProviderError"]) -> bool:
        pass

    @abstractmethod
    def is_session_error(self, err: Optional["IdentityProviderError"]) -> bool:
        pass


class SupabaseErrorClassifier(ErrorClassifier):
    """Rules for Supabase (GoTrue) error codes and messages."""

    def is_email_unconfirmed(self, err: Optional["IdentityProviderError"]) -> bool:
        if err is None:
            return False
        return _code(err) == "email_not_confirmed" or (
            getattr(err, "status", None) == 400 and "not confirmed" in _message(err)
        )

    def is_expired_token(self, err: Optional["IdentityProviderError"]) -> bool:
        if err is None:
            return False
        return _code(err) == "otp_expired" or "expired" in _message(err)

    def is_session_error(self, err: Optional["IdentityProviderError"]) -> bool:
        if err is None:
            return False
        return _code(err) in SESSION_ERROR_CODES or "session" in _message(err)
