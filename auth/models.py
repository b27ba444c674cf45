# auth/models.py
"""
User, session and operation result models.

Sessions are owned by the identity provider; these are read-only views
relayed through the auth service.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from auth.config import SESSION_EXPIRY_THRESHOLD


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class User:
    """
    Authenticated principal as reported by the identity provider.

    Attributes:
        id: Provider user ID
        email: Normalized email address
        email_confirmed_at: When the email was verified (None if unverified)
        created_at: Account creation timestamp
    """
    id: str
    email: str
    email_confirmed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_email_confirmed(self) -> bool:
        return self.email_confirmed_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "email_confirmed": self.is_email_confirmed,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class SessionTokens:
    """Access/refresh token pair."""
    access_token: str
    refresh_token: str


@dataclass
class Session:
    """
    Provider-issued session.

    Attributes:
        access_token: Short-lived bearer token
        refresh_token: Token used to renew the session
        expires_at: Access token expiry (timezone-aware UTC)
        user: Back-reference to the authenticated principal
    """
    access_token: str
    refresh_token: str
    expires_at: datetime
    user: Optional[User] = None

    def tokens(self) -> SessionTokens:
        return SessionTokens(self.access_token, self.refresh_token)

    def time_remaining(self, now: Optional[datetime] = None) -> timedelta:
        """Time until expiry, never negative."""
        remaining = self.expires_at - (now or utcnow())
        return max(remaining, timedelta(0))

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def is_expiring_soon(
        self,
        now: Optional[datetime] = None,
        threshold: timedelta = SESSION_EXPIRY_THRESHOLD,
    ) -> bool:
        remaining = self.time_remaining(now)
        return timedelta(0) < remaining <= threshold


# =============================================================================
# Operation results
# =============================================================================


@dataclass(frozen=True)
class SignupResult:
    """requires_confirmation is True when the provider issued no session."""
    requires_confirmation: bool
    user: Optional[User]
    session: Optional[SessionTokens]


@dataclass(frozen=True)
class LoginResult:
    user: User
    session: SessionTokens


@dataclass(frozen=True)
class SuccessResult:
    """Result of logout, reset-request and password update/change."""
    success: bool = True


@dataclass(frozen=True)
class SessionSummary:
    expires_at: datetime
    is_expiring_soon: bool

    def to_dict(self) -> dict:
        return {
            "expires_at": self.expires_at.isoformat(),
            "is_expiring_soon": self.is_expiring_soon,
        }


@dataclass(frozen=True)
class SessionStatus:
    """Result of a session check. Not being logged in is not an error."""
    authenticated: bool
    user: Optional[User] = None
    session: Optional[SessionSummary] = None


@dataclass(frozen=True)
class RefreshedSession:
    access_token: str
    refresh_token: str
    expires_at: datetime


@dataclass(frozen=True)
class RefreshResult:
    session: RefreshedSession


@dataclass(frozen=True)
class VerifyResult:
    user: Optional[User]
    session: Optional[SessionTokens]
