"""
Identity provider interface.

The identity provider is the system of record for credentials, sessions
and one-time tokens. Adapters translate a concrete backend into this
contract; the auth service never talks to a backend directly.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from auth.models import Session, User
from auth.providers.classifier import ErrorClassifier, SupabaseErrorClassifier


def generate_code_verifier() -> str:
    """Random PKCE code verifier (RFC 7636 allows 43-128 unreserved chars)."""
    return secrets.token_urlsafe(48)


def code_challenge(verifier: str) -> str:
    """S256 challenge for a PKCE code verifier."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


class IdentityProviderError(Exception):
    """
    Error reported by an identity provider.

    Attributes:
        message: Provider's human-readable message
        code: Optional machine code (e.g. "email_not_confirmed")
        status: Optional HTTP-like status
    """

    def __init__(self, message: str, code: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status

    def __repr__(self) -> str:
        return (
            f"IdentityProviderError(message={self.message!r}, "
            f"code={self.code!r}, status={self.status!r})"
        )


@dataclass
class AuthResponse:
    """Success payload of sign-up / sign-in / verification calls."""
    user: Optional[User] = None
    session: Optional[Session] = None


class IdentityProvider(ABC):
    """
    Abstract base class for identity providers.

    One instance serves one request. `session` holds the session the
    request arrived with and is updated by sign-in, verification, refresh
    and sign-out; the web layer writes it back to cookies afterwards.

    `code_verifier` is set by a sign-up that started a PKCE flow; the web
    layer keeps it in a cookie until the emailed code is exchanged.
    """

    classifier: ErrorClassifier = SupabaseErrorClassifier()

    def __init__(self, session: Optional[Session] = None):
        self.session = session
        self.code_verifier: Optional[str] = None

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Short identifier of the backend."""
        pass

    @abstractmethod
    async def sign_up(
        self, email: str, password: str, redirect_to: Optional[str] = None
    ) -> AuthResponse:
        """Create an account. Session is None when email confirmation is required."""
        pass

    @abstractmethod
    async def sign_in_with_password(self, email: str, password: str) -> AuthResponse:
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        """End the current session. Clears `session` even if the backend call fails."""
        pass

    @abstractmethod
    async def reset_password_for_email(
        self, email: str, redirect_to: Optional[str] = None
    ) -> None:
        pass

    @abstractmethod
    async def verify_otp(self, token_hash: str, token_type: str) -> AuthResponse:
        """Verify a one-time token; on success the returned session becomes current."""
        pass

    @abstractmethod
    async def exchange_code_for_session(
        self, code: str, code_verifier: Optional[str] = None
    ) -> AuthResponse:
        pass

    @abstractmethod
    async def update_user_password(self, password: str) -> User:
        """Change the password of the current session's user."""
        pass

    @abstractmethod
    async def get_user(self) -> Optional[User]:
        """
        Validate the current session with the backend.

        Returns None when there is no session at all; raises
        IdentityProviderError when the backend rejects it.
        """
        pass

    @abstractmethod
    async def get_session(self) -> Optional[Session]:
        """Current session, or None when not authenticated."""
        pass

    @abstractmethod
    async def refresh_session(self) -> Session:
        pass
