"""
In-memory identity provider for development and testing.

MemoryIdentityBackend plays the part of the external identity service
(accounts, sessions, one-time tokens, outgoing email links) and answers
with the same error codes Supabase does, so the default classifier
applies unchanged. MemoryIdentityProvider is the per-request client.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from auth.email_utils import mask_email, normalize_email
from auth.models import Session, User, utcnow
from auth.password import BCRYPT_ROUNDS, hash_password, verify_password
from auth.providers.base import (
    AuthResponse,
    IdentityProvider,
    IdentityProviderError,
    code_challenge,
    generate_code_verifier,
)

_logger = logging.getLogger(__name__)

SIGNUP_TOKEN_TYPES = ("email", "signup")
RECOVERY_TOKEN_TYPE = "recovery"


@dataclass
class _Account:
    user: User
    password_hash: str


@dataclass
class _OneTimeToken:
    user_id: str
    token_type: str
    expires_at: datetime


@dataclass
class SentEmail:
    """An email link the backend would have delivered."""
    kind: str
    email: str
    token_hash: str
    redirect_to: Optional[str] = None
    code: Optional[str] = None


class MemoryIdentityBackend:
    """
    Process-local stand-in for the identity service.

    Args:
        require_email_confirmation: New accounts must verify before login
        session_ttl: Access token lifetime
        token_ttl: One-time token lifetime
        bcrypt_rounds: Work factor for stored password hashes
        clock: Returns the current time (timezone-aware UTC)
    """

    def __init__(
        self,
        require_email_confirmation: bool = True,
        session_ttl: timedelta = timedelta(hours=1),
        token_ttl: timedelta = timedelta(hours=1),
        bcrypt_rounds: int = BCRYPT_ROUNDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.require_email_confirmation = require_email_confirmation
        self.session_ttl = session_ttl
        self.token_ttl = token_ttl
        self.bcrypt_rounds = bcrypt_rounds
        self.clock = clock

        self._accounts: Dict[str, _Account] = {}
        self._sessions: Dict[str, Session] = {}
        self._refresh_tokens: Dict[str, str] = {}
        self._tokens: Dict[str, _OneTimeToken] = {}
        self._codes: Dict[str, Tuple[str, Optional[str]]] = {}
        self.outbox: List[SentEmail] = []

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    def create_user(self, email: str, password: str, confirmed: bool = False) -> User:
        email = normalize_email(email)
        if email in self._accounts:
            raise IdentityProviderError("User already registered", "user_already_exists", 422)

        now = self.clock()
        user = User(
            id=str(uuid.uuid4()),
            email=email,
            email_confirmed_at=now if confirmed else None,
            created_at=now,
        )
        self._accounts[email] = _Account(user, hash_password(password, self.bcrypt_rounds))
        _logger.debug(f"[memory] Created user {mask_email(email)}")
        return user

    def find_user(self, email: str) -> Optional[User]:
        account = self._accounts.get(normalize_email(email))
        return account.user if account else None

    def _account_by_id(self, user_id: str) -> Optional[_Account]:
        for account in self._accounts.values():
            if account.user.id == user_id:
                return account
        return None

    def authenticate(self, email: str, password: str) -> User:
        account = self._accounts.get(normalize_email(email))
        if account is None or not verify_password(password, account.password_hash):
            raise IdentityProviderError("Invalid login credentials", "invalid_credentials", 400)
        if not account.user.is_email_confirmed:
            raise IdentityProviderError("Email not confirmed", "email_not_confirmed", 400)
        return account.user

    def set_password(self, user_id: str, password: str) -> User:
        account = self._account_by_id(user_id)
        if account is None:
            raise IdentityProviderError("User not found", "user_not_found", 404)
        if verify_password(password, account.password_hash):
            raise IdentityProviderError(
                "New password should be different from the old password.",
                "same_password",
                422,
            )
        account.password_hash = hash_password(password, self.bcrypt_rounds)
        return account.user

    def confirm_email(self, user_id: str) -> None:
        account = self._account_by_id(user_id)
        if account and account.user.email_confirmed_at is None:
            account.user.email_confirmed_at = self.clock()

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    def issue_session(self, user: User) -> Session:
        session = Session(
            access_token=secrets.token_urlsafe(32),
            refresh_token=secrets.token_urlsafe(24),
            expires_at=self.clock() + self.session_ttl,
            user=user,
        )
        self._sessions[session.access_token] = session
        self._refresh_tokens[session.refresh_token] = session.access_token
        return session

    def lookup_session(self, access_token: str) -> Session:
        """Validate an access token, as a backend does for every bearer call."""
        session = self._sessions.get(access_token)
        if session is None:
            raise IdentityProviderError("Session not found", "session_not_found", 401)
        if session.is_expired(self.clock()):
            raise IdentityProviderError("Invalid JWT: token is expired", "bad_jwt", 401)
        return session

    def revoke_user_sessions(self, user_id: str) -> int:
        revoked = [
            token for token, session in self._sessions.items()
            if session.user and session.user.id == user_id
        ]
        for access_token in revoked:
            self._drop_session(access_token)
        return len(revoked)

    def _drop_session(self, access_token: str) -> None:
        session = self._sessions.pop(access_token, None)
        if session is not None:
            self._refresh_tokens.pop(session.refresh_token, None)

    def refresh(self, refresh_token: str) -> Session:
        access_token = self._refresh_tokens.get(refresh_token)
        if access_token is None:
            raise IdentityProviderError(
                "Invalid Refresh Token: Refresh Token Not Found",
                "refresh_token_not_found",
                400,
            )
        old = self._sessions[access_token]
        self._drop_session(access_token)
        return self.issue_session(old.user)

    # -------------------------------------------------------------------------
    # One-time tokens and codes
    # -------------------------------------------------------------------------

    def issue_token(
        self,
        user: User,
        token_type: str,
        redirect_to: Optional[str] = None,
        code: Optional[str] = None,
    ) -> str:
        token_hash = secrets.token_hex(28)
        self._tokens[token_hash] = _OneTimeToken(
            user_id=user.id,
            token_type=token_type,
            expires_at=self.clock() + self.token_ttl,
        )
        self.outbox.append(SentEmail(token_type, user.email, token_hash, redirect_to, code))
        return token_hash

    def consume_token(self, token_hash: str, token_type: str) -> User:
        token = self._tokens.get(token_hash)
        if token is None or not _token_types_match(token.token_type, token_type):
            raise IdentityProviderError("Token is invalid", "otp_invalid", 403)
        del self._tokens[token_hash]
        if self.clock() >= token.expires_at:
            raise IdentityProviderError("Token has expired", "otp_expired", 403)

        account = self._account_by_id(token.user_id)
        if account is None:
            raise IdentityProviderError("User not found", "user_not_found", 404)
        if token.token_type in SIGNUP_TOKEN_TYPES:
            self.confirm_email(account.user.id)
        return account.user

    def issue_code(self, user: User, challenge: Optional[str] = None) -> str:
        """Auth code for the PKCE flow, bound to `challenge` when given."""
        code = str(uuid.uuid4())
        self._codes[code] = (user.id, challenge)
        return code

    def consume_code(self, code: str, code_verifier: Optional[str] = None) -> User:
        user_id, challenge = self._codes.pop(code, (None, None))
        account = self._account_by_id(user_id) if user_id else None
        if account is None:
            raise IdentityProviderError("Invalid authorization code", "invalid_grant", 400)
        if challenge is not None and (
            not code_verifier or code_challenge(code_verifier) != challenge
        ):
            raise IdentityProviderError(
                "code challenge does not match previously saved code verifier",
                "bad_code_verifier",
                400,
            )
        self.confirm_email(account.user.id)
        return account.user


def _token_types_match(issued: str, presented: str) -> bool:
    if issued in SIGNUP_TOKEN_TYPES:
        return presented in SIGNUP_TOKEN_TYPES
    return issued == presented


class MemoryIdentityProvider(IdentityProvider):
    """Per-request client over a MemoryIdentityBackend."""

    def __init__(self, backend: MemoryIdentityBackend, session: Optional[Session] = None):
        super().__init__(session)
        self.backend = backend

    @property
    def source_name(self) -> str:
        return "memory"

    async def sign_up(
        self, email: str, password: str, redirect_to: Optional[str] = None
    ) -> AuthResponse:
        user = self.backend.create_user(
            email, password, confirmed=not self.backend.require_email_confirmation
        )
        if self.backend.require_email_confirmation:
            verifier = generate_code_verifier()
            code = self.backend.issue_code(user, code_challenge(verifier))
            self.backend.issue_token(user, "signup", redirect_to, code=code)
            self.code_verifier = verifier
            return AuthResponse(user=user, session=None)

        self.session = self.backend.issue_session(user)
        return AuthResponse(user=user, session=self.session)

    async def sign_in_with_password(self, email: str, password: str) -> AuthResponse:
        user = self.backend.authenticate(email, password)
        self.session = self.backend.issue_session(user)
        return AuthResponse(user=user, session=self.session)

    async def sign_out(self) -> None:
        session, self.session = self.session, None
        if session is None:
            return
        stored = self.backend.lookup_session(session.access_token)
        self.backend.revoke_user_sessions(stored.user.id)

    async def reset_password_for_email(
        self, email: str, redirect_to: Optional[str] = None
    ) -> None:
        user = self.backend.find_user(email)
        if user is not None:
            self.backend.issue_token(user, RECOVERY_TOKEN_TYPE, redirect_to)

    async def verify_otp(self, token_hash: str, token_type: str) -> AuthResponse:
        user = self.backend.consume_token(token_hash, token_type)
        self.session = self.backend.issue_session(user)
        return AuthResponse(user=user, session=self.session)

    async def exchange_code_for_session(
        self, code: str, code_verifier: Optional[str] = None
    ) -> AuthResponse:
        user = self.backend.consume_code(code, code_verifier)
        self.session = self.backend.issue_session(user)
        return AuthResponse(user=user, session=self.session)

    async def update_user_password(self, password: str) -> User:
        if self.session is None:
            raise IdentityProviderError("Auth session missing!", "no_session", 401)
        stored = self.backend.lookup_session(self.session.access_token)
        return self.backend.set_password(stored.user.id, password)

    async def get_user(self) -> Optional[User]:
        if self.session is None:
            return None
        return self.backend.lookup_session(self.session.access_token).user

    async def get_session(self) -> Optional[Session]:
        if self.session is None:
            return None
        try:
            self.session = self.backend.lookup_session(self.session.access_token)
        except IdentityProviderError as e:
            if e.code != "bad_jwt":
                self.session = None
                return None
            try:
                self.session = self.backend.refresh(self.session.refresh_token)
            except IdentityProviderError:
                self.session = None
        return self.session

    async def refresh_session(self) -> Session:
        if self.session is None:
            raise IdentityProviderError("Auth session missing!", "no_session", 400)
        self.session = self.backend.refresh(self.session.refresh_token)
        return self.session
