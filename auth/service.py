# auth/service.py
"""
Authentication service.

Orchestrates every auth operation against the identity provider:
- Sign up, log in, log out
- Password reset request, update (token or session) and change
- Session status, refresh and email verification

Each operation delegates to the provider, classifies provider errors into
the error taxonomy, logs a redacted event and returns a typed result.
Emails are masked in logs; passwords and tokens are never logged.
"""

from __future__ import annotations

import functools
import logging
from typing import Optional

from auth.config import AuthConfig
from auth.email_utils import mask_email, normalize_email
from auth.errors import (
    AuthServiceError,
    EmailNotConfirmedError,
    ExpiredTokenError,
    InvalidCredentialsError,
    ServiceError,
    SessionError,
)
from auth.models import (
    LoginResult,
    RefreshedSession,
    RefreshResult,
    SessionStatus,
    SessionSummary,
    SignupResult,
    SuccessResult,
    VerifyResult,
)
from auth.providers.base import IdentityProvider, IdentityProviderError
from auth.providers.classifier import ErrorClassifier

_logger = logging.getLogger(__name__)

DEFAULT_RECOVERY_TOKEN_TYPE = "recovery"
DEFAULT_VERIFY_TOKEN_TYPE = "email"
SESSION_EXPIRED_MESSAGE = "Session has expired. Please log in again."


def _wraps_unexpected(operation: str):
    """Re-raise AuthServiceError as-is; wrap anything else into ServiceError."""

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except AuthServiceError:
                raise
            except Exception as e:
                _logger.error(f"[{operation}] Unexpected error: {type(e).__name__}: {e}")
                raise ServiceError(
                    f"An unexpected error occurred during {operation.replace('_', ' ')}",
                    cause=e,
                ) from e

        return wrapper

    return decorator


class AuthService:
    """
    Auth orchestration over one identity provider client.

    Args:
        config: Auth settings (explicitly passed, never global)
        provider: Provider client for the current request
        classifier: Error predicates (defaults to the provider's)
    """

    def __init__(
        self,
        config: AuthConfig,
        provider: IdentityProvider,
        classifier: Optional[ErrorClassifier] = None,
    ):
        self.config = config
        self.provider = provider
        self.classifier = classifier or provider.classifier

    @_wraps_unexpected("signup")
    async def signup(
        self, email: str, password: str, redirect_url: Optional[str] = None
    ) -> SignupResult:
        """
        Create an account.

        Returns:
            SignupResult; requires_confirmation is True when the provider
            issued no session (the caller must not treat it as a login)

        Raises:
            ServiceError: Provider rejected the signup, including "user
                already exists" (never confirmed to the caller)
        """
        email = normalize_email(email)
        _logger.info(f"[signup] Signup attempt for {mask_email(email)}")

        try:
            response = await self.provider.sign_up(
                email, password, redirect_to=redirect_url or self.config.email_verify_url
            )
        except IdentityProviderError as e:
            _logger.error(f"[signup] Signup failed for {mask_email(email)}: {e.message}")
            # rejections are answered generically upstream, outages are not
            outage = e.status is not None and e.status >= 500
            raise ServiceError(
                "Failed to create account", cause=e, http_status=None if outage else 400
            ) from e

        requires_confirmation = response.session is None
        if requires_confirmation:
            _logger.info(f"[signup] Signup successful for {mask_email(email)}, verification email sent")
        else:
            _logger.info(f"[signup] Signup successful for {mask_email(email)}, user auto-confirmed")

        return SignupResult(
            requires_confirmation=requires_confirmation,
            user=response.user,
            session=response.session.tokens() if response.session else None,
        )

    @_wraps_unexpected("login")
    async def login(self, email: str, password: str) -> LoginResult:
        """
        Authenticate with email and password.

        Raises:
            EmailNotConfirmedError: Account exists but is unverified
            InvalidCredentialsError: Any other rejection (wrong password and
                unknown email are indistinguishable)
            ServiceError: Provider reported success without user/session
        """
        email = normalize_email(email)
        _logger.info(f"[login] Login attempt for {mask_email(email)}")

        try:
            response = await self.provider.sign_in_with_password(email, password)
        except IdentityProviderError as e:
            _logger.warning(f"[login] Login failed for {mask_email(email)}: {e.message}")
            if self.classifier.is_email_unconfirmed(e):
                raise EmailNotConfirmedError(cause=e) from e
            raise InvalidCredentialsError(cause=e) from e

        if response.user is None or response.session is None:
            _logger.error(f"[login] Login succeeded but missing user or session for {mask_email(email)}")
            raise ServiceError("Login succeeded but session data is incomplete")

        _logger.info(f"[login] Login successful for {mask_email(email)}")
        return LoginResult(user=response.user, session=response.session.tokens())

    async def logout(self) -> SuccessResult:
        """End the current session. Always succeeds, with or without a session."""
        user = None
        try:
            user = await self.provider.get_user()
        except Exception as e:
            _logger.debug(f"[logout] Could not read current user: {e}")

        try:
            await self.provider.sign_out()
        except Exception as e:
            _logger.error(f"[logout] Logout error: {e}")

        if user is not None:
            _logger.info(f"[logout] User logged out: {user.id}")
        else:
            _logger.info("[logout] Logout request (no active session)")
        return SuccessResult()

    async def reset_password(
        self, email: str, redirect_url: Optional[str] = None
    ) -> SuccessResult:
        """
        Send a password reset link.

        Always succeeds so callers cannot tell registered emails from
        unregistered ones or from provider failures.
        """
        email = normalize_email(email)
        _logger.info(f"[reset_password] Password reset requested for {mask_email(email)}")

        try:
            await self.provider.reset_password_for_email(
                email, redirect_to=redirect_url or self.config.password_reset_url
            )
        except Exception as e:
            _logger.error(f"[reset_password] Reset error for {mask_email(email)}: {e}")

        return SuccessResult()

    @_wraps_unexpected("update_password")
    async def update_password(
        self,
        new_password: str,
        token_hash: Optional[str] = None,
        token_type: Optional[str] = None,
    ) -> SuccessResult:
        """
        Set a new password, then end the session that performed the change.

        A one-time token, when supplied, takes priority over any existing
        session. Sign-out after a successful update is best-effort.

        Raises:
            ExpiredTokenError: Token recognized but expired
            ServiceError: Token rejected ("Authentication failed"), no
                session ("Authentication required") or update failed
            SessionError: Provider rejected the session during the update
        """
        if token_hash:
            await self._authenticate_with_token(token_hash, token_type or DEFAULT_RECOVERY_TOKEN_TYPE)
        else:
            await self._authenticate_with_session()

        try:
            user = await self.provider.update_user_password(new_password)
        except IdentityProviderError as e:
            _logger.error(f"[update_password] Password update failed: {e.message}")
            if self.classifier.is_session_error(e):
                raise SessionError(cause=e) from e
            raise ServiceError("Failed to update password", cause=e, http_status=400) from e

        who = mask_email(user.email) if user is not None else "unknown user"
        _logger.info(f"[update_password] Password updated for {who}")

        try:
            await self.provider.sign_out()
        except Exception as e:
            _logger.warning(f"[update_password] Sign-out after password update failed: {e}")

        return SuccessResult()

    async def _authenticate_with_token(self, token_hash: str, token_type: str) -> None:
        try:
            await self.provider.verify_otp(token_hash, token_type)
        except IdentityProviderError as e:
            _logger.warning(f"[update_password] Token verification failed: {e.message}")
            if self.classifier.is_expired_token(e):
                raise ExpiredTokenError(cause=e) from e
            raise ServiceError("Authentication failed", cause=e, http_status=401) from e

    async def _authenticate_with_session(self) -> None:
        try:
            user = await self.provider.get_user()
        except IdentityProviderError as e:
            _logger.warning(f"[update_password] Session check failed: {e.message}")
            raise ServiceError("Authentication required", cause=e, http_status=401) from e

        if user is None:
            _logger.warning("[update_password] No active session")
            raise ServiceError("Authentication required", http_status=401)

    @_wraps_unexpected("change_password")
    async def change_password(self, current_password: str, new_password: str) -> SuccessResult:
        """
        Change the password of the logged-in user.

        Re-verifies the current password, then updates through the session
        path (which also ends the session).

        Raises:
            ServiceError: Not logged in ("Authentication required")
            InvalidCredentialsError: Current password is wrong
        """
        status = await self.get_session()
        if not status.authenticated or status.user is None or not status.user.email:
            raise ServiceError("Authentication required", http_status=401)

        email = status.user.email
        _logger.info(f"[change_password] Password change requested for {mask_email(email)}")

        try:
            await self.provider.sign_in_with_password(email, current_password)
        except IdentityProviderError as e:
            _logger.warning(f"[change_password] Current password rejected for {mask_email(email)}")
            raise InvalidCredentialsError("Current password is incorrect", cause=e) from e

        return await self.update_password(new_password)

    @_wraps_unexpected("get_session")
    async def get_session(self) -> SessionStatus:
        """
        Report the current session.

        Not being logged in is a normal result (authenticated=False); only
        genuine provider failures raise ServiceError.
        """
        session = await self.provider.get_session()

        if session is None:
            _logger.info("[get_session] Session status check: not authenticated")
            return SessionStatus(authenticated=False)

        user = session.user
        _logger.info(
            f"[get_session] Session status check: authenticated as {user.id if user else 'unknown'}"
        )
        return SessionStatus(
            authenticated=True,
            user=user,
            session=SessionSummary(
                expires_at=session.expires_at,
                is_expiring_soon=session.is_expiring_soon(threshold=self.config.expiry_threshold),
            ),
        )

    async def refresh_session(self) -> RefreshResult:
        """
        Renew the current session.

        Raises:
            ServiceError: On any failure; the user must log in again
        """
        _logger.info("[refresh_session] Session refresh requested")
        try:
            session = await self.provider.refresh_session()
        except Exception as e:
            _logger.error(f"[refresh_session] Refresh failed: {e}")
            raise ServiceError(SESSION_EXPIRED_MESSAGE, cause=e, http_status=401) from e

        if session is None:
            _logger.error("[refresh_session] No session returned after refresh")
            raise ServiceError(SESSION_EXPIRED_MESSAGE, http_status=401)

        _logger.info(f"[refresh_session] Session refreshed, expires at {session.expires_at.isoformat()}")
        return RefreshResult(
            session=RefreshedSession(
                access_token=session.access_token,
                refresh_token=session.refresh_token,
                expires_at=session.expires_at,
            )
        )

    @_wraps_unexpected("verify_email")
    async def verify_email(
        self,
        token_hash: Optional[str] = None,
        token_type: Optional[str] = None,
        code: Optional[str] = None,
        code_verifier: Optional[str] = None,
    ) -> VerifyResult:
        """
        Confirm an email address from a verification link.

        Supports one-time tokens (token_hash + type) and PKCE codes.

        Raises:
            ExpiredTokenError: Link recognized but expired
            ServiceError: Missing or invalid token
        """
        if token_hash:
            _logger.info("[verify_email] Verification attempt via OTP")
            call = self.provider.verify_otp(token_hash, token_type or DEFAULT_VERIFY_TOKEN_TYPE)
        elif code:
            _logger.info("[verify_email] Verification attempt via PKCE")
            call = self.provider.exchange_code_for_session(code, code_verifier)
        else:
            _logger.warning("[verify_email] Missing token or code in verification request")
            raise ServiceError("Missing verification token", http_status=400)

        try:
            response = await call
        except IdentityProviderError as e:
            _logger.warning(f"[verify_email] Verification error: {e.message}")
            if self.classifier.is_expired_token(e):
                raise ExpiredTokenError(cause=e) from e
            raise ServiceError("Invalid verification token", cause=e, http_status=400) from e

        _logger.info("[verify_email] Verification successful")
        return VerifyResult(
            user=response.user,
            session=response.session.tokens() if response.session else None,
        )
