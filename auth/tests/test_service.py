# auth/tests/test_service.py
"""
Tests for the auth orchestration service.

Runs against the in-memory identity backend, with mocks where a test
needs a provider that misbehaves in a specific way.

Tests:
- Signup, login, logout
- Password reset request (enumeration protection)
- Password update state machine (token priority, sign-out afterwards)
- Password change
- Session status, refresh and email verification
"""

from __future__ import annotations

import logging
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest

from auth.config import AuthConfig
from auth.errors import (
    EmailNotConfirmedError,
    ErrorKind,
    ExpiredTokenError,
    InvalidCredentialsError,
    ServiceError,
    SessionError,
)
from auth.models import User, utcnow
from auth.providers.base import AuthResponse, IdentityProvider, IdentityProviderError
from auth.providers.classifier import SupabaseErrorClassifier
from auth.providers.memory import MemoryIdentityBackend, MemoryIdentityProvider
from auth.service import AuthService

EMAIL = "user@example.com"
PASSWORD = "Correct-Horse-42"
NEW_PASSWORD = "Brand-New-Pass-7"


# =============================================================================
# Fixtures
# =============================================================================


class FakeClock:
    """Controllable clock for the in-memory backend."""

    def __init__(self):
        self.now = utcnow()

    def __call__(self):
        return self.now

    def advance(self, delta: timedelta):
        self.now += delta


@pytest.fixture
def config():
    return AuthConfig(app_url="https://favs.example.com")


@pytest.fixture
def backend():
    return MemoryIdentityBackend(bcrypt_rounds=4)


@pytest.fixture
def confirmed_user(backend):
    return backend.create_user(EMAIL, PASSWORD, confirmed=True)


def make_service(config, backend, session=None):
    return AuthService(config, MemoryIdentityProvider(backend, session=session))


def mock_service(config):
    """Service over a fully mocked provider; configure the provider per test."""
    provider = MagicMock(spec=IdentityProvider)
    return AuthService(config, provider, classifier=SupabaseErrorClassifier()), provider


@pytest.fixture
def logged_in(config, backend, confirmed_user):
    """Provider session of a freshly logged-in user."""
    return backend.issue_session(confirmed_user)


# =============================================================================
# Signup
# =============================================================================


class TestSignup:
    """Tests for signup()."""

    @pytest.mark.asyncio
    async def test_signup_requires_confirmation(self, config, backend):
        """No session from the provider means the user must confirm first."""
        result = await make_service(config, backend).signup(EMAIL, PASSWORD)

        assert result.requires_confirmation is True
        assert result.session is None
        assert result.user.email == EMAIL
        assert backend.outbox[-1].kind == "signup"
        assert backend.outbox[-1].redirect_to == config.email_verify_url

    @pytest.mark.asyncio
    async def test_signup_auto_confirmed(self, config):
        backend = MemoryIdentityBackend(require_email_confirmation=False, bcrypt_rounds=4)
        result = await make_service(config, backend).signup(EMAIL, PASSWORD)

        assert result.requires_confirmation is False
        assert result.session is not None
        assert result.session.access_token

    @pytest.mark.asyncio
    async def test_signup_normalizes_email(self, config, backend):
        await make_service(config, backend).signup("  User@Example.COM ", PASSWORD)
        assert backend.find_user(EMAIL) is not None

    @pytest.mark.asyncio
    async def test_signup_custom_redirect(self, config, backend):
        await make_service(config, backend).signup(EMAIL, PASSWORD, redirect_url="https://favs.example.com/welcome")
        assert backend.outbox[-1].redirect_to == "https://favs.example.com/welcome"

    @pytest.mark.asyncio
    async def test_existing_user_is_service_error(self, config, backend, confirmed_user):
        """'Already registered' is not special-cased."""
        with pytest.raises(ServiceError) as exc_info:
            await make_service(config, backend).signup(EMAIL, PASSWORD)

        assert exc_info.value.kind == ErrorKind.SERVICE_ERROR
        assert exc_info.value.message == "Failed to create account"
        assert exc_info.value.http_status == 400

    @pytest.mark.asyncio
    async def test_provider_outage_keeps_server_status(self, config):
        service, provider = mock_service(config)
        provider.sign_up.side_effect = IdentityProviderError("Service unavailable", status=503)

        with pytest.raises(ServiceError) as exc_info:
            await service.signup(EMAIL, PASSWORD)

        assert exc_info.value.message == "Failed to create account"
        assert exc_info.value.http_status == 500

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_wrapped(self, config):
        service, provider = mock_service(config)
        provider.sign_up.side_effect = RuntimeError("connection reset")

        with pytest.raises(ServiceError) as exc_info:
            await service.signup(EMAIL, PASSWORD)

        assert "signup" in exc_info.value.message
        assert isinstance(exc_info.value.cause, RuntimeError)


# =============================================================================
# Login
# =============================================================================


class TestLogin:
    """Tests for login()."""

    @pytest.mark.asyncio
    async def test_login_success(self, config, backend, confirmed_user):
        service = make_service(config, backend)
        result = await service.login(EMAIL, PASSWORD)

        assert result.user.id == confirmed_user.id
        assert result.session.access_token == service.provider.session.access_token

    @pytest.mark.asyncio
    async def test_wrong_password(self, config, backend, confirmed_user):
        with pytest.raises(InvalidCredentialsError) as exc_info:
            await make_service(config, backend).login(EMAIL, "Wrong-Horse-42")

        assert exc_info.value.message == "Invalid email or password"

    @pytest.mark.asyncio
    async def test_unknown_email_looks_like_wrong_password(self, config, backend, confirmed_user):
        with pytest.raises(InvalidCredentialsError) as unknown:
            await make_service(config, backend).login("nobody@example.com", PASSWORD)
        with pytest.raises(InvalidCredentialsError) as wrong:
            await make_service(config, backend).login(EMAIL, "Wrong-Horse-42")

        assert unknown.value.to_dict() == wrong.value.to_dict()

    @pytest.mark.asyncio
    async def test_generic_provider_400_is_invalid_credentials(self, config):
        """A bare 400 never leaks the provider's message."""
        service, provider = mock_service(config)
        provider.sign_in_with_password.side_effect = IdentityProviderError("Bad Request", None, 400)

        with pytest.raises(InvalidCredentialsError) as exc_info:
            await service.login("user@example.com", "wrongpass")

        assert exc_info.value.kind == ErrorKind.INVALID_CREDENTIALS
        assert exc_info.value.message == "Invalid email or password"

    @pytest.mark.asyncio
    async def test_unconfirmed_email(self, config, backend):
        backend.create_user(EMAIL, PASSWORD)

        with pytest.raises(EmailNotConfirmedError) as exc_info:
            await make_service(config, backend).login(EMAIL, PASSWORD)

        assert exc_info.value.http_status == 403

    @pytest.mark.asyncio
    async def test_incomplete_provider_response(self, config):
        service, provider = mock_service(config)
        provider.sign_in_with_password.return_value = AuthResponse(
            user=User(id="u1", email=EMAIL), session=None
        )

        with pytest.raises(ServiceError, match="incomplete"):
            await service.login(EMAIL, PASSWORD)

    @pytest.mark.asyncio
    async def test_login_logs_masked_email_only(self, config, backend, confirmed_user, caplog):
        with caplog.at_level(logging.INFO, logger="auth.service"):
            await make_service(config, backend).login(EMAIL, PASSWORD)

        assert "us***@example.com" in caplog.text
        assert EMAIL not in caplog.text
        assert PASSWORD not in caplog.text


# =============================================================================
# Logout
# =============================================================================


class TestLogout:
    """Tests for logout()."""

    @pytest.mark.asyncio
    async def test_logout_without_session(self, config, backend):
        result = await make_service(config, backend).logout()
        assert result.success is True

    @pytest.mark.asyncio
    async def test_logout_twice(self, config, backend, logged_in):
        service = make_service(config, backend, session=logged_in)
        assert (await service.logout()).success is True
        assert (await service.logout()).success is True

    @pytest.mark.asyncio
    async def test_logout_revokes_session(self, config, backend, logged_in):
        await make_service(config, backend, session=logged_in).logout()

        with pytest.raises(IdentityProviderError):
            backend.lookup_session(logged_in.access_token)

    @pytest.mark.asyncio
    async def test_provider_failure_is_swallowed(self, config):
        service, provider = mock_service(config)
        provider.get_user.side_effect = IdentityProviderError("Session not found", "session_not_found", 401)
        provider.sign_out.side_effect = IdentityProviderError("Service unavailable", None, 503)

        result = await service.logout()

        assert result.success is True
        provider.sign_out.assert_awaited_once()


# =============================================================================
# Password reset request
# =============================================================================


class TestResetPassword:
    """Tests for reset_password()."""

    @pytest.mark.asyncio
    async def test_existing_email_gets_link(self, config, backend, confirmed_user):
        result = await make_service(config, backend).reset_password(EMAIL)

        assert result.success is True
        assert backend.outbox[-1].kind == "recovery"
        assert backend.outbox[-1].redirect_to == config.password_reset_url

    @pytest.mark.asyncio
    async def test_unknown_email_same_result(self, config, backend, confirmed_user):
        real = await make_service(config, backend).reset_password(EMAIL)
        unknown = await make_service(config, backend).reset_password("nonexistent@x.com")

        assert real == unknown
        assert [sent.email for sent in backend.outbox] == [EMAIL]

    @pytest.mark.asyncio
    async def test_provider_failure_same_result(self, config, backend, confirmed_user):
        real = await make_service(config, backend).reset_password(EMAIL)

        service, provider = mock_service(config)
        provider.reset_password_for_email.side_effect = IdentityProviderError("Rate limit exceeded", None, 429)
        failed = await service.reset_password("nonexistent@x.com")

        assert failed == real


# =============================================================================
# Password update
# =============================================================================


class TestUpdatePassword:
    """Tests for update_password()."""

    @pytest.mark.asyncio
    async def test_update_with_session(self, config, backend, logged_in):
        service = make_service(config, backend, session=logged_in)

        result = await service.update_password(NEW_PASSWORD)

        assert result.success is True
        assert backend.authenticate(EMAIL, NEW_PASSWORD).email == EMAIL

    @pytest.mark.asyncio
    async def test_update_with_recovery_token(self, config, backend, confirmed_user):
        token_hash = backend.issue_token(confirmed_user, "recovery")

        result = await make_service(config, backend).update_password(NEW_PASSWORD, token_hash=token_hash)

        assert result.success is True
        assert backend.authenticate(EMAIL, NEW_PASSWORD).email == EMAIL

    @pytest.mark.asyncio
    async def test_token_takes_priority_over_session(self, config, backend, confirmed_user, logged_in):
        token_hash = backend.issue_token(confirmed_user, "recovery")
        provider = MemoryIdentityProvider(backend, session=logged_in)
        service = AuthService(config, provider)

        with patch.object(provider, "verify_otp", wraps=provider.verify_otp) as verify_spy, \
                patch.object(provider, "get_user", wraps=provider.get_user) as session_spy:
            await service.update_password(NEW_PASSWORD, token_hash=token_hash, token_type="recovery")

        verify_spy.assert_awaited_once_with(token_hash, "recovery")
        session_spy.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_session_is_gone_after_update(self, config, backend, logged_in):
        await make_service(config, backend, session=logged_in).update_password(NEW_PASSWORD)

        status = await make_service(config, backend, session=logged_in).get_session()

        assert status.authenticated is False

    @pytest.mark.asyncio
    async def test_token_session_is_gone_after_update(self, config, backend, confirmed_user):
        token_hash = backend.issue_token(confirmed_user, "recovery")
        service = make_service(config, backend)

        await service.update_password(NEW_PASSWORD, token_hash=token_hash)

        assert service.provider.session is None
        assert (await service.get_session()).authenticated is False

    @pytest.mark.asyncio
    async def test_expired_token_from_provider(self, config):
        service, provider = mock_service(config)
        provider.verify_otp.side_effect = IdentityProviderError("Token has expired", "otp_expired", 403)

        with pytest.raises(ExpiredTokenError) as exc_info:
            await service.update_password("NewPass123!", token_hash="expired-token")

        assert exc_info.value.kind == ErrorKind.EXPIRED_TOKEN
        provider.update_user_password.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expired_token_from_backend(self, config, confirmed_user, backend):
        clock = FakeClock()
        backend.clock = clock
        token_hash = backend.issue_token(confirmed_user, "recovery")
        clock.advance(timedelta(hours=2))

        with pytest.raises(ExpiredTokenError):
            await make_service(config, backend).update_password(NEW_PASSWORD, token_hash=token_hash)

    @pytest.mark.asyncio
    async def test_invalid_token(self, config, backend, confirmed_user):
        with pytest.raises(ServiceError) as exc_info:
            await make_service(config, backend).update_password(NEW_PASSWORD, token_hash="bogus")

        assert exc_info.value.message == "Authentication failed"
        assert exc_info.value.http_status == 401

    @pytest.mark.asyncio
    async def test_no_token_no_session(self, config, backend):
        with pytest.raises(ServiceError) as exc_info:
            await make_service(config, backend).update_password(NEW_PASSWORD)

        assert exc_info.value.message == "Authentication required"
        assert exc_info.value.http_status == 401

    @pytest.mark.asyncio
    async def test_rejected_session_means_authentication_required(self, config, backend, logged_in):
        backend.revoke_user_sessions(logged_in.user.id)

        with pytest.raises(ServiceError, match="Authentication required"):
            await make_service(config, backend, session=logged_in).update_password(NEW_PASSWORD)

    @pytest.mark.asyncio
    async def test_session_error_during_update(self, config):
        service, provider = mock_service(config)
        provider.get_user.return_value = User(id="u1", email=EMAIL)
        provider.update_user_password.side_effect = IdentityProviderError(
            "Invalid JWT: token is expired", "bad_jwt", 401
        )

        with pytest.raises(SessionError):
            await service.update_password(NEW_PASSWORD)

    @pytest.mark.asyncio
    async def test_other_update_failure(self, config, backend, logged_in):
        """Reusing the current password is rejected by the provider."""
        with pytest.raises(ServiceError) as exc_info:
            await make_service(config, backend, session=logged_in).update_password(PASSWORD)

        assert exc_info.value.message == "Failed to update password"
        assert exc_info.value.http_status == 400

    @pytest.mark.asyncio
    async def test_sign_out_failure_still_succeeds(self, config):
        service, provider = mock_service(config)
        provider.get_user.return_value = User(id="u1", email=EMAIL)
        provider.update_user_password.return_value = User(id="u1", email=EMAIL)
        provider.sign_out.side_effect = IdentityProviderError("Service unavailable", None, 503)

        result = await service.update_password(NEW_PASSWORD)

        assert result.success is True
        provider.sign_out.assert_awaited_once()


# =============================================================================
# Password change
# =============================================================================


class TestChangePassword:
    """Tests for change_password()."""

    @pytest.mark.asyncio
    async def test_change_password(self, config, backend, logged_in):
        result = await make_service(config, backend, session=logged_in).change_password(PASSWORD, NEW_PASSWORD)

        assert result.success is True
        assert backend.authenticate(EMAIL, NEW_PASSWORD).email == EMAIL
        with pytest.raises(IdentityProviderError):
            backend.authenticate(EMAIL, PASSWORD)

    @pytest.mark.asyncio
    async def test_wrong_current_password(self, config, backend, logged_in):
        with pytest.raises(InvalidCredentialsError) as exc_info:
            await make_service(config, backend, session=logged_in).change_password("Wrong-Horse-42", NEW_PASSWORD)

        assert exc_info.value.message == "Current password is incorrect"

    @pytest.mark.asyncio
    async def test_not_logged_in(self, config, backend):
        with pytest.raises(ServiceError, match="Authentication required"):
            await make_service(config, backend).change_password(PASSWORD, NEW_PASSWORD)


# =============================================================================
# Session status and refresh
# =============================================================================


class TestGetSession:
    """Tests for get_session()."""

    @pytest.mark.asyncio
    async def test_anonymous(self, config, backend):
        status = await make_service(config, backend).get_session()

        assert status.authenticated is False
        assert status.user is None
        assert status.session is None

    @pytest.mark.asyncio
    async def test_authenticated(self, config, backend, logged_in):
        status = await make_service(config, backend, session=logged_in).get_session()

        assert status.authenticated is True
        assert status.user.email == EMAIL
        assert status.session.expires_at == logged_in.expires_at
        assert status.session.is_expiring_soon is False

    @pytest.mark.asyncio
    async def test_expiring_soon(self, config, confirmed_user, backend):
        backend.session_ttl = timedelta(minutes=2)
        session = backend.issue_session(confirmed_user)

        status = await make_service(config, backend, session=session).get_session()

        assert status.session.is_expiring_soon is True

    @pytest.mark.asyncio
    async def test_expired_access_token_is_refreshed(self, config, backend, confirmed_user):
        clock = FakeClock()
        backend.clock = clock
        session = backend.issue_session(confirmed_user)
        clock.advance(timedelta(hours=2))
        service = make_service(config, backend, session=session)

        status = await service.get_session()

        assert status.authenticated is True
        assert service.provider.session.access_token != session.access_token

    @pytest.mark.asyncio
    async def test_provider_failure(self, config):
        service, provider = mock_service(config)
        provider.get_session.side_effect = RuntimeError("network down")

        with pytest.raises(ServiceError):
            await service.get_session()


class TestRefreshSession:
    """Tests for refresh_session()."""

    @pytest.mark.asyncio
    async def test_refresh(self, config, backend, logged_in):
        result = await make_service(config, backend, session=logged_in).refresh_session()

        assert result.session.access_token != logged_in.access_token
        assert result.session.refresh_token != logged_in.refresh_token
        assert result.session.expires_at >= logged_in.expires_at

    @pytest.mark.asyncio
    async def test_refresh_without_session(self, config, backend):
        with pytest.raises(ServiceError) as exc_info:
            await make_service(config, backend).refresh_session()

        assert exc_info.value.message == "Session has expired. Please log in again."
        assert exc_info.value.http_status == 401

    @pytest.mark.asyncio
    async def test_refresh_with_revoked_token(self, config, backend, logged_in):
        backend.revoke_user_sessions(logged_in.user.id)

        with pytest.raises(ServiceError, match="Please log in again"):
            await make_service(config, backend, session=logged_in).refresh_session()

    @pytest.mark.asyncio
    async def test_provider_returns_nothing(self, config):
        service, provider = mock_service(config)
        provider.refresh_session.return_value = None

        with pytest.raises(ServiceError, match="Please log in again"):
            await service.refresh_session()


# =============================================================================
# Email verification
# =============================================================================


class TestVerifyEmail:
    """Tests for verify_email()."""

    @pytest.mark.asyncio
    async def test_verify_signup_token(self, config, backend):
        await make_service(config, backend).signup(EMAIL, PASSWORD)
        token_hash = backend.outbox[-1].token_hash

        result = await make_service(config, backend).verify_email(token_hash=token_hash, token_type="email")

        assert result.user.email == EMAIL
        assert result.session is not None
        assert backend.find_user(EMAIL).is_email_confirmed is True

    @pytest.mark.asyncio
    async def test_verify_pkce_code(self, config, backend):
        user = backend.create_user(EMAIL, PASSWORD)
        code = backend.issue_code(user)

        result = await make_service(config, backend).verify_email(code=code, code_verifier="verifier")

        assert result.user.id == user.id
        assert backend.find_user(EMAIL).is_email_confirmed is True

    @pytest.mark.asyncio
    async def test_missing_token(self, config, backend):
        with pytest.raises(ServiceError) as exc_info:
            await make_service(config, backend).verify_email()

        assert exc_info.value.message == "Missing verification token"
        assert exc_info.value.http_status == 400

    @pytest.mark.asyncio
    async def test_invalid_token(self, config, backend):
        with pytest.raises(ServiceError) as exc_info:
            await make_service(config, backend).verify_email(token_hash="bogus")

        assert exc_info.value.message == "Invalid verification token"
        assert exc_info.value.http_status == 400

    @pytest.mark.asyncio
    async def test_expired_token(self, config, backend):
        clock = FakeClock()
        backend.clock = clock
        user = backend.create_user(EMAIL, PASSWORD)
        token_hash = backend.issue_token(user, "signup")
        clock.advance(timedelta(days=1))

        with pytest.raises(ExpiredTokenError):
            await make_service(config, backend).verify_email(token_hash=token_hash)
