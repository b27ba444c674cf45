"""
Authentication API endpoints.

Thin handlers: validate the request body, call the auth service, mirror
the provider session into cookies, shape the JSON response. Failures are
AuthServiceError and are rendered by the app's exception handler.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, EmailStr, Field, ValidationInfo, field_validator

from auth.cookies import clear_code_verifier_cookie, read_code_verifier, set_code_verifier_cookie
from auth.email_utils import mask_email
from auth.errors import AuthServiceError, ExpiredTokenError
from auth.middleware import commit_session, get_auth_config, get_auth_service
from auth.password import validate_password
from auth.redirect import resolve_redirect
from auth.routes import LOGIN_PATH
from auth.service import AuthService

_logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

SIGNUP_MESSAGE = "Please check your email to verify your account"
RESET_MESSAGE = "If an account exists, a password reset email has been sent"
VERIFY_ERROR_PATH = "/auth/error"


# =============================================================================
# Request Schemas
# =============================================================================


def _check_password_policy(value: str) -> str:
    result = validate_password(value)
    if not result.is_valid:
        raise ValueError("; ".join(result.errors))
    return value


def _check_passwords_match(value: Optional[str], info: ValidationInfo) -> Optional[str]:
    # password is missing from info.data when it already failed the policy
    password = info.data.get("password")
    if value is not None and password is not None and value != password:
        raise ValueError("Passwords do not match")
    return value


class SignupRequest(BaseModel):
    email: EmailStr
    password: str

    @field_validator("password")
    @classmethod
    def password_policy(cls, value: str) -> str:
        return _check_password_policy(value)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)
    redirect_to: Optional[str] = None


class PasswordResetRequest(BaseModel):
    email: EmailStr


class PasswordUpdateRequest(BaseModel):
    password: str
    confirm_password: Optional[str] = None
    token_hash: Optional[str] = None
    type: Optional[str] = None

    @field_validator("password")
    @classmethod
    def password_policy(cls, value: str) -> str:
        return _check_password_policy(value)

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        return _check_passwords_match(value, info)


class PasswordChangeRequest(BaseModel):
    current_password: str = Field(min_length=1)
    password: str
    confirm_password: str

    @field_validator("password")
    @classmethod
    def password_policy(cls, value: str) -> str:
        return _check_password_policy(value)

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, value: str, info: ValidationInfo) -> str:
        return _check_passwords_match(value, info)


# =============================================================================
# Routes
# =============================================================================


@router.post("/signup", status_code=201)
async def signup(
    body: SignupRequest,
    request: Request,
    response: Response,
    service: AuthService = Depends(get_auth_service),
):
    """
    Register a new account.

    Always answers with the same message so the endpoint cannot be used
    to discover registered emails. Only provider outages surface as errors.
    """
    try:
        await service.signup(body.email, body.password)
    except AuthServiceError as e:
        if e.http_status >= 500:
            raise
        _logger.error(f"[Signup] Signup for {mask_email(body.email)} not completed: {e.message}")

    verifier = service.provider.code_verifier
    if verifier:
        set_code_verifier_cookie(response, verifier, get_auth_config(request))
    commit_session(request, response)
    return {"success": True, "message": SIGNUP_MESSAGE}


@router.post("/login")
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    service: AuthService = Depends(get_auth_service),
):
    """Login with email/password. Sets the session cookie."""
    result = await service.login(body.email, body.password)
    commit_session(request, response)

    config = get_auth_config(request)
    return {
        "success": True,
        "user": result.user.to_dict(),
        "redirect_to": resolve_redirect(body.redirect_to, config.default_redirect),
    }


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    service: AuthService = Depends(get_auth_service),
):
    """Logout. Succeeds with or without a session."""
    await service.logout()
    commit_session(request, response)
    return {"success": True, "message": "Logged out successfully"}


@router.post("/password/reset")
async def request_password_reset(
    body: PasswordResetRequest,
    service: AuthService = Depends(get_auth_service),
):
    """Send a password reset email (same answer for every address)."""
    await service.reset_password(body.email)
    return {"success": True, "message": RESET_MESSAGE}


@router.put("/password")
async def update_password(
    body: PasswordUpdateRequest,
    request: Request,
    response: Response,
    service: AuthService = Depends(get_auth_service),
):
    """
    Set a new password from a reset link (token_hash) or the current session.

    The session is ended afterwards; the user logs in again.
    """
    await service.update_password(body.password, token_hash=body.token_hash, token_type=body.type)
    commit_session(request, response)
    return {"success": True, "message": "Password updated successfully", "redirect_to": LOGIN_PATH}


@router.post("/password/change")
async def change_password(
    body: PasswordChangeRequest,
    request: Request,
    response: Response,
    service: AuthService = Depends(get_auth_service),
):
    """Change the password of the logged-in user (requires the current password)."""
    await service.change_password(body.current_password, body.password)
    commit_session(request, response)
    return {"success": True, "message": "Password updated successfully", "redirect_to": LOGIN_PATH}


@router.get("/session")
async def session_status(
    request: Request,
    response: Response,
    service: AuthService = Depends(get_auth_service),
):
    """Current session status. Unauthenticated is not an error."""
    status = await service.get_session()
    commit_session(request, response)

    return {
        "success": True,
        "authenticated": status.authenticated,
        "user": {"id": status.user.id, "email": status.user.email} if status.user else None,
        "session": status.session.to_dict() if status.session else None,
    }


@router.post("/refresh")
async def refresh_session(
    request: Request,
    response: Response,
    service: AuthService = Depends(get_auth_service),
):
    """Renew the session before the access token expires."""
    result = await service.refresh_session()
    commit_session(request, response)
    return {
        "success": True,
        "message": "Session refreshed successfully",
        "session": {"expires_at": result.session.expires_at.isoformat()},
    }


@router.get("/verify")
async def verify_email(
    request: Request,
    token_hash: Optional[str] = None,
    type: Optional[str] = None,
    code: Optional[str] = None,
    service: AuthService = Depends(get_auth_service),
):
    """
    Email verification link target.

    Redirects to the default page on success, or to /auth/error with
    expired_token / invalid_token / missing_token / server_error.
    """
    config = get_auth_config(request)

    if not token_hash and not code:
        return RedirectResponse(f"{VERIFY_ERROR_PATH}?error=missing_token", status_code=307)

    code_verifier = read_code_verifier(request, config)
    try:
        await service.verify_email(
            token_hash=token_hash, token_type=type, code=code, code_verifier=code_verifier
        )
    except ExpiredTokenError:
        return RedirectResponse(f"{VERIFY_ERROR_PATH}?error=expired_token", status_code=307)
    except AuthServiceError as e:
        error_type = "invalid_token" if e.http_status == 400 else "server_error"
        return RedirectResponse(f"{VERIFY_ERROR_PATH}?error={error_type}", status_code=307)

    redirect = RedirectResponse(config.default_redirect, status_code=307)
    commit_session(request, redirect)
    if code_verifier:
        clear_code_verifier_cookie(redirect, config)
    return redirect
