# auth/cookies.py
"""
Session cookie handling.

The provider session travels between requests in a single HTTP-only
cookie holding base64url-encoded JSON ("base64-" prefix). A cookie that
cannot be decoded is treated as "no session".
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from starlette.requests import Request
from starlette.responses import Response

from auth.config import AuthConfig
from auth.models import Session, User

_logger = logging.getLogger(__name__)

COOKIE_PREFIX = "base64-"
# Refresh tokens outlive access tokens; keep the cookie around for a week
SESSION_COOKIE_MAX_AGE = 7 * 24 * 60 * 60
# Signup confirmation links stay valid for a day
CODE_VERIFIER_COOKIE_MAX_AGE = 24 * 60 * 60


def encode_session(session: Session) -> str:
    payload = {
        "access_token": session.access_token,
        "refresh_token": session.refresh_token,
        "expires_at": int(session.expires_at.timestamp()),
    }
    if session.user is not None:
        payload["user"] = {"id": session.user.id, "email": session.user.email}
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return COOKIE_PREFIX + base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_session(value: Optional[str]) -> Optional[Session]:
    """Decode a cookie value. Returns None for missing or malformed cookies."""
    if not value or not value.startswith(COOKIE_PREFIX):
        return None

    encoded = value[len(COOKIE_PREFIX):]
    encoded += "=" * (-len(encoded) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(encoded.encode("ascii")))
        user_data = payload.get("user")
        return Session(
            access_token=payload["access_token"],
            refresh_token=payload["refresh_token"],
            expires_at=datetime.fromtimestamp(int(payload["expires_at"]), tz=timezone.utc),
            user=User(id=user_data["id"], email=user_data["email"]) if user_data else None,
        )
    except (binascii.Error, ValueError, KeyError, TypeError, AttributeError) as e:
        _logger.warning(f"[cookies] Ignoring malformed session cookie: {type(e).__name__}")
        return None


def read_session(request: Request, config: AuthConfig) -> Optional[Session]:
    """Extract the session from request cookies."""
    return decode_session(request.cookies.get(config.cookie_name))


def set_session_cookie(response: Response, session: Session, config: AuthConfig) -> None:
    """Set the session cookie (HTTP-only, SameSite=Lax)."""
    response.set_cookie(
        key=config.cookie_name,
        value=encode_session(session),
        max_age=SESSION_COOKIE_MAX_AGE,
        httponly=True,
        samesite="lax",
        secure=config.cookie_secure,
    )


def clear_session_cookie(response: Response, config: AuthConfig) -> None:
    response.delete_cookie(
        key=config.cookie_name,
        httponly=True,
        samesite="lax",
        secure=config.cookie_secure,
    )


def sync_session_cookie(
    request: Request,
    response: Response,
    before: Optional[Session],
    after: Optional[Session],
    config: AuthConfig,
) -> None:
    """Write back whatever happened to the provider session during the request."""
    if after is None:
        if config.cookie_name in request.cookies:
            clear_session_cookie(response, config)
        return
    if before is None or before.access_token != after.access_token:
        set_session_cookie(response, after, config)


def code_verifier_cookie_name(config: AuthConfig) -> str:
    return f"{config.cookie_name}-code-verifier"


def read_code_verifier(request: Request, config: AuthConfig) -> Optional[str]:
    return request.cookies.get(code_verifier_cookie_name(config))


def set_code_verifier_cookie(response: Response, verifier: str, config: AuthConfig) -> None:
    """Keep the PKCE verifier of a pending sign-up until its email link is opened."""
    response.set_cookie(
        key=code_verifier_cookie_name(config),
        value=verifier,
        max_age=CODE_VERIFIER_COOKIE_MAX_AGE,
        httponly=True,
        samesite="lax",
        secure=config.cookie_secure,
    )


def clear_code_verifier_cookie(response: Response, config: AuthConfig) -> None:
    response.delete_cookie(
        key=code_verifier_cookie_name(config),
        httponly=True,
        samesite="lax",
        secure=config.cookie_secure,
    )
