# auth/middleware.py
"""
FastAPI authentication middleware and dependencies.

Provides:
- Route protection (unauthenticated users bounce to /login?redirectTo=...)
- Per-request identity provider and auth service dependencies
- Optional/required user dependencies for route handlers
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, Response
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from auth.config import AuthConfig
from auth.cookies import read_session, sync_session_cookie
from auth.models import User
from auth.providers.base import IdentityProvider, IdentityProviderError
from auth.routes import is_protected_route, is_public_route, login_redirect_url
from auth.service import AuthService

_logger = logging.getLogger(__name__)


def get_auth_config(request: Request) -> AuthConfig:
    """FastAPI dependency: auth settings stored on the app at startup."""
    return request.app.state.auth_config


def get_provider(request: Request) -> IdentityProvider:
    """
    FastAPI dependency: identity provider client for this request.

    Built once per request from the session cookie; the session it arrived
    with is remembered so handlers can write back changes.
    """
    provider = getattr(request.state, "identity_provider", None)
    if provider is None:
        session = read_session(request, get_auth_config(request))
        provider = request.app.state.provider_factory.create(session)
        request.state.identity_provider = provider
        request.state.initial_session = session
    return provider


def get_auth_service(
    request: Request,
    provider: IdentityProvider = Depends(get_provider),
) -> AuthService:
    """FastAPI dependency: auth service bound to this request's provider."""
    return AuthService(get_auth_config(request), provider)


def commit_session(request: Request, response: Response) -> None:
    """Mirror the provider's current session into the response cookies."""
    provider = getattr(request.state, "identity_provider", None)
    if provider is None:
        return
    sync_session_cookie(
        request,
        response,
        getattr(request.state, "initial_session", None),
        provider.session,
        get_auth_config(request),
    )


async def get_optional_user(provider: IdentityProvider = Depends(get_provider)) -> Optional[User]:
    """
    FastAPI dependency: current user if logged in.

    Returns None for anonymous users or rejected sessions (no error).
    """
    try:
        return await provider.get_user()
    except IdentityProviderError as e:
        _logger.info(f"[auth] Session rejected by provider: {e.message}")
        return None


async def get_required_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    """
    FastAPI dependency: current user (required).

    Raises 401 if not logged in.
    """
    if not user:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user


class RouteProtectionMiddleware(BaseHTTPMiddleware):
    """
    Middleware that guards protected routes.

    - Public routes pass straight through
    - Protected routes need a session the provider accepts; expiring
      sessions are refreshed on the way
    - Any failure fails closed: redirect to login with a validated redirectTo
    """

    async def dispatch(self, request: Request, call_next):
        pathname = request.url.path

        if is_public_route(pathname) or not is_protected_route(pathname):
            return await call_next(request)

        config = get_auth_config(request)
        try:
            provider = get_provider(request)
            await provider.get_session()
            user = await provider.get_user()
        except Exception as e:
            _logger.error(f"[auth] Route protection error on {pathname}: {type(e).__name__}: {e}")
            user = None

        if user is None:
            _logger.info(f"[auth] Unauthenticated request to {pathname}, redirecting to login")
            response = RedirectResponse(
                login_redirect_url(pathname, config.default_redirect), status_code=307
            )
            commit_session(request, response)
            return response

        request.state.user = user
        response = await call_next(request)
        commit_session(request, response)
        return response
