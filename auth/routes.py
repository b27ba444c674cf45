# auth/routes.py
"""
Route protection configuration.

Protected routes require an authenticated session; public routes are
always reachable. Anything else is left alone.
"""

from __future__ import annotations

from typing import Sequence
from urllib.parse import urlencode

from auth.redirect import DEFAULT_REDIRECT, resolve_redirect

LOGIN_PATH = "/login"
REDIRECT_PARAM = "redirectTo"

PROTECTED_ROUTES = ("/dashboard", "/settings")

PUBLIC_ROUTES = (
    "/",
    "/login",
    "/signup",
    "/verify-email",
    "/forgot-password",
    "/reset-password",
    "/auth",
    "/api/auth",
    "/health",
)


def path_starts_with_any(pathname: str, prefixes: Sequence[str]) -> bool:
    """True if pathname equals a prefix or sits below it ("/a" matches "/a/b", not "/ab")."""
    return any(pathname == prefix or pathname.startswith(f"{prefix}/") for prefix in prefixes)


def is_protected_route(pathname: str) -> bool:
    return path_starts_with_any(pathname, PROTECTED_ROUTES)


def is_public_route(pathname: str) -> bool:
    return path_starts_with_any(pathname, PUBLIC_ROUTES)


def login_redirect_url(original_path: str, default: str = DEFAULT_REDIRECT) -> str:
    """Login URL carrying a validated redirectTo back to the original path."""
    return f"{LOGIN_PATH}?{urlencode({REDIRECT_PARAM: resolve_redirect(original_path, default)})}"
