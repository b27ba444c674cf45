# auth/config.py
"""
Auth configuration.

Built once by app.config.load_config() and passed explicitly into the
provider factory and the auth service.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from auth.redirect import DEFAULT_REDIRECT

DEFAULT_PROVIDER = "memory"
DEFAULT_COOKIE_NAME = "favs-auth-token"
DEFAULT_APP_URL = "http://localhost:8000"

# Sessions closer than this to expiry are reported as "expiring soon"
SESSION_EXPIRY_THRESHOLD = timedelta(minutes=5)


@dataclass
class AuthConfig:
    """
    Settings for the auth core.

    Attributes:
        provider: Identity provider backend ("supabase" or "memory")
        supabase_url: Project URL (required for "supabase")
        supabase_anon_key: Public anon key (required for "supabase")
        app_url: Public origin of this app, used in email links
        default_redirect: Where to send users when a redirect target is unsafe
        cookie_name: Name of the session cookie
        cookie_secure: Set the Secure flag on the session cookie
        provider_timeout_seconds: HTTP timeout for provider calls (None = no timeout)
        expiry_threshold: Window for "expiring soon"
    """

    provider: str = DEFAULT_PROVIDER
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    app_url: str = DEFAULT_APP_URL
    default_redirect: str = DEFAULT_REDIRECT
    cookie_name: str = DEFAULT_COOKIE_NAME
    cookie_secure: bool = False
    provider_timeout_seconds: Optional[float] = None
    expiry_threshold: timedelta = SESSION_EXPIRY_THRESHOLD

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)

    @property
    def password_reset_url(self) -> str:
        return f"{self.app_url.rstrip('/')}/reset-password"

    @property
    def email_verify_url(self) -> str:
        return f"{self.app_url.rstrip('/')}/api/auth/verify"
