"""
Provider factory for building per-request identity provider clients.
"""

from __future__ import annotations

from typing import Optional

from auth.config import AuthConfig
from auth.models import Session
from auth.providers.base import IdentityProvider
from auth.providers.memory import MemoryIdentityBackend, MemoryIdentityProvider
from auth.providers.supabase import SupabaseIdentityProvider


class ProviderFactory:
    """
    Factory for creating identity provider instances.

    Usage:
        factory = ProviderFactory(config.auth)
        provider = factory.create(session_from_cookie)
    """

    _providers = ("memory", "supabase")

    def __init__(self, config: AuthConfig, backend: Optional[MemoryIdentityBackend] = None, **kwargs):
        """
        Args:
            config: Auth settings (selects the provider)
            backend: Shared in-memory backend (memory provider only)
            **kwargs: Provider-specific extras (e.g. transport for supabase)

        Raises:
            ValueError: If the configured provider is unknown
        """
        if config.provider not in self._providers:
            raise ValueError(
                f"Unknown identity provider: {config.provider}. "
                f"Available: {list(self._providers)}"
            )
        self.config = config
        self.backend = backend
        self.extra = kwargs

        if config.provider == "memory" and self.backend is None:
            self.backend = MemoryIdentityBackend()

    def create(self, session: Optional[Session] = None) -> IdentityProvider:
        """Build a provider client for one request."""
        if self.config.provider == "memory":
            return MemoryIdentityProvider(self.backend, session=session)
        return SupabaseIdentityProvider(
            self.config.supabase_url,
            self.config.supabase_anon_key,
            session=session,
            timeout=self.config.provider_timeout_seconds,
            **self.extra,
        )

    @classmethod
    def available_providers(cls) -> list:
        """List available provider names."""
        return list(cls._providers)
