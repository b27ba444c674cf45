"""
Identity provider adapters.
"""

from auth.providers.base import AuthResponse, IdentityProvider, IdentityProviderError
from auth.providers.classifier import ErrorClassifier, SupabaseErrorClassifier
from auth.providers.factory import ProviderFactory
from auth.providers.memory import MemoryIdentityBackend, MemoryIdentityProvider
from auth.providers.supabase import SupabaseIdentityProvider

__all__ = [
    "AuthResponse",
    "IdentityProvider",
    "IdentityProviderError",
    "ErrorClassifier",
    "SupabaseErrorClassifier",
    "ProviderFactory",
    "MemoryIdentityBackend",
    "MemoryIdentityProvider",
    "SupabaseIdentityProvider",
]
