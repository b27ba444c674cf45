# app/config.py
"""
Centralized configuration management with startup validation.

Defines REQUIRED vs OPTIONAL environment variables and provides
safe configuration loading with validation and logging.
"""
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Optional

from auth.config import (
    DEFAULT_APP_URL,
    DEFAULT_COOKIE_NAME,
    AuthConfig,
)
from auth.providers.factory import ProviderFactory
from auth.redirect import DEFAULT_REDIRECT, is_valid_redirect

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

SERVICE_NAME = "favs-auth"
SERVICE_VERSION = "0.1.0"

# Default values
DEFAULT_MAX_REQUEST_SIZE_BYTES = 1_048_576  # 1MB
MIN_REQUEST_SIZE_BYTES = 1024  # 1KB minimum

# Sensitive substrings that should never appear in logs
SENSITIVE_SUBSTRINGS = ("key", "token", "secret", "password", "credential")


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""

    pass


# =============================================================================
# Configuration Dataclass
# =============================================================================


@dataclass
class AppConfig:
    """Application configuration loaded from environment."""

    # Service info
    service_name: str = SERVICE_NAME
    service_version: str = SERVICE_VERSION
    environment: str = "development"

    # Security settings
    max_request_size_bytes: int = DEFAULT_MAX_REQUEST_SIZE_BYTES

    # Auth core settings (passed explicitly into services)
    auth: AuthConfig = field(default_factory=AuthConfig)

    # Warnings collected during config load
    warnings: list = field(default_factory=list)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


# =============================================================================
# Configuration Loading
# =============================================================================


def _parse_int_env(
    name: str, default: int, min_value: Optional[int] = None
) -> tuple[int, Optional[str]]:
    """
    Parse an integer environment variable with validation.

    Returns (value, warning_message).
    On invalid input, returns default with a warning.
    """
    raw = os.environ.get(name)
    if raw is None:
        return default, None

    try:
        value = int(raw)
    except ValueError:
        warning = f"{name}='{raw}' is not a valid integer; using default {default}"
        return default, warning

    if min_value is not None and value < min_value:
        warning = f"{name}={value} is below minimum {min_value}; using default {default}"
        return default, warning

    return value, None


def _parse_float_env(name: str) -> tuple[Optional[float], Optional[str]]:
    """Parse an optional positive float. Unset means None."""
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return None, None

    try:
        value = float(raw)
    except ValueError:
        return None, f"{name}='{raw}' is not a valid number; provider calls will not time out"

    if value <= 0:
        return None, f"{name}={value} must be positive; provider calls will not time out"

    return value, None


def _parse_bool_env(name: str, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    raw = os.environ.get(name, "").lower()
    if raw in ("true", "1", "yes", "on"):
        return True
    if raw in ("false", "0", "no", "off"):
        return False
    return default


def _load_auth_config(environment: str, warnings: list, errors: list) -> AuthConfig:
    supabase_url = os.environ.get("SUPABASE_URL") or None
    supabase_anon_key = os.environ.get("SUPABASE_ANON_KEY") or None

    # Supabase when configured, in-memory provider otherwise
    provider = os.environ.get("AUTH_PROVIDER", "").strip().lower()
    if not provider:
        provider = "supabase" if supabase_url else "memory"

    if provider not in ProviderFactory.available_providers():
        errors.append(
            f"AUTH_PROVIDER='{provider}' is unknown; "
            f"available: {ProviderFactory.available_providers()}"
        )
        provider = "memory"

    if provider == "supabase":
        if not supabase_url:
            errors.append("SUPABASE_URL is required when AUTH_PROVIDER=supabase")
        if not supabase_anon_key:
            errors.append("SUPABASE_ANON_KEY is required when AUTH_PROVIDER=supabase")
    elif environment == "production":
        warnings.append(
            "AUTH_PROVIDER=memory in production; accounts and sessions are lost on restart"
        )

    default_redirect = os.environ.get("AUTH_DEFAULT_REDIRECT", DEFAULT_REDIRECT)
    if not is_valid_redirect(default_redirect):
        warnings.append(
            f"AUTH_DEFAULT_REDIRECT='{default_redirect}' is not a safe relative path; "
            f"using {DEFAULT_REDIRECT}"
        )
        default_redirect = DEFAULT_REDIRECT

    timeout, timeout_warning = _parse_float_env("AUTH_PROVIDER_TIMEOUT_SECONDS")
    if timeout_warning:
        warnings.append(timeout_warning)

    return AuthConfig(
        provider=provider,
        supabase_url=supabase_url,
        supabase_anon_key=supabase_anon_key,
        app_url=os.environ.get("APP_URL", DEFAULT_APP_URL),
        default_redirect=default_redirect,
        cookie_name=os.environ.get("AUTH_COOKIE_NAME", DEFAULT_COOKIE_NAME),
        cookie_secure=_parse_bool_env("AUTH_COOKIE_SECURE", environment == "production"),
        provider_timeout_seconds=timeout,
    )


def load_config(fail_fast: bool = True) -> AppConfig:
    """
    Load and validate application configuration from environment.

    Args:
        fail_fast: If True, raise ConfigurationError on critical issues.
                   If False, collect warnings and continue.

    Returns:
        AppConfig instance with validated configuration.

    Raises:
        ConfigurationError: If required configuration is missing/invalid
                           and fail_fast is True.
    """
    warnings = []
    errors = []

    # Environment
    environment = os.environ.get("ENVIRONMENT", "development")

    # Security settings with validation
    max_request_size, size_warning = _parse_int_env(
        "MAX_REQUEST_SIZE_BYTES",
        DEFAULT_MAX_REQUEST_SIZE_BYTES,
        min_value=MIN_REQUEST_SIZE_BYTES,
    )
    if size_warning:
        warnings.append(size_warning)

    auth_config = _load_auth_config(environment, warnings, errors)

    if errors:
        if fail_fast:
            raise ConfigurationError("; ".join(errors))
        warnings.extend(errors)

    # Log warnings
    for warning in warnings:
        logger.warning(f"[CONFIG] {warning}")

    return AppConfig(
        environment=environment,
        max_request_size_bytes=max_request_size,
        auth=auth_config,
        warnings=warnings,
    )


def log_config_snapshot(config: AppConfig) -> str:
    """
    Generate and log a safe configuration snapshot.

    Returns the snapshot string for testing purposes.
    Never logs actual secret values - only boolean presence flags.
    """
    snapshot = (
        f"[STARTUP] service={config.service_name} "
        f"version={config.service_version} "
        f"environment={config.environment} "
        f"max_request_size_bytes={config.max_request_size_bytes} "
        f"auth_provider={config.auth.provider} "
        f"supabase_url_present={bool(config.auth.supabase_url)} "
        f"supabase_anon_key_present={bool(config.auth.supabase_anon_key)} "
        f"default_redirect={config.auth.default_redirect} "
        f"cookie_secure={config.auth.cookie_secure}"
    )
    logger.info(snapshot)
    return snapshot


def validate_config_snapshot_safety(snapshot: str) -> bool:
    """
    Validate that a config snapshot doesn't contain sensitive values.

    Returns True if safe, False if potentially unsafe.
    """
    snapshot_lower = snapshot.lower()

    # Pattern: sensitive word followed by = and a value that's not a boolean
    # "anon_key_present=true" is fine, "anon_key=eyJ..." is not
    for sensitive in SENSITIVE_SUBSTRINGS:
        pattern = rf"{sensitive}=(?!true\b|false\b)"
        if re.search(pattern, snapshot_lower):
            return False

    return True
