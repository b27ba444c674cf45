# auth/email_utils.py
"""Email helpers: normalization and log-safe masking."""

from __future__ import annotations


def normalize_email(email: str) -> str:
    """Emails are case-insensitive: trim and lowercase before use."""
    return (email or "").strip().lower()


def mask_email(email: str) -> str:
    """
    Mask an email address for logging.

    Keeps the first two characters of the local part and the domain:
    "test@example.com" -> "te***@example.com"
    """
    local, _, domain = (email or "").partition("@")
    return f"{local[:2]}***@{domain or 'unknown'}"
