# auth/redirect.py
"""
Open-redirect-safe validation of post-login redirect targets.

Only same-origin relative paths survive validation:
- Must be a non-empty string starting with a single '/' (never '//' or '/\\')
- Must not contain a NUL byte (literal or percent-encoded) or any other control character
- Must not carry a scheme (javascript:, data:, ...) in its first segment
- The percent-decoded form must pass the same checks
- Double-encoded and malformed escapes are rejected outright
"""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import unquote

DEFAULT_REDIRECT = "/dashboard"

_NUL_MARKERS = ("\x00", "%00")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_MALFORMED_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def _strict_unquote(value: str) -> str:
    """
    Percent-decode a string, raising ValueError on malformed escapes.

    urllib's unquote silently keeps broken escapes; a browser's
    decodeURIComponent throws on them, so we do too.
    """
    if _MALFORMED_ESCAPE.search(value):
        raise ValueError("Malformed percent-escape")
    # UnicodeDecodeError is a ValueError
    return unquote(value, errors="strict")


def _passes_structure_checks(path: str) -> bool:
    """Rules 2-4: single leading slash, no NUL or control chars, no scheme before the first '/'."""
    # browsers read a backslash after the leading slash as a second slash
    if not path.startswith("/") or path[1:2] in ("/", "\\"):
        return False

    if any(marker in path for marker in _NUL_MARKERS):
        return False

    # tabs and newlines are stripped by browsers, so "/\t/host" becomes "//host"
    if _CONTROL_CHARS.search(path):
        return False

    remainder = path[1:]
    colon_index = remainder.find(":")
    slash_index = remainder.find("/")
    if colon_index != -1 and (slash_index == -1 or colon_index < slash_index):
        return False

    return True


def is_valid_redirect(candidate: Optional[str]) -> bool:
    """
    Decide whether a caller-supplied redirect target is safe to follow.

    Args:
        candidate: Raw "return to" value (query param, form field, ...)

    Returns:
        True only if every rule passes. Never raises.
    """
    if not candidate or not isinstance(candidate, str):
        return False

    trimmed = candidate.strip()
    if not trimmed:
        return False

    if not _passes_structure_checks(trimmed):
        return False

    try:
        decoded = _strict_unquote(trimmed)
        if decoded == trimmed:
            return True

        if not _passes_structure_checks(decoded):
            return False

        # Anything that still decodes is double-encoded: reject, don't chase it
        if _strict_unquote(decoded) != decoded:
            return False
    except ValueError:
        return False

    return True


def resolve_redirect(candidate: Optional[str], default: str = DEFAULT_REDIRECT) -> str:
    """Return the trimmed candidate if it is a safe redirect, else the default."""
    if is_valid_redirect(candidate):
        return candidate.strip()
    return default
