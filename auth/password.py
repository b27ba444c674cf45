# auth/password.py
"""
Password policy checks and bcrypt hashing.

Policy (enforced before any credential reaches the identity provider):
- At least 12 characters
- At least one lowercase and one uppercase letter
- At least one digit
- At least one symbol from a fixed punctuation set

Hashing is only needed by the in-memory identity provider; a real
provider stores credentials itself.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List

import bcrypt

_logger = logging.getLogger(__name__)

# Work factor (cost) - higher = slower but more secure
BCRYPT_ROUNDS = 12

MIN_PASSWORD_LENGTH = 12
# Strength buckets by number of passed checks
MIN_WEAK_CHECKS = 2
MIN_MEDIUM_CHECKS = 4

SYMBOL_PATTERN = re.compile(r"""[!@#$%^&*()_+\-=\[\]{};':"\\|,.<>/?`~]""")


@dataclass
class PasswordValidation:
    """Outcome of a policy check."""

    is_valid: bool
    errors: List[str] = field(default_factory=list)
    strength: str = "weak"
    checks: Dict[str, bool] = field(default_factory=dict)


def validate_password(password: str) -> PasswordValidation:
    """
    Check a password against the policy.

    Args:
        password: Candidate password

    Returns:
        PasswordValidation with per-check flags, error messages and a
        weak/medium/strong strength rating
    """
    password = password or ""
    checks = {
        "min_length": len(password) >= MIN_PASSWORD_LENGTH,
        "has_lowercase": re.search(r"[a-z]", password) is not None,
        "has_uppercase": re.search(r"[A-Z]", password) is not None,
        "has_digit": re.search(r"\d", password) is not None,
        "has_symbol": SYMBOL_PATTERN.search(password) is not None,
    }

    errors = []
    if not checks["min_length"]:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if not checks["has_lowercase"]:
        errors.append("Password must contain at least one lowercase letter")
    if not checks["has_uppercase"]:
        errors.append("Password must contain at least one uppercase letter")
    if not checks["has_digit"]:
        errors.append("Password must contain at least one number")
    if not checks["has_symbol"]:
        errors.append("Password must contain at least one special character")

    passed = sum(1 for ok in checks.values() if ok)
    if passed <= MIN_WEAK_CHECKS:
        strength = "weak"
    elif passed <= MIN_MEDIUM_CHECKS:
        strength = "medium"
    else:
        strength = "strong"

    return PasswordValidation(
        is_valid=not errors,
        errors=errors,
        strength=strength,
        checks=checks,
    )


def password_requirements() -> List[str]:
    """Requirements as display strings."""
    return [
        f"At least {MIN_PASSWORD_LENGTH} characters",
        "At least one lowercase letter",
        "At least one uppercase letter",
        "At least one number",
        "At least one special character (!@#$%^&*...)",
    ]


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plain text password
        rounds: bcrypt work factor

    Returns:
        Bcrypt hash string (includes salt)
    """
    if not password:
        raise ValueError("Password cannot be empty")

    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash. Returns False on any mismatch."""
    if not password or not password_hash:
        return False

    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError as e:
        _logger.warning(f"Password verification error: {e}")
        return False
