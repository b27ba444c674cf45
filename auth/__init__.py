# auth/__init__.py
"""
Authentication module.

Provides:
- Open-redirect-safe redirect validation
- Error taxonomy for auth operations
- Auth orchestration service over an external identity provider
- Route protection and session cookies for FastAPI
"""

from auth.config import AuthConfig
from auth.errors import (
    AuthServiceError,
    EmailNotConfirmedError,
    ErrorDetail,
    ErrorKind,
    ExpiredTokenError,
    InvalidCredentialsError,
    ServiceError,
    SessionError,
)
from auth.models import Session, User
from auth.redirect import is_valid_redirect, resolve_redirect
from auth.service import AuthService

__all__ = [
    "AuthConfig",
    "AuthService",
    "AuthServiceError",
    "EmailNotConfirmedError",
    "ErrorDetail",
    "ErrorKind",
    "ExpiredTokenError",
    "InvalidCredentialsError",
    "ServiceError",
    "SessionError",
    "Session",
    "User",
    "is_valid_redirect",
    "resolve_redirect",
]
