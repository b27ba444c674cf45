"""Favorite-places auth API - FastAPI application entrypoint."""
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.config import AppConfig, load_config, log_config_snapshot
from app.middleware import (
    CorrelationIdMiddleware,
    RequestSizeLimitMiddleware,
    SecurityHeadersMiddleware,
    configure_logging,
)
from app.routers import auth
from auth.errors import AuthServiceError, ErrorKind
from auth.middleware import RouteProtectionMiddleware, get_required_user
from auth.models import User
from auth.password import password_requirements
from auth.providers.factory import ProviderFactory

configure_logging()
logger = logging.getLogger(__name__)

VALIDATION_ERROR_CODE = "VALIDATION_ERROR"


def _validation_details(exc: RequestValidationError) -> list:
    details = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        message = error.get("msg", "Invalid value")
        # pydantic prefixes messages raised from our validators
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        details.append({"field": ".".join(loc) or "body", "message": message})
    return details


async def auth_error_handler(request: Request, exc: AuthServiceError):
    if exc.kind == ErrorKind.SERVICE_ERROR and exc.http_status >= 500:
        logger.error(f"[API] {request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": {
                "code": VALIDATION_ERROR_CODE,
                "message": "Validation failed",
                "details": _validation_details(exc),
            },
        },
    )


def create_app(
    config: Optional[AppConfig] = None,
    provider_factory: Optional[ProviderFactory] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        config: Loaded configuration (read from the environment when omitted)
        provider_factory: Identity provider factory (built from config.auth
            when omitted; tests pass one over a shared in-memory backend)
    """
    if config is None:
        config = load_config()
    log_config_snapshot(config)

    started_at = datetime.now(timezone.utc)

    app = FastAPI(
        title="Favorite Places Auth",
        description="Authentication core for the favorite-places app",
        version=config.service_version,
    )
    app.state.config = config
    app.state.auth_config = config.auth
    app.state.provider_factory = provider_factory or ProviderFactory(config.auth)

    # Middleware stack (order matters - added in reverse execution order)
    # 1. CorrelationId: First to run, wraps everything, adds X-Request-Id to responses
    # 2. SecurityHeaders: Adds security headers to responses
    # 3. RequestSizeLimit: Rejects oversized requests early
    # 4. RouteProtection: Bounces anonymous users away from protected pages
    app.add_middleware(RouteProtectionMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware, max_bytes=config.max_request_size_bytes)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    app.add_exception_handler(AuthServiceError, auth_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.include_router(auth.router)

    @app.get("/health")
    async def health():
        """Health check with service observability."""
        return {
            "status": "healthy",
            "service": config.service_name,
            "version": config.service_version,
            "environment": config.environment,
            "auth_provider": config.auth.provider,
            "started_at": started_at.isoformat(),
        }

    @app.get("/dashboard")
    async def dashboard(user: User = Depends(get_required_user)):
        """Protected landing page after login."""
        return {"user": user.to_dict()}

    @app.get("/settings")
    async def settings(user: User = Depends(get_required_user)):
        """Protected account settings."""
        return {"user": user.to_dict(), "password_requirements": password_requirements()}

    return app


app = create_app()
