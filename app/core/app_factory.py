"""Application factory for the FastAPI app.

Centralizes app construction (settings validation, logging, services,
middleware, handlers, routers) so tests can build isolated instances with
their own settings and limiter state.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import APIRouter, Depends, FastAPI

from app.adapters.users.in_memory import InMemoryUserRepository
from app.api.routes import auth_router, health_router
from app.core.config import Settings, settings as default_settings, validate_settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import build_rate_limiters, rate_limit
from app.core.tokens import TokenService
from app.services.auth_service import AuthService
from app.utils.token_blacklist import TokenBlacklist

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("app.startup", extra={"environment": app.state.settings.app_env})
    try:
        yield
    finally:
        app.state.rate_limiters.destroy_all()
        logger.info("app.shutdown")


def create_app(cfg: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        cfg: Settings to use; defaults to the process-wide settings.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.

    Raises:
        ConfigurationAppError: If the settings are unsafe for the environment.
    """
    cfg = cfg or default_settings
    validate_settings(cfg)

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    app = FastAPI(
        title=cfg.app.name,
        description=(
            "User registration, login and token-protected profile endpoints "
            "behind fixed-window rate limiting per client address."
        ),
        version=cfg.app.version,
        debug=cfg.app.debug,
        lifespan=lifespan,
    )

    blacklist = TokenBlacklist(default_ttl_seconds=cfg.auth.jwt_expires_minutes * 60)
    token_service = TokenService(
        cfg.auth.jwt_secret,
        algorithm=cfg.auth.jwt_algorithm,
        expires_minutes=cfg.auth.jwt_expires_minutes,
        blacklist=blacklist,
    )

    app.state.settings = cfg
    app.state.rate_limiters = build_rate_limiters(cfg.rate_limit)
    app.state.token_service = token_service
    app.state.auth_service = AuthService(
        users=InMemoryUserRepository(),
        tokens=token_service,
        password_hash_iterations=cfg.auth.password_hash_iterations,
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers: health checks stay outside the rate-limited /api prefix
    api_router = APIRouter(prefix="/api", dependencies=[Depends(rate_limit("api"))])
    api_router.include_router(auth_router)
    app.include_router(api_router)
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags, exemptions)
    apply_openapi_customizations(app)

    return app
