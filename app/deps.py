"""FastAPI dependency providers for application-scoped services.

Services are built once by the app factory and stored on ``app.state``;
these helpers hand them to routes so nothing lives in module globals.
"""

from __future__ import annotations

from fastapi import Request

from app.core.config import Settings
from app.core.rate_limit import RateLimiters
from app.core.tokens import TokenService
from app.services.auth_service import AuthService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_rate_limiters(request: Request) -> RateLimiters:
    return request.app.state.rate_limiters
