"""Rate limiting dependencies for FastAPI routes.

This module wires the rate limiting adapter into the HTTP layer.

Design goals:
- No module-level limiter instances: the app factory builds a
  ``RateLimiters`` container, stores it on ``app.state`` and destroys it on
  shutdown.
- Routes depend on ``rate_limit(<name>)`` only, never on the concrete store.

Rate limiting strategy:
- Fixed window per client address.
- ``api`` guards every /api route, ``login`` and ``registration`` add
  stricter budgets on top for brute-force and spam protection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from fastapi import Request, Response

from app.adapters.rate_limit.base import AbstractRateLimiter
from app.adapters.rate_limit.in_memory import (
    DEFAULT_MESSAGE,
    InMemoryFixedWindowRateLimiter,
    client_address_key,
)
from app.core.config import RateLimitSettings
from app.core.errors import RateLimitExceededError
from app.core.logging import hash_identifier

logger = logging.getLogger(__name__)

LOGIN_LIMIT_MESSAGE = "Too many login attempts, please try again after 15 minutes"
REGISTRATION_LIMIT_MESSAGE = "Too many registration attempts, please try again later"


@dataclass
class RateLimiters:
    """Named limiter instances owned by the application."""

    api: AbstractRateLimiter
    login: AbstractRateLimiter
    registration: AbstractRateLimiter

    def get(self, name: str) -> AbstractRateLimiter:
        try:
            return self.as_dict()[name]
        except KeyError:
            raise LookupError(f"Unknown rate limiter: {name!r}") from None

    def as_dict(self) -> dict[str, AbstractRateLimiter]:
        return {"api": self.api, "login": self.login, "registration": self.registration}

    def destroy_all(self) -> None:
        for limiter in self.as_dict().values():
            limiter.destroy()


def _always_skip(request: Any) -> bool:
    return True


def _log_limit_reached(name: str) -> Callable[[Any, str], None]:
    """Build an ``on_limit_reached`` hook that logs denials for ``name``."""

    def on_limit_reached(request: Any, key: str) -> None:
        url = getattr(request, "url", None)
        logger.warning(
            "rate_limit.exceeded",
            extra={
                "limiter": name,
                "key_hash": hash_identifier(key),
                "path": getattr(url, "path", None),
            },
        )

    return on_limit_reached


def build_rate_limiters(cfg: RateLimitSettings) -> RateLimiters:
    """Create the api/login/registration limiters from settings.

    When rate limiting is disabled every limiter skips all requests, so no
    counters are kept and no quota headers are emitted.
    """
    skip = None if cfg.enabled else _always_skip

    def make(name: str, window_ms: int, max_requests: int, message: str = DEFAULT_MESSAGE) -> InMemoryFixedWindowRateLimiter:
        return InMemoryFixedWindowRateLimiter(
            window_ms=window_ms,
            max_requests=max_requests,
            message=message,
            key_generator=client_address_key,
            skip=skip,
            on_limit_reached=_log_limit_reached(name),
            name=name,
        )

    return RateLimiters(
        api=make("api", cfg.window_ms, cfg.max_requests),
        login=make("login", cfg.login_window_ms, cfg.login_max_requests, LOGIN_LIMIT_MESSAGE),
        registration=make(
            "registration",
            cfg.registration_window_ms,
            cfg.registration_max_requests,
            REGISTRATION_LIMIT_MESSAGE,
        ),
    )


def rate_limit(name: str):
    """Return a FastAPI dependency enforcing the limiter called ``name``.

    Usage:
        @router.post("/login", dependencies=[Depends(rate_limit("login"))])
    """

    async def enforce_rate_limit(request: Request, response: Response) -> None:
        """Consume one unit for this request; raise on denial.

        Raises:
            RateLimitExceededError: When the limiter denies the request.
        """
        limiter = request.app.state.rate_limiters.get(name)
        decision = await limiter.check(request)

        if decision.skipped:
            return
        if not decision.allowed:
            raise RateLimitExceededError(decision)

        for header, value in decision.headers().items():
            response.headers[header] = value

    enforce_rate_limit.__name__ = f"enforce_{name}_rate_limit"
    return enforce_rate_limit
