"""Rate limiter interfaces.

The HTTP layer depends on this abstraction (not the concrete implementation)
so the storage strategy can change without touching routes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of a single rate limit check.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when denied).
        reset_at: UNIX epoch seconds (rounded up) when the current window ends.
        retry_after_seconds: Suggested wait time in seconds when denied.
        status_code: HTTP status to use when denied.
        message: Human-readable denial text.
        skipped: True when the request bypassed limiting entirely.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None = None
    status_code: int = 429
    message: str = ""
    skipped: bool = False

    def headers(self) -> dict[str, str]:
        """Quota headers for the response; empty for skipped requests."""
        if self.skipped:
            return {}
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(max(0, self.remaining)),
            "X-RateLimit-Reset": str(self.reset_at),
        }

    def body(self) -> dict[str, Any]:
        """JSON body for a denied request."""
        return {"error": self.message, "retryAfter": self.retry_after_seconds}


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    async def check(self, request: Any) -> RateLimitDecision:
        """Count a request against its key and decide allow/deny.

        Args:
            request: Request descriptor passed to the key/skip hooks.

        Returns:
            RateLimitDecision describing the outcome.
        """
        raise NotImplementedError

    @abstractmethod
    def reset(self, key: str) -> None:
        """Forget the counter for a single key."""
        raise NotImplementedError

    @abstractmethod
    def reset_all(self) -> None:
        """Forget every counter."""
        raise NotImplementedError

    @abstractmethod
    def destroy(self) -> None:
        """Release background resources and drop all state."""
        raise NotImplementedError

    @abstractmethod
    def stats(self) -> dict[str, Any]:
        """Counters for monitoring; must include ``sweeper_running``."""
        raise NotImplementedError
