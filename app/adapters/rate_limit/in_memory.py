"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: a single lock guards the store for both the request path and
  the background sweeper.
- Windows start at a key's first request (not aligned to the wall clock).
"""

from __future__ import annotations

import inspect
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitDecision
from app.core.errors import ConfigurationAppError

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "Too many requests, please try again later"
UNKNOWN_KEY = "unknown"

KeyGenerator = Callable[[Any], "str | Awaitable[str]"]
SkipPredicate = Callable[[Any], "bool | Awaitable[bool]"]
LimitReachedHook = Callable[[Any, str], "None | Awaitable[None]"]


@dataclass
class _WindowRecord:
    count: int
    reset_time: float


def client_address_key(request: Any) -> str:
    """Default key: the request's client address, or ``"unknown"``."""
    client = getattr(request, "client", None)
    host = getattr(client, "host", None) if client is not None else None
    return host or UNKNOWN_KEY


def never_skip(request: Any) -> bool:
    return False


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter using a fixed time window per key.

    Each key gets ``max_requests`` admissions per window of ``window_ms``
    milliseconds, counted from the key's first request. A daemon thread
    evicts expired records every ``window_ms`` so keys that never come back
    do not accumulate.

    Important:
        This limiter is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits.
    """

    def __init__(
        self,
        *,
        window_ms: int = 60_000,
        max_requests: int = 100,
        status_code: int = 429,
        message: str = DEFAULT_MESSAGE,
        key_generator: KeyGenerator | None = None,
        skip: SkipPredicate | None = None,
        on_limit_reached: LimitReachedHook | None = None,
        clock: Callable[[], float] = time.time,
        name: str = "default",
    ) -> None:
        """Initialize the limiter and start its sweeper thread.

        Args:
            window_ms: Window length in milliseconds.
            max_requests: Admissions allowed per key per window.
            status_code: HTTP status reported on denial.
            message: Human-readable denial text.
            key_generator: Maps a request to its quota key (sync or async).
            skip: Predicate that bypasses limiting when truthy (sync or async).
            on_limit_reached: Called with ``(request, key)`` on every denial.
            clock: Time source returning UNIX time in seconds.
            name: Label used in logs and stats.

        Raises:
            ConfigurationAppError: If any numeric parameter is out of range.
        """
        if window_ms < 1:
            raise ConfigurationAppError(
                code="invalid_rate_limit_config",
                message="window_ms must be >= 1",
                details={"field": "window_ms", "actual_value": window_ms},
            )
        if max_requests < 1:
            raise ConfigurationAppError(
                code="invalid_rate_limit_config",
                message="max_requests must be >= 1",
                details={"field": "max_requests", "actual_value": max_requests},
            )
        if not 400 <= status_code <= 599:
            raise ConfigurationAppError(
                code="invalid_rate_limit_config",
                message="status_code must be an HTTP error status (400-599)",
                details={"field": "status_code", "actual_value": status_code},
            )

        self.name = name
        self.window_ms = window_ms
        self.max_requests = max_requests
        self.status_code = status_code
        self.message = message
        self._window_seconds = window_ms / 1000
        self._key_generator = key_generator or client_address_key
        self._skip = skip or never_skip
        self._on_limit_reached = on_limit_reached
        self._clock = clock

        self._lock = threading.RLock()
        self._store: dict[str, _WindowRecord] = {}
        self._sweeps = 0
        self._evictions = 0
        self._denials = 0

        self._stop_event = threading.Event()
        self._sweeper: threading.Thread | None = threading.Thread(
            target=self._sweep_loop,
            name=f"rate-limit-sweeper-{name}",
            daemon=True,
        )
        self._sweeper.start()

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"InMemoryFixedWindowRateLimiter(name={self.name!r}, "
            f"window_ms={self.window_ms}, max_requests={self.max_requests}, "
            f"keys={len(self)})"
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._store

    async def check(self, request: Any) -> RateLimitDecision:
        """Count ``request`` against its key and decide allow/deny.

        Hook exceptions (``skip``/``key_generator``) propagate unchanged.
        An empty key from ``key_generator`` is counted under ``"unknown"``,
        the same bucket the default generator uses for address-less requests.
        Failures of ``on_limit_reached`` are logged and do not change the
        decision.
        """
        if await _resolve(self._skip(request)):
            return RateLimitDecision(
                allowed=True,
                limit=self.max_requests,
                remaining=self.max_requests,
                reset_at=0,
                status_code=self.status_code,
                message=self.message,
                skipped=True,
            )

        key = await _resolve(self._key_generator(request)) or UNKNOWN_KEY
        decision = self.consume(key)

        if not decision.allowed and self._on_limit_reached is not None:
            await self._notify_limit_reached(request, key)

        return decision

    def consume(self, key: str) -> RateLimitDecision:
        """Count one request for ``key`` in its current window.

        The read, expiry branch, increment and threshold test run under the
        store lock so concurrent callers for the same key never lose updates.

        Raises:
            ValueError: If key is empty.
        """
        if not key:
            raise ValueError("key must be a non-empty string")

        with self._lock:
            now = self._clock()
            record = self._store.get(key)

            if record is None:
                record = _WindowRecord(count=1, reset_time=now + self._window_seconds)
                self._store[key] = record
                return self._build_allowed_decision(remaining=self.max_requests - 1, reset_time=record.reset_time)

            if now > record.reset_time:
                record.count = 1
                record.reset_time = now + self._window_seconds
                return self._build_allowed_decision(remaining=self.max_requests - 1, reset_time=record.reset_time)

            record.count += 1
            if record.count > self.max_requests:
                self._denials += 1
                return self._build_denied_decision(now=now, reset_time=record.reset_time)

            return self._build_allowed_decision(
                remaining=self.max_requests - record.count,
                reset_time=record.reset_time,
            )

    def _build_allowed_decision(self, *, remaining: int, reset_time: float) -> RateLimitDecision:
        return RateLimitDecision(
            allowed=True,
            limit=self.max_requests,
            remaining=max(0, remaining),
            reset_at=math.ceil(reset_time),
            retry_after_seconds=None,
            status_code=self.status_code,
            message=self.message,
        )

    def _build_denied_decision(self, *, now: float, reset_time: float) -> RateLimitDecision:
        retry_after = max(0, math.ceil(reset_time - now))
        return RateLimitDecision(
            allowed=False,
            limit=self.max_requests,
            remaining=0,
            reset_at=math.ceil(reset_time),
            retry_after_seconds=retry_after,
            status_code=self.status_code,
            message=self.message,
        )

    async def _notify_limit_reached(self, request: Any, key: str) -> None:
        try:
            await _resolve(self._on_limit_reached(request, key))
        except Exception as exc:
            logger.error(
                "rate_limit.hook_failed",
                extra={
                    "limiter": self.name,
                    "hook": "on_limit_reached",
                    "error_type": type(exc).__name__,
                },
            )

    def sweep(self) -> int:
        """Evict every record whose window has ended.

        Returns:
            Number of records removed.
        """
        with self._lock:
            now = self._clock()
            expired = [key for key, record in self._store.items() if now > record.reset_time]
            for key in expired:
                del self._store[key]
            self._sweeps += 1
            self._evictions += len(expired)
            remaining = len(self._store)

        if expired:
            logger.debug(
                "rate_limit.sweep",
                extra={"limiter": self.name, "evicted": len(expired), "keys": remaining},
            )
        return len(expired)

    def _sweep_loop(self) -> None:
        while not self._stop_event.wait(self._window_seconds):
            try:
                self.sweep()
            except Exception:
                logger.exception("rate_limit.sweep_failed", extra={"limiter": self.name})

    def reset(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def reset_all(self) -> None:
        with self._lock:
            self._store.clear()

    def destroy(self) -> None:
        """Stop the sweeper and drop all records.

        Blocks until the sweeper thread has exited, so no sweep runs after
        this returns. Safe to call more than once.
        """
        self._stop_event.set()
        sweeper = self._sweeper
        if sweeper is not None and sweeper.is_alive() and sweeper is not threading.current_thread():
            sweeper.join()
        self._sweeper = None
        self.reset_all()

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def stats(self) -> dict[str, Any]:
        """Return lightweight limiter metrics without exposing keys."""
        with self._lock:
            return {
                "name": self.name,
                "window_ms": self.window_ms,
                "max_requests": self.max_requests,
                "keys": len(self._store),
                "sweeps": self._sweeps,
                "evictions": self._evictions,
                "denials": self._denials,
                "sweeper_running": self.sweeper_running,
            }
