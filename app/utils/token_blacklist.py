"""In-memory revocation list for access tokens.

Tokens are identified by their ``jti`` claim and kept only until they would
have expired anyway, so the list never grows beyond the set of live tokens.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)


class TokenBlacklist:
    """Thread-safe ``jti -> expires_at`` store with lazy eviction.

    Attributes:
        default_ttl_seconds: Lifetime used when ``add`` gets no expiry.
    """

    def __init__(
        self,
        default_ttl_seconds: float = 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock
        self._entries: dict[str, float] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def add(self, jti: str, expires_at: float | None = None) -> None:
        """Revoke ``jti`` until ``expires_at`` (epoch seconds)."""

        with self._lock:
            self._purge_expired_locked()
            expiry = expires_at if expires_at is not None else self._clock() + self.default_ttl_seconds
            self._entries[jti] = expiry
            logger.debug(
                "token_blacklist.add",
                extra={"jti": jti[:8], "size": len(self._entries)},
            )

    def is_revoked(self, jti: str) -> bool:
        with self._lock:
            expiry = self._entries.get(jti)
            if expiry is None:
                return False
            if self._clock() > expiry:
                del self._entries[jti]
                return False
            return True

    def remove(self, jti: str) -> bool:
        with self._lock:
            return self._entries.pop(jti, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        """Drop entries whose token has expired; returns how many were dropped."""

        with self._lock:
            return self._purge_expired_locked()

    def _purge_expired_locked(self) -> int:
        now = self._clock()
        expired = [jti for jti, expiry in self._entries.items() if now > expiry]
        for jti in expired:
            del self._entries[jti]
        return len(expired)
