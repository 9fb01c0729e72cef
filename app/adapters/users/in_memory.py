"""In-memory user repository.

Notes:
- Per-process only: users vanish on restart.
- Thread-safe: uses a lock around both indexes.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone

from app.adapters.users.base import AbstractUserRepository, UserRecord
from app.core.errors import ConflictAppError


def normalize_email(email: str) -> str:
    return email.strip().lower()


class InMemoryUserRepository(AbstractUserRepository):
    """Users indexed by normalized email and by id."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._by_email: dict[str, UserRecord] = {}
        self._by_id: dict[str, UserRecord] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_id)

    def create(self, *, email: str, name: str, password_hash: str) -> UserRecord:
        key = normalize_email(email)
        now = datetime.now(timezone.utc)

        with self._lock:
            if key in self._by_email:
                raise ConflictAppError(code="user_exists", message="User already exists")

            user = UserRecord(
                id=f"usr_{uuid.uuid4().hex}",
                email=key,
                name=name,
                password_hash=password_hash,
                created_at=now,
                updated_at=now,
            )
            self._by_email[key] = user
            self._by_id[user.id] = user
            return replace(user)

    def get_by_email(self, email: str) -> UserRecord | None:
        with self._lock:
            user = self._by_email.get(normalize_email(email))
            return replace(user) if user else None

    def get_by_id(self, user_id: str) -> UserRecord | None:
        with self._lock:
            user = self._by_id.get(user_id)
            return replace(user) if user else None

    def touch_last_login(self, user_id: str) -> None:
        with self._lock:
            user = self._by_id.get(user_id)
            if user is not None:
                user.last_login_at = datetime.now(timezone.utc)
