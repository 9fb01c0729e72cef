"""User repository interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


@dataclass
class UserRecord:
    """Stored user, including the password hash.

    Never return this object from an API route; map it to a public schema.
    """

    id: str
    email: str
    name: str
    password_hash: str
    created_at: datetime
    updated_at: datetime
    last_login_at: datetime | None = None
    is_active: bool = True


class AbstractUserRepository(ABC):
    """Interface for user storage."""

    @abstractmethod
    def create(self, *, email: str, name: str, password_hash: str) -> UserRecord:
        """Persist a new user.

        Raises:
            ConflictAppError: If a user with ``email`` already exists.
        """
        raise NotImplementedError

    @abstractmethod
    def get_by_email(self, email: str) -> UserRecord | None:
        raise NotImplementedError

    @abstractmethod
    def get_by_id(self, user_id: str) -> UserRecord | None:
        raise NotImplementedError

    @abstractmethod
    def touch_last_login(self, user_id: str) -> None:
        raise NotImplementedError
