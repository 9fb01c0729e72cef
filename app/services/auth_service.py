"""Account service: registration, login, profile lookup and logout.

Orchestrates the user repository, password hashing and token service. The
HTTP layer maps the domain errors raised here to responses through the
global exception handlers.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from app.adapters.users.base import AbstractUserRepository, UserRecord
from app.adapters.users.in_memory import normalize_email
from app.core.errors import AuthenticationAppError, NotFoundAppError
from app.core.logging import hash_identifier
from app.core.tokens import IssuedToken, TokenService
from app.utils.passwords import hash_password, verify_password

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthResult:
    user: UserRecord
    token: IssuedToken


def name_from_email(email: str) -> str:
    """Derive a display name from the email local part (``jane.doe`` → ``jane doe``)."""
    return re.sub(r"[._-]", " ", email.split("@", 1)[0])


class AuthService:
    """Account operations over an injected repository and token service."""

    def __init__(
        self,
        *,
        users: AbstractUserRepository,
        tokens: TokenService,
        password_hash_iterations: int = 200_000,
    ) -> None:
        self.users = users
        self.tokens = tokens
        self._rounds = password_hash_iterations
        # Verified for unknown emails so both login failure paths hash once.
        self._dummy_hash = hash_password("dummy-password", rounds=password_hash_iterations)

    def register(self, *, email: str, password: str, name: str | None = None) -> AuthResult:
        """Create an account and sign the user in.

        Raises:
            ConflictAppError: If the email is already registered.
        """
        email = normalize_email(email)
        user = self.users.create(
            email=email,
            name=name or name_from_email(email),
            password_hash=hash_password(password, rounds=self._rounds),
        )
        token = self.tokens.issue(user_id=user.id, email=user.email)

        logger.info(
            "auth.registered",
            extra={"user_id": user.id, "email_hash": hash_identifier(user.email)},
        )
        return AuthResult(user=user, token=token)

    def login(self, *, email: str, password: str) -> AuthResult:
        """Check credentials and issue a fresh token.

        Raises:
            AuthenticationAppError: If the email is unknown, the account is
                inactive, or the password is wrong.
        """
        user = self.users.get_by_email(email)
        password_hash = user.password_hash if user else self._dummy_hash
        password_ok = verify_password(password, password_hash)

        if user is None or not password_ok or not user.is_active:
            reason = "unknown_user" if user is None else ("inactive" if password_ok else "bad_password")
            logger.warning(
                "auth.login_failed",
                extra={"reason": reason, "email_hash": hash_identifier(normalize_email(email))},
            )
            raise AuthenticationAppError(code="invalid_credentials", message="Invalid credentials")

        self.users.touch_last_login(user.id)
        token = self.tokens.issue(user_id=user.id, email=user.email)
        logger.info("auth.login", extra={"user_id": user.id})
        return AuthResult(user=user, token=token)

    def get_profile(self, user_id: str) -> UserRecord:
        """Raises NotFoundAppError when the token's user no longer exists."""
        user = self.users.get_by_id(user_id)
        if user is None:
            logger.warning("auth.profile_missing_user", extra={"user_id": user_id})
            raise NotFoundAppError(code="user_not_found", message="User not found")
        return user

    def logout(self, claims: dict[str, Any]) -> None:
        self.tokens.revoke(claims)
        logger.info("auth.logout", extra={"user_id": claims.get("sub")})
