"""Access token issuance and verification (JWT, HS256 by default)."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from app.core.errors import AuthorizationAppError
from app.utils.token_blacklist import TokenBlacklist

logger = logging.getLogger(__name__)

INVALID_TOKEN_MESSAGE = "Invalid or expired token"


@dataclass(frozen=True)
class IssuedToken:
    """A signed token plus the claims callers need to track it."""

    token: str
    jti: str
    expires_at: datetime
    expires_in: int


class TokenService:
    """Sign and verify access tokens, honoring the revocation list."""

    def __init__(
        self,
        secret_key: str,
        *,
        algorithm: str = "HS256",
        expires_minutes: int = 24 * 60,
        blacklist: TokenBlacklist | None = None,
    ) -> None:
        self.__secret_key = secret_key
        self.algorithm = algorithm
        self.access_ttl = timedelta(minutes=expires_minutes)
        self.blacklist = blacklist or TokenBlacklist(default_ttl_seconds=self.access_ttl.total_seconds())

    def __repr__(self) -> str:
        return f"<TokenService algorithm={self.algorithm}>"

    def issue(self, *, user_id: str, email: str) -> IssuedToken:
        """Create a signed access token for ``user_id``."""
        now = datetime.now(timezone.utc)
        expires_at = now + self.access_ttl
        jti = secrets.token_hex(16)
        payload = {
            "sub": user_id,
            "email": email,
            "iat": now,
            "exp": expires_at,
            "jti": jti,
        }
        token = jwt.encode(payload, self.__secret_key, algorithm=self.algorithm)
        return IssuedToken(
            token=token,
            jti=jti,
            expires_at=expires_at,
            expires_in=int(self.access_ttl.total_seconds()),
        )

    def verify(self, token: str) -> dict[str, Any]:
        """Decode ``token`` and return its claims.

        Raises:
            AuthorizationAppError: If the token is malformed, expired, signed
                with another key, or has been revoked.
        """
        try:
            claims = jwt.decode(
                token,
                self.__secret_key,
                algorithms=[self.algorithm],
                options={"require": ["sub", "exp", "jti"]},
            )
        except jwt.ExpiredSignatureError as exc:
            logger.info("auth.token_rejected", extra={"reason": "expired"})
            raise AuthorizationAppError(code="token_expired", message=INVALID_TOKEN_MESSAGE) from exc
        except jwt.InvalidTokenError as exc:
            logger.info(
                "auth.token_rejected",
                extra={"reason": "invalid", "error_type": type(exc).__name__},
            )
            raise AuthorizationAppError(code="invalid_token", message=INVALID_TOKEN_MESSAGE) from exc

        if self.blacklist.is_revoked(claims["jti"]):
            logger.info("auth.token_rejected", extra={"reason": "revoked"})
            raise AuthorizationAppError(code="token_revoked", message=INVALID_TOKEN_MESSAGE)

        return claims

    def revoke(self, claims: dict[str, Any]) -> None:
        """Blacklist a verified token until its own expiry."""
        self.blacklist.add(claims["jti"], expires_at=float(claims["exp"]))
