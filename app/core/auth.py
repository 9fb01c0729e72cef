"""Bearer token authentication dependency.

Routes that need an authenticated user declare ``Depends(require_auth)`` and
receive the verified token claims.

- Missing or non-Bearer ``Authorization`` header → 401 "Access token required"
- Malformed, expired or revoked token → 403 "Invalid or expired token"
"""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import Depends, Header

from app.core.errors import AuthenticationAppError
from app.core.tokens import TokenService
from app.deps import get_token_service

logger = logging.getLogger(__name__)


def parse_bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header.

    Examples:
        >>> parse_bearer_token("Bearer abc.def.ghi")
        'abc.def.ghi'
        >>> parse_bearer_token("bearer abc")
        'abc'
        >>> parse_bearer_token("Basic dXNlcjpwYXNz") is None
        True
        >>> parse_bearer_token(None) is None
        True
    """
    if not authorization:
        return None

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


async def require_auth(
    tokens: Annotated[TokenService, Depends(get_token_service)],
    authorization: Annotated[str | None, Header()] = None,
) -> dict[str, Any]:
    """FastAPI dependency returning the claims of a valid access token.

    Raises:
        AuthenticationAppError: 401 when no bearer token is presented.
        AuthorizationAppError: 403 when the token does not verify.
    """
    token = parse_bearer_token(authorization)
    if not token:
        logger.info(
            "auth.missing_token",
            extra={"authorization_present": authorization is not None},
        )
        raise AuthenticationAppError(code="missing_token", message="Access token required")

    return tokens.verify(token)
