from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, status

from app.core.auth import require_auth
from app.core.rate_limit import rate_limit
from app.deps import get_auth_service
from app.schemas.auth import (
    AuthResponse,
    LoginRequest,
    MessageResponse,
    ProfileResponse,
    RegisterRequest,
    UserPublic,
)
from app.services.auth_service import AuthResult, AuthService

router = APIRouter(prefix="/auth", tags=["Auth"])

Claims = Annotated[dict[str, Any], Depends(require_auth)]
Service = Annotated[AuthService, Depends(get_auth_service)]


def _auth_response(message: str, result: AuthResult) -> AuthResponse:
    return AuthResponse(
        message=message,
        user=UserPublic(id=result.user.id, email=result.user.email, name=result.user.name),
        token=result.token.token,
        expires_in=result.token.expires_in,
    )


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("registration"))],
)
def register(payload: RegisterRequest, service: Service) -> AuthResponse:
    """Create an account and return an access token.

    Raises:
        ConflictAppError: 409 if the email is already registered.
    """
    result = service.register(email=payload.email, password=payload.password, name=payload.name)
    return _auth_response("Registration successful", result)


@router.post(
    "/login",
    response_model=AuthResponse,
    dependencies=[Depends(rate_limit("login"))],
)
def login(payload: LoginRequest, service: Service) -> AuthResponse:
    """Exchange email and password for an access token.

    Raises:
        AuthenticationAppError: 401 for unknown email or wrong password.
    """
    result = service.login(email=payload.email, password=payload.password)
    return _auth_response("Login successful", result)


@router.get("/profile", response_model=ProfileResponse)
async def profile(claims: Claims, service: Service) -> ProfileResponse:
    user = service.get_profile(claims["sub"])
    return ProfileResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        created_at=user.created_at,
        last_login_at=user.last_login_at,
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(claims: Claims, service: Service) -> MessageResponse:
    """Revoke the presented token; later requests with it get 403."""
    service.logout(claims)
    return MessageResponse(message="Logged out")
