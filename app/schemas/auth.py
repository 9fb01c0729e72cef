"""Pydantic schemas for registration, login and profile endpoints."""

from __future__ import annotations

import re
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
EMAIL_MAX_LENGTH = 254
PASSWORD_MIN_LENGTH = 8
NAME_MAX_LENGTH = 100
_HTML_TAG = re.compile(r"<[^>]*>")


def _validate_email(value: str) -> str:
    email = value.strip().lower()
    if not EMAIL_REGEX.match(email):
        raise ValueError("Invalid email format")
    if len(email) > EMAIL_MAX_LENGTH:
        raise ValueError("Email is too long")
    return email


class RegisterRequest(BaseModel):
    """Registration payload."""

    email: str = Field(..., description="Account email; stored lowercased.")
    password: str = Field(
        ...,
        description=(
            f"At least {PASSWORD_MIN_LENGTH} characters with one uppercase "
            "letter, one lowercase letter and one digit."
        ),
    )
    name: str | None = Field(
        default=None,
        description="Display name; defaults to the email local part.",
    )

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        return _validate_email(value)

    @field_validator("password")
    @classmethod
    def check_password_strength(cls, value: str) -> str:
        if len(value) < PASSWORD_MIN_LENGTH:
            raise ValueError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
        if not re.search(r"[A-Z]", value):
            raise ValueError("Password must contain at least one uppercase letter")
        if not re.search(r"[a-z]", value):
            raise ValueError("Password must contain at least one lowercase letter")
        if not re.search(r"\d", value):
            raise ValueError("Password must contain at least one number")
        return value

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        name = value.strip()
        if not name:
            return None
        if len(name) > NAME_MAX_LENGTH:
            raise ValueError(f"Name cannot exceed {NAME_MAX_LENGTH} characters")
        if _HTML_TAG.search(name):
            raise ValueError("Name contains invalid characters")
        return name


class LoginRequest(BaseModel):
    """Login payload. Only presence is checked; wrong values fail as 401."""

    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserPublic(BaseModel):
    """User fields safe to return to clients."""

    id: str
    email: str
    name: str


class AuthResponse(BaseModel):
    """Response for successful registration or login."""

    message: str
    user: UserPublic
    token: str = Field(..., description="Bearer access token.")
    expires_in: int = Field(..., description="Token lifetime in seconds.")


class ProfileResponse(UserPublic):
    """Authenticated user's profile."""

    created_at: datetime
    last_login_at: datetime | None = None


class MessageResponse(BaseModel):
    message: str
