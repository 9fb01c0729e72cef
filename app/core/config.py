"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.errors import ConfigurationAppError


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

DEFAULT_JWT_SECRET = "change-me-in-production"

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file.
# Tests set TESTING=true so local .env files never leak into them.
if _env_file and os.getenv("TESTING", "").lower() != "true":
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    name: str = Field(
        "Auth API",
        description="Service name shown in OpenAPI docs and logs",
    )
    version: str = Field(
        "1.0.0",
        description="API version reported by the health endpoint",
    )
    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class AuthSettings(BaseSettings):
    """Token signing and password hashing configuration."""

    jwt_secret: str = Field(
        DEFAULT_JWT_SECRET,
        description="HMAC secret used to sign access tokens",
    )
    jwt_algorithm: str = Field(
        "HS256",
        description="JWT signing algorithm",
    )
    jwt_expires_minutes: int = Field(
        24 * 60,
        description="Access token lifetime in minutes",
        ge=1,
    )
    password_hash_iterations: int = Field(
        200_000,
        description="PBKDF2 iterations for new password hashes",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Fixed-window rate limit configuration (per client address)."""

    enabled: bool = Field(
        True,
        description="Enable rate limiting on /api routes",
    )
    window_ms: int = Field(
        60_000,
        description="General API window length in milliseconds",
        ge=1,
    )
    max_requests: int = Field(
        100,
        description="General API requests allowed per window",
        ge=1,
    )
    login_window_ms: int = Field(
        15 * 60 * 1000,
        description="Login attempt window length in milliseconds",
        ge=1,
    )
    login_max_requests: int = Field(
        5,
        description="Login attempts allowed per window",
        ge=1,
    )
    registration_window_ms: int = Field(
        60 * 60 * 1000,
        description="Registration window length in milliseconds",
        ge=1,
    )
    registration_max_requests: int = Field(
        3,
        description="Registrations allowed per window",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field(
        "INFO",
        description="Root log level",
    )
    format: str = Field(
        "json",
        description="Log format: json or plain",
    )
    output: str = Field(
        "stdout",
        description="Log destination: stdout or file",
    )
    file_path: str | None = Field(
        "logs/app.log",
        description="Log file path when output=file",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(
        5,
        description="Number of rotated log files to keep",
        ge=0,
    )
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )
    exclude_paths: list[str] = Field(
        default_factory=lambda: ["/health", "/favicon.ico"],
        description="Paths that are not logged by the request logging middleware",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=AppSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


def validate_settings(cfg: Settings) -> None:
    """Reject settings that are unsafe for the current environment.

    Args:
        cfg: Resolved settings.

    Raises:
        ConfigurationAppError: In production, when the JWT secret is the
            built-in default or password hashing is too cheap.
    """
    if cfg.app_env != "production":
        return

    problems: list[str] = []
    if cfg.auth.jwt_secret == DEFAULT_JWT_SECRET:
        problems.append("AUTH_JWT_SECRET must be set in production")
    if cfg.auth.password_hash_iterations < 100_000:
        problems.append("AUTH_PASSWORD_HASH_ITERATIONS should be at least 100000 in production")

    if problems:
        raise ConfigurationAppError(
            code="invalid_configuration",
            message="Configuration errors: " + "; ".join(problems),
            details={"context": {"problems": problems}},
        )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
