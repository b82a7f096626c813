"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


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

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated log files to keep", ge=0)
    security_file_path: str | None = Field(
        None,
        description="Also write SECURITY-level events (blocks, rejections) to this file",
    )
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class ThrottleSettings(BaseSettings):
    """Rate limiting and brute-force lockout policy.

    Read once at startup; the trackers are built from these values and are
    not reconfigured at runtime.
    """

    enabled: bool = Field(
        True,
        description="Enable request throttling and lockout",
    )
    general_max_requests: int = Field(
        100,
        description="Requests allowed per address in the general window",
        ge=1,
    )
    general_window_seconds: float = Field(
        15 * 60,
        description="General sliding window length in seconds",
        gt=0,
    )
    auth_max_requests: int = Field(
        20,
        description="Requests allowed per address on authentication endpoints",
        ge=1,
    )
    auth_window_seconds: float = Field(
        10 * 60,
        description="Authentication sliding window length in seconds",
        gt=0,
    )
    register_max_requests: int = Field(
        10,
        description="Registrations allowed per address in the registration window",
        ge=1,
    )
    register_window_seconds: float = Field(
        60 * 60,
        description="Registration sliding window length in seconds",
        gt=0,
    )
    max_consecutive_failures: int = Field(
        5,
        description="Failed logins that trigger the first block",
        ge=1,
    )
    initial_block_seconds: float = Field(
        5 * 60,
        description="Length of the first block; doubles with each tier",
        gt=0,
    )
    max_block_seconds: float = Field(
        24 * 60 * 60,
        description="Upper bound for any block",
        gt=0,
    )
    failure_window_seconds: float = Field(
        30 * 60,
        description="Idle time after which failure counts are forgotten",
        gt=0,
    )
    sweep_interval_seconds: float = Field(
        15 * 60,
        description="Interval of the background cleanup task (0 disables it)",
        ge=0,
    )
    trust_forwarded_for: bool = Field(
        False,
        description="Use X-Forwarded-For to resolve the client address (behind a proxy only)",
    )

    model_config = SettingsConfigDict(
        env_prefix="THROTTLE_",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def _check_block_bounds(self) -> "ThrottleSettings":
        if self.max_block_seconds < self.initial_block_seconds:
            raise ValueError("max_block_seconds must be >= initial_block_seconds")
        return self


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    admin_api_keys: str | None = Field(
        None,
        description="Comma-separated API keys allowed to read throttle stats",
    )
    users: str | None = Field(
        None,
        description="Comma-separated identifier:sha256(password) pairs accepted by /auth/login",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


def _build_log_settings() -> LogSettings:
    return LogSettings()


def _build_throttle_settings() -> ThrottleSettings:
    return ThrottleSettings()


def _build_app_settings() -> AppSettings:
    return AppSettings()


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    throttle: ThrottleSettings = Field(default_factory=_build_throttle_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
