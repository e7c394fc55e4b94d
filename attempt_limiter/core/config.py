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

from attempt_limiter.schemas.rate_limit import RateLimitPolicy


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

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ up front
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    Pydantic Settings (v2) populates values from environment variables, but
    static type checkers treat fields as constructor arguments, hence the
    type ignore.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    return RateLimitSettings()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_required: bool = Field(
        True,
        description="Whether the administrative endpoints require an API key",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid admin API keys",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level name")
    format: str = Field(
        "json",
        description="Log format: 'json' for structured logs or 'plain' for text",
    )
    output: str = Field("stdout", description="Log destination: 'stdout' or 'file'")
    file_path: str | None = Field(
        None,
        description="Log file path when output is 'file' (default logs/app.log)",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Number of rotated files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read and echo the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Attempt limiter configuration.

    ``policy_overrides`` is read from the RATE_LIMIT_POLICY_OVERRIDES variable
    as JSON, for example::

        {"otp_request": {"max_attempts": 5, "window_ms": 120000, "block_duration_ms": 300000}}

    Entries replace the built-in policy of the same action type and may add
    new action types.
    """

    enabled: bool = Field(
        True,
        description="Disable to let every check pass (fail-open)",
    )
    storage_backend: str = Field(
        "file",
        description="Key-value backend for persisted counters: 'file' or 'memory'",
    )
    storage_path: str = Field(
        "data/rate_limits.json",
        description="JSON file backing the 'file' storage backend",
    )
    key_prefix: str = Field(
        "rate_limit_",
        description="Namespace prefix for persisted state keys",
    )
    default_identifier: str = Field(
        "default",
        description="Identifier used when the caller provides none",
        min_length=1,
    )
    serialize_per_key: bool = Field(
        False,
        description="Guard each key's read-modify-write with an asyncio lock",
    )
    policy_overrides: dict[str, RateLimitPolicy] = Field(
        default_factory=dict,
        description="Per action type policies overriding or extending the defaults",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
