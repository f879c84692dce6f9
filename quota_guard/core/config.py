"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
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

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ first
if _env_file and os.getenv("TESTING") != "true":
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_admission_settings() -> "AdmissionSettings":
    """Build admission settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return AdmissionSettings()  # type: ignore[call-arg]


def _build_store_settings() -> "StoreSettings":
    return StoreSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


def _build_app_settings() -> "AppSettings":
    return AppSettings()  # type: ignore[call-arg]


class AdmissionSettings(BaseSettings):
    """Sliding-window quota for the remote API.

    Defaults match the remote API's published quota of 300 calls per
    5 minutes with at least 1.1 seconds between consecutive calls.
    """

    limit: int = Field(
        300,
        description="Maximum number of calls allowed inside the sliding window",
        ge=1,
    )
    window_seconds: float = Field(
        300.0,
        description="Sliding window duration in seconds",
        gt=0,
    )
    min_spacing_seconds: float = Field(
        1.1,
        description="Minimum time between two consecutive calls",
        ge=0,
    )
    ttl_margin_seconds: float = Field(
        60.0,
        description="Extra TTL added to stored keys beyond the window duration",
        ge=0,
    )
    poll_floor_seconds: float = Field(
        1.0,
        description="Re-check interval used when the exact wake time is unusable",
        gt=0,
    )
    near_limit_percent: float = Field(
        80.0,
        description="Usage percentage above which the quota is reported as near its limit",
        ge=0,
        le=100,
    )
    default_max_wait_seconds: float = Field(
        60.0,
        description="Default wait budget for await_admission/acquire",
        ge=0,
    )
    strict: bool = Field(
        False,
        description="Use compare-and-set when recording so concurrent callers never over-admit",
    )
    key_prefix: str = Field(
        "lgl_rate_limiter",
        description="Namespace for the keys holding the call history and last call instant",
        min_length=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="ADMISSION_",
        case_sensitive=False,
    )


class StoreSettings(BaseSettings):
    """Backing store for the call history."""

    backend: Literal["memory", "redis"] = Field(
        "memory",
        description="Counter store backend (memory is per-process only)",
    )
    redis_url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL used when backend=redis",
    )
    socket_timeout_seconds: float = Field(
        2.0,
        description="Redis socket timeout in seconds",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field("json", description="Log line format")
    output: Literal["stdout", "file"] = Field("stdout", description="Log destination")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header carrying the correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Operations API configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_required: bool = Field(
        True,
        description="Whether API key authentication is required",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid API keys for authentication",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    admission: AdmissionSettings = Field(default_factory=_build_admission_settings)
    store: StoreSettings = Field(default_factory=_build_store_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
