"""Configuration using Pydantic Settings.

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


# Nested BaseSettings don't inherit env_file, so populate os.environ first.
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


# Hard bounds shared by settings validation and limiter construction.
MAX_PERIOD_SECONDS = 31_536_000
MAX_LIMIT = 1_000_000

# Burst spacing is period * BURST_QUANTUM_FACTOR // limit microseconds and
# must stay above MIN_BURST_QUANTUM_US.
BURST_QUANTUM_FACTOR = 850_000
MIN_BURST_QUANTUM_US = 100


def _build_redis_settings() -> "RedisSettings":
    return RedisSettings()  # type: ignore[call-arg]


def _build_limiter_settings() -> "LimiterSettings":
    return LimiterSettings()  # type: ignore[call-arg]


class RedisSettings(BaseSettings):
    """Connection parameters for the Redis client."""

    url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL (redis://, rediss:// or unix://)",
    )
    socket_timeout_seconds: float | None = Field(
        2.0,
        description="Per-command socket timeout; None blocks indefinitely",
    )
    socket_connect_timeout_seconds: float | None = Field(
        2.0,
        description="Connection establishment timeout",
    )
    decode_responses: bool = Field(
        True,
        description="Decode replies to str instead of bytes",
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class LimiterSettings(BaseSettings):
    """Sliding-window limiter defaults."""

    enabled: bool = Field(
        False,
        description="Enable the FastAPI rate limit dependency",
    )
    limit: int = Field(
        10,
        description="Maximum number of events allowed per period",
        ge=1,
        le=MAX_LIMIT,
    )
    period_seconds: int = Field(
        60,
        description="Sliding window size in seconds",
        ge=1,
        le=MAX_PERIOD_SECONDS,
    )
    redis_key: str | None = Field(
        None,
        description="Explicit sorted-set key; derived from the limiter key when unset",
    )
    key_prefix: str = Field(
        "",
        description="Prefix prepended to every limiter key built from requests",
    )
    debug: bool = Field(
        False,
        description="Log local-guard rejections, remote errors and limit hits",
    )
    stop_burst: bool = Field(
        False,
        description="Enforce the full burst quantum between accepted events",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )
    max_cached_limiters: int = Field(
        1024,
        description="Upper bound on per-requester limiters kept by the HTTP dependency",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATELIMIT_",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def _validate_burst_spacing(self) -> "LimiterSettings":
        if self.period_seconds * BURST_QUANTUM_FACTOR // self.limit <= MIN_BURST_QUANTUM_US:
            raise ValueError("limit is too high for period_seconds to space events")
        return self


class Settings(BaseSettings):
    """Main settings container.

    Loads from the appropriate .env.{APP_ENV} file and raises validation
    errors on startup if a value is out of bounds.
    """

    app_env: str = APP_ENV
    redis: RedisSettings = Field(default_factory=_build_redis_settings)
    limiter: LimiterSettings = Field(default_factory=_build_limiter_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
