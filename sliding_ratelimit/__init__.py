"""Distributed sliding-window rate limiter backed by Redis."""

from sliding_ratelimit.adapters.rate_limit import (
    AbstractRateLimiter,
    LimiterOptions,
    RateLimitResult,
    SlidingWindowRateLimiter,
    create_limiter,
)
from sliding_ratelimit.adapters.redis.client import create_redis_client
from sliding_ratelimit.core.errors import (
    ConfigurationError,
    RateLimiterError,
    ScriptRegistrationError,
    StoreError,
    TooFastError,
)

__all__ = [
    "AbstractRateLimiter",
    "ConfigurationError",
    "LimiterOptions",
    "RateLimitResult",
    "RateLimiterError",
    "ScriptRegistrationError",
    "SlidingWindowRateLimiter",
    "StoreError",
    "TooFastError",
    "create_limiter",
    "create_redis_client",
]
