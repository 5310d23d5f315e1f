"""Rate limiting adapters: the abstract interface and the Redis sliding window."""

from sliding_ratelimit.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from sliding_ratelimit.adapters.rate_limit.factory import create_limiter
from sliding_ratelimit.adapters.rate_limit.redis_sliding_window import (
    LimiterOptions,
    SlidingWindowRateLimiter,
    make_burst_quantum,
)

__all__ = [
    "AbstractRateLimiter",
    "LimiterOptions",
    "RateLimitResult",
    "SlidingWindowRateLimiter",
    "create_limiter",
    "make_burst_quantum",
]
