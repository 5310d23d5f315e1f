"""Factory for limiters configured from settings."""

from __future__ import annotations

from redis import Redis

from sliding_ratelimit.adapters.rate_limit.redis_sliding_window import (
    LimiterOptions,
    SlidingWindowRateLimiter,
)
from sliding_ratelimit.adapters.redis.client import create_redis_client
from sliding_ratelimit.core.config import LimiterSettings, settings


def create_limiter(
    key: str,
    *,
    limiter_settings: LimiterSettings | None = None,
    redis: Redis | None = None,
    warm_start: bool = False,
) -> SlidingWindowRateLimiter:
    """Instantiate a limiter for ``key`` from ``RATELIMIT_*`` settings.

    Args:
        key: Logical name of the rate-limited resource.
        limiter_settings: Overrides the global limiter settings.
        redis: Client to reuse; a new one is built from ``REDIS_*`` settings
            when omitted.
        warm_start: Let the first reservation through the local guard
            even when it follows construction immediately.

    Returns:
        SlidingWindowRateLimiter: Limiter with its script registered.

    Raises:
        ConfigurationError: If the configured limit/period pair is invalid.
        StoreError: If Redis is unreachable or refuses the script.
    """
    cfg = limiter_settings or settings.limiter
    client = redis if redis is not None else create_redis_client()
    return SlidingWindowRateLimiter(
        key,
        cfg.limit,
        cfg.period_seconds,
        client,
        redis_key=cfg.redis_key,
        options=LimiterOptions(
            debug=cfg.debug,
            stop_burst=cfg.stop_burst,
            warm_start=warm_start,
        ),
    )
