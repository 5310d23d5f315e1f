"""Rate limiting dependency for FastAPI routes.

This module wires the sliding-window limiter into the HTTP layer.

Strategy:
- One limiter per requester (API key, or client IP when the header is absent),
  all sharing one Redis client and the ``RATELIMIT_*`` limit/period.
- Limiters are cached per process with LRU eviction; the window itself lives
  in Redis, so an evicted limiter loses only its local burst hint.
- Disabled unless RATELIMIT_ENABLED is true.
"""

from __future__ import annotations

import hashlib
import threading
from collections import OrderedDict
from typing import Annotated

from fastapi import Header, HTTPException, Request, status
from redis import Redis
from starlette.concurrency import run_in_threadpool

from sliding_ratelimit.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from sliding_ratelimit.adapters.rate_limit.factory import create_limiter
from sliding_ratelimit.adapters.redis.client import create_redis_client
from sliding_ratelimit.core.config import LimiterSettings, settings
from sliding_ratelimit.core.logging import clear_limiter_key, get_logger, set_limiter_key

logger = get_logger(__name__)


class LimiterRegistry:
    """Process-wide cache of per-requester limiters with LRU eviction."""

    def __init__(self, limiter_settings: LimiterSettings, redis: Redis) -> None:
        # Per-requester limiters each derive their own sorted-set key.
        self._settings = limiter_settings.model_copy(update={"redis_key": None})
        self._redis = redis
        self._max_entries = limiter_settings.max_cached_limiters
        self._limiters: OrderedDict[str, AbstractRateLimiter] = OrderedDict()
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._limiters)

    def get(self, key: str) -> AbstractRateLimiter:
        """Return the limiter for ``key``, creating it on first use.

        Creation loads the script into Redis, so call this off the event loop.
        """

        with self._lock:
            limiter = self._limiters.get(key)
            if limiter is not None:
                self._limiters.move_to_end(key)
                return limiter

            limiter = create_limiter(
                key,
                limiter_settings=self._settings,
                redis=self._redis,
                warm_start=True,
            )
            self._limiters[key] = limiter
            while len(self._limiters) > self._max_entries:
                # popitem(last=False) removes the least recently used entry
                self._limiters.popitem(last=False)
            return limiter

    def close(self) -> None:
        """Drop cached limiters and release the Redis connection pool."""

        with self._lock:
            self._limiters.clear()
            self._redis.close()


_registry: LimiterRegistry | None = None
_registry_config: dict | None = None
_registry_lock = threading.Lock()

# Fields read once per request rather than baked into limiters.
_PER_REQUEST_FIELDS = {"enabled", "include_headers", "key_prefix"}


def get_limiter_registry() -> LimiterRegistry:
    """Return the process-wide registry, rebuilt when the config changes.

    Blocks on Redis when the registry is (re)built; call it off the event
    loop.

    Raises:
        StoreError: If Redis cannot be reached on first use.
    """

    global _registry, _registry_config

    cfg = settings.limiter
    config = cfg.model_dump(exclude=_PER_REQUEST_FIELDS)

    with _registry_lock:
        if _registry is None or _registry_config != config:
            previous = _registry
            _registry = LimiterRegistry(cfg, create_redis_client())
            _registry_config = config
            if previous is not None:
                previous.close()
        return _registry


def reset_limiter_registry() -> None:
    """Forget cached limiters (Redis state is untouched)."""

    global _registry, _registry_config
    with _registry_lock:
        if _registry is not None:
            _registry.close()
        _registry = None
        _registry_config = None


def _build_rate_limit_key(request: Request, x_api_key: str | None) -> str:
    """Build the limiter key for the current request.

    The API key is hashed so it never ends up in Redis key names.
    """

    prefix = settings.limiter.key_prefix
    if x_api_key:
        return f"{prefix}api_key:{_hash_limiter_key(x_api_key)}"

    client_host = request.client.host if request.client else "unknown"
    return f"{prefix}ip:{client_host}"


def _hash_limiter_key(key: str) -> str:
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def _reserve(key: str) -> RateLimitResult:
    return get_limiter_registry().get(key).consume()


async def enforce_rate_limit(
    request: Request,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency enforcing the sliding-window limit.

    Reserves one slot in the requester's window. Denials (limit reached,
    requests too close together, or Redis unavailable) raise HTTP 429.

    Args:
        request: FastAPI request.
        x_api_key: API key from X-API-Key header.

    Raises:
        HTTPException: 429 Too Many Requests when the reservation is denied.
        StoreError: If Redis cannot be reached to build the registry.
    """

    if not settings.limiter.enabled:
        return

    key = _build_rate_limit_key(request, x_api_key)
    key_type = "api_key" if x_api_key else "ip"

    set_limiter_key(key)
    try:
        # Registry setup, script loading and the reservation all block on Redis.
        result = await run_in_threadpool(_reserve, key)
        _raise_if_denied(result, key_type)
    finally:
        clear_limiter_key()


def _raise_if_denied(result: RateLimitResult, key_type: str) -> None:
    if result.allowed:
        logger.info(
            "rate_limit.allowed",
            extra={
                "key_type": key_type,
                "limit": result.limit,
                "usage": result.usage,
                "remaining": result.remaining,
                "window_s": settings.limiter.period_seconds,
            },
        )
        return

    retry_after = result.retry_after_seconds or 0
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_type": key_type,
            "limit": result.limit,
            "usage": result.usage,
            "remaining": result.remaining,
            "window_s": settings.limiter.period_seconds,
            "retry_after_s": retry_after,
        },
    )

    headers: dict[str, str] = {}
    if settings.limiter.include_headers:
        headers["Retry-After"] = str(retry_after)
        headers["X-RateLimit-Limit"] = str(result.limit)
        headers["X-RateLimit-Remaining"] = str(result.remaining)

    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Rate limit exceeded. Try again later.",
        headers=headers or None,
    )
