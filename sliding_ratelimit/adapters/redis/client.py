"""Redis client construction."""

from __future__ import annotations

from redis import Redis
from redis.exceptions import RedisError

from sliding_ratelimit.core.config import RedisSettings, settings
from sliding_ratelimit.core.errors import StoreError
from sliding_ratelimit.core.logging import get_logger

logger = get_logger(__name__)


def create_redis_client(redis_settings: RedisSettings | None = None) -> Redis:
    """Build a synchronous Redis client and check that the server answers.

    Args:
        redis_settings: Connection settings; defaults to global settings.

    Returns:
        Connected redis-py client. Pooling is left to redis-py.

    Raises:
        StoreError: If the server cannot be reached.
    """
    cfg = redis_settings or settings.redis
    client = Redis.from_url(
        cfg.url,
        decode_responses=cfg.decode_responses,
        socket_timeout=cfg.socket_timeout_seconds,
        socket_connect_timeout=cfg.socket_connect_timeout_seconds,
    )
    try:
        client.ping()
    except RedisError as exc:
        logger.error(
            "redis.connect_failed",
            extra={
                "redis_url": cfg.url,
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
            },
        )
        client.close()
        raise StoreError(
            code="redis_unavailable",
            message="Failed to connect to Redis",
            details={"cause": str(exc)},
        ) from exc

    logger.info("redis.connected", extra={"redis_url": cfg.url})
    return client
