"""Redis-backed sliding-window rate limiter with burst control.

Notes:
- Shared across processes: every instance pointing at the same Redis key
  sees the same window. The Lua evaluator is the only source of truth.
- Local fields (usage, last accepted timestamp) are advisory. A lock guards
  them for threads sharing one instance, but it is never held across the
  Redis round trip.
- Anti-burst runs in two tiers: a cheap local timestamp check that skips the
  round trip, then the authoritative spacing check inside the script.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from redis import Redis
from redis.exceptions import NoScriptError, RedisError, ResponseError

from sliding_ratelimit.adapters.rate_limit.base import AbstractRateLimiter
from sliding_ratelimit.adapters.rate_limit.lua_scripts import (
    SLIDING_WINDOW_SCRIPT,
    TOO_FAST_REPLY,
)
from sliding_ratelimit.core.config import (
    BURST_QUANTUM_FACTOR,
    MAX_LIMIT,
    MAX_PERIOD_SECONDS,
    MIN_BURST_QUANTUM_US,
)
from sliding_ratelimit.core.errors import (
    ConfigurationError,
    RateLimiterError,
    ScriptRegistrationError,
    StoreError,
    TooFastError,
)
from sliding_ratelimit.core.logging import get_logger

logger = get_logger(__name__)

MICROSECONDS = 1_000_000

# Spacing used by the local pre-filter when quantum // 1000 rounds to zero.
MIN_FAST_SPACING_US = 10

REDIS_KEY_SUFFIX = "-ratelimit:rk"


@dataclass(frozen=True)
class LimiterOptions:
    """Optional limiter behaviour.

    Attributes:
        debug: Log local-guard rejections, remote errors and limit hits.
        stop_burst: Start in strict burst mode.
        warm_start: Open the local guard immediately instead of treating
            construction time as the last accepted event.
    """

    debug: bool = False
    stop_burst: bool = False
    warm_start: bool = False


def make_burst_quantum(period: int, limit: int) -> int:
    """Minimal spacing in microseconds between two accepted events.

    Raises:
        ConfigurationError: If the limit is too high for the period to leave
            a meaningful spacing.
    """

    quantum = period * BURST_QUANTUM_FACTOR // limit
    if quantum <= MIN_BURST_QUANTUM_US:
        raise ConfigurationError(
            code="limit_too_high",
            message="Rate limit too high for the period, cannot space events",
            details={
                "min_value": MIN_BURST_QUANTUM_US + 1,
                "actual_value": quantum,
                "hint": "Lower the limit or widen the period",
            },
        )
    return quantum


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _validate_period(period: int, key: str) -> None:
    if not _is_int(period) or period < 1 or period > MAX_PERIOD_SECONDS:
        raise ConfigurationError(
            code="invalid_period",
            message=f"Invalid period value for the key: {key}",
            details={
                "key": key,
                "min_value": 1,
                "max_value": MAX_PERIOD_SECONDS,
                "context": {"period": period},
            },
        )


def _validate_limit(limit: int, key: str) -> None:
    if not _is_int(limit) or limit < 1 or limit > MAX_LIMIT:
        raise ConfigurationError(
            code="invalid_limit",
            message=f"Invalid limit value for the key: {key}",
            details={
                "key": key,
                "min_value": 1,
                "max_value": MAX_LIMIT,
                "context": {"limit": limit},
            },
        )


class SlidingWindowRateLimiter(AbstractRateLimiter):
    """At most ``limit`` events per rolling ``period`` seconds, shared via Redis.

    Each accepted event is one member of a Redis sorted set scored by the
    server's microsecond clock. The evaluator script prunes expired members,
    counts the rest and, on reservation, inserts a new member unless another
    one sits within the spacing window.

    Example:
        >>> limiter = SlidingWindowRateLimiter("api", 10, 2, Redis())
        >>> limiter.try_acquire()
        True
        >>> limiter.usage
        1
    """

    def __init__(
        self,
        key: str,
        limit: int,
        period: int,
        redis: Redis,
        *,
        redis_key: str | None = None,
        options: LimiterOptions | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Validate the configuration and register the evaluator script.

        Args:
            key: Logical name of the rate-limited resource.
            limit: Maximum events per period, 1..1_000_000.
            period: Window size in seconds, 1..one year.
            redis: Synchronous redis-py client.
            redis_key: Sorted-set key; defaults to ``"<key>-ratelimit:rk"``.
            options: Debug and strict burst flags.
            clock: Time source returning UNIX time in seconds.

        Raises:
            ConfigurationError: If key, period, limit or the derived burst
                quantum is invalid.
            ScriptRegistrationError: If Redis refuses the script.
        """
        if not key:
            raise ConfigurationError(code="empty_key", message="Key name is empty")
        _validate_period(period, key)
        _validate_limit(limit, key)
        burst_quantum = make_burst_quantum(period, limit)

        options = options or LimiterOptions()
        self._key = key
        self._limit = limit
        self._period = period
        self._expire_seconds = period * 2
        self._burst_quantum = burst_quantum
        self._redis_key = redis_key or f"{key}{REDIS_KEY_SUFFIX}"
        self._redis = redis
        self._debug = options.debug
        self._stop_burst = options.stop_burst
        self._clock = clock
        self._lock = threading.Lock()

        try:
            self._script_sha: str = redis.script_load(SLIDING_WINDOW_SCRIPT)
        except RedisError as exc:
            raise ScriptRegistrationError(
                code="script_registration_failed",
                message="Could not store the script in Redis",
                details={"key": key, "redis_key": self._redis_key, "cause": str(exc)},
            ) from exc

        self._usage = 0
        self._last_accepted_us = self._now_us()
        if options.warm_start:
            self._last_accepted_us -= period * MICROSECONDS
        self._last_error: RateLimiterError | RedisError | None = None

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"SlidingWindowRateLimiter(key={self._key!r}, limit={self._limit}, "
            f"period={self._period}, usage={self._usage}, stop_burst={self._stop_burst})"
        )

    @property
    def key(self) -> str:
        return self._key

    @property
    def redis_key(self) -> str:
        return self._redis_key

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def period(self) -> int:
        return self._period

    @property
    def expire_seconds(self) -> int:
        return self._expire_seconds

    @property
    def burst_quantum(self) -> int:
        """Minimal spacing between accepted events, microseconds."""
        return self._burst_quantum

    @property
    def usage(self) -> int:
        """Last observed count of live events; refreshed by every call."""
        return self._usage

    @property
    def stop_burst(self) -> bool:
        return self._stop_burst

    @property
    def debug(self) -> bool:
        return self._debug

    @property
    def last_error(self) -> RateLimiterError | RedisError | None:
        """Remote failure behind the most recent denial, if any."""
        return self._last_error

    def try_acquire(self) -> bool:
        """Reserve one slot.

        Returns:
            False when the limit is reached, the request came too fast, or
            Redis failed; True otherwise.
        """
        return self._do_acquire(reserve=True)

    def check_limit(self) -> bool:
        """Refresh ``usage`` without reserving.

        Returns True even at the limit; callers read ``usage`` to see where
        the window stands. Only a Redis failure yields False.
        """
        return self._do_acquire(reserve=False)

    def enable_strict_burst(self) -> None:
        with self._lock:
            self._stop_burst = True

    def disable_strict_burst(self) -> None:
        with self._lock:
            self._stop_burst = False

    def update_period(self, new_period: int) -> None:
        """Switch to a new window size, keeping recorded events.

        The burst quantum is revalidated against the configuration in place
        before the change, so a bad limit surfaces before anything mutates.

        Raises:
            ConfigurationError: If ``new_period`` is out of bounds.
            StoreError: If the key expiry cannot be refreshed.
        """
        _validate_period(new_period, self._key)
        burst_quantum = make_burst_quantum(self._period, self._limit)

        with self._lock:
            self._burst_quantum = burst_quantum
            self._period = new_period
            self._expire_seconds = new_period * 2
            expire_seconds = self._expire_seconds

        try:
            self._redis.expire(self._redis_key, expire_seconds)
        except RedisError as exc:
            raise StoreError(
                code="expire_failed",
                message="Could not refresh the expiry of the rate limit key",
                details={"key": self._key, "redis_key": self._redis_key, "cause": str(exc)},
            ) from exc

        logger.info(
            "ratelimit.period_updated",
            extra={"limiter_key": self._key, "period_s": new_period},
        )

    def reset(self) -> None:
        """Delete the window in Redis and rewind local state.

        The next ``try_acquire`` is never stopped by the local guard.

        Raises:
            StoreError: If the key cannot be deleted.
        """
        try:
            self._redis.delete(self._redis_key)
        except RedisError as exc:
            raise StoreError(
                code="reset_failed",
                message="Could not clear the rate limit key",
                details={"key": self._key, "redis_key": self._redis_key, "cause": str(exc)},
            ) from exc

        with self._lock:
            self._last_accepted_us = self._now_us() - self._period * MICROSECONDS
            self._usage = 0
            self._last_error = None

    def _now_us(self) -> int:
        return int(self._clock() * MICROSECONDS)

    def _do_acquire(self, reserve: bool) -> bool:
        now = self._now_us()
        with self._lock:
            period = self._period
            limit = self._limit
            expire_seconds = self._expire_seconds
            burst_quantum = self._burst_quantum
            stop_burst = self._stop_burst
            last = self._last_accepted_us

        window_start = now - period * MICROSECONDS
        fast_spacing = burst_quantum // 1000
        if fast_spacing <= 0:
            fast_spacing = MIN_FAST_SPACING_US
        if last < window_start - 1:
            last = window_start + 1

        if reserve:
            elapsed = now - last
            if elapsed < fast_spacing or (stop_burst and elapsed < burst_quantum):
                if self._debug:
                    logger.info(
                        "ratelimit.local_too_fast",
                        extra={
                            "limiter_key": self._key,
                            "at_us": now,
                            "elapsed_us": elapsed,
                            "strict": stop_burst,
                        },
                    )
                return False

        spacing = burst_quantum if stop_burst else fast_spacing
        try:
            result = self._evaluate(period, limit, expire_seconds, spacing, reserve)
        except (TooFastError, RedisError) as exc:
            self._last_error = exc
            if self._debug:
                logger.info(
                    "ratelimit.remote_error",
                    extra={
                        "limiter_key": self._key,
                        "error_type": type(exc).__name__,
                        "error_msg": str(exc),
                    },
                )
            return False

        with self._lock:
            self._last_error = None
            if result < 0:
                self._usage = -result
            else:
                self._usage = result
                if reserve:
                    self._last_accepted_us = now
            usage = self._usage

        if self._debug:
            if usage >= limit:
                logger.info(
                    "ratelimit.limit_reached",
                    extra={"limiter_key": self._key, "usage": usage, "limit": limit},
                )
            logger.info(
                "ratelimit.usage",
                extra={"limiter_key": self._key, "usage": usage, "reserve": reserve},
            )

        if result < 0 and reserve:
            return False
        return True

    def _evaluate(
        self,
        period: int,
        limit: int,
        expire_seconds: int,
        spacing: int,
        reserve: bool,
    ) -> int:
        """Run the evaluator script by SHA, re-sending its source on NOSCRIPT.

        Raises:
            TooFastError: If the script rejected the reservation for spacing.
            RedisError: On transport or other script failures.
        """
        args = (period, limit, expire_seconds, spacing, 1 if reserve else 0)
        try:
            try:
                reply = self._redis.evalsha(self._script_sha, 1, self._redis_key, *args)
            except NoScriptError:
                # Script cache was flushed; EVAL caches it again.
                logger.warning(
                    "ratelimit.script_missing",
                    extra={"limiter_key": self._key, "script_sha": self._script_sha},
                )
                reply = self._redis.eval(SLIDING_WINDOW_SCRIPT, 1, self._redis_key, *args)
        except ResponseError as exc:
            if TOO_FAST_REPLY in str(exc):
                raise TooFastError(
                    code="too_fast",
                    message="Too fast requests",
                    details={"key": self._key, "burst_quantum_us": spacing},
                ) from exc
            raise
        return int(reply)
