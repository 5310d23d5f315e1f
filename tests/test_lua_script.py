"""Runs the sliding-window Lua source on an embedded Lua engine.

fakeredis executes the script through lupa and answers TIME from the wall
clock, so these tests use the limiter's real clock and short sleeps.
"""

import time

import fakeredis
import pytest
from redis.exceptions import ResponseError

from sliding_ratelimit.adapters.rate_limit.lua_scripts import (
    SLIDING_WINDOW_SCRIPT,
    TOO_FAST_REPLY,
)
from sliding_ratelimit.adapters.rate_limit.redis_sliding_window import (
    LimiterOptions,
    SlidingWindowRateLimiter,
)
from sliding_ratelimit.core.errors import TooFastError


@pytest.fixture
def lua_redis():
    client = fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    client.close()


def test_window_scenario(lua_redis) -> None:
    limiter = SlidingWindowRateLimiter("orders", 10, 2, lua_redis)
    limiter.reset()

    for expected in range(1, 11):
        time.sleep(0.01)
        assert limiter.try_acquire() is True
        assert limiter.usage == expected

    time.sleep(0.01)
    assert limiter.try_acquire() is False
    assert limiter.usage == 10
    assert lua_redis.zcard(limiter.redis_key) == 10

    time.sleep(2.2)
    assert limiter.try_acquire() is True
    assert limiter.usage == 1
    assert lua_redis.zcard(limiter.redis_key) == 1


def test_check_limit_inserts_nothing(lua_redis) -> None:
    limiter = SlidingWindowRateLimiter("orders", 10, 2, lua_redis)
    limiter.reset()

    assert limiter.try_acquire() is True
    assert limiter.check_limit() is True
    assert limiter.check_limit() is True

    assert limiter.usage == 1
    assert lua_redis.zcard(limiter.redis_key) == 1


def test_strict_spacing_rejected_by_script(lua_redis) -> None:
    first = SlidingWindowRateLimiter("shared", 10, 2, lua_redis)
    second = SlidingWindowRateLimiter(
        "shared",
        10,
        2,
        lua_redis,
        options=LimiterOptions(stop_burst=True, warm_start=True),
    )
    first.reset()
    time.sleep(0.01)

    assert first.try_acquire() is True
    assert second.try_acquire() is False

    assert isinstance(second.last_error, TooFastError)
    assert lua_redis.zcard("shared-ratelimit:rk") == 1


def test_error_reply_text(lua_redis) -> None:
    sha = lua_redis.script_load(SLIDING_WINDOW_SCRIPT)

    assert lua_redis.evalsha(sha, 1, "raw", 2, 10, 4, 170_000, 1) == 1
    with pytest.raises(ResponseError, match=TOO_FAST_REPLY):
        lua_redis.evalsha(sha, 1, "raw", 2, 10, 4, 170_000, 1)


def test_expiry_follows_period(lua_redis) -> None:
    limiter = SlidingWindowRateLimiter("orders", 10, 2, lua_redis)
    limiter.reset()

    assert limiter.try_acquire() is True
    assert 0 < lua_redis.ttl(limiter.redis_key) <= 4

    limiter.update_period(5)

    assert 4 < lua_redis.ttl(limiter.redis_key) <= 10
    assert lua_redis.zcard(limiter.redis_key) == 1
