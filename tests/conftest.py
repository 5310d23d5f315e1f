"""Pytest configuration and fixtures shared across all test modules.

APP_ENV is pinned before any settings import so no developer .env file
leaks into the tests.
"""

import os

os.environ["APP_ENV"] = "testing"
os.environ.setdefault("RATELIMIT_ENABLED", "false")

import pytest

from tests.fake_redis import FakeClock, FakeRedis


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(clock: FakeClock) -> FakeRedis:
    return FakeRedis(clock.time)
