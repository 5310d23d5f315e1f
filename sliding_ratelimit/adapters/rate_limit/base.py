"""Rate limiter interfaces.

The HTTP layer depends on this abstraction, not on the Redis implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a reservation attempt.

    Attributes:
        allowed: Whether the event was accepted.
        limit: Max events per period.
        usage: Live events in the window as last observed.
        remaining: Events still available in the window (0 when full).
        retry_after_seconds: Suggested wait in seconds when blocked.
    """

    allowed: bool
    limit: int
    usage: int
    remaining: int
    retry_after_seconds: int | None


class AbstractRateLimiter(ABC):
    """Interface for a limiter bound to one rate-limited resource."""

    @property
    @abstractmethod
    def limit(self) -> int:
        raise NotImplementedError

    @property
    @abstractmethod
    def period(self) -> int:
        raise NotImplementedError

    @property
    @abstractmethod
    def usage(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def try_acquire(self) -> bool:
        """Reserve one slot if the limit and spacing rules allow it."""
        raise NotImplementedError

    @abstractmethod
    def check_limit(self) -> bool:
        """Refresh ``usage`` without reserving a slot."""
        raise NotImplementedError

    @abstractmethod
    def reset(self) -> None:
        """Drop all recorded events for this resource."""
        raise NotImplementedError

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.usage)

    def consume(self) -> RateLimitResult:
        """Attempt a reservation and describe the outcome.

        Returns:
            RateLimitResult built from the post-call usage.
        """

        allowed = self.try_acquire()
        usage = self.usage
        retry_after: int | None = None
        if not allowed:
            # A full window frees a slot within one period at the latest;
            # anything else is a spacing or transport rejection.
            retry_after = self.period if usage >= self.limit else 1
        return RateLimitResult(
            allowed=allowed,
            limit=self.limit,
            usage=usage,
            remaining=max(0, self.limit - usage),
            retry_after_seconds=retry_after,
        )
