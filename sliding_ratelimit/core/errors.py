"""Rate limiter exception types.

Configuration problems are raised synchronously and never corrected. Store
problems surface from operations that mutate remote state (reset, period
updates, script registration); the acquire path reports them as denials.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for logs and HTTP error bodies."""

    code: str
    message: str
    hint: str
    key: str
    redis_key: str
    min_value: int
    max_value: int
    actual_value: int
    burst_quantum_us: int
    cause: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for the package.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class RateLimiterError(AppError):
    """Base class for limiter failures."""


class ConfigurationError(RateLimiterError):
    """Raised when key, period, limit or the derived burst quantum is invalid."""


class StoreError(RateLimiterError):
    """Raised when a Redis command fails outside the acquire path."""


class ScriptRegistrationError(StoreError):
    """Raised when the evaluator script cannot be loaded into Redis."""


class TooFastError(RateLimiterError):
    """The evaluator refused a reservation inside the spacing window.

    Never raised to callers of ``try_acquire``; kept on ``last_error`` for
    diagnostics.
    """
