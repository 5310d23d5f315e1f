"""Logger factory for the package: limiter key correlation and redaction.

Handlers and formatting belong to the embedding application. Package loggers
only enrich and scrub their own records:
- the limiter key bound to the current context is attached as ``limiter_key``
- Redis URLs, passwords and API keys in ``extra=`` are replaced before any
  handler sees them
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from logging import LogRecord
from typing import Any, Iterable, Mapping

_limiter_key_var: ContextVar[str | None] = ContextVar("limiter_key", default=None)

REDACTED = "[REDACTED]"

SENSITIVE_KEYS_DEFAULT: frozenset[str] = frozenset(
    {
        "password",
        "redis_password",
        "redis_url",
        "url",
        "authorization",
        "api_key",
        "x-api-key",
    }
)


def set_limiter_key(key: str | None) -> None:
    """Bind a limiter key to the current context for subsequent logs."""

    _limiter_key_var.set(key)


def get_limiter_key() -> str | None:
    return _limiter_key_var.get()


def clear_limiter_key() -> None:
    _limiter_key_var.set(None)


def _redact_value(value: Any, sensitive_keys: frozenset[str]) -> Any:
    if isinstance(value, Mapping):
        return {
            k: REDACTED if str(k).lower() in sensitive_keys else _redact_value(v, sensitive_keys)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_redact_value(v, sensitive_keys) for v in value)
    return value


class LimiterKeyFilter(logging.Filter):
    """Attach limiter_key from context when absent on the record."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "limiter_key", None) is None:
            limiter_key = get_limiter_key()
            if limiter_key:
                record.limiter_key = limiter_key
        return True


class SensitiveDataFilter(logging.Filter):
    """Redact sensitive ``extra=`` fields on the record, nested ones included."""

    def __init__(self, sensitive_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(k.lower() for k in (sensitive_keys or SENSITIVE_KEYS_DEFAULT))

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        for key, value in list(record.__dict__.items()):
            if key.startswith("_") or key in ("args", "msg"):
                continue
            if key.lower() in self.sensitive_keys:
                setattr(record, key, REDACTED)
            elif isinstance(value, (Mapping, list, tuple)) and key != "exc_info":
                setattr(record, key, _redact_value(value, self.sensitive_keys))
        return True


def get_logger(name: str) -> logging.Logger:
    """Return ``logging.getLogger(name)`` with the package filters attached.

    Filters sit on the logger, not on a handler, so records are enriched and
    scrubbed whatever handlers the application installs. Repeated calls do
    not stack filters.
    """

    logger = logging.getLogger(name)
    if not any(isinstance(f, LimiterKeyFilter) for f in logger.filters):
        logger.addFilter(LimiterKeyFilter())
    if not any(isinstance(f, SensitiveDataFilter) for f in logger.filters):
        logger.addFilter(SensitiveDataFilter())
    return logger
