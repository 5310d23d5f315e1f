"""Exception handlers mapping limiter errors to JSON responses.

Design:
- StoreError → 503 (Redis unreachable or refusing commands)
- ConfigurationError and other RateLimiterError → 500 (the limit and period
  come from server-side RATELIMIT_* settings, never from the client)
- Unexpected Exception → generic 500 (safety net)
"""

from fastapi import Request
from fastapi.responses import JSONResponse

from sliding_ratelimit.core.errors import AppError, StoreError
from sliding_ratelimit.core.logging import get_logger

logger = get_logger(__name__)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle package errors with a consistent JSON body.

    Responses carry ``error.code``, ``error.message`` and, when present,
    ``error.details`` with the ``cause`` stripped so Redis internals do not
    leak to clients.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    status_code = 503 if isinstance(exc, StoreError) else 500

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
        },
    )

    error_content: dict = {
        "code": exc.code,
        "message": exc.message,
    }

    if exc.details:
        error_content["details"] = {k: v for k, v in exc.details.items() if k != "cause"}

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors; no stack traces reach clients."""
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with a FastAPI app.

    Args:
        app: FastAPI application instance.

    Example:
        >>> from fastapi import FastAPI
        >>> app = FastAPI()
        >>> setup_exception_handlers(app)
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
