"""Tests for exception handlers.

Validates that limiter errors map to consistent HTTP status codes and that
Redis internals never leak into responses.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from sliding_ratelimit.core.errors import (
    AppError,
    ConfigurationError,
    RateLimiterError,
    ScriptRegistrationError,
    StoreError,
    TooFastError,
)
from sliding_ratelimit.core.exception_handlers import (
    general_exception_handler,
    setup_exception_handlers,
)


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers)


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    def test_configuration_error_returns_500(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-config")
        async def test_endpoint():
            raise ConfigurationError(
                code="invalid_limit",
                message="Invalid limit value for the key: orders",
                details={"key": "orders", "min_value": 1, "max_value": 1_000_000},
            )

        response = client.get("/test-config")

        assert response.status_code == 500
        data = response.json()
        assert data["error"]["code"] == "invalid_limit"
        assert data["error"]["details"]["max_value"] == 1_000_000

    def test_store_error_returns_503(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-store")
        async def test_endpoint():
            raise StoreError(code="reset_failed", message="Could not clear the rate limit key")

        response = client.get("/test-store")

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "reset_failed"

    def test_script_registration_error_is_a_store_error(
        self, client: TestClient, app_with_handlers: FastAPI
    ):
        @app_with_handlers.get("/test-script")
        async def test_endpoint():
            raise ScriptRegistrationError(
                code="script_registration_failed",
                message="Could not store the script in Redis",
            )

        assert client.get("/test-script").status_code == 503

    def test_other_limiter_error_returns_500(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-too-fast")
        async def test_endpoint():
            raise TooFastError(code="too_fast", message="Too fast requests")

        response = client.get("/test-too-fast")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "too_fast"

    def test_cause_is_not_exposed(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-cause")
        async def test_endpoint():
            raise StoreError(
                code="expire_failed",
                message="Could not refresh the expiry of the rate limit key",
                details={
                    "redis_key": "orders-ratelimit:rk",
                    "cause": "Error 111 connecting to 10.0.0.5:6379",
                },
            )

        data = client.get("/test-cause").json()

        assert data["error"]["details"] == {"redis_key": "orders-ratelimit:rk"}
        assert "10.0.0.5" not in json.dumps(data)

    def test_error_response_format_is_consistent(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-format")
        async def test_endpoint():
            raise RateLimiterError(code="test", message="test")

        data = client.get("/test-format").json()

        assert set(data["error"]) == {"code", "message"}


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_unexpected_exception_handler_registered(self, app_with_handlers: FastAPI):
        assert Exception in app_with_handlers.exception_handlers

    def test_general_exception_handler_never_leaks_details(self):
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = RuntimeError("Error 111 connecting to localhost:6379. Connection refused.")
        response = asyncio.run(general_exception_handler(request, exc))

        response_text = bytes(response.body).decode()
        data = json.loads(response_text)
        assert response.status_code == 500
        assert data["error"]["code"] == "internal_server_error"
        assert "6379" not in response_text
        assert "Traceback" not in response_text
        assert "RuntimeError" not in response_text


def test_setup_exception_handlers_is_repeatable():
    app = FastAPI()

    setup_exception_handlers(app)
    setup_exception_handlers(app)

    assert AppError in app.exception_handlers
    assert Exception in app.exception_handlers


def test_error_str_is_message():
    error = ConfigurationError(code="empty_key", message="Key name is empty")

    assert str(error) == "Key name is empty"
    assert isinstance(error, RateLimiterError)
