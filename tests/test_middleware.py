"""Tests for error envelopes and HTTP middleware."""
import time

import pytest_asyncio
from fastapi import FastAPI, Request, Response
from httpx import ASGITransport, AsyncClient

from maintech.api.middleware import (
    ErrorHandlingMiddleware,
    RateLimitingMiddleware,
    RequestLoggingMiddleware,
    register_exception_handlers,
)
from maintech.config import settings
from maintech.core.exceptions import ConflictError, EmailTakenError, ValidationError


async def test_error_envelope(client):
    response = await client.get("/auth/profile")

    data = response.json()
    assert set(data) == {"message", "error_code", "details", "timestamp"}
    assert isinstance(data["timestamp"], float)
    assert data["details"] == {}


async def test_validation_error_envelope(client):
    response = await client.post("/auth/login", json={"email": "test@example.com"})

    assert response.status_code == 422
    data = response.json()
    assert data["error_code"] == "VALIDATION_ERROR"
    assert data["message"] == "Données invalides"
    assert data["details"]["errors"]
    assert data["details"]["errors"][0]["loc"] == ["body", "motDePasse"]


def test_validation_error_defaults():
    error = ValidationError()

    assert error.status_code == 422
    assert error.error_code == "VALIDATION_ERROR"
    assert error.message == "Données invalides"


async def test_unknown_route_envelope(client):
    response = await client.get("/nope")

    assert response.status_code == 404
    assert response.json()["error_code"] == "HTTP_EXCEPTION"


async def test_request_id_and_security_headers(client):
    response = await client.get("/health")

    assert response.headers["x-request-id"]
    assert response.headers["x-content-type-options"] == "nosniff"
    assert response.headers["x-frame-options"] == "DENY"
    assert "max-age" in response.headers["strict-transport-security"]


async def test_request_ids_are_unique(client):
    first = await client.get("/health")
    second = await client.get("/health")

    assert first.headers["x-request-id"] != second.headers["x-request-id"]


def test_email_taken_is_a_bad_request():
    error = EmailTakenError()

    assert isinstance(error, ConflictError)
    assert error.status_code == 400
    assert error.error_code == "EMAIL_TAKEN"


@pytest_asyncio.fixture
async def small_client():
    app = FastAPI()
    register_exception_handlers(app)
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RateLimitingMiddleware, requests_per_minute=2, window_seconds=60)

    @app.get("/ping")
    async def ping():
        return {"pong": True}

    @app.get("/boom")
    async def boom():
        raise RuntimeError("kaboom")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as test_client:
        yield test_client


async def test_rate_limit(small_client, monkeypatch):
    monkeypatch.setattr(settings.api, "rate_limit_enabled", True)

    assert (await small_client.get("/ping")).status_code == 200
    assert (await small_client.get("/ping")).status_code == 200

    response = await small_client.get("/ping")
    assert response.status_code == 429
    assert response.json()["error_code"] == "RATE_LIMIT_EXCEEDED"


async def test_rate_limit_disabled(small_client, monkeypatch):
    monkeypatch.setattr(settings.api, "rate_limit_enabled", False)

    for _ in range(5):
        assert (await small_client.get("/ping")).status_code == 200


async def test_unhandled_exception(small_client, monkeypatch):
    monkeypatch.setattr(settings, "debug", False)

    response = await small_client.get("/boom")

    assert response.status_code == 500
    data = response.json()
    assert data["error_code"] == "INTERNAL_ERROR"
    assert data["details"] == {}


async def _noop_app(scope, receive, send):
    pass


def test_rate_limit_sweep_forgets_idle_clients():
    limiter = RateLimitingMiddleware(_noop_app, requests_per_minute=2, window_seconds=60)
    limiter.request_times = {"10.0.0.1": [100.0], "10.0.0.2": [150.0], "10.0.0.3": []}

    limiter._sweep(170.0)

    assert limiter.request_times == {"10.0.0.2": [150.0]}
    assert limiter._last_sweep == 170.0


async def test_rate_limit_table_stays_bounded(monkeypatch):
    """Addresses seen once are dropped after the window."""
    monkeypatch.setattr(settings.api, "rate_limit_enabled", True)
    limiter = RateLimitingMiddleware(_noop_app, requests_per_minute=2, window_seconds=60)
    clock = [1000.0]
    monkeypatch.setattr(time, "time", lambda: clock[0])
    limiter._last_sweep = clock[0]

    async def call_next(request):
        return Response("ok")

    def request_from(host):
        return Request({
            "type": "http", "method": "GET", "path": "/ping", "headers": [],
            "query_string": b"", "client": (host, 1234),
        })

    for i in range(50):
        await limiter.dispatch(request_from(f"10.0.0.{i}"), call_next)
    assert len(limiter.request_times) == 50

    clock[0] += 61
    await limiter.dispatch(request_from("10.0.1.1"), call_next)

    assert list(limiter.request_times) == ["10.0.1.1"]
