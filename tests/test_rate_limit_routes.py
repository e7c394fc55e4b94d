"""Integration tests for the rate limit HTTP endpoints."""

from __future__ import annotations

import asyncio

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from attempt_limiter.core.app_factory import create_app
from attempt_limiter.core.rate_limit import (
    enforce_attempt_limit,
    get_rate_limiter,
    reset_rate_limiter,
)
from attempt_limiter.services.rate_limiter import RateLimiter

ADMIN_HEADERS = {"X-API-Key": "test-admin-key-123"}


@pytest.fixture
def client(limiter: RateLimiter) -> TestClient:
    app = create_app()
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    return TestClient(app)


def test_list_policies(client: TestClient) -> None:
    response = client.get("/v1/rate-limits/policies")

    assert response.status_code == 200
    by_name = {p["action_type"]: p for p in response.json()}
    assert by_name["otp_request"] == {
        "action_type": "otp_request",
        "max_attempts": 3,
        "window_ms": 60000,
        "block_duration_ms": 60000,
    }
    assert set(by_name) == {"api_request", "login_attempt", "otp_request", "password_reset"}


def test_check_fresh_pair(client: TestClient) -> None:
    response = client.get("/v1/rate-limits/otp_request", params={"identifier": "+923001234567"})

    assert response.status_code == 200
    assert response.json() == {
        "action_type": "otp_request",
        "allowed": True,
        "remaining_attempts": 3,
        "retry_after_ms": None,
        "message": "",
        "time_remaining": None,
    }


def test_unregistered_action_reports_unlimited(client: TestClient) -> None:
    body = client.get("/v1/rate-limits/upload_avatar").json()

    assert body["allowed"] is True
    assert body["remaining_attempts"] is None


def test_attempts_then_block(client: TestClient) -> None:
    params = {"identifier": "+923001234567"}
    for _ in range(3):
        assert client.get("/v1/rate-limits/otp_request", params=params).json()["allowed"] is True
        assert client.post("/v1/rate-limits/otp_request/attempts", params=params).status_code == 204

    body = client.get("/v1/rate-limits/otp_request", params=params).json()

    assert body["allowed"] is False
    assert body["remaining_attempts"] == 0
    assert body["retry_after_ms"] == 60000
    assert body["message"] == "Too many attempts. Please wait 60 seconds."
    assert body["time_remaining"] == "1 minute"


def test_success_resets_counter(client: TestClient) -> None:
    client.post("/v1/rate-limits/password_reset/attempts")
    client.post("/v1/rate-limits/password_reset/attempts")

    assert client.post("/v1/rate-limits/password_reset/success").status_code == 204

    assert client.get("/v1/rate-limits/password_reset").json()["remaining_attempts"] == 3


def test_clear_requires_admin_key(client: TestClient) -> None:
    response = client.delete("/v1/rate-limits/login_attempt", params={"identifier": "user1"})

    assert response.status_code == 403


def test_clear_rejects_unknown_key(client: TestClient) -> None:
    response = client.delete(
        "/v1/rate-limits/login_attempt",
        params={"identifier": "user1"},
        headers={"X-API-Key": "wrong"},
    )

    assert response.status_code == 403


def test_clear_lifts_block(client: TestClient) -> None:
    params = {"identifier": "user1"}
    for _ in range(5):
        client.post("/v1/rate-limits/login_attempt/attempts", params=params)
    assert client.get("/v1/rate-limits/login_attempt", params=params).json()["allowed"] is False

    response = client.delete("/v1/rate-limits/login_attempt", params=params, headers=ADMIN_HEADERS)

    assert response.status_code == 204
    body = client.get("/v1/rate-limits/login_attempt", params=params).json()
    assert body["allowed"] is True
    assert body["remaining_attempts"] == 5


def test_openapi_marks_clear_as_secured(client: TestClient) -> None:
    schema = client.get("/openapi.json").json()

    assert "ApiKeyAuth" in schema["components"]["securitySchemes"]
    delete_op = schema["paths"]["/v1/rate-limits/{action_type}"]["delete"]
    assert delete_op["security"] == [{"ApiKeyAuth": []}]
    assert "security" not in schema["paths"]["/v1/rate-limits/{action_type}"]["get"]


class TestEnforceAttemptLimit:
    @pytest.fixture
    def gated_client(self, limiter: RateLimiter) -> TestClient:
        app = FastAPI()

        @app.post("/otp", dependencies=[Depends(enforce_attempt_limit("otp_request"))])
        async def send_otp() -> dict:
            return {"sent": True}

        app.dependency_overrides[get_rate_limiter] = lambda: limiter
        return TestClient(app)

    def test_allows_until_blocked(self, gated_client: TestClient, limiter: RateLimiter) -> None:
        headers = {"X-Rate-Limit-Identifier": "+923001234567"}

        assert gated_client.post("/otp", headers=headers).status_code == 200

        async def exhaust() -> None:
            for _ in range(3):
                await limiter.record_attempt("otp_request", "+923001234567")

        asyncio.run(exhaust())

        response = gated_client.post("/otp", headers=headers)
        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"
        assert response.json()["detail"] == "Too many attempts. Please wait 60 seconds."

        other = gated_client.post("/otp", headers={"X-Rate-Limit-Identifier": "+10000000000"})
        assert other.status_code == 200


def test_get_rate_limiter_is_cached() -> None:
    reset_rate_limiter()
    try:
        first = get_rate_limiter()
        assert get_rate_limiter() is first
    finally:
        reset_rate_limiter()
