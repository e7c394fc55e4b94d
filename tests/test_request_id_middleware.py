from __future__ import annotations

from fastapi.testclient import TestClient

from attempt_limiter.main import app


client = TestClient(app)


def test_preserves_incoming_request_id_header():
    resp = client.get("/health", headers={"X-Request-ID": "req-otp-123"})

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert resp.headers.get("X-Request-ID") == "req-otp-123"


def test_generates_request_id_when_missing():
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID")
    assert resp.headers.get("X-Request-Duration-ms") is not None
