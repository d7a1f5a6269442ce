"""Unit tests for rate limiting middleware

Tests cover:
- Requests under limit allowed
- Minute and hour limit enforcement
- Health endpoint bypass
- Per-IP isolation and forwarded-header trust
- Window reset
"""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tidy.api.middleware.rate_limit import RateLimitMiddleware


class FakeClock:
    def __init__(self):
        self.now = 1_000_000.0

    def __call__(self):
        return self.now


def build_app(clock=None, trust_forwarded=False, **limits):
    test_app = FastAPI()
    test_app.add_middleware(
        RateLimitMiddleware,
        requests_per_minute=limits.get("rpm", 5),
        requests_per_hour=limits.get("rph", 20),
        trust_forwarded=trust_forwarded,
        clock=clock or FakeClock(),
    )

    @test_app.get("/api/test")
    async def test_endpoint():
        return {"status": "ok"}

    @test_app.get("/health")
    async def health():
        return {"status": "healthy"}

    return test_app


@pytest.fixture
def client():
    return TestClient(build_app())


def test_requests_under_limit_allowed(client):
    for remaining in (4, 3, 2):
        response = client.get("/api/test")
        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit-Minute"] == "5"
        assert response.headers["X-RateLimit-Remaining-Minute"] == str(remaining)
        assert response.headers["X-RateLimit-Limit-Hour"] == "20"


def test_minute_limit_enforced(client):
    for _ in range(5):
        assert client.get("/api/test").status_code == 200

    response = client.get("/api/test")
    assert response.status_code == 429
    assert response.json() == {
        "error": "Rate limit exceeded. Maximum 5 requests per minute.",
        "retryAfter": 60,
    }
    assert response.headers["Retry-After"] == "60"


def test_hour_limit_enforced():
    clock = FakeClock()
    client = TestClient(build_app(clock=clock, rpm=100, rph=3))
    for _ in range(3):
        assert client.get("/api/test").status_code == 200
        clock.now += 61

    response = client.get("/api/test")
    assert response.status_code == 429
    assert response.json()["retryAfter"] == 3600
    assert "per hour" in response.json()["error"]


def test_health_endpoints_bypass_rate_limit(client):
    for _ in range(10):
        response = client.get("/health")
        assert response.status_code == 200
        assert "X-RateLimit-Limit-Minute" not in response.headers


def test_minute_window_resets():
    clock = FakeClock()
    client = TestClient(build_app(clock=clock, rpm=2))
    client.get("/api/test")
    client.get("/api/test")
    assert client.get("/api/test").status_code == 429

    clock.now += 60
    assert client.get("/api/test").status_code == 200


def test_forwarded_for_ignored_without_trust(client):
    for i in range(5):
        client.get("/api/test", headers={"X-Forwarded-For": f"10.0.0.{i}"})
    # all counted against the socket address
    response = client.get("/api/test", headers={"X-Forwarded-For": "10.0.0.99"})
    assert response.status_code == 429


def test_per_ip_isolation_when_trusted():
    client = TestClient(build_app(trust_forwarded=True, rpm=2))
    for _ in range(2):
        client.get("/api/test", headers={"X-Forwarded-For": "192.168.1.1"})
    assert client.get("/api/test", headers={"X-Forwarded-For": "192.168.1.1"}).status_code == 429
    assert client.get("/api/test", headers={"X-Forwarded-For": "192.168.1.2"}).status_code == 200


def test_cloud_proxy_header_enables_forwarded_for(client):
    headers = {"X-Cloud-Trace-Context": "abc/1", "X-Real-IP": "172.16.0.5"}
    for _ in range(5):
        client.get("/api/test", headers=headers)
    assert client.get("/api/test", headers=headers).status_code == 429
    assert client.get("/api/test").status_code == 200


def test_malformed_forwarded_header_falls_back_to_socket():
    client = TestClient(build_app(trust_forwarded=True, rpm=1))
    client.get("/api/test", headers={"X-Forwarded-For": "not-an-ip"})
    assert client.get("/api/test").status_code == 429
