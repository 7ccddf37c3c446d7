"""Tests for security headers, rate limiting and error mapping."""

from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from linkzy.api.errors import install_error_handlers
from linkzy.core.errors import StoreError, ValidationError
from linkzy.middleware.rate_limit import _get_real_ip, rate_limit_ip, reset_rate_limits
from linkzy.middleware.security import SecurityHeadersMiddleware


@pytest.fixture
def client():
    reset_rate_limits()
    app = FastAPI()
    app.add_middleware(SecurityHeadersMiddleware)
    install_error_handlers(app)

    @app.get("/s/{code}")
    async def entry(code: str, request: Request):
        rate_limit_ip(request, limit=2)
        return {"code": code}

    @app.get("/api/bad")
    async def bad():
        raise ValidationError("Please enter a valid URL")

    @app.get("/api/broken")
    async def broken():
        raise StoreError("connection reset by peer")

    @app.get("/")
    async def home():
        return {"ok": True}

    return TestClient(app)


def test_funnel_paths_are_not_cached_or_indexed(client):
    resp = client.get("/s/abc123")
    assert resp.headers["cache-control"].startswith("no-store")
    assert resp.headers["referrer-policy"] == "no-referrer"
    assert resp.headers["x-robots-tag"] == "noindex, nofollow"
    assert resp.headers["x-frame-options"] == "DENY"


def test_other_paths_keep_default_policy(client):
    resp = client.get("/")
    assert resp.headers["referrer-policy"] == "strict-origin-when-cross-origin"
    assert "x-robots-tag" not in resp.headers
    assert resp.headers["x-content-type-options"] == "nosniff"


def test_rate_limit_per_ip(client):
    assert client.get("/s/abc123").status_code == 200
    assert client.get("/s/abc123").status_code == 200
    resp = client.get("/s/abc123")
    assert resp.status_code == 429
    assert resp.headers["retry-after"] == "60"


def test_forwarded_ip_has_its_own_budget(client):
    for _ in range(2):
        client.get("/s/abc123")
    resp = client.get("/s/abc123", headers={"X-Forwarded-For": "203.0.113.7"})
    assert resp.status_code == 200


def test_validation_error_maps_to_400(client):
    resp = client.get("/api/bad")
    assert resp.status_code == 400
    assert resp.json() == {"error": "Please enter a valid URL"}


def test_store_error_hides_details(client):
    resp = client.get("/api/broken")
    assert resp.status_code == 500
    assert resp.json() == {"error": "Server error"}


@pytest.mark.parametrize("forwarded,expected", [
    ("172.20.0.1, 203.0.113.7", "203.0.113.7"),
    ("172.31.255.1, 172.17.0.2, 198.51.100.4", "198.51.100.4"),
    ("10.0.0.1, 192.168.1.1", "10.0.0.1"),
    ("172.32.0.1", "172.32.0.1"),
])
def test_real_ip_skips_private_proxy_hops(forwarded, expected):
    request = MagicMock()
    request.headers = {"x-forwarded-for": forwarded}
    assert _get_real_ip(request) == expected


def test_visitors_behind_private_proxy_get_separate_budgets(client):
    # Two visitors behind a 172.18.x proxy are limited separately
    for _ in range(2):
        client.get("/s/abc123", headers={"X-Forwarded-For": "172.18.0.3, 203.0.113.7"})
    resp = client.get("/s/abc123", headers={"X-Forwarded-For": "172.18.0.3, 203.0.113.8"})
    assert resp.status_code == 200
