"""Tests for middleware — request IDs and rate-limit bucketing.

Learn: Rate limiting is skipped in tests (no Redis available), so the
middleware is checked for pass-through and its bucket selection directly.
"""

import pytest

from mxeaez.middleware.rate_limit import bucket_for


@pytest.mark.asyncio
async def test_request_id_generated(client):
    """Each request gets a unique X-Request-ID header."""
    r1 = await client.get("/health")
    r2 = await client.get("/health")
    assert "X-Request-ID" in r1.headers
    assert "X-Request-ID" in r2.headers
    assert r1.headers["X-Request-ID"] != r2.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_request_id_propagated(client):
    """Incoming X-Request-ID is propagated through the response."""
    custom_id = "test-trace-12345"
    r = await client.get("/health", headers={"X-Request-ID": custom_id})
    assert r.headers["X-Request-ID"] == custom_id


@pytest.mark.asyncio
async def test_no_rate_limit_headers_without_redis(client):
    r = await client.get("/catalog")
    assert r.status_code == 200
    assert "X-RateLimit-Limit" not in r.headers


def test_spend_paths_use_stricter_bucket():
    assert bucket_for("/buy") == "spend"
    assert bucket_for("/redeem") == "spend"
    assert bucket_for("/sell") == "spend"
    assert bucket_for("/catalog") == "api"
    assert bucket_for("/admin/refund") == "api"


@pytest.mark.asyncio
async def test_cors_allows_twitch_extension_origin(client):
    origin = "https://abc123.ext-twitch.tv"
    r = await client.options(
        "/me",
        headers={
            "Origin": origin,
            "Access-Control-Request-Method": "GET",
            "Access-Control-Request-Headers": "Authorization",
        },
    )
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == origin


@pytest.mark.asyncio
async def test_cors_rejects_unknown_origin(client):
    r = await client.options(
        "/me",
        headers={
            "Origin": "https://evil.example",
            "Access-Control-Request-Method": "GET",
        },
    )
    assert "access-control-allow-origin" not in r.headers


@pytest.mark.asyncio
async def test_security_headers_on_every_response(client):
    r = await client.get("/health")
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert r.headers["Referrer-Policy"] == "no-referrer"
    assert "Cache-Control" not in r.headers
    assert "Strict-Transport-Security" not in r.headers


@pytest.mark.asyncio
async def test_viewer_responses_not_cached(client, viewer_headers):
    r = await client.get("/me", headers=viewer_headers())
    assert r.headers["Cache-Control"] == "no-store"
