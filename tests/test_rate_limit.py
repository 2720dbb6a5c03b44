"""Per-IP limits on login and registration."""

import pytest

from book_editor.api.v1.helpers.rate_limit import (
    LOGIN_LIMIT_MESSAGE,
    REGISTER_LIMIT_MESSAGE,
)

LOGIN_BODY = {"identifier": "nobody", "password": "wrong-password"}


@pytest.mark.asyncio
async def test_registration_limited_after_ten_attempts(test_client):
    # Failed attempts count against the window too.
    for _ in range(10):
        resp = await test_client.post("/api/auth/register", json={})
        assert resp.status_code == 400

    blocked = await test_client.post("/api/auth/register", json={})
    assert blocked.status_code == 429
    assert blocked.json() == {"error": REGISTER_LIMIT_MESSAGE, "code": "RATE_LIMITED"}


@pytest.mark.asyncio
async def test_login_limited_after_twenty_attempts(test_client):
    for _ in range(20):
        resp = await test_client.post("/api/auth/login", json=LOGIN_BODY)
        assert resp.status_code == 401

    blocked = await test_client.post("/api/auth/login", json=LOGIN_BODY)
    assert blocked.status_code == 429
    assert blocked.json() == {"error": LOGIN_LIMIT_MESSAGE, "code": "RATE_LIMITED"}


@pytest.mark.asyncio
async def test_limits_are_per_client_ip(test_client):
    first = {"X-Forwarded-For": "203.0.113.5"}
    second = {"X-Forwarded-For": "198.51.100.7, 10.0.0.1"}

    for _ in range(10):
        await test_client.post("/api/auth/register", json={}, headers=first)
    assert (
        await test_client.post("/api/auth/register", json={}, headers=first)
    ).status_code == 429

    other = await test_client.post("/api/auth/register", json={}, headers=second)
    assert other.status_code == 400


@pytest.mark.asyncio
async def test_login_and_register_windows_are_separate(test_client):
    for _ in range(10):
        await test_client.post("/api/auth/register", json={})

    resp = await test_client.post("/api/auth/login", json=LOGIN_BODY)
    assert resp.status_code == 401
