import uuid

import pytest
from httpx import AsyncClient


@pytest.mark.anyio
async def test_healthz(async_client: AsyncClient):
    resp = await async_client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}


@pytest.mark.anyio
async def test_readyz_reports_checks(async_client: AsyncClient):
    resp = await async_client.get("/readyz")
    assert resp.status_code == 200
    body = resp.json()
    assert set(body["checks"]) == {"db", "redis"}
    assert body["checks"]["redis"] is True


@pytest.mark.anyio
async def test_security_headers_present(async_client: AsyncClient):
    resp = await async_client.get("/healthz")
    assert resp.headers["x-content-type-options"] == "nosniff"
    assert resp.headers["x-frame-options"] == "DENY"
    assert resp.headers["referrer-policy"] == "no-referrer"
    assert "server" not in resp.headers


@pytest.mark.anyio
async def test_request_id_echoed_when_valid(async_client: AsyncClient):
    rid = str(uuid.uuid4())
    resp = await async_client.get("/healthz", headers={"X-Request-ID": rid})
    assert resp.headers["x-request-id"] == rid

    resp = await async_client.get("/healthz", headers={"X-Request-ID": "not-a-uuid"})
    assert resp.headers["x-request-id"] != "not-a-uuid"
    assert uuid.UUID(resp.headers["x-request-id"]).version == 4


@pytest.mark.anyio
async def test_error_responses_are_not_cached(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/auth/mfa/status")
    assert resp.status_code == 401
    assert resp.headers["cache-control"] == "no-store"
