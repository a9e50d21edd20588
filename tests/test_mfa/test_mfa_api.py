import time

import pyotp
import pytest
from httpx import AsyncClient

from learninghub.schemas.enums import UserRole
from tests.fixtures.users import DEFAULT_PASSWORD, bearer

BASE = "/api/v1/auth"


async def _login(client: AsyncClient, user) -> dict:
    resp = await client.post(f"{BASE}/login", json={"email": user.email, "password": DEFAULT_PASSWORD})
    assert resp.status_code == 200, resp.text
    return bearer(resp.json()["access_token"])


async def _enroll_totp(client: AsyncClient, headers: dict) -> pyotp.TOTP:
    start = await client.post(f"{BASE}/mfa/totp/enroll", headers=headers)
    assert start.status_code == 200, start.text
    body = start.json()
    totp = pyotp.TOTP(body["secret"])
    done = await client.post(
        f"{BASE}/mfa/totp/enroll/verify",
        headers=headers,
        json={"factor_id": body["factor_id"], "code": totp.now()},
    )
    assert done.status_code == 200, done.text
    return totp


# ─────────────────────────────
# 🔐 TOTP enrollment over HTTP
# ─────────────────────────────
@pytest.mark.anyio
async def test_totp_enroll_flow(async_client: AsyncClient, create_user):
    user = await create_user(role=UserRole.PLATFORM_OWNER)
    headers = await _login(async_client, user)

    start = await async_client.post(f"{BASE}/mfa/totp/enroll", headers=headers)
    assert start.status_code == 200, start.text
    assert start.headers["cache-control"] == "no-store"
    body = start.json()
    assert body["already_enrolled"] is False
    assert body["qr_code_url"].startswith("otpauth://totp/")

    done = await async_client.post(
        f"{BASE}/mfa/totp/enroll/verify",
        headers=headers,
        json={"factor_id": body["factor_id"], "code": pyotp.TOTP(body["secret"]).now()},
    )
    assert done.status_code == 200, done.text
    assert done.json()["redirect_to"] == "/platform"

    status = await async_client.get(f"{BASE}/mfa/status", headers=headers)
    assert status.json()["state"] == "elevated"


@pytest.mark.anyio
async def test_totp_enroll_verify_wrong_code(async_client: AsyncClient, create_user):
    user = await create_user()
    headers = await _login(async_client, user)
    start = (await async_client.post(f"{BASE}/mfa/totp/enroll", headers=headers)).json()

    resp = await async_client.post(
        f"{BASE}/mfa/totp/enroll/verify",
        headers=headers,
        json={"factor_id": start["factor_id"], "code": "000000"},
    )
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "invalid_code"
    assert body["challenge_id"]


@pytest.mark.anyio
async def test_second_enroll_call_after_verification_is_idempotent(async_client: AsyncClient, create_user):
    user = await create_user(role=UserRole.ORG_ADMIN)
    headers = await _login(async_client, user)
    await _enroll_totp(async_client, headers)

    again = await async_client.post(f"{BASE}/mfa/totp/enroll", headers=headers)
    assert again.status_code == 200
    assert again.json()["already_enrolled"] is True
    assert again.json()["secret"] is None
    assert again.json()["redirect_to"] == "/admin"


# ─────────────────────────────
# ✅ TOTP step-up over HTTP
# ─────────────────────────────
@pytest.mark.anyio
async def test_totp_step_up_on_new_login(async_client: AsyncClient, create_user):
    user = await create_user()
    totp = await _enroll_totp(async_client, await _login(async_client, user))

    headers = await _login(async_client, user)
    status = (await async_client.get(f"{BASE}/mfa/status", headers=headers)).json()
    assert status["state"] == "awaiting_totp_code"

    wrong = await async_client.post(f"{BASE}/mfa/totp/verify", headers=headers, json={"code": "000000"})
    assert wrong.status_code == 400
    challenge_id = wrong.json()["challenge_id"]

    ok = await async_client.post(
        f"{BASE}/mfa/totp/verify",
        headers=headers,
        json={"code": totp.at(time.time() + 30), "challenge_id": challenge_id},
    )
    assert ok.status_code == 200, ok.text
    assert ok.json() == {"verified": True, "redirect_to": "/dashboard", "challenge_id": challenge_id}


@pytest.mark.anyio
async def test_totp_verify_without_factor_conflicts(async_client: AsyncClient, create_user):
    user = await create_user()
    headers = await _login(async_client, user)
    resp = await async_client.post(f"{BASE}/mfa/totp/verify", headers=headers, json={"code": "123456"})
    assert resp.status_code == 409
    assert resp.json()["error"] == "no_factor"


# ─────────────────────────────
# 🔁 Password reset gate
# ─────────────────────────────
@pytest.mark.anyio
async def test_password_reset_requires_step_up(async_client: AsyncClient, create_user):
    user = await create_user()
    totp = await _enroll_totp(async_client, await _login(async_client, user))

    headers = await _login(async_client, user)
    refused = await async_client.post(f"{BASE}/password/reset", headers=headers, json={"new_password": "brand-new-pass"})
    assert refused.status_code == 403
    body = refused.json()
    assert body["error"] == "step_up_required"
    assert body["status"]["state"] == "awaiting_totp_code"

    await async_client.post(f"{BASE}/mfa/totp/verify", headers=headers, json={"code": totp.at(time.time() + 30)})
    ok = await async_client.post(f"{BASE}/password/reset", headers=headers, json={"new_password": "brand-new-pass"})
    assert ok.status_code == 200, ok.text
    assert ok.json() == {"message": "Password updated successfully."}

    relogin = await async_client.post(f"{BASE}/login", json={"email": user.email, "password": "brand-new-pass"})
    assert relogin.status_code == 200


@pytest.mark.anyio
async def test_password_reset_validates_length(async_client: AsyncClient, create_user):
    user = await create_user()
    headers = await _login(async_client, user)
    resp = await async_client.post(f"{BASE}/password/reset", headers=headers, json={"new_password": "abc"})
    assert resp.status_code == 422


@pytest.mark.anyio
async def test_email_enroll_for_totp_account_needs_step_up(async_client: AsyncClient, create_user):
    user = await create_user()
    await _enroll_totp(async_client, await _login(async_client, user))

    headers = await _login(async_client, user)
    resp = await async_client.post(f"{BASE}/mfa/email/enroll", headers=headers)
    assert resp.status_code == 403
    assert resp.json()["error"] == "step_up_required"
