import pytest
from httpx import AsyncClient

from learninghub.schemas.enums import MfaMethod, UserRole
from tests.fixtures.users import DEFAULT_PASSWORD, bearer

BASE = "/api/v1/auth"


async def _login(client: AsyncClient, user) -> dict:
    resp = await client.post(f"{BASE}/login", json={"email": user.email, "password": DEFAULT_PASSWORD})
    assert resp.status_code == 200, resp.text
    return bearer(resp.json()["access_token"])


# ─────────────────────────────
# ✉️ Email step-up
# ─────────────────────────────
@pytest.mark.anyio
async def test_send_and_verify_email_code(async_client: AsyncClient, create_user, fixed_code, sent_codes):
    user = await create_user(role=UserRole.ORG_ADMIN, mfa_method=MfaMethod.EMAIL)
    headers = await _login(async_client, user)

    sent = await async_client.post(f"{BASE}/mfa/email/send-code", headers=headers)
    assert sent.status_code == 200, sent.text
    assert sent.json() == {"message": "Verification code sent.", "expires_in": 600, "resend_available_in": 60}
    assert sent_codes == [(user.email, fixed_code, 10)]

    status = (await async_client.get(f"{BASE}/mfa/status", headers=headers)).json()
    assert status["state"] == "awaiting_email_code"

    ok = await async_client.post(f"{BASE}/mfa/email/verify-code", headers=headers, json={"code": fixed_code})
    assert ok.status_code == 200, ok.text
    assert ok.json()["redirect_to"] == "/admin"

    session = (await async_client.get(f"{BASE}/mfa/email/session", headers=headers)).json()
    assert session["verified"] is True
    assert session["expires_at"]


@pytest.mark.anyio
async def test_resend_too_soon(async_client: AsyncClient, create_user, fixed_code, sent_codes):
    user = await create_user(mfa_method=MfaMethod.EMAIL)
    headers = await _login(async_client, user)

    await async_client.post(f"{BASE}/mfa/email/send-code", headers=headers)
    again = await async_client.post(f"{BASE}/mfa/email/send-code", headers=headers)
    assert again.status_code == 429
    body = again.json()
    assert body["error"] == "rate_limited"
    assert 0 < body["retry_after"] <= 60
    assert again.headers["retry-after"] == str(body["retry_after"])
    assert len(sent_codes) == 1

    ok = await async_client.post(f"{BASE}/mfa/email/verify-code", headers=headers, json={"code": fixed_code})
    assert ok.status_code == 200


@pytest.mark.anyio
async def test_verify_code_errors(async_client: AsyncClient, create_user, fixed_code):
    user = await create_user(mfa_method=MfaMethod.EMAIL)
    headers = await _login(async_client, user)

    none = await async_client.post(f"{BASE}/mfa/email/verify-code", headers=headers, json={"code": "123456"})
    assert none.status_code == 400
    assert none.json()["error"] == "no_code"

    await async_client.post(f"{BASE}/mfa/email/send-code", headers=headers)
    wrong = await async_client.post(f"{BASE}/mfa/email/verify-code", headers=headers, json={"code": "999999"})
    assert wrong.status_code == 400
    assert wrong.json()["error"] == "invalid_code"

    ok = await async_client.post(f"{BASE}/mfa/email/verify-code", headers=headers, json={"code": fixed_code})
    assert ok.status_code == 200
    reused = await async_client.post(f"{BASE}/mfa/email/verify-code", headers=headers, json={"code": fixed_code})
    assert reused.json()["error"] == "no_code"


@pytest.mark.anyio
async def test_email_session_is_not_shared_between_logins(async_client: AsyncClient, create_user, fixed_code):
    user = await create_user(mfa_method=MfaMethod.EMAIL)
    first = await _login(async_client, user)
    await async_client.post(f"{BASE}/mfa/email/send-code", headers=first)
    await async_client.post(f"{BASE}/mfa/email/verify-code", headers=first, json={"code": fixed_code})

    second = await _login(async_client, user)
    session = (await async_client.get(f"{BASE}/mfa/email/session", headers=second)).json()
    assert session == {"verified": False, "expires_at": None}


# ─────────────────────────────
# 🆕 Email enrollment
# ─────────────────────────────
@pytest.mark.anyio
async def test_email_enrollment_flow(async_client: AsyncClient, create_user, fixed_code):
    user = await create_user(role=UserRole.PLATFORM_OWNER)
    headers = await _login(async_client, user)

    start = await async_client.post(f"{BASE}/mfa/email/enroll", headers=headers)
    assert start.status_code == 200
    assert start.json() == {"email": user.email}

    sent = await async_client.post(f"{BASE}/mfa/email/send-code", headers=headers)
    assert sent.status_code == 200, sent.text

    done = await async_client.post(f"{BASE}/mfa/email/enroll/verify", headers=headers, json={"code": fixed_code})
    assert done.status_code == 200, done.text
    assert done.json()["redirect_to"] == "/platform"

    # a fresh login now routes through the email challenge
    fresh = await _login(async_client, user)
    status = (await async_client.get(f"{BASE}/mfa/status", headers=fresh)).json()
    assert status["state"] == "awaiting_email_send"
