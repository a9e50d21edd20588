from datetime import timedelta

import pytest
from sqlalchemy import select

from learninghub.core.exceptions import (
    AttemptsExhausted,
    CodeExpired,
    CodeMismatch,
    NoActiveCode,
    ResendTooSoon,
)
from learninghub.db.base_class import utcnow
from learninghub.db.models.audit_log import AuditLog
from learninghub.db.models.one_time_code import OneTimeCode
from learninghub.schemas.enums import MfaMethod
from learninghub.services.mfa import one_time_code_service as otc
from learninghub.utils import redis_utils


# ─────────────────────────────
# 🧮 Countdown helper
# ─────────────────────────────
def test_seconds_until_resend_rounds_up_and_floors_at_zero():
    now = utcnow()
    assert otc.seconds_until_resend(None, now, 60) == 0
    assert otc.seconds_until_resend(now, now, 60) == 60
    assert otc.seconds_until_resend(now - timedelta(seconds=59.2), now, 60) == 1
    assert otc.seconds_until_resend(now - timedelta(seconds=61), now, 60) == 0
    assert otc.seconds_until_resend(now, now, 0) == 0


# ─────────────────────────────
# 📤 Send
# ─────────────────────────────
@pytest.mark.anyio
async def test_send_mails_code_with_requested_ttl(create_user, sign_in, fixed_code, sent_codes):
    user = await create_user(mfa_method=MfaMethod.EMAIL)
    _, ctx = await sign_in(user)
    now = utcnow()

    dispatch = await otc.send(ctx, now=now, ttl_minutes=5)

    assert dispatch.expires_in == 300
    assert dispatch.resend_available_in == 60
    assert sent_codes == [(user.email, "123456", 5)]

    rows = (await ctx.db.execute(select(OneTimeCode).where(OneTimeCode.user_id == user.id))).scalars().all()
    assert len(rows) == 1
    assert rows[0].code_hash != "123456"
    assert rows[0].used is False


@pytest.mark.anyio
async def test_send_twice_within_cooldown_keeps_first_code_valid(create_user, sign_in, fixed_code, sent_codes):
    user = await create_user(mfa_method=MfaMethod.EMAIL)
    _, ctx = await sign_in(user)
    now = utcnow()

    await otc.send(ctx, now=now)
    with pytest.raises(ResendTooSoon) as exc:
        await otc.send(ctx, now=now + timedelta(seconds=5))
    assert exc.value.retry_after == 55
    assert len(sent_codes) == 1

    status = await otc.verify(ctx, "123456", now=now + timedelta(seconds=10))
    assert status.verified is True


@pytest.mark.anyio
async def test_resend_after_cooldown_invalidates_previous_code(create_user, sign_in, monkeypatch):
    user = await create_user(mfa_method=MfaMethod.EMAIL)
    _, ctx = await sign_in(user)
    now = utcnow()

    codes = iter(["111111", "222222"])
    monkeypatch.setattr(otc, "generate_code", lambda length=6: next(codes))

    await otc.send(ctx, now=now)
    await otc.send(ctx, now=now + timedelta(seconds=61))

    live = (
        await ctx.db.execute(
            select(OneTimeCode).where(OneTimeCode.user_id == user.id, OneTimeCode.used.is_(False))
        )
    ).scalars().all()
    assert len(live) == 1

    with pytest.raises(CodeMismatch):
        await otc.verify(ctx, "111111", now=now + timedelta(seconds=62))
    assert (await otc.verify(ctx, "222222", now=now + timedelta(seconds=63))).verified


@pytest.mark.anyio
async def test_send_is_capped_per_period(create_user, sign_in, fixed_code, monkeypatch):
    monkeypatch.setattr(otc.settings, "MFA_EMAIL_RESEND_COOLDOWN_SECONDS", 0)
    monkeypatch.setattr(otc.settings, "MFA_EMAIL_MAX_CODES_PER_PERIOD", 2)
    user = await create_user(mfa_method=MfaMethod.EMAIL)
    _, ctx = await sign_in(user)
    now = utcnow()

    await otc.send(ctx, now=now)
    await otc.send(ctx, now=now + timedelta(seconds=1))
    with pytest.raises(ResendTooSoon) as exc:
        await otc.send(ctx, now=now + timedelta(seconds=2))
    assert exc.value.retry_after > 0


@pytest.mark.anyio
async def test_send_refused_while_another_send_holds_the_lock(create_user, sign_in, fixed_code, sent_codes):
    user = await create_user(mfa_method=MfaMethod.EMAIL)
    _, ctx = await sign_in(user)

    token = await redis_utils.acquire_lock(key_suffix=f"mfa-email-send:{user.id}", ttl=10)
    assert token is not None
    with pytest.raises(ResendTooSoon):
        await otc.send(ctx)
    assert sent_codes == []


@pytest.mark.anyio
async def test_send_writes_audit_row_without_code(create_user, sign_in, fixed_code):
    user = await create_user(mfa_method=MfaMethod.EMAIL)
    _, ctx = await sign_in(user)
    await otc.send(ctx)

    row = (
        await ctx.db.execute(select(AuditLog).where(AuditLog.action == "MFA_EMAIL_CODE_SENT"))
    ).scalar_one()
    assert row.user_id == user.id
    assert "123456" not in str(row.metadata_json)


# ─────────────────────────────
# ✅ Verify
# ─────────────────────────────
@pytest.mark.anyio
async def test_code_verifies_only_once(create_user, sign_in, fixed_code):
    user = await create_user(mfa_method=MfaMethod.EMAIL)
    _, ctx = await sign_in(user)
    now = utcnow()
    await otc.send(ctx, now=now)

    status = await otc.verify(ctx, "123456", now=now)
    assert status.verified is True
    assert status.expires_at == now + timedelta(hours=8)

    with pytest.raises(NoActiveCode):
        await otc.verify(ctx, "123456", now=now)


@pytest.mark.anyio
async def test_verify_without_any_code(create_user, sign_in):
    user = await create_user(mfa_method=MfaMethod.EMAIL)
    _, ctx = await sign_in(user)
    with pytest.raises(NoActiveCode):
        await otc.verify(ctx, "123456")


@pytest.mark.anyio
async def test_expired_code_is_rejected_even_when_correct(create_user, sign_in, fixed_code):
    user = await create_user(mfa_method=MfaMethod.EMAIL)
    _, ctx = await sign_in(user)
    now = utcnow()
    await otc.send(ctx, now=now, ttl_minutes=5)

    with pytest.raises(CodeExpired):
        await otc.verify(ctx, "123456", now=now + timedelta(minutes=5, seconds=1))
    # invalidated eagerly
    with pytest.raises(NoActiveCode):
        await otc.verify(ctx, "123456", now=now + timedelta(minutes=5, seconds=2))


@pytest.mark.anyio
async def test_wrong_code_keeps_code_live_until_attempts_run_out(create_user, sign_in, fixed_code, monkeypatch):
    monkeypatch.setattr(otc.settings, "MFA_EMAIL_MAX_ATTEMPTS_PER_CODE", 2)
    user = await create_user(mfa_method=MfaMethod.EMAIL)
    _, ctx = await sign_in(user)
    now = utcnow()
    await otc.send(ctx, now=now)

    for _ in range(2):
        with pytest.raises(CodeMismatch):
            await otc.verify(ctx, "000000", now=now)
    with pytest.raises(AttemptsExhausted):
        await otc.verify(ctx, "123456", now=now)


@pytest.mark.anyio
async def test_code_accepts_surrounding_whitespace(create_user, sign_in, fixed_code):
    user = await create_user(mfa_method=MfaMethod.EMAIL)
    _, ctx = await sign_in(user)
    await otc.send(ctx)
    assert (await otc.verify(ctx, " 123456 ")).verified


# ─────────────────────────────
# 🔍 Session marker
# ─────────────────────────────
@pytest.mark.anyio
async def test_session_marker_is_per_session(create_user, sign_in, fixed_code):
    user = await create_user(mfa_method=MfaMethod.EMAIL)
    _, first = await sign_in(user)
    _, second = await sign_in(user)
    now = utcnow()

    assert (await otc.check_session(first, now=now)).verified is False
    await otc.send(first, now=now)
    await otc.verify(first, "123456", now=now)

    assert (await otc.check_session(first, now=now)).verified is True
    assert (await otc.check_session(second, now=now)).verified is False
    assert (await otc.check_session(first, now=now + timedelta(hours=9))).verified is False


@pytest.mark.anyio
async def test_wrong_code_reports_attempts_left(create_user, sign_in, fixed_code):
    user = await create_user(mfa_method=MfaMethod.EMAIL)
    _, ctx = await sign_in(user)
    now = utcnow()
    await otc.send(ctx, now=now)

    with pytest.raises(CodeMismatch) as exc_info:
        await otc.verify(ctx, "000000", now=now)
    assert exc_info.value.message == "Invalid verification code. 4 attempts remaining."
    assert exc_info.value.to_body()["error"] == "invalid_code"


@pytest.mark.anyio
@pytest.mark.parametrize("submitted", ["12345", "1234567", "12a456", ""])
async def test_malformed_code_costs_no_attempt(create_user, sign_in, fixed_code, monkeypatch, submitted):
    monkeypatch.setattr(otc.settings, "MFA_EMAIL_MAX_ATTEMPTS_PER_CODE", 1)
    user = await create_user(mfa_method=MfaMethod.EMAIL)
    _, ctx = await sign_in(user)
    now = utcnow()
    await otc.send(ctx, now=now)

    for _ in range(3):
        with pytest.raises(CodeMismatch):
            await otc.verify(ctx, submitted, now=now)

    row = (await ctx.db.execute(select(OneTimeCode).where(OneTimeCode.user_id == user.id))).scalar_one()
    assert row.attempts == 0
    assert (await otc.verify(ctx, "123456", now=now)).verified


def _seed_code(ctx, code: str, created_at) -> OneTimeCode:
    record = OneTimeCode(
        user_id=ctx.user_id,
        code_hash=otc._digest(ctx, code),
        created_at=created_at,
        expires_at=created_at + timedelta(minutes=10),
        used=False,
        attempts=0,
    )
    ctx.db.add(record)
    return record


@pytest.mark.anyio
async def test_consuming_a_code_retires_every_other_live_code(create_user, sign_in):
    user = await create_user(mfa_method=MfaMethod.EMAIL)
    _, ctx = await sign_in(user)
    now = utcnow()
    _seed_code(ctx, "111111", now - timedelta(seconds=5))
    _seed_code(ctx, "222222", now - timedelta(seconds=1))
    await ctx.db.commit()

    assert (await otc.verify(ctx, "222222", now=now)).verified
    with pytest.raises(NoActiveCode):
        await otc.verify(ctx, "111111", now=now)


@pytest.mark.anyio
async def test_expiry_retires_every_other_live_code(create_user, sign_in):
    user = await create_user(mfa_method=MfaMethod.EMAIL)
    _, ctx = await sign_in(user)
    now = utcnow()
    _seed_code(ctx, "111111", now - timedelta(minutes=12))
    _seed_code(ctx, "222222", now - timedelta(minutes=11))
    await ctx.db.commit()

    with pytest.raises(CodeExpired):
        await otc.verify(ctx, "222222", now=now)
    with pytest.raises(NoActiveCode):
        await otc.verify(ctx, "111111", now=now)
