import time

import pyotp
import pytest
from sqlalchemy import select

from learninghub.core.exceptions import EnrollmentUnavailable, InvalidCode, StepUpRequired
from learninghub.db.models.mfa_factor import MfaFactor
from learninghub.schemas.enums import AssuranceLevel, FactorStatus, MfaFlowState, MfaMethod, UserRole
from learninghub.services.identity import ProviderUnavailable
from learninghub.services.mfa import enrollment_service, one_time_code_service, verification_service


async def _factors(db, user_id):
    return (await db.execute(select(MfaFactor).where(MfaFactor.user_id == user_id))).scalars().all()


# ─────────────────────────────
# 🔐 TOTP
# ─────────────────────────────
@pytest.mark.anyio
async def test_totp_enrollment_routes_platform_owner_home(create_user, sign_in):
    user = await create_user(role=UserRole.PLATFORM_OWNER)
    _, ctx = await sign_in(user)

    start = await enrollment_service.start_totp_enrollment(ctx)
    assert start.already_enrolled is False
    assert start.uri.startswith("otpauth://totp/")
    assert "HIPAA" in pyotp.parse_uri(start.uri).issuer

    result = await enrollment_service.complete_totp_enrollment(ctx, start.factor_id, pyotp.TOTP(start.secret).now())
    assert result.method == MfaMethod.TOTP
    assert result.redirect_to == "/platform"

    await ctx.db.refresh(user)
    assert user.mfa_method == MfaMethod.TOTP
    assert user.mfa_enabled is True
    assert await ctx.provider.get_assurance_level(ctx.session) == AssuranceLevel.AAL2


@pytest.mark.anyio
async def test_restarting_enrollment_leaves_a_single_unverified_factor(create_user, sign_in):
    user = await create_user()
    _, ctx = await sign_in(user)

    first = await enrollment_service.start_totp_enrollment(ctx)
    second = await enrollment_service.start_totp_enrollment(ctx)

    rows = await _factors(ctx.db, user.id)
    assert [r.id for r in rows] == [second.factor_id]
    assert rows[0].status == FactorStatus.UNVERIFIED
    assert first.secret != second.secret


@pytest.mark.anyio
async def test_wrong_first_code_leaves_factor_unverified(create_user, sign_in):
    user = await create_user()
    _, ctx = await sign_in(user)
    start = await enrollment_service.start_totp_enrollment(ctx)

    with pytest.raises(InvalidCode) as exc:
        await enrollment_service.complete_totp_enrollment(ctx, start.factor_id, "000000")
    assert exc.value.extra.get("challenge_id")

    rows = await _factors(ctx.db, user.id)
    assert rows[0].status == FactorStatus.UNVERIFIED
    await ctx.db.refresh(user)
    assert user.mfa_method is None


@pytest.mark.anyio
async def test_enrollment_is_idempotent_once_verified(create_user, sign_in, enroll_totp):
    user = await create_user(role=UserRole.ORG_ADMIN)
    _, ctx = await sign_in(user)
    await enroll_totp(ctx)

    _, fresh = await sign_in(user)
    again = await enrollment_service.start_totp_enrollment(fresh)
    assert again.already_enrolled is True
    assert again.secret is None
    assert again.redirect_to == "/admin"
    assert len(await _factors(ctx.db, user.id)) == 1


@pytest.mark.anyio
async def test_enrollment_secret_stays_out_of_repr(create_user, sign_in):
    user = await create_user()
    _, ctx = await sign_in(user)
    start = await enrollment_service.start_totp_enrollment(ctx)
    assert start.secret not in repr(start)


# ─────────────────────────────
# ✉️ Email
# ─────────────────────────────
@pytest.mark.anyio
async def test_email_enrollment_records_method(create_user, sign_in, fixed_code, sent_codes):
    user = await create_user(role=UserRole.WORKFORCE_USER)
    _, ctx = await sign_in(user)

    start = await enrollment_service.start_email_enrollment(ctx)
    assert start.email == user.email

    await one_time_code_service.send(ctx)
    result = await enrollment_service.complete_email_enrollment(ctx, fixed_code)

    assert result.method == MfaMethod.EMAIL
    assert result.redirect_to == "/dashboard"
    await ctx.db.refresh(user)
    assert user.mfa_method == MfaMethod.EMAIL
    assert user.mfa_enabled is True
    assert sent_codes[0][0] == user.email


# ─────────────────────────────
# 🚧 Switching methods
# ─────────────────────────────
@pytest.mark.anyio
async def test_switching_from_totp_to_email_needs_elevated_session(create_user, sign_in, enroll_totp):
    user = await create_user()
    _, ctx = await sign_in(user)
    await enroll_totp(ctx)

    _, base = await sign_in(user)
    with pytest.raises(StepUpRequired):
        await enrollment_service.start_email_enrollment(base)

    # the enrolling session itself is elevated
    assert (await enrollment_service.start_email_enrollment(ctx)).email == user.email


@pytest.mark.anyio
async def test_completing_switch_to_email_removes_totp(create_user, sign_in, enroll_totp, fixed_code):
    user = await create_user()
    _, ctx = await sign_in(user)
    await enroll_totp(ctx)

    await enrollment_service.start_email_enrollment(ctx)
    await one_time_code_service.send(ctx)
    result = await enrollment_service.complete_email_enrollment(ctx, fixed_code)
    assert result.method == MfaMethod.EMAIL

    await ctx.db.refresh(user)
    assert user.mfa_method == MfaMethod.EMAIL
    assert await _factors(ctx.db, user.id) == []

    _, fresh = await sign_in(user)
    status = await verification_service.check_mfa_status(fresh)
    assert status.state == MfaFlowState.AWAITING_EMAIL_SEND


@pytest.mark.anyio
async def test_switch_to_email_fails_closed_when_totp_cannot_be_removed(
    create_user, sign_in, enroll_totp, fixed_code, monkeypatch
):
    user = await create_user()
    _, ctx = await sign_in(user)
    await enroll_totp(ctx)
    await one_time_code_service.send(ctx)

    async def _down(factor_id):
        raise ProviderUnavailable("identity store unavailable")

    monkeypatch.setattr(ctx.provider, "unenroll", _down)
    with pytest.raises(EnrollmentUnavailable):
        await enrollment_service.complete_email_enrollment(ctx, fixed_code)

    await ctx.db.refresh(user)
    assert user.mfa_method == MfaMethod.TOTP
    [factor] = await _factors(ctx.db, user.id)
    assert factor.status == FactorStatus.VERIFIED


@pytest.mark.anyio
async def test_switching_from_email_to_totp_needs_elevated_session(create_user, sign_in, fixed_code):
    user = await create_user(mfa_method=MfaMethod.EMAIL)
    _, ctx = await sign_in(user)

    with pytest.raises(StepUpRequired):
        await enrollment_service.start_totp_enrollment(ctx)

    await one_time_code_service.send(ctx)
    await one_time_code_service.verify(ctx, fixed_code)
    start = await enrollment_service.start_totp_enrollment(ctx)
    assert start.already_enrolled is False

    totp = pyotp.TOTP(start.secret)
    await enrollment_service.complete_totp_enrollment(ctx, start.factor_id, totp.at(time.time()))
    await ctx.db.refresh(user)
    assert user.mfa_method == MfaMethod.TOTP
