# learninghub/services/mfa/enrollment_service.py
from __future__ import annotations

"""
🛡️ Enrollment Orchestrator
==========================

Binds one verified second factor (TOTP authenticator or mailed code) to the
caller's account.

TOTP flow
---------
1) `start_totp_enrollment`:
   - already has a verified TOTP factor → idempotent success + role redirect,
     no new secret is issued;
   - otherwise every abandoned `unverified` TOTP factor is removed
     (best-effort) and exactly one new factor is created. The secret and
     provisioning URI are returned once for display.
2) `complete_totp_enrollment`: challenge + verify through the provider. On
   success the factor is `verified`, the session is `aal2` and the profile
   method is `totp`. A wrong code leaves factor state untouched.

Email flow
----------
1) `start_email_enrollment`: returns the destination address; sending is a
   separate call (`POST /mfa/email/send-code`).
2) `complete_email_enrollment`: one-time code verify, then any TOTP factor
   is removed and the profile method is `email`. No provider factor is
   created.

Switching methods on an account that already has a verified factor needs an
elevated session; otherwise a password alone could replace the second factor.

Provider failures surface as `EnrollmentUnavailable` (retryable), never as
"no factor".
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID
import logging
import time

from learninghub.core.config import settings
from learninghub.core.exceptions import EnrollmentUnavailable, InvalidCode, MfaError, StepUpRequired
from learninghub.schemas.enums import FactorType, MfaMethod
from learninghub.services.audit_log_service import AuditEvent, log_audit_event
from learninghub.services.identity import FactorInfo, FactorNotFound, IdentityProviderError
from learninghub.services.mfa.assurance_service import requires_step_up
from learninghub.services.mfa.context import SessionContext
from learninghub.services.mfa.factors import EmailFactor, TotpFactor, verify_factor
from learninghub.services.profile_service import get_mfa_profile, record_mfa_method, route_for_role

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# 📦 Results
# ─────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class TotpEnrollmentStart:
    already_enrolled: bool
    factor_id: Optional[UUID] = None
    secret: Optional[str] = None
    uri: Optional[str] = None
    redirect_to: Optional[str] = None

    def __repr__(self) -> str:  # secret stays out of logs
        return f"TotpEnrollmentStart(already_enrolled={self.already_enrolled}, factor_id={self.factor_id})"


@dataclass(frozen=True)
class EmailEnrollmentStart:
    email: str


@dataclass(frozen=True)
class EnrollmentResult:
    method: MfaMethod
    redirect_to: str
    verified: bool = True


# ─────────────────────────────────────────────────────────────
# 🔧 Helpers
# ─────────────────────────────────────────────────────────────
async def _totp_factors(ctx: SessionContext) -> list[FactorInfo]:
    try:
        factors = await ctx.provider.list_factors(ctx.user_id)
    except IdentityProviderError as exc:
        logger.warning("Factor listing failed user=%s (%s)", ctx.user_id, type(exc).__name__)
        raise EnrollmentUnavailable() from exc
    return [f for f in factors if f.factor_type == FactorType.TOTP]


async def _ensure_may_enroll(ctx: SessionContext, method: MfaMethod) -> None:
    if await requires_step_up(ctx):
        await log_audit_event(
            ctx.db,
            user=ctx.account,
            action=AuditEvent.MFA_STEP_UP_REFUSED,
            status="FAILURE",
            request=ctx.request,
            meta_data={"operation": f"enroll_{method.value}"},
        )
        raise StepUpRequired("Verify your current method before setting up a new one.")


async def _retire_totp_factors(ctx: SessionContext) -> None:
    """Email replaces TOTP: the account keeps a single second factor."""
    for factor in await _totp_factors(ctx):
        try:
            await ctx.provider.unenroll(factor.id)
        except FactorNotFound:
            continue
        except IdentityProviderError as exc:
            logger.warning("TOTP factor removal failed factor=%s user=%s (%s)", factor.id, ctx.user_id, type(exc).__name__)
            raise EnrollmentUnavailable() from exc
        logger.info("TOTP factor removed on switch to email factor=%s user=%s", factor.id, ctx.user_id)


def _friendly_name() -> str:
    return f"HIPAA-{int(time.time() * 1000)}"


async def _audit_enroll(ctx: SessionContext, action: AuditEvent, status: str, method: MfaMethod, **meta) -> None:
    await log_audit_event(
        ctx.db,
        user=ctx.account,
        action=action,
        status=status,
        request=ctx.request,
        meta_data={"method": method.value, **meta},
    )


# ─────────────────────────────────────────────────────────────
# 🔐 TOTP
# ─────────────────────────────────────────────────────────────
async def start_totp_enrollment(ctx: SessionContext) -> TotpEnrollmentStart:
    """
    Begin (or short-circuit) TOTP enrollment.

    Steps
    -----
    1) Verified TOTP factor → already enrolled, route by role.
    2) Switching from email requires an elevated session.
    3) Remove abandoned `unverified` factors (failures logged only).
    4) Create one new factor; return its secret + URI.
    """
    # ── [Step 1] Idempotent short-circuit ───────────────────────────────────
    factors = await _totp_factors(ctx)
    if any(f.is_verified for f in factors):
        return TotpEnrollmentStart(already_enrolled=True, redirect_to=route_for_role(ctx.account.role))

    # ── [Step 2] Step-up when another factor already protects the account ──
    await _ensure_may_enroll(ctx, MfaMethod.TOTP)

    # ── [Step 3] Clean up abandoned attempts ────────────────────────────────
    for stale in factors:
        try:
            await ctx.provider.unenroll(stale.id)
        except IdentityProviderError:
            logger.warning("Could not remove unverified factor=%s user=%s", stale.id, ctx.user_id, exc_info=True)

    # ── [Step 4] Fresh factor ───────────────────────────────────────────────
    try:
        enrollment = await ctx.provider.enroll_totp(
            ctx.user_id,
            issuer=settings.MFA_TOTP_ISSUER,
            friendly_name=_friendly_name(),
        )
    except IdentityProviderError as exc:
        logger.warning("TOTP enroll failed user=%s (%s)", ctx.user_id, type(exc).__name__)
        raise EnrollmentUnavailable() from exc

    await _audit_enroll(ctx, AuditEvent.MFA_ENROLL_START, "SUCCESS", MfaMethod.TOTP, factor_id=str(enrollment.factor_id))
    return TotpEnrollmentStart(
        already_enrolled=False,
        factor_id=enrollment.factor_id,
        secret=enrollment.secret,
        uri=enrollment.uri,
    )


async def complete_totp_enrollment(ctx: SessionContext, factor_id: UUID, code: str) -> EnrollmentResult:
    """Verify the first code for `factor_id`; records `totp` on success."""
    try:
        await verify_factor(TotpFactor(factor_id=factor_id), ctx, code)
    except InvalidCode:
        await _audit_enroll(ctx, AuditEvent.MFA_ENROLL_COMPLETE, "FAILURE", MfaMethod.TOTP, reason="invalid_code")
        raise

    await record_mfa_method(ctx.db, ctx.account, MfaMethod.TOTP)
    await _audit_enroll(ctx, AuditEvent.MFA_ENROLL_COMPLETE, "SUCCESS", MfaMethod.TOTP, factor_id=str(factor_id))
    return EnrollmentResult(method=MfaMethod.TOTP, redirect_to=route_for_role(ctx.account.role))


# ─────────────────────────────────────────────────────────────
# ✉️ Email
# ─────────────────────────────────────────────────────────────
async def start_email_enrollment(ctx: SessionContext) -> EmailEnrollmentStart:
    profile = get_mfa_profile(ctx.account)
    if not profile.uses_email:
        await _ensure_may_enroll(ctx, MfaMethod.EMAIL)
    await _audit_enroll(ctx, AuditEvent.MFA_ENROLL_START, "SUCCESS", MfaMethod.EMAIL)
    return EmailEnrollmentStart(email=profile.email)


async def complete_email_enrollment(
    ctx: SessionContext, code: str, *, now: Optional[datetime] = None
) -> EnrollmentResult:
    """Verify the mailed code; records `email` on success."""
    if not get_mfa_profile(ctx.account).uses_email:
        await _ensure_may_enroll(ctx, MfaMethod.EMAIL)
    try:
        await verify_factor(EmailFactor(), ctx, code, now=now)
    except MfaError as exc:
        await _audit_enroll(ctx, AuditEvent.MFA_ENROLL_COMPLETE, "FAILURE", MfaMethod.EMAIL, reason=exc.error)
        raise

    await _retire_totp_factors(ctx)
    await record_mfa_method(ctx.db, ctx.account, MfaMethod.EMAIL)
    await _audit_enroll(ctx, AuditEvent.MFA_ENROLL_COMPLETE, "SUCCESS", MfaMethod.EMAIL)
    return EnrollmentResult(method=MfaMethod.EMAIL, redirect_to=route_for_role(ctx.account.role))


__all__ = [
    "TotpEnrollmentStart",
    "EmailEnrollmentStart",
    "EnrollmentResult",
    "start_totp_enrollment",
    "complete_totp_enrollment",
    "start_email_enrollment",
    "complete_email_enrollment",
]
