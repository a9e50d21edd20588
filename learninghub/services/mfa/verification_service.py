# learninghub/services/mfa/verification_service.py
from __future__ import annotations

"""
🔑 Verification Orchestrator (step-up)
======================================

Proves that the holder of a `base` session controls a previously verified
factor, then reports the role-based destination.

States
------
    CHECKING_STATUS ─┬─ elevated ─────────────────→ ELEVATED (route by role)
                     ├─ no verified factor ───────→ NO_FACTOR (enroll first)
                     ├─ verified TOTP factor ─────→ AWAITING_TOTP_CODE
                     └─ email method recorded ────→ AWAITING_EMAIL_SEND
                                                     └─ code live → AWAITING_EMAIL_CODE

`check_mfa_status` re-reads live state on every call (another tab may have
elevated the session already). TOTP wins over email when both exist.

Codes are opaque here: TOTP goes to the identity provider, email codes to the
one-time code service; only their result/error is inspected.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID
import logging

from fastapi import BackgroundTasks

from learninghub.core.config import settings
from learninghub.core.exceptions import EnrollmentUnavailable, MfaError, NoFactorEnrolled
from learninghub.db.base_class import as_utc, utcnow
from learninghub.schemas.enums import FactorType, MfaFlowState, MfaMethod, VerificationStatus
from learninghub.services.audit_log_service import AuditEvent, log_audit_event
from learninghub.services.identity import IdentityProviderError
from learninghub.services.mfa import one_time_code_service
from learninghub.services.mfa.assurance_service import evaluate_assurance, requires_step_up
from learninghub.services.mfa.context import SessionContext
from learninghub.services.mfa.factors import EmailFactor, TotpFactor, verify_factor
from learninghub.services.mfa.one_time_code_service import CodeDispatch, seconds_until_resend
from learninghub.services.profile_service import get_mfa_profile, route_for_role

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# 📦 Results
# ─────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class MfaStatus:
    state: MfaFlowState
    status: VerificationStatus
    method: Optional[MfaMethod] = None
    factor_id: Optional[UUID] = None
    redirect_to: Optional[str] = None
    expires_in: Optional[int] = None
    resend_available_in: Optional[int] = None

    def as_dict(self) -> dict:
        return {
            "state": self.state.value,
            "status": self.status.value,
            "method": self.method.value if self.method else None,
            "factor_id": str(self.factor_id) if self.factor_id else None,
            "redirect_to": self.redirect_to,
            "expires_in": self.expires_in,
            "resend_available_in": self.resend_available_in,
        }


@dataclass(frozen=True)
class VerificationResult:
    method: MfaMethod
    redirect_to: str
    challenge_id: Optional[str] = None
    verified: bool = True


# ─────────────────────────────────────────────────────────────
# 🔧 Helpers
# ─────────────────────────────────────────────────────────────
async def _verified_totp_factor_id(ctx: SessionContext) -> Optional[UUID]:
    try:
        factors = await ctx.provider.list_factors(ctx.user_id)
    except IdentityProviderError as exc:
        logger.warning("Factor listing failed user=%s (%s)", ctx.user_id, type(exc).__name__)
        raise EnrollmentUnavailable() from exc
    for f in factors:
        if f.factor_type == FactorType.TOTP and f.is_verified:
            return f.id
    return None


async def _audit_verify(ctx: SessionContext, status: str, method: MfaMethod, **meta) -> None:
    await log_audit_event(
        ctx.db,
        user=ctx.account,
        action=AuditEvent.MFA_VERIFY,
        status=status,
        request=ctx.request,
        meta_data={"method": method.value, **meta},
    )


# ─────────────────────────────────────────────────────────────
# 🧭 Status
# ─────────────────────────────────────────────────────────────
async def check_mfa_status(ctx: SessionContext, now: Optional[datetime] = None) -> MfaStatus:
    """Resolve the next state for this session from live provider/store data."""
    now = now or utcnow()
    profile = get_mfa_profile(ctx.account)

    if await evaluate_assurance(ctx, now=now) == VerificationStatus.ELEVATED:
        return MfaStatus(
            state=MfaFlowState.ELEVATED,
            status=VerificationStatus.ELEVATED,
            method=profile.method,
            redirect_to=route_for_role(profile.role),
        )

    factor_id = await _verified_totp_factor_id(ctx)
    if factor_id is not None:
        return MfaStatus(
            state=MfaFlowState.AWAITING_TOTP_CODE,
            status=VerificationStatus.BASE,
            method=MfaMethod.TOTP,
            factor_id=factor_id,
        )

    if profile.uses_email:
        live = await one_time_code_service.latest_live_code(ctx, now=now)
        if live is None:
            return MfaStatus(
                state=MfaFlowState.AWAITING_EMAIL_SEND,
                status=VerificationStatus.BASE,
                method=MfaMethod.EMAIL,
                resend_available_in=0,
            )
        return MfaStatus(
            state=MfaFlowState.AWAITING_EMAIL_CODE,
            status=VerificationStatus.BASE,
            method=MfaMethod.EMAIL,
            expires_in=max(0, int((as_utc(live.expires_at) - now).total_seconds())),
            resend_available_in=seconds_until_resend(live.created_at, now),
        )

    return MfaStatus(
        state=MfaFlowState.NO_FACTOR,
        status=VerificationStatus.BASE,
        redirect_to=settings.MFA_ENROLL_ROUTE,
    )


# ─────────────────────────────────────────────────────────────
# 🔐 TOTP
# ─────────────────────────────────────────────────────────────
async def verify_totp_code(
    ctx: SessionContext, code: str, *, challenge_id: Optional[str] = None
) -> VerificationResult:
    factor_id = await _verified_totp_factor_id(ctx)
    if factor_id is None:
        raise NoFactorEnrolled()

    try:
        outcome = await verify_factor(TotpFactor(factor_id=factor_id), ctx, code, challenge_id=challenge_id)
    except MfaError as exc:
        await _audit_verify(ctx, "FAILURE", MfaMethod.TOTP, reason=exc.error)
        raise

    await _audit_verify(ctx, "SUCCESS", MfaMethod.TOTP)
    return VerificationResult(
        method=MfaMethod.TOTP,
        redirect_to=route_for_role(ctx.account.role),
        challenge_id=outcome.challenge_id,
    )


# ─────────────────────────────────────────────────────────────
# ✉️ Email
# ─────────────────────────────────────────────────────────────
async def send_email_code(
    ctx: SessionContext,
    *,
    background_tasks: Optional[BackgroundTasks] = None,
    now: Optional[datetime] = None,
) -> CodeDispatch:
    """Issue a code for step-up, or for an email enrollment in progress."""
    if not get_mfa_profile(ctx.account).uses_email and await requires_step_up(ctx, now=now):
        raise NoFactorEnrolled("Email verification is not set up for this account.")
    return await one_time_code_service.send(ctx, background_tasks=background_tasks, now=now)


async def verify_email_code(ctx: SessionContext, code: str, *, now: Optional[datetime] = None) -> VerificationResult:
    if not get_mfa_profile(ctx.account).uses_email:
        raise NoFactorEnrolled("Email verification is not set up for this account.")

    try:
        await verify_factor(EmailFactor(), ctx, code, now=now)
    except MfaError as exc:
        await _audit_verify(ctx, "FAILURE", MfaMethod.EMAIL, reason=exc.error)
        raise

    await _audit_verify(ctx, "SUCCESS", MfaMethod.EMAIL)
    return VerificationResult(method=MfaMethod.EMAIL, redirect_to=route_for_role(ctx.account.role))


__all__ = [
    "MfaStatus",
    "VerificationResult",
    "check_mfa_status",
    "verify_totp_code",
    "send_email_code",
    "verify_email_code",
]
