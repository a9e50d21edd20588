# learninghub/services/auth/password_reset_service.py
from __future__ import annotations

"""
Password reset (signed-in) — step-up gated
==========================================

A password change is a sensitive mutation: when the account has any verified
second factor, the session must be elevated first. A `base` session is
refused with `StepUpRequired`, carrying the current MFA status so the client
can open the right challenge screen.

On success the password is updated through the identity provider and every
other session of the account is signed out; the current one stays open.
"""

from typing import Final
import logging

from fastapi import status

from learninghub.core.exceptions import AppException, EnrollmentUnavailable, StepUpRequired
from learninghub.services.audit_log_service import AuditEvent, log_audit_event
from learninghub.services.identity import IdentityProviderError
from learninghub.services.mfa.assurance_service import requires_step_up
from learninghub.services.mfa.context import SessionContext
from learninghub.services.mfa.verification_service import check_mfa_status

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH: Final[int] = 6


async def reset_password(ctx: SessionContext, new_password: str) -> dict:
    """
    Change the caller's password.

    Steps
    -----
    1) Validate length.
    2) Refuse at `base` assurance when a verified factor exists.
    3) Update through the provider, revoke the other sessions, audit.
    """
    # ── [Step 1] Validate ───────────────────────────────────────────────────
    if len(new_password or "") < MIN_PASSWORD_LENGTH:
        raise AppException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            message=f"Password must be at least {MIN_PASSWORD_LENGTH} characters.",
        )

    # ── [Step 2] Step-up gate ───────────────────────────────────────────────
    if await requires_step_up(ctx):
        current = await check_mfa_status(ctx)
        await log_audit_event(
            ctx.db,
            user=ctx.account,
            action=AuditEvent.MFA_STEP_UP_REFUSED,
            status="FAILURE",
            request=ctx.request,
            meta_data={"operation": "reset_password", "state": current.state.value},
        )
        raise StepUpRequired(status_hint=current.as_dict())

    # ── [Step 3] Mutate ─────────────────────────────────────────────────────
    try:
        await ctx.provider.update_password(ctx.user_id, new_password)
        await ctx.provider.sign_out(ctx.session, scope="others")
    except IdentityProviderError as exc:
        logger.warning("Password update failed user=%s (%s)", ctx.user_id, type(exc).__name__)
        raise EnrollmentUnavailable("Could not update the password. Please try again.") from exc

    await log_audit_event(
        ctx.db,
        user=ctx.account,
        action=AuditEvent.RESET_PASSWORD,
        status="SUCCESS",
        request=ctx.request,
    )
    logger.info("Password changed user=%s", ctx.user_id)
    return {"message": "Password updated successfully."}


__all__ = ["reset_password", "MIN_PASSWORD_LENGTH"]
