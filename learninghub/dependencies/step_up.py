# learninghub/dependencies/step_up.py
"""
Step-Up Dependency
==================

Purpose
-------
Gate sensitive routes on an **elevated** session: when the account has any
verified second factor, the caller must have completed a factor challenge in
this session (provider `aal2`, or a live email MFA session marker).

How to use in your routers
--------------------------
    from fastapi import Depends
    from learninghub.dependencies.step_up import require_elevated_session

    @router.post("/account/something-sensitive")
    async def handler(ctx: SessionContext = Depends(require_elevated_session)):
        ...

Refusals are `StepUpRequired` (403) carrying the current MFA status, so the
client can open the matching challenge screen without another round trip.
"""

from __future__ import annotations

from fastapi import Depends

from learninghub.core.dependencies import get_session_context
from learninghub.core.exceptions import StepUpRequired
from learninghub.services.audit_log_service import AuditEvent, log_audit_event
from learninghub.services.mfa.assurance_service import requires_step_up
from learninghub.services.mfa.context import SessionContext
from learninghub.services.mfa.verification_service import check_mfa_status


async def require_elevated_session(ctx: SessionContext = Depends(get_session_context)) -> SessionContext:
    """Return the context unchanged, or refuse with a step-up prompt."""
    if not await requires_step_up(ctx):
        return ctx

    current = await check_mfa_status(ctx)
    await log_audit_event(
        ctx.db,
        user=ctx.account,
        action=AuditEvent.MFA_STEP_UP_REFUSED,
        status="FAILURE",
        request=ctx.request,
        meta_data={"path": ctx.request.url.path if ctx.request else None, "state": current.state.value},
    )
    raise StepUpRequired(status_hint=current.as_dict())


__all__ = ["require_elevated_session"]
