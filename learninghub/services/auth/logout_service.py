from __future__ import annotations

"""
Logout service
==============

Revokes the caller's current session. Idempotent from the client's point of
view: a provider hiccup is audited and logged, and the client still gets the
generic success message (the token expires on its own).
"""

import logging

from learninghub.services.audit_log_service import AuditEvent, log_audit_event
from learninghub.services.identity import IdentityProviderError
from learninghub.services.mfa.context import SessionContext

logger = logging.getLogger(__name__)


def _ok() -> dict:
    return {"message": "Logged out successfully"}


async def logout_user(ctx: SessionContext) -> dict:
    """Revoke the current session (`scope="local"`)."""
    try:
        await ctx.provider.sign_out(ctx.session, scope="local")
    except IdentityProviderError as exc:
        logger.warning("Sign-out failed user=%s (%s)", ctx.user_id, type(exc).__name__)
        await log_audit_event(
            ctx.db,
            user=ctx.account,
            action=AuditEvent.LOGOUT,
            status="FAILURE",
            request=ctx.request,
            meta_data={"reason": type(exc).__name__},
        )
        return _ok()

    await log_audit_event(
        ctx.db,
        user=ctx.account,
        action=AuditEvent.LOGOUT,
        status="SUCCESS",
        request=ctx.request,
        meta_data={"session_id": str(ctx.session_id)},
    )
    return _ok()


__all__ = ["logout_user"]
