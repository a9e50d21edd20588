# learninghub/api/v1/routers/auth/password_reset.py
"""
Password change (signed in) — step-up gated
===========================================

POST /password/reset
    Change the caller's password. Accounts with a verified second factor
    must have an **elevated** session; otherwise `403 step_up_required` is
    returned with the current MFA status. Other sessions are signed out.
"""

from fastapi import APIRouter, Depends, Request, Response

from learninghub.core.limiter import rate_limit
from learninghub.dependencies.step_up import require_elevated_session
from learninghub.schemas.auth import MessageResponse, PasswordResetRequest
from learninghub.security_headers import set_sensitive_cache
from learninghub.services.auth.password_reset_service import reset_password
from learninghub.services.mfa.context import SessionContext

router = APIRouter(prefix="/password", tags=["Password"])


@router.post("/reset", response_model=MessageResponse, summary="Change password (requires step-up)")
@rate_limit("5/minute")
async def reset_password_route(
    request: Request,
    payload: PasswordResetRequest,
    response: Response,
    ctx: SessionContext = Depends(require_elevated_session),
) -> MessageResponse:
    set_sensitive_cache(response)
    return MessageResponse(**await reset_password(ctx, payload.new_password))


__all__ = ["router", "reset_password_route"]
