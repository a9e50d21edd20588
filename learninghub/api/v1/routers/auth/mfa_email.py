# learninghub/api/v1/routers/auth/mfa_email.py
"""
Email MFA API — send / verify / session
=======================================

Endpoints
---------
POST /mfa/email/send-code
    Mail a fresh code to the caller's address. Fails `rate_limited` with
    `retry_after` while the resend window is open; the previous code stays
    valid in that case.

POST /mfa/email/verify-code
    Verify the live code. On success this session is elevated and the
    email MFA session marker is written.

GET  /mfa/email/session
    Whether this session already carries a live email MFA marker.

All three act on the caller's own account only; no account id is accepted.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response

from learninghub.core.dependencies import get_session_context
from learninghub.core.limiter import rate_limit
from learninghub.schemas.auth import EmailCodeRequest, EmailSessionResponse, SendCodeResponse, VerifiedResponse
from learninghub.security_headers import set_sensitive_cache
from learninghub.services.mfa import one_time_code_service, verification_service
from learninghub.services.mfa.context import SessionContext

router = APIRouter(prefix="/mfa/email", tags=["MFA"])


@router.post("/send-code", response_model=SendCodeResponse, summary="Email a verification code")
@rate_limit("5/minute")
async def send_code_route(
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    ctx: SessionContext = Depends(get_session_context),
) -> SendCodeResponse:
    # ── [Step 0] Cache hardening ─────────────────────────
    set_sensitive_cache(response)

    # ── [Step 1] Issue + dispatch (email goes out after the response) ───
    dispatch = await verification_service.send_email_code(ctx, background_tasks=background_tasks)
    return SendCodeResponse(expires_in=dispatch.expires_in, resend_available_in=dispatch.resend_available_in)


@router.post("/verify-code", response_model=VerifiedResponse, summary="Verify an emailed code")
@rate_limit("10/minute")
async def verify_code_route(
    request: Request,
    payload: EmailCodeRequest,
    response: Response,
    ctx: SessionContext = Depends(get_session_context),
) -> VerifiedResponse:
    set_sensitive_cache(response)
    result = await verification_service.verify_email_code(ctx, payload.code)
    return VerifiedResponse(verified=True, redirect_to=result.redirect_to)


@router.get("/session", response_model=EmailSessionResponse, summary="Email MFA session status")
@rate_limit("60/minute")
async def email_session_route(
    request: Request,
    response: Response,
    ctx: SessionContext = Depends(get_session_context),
) -> EmailSessionResponse:
    set_sensitive_cache(response)
    marker = await one_time_code_service.check_session(ctx)
    return EmailSessionResponse(verified=marker.verified, expires_at=marker.expires_at)


__all__ = ["router", "send_code_route", "verify_code_route", "email_session_route"]
