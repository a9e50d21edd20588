# learninghub/api/v1/routers/auth/mfa.py
"""
MFA API — status, enrollment and TOTP step-up
=============================================

Endpoints
---------
GET  /mfa/status
    Next step for the current session: `elevated`, `no_factor`,
    `awaiting_totp_code`, `awaiting_email_send` or `awaiting_email_code`.
    Re-evaluated from live state on every call.

POST /mfa/totp/enroll
    Start TOTP setup. Returns a **one-time** secret + provisioning URI, or
    `already_enrolled=true` with the role redirect when a verified
    authenticator exists. Abandoned setups are cleaned up first.

POST /mfa/totp/enroll/verify
    Confirm the first code for the new factor; elevates the session.

POST /mfa/totp/verify
    Step-up with an existing authenticator. Echo `challenge_id` from a
    previous failed attempt to reuse its challenge.

POST /mfa/email/enroll
POST /mfa/email/enroll/verify
    Email-code setup (codes are requested via `/mfa/email/send-code`).

Security & DX
-------------
- Route-level **rate limits** bound code guessing.
- **Sensitive cache headers** (`no-store`) for all endpoints.
- Business logic lives in ``learninghub.services.mfa`` (audited).
"""

from fastapi import APIRouter, Depends, Request, Response

from learninghub.core.dependencies import get_session_context
from learninghub.core.limiter import rate_limit
from learninghub.schemas.auth import (
    EmailCodeRequest,
    EmailEnrollResponse,
    MfaStatusResponse,
    TotpEnrollResponse,
    TotpEnrollVerifyRequest,
    TotpVerifyRequest,
    VerifiedResponse,
)
from learninghub.security_headers import set_sensitive_cache
from learninghub.services.mfa import enrollment_service, verification_service
from learninghub.services.mfa.context import SessionContext

router = APIRouter(prefix="/mfa", tags=["MFA"])


# ─────────────────────────────────────────────────────────────
# 🧭 Status
# ─────────────────────────────────────────────────────────────
@router.get("/status", response_model=MfaStatusResponse, summary="Current MFA step for this session")
@rate_limit("60/minute")
async def mfa_status_route(
    request: Request,
    response: Response,
    ctx: SessionContext = Depends(get_session_context),
) -> MfaStatusResponse:
    set_sensitive_cache(response)
    current = await verification_service.check_mfa_status(ctx)
    return MfaStatusResponse(**current.as_dict())


# ─────────────────────────────────────────────────────────────
# 🔐 TOTP enrollment
# ─────────────────────────────────────────────────────────────
@router.post("/totp/enroll", response_model=TotpEnrollResponse, summary="Start authenticator setup")
@rate_limit("5/minute")
async def totp_enroll_route(
    request: Request,
    response: Response,
    ctx: SessionContext = Depends(get_session_context),
) -> TotpEnrollResponse:
    """
    Returns the secret and `qr_code_url` **once**; the client renders the QR
    and must not store either value.
    """
    # ── [Step 0] Cache hardening ─────────────────────────
    set_sensitive_cache(response)

    # ── [Step 1] Delegate to service ─────────────────────
    started = await enrollment_service.start_totp_enrollment(ctx)
    return TotpEnrollResponse(
        already_enrolled=started.already_enrolled,
        factor_id=started.factor_id,
        secret=started.secret,
        qr_code_url=started.uri,
        redirect_to=started.redirect_to,
    )


@router.post("/totp/enroll/verify", response_model=VerifiedResponse, summary="Confirm authenticator setup")
@rate_limit("10/minute")
async def totp_enroll_verify_route(
    request: Request,
    payload: TotpEnrollVerifyRequest,
    response: Response,
    ctx: SessionContext = Depends(get_session_context),
) -> VerifiedResponse:
    set_sensitive_cache(response)
    result = await enrollment_service.complete_totp_enrollment(ctx, payload.factor_id, payload.code)
    return VerifiedResponse(verified=True, redirect_to=result.redirect_to)


# ─────────────────────────────────────────────────────────────
# ✅ TOTP step-up
# ─────────────────────────────────────────────────────────────
@router.post("/totp/verify", response_model=VerifiedResponse, summary="Verify an authenticator code")
@rate_limit("10/minute")
async def totp_verify_route(
    request: Request,
    payload: TotpVerifyRequest,
    response: Response,
    ctx: SessionContext = Depends(get_session_context),
) -> VerifiedResponse:
    """
    Wrong codes return `invalid_code` with the `challenge_id` to reuse; there
    is no lockout beyond the route limit.
    """
    set_sensitive_cache(response)
    result = await verification_service.verify_totp_code(ctx, payload.code, challenge_id=payload.challenge_id)
    return VerifiedResponse(verified=True, redirect_to=result.redirect_to, challenge_id=result.challenge_id)


# ─────────────────────────────────────────────────────────────
# ✉️ Email enrollment
# ─────────────────────────────────────────────────────────────
@router.post("/email/enroll", response_model=EmailEnrollResponse, summary="Start email-code setup")
@rate_limit("10/minute")
async def email_enroll_route(
    request: Request,
    response: Response,
    ctx: SessionContext = Depends(get_session_context),
) -> EmailEnrollResponse:
    set_sensitive_cache(response)
    started = await enrollment_service.start_email_enrollment(ctx)
    return EmailEnrollResponse(email=started.email)


@router.post("/email/enroll/verify", response_model=VerifiedResponse, summary="Confirm email-code setup")
@rate_limit("10/minute")
async def email_enroll_verify_route(
    request: Request,
    payload: EmailCodeRequest,
    response: Response,
    ctx: SessionContext = Depends(get_session_context),
) -> VerifiedResponse:
    set_sensitive_cache(response)
    result = await enrollment_service.complete_email_enrollment(ctx, payload.code)
    return VerifiedResponse(verified=True, redirect_to=result.redirect_to)


__all__ = [
    "router",
    "mfa_status_route",
    "totp_enroll_route",
    "totp_enroll_verify_route",
    "totp_verify_route",
    "email_enroll_route",
    "email_enroll_verify_route",
]
