from __future__ import annotations

"""
Login service — email + password, MFA-aware
===========================================

Flow
----
1) Throttle per email (hashed) and per IP (Redis; fail-open).
2) Password sign-in through the identity provider → `aal1` session + token.
3) Evaluate the MFA status for the new session so the client knows whether
   to enroll, challenge, or go straight to its role home.

Security properties
-------------------
- **Neutral errors**: unknown email, wrong password and inactive account all
  produce the same 401.
- The session is `base` until a factor challenge succeeds; protected
  mutations check assurance server-side, never a client flag.
- Raw emails never reach audit metadata (SHA-256 only).
"""

from hashlib import sha256

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from learninghub.core.exceptions import EnrollmentUnavailable, Unauthenticated
from learninghub.db.models.user import User
from learninghub.schemas.auth import LoginRequest, MfaStatusResponse, TokenResponse
from learninghub.services.audit_log_service import AuditEvent, client_ip, log_audit_event
from learninghub.services.identity import IdentityProvider, InvalidCredentials, ProviderUnavailable
from learninghub.services.mfa.context import SessionContext
from learninghub.services.mfa.verification_service import check_mfa_status
from learninghub.utils import redis_utils


def _norm_email(email: str) -> str:
    return (email or "").strip().lower()


async def login_user(
    payload: LoginRequest,
    db: AsyncSession,
    provider: IdentityProvider,
    request: Request,
) -> TokenResponse:
    """Authenticate and open a base session; returns the token plus MFA status."""
    email_norm = _norm_email(payload.email)
    email_digest = sha256(email_norm.encode()).hexdigest()
    ip = client_ip(request) or "-"

    # ── [Step 1] Throttle attempts per email & per IP ───────────────────────
    await redis_utils.enforce_rate_limit(
        key_suffix=f"login:email:{email_digest}",
        seconds=60,
        max_calls=5,
        error_message="Too many attempts. Please try again shortly.",
    )
    await redis_utils.enforce_rate_limit(
        key_suffix=f"login:ip:{ip}",
        seconds=60,
        max_calls=20,
        error_message="Too many attempts. Please try again shortly.",
    )

    # ── [Step 2] Primary credential ─────────────────────────────────────────
    try:
        token, session = await provider.sign_in_with_password(
            email_norm,
            payload.password,
            ip_address=ip,
            user_agent=request.headers.get("user-agent"),
        )
    except InvalidCredentials:
        await log_audit_event(
            db,
            action=AuditEvent.LOGIN,
            status="FAILURE",
            request=request,
            meta_data={"reason": "invalid_credentials", "email_sha256": email_digest},
        )
        raise Unauthenticated("Invalid email or password.")
    except ProviderUnavailable as exc:
        raise EnrollmentUnavailable("Sign-in is temporarily unavailable. Please try again.") from exc

    account = (await db.execute(select(User).where(User.id == session.user_id))).scalar_one()
    request.state.user_id = str(account.id)

    # ── [Step 3] Next MFA step for this session ─────────────────────────────
    ctx = SessionContext(account=account, session=session, provider=provider, db=db, request=request)
    status_ = await check_mfa_status(ctx)

    await log_audit_event(
        db,
        user=account,
        action=AuditEvent.LOGIN,
        status="SUCCESS",
        request=request,
        meta_data={"session_id": str(session.session_id), "mfa_state": status_.state.value},
    )
    return TokenResponse(
        access_token=token,
        expires_at=session.expires_at,
        mfa=MfaStatusResponse(**status_.as_dict()),
    )


__all__ = ["login_user"]
