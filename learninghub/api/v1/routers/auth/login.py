# learninghub/api/v1/routers/auth/login.py
from __future__ import annotations

"""
Authentication API — Learning Hub
=================================

Endpoints
---------
POST /auth/login
    Email + password sign-in. Always returns a **base** session token plus
    the MFA status of that session (enroll / challenge / already elevated).

POST /auth/logout
    Revoke the current session.

Security & DX
-------------
- **Route rate limits** complement the Redis throttles inside the service.
- **Sensitive cache headers** (`no-store`) on every response.
- Neutral credential errors; audit handled by the service layer.
"""

from fastapi import APIRouter, Body, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from learninghub.core.dependencies import get_identity_provider, get_session_context
from learninghub.core.limiter import rate_limit
from learninghub.db.session import get_async_db
from learninghub.schemas.auth import LoginRequest, MessageResponse, TokenResponse
from learninghub.security_headers import set_sensitive_cache
from learninghub.services.auth.login_service import login_user
from learninghub.services.auth.logout_service import logout_user
from learninghub.services.identity import IdentityProvider
from learninghub.services.mfa.context import SessionContext

router = APIRouter(tags=["Authentication"])


# ──────────────────────────────────────────────────────────────
# 🔐 POST /auth/login — Email + Password (MFA-aware)
# ──────────────────────────────────────────────────────────────
@router.post("/login", response_model=TokenResponse, summary="Email + password login")
@rate_limit("5/minute")
async def login(
    request: Request,
    response: Response,
    payload: LoginRequest = Body(...),
    db: AsyncSession = Depends(get_async_db),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> TokenResponse:
    """Authenticate with email/password.

    The returned `mfa.state` tells the client where to go next:
    `no_factor` → enrollment selection, `awaiting_*` → challenge screen,
    `elevated` → `mfa.redirect_to`.
    """
    # [Step 0] Cache hardening
    set_sensitive_cache(response)

    # [Step 1] Delegate to login service (throttles, audit, MFA status)
    return await login_user(payload=payload, db=db, provider=provider, request=request)


# ──────────────────────────────────────────────────────────────
# 🚪 POST /auth/logout — revoke the current session
# ──────────────────────────────────────────────────────────────
@router.post("/logout", response_model=MessageResponse, summary="Sign out of this session")
@rate_limit("20/minute")
async def logout(
    request: Request,
    response: Response,
    ctx: SessionContext = Depends(get_session_context),
) -> MessageResponse:
    set_sensitive_cache(response)
    return MessageResponse(**await logout_user(ctx))


__all__ = ["router", "login", "logout"]
