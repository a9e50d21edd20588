# learninghub/core/dependencies.py
from __future__ import annotations

"""
Request dependencies — Learning Hub
===================================

Resolve the bearer session of the caller into a `SessionContext` that every
MFA route hands to the orchestrators.

Highlights
----------
- Delegates **Bearer parsing** to `learninghub.core.jwt.get_bearer_token` and
  session validation to the identity provider (revoked/expired → 401).
- Routes never accept an account id: the context is always the caller's own.
- Sets `request.state.user_id` for logging/audit correlation.
"""

from typing import Optional
import logging

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from learninghub.core.exceptions import EnrollmentUnavailable, Unauthenticated
from learninghub.core.jwt import get_bearer_token
from learninghub.db.models.user import User
from learninghub.db.session import get_async_db
from learninghub.services.identity import (
    IdentityProvider,
    ProviderUnavailable,
    SessionInvalid,
    SqlIdentityProvider,
)
from learninghub.services.mfa.context import SessionContext

logger = logging.getLogger(__name__)

__all__ = [
    "get_identity_provider",
    "get_session_context",
]


# ──────────────────────────────────────────────────────────────
# 🧩 Provider
# ──────────────────────────────────────────────────────────────
def get_identity_provider(db: AsyncSession = Depends(get_async_db)) -> IdentityProvider:
    """Per-request identity provider bound to the request's DB session."""
    return SqlIdentityProvider(db)


# ──────────────────────────────────────────────────────────────
# 👤 Dependency: get_session_context
# ──────────────────────────────────────────────────────────────
async def get_session_context(
    request: Request,
    db: AsyncSession = Depends(get_async_db),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> SessionContext:
    """Authenticate the bearer session and load the caller's account.

    Steps
    -----
    1) Extract the bearer token.
    2) Resolve the live provider session.
    3) Load the active account it belongs to.

    Raises
    ------
    Unauthenticated
        Missing/invalid token, revoked or expired session, inactive account.
    EnrollmentUnavailable
        Identity store unreachable.
    """
    # ── [Step 1] Token ──────────────────────────────────────────────────────
    token: Optional[str] = get_bearer_token(request)
    if not token:
        raise Unauthenticated()

    # ── [Step 2] Session ────────────────────────────────────────────────────
    try:
        session = await provider.get_session(token)
    except SessionInvalid:
        raise Unauthenticated("Session expired. Please sign in again.")
    except ProviderUnavailable as exc:
        raise EnrollmentUnavailable() from exc

    # ── [Step 3] Account ────────────────────────────────────────────────────
    try:
        account = (await db.execute(select(User).where(User.id == session.user_id))).scalar_one_or_none()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Account lookup failed")
        raise EnrollmentUnavailable() from exc
    if account is None or not account.is_active:
        raise Unauthenticated()

    request.state.user_id = str(account.id)
    return SessionContext(account=account, session=session, provider=provider, db=db, request=request)
