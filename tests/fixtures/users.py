from __future__ import annotations

"""
👤 Account & session fixtures
- `create_user`: persisted account (role, MFA profile, optional organization)
- `provider`: the SQL identity provider bound to the test session
- `sign_in`: password sign-in → (bearer token, SessionContext)
- `enroll_totp`: full TOTP enrollment for a context → pyotp.TOTP
"""

from typing import Awaitable, Callable, Optional, Tuple
from uuid import uuid4

import pyotp
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from learninghub.core.security import get_password_hash
from learninghub.db.models.organization import Organization
from learninghub.db.models.user import User
from learninghub.schemas.enums import MfaMethod, UserRole
from learninghub.services.identity import SqlIdentityProvider
from learninghub.services.mfa import enrollment_service
from learninghub.services.mfa.context import SessionContext

DEFAULT_PASSWORD = "correct-horse-battery"


@pytest.fixture
def create_user(db_session: AsyncSession) -> Callable[..., Awaitable[User]]:
    """Create an active account; pass `mfa_method=MfaMethod.EMAIL` for email MFA."""
    async def _create(
        *,
        email: Optional[str] = None,
        password: str = DEFAULT_PASSWORD,
        role: UserRole = UserRole.WORKFORCE_USER,
        mfa_method: Optional[MfaMethod] = None,
        is_active: bool = True,
        with_org: bool = True,
    ) -> User:
        org = None
        if with_org:
            org = Organization(name="Riverside Clinic")
            db_session.add(org)
            await db_session.flush()

        user = User(
            email=(email or f"user_{uuid4().hex[:8]}@example.com").lower(),
            full_name="Test User",
            hashed_password=get_password_hash(password),
            role=role,
            organization_id=org.id if org else None,
            mfa_method=mfa_method,
            mfa_enabled=mfa_method is not None,
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _create


@pytest.fixture
def provider(db_session: AsyncSession) -> SqlIdentityProvider:
    return SqlIdentityProvider(db_session)


@pytest.fixture
def sign_in(db_session: AsyncSession, provider: SqlIdentityProvider) -> Callable[..., Awaitable[Tuple[str, SessionContext]]]:
    """Open a base session for `user`; returns `(token, ctx)`."""
    async def _sign_in(user: User, password: str = DEFAULT_PASSWORD) -> Tuple[str, SessionContext]:
        token, session = await provider.sign_in_with_password(user.email, password)
        ctx = SessionContext(account=user, session=session, provider=provider, db=db_session)
        return token, ctx

    return _sign_in


@pytest.fixture
def enroll_totp() -> Callable[[SessionContext], Awaitable[pyotp.TOTP]]:
    """Enroll + verify a TOTP factor for `ctx` (the session ends elevated)."""
    async def _enroll(ctx: SessionContext) -> pyotp.TOTP:
        start = await enrollment_service.start_totp_enrollment(ctx)
        totp = pyotp.TOTP(start.secret)
        await enrollment_service.complete_totp_enrollment(ctx, start.factor_id, totp.now())
        return totp

    return _enroll


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


__all__ = ["DEFAULT_PASSWORD", "create_user", "provider", "sign_in", "enroll_totp", "bearer"]
