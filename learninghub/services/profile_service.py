# learninghub/services/profile_service.py
from __future__ import annotations

"""
Profile store adapter
=====================

Reads the MFA preference and destination email of an account, writes back the
method that completed enrollment, and maps roles to their home routes.

`mfa_method` is only a preference: it picks which verification screen the
user sees. Whether a session is elevated is decided by the assurance
evaluator, never by this row.
"""

from dataclasses import dataclass
from typing import Optional, Union
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from learninghub.core.config import settings
from learninghub.db.models.user import User
from learninghub.schemas.enums import MfaMethod, UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MfaProfile:
    method: Optional[MfaMethod]
    enabled: bool
    email: str
    role: UserRole

    @property
    def uses_email(self) -> bool:
        return self.method == MfaMethod.EMAIL and self.enabled


def get_mfa_profile(account: User) -> MfaProfile:
    method = MfaMethod(account.mfa_method) if account.mfa_method else None
    return MfaProfile(
        method=method,
        enabled=bool(account.mfa_enabled),
        email=account.email,
        role=UserRole(account.role),
    )


async def record_mfa_method(db: AsyncSession, account: User, method: MfaMethod) -> None:
    """Persist the completed method and flip `mfa_enabled`."""
    account.mfa_method = method
    account.mfa_enabled = True
    await db.commit()
    logger.info("MFA method recorded user=%s method=%s", account.id, method.value)


def route_for_role(role: Union[UserRole, str, None]) -> str:
    """Home route for a role; unknown roles land on the default dashboard."""
    key = getattr(role, "value", role)
    return settings.ROLE_HOME_ROUTES.get(str(key), settings.DEFAULT_HOME_ROUTE) if key else settings.DEFAULT_HOME_ROUTE


__all__ = ["MfaProfile", "get_mfa_profile", "record_mfa_method", "route_for_role"]
