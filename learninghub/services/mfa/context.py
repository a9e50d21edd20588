# learninghub/services/mfa/context.py
from __future__ import annotations

"""
Per-request MFA context.

Every orchestrator call receives a `SessionContext` instead of reading the
current session from a global; tests build one directly against an in-memory
database and an `SqlIdentityProvider`.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from learninghub.db.models.user import User
from learninghub.services.identity import IdentityProvider, ProviderSession


@dataclass
class SessionContext:
    account: User
    session: ProviderSession
    provider: IdentityProvider
    db: AsyncSession
    request: Optional[Request] = None

    @property
    def user_id(self):
        return self.account.id

    @property
    def session_id(self):
        return self.session.session_id


__all__ = ["SessionContext"]
