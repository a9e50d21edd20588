# learninghub/db/base.py
"""
Learning Hub — SQLAlchemy Base registry
=======================================

Import all ORM models so their tables are registered on `Base.metadata`.
Used by Alembic autogeneration and by tests that `create_all`.

Tip: Keep this file import-only; no runtime logic.
"""

from learninghub.db.base_class import Base
from learninghub.db.models import (  # noqa: F401
    AuditLog,
    AuthSession,
    MfaChallenge,
    MfaEmailSession,
    MfaFactor,
    OneTimeCode,
    Organization,
    User,
)

__all__ = [
    "Base",
    "Organization",
    "User",
    "AuthSession",
    "MfaFactor",
    "MfaChallenge",
    "OneTimeCode",
    "MfaEmailSession",
    "AuditLog",
]
