# learninghub/db/models/__init__.py
"""
Learning Hub — ORM models
=========================

Importing this package registers every table on `Base.metadata`
(relationships resolve by class name at mapper configuration time).
"""

from learninghub.db.base_class import Base

# ───────────────────────────────────────────────────────────────
# Tenancy & accounts
# ───────────────────────────────────────────────────────────────
from .organization import Organization
from .user import User
from .auth_session import AuthSession

# ───────────────────────────────────────────────────────────────
# MFA
# ───────────────────────────────────────────────────────────────
from .mfa_factor import MfaChallenge, MfaFactor
from .one_time_code import MfaEmailSession, OneTimeCode

# ───────────────────────────────────────────────────────────────
# Compliance
# ───────────────────────────────────────────────────────────────
from .audit_log import AuditLog

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
