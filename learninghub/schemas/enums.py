from __future__ import annotations

"""
Central enum definitions used across the Learning Hub backend.

Design notes
------------
• All enums subclass `str, PyEnum` for JSON-friendly serialization.
• VALUE STRINGS are **stable** once deployed (rows and clients depend on them).
• Grouped by domain; keep `__all__` in sync when adding new enums.
"""

from enum import Enum as PyEnum


# ──────────────────────────────────────────────────────────────
# Accounts / Organizations
# ──────────────────────────────────────────────────────────────
class UserRole(str, PyEnum):
    """Closed role set; each role has exactly one home route."""
    PLATFORM_OWNER = "platform_owner"
    ORG_ADMIN = "org_admin"
    WORKFORCE_USER = "workforce_user"


class MfaMethod(str, PyEnum):
    """Preferred second factor recorded on the profile."""
    TOTP = "totp"
    EMAIL = "email"


# ──────────────────────────────────────────────────────────────
# Identity provider
# ──────────────────────────────────────────────────────────────
class FactorType(str, PyEnum):
    TOTP = "totp"


class FactorStatus(str, PyEnum):
    """An unverified factor never satisfies step-up."""
    UNVERIFIED = "unverified"
    VERIFIED = "verified"


class AssuranceLevel(str, PyEnum):
    """Provider-side session level (`aal2` once a factor verified in-session)."""
    AAL1 = "aal1"
    AAL2 = "aal2"


# ──────────────────────────────────────────────────────────────
# MFA core
# ──────────────────────────────────────────────────────────────
class VerificationStatus(str, PyEnum):
    """Current session verification level as seen by the app."""
    BASE = "base"
    ELEVATED = "elevated"


class MfaFlowState(str, PyEnum):
    """Verification orchestrator states."""
    CHECKING_STATUS = "checking_status"
    ELEVATED = "elevated"
    NO_FACTOR = "no_factor"
    AWAITING_TOTP_CODE = "awaiting_totp_code"
    AWAITING_EMAIL_SEND = "awaiting_email_send"
    AWAITING_EMAIL_CODE = "awaiting_email_code"


__all__ = [
    "UserRole",
    "MfaMethod",
    "FactorType",
    "FactorStatus",
    "AssuranceLevel",
    "VerificationStatus",
    "MfaFlowState",
]
