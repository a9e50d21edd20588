# learninghub/core/security.py
from __future__ import annotations

"""
Learning Hub — Security Helpers
===============================
- Password hashing (passlib bcrypt)
- TOTP construction (pyotp) shared by enrollment and verification
- CSPRNG numeric one-time codes + peppered HMAC digests for storage

Token creation/decoding lives in `learninghub.core.jwt`.
"""

import hashlib
import hmac
import secrets

import pyotp
from passlib.context import CryptContext

from learninghub.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# ───────────────────────────────────────────────
# 🔐 Password Hashing Utilities
# ───────────────────────────────────────────────
def get_password_hash(password: str) -> str:
    """Return a salted hash using Passlib's bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Constant-time verify of a plaintext password against a stored hash."""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


# ───────────────────────────────────────────────
# 🔢 TOTP Helpers
# ───────────────────────────────────────────────
TOTP_STEP_SECONDS = int(settings.TOTP_STEP_SECONDS)
TOTP_DIGITS = int(settings.MFA_CODE_LENGTH)


def generate_totp(secret: str) -> pyotp.TOTP:
    """Return a TOTP object for the shared secret (30s step, 6 digits by default)."""
    return pyotp.TOTP(secret, interval=TOTP_STEP_SECONDS, digits=TOTP_DIGITS)


def generate_totp_secret() -> str:
    return pyotp.random_base32()


def normalize_code(code: object) -> str:
    """Strip whitespace/dashes a user may paste; never validates."""
    return "".join(ch for ch in str(code or "") if not ch.isspace() and ch != "-")


# ───────────────────────────────────────────────
# ✉️ One-time code helpers
# ───────────────────────────────────────────────
def generate_otp(length: int = 6) -> str:
    """Generate a CSPRNG numeric OTP of given length (keeps leading zeros)."""
    if length <= 0:
        raise ValueError("OTP length must be positive")
    digits = "0123456789"
    return "".join(secrets.choice(digits) for _ in range(length))


def hash_otp(otp: str, *, user_id: str, purpose: str) -> str:
    """Return hex HMAC-SHA256 of the OTP bound to (user_id, purpose).

    The JWT secret doubles as pepper, so a leaked table alone cannot be
    brute-forced offline.
    """
    if not otp or not user_id or not purpose:
        raise ValueError("otp, user_id and purpose are required")
    key = settings.JWT_SECRET_KEY.get_secret_value().encode("utf-8")
    msg = f"{purpose}:{user_id}:{otp}".encode("utf-8")
    return hmac.new(key, msg, hashlib.sha256).hexdigest()


def digests_match(left: str, right: str) -> bool:
    return hmac.compare_digest(str(left or ""), str(right or ""))


__all__ = [
    "pwd_context",
    "get_password_hash",
    "verify_password",
    "generate_totp",
    "generate_totp_secret",
    "normalize_code",
    "generate_otp",
    "hash_otp",
    "digests_match",
]
