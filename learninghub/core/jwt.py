# learninghub/core/jwt.py
from __future__ import annotations

"""
Learning Hub — Session token helpers (python-jose)
==================================================
- `encode_session_token` signs a short access token bound to an `auth_sessions` row
- `decode_session_token` verifies signature/exp/iss/aud and required claims
- `get_bearer_token` extracts a Bearer token (case-insensitive)

Notes
-----
- Revocation is row-based: the identity provider rejects tokens whose session
  row is revoked or expired, so no Redis revocation lane is needed here.
- Decoding failures raise `TokenError`; the identity provider maps it to
  `SessionInvalid`.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import uuid4
import logging

from fastapi import Request
from jose import ExpiredSignatureError, JWTError, jwt

from learninghub.core.config import settings

logger = logging.getLogger(__name__)

TOKEN_TYPE = "access"


class TokenError(Exception):
    """Token is missing, malformed, expired or carries the wrong claims."""


# ─────────────────────────────────────────────────────────────
# 🪪 Encode
# ─────────────────────────────────────────────────────────────
def encode_session_token(
    *,
    user_id: str,
    session_id: str,
    expires_at: datetime,
    now: Optional[datetime] = None,
) -> str:
    """Create a signed access token for `(user_id, session_id)`."""
    now = now or datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "session_id": str(session_id),
        "exp": expires_at,
        "iat": now,
        "nbf": now,
        "jti": str(uuid4()),
        "token_type": TOKEN_TYPE,
    }
    if settings.JWT_ISSUER:
        payload["iss"] = settings.JWT_ISSUER
    if settings.JWT_AUDIENCE:
        payload["aud"] = settings.JWT_AUDIENCE
    return jwt.encode(payload, settings.JWT_SECRET_KEY.get_secret_value(), algorithm=settings.JWT_ALGORITHM)


def session_expiry(now: Optional[datetime] = None) -> datetime:
    return (now or datetime.now(timezone.utc)) + timedelta(hours=settings.SESSION_TTL_HOURS)


# ─────────────────────────────────────────────────────────────
# 🔓 Decode
# ─────────────────────────────────────────────────────────────
def decode_session_token(token: str) -> Dict[str, Any]:
    """Decode and validate an access token.

    Security checks
    ---------------
    1) Verify signature and standard claims (exp/nbf/iat)
    2) Enforce issuer/audience when configured
    3) Require `sub`, `session_id` and `token_type == "access"`
    """
    audience = settings.JWT_AUDIENCE or None
    issuer = settings.JWT_ISSUER or None
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY.get_secret_value(),
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_aud": bool(audience)},
            audience=audience,
            issuer=issuer,
        )
    except ExpiredSignatureError as exc:
        logger.info("Session token expired.")
        raise TokenError("Token has expired.") from exc
    except JWTError as exc:
        logger.warning("JWT decoding failed: %s", exc)
        raise TokenError("Invalid token.") from exc

    if not payload.get("sub") or not payload.get("session_id"):
        raise TokenError("Token missing subject or session.")
    if payload.get("token_type") != TOKEN_TYPE:
        raise TokenError("Invalid token type.")
    return payload


# ─────────────────────────────────────────────────────────────
# 📥 Extract Bearer Token from Authorization Header
# ─────────────────────────────────────────────────────────────
def get_bearer_token(request: Request) -> Optional[str]:
    """Return the Bearer token, or None when absent/malformed."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None
    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        logger.warning("Malformed Authorization header.")
        return None
    return parts[1].strip()


__all__ = [
    "TokenError",
    "encode_session_token",
    "session_expiry",
    "decode_session_token",
    "get_bearer_token",
]
