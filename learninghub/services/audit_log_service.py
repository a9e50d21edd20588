# learninghub/services/audit_log_service.py
from __future__ import annotations

"""
Learning Hub — Audit Log Service (async)
========================================

Purpose
-------
Persist structured audit trails for sign-in, MFA enrollment/verification and
password changes, with request metadata for compliance reviews.

Design notes
------------
- **Proxy-aware IP** extraction (`X-Forwarded-For`, `X-Real-IP`).
- Correlates with `request.state.request_id` (see RequestID middleware).
- Strict, JSON-serializable `meta_data` with secret-key scrubbing; codes,
  secrets and provisioning URIs are dropped even if a caller passes them.
- **Best-effort** writes: failures are logged and swallowed so business flows
  are never blocked by auditing.

Usage
-----
    await log_audit_event(
        db,
        user=account,
        action=AuditEvent.MFA_VERIFY,
        status="SUCCESS",
        request=request,
        meta_data={"method": "totp"},
    )
"""

from enum import Enum
import json
import logging
from typing import Any, Dict, Optional, Union
from uuid import UUID

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from learninghub.db.models.audit_log import AuditLog
from learninghub.db.models.user import User

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# 📋 Enum: Audit Event Types
# ─────────────────────────────────────────────────────────────
class AuditEvent(str, Enum):
    # 🎯 Auth
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    RESET_PASSWORD = "RESET_PASSWORD"

    # 🔐 MFA
    MFA_ENROLL_START = "MFA_ENROLL_START"
    MFA_ENROLL_COMPLETE = "MFA_ENROLL_COMPLETE"
    MFA_VERIFY = "MFA_VERIFY"
    MFA_EMAIL_CODE_SENT = "MFA_EMAIL_CODE_SENT"
    MFA_STEP_UP_REFUSED = "MFA_STEP_UP_REFUSED"


# ─────────────────────────────────────────────────────────────
# 🔎 Helpers: request metadata & meta scrubbing
# ─────────────────────────────────────────────────────────────
_SENSITIVE_KEYS = {
    "authorization",
    "token",
    "access_token",
    "password",
    "new_password",
    "secret",
    "code",
    "otp",
    "qr_code_url",
    "uri",
    "cookie",
}


def client_ip(request: Optional[Request]) -> Optional[str]:
    if not request:
        return None
    hdrs = request.headers
    xff = hdrs.get("x-forwarded-for")
    if xff:
        ip = xff.split(",")[0].strip()
        if ip:
            return ip
    xri = hdrs.get("x-real-ip")
    if xri:
        return xri.strip()
    return request.client.host if request.client else None


def _scrub(obj: Any) -> Any:
    """Recursively remove secret keys from dicts/lists."""
    if isinstance(obj, dict):
        return {k: _scrub(v) for k, v in obj.items() if str(k).lower() not in _SENSITIVE_KEYS}
    if isinstance(obj, list):
        return [_scrub(v) for v in obj]
    return obj


def _safe_metadata(meta_data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if meta_data is None:
        return {}
    if not isinstance(meta_data, dict):
        meta_data = {"raw": str(meta_data)}
    meta_data = _scrub(meta_data)
    try:
        json.dumps(meta_data)
        return meta_data
    except (TypeError, ValueError):
        return {"raw": "non-serializable metadata"}


def _request_snapshot(request: Optional[Request]) -> Dict[str, Any]:
    if not request:
        return {}
    return {
        "method": request.method,
        "path": request.url.path,
    }


# ─────────────────────────────────────────────────────────────
# 🧠 Audit Writer (best-effort, never raises)
# ─────────────────────────────────────────────────────────────
async def log_audit_event(
    db: AsyncSession,
    *,
    user: Optional[User] = None,
    action: Union[str, AuditEvent],
    status: str,
    request: Optional[Request] = None,
    meta_data: Optional[Dict[str, Any]] = None,
    override_user_id: Optional[UUID] = None,
    commit: bool = True,
) -> None:
    """Persist an audit log row for the given action.

    Any exception is **caught and logged**; the function returns without
    raising so callers never need try/except.
    """
    try:
        clean_meta = _safe_metadata(meta_data)
        for k, v in _request_snapshot(request).items():
            clean_meta.setdefault(k, v)

        entry = AuditLog(
            user_id=override_user_id or getattr(user, "id", None),
            action=getattr(action, "value", action),
            status=str(status or "").upper(),
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent") if request else None,
            request_id=getattr(request.state, "request_id", None) if request else None,
            metadata_json=clean_meta or None,
        )
        db.add(entry)
        await db.flush()
        if commit:
            await db.commit()
    except Exception as e:  # pragma: no cover — best-effort path
        try:
            await db.rollback()
        except Exception:
            pass
        logger.exception("[AUDIT] Failed to write audit log: %s", e)


__all__ = ["AuditEvent", "log_audit_event", "client_ip"]
