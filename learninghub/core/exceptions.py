# learninghub/core/exceptions.py
from __future__ import annotations

"""
Learning Hub — Application Exceptions
=====================================
A small, consistent layer on top of FastAPI/Starlette's `HTTPException` that
lets us attach structured metadata and integrate cleanly with the JSON error
shape from `learninghub.core.exception_handlers`.

Key ideas
---------
- One base `AppException` that carries `code`, `request_id`, `user_id`, `details`, `extra`.
- The MFA family (`MfaError`) adds a stable machine-readable `error` string
  that clients branch on (`invalid_code`, `rate_limited`, ...).
- Messages never contain code values, secrets or provider internals.

Usage
-----
    raise ResendTooSoon(retry_after=42)
    raise InvalidCode(challenge_id=str(challenge.id))
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


# ──────────────────────────────────────────────────────────────
# 📦 Core: AppException
# ──────────────────────────────────────────────────────────────
class AppException(HTTPException):
    """Base application-level exception with optional metadata.

    Attributes
    -----------
    status_code : int
        HTTP status code (e.g., 400/401/403/404/409/422/500).
    message : str
        Human-readable error message (serialized as `detail` as well).
    code : int
        Optional internal/typed error code. Defaults to `status_code`.
    request_id : str | None
        Optional request correlation id.
    user_id : str | None
        User id for auditing/context.
    details : dict | list | str | None
        Machine-readable details.
    extra : dict | None
        Additional non-sensitive metadata to surface to clients.
    headers : dict | None
        Optional headers (e.g., `{"Retry-After": "30"}`).
    """

    def __init__(
        self,
        *,
        status_code: int,
        message: str,
        code: Optional[int] = None,
        request_id: Optional[str] = None,
        user_id: Optional[str] = None,
        details: Optional[Any] = None,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.code: int = int(code or status_code)
        self.message: str = message
        self.request_id: Optional[str] = request_id
        self.user_id: Optional[str] = user_id
        self.details: Optional[Any] = details
        self.extra: Dict[str, Any] = extra or {}

    # ── [Helper] Canonical body used by handlers ───────────────────────────
    def to_problem(self, *, fallback_request_id: Optional[str] = None) -> Dict[str, Any]:
        """Return a dict matching our problem-like JSON shape."""
        body: Dict[str, Any] = {
            "error": True,
            "message": self.message,
            "code": self.code,
            "request_id": self.request_id or fallback_request_id or "N/A",
        }
        if self.details is not None:
            body["details"] = self.details
        body.update(_sanitize(self.extra))
        return body


def _sanitize(extra: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    cleaned = dict(extra) if extra else {}
    for k in ("token", "authorization", "password", "secret", "code"):
        cleaned.pop(k, None)
    return cleaned


# ──────────────────────────────────────────────────────────────
# 🔐 MFA error family
# ──────────────────────────────────────────────────────────────
class MfaError(AppException):
    """Base of every failure the MFA core surfaces to callers.

    Subclasses pin `status_code`, the `error` slug and a default message;
    `extra` carries optional client hints (`retry_after`, `challenge_id`,
    `status`).
    """

    status_code_default: int = status.HTTP_400_BAD_REQUEST
    error: str = "mfa_error"
    default_message: str = "Verification failed."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        user_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            status_code=self.status_code_default,
            message=message or self.default_message,
            extra=extra,
            headers=headers,
            user_id=user_id,
        )

    def to_body(self) -> Dict[str, Any]:
        """`{error, message, ...hints}` body rendered to clients."""
        body: Dict[str, Any] = {"error": self.error, "message": self.message}
        body.update(_sanitize(self.extra))
        return body


class Unauthenticated(MfaError):
    status_code_default = status.HTTP_401_UNAUTHORIZED
    error = "unauthenticated"
    default_message = "Not authenticated."

    def __init__(self, message: Optional[str] = None, **kw: Any) -> None:
        kw.setdefault("headers", {"WWW-Authenticate": "Bearer"})
        super().__init__(message, **kw)


class NoFactorEnrolled(MfaError):
    status_code_default = status.HTTP_409_CONFLICT
    error = "no_factor"
    default_message = "No verification method is set up for this account."


class InvalidCode(MfaError):
    """Wrong code. For TOTP the challenge id is echoed so clients can reuse it."""

    error = "invalid_code"
    default_message = "Invalid verification code."

    def __init__(self, message: Optional[str] = None, *, challenge_id: Optional[str] = None, **kw: Any) -> None:
        extra = dict(kw.pop("extra", None) or {})
        if challenge_id:
            extra["challenge_id"] = challenge_id
        super().__init__(message, extra=extra, **kw)


class CodeMismatch(InvalidCode):
    """Email code did not match the live code."""


class NoActiveCode(MfaError):
    error = "no_code"
    default_message = "No active verification code. Please request a new one."


class CodeExpired(MfaError):
    error = "code_expired"
    default_message = "Verification code has expired. Please request a new one."


class AttemptsExhausted(CodeExpired):
    error = "too_many_attempts"
    default_message = "Too many failed attempts. Please request a new code."


class ResendTooSoon(MfaError):
    status_code_default = status.HTTP_429_TOO_MANY_REQUESTS
    error = "rate_limited"
    default_message = "Please wait before requesting another code."

    def __init__(self, message: Optional[str] = None, *, retry_after: int, **kw: Any) -> None:
        self.retry_after = max(1, int(retry_after))
        super().__init__(
            message,
            extra={"retry_after": self.retry_after},
            headers={"Retry-After": str(self.retry_after)},
            **kw,
        )


class EnrollmentUnavailable(MfaError):
    status_code_default = status.HTTP_503_SERVICE_UNAVAILABLE
    error = "enrollment_unavailable"
    default_message = "Verification service is temporarily unavailable. Please try again."


class StepUpRequired(MfaError):
    status_code_default = status.HTTP_403_FORBIDDEN
    error = "step_up_required"
    default_message = "Additional verification is required for this action."

    def __init__(self, message: Optional[str] = None, *, status_hint: Optional[Dict[str, Any]] = None, **kw: Any) -> None:
        super().__init__(message, extra={"status": status_hint} if status_hint else None, **kw)


__all__ = [
    "AppException",
    "MfaError",
    "Unauthenticated",
    "NoFactorEnrolled",
    "InvalidCode",
    "CodeMismatch",
    "NoActiveCode",
    "CodeExpired",
    "AttemptsExhausted",
    "ResendTooSoon",
    "EnrollmentUnavailable",
    "StepUpRequired",
]
