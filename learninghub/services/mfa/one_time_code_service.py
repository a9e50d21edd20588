# learninghub/services/mfa/one_time_code_service.py
from __future__ import annotations

"""
📧 One-Time Code Service — email second factor
==============================================

Generation, storage, expiry and one-time consumption of mailed codes, plus the
per-session "email MFA session" marker written when a code verifies.

Rules
-----
- At most one live (unused, unexpired) code per account: issuing a new code
  marks every prior unused code as used, in the same transaction.
- Codes are stored as a peppered HMAC digest and compared in constant time.
- Resend cooldown is derived from the latest code's `created_at`; the
  countdown shown to users is `seconds_until_resend(issued_at, now)`.
- Issuance is capped per rolling window; each code allows a bounded number
  of wrong guesses before it is invalidated.
- Concurrent sends for one account are serialized with a Redis lock; without
  Redis the database cooldown check still applies.

Security
--------
- Code values never reach logs, audit rows or error messages.
- Expired codes are rejected even on an exact match, and invalidated eagerly.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
import logging
import math

from fastapi import BackgroundTasks
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from learninghub.core.config import settings
from learninghub.core.exceptions import (
    AttemptsExhausted,
    CodeExpired,
    CodeMismatch,
    EnrollmentUnavailable,
    NoActiveCode,
    ResendTooSoon,
)
from learninghub.core.security import digests_match, generate_otp, hash_otp, normalize_code
from learninghub.db.base_class import as_utc, utcnow
from learninghub.db.models.one_time_code import MfaEmailSession, OneTimeCode
from learninghub.services.audit_log_service import AuditEvent, log_audit_event
from learninghub.services.mfa.context import SessionContext
from learninghub.utils import redis_utils
from learninghub.utils.email_utils import send_mfa_code_email

logger = logging.getLogger(__name__)

CODE_PURPOSE = "mfa_email"

# Swapped out in tests to pin the issued value.
generate_code = generate_otp


# ─────────────────────────────────────────────────────────────
# 📦 Results
# ─────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class CodeDispatch:
    expires_in: int
    resend_available_in: int
    expires_at: datetime


@dataclass(frozen=True)
class EmailSessionStatus:
    verified: bool
    expires_at: Optional[datetime] = None


# ─────────────────────────────────────────────────────────────
# 🧮 Pure helpers
# ─────────────────────────────────────────────────────────────
def seconds_until_resend(
    issued_at: Optional[datetime],
    now: datetime,
    cooldown: Optional[int] = None,
) -> int:
    """Whole seconds left in the resend window (0 when a send is allowed)."""
    window = settings.MFA_EMAIL_RESEND_COOLDOWN_SECONDS if cooldown is None else cooldown
    if issued_at is None or window <= 0:
        return 0
    remaining = window - (now - as_utc(issued_at)).total_seconds()
    return max(0, math.ceil(remaining))


def _digest(ctx: SessionContext, code: str) -> str:
    return hash_otp(code, user_id=str(ctx.user_id), purpose=CODE_PURPOSE)


async def _commit(db: AsyncSession) -> None:
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("One-time code store commit failed")
        raise EnrollmentUnavailable() from exc


# ─────────────────────────────────────────────────────────────
# 🔎 Queries
# ─────────────────────────────────────────────────────────────
async def _latest_code(db: AsyncSession, user_id, *, unused_only: bool) -> Optional[OneTimeCode]:
    stmt = select(OneTimeCode).where(OneTimeCode.user_id == user_id)
    if unused_only:
        stmt = stmt.where(OneTimeCode.used.is_(False))
    stmt = stmt.order_by(OneTimeCode.created_at.desc()).limit(1)
    return (await db.execute(stmt)).scalar_one_or_none()


async def latest_live_code(ctx: SessionContext, now: Optional[datetime] = None) -> Optional[OneTimeCode]:
    """Latest unused, unexpired code for the account, if any."""
    now = now or utcnow()
    try:
        code = await _latest_code(ctx.db, ctx.user_id, unused_only=True)
    except SQLAlchemyError as exc:
        await ctx.db.rollback()
        raise EnrollmentUnavailable() from exc
    if code is None or code.expired(now):
        return None
    return code


async def _issuance_window(db: AsyncSession, user_id, now: datetime) -> tuple[int, Optional[datetime]]:
    """(codes issued in the rolling window, oldest issue time in it)."""
    since = now - timedelta(minutes=settings.MFA_EMAIL_RATE_PERIOD_MINUTES)
    row = (
        await db.execute(
            select(func.count(OneTimeCode.id), func.min(OneTimeCode.created_at)).where(
                OneTimeCode.user_id == user_id,
                OneTimeCode.created_at >= since,
            )
        )
    ).one()
    return int(row[0] or 0), as_utc(row[1])


# ─────────────────────────────────────────────────────────────
# 📤 Send
# ─────────────────────────────────────────────────────────────
async def send(
    ctx: SessionContext,
    *,
    background_tasks: Optional[BackgroundTasks] = None,
    now: Optional[datetime] = None,
    ttl_minutes: Optional[int] = None,
) -> CodeDispatch:
    """
    Issue a new code for the caller's account and mail it.

    Steps
    -----
    1) Serialize on the account (Redis lock).
    2) Enforce the resend cooldown and the issuance cap.
    3) Invalidate prior unused codes, persist the new digest (one commit).
    4) Dispatch the email out of band and audit.

    Raises
    ------
    ResendTooSoon            cooldown/cap active or another send in flight
    EnrollmentUnavailable    store failure
    """
    now = now or utcnow()
    ttl = ttl_minutes or settings.MFA_EMAIL_CODE_TTL_MINUTES
    cooldown = settings.MFA_EMAIL_RESEND_COOLDOWN_SECONDS
    lock_key = f"mfa-email-send:{ctx.user_id}"

    # ── [Step 1] Serialize concurrent sends ─────────────────────────────────
    token = await redis_utils.acquire_lock(key_suffix=lock_key, ttl=settings.MFA_EMAIL_SEND_LOCK_SECONDS)
    if token is None:
        raise ResendTooSoon(retry_after=max(1, cooldown))

    try:
        try:
            # ── [Step 2] Cooldown + issuance cap ────────────────────────────
            latest = await _latest_code(ctx.db, ctx.user_id, unused_only=False)
            wait = seconds_until_resend(latest.created_at if latest else None, now, cooldown)
            if wait > 0:
                raise ResendTooSoon(retry_after=wait)

            issued, oldest = await _issuance_window(ctx.db, ctx.user_id, now)
            if issued >= settings.MFA_EMAIL_MAX_CODES_PER_PERIOD:
                period = timedelta(minutes=settings.MFA_EMAIL_RATE_PERIOD_MINUTES)
                retry_after = math.ceil(((oldest or now) + period - now).total_seconds())
                raise ResendTooSoon(
                    "Too many codes requested. Please try again later.",
                    retry_after=max(1, retry_after),
                )

            # ── [Step 3] Replace the live code ──────────────────────────────
            code = generate_code(settings.MFA_CODE_LENGTH)
            await ctx.db.execute(
                update(OneTimeCode)
                .where(OneTimeCode.user_id == ctx.user_id, OneTimeCode.used.is_(False))
                .values(used=True)
                .execution_options(synchronize_session=False)
            )
            record = OneTimeCode(
                user_id=ctx.user_id,
                code_hash=_digest(ctx, code),
                created_at=now,
                expires_at=now + timedelta(minutes=ttl),
                used=False,
                attempts=0,
            )
            ctx.db.add(record)
        except SQLAlchemyError as exc:
            await ctx.db.rollback()
            logger.exception("One-time code issuance failed user=%s", ctx.user_id)
            raise EnrollmentUnavailable() from exc
        await _commit(ctx.db)
    finally:
        await redis_utils.release_lock(key_suffix=lock_key, token=token)

    # ── [Step 4] Dispatch + audit ───────────────────────────────────────────
    if background_tasks is not None:
        background_tasks.add_task(send_mfa_code_email, ctx.account.email, code, ttl)
    else:
        await send_mfa_code_email(ctx.account.email, code, ttl)

    logger.info("MFA email code issued user=%s", ctx.user_id)
    await log_audit_event(
        ctx.db,
        user=ctx.account,
        action=AuditEvent.MFA_EMAIL_CODE_SENT,
        status="SUCCESS",
        request=ctx.request,
        meta_data={"expires_in_minutes": ttl},
    )
    return CodeDispatch(
        expires_in=ttl * 60,
        resend_available_in=cooldown,
        expires_at=as_utc(record.expires_at),
    )


# ─────────────────────────────────────────────────────────────
# ✅ Verify
# ─────────────────────────────────────────────────────────────
async def verify(ctx: SessionContext, code: str, *, now: Optional[datetime] = None) -> EmailSessionStatus:
    """
    Consume the live code when `code` matches and mark this session verified.

    Raises
    ------
    NoActiveCode        nothing issued, or the latest code was already used
    CodeExpired         past expiry (the code is invalidated)
    AttemptsExhausted   wrong-guess cap reached (the code is invalidated)
    CodeMismatch        wrong value, or not a well-formed code; the code
                        stays live and malformed input costs no attempt

    Any outcome that ends the live code (match, expiry, exhausted budget)
    retires every unused code of the account, not only the matched row.
    """
    now = now or utcnow()
    db = ctx.db
    max_attempts = settings.MFA_EMAIL_MAX_ATTEMPTS_PER_CODE

    # ── [Step 0] Shape check; malformed input costs no attempt ─────────────
    submitted = normalize_code(code)
    if len(submitted) != settings.MFA_CODE_LENGTH or not submitted.isdigit():
        raise CodeMismatch()

    try:
        record = await _latest_code(db, ctx.user_id, unused_only=True)
    except SQLAlchemyError as exc:
        await db.rollback()
        raise EnrollmentUnavailable() from exc

    # ── [Step 1] Presence ───────────────────────────────────────────────────
    if record is None:
        raise NoActiveCode()

    # ── [Step 2] Expiry, then guess budget ──────────────────────────────────
    if record.expired(now):
        await _retire_live_codes(db, ctx.user_id)
        await _commit(db)
        raise CodeExpired()

    if max_attempts and (record.attempts or 0) >= max_attempts:
        await _retire_live_codes(db, ctx.user_id)
        await _commit(db)
        raise AttemptsExhausted()

    # ── [Step 3] Constant-time compare ──────────────────────────────────────
    if not digests_match(_digest(ctx, submitted), record.code_hash):
        record.attempts = (record.attempts or 0) + 1
        await _commit(db)
        logger.info("MFA email code mismatch user=%s attempts=%s", ctx.user_id, record.attempts)
        raise CodeMismatch(_remaining_message(max_attempts, record.attempts))

    # ── [Step 4] Consume + mark this session ────────────────────────────────
    await _retire_live_codes(db, ctx.user_id)
    record.used = True
    await _commit(db)
    expires_at = now + timedelta(hours=settings.MFA_EMAIL_SESSION_TTL_HOURS)
    await _upsert_email_session(ctx, now=now, expires_at=expires_at)
    logger.info("MFA email code verified user=%s", ctx.user_id)
    return EmailSessionStatus(verified=True, expires_at=expires_at)


async def _retire_live_codes(db: AsyncSession, user_id) -> None:
    try:
        await db.execute(
            update(OneTimeCode)
            .where(OneTimeCode.user_id == user_id, OneTimeCode.used.is_(False))
            .values(used=True)
            .execution_options(synchronize_session=False)
        )
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("One-time code invalidation failed user=%s", user_id)
        raise EnrollmentUnavailable() from exc


def _remaining_message(max_attempts: int, attempts: int) -> Optional[str]:
    if not max_attempts:
        return None
    left = max(0, max_attempts - attempts)
    return f"Invalid verification code. {left} attempt{'' if left == 1 else 's'} remaining."


async def _upsert_email_session(ctx: SessionContext, *, now: datetime, expires_at: datetime) -> None:
    db = ctx.db

    async def _existing() -> Optional[MfaEmailSession]:
        return (
            await db.execute(
                select(MfaEmailSession).where(
                    MfaEmailSession.user_id == ctx.user_id,
                    MfaEmailSession.session_id == ctx.session_id,
                )
            )
        ).scalar_one_or_none()

    try:
        marker = await _existing()
        if marker is None:
            db.add(
                MfaEmailSession(
                    user_id=ctx.user_id,
                    session_id=ctx.session_id,
                    verified_at=now,
                    expires_at=expires_at,
                )
            )
        else:
            marker.verified_at = now
            marker.expires_at = expires_at
        await db.commit()
    except IntegrityError:
        # Lost the insert race to a concurrent verify of the same session.
        await db.rollback()
        marker = await _existing()
        if marker is not None:
            marker.verified_at = now
            marker.expires_at = expires_at
        await _commit(db)
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Email MFA session write failed user=%s", ctx.user_id)
        raise EnrollmentUnavailable() from exc


# ─────────────────────────────────────────────────────────────
# 🔍 Session marker lookup
# ─────────────────────────────────────────────────────────────
async def check_session(ctx: SessionContext, now: Optional[datetime] = None) -> EmailSessionStatus:
    """Read-only: is this provider session marked verified by email?"""
    now = now or utcnow()
    try:
        marker = (
            await ctx.db.execute(
                select(MfaEmailSession).where(
                    MfaEmailSession.user_id == ctx.user_id,
                    MfaEmailSession.session_id == ctx.session_id,
                )
            )
        ).scalar_one_or_none()
    except SQLAlchemyError as exc:
        await ctx.db.rollback()
        raise EnrollmentUnavailable() from exc

    expires_at = as_utc(marker.expires_at) if marker else None
    if expires_at is None or expires_at <= now:
        return EmailSessionStatus(verified=False)
    return EmailSessionStatus(verified=True, expires_at=expires_at)


__all__ = [
    "CodeDispatch",
    "EmailSessionStatus",
    "seconds_until_resend",
    "latest_live_code",
    "send",
    "verify",
    "check_session",
]
