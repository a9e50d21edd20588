# learninghub/services/identity/provider.py
from __future__ import annotations

"""
Identity Provider — interface + SQL implementation
==================================================

Responsibilities
----------------
- Password sign-in and bearer sessions (`auth_sessions` rows + JWTs).
- Session assurance level (`aal1` → `aal2` once a TOTP factor verifies).
- TOTP factor lifecycle: enroll (unverified) → challenge → verify → unenroll.
- Password updates.

The MFA core talks to `IdentityProvider` only; `SqlIdentityProvider` is the
in-process implementation over our own tables.

Security
--------
- TOTP secrets and provisioning URIs are returned once from `enroll_totp` and
  never logged.
- `verify` accepts ±1 time step, rejects a step already consumed by the factor
  (`last_used_step`) and compares codes in constant time.
- A wrong code leaves the challenge open until it expires, so clients can
  retry against the same challenge id.
- Store failures surface as `ProviderUnavailable`, never as "no factor".
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Protocol, Tuple
from uuid import UUID
import hmac
import logging

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from learninghub.core.config import settings
from learninghub.core.jwt import TokenError, decode_session_token, encode_session_token, session_expiry
from learninghub.core.security import (
    generate_totp,
    generate_totp_secret,
    get_password_hash,
    normalize_code,
    verify_password,
)
from learninghub.db.base_class import as_utc, utcnow
from learninghub.db.models.auth_session import AuthSession
from learninghub.db.models.mfa_factor import MfaChallenge, MfaFactor
from learninghub.db.models.user import User
from learninghub.schemas.enums import AssuranceLevel, FactorStatus, FactorType
from learninghub.services.identity.errors import (
    ChallengeNotFound,
    FactorNotFound,
    InvalidCredentials,
    ProviderInvalidCode,
    ProviderUnavailable,
    SessionInvalid,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


# ─────────────────────────────────────────────────────────────
# 📦 Value objects
# ─────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class ProviderSession:
    session_id: UUID
    user_id: UUID
    aal: AssuranceLevel
    expires_at: datetime


@dataclass(frozen=True)
class FactorInfo:
    id: UUID
    factor_type: FactorType
    status: FactorStatus
    friendly_name: str
    created_at: datetime

    @property
    def is_verified(self) -> bool:
        return self.status == FactorStatus.VERIFIED


@dataclass(frozen=True)
class TotpEnrollment:
    factor_id: UUID
    secret: str
    uri: str

    def __repr__(self) -> str:  # keep the secret out of logs/tracebacks
        return f"TotpEnrollment(factor_id={self.factor_id!s})"


@dataclass(frozen=True)
class ChallengeInfo:
    id: UUID
    factor_id: UUID
    expires_at: datetime


# ─────────────────────────────────────────────────────────────
# 🧩 Interface
# ─────────────────────────────────────────────────────────────
class IdentityProvider(Protocol):
    async def sign_in_with_password(
        self, email: str, password: str, *, ip_address: Optional[str] = None, user_agent: Optional[str] = None
    ) -> Tuple[str, ProviderSession]: ...

    async def get_session(self, token: str) -> ProviderSession: ...

    async def sign_out(self, session: ProviderSession, *, scope: str = "local") -> None: ...

    async def get_assurance_level(self, session: ProviderSession) -> AssuranceLevel: ...

    async def list_factors(self, user_id: UUID) -> List[FactorInfo]: ...

    async def enroll_totp(self, user_id: UUID, *, issuer: str, friendly_name: str) -> TotpEnrollment: ...

    async def challenge(self, factor_id: UUID) -> ChallengeInfo: ...

    async def get_challenge(self, challenge_id: UUID) -> ChallengeInfo: ...

    async def verify(self, session: ProviderSession, *, factor_id: UUID, challenge_id: UUID, code: str) -> None: ...

    async def unenroll(self, factor_id: UUID) -> None: ...

    async def update_password(self, user_id: UUID, new_password: str) -> None: ...


# ─────────────────────────────────────────────────────────────
# 🗄️ SQL implementation
# ─────────────────────────────────────────────────────────────
class SqlIdentityProvider:
    """`IdentityProvider` over `users`, `auth_sessions`, `mfa_factors`, `mfa_challenges`."""

    def __init__(self, db: AsyncSession, *, clock: Clock = utcnow) -> None:
        self.db = db
        self._clock = clock

    # ── internals ───────────────────────────────────────────────────────────
    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.exception("Identity store commit failed")
            raise ProviderUnavailable("identity store unavailable") from exc

    async def _scalar(self, stmt):
        try:
            return (await self.db.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.exception("Identity store query failed")
            raise ProviderUnavailable("identity store unavailable") from exc

    async def _scalars(self, stmt) -> list:
        try:
            return list((await self.db.execute(stmt)).scalars().all())
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.exception("Identity store query failed")
            raise ProviderUnavailable("identity store unavailable") from exc

    async def _live_session_row(self, session_id: UUID) -> AuthSession:
        row = await self._scalar(select(AuthSession).where(AuthSession.id == session_id))
        if row is None or not row.is_live(self._clock()):
            raise SessionInvalid("session revoked or expired")
        return row

    @staticmethod
    def _session_info(row: AuthSession) -> ProviderSession:
        return ProviderSession(
            session_id=row.id,
            user_id=row.user_id,
            aal=AssuranceLevel(row.aal),
            expires_at=as_utc(row.expires_at),
        )

    @staticmethod
    def _factor_info(row: MfaFactor) -> FactorInfo:
        return FactorInfo(
            id=row.id,
            factor_type=FactorType(row.factor_type),
            status=FactorStatus(row.status),
            friendly_name=row.friendly_name,
            created_at=as_utc(row.created_at),
        )

    # ── sessions ────────────────────────────────────────────────────────────
    async def sign_in_with_password(
        self,
        email: str,
        password: str,
        *,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Tuple[str, ProviderSession]:
        """Check credentials and open an `aal1` session; returns `(token, session)`."""
        normalized = (email or "").strip().lower()
        user = await self._scalar(select(User).where(func.lower(User.email) == normalized))
        # Hash check runs before the active flag so both failures look the same.
        if user is None or not verify_password(password or "", user.hashed_password) or not user.is_active:
            raise InvalidCredentials("invalid email or password")

        now = self._clock()
        row = AuthSession(
            user_id=user.id,
            aal=AssuranceLevel.AAL1,
            created_at=now,
            expires_at=session_expiry(now),
            ip_address=ip_address,
            user_agent=(user_agent or "")[:1024] or None,
        )
        self.db.add(row)
        await self._commit()

        token = encode_session_token(user_id=str(user.id), session_id=str(row.id), expires_at=row.expires_at, now=now)
        logger.info("Session opened for user=%s session=%s", user.id, row.id)
        return token, self._session_info(row)

    async def get_session(self, token: str) -> ProviderSession:
        try:
            payload = decode_session_token(token)
            session_id = UUID(str(payload["session_id"]))
            user_id = UUID(str(payload["sub"]))
        except (TokenError, ValueError) as exc:
            raise SessionInvalid(str(exc)) from exc

        row = await self._live_session_row(session_id)
        if row.user_id != user_id:
            raise SessionInvalid("token subject does not own this session")
        return self._session_info(row)

    async def sign_out(self, session: ProviderSession, *, scope: str = "local") -> None:
        """Revoke sessions. `local`: this one; `others`: every other one; `global`: all."""
        if scope not in {"local", "others", "global"}:
            raise ValueError(f"unknown sign-out scope: {scope}")
        stmt = update(AuthSession).where(
            AuthSession.user_id == session.user_id,
            AuthSession.revoked_at.is_(None),
        )
        if scope == "local":
            stmt = stmt.where(AuthSession.id == session.session_id)
        elif scope == "others":
            stmt = stmt.where(AuthSession.id != session.session_id)
        try:
            await self.db.execute(stmt.values(revoked_at=self._clock()).execution_options(synchronize_session=False))
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise ProviderUnavailable("identity store unavailable") from exc
        await self._commit()

    async def get_assurance_level(self, session: ProviderSession) -> AssuranceLevel:
        row = await self._live_session_row(session.session_id)
        return AssuranceLevel(row.aal)

    # ── factors ─────────────────────────────────────────────────────────────
    async def list_factors(self, user_id: UUID) -> List[FactorInfo]:
        rows = await self._scalars(
            select(MfaFactor).where(MfaFactor.user_id == user_id).order_by(MfaFactor.created_at)
        )
        return [self._factor_info(r) for r in rows]

    async def enroll_totp(self, user_id: UUID, *, issuer: str, friendly_name: str) -> TotpEnrollment:
        """Create an `unverified` TOTP factor; the secret/URI are returned once."""
        user = await self._scalar(select(User).where(User.id == user_id))
        if user is None:
            raise SessionInvalid("unknown account")

        secret = generate_totp_secret()
        factor = MfaFactor(
            user_id=user_id,
            factor_type=FactorType.TOTP,
            status=FactorStatus.UNVERIFIED,
            friendly_name=friendly_name,
            secret=secret,
            created_at=self._clock(),
        )
        self.db.add(factor)
        await self._commit()

        uri = generate_totp(secret).provisioning_uri(name=user.email, issuer_name=issuer)
        logger.info("TOTP factor enrolled user=%s factor=%s", user_id, factor.id)
        return TotpEnrollment(factor_id=factor.id, secret=secret, uri=uri)

    async def unenroll(self, factor_id: UUID) -> None:
        factor = await self._scalar(select(MfaFactor).where(MfaFactor.id == factor_id))
        if factor is None:
            raise FactorNotFound(str(factor_id))
        try:
            await self.db.delete(factor)
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise ProviderUnavailable("identity store unavailable") from exc
        await self._commit()

    # ── challenges ──────────────────────────────────────────────────────────
    async def challenge(self, factor_id: UUID) -> ChallengeInfo:
        factor = await self._scalar(select(MfaFactor).where(MfaFactor.id == factor_id))
        if factor is None:
            raise FactorNotFound(str(factor_id))
        now = self._clock()
        row = MfaChallenge(
            factor_id=factor_id,
            created_at=now,
            expires_at=now + timedelta(seconds=settings.MFA_CHALLENGE_TTL_SECONDS),
        )
        self.db.add(row)
        await self._commit()
        return ChallengeInfo(id=row.id, factor_id=row.factor_id, expires_at=as_utc(row.expires_at))

    async def _open_challenge(self, challenge_id: UUID) -> MfaChallenge:
        row = await self._scalar(select(MfaChallenge).where(MfaChallenge.id == challenge_id))
        if row is None or not row.is_open(self._clock()):
            raise ChallengeNotFound(str(challenge_id))
        return row

    async def get_challenge(self, challenge_id: UUID) -> ChallengeInfo:
        row = await self._open_challenge(challenge_id)
        return ChallengeInfo(id=row.id, factor_id=row.factor_id, expires_at=as_utc(row.expires_at))

    async def verify(self, session: ProviderSession, *, factor_id: UUID, challenge_id: UUID, code: str) -> None:
        """
        Verify a TOTP code against an open challenge.

        Steps
        -----
        1) Challenge must be open and bound to `factor_id`.
        2) Factor must belong to the session's account.
        3) Find the matching time step (±1) not yet consumed.
        4) Consume challenge, promote factor, raise session to `aal2`.
        """
        # ── [Step 1] Challenge ──────────────────────────────────────────────
        challenge = await self._open_challenge(challenge_id)
        if challenge.factor_id != factor_id:
            raise ChallengeNotFound(str(challenge_id))

        # ── [Step 2] Factor ownership ───────────────────────────────────────
        factor = await self._scalar(select(MfaFactor).where(MfaFactor.id == factor_id))
        if factor is None or factor.user_id != session.user_id:
            raise FactorNotFound(str(factor_id))
        session_row = await self._live_session_row(session.session_id)

        # ── [Step 3] Code + anti-replay ─────────────────────────────────────
        now = self._clock()
        step = _matching_step(factor.secret, normalize_code(code), now)
        if step is None or (factor.last_used_step is not None and step <= factor.last_used_step):
            raise ProviderInvalidCode("code rejected")

        # ── [Step 4] Persist ────────────────────────────────────────────────
        challenge.verified_at = now
        factor.last_used_step = step
        if factor.status != FactorStatus.VERIFIED:
            factor.status = FactorStatus.VERIFIED
            factor.verified_at = now
        session_row.aal = AssuranceLevel.AAL2
        session_row.amr_factor_id = factor.id
        await self._commit()
        logger.info("TOTP verified user=%s factor=%s", factor.user_id, factor.id)

    # ── credentials ─────────────────────────────────────────────────────────
    async def update_password(self, user_id: UUID, new_password: str) -> None:
        user = await self._scalar(select(User).where(User.id == user_id))
        if user is None:
            raise SessionInvalid("unknown account")
        user.hashed_password = get_password_hash(new_password)
        await self._commit()


def _matching_step(secret: str, code: str, now: datetime) -> Optional[int]:
    """Return the TOTP time step (current ±1) whose code equals `code`."""
    totp = generate_totp(secret)
    if not code.isdigit() or len(code) != totp.digits:
        return None
    current = totp.timecode(now)
    for candidate in (current, current - 1, current + 1):
        if hmac.compare_digest(totp.generate_otp(candidate), code):
            return candidate
    return None


__all__ = [
    "ProviderSession",
    "FactorInfo",
    "TotpEnrollment",
    "ChallengeInfo",
    "IdentityProvider",
    "SqlIdentityProvider",
]
