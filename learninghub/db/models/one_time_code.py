from __future__ import annotations

"""
✉️ Learning Hub — Email one-time codes & email MFA sessions
==========================================================

`OneTimeCode` (`mfa_email_codes`): a short-lived numeric code delivered by
email. Only a peppered HMAC digest is stored. Issuing a code marks every
prior unused code of the account as used, so at most one code is live.

`MfaEmailSession` (`mfa_email_sessions`): the marker written when an email
code verifies. It elevates exactly one provider session (`session_id`) until
`expires_at`; the `(user_id, session_id)` pair is unique and upserted.
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    false,
)

from learninghub.db.base_class import Base, as_utc, utcnow


class OneTimeCode(Base):
    """Email verification code (digest only)."""

    __tablename__ = "mfa_email_codes"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    code_hash = Column(String(128), nullable=False, doc="HMAC-SHA256 hex digest")

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used = Column(Boolean, nullable=False, default=False, server_default=false())
    attempts = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("ix_mfa_email_codes_user_used_created", "user_id", "used", "created_at"),
        Index("ix_mfa_email_codes_expires_at", "expires_at"),
    )

    def expired(self, now: datetime | None = None) -> bool:
        """True when past `expires_at` (UTC-aware)."""
        exp = as_utc(self.expires_at)
        return exp is None or (now or datetime.now(timezone.utc)) > exp

    def __repr__(self) -> str:  # pragma: no cover
        return f"<OneTimeCode id={self.id} user_id={self.user_id} used={self.used}>"


class MfaEmailSession(Base):
    """Elevation marker for one provider session after email verification."""

    __tablename__ = "mfa_email_sessions"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    session_id = Column(Uuid, nullable=False)
    verified_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "session_id", name="uq_mfa_email_sessions_user_session"),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<MfaEmailSession user_id={self.user_id} session_id={self.session_id}>"
