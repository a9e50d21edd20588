from __future__ import annotations

"""
🪪 Learning Hub — Auth sessions
==============================

One row per signed-in session. Access tokens carry the row id as
`session_id`; a token is honoured only while its row is live
(`revoked_at IS NULL` and `expires_at` in the future).

`aal` records the provider-side assurance level: `aal1` after password
sign-in, `aal2` once a TOTP factor was verified in this session.
"""

from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, String, Uuid

from learninghub.db.base_class import Base, as_utc, utcnow
from learninghub.db.models.user import _enum_values
from learninghub.schemas.enums import AssuranceLevel


class AuthSession(Base):
    """Identity-provider session bound to a user."""

    __tablename__ = "auth_sessions"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    aal = Column(
        Enum(AssuranceLevel, name="assurance_level", values_callable=_enum_values),
        nullable=False,
        default=AssuranceLevel.AAL1,
    )
    amr_factor_id = Column(Uuid, nullable=True, doc="Factor that raised the session to aal2")

    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(1024), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_auth_sessions_user_live", "user_id", "revoked_at"),
    )

    def is_live(self, now) -> bool:
        return self.revoked_at is None and as_utc(self.expires_at) > now

    def __repr__(self) -> str:  # pragma: no cover
        return f"<AuthSession id={self.id} user_id={self.user_id} aal={self.aal}>"
