from __future__ import annotations

"""
🔐 Learning Hub — MFA factors & challenges
=========================================

`MfaFactor` is an enrolled TOTP authenticator. It starts `unverified` and
becomes `verified` after the first correct code; only verified factors
satisfy step-up. `last_used_step` holds the last accepted TOTP time step so
the same code cannot be replayed.

`MfaChallenge` is a short-lived verification attempt against one factor.
It is consumed (`verified_at`) by a correct code and otherwise lapses at
`expires_at`.
"""

from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from learninghub.db.base_class import Base, as_utc, utcnow
from learninghub.db.models.user import _enum_values
from learninghub.schemas.enums import FactorStatus, FactorType


class MfaFactor(Base):
    """Enrolled second factor (TOTP)."""

    __tablename__ = "mfa_factors"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    factor_type = Column(
        Enum(FactorType, name="factor_type", values_callable=_enum_values),
        nullable=False,
        default=FactorType.TOTP,
    )
    status = Column(
        Enum(FactorStatus, name="factor_status", values_callable=_enum_values),
        nullable=False,
        default=FactorStatus.UNVERIFIED,
    )
    friendly_name = Column(String(128), nullable=False)
    secret = Column(String(64), nullable=False, doc="Base32 TOTP secret; never logged")
    last_used_step = Column(BigInteger, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    verified_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "friendly_name", name="uq_mfa_factors_user_friendly_name"),
        Index("ix_mfa_factors_user_status", "user_id", "status"),
    )

    challenges = relationship(
        "MfaChallenge",
        back_populates="factor",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="noload",
    )

    @property
    def is_verified(self) -> bool:
        return self.status == FactorStatus.VERIFIED

    def __repr__(self) -> str:  # pragma: no cover
        return f"<MfaFactor id={self.id} user_id={self.user_id} status={self.status}>"


class MfaChallenge(Base):
    """Short-lived verification attempt against a factor."""

    __tablename__ = "mfa_challenges"

    id = Column(Uuid, primary_key=True, default=uuid4)
    factor_id = Column(Uuid, ForeignKey("mfa_factors.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    verified_at = Column(DateTime(timezone=True), nullable=True)

    factor = relationship(
        "MfaFactor",
        back_populates="challenges",
        lazy="selectin",
        primaryjoin="MfaChallenge.factor_id == MfaFactor.id",
        foreign_keys="[MfaChallenge.factor_id]",
    )

    def is_open(self, now) -> bool:
        return self.verified_at is None and as_utc(self.expires_at) > now

    def __repr__(self) -> str:  # pragma: no cover
        return f"<MfaChallenge id={self.id} factor_id={self.factor_id}>"
