from __future__ import annotations

"""
👤 Learning Hub — User (accounts)
================================

Account record: login credentials, role within the tenant, and the MFA
profile fields (`mfa_method`, `mfa_enabled`) the app reads to pick a
verification path.

Design highlights
-----------------
• Case-insensitive email uniqueness (functional index).
• Role is a closed set (`platform_owner`, `org_admin`, `workforce_user`) stored
  by value.
• `mfa_method` is a preference only; whether a session is elevated is decided
  by the identity provider and the email MFA session marker, never by this row.
"""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Uuid,
    false,
    func,
    true,
)
from sqlalchemy.orm import relationship

from learninghub.db.base_class import Base, utcnow
from learninghub.schemas.enums import MfaMethod, UserRole


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class User(Base):
    """Account with credentials, tenant role and MFA preference."""

    __tablename__ = "users"

    # ── Identity & Authentication ─────────────────────────────────────────────
    id = Column(Uuid, primary_key=True, default=uuid4)
    email = Column(String(320), nullable=False, unique=True)
    full_name = Column(String(255), nullable=True)
    hashed_password = Column(String, nullable=False, doc="BCrypt hash of the password")

    role = Column(
        Enum(UserRole, name="user_role", values_callable=_enum_values),
        nullable=False,
        default=UserRole.WORKFORCE_USER,
    )
    organization_id = Column(
        Uuid,
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # ── MFA profile ───────────────────────────────────────────────────────────
    mfa_method = Column(
        Enum(MfaMethod, name="mfa_method", values_callable=_enum_values),
        nullable=True,
    )
    mfa_enabled = Column(Boolean, nullable=False, default=False, server_default=false())

    is_active = Column(Boolean, nullable=False, default=True, server_default=true())

    # ── Timestamps ────────────────────────────────────────────────────────────
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("uq_users_email_lower", func.lower(email), unique=True),
    )

    # ── Relationships ───────────────────────────────────────────────────────
    organization = relationship(
        "Organization",
        back_populates="members",
        lazy="selectin",
        primaryjoin="User.organization_id == Organization.id",
        foreign_keys="[User.organization_id]",
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, role={self.role}, mfa_method={self.mfa_method})>"
