from __future__ import annotations

"""
🏢 Learning Hub — Organization (tenant)
======================================

Tenant record that accounts belong to. The MFA core only reads it (role
routing and display); organization management lives elsewhere.
"""

from uuid import uuid4

from sqlalchemy import Column, DateTime, String, Uuid
from sqlalchemy.orm import relationship

from learninghub.db.base_class import Base, utcnow


class Organization(Base):
    """A customer organization (hospital, clinic, practice)."""

    __tablename__ = "organizations"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    members = relationship(
        "User",
        back_populates="organization",
        passive_deletes=True,
        lazy="noload",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Organization id={self.id} name={self.name!r}>"
