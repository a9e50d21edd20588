from __future__ import annotations

"""
🧾 Learning Hub — Audit Logs (security & compliance)
===================================================

Immutable record of security-relevant actions (sign-in, enrollment,
verification, password changes) with request context, kept for HIPAA
compliance reviews and incident response.

Design highlights
-----------------
• Keyed by UUID; `occurred_at` is UTC.
• Query paths by user, action and request id.
• `ondelete=SET NULL` on the user FK so deleting a user keeps the history.

Conventions
-----------
• The reserved `metadata` attribute is exposed as `metadata_json` while the
  DB column keeps the name `metadata`.
"""

from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, String, Uuid

from learninghub.db.base_class import Base, JSONType, utcnow


class AuditLog(Base):
    """Immutable record of a user-initiated action."""

    __tablename__ = "audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),  # retain logs if user is deleted
        nullable=True,
        index=True,
    )

    request_id = Column(String(128), nullable=True, index=True, doc="Correlation ID")
    action = Column(String(64), nullable=False, index=True, doc="Action keyword (e.g., MFA_VERIFY)")
    status = Column(String(32), nullable=False, doc="Outcome (SUCCESS / FAILURE)")

    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(1024), nullable=True)
    metadata_json = Column("metadata", JSONType, nullable=True)

    occurred_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    __table_args__ = (
        CheckConstraint("length(action) > 0", name="action_not_blank"),
        CheckConstraint("length(status) > 0", name="status_not_blank"),
        Index("ix_audit_logs_user_action_ts", "user_id", "action", "occurred_at"),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<AuditLog id={self.id} user_id={self.user_id} action='{self.action}' status='{self.status}'>"
