"""
Check-in notification outbox.

Models:
    - CheckInNotification: one row per dispatched completion payload, with
      delivery tracking (pending → delivered | failed).

The row is written after the triggering completion has been committed and is
the durable queue entry behind at-least-once delivery.
"""

from datetime import datetime, timezone

from maap.models import db

# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_STATUSES = ("pending", "delivered", "failed")


class CheckInNotification(db.Model):
    __tablename__ = "check_in_notifications"
    __table_args__ = (
        db.Index("ix_check_in_notifications_status", "status", "created_at"),
        db.Index("ix_check_in_notifications_check_in", "check_in_kind", "check_in_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    check_in_kind = db.Column(db.String(20), nullable=False, comment="position | assignment | aspiration")
    check_in_id = db.Column(db.Integer, nullable=False)
    completion_state = db.Column(db.String(40), nullable=False)
    payload = db.Column(db.JSON, nullable=False, default=dict)

    status = db.Column(db.String(20), nullable=False, default="pending")
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def mark_delivered(self):
        self.status = "delivered"
        self.delivered_at = datetime.now(timezone.utc)
        self.last_error = None

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "check_in_kind": self.check_in_kind,
            "check_in_id": self.check_in_id,
            "completion_state": self.completion_state,
            "payload": self.payload or {},
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "delivered_at": self.delivered_at.isoformat() if self.delivered_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<CheckInNotification {self.id}: {self.check_in_kind}#{self.check_in_id} {self.status}>"
