"""
MAAP snapshot — immutable audit record of a check-in finalization.

One row per finalization batch per teammate.  Every check-in closed by the
batch links back via ``maap_snapshot_id``.

Business rules:
    - Records are NEVER deleted; after insert only the employee-acknowledgement
      columns may change (``_block_snapshot_rewrite``).
    - ``maap_data`` duplicates the finalized field values so the audit trail
      stays valid even if the check-in or tenure rows are later edited.
    - ``manager_request_info`` captures who/when/where (ip, user agent,
      timestamp, finalized_by_id) at finalization time.
"""

from datetime import datetime, timezone

from sqlalchemy import event as _sa_event
from sqlalchemy import inspect as sa_inspect

from maap.models import db

# ── Constants ────────────────────────────────────────────────────────────────

VALID_CHANGE_TYPES = frozenset({
    "position_tenure",
    "assignment_management",
    "aspiration_management",
    "bulk_check_in_finalization",
})

ACKNOWLEDGEMENT_COLUMNS = frozenset({
    "employee_acknowledged_at",
    "employee_acknowledgement_request_info",
})


class MaapSnapshot(db.Model):
    __tablename__ = "maap_snapshots"
    __table_args__ = (
        db.Index("ix_maap_snapshots_employee_created", "employee_teammate_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    employee_teammate_id = db.Column(
        db.Integer, db.ForeignKey("teammates.id", ondelete="CASCADE"), nullable=False,
    )
    created_by_teammate_id = db.Column(
        db.Integer, db.ForeignKey("teammates.id", ondelete="SET NULL"), nullable=True,
    )
    created_by_name_snapshot = db.Column(
        db.String(200), nullable=True,
        comment="Finalizer display name captured at finalization time",
    )

    change_type = db.Column(
        db.String(40), nullable=False,
        comment="position_tenure | assignment_management | aspiration_management | bulk_check_in_finalization",
    )
    reason = db.Column(db.Text, nullable=False)
    effective_date = db.Column(db.DateTime(timezone=True), nullable=True)

    maap_data = db.Column(db.JSON, nullable=False, default=dict)
    manager_request_info = db.Column(db.JSON, nullable=False, default=dict)

    employee_acknowledged_at = db.Column(db.DateTime(timezone=True), nullable=True)
    employee_acknowledgement_request_info = db.Column(db.JSON, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc),
    )

    employee_teammate = db.relationship("Teammate", foreign_keys=[employee_teammate_id])
    created_by_teammate = db.relationship("Teammate", foreign_keys=[created_by_teammate_id])

    @property
    def acknowledged(self) -> bool:
        return self.employee_acknowledged_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "employee_teammate_id": self.employee_teammate_id,
            "created_by_teammate_id": self.created_by_teammate_id,
            "created_by_name": self.created_by_name_snapshot,
            "change_type": self.change_type,
            "reason": self.reason,
            "effective_date": self.effective_date.isoformat() if self.effective_date else None,
            "maap_data": self.maap_data or {},
            "manager_request_info": self.manager_request_info or {},
            "employee_acknowledged_at": (
                self.employee_acknowledged_at.isoformat() if self.employee_acknowledged_at else None
            ),
            "employee_acknowledgement_request_info": self.employee_acknowledgement_request_info,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<MaapSnapshot #{self.id} teammate={self.employee_teammate_id} {self.change_type}>"


@_sa_event.listens_for(MaapSnapshot, "before_update")
def _block_snapshot_rewrite(mapper, connection, target) -> None:  # noqa: ANN001
    """Raise RuntimeError when a flush touches anything but acknowledgement columns."""
    state = sa_inspect(target)
    changed = {
        attr.key
        for attr in state.attrs
        if attr.key in mapper.column_attrs and attr.history.has_changes()
    }
    forbidden = changed - ACKNOWLEDGEMENT_COLUMNS
    if forbidden:
        raise RuntimeError(
            f"MaapSnapshot #{target.id} is append-only; refusing to change "
            f"{', '.join(sorted(forbidden))}"
        )
