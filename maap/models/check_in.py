"""
Check-in domain model — the dual-party review record.

Models:
    - PositionCheckIn:   review of the teammate's current position (integer scale -3..3)
    - AssignmentCheckIn: review of one assignment (string scale, energy + alignment)
    - AspirationCheckIn: review of one organization aspiration (string scale)

All three share the column shape of ``CheckInMixin``.  A check-in is *open*
while ``official_check_in_completed_at IS NULL`` and *closed* once finalized.

Business rules:
    - At most one open check-in per (teammate, subject).  Enforced by a partial
      unique index on each table, so concurrent creators cannot both succeed.
      Position check-ins are unique per teammate.
    - employee_completed_at / manager_completed_at are independent halves of
      the completion state; neither ever clears the other.
    - official_check_in_completed_at, finalized_by_id and maap_snapshot_id are
      written together, once, by the finalization service.  A closed row is
      immutable — see ``_block_closed_check_in_update``.
"""

from datetime import datetime, timezone

from sqlalchemy import event as _sa_event
from sqlalchemy import inspect as sa_inspect
from sqlalchemy import select
from sqlalchemy.orm import declared_attr, object_session

from maap.core.exceptions import ClosedCheckInError
from maap.models import db
from maap.services.completion_state import (
    ViewerRole,
    completion_state,
    other_participant_display_mode,
    viewer_display_mode,
)

# ── Constants ────────────────────────────────────────────────────────────────

POSITION_RATINGS = {
    -3: "Unacceptable",
    -2: "Significantly Below",
    -1: "Below Expectations",
    0: "Meeting Some",
    1: "Meeting",
    2: "Exceeding",
    3: "Greatly Exceeding",
}

ASSIGNMENT_RATINGS = ("working_to_meet", "meeting", "exceeding")
ASPIRATION_RATINGS = ("working_to_meet", "meeting", "exceeding")

PERSONAL_ALIGNMENTS = ("love", "like", "neutral", "prefer_not", "only_if_necessary")

_OPEN_PREDICATE = "official_check_in_completed_at IS NULL"


def _open_check_in_index(name: str, *columns: str) -> db.Index:
    """Partial unique index allowing a single open row per key."""
    return db.Index(
        name,
        *columns,
        unique=True,
        postgresql_where=db.text(_OPEN_PREDICATE),
        sqlite_where=db.text(_OPEN_PREDICATE),
    )


class CheckInMixin:
    """Columns and behaviour shared by every check-in table."""

    KIND = ""
    SUBJECT_COLUMN = ""
    # False when the open-row key is the teammate alone (position check-ins).
    UNIQUE_PER_SUBJECT = True
    EMPLOYEE_FIELDS: tuple = ("employee_rating", "employee_private_notes")
    MANAGER_FIELDS: tuple = ("manager_rating", "manager_private_notes")

    id = db.Column(db.Integer, primary_key=True)
    check_in_started_on = db.Column(db.Date, nullable=False)

    employee_private_notes = db.Column(db.Text, nullable=True)
    manager_private_notes = db.Column(db.Text, nullable=True)
    shared_notes = db.Column(db.Text, nullable=True)

    employee_completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    manager_completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    official_check_in_completed_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @declared_attr
    def teammate_id(cls):
        return db.Column(
            db.Integer, db.ForeignKey("teammates.id", ondelete="CASCADE"), nullable=False, index=True,
        )

    @declared_attr
    def manager_completed_by_id(cls):
        return db.Column(
            db.Integer, db.ForeignKey("teammates.id", ondelete="SET NULL"), nullable=True,
            comment="Manager-side teammate who completed; may differ from the direct manager",
        )

    @declared_attr
    def finalized_by_id(cls):
        return db.Column(
            db.Integer, db.ForeignKey("teammates.id", ondelete="SET NULL"), nullable=True,
        )

    @declared_attr
    def maap_snapshot_id(cls):
        return db.Column(
            db.Integer, db.ForeignKey("maap_snapshots.id", ondelete="RESTRICT"), nullable=True, index=True,
        )

    @declared_attr
    def teammate(cls):
        return db.relationship("Teammate", foreign_keys=[cls.teammate_id])

    @declared_attr
    def maap_snapshot(cls):
        return db.relationship("MaapSnapshot", foreign_keys=[cls.maap_snapshot_id])

    # ── Status ────────────────────────────────────────────────────────────

    @property
    def employee_completed(self) -> bool:
        return self.employee_completed_at is not None

    @property
    def manager_completed(self) -> bool:
        return self.manager_completed_at is not None

    @property
    def is_open(self) -> bool:
        return self.official_check_in_completed_at is None

    @property
    def officially_completed(self) -> bool:
        return not self.is_open

    @property
    def ready_for_finalization(self) -> bool:
        return self.is_open and self.employee_completed and self.manager_completed

    @property
    def completion_state(self):
        return completion_state(self.employee_completed, self.manager_completed)

    @property
    def subject_id(self):
        return getattr(self, self.SUBJECT_COLUMN)

    # ── Queries ───────────────────────────────────────────────────────────

    @classmethod
    def open_query(cls, teammate_id: int):
        return cls.query.filter(
            cls.teammate_id == teammate_id,
            cls.official_check_in_completed_at.is_(None),
        )

    @classmethod
    def ready_for_finalization_query(cls, teammate_id: int):
        """Open AND both completion timestamps present."""
        return cls.open_query(teammate_id).filter(
            cls.employee_completed_at.isnot(None),
            cls.manager_completed_at.isnot(None),
        )

    @classmethod
    def closed_query(cls, teammate_id: int):
        return cls.query.filter(
            cls.teammate_id == teammate_id,
            cls.official_check_in_completed_at.isnot(None),
        )

    @classmethod
    def latest_finalized_for(cls, teammate_id: int, subject_id: int | None = None):
        """Most recently finalized check-in for the teammate (and subject, if given)."""
        q = cls.closed_query(teammate_id)
        if subject_id is not None and cls.UNIQUE_PER_SUBJECT:
            q = q.filter(getattr(cls, cls.SUBJECT_COLUMN) == subject_id)
        return q.order_by(cls.official_check_in_completed_at.desc(), cls.id.desc()).first()

    # ── Validation ────────────────────────────────────────────────────────

    @classmethod
    def editable_fields(cls, role: ViewerRole) -> tuple:
        if role == ViewerRole.EMPLOYEE:
            return cls.EMPLOYEE_FIELDS
        if role == ViewerRole.MANAGER:
            return cls.MANAGER_FIELDS
        return ()

    @classmethod
    def coerce_rating(cls, value):
        """Return ``(value, None)`` for a valid rating, ``(None, message)`` otherwise."""
        raise NotImplementedError

    @classmethod
    def coerce_field(cls, field: str, value):
        """Validate one submitted field.  Returns ``(coerced, error_message | None)``."""
        if field in ("employee_rating", "manager_rating", "official_rating"):
            return cls.coerce_rating(value)
        if field in ("employee_private_notes", "manager_private_notes", "shared_notes"):
            return str(value).strip(), None
        return None, f"Unknown field '{field}' for {cls.KIND} check-in"

    # ── Display ───────────────────────────────────────────────────────────

    def display_modes(self, role: ViewerRole) -> dict:
        state = self.completion_state
        return {
            "viewer_display_mode": viewer_display_mode(state, role).value,
            "other_participant_display_mode": other_participant_display_mode(state, role).value,
        }

    def to_dict(self, viewer_role: str | None = None) -> dict:
        """Serialize.  Private notes are only included for their author side.

        ``viewer_role`` None means an internal (unfiltered) view; "readonly"
        hides both private notes.
        """
        role = viewer_role.value if isinstance(viewer_role, ViewerRole) else viewer_role
        data = {
            "id": self.id,
            "kind": self.KIND,
            "teammate_id": self.teammate_id,
            self.SUBJECT_COLUMN: self.subject_id,
            "check_in_started_on": self.check_in_started_on.isoformat() if self.check_in_started_on else None,
            "employee_rating": self.employee_rating,
            "manager_rating": self.manager_rating,
            "official_rating": self.official_rating,
            "shared_notes": self.shared_notes,
            "employee_completed_at": _iso(self.employee_completed_at),
            "manager_completed_at": _iso(self.manager_completed_at),
            "manager_completed_by_id": self.manager_completed_by_id,
            "official_check_in_completed_at": _iso(self.official_check_in_completed_at),
            "finalized_by_id": self.finalized_by_id,
            "maap_snapshot_id": self.maap_snapshot_id,
            "completion_state": self.completion_state.value,
            "ready_for_finalization": self.ready_for_finalization,
        }
        if role in (None, "employee"):
            data["employee_private_notes"] = self.employee_private_notes
        if role in (None, "manager"):
            data["manager_private_notes"] = self.manager_private_notes
        return data

    def __repr__(self):
        return (
            f"<{type(self).__name__} #{self.id} teammate={self.teammate_id} "
            f"{self.SUBJECT_COLUMN}={self.subject_id} {self.completion_state.value}>"
        )


def _iso(value):
    return value.isoformat() if value else None


def _coerce_choice(value, choices: tuple, label: str):
    text = str(value).strip()
    if text not in choices:
        return None, f"Invalid {label} '{value}'. Must be one of: {', '.join(choices)}"
    return text, None


# ═════════════════════════════════════════════════════════════════════════════
# Concrete check-in tables
# ═════════════════════════════════════════════════════════════════════════════


class PositionCheckIn(CheckInMixin, db.Model):
    __tablename__ = "position_check_ins"
    __table_args__ = (
        _open_check_in_index("uq_position_check_ins_open_teammate", "teammate_id"),
    )

    KIND = "position"
    SUBJECT_COLUMN = "employment_tenure_id"
    UNIQUE_PER_SUBJECT = False

    employment_tenure_id = db.Column(
        db.Integer, db.ForeignKey("employment_tenures.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    employee_rating = db.Column(db.Integer, nullable=True)
    manager_rating = db.Column(db.Integer, nullable=True)
    official_rating = db.Column(db.Integer, nullable=True)

    employment_tenure = db.relationship("EmploymentTenure")

    @classmethod
    def coerce_rating(cls, value):
        if isinstance(value, bool):
            return None, f"Invalid position rating '{value}'"
        try:
            rating = int(str(value).strip())
        except (TypeError, ValueError):
            return None, f"Invalid position rating '{value}'. Must be an integer from -3 to 3"
        if rating not in POSITION_RATINGS:
            return None, f"Invalid position rating '{value}'. Must be an integer from -3 to 3"
        return rating, None


class AssignmentCheckIn(CheckInMixin, db.Model):
    __tablename__ = "assignment_check_ins"
    __table_args__ = (
        _open_check_in_index("uq_assignment_check_ins_open_subject", "teammate_id", "assignment_id"),
    )

    KIND = "assignment"
    SUBJECT_COLUMN = "assignment_id"
    EMPLOYEE_FIELDS = (
        "employee_rating",
        "employee_private_notes",
        "actual_energy_percentage",
        "employee_personal_alignment",
    )

    assignment_id = db.Column(
        db.Integer, db.ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    employee_rating = db.Column(db.String(30), nullable=True)
    manager_rating = db.Column(db.String(30), nullable=True)
    official_rating = db.Column(db.String(30), nullable=True)
    actual_energy_percentage = db.Column(db.Integer, nullable=True)
    employee_personal_alignment = db.Column(
        db.String(30), nullable=True,
        comment="love | like | neutral | prefer_not | only_if_necessary",
    )

    assignment = db.relationship("Assignment")

    @property
    def assignment_tenure(self):
        """Currently active tenure on this assignment, or None."""
        from maap.models.tenure import AssignmentTenure

        return AssignmentTenure.active_for(self.teammate_id, self.assignment_id)

    @classmethod
    def coerce_rating(cls, value):
        return _coerce_choice(value, ASSIGNMENT_RATINGS, "assignment rating")

    @classmethod
    def coerce_field(cls, field: str, value):
        if field == "actual_energy_percentage":
            try:
                energy = int(str(value).strip())
            except (TypeError, ValueError):
                return None, f"Invalid energy percentage '{value}'"
            if not 0 <= energy <= 100:
                return None, "Energy percentage must be between 0 and 100"
            return energy, None
        if field == "employee_personal_alignment":
            return _coerce_choice(value, PERSONAL_ALIGNMENTS, "personal alignment")
        return super().coerce_field(field, value)

    def to_dict(self, viewer_role: str | None = None) -> dict:
        data = super().to_dict(viewer_role)
        data["actual_energy_percentage"] = self.actual_energy_percentage
        data["employee_personal_alignment"] = self.employee_personal_alignment
        return data


class AspirationCheckIn(CheckInMixin, db.Model):
    __tablename__ = "aspiration_check_ins"
    __table_args__ = (
        _open_check_in_index("uq_aspiration_check_ins_open_subject", "teammate_id", "aspiration_id"),
    )

    KIND = "aspiration"
    SUBJECT_COLUMN = "aspiration_id"

    aspiration_id = db.Column(
        db.Integer, db.ForeignKey("aspirations.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    employee_rating = db.Column(db.String(30), nullable=True)
    manager_rating = db.Column(db.String(30), nullable=True)
    official_rating = db.Column(db.String(30), nullable=True)

    aspiration = db.relationship("Aspiration")

    @classmethod
    def coerce_rating(cls, value):
        return _coerce_choice(value, ASPIRATION_RATINGS, "aspiration rating")


CHECK_IN_MODELS = {
    PositionCheckIn.KIND: PositionCheckIn,
    AssignmentCheckIn.KIND: AssignmentCheckIn,
    AspirationCheckIn.KIND: AspirationCheckIn,
}


def check_in_model_for(kind: str):
    """Return the model class for a kind name, or None when unknown."""
    return CHECK_IN_MODELS.get(kind)


# ── Immutability guard ───────────────────────────────────────────────────────


def _block_closed_check_in_update(mapper, connection, target) -> None:  # noqa: ANN001
    """Reject any flush that modifies a check-in which was already closed."""
    session = object_session(target)
    if session is not None and not session.is_modified(target, include_collections=False):
        return
    history = sa_inspect(target).attrs.official_check_in_completed_at.history
    previous = [*history.deleted, *history.unchanged]
    if not previous:
        # Attribute expired before the change; read the persisted value.
        table = mapper.local_table
        previous = [
            connection.execute(
                select(table.c.official_check_in_completed_at).where(table.c.id == target.id)
            ).scalar()
        ]
    if any(v is not None for v in previous):
        raise ClosedCheckInError(target.KIND, target.id)


for _model in CHECK_IN_MODELS.values():
    _sa_event.listen(_model, "before_update", _block_closed_check_in_update)
