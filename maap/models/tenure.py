"""
Tenure models — time-bounded holdings of a position or an assignment.

A tenure is active while ``ended_at IS NULL``.  Finalization closes the active
tenure with the official rating and starts a fresh one (see
services/check_in_finalization_service.py).
"""

from datetime import datetime, timezone

from maap.models import db


class EmploymentTenure(db.Model):
    __tablename__ = "employment_tenures"

    id = db.Column(db.Integer, primary_key=True)
    teammate_id = db.Column(
        db.Integer, db.ForeignKey("teammates.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    position_id = db.Column(
        db.Integer, db.ForeignKey("positions.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    manager_teammate_id = db.Column(
        db.Integer, db.ForeignKey("teammates.id", ondelete="SET NULL"), nullable=True,
    )
    employment_type = db.Column(db.String(30), default="full_time")
    started_at = db.Column(db.Date, nullable=False)
    ended_at = db.Column(db.Date, nullable=True)
    official_position_rating = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    teammate = db.relationship(
        "Teammate", back_populates="employment_tenures", foreign_keys=[teammate_id],
    )
    manager_teammate = db.relationship("Teammate", foreign_keys=[manager_teammate_id])
    position = db.relationship("Position")

    @property
    def is_active(self) -> bool:
        return self.ended_at is None

    def to_dict(self):
        return {
            "id": self.id,
            "teammate_id": self.teammate_id,
            "organization_id": self.organization_id,
            "position_id": self.position_id,
            "manager_teammate_id": self.manager_teammate_id,
            "employment_type": self.employment_type,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "official_position_rating": self.official_position_rating,
        }

    def __repr__(self):
        return f"<EmploymentTenure {self.id}: teammate={self.teammate_id} active={self.is_active}>"


class AssignmentTenure(db.Model):
    __tablename__ = "assignment_tenures"

    id = db.Column(db.Integer, primary_key=True)
    teammate_id = db.Column(
        db.Integer, db.ForeignKey("teammates.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    assignment_id = db.Column(
        db.Integer, db.ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    anticipated_energy_percentage = db.Column(db.Integer, nullable=True)
    started_at = db.Column(db.Date, nullable=False)
    ended_at = db.Column(db.Date, nullable=True)
    official_rating = db.Column(db.String(30), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    teammate = db.relationship("Teammate", back_populates="assignment_tenures")
    assignment = db.relationship("Assignment")

    @property
    def is_active(self) -> bool:
        return self.ended_at is None

    @classmethod
    def active_for(cls, teammate_id: int, assignment_id: int):
        return (
            cls.query
            .filter_by(teammate_id=teammate_id, assignment_id=assignment_id)
            .filter(cls.ended_at.is_(None))
            .order_by(cls.started_at.desc(), cls.id.desc())
            .first()
        )

    def to_dict(self):
        return {
            "id": self.id,
            "teammate_id": self.teammate_id,
            "assignment_id": self.assignment_id,
            "anticipated_energy_percentage": self.anticipated_energy_percentage,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "official_rating": self.official_rating,
        }

    def __repr__(self):
        return f"<AssignmentTenure {self.id}: assignment={self.assignment_id} active={self.is_active}>"
