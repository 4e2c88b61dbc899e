"""
Check-in subjects: the things a teammate is reviewed against.

Models:
    - Position: a role in an organization; carries required/suggested assignments.
    - Assignment: a unit of responsibility a teammate may hold a tenure on.
    - PositionAssignment: links a Position to an Assignment as required or suggested.
    - Aspiration: organization-wide value or behaviour everyone is checked in on.

Subjects are looked up by the check-in engine, never created by it.
"""

from datetime import datetime, timezone

from maap.models import db

POSITION_ASSIGNMENT_TYPES = ("required", "suggested")


class Position(db.Model):
    __tablename__ = "positions"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    position_assignments = db.relationship(
        "PositionAssignment",
        back_populates="position",
        cascade="all, delete-orphan",
        order_by="PositionAssignment.id",
    )

    @property
    def required_assignments(self):
        return [pa.assignment for pa in self.position_assignments if pa.assignment_type == "required"]

    @property
    def suggested_assignments(self):
        return [pa.assignment for pa in self.position_assignments if pa.assignment_type == "suggested"]

    def to_dict(self):
        return {"id": self.id, "organization_id": self.organization_id, "title": self.title}

    def __repr__(self):
        return f"<Position {self.id}: {self.title}>"


class Assignment(db.Model):
    __tablename__ = "assignments"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {"id": self.id, "organization_id": self.organization_id, "title": self.title}

    def __repr__(self):
        return f"<Assignment {self.id}: {self.title}>"


class PositionAssignment(db.Model):
    __tablename__ = "position_assignments"
    __table_args__ = (
        db.UniqueConstraint("position_id", "assignment_id", name="uq_position_assignments_pair"),
    )

    id = db.Column(db.Integer, primary_key=True)
    position_id = db.Column(
        db.Integer, db.ForeignKey("positions.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    assignment_id = db.Column(
        db.Integer, db.ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    assignment_type = db.Column(
        db.String(20), nullable=False, default="required",
        comment="required | suggested",
    )

    position = db.relationship("Position", back_populates="position_assignments")
    assignment = db.relationship("Assignment")


class Aspiration(db.Model):
    __tablename__ = "aspirations"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @classmethod
    def within_hierarchy(cls, organization):
        """Aspirations owned by the organization or any descendant, in display order."""
        return (
            cls.query
            .filter(cls.organization_id.in_(organization.self_and_descendant_ids()))
            .order_by(cls.sort_order.asc(), cls.name.asc(), cls.id.asc())
        )

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "name": self.name,
            "sort_order": self.sort_order,
        }

    def __repr__(self):
        return f"<Aspiration {self.id}: {self.name}>"
