"""
Organization domain model.

Models:
    - Organization: company or department; departments hang off ``parent_id``.
    - Person: a human being, independent of any organization.
    - Teammate: a person's membership in exactly one organization.
"""

from datetime import datetime, timezone

from maap.models import db


class Organization(db.Model):
    __tablename__ = "organizations"

    id = db.Column(db.Integer, primary_key=True)
    parent_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    parent = db.relationship("Organization", remote_side=[id], backref="children")
    teammates = db.relationship("Teammate", back_populates="organization", lazy="dynamic")

    def self_and_descendant_ids(self) -> list[int]:
        """Return this organization's id followed by every descendant id (breadth-first)."""
        ids = [self.id]
        frontier = [self.id]
        while frontier:
            child_ids = [
                row[0]
                for row in db.session.query(Organization.id)
                .filter(Organization.parent_id.in_(frontier))
                .all()
            ]
            child_ids = [cid for cid in child_ids if cid not in ids]
            ids.extend(child_ids)
            frontier = child_ids
        return ids

    def to_dict(self):
        return {
            "id": self.id,
            "parent_id": self.parent_id,
            "name": self.name,
        }

    def __repr__(self):
        return f"<Organization {self.id}: {self.name}>"


class Person(db.Model):
    __tablename__ = "people"

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(200), nullable=False)
    preferred_name = db.Column(db.String(100))
    email = db.Column(db.String(200), unique=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    teammates = db.relationship("Teammate", back_populates="person", lazy="dynamic")

    @property
    def display_name(self) -> str:
        return self.preferred_name or self.full_name

    def to_dict(self):
        return {
            "id": self.id,
            "full_name": self.full_name,
            "display_name": self.display_name,
            "email": self.email,
        }

    def __repr__(self):
        return f"<Person {self.id}: {self.full_name}>"


class Teammate(db.Model):
    """
    Membership of a Person in an Organization.

    Owns at most one open check-in per subject; see models/check_in.py for the
    partial unique indexes that enforce it.
    """

    __tablename__ = "teammates"
    __table_args__ = (
        db.UniqueConstraint("person_id", "organization_id", name="uq_teammates_person_org"),
    )

    id = db.Column(db.Integer, primary_key=True)
    person_id = db.Column(
        db.Integer, db.ForeignKey("people.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    person = db.relationship("Person", back_populates="teammates")
    organization = db.relationship("Organization", back_populates="teammates")
    employment_tenures = db.relationship(
        "EmploymentTenure",
        back_populates="teammate",
        lazy="dynamic",
        foreign_keys="EmploymentTenure.teammate_id",
    )
    assignment_tenures = db.relationship(
        "AssignmentTenure", back_populates="teammate", lazy="dynamic",
    )

    def active_employment_tenure(self):
        """Return the open EmploymentTenure (``ended_at IS NULL``), newest first."""
        from maap.models.tenure import EmploymentTenure

        return (
            self.employment_tenures
            .filter(EmploymentTenure.ended_at.is_(None))
            .order_by(EmploymentTenure.started_at.desc(), EmploymentTenure.id.desc())
            .first()
        )

    def current_manager(self):
        """Manager Teammate from the active employment tenure, if any."""
        tenure = self.active_employment_tenure()
        return tenure.manager_teammate if tenure else None

    def to_dict(self):
        return {
            "id": self.id,
            "person_id": self.person_id,
            "organization_id": self.organization_id,
            "display_name": self.person.display_name if self.person else None,
        }

    def __repr__(self):
        return f"<Teammate {self.id}: person={self.person_id} org={self.organization_id}>"
