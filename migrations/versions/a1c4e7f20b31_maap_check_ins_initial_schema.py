"""maap_check_ins_initial_schema

Organizations, people, teammates, subjects, tenures, the three check-in
tables (with partial unique indexes allowing a single open row per subject),
MAAP snapshots and the notification outbox.

Revision ID: a1c4e7f20b31
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "a1c4e7f20b31"
down_revision = None
branch_labels = None
depends_on = None

_OPEN = "official_check_in_completed_at IS NULL"


def _check_in_columns():
    """Columns shared by every check-in table."""
    return [
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("teammate_id", sa.Integer(), nullable=False),
        sa.Column("check_in_started_on", sa.Date(), nullable=False),
        sa.Column("employee_private_notes", sa.Text(), nullable=True),
        sa.Column("manager_private_notes", sa.Text(), nullable=True),
        sa.Column("shared_notes", sa.Text(), nullable=True),
        sa.Column("employee_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("manager_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("manager_completed_by_id", sa.Integer(), nullable=True),
        sa.Column("official_check_in_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finalized_by_id", sa.Integer(), nullable=True),
        sa.Column("maap_snapshot_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["teammate_id"], ["teammates.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["manager_completed_by_id"], ["teammates.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["finalized_by_id"], ["teammates.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["maap_snapshot_id"], ["maap_snapshots.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    ]


def _check_in_indexes(table, open_index, open_columns, subject_column):
    op.create_index(f"ix_{table}_teammate_id", table, ["teammate_id"])
    op.create_index(f"ix_{table}_{subject_column}", table, [subject_column])
    op.create_index(f"ix_{table}_maap_snapshot_id", table, ["maap_snapshot_id"])
    op.create_index(
        f"ix_{table}_official_check_in_completed_at", table, ["official_check_in_completed_at"],
    )
    op.create_index(
        open_index,
        table,
        open_columns,
        unique=True,
        postgresql_where=sa.text(_OPEN),
        sqlite_where=sa.text(_OPEN),
    )


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "organizations" not in existing_tables:
        op.create_table(
            "organizations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("parent_id", sa.Integer(), nullable=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["parent_id"], ["organizations.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_organizations_parent_id", "organizations", ["parent_id"])

    if "people" not in existing_tables:
        op.create_table(
            "people",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("full_name", sa.String(length=200), nullable=False),
            sa.Column("preferred_name", sa.String(length=100), nullable=True),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )

    if "teammates" not in existing_tables:
        op.create_table(
            "teammates",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("person_id", sa.Integer(), nullable=False),
            sa.Column("organization_id", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["person_id"], ["people.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("person_id", "organization_id", name="uq_teammates_person_org"),
        )
        op.create_index("ix_teammates_person_id", "teammates", ["person_id"])
        op.create_index("ix_teammates_organization_id", "teammates", ["organization_id"])

    if "positions" not in existing_tables:
        op.create_table(
            "positions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("organization_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_positions_organization_id", "positions", ["organization_id"])

    if "assignments" not in existing_tables:
        op.create_table(
            "assignments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("organization_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_assignments_organization_id", "assignments", ["organization_id"])

    if "position_assignments" not in existing_tables:
        op.create_table(
            "position_assignments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("position_id", sa.Integer(), nullable=False),
            sa.Column("assignment_id", sa.Integer(), nullable=False),
            sa.Column("assignment_type", sa.String(length=20), nullable=False),
            sa.ForeignKeyConstraint(["position_id"], ["positions.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["assignment_id"], ["assignments.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("position_id", "assignment_id", name="uq_position_assignments_pair"),
        )
        op.create_index("ix_position_assignments_position_id", "position_assignments", ["position_id"])
        op.create_index("ix_position_assignments_assignment_id", "position_assignments", ["assignment_id"])

    if "aspirations" not in existing_tables:
        op.create_table(
            "aspirations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("organization_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_aspirations_organization_id", "aspirations", ["organization_id"])

    if "employment_tenures" not in existing_tables:
        op.create_table(
            "employment_tenures",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("teammate_id", sa.Integer(), nullable=False),
            sa.Column("organization_id", sa.Integer(), nullable=False),
            sa.Column("position_id", sa.Integer(), nullable=True),
            sa.Column("manager_teammate_id", sa.Integer(), nullable=True),
            sa.Column("employment_type", sa.String(length=30), nullable=True),
            sa.Column("started_at", sa.Date(), nullable=False),
            sa.Column("ended_at", sa.Date(), nullable=True),
            sa.Column("official_position_rating", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["teammate_id"], ["teammates.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["position_id"], ["positions.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["manager_teammate_id"], ["teammates.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_employment_tenures_teammate_id", "employment_tenures", ["teammate_id"])
        op.create_index("ix_employment_tenures_organization_id", "employment_tenures", ["organization_id"])
        op.create_index("ix_employment_tenures_position_id", "employment_tenures", ["position_id"])

    if "assignment_tenures" not in existing_tables:
        op.create_table(
            "assignment_tenures",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("teammate_id", sa.Integer(), nullable=False),
            sa.Column("assignment_id", sa.Integer(), nullable=False),
            sa.Column("anticipated_energy_percentage", sa.Integer(), nullable=True),
            sa.Column("started_at", sa.Date(), nullable=False),
            sa.Column("ended_at", sa.Date(), nullable=True),
            sa.Column("official_rating", sa.String(length=30), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["teammate_id"], ["teammates.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["assignment_id"], ["assignments.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_assignment_tenures_teammate_id", "assignment_tenures", ["teammate_id"])
        op.create_index("ix_assignment_tenures_assignment_id", "assignment_tenures", ["assignment_id"])

    if "maap_snapshots" not in existing_tables:
        op.create_table(
            "maap_snapshots",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("organization_id", sa.Integer(), nullable=False),
            sa.Column("employee_teammate_id", sa.Integer(), nullable=False),
            sa.Column("created_by_teammate_id", sa.Integer(), nullable=True),
            sa.Column("created_by_name_snapshot", sa.String(length=200), nullable=True),
            sa.Column("change_type", sa.String(length=40), nullable=False),
            sa.Column("reason", sa.Text(), nullable=False),
            sa.Column("effective_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("maap_data", sa.JSON(), nullable=False),
            sa.Column("manager_request_info", sa.JSON(), nullable=False),
            sa.Column("employee_acknowledged_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("employee_acknowledgement_request_info", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["employee_teammate_id"], ["teammates.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["created_by_teammate_id"], ["teammates.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_maap_snapshots_organization_id", "maap_snapshots", ["organization_id"])
        op.create_index(
            "ix_maap_snapshots_employee_created", "maap_snapshots", ["employee_teammate_id", "created_at"],
        )

    if "position_check_ins" not in existing_tables:
        op.create_table(
            "position_check_ins",
            *_check_in_columns(),
            sa.Column("employment_tenure_id", sa.Integer(), nullable=True),
            sa.Column("employee_rating", sa.Integer(), nullable=True),
            sa.Column("manager_rating", sa.Integer(), nullable=True),
            sa.Column("official_rating", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["employment_tenure_id"], ["employment_tenures.id"], ondelete="SET NULL"),
        )
        _check_in_indexes(
            "position_check_ins", "uq_position_check_ins_open_teammate",
            ["teammate_id"], "employment_tenure_id",
        )

    if "assignment_check_ins" not in existing_tables:
        op.create_table(
            "assignment_check_ins",
            *_check_in_columns(),
            sa.Column("assignment_id", sa.Integer(), nullable=False),
            sa.Column("employee_rating", sa.String(length=30), nullable=True),
            sa.Column("manager_rating", sa.String(length=30), nullable=True),
            sa.Column("official_rating", sa.String(length=30), nullable=True),
            sa.Column("actual_energy_percentage", sa.Integer(), nullable=True),
            sa.Column("employee_personal_alignment", sa.String(length=30), nullable=True),
            sa.ForeignKeyConstraint(["assignment_id"], ["assignments.id"], ondelete="CASCADE"),
        )
        _check_in_indexes(
            "assignment_check_ins", "uq_assignment_check_ins_open_subject",
            ["teammate_id", "assignment_id"], "assignment_id",
        )

    if "aspiration_check_ins" not in existing_tables:
        op.create_table(
            "aspiration_check_ins",
            *_check_in_columns(),
            sa.Column("aspiration_id", sa.Integer(), nullable=False),
            sa.Column("employee_rating", sa.String(length=30), nullable=True),
            sa.Column("manager_rating", sa.String(length=30), nullable=True),
            sa.Column("official_rating", sa.String(length=30), nullable=True),
            sa.ForeignKeyConstraint(["aspiration_id"], ["aspirations.id"], ondelete="CASCADE"),
        )
        _check_in_indexes(
            "aspiration_check_ins", "uq_aspiration_check_ins_open_subject",
            ["teammate_id", "aspiration_id"], "aspiration_id",
        )

    if "check_in_notifications" not in existing_tables:
        op.create_table(
            "check_in_notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("organization_id", sa.Integer(), nullable=True),
            sa.Column("check_in_kind", sa.String(length=20), nullable=False),
            sa.Column("check_in_id", sa.Integer(), nullable=False),
            sa.Column("completion_state", sa.String(length=40), nullable=False),
            sa.Column("payload", sa.JSON(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("attempts", sa.Integer(), nullable=False),
            sa.Column("last_error", sa.Text(), nullable=True),
            sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["organization_id"], ["organizations.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_check_in_notifications_organization_id", "check_in_notifications", ["organization_id"],
        )
        op.create_index("ix_check_in_notifications_status", "check_in_notifications", ["status", "created_at"])
        op.create_index(
            "ix_check_in_notifications_check_in", "check_in_notifications", ["check_in_kind", "check_in_id"],
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    for table in (
        "check_in_notifications",
        "aspiration_check_ins",
        "assignment_check_ins",
        "position_check_ins",
        "maap_snapshots",
        "assignment_tenures",
        "employment_tenures",
        "aspirations",
        "position_assignments",
        "assignments",
        "positions",
        "teammates",
        "people",
        "organizations",
    ):
        if table in existing_tables:
            op.drop_table(table)
