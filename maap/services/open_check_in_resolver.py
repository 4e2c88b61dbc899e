"""
Open check-in resolver — find-or-create the single open check-in per subject.

Creation is insert-first: the row is added inside a SAVEPOINT and the partial
unique index (``official_check_in_completed_at IS NULL``) rejects a second
open row.  When a concurrent request won the race the savepoint is rolled
back and the winner's row is re-read, so callers never see the conflict.

Every returned record is re-read with ``populate_existing`` so the caller
never acts on a stale identity-map copy.

Subject discovery (what a teammate should currently be checked in on):
    discover_position_check_in     active employment tenure, or None
    discover_assignment_check_ins  active tenures + position assignments +
                                   already-open check-ins, energy ordered
    discover_aspiration_check_ins  aspirations in the organization hierarchy
    load_check_ins                 all three in one dict
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.exc import IntegrityError

from maap.models import db
from maap.models.check_in import AssignmentCheckIn, check_in_model_for
from maap.models.subject import Aspiration
from maap.models.tenure import AssignmentTenure

logger = logging.getLogger(__name__)


# ── Lookup / create ──────────────────────────────────────────────────────────


def _subject_id(subject) -> int | None:
    if subject is None:
        return None
    return subject if isinstance(subject, int) else subject.id


def _find_open(model, teammate_id: int, subject_id: int | None):
    """Fresh read of the open row for (teammate, subject)."""
    q = model.open_query(teammate_id)
    if model.UNIQUE_PER_SUBJECT:
        q = q.filter(getattr(model, model.SUBJECT_COLUMN) == subject_id)
    return q.populate_existing().order_by(model.id.asc()).first()


def resolve_open(teammate, kind: str, subject=None, *, require_tenure: bool = False):
    """Return the open check-in for ``(teammate, subject)``, creating it if needed.

    Args:
        teammate: Teammate being checked in on.
        kind: "position" | "assignment" | "aspiration".
        subject: EmploymentTenure / Assignment / Aspiration (or its id).  For
            position check-ins it defaults to the active employment tenure.
        require_tenure: Assignment only — return None instead of creating when
            the teammate holds no active tenure on the assignment.

    Returns:
        The open check-in, or None when no subject applies (position with no
        active employment tenure, or ``require_tenure`` unmet).

    Raises:
        ValueError: unknown kind, or a subject-less assignment/aspiration call.
    """
    model = check_in_model_for(kind)
    if model is None:
        raise ValueError(f"Unknown check-in kind: {kind!r}")

    if kind == "position" and subject is None:
        subject = teammate.active_employment_tenure()
        if subject is None:
            return None

    subject_id = _subject_id(subject)
    if subject_id is None:
        raise ValueError(f"A subject is required for {kind} check-ins")

    if kind == "assignment" and require_tenure:
        if AssignmentTenure.active_for(teammate.id, subject_id) is None:
            return None

    existing = _find_open(model, teammate.id, subject_id)
    if existing is not None:
        return existing

    check_in = model(
        teammate_id=teammate.id,
        check_in_started_on=date.today(),
        **{model.SUBJECT_COLUMN: subject_id},
    )
    try:
        with db.session.begin_nested():
            db.session.add(check_in)
    except IntegrityError:
        logger.info(
            "Open %s check-in already created concurrently; re-reading",
            kind,
            extra={"teammate_id": teammate.id, "subject_id": subject_id},
        )
        winner = _find_open(model, teammate.id, subject_id)
        if winner is None:
            raise
        return winner

    db.session.commit()
    logger.info(
        "Opened %s check-in %s",
        kind,
        check_in.id,
        extra={"teammate_id": teammate.id, "subject_id": subject_id},
    )
    return _find_open(model, teammate.id, subject_id)


# ── Discovery ────────────────────────────────────────────────────────────────


def discover_position_check_in(teammate):
    return resolve_open(teammate, "position")


def _active_assignment_tenures(teammate):
    return (
        teammate.assignment_tenures
        .filter(AssignmentTenure.ended_at.is_(None))
        .order_by(AssignmentTenure.started_at.asc(), AssignmentTenure.id.asc())
        .all()
    )


def _energy_sort_key(entry):
    energy = entry[1].anticipated_energy_percentage
    return (1, 0) if energy is None else (0, -energy)


def discover_assignment_check_ins(teammate, organization=None) -> list:
    """Open assignment check-ins, active-tenure ones first by energy (desc, nulls last).

    When ``organization`` is given, only assignments owned by it or one of its
    descendants are considered.  Candidate assignments, first occurrence wins:
        1. assignments with an active tenure
        2. required, then suggested, assignments of the current position
        3. assignments that already have an open check-in
    """
    candidates = []
    seen = set()
    allowed_org_ids = set(organization.self_and_descendant_ids()) if organization is not None else None

    def _add(assignment):
        if assignment is None or assignment.id in seen:
            return
        if allowed_org_ids is not None and assignment.organization_id not in allowed_org_ids:
            return
        seen.add(assignment.id)
        candidates.append(assignment.id)

    for tenure in _active_assignment_tenures(teammate):
        _add(tenure.assignment)

    employment = teammate.active_employment_tenure()
    if employment is not None and employment.position is not None:
        position = employment.position
        for assignment in position.required_assignments + position.suggested_assignments:
            _add(assignment)

    for check_in in AssignmentCheckIn.open_query(teammate.id).order_by(AssignmentCheckIn.id.asc()):
        _add(check_in.assignment)

    with_tenure = []
    without_tenure = []
    for assignment_id in candidates:
        check_in = resolve_open(teammate, "assignment", assignment_id)
        tenure = AssignmentTenure.active_for(teammate.id, assignment_id)
        if tenure is not None:
            with_tenure.append((check_in, tenure))
        else:
            without_tenure.append(check_in)

    # sorted() is stable, so equal energies keep discovery order
    with_tenure = sorted(with_tenure, key=_energy_sort_key)
    return [check_in for check_in, _ in with_tenure] + without_tenure


def discover_aspiration_check_ins(teammate, organization) -> list:
    return [
        resolve_open(teammate, "aspiration", aspiration)
        for aspiration in Aspiration.within_hierarchy(organization).all()
    ]


def load_check_ins(teammate, organization) -> dict:
    """Resolve every open check-in the teammate should currently see."""
    return {
        "position": discover_position_check_in(teammate),
        "assignments": discover_assignment_check_ins(teammate, organization),
        "aspirations": discover_aspiration_check_ins(teammate, organization),
    }
