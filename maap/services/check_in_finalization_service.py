"""
Check-in finalization — lock a batch of ready check-ins into one MAAP snapshot.

This is the ONLY code path that sets ``official_check_in_completed_at``.

Flow:
    1. Plan: every decision is resolved and validated before anything is
       written.  Any failure returns an error dict and the batch is dropped.
    2. Write (one transaction): create the MaapSnapshot, close each check-in
       marked ``finalize`` (official rating, shared notes, completion time,
       finalizer, snapshot link), roll the matching tenure over, and apply
       official rating / shared notes to entries left open.
    3. Commit.  A database fault rolls everything back and propagates.

Decisions::

    {
        "position":   {<check_in_id>: {"finalize": "1", "official_rating": 2, "shared_notes": "..."}},
        "assignment": {<check_in_id>: {"finalize": True, "official_rating": "meeting",
                                        "anticipated_energy_percentage": 40}},
        "aspiration": {<check_in_id>: {"finalize": False, "official_rating": "exceeding"}},
    }

Tenure roll-over:
    position    active employment tenure closed with official_position_rating,
                a new one starts today with the same position and manager
    assignment  active assignment tenure closed with official_rating, a new
                one starts today with the submitted anticipated energy (old
                value when blank); tenure-less check-ins close without roll-over
    aspiration  no tenure
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

from maap.models import db
from maap.models.check_in import AspirationCheckIn, check_in_model_for
from maap.models.maap_snapshot import MaapSnapshot
from maap.models.subject import Aspiration
from maap.models.tenure import AssignmentTenure, EmploymentTenure
from maap.utils.helpers import is_blank, parse_bool_flag, parse_int

logger = logging.getLogger(__name__)

KIND_ORDER = ("position", "assignment", "aspiration")

CHANGE_TYPE_BY_KIND = {
    "position": "position_tenure",
    "assignment": "assignment_management",
    "aspiration": "aspiration_management",
}
BULK_CHANGE_TYPE = "bulk_check_in_finalization"


@dataclass
class FinalizationDecision:
    """One validated entry of a finalization batch."""

    check_in: object
    finalize: bool
    official_rating: object = None
    shared_notes: str | None = None
    anticipated_energy_percentage: int | None = None

    @property
    def kind(self) -> str:
        return self.check_in.KIND


def determine_change_type(kinds) -> str:
    kinds = set(kinds)
    if len(kinds) == 1:
        return CHANGE_TYPE_BY_KIND[next(iter(kinds))]
    return BULK_CHANGE_TYPE


# ── Planning (read-only) ─────────────────────────────────────────────────────


def _plan_entry(teammate, kind: str, model, key, entry) -> tuple[FinalizationDecision | None, str | None, int]:
    """Validate one decision.  Returns ``(decision, error_message, http_status)``."""
    check_in_id = parse_int(key)
    check_in = db.session.get(model, check_in_id) if check_in_id is not None else None
    if check_in is None or check_in.teammate_id != teammate.id:
        return None, f"{kind.capitalize()} check-in {key} not found", 404
    if not check_in.is_open:
        return None, f"{kind.capitalize()} check-in {key} is already finalized", 409
    if not isinstance(entry, dict):
        return None, "Decision must be an object", 422

    finalize = parse_bool_flag(entry.get("finalize"))
    decision = FinalizationDecision(check_in=check_in, finalize=finalize)

    if finalize and not check_in.ready_for_finalization:
        return None, (
            f"{kind.capitalize()} check-in {key} is not ready for finalization: "
            "both employee and manager must complete it first"
        ), 422

    raw_rating = entry.get("official_rating")
    if is_blank(raw_rating):
        if finalize:
            return None, "An official rating is required to finalize", 422
    else:
        rating, err = model.coerce_rating(raw_rating)
        if err:
            return None, err, 422
        decision.official_rating = rating

    if not is_blank(entry.get("shared_notes")):
        decision.shared_notes = str(entry["shared_notes"]).strip()

    raw_energy = entry.get("anticipated_energy_percentage")
    if kind == "assignment" and not is_blank(raw_energy):
        energy, err = model.coerce_field("actual_energy_percentage", raw_energy)
        if err:
            return None, err, 422
        decision.anticipated_energy_percentage = energy

    return decision, None, 200


def plan_finalization(teammate, decisions: dict) -> tuple[list | None, dict | None]:
    """Validate a decisions payload without writing.

    Returns:
        ([FinalizationDecision, ...], None) on success.
        (None, {"error", "status", "details"}) when any entry is unusable.
    """
    if not isinstance(decisions, dict):
        return None, {"error": "Finalization decisions must be an object", "status": 422}

    plan: list[FinalizationDecision] = []
    details: dict[str, str] = {}
    seen: set[tuple[str, int]] = set()
    status = None
    for kind, entries in decisions.items():
        model = check_in_model_for(kind)
        if model is None:
            details[str(kind)] = f"Unknown check-in kind '{kind}'"
            status = status or 422
            continue
        if not isinstance(entries, dict):
            details[kind] = "Decisions must be an object keyed by check-in id"
            status = status or 422
            continue
        for key, entry in entries.items():
            decision, err, err_status = _plan_entry(teammate, kind, model, key, entry)
            if err:
                details[f"{kind}:{key}"] = err
                status = status or err_status
                continue
            # "7" and "07" name the same record
            if (kind, decision.check_in.id) in seen:
                details[f"{kind}:{key}"] = (
                    f"{kind.capitalize()} check-in {decision.check_in.id} appears more than once"
                )
                status = status or 422
                continue
            seen.add((kind, decision.check_in.id))
            plan.append(decision)

    if details:
        return None, {
            "error": "Finalization aborted: one or more check-ins cannot be finalized",
            "status": status,
            "details": details,
        }
    if not any(d.finalize for d in plan):
        return None, {"error": "No check-ins were selected for finalization", "status": 422}

    plan.sort(key=lambda d: (KIND_ORDER.index(d.kind), d.check_in.id))
    return plan, None


# ── Snapshot payload ─────────────────────────────────────────────────────────


def _position_data(teammate, plan) -> dict | None:
    employment = teammate.active_employment_tenure()
    if employment is None:
        return None
    rating = employment.official_position_rating
    for d in plan:
        if d.kind == "position" and d.finalize:
            rating = d.official_rating
    return {
        "position_id": employment.position_id,
        "manager_teammate_id": employment.manager_teammate_id,
        "employment_type": employment.employment_type,
        "official_position_rating": rating,
    }


def _assignment_data(teammate, plan) -> list[dict]:
    finalized = {d.check_in.assignment_id: d for d in plan if d.kind == "assignment" and d.finalize}
    rows = []
    active = (
        teammate.assignment_tenures
        .filter(AssignmentTenure.ended_at.is_(None))
        .order_by(AssignmentTenure.id.asc())
        .all()
    )
    for tenure in active:
        d = finalized.pop(tenure.assignment_id, None)
        energy = tenure.anticipated_energy_percentage
        rating = tenure.official_rating
        if d is not None:
            rating = d.official_rating
            if d.anticipated_energy_percentage is not None:
                energy = d.anticipated_energy_percentage
        rows.append({
            "assignment_id": tenure.assignment_id,
            "anticipated_energy_percentage": energy,
            "official_rating": rating,
        })
    for assignment_id, d in finalized.items():
        rows.append({
            "assignment_id": assignment_id,
            "anticipated_energy_percentage": d.anticipated_energy_percentage,
            "official_rating": d.official_rating,
        })
    return rows


def _aspiration_data(teammate, organization, plan) -> list[dict]:
    finalized = {d.check_in.aspiration_id: d for d in plan if d.kind == "aspiration" and d.finalize}
    rows = []
    for aspiration in Aspiration.within_hierarchy(organization).all():
        d = finalized.get(aspiration.id)
        if d is not None:
            rating = d.official_rating
        else:
            latest = AspirationCheckIn.latest_finalized_for(teammate.id, aspiration.id)
            rating = latest.official_rating if latest else None
        rows.append({"aspiration_id": aspiration.id, "official_rating": rating})
    return rows


def build_maap_data(teammate, plan) -> dict:
    """Complete MAAP state as it stands once ``plan`` is applied."""
    return {
        "position": _position_data(teammate, plan),
        "assignments": _assignment_data(teammate, plan),
        "aspirations": _aspiration_data(teammate, teammate.organization, plan),
        "finalized_check_ins": [
            {
                "kind": d.kind,
                "check_in_id": d.check_in.id,
                "subject_id": d.check_in.subject_id,
                "official_rating": d.official_rating,
                "shared_notes": d.shared_notes,
            }
            for d in plan if d.finalize
        ],
    }


# ── Tenure roll-over ─────────────────────────────────────────────────────────


def _roll_over_employment(check_in, decision: FinalizationDecision, today: date) -> None:
    tenure = check_in.employment_tenure
    if tenure is None or not tenure.is_active:
        tenure = check_in.teammate.active_employment_tenure()
    if tenure is None:
        return
    tenure.ended_at = today
    tenure.official_position_rating = decision.official_rating
    db.session.add(EmploymentTenure(
        teammate_id=tenure.teammate_id,
        organization_id=tenure.organization_id,
        position_id=tenure.position_id,
        manager_teammate_id=tenure.manager_teammate_id,
        employment_type=tenure.employment_type,
        started_at=today,
    ))


def _roll_over_assignment(check_in, decision: FinalizationDecision, today: date) -> None:
    tenure = AssignmentTenure.active_for(check_in.teammate_id, check_in.assignment_id)
    if tenure is None:
        return
    energy = decision.anticipated_energy_percentage
    if energy is None:
        energy = tenure.anticipated_energy_percentage
    tenure.ended_at = today
    tenure.official_rating = decision.official_rating
    db.session.add(AssignmentTenure(
        teammate_id=tenure.teammate_id,
        assignment_id=tenure.assignment_id,
        anticipated_energy_percentage=energy,
        started_at=today,
    ))


_ROLL_OVER = {
    "position": _roll_over_employment,
    "assignment": _roll_over_assignment,
}


# ── Public API ───────────────────────────────────────────────────────────────


def finalize_check_ins(teammate, decisions, finalized_by, request_info=None, reason=None):
    """Finalize a batch of check-ins for ``teammate`` as one unit.

    Args:
        teammate: Teammate whose check-ins are finalized.
        decisions: {kind: {check_in_id: {...}}} — see module docstring.
        finalized_by: Teammate performing the finalization.
        request_info: {ip_address, user_agent, ...} captured into the snapshot.
        reason: Snapshot reason; defaults to a generated description.

    Returns:
        (MaapSnapshot, None) on success.
        (None, {"error": ..., "status": int, "details"?: {...}}) on a business failure.

    Raises:
        SQLAlchemyError: database failures, after the transaction is rolled back.
    """
    plan, err = plan_finalization(teammate, decisions)
    if err:
        logger.info(
            "Finalization for teammate %s rejected: %s",
            teammate.id,
            err["error"],
            extra={"teammate_id": teammate.id, "details": err.get("details")},
        )
        return None, err

    now = datetime.now(timezone.utc)
    today = now.date()
    finalized = [d for d in plan if d.finalize]
    finalizer_name = finalized_by.person.display_name if finalized_by.person else None
    employee_name = teammate.person.display_name if teammate.person else f"teammate {teammate.id}"

    try:
        snapshot = MaapSnapshot(
            organization_id=teammate.organization_id,
            employee_teammate_id=teammate.id,
            created_by_teammate_id=finalized_by.id,
            created_by_name_snapshot=finalizer_name,
            change_type=determine_change_type(d.kind for d in finalized),
            reason=reason or f"Check-in finalization for {employee_name}",
            effective_date=now,
            maap_data=build_maap_data(teammate, plan),
            manager_request_info={
                **(request_info or {}),
                "finalized_by_id": finalized_by.id,
                "timestamp": now.isoformat(),
            },
        )
        db.session.add(snapshot)
        db.session.flush()

        for d in plan:
            check_in = d.check_in
            if d.official_rating is not None:
                check_in.official_rating = d.official_rating
            if d.shared_notes is not None:
                check_in.shared_notes = d.shared_notes
            if d.finalize:
                # closing columns are written together before the next flush
                check_in.official_check_in_completed_at = now
                check_in.finalized_by_id = finalized_by.id
                check_in.maap_snapshot_id = snapshot.id

        for d in finalized:
            roll_over = _ROLL_OVER.get(d.kind)
            if roll_over is not None:
                roll_over(d.check_in, d, today)

        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Finalization for teammate %s failed; rolled back", teammate.id)
        raise

    logger.info(
        "Finalized %d check-in(s) for teammate %s into snapshot %s",
        len(finalized),
        teammate.id,
        snapshot.id,
        extra={
            "teammate_id": teammate.id,
            "snapshot_id": snapshot.id,
            "change_type": snapshot.change_type,
        },
    )
    return snapshot, None
