"""
Check-in finalization service tests.

Covers batch finalization into a single MAAP snapshot, the all-or-nothing
validation pass, tenure roll-over and change_type selection.
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from maap.models import db as _db
from maap.models.check_in import AspirationCheckIn, AssignmentCheckIn, PositionCheckIn
from maap.models.maap_snapshot import MaapSnapshot
from maap.models.subject import Aspiration, Assignment
from maap.models.tenure import AssignmentTenure, EmploymentTenure
from maap.services import check_in_finalization_service as finalization_service
from maap.services.check_in_finalization_service import (
    BULK_CHANGE_TYPE,
    determine_change_type,
    finalize_check_ins,
    plan_finalization,
)


def _utc_today():
    return datetime.now(timezone.utc).date()


def _complete(check_in):
    now = datetime.now(timezone.utc)
    check_in.employee_completed_at = now
    check_in.manager_completed_at = now
    return check_in


def _make_position_check_in(teammate, tenure, ready=True):
    check_in = PositionCheckIn(
        teammate_id=teammate.id, employment_tenure_id=tenure.id, check_in_started_on=date.today(),
    )
    if ready:
        _complete(check_in)
    _db.session.add(check_in)
    _db.session.commit()
    return check_in


def _make_assignment_check_in(teammate, organization, title, energy=None, with_tenure=True, ready=True):
    assignment = Assignment(organization_id=organization.id, title=title)
    _db.session.add(assignment)
    _db.session.flush()
    if with_tenure:
        _db.session.add(AssignmentTenure(
            teammate_id=teammate.id,
            assignment_id=assignment.id,
            anticipated_energy_percentage=energy,
            started_at=date.today() - timedelta(days=60),
        ))
    check_in = AssignmentCheckIn(
        teammate_id=teammate.id, assignment_id=assignment.id, check_in_started_on=date.today(),
    )
    if ready:
        _complete(check_in)
    _db.session.add(check_in)
    _db.session.commit()
    return check_in


def _make_aspiration_check_in(teammate, organization, name="Curiosity", ready=True):
    aspiration = Aspiration(organization_id=organization.id, name=name)
    _db.session.add(aspiration)
    _db.session.flush()
    check_in = AspirationCheckIn(
        teammate_id=teammate.id, aspiration_id=aspiration.id, check_in_started_on=date.today(),
    )
    if ready:
        _complete(check_in)
    _db.session.add(check_in)
    _db.session.commit()
    return check_in


# ── change_type ──────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "kinds, expected",
    [
        (["position"], "position_tenure"),
        (["assignment", "assignment"], "assignment_management"),
        (["aspiration"], "aspiration_management"),
        (["position", "aspiration"], BULK_CHANGE_TYPE),
    ],
)
def test_determine_change_type(kinds, expected):
    assert determine_change_type(kinds) == expected


# ── Batch finalization ───────────────────────────────────────────────────────


def test_bulk_finalization_into_one_snapshot(employee, manager, organization, employment_tenure):
    position_ci = _make_position_check_in(employee, employment_tenure)
    heavy = _make_assignment_check_in(employee, organization, "Heavy", energy=70)
    light = _make_assignment_check_in(employee, organization, "Light", energy=20)
    aspiration_ci = _make_aspiration_check_in(employee, organization)

    snapshot, err = finalize_check_ins(
        employee,
        {
            "position": {str(position_ci.id): {"finalize": "1", "official_rating": "2", "shared_notes": "Great year"}},
            "assignment": {
                str(heavy.id): {"finalize": True, "official_rating": "exceeding", "anticipated_energy_percentage": "60"},
                str(light.id): {"finalize": "true", "official_rating": "meeting"},
            },
            "aspiration": {str(aspiration_ci.id): {"finalize": True, "official_rating": "meeting"}},
        },
        finalized_by=manager,
        request_info={"ip_address": "10.0.0.7", "user_agent": "pytest"},
    )

    assert err is None
    assert snapshot.change_type == BULK_CHANGE_TYPE
    assert snapshot.created_by_teammate_id == manager.id
    assert snapshot.created_by_name_snapshot == "Morgan Manager"
    assert snapshot.reason == "Check-in finalization for Erin Employee"
    assert snapshot.manager_request_info["ip_address"] == "10.0.0.7"
    assert snapshot.manager_request_info["finalized_by_id"] == manager.id
    assert MaapSnapshot.query.count() == 1

    for model, check_in in (
        (PositionCheckIn, position_ci),
        (AssignmentCheckIn, heavy),
        (AssignmentCheckIn, light),
        (AspirationCheckIn, aspiration_ci),
    ):
        stored = _db.session.get(model, check_in.id)
        assert stored.officially_completed
        assert stored.maap_snapshot_id == snapshot.id
        assert stored.finalized_by_id == manager.id

    assert _db.session.get(PositionCheckIn, position_ci.id).official_rating == 2
    assert _db.session.get(PositionCheckIn, position_ci.id).shared_notes == "Great year"

    data = snapshot.maap_data
    assert data["position"]["official_position_rating"] == 2
    assert {row["assignment_id"]: row["anticipated_energy_percentage"] for row in data["assignments"]} == {
        heavy.assignment_id: 60,
        light.assignment_id: 20,
    }
    assert data["aspirations"] == [{"aspiration_id": aspiration_ci.aspiration_id, "official_rating": "meeting"}]
    assert [entry["kind"] for entry in data["finalized_check_ins"]] == [
        "position", "assignment", "assignment", "aspiration",
    ]


def test_position_tenure_rolls_over(employee, manager, organization, employment_tenure, position):
    check_in = _make_position_check_in(employee, employment_tenure)

    snapshot, err = finalize_check_ins(
        employee,
        {"position": {check_in.id: {"finalize": True, "official_rating": -1}}},
        finalized_by=manager,
    )

    assert err is None
    assert snapshot.change_type == "position_tenure"
    old = _db.session.get(EmploymentTenure, employment_tenure.id)
    assert old.ended_at == _utc_today()
    assert old.official_position_rating == -1
    current = employee.active_employment_tenure()
    assert current.id != old.id
    assert current.position_id == position.id
    assert current.manager_teammate_id == manager.id
    assert current.started_at == _utc_today()


def test_assignment_tenure_rolls_over_with_new_energy(employee, manager, organization):
    check_in = _make_assignment_check_in(employee, organization, "On-call", energy=50)

    snapshot, err = finalize_check_ins(
        employee,
        {"assignment": {check_in.id: {
            "finalize": True, "official_rating": "working_to_meet", "anticipated_energy_percentage": 25,
        }}},
        finalized_by=manager,
    )

    assert err is None
    tenures = AssignmentTenure.query.filter_by(assignment_id=check_in.assignment_id).order_by(AssignmentTenure.id).all()
    assert len(tenures) == 2
    assert tenures[0].ended_at == _utc_today()
    assert tenures[0].official_rating == "working_to_meet"
    assert tenures[1].is_active
    assert tenures[1].anticipated_energy_percentage == 25


def test_assignment_without_tenure_finalizes(employee, manager, organization):
    check_in = _make_assignment_check_in(employee, organization, "Former duty", with_tenure=False)

    snapshot, err = finalize_check_ins(
        employee,
        {"assignment": {check_in.id: {"finalize": True, "official_rating": "meeting"}}},
        finalized_by=manager,
    )

    assert err is None
    assert _db.session.get(AssignmentCheckIn, check_in.id).officially_completed
    assert AssignmentTenure.query.count() == 0
    assert snapshot.maap_data["assignments"] == [
        {"assignment_id": check_in.assignment_id, "anticipated_energy_percentage": None, "official_rating": "meeting"},
    ]


def test_unselected_entries_stay_open_with_rating(employee, manager, organization):
    chosen = _make_aspiration_check_in(employee, organization, "Curiosity")
    deferred = _make_aspiration_check_in(employee, organization, "Ownership", ready=False)

    snapshot, err = finalize_check_ins(
        employee,
        {"aspiration": {
            chosen.id: {"finalize": True, "official_rating": "exceeding"},
            deferred.id: {"finalize": "0", "official_rating": "meeting", "shared_notes": "Next time"},
        }},
        finalized_by=manager,
    )

    assert err is None
    stored = _db.session.get(AspirationCheckIn, deferred.id)
    assert stored.is_open
    assert stored.official_rating == "meeting"
    assert stored.shared_notes == "Next time"
    assert stored.maap_snapshot_id is None
    assert [e["check_in_id"] for e in snapshot.maap_data["finalized_check_ins"]] == [chosen.id]


# ── Validation (nothing written) ─────────────────────────────────────────────


def test_not_ready_entry_aborts_whole_batch(employee, manager, organization):
    ready = _make_aspiration_check_in(employee, organization, "Curiosity")
    half = _make_aspiration_check_in(employee, organization, "Ownership", ready=False)
    half.employee_completed_at = datetime.now(timezone.utc)
    _db.session.commit()

    snapshot, err = finalize_check_ins(
        employee,
        {"aspiration": {
            ready.id: {"finalize": True, "official_rating": "meeting"},
            half.id: {"finalize": True, "official_rating": "meeting"},
        }},
        finalized_by=manager,
    )

    assert snapshot is None
    assert err["status"] == 422
    assert f"aspiration:{half.id}" in err["details"]
    assert MaapSnapshot.query.count() == 0
    assert _db.session.get(AspirationCheckIn, ready.id).is_open
    assert _db.session.get(AspirationCheckIn, ready.id).official_rating is None


def test_missing_official_rating_is_rejected(employee, organization):
    check_in = _make_aspiration_check_in(employee, organization)

    plan, err = plan_finalization(employee, {"aspiration": {check_in.id: {"finalize": True}}})

    assert plan is None
    assert "official rating" in err["details"][f"aspiration:{check_in.id}"]


def test_nothing_selected_is_rejected(employee, organization):
    check_in = _make_aspiration_check_in(employee, organization)

    plan, err = plan_finalization(employee, {"aspiration": {check_in.id: {"official_rating": "meeting"}}})

    assert plan is None
    assert err["status"] == 422
    assert "No check-ins" in err["error"]


def test_other_teammates_check_in_is_not_found(employee, other_teammate, organization):
    theirs = _make_aspiration_check_in(other_teammate, organization)

    plan, err = plan_finalization(employee, {"aspiration": {theirs.id: {"finalize": True, "official_rating": "meeting"}}})

    assert plan is None
    assert err["status"] == 404


def test_already_finalized_check_in_conflicts(employee, manager, organization):
    check_in = _make_aspiration_check_in(employee, organization)
    decisions = {"aspiration": {check_in.id: {"finalize": True, "official_rating": "meeting"}}}
    finalize_check_ins(employee, decisions, finalized_by=manager)

    snapshot, err = finalize_check_ins(employee, decisions, finalized_by=manager)

    assert snapshot is None
    assert err["status"] == 409
    assert MaapSnapshot.query.count() == 1


def test_unknown_kind_is_rejected(employee):
    plan, err = plan_finalization(employee, {"goal": {"1": {"finalize": True}}})

    assert plan is None
    assert err["details"] == {"goal": "Unknown check-in kind 'goal'"}


def test_same_check_in_twice_aborts_batch(employee, manager, organization):
    check_in = _make_assignment_check_in(employee, organization, "On-call", energy=50)

    snapshot, err = finalize_check_ins(
        employee,
        {"assignment": {
            str(check_in.id): {"finalize": True, "official_rating": "meeting"},
            f"0{check_in.id}": {"finalize": True, "official_rating": "exceeding"},
        }},
        finalized_by=manager,
    )

    assert snapshot is None
    assert err["status"] == 422
    assert list(err["details"]) == [f"assignment:0{check_in.id}"]
    assert MaapSnapshot.query.count() == 0
    assert AssignmentTenure.query.count() == 1
    assert _db.session.get(AssignmentCheckIn, check_in.id).is_open


# ── Database fault (everything rolled back) ──────────────────────────────────


def test_database_fault_leaves_every_check_in_open(employee, manager, organization, employment_tenure, monkeypatch):
    position_ci = _make_position_check_in(employee, employment_tenure)
    assignment_ci = _make_assignment_check_in(employee, organization, "On-call", energy=50)

    def _fail(check_in, decision, today):
        raise OperationalError("UPDATE assignment_tenures", {}, Exception("database is locked"))

    monkeypatch.setitem(finalization_service._ROLL_OVER, "assignment", _fail)

    with pytest.raises(OperationalError):
        finalize_check_ins(
            employee,
            {
                "position": {position_ci.id: {"finalize": True, "official_rating": 1}},
                "assignment": {assignment_ci.id: {"finalize": True, "official_rating": "meeting"}},
            },
            finalized_by=manager,
        )

    _db.session.expire_all()
    assert MaapSnapshot.query.count() == 0
    assert _db.session.get(PositionCheckIn, position_ci.id).is_open
    assert _db.session.get(PositionCheckIn, position_ci.id).maap_snapshot_id is None
    assert _db.session.get(AssignmentCheckIn, assignment_ci.id).is_open
    assert EmploymentTenure.query.count() == 1
    assert _db.session.get(EmploymentTenure, employment_tenure.id).is_active
    assert AssignmentTenure.query.count() == 1
