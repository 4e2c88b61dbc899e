"""
Check-in submission tests — viewer role resolution and multi-record payloads.
"""

from datetime import date

from maap.models import db as _db
from maap.models.check_in import AssignmentCheckIn, PositionCheckIn
from maap.models.notification import CheckInNotification
from maap.models.subject import Assignment
from maap.services.check_in_submission_service import (
    submit_check_ins,
    viewer_role_for,
    viewer_teammate_for,
)
from maap.services.completion_state import ViewerRole
from maap.services.notification_dispatcher import CheckInNotificationDispatcher
from maap.services.open_check_in_resolver import resolve_open


def _dispatcher():
    return CheckInNotificationDispatcher(lambda payload: None, deliver_now=True)


def _make_assignment(organization, title="On-call"):
    assignment = Assignment(organization_id=organization.id, title=title)
    _db.session.add(assignment)
    _db.session.commit()
    return assignment


def test_viewer_role(employee, manager, organization):
    assert viewer_role_for(employee, employee.person) == ViewerRole.EMPLOYEE
    assert viewer_role_for(employee, manager.person) == ViewerRole.MANAGER
    assert viewer_teammate_for(manager.person, organization).id == manager.id
    assert viewer_teammate_for(None, organization) is None


def test_position_submission_by_both_sides(employee, manager, organization, employment_tenure):
    first = submit_check_ins(employee, organization, employee.person, {
        "position_check_in": {"status": "complete", "employee_rating": "1", "employee_private_notes": "ok"},
    }, _dispatcher())

    assert first["viewer_role"] == "employee"
    assert first["errors"] == {}
    saved = first["check_ins"][0]
    assert saved["employee_rating"] == 1
    assert saved["viewer_display_mode"] == "show_complete_summary"
    assert saved["other_participant_display_mode"] == "show_other_participant_is_incomplete"

    second = submit_check_ins(employee, organization, manager.person, {
        "position_check_in": {"status": "complete", "manager_rating": 2},
    }, _dispatcher())

    assert second["viewer_role"] == "manager"
    assert second["notifications_dispatched"] == 1
    assert "employee_private_notes" not in second["check_ins"][0]
    check_in = PositionCheckIn.open_query(employee.id).one()
    assert check_in.manager_completed_by_id == manager.id
    assert CheckInNotification.query.count() == 1


def test_position_submission_without_tenure(employee, organization):
    result = submit_check_ins(employee, organization, employee.person, {
        "position_check_in": {"status": "complete"},
    }, _dispatcher())

    assert "position" in result["errors"]
    assert result["check_ins"] == []


def test_invalid_entry_does_not_block_others(employee, organization):
    good = _make_assignment(organization, "Good")
    bad = _make_assignment(organization, "Bad")
    good_ci = resolve_open(employee, "assignment", good)
    bad_ci = resolve_open(employee, "assignment", bad)

    result = submit_check_ins(employee, organization, employee.person, {
        "assignment_check_ins": {
            str(good_ci.id): {"assignment_id": good.id, "actual_energy_percentage": "30"},
            str(bad_ci.id): {"assignment_id": bad.id, "actual_energy_percentage": "300"},
        },
    }, _dispatcher())

    assert list(result["errors"]) == [f"assignment:{bad_ci.id}"]
    assert [ci["id"] for ci in result["check_ins"]] == [good_ci.id]
    _db.session.expire_all()
    assert _db.session.get(AssignmentCheckIn, good_ci.id).actual_energy_percentage == 30
    assert _db.session.get(AssignmentCheckIn, bad_ci.id).actual_energy_percentage is None


def test_unknown_key_resolves_by_subject(employee, organization):
    assignment = _make_assignment(organization)

    result = submit_check_ins(employee, organization, employee.person, {
        "assignment_check_ins": {"new": {"assignment_id": assignment.id, "employee_rating": "meeting"}},
    }, _dispatcher())

    assert result["errors"] == {}
    check_in = AssignmentCheckIn.open_query(employee.id).one()
    assert check_in.employee_rating == "meeting"


def test_entry_without_subject_is_rejected(employee, organization):
    result = submit_check_ins(employee, organization, employee.person, {
        "assignment_check_ins": {"999": {"employee_rating": "meeting"}},
    }, _dispatcher())

    assert "assignment:999" in result["errors"]


def test_other_teammates_check_in_is_not_touched(employee, organization, other_teammate):
    assignment = _make_assignment(organization)
    theirs = AssignmentCheckIn(
        teammate_id=other_teammate.id, assignment_id=assignment.id, check_in_started_on=date.today(),
    )
    _db.session.add(theirs)
    _db.session.commit()

    result = submit_check_ins(employee, organization, employee.person, {
        "assignment_check_ins": {str(theirs.id): {"employee_rating": "meeting"}},
    }, _dispatcher())

    assert f"assignment:{theirs.id}" in result["errors"]
    _db.session.expire_all()
    assert _db.session.get(AssignmentCheckIn, theirs.id).employee_rating is None


def test_entry_naming_another_subject_is_rejected(employee, organization):
    keyed = _make_assignment(organization, "Keyed")
    other = _make_assignment(organization, "Other")
    check_in = resolve_open(employee, "assignment", keyed)

    result = submit_check_ins(employee, organization, employee.person, {
        "assignment_check_ins": {str(check_in.id): {"assignment_id": other.id, "employee_rating": "meeting"}},
    }, _dispatcher())

    assert f"assignment:{check_in.id}" in result["errors"]
    assert result["check_ins"] == []
    _db.session.expire_all()
    assert _db.session.get(AssignmentCheckIn, check_in.id).employee_rating is None
    assert AssignmentCheckIn.query.filter_by(assignment_id=other.id).count() == 0
