"""
Check-in completion service tests.

Covers independent employee/manager completion, the edge-triggered
both-complete detection, field validation and the finalized-record guard.
"""

from datetime import date, datetime, timezone

from maap.models import db as _db
from maap.models.check_in import AspirationCheckIn, PositionCheckIn
from maap.models.maap_snapshot import MaapSnapshot
from maap.models.subject import Aspiration
from maap.services.check_in_completion_service import CheckInCompletionService
from maap.services.completion_state import CompletionState, ViewerRole


def _make_aspiration_check_in(teammate, organization, **kwargs):
    aspiration = Aspiration(organization_id=organization.id, name="Curiosity")
    _db.session.add(aspiration)
    _db.session.flush()
    check_in = AspirationCheckIn(
        teammate_id=teammate.id,
        aspiration_id=aspiration.id,
        check_in_started_on=date.today(),
        **kwargs,
    )
    _db.session.add(check_in)
    _db.session.commit()
    return check_in


def test_employee_then_manager_completion(employee, manager, organization):
    check_in = _make_aspiration_check_in(employee, organization)

    employee_side = CheckInCompletionService(check_in)
    assert employee_side.apply("employee", "complete", {"employee_rating": "meeting"})
    assert check_in.completion_state == CompletionState.EMPLOYEE_COMPLETE_MANAGER_OPEN
    assert not employee_side.completion_detected

    manager_side = CheckInCompletionService(check_in)
    assert manager_side.apply(ViewerRole.MANAGER, "complete", {"manager_rating": "exceeding"}, completed_by=manager)

    assert manager_side.completion_detected
    assert check_in.completion_state == CompletionState.BOTH_COMPLETE
    assert check_in.employee_rating == "meeting"
    assert check_in.manager_rating == "exceeding"
    assert check_in.manager_completed_by_id == manager.id
    assert check_in.ready_for_finalization


def test_completion_detection_is_edge_triggered(employee, manager, organization):
    check_in = _make_aspiration_check_in(employee, organization)
    CheckInCompletionService(check_in).apply("employee", "complete")
    CheckInCompletionService(check_in).apply("manager", "complete", completed_by=manager)

    again = CheckInCompletionService(check_in)
    assert again.apply("manager", "complete", {"manager_private_notes": "still good"}, completed_by=manager)
    assert not again.completion_detected


def test_sides_never_clear_each_other(employee, manager, organization):
    check_in = _make_aspiration_check_in(employee, organization)
    CheckInCompletionService(check_in).apply("employee", "complete")
    CheckInCompletionService(check_in).apply("manager", "complete", completed_by=manager)

    assert CheckInCompletionService(check_in).apply("manager", "draft")

    assert check_in.employee_completed
    assert not check_in.manager_completed
    assert check_in.manager_completed_by_id is None
    assert check_in.completion_state == CompletionState.EMPLOYEE_COMPLETE_MANAGER_OPEN


def test_status_is_case_insensitive(employee, organization):
    check_in = _make_aspiration_check_in(employee, organization)

    assert CheckInCompletionService(check_in).apply("employee", " Complete ")
    assert check_in.employee_completed


def test_blank_and_other_role_fields_are_ignored(employee, organization):
    check_in = _make_aspiration_check_in(employee, organization, employee_rating="meeting")

    service = CheckInCompletionService(check_in)
    assert service.apply("employee", "draft", {
        "employee_rating": "  ",
        "employee_private_notes": "",
        "manager_rating": "exceeding",
    })

    assert service.errors == {}
    assert check_in.employee_rating == "meeting"
    assert check_in.manager_rating is None


def test_invalid_rating_saves_nothing(employee, employment_tenure):
    check_in = PositionCheckIn(
        teammate_id=employee.id,
        employment_tenure_id=employment_tenure.id,
        check_in_started_on=date.today(),
    )
    _db.session.add(check_in)
    _db.session.commit()

    service = CheckInCompletionService(check_in)
    assert not service.apply("employee", "complete", {
        "employee_rating": "7",
        "employee_private_notes": "notes",
    })

    assert "employee_rating" in service.errors
    _db.session.expire_all()
    stored = _db.session.get(PositionCheckIn, check_in.id)
    assert stored.employee_rating is None
    assert stored.employee_private_notes is None
    assert not stored.employee_completed


def test_unknown_field_is_an_error(employee, organization):
    check_in = _make_aspiration_check_in(employee, organization)

    service = CheckInCompletionService(check_in)
    assert not service.apply("employee", "complete", {"mood": "great"})
    assert "mood" in service.errors


def test_unknown_role_is_ignored(employee, organization):
    check_in = _make_aspiration_check_in(employee, organization)

    service = CheckInCompletionService(check_in)
    assert not service.apply("observer", "complete", {"employee_rating": "meeting"})
    assert service.errors == {}
    assert not check_in.employee_completed


def test_finalized_check_in_is_rejected(employee, manager, organization):
    snapshot = MaapSnapshot(
        organization_id=organization.id,
        employee_teammate_id=employee.id,
        created_by_teammate_id=manager.id,
        change_type="aspiration_management",
        reason="test",
        maap_data={},
        manager_request_info={},
    )
    _db.session.add(snapshot)
    _db.session.flush()
    check_in = _make_aspiration_check_in(
        employee,
        organization,
        official_check_in_completed_at=datetime.now(timezone.utc),
        maap_snapshot_id=snapshot.id,
    )

    service = CheckInCompletionService(check_in)
    assert not service.apply("employee", "complete", {"employee_rating": "meeting"})
    assert "check_in" in service.errors


def test_notification_payload(employee, manager, organization):
    check_in = _make_aspiration_check_in(employee, organization)
    service = CheckInCompletionService(check_in)
    service.apply("employee", "complete")
    service.apply("manager", "complete", completed_by=manager)

    assert service.notification_payload(organization.id) == {
        "check_in_id": check_in.id,
        "check_in_kind": "aspiration",
        "completion_state": "both_complete",
        "organization_id": organization.id,
    }
