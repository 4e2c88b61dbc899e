"""
Check-in health tests — rating freshness per kind.
"""

from datetime import date, datetime, timedelta, timezone

from maap.models import db as _db
from maap.models.check_in import AspirationCheckIn, AssignmentCheckIn, PositionCheckIn
from maap.models.subject import Aspiration, Assignment
from maap.models.tenure import AssignmentTenure
from maap.services.check_in_health_service import check_in_health

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def _closed(model, teammate, days_ago, **kwargs):
    check_in = model(
        teammate_id=teammate.id,
        check_in_started_on=(NOW - timedelta(days=days_ago + 7)).date(),
        official_check_in_completed_at=NOW - timedelta(days=days_ago),
        **kwargs,
    )
    _db.session.add(check_in)
    _db.session.commit()
    return check_in


def _held_assignment(teammate, organization, title):
    assignment = Assignment(organization_id=organization.id, title=title)
    _db.session.add(assignment)
    _db.session.flush()
    _db.session.add(AssignmentTenure(
        teammate_id=teammate.id, assignment_id=assignment.id, started_at=date(2025, 1, 1),
    ))
    _db.session.commit()
    return assignment


def test_never_rated_is_alarm(employee, organization):
    health = check_in_health(employee, organization, now=NOW)

    assert health["position"]["status"] == "alarm"
    assert health["position"]["last_rating_date"] is None
    assert health["assignments"]["status"] == "alarm"
    assert health["aspirations"]["status"] == "success"
    assert health["threshold_days"] == 90


def test_recent_position_rating_is_success(employee, organization, employment_tenure):
    _closed(PositionCheckIn, employee, 10, employment_tenure_id=employment_tenure.id, official_rating=1)

    position = check_in_health(employee, organization, now=NOW)["position"]

    assert position["status"] == "success"
    assert position["days_since_rating"] == 10
    assert position["last_rating_date"] == (NOW - timedelta(days=10)).date().isoformat()


def test_stale_position_rating_with_open_check_in_is_in_progress(employee, organization, employment_tenure):
    _closed(PositionCheckIn, employee, 120, employment_tenure_id=employment_tenure.id, official_rating=0)

    assert check_in_health(employee, organization, now=NOW)["position"]["status"] == "warning"

    open_check_in = PositionCheckIn(
        teammate_id=employee.id, employment_tenure_id=employment_tenure.id, check_in_started_on=NOW.date(),
    )
    _db.session.add(open_check_in)
    _db.session.commit()

    position = check_in_health(employee, organization, now=NOW)["position"]
    assert position["status"] == "in_progress"
    assert position["open_check_in_id"] == open_check_in.id
    assert position["open_unacknowledged"] is True


def test_threshold_override(employee, organization, employment_tenure):
    _closed(PositionCheckIn, employee, 45, employment_tenure_id=employment_tenure.id, official_rating=2)

    health = check_in_health(employee, organization, now=NOW, threshold_days=30)

    assert health["position"]["status"] == "warning"
    assert health["threshold_days"] == 30


def test_assignment_coverage(employee, organization):
    rated = _held_assignment(employee, organization, "Rated")
    unrated = _held_assignment(employee, organization, "Unrated")
    _closed(AssignmentCheckIn, employee, 5, assignment_id=rated.id, official_rating="meeting")

    assignments = check_in_health(employee, organization, now=NOW)["assignments"]
    assert assignments["status"] == "warning"
    assert assignments["total_count"] == 2
    assert assignments["completed_count"] == 1

    _db.session.add(AssignmentCheckIn(
        teammate_id=employee.id, assignment_id=unrated.id, check_in_started_on=NOW.date(),
    ))
    _db.session.commit()

    assignments = check_in_health(employee, organization, now=NOW)["assignments"]
    assert assignments["status"] == "in_progress"
    assert assignments["open_count"] == 1
    assert assignments["unacknowledged_count"] == 1


def test_aspirations_rated_within_threshold(employee, organization):
    fresh = Aspiration(organization_id=organization.id, name="Curiosity")
    stale = Aspiration(organization_id=organization.id, name="Ownership")
    _db.session.add_all([fresh, stale])
    _db.session.commit()
    _closed(AspirationCheckIn, employee, 3, aspiration_id=fresh.id, official_rating="meeting")
    _closed(AspirationCheckIn, employee, 200, aspiration_id=stale.id, official_rating="meeting")

    aspirations = check_in_health(employee, organization, now=NOW)["aspirations"]
    assert aspirations["status"] == "warning"
    assert aspirations["rated_count"] == 1

    _closed(AspirationCheckIn, employee, 1, aspiration_id=stale.id, official_rating="exceeding")

    assert check_in_health(employee, organization, now=NOW)["aspirations"]["status"] == "success"
