"""
Check-in health — how current a teammate's official ratings are.

Per kind status:
    alarm        never rated (or nothing rated and nothing open)
    warning      some ratings are older than the threshold with no open check-in
    in_progress  an open check-in covers the gap
    success      everything rated within the threshold

The threshold defaults to 90 days (``CHECK_IN_HEALTH_DAYS_THRESHOLD``).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from flask import current_app

from maap.models.check_in import AspirationCheckIn, AssignmentCheckIn, PositionCheckIn
from maap.models.subject import Assignment, Aspiration
from maap.models.tenure import AssignmentTenure
from maap.utils.helpers import as_utc

DAYS_THRESHOLD = 90


def _threshold_days() -> int:
    return int(current_app.config.get("CHECK_IN_HEALTH_DAYS_THRESHOLD", DAYS_THRESHOLD))


def _position_health(teammate, now: datetime, cutoff: datetime) -> dict:
    latest = (
        PositionCheckIn.closed_query(teammate.id)
        .filter(PositionCheckIn.official_rating.isnot(None))
        .order_by(PositionCheckIn.official_check_in_completed_at.desc())
        .first()
    )
    open_check_in = PositionCheckIn.open_query(teammate.id).first()

    if latest is None:
        status = "alarm"
        last_rating_date = None
        days_since_rating = None
    else:
        completed_at = as_utc(latest.official_check_in_completed_at)
        status = "warning" if completed_at < cutoff else "success"
        last_rating_date = completed_at.date()
        days_since_rating = (now.date() - last_rating_date).days

    if open_check_in is not None and status in ("alarm", "warning"):
        status = "in_progress"

    return {
        "status": status,
        "last_rating_date": last_rating_date.isoformat() if last_rating_date else None,
        "days_since_rating": days_since_rating,
        "open_check_in_id": open_check_in.id if open_check_in else None,
        "open_check_in_started_on": (
            open_check_in.check_in_started_on.isoformat() if open_check_in else None
        ),
        "open_unacknowledged": bool(open_check_in and not open_check_in.employee_completed),
    }


def _coverage_status(total: int, rated: int, open_count: int, empty_status: str) -> str:
    if total == 0:
        return empty_status
    if rated == 0 and open_count == 0:
        return "alarm"
    if rated < total and (total - rated - open_count) > 0:
        return "warning"
    if open_count > 0:
        return "in_progress"
    return "success"


def _rated_since(model, teammate_id: int, subject_id: int, cutoff: datetime) -> bool:
    latest = model.latest_finalized_for(teammate_id, subject_id)
    return latest is not None and as_utc(latest.official_check_in_completed_at) >= cutoff


def _assignment_health(teammate, org_ids: list[int], cutoff: datetime) -> dict:
    tenures = (
        teammate.assignment_tenures
        .join(Assignment, Assignment.id == AssignmentTenure.assignment_id)
        .filter(AssignmentTenure.ended_at.is_(None), Assignment.organization_id.in_(org_ids))
        .all()
    )
    assignment_ids = sorted({t.assignment_id for t in tenures})
    rated = sum(1 for aid in assignment_ids if _rated_since(AssignmentCheckIn, teammate.id, aid, cutoff))

    open_q = (
        AssignmentCheckIn.open_query(teammate.id)
        .join(Assignment, Assignment.id == AssignmentCheckIn.assignment_id)
        .filter(Assignment.organization_id.in_(org_ids))
    )
    open_count = open_q.count()
    unacknowledged = open_q.filter(AssignmentCheckIn.employee_completed_at.is_(None)).count()

    return {
        "status": _coverage_status(len(assignment_ids), rated, open_count, "alarm"),
        "total_count": len(assignment_ids),
        "completed_count": rated,
        "open_count": open_count,
        "unacknowledged_count": unacknowledged,
    }


def _aspiration_health(teammate, organization, org_ids: list[int], cutoff: datetime) -> dict:
    aspiration_ids = [a.id for a in Aspiration.within_hierarchy(organization).all()]
    rated = sum(1 for aid in aspiration_ids if _rated_since(AspirationCheckIn, teammate.id, aid, cutoff))

    open_q = (
        AspirationCheckIn.open_query(teammate.id)
        .join(Aspiration, Aspiration.id == AspirationCheckIn.aspiration_id)
        .filter(Aspiration.organization_id.in_(org_ids))
    )
    open_count = open_q.count()
    unacknowledged = open_q.filter(AspirationCheckIn.employee_completed_at.is_(None)).count()

    return {
        # no aspirations means nothing to rate
        "status": _coverage_status(len(aspiration_ids), rated, open_count, "success"),
        "total_count": len(aspiration_ids),
        "rated_count": rated,
        "open_count": open_count,
        "unacknowledged_count": unacknowledged,
    }


def check_in_health(teammate, organization, now: datetime | None = None, threshold_days: int | None = None) -> dict:
    """Per-kind health summary for one teammate.

    Args:
        teammate: Teammate to summarise.
        organization: Scope; assignments and aspirations of its hierarchy count.
        now: Reference time (defaults to the current UTC time).
        threshold_days: Override of the configured freshness window.

    Returns:
        {"position": {...}, "assignments": {...}, "aspirations": {...},
         "threshold_days": int}
    """
    now = as_utc(now) or datetime.now(timezone.utc)
    days = threshold_days if threshold_days is not None else _threshold_days()
    cutoff = now - timedelta(days=days)
    org_ids = organization.self_and_descendant_ids()
    return {
        "position": _position_health(teammate, now, cutoff),
        "assignments": _assignment_health(teammate, org_ids, cutoff),
        "aspirations": _aspiration_health(teammate, organization, org_ids, cutoff),
        "threshold_days": days,
    }
