"""
MAAP snapshot history and employee acknowledgement.

Snapshots are append-only; the only later write is the employee's
acknowledgement (timestamp + request metadata), allowed once.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from maap.core.exceptions import NotFoundError
from maap.models import db
from maap.models.check_in import check_in_model_for
from maap.models.maap_snapshot import MaapSnapshot

logger = logging.getLogger(__name__)


def list_snapshots(teammate):
    """Query of the teammate's snapshots, newest first."""
    return MaapSnapshot.query.filter_by(employee_teammate_id=teammate.id).order_by(
        MaapSnapshot.created_at.desc(), MaapSnapshot.id.desc(),
    )


def get_snapshot(teammate, snapshot_id: int) -> MaapSnapshot:
    """Snapshot scoped to the teammate.

    Raises:
        NotFoundError: missing, or belonging to another teammate.
    """
    snapshot = db.session.get(MaapSnapshot, snapshot_id)
    if snapshot is None or snapshot.employee_teammate_id != teammate.id:
        raise NotFoundError(resource="MaapSnapshot", resource_id=snapshot_id)
    return snapshot


def latest_finalized_for(teammate, kind: str, subject=None):
    """Most recently finalized check-in of ``kind`` (for ``subject`` when given)."""
    model = check_in_model_for(kind)
    if model is None:
        raise ValueError(f"Unknown check-in kind: {kind!r}")
    subject_id = subject if subject is None or isinstance(subject, int) else subject.id
    return model.latest_finalized_for(teammate.id, subject_id)


def acknowledge_snapshot(snapshot, teammate, request_info: dict | None = None):
    """Record the employee's acknowledgement of a snapshot.

    Args:
        snapshot: MaapSnapshot to acknowledge.
        teammate: Teammate acting; must be the snapshot's employee.
        request_info: {ip_address, user_agent, ...} stored with the timestamp.

    Returns:
        (snapshot, None) on success.
        (None, {"error": ..., "status": int}) otherwise.
    """
    if teammate is None or snapshot.employee_teammate_id != teammate.id:
        return None, {"error": "Only the employee may acknowledge this snapshot", "status": 403}
    if snapshot.acknowledged:
        return None, {"error": "Snapshot has already been acknowledged", "status": 409}

    now = datetime.now(timezone.utc)
    snapshot.employee_acknowledged_at = now
    snapshot.employee_acknowledgement_request_info = {
        **(request_info or {}),
        "acknowledged_at": now.isoformat(),
    }
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Failed to acknowledge snapshot %s", snapshot.id)
        raise

    logger.info(
        "Snapshot %s acknowledged by teammate %s",
        snapshot.id,
        teammate.id,
        extra={"snapshot_id": snapshot.id, "teammate_id": teammate.id},
    )
    return snapshot, None
