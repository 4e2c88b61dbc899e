"""
Check-in submission — the edit-surface entry point.

Takes one viewer's form payload for a teammate, resolves every targeted
check-in, runs ``CheckInCompletionService`` on each and dispatches a
notification for each record that just became both-complete.

Payload shape::

    {
        "position_check_in": {"status": "complete", "employee_rating": 1, ...},
        "assignment_check_ins": {
            "<check_in_id>": {"assignment_id": 7, "status": "draft", ...},
        },
        "aspiration_check_ins": {
            "<check_in_id>": {"aspiration_id": 3, "status": "complete", ...},
        },
    }

Viewer role: employee iff the viewer is the teammate's own person; every
other viewer edits as manager.
"""

from __future__ import annotations

import logging

from maap.models import db
from maap.models.check_in import check_in_model_for
from maap.models.organization import Teammate
from maap.services.check_in_completion_service import CheckInCompletionService
from maap.services.completion_state import ViewerRole
from maap.services.notification_dispatcher import CheckInNotificationDispatcher
from maap.services.open_check_in_resolver import resolve_open
from maap.utils.helpers import parse_int

logger = logging.getLogger(__name__)

_COLLECTION_KEYS = {
    "assignment": "assignment_check_ins",
    "aspiration": "aspiration_check_ins",
}
_CONTROL_KEYS = frozenset({"status", "assignment_id", "aspiration_id", "employment_tenure_id"})


def viewer_role_for(teammate, viewer_person) -> ViewerRole:
    if viewer_person is not None and viewer_person.id == teammate.person_id:
        return ViewerRole.EMPLOYEE
    return ViewerRole.MANAGER


def viewer_teammate_for(viewer_person, organization):
    """The viewer's Teammate row in ``organization``, or None."""
    if viewer_person is None:
        return None
    return Teammate.query.filter_by(
        person_id=viewer_person.id, organization_id=organization.id,
    ).first()


def _split_entry(entry: dict) -> tuple[str | None, dict]:
    status = entry.get("status")
    fields = {k: v for k, v in entry.items() if k not in _CONTROL_KEYS}
    return status, fields


def _resolve_listed(teammate, kind: str, key, entry: dict):
    """Resolve an assignment/aspiration entry keyed by check-in id.

    The keyed record is used while it is open.  Otherwise the entry's subject
    id (or the keyed record's subject) is resolved to its open check-in,
    creating one if needed.  An entry whose subject id disagrees with the
    keyed record is rejected.
    """
    model = check_in_model_for(kind)
    check_in = None
    check_in_id = parse_int(key)
    if check_in_id is not None:
        check_in = db.session.get(model, check_in_id)
        if check_in is not None and check_in.teammate_id != teammate.id:
            check_in = None

    subject_id = parse_int(entry.get(model.SUBJECT_COLUMN))
    if check_in is not None:
        if subject_id is not None and subject_id != check_in.subject_id:
            return None, (
                f"{kind.capitalize()} check-in {key} belongs to {kind} "
                f"{check_in.subject_id}, not {subject_id}"
            )
        if check_in.is_open:
            return check_in, None
        subject_id = check_in.subject_id
    if subject_id is None:
        return None, f"{kind.capitalize()} check-in {key} not found"
    return resolve_open(teammate, kind, subject_id), None


def submit_check_ins(teammate, organization, viewer_person, payload: dict, dispatcher=None) -> dict:
    """Apply a viewer's submission to all targeted check-ins.

    Each check-in commits independently; one invalid entry does not block the
    others.

    Returns:
        {"check_ins": [serialized...], "errors": {"<kind>:<key>": {...}},
         "notifications_dispatched": int}
    """
    payload = payload or {}
    role = viewer_role_for(teammate, viewer_person)
    completed_by = viewer_teammate_for(viewer_person, organization) if role == ViewerRole.MANAGER else None
    dispatcher = dispatcher or CheckInNotificationDispatcher()

    targets = []
    errors: dict[str, dict] = {}

    position_entry = payload.get("position_check_in")
    if isinstance(position_entry, dict) and position_entry:
        check_in = resolve_open(teammate, "position")
        if check_in is None:
            errors["position"] = {"check_in": "Teammate has no active employment tenure"}
        else:
            targets.append(("position", check_in, position_entry))

    for kind, collection_key in _COLLECTION_KEYS.items():
        entries = payload.get(collection_key) or {}
        if not isinstance(entries, dict):
            errors[kind] = {"check_in": f"{collection_key} must be an object keyed by check-in id"}
            continue
        for key, entry in entries.items():
            if not isinstance(entry, dict):
                errors[f"{kind}:{key}"] = {"check_in": "Entry must be an object"}
                continue
            check_in, err = _resolve_listed(teammate, kind, key, entry)
            if err:
                errors[f"{kind}:{key}"] = {"check_in": err}
                continue
            targets.append((f"{kind}:{key}", check_in, entry))

    saved = []
    dispatched = 0
    for label, check_in, entry in targets:
        status, fields = _split_entry(entry)
        service = CheckInCompletionService(check_in)
        if not service.apply(role, status, fields, completed_by=completed_by):
            if service.errors:
                errors[label] = service.errors
            continue
        saved.append(check_in)
        if service.completion_detected:
            if dispatcher.dispatch(service.notification_payload(organization.id)) is not None:
                dispatched += 1

    logger.info(
        "Check-in submission for teammate %s: %d saved, %d rejected",
        teammate.id,
        len(saved),
        len(errors),
        extra={"teammate_id": teammate.id, "viewer_role": role.value},
    )
    return {
        "viewer_role": role.value,
        "check_ins": [serialize_check_in(ci, role) for ci in saved],
        "errors": errors,
        "notifications_dispatched": dispatched,
    }


def serialize_check_in(check_in, role: ViewerRole) -> dict:
    data = check_in.to_dict(role.value)
    data.update(check_in.display_modes(role))
    return data
