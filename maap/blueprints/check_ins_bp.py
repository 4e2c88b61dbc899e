"""
Check-ins Blueprint.

HTTP surface for one teammate's check-ins, scoped under
/api/v1/organizations/<org_id>/teammates/<teammate_id>.

Endpoints:
    GET    /check-ins                     open check-ins (position, assignments, aspirations)
    POST   /check-ins                     submit field updates + status per check-in
    GET    /finalization                  ready-for-finalization overview
    POST   /finalization                  finalize a batch into one MAAP snapshot
           Body: {"decisions": {kind: {check_in_id: {...}}}, "reason": "..."}
    GET    /snapshots                     audit history (limit/offset)
    GET    /snapshots/<snapshot_id>
    POST   /snapshots/<snapshot_id>/acknowledge
    GET    /check-in-health

The viewer is identified by the ``X-Viewer-Person-Id`` header (or the
``viewer_person_id`` query parameter).  Authorization is handled upstream;
this layer only derives the viewer's role from that identity.

Layer contract:
    - Blueprint: parse input, load scope, call a service, return JSON.
    - NO db.session writes here — services own their transactions.
"""

import logging

from flask import Blueprint, jsonify, request

from maap.blueprints import paginate_query
from maap.core.exceptions import ClosedCheckInError, NotFoundError, ValidationError
from maap.models import db
from maap.models.check_in import CHECK_IN_MODELS
from maap.models.organization import Organization, Person, Teammate
from maap.services import maap_snapshot_service
from maap.services.check_in_finalization_service import finalize_check_ins
from maap.services.check_in_health_service import check_in_health
from maap.services.check_in_submission_service import (
    serialize_check_in,
    submit_check_ins,
    viewer_role_for,
    viewer_teammate_for,
)
from maap.services.completion_state import OverviewRole
from maap.services.open_check_in_resolver import load_check_ins
from maap.utils.errors import E, api_error, service_error
from maap.utils.helpers import parse_int
from maap.utils.request_info import capture_request_info

logger = logging.getLogger(__name__)

check_ins_bp = Blueprint(
    "check_ins",
    __name__,
    url_prefix="/api/v1/organizations/<int:org_id>/teammates/<int:teammate_id>",
)


# ── Error handlers ────────────────────────────────────────────────────────────


@check_ins_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@check_ins_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_INVALID, str(error), details=error.details)


@check_ins_bp.errorhandler(ClosedCheckInError)
def _handle_closed(error: ClosedCheckInError):
    db.session.rollback()
    return api_error(E.CLOSED, f"{error.kind.capitalize()} check-in {error.check_in_id} is finalized")


# ── Helpers ───────────────────────────────────────────────────────────────────


def _load_scope(org_id: int, teammate_id: int):
    """Return (organization, teammate); the teammate must belong to the organization."""
    organization = db.session.get(Organization, org_id)
    if organization is None:
        raise NotFoundError(resource="Organization", resource_id=org_id)
    teammate = db.session.get(Teammate, teammate_id)
    if teammate is None or teammate.organization_id != organization.id:
        raise NotFoundError(resource="Teammate", resource_id=teammate_id, organization_id=org_id)
    return organization, teammate


def _viewer_person() -> Person:
    raw = request.headers.get("X-Viewer-Person-Id") or request.args.get("viewer_person_id")
    person_id = parse_int(raw)
    if person_id is None:
        raise ValidationError(
            "viewer_person_id is required",
            details={"viewer_person_id": "Send X-Viewer-Person-Id header or viewer_person_id query"},
        )
    person = db.session.get(Person, person_id)
    if person is None:
        raise NotFoundError(resource="Person", resource_id=person_id)
    return person


def _overview_role(teammate, viewer_person, viewer_teammate) -> OverviewRole:
    if viewer_person.id == teammate.person_id:
        return OverviewRole.EMPLOYEE
    manager = teammate.current_manager()
    if viewer_teammate is not None and manager is not None and manager.id == viewer_teammate.id:
        return OverviewRole.MANAGER
    return OverviewRole.READONLY


def _overview_entry(check_in, role: OverviewRole) -> dict:
    data = check_in.to_dict(role.value)
    if role != OverviewRole.READONLY:
        data.update(check_in.display_modes(role.value))
    return data


# ── Check-ins ─────────────────────────────────────────────────────────────────


@check_ins_bp.route("/check-ins", methods=["GET"])
def list_check_ins(org_id, teammate_id):
    """Resolve (creating where needed) and return every open check-in."""
    organization, teammate = _load_scope(org_id, teammate_id)
    viewer = _viewer_person()
    role = viewer_role_for(teammate, viewer)
    loaded = load_check_ins(teammate, organization)
    position = loaded["position"]
    return jsonify({
        "teammate": teammate.to_dict(),
        "viewer_role": role.value,
        "position": serialize_check_in(position, role) if position else None,
        "assignments": [serialize_check_in(ci, role) for ci in loaded["assignments"]],
        "aspirations": [serialize_check_in(ci, role) for ci in loaded["aspirations"]],
    }), 200


@check_ins_bp.route("/check-ins", methods=["POST"])
def submit(org_id, teammate_id):
    """Apply the viewer's field updates and statuses."""
    organization, teammate = _load_scope(org_id, teammate_id)
    viewer = _viewer_person()
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    result = submit_check_ins(teammate, organization, viewer, payload)
    status = 200 if not result["errors"] or result["check_ins"] else 422
    return jsonify(result), status


# ── Finalization ──────────────────────────────────────────────────────────────


@check_ins_bp.route("/finalization", methods=["GET"])
def finalization_overview(org_id, teammate_id):
    """Check-ins ready for finalization, private notes filtered by viewer role."""
    organization, teammate = _load_scope(org_id, teammate_id)
    viewer = _viewer_person()
    role = _overview_role(teammate, viewer, viewer_teammate_for(viewer, organization))

    ready = {
        kind: [_overview_entry(ci, role) for ci in model.ready_for_finalization_query(teammate.id)
               .order_by(model.id.asc()).all()]
        for kind, model in CHECK_IN_MODELS.items()
    }
    return jsonify({"viewer_role": role.value, "ready": ready}), 200


@check_ins_bp.route("/finalization", methods=["POST"])
def finalize(org_id, teammate_id):
    """Finalize the selected check-ins into one MAAP snapshot."""
    organization, teammate = _load_scope(org_id, teammate_id)
    viewer = _viewer_person()
    if viewer.id == teammate.person_id:
        return api_error(E.FORBIDDEN, "Employees cannot finalize their own check-ins")
    finalizer = viewer_teammate_for(viewer, organization)
    if finalizer is None:
        return api_error(E.FORBIDDEN, "Viewer is not a teammate of this organization")

    data = request.get_json(silent=True) or {}
    decisions = data.get("decisions")
    if not isinstance(decisions, dict) or not decisions:
        raise ValidationError("decisions is required", details={"decisions": "missing"})

    snapshot, err = finalize_check_ins(
        teammate,
        decisions,
        finalizer,
        request_info=capture_request_info(),
        reason=data.get("reason"),
    )
    if err:
        return service_error(err)
    return jsonify(snapshot.to_dict()), 201


# ── Snapshots ─────────────────────────────────────────────────────────────────


@check_ins_bp.route("/snapshots", methods=["GET"])
def list_snapshots(org_id, teammate_id):
    _, teammate = _load_scope(org_id, teammate_id)
    items, total = paginate_query(maap_snapshot_service.list_snapshots(teammate))
    return jsonify({"items": [s.to_dict() for s in items], "total": total}), 200


@check_ins_bp.route("/snapshots/<int:snapshot_id>", methods=["GET"])
def get_snapshot(org_id, teammate_id, snapshot_id):
    _, teammate = _load_scope(org_id, teammate_id)
    return jsonify(maap_snapshot_service.get_snapshot(teammate, snapshot_id).to_dict()), 200


@check_ins_bp.route("/snapshots/<int:snapshot_id>/acknowledge", methods=["POST"])
def acknowledge(org_id, teammate_id, snapshot_id):
    """Employee acknowledgement; only the snapshot's employee may call this."""
    organization, teammate = _load_scope(org_id, teammate_id)
    viewer = _viewer_person()
    snapshot = maap_snapshot_service.get_snapshot(teammate, snapshot_id)

    snapshot, err = maap_snapshot_service.acknowledge_snapshot(
        snapshot,
        viewer_teammate_for(viewer, organization),
        request_info=capture_request_info(),
    )
    if err:
        return service_error(err)
    return jsonify(snapshot.to_dict()), 200


# ── Health ────────────────────────────────────────────────────────────────────


@check_ins_bp.route("/check-in-health", methods=["GET"])
def health(org_id, teammate_id):
    organization, teammate = _load_scope(org_id, teammate_id)
    return jsonify(check_in_health(teammate, organization)), 200
