"""
Check-in completion service — one viewer's submission against one check-in.

Applies field updates and the requested completion status for a single role,
then commits.  The two completion timestamps are independent: the employee
side never touches ``manager_completed_at`` and vice versa.

Status semantics:
    "complete"        set {role}_completed_at = now (refreshed on repeat);
                      the manager side also records manager_completed_by_id
    anything else     clear the role's completion (only place it is cleared)

``completion_detected`` is edge-triggered: it is True only when this call
moved the record from not-both-complete to both-complete.

Validation failures populate ``errors`` and nothing is written.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from maap.models import db
from maap.services.completion_state import ViewerRole, notification_state
from maap.utils.helpers import is_blank

logger = logging.getLogger(__name__)

COMPLETE_STATUS = "complete"


def coerce_viewer_role(role) -> ViewerRole | None:
    if isinstance(role, ViewerRole):
        return role
    try:
        return ViewerRole(str(role))
    except ValueError:
        return None


class CheckInCompletionService:
    """Mutate one check-in on behalf of one viewer role."""

    def __init__(self, check_in):
        self.check_in = check_in
        self.errors: dict[str, str] = {}
        self.completion_detected = False

    def apply(self, viewer_role, requested_status, field_updates=None, completed_by=None) -> bool:
        """Validate, write and commit.  Returns True when the check-in was saved.

        Args:
            viewer_role: ViewerRole (or its string value).
            requested_status: "complete" to mark the role's side complete;
                any other value (including None) marks it open again.
            field_updates: {field: value}; blank values are ignored and fields
                belonging to the other role are dropped.
            completed_by: Teammate recorded as manager_completed_by on a
                manager completion.
        """
        self.errors = {}
        self.completion_detected = False
        check_in = self.check_in

        role = coerce_viewer_role(viewer_role)
        if role is None:
            logger.warning(
                "Ignoring check-in update with unknown viewer role %r",
                viewer_role,
                extra={"check_in_kind": check_in.KIND, "check_in_id": check_in.id},
            )
            return False

        if not check_in.is_open:
            self.errors["check_in"] = "Check-in has already been finalized and can no longer be edited"
            return False

        values = self._validated_values(role, field_updates or {})
        if self.errors:
            return False

        was_complete = check_in.employee_completed and check_in.manager_completed

        for field, value in values.items():
            setattr(check_in, field, value)
        self._apply_status(role, requested_status, completed_by)

        is_complete = check_in.employee_completed and check_in.manager_completed
        self.completion_detected = not was_complete and is_complete

        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.exception(
                "Failed to save %s check-in %s", check_in.KIND, check_in.id,
            )
            raise

        logger.info(
            "%s check-in %s updated by %s: %s",
            check_in.KIND,
            check_in.id,
            role.value,
            check_in.completion_state.value,
            extra={
                "check_in_kind": check_in.KIND,
                "check_in_id": check_in.id,
                "completion_detected": self.completion_detected,
            },
        )
        return True

    def _validated_values(self, role: ViewerRole, field_updates: dict) -> dict:
        check_in = self.check_in
        allowed = check_in.editable_fields(role)
        known = set(check_in.EMPLOYEE_FIELDS) | set(check_in.MANAGER_FIELDS)
        values = {}
        for field, raw in field_updates.items():
            if is_blank(raw):
                continue
            if field not in known:
                self.errors[field] = f"Unknown field '{field}' for {check_in.KIND} check-in"
                continue
            if field not in allowed:
                logger.debug("Dropping %s field %s submitted by %s", check_in.KIND, field, role.value)
                continue
            value, err = check_in.coerce_field(field, raw)
            if err:
                self.errors[field] = err
                continue
            values[field] = value
        return values

    def _apply_status(self, role: ViewerRole, requested_status, completed_by) -> None:
        check_in = self.check_in
        complete = str(requested_status or "").strip().lower() == COMPLETE_STATUS
        now = datetime.now(timezone.utc)

        if role == ViewerRole.EMPLOYEE:
            if complete:
                check_in.employee_completed_at = now
            elif check_in.employee_completed_at is not None:
                check_in.employee_completed_at = None
        elif role == ViewerRole.MANAGER:
            if complete:
                check_in.manager_completed_at = now
                check_in.manager_completed_by_id = completed_by.id if completed_by is not None else None
            elif check_in.manager_completed_at is not None:
                check_in.manager_completed_at = None
                check_in.manager_completed_by_id = None

    def notification_payload(self, organization_id: int | None) -> dict:
        check_in = self.check_in
        return {
            "check_in_id": check_in.id,
            "check_in_kind": check_in.KIND,
            "completion_state": notification_state(check_in.completion_state),
            "organization_id": organization_id,
        }
