"""
Exception hierarchy for the check-in engine.

User-visible business failures (bad rating, not ready for finalization) are
returned as structured ``(None, error_dict)`` results by the services, never
raised.  The exceptions below cover lookups, the ORM immutability guards and
blueprint-level error handlers.

Usage:
    from maap.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Teammate", resource_id=42)
    raise ValidationError("viewer_person_id is required", details={"viewer_person_id": "missing"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for both genuinely missing records and cross-organization lookups, so
    a 404 never confirms that another organization's record exists.

    Args:
        resource: Human-readable entity name (e.g. "Teammate", "MaapSnapshot").
        resource_id: The PK that was looked up.
        organization_id: Optional scope that was enforced, for debug logging.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        organization_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.organization_id = organization_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if organization_id is not None:
            msg += f" (organization={organization_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when request input is well-formed but unusable.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown; keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation conflicts with the current state of a record.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} conflicts with current state")


class ClosedCheckInError(ConflictError):
    """Raised by the ORM guard when a flush would modify a finalized check-in."""

    def __init__(self, kind: str, check_in_id: int | None) -> None:
        super().__init__(f"{kind} check-in", "id", str(check_in_id))
        self.kind = kind
        self.check_in_id = check_in_id
