"""Standardised API error responses.

Every error body has the same shape::

    {"error": "<human message>", "code": "<E.* constant>", "details": {...}?}

Usage:
    from maap.utils.errors import E, api_error, service_error

    return api_error(E.FORBIDDEN, "Employees cannot finalize their own check-ins")
    return service_error(err)   # err from a service's (None, err) result
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Machine-readable error codes.

    ERR_ prefix for generic failures, CHECK_IN_ for check-in workflow states.
    """

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"  # 400
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"    # 422
    FORBIDDEN = "ERR_FORBIDDEN"                      # 403
    NOT_FOUND = "ERR_NOT_FOUND"                      # 404
    CONFLICT_STATE = "ERR_CONFLICT_STATE"            # 409
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"    # 405
    RATE_LIMITED = "ERR_RATE_LIMITED"                # 429
    INTERNAL = "ERR_INTERNAL"                        # 500

    CLOSED = "CHECK_IN_CLOSED"                       # 409


_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 422,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_STATE: 409,
    E.METHOD_NOT_ALLOWED: 405,
    E.RATE_LIMITED: 429,
    E.INTERNAL: 500,
    E.CLOSED: 409,
}

# services report an HTTP status; this picks the code for it
_CODE_FOR_STATUS: dict[int, str] = {
    400: E.VALIDATION_REQUIRED,
    403: E.FORBIDDEN,
    404: E.NOT_FOUND,
    409: E.CONFLICT_STATE,
    422: E.VALIDATION_INVALID,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build a ``(Response, status)`` error tuple.

    ``status`` defaults to the code's usual HTTP status (400 when unknown).
    ``details`` is omitted from the body when empty.
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _DEFAULT_STATUS.get(code, 400)


def service_error(err: dict):
    """Translate a service ``{"error", "status", "details"?, "code"?}`` dict into a response."""
    status = err.get("status", 400)
    code = err.get("code") or _CODE_FOR_STATUS.get(status, E.VALIDATION_INVALID)
    return api_error(code, err["error"], status=status, details=err.get("details"))
