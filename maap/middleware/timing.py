"""
Request timing middleware.

Every response carries ``X-Request-ID`` (propagated from the caller or newly
generated) and ``X-Request-Duration-Ms``.  Check-in requests are logged with
their organization / teammate scope: WARNING when slower than
``SLOW_REQUEST_MS``, ERROR on 5xx, DEBUG otherwise.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

_UNLOGGED_PATHS = frozenset({"/api/v1/health"})

DEFAULT_SLOW_REQUEST_MS = 1000


def _log_level(status_code: int, duration_ms: float, slow_ms: float) -> int:
    if duration_ms > slow_ms:
        return logging.WARNING
    if status_code >= 500:
        return logging.ERROR
    return logging.DEBUG


def init_request_timing(app: Flask):
    """Register before/after request hooks on ``app``."""
    slow_ms = float(app.config.get("SLOW_REQUEST_MS", DEFAULT_SLOW_REQUEST_MS))

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _finish_timer(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        if request.path in _UNLOGGED_PATHS:
            return response

        view_args = request.view_args or {}
        logger.log(
            _log_level(response.status_code, duration_ms, slow_ms),
            "%s %s -> %d (%.0fms)",
            request.method,
            request.path,
            response.status_code,
            duration_ms,
            extra={
                "request_id": g.request_id,
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": duration_ms,
                "remote_addr": request.remote_addr,
                "organization_id": view_args.get("org_id"),
                "teammate_id": view_args.get("teammate_id"),
            },
        )
        return response
