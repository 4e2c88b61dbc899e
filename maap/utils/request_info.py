"""
Request metadata captured into audit records (snapshots, acknowledgements).

The client IP honours X-Forwarded-For, whose first entry is the originating
client when the app runs behind a load balancer.
"""

from __future__ import annotations

from datetime import datetime, timezone

from flask import has_request_context, request


def client_ip() -> str | None:
    forwarded_for = request.headers.get("X-Forwarded-For", "")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.remote_addr


def capture_request_info() -> dict:
    """Return ``{ip_address, user_agent, timestamp}`` for the current request.

    Outside a request (CLI, background job) only the timestamp is recorded.
    """
    info = {"timestamp": datetime.now(timezone.utc).isoformat()}
    if has_request_context():
        info["ip_address"] = client_ip()
        info["user_agent"] = request.headers.get("User-Agent")
    return info
