"""
Rate limiting configuration.

The Limiter instance is created in maap/__init__.py with no default limits;
this module applies limits per blueprint.

Usage:
    from maap.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Check-in endpoints:  60/minute
        - Health check:        unlimited

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("check_ins")
    if bp:
        limiter.limit(WRITE_LIMIT)(bp)

    app.logger.info("Rate limiter configured — check-ins: %s", WRITE_LIMIT)
