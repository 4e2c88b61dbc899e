"""
MAAP Check-ins
Flask Application Factory.

Usage:
    from maap import create_app
    app = create_app()           # defaults to APP_ENV, then "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from maap.config import config
from maap.middleware.logging_config import configure_logging
from maap.middleware.rate_limiter import init_rate_limits
from maap.middleware.timing import init_request_timing
from maap.models import db
from maap.utils.errors import E, api_error

logger = logging.getLogger(__name__)


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit; applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to the APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from maap.models import check_in as _check_in_models          # noqa: F401
    from maap.models import maap_snapshot as _snapshot_models     # noqa: F401
    from maap.models import notification as _notification_models  # noqa: F401
    from maap.models import organization as _organization_models  # noqa: F401
    from maap.models import subject as _subject_models            # noqa: F401
    from maap.models import tenure as _tenure_models              # noqa: F401

    # ── Blueprints ───────────────────────────────────────────────────────
    from maap.blueprints.check_ins_bp import check_ins_bp

    app.register_blueprint(check_ins_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("redeliver-notifications")
    def redeliver_notifications_cmd():
        """Re-drive check-in notifications left pending or failed (run from cron)."""
        from maap.services.notification_dispatcher import CheckInNotificationDispatcher
        stats = CheckInNotificationDispatcher(deliver_now=True).redeliver_pending()
        logger.info("Notification redelivery: %s", stats)

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "MAAP Check-ins"}

    # ── Error handlers (same body shape as api_error) ────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, f"No route for {request.path}")

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.METHOD_NOT_ALLOWED, f"{request.method} not allowed on {request.path}")

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests",
                         details={"limit": str(e.description)})

    @app.errorhandler(500)
    def server_error(e):
        db.session.rollback()
        logger.error("Unhandled error on %s %s: %s", request.method, request.path, e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
