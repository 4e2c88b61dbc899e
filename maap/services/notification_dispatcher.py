"""
Check-in notification dispatcher — outbox + background delivery.

Called only after a completion write has been committed.  ``dispatch`` stores
the payload as a ``CheckInNotification`` row (status "pending") and then hands
delivery to a background thread, or delivers inline when ``deliver_now`` is
set (tests, CLI).  Delivery retries up to ``max_attempts``; the row ends as
"delivered" or "failed".  ``redeliver_pending`` re-drives rows left "pending"
by an exited process and "failed" rows past their backoff; the
``flask redeliver-notifications`` command runs it from cron.

Nothing here ever raises into the caller: a notification problem must not
undo or fail the check-in update that triggered it.

Usage:
    dispatcher = CheckInNotificationDispatcher(deliver_fn=send_to_channel)
    dispatcher.dispatch(service.notification_payload(org.id))
"""

import logging
import threading
from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError

from maap.models import db
from maap.models.notification import CheckInNotification

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_REDELIVER_AFTER_SECONDS = 300
DEFAULT_RETRY_FAILED_AFTER_SECONDS = 3600

# In-flight delivery threads (notification_id → Thread)
_running_deliveries: dict[int, threading.Thread] = {}


def log_delivery(payload: dict) -> None:
    """Default channel: record the completion in the application log."""
    logger.info(
        "Check-in %s#%s reached %s",
        payload.get("check_in_kind"),
        payload.get("check_in_id"),
        payload.get("completion_state"),
        extra={"event_type": "check_in_completion", "organization_id": payload.get("organization_id")},
    )


class CheckInNotificationDispatcher:
    """Persist completion payloads and deliver them at least once."""

    def __init__(self, deliver_fn=None, *, max_attempts=None, deliver_now=None):
        self.deliver_fn = deliver_fn or log_delivery
        self._max_attempts = max_attempts
        self._deliver_now = deliver_now

    @property
    def max_attempts(self) -> int:
        if self._max_attempts is not None:
            return max(int(self._max_attempts), 1)
        return max(int(current_app.config.get("NOTIFICATION_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS)), 1)

    @property
    def deliver_now(self) -> bool:
        if self._deliver_now is not None:
            return bool(self._deliver_now)
        return not current_app.config.get("NOTIFICATION_ASYNC", True)

    def dispatch(self, payload: dict) -> CheckInNotification | None:
        """Record and deliver one payload.  Returns the outbox row, or None if it could not be stored."""
        try:
            notification = CheckInNotification(
                organization_id=payload.get("organization_id"),
                check_in_kind=payload["check_in_kind"],
                check_in_id=payload["check_in_id"],
                completion_state=payload["completion_state"],
                payload=dict(payload),
                status="pending",
                attempts=0,
            )
            db.session.add(notification)
            db.session.commit()
        except (KeyError, SQLAlchemyError):
            db.session.rollback()
            logger.exception("Could not record check-in notification: %s", payload)
            return None

        notification_id = notification.id
        if self.deliver_now:
            self.deliver(notification_id)
            return db.session.get(CheckInNotification, notification_id)

        app = current_app._get_current_object()
        t = threading.Thread(
            target=self._deliver_in_background,
            args=(app, notification_id),
            daemon=True,
        )
        _running_deliveries[notification_id] = t
        t.start()
        return notification

    def deliver(self, notification_id: int) -> bool:
        """Attempt delivery up to ``max_attempts`` times; returns True when delivered.

        Each call gets a fresh budget, so a re-driven "failed" row is retried.
        """
        notification = db.session.get(CheckInNotification, notification_id)
        if notification is None or notification.status == "delivered":
            return notification is not None

        for attempt in range(1, self.max_attempts + 1):
            notification.attempts += 1
            try:
                self.deliver_fn(dict(notification.payload or {}))
            except Exception as exc:
                notification.last_error = str(exc)
                logger.warning(
                    "Check-in notification %d attempt %d/%d failed: %s",
                    notification_id, attempt, self.max_attempts, exc,
                )
                continue
            notification.mark_delivered()
            break
        else:
            notification.status = "failed"
            logger.error(
                "Check-in notification %d failed after %d attempts",
                notification_id, notification.attempts,
            )

        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Could not update check-in notification %d", notification_id)
            return False
        return notification.status == "delivered"

    def redeliver_pending(self, pending_after_seconds=None, failed_after_seconds=None) -> dict:
        """Re-drive outbox rows that never reached "delivered".

        Picks "pending" rows older than ``pending_after_seconds`` (left behind by
        a process that exited mid-delivery) and "failed" rows last touched more
        than ``failed_after_seconds`` ago.  Rows with a delivery thread still
        running in this process are skipped.

        Returns:
            {"checked": int, "delivered": int, "failed": int}
        """
        if pending_after_seconds is None:
            pending_after_seconds = current_app.config.get(
                "NOTIFICATION_REDELIVER_AFTER_SECONDS", DEFAULT_REDELIVER_AFTER_SECONDS)
        if failed_after_seconds is None:
            failed_after_seconds = current_app.config.get(
                "NOTIFICATION_RETRY_FAILED_AFTER_SECONDS", DEFAULT_RETRY_FAILED_AFTER_SECONDS)

        now = datetime.now(timezone.utc)
        pending_cutoff = now - timedelta(seconds=int(pending_after_seconds))
        failed_cutoff = now - timedelta(seconds=int(failed_after_seconds))
        rows = (
            CheckInNotification.query
            .filter(or_(
                and_(CheckInNotification.status == "pending", CheckInNotification.created_at <= pending_cutoff),
                and_(CheckInNotification.status == "failed", CheckInNotification.updated_at <= failed_cutoff),
            ))
            .order_by(CheckInNotification.id.asc())
            .all()
        )
        ids = [n.id for n in rows]

        stats = {"checked": 0, "delivered": 0, "failed": 0}
        for notification_id in ids:
            if notification_id in _running_deliveries:
                continue
            stats["checked"] += 1
            if self.deliver(notification_id):
                stats["delivered"] += 1
            else:
                stats["failed"] += 1

        if stats["checked"]:
            logger.info(
                "Re-drove %d check-in notification(s): %d delivered, %d failed",
                stats["checked"], stats["delivered"], stats["failed"],
            )
        return stats

    def _deliver_in_background(self, app, notification_id: int) -> None:
        with app.app_context():
            try:
                self.deliver(notification_id)
            except Exception:
                logger.exception("Background delivery of check-in notification %d crashed", notification_id)
            finally:
                db.session.remove()
                _running_deliveries.pop(notification_id, None)
