"""
One-shot overdue check, meant to be run by an external timer (cron, a
scheduled job, or the ``/api/v1/cron/overdue-check`` endpoint).

The scan runs to completion first; alerts are then dispatched user by user
under a per-user lock. Database failures abort the run. Alert rows already
written stay in place, and the next invocation starts over.
"""
import json
import logging
import sys
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from .config import settings
from .database import engine, init_db
from .deadlines import as_utc
from .detection.scanner import OverdueScanner, suppression_start
from .logging_config import setup_logging
from .notifier.dispatcher import AlertDispatcher
from .notifier.transport import NotificationTransport, build_transport
from .store import SafeCheckStore

logger = logging.getLogger(__name__)


class OverdueCheckError(RuntimeError):
    """The overdue check could not complete; the message is safe to show the caller."""


@dataclass
class UserNotificationSummary:
    user_id: int
    user_name: str
    attempted: int
    succeeded: int
    failed: int


@dataclass
class RunSummary:
    checked_at: datetime
    overdue_users: int = 0
    alerts_triggered: int = 0
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    notifications: list[UserNotificationSummary] = field(default_factory=list)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["checked_at"] = self.checked_at.isoformat()
        return d


def _run(session: Session, now: datetime, transport: NotificationTransport) -> RunSummary:
    store = SafeCheckStore(session)
    report = OverdueScanner(store).evaluate(now)
    dispatcher = AlertDispatcher(store, transport, sms_gateway_domain=settings.sms_gateway_domain)
    summary = RunSummary(checked_at=now, overdue_users=report.overdue)

    for due in report.alerts:
        with store.user_lock(due.user_id) as acquired:
            if not acquired:
                logger.info("user %s is being handled by another run, skipping", due.user_id)
                continue
            if store.has_recent_alert(due.user_id, suppression_start(now, due.interval_hours)):
                continue
            result = dispatcher.dispatch(due.user_id, due.user_name, due.contacts, now=now)

        summary.alerts_triggered += 1
        summary.attempted += result.attempted
        summary.succeeded += result.succeeded
        summary.failed += result.failed
        summary.notifications.append(UserNotificationSummary(
            user_id=due.user_id,
            user_name=due.user_name,
            attempted=result.attempted,
            succeeded=result.succeeded,
            failed=result.failed,
        ))
    return summary


def run_overdue_check(
    now: Optional[datetime] = None,
    session: Optional[Session] = None,
    transport: Optional[NotificationTransport] = None,
) -> RunSummary:
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    transport = transport or build_transport()
    try:
        if session is not None:
            summary = _run(session, now, transport)
        else:
            with Session(engine) as s:
                summary = _run(s, now, transport)
    except SQLAlchemyError as e:
        logger.exception("overdue check aborted by a database error")
        raise OverdueCheckError(f"Overdue check failed: database unavailable ({e.__class__.__name__})") from e

    logger.info(
        "overdue check done: %d overdue, %d alerted, %d/%d notifications sent",
        summary.overdue_users, summary.alerts_triggered, summary.succeeded, summary.attempted,
    )
    return summary


def main() -> int:
    setup_logging()
    try:
        init_db()
        summary = run_overdue_check()
    except SQLAlchemyError:
        logger.exception("could not initialise the database")
        return 1
    except OverdueCheckError as e:
        print(json.dumps({"ok": False, "error": str(e)}))
        return 1
    print(json.dumps({"ok": True, **summary.to_dict()}))
    return 0


if __name__ == "__main__":
    sys.exit(main())
