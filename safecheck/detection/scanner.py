import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from ..deadlines import alert_deadline, as_utc
from ..models import EmergencyContact
from ..store import SafeCheckStore

logger = logging.getLogger(__name__)


@dataclass
class OverdueUser:
    user_id: int
    user_name: str
    contacts: list[EmergencyContact]
    deadline: datetime
    interval_hours: int


@dataclass
class ScanReport:
    checked_at: datetime
    overdue: int = 0
    suppressed: int = 0
    without_contacts: int = 0
    alerts: list[OverdueUser] = field(default_factory=list)


def suppression_start(now: datetime, interval_hours: int) -> datetime:
    return as_utc(now) - timedelta(hours=interval_hours)


class OverdueScanner:
    """
    Finds users whose check-in deadline has lapsed and who have not been
    alerted for the current overdue episode.

    Dedup state is the alert log alone: any alert row newer than one
    interval-length before ``now`` means the episode has already fired.
    """

    def __init__(self, store: SafeCheckStore, tz=None):
        self.store = store
        self.tz = tz

    def evaluate(self, now: datetime) -> ScanReport:
        now = as_utc(now)
        report = ScanReport(checked_at=now)
        for user in self.store.users_by_role("user"):
            if not self.store.alerts_enabled(user.id):
                continue
            schedule = self.store.get_schedule(user.id)
            last = self.store.latest_check_in(user.id)
            if last is None:
                # Never checked in: nothing has lapsed yet
                continue
            deadline = alert_deadline(schedule, last, now=now, tz=self.tz)
            # Alerting starts at the deadline itself; classify() still says due-soon at that instant
            if now < deadline:
                continue
            report.overdue += 1

            recent = self.store.alerts_since(user.id, suppression_start(now, schedule.interval_hours))
            if recent:
                logger.debug("user %s overdue but already alerted (%d rows in window)", user.id, len(recent))
                report.suppressed += 1
                continue

            contacts = self.store.list_contacts(user.id)
            if not contacts:
                logger.info("user %s overdue since %s but has no emergency contacts", user.id, deadline.isoformat())
                report.without_contacts += 1
                continue

            report.alerts.append(OverdueUser(
                user_id=user.id,
                user_name=user.name,
                contacts=contacts,
                deadline=deadline,
                interval_hours=schedule.interval_hours,
            ))
        logger.info(
            "overdue scan at %s: %d overdue, %d to alert, %d suppressed",
            now.isoformat(), report.overdue, len(report.alerts), report.suppressed,
        )
        return report

    def scan(self, now: datetime) -> list[OverdueUser]:
        return self.evaluate(now).alerts
