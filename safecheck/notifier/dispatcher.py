import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from ..deadlines import as_utc
from ..models import EmergencyContact
from ..store import SafeCheckStore
from .transport import NotificationTransport

logger = logging.getLogger(__name__)

EMAIL_SUBJECT = "Safety Alert: {user_name} has missed their check-in"
EMAIL_BODY = (
    "Hi {contact_name},\n\n"
    "{user_name} has missed their scheduled safety check-in on SafeCheck. "
    "This may be nothing to worry about, but we wanted to let you know.\n\n"
    "Missed at: {missed_at}\n\n"
    "Consider reaching out to {user_name} to make sure they are okay.\n\n"
    "-- SafeCheck, a personal safety check-in companion"
)
SMS_SUBJECT = "SafeCheck alert"
SMS_BODY = "SafeCheck: {user_name} missed their safety check-in. Please check on them."


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Reduce a phone number to its 10-digit national form.

    ``"+1 (555) 123-4567"`` and ``"555-123-4567"`` both give ``"5551234567"``;
    anything with fewer than 10 digits gives ``None``.
    """
    digits = re.sub(r"\D", "", phone or "")
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) < 10:
        return None
    return digits


def sms_address(phone: Optional[str], gateway_domain: str) -> Optional[str]:
    digits = normalize_phone(phone)
    if digits is None:
        return None
    return f"{digits}@{gateway_domain}"


@dataclass
class Outcome:
    contact_id: Optional[int]
    alert_type: str
    destination: str
    status: str


@dataclass
class DispatchResult:
    user_id: int
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    outcomes: list[Outcome] = field(default_factory=list)


class AlertDispatcher:
    """
    Notifies every contact of an overdue user, one alert log row per attempt.

    Each row is committed before the next attempt, so a failure part-way
    through leaves earlier rows in place.
    """

    def __init__(self, store: SafeCheckStore, transport: NotificationTransport, sms_gateway_domain: Optional[str] = None):
        self.store = store
        self.transport = transport
        self.sms_gateway_domain = sms_gateway_domain

    def dispatch(
        self,
        user_id: int,
        user_name: str,
        contacts: list[EmergencyContact],
        now: Optional[datetime] = None,
    ) -> DispatchResult:
        now = as_utc(now) if now is not None else datetime.now(timezone.utc)
        result = DispatchResult(user_id=user_id)
        missed_at = now.strftime("%Y-%m-%d %H:%M UTC")

        for contact in contacts:
            body = EMAIL_BODY.format(contact_name=contact.name, user_name=user_name, missed_at=missed_at)
            self._attempt(result, user_id, user_name, contact, "email", contact.email,
                          EMAIL_SUBJECT.format(user_name=user_name), body, now)

            if not contact.phone or not self.sms_gateway_domain:
                continue
            address = sms_address(contact.phone, self.sms_gateway_domain)
            if address is None:
                logger.info("skipping SMS for contact %s: unusable phone number", contact.id)
                continue
            self._attempt(result, user_id, user_name, contact, "sms", address,
                          SMS_SUBJECT, SMS_BODY.format(user_name=user_name), now)

        logger.info(
            "dispatched alerts for user %s: %d attempted, %d sent, %d failed",
            user_id, result.attempted, result.succeeded, result.failed,
        )
        return result

    def _attempt(self, result, user_id, user_name, contact, alert_type, destination, subject, body, now):
        try:
            ok = bool(self.transport.send(destination, subject, body))
        except Exception:
            logger.warning("%s transport raised for contact %s", alert_type, contact.id, exc_info=True)
            ok = False

        status = "sent" if ok else "failed"
        if ok:
            message = f"Missed check-in {alert_type} for {user_name} sent to {contact.name} <{destination}>"
        else:
            message = f"Missed check-in {alert_type} for {user_name} could not be delivered to {contact.name} <{destination}>"
        self.store.add_alert_log(
            user_id=user_id,
            contact_id=contact.id,
            alert_type=alert_type,
            status=status,
            message=message,
            sent_at=now,
        )

        result.attempted += 1
        if ok:
            result.succeeded += 1
        else:
            result.failed += 1
        result.outcomes.append(Outcome(contact_id=contact.id, alert_type=alert_type, destination=destination, status=status))
