"""
Outbound notification transports.

A transport takes one destination address, a subject and a body and reports
success as a bool. It never raises for delivery problems; a timeout, an HTTP
error or a missing API key all come back as ``False``.
"""
import logging
from typing import Optional, Protocol

import httpx

from ..config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class NotificationTransport(Protocol):
    def send(self, destination: str, subject: str, body: str) -> bool: ...


class ResendTransport:
    """Sends through the Resend HTTP email API; SMS goes through an email-to-SMS bridge address."""

    def __init__(
        self,
        api_key: str,
        from_address: str,
        api_url: str,
        timeout: float = 10.0,
        http_transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key
        self.from_address = from_address
        self.api_url = api_url
        self.timeout = timeout
        self.http_transport = http_transport

    def send(self, destination: str, subject: str, body: str) -> bool:
        payload = {
            "from": self.from_address,
            "to": [destination],
            "subject": subject,
            "text": body,
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        try:
            with httpx.Client(timeout=self.timeout, transport=self.http_transport) as client:
                r = client.post(self.api_url, headers=headers, json=payload)
                r.raise_for_status()
        except httpx.TimeoutException:
            logger.warning("notification to %s timed out after %ss", destination, self.timeout)
            return False
        except httpx.HTTPStatusError as e:
            logger.warning("notification to %s rejected: %s %s", destination, e.response.status_code, e.response.text[:200])
            return False
        except httpx.HTTPError as e:
            logger.warning("notification to %s failed: %s", destination, e)
            return False
        return True


class DisabledTransport:
    """Stand-in when no email provider is configured: logs the message and reports failure."""

    def send(self, destination: str, subject: str, body: str) -> bool:
        logger.info("notifications disabled, would send to %s: %s", destination, subject)
        return False


def build_transport(cfg: Optional[Settings] = None) -> NotificationTransport:
    cfg = cfg or default_settings
    if not cfg.resend_api_key:
        logger.warning("RESEND_API_KEY not set; alerts will be recorded as failed")
        return DisabledTransport()
    return ResendTransport(
        api_key=cfg.resend_api_key,
        from_address=cfg.alert_from_address,
        api_url=cfg.resend_api_url,
        timeout=cfg.notify_timeout_seconds,
    )
