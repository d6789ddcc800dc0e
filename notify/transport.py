"""
notify/transport.py -- Mail transports behind NotificationDispatcher.

A transport takes a fully rendered message and reports success as a bool.
It never raises for delivery problems: the dispatcher turns False into a
DeliveryFailed result and the calling workflow decides what to do.

HttpMailTransport posts to an HTTP mail API (Resend-compatible payload) with
a bounded timeout. A timeout is a failed delivery; retries belong to the
caller, not here.

LoggingTransport is the development fallback when no MAIL_API_KEY is set and
DEBUG is on. It logs recipients and subject only -- the body carries a live
link token and must not end up in log files.
"""

from __future__ import annotations

import logging
from typing import Protocol

import requests

from core.config import Settings

logger = logging.getLogger("mobihub.notify")


class MailTransport(Protocol):
    def send(self, recipients: list[str], subject: str, html: str) -> bool: ...


class HttpMailTransport:
    """POST {"from", "to", "subject", "html"} to MAIL_API_URL with a bearer key."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        sender: str,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self._api_url = api_url
        self._api_key = api_key
        self._sender = sender
        self._timeout = timeout
        # Module pattern from the fetcher: one pooled session, few redirects.
        self._session = session or requests.Session()
        self._session.max_redirects = 3

    def send(self, recipients: list[str], subject: str, html: str) -> bool:
        try:
            resp = self._session.post(
                self._api_url,
                headers={"Authorization": f"Bearer {self._api_key}"},
                json={
                    "from": self._sender,
                    "to": recipients,
                    "subject": subject,
                    "html": html,
                },
                timeout=self._timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.error("Mail API delivery failed for %d recipient(s): %s", len(recipients), e)
            return False
        return True


class LoggingTransport:
    def send(self, recipients: list[str], subject: str, html: str) -> bool:
        logger.info("DEV MAIL to=%s subject=%r (%d bytes, body not logged)", recipients, subject, len(html))
        return True


def build_transport(settings: Settings) -> MailTransport:
    """Pick the transport for this deployment.

    Production without MAIL_API_KEY is a configuration error: every emailed
    link would silently vanish.
    """
    if settings.mail_api_key:
        return HttpMailTransport(
            api_url=settings.mail_api_url,
            api_key=settings.mail_api_key,
            sender=settings.mail_from,
            timeout=settings.mail_timeout_seconds,
        )
    if settings.debug:
        logger.warning("MAIL_API_KEY not set -- emails will be logged, not sent")
        return LoggingTransport()
    raise ValueError("MAIL_API_KEY is required in production mode.")
