"""
notifications/mailer.py -- Mail transports used by the notification worker.

BrevoMailer posts to the Brevo transactional email HTTP API with requests.
send() is synchronous and raises on any failure; the worker calls it from a
thread and owns retry/drop policy, so nothing here retries.

LogMailer stands in when no BREVO_API_KEY is configured (local development):
it logs what would have been sent.
"""

from __future__ import annotations

import logging

import requests

from core.config import Settings

logger = logging.getLogger("suppliergate.notify")

BREVO_API_URL = "https://api.brevo.com/v3/smtp/email"
_TIMEOUT = 10  # seconds


class MailDeliveryError(Exception):
    """The transport did not accept a message."""


class BrevoMailer:
    def __init__(self, api_key: str, sender_email: str, sender_name: str) -> None:
        self._sender = {"email": sender_email, "name": sender_name}
        # One session per mailer for connection pooling across jobs
        self._session = requests.Session()
        self._session.max_redirects = 3
        self._session.headers.update(
            {
                "api-key": api_key,
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )

    def send(self, to: str, subject: str, html: str) -> None:
        payload = {
            "sender": self._sender,
            "to": [{"email": to}],
            "subject": subject,
            "htmlContent": html,
        }
        try:
            resp = self._session.post(BREVO_API_URL, json=payload, timeout=_TIMEOUT)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise MailDeliveryError(f"Brevo rejected message to {to}: {e}") from e

    def close(self) -> None:
        self._session.close()


class LogMailer:
    def send(self, to: str, subject: str, html: str) -> None:
        logger.info("Mail transport disabled; would send %r to %s", subject, to)

    def close(self) -> None:
        pass


def mailer_from_settings(settings: Settings):
    """Return a BrevoMailer when an API key is configured, else a LogMailer."""
    if settings.brevo_api_key:
        return BrevoMailer(settings.brevo_api_key, settings.brevo_sender_email, settings.brevo_sender_name)
    logger.warning("BREVO_API_KEY not set -- notifications will be logged, not sent")
    return LogMailer()
