import logging
import secrets
from typing import Protocol

import requests

from asset_vault.config import Settings
from asset_vault.errors import ExternalStoreError

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"


def generate_verification_code() -> str:
    return str(1000 + secrets.randbelow(9000))


class Mailer(Protocol):
    def send(self, to: str, subject: str, html: str) -> None: ...


class ResendMailer:
    def __init__(self, api_key: str, sender: str, timeout: float = 10.0):
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout

    def send(self, to: str, subject: str, html: str) -> None:
        try:
            response = requests.post(
                RESEND_URL,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"from": self.sender, "to": [to], "subject": subject, "html": html},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.error(f"Error in sending mail to {to}: {exc}")
            raise ExternalStoreError(f"could not send email to {to}") from exc
        logger.info(f"Email sent to {to}")


class LogMailer:
    """Writes outgoing mail to the log instead of sending it."""

    def send(self, to: str, subject: str, html: str) -> None:
        logger.info(f"Mail to {to}: {subject}")


def build_mailer(settings: Settings) -> Mailer:
    if settings.resend_api_key:
        return ResendMailer(settings.resend_api_key, settings.mail_from)
    return LogMailer()
