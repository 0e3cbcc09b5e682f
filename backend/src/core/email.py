"""Outbound email over SMTP."""
import logging
from email.message import EmailMessage

import aiosmtplib

from core.config import Settings, get_settings
from core.exceptions import UpstreamFailureError

logger = logging.getLogger(__name__)


class Mailer:
    """Async SMTP mailer configured from settings."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def build_message(self, to: str, subject: str, html: str) -> EmailMessage:
        """Build a multipart message with a plain-text fallback."""
        message = EmailMessage()
        message["From"] = self._settings.email_from
        message["To"] = to
        message["Subject"] = subject
        message.set_content("Open this message in an HTML-capable mail client.")
        message.add_alternative(html, subtype="html")
        return message

    async def send(self, to: str, subject: str, html: str) -> None:
        """
        Send an HTML email.

        Raises:
            UpstreamFailureError: the SMTP server could not be reached or refused
                the message.
        """
        message = self.build_message(to, subject, html)
        settings = self._settings
        try:
            await aiosmtplib.send(
                message,
                hostname=settings.email_server_host,
                port=settings.email_server_port,
                username=settings.email_server_user or None,
                password=settings.email_server_password or None,
                start_tls=settings.email_server_port == 587,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.exception("email_send_failed", extra={"subject": subject})
            raise UpstreamFailureError("Email could not be sent") from e
        logger.info("email_sent", extra={"subject": subject})


def get_mailer() -> Mailer:
    """FastAPI dependency returning a mailer for the current settings."""
    return Mailer(get_settings())
