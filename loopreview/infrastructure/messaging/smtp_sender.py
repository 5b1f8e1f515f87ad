"""
SMTP Email Sender
=================

Sends multipart (text + HTML) email through the configured SMTP relay.
A connection is opened per message and always closed; the socket timeout
bounds how long a stuck relay can hold a dispatch slot.
"""

import logging
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid

from ...domain.errors import TransportError
from ..config import SMTPSettings
from .channel_sender import EmailSender, OutboundEmail

logger = logging.getLogger(__name__)


class SmtpEmailSender(EmailSender):
    """
    Email transport over SMTP (STARTTLS or implicit TLS).

    USAGE:
        sender = SmtpEmailSender(settings.smtp)
        message_id = sender.send(outbound_email)
    """

    def __init__(self, settings: SMTPSettings):
        self._settings = settings

    def send(self, message: OutboundEmail) -> str:
        if not self._settings.host:
            raise TransportError("SMTP is not configured (SMTP_HOST missing)", provider="smtp")

        email = self._build_message(message)

        try:
            with self._connect() as smtp:
                if self._settings.username:
                    smtp.login(self._settings.username, self._settings.password)
                smtp.send_message(email)
        except smtplib.SMTPResponseException as e:
            error = e.smtp_error.decode(errors="replace") if isinstance(e.smtp_error, bytes) else str(e.smtp_error)
            raise TransportError(f"SMTP {e.smtp_code}: {error}", provider="smtp") from e
        except (smtplib.SMTPException, OSError) as e:
            raise TransportError(str(e) or e.__class__.__name__, provider="smtp") from e

        logger.info(f"Email sent to {message.to} ({email['Message-ID']})")
        return email["Message-ID"]

    def _connect(self) -> smtplib.SMTP:
        """Open an authenticated-ready SMTP connection."""
        s = self._settings
        if s.use_ssl:
            return smtplib.SMTP_SSL(s.host, s.port, timeout=s.timeout_seconds)

        smtp = smtplib.SMTP(s.host, s.port, timeout=s.timeout_seconds)
        smtp.ehlo()
        if smtp.has_extn("starttls"):
            smtp.starttls()
            smtp.ehlo()
        return smtp

    def _build_message(self, message: OutboundEmail) -> EmailMessage:
        email = EmailMessage()
        email["From"] = message.from_address
        email["To"] = message.to
        email["Subject"] = message.subject
        email["Message-ID"] = make_msgid(domain=self._sender_domain(message.from_address))
        email.set_content(message.text or "")
        if message.html:
            email.add_alternative(message.html, subtype="html")
        return email

    @staticmethod
    def _sender_domain(from_address: str) -> str:
        address = from_address.rsplit("<", 1)[-1].rstrip(">").strip()
        return address.split("@", 1)[1] if "@" in address else "localhost"
