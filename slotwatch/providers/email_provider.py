import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import make_msgid

from slotwatch.errors import NotificationTransportError
from slotwatch.providers.notifier_base import NotificationResult, Notifier

logger = logging.getLogger(__name__)

SENDER_NAME = "施設予約Bot"


class EmailNotifier(Notifier):
    """
    SMTP notifier.

    Port 465 uses implicit TLS (SMTP_SSL); any other port connects in plain
    text and upgrades with STARTTLS.
    """

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        recipients: list[str],
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.recipients = [r for r in recipients if r]
        self.timeout = timeout

    @classmethod
    def parse_recipients(cls, value: str, fallback: str = "") -> list[str]:
        """Split a comma-separated recipient list, falling back to the sender."""
        recipients = [r.strip() for r in (value or fallback).split(",")]
        return [r for r in recipients if r]

    def build_message(self, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = f'"{SENDER_NAME}" <{self.user}>'
        msg["To"] = ", ".join(self.recipients)
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid()
        msg.set_content(body)
        return msg

    async def send(self, subject: str, body: str) -> NotificationResult:
        if not self.user or not self.password or not self.recipients:
            logger.warning("Mail settings incomplete; printing message instead")
            print(f"[Mail Mock] {subject}\n{body}")
            return NotificationResult(success=True, message_id="mock_mail")

        msg = self.build_message(subject, body)
        try:
            await asyncio.to_thread(self._deliver, msg)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationTransportError(f"Error sending mail via {self.host}: {e}") from e
        logger.info(f"Mail sent: {msg['Message-ID']}")
        return NotificationResult(success=True, message_id=msg["Message-ID"])

    def _deliver(self, msg: EmailMessage) -> None:
        if self.port == 465:
            context = ssl.create_default_context()
            with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=context) as server:
                server.login(self.user, self.password)
                server.send_message(msg)
        else:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.ehlo()
                server.starttls()
                server.ehlo()
                server.login(self.user, self.password)
                server.send_message(msg)
