import logging
import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from typing import List, Optional

from fashionmarket.config import settings
from fashionmarket.errors import ExternalServiceError

logger = logging.getLogger(__name__)


class MailerError(ExternalServiceError):
    """Raised when the transport could not hand a message over."""
    pass


@dataclass
class Attachment:
    filename: str
    content: bytes
    mime_type: str = "text/html"


@dataclass
class Notification:
    to: str
    subject: str
    body: str  # html
    attachments: List[Attachment] = field(default_factory=list)


class OutboxMailer:
    """
    In-process transport that keeps every message in ``sent``.

    Used when SMTP is not configured and in tests; ``fail_for`` makes sends
    to the listed recipients raise, to exercise the best-effort paths.
    """

    def __init__(self, fail_for: Optional[List[str]] = None):
        self.sent: List[Notification] = []
        self.fail_for = set(fail_for or [])

    def send(self, notification: Notification) -> None:
        if notification.to in self.fail_for:
            raise MailerError(f"Simulated delivery failure to {notification.to}")
        self.sent.append(notification)
        logger.info("outbox: queued %r to %s", notification.subject, notification.to)

    def health_check(self) -> bool:
        return True


class SmtpMailer:
    """SMTP relay transport with a bounded connect/send timeout."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        user: str = "",
        password: str = "",
        from_email: str = "",
        from_name: str = "FashionMarket",
        timeout: int = 10,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_email = from_email or user
        self.from_name = from_name
        self.timeout = timeout

    def _build(self, notification: Notification) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = notification.subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = notification.to
        msg.set_content("Este mensaje requiere un cliente de correo con soporte HTML.")
        msg.add_alternative(notification.body, subtype="html")
        for att in notification.attachments:
            maintype, _, subtype = att.mime_type.partition("/")
            msg.add_attachment(
                att.content, maintype=maintype, subtype=subtype, filename=att.filename
            )
        return msg

    def send(self, notification: Notification) -> None:
        msg = self._build(notification)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.starttls()
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            # TimeoutError is an OSError
            raise MailerError(f"SMTP delivery to {notification.to} failed: {e}") from e
        logger.info("Email sent to %s", notification.to)

    def health_check(self) -> bool:
        return bool(self.host)


_default_mailer = None


def get_mailer():
    """Process-wide transport built from settings; FastAPI dependency."""
    global _default_mailer
    if _default_mailer is None:
        if settings.SMTP_HOST:
            _default_mailer = SmtpMailer(
                host=settings.SMTP_HOST,
                port=settings.SMTP_PORT,
                user=settings.SMTP_USER,
                password=settings.SMTP_PASSWORD,
                from_email=settings.SMTP_FROM_EMAIL,
                from_name=settings.SMTP_FROM_NAME,
                timeout=settings.SMTP_TIMEOUT_SECONDS,
            )
        else:
            logger.warning("SMTP_HOST not set; emails are kept in the outbox")
            _default_mailer = OutboxMailer()
    return _default_mailer
