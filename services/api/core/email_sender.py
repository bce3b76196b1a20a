# services/api/core/email_sender.py
from __future__ import annotations
import aiosmtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Any, Dict, Optional, Protocol, Tuple
import logging

from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

logger = logging.getLogger(__name__)

# Retried with backoff. Any other SMTP error fails the send at once.
TRANSIENT_SMTP_ERRORS = (
    aiosmtplib.SMTPConnectError,
    aiosmtplib.SMTPServerDisconnected,
    aiosmtplib.SMTPTimeoutError,
)


@dataclass(frozen=True)
class NotificationResult:
    success: bool
    error: Optional[str] = None


class Notifier(Protocol):
    """Outbound notification sender. Implementations never raise on delivery failure."""

    async def send(self, recipient: str, subject: str, body: str) -> NotificationResult:
        ...


class SmtpNotifier:
    """
    Send HTML mail via SMTP (STARTTLS).
    """

    def __init__(
        self,
        *,
        smtp_host: str,
        smtp_port: int,
        smtp_user: str,
        smtp_password: str,
        from_email: str,
        from_name: str,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_email = from_email
        self.from_name = from_name

    async def send(self, recipient: str, subject: str, body: str) -> NotificationResult:
        # Create message
        msg = MIMEMultipart()
        msg['From'] = f"{self.from_name} <{self.from_email}>"
        msg['To'] = recipient
        msg['Subject'] = subject
        msg.attach(MIMEText(body, 'html'))

        try:
            await self._deliver(msg, recipient)
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"✗ Email send failed to {recipient}: {e}")
            return NotificationResult(success=False, error=str(e))

        logger.info(f"✓ Email sent to {recipient}")
        return NotificationResult(success=True)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(TRANSIENT_SMTP_ERRORS),
        reraise=True,
    )
    async def _deliver(self, msg: MIMEMultipart, recipient: str) -> None:
        await aiosmtplib.send(
            msg,
            hostname=self.smtp_host,
            port=self.smtp_port,
            username=self.smtp_user or None,
            password=self.smtp_password or None,
            start_tls=True,
            recipients=[recipient],
        )


class LogNotifier:
    """Used when notifications are disabled or SMTP is not configured."""

    async def send(self, recipient: str, subject: str, body: str) -> NotificationResult:
        logger.info(f"Notification (not sent) to {recipient}: {subject}")
        return NotificationResult(success=True)


def build_notifier(settings) -> Notifier:
    if not settings.notifications_enabled or not settings.smtp_host:
        return LogNotifier()
    return SmtpNotifier(
        smtp_host=settings.smtp_host,
        smtp_port=settings.smtp_port,
        smtp_user=settings.smtp_user,
        smtp_password=settings.smtp_password,
        from_email=settings.smtp_from_email,
        from_name=settings.smtp_from_name,
    )


def corrector_assignment_email(
    *,
    corrector: Dict[str, Any],
    test: Dict[str, Any],
    subject: Optional[Dict[str, Any]],
    due_date: Optional[str],
) -> Tuple[str, str]:
    """Subject line and HTML body telling a corrector they have marks to enter."""
    test_name = test.get("name", "")
    subject_name = (subject or {}).get("name", "")
    first_name = corrector.get("first_name", "")

    title = f"Corrector assignment: {test_name}"
    body = (
        f"<p>Hello {escape(first_name)},</p>"
        f"<p>You have been assigned as corrector for the test "
        f"<b>{escape(test_name)}</b> ({escape(subject_name)}).</p>"
        f"<p>{escape(test.get('description') or '')}</p>"
        f"<p>Please enter the marks before: <b>{escape(due_date or 'no due date')}</b>.</p>"
    )
    return title, body
