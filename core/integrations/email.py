"""
Outbound email for application outcome notices.

``NotificationDispatcher`` is the capability the status gateway depends on.
Three implementations are wired by the composition root according to
NOTIFICATION_BACKEND: direct SMTP, a Celery-queued send, and a logging stub
for development.
"""

import asyncio
import os
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Callable, Optional, Protocol

from core.exceptions import UpstreamFailure

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    async def send(
        self,
        to: str,
        subject: str,
        body_html: str,
        from_name: Optional[str] = None,
    ) -> None:
        """Deliver one message. Raises UpstreamFailure when delivery fails."""
        ...


class EmailService:
    """Email service for sending emails via SMTP."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: str = "Hiring Team",
        timeout: float = 30.0,
    ):
        """
        Initialize email service.

        Args:
            smtp_host: SMTP server host
            smtp_port: SMTP server port
            smtp_user: SMTP username
            smtp_password: SMTP password
            from_email: Sender address (defaults to the SMTP user)
            from_name: Default sender display name
            timeout: Socket timeout in seconds
        """
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_email = from_email or smtp_user
        self.from_name = from_name
        self.timeout = timeout

    @classmethod
    def from_env(cls) -> "EmailService":
        """Build from SMTP_* variables; used by worker processes."""
        host = os.getenv("SMTP_HOST")
        if not host:
            raise RuntimeError("SMTP_HOST is not set")
        return cls(
            smtp_host=host,
            smtp_port=int(os.getenv("SMTP_PORT", "587")),
            smtp_user=os.getenv("SMTP_USER"),
            smtp_password=os.getenv("SMTP_PASSWORD"),
            from_email=os.getenv("SMTP_FROM_EMAIL"),
            from_name=os.getenv("SMTP_FROM_NAME", "Hiring Team"),
        )

    def build_message(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        from_name: Optional[str] = None,
    ) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = f"{from_name or self.from_name} <{self.from_email}>"
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.attach(MIMEText(body_html, "html"))
        return msg

    def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        from_name: Optional[str] = None,
    ) -> None:
        """
        Send an HTML email.

        Raises:
            smtplib.SMTPException, OSError: on any delivery failure
        """
        msg = self.build_message(to_email, subject, body_html, from_name)
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
            server.starttls()
            if self.smtp_user and self.smtp_password:
                server.login(self.smtp_user, self.smtp_password)
            server.send_message(msg, from_addr=self.from_email, to_addrs=[to_email])

        logger.info(f"Email sent to {to_email}")


class SmtpNotificationDispatcher:
    """Sends in-request over SMTP, off the event loop."""

    def __init__(self, email_service: EmailService):
        self.email_service = email_service

    async def send(
        self,
        to: str,
        subject: str,
        body_html: str,
        from_name: Optional[str] = None,
    ) -> None:
        try:
            await asyncio.to_thread(
                self.email_service.send_email, to, subject, body_html, from_name
            )
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email: {e}")
            raise UpstreamFailure(f"Email delivery failed: {e}") from e


class QueuedNotificationDispatcher:
    """
    Hands the message to the Celery worker, which owns retries.

    ``enqueue`` defaults to the ``send_notification_email`` task's ``delay``.
    """

    def __init__(self, enqueue: Optional[Callable[..., object]] = None):
        if enqueue is None:
            from workers.tasks.notifications import send_notification_email

            enqueue = send_notification_email.delay
        self._enqueue = enqueue

    async def send(
        self,
        to: str,
        subject: str,
        body_html: str,
        from_name: Optional[str] = None,
    ) -> None:
        try:
            result = await asyncio.to_thread(
                self._enqueue, to=to, subject=subject, body_html=body_html, from_name=from_name
            )
        except Exception as e:
            logger.error(f"Failed to enqueue email to broker: {type(e).__name__}: {e}")
            raise UpstreamFailure("Notification queue unavailable") from e
        logger.info(f"Email to {to} queued as task {getattr(result, 'id', None)}")


class LoggingNotificationDispatcher:
    """Development stub: records what would have been sent."""

    def __init__(self):
        self.sent: list[dict[str, Optional[str]]] = []

    async def send(
        self,
        to: str,
        subject: str,
        body_html: str,
        from_name: Optional[str] = None,
    ) -> None:
        self.sent.append(
            {"to": to, "subject": subject, "body_html": body_html, "from_name": from_name}
        )
        logger.info(f"Email not sent (log backend): to={to} subject={subject!r}")


def build_dispatcher(settings) -> NotificationDispatcher:
    """Pick the dispatcher named by ``settings.notification_backend``."""
    if settings.notification_backend == "smtp":
        return SmtpNotificationDispatcher(
            EmailService(
                smtp_host=settings.smtp_host,
                smtp_port=settings.smtp_port,
                smtp_user=settings.smtp_user,
                smtp_password=settings.smtp_password,
                from_email=settings.smtp_from_email,
                from_name=settings.smtp_from_name,
            )
        )
    if settings.notification_backend == "celery":
        return QueuedNotificationDispatcher()
    return LoggingNotificationDispatcher()
