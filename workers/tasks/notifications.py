"""Outcome notification email tasks."""

import logging
import smtplib
from typing import Optional

from celery import Task

from workers.celery_app import celery_app
from core.integrations.email import EmailService

logger = logging.getLogger(__name__)

MAX_RETRIES = 5
RETRY_BACKOFF_SECONDS = 60


@celery_app.task(name="workers.tasks.notifications.send_notification_email", bind=True)
def send_notification_email(
    self: Task,
    to: str,
    subject: str,
    body_html: str,
    from_name: Optional[str] = None,
) -> dict:
    """Send an application outcome email.

    Args:
        to: Candidate email address
        subject: Email subject
        body_html: Rendered HTML body
        from_name: Sender display name, e.g. "<company> Hiring"

    Returns:
        Dictionary with send status
    """
    try:
        EmailService.from_env().send_email(to, subject, body_html, from_name)
    except (smtplib.SMTPException, OSError) as e:
        countdown = RETRY_BACKOFF_SECONDS * (2 ** self.request.retries)
        logger.warning(
            f"Email to {to} failed (attempt {self.request.retries + 1}/{MAX_RETRIES + 1}): {e}"
        )
        raise self.retry(exc=e, countdown=countdown, max_retries=MAX_RETRIES)

    return {"status": "sent", "to": to}
