"""Tests for outcome emails, dispatchers and the notification task."""

import smtplib
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from celery.exceptions import Retry

from core.exceptions import UpstreamFailure
from core.integrations.email import (
    EmailService,
    LoggingNotificationDispatcher,
    QueuedNotificationDispatcher,
    SmtpNotificationDispatcher,
    build_dispatcher,
)
from database.models import ApplicationStatus
from api.services.notifications import render_outcome_notice
from workers.tasks.notifications import send_notification_email


class TestRenderOutcomeNotice:
    def test_offered(self):
        notice = render_outcome_notice(
            ApplicationStatus.OFFERED, "cand@example.test", "Backend Engineer", "Acme"
        )
        assert notice.to == "cand@example.test"
        assert notice.subject == "Congratulations! You've been shortlisted at Acme"
        assert notice.from_name == "Acme Hiring"
        assert "shortlisted for the next round" in notice.body_html
        assert "<strong>Backend Engineer</strong>" in notice.body_html

    def test_rejected(self):
        notice = render_outcome_notice(
            ApplicationStatus.REJECTED, "cand@example.test", "Backend Engineer", "Acme"
        )
        assert notice.subject == "Update on your application at Acme"
        assert "other candidates" in notice.body_html

    @pytest.mark.parametrize("status", [
        ApplicationStatus.APPLIED,
        ApplicationStatus.INTERVIEW_SCHEDULED,
        ApplicationStatus.AI_SCREENING_COMPLETE,
        ApplicationStatus.REVIEWED_BY_RECRUITER,
    ])
    def test_non_terminal_has_no_notice(self, status):
        assert render_outcome_notice(status, "c@example.test", "Job", "Acme") is None

    def test_html_escaped(self):
        notice = render_outcome_notice(
            ApplicationStatus.OFFERED, "c@example.test", "<script>x</script>", "A&B"
        )
        assert "<script>" not in notice.body_html
        assert "A&amp;B" in notice.body_html


class TestEmailService:
    def test_build_message(self):
        service = EmailService("smtp.example.test", smtp_user="mailer@example.test")
        msg = service.build_message("c@example.test", "Hello", "<p>Hi</p>", from_name="Acme Hiring")
        assert msg["From"] == "Acme Hiring <mailer@example.test>"
        assert msg["To"] == "c@example.test"
        assert msg["Subject"] == "Hello"

    def test_send_email(self):
        service = EmailService("smtp.example.test", 2525, "mailer", "pw", "hiring@example.test")
        with patch("core.integrations.email.smtplib.SMTP") as smtp:
            server = smtp.return_value.__enter__.return_value
            service.send_email("c@example.test", "Hello", "<p>Hi</p>")

        smtp.assert_called_once_with("smtp.example.test", 2525, timeout=30.0)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("mailer", "pw")
        server.send_message.assert_called_once()

    def test_from_env_requires_host(self, monkeypatch):
        monkeypatch.delenv("SMTP_HOST", raising=False)
        with pytest.raises(RuntimeError):
            EmailService.from_env()


class TestDispatchers:
    @pytest.mark.asyncio
    async def test_smtp_failure_is_upstream(self):
        service = MagicMock()
        service.send_email.side_effect = smtplib.SMTPServerDisconnected("gone")
        with pytest.raises(UpstreamFailure):
            await SmtpNotificationDispatcher(service).send("c@example.test", "s", "<p>b</p>")

    @pytest.mark.asyncio
    async def test_smtp_success(self):
        service = MagicMock()
        await SmtpNotificationDispatcher(service).send("c@example.test", "s", "<p>b</p>", "Acme Hiring")
        service.send_email.assert_called_once_with("c@example.test", "s", "<p>b</p>", "Acme Hiring")

    @pytest.mark.asyncio
    async def test_queued_enqueues_kwargs(self):
        enqueue = MagicMock(return_value=SimpleNamespace(id="task-1"))
        await QueuedNotificationDispatcher(enqueue).send("c@example.test", "s", "<p>b</p>", "Acme Hiring")
        enqueue.assert_called_once_with(
            to="c@example.test", subject="s", body_html="<p>b</p>", from_name="Acme Hiring"
        )

    @pytest.mark.asyncio
    async def test_queue_unavailable(self):
        enqueue = MagicMock(side_effect=ConnectionError("broker down"))
        with pytest.raises(UpstreamFailure):
            await QueuedNotificationDispatcher(enqueue).send("c@example.test", "s", "b")

    @pytest.mark.asyncio
    async def test_logging_dispatcher_records(self):
        dispatcher = LoggingNotificationDispatcher()
        await dispatcher.send("c@example.test", "s", "b")
        assert dispatcher.sent == [
            {"to": "c@example.test", "subject": "s", "body_html": "b", "from_name": None}
        ]

    @pytest.mark.parametrize("backend,expected", [
        ("log", LoggingNotificationDispatcher),
        ("smtp", SmtpNotificationDispatcher),
        ("celery", QueuedNotificationDispatcher),
    ])
    def test_build_dispatcher(self, backend, expected):
        settings = SimpleNamespace(
            notification_backend=backend,
            smtp_host="smtp.example.test",
            smtp_port=587,
            smtp_user="mailer",
            smtp_password="pw",
            smtp_from_email=None,
            smtp_from_name="Hiring Team",
        )
        assert isinstance(build_dispatcher(settings), expected)


class TestSendNotificationEmailTask:
    def test_sends(self):
        with patch("workers.tasks.notifications.EmailService.from_env") as from_env:
            result = send_notification_email(
                to="c@example.test", subject="s", body_html="b", from_name="Acme Hiring"
            )
        from_env.return_value.send_email.assert_called_once_with("c@example.test", "s", "b", "Acme Hiring")
        assert result == {"status": "sent", "to": "c@example.test"}

    def test_retries_with_backoff(self):
        with patch("workers.tasks.notifications.EmailService.from_env") as from_env, \
                patch.object(send_notification_email, "retry", side_effect=Retry()) as retry:
            from_env.return_value.send_email.side_effect = OSError("connection refused")
            with pytest.raises(Retry):
                send_notification_email(to="c@example.test", subject="s", body_html="b")

        assert retry.call_args.kwargs["countdown"] == 60
        assert retry.call_args.kwargs["max_retries"] == 5
