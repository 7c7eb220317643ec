import smtplib
from unittest.mock import patch

import pytest

from app.core.config import settings
from app.notifications.email_sender import EmailSendError, build_message, send_email
from app.notifications.templates import order_confirmation_email, welcome_email


@pytest.fixture
def smtp_enabled(monkeypatch):
    monkeypatch.setattr(settings, "ENABLE_EMAIL_NOTIFICATIONS", True)
    monkeypatch.setattr(settings, "SMTP_HOST", "smtp.test")
    monkeypatch.setattr(settings, "SMTP_PORT", 587)
    monkeypatch.setattr(settings, "SMTP_USE_TLS", True)
    monkeypatch.setattr(settings, "SMTP_USERNAME", "mailer")
    monkeypatch.setattr(settings, "SMTP_PASSWORD", "secret")
    monkeypatch.setattr(settings, "SMTP_FROM_EMAIL", "hello@pipedpeony.test")
    monkeypatch.setattr(settings, "SMTP_FROM_NAME", "The Piped Peony")


class TestSendEmail:
    def test_disabled_only_logs(self):
        with patch("smtplib.SMTP") as smtp:
            send_email("jane@example.com", "Hi", "body")
        smtp.assert_not_called()

    def test_unconfigured_smtp(self, monkeypatch):
        monkeypatch.setattr(settings, "ENABLE_EMAIL_NOTIFICATIONS", True)
        monkeypatch.setattr(settings, "SMTP_HOST", None)
        with pytest.raises(EmailSendError):
            send_email("jane@example.com", "Hi", "body")

    def test_sends_over_starttls(self, smtp_enabled):
        with patch("smtplib.SMTP") as smtp:
            send_email("jane@example.com", "Welcome", "text body", "<p>html body</p>")

        smtp.assert_called_once_with("smtp.test", 587, timeout=20)
        server = smtp.return_value.__enter__.return_value
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("mailer", "secret")
        msg = server.send_message.call_args.args[0]
        assert msg["To"] == "jane@example.com"
        assert msg["From"] == "The Piped Peony <hello@pipedpeony.test>"
        assert msg.get_body(preferencelist=("html",)).get_content().strip() == "<p>html body</p>"

    def test_smtp_failure_is_wrapped(self, smtp_enabled):
        with patch("smtplib.SMTP", side_effect=smtplib.SMTPConnectError(421, "busy")):
            with pytest.raises(EmailSendError):
                send_email("jane@example.com", "Welcome", "text body")

    def test_plain_message_without_html(self, smtp_enabled):
        msg = build_message("jane@example.com", "Hi", "just text")
        assert not msg.is_multipart()
        assert msg.get_content().strip() == "just text"


class TestTemplates:
    def test_welcome_mentions_plan_and_trial(self):
        subject, text, html = welcome_email("Jane", "Academy Monthly", trial_days=7)
        assert "Welcome" in subject
        assert "Academy Monthly" in text
        assert "7-day free trial" in text
        assert "Forgot password" not in text
        assert "7-day free trial" in html

    def test_welcome_with_password_reset(self):
        _, text, html = welcome_email("Jane", None, needs_password_reset=True)
        assert "Forgot password" in text
        assert "Forgot password" in html

    def test_welcome_escapes_names(self):
        _, _, html = welcome_email("<b>Jane</b>", "Plan & Co")
        assert "&lt;b&gt;Jane&lt;/b&gt;" in html
        assert "Plan &amp; Co" in html

    def test_order_confirmation_totals(self):
        subject, text, html = order_confirmation_email(
            "Jane",
            "cs_123",
            [{"name": "Tip set", "quantity": 2, "amount": 2598}],
            2598,
        )
        assert "Order Confirmation" in subject
        assert "2 x Tip set  $25.98" in text
        assert "Total: $25.98" in text
        assert "cs_123" in html
