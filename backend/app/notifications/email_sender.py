"""Transactional email over SMTP (welcome and order confirmation messages)."""
import smtplib
from email.message import EmailMessage
from email.utils import formataddr

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

SMTP_TIMEOUT_SECONDS = 20


class EmailSendError(RuntimeError):
    pass


def build_message(to_email: str, subject: str, body: str, html: str | None = None) -> EmailMessage:
    msg = EmailMessage()
    from_email = settings.SMTP_FROM_EMAIL
    msg["From"] = formataddr((settings.SMTP_FROM_NAME, from_email)) if settings.SMTP_FROM_NAME else from_email
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)
    if html:
        msg.add_alternative(html, subtype="html")
    return msg


def send_email(to_email: str, subject: str, body: str, html: str | None = None) -> None:
    """Send a plain-text email with an optional HTML alternative.

    With ENABLE_EMAIL_NOTIFICATIONS off the message is only logged.
    """
    if not settings.ENABLE_EMAIL_NOTIFICATIONS:
        logger.info("Email disabled, not sending %r to %s", subject, to_email)
        return
    if not settings.SMTP_HOST or not settings.SMTP_FROM_EMAIL:
        raise EmailSendError("SMTP is not configured")

    msg = build_message(to_email, subject, body, html)
    try:
        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=SMTP_TIMEOUT_SECONDS) as server:
            server.ehlo()
            if settings.SMTP_USE_TLS:
                server.starttls()
                server.ehlo()
            if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        raise EmailSendError(str(e)) from e

    logger.info("Email %r sent to %s", subject, to_email)
