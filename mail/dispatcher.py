"""
mail/dispatcher.py -- SMTP delivery of password recovery links.

SmtpMailDispatcher sends one message per call over a fresh SMTP connection
(STARTTLS by default). Delivery failures raise MailDeliveryError so the
caller can report an internal error instead of a false success.

DisabledMailDispatcher is installed when SMTP_HOST is empty. It reports
enabled=False and refuses to send; the identity service checks the flag
before touching the database so the forgot-password endpoint degrades to
503 without revealing whether the email exists.
"""

from __future__ import annotations

import html
import logging
import smtplib
from email.message import EmailMessage

from core.config import Settings

logger = logging.getLogger("staffauth.mail")

_SUBJECT = "Password recovery"


class MailDeliveryError(Exception):
    """The SMTP transport rejected or failed to deliver a message."""


def _recovery_bodies(reset_link: str) -> tuple[str, str]:
    text = (
        "You requested a password reset.\n\n"
        f"Open this link to choose a new password: {reset_link}\n\n"
        "The link expires in 30 minutes. If you did not ask for this, ignore this message.\n"
    )
    safe = html.escape(reset_link, quote=True)
    body = (
        "<p>You requested a password reset.</p>"
        f'<p><a href="{safe}">Click here to choose a new password</a></p>'
        "<p>This link expires in 30 minutes.</p>"
    )
    return text, body


class SmtpMailDispatcher:
    enabled = True

    def __init__(
        self,
        host: str,
        port: int = 587,
        user: str = "",
        password: str = "",
        sender: str = "no-reply@localhost",
        starttls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender
        self.starttls = starttls
        self.timeout = timeout

    def send_password_recovery(self, email: str, reset_link: str) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = email
        message["Subject"] = _SUBJECT
        text, body = _recovery_bodies(reset_link)
        message.set_content(text)
        message.add_alternative(body, subtype="html")

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.starttls:
                    smtp.starttls()
                if self.user:
                    smtp.login(self.user, self.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.exception("Password recovery mail to %s failed", email)
            raise MailDeliveryError(str(exc)) from exc
        logger.info("Password recovery mail sent to %s", email)


class DisabledMailDispatcher:
    enabled = False

    def send_password_recovery(self, email: str, reset_link: str) -> None:
        raise MailDeliveryError("Mail transport is not configured")


def build_dispatcher(settings: Settings):
    """Return an SMTP dispatcher, or the disabled one when SMTP_HOST is unset."""
    if not settings.mail_enabled:
        logger.warning("SMTP_HOST not set -- password recovery mail is disabled")
        return DisabledMailDispatcher()
    return SmtpMailDispatcher(
        host=settings.smtp_host,
        port=settings.smtp_port,
        user=settings.smtp_user,
        password=settings.smtp_password,
        sender=settings.smtp_from,
        starttls=settings.smtp_starttls,
    )
