"""
core/mailer.py -- Outbound email for password reset links.

Two implementations share one contract, send(to_address, subject, html_body):

  SmtpMailer -- delivers through an SMTP relay configured in Settings.
  LogMailer  -- development fallback when SMTP_HOST is empty. Writes the
                message to the log instead of sending it.

Any delivery failure raises MailerError. Callers decide how to surface it;
nothing here retries or swallows errors.
"""

from __future__ import annotations

import html
import logging
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage

from core.config import Settings

logger = logging.getLogger("storefront.mail")


class MailerError(Exception):
    """Raised when a message could not be handed to the mail relay."""


class Mailer(ABC):
    """Base mailer interface."""

    @abstractmethod
    def send(self, to_address: str, subject: str, html_body: str) -> None:
        """Deliver one HTML message or raise MailerError."""


class SmtpMailer(Mailer):
    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def send(self, to_address: str, subject: str, html_body: str) -> None:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to_address
        msg["Subject"] = subject
        msg.set_content("This message requires an HTML-capable mail client.")
        msg.add_alternative(html_body, subtype="html")
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("SMTP delivery to %s via %s:%d failed: %s", to_address, self.host, self.port, exc)
            raise MailerError(str(exc)) from exc
        logger.info("Sent '%s' to %s", subject, to_address)


class LogMailer(Mailer):
    def send(self, to_address: str, subject: str, html_body: str) -> None:
        logger.warning("SMTP not configured -- logging message instead of sending.")
        logger.info("To: %s | Subject: %s\n%s", to_address, subject, html_body)


def build_mailer(settings: Settings) -> Mailer:
    """Pick the mailer implementation from Settings."""
    if not settings.smtp_host.strip():
        return LogMailer()
    return SmtpMailer(
        host=settings.smtp_host,
        port=settings.smtp_port,
        sender=settings.mail_from,
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
    )


def make_reset_email(frontend_url: str, reset_token: str) -> tuple[str, str]:
    """Return (subject, html_body) for a password reset message."""
    link = f"{frontend_url.rstrip('/')}/reset?resetToken={reset_token}"
    body = (
        '<div style="border: 1px solid black; padding: 20px; font-family: sans-serif; '
        'line-height: 2; font-size: 20px;">'
        "<h2>Hello There!</h2>"
        "<p>Your password reset token is here!</p>"
        f'<p><a href="{html.escape(link, quote=True)}">Click here to reset</a></p>'
        "<p>The link expires in one hour.</p>"
        "</div>"
    )
    return "Your password reset token", body
