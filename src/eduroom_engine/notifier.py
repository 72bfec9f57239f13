"""
notifier.py — SMTP implementation of the notify contract
========================================================
  notify(recipient, subject, body) → NotifyOutcome(success, detail)

The dispatcher only depends on that call shape; any callable returning a
(bool, str) pair can stand in for it (tests use a mock).

  send_simple_email(smtp_host, smtp_port, to_emails, subject, body_text,
                    sender_email, sender_pass, pdf_bytes, pdf_filename) → NotifyOutcome
    Pure-library SMTP helper; all credentials are passed as arguments.

  SmtpNotifier(SmtpConfig)
    Built once at process start and passed to CertificationDispatcher.
    Port 465 uses implicit SSL, anything else STARTTLS.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import NamedTuple, Optional

from eduroom_engine.config import SmtpConfig

logger = logging.getLogger(__name__)


class NotifyOutcome(NamedTuple):
    success: bool
    detail:  str


def send_simple_email(
    smtp_host: str,
    smtp_port: int,
    to_emails: "str | list[str]",
    subject: str,
    body_text: str,
    sender_email: str,
    sender_pass: str,
    pdf_bytes: Optional[bytes] = None,
    pdf_filename: str = "Certificate.pdf",
    sender_name: str = "",
    login_user: str = "",
    timeout: float = 15.0,
) -> NotifyOutcome:
    """
    Send one message over SMTP.

    Returns
    -------
    NotifyOutcome(True,  "Email sent successfully")
    NotifyOutcome(False, "<error description>")
    """
    if not sender_email or not sender_pass:
        return NotifyOutcome(False, "sender_email and sender_pass are required.")

    recipients = [to_emails] if isinstance(to_emails, str) else list(to_emails)
    if not recipients or not all(recipients):
        return NotifyOutcome(False, "At least one recipient address is required.")

    # Detect HTML vs plain text
    is_html = body_text.strip().startswith("<")
    mime_subtype = "html" if is_html else "plain"

    msg = MIMEMultipart("mixed")
    msg["Subject"] = subject
    msg["From"]    = formataddr((sender_name, sender_email)) if sender_name else sender_email
    msg["To"]      = ", ".join(recipients)

    alt_part = MIMEMultipart("alternative")
    alt_part.attach(MIMEText(body_text, mime_subtype, "utf-8"))
    msg.attach(alt_part)

    if pdf_bytes:
        pdf_part = MIMEApplication(pdf_bytes, _subtype="pdf")
        pdf_part.add_header("Content-Disposition", "attachment", filename=pdf_filename)
        msg.attach(pdf_part)

    try:
        if smtp_port == 465:
            ctx = ssl.create_default_context()
            with smtplib.SMTP_SSL(smtp_host, smtp_port, context=ctx, timeout=timeout) as server:
                server.login(login_user or sender_email, sender_pass)
                server.sendmail(sender_email, recipients, msg.as_string())
        else:
            with smtplib.SMTP(smtp_host, smtp_port, timeout=timeout) as server:
                server.ehlo()
                server.starttls()
                server.login(login_user or sender_email, sender_pass)
                server.sendmail(sender_email, recipients, msg.as_string())
        attach_note = " (PDF attached)" if pdf_bytes else ""
        return NotifyOutcome(True, f"Email sent successfully{attach_note}")
    except smtplib.SMTPAuthenticationError:
        return NotifyOutcome(False, "Authentication failed. Check SMTP_USER and SMTP_PASS.")
    except (smtplib.SMTPException, OSError) as exc:
        return NotifyOutcome(False, f"Failed to send email: {exc}")


class SmtpNotifier:
    """Callable notify implementation bound to one SMTP account."""

    def __init__(self, config: SmtpConfig, timeout: float = 15.0):
        self.config = config
        self.timeout = timeout

    def __call__(
        self,
        recipient: str,
        subject: str,
        body: str,
        pdf_bytes: Optional[bytes] = None,
        pdf_filename: str = "Certificate.pdf",
    ) -> NotifyOutcome:
        if not self.config.is_configured:
            return NotifyOutcome(
                False, "Email not configured. Set SMTP_USER and SMTP_PASS in your .env file."
            )
        outcome = send_simple_email(
            smtp_host=self.config.host,
            smtp_port=self.config.port,
            to_emails=recipient,
            subject=subject,
            body_text=body,
            sender_email=self.config.sender or self.config.user,
            sender_pass=self.config.password,
            pdf_bytes=pdf_bytes,
            pdf_filename=pdf_filename,
            sender_name=self.config.sender_name,
            login_user=self.config.user,
            timeout=self.timeout,
        )
        if not outcome.success:
            logger.warning("SMTP delivery to %s failed: %s", recipient, outcome.detail)
        return outcome
