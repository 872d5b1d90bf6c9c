from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Tuple

from core.config import AppSettings, settings as default_settings


logger = logging.getLogger(__name__)


class EmailService:
    """SMTP email sender (supports Gmail / generic SMTP)."""

    def __init__(self, config: AppSettings | None = None) -> None:
        config = config or default_settings
        self.smtp_host = config.smtp_host
        self.smtp_port = config.smtp_port
        self.smtp_user = config.smtp_username
        self.smtp_pass = config.smtp_password
        self.from_email = config.smtp_from_email or self.smtp_user
        self.from_name = config.smtp_from_name

    @property
    def configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_pass)

    def send(
        self,
        to_email: str,
        subject: str,
        body: str,
        html: str | None = None,
        reply_to: str | None = None,
    ) -> Tuple[bool, str | None]:
        """Send one message. Returns (ok, message_id) or (False, error)."""
        if not self.configured:
            logger.warning("email.send_skipped", extra={"to": to_email, "reason": "smtp not configured"})
            return False, "smtp not configured"
        try:
            msg = EmailMessage()
            msg["From"] = f"{self.from_name} <{self.from_email}>" if self.from_email else self.from_name
            msg["To"] = to_email
            msg["Subject"] = subject
            message_id = make_msgid()
            msg["Message-ID"] = message_id
            msg.set_content(body)
            if html:
                msg.add_alternative(html, subtype="html")
            if reply_to:
                msg["Reply-To"] = reply_to
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as s:
                s.ehlo(); s.starttls(); s.ehlo(); s.login(self.smtp_user, self.smtp_pass); s.send_message(msg)
            logger.info("email.sent", extra={"to": to_email, "subject": subject, "message_id": message_id})
            return True, message_id
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("email.send_failed", extra={"to": to_email, "subject": subject, "error": str(exc)})
            return False, str(exc)
