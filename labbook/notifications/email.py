"""Email notification service for LabBook.

Sends booking lifecycle emails via SMTP using Jinja2 templates.
"""
from __future__ import annotations

import logging
import os
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"


class EmailService:
    """Service for sending emails with template support."""

    def __init__(self):
        self.smtp_host = os.getenv("SMTP_HOST", "localhost")
        self.smtp_port = int(os.getenv("SMTP_PORT", "587"))
        self.smtp_user = os.getenv("SMTP_USER", "")
        self.smtp_password = os.getenv("SMTP_PASSWORD", "")
        self.from_email = os.getenv("FROM_EMAIL", self.smtp_user)

        self.jinja_env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=select_autoescape(["html"]),
        )

    @property
    def configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_password)

    def send_email(
        self,
        to_emails: list[str],
        subject: str,
        html_body: str,
        text_body: str | None = None,
    ) -> bool:
        """Send an email.

        Returns:
            True if sent, False if SMTP is not configured

        Raises:
            smtplib.SMTPException: If the SMTP server rejects the message
        """
        if not self.configured:
            logger.warning("smtp_not_configured: would send %r to %s", subject, to_emails)
            return False

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = ", ".join(to_emails)

        if text_body:
            msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
            server.starttls()
            server.login(self.smtp_user, self.smtp_password)
            server.send_message(msg)
        return True

    def render_template(self, template_name: str, context: dict[str, Any]) -> str:
        template = self.jinja_env.get_template(template_name)
        return template.render(**context)

    def send_booking_event(
        self,
        to_email: str,
        recipient_name: str,
        reference_number: str,
        title: str,
        message: str,
        portal_url: str,
    ) -> bool:
        context = {
            "recipient_name": recipient_name,
            "reference_number": reference_number,
            "title": title,
            "message": message,
            "portal_url": portal_url,
        }
        html_body = self.render_template("booking_event.html", context)
        text_body = f"{title}\n\n{message}\n\nBooking: {reference_number}\n{portal_url}"
        return self.send_email([to_email], f"[{reference_number}] {title}", html_body, text_body)
