"""Email alert channel using SMTP."""

from __future__ import annotations

import html
import json
import os
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from releasegate.exceptions import ChannelSendFailed
from releasegate.logging_config import get_logger

from .base import Alert, AlertChannel

logger = get_logger(__name__)

_SEVERITY_COLORS = {
    "low": "#0066CC",
    "medium": "#FF8C00",
    "high": "#DC143C",
    "critical": "#8B0000",
}


class EmailAlertChannel(AlertChannel):
    """Send alerts via email using SMTP."""

    name = "email"

    def __init__(
        self,
        smtp_host: Optional[str] = None,
        smtp_port: Optional[int] = None,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        from_email: Optional[str] = None,
        to_emails: Optional[list[str]] = None,
        use_tls: bool = True,
    ):
        """Initialize email channel.

        Args:
            smtp_host: SMTP server hostname (from env: SMTP_HOST)
            smtp_port: SMTP server port (from env: SMTP_PORT, default 587)
            smtp_user: SMTP username (from env: SMTP_USER)
            smtp_password: SMTP password (from env: SMTP_PASSWORD)
            from_email: From email address (from env: FROM_EMAIL)
            to_emails: Recipient emails (from env: TO_EMAILS, comma-separated)
            use_tls: Use STARTTLS for the connection
        """
        self.smtp_host = smtp_host or os.getenv("SMTP_HOST")
        self.smtp_port = smtp_port or int(os.getenv("SMTP_PORT", "587"))
        self.smtp_user = smtp_user or os.getenv("SMTP_USER")
        self.smtp_password = smtp_password or os.getenv("SMTP_PASSWORD")
        self.from_email = from_email or os.getenv("FROM_EMAIL")
        self.use_tls = use_tls

        to_emails_str = os.getenv("TO_EMAILS", "")
        self.to_emails = to_emails or [
            e.strip() for e in to_emails_str.split(",") if e.strip()
        ]

    def is_available(self) -> bool:
        required = [
            self.smtp_host,
            self.smtp_user,
            self.smtp_password,
            self.from_email,
            self.to_emails,
        ]
        return all(required)

    def send(self, alert: Alert) -> None:
        if not self.is_available():
            raise ChannelSendFailed(self.name, "email channel not configured")

        msg = self._create_message(alert)
        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=10) as server:
                if self.use_tls:
                    server.starttls()
                server.login(self.smtp_user, self.smtp_password)
                server.send_message(msg)
        except smtplib.SMTPAuthenticationError as e:
            raise ChannelSendFailed(self.name, "SMTP authentication failed") from e
        except (smtplib.SMTPException, OSError) as e:
            raise ChannelSendFailed(self.name, f"SMTP error: {e}") from e

        logger.info(f"Email alert sent: {alert.type}")

    def _create_message(self, alert: Alert) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = f"[{alert.severity.value.upper()}] {alert.type}"
        msg["From"] = self.from_email
        msg["To"] = ", ".join(self.to_emails)
        msg.attach(MIMEText(self._format_text(alert), "plain"))
        msg.attach(MIMEText(self._format_html(alert), "html"))
        return msg

    def _format_text(self, alert: Alert) -> str:
        lines = [
            f"Severity: {alert.severity.value.upper()}",
            f"Type: {alert.type}",
            f"Time: {alert.timestamp}",
            "",
            alert.message,
            "",
        ]
        if alert.details:
            lines.append("Details:")
            lines.append(json.dumps(alert.details, indent=2, default=str))
        return "\n".join(lines)

    def _format_html(self, alert: Alert) -> str:
        color = _SEVERITY_COLORS.get(alert.severity.value, "#0066CC")
        details = ""
        if alert.details:
            rows = "".join(
                f"<tr><td>{html.escape(str(key))}</td><td><strong>{html.escape(str(value))}</strong></td></tr>"
                for key, value in alert.details.items()
                if not isinstance(value, (dict, list))
            )
            if rows:
                details = f'<table style="width: 100%; border-collapse: collapse;">{rows}</table>'

        return f"""
        <html>
        <body style="font-family: Arial, sans-serif;">
            <div style="max-width: 600px; margin: 0 auto;">
                <div style="background-color: {color}; color: white; padding: 20px;">
                    <h2 style="margin: 0;">{html.escape(alert.type)}</h2>
                    <span>{alert.severity.value.upper()}</span>
                </div>
                <div style="padding: 20px; background-color: #f9f9f9;">
                    <p>{html.escape(alert.message).replace(chr(10), '<br>')}</p>
                    {details}
                    <p style="color: #666; font-size: 12px;">Raised: {alert.timestamp}</p>
                </div>
            </div>
        </body>
        </html>
        """
