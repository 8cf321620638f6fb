"""Slack alert channel using incoming webhooks."""

from __future__ import annotations

import os
from typing import Optional

import requests

from releasegate.exceptions import ChannelSendFailed
from releasegate.logging_config import get_logger

from .base import Alert, AlertChannel, AlertSeverity

logger = get_logger(__name__)

_COLORS = {
    AlertSeverity.LOW: "#0099ff",
    AlertSeverity.MEDIUM: "#ff9900",
    AlertSeverity.HIGH: "#ff0000",
    AlertSeverity.CRITICAL: "#8B0000",
}


class SlackAlertChannel(AlertChannel):
    """Post alerts to Slack via a webhook."""

    name = "slack"

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        channel: Optional[str] = None,
        username: str = "releasegate",
    ):
        """Initialize Slack channel.

        Args:
            webhook_url: Slack webhook URL (from env: SLACK_WEBHOOK_URL)
            channel: Target channel (optional, overrides webhook default)
            username: Bot username shown in Slack
        """
        self.webhook_url = webhook_url or os.getenv("SLACK_WEBHOOK_URL")
        self.channel = channel or os.getenv("SLACK_CHANNEL")
        self.username = username

    def is_available(self) -> bool:
        return bool(self.webhook_url)

    def send(self, alert: Alert) -> None:
        if not self.is_available():
            raise ChannelSendFailed(self.name, "Slack webhook not configured")

        try:
            response = requests.post(
                self.webhook_url,
                json=self._create_payload(alert),
                timeout=10,
            )
        except requests.Timeout as e:
            raise ChannelSendFailed(self.name, "Slack webhook timeout") from e
        except requests.RequestException as e:
            raise ChannelSendFailed(self.name, str(e)) from e

        if response.status_code != 200:
            raise ChannelSendFailed(self.name, f"HTTP {response.status_code}")
        logger.debug(f"Slack alert sent: {alert.type}")

    def _create_payload(self, alert: Alert) -> dict:
        fields = [
            {"title": "Severity", "value": alert.severity.value.upper(), "short": True},
            {"title": "Type", "value": alert.type, "short": True},
        ]
        for key, value in alert.details.items():
            if isinstance(value, (str, int, float, bool)):
                fields.append({"title": key, "value": str(value), "short": True})

        payload = {
            "username": self.username,
            "attachments": [
                {
                    "color": _COLORS.get(alert.severity, "#0099ff"),
                    "title": f"Alert: {alert.type}",
                    "text": alert.message,
                    "fields": fields,
                    "footer": alert.timestamp,
                }
            ],
        }
        if self.channel:
            payload["channel"] = self.channel
        return payload
