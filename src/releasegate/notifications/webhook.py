"""Generic webhook alert channel (JSON POST)."""

from __future__ import annotations

import os
from typing import Optional

import requests

from releasegate.exceptions import ChannelSendFailed
from releasegate.logging_config import get_logger

from .base import Alert, AlertChannel

logger = get_logger(__name__)


class WebhookAlertChannel(AlertChannel):
    """POST each alert as JSON to an external endpoint."""

    name = "webhook"

    def __init__(
        self,
        url: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
        timeout: float = 10.0,
    ):
        self.url = url or os.getenv("RELEASEGATE_WEBHOOK_URL")
        self.headers = headers or {}
        self.timeout = timeout

    def is_available(self) -> bool:
        return bool(self.url)

    def send(self, alert: Alert) -> None:
        if not self.is_available():
            raise ChannelSendFailed(self.name, "webhook URL not configured")

        try:
            response = requests.post(
                self.url,
                json={"source": "releasegate", "alert": alert.to_dict()},
                headers=self.headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise ChannelSendFailed(self.name, str(e)) from e

        logger.debug(f"Webhook alert sent: {alert.type}")
