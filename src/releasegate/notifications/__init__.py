"""Alert routing and delivery.

Channels:
- console (logging)
- notification (macOS desktop via osascript)
- storage (JSON-lines file)
- email (SMTP)
- slack (webhook)
- webhook (generic JSON POST)

Usage:
    from releasegate.notifications import Alert, AlertSeverity, AlertSystem

    alerts = AlertSystem.from_config()
    await alerts.trigger_alert(Alert("deployment_blocked", AlertSeverity.HIGH, "Blocked"))
"""

from __future__ import annotations

from .base import Alert, AlertChannel, AlertSeverity, AlertType
from .console import ConsoleAlertChannel
from .desktop import DesktopAlertChannel
from .email import EmailAlertChannel
from .router import (
    AlertHistoryEntry,
    AlertOutcome,
    AlertRule,
    AlertSystem,
    EscalationRule,
    build_channels,
    default_rules,
)
from .slack import SlackAlertChannel
from .storage import StorageAlertChannel
from .webhook import WebhookAlertChannel

__all__ = [
    "Alert",
    "AlertChannel",
    "AlertSeverity",
    "AlertType",
    "AlertSystem",
    "AlertRule",
    "EscalationRule",
    "AlertOutcome",
    "AlertHistoryEntry",
    "default_rules",
    "build_channels",
    "ConsoleAlertChannel",
    "DesktopAlertChannel",
    "StorageAlertChannel",
    "EmailAlertChannel",
    "SlackAlertChannel",
    "WebhookAlertChannel",
]
