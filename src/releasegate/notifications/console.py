"""Console alert channel backed by the logging system."""

from __future__ import annotations

import logging

from releasegate.logging_config import get_logger

from .base import Alert, AlertChannel, AlertSeverity

logger = get_logger(__name__)

_LEVELS = {
    AlertSeverity.LOW: logging.INFO,
    AlertSeverity.MEDIUM: logging.WARNING,
    AlertSeverity.HIGH: logging.ERROR,
    AlertSeverity.CRITICAL: logging.CRITICAL,
}


class ConsoleAlertChannel(AlertChannel):
    """Write alerts to the ``releasegate.alerts`` log stream. Always available."""

    name = "console"

    def send(self, alert: Alert) -> None:
        logger.log(
            _LEVELS.get(alert.severity, logging.INFO),
            f"ALERT [{alert.severity.value.upper()}] {alert.type}: {alert.message}",
            extra={
                "alert_type": alert.type,
                "severity": alert.severity.value,
                "alert_timestamp": alert.timestamp,
                "details": alert.details,
            },
        )

    def is_available(self) -> bool:
        return True
