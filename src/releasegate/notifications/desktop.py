"""macOS desktop alert channel using osascript."""

from __future__ import annotations

import subprocess
import sys

from releasegate.exceptions import ChannelSendFailed
from releasegate.logging_config import get_logger

from .base import Alert, AlertChannel, AlertSeverity

logger = get_logger(__name__)


class DesktopAlertChannel(AlertChannel):
    """Show alerts as macOS desktop notifications."""

    name = "notification"

    def __init__(self, enable_sound: bool = True, app_name: str = "releasegate"):
        """Initialize desktop channel.

        Args:
            enable_sound: Play a sound for high and critical alerts
            app_name: Application name shown in the notification subtitle
        """
        self.enable_sound = enable_sound
        self.app_name = app_name

    def is_available(self) -> bool:
        """Check if running on macOS."""
        return sys.platform == "darwin"

    def send(self, alert: Alert) -> None:
        if not self.is_available():
            raise ChannelSendFailed(self.name, "desktop notifications only supported on macOS")

        script = self._build_applescript(alert)
        try:
            result = subprocess.run(
                ["osascript", "-e", script],
                capture_output=True,
                text=True,
                timeout=5,
            )
        except subprocess.TimeoutExpired as e:
            raise ChannelSendFailed(self.name, "osascript timed out") from e
        except OSError as e:
            raise ChannelSendFailed(self.name, str(e)) from e

        if result.returncode != 0:
            raise ChannelSendFailed(self.name, result.stderr.strip())
        logger.debug(f"Desktop notification sent: {alert.type}")

    def _build_applescript(self, alert: Alert) -> str:
        title = f"Alert: {alert.type}".replace('"', '\\"')
        message = alert.message.replace('"', '\\"')
        subtitle = f"{self.app_name} [{alert.severity.value.upper()}]".replace('"', '\\"')

        script = (
            f'display notification "{message}" '
            f'with title "{title}" '
            f'subtitle "{subtitle}"'
        )
        if self.enable_sound and alert.severity in (AlertSeverity.HIGH, AlertSeverity.CRITICAL):
            script += ' sound name "Glass"'
        return script
