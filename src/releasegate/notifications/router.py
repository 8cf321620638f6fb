"""Alert routing with per-rule throttling and delayed escalation."""

from __future__ import annotations

import asyncio
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Optional

from releasegate.config import AlertConfig
from releasegate.exceptions import ChannelUnavailable
from releasegate.logging_config import get_logger

from .base import Alert, AlertChannel, AlertSeverity, AlertType, utc_now_iso
from .console import ConsoleAlertChannel
from .desktop import DesktopAlertChannel
from .email import EmailAlertChannel
from .slack import SlackAlertChannel
from .storage import StorageAlertChannel
from .webhook import WebhookAlertChannel

logger = get_logger(__name__)

DEFAULT_CHANNELS_BY_SEVERITY: dict[AlertSeverity, tuple[str, ...]] = {
    AlertSeverity.CRITICAL: ("console", "notification", "storage"),
    AlertSeverity.HIGH: ("console", "notification", "storage"),
    AlertSeverity.MEDIUM: ("console", "storage"),
    AlertSeverity.LOW: ("console",),
}


class AlertOutcome(str, Enum):
    """How an alert was handled."""

    DISPATCHED = "dispatched"
    THROTTLED = "throttled"
    DEFAULT_ROUTED = "default_routed"
    ESCALATED = "escalated"
    FAILED = "failed"


@dataclass(frozen=True)
class EscalationRule:
    """Re-notify on other channels if an alert is not acknowledged in time."""

    after_s: float
    to_channels: tuple[str, ...]
    severity: AlertSeverity


@dataclass
class AlertRule:
    """Routing policy: which alerts go where, and how often."""

    id: str
    name: str
    condition: Callable[[Alert], bool]
    channels: list[str]
    throttle_s: float = 0.0
    escalation: Optional[EscalationRule] = None

    def matches(self, alert: Alert) -> bool:
        return bool(self.condition(alert))


@dataclass
class AlertHistoryEntry:
    """One processed alert."""

    alert: Alert
    channels: list[str]
    success: bool
    response_time_ms: float
    outcome: AlertOutcome
    delivered: list[str] = field(default_factory=list)
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "alert": self.alert.to_dict(),
            "channels": list(self.channels),
            "delivered": list(self.delivered),
            "success": self.success,
            "response_time_ms": round(self.response_time_ms, 2),
            "outcome": self.outcome.value,
            "timestamp": self.recorded_at.isoformat(),
        }


@dataclass
class _PendingEscalation:
    rule_id: str
    alert_type: str
    alert_timestamp: str
    task: asyncio.Task


def default_rules() -> list[AlertRule]:
    """Built-in routing rules, evaluated in order; every match is processed."""
    return [
        AlertRule(
            id="critical-system-failure",
            name="Critical System Failure",
            condition=lambda a: a.severity == AlertSeverity.CRITICAL,
            channels=["console", "notification", "storage", "email"],
            throttle_s=60,
            escalation=EscalationRule(300, ("slack", "webhook"), AlertSeverity.CRITICAL),
        ),
        AlertRule(
            id="high-priority-alert",
            name="High Priority Alert",
            condition=lambda a: a.severity == AlertSeverity.HIGH,
            channels=["console", "notification", "storage"],
            throttle_s=120,
            escalation=EscalationRule(600, ("email",), AlertSeverity.HIGH),
        ),
        AlertRule(
            id="medium-priority-alert",
            name="Medium Priority Alert",
            condition=lambda a: a.severity == AlertSeverity.MEDIUM,
            channels=["console", "storage"],
            throttle_s=300,
        ),
        AlertRule(
            id="monitoring-system-events",
            name="Monitoring System Events",
            condition=lambda a: "monitoring" in a.type,
            channels=["console", "storage"],
            throttle_s=0,
        ),
        AlertRule(
            id="health-check-failures",
            name="Health Check Failures",
            condition=lambda a: "health_check" in a.type,
            channels=["console", "notification", "storage"],
            throttle_s=180,
        ),
        AlertRule(
            id="quality-gate-failures",
            name="Quality Gate Failures",
            condition=lambda a: "quality_gate" in a.type,
            channels=["console", "notification", "storage", "email"],
            throttle_s=0,
            escalation=EscalationRule(180, ("slack",), AlertSeverity.HIGH),
        ),
    ]


def build_channels(config: AlertConfig | None = None) -> dict[str, AlertChannel]:
    """Create the standard channel registry from alert settings."""
    config = config or AlertConfig()
    return {
        "console": ConsoleAlertChannel(),
        "notification": DesktopAlertChannel(enable_sound=config.desktop_sound),
        "storage": StorageAlertChannel(path=config.storage_path),
        "email": EmailAlertChannel(
            smtp_host=config.smtp_host,
            smtp_port=config.smtp_port,
            smtp_user=config.smtp_user,
            smtp_password=config.smtp_password,
            from_email=config.from_email,
            to_emails=config.to_emails or None,
        ),
        "slack": SlackAlertChannel(
            webhook_url=config.slack_webhook_url,
            channel=config.slack_channel,
        ),
        "webhook": WebhookAlertChannel(url=config.webhook_url),
    }


class AlertSystem:
    """Route alerts to channels according to ordered rules.

    Throttle state, pending escalations and history are shared with worker
    threads (channel sends run via ``asyncio.to_thread``) and are guarded by
    one lock.
    """

    def __init__(
        self,
        channels: dict[str, AlertChannel] | None = None,
        rules: list[AlertRule] | None = None,
        history_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the alert system.

        Args:
            channels: Channel registry keyed by name (default: console only)
            rules: Routing rules (default: ``default_rules()``)
            history_size: Maximum number of history entries kept
            clock: Monotonic clock in seconds, used for throttling and timing
        """
        self._channels: dict[str, AlertChannel] = (
            dict(channels) if channels is not None else {"console": ConsoleAlertChannel()}
        )
        self.rules = list(rules) if rules is not None else default_rules()
        self._clock = clock
        self._lock = threading.Lock()
        self._throttle: dict[str, float] = {}
        self._escalations: dict[str, _PendingEscalation] = {}
        self._history: deque[AlertHistoryEntry] = deque(maxlen=history_size)

        logger.info(
            f"Alert system initialized with {len(self._channels)} channels and {len(self.rules)} rules",
            extra={"channels": sorted(self._channels), "rules": [r.id for r in self.rules]},
        )

    @classmethod
    def from_config(cls, config: AlertConfig | None = None) -> AlertSystem:
        config = config or AlertConfig()
        return cls(channels=build_channels(config), history_size=config.history_size)

    async def trigger_alert(self, alert: Alert) -> AlertHistoryEntry:
        """Route an alert through all matching rules.

        Channel failures are logged and isolated. If routing itself fails, a
        best-effort ``alert_system_error`` is written to the console channel and
        the failure is recorded.

        Args:
            alert: Alert to route

        Returns:
            The history entry recorded for this alert
        """
        start = self._clock()
        logger.info(
            f"Processing alert: {alert.type} [{alert.severity.value.upper()}]",
            extra={"alert_type": alert.type, "severity": alert.severity.value},
        )

        try:
            matching = [rule for rule in self.rules if rule.matches(alert)]

            if not matching:
                channels = list(DEFAULT_CHANNELS_BY_SEVERITY.get(alert.severity, ("console",)))
                logger.debug(f"No matching rules for {alert.type}, using default channels {channels}")
                delivered = await self._dispatch(alert, channels)
                return self._record(
                    alert, channels, True, start, AlertOutcome.DEFAULT_ROUTED, delivered
                )

            used_channels: list[str] = []
            delivered: list[str] = []
            for rule in matching:
                if not self._claim_throttle(alert, rule):
                    logger.debug(f"Alert throttled for rule: {rule.name}")
                    continue
                for name in rule.channels:
                    if name not in used_channels:
                        used_channels.append(name)
                for name in await self._dispatch(alert, rule.channels):
                    if name not in delivered:
                        delivered.append(name)
                if rule.escalation is not None and alert.severity != AlertSeverity.LOW:
                    self._arm_escalation(alert, rule)

            outcome = AlertOutcome.DISPATCHED if used_channels else AlertOutcome.THROTTLED
            entry = self._record(alert, used_channels, True, start, outcome, delivered)
            logger.info(
                f"Alert {alert.type} {outcome.value} in {entry.response_time_ms:.0f}ms",
                extra={"alert_type": alert.type, "outcome": outcome.value, "delivered": delivered},
            )
            return entry

        except Exception as e:
            logger.error(f"Error processing alert {alert.type}: {e}", exc_info=True)
            entry = self._record(alert, [], False, start, AlertOutcome.FAILED)
            await self._fallback_console(alert, e)
            return entry

    def _claim_throttle(self, alert: Alert, rule: AlertRule) -> bool:
        """Return True and stamp the throttle window if the rule may send now."""
        if rule.throttle_s <= 0:
            return True
        key = f"{rule.id}-{alert.type}"
        now = self._clock()
        with self._lock:
            last_sent = self._throttle.get(key)
            if last_sent is not None and now - last_sent < rule.throttle_s:
                return False
            self._throttle[key] = now
        return True

    async def _dispatch(self, alert: Alert, channel_names: list[str] | tuple[str, ...]) -> list[str]:
        """Send to channels concurrently; return the names that delivered."""
        names = list(channel_names)
        results = await asyncio.gather(
            *(self._send_one(name, alert) for name in names),
            return_exceptions=True,
        )
        delivered = []
        for name, result in zip(names, results):
            if isinstance(result, ChannelUnavailable):
                logger.debug(str(result), extra={"channel": name, "alert_type": alert.type})
            elif isinstance(result, BaseException):
                logger.error(
                    f"Failed to send alert via {name}: {result}",
                    extra={"channel": name, "alert_type": alert.type},
                )
            elif result:
                delivered.append(name)
        return delivered

    async def _send_one(self, name: str, alert: Alert) -> bool:
        channel = self._channels.get(name)
        if channel is None or not channel.is_available():
            raise ChannelUnavailable(name)
        await asyncio.to_thread(channel.send, alert)
        return True

    def _arm_escalation(self, alert: Alert, rule: AlertRule) -> None:
        key = f"{rule.id}-{alert.type}-{alert.timestamp}"
        loop = asyncio.get_running_loop()
        with self._lock:
            existing = self._escalations.pop(key, None)
            if existing is not None:
                existing.task.cancel()
            task = loop.create_task(self._escalate(key, alert, rule))
            self._escalations[key] = _PendingEscalation(rule.id, alert.type, alert.timestamp, task)
        logger.info(
            f"Escalation scheduled for {alert.type} in {rule.escalation.after_s:g}s",
            extra={"escalation_key": key, "to_channels": list(rule.escalation.to_channels)},
        )

    async def _escalate(self, key: str, alert: Alert, rule: AlertRule) -> None:
        escalation = rule.escalation
        try:
            await asyncio.sleep(escalation.after_s)
            start = self._clock()
            escalated = Alert(
                type=f"escalated_{alert.type}",
                severity=escalation.severity,
                message=f"ESCALATED: {alert.message}",
                details=dict(alert.details),
                timestamp=utc_now_iso(),
            )
            logger.warning(f"Escalating alert: {alert.type}", extra={"escalation_key": key})
            delivered = await self._dispatch(escalated, escalation.to_channels)
            self._record(
                escalated,
                list(escalation.to_channels),
                True,
                start,
                AlertOutcome.ESCALATED,
                delivered,
            )
        finally:
            with self._lock:
                pending = self._escalations.get(key)
                if pending is not None and pending.task is asyncio.current_task():
                    del self._escalations[key]

    async def _fallback_console(self, alert: Alert, error: Exception) -> None:
        console = self._channels.get("console")
        if console is None:
            return
        fallback = Alert(
            type=AlertType.ALERT_SYSTEM_ERROR,
            severity=alert.severity,
            message=f"Alert system error: {error}",
            details={"original_type": alert.type, "error": str(error)},
            timestamp=alert.timestamp,
        )
        try:
            await asyncio.to_thread(console.send, fallback)
        except Exception as fallback_error:
            logger.error(f"Even fallback alert failed: {fallback_error}")

    def _record(
        self,
        alert: Alert,
        channels: list[str],
        success: bool,
        start: float,
        outcome: AlertOutcome,
        delivered: list[str] | None = None,
    ) -> AlertHistoryEntry:
        entry = AlertHistoryEntry(
            alert=alert,
            channels=channels,
            success=success,
            response_time_ms=(self._clock() - start) * 1000,
            outcome=outcome,
            delivered=delivered or [],
        )
        with self._lock:
            self._history.append(entry)
        return entry

    def get_alert_history(self, limit: int = 50) -> list[AlertHistoryEntry]:
        """Return the most recent history entries, oldest first."""
        with self._lock:
            history = list(self._history)
        return history[-limit:] if limit > 0 else []

    def get_channel_status(self) -> dict[str, bool]:
        return {name: channel.is_available() for name, channel in list(self._channels.items())}

    def clear_throttling(self) -> None:
        with self._lock:
            self._throttle.clear()
        logger.info("Alert throttling cleared")

    def clear_escalations(self) -> None:
        """Cancel every pending escalation."""
        with self._lock:
            pending = list(self._escalations.values())
            self._escalations.clear()
        for item in pending:
            item.task.cancel()
        logger.info(f"Pending escalations cleared ({len(pending)})")

    def acknowledge(self, alert: Alert) -> int:
        """Cancel pending escalations raised by this alert.

        Returns:
            Number of escalations cancelled
        """
        with self._lock:
            keys = [
                key
                for key, item in self._escalations.items()
                if item.alert_type == alert.type and item.alert_timestamp == alert.timestamp
            ]
            cancelled = [self._escalations.pop(key) for key in keys]
        for item in cancelled:
            item.task.cancel()
        if cancelled:
            logger.info(f"Acknowledged {alert.type}; cancelled {len(cancelled)} escalation(s)")
        return len(cancelled)

    def pending_escalation_count(self) -> int:
        with self._lock:
            return len(self._escalations)

    def add_alert_channel(self, name: str, channel: AlertChannel) -> None:
        self._channels[name] = channel
        logger.info(f"Alert channel added: {name}")

    def remove_alert_channel(self, name: str) -> None:
        self._channels.pop(name, None)
        logger.info(f"Alert channel removed: {name}")

    def get_alert_stats(self) -> dict[str, Any]:
        """Summarize the last 24 hours of alert handling."""
        cutoff = datetime.now(timezone.utc) - timedelta(hours=24)
        with self._lock:
            recent = [entry for entry in self._history if entry.recorded_at >= cutoff]
            pending = len(self._escalations)

        severity_count: dict[str, int] = {}
        for entry in recent:
            key = entry.alert.severity.value
            severity_count[key] = severity_count.get(key, 0) + 1

        avg_response = (
            sum(entry.response_time_ms for entry in recent) / len(recent) if recent else 0.0
        )
        success_rate = (
            sum(1 for entry in recent if entry.success) / len(recent) * 100 if recent else 100.0
        )

        return {
            "total_24h": len(recent),
            "severity_count": severity_count,
            "avg_response_time_ms": round(avg_response),
            "success_rate": success_rate,
            "active_channels": [
                name for name, channel in list(self._channels.items()) if channel.is_available()
            ],
            "pending_escalations": pending,
        }
