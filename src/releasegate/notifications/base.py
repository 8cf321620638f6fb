"""Alert model, severity levels and the alert channel interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class AlertSeverity(str, Enum):
    """Alert severity levels, lowest first."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertType(str, Enum):
    """Well-known alert types and the ``details`` keys each one carries.

    ``Alert.type`` is a plain string so that derived types such as
    ``escalated_<type>`` and ad-hoc types still route; these are the values
    emitted by releasegate itself.
    """

    # details: {"checks_count"} / {"uptime_s"}
    MONITORING_STARTED = "monitoring_started"
    MONITORING_STOPPED = "monitoring_stopped"

    # details: {"check", "error", "metrics"}
    CRITICAL_HEALTH_CHECK_FAILED = "critical_health_check_failed"
    # details: {"check", "error"}
    HEALTH_CHECK_ERROR = "health_check_error"
    # details: HealthStatus.to_dict()
    HEALTH_STATUS_DEGRADED = "health_status_degraded"
    # details: {"error"}
    HEALTH_CHECK_SYSTEM_ERROR = "health_check_system_error"

    # details: DeploymentValidationResult.to_dict()
    DEPLOYMENT_APPROVED = "deployment_approved"
    DEPLOYMENT_BLOCKED = "deployment_blocked"
    # details: {"error", "duration_ms", "deployment_id"}
    DEPLOYMENT_VALIDATION_SYSTEM_ERROR = "deployment_validation_system_error"

    # details: {"overall", "evidence", "functionality", "health"}
    QUALITY_VALIDATION_COMPLETED = "quality_validation_completed"
    # details: {"error"}
    QUALITY_VALIDATION_FAILED = "quality_validation_failed"

    # details: {"initialization_ms", "components"} / {"uptime_s"}
    QUALITY_GATE_SYSTEM_INITIALIZED = "quality_gate_system_initialized"
    QUALITY_GATE_SYSTEM_SHUTDOWN = "quality_gate_system_shutdown"

    # details: {"original_type", "error"}
    ALERT_SYSTEM_ERROR = "alert_system_error"

    # details: {"source"}
    TEST_ALERT = "test_alert"


@dataclass
class Alert:
    """A notable event raised by any component."""

    type: str
    severity: AlertSeverity
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_now_iso)

    def __post_init__(self) -> None:
        if isinstance(self.type, Enum):
            self.type = self.type.value
        if not isinstance(self.severity, AlertSeverity):
            self.severity = AlertSeverity(self.severity)

    def to_dict(self) -> dict[str, Any]:
        """Convert alert to dictionary."""
        return {
            "type": self.type,
            "severity": self.severity.value,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Alert:
        return cls(
            type=data["type"],
            severity=AlertSeverity(data.get("severity", "low")),
            message=data.get("message", ""),
            details=data.get("details") or {},
            timestamp=data.get("timestamp") or utc_now_iso(),
        )

    def __str__(self) -> str:
        return f"[{self.severity.value.upper()}] {self.type}: {self.message}"


class AlertChannel(ABC):
    """Base class for alert delivery channels.

    ``send`` is synchronous; the alert system runs it in a worker thread.
    """

    name: str = "channel"

    @abstractmethod
    def send(self, alert: Alert) -> None:
        """Deliver an alert.

        Args:
            alert: Alert to deliver

        Raises:
            ChannelSendFailed: If delivery fails
        """

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the channel is configured and usable."""
