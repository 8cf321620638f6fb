"""Health monitoring data model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class HealthLevel(str, Enum):
    """Aggregate health of one monitoring round."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class ProbeStatus(str, Enum):
    """How a single health probe finished."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    ERROR = "error"  # the probe raised
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class HealthCheckResult:
    """Outcome of one probe in one round."""

    healthy: bool
    metrics: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    name: str = ""
    critical: bool = False
    status: ProbeStatus = ProbeStatus.HEALTHY
    interval_s: Optional[float] = None
    threshold: Optional[float] = None
    timestamp: str = field(default_factory=_now)

    def __post_init__(self) -> None:
        if not self.healthy and self.status == ProbeStatus.HEALTHY:
            object.__setattr__(self, "status", ProbeStatus.UNHEALTHY)

    def to_dict(self) -> dict[str, Any]:
        data = {
            "name": self.name,
            "healthy": self.healthy,
            "status": self.status.value,
            "critical": self.critical,
            "metrics": self.metrics,
            "timestamp": self.timestamp,
        }
        if self.error:
            data["error"] = self.error
        if self.interval_s is not None:
            data["interval_s"] = self.interval_s
        if self.threshold is not None:
            data["threshold"] = self.threshold
        return data


@dataclass(frozen=True)
class HealthProbe:
    """A named health check.

    ``check`` returns a ``HealthCheckResult``; the monitor fills in ``name``,
    ``critical``, ``interval_s`` and ``threshold`` and applies the timeout.
    ``interval_s`` and ``threshold`` are the probe's nominal cadence and success
    target; they are reported with each result.
    """

    name: str
    check: Callable[[], Awaitable[HealthCheckResult]]
    critical: bool = False
    interval_s: float = 30.0
    threshold: float = 95.0


@dataclass(frozen=True)
class HealthStatus:
    """Aggregate health at one tick."""

    overall: HealthLevel
    score: int
    checks: tuple[HealthCheckResult, ...] = ()
    issues: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()
    timestamp: str = field(default_factory=_now)

    @property
    def unhealthy_checks(self) -> list[HealthCheckResult]:
        return [check for check in self.checks if not check.healthy]

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall": self.overall.value,
            "score": self.score,
            "checks": [check.to_dict() for check in self.checks],
            "issues": list(self.issues),
            "recommendations": list(self.recommendations),
            "timestamp": self.timestamp,
        }
