"""Continuous health monitoring.

Usage:
    from releasegate.health import HealthMonitoringSystem, default_health_probes

    monitor = HealthMonitoringSystem(default_health_probes(config.target))
    monitor.start_monitoring()  # inside a running event loop
"""

from __future__ import annotations

from .models import HealthCheckResult, HealthLevel, HealthProbe, HealthStatus, ProbeStatus
from .monitor import HealthMonitoringSystem
from .probes import ErrorTracker, HealthProbeSuite, default_health_probes

__all__ = [
    "HealthMonitoringSystem",
    "HealthCheckResult",
    "HealthLevel",
    "HealthProbe",
    "HealthStatus",
    "ProbeStatus",
    "ErrorTracker",
    "HealthProbeSuite",
    "default_health_probes",
]
