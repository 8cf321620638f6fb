"""Default health probes and the error tracker they read from."""

from __future__ import annotations

import re
import threading
import time
from collections import deque
from typing import Any, Optional

import psutil

from releasegate.config import TargetConfig
from releasegate.evidence.provider import EvidenceProvider
from releasegate.target import TargetClient

from .models import HealthCheckResult, HealthProbe

MAX_APP_LOAD_MS = 5000
MAX_API_RESPONSE_MS = 2000
MAX_ERROR_RATE_PERCENT = 1.0
MAX_LOAD_TIME_MS = 3000
MAX_DOM_CONTENT_LOADED_MS = 2000
MAX_MEMORY_PERCENT = 80.0
MAX_ELEMENTS = 10000
MAX_SCRIPTS = 100
MAX_NETWORK_MS = 5000

_TAG_RE = re.compile(r"<[A-Za-z][A-Za-z0-9-]*")
_SCRIPT_RE = re.compile(r"<script\b", re.IGNORECASE)


class ErrorTracker:
    """Count operations and errors reported by the application or its harness.

    Thread-safe; timestamps use a monotonic clock.
    """

    def __init__(self, window_s: float = 60.0, max_events: int = 10000):
        self.window_s = window_s
        self._lock = threading.Lock()
        self._operations = 0
        self._errors = 0
        self._recent: deque[tuple[float, str]] = deque(maxlen=max_events)

    def record_operation(self, success: bool = True, message: str = "") -> None:
        with self._lock:
            self._operations += 1
            if not success:
                self._errors += 1
                self._recent.append((time.monotonic(), message))

    def record_error(self, message: str = "") -> None:
        self.record_operation(success=False, message=message)

    def error_rate(self) -> float:
        """Percentage of operations that failed (0 when nothing was recorded)."""
        with self._lock:
            return self._errors / self._operations * 100 if self._operations else 0.0

    def recent_errors(self) -> list[str]:
        cutoff = time.monotonic() - self.window_s
        with self._lock:
            return [message for ts, message in self._recent if ts >= cutoff]

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            operations, errors = self._operations, self._errors
        return {"operations": operations, "errors": errors, "error_rate": self.error_rate()}

    def reset(self) -> None:
        with self._lock:
            self._operations = 0
            self._errors = 0
            self._recent.clear()


class HealthProbeSuite:
    """The standard health checks, bound to one target."""

    def __init__(
        self,
        client: TargetClient,
        error_tracker: ErrorTracker,
        provider: Optional[EvidenceProvider] = None,
    ):
        self.client = client
        self.target = client.target
        self.error_tracker = error_tracker
        self.provider = provider

    async def application_load(self) -> HealthCheckResult:
        response, elapsed_ms = await self.client.get("/")
        healthy = response.status_code < 400 and elapsed_ms < MAX_APP_LOAD_MS
        return HealthCheckResult(
            healthy=healthy,
            metrics={
                "status_code": response.status_code,
                "load_time_ms": round(elapsed_ms, 1),
                "threshold_ms": MAX_APP_LOAD_MS,
            },
            error=None if healthy else f"Application load failed (HTTP {response.status_code}, {elapsed_ms:.0f}ms)",
        )

    async def api_response_time(self) -> HealthCheckResult:
        path = self.target.api_health_path
        response, elapsed_ms = await self.client.get(path)
        if response.status_code == 404:
            path = "/"
            response, elapsed_ms = await self.client.get(path)
        healthy = response.status_code < 400 and elapsed_ms < MAX_API_RESPONSE_MS
        return HealthCheckResult(
            healthy=healthy,
            metrics={
                "endpoint": path,
                "status_code": response.status_code,
                "response_time_ms": round(elapsed_ms, 1),
                "threshold_ms": MAX_API_RESPONSE_MS,
            },
            error=None if healthy else f"API response too slow or failing ({elapsed_ms:.0f}ms)",
        )

    async def error_rate(self) -> HealthCheckResult:
        snapshot = self.error_tracker.snapshot()
        healthy = snapshot["error_rate"] <= MAX_ERROR_RATE_PERCENT
        return HealthCheckResult(
            healthy=healthy,
            metrics={**snapshot, "threshold": MAX_ERROR_RATE_PERCENT},
            error=None if healthy else f"Error rate {snapshot['error_rate']:.2f}% exceeds {MAX_ERROR_RATE_PERCENT:g}%",
        )

    async def performance_metrics(self) -> HealthCheckResult:
        metrics = None
        if self.provider is not None:
            metrics = await self.provider.measure_performance()
        if metrics is not None:
            load_ms, dcl_ms = metrics.load_time_ms, metrics.dom_content_loaded_ms
            source = "provider"
        else:
            _, load_ms = await self.client.get("/")
            dcl_ms = 0.0
            source = "http"
        healthy = load_ms <= MAX_LOAD_TIME_MS and dcl_ms <= MAX_DOM_CONTENT_LOADED_MS
        return HealthCheckResult(
            healthy=healthy,
            metrics={
                "load_time_ms": round(load_ms, 1),
                "dom_content_loaded_ms": round(dcl_ms, 1),
                "source": source,
            },
            error=None if healthy else "Performance metrics exceed thresholds",
        )

    async def memory_usage(self) -> HealthCheckResult:
        memory = psutil.virtual_memory()
        healthy = memory.percent <= MAX_MEMORY_PERCENT
        return HealthCheckResult(
            healthy=healthy,
            metrics={
                "percent": memory.percent,
                "used_mb": round(memory.used / (1024 * 1024), 1),
                "total_mb": round(memory.total / (1024 * 1024), 1),
                "threshold": MAX_MEMORY_PERCENT,
            },
            error=None if healthy else f"Memory usage {memory.percent:.1f}% exceeds {MAX_MEMORY_PERCENT:g}%",
        )

    async def page_health(self) -> HealthCheckResult:
        response, _ = await self.client.get("/")
        html = response.text
        elements = len(_TAG_RE.findall(html))
        scripts = len(_SCRIPT_RE.findall(html))
        healthy = elements < MAX_ELEMENTS and scripts < MAX_SCRIPTS
        return HealthCheckResult(
            healthy=healthy,
            metrics={
                "total_elements": elements,
                "scripts": scripts,
                "elements_threshold": MAX_ELEMENTS,
                "scripts_threshold": MAX_SCRIPTS,
            },
            error=None if healthy else "Document too large",
        )

    async def console_errors(self) -> HealthCheckResult:
        recent = self.error_tracker.recent_errors()
        healthy = not recent
        return HealthCheckResult(
            healthy=healthy,
            metrics={"recent_errors": len(recent), "threshold": 0},
            error=None if healthy else f"{len(recent)} recent errors: {recent[-1]}",
        )

    async def network_connectivity(self) -> HealthCheckResult:
        response, elapsed_ms = await self.client.request("HEAD", "/")
        healthy = response.status_code < 400 and elapsed_ms < MAX_NETWORK_MS
        return HealthCheckResult(
            healthy=healthy,
            metrics={
                "status_code": response.status_code,
                "response_time_ms": round(elapsed_ms, 1),
                "threshold_ms": MAX_NETWORK_MS,
            },
            error=None if healthy else f"Network check failed (HTTP {response.status_code})",
        )


def default_health_probes(
    target: TargetConfig,
    error_tracker: Optional[ErrorTracker] = None,
    provider: Optional[EvidenceProvider] = None,
    client: Optional[TargetClient] = None,
) -> list[HealthProbe]:
    """Build the standard probe registry."""
    suite = HealthProbeSuite(client or TargetClient(target), error_tracker or ErrorTracker(), provider)
    return [
        HealthProbe("Application Load", suite.application_load, critical=True, interval_s=30, threshold=95),
        HealthProbe("API Response Time", suite.api_response_time, critical=True, interval_s=15, threshold=90),
        HealthProbe("Error Rate", suite.error_rate, critical=True, interval_s=60, threshold=99),
        HealthProbe("Performance Metrics", suite.performance_metrics, interval_s=120, threshold=85),
        HealthProbe("Memory Usage", suite.memory_usage, interval_s=60, threshold=80),
        HealthProbe("DOM Health", suite.page_health, interval_s=45, threshold=95),
        HealthProbe("Console Errors", suite.console_errors, interval_s=30, threshold=99),
        HealthProbe("Network Connectivity", suite.network_connectivity, critical=True, interval_s=60, threshold=95),
    ]
