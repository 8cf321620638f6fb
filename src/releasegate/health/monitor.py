"""Continuous health monitoring.

Runs every registered probe concurrently on a fixed interval, aggregates the
round into a ``HealthStatus`` and raises alerts on degradation.
"""

from __future__ import annotations

import asyncio
import dataclasses
import inspect
import threading
import time
from collections import deque
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from releasegate.exceptions import ProbeTimeout
from releasegate.logging_config import get_logger
from releasegate.notifications.base import Alert, AlertSeverity, AlertType

from .models import HealthCheckResult, HealthLevel, HealthProbe, HealthStatus, ProbeStatus

logger = get_logger(__name__)

AlertCallback = Callable[[Alert], Union[None, Awaitable[None]]]


class HealthMonitoringSystem:
    """Poll health probes on an interval and keep a bounded history."""

    def __init__(
        self,
        probes: Sequence[HealthProbe],
        interval_s: float = 10.0,
        probe_timeout_s: float = 10.0,
        history_size: int = 100,
        warning_score: float = 80.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the monitor.

        Args:
            probes: Registered health probes
            interval_s: Seconds between rounds
            probe_timeout_s: Per-probe timeout within a round
            history_size: Number of rounds kept
            warning_score: Score below which a round is a warning
            clock: Monotonic clock in seconds
        """
        self.probes = list(probes)
        self.interval_s = interval_s
        self.probe_timeout_s = probe_timeout_s
        self.warning_score = warning_score
        self._clock = clock
        self._history: deque[HealthStatus] = deque(maxlen=history_size)
        self._history_lock = threading.Lock()
        self._callbacks: list[AlertCallback] = []
        self._task: Optional[asyncio.Task] = None
        self._pending: set[asyncio.Task] = set()
        self._active = False
        self._started_at: Optional[float] = None
        self._rounds = 0

    def on_alert(self, callback: AlertCallback) -> None:
        """Register a callback for health alerts. May be sync or async."""
        self._callbacks.append(callback)

    def start_monitoring(self) -> None:
        """Start the monitoring loop on the running event loop.

        Starting while already monitoring is a no-op.

        Raises:
            RuntimeError: If no event loop is running
        """
        if self._active:
            logger.info("Health monitoring already running")
            return

        loop = asyncio.get_running_loop()
        self._active = True
        self._started_at = self._clock()
        self._task = loop.create_task(self._run_loop())
        logger.info(
            f"Health monitoring started ({len(self.probes)} probes, every {self.interval_s:g}s)",
            extra={"probes": [p.name for p in self.probes], "interval_s": self.interval_s},
        )
        self._emit(
            Alert(
                type=AlertType.MONITORING_STARTED,
                severity=AlertSeverity.LOW,
                message="Health monitoring system started",
                details={"checks_count": len(self.probes)},
            )
        )

    async def stop_monitoring(self) -> None:
        """Stop the loop and discard any in-flight round."""
        if not self._active:
            logger.info("Health monitoring not running")
            return

        self._active = False
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        uptime_s = self._clock() - self._started_at if self._started_at is not None else 0.0
        logger.info("Health monitoring stopped", extra={"rounds": self._rounds})
        self._emit(
            Alert(
                type=AlertType.MONITORING_STOPPED,
                severity=AlertSeverity.LOW,
                message="Health monitoring system stopped",
                details={"uptime_s": round(uptime_s, 2)},
            )
        )
        await self.drain_alerts()

    def is_monitoring_active(self) -> bool:
        return self._active

    def get_current_health_status(self) -> Optional[HealthStatus]:
        with self._history_lock:
            return self._history[-1] if self._history else None

    def get_health_history(self) -> list[HealthStatus]:
        with self._history_lock:
            return list(self._history)

    def get_trend(self, limit: int = 10) -> dict[str, Any]:
        """Summarize the most recent rounds.

        Returns:
            Dict with the sampled scores, their mean, and a direction of
            ``improving``, ``declining`` or ``stable``
        """
        history = self.get_health_history()[-limit:] if limit > 0 else []
        scores = [status.score for status in history]
        if len(scores) < 2:
            direction = "stable"
        else:
            half = len(scores) // 2
            earlier = sum(scores[:half]) / half
            later = sum(scores[half:]) / (len(scores) - half)
            if later - earlier > 5:
                direction = "improving"
            elif earlier - later > 5:
                direction = "declining"
            else:
                direction = "stable"
        return {
            "samples": len(scores),
            "scores": scores,
            "average_score": sum(scores) / len(scores) if scores else None,
            "direction": direction,
            "levels": [status.overall.value for status in history],
        }

    async def _run_loop(self) -> None:
        # Rounds start on a fixed cadence; a round that overruns its slot is
        # followed immediately by the next one.
        next_round = self._clock()
        while self._active:
            try:
                await self.run_health_check()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error running health check: {e}", exc_info=True)
                self._emit(
                    Alert(
                        type=AlertType.HEALTH_CHECK_SYSTEM_ERROR,
                        severity=AlertSeverity.HIGH,
                        message="Health monitoring system encountered an error",
                        details={"error": str(e)},
                    )
                )
            next_round += self.interval_s
            now = self._clock()
            if next_round < now:
                next_round = now
            await asyncio.sleep(next_round - now)

    async def run_health_check(self) -> HealthStatus:
        """Run one round of every probe and record the result.

        Returns:
            The aggregate status for this round
        """
        start = self._clock()
        results = await asyncio.gather(*(self._run_probe(probe) for probe in self.probes))
        status = self._aggregate(list(results))

        with self._history_lock:
            self._history.append(status)
        self._rounds += 1

        elapsed_ms = (self._clock() - start) * 1000
        logger.info(
            f"Health check completed in {elapsed_ms:.0f}ms - status: {status.overall.value} ({status.score}%)",
            extra={
                "overall": status.overall.value,
                "score": status.score,
                "unhealthy": [c.name for c in status.unhealthy_checks],
                "duration_ms": elapsed_ms,
            },
        )

        if status.overall in (HealthLevel.WARNING, HealthLevel.CRITICAL):
            self._emit(
                Alert(
                    type=AlertType.HEALTH_STATUS_DEGRADED,
                    severity=(
                        AlertSeverity.CRITICAL
                        if status.overall == HealthLevel.CRITICAL
                        else AlertSeverity.MEDIUM
                    ),
                    message=f"System health status: {status.overall.value} ({status.score}%)",
                    details=status.to_dict(),
                )
            )
        return status

    async def _run_probe(self, probe: HealthProbe) -> HealthCheckResult:
        try:
            raw = await asyncio.wait_for(probe.check(), timeout=self.probe_timeout_s)
        except asyncio.TimeoutError:
            result = HealthCheckResult(
                healthy=False,
                metrics={"error": True},
                error=str(ProbeTimeout(probe.name, self.probe_timeout_s)),
                name=probe.name,
                critical=probe.critical,
                status=ProbeStatus.TIMEOUT,
                interval_s=probe.interval_s,
                threshold=probe.threshold,
            )
            self._probe_error(probe, result)
        except Exception as e:
            result = HealthCheckResult(
                healthy=False,
                metrics={"error": True},
                error=str(e) or e.__class__.__name__,
                name=probe.name,
                critical=probe.critical,
                status=ProbeStatus.ERROR,
                interval_s=probe.interval_s,
                threshold=probe.threshold,
            )
            self._probe_error(probe, result)
        else:
            result = dataclasses.replace(
                raw,
                name=probe.name,
                critical=probe.critical,
                interval_s=probe.interval_s,
                threshold=probe.threshold,
            )

        logger.debug(
            f"Health check: {probe.name} - {'ok' if result.healthy else 'FAILED'}",
            extra={"probe": probe.name, "status": result.status.value},
        )

        if not result.healthy and probe.critical:
            self._emit(
                Alert(
                    type=AlertType.CRITICAL_HEALTH_CHECK_FAILED,
                    severity=AlertSeverity.CRITICAL,
                    message=f"Critical health check failed: {probe.name}",
                    details={"check": probe.name, "error": result.error, "metrics": result.metrics},
                )
            )
        return result

    def _probe_error(self, probe: HealthProbe, result: HealthCheckResult) -> None:
        logger.error(f"Health check error: {probe.name}: {result.error}")
        self._emit(
            Alert(
                type=AlertType.HEALTH_CHECK_ERROR,
                severity=AlertSeverity.HIGH if probe.critical else AlertSeverity.MEDIUM,
                message=f"Health check error: {probe.name}",
                details={"check": probe.name, "error": result.error},
            )
        )

    def _aggregate(self, results: list[HealthCheckResult]) -> HealthStatus:
        unhealthy = [r for r in results if not r.healthy]
        score = (len(results) - len(unhealthy)) / len(results) * 100 if results else 0.0

        if any(r.critical for r in unhealthy):
            overall = HealthLevel.CRITICAL
        elif score < self.warning_score:
            overall = HealthLevel.WARNING
        else:
            overall = HealthLevel.HEALTHY

        recommendations = []
        if score < 50:
            recommendations.append("System health is critical - immediate attention required")
        elif score < self.warning_score:
            recommendations.append("System health needs attention - monitor closely")
        if unhealthy:
            recommendations.append("Review and address failed health checks")
            recommendations.append("Check system logs for detailed error information")

        return HealthStatus(
            overall=overall,
            score=round(score),
            checks=tuple(results),
            issues=tuple(
                f"{r.name}: {r.error}" if r.error else f"{r.name}: unhealthy" for r in unhealthy
            ),
            recommendations=tuple(recommendations),
        )

    def _emit(self, alert: Alert) -> None:
        """Deliver an alert to every callback without blocking the round."""
        logger.debug(f"Health alert [{alert.severity.value.upper()}]: {alert.message}")
        task = asyncio.get_running_loop().create_task(self._deliver(alert))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, alert: Alert) -> None:
        for callback in list(self._callbacks):
            try:
                outcome = callback(alert)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"Error in alert callback: {e}", exc_info=True)

    async def drain_alerts(self) -> None:
        """Wait until every alert emitted so far has been delivered."""
        while True:
            pending = [task for task in self._pending if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)
