"""Functionality quality gate.

Runs an ordered list of functional probes one at a time. Each probe races its
timeout; a timeout or raised error fails it. The run stops at the first failing
critical probe. A probe that raises ``ProbeSkipped`` is reported but left out of
the pass rate.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Sequence

from releasegate.exceptions import (
    CriticalProbeFailure,
    ProbeSkipped,
    ProbeTimeout,
    ValidationInProgress,
)
from releasegate.logging_config import get_logger

from .results import QualityGateResult

logger = get_logger(__name__)

SLOW_PROBE_MS = 5000


@dataclass(frozen=True)
class FunctionalProbe:
    """A named functional check. ``check`` raises to signal failure."""

    name: str
    check: Callable[[], Awaitable[Any]]
    timeout_s: float
    critical: bool = False


@dataclass
class FunctionalProbeResult:
    name: str
    passed: bool
    duration_ms: float
    critical: bool = False
    error: Optional[str] = None
    details: Any = None
    skipped: bool = False
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict[str, Any]:
        data = {
            "name": self.name,
            "status": "skipped" if self.skipped else "passed" if self.passed else "failed",
            "duration_ms": round(self.duration_ms, 2),
            "critical": self.critical,
            "timestamp": self.timestamp,
        }
        if self.error:
            data["error"] = self.error
        if self.details is not None:
            data["details"] = self.details
        return data


class FunctionalityQualityGate:
    """Run the functional probe registry and score the outcome."""

    name = "functionality"

    def __init__(
        self,
        probes: Sequence[FunctionalProbe],
        min_pass_rate: float = 95.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the gate.

        Args:
            probes: Probes in execution order
            min_pass_rate: Minimum percentage of run probes that must pass
            clock: Monotonic clock in seconds
        """
        self.probes = list(probes)
        self.min_pass_rate = min_pass_rate
        self._clock = clock
        self._lock = asyncio.Lock()
        self.last_result: Optional[QualityGateResult] = None

    async def validate_functionality(self) -> QualityGateResult:
        """Run probes sequentially, stopping on the first critical failure.

        Returns:
            Gate result; ``passed`` requires no critical failures and a pass
            rate of at least ``min_pass_rate``

        Raises:
            ValidationInProgress: If a run is already in progress
        """
        if self._lock.locked():
            raise ValidationInProgress("Functionality validation already in progress")

        async with self._lock:
            logger.info(f"Starting functionality quality gate ({len(self.probes)} probes)")
            start = self._clock()
            results: list[FunctionalProbeResult] = []
            stopped: Optional[CriticalProbeFailure] = None

            for probe in self.probes:
                result = await self._run_probe(probe)
                results.append(result)
                if probe.critical and not result.passed and not result.skipped:
                    stopped = CriticalProbeFailure(probe.name, result.error or "")
                    logger.error(str(stopped), extra={"probe": probe.name})
                    break

            execution_ms = (self._clock() - start) * 1000
            ran = [r for r in results if not r.skipped]
            passed_count = sum(1 for r in ran if r.passed)
            failed = [r for r in ran if not r.passed]
            critical_failures = [r for r in failed if r.critical]
            score = passed_count / len(ran) * 100 if ran else 0.0

            details: dict[str, Any] = {
                "total_tests": len(ran),
                "passed_tests": passed_count,
                "failed_tests": len(failed),
                "skipped_tests": len(results) - len(ran),
                "critical_failures": len(critical_failures),
                "execution_time_ms": round(execution_ms, 2),
                "stopped_early": stopped is not None,
                "test_results": [r.to_dict() for r in results],
            }
            if stopped is not None:
                details["stopped_at"] = stopped.probe_name

            result = QualityGateResult(
                gate=self.name,
                passed=not critical_failures and score >= self.min_pass_rate,
                score=score,
                issues=self._identify_issues(ran, critical_failures, score),
                recommendations=self._recommendations(ran, critical_failures),
                details=details,
            )
            self.last_result = result

            logger.info(
                f"Functionality quality gate {'PASSED' if result.passed else 'FAILED'}: "
                f"{passed_count}/{len(ran)} probes passed (score {score:.2f})",
                extra={
                    "gate": self.name,
                    "passed": result.passed,
                    "score": score,
                    "critical_failures": len(critical_failures),
                    "execution_time_ms": execution_ms,
                },
            )
            return result

    async def _run_probe(self, probe: FunctionalProbe) -> FunctionalProbeResult:
        logger.debug(f"Running probe: {probe.name}")
        start = self._clock()
        try:
            details = await asyncio.wait_for(probe.check(), timeout=probe.timeout_s)
        except ProbeSkipped as e:
            logger.warning(
                f"Probe skipped: {probe.name}: {e.reason}",
                extra={"probe": probe.name, "critical": probe.critical},
            )
            return FunctionalProbeResult(
                name=probe.name,
                passed=False,
                duration_ms=(self._clock() - start) * 1000,
                critical=probe.critical,
                details={"reason": e.reason},
                skipped=True,
            )
        except asyncio.TimeoutError:
            error = str(ProbeTimeout(probe.name, probe.timeout_s))
        except Exception as e:
            error = str(e) or e.__class__.__name__
        else:
            duration_ms = (self._clock() - start) * 1000
            logger.info(f"Probe passed: {probe.name} ({duration_ms:.0f}ms)")
            return FunctionalProbeResult(
                name=probe.name,
                passed=True,
                duration_ms=duration_ms,
                critical=probe.critical,
                details=details if isinstance(details, (dict, list, str, int, float)) else None,
            )

        duration_ms = (self._clock() - start) * 1000
        logger.warning(
            f"Probe failed: {probe.name} ({duration_ms:.0f}ms): {error}",
            extra={"probe": probe.name, "critical": probe.critical},
        )
        return FunctionalProbeResult(
            name=probe.name,
            passed=False,
            duration_ms=duration_ms,
            critical=probe.critical,
            error=error,
        )

    def _identify_issues(
        self,
        results: list[FunctionalProbeResult],
        critical_failures: list[FunctionalProbeResult],
        score: float,
    ) -> list[str]:
        issues = []
        if critical_failures:
            issues.append(f"{len(critical_failures)} critical functionality tests failed")
            for failure in critical_failures:
                issues.append(f"Critical failure: {failure.name} - {failure.error}")

        failed = [r for r in results if not r.passed]
        if failed:
            issues.append(f"{len(failed)} functionality tests failed")

        if score < self.min_pass_rate:
            issues.append(
                f"Functionality test pass rate below threshold: {score:.1f}% "
                f"(required: {self.min_pass_rate:g}%)"
            )
        return issues

    @staticmethod
    def _recommendations(
        results: list[FunctionalProbeResult],
        critical_failures: list[FunctionalProbeResult],
    ) -> list[str]:
        recommendations = []
        if critical_failures:
            recommendations.append("Fix critical functionality issues immediately before proceeding")
            recommendations.append("Review error logs and implement proper error handling")
        if any(not r.passed for r in results):
            recommendations.append("Address all failing functionality tests")
            recommendations.append("Implement comprehensive error handling and validation")
        if any(r.duration_ms > SLOW_PROBE_MS for r in results):
            recommendations.append("Optimize performance for slow-running functionality tests")
        return recommendations
