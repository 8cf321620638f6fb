"""Final pre-deployment approval.

Collects evidence, runs the evidence and functionality gates alongside a
health read, and turns the three outcomes into one approve/block decision.
Every completed run is recorded as a ``DeploymentAttempt`` and alerted.
"""

from __future__ import annotations

import asyncio
import dataclasses
import secrets
import string
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol

from releasegate.config import DeploymentGateConfig
from releasegate.evidence.collector import EvidenceCollector
from releasegate.evidence.models import EvidencePackage
from releasegate.exceptions import ConfigError, ValidationInProgress, ValidationTimeout
from releasegate.gates.results import QualityGateResult
from releasegate.health.models import HealthLevel, HealthStatus
from releasegate.health.monitor import HealthMonitoringSystem
from releasegate.logging_config import LogContext, get_logger
from releasegate.notifications.base import Alert, AlertSeverity, AlertType
from releasegate.notifications.router import AlertSystem

logger = get_logger(__name__)

MIN_OVERALL_SCORE = 80
_ID_ALPHABET = string.ascii_lowercase + string.digits


class EvidenceGate(Protocol):
    async def validate_evidence(self, package: EvidencePackage) -> QualityGateResult: ...


class FunctionalityGate(Protocol):
    async def validate_functionality(self) -> QualityGateResult: ...


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _pct(value: float) -> str:
    return f"{round(value, 1):g}%"


@dataclass
class GateResults:
    """Per-gate outcomes of one deployment validation.

    A gate is ``None`` when it was skipped or could not produce a result; in
    the latter case ``errors`` holds the reason keyed by gate name.
    """

    evidence: Optional[QualityGateResult] = None
    functionality: Optional[QualityGateResult] = None
    health: Optional[HealthStatus] = None
    errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "evidence": self.evidence.to_dict() if self.evidence else None,
            "functionality": self.functionality.to_dict() if self.functionality else None,
            "health": self.health.to_dict() if self.health else None,
            "errors": dict(self.errors),
        }


@dataclass
class DeploymentValidationResult:
    """One approval decision."""

    approved: bool
    overall_score: int
    gate_results: GateResults = field(default_factory=GateResults)
    critical_issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    timestamp: str = field(default_factory=_utc_now)
    evidence_package: Optional[EvidencePackage] = None
    deployment_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "deployment_id": self.deployment_id,
            "approved": self.approved,
            "overall_score": self.overall_score,
            "gate_results": self.gate_results.to_dict(),
            "critical_issues": list(self.critical_issues),
            "warnings": list(self.warnings),
            "recommendations": list(self.recommendations),
            "timestamp": self.timestamp,
            "evidence": self.evidence_package.summary() if self.evidence_package else None,
        }


@dataclass
class DeploymentAttempt:
    """Audit record for one ``validate_deployment`` call."""

    id: str
    timestamp: str
    result: DeploymentValidationResult
    duration_ms: float
    blocked_reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "approved": self.result.approved,
            "overall_score": self.result.overall_score,
            "duration_ms": round(self.duration_ms, 1),
            "blocked_reason": self.blocked_reason,
            "result": self.result.to_dict(),
        }


def generate_deployment_id() -> str:
    """Return ``deploy-<timestamp>-<6 random chars>``."""
    stamp = datetime.now(timezone.utc).isoformat().replace(":", "-").replace(".", "-")
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(6))
    return f"deploy-{stamp}-{suffix}"


def blocking_reason(result: DeploymentValidationResult) -> str:
    if result.critical_issues:
        return "Critical issues: " + "; ".join(result.critical_issues)
    if result.overall_score < MIN_OVERALL_SCORE:
        return f"Overall score too low: {result.overall_score}%"
    return "Quality gates not passing"


class DeploymentGateSystem:
    """Decide whether the current build may be deployed.

    Only one validation runs at a time; a concurrent call is rejected with
    ``ValidationInProgress``.
    """

    def __init__(
        self,
        evidence_gate: EvidenceGate,
        functionality_gate: FunctionalityGate,
        health_monitor: HealthMonitoringSystem,
        alert_system: AlertSystem,
        evidence_collector: Optional[EvidenceCollector] = None,
        config: Optional[DeploymentGateConfig] = None,
        history_size: int = 50,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the deployment gate.

        Args:
            evidence_gate: Scores collected evidence
            functionality_gate: Runs functional probes
            health_monitor: Source of the current health status
            alert_system: Receives approval, block and error alerts
            evidence_collector: Required when evidence validation is enabled
            config: Thresholds and decision policy
            history_size: Number of deployment attempts kept
            clock: Monotonic clock in seconds
        """
        self.evidence_gate = evidence_gate
        self.functionality_gate = functionality_gate
        self.health_monitor = health_monitor
        self.alert_system = alert_system
        self.evidence_collector = evidence_collector
        self.config = config or DeploymentGateConfig()
        self._clock = clock
        self._lock = asyncio.Lock()
        self._history: deque[DeploymentAttempt] = deque(maxlen=history_size)
        self._history_lock = threading.Lock()

        logger.info("Deployment gate system initialized", extra={"config": self.config.to_dict()})

    def is_validation_in_progress(self) -> bool:
        return self._lock.locked()

    async def validate_deployment(self) -> DeploymentValidationResult:
        """Run every gate and decide on deployment.

        Returns:
            The approval decision, approved or blocked

        Raises:
            ValidationInProgress: If another validation is running
            ValidationTimeout: If the gates exceed ``validation_timeout_s``;
                the blocked result is recorded first and attached as ``result``
        """
        if self._lock.locked():
            raise ValidationInProgress()

        async with self._lock:
            deployment_id = generate_deployment_id()
            with LogContext(deployment_id=deployment_id):
                return await self._validate(deployment_id)

    async def _validate(self, deployment_id: str) -> DeploymentValidationResult:
        start = self._clock()
        logger.info(f"Starting deployment validation: {deployment_id}")

        try:
            package, gates = await asyncio.wait_for(
                self._run_gates(), timeout=self.config.validation_timeout_s
            )
        except asyncio.TimeoutError:
            error = ValidationTimeout(self.config.validation_timeout_s)
            error.result = await self._fail(deployment_id, start, error)
            raise error
        except Exception as e:
            logger.error(f"Deployment validation failed: {e}", exc_info=True)
            return await self._fail(deployment_id, start, e)

        result = self.evaluate(gates, package)
        result.deployment_id = deployment_id
        duration_ms = (self._clock() - start) * 1000

        self._record(
            DeploymentAttempt(
                id=deployment_id,
                timestamp=_utc_now(),
                result=result,
                duration_ms=duration_ms,
                blocked_reason=None if result.approved else blocking_reason(result),
            )
        )
        await self._send_decision_alert(result)
        self._log_result(result, duration_ms)
        return result

    async def _run_gates(self) -> tuple[Optional[EvidencePackage], GateResults]:
        gates = GateResults()
        package: Optional[EvidencePackage] = None

        if self.config.evidence_validation_enabled:
            if self.evidence_collector is None:
                gates.errors["evidence"] = "No evidence collector configured"
            else:
                try:
                    package = await self.evidence_collector.collect_evidence_package()
                except Exception as e:
                    logger.error(f"Evidence collection failed: {e}")
                    gates.errors["evidence"] = str(e) or e.__class__.__name__

        evidence, functionality, health = await asyncio.gather(
            self._run_evidence_gate(package),
            self.functionality_gate.validate_functionality(),
            self._read_health(),
            return_exceptions=True,
        )
        for name, outcome in (
            ("evidence", evidence),
            ("functionality", functionality),
            ("health", health),
        ):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.error(f"{name.capitalize()} gate failed: {outcome}")
                gates.errors[name] = str(outcome) or outcome.__class__.__name__
            elif outcome is not None:
                setattr(gates, name, outcome)
        return package, gates

    async def _run_evidence_gate(self, package: Optional[EvidencePackage]) -> Optional[QualityGateResult]:
        if package is None:
            return None
        return await self.evidence_gate.validate_evidence(package)

    async def _read_health(self) -> Optional[HealthStatus]:
        status = self.health_monitor.get_current_health_status()
        if status is None:
            # No round has completed yet: start polling and give it a moment.
            self.health_monitor.start_monitoring()
            await asyncio.sleep(self.config.health_wait_s)
            status = self.health_monitor.get_current_health_status()
        return status

    def evaluate(
        self,
        gates: GateResults,
        package: Optional[EvidencePackage] = None,
    ) -> DeploymentValidationResult:
        """Aggregate gate outcomes into an approval decision.

        Evidence and functionality below threshold are critical. Health below
        threshold is critical only when health is ``critical``, otherwise a
        warning. The overall score is the mean of the available gate scores.
        """
        cfg = self.config
        critical: list[str] = []
        warnings: list[str] = []
        recommendations: list[str] = []

        evidence = gates.evidence
        if evidence is not None:
            if evidence.score < cfg.evidence_threshold:
                critical.append(
                    f"Evidence quality below threshold: {_pct(evidence.score)} "
                    f"(required: {cfg.evidence_threshold:g}%)"
                )
            critical.extend(evidence.issues)
            recommendations.extend(evidence.recommendations)
        elif cfg.evidence_validation_enabled:
            critical.append("Evidence validation failed or unavailable")

        functionality = gates.functionality
        if functionality is not None:
            if functionality.score < cfg.functionality_threshold:
                critical.append(
                    f"Functionality score below threshold: {_pct(functionality.score)} "
                    f"(required: {cfg.functionality_threshold:g}%)"
                )
            critical.extend(functionality.issues)
            recommendations.extend(functionality.recommendations)
            critical_failures = functionality.details.get("critical_failures", 0)
            if critical_failures > 0:
                critical.append(f"Critical functionality failures: {critical_failures}")
        else:
            critical.append("Functionality validation failed or unavailable")

        health = gates.health
        if health is not None:
            is_critical = health.overall == HealthLevel.CRITICAL
            target = critical if is_critical else warnings
            if health.score < cfg.health_threshold:
                if is_critical:
                    target.append(
                        f"System health critical: {health.score}% (required: {cfg.health_threshold:g}%)"
                    )
                else:
                    target.append(
                        f"System health below threshold: {health.score}% "
                        f"(required: {cfg.health_threshold:g}%)"
                    )
            target.extend(health.issues)
            recommendations.extend(health.recommendations)
        else:
            warnings.append("Health status unavailable")

        scores = [g.score for g in (evidence, functionality, health) if g is not None]
        overall_score = round(sum(scores) / len(scores)) if scores else 0

        approved = True
        if cfg.block_on_critical_failures and critical:
            approved = False
        if cfg.require_all_gates_passing:
            evidence_ok = evidence is None or evidence.passed
            functionality_ok = functionality is None or functionality.passed
            health_ok = health is None or health.overall != HealthLevel.CRITICAL
            if not (evidence_ok and functionality_ok and health_ok):
                approved = False

        return DeploymentValidationResult(
            approved=approved,
            overall_score=overall_score,
            gate_results=gates,
            critical_issues=critical,
            warnings=warnings,
            recommendations=recommendations,
            evidence_package=package,
        )

    async def _fail(
        self,
        deployment_id: str,
        start: float,
        error: Exception,
    ) -> DeploymentValidationResult:
        """Record and alert a run that could not reach a decision."""
        duration_ms = (self._clock() - start) * 1000
        message = str(error) or error.__class__.__name__
        result = DeploymentValidationResult(
            approved=False,
            overall_score=0,
            critical_issues=[f"Deployment validation system error: {message}"],
            recommendations=["Fix deployment validation system errors before attempting deployment"],
            deployment_id=deployment_id,
        )
        self._record(
            DeploymentAttempt(
                id=deployment_id,
                timestamp=_utc_now(),
                result=result,
                duration_ms=duration_ms,
                blocked_reason="System error during validation",
            )
        )
        await self.alert_system.trigger_alert(
            Alert(
                type=AlertType.DEPLOYMENT_VALIDATION_SYSTEM_ERROR,
                severity=AlertSeverity.CRITICAL,
                message="Deployment validation system encountered a critical error",
                details={
                    "error": message,
                    "duration_ms": round(duration_ms, 1),
                    "deployment_id": deployment_id,
                },
            )
        )
        return result

    async def _send_decision_alert(self, result: DeploymentValidationResult) -> None:
        if result.approved:
            alert = Alert(
                type=AlertType.DEPLOYMENT_APPROVED,
                severity=AlertSeverity.LOW,
                message=f"Deployment approved - All quality gates passing (Score: {result.overall_score}%)",
                details=result.to_dict(),
            )
        else:
            alert = Alert(
                type=AlertType.DEPLOYMENT_BLOCKED,
                severity=AlertSeverity.HIGH if result.critical_issues else AlertSeverity.MEDIUM,
                message=f"Deployment blocked - Quality gates not passing (Score: {result.overall_score}%)",
                details=result.to_dict(),
            )
        await self.alert_system.trigger_alert(alert)

    def _record(self, attempt: DeploymentAttempt) -> None:
        with self._history_lock:
            self._history.append(attempt)
        logger.info(f"Deployment attempt recorded: {attempt.id}")

    def _log_result(self, result: DeploymentValidationResult, duration_ms: float) -> None:
        gates = result.gate_results
        logger.info(
            f"Deployment {'APPROVED' if result.approved else 'BLOCKED'} "
            f"(score {result.overall_score}%, {duration_ms:.0f}ms)",
            extra={
                "deployment_id": result.deployment_id,
                "approved": result.approved,
                "overall_score": result.overall_score,
                "evidence_score": gates.evidence.score if gates.evidence else None,
                "functionality_score": gates.functionality.score if gates.functionality else None,
                "health_score": gates.health.score if gates.health else None,
                "critical_issues": result.critical_issues,
                "warnings": result.warnings,
            },
        )
        for issue in result.critical_issues:
            logger.warning(f"Critical issue: {issue}")

    def get_deployment_history(self, limit: int = 10) -> list[DeploymentAttempt]:
        with self._history_lock:
            history = list(self._history)
        return history[-limit:] if limit > 0 else []

    def get_deployment_stats(self) -> dict[str, Any]:
        with self._history_lock:
            history = list(self._history)

        if not history:
            return {
                "total_attempts": 0,
                "approved_attempts": 0,
                "blocked_attempts": 0,
                "approval_rate": 0.0,
                "avg_score": 0,
                "avg_duration_ms": 0,
            }

        approved = sum(1 for attempt in history if attempt.result.approved)
        return {
            "total_attempts": len(history),
            "approved_attempts": approved,
            "blocked_attempts": len(history) - approved,
            "approval_rate": approved / len(history) * 100,
            "avg_score": round(sum(a.result.overall_score for a in history) / len(history)),
            "avg_duration_ms": round(sum(a.duration_ms for a in history) / len(history)),
        }

    def update_configuration(self, **overrides: Any) -> DeploymentGateConfig:
        """Replace selected policy options.

        Raises:
            ConfigError: If an option name is not recognized
        """
        known = {f.name for f in dataclasses.fields(DeploymentGateConfig)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConfigError(f"Unknown deployment option(s): {', '.join(unknown)}")

        self.config = dataclasses.replace(self.config, **overrides)
        logger.info("Deployment gate configuration updated", extra={"config": self.config.to_dict()})
        return self.config
