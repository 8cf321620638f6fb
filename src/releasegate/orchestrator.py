"""Quality gate orchestrator.

Composes evidence collection, both quality gates, health monitoring, alert
routing and the deployment gate behind one object.

Usage:
    async with QualityGateOrchestrator.from_config(load_config_model()) as gate:
        result = await gate.validate_for_deployment()
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import httpx

from releasegate.config import ReleaseGateConfig
from releasegate.deployment.gate import DeploymentGateSystem, DeploymentValidationResult
from releasegate.evidence.collector import EvidenceCollector
from releasegate.evidence.models import EvidencePackage
from releasegate.evidence.provider import EvidenceProvider, JsonEvidenceProvider, StaticEvidenceProvider
from releasegate.evidence.storage import FileEvidenceStorage, InMemoryEvidenceStorage
from releasegate.exceptions import ReleaseGateError, SystemInitializationError, SystemStatusCritical
from releasegate.gates.evidence_gate import EvidenceQualityGate
from releasegate.gates.functionality_gate import FunctionalityQualityGate
from releasegate.gates.probes import default_functional_probes
from releasegate.gates.results import QualityGateResult
from releasegate.health.models import HealthLevel, HealthStatus
from releasegate.health.monitor import HealthMonitoringSystem
from releasegate.health.probes import ErrorTracker, default_health_probes
from releasegate.logging_config import get_logger
from releasegate.notifications.base import Alert, AlertChannel, AlertSeverity, AlertType
from releasegate.notifications.router import AlertSystem, build_channels
from releasegate.target import TargetClient

logger = get_logger(__name__)

COMPONENTS = ["DeploymentGate", "HealthMonitoring", "AlertSystem", "EvidenceCollection"]


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SystemState(str, Enum):
    """Overall state derived from the latest health round."""

    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    CRITICAL = "critical"


@dataclass
class SystemStatus:
    """Snapshot of every component's run state."""

    overall_status: SystemState
    health_monitoring: str
    evidence_collection: str
    deployment_gate: str = "active"
    alert_system: str = "active"
    timestamp: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall_status": self.overall_status.value,
            "deployment_gate": self.deployment_gate,
            "health_monitoring": self.health_monitoring,
            "alert_system": self.alert_system,
            "evidence_collection": self.evidence_collection,
            "timestamp": self.timestamp,
        }


@dataclass
class QualityValidationReport:
    """Full quality validation, independent of the deployment decision."""

    passed: bool
    score: int
    duration_ms: float
    evidence: QualityGateResult
    functionality: QualityGateResult
    health: Optional[HealthStatus]
    evidence_package: EvidencePackage
    timestamp: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall": {
                "passed": self.passed,
                "score": self.score,
                "duration_ms": round(self.duration_ms, 1),
            },
            "evidence": self.evidence.to_dict(),
            "functionality": self.functionality.to_dict(),
            "health": self.health.to_dict() if self.health else None,
            "evidence_package": self.evidence_package.summary(),
            "timestamp": self.timestamp,
        }


class QualityGateOrchestrator:
    """Facade over the whole quality gate system.

    Must be constructed inside a running event loop: construction wires the
    health monitor's alerts into the alert system and starts monitoring.
    """

    def __init__(
        self,
        deployment_gate: DeploymentGateSystem,
        evidence_collector: EvidenceCollector,
        evidence_gate: EvidenceQualityGate,
        functionality_gate: FunctionalityQualityGate,
        health_monitor: HealthMonitoringSystem,
        alert_system: AlertSystem,
        start_monitoring: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Wire the components together.

        Args:
            deployment_gate: Makes the approval decision
            evidence_collector: Gathers evidence for full validations
            evidence_gate: Scores evidence
            functionality_gate: Runs functional probes
            health_monitor: Continuous health monitoring
            alert_system: Routes every alert raised by the system
            start_monitoring: Start health monitoring immediately
            clock: Monotonic clock in seconds

        Raises:
            SystemInitializationError: If wiring or starting monitoring fails
        """
        self.deployment_gate = deployment_gate
        self.evidence_collector = evidence_collector
        self.evidence_gate = evidence_gate
        self.functionality_gate = functionality_gate
        self.health_monitor = health_monitor
        self.alert_system = alert_system
        self._clock = clock
        self._initialized = False
        self._shut_down = False
        self._background: set[asyncio.Task] = set()

        start = self._clock()
        try:
            asyncio.get_running_loop()
            self.health_monitor.on_alert(self._forward_health_alert)
            if start_monitoring:
                self.health_monitor.start_monitoring()
        except Exception as e:
            logger.error(f"Failed to initialize quality gate orchestrator: {e}", exc_info=True)
            raise SystemInitializationError(
                f"Quality gate orchestrator failed to initialize: {e}",
                {"error": str(e)},
            ) from e

        self._started_at = self._clock()
        self.initialization_ms = (self._started_at - start) * 1000
        self._initialized = True
        logger.info(
            f"Quality gate orchestrator initialized in {self.initialization_ms:.1f}ms",
            extra={"components": COMPONENTS},
        )
        self._spawn(
            self.alert_system.trigger_alert(
                Alert(
                    type=AlertType.QUALITY_GATE_SYSTEM_INITIALIZED,
                    severity=AlertSeverity.LOW,
                    message="Quality Gate Orchestrator successfully initialized",
                    details={
                        "initialization_ms": round(self.initialization_ms, 2),
                        "components": COMPONENTS,
                    },
                )
            )
        )

    @classmethod
    def from_config(
        cls,
        config: Optional[ReleaseGateConfig] = None,
        provider: Optional[EvidenceProvider] = None,
        channels: Optional[dict[str, AlertChannel]] = None,
        error_tracker: Optional[ErrorTracker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        start_monitoring: bool = True,
    ) -> QualityGateOrchestrator:
        """Build the standard system from configuration.

        Args:
            config: Typed configuration (default: built-in defaults)
            provider: Evidence source (default: the configured manifest, or an
                empty package when none is configured)
            channels: Alert channel registry (default: ``build_channels``)
            error_tracker: Shared error tracker for the health probes
            transport: httpx transport for the target client
            start_monitoring: Start health monitoring immediately
        """
        config = config or ReleaseGateConfig()
        if provider is None:
            if config.evidence.manifest is not None:
                provider = JsonEvidenceProvider(config.evidence.manifest)
            else:
                provider = StaticEvidenceProvider(EvidencePackage())

        storage = (
            FileEvidenceStorage(config.evidence.storage_dir)
            if config.evidence.storage_dir is not None
            else InMemoryEvidenceStorage()
        )
        client = TargetClient(config.target, transport=transport)

        alert_system = AlertSystem(
            channels=channels if channels is not None else build_channels(config.alerts),
            history_size=config.alerts.history_size,
        )
        collector = EvidenceCollector(provider, storage, task_timeout_s=config.evidence.task_timeout_s)
        evidence_gate = EvidenceQualityGate()
        functionality_gate = FunctionalityQualityGate(
            default_functional_probes(config.target, provider=provider, client=client)
        )
        health_monitor = HealthMonitoringSystem(
            default_health_probes(config.target, error_tracker, provider=provider, client=client),
            interval_s=config.monitoring.interval_s,
            probe_timeout_s=config.monitoring.probe_timeout_s,
            history_size=config.monitoring.history_size,
        )
        deployment_gate = DeploymentGateSystem(
            evidence_gate=evidence_gate,
            functionality_gate=functionality_gate,
            health_monitor=health_monitor,
            alert_system=alert_system,
            evidence_collector=collector,
            config=config.deployment,
        )
        return cls(
            deployment_gate=deployment_gate,
            evidence_collector=collector,
            evidence_gate=evidence_gate,
            functionality_gate=functionality_gate,
            health_monitor=health_monitor,
            alert_system=alert_system,
            start_monitoring=start_monitoring,
        )

    async def __aenter__(self) -> QualityGateOrchestrator:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _forward_health_alert(self, alert: Alert) -> None:
        logger.info(
            f"Health alert: {alert.message}",
            extra={"alert_type": alert.type, "severity": alert.severity.value},
        )
        await self.alert_system.trigger_alert(alert)

    def _require_ready(self) -> None:
        if not self.is_system_ready():
            raise ReleaseGateError("Quality gate orchestrator not initialized")

    async def perform_full_quality_validation(self) -> QualityValidationReport:
        """Collect evidence and run every gate, without deciding on deployment.

        A missing health status counts as 100 in the combined score.

        Raises:
            SystemStatusCritical: If current health is critical
        """
        self._require_ready()
        start = self._clock()
        try:
            if self.get_system_status().overall_status == SystemState.CRITICAL:
                raise SystemStatusCritical()

            package = await self.evidence_collector.collect_evidence_package()
            evidence, functionality = await asyncio.gather(
                self.evidence_gate.validate_evidence(package),
                self.functionality_gate.validate_functionality(),
            )
            health = self.health_monitor.get_current_health_status()

            passed = (
                evidence.passed
                and functionality.passed
                and (health is None or health.overall != HealthLevel.CRITICAL)
            )
            health_score = health.score if health is not None else 100
            report = QualityValidationReport(
                passed=passed,
                score=round((evidence.score + functionality.score + health_score) / 3),
                duration_ms=(self._clock() - start) * 1000,
                evidence=evidence,
                functionality=functionality,
                health=health,
                evidence_package=package,
            )
        except Exception as e:
            logger.error(f"Full quality validation failed: {e}")
            await self.alert_system.trigger_alert(
                Alert(
                    type=AlertType.QUALITY_VALIDATION_FAILED,
                    severity=AlertSeverity.HIGH,
                    message="Full quality validation encountered an error",
                    details={"error": str(e) or e.__class__.__name__},
                )
            )
            raise

        logger.info(
            f"Quality validation {'passed' if report.passed else 'failed'} (score {report.score}%)",
            extra={"passed": report.passed, "score": report.score, "duration_ms": report.duration_ms},
        )
        summary = report.to_dict()
        await self.alert_system.trigger_alert(
            Alert(
                type=AlertType.QUALITY_VALIDATION_COMPLETED,
                severity=AlertSeverity.LOW if report.passed else AlertSeverity.MEDIUM,
                message=f"Quality validation {'passed' if report.passed else 'failed'} (Score: {report.score}%)",
                details={key: summary[key] for key in ("overall", "evidence", "functionality", "health")},
            )
        )
        return report

    async def validate_for_deployment(self) -> DeploymentValidationResult:
        """Run the deployment gate.

        Raises:
            ValidationInProgress: If a deployment validation is already running
            ValidationTimeout: If the gates exceed their deadline
        """
        self._require_ready()
        return await self.deployment_gate.validate_deployment()

    def get_system_status(self) -> SystemStatus:
        health = self.health_monitor.get_current_health_status()
        if health is not None and health.overall == HealthLevel.CRITICAL:
            state = SystemState.CRITICAL
        elif health is not None and health.overall == HealthLevel.WARNING:
            state = SystemState.DEGRADED
        else:
            state = SystemState.OPERATIONAL

        return SystemStatus(
            overall_status=state,
            health_monitoring="active" if self.health_monitor.is_monitoring_active() else "inactive",
            evidence_collection="collecting" if self.evidence_collector.is_collecting else "ready",
        )

    def get_system_uptime_s(self) -> float:
        return self._clock() - self._started_at if self._initialized else 0.0

    def get_system_health_report(self) -> dict[str, Any]:
        """Merge deployment, health, alert and evidence state into one report."""
        now = _utc_now()
        health = self.health_monitor.get_current_health_status()
        deployment_stats = self.deployment_gate.get_deployment_stats()
        alert_stats = self.alert_system.get_alert_stats()
        last_evidence = getattr(self.evidence_gate, "last_result", None)
        last_package = self.evidence_collector.get_last_package()

        health_level = health.overall.value if health else HealthLevel.WARNING.value
        if last_evidence is None:
            evidence_level = HealthLevel.WARNING.value
        else:
            evidence_level = HealthLevel.HEALTHY.value if last_evidence.passed else HealthLevel.WARNING.value

        return {
            "overall": health_level,
            "components": {
                "deployment_gate": {
                    "status": "healthy" if deployment_stats["approval_rate"] > 80 else "warning",
                    "details": deployment_stats,
                    "last_check": now,
                },
                "health_monitoring": {
                    "status": health_level,
                    "details": health.to_dict() if health else None,
                    "last_check": health.timestamp if health else now,
                },
                "alert_system": {
                    "status": "healthy" if alert_stats["success_rate"] > 95 else "warning",
                    "details": alert_stats,
                    "last_check": now,
                },
                "evidence_collection": {
                    "status": evidence_level,
                    "details": {
                        "collecting": self.evidence_collector.is_collecting,
                        "last_collection": last_package.collected_at if last_package else None,
                    },
                    "last_check": now,
                },
            },
            "metrics": {
                "deployment_approval_rate": deployment_stats["approval_rate"],
                "alert_response_time_ms": alert_stats["avg_response_time_ms"],
                "evidence_quality": last_evidence.score if last_evidence else None,
                "system_uptime_s": round(self.get_system_uptime_s(), 2),
            },
            "timestamp": now,
        }

    def is_system_ready(self) -> bool:
        return self._initialized and not self._shut_down

    async def shutdown(self) -> None:
        """Stop monitoring, cancel escalations and announce the shutdown."""
        if self._shut_down:
            return
        self._shut_down = True
        logger.info("Shutting down quality gate orchestrator")

        await self.health_monitor.stop_monitoring()
        self.alert_system.clear_escalations()
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

        await self.alert_system.trigger_alert(
            Alert(
                type=AlertType.QUALITY_GATE_SYSTEM_SHUTDOWN,
                severity=AlertSeverity.LOW,
                message="Quality Gate Orchestrator is shutting down",
                details={"uptime_s": round(self._clock() - self._started_at, 2)},
            )
        )

    async def run_system_tests(self) -> dict[str, Any]:
        """Exercise every component once.

        Returns:
            Dict with ``passed``, ``failed``, ``total`` and per-test ``results``
        """
        tests = [
            ("System Initialization", self._test_initialization),
            ("Evidence Collection", self._test_evidence_collection),
            ("Quality Gates", self._test_quality_gates),
            ("Health Monitoring", self._test_health_monitoring),
            ("Alert System", self._test_alert_system),
            ("Deployment Gates", self._test_deployment_gate),
        ]

        results = []
        for name, test in tests:
            try:
                await test()
            except Exception as e:
                logger.error(f"System test failed: {name}: {e}")
                results.append({"name": name, "passed": False, "error": str(e) or e.__class__.__name__})
            else:
                logger.info(f"System test passed: {name}")
                results.append({"name": name, "passed": True, "error": None})

        passed = sum(1 for r in results if r["passed"])
        return {
            "passed": passed,
            "failed": len(results) - passed,
            "total": len(results),
            "results": results,
        }

    async def _test_initialization(self) -> None:
        if not self.is_system_ready():
            raise ReleaseGateError("System not properly initialized")

    async def _test_evidence_collection(self) -> None:
        package = await self.evidence_collector.collect_evidence_package()
        if not package.screenshots:
            raise ReleaseGateError("No screenshots collected")
        if package.performance_metrics is None:
            raise ReleaseGateError("No performance metrics collected")

    async def _test_quality_gates(self) -> None:
        package = await self.evidence_collector.collect_evidence_package()
        evidence = await self.evidence_gate.validate_evidence(package)
        functionality = await self.functionality_gate.validate_functionality()
        for name, result in (("Evidence", evidence), ("Functionality", functionality)):
            if not isinstance(result, QualityGateResult):
                raise ReleaseGateError(f"{name} gate not returning a valid result")

    async def _test_health_monitoring(self) -> None:
        if self.health_monitor.get_current_health_status() is None:
            await self.health_monitor.run_health_check()
        if self.health_monitor.get_current_health_status() is None:
            raise ReleaseGateError("Health monitoring not providing status")

    async def _test_alert_system(self) -> None:
        alert = Alert(
            type=AlertType.TEST_ALERT,
            severity=AlertSeverity.LOW,
            message="Test alert for system validation",
            details={"source": "system_tests"},
        )
        await self.alert_system.trigger_alert(alert)
        if not any(entry.alert is alert for entry in self.alert_system.get_alert_history(limit=10)):
            raise ReleaseGateError("Alert not recorded in history")

    async def _test_deployment_gate(self) -> None:
        result = await self.deployment_gate.validate_deployment()
        if not isinstance(result.approved, bool):
            raise ReleaseGateError("Deployment gate not returning a valid approval status")
