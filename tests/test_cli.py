"""Tests for the releasegate command line interface."""

import dataclasses
import json
import logging
from pathlib import Path
from types import SimpleNamespace

import httpx
import pytest
from click.testing import CliRunner

from releasegate.cli import EXIT_APPROVED, EXIT_BLOCKED, EXIT_ERROR, cli
from releasegate.evidence import EvidencePackage, StaticEvidenceProvider
from releasegate.orchestrator import QualityGateOrchestrator

PAGE = '<html><head><meta name="viewport" content="width=device-width"></head><body>ok</body></html>'


@pytest.fixture(autouse=True)
def restore_logging():
    """The CLI reconfigures the package logger; put it back afterwards."""
    logger = logging.getLogger("releasegate")
    handlers, level = list(logger.handlers), logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def use_package(monkeypatch, recording_channel):
    """Point the CLI at an in-process target serving the given evidence."""
    monkeypatch.setattr(
        "releasegate.health.probes.psutil.virtual_memory",
        lambda: SimpleNamespace(percent=30.0, used=1024**3, total=8 * 1024**3),
    )
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text=PAGE))
    console = recording_channel("console")

    def install(package: EvidencePackage):
        def factory(config, start_monitoring=True):
            config = dataclasses.replace(
                config, deployment=dataclasses.replace(config.deployment, health_wait_s=0.05)
            )
            return QualityGateOrchestrator.from_config(
                config,
                provider=StaticEvidenceProvider(package),
                channels={"console": console},
                transport=transport,
                start_monitoring=start_monitoring,
            )

        monkeypatch.setattr("releasegate.cli.build_orchestrator", factory)
        return console

    return install


class TestValidate:
    """The validate command and its exit codes."""

    def test_approved(self, runner, use_package, evidence_package):
        """A passing build exits 0."""
        console = use_package(evidence_package)
        result = runner.invoke(cli, ["validate"])

        assert result.exit_code == EXIT_APPROVED, result.output
        assert "Deployment APPROVED" in result.output
        assert "Overall score: 100%" in result.output
        assert "deployment_approved" in console.types

    def test_blocked_writes_report(self, runner, use_package, temp_dir: Path):
        """A build without evidence is blocked, exits 1 and writes the report."""
        use_package(EvidencePackage())
        report = temp_dir / "out" / "decision.json"

        result = runner.invoke(cli, ["validate", "--output", str(report)])

        assert result.exit_code == EXIT_BLOCKED, result.output
        assert "Deployment BLOCKED" in result.output
        assert "Evidence quality below threshold: 0% (required: 85%)" in result.output
        data = json.loads(report.read_text())
        assert data["approved"] is False
        assert data["deployment_id"].startswith("deploy-")

    def test_timeout_is_an_error(self, runner, use_package, evidence_package, temp_dir: Path):
        """A validation timeout exits 2 and still writes the failure result."""
        use_package(evidence_package)
        config = temp_dir / "gate.toml"
        config.write_text("[deployment]\nvalidation_timeout_s = 0.001\n")
        report = temp_dir / "decision.json"

        result = runner.invoke(cli, ["--config", str(config), "validate", "--output", str(report)])

        assert result.exit_code == EXIT_ERROR
        assert "timed out" in result.output
        data = json.loads(report.read_text())
        assert data["overall_score"] == 0
        assert data["critical_issues"][0].startswith("Deployment validation system error")

    def test_missing_config(self, runner, temp_dir: Path):
        """A missing --config file exits 2."""
        result = runner.invoke(cli, ["--config", str(temp_dir / "absent.toml"), "validate"])

        assert result.exit_code == EXIT_ERROR
        assert "not found" in result.output


class TestOtherCommands:
    def test_status(self, runner, use_package, evidence_package):
        """Status runs a health round and prints each check."""
        use_package(evidence_package)
        result = runner.invoke(cli, ["status"])

        assert result.exit_code == 0, result.output
        assert "System status: operational" in result.output
        assert "Application Load" in result.output

    def test_quality(self, runner, use_package, evidence_package):
        """Quality prints the full validation summary."""
        use_package(evidence_package)
        result = runner.invoke(cli, ["quality"])

        assert result.exit_code == 0, result.output
        assert "Quality validation PASSED (100%)" in result.output

    def test_report(self, runner, use_package, evidence_package):
        """Report prints the merged health report."""
        use_package(evidence_package)
        result = runner.invoke(cli, ["report"])

        assert result.exit_code == 0, result.output
        assert '"deployment_approval_rate"' in result.output

    def test_monitor(self, runner, use_package, evidence_package):
        """Monitor prints rounds until the duration elapses."""
        use_package(evidence_package)
        result = runner.invoke(cli, ["monitor", "--duration", "0.3"])

        assert result.exit_code == 0, result.output
        assert "Monitoring finished after" in result.output
        assert "HEALTHY (100%)" in result.output

    def test_alerts_test(self, runner):
        """A low test alert falls through to default console routing."""
        result = runner.invoke(cli, ["alerts", "test", "--message", "hello"])

        assert result.exit_code == 0, result.output
        assert "Alert default_routed" in result.output
        assert "Delivered: console" in result.output
