"""Tests for the functionality quality gate and its default probes."""

import asyncio
import logging

import httpx
import pytest

from releasegate.config import TargetConfig
from releasegate.evidence import StaticEvidenceProvider, UserJourneyEvidence
from releasegate.exceptions import ValidationInProgress
from releasegate.gates import FunctionalityQualityGate, FunctionalProbe, default_functional_probes
from releasegate.target import TargetClient

PAGE = '<html><head><meta name="viewport" content="width=device-width"></head><body>ok</body></html>'


def _probe(name, ok=True, critical=False, delay=0.0, timeout_s=1.0, calls=None):
    async def check():
        if calls is not None:
            calls.append(name)
        if delay:
            await asyncio.sleep(delay)
        if not ok:
            raise RuntimeError(f"{name} broke")
        return {"ok": True}

    return FunctionalProbe(name, check, timeout_s, critical=critical)


def _run(gate):
    return asyncio.run(gate.validate_functionality())


def _app(status=200):
    def handler(request: httpx.Request) -> httpx.Response:
        if status != 200:
            return httpx.Response(status, text="error")
        if request.url.path == "/__releasegate_missing_route__":
            return httpx.Response(404, text="not found")
        return httpx.Response(200, text=PAGE)

    return httpx.MockTransport(handler)


class TestFunctionalityQualityGate:
    """Sequential probing and scoring."""

    def test_all_pass(self):
        """Every probe passing scores 100."""
        gate = FunctionalityQualityGate([_probe("a", critical=True), _probe("b")])
        result = _run(gate)

        assert result.passed
        assert result.score == pytest.approx(100.0)
        assert result.issues == ()
        assert result.details["total_tests"] == 2
        assert result.details["stopped_early"] is False
        assert gate.last_result is result

    def test_critical_failure_stops_run(self):
        """The first failing critical probe halts the run."""
        calls = []
        gate = FunctionalityQualityGate(
            [
                _probe("load", critical=True, calls=calls),
                _probe("navigate", ok=False, critical=True, calls=calls),
                _probe("forms", calls=calls),
            ]
        )
        result = _run(gate)

        assert calls == ["load", "navigate"]
        assert not result.passed
        assert result.score == pytest.approx(50.0)
        assert result.details["critical_failures"] == 1
        assert result.details["stopped_early"] is True
        assert result.details["stopped_at"] == "navigate"
        assert "1 critical functionality tests failed" in result.issues
        assert "Critical failure: navigate - navigate broke" in result.issues
        assert "Fix critical functionality issues immediately before proceeding" in result.recommendations

    def test_single_non_critical_failure_can_pass(self):
        """One non-critical failure in twenty keeps the pass rate at 95%."""
        probes = [_probe(f"p{i}") for i in range(19)] + [_probe("flaky", ok=False)]
        result = _run(FunctionalityQualityGate(probes))

        assert result.score == pytest.approx(95.0)
        assert result.passed
        assert "1 functionality tests failed" in result.issues

    def test_single_critical_failure_fails(self):
        """One critical failure fails the gate regardless of pass rate."""
        probes = [_probe(f"p{i}") for i in range(19)] + [_probe("core", ok=False, critical=True)]
        result = _run(FunctionalityQualityGate(probes))

        assert result.score == pytest.approx(95.0)
        assert not result.passed

    def test_timeout_fails_probe(self):
        """A probe exceeding its timeout fails with a timeout message."""
        result = _run(FunctionalityQualityGate([_probe("slow", delay=0.5, timeout_s=0.05)]))

        probe = result.details["test_results"][0]
        assert probe["status"] == "failed"
        assert probe["error"] == "slow timed out after 0.05s"
        assert "Functionality test pass rate below threshold: 0.0% (required: 95%)" in result.issues

    def test_concurrent_run_rejected(self):
        """A second run while one is in progress raises ValidationInProgress."""
        gate = FunctionalityQualityGate([_probe("slow", delay=0.05)])

        async def scenario():
            first = asyncio.create_task(gate.validate_functionality())
            await asyncio.sleep(0)
            with pytest.raises(ValidationInProgress):
                await gate.validate_functionality()
            return await first

        assert asyncio.run(scenario()).passed

    def test_no_probes(self):
        """An empty registry scores zero."""
        result = _run(FunctionalityQualityGate([]))
        assert result.score == 0.0
        assert not result.passed


class TestDefaultFunctionalProbes:
    """The standard HTTP probe registry."""

    def test_registry_order_and_criticality(self):
        """Eight probes; the first four are critical."""
        probes = default_functional_probes(TargetConfig())
        assert [p.name for p in probes][:2] == ["Application Load Test", "Navigation Test"]
        assert [p.critical for p in probes] == [True] * 4 + [False] * 4

    def test_healthy_application(self):
        """A responsive app with a viewport tag passes all probes."""
        target = TargetConfig(base_url="http://app.test")
        client = TargetClient(target, transport=_app())
        result = _run(FunctionalityQualityGate(default_functional_probes(target, client=client)))

        assert result.passed, result.issues
        assert result.score == 100.0
        assert result.details["passed_tests"] == 6
        assert result.details["skipped_tests"] == 2

    def test_unconfigured_endpoints_are_skipped(self, caplog):
        """Probes for unset endpoints are skipped, logged, and left out of the score."""
        target = TargetConfig(base_url="http://app.test")
        client = TargetClient(target, transport=_app())
        with caplog.at_level(logging.WARNING, logger="releasegate"):
            result = _run(FunctionalityQualityGate(default_functional_probes(target, client=client)))

        skipped = [r for r in result.details["test_results"] if r["status"] == "skipped"]
        assert [r["name"] for r in skipped] == ["AI Generation Test", "Form Validation Test"]
        assert skipped[0]["details"] == {"reason": "no generation_path configured"}
        assert result.details["total_tests"] == 6
        assert "Probe skipped: AI Generation Test" in caplog.text

    def test_configured_generation_endpoint_is_run(self):
        """A configured generation path is exercised and counted."""
        target = TargetConfig(base_url="http://app.test", generation_path="/generate")

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(200, text="x" * 80)
            return httpx.Response(200, text=PAGE)

        client = TargetClient(target, transport=httpx.MockTransport(handler))
        result = _run(FunctionalityQualityGate(default_functional_probes(target, client=client)))

        assert result.passed, result.issues
        assert result.details["passed_tests"] == 7
        assert result.details["skipped_tests"] == 1

    def test_server_error_stops_after_first_probe(self):
        """A 500 on the landing page fails the first critical probe."""
        target = TargetConfig(base_url="http://app.test")
        client = TargetClient(target, transport=_app(status=500))
        result = _run(FunctionalityQualityGate(default_functional_probes(target, client=client)))

        assert not result.passed
        assert result.details["total_tests"] == 1
        assert result.details["stopped_at"] == "Application Load Test"
        assert "Application returned HTTP 500" in result.issues[1]

    def test_journey_uses_provider_steps(self):
        """Recorded journey steps from the provider decide the journey probe."""
        from releasegate.evidence import EvidencePackage

        package = EvidencePackage(
            user_journey_proof=(UserJourneyEvidence("landing", True), UserJourneyEvidence("export", False))
        )
        target = TargetConfig(base_url="http://app.test")
        client = TargetClient(target, transport=_app())
        probes = default_functional_probes(target, StaticEvidenceProvider(package), client=client)
        result = _run(FunctionalityQualityGate(probes))

        assert result.details["stopped_at"] == "User Journey Test"
        assert "User journey failed at step 2: export" in result.issues[1]
