"""Tests for the evidence quality gate."""

import asyncio

import pytest

from releasegate.evidence import (
    BrowserCompatibilityReport,
    EvidencePackage,
    PerformanceMetrics,
    Screenshot,
    TestResult,
)
from releasegate.gates import CATEGORY_WEIGHTS, EvidenceQualityGate, EvidenceThresholds


def _validate(package, thresholds=None):
    return asyncio.run(EvidenceQualityGate(thresholds).validate_evidence(package))


class TestEvidenceQualityGate:
    """Category scoring and issue reporting."""

    def test_all_categories_pass(self, evidence_package):
        """A complete package scores 100 with no issues."""
        result = _validate(evidence_package)

        assert result.passed
        assert result.score == pytest.approx(100.0)
        assert result.issues == ()
        assert result.recommendations == ()
        assert set(result.details) == set(CATEGORY_WEIGHTS)

    def test_missing_tests_fail_category(self, make_package):
        """No test results fails the category and costs its weight."""
        result = _validate(make_package(test_results=()))

        assert not result.passed
        assert result.score == pytest.approx(75.0)
        assert "Test pass rate insufficient: 0.0% (required: 95%)" in result.issues
        assert result.details["test_results"]["error"] == "No test results provided"
        assert any(r.startswith("Fix failing tests") for r in result.recommendations)

    def test_missing_required_browser(self, make_package):
        """A required browser that was not tested fails compatibility."""
        passing = (TestResult("t", "passed"),)
        reports = tuple(
            BrowserCompatibilityReport(browser, tests=passing) for browser in ("Chrome", "Firefox", "Safari")
        )
        result = _validate(make_package(browser_compatibility=reports))

        assert result.score == pytest.approx(85.0)
        assert not result.passed
        assert "Browser compatibility insufficient: 100.0% compatibility (missing: Edge)" in result.issues
        assert result.details["browser_compat"]["missing_browsers"] == ["Edge"]

    def test_browser_names_match_case_insensitively(self, make_package):
        """Browser names containing the required name count as tested."""
        passing = (TestResult("t", "passed"),)
        reports = tuple(
            BrowserCompatibilityReport(browser, tests=passing)
            for browser in ("Google Chrome", "firefox", "Mobile Safari", "Microsoft Edge")
        )
        result = _validate(make_package(browser_compatibility=reports))
        assert result.details["browser_compat"]["all_required_tested"]

    def test_low_resolution_screenshots(self, make_package):
        """Screenshots below the minimum resolution are invalid."""
        shots = (
            Screenshot("small.png", 800, 600, 0.95),
            Screenshot("ok.png", 1920, 1080, 0.95),
        )
        result = _validate(make_package(screenshots=shots))

        assert "Screenshot quality insufficient: 1/2 screenshots failed validation" in result.issues
        invalid = result.details["screenshots"]["invalid_screenshots"]
        assert invalid[0]["filename"] == "small.png"
        assert "Width too low: 800 (required: 1200)" in invalid[0]["issues"]

    def test_performance_half_checks(self, make_package):
        """Two of four web vitals over budget scores performance at 50%."""
        metrics = PerformanceMetrics(load_time_ms=4000, lcp_ms=3000, fid_ms=50, cls=0.05)
        result = _validate(make_package(performance_metrics=metrics))

        assert "Performance metrics below threshold: Score 50%" in result.issues
        assert result.details["performance"]["checks"] == {
            "load_time": False,
            "lcp": False,
            "fid": True,
            "cls": True,
        }
        assert result.score == pytest.approx(75.0)

    def test_failed_journey_step(self, make_package):
        """One failed step in two is a 50% journey success rate."""
        from releasegate.evidence import UserJourneyEvidence

        steps = (UserJourneyEvidence("landing", True), UserJourneyEvidence("export", False))
        result = _validate(make_package(user_journey_proof=steps))
        assert "User journey validation failed: 50.0% success rate" in result.issues

    def test_score_above_threshold_with_issue_still_fails(self, make_package):
        """A score over the overall threshold fails when any issue is present."""
        result = _validate(
            make_package(browser_compatibility=()),
            EvidenceThresholds(min_evidence_quality=80),
        )
        assert result.score == pytest.approx(85.0)
        assert result.issues
        assert not result.passed

    def test_empty_package(self):
        """An empty package fails every category."""
        result = _validate(EvidencePackage())
        assert result.score == pytest.approx(0.0)
        assert len(result.issues) == 5

    def test_last_result_kept(self, evidence_package):
        """The gate keeps its most recent result."""
        gate = EvidenceQualityGate()
        assert gate.last_result is None
        result = asyncio.run(gate.validate_evidence(evidence_package))
        assert gate.last_result is result
        assert result.to_dict()["gate"] == "evidence"
