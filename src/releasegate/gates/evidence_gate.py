"""Evidence quality gate.

Scores an evidence package in five independent categories. Each category is
pass/fail against a fixed threshold table; the overall score is the weighted
share of passing categories. Missing input for a category fails it.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional, Sequence

from releasegate.evidence.models import (
    BrowserCompatibilityReport,
    EvidencePackage,
    PerformanceMetrics,
    Screenshot,
    TestResult,
    UserJourneyEvidence,
)
from releasegate.logging_config import get_logger

from .results import QualityGateResult

logger = get_logger(__name__)

CATEGORY_WEIGHTS: dict[str, float] = {
    "screenshots": 0.20,
    "performance": 0.25,
    "test_results": 0.25,
    "user_journey": 0.15,
    "browser_compat": 0.15,
}

REQUIRED_BROWSERS = ("Chrome", "Firefox", "Safari", "Edge")

_RECOMMENDATIONS = {
    "screenshots": "Improve screenshot quality: Use higher resolution and ensure all required elements are visible",
    "performance": "Optimize performance: Focus on load time, LCP, FID, and CLS metrics",
    "test_results": "Fix failing tests: Review and address test failures before proceeding",
    "user_journey": "Complete user journey validation: Ensure all user flow steps are successful",
    "browser_compat": "Improve browser compatibility: Test on all required browsers and fix compatibility issues",
}


@dataclass
class EvidenceThresholds:
    """Fixed thresholds for evidence validation."""

    # Screenshots
    min_screenshot_width: int = 1200
    min_screenshot_height: int = 800
    min_screenshot_quality: float = 0.8
    min_screenshot_pass_rate: float = 0.9  # share of screenshots that must be valid

    # Performance (ms, except CLS)
    max_load_time_ms: float = 3000
    max_lcp_ms: float = 2500
    max_fid_ms: float = 100
    max_cls: float = 0.1
    min_performance_score: float = 85  # percent of the four checks

    # Tests and journey (percent)
    min_test_pass_rate: float = 95
    min_journey_success_rate: float = 95

    # Browser compatibility (percent, mean per-browser pass ratio)
    min_browser_compatibility: float = 90
    required_browsers: tuple[str, ...] = REQUIRED_BROWSERS

    # Overall
    min_evidence_quality: float = 80

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CategoryResult:
    passed: bool
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"passed": self.passed, **self.details}


class EvidenceQualityGate:
    """Validate an evidence package against the threshold table."""

    name = "evidence"

    def __init__(self, thresholds: EvidenceThresholds | None = None):
        self.thresholds = thresholds or EvidenceThresholds()
        self.last_result: Optional[QualityGateResult] = None

    async def validate_evidence(self, package: EvidencePackage) -> QualityGateResult:
        """Score an evidence package.

        Args:
            package: Evidence gathered by one collection run

        Returns:
            Gate result; ``passed`` requires score >= 80 and no issues
        """
        logger.info("Starting evidence quality gate validation")

        categories = {
            "screenshots": self._validate_screenshots(package.screenshots),
            "performance": self._validate_performance(package.performance_metrics),
            "test_results": self._validate_test_results(package.test_results),
            "user_journey": self._validate_user_journey(package.user_journey_proof),
            "browser_compat": self._validate_browser_compatibility(package.browser_compatibility),
        }

        score = self._overall_score(categories)
        issues = self._identify_issues(categories)
        recommendations = [
            _RECOMMENDATIONS[name] for name, result in categories.items() if not result.passed
        ]

        result = QualityGateResult(
            gate=self.name,
            passed=score >= self.thresholds.min_evidence_quality and not issues,
            score=score,
            issues=issues,
            recommendations=recommendations,
            details={name: r.to_dict() for name, r in categories.items()},
        )
        self.last_result = result

        logger.info(
            f"Evidence quality gate {'PASSED' if result.passed else 'FAILED'} (score {result.score:.2f})",
            extra={
                "gate": self.name,
                "passed": result.passed,
                "score": result.score,
                "issues": list(result.issues),
                "categories": {name: r.passed for name, r in categories.items()},
            },
        )
        return result

    def _validate_screenshots(self, screenshots: Sequence[Screenshot]) -> CategoryResult:
        if not screenshots:
            return CategoryResult(
                False, {"error": "No screenshots provided", "total": 0, "valid": 0, "invalid": 0}
            )

        t = self.thresholds
        valid: list[dict[str, Any]] = []
        invalid: list[dict[str, Any]] = []
        for shot in screenshots:
            problems = self._screenshot_issues(shot)
            if problems:
                invalid.append({"filename": shot.filename, "issues": problems})
            else:
                valid.append(
                    {
                        "filename": shot.filename,
                        "resolution": {"width": shot.width, "height": shot.height},
                        "quality": shot.quality,
                    }
                )

        pass_rate = len(valid) / len(screenshots)
        return CategoryResult(
            pass_rate >= t.min_screenshot_pass_rate,
            {
                "total": len(screenshots),
                "valid": len(valid),
                "invalid": len(invalid),
                "pass_rate": pass_rate * 100,
                "valid_screenshots": valid,
                "invalid_screenshots": invalid,
            },
        )

    def _screenshot_issues(self, shot: Screenshot) -> list[str]:
        t = self.thresholds
        problems = []
        if shot.width < t.min_screenshot_width:
            problems.append(f"Width too low: {shot.width} (required: {t.min_screenshot_width})")
        if shot.height < t.min_screenshot_height:
            problems.append(f"Height too low: {shot.height} (required: {t.min_screenshot_height})")
        if shot.quality < t.min_screenshot_quality:
            problems.append(f"Quality too low: {shot.quality} (required: {t.min_screenshot_quality})")
        return problems

    def _validate_performance(self, metrics: Optional[PerformanceMetrics]) -> CategoryResult:
        if metrics is None:
            return CategoryResult(False, {"error": "No performance metrics provided", "score": 0.0})

        t = self.thresholds
        checks = {
            "load_time": metrics.load_time_ms <= t.max_load_time_ms,
            "lcp": metrics.lcp_ms <= t.max_lcp_ms,
            "fid": metrics.fid_ms <= t.max_fid_ms,
            "cls": metrics.cls <= t.max_cls,
        }
        passed_checks = sum(1 for ok in checks.values() if ok)
        score = passed_checks / len(checks) * 100
        return CategoryResult(
            score >= t.min_performance_score,
            {
                "metrics": metrics.to_dict(),
                "checks": checks,
                "score": score,
                "passed_checks": passed_checks,
                "total_checks": len(checks),
            },
        )

    def _validate_test_results(self, tests: Sequence[TestResult]) -> CategoryResult:
        if not tests:
            return CategoryResult(
                False, {"error": "No test results provided", "total": 0, "pass_rate": 0.0}
            )

        failed = [test for test in tests if not test.passed]
        pass_rate = (len(tests) - len(failed)) / len(tests) * 100
        return CategoryResult(
            pass_rate >= self.thresholds.min_test_pass_rate,
            {
                "total": len(tests),
                "passed": len(tests) - len(failed),
                "failed": len(failed),
                "pass_rate": pass_rate,
                "failed_tests": [
                    {"name": t.test_name, "errors": list(t.errors), "duration_ms": t.duration_ms}
                    for t in failed
                ],
            },
        )

    def _validate_user_journey(self, steps: Sequence[UserJourneyEvidence]) -> CategoryResult:
        if not steps:
            return CategoryResult(
                False,
                {"error": "No user journey evidence provided", "total": 0, "success_rate": 0.0},
            )

        successful = sum(1 for step in steps if step.success)
        success_rate = successful / len(steps) * 100
        return CategoryResult(
            success_rate >= self.thresholds.min_journey_success_rate,
            {
                "total": len(steps),
                "successful": successful,
                "failed": len(steps) - successful,
                "success_rate": success_rate,
                "steps": [
                    {
                        "step_name": step.step_name,
                        "success": step.success,
                        "has_screenshot": bool(step.screenshot),
                    }
                    for step in steps
                ],
            },
        )

    def _validate_browser_compatibility(
        self, reports: Sequence[BrowserCompatibilityReport]
    ) -> CategoryResult:
        if not reports:
            return CategoryResult(
                False,
                {
                    "error": "No browser compatibility evidence provided",
                    "total": 0,
                    "compatibility_score": 0.0,
                },
            )

        t = self.thresholds
        tested = [report.browser for report in reports]
        missing = [
            required
            for required in t.required_browsers
            if not any(required.lower() in browser.lower() for browser in tested)
        ]
        ratios = [
            report.tests_passed / len(report.tests) if report.tests else 0.0 for report in reports
        ]
        compatibility = sum(ratios) / len(reports) * 100

        return CategoryResult(
            not missing and compatibility >= t.min_browser_compatibility,
            {
                "required_browsers": list(t.required_browsers),
                "tested_browsers": tested,
                "missing_browsers": missing,
                "all_required_tested": not missing,
                "compatibility_score": compatibility,
                "browser_reports": [
                    {
                        "browser": report.browser,
                        "version": report.version,
                        "os": report.os,
                        "tests_passed": report.tests_passed,
                        "tests_total": len(report.tests),
                        "issues": list(report.issues),
                    }
                    for report in reports
                ],
            },
        )

    @staticmethod
    def _overall_score(categories: dict[str, CategoryResult]) -> float:
        total = 0.0
        weight_sum = 0.0
        for name, result in categories.items():
            weight = CATEGORY_WEIGHTS.get(name, 0.0)
            total += (100.0 if result.passed else 0.0) * weight
            weight_sum += weight
        return total / weight_sum if weight_sum else 0.0

    def _identify_issues(self, categories: dict[str, CategoryResult]) -> list[str]:
        t = self.thresholds
        issues = []
        for name, result in categories.items():
            if result.passed:
                continue
            d = result.details
            if name == "screenshots":
                issues.append(
                    f"Screenshot quality insufficient: {d.get('invalid', 0)}/{d.get('total', 0)} "
                    "screenshots failed validation"
                )
            elif name == "performance":
                issues.append(f"Performance metrics below threshold: Score {d.get('score', 0):g}%")
            elif name == "test_results":
                issues.append(
                    f"Test pass rate insufficient: {d.get('pass_rate', 0.0):.1f}% "
                    f"(required: {t.min_test_pass_rate:g}%)"
                )
            elif name == "user_journey":
                issues.append(
                    f"User journey validation failed: {d.get('success_rate', 0.0):.1f}% success rate"
                )
            elif name == "browser_compat":
                message = (
                    f"Browser compatibility insufficient: "
                    f"{d.get('compatibility_score', 0.0):.1f}% compatibility"
                )
                if d.get("missing_browsers"):
                    message += f" (missing: {', '.join(d['missing_browsers'])})"
                issues.append(message)
        return issues
