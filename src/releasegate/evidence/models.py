"""Evidence data model: what a collection run gathers as proof of quality."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Screenshot:
    filename: str
    width: int
    height: int
    quality: float
    path: str = ""
    timestamp: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "resolution": {"width": self.width, "height": self.height},
            "quality": self.quality,
            "path": self.path,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Screenshot:
        resolution = data.get("resolution") or {}
        return cls(
            filename=data.get("filename", ""),
            width=int(resolution.get("width", data.get("width", 0))),
            height=int(resolution.get("height", data.get("height", 0))),
            quality=float(data.get("quality", 0.0)),
            path=data.get("path", ""),
            timestamp=data.get("timestamp") or now_iso(),
        )


@dataclass(frozen=True)
class PerformanceMetrics:
    """Page performance and Core Web Vitals. Times are milliseconds."""

    load_time_ms: float
    lcp_ms: float
    fid_ms: float
    cls: float
    dom_content_loaded_ms: float = 0.0
    timestamp: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PerformanceMetrics:
        return cls(
            load_time_ms=float(data.get("load_time_ms", 0.0)),
            lcp_ms=float(data.get("lcp_ms", 0.0)),
            fid_ms=float(data.get("fid_ms", 0.0)),
            cls=float(data.get("cls", 0.0)),
            dom_content_loaded_ms=float(data.get("dom_content_loaded_ms", 0.0)),
            timestamp=data.get("timestamp") or now_iso(),
        )


@dataclass(frozen=True)
class TestResult:
    test_name: str
    status: str  # "passed" | "failed"
    duration_ms: float = 0.0
    screenshots: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()
    timestamp: str = field(default_factory=now_iso)

    __test__ = False

    @property
    def passed(self) -> bool:
        return self.status == "passed"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["screenshots"] = list(self.screenshots)
        data["errors"] = list(self.errors)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TestResult:
        return cls(
            test_name=data.get("test_name", ""),
            status=data.get("status", "failed"),
            duration_ms=float(data.get("duration_ms", 0.0)),
            screenshots=tuple(data.get("screenshots", [])),
            errors=tuple(data.get("errors", [])),
            timestamp=data.get("timestamp") or now_iso(),
        )


@dataclass(frozen=True)
class UserJourneyEvidence:
    step_name: str
    success: bool
    screenshot: str = ""
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserJourneyEvidence:
        return cls(
            step_name=data.get("step_name", ""),
            success=bool(data.get("success", False)),
            screenshot=data.get("screenshot", ""),
            details=dict(data.get("details") or {}),
            timestamp=data.get("timestamp") or now_iso(),
        )


@dataclass(frozen=True)
class BrowserCompatibilityReport:
    browser: str
    version: str = ""
    os: str = ""
    tests: tuple[TestResult, ...] = ()
    screenshots: tuple[Screenshot, ...] = ()
    issues: tuple[str, ...] = ()
    timestamp: str = field(default_factory=now_iso)

    @property
    def tests_passed(self) -> int:
        return sum(1 for test in self.tests if test.passed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "browser": self.browser,
            "version": self.version,
            "os": self.os,
            "tests": [t.to_dict() for t in self.tests],
            "screenshots": [s.to_dict() for s in self.screenshots],
            "issues": list(self.issues),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BrowserCompatibilityReport:
        return cls(
            browser=data.get("browser", ""),
            version=data.get("version", ""),
            os=data.get("os", ""),
            tests=tuple(TestResult.from_dict(t) for t in data.get("tests", [])),
            screenshots=tuple(Screenshot.from_dict(s) for s in data.get("screenshots", [])),
            issues=tuple(data.get("issues", [])),
            timestamp=data.get("timestamp") or now_iso(),
        )


@dataclass(frozen=True)
class EvidencePackage:
    """One collection run's gathered proof. Immutable once built."""

    screenshots: tuple[Screenshot, ...] = ()
    performance_metrics: Optional[PerformanceMetrics] = None
    test_results: tuple[TestResult, ...] = ()
    user_journey_proof: tuple[UserJourneyEvidence, ...] = ()
    browser_compatibility: tuple[BrowserCompatibilityReport, ...] = ()
    collected_at: str = field(default_factory=now_iso)

    def summary(self) -> dict[str, Any]:
        return {
            "screenshots": len(self.screenshots),
            "performance_metrics": self.performance_metrics is not None,
            "test_results": len(self.test_results),
            "user_journey_steps": len(self.user_journey_proof),
            "browser_reports": len(self.browser_compatibility),
            "collected_at": self.collected_at,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "screenshots": [s.to_dict() for s in self.screenshots],
            "performance_metrics": (
                self.performance_metrics.to_dict() if self.performance_metrics else None
            ),
            "test_results": [t.to_dict() for t in self.test_results],
            "user_journey_proof": [j.to_dict() for j in self.user_journey_proof],
            "browser_compatibility": [b.to_dict() for b in self.browser_compatibility],
            "collected_at": self.collected_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EvidencePackage:
        metrics = data.get("performance_metrics")
        return cls(
            screenshots=tuple(Screenshot.from_dict(s) for s in data.get("screenshots") or []),
            performance_metrics=PerformanceMetrics.from_dict(metrics) if metrics else None,
            test_results=tuple(TestResult.from_dict(t) for t in data.get("test_results") or []),
            user_journey_proof=tuple(
                UserJourneyEvidence.from_dict(j) for j in data.get("user_journey_proof") or []
            ),
            browser_compatibility=tuple(
                BrowserCompatibilityReport.from_dict(b)
                for b in data.get("browser_compatibility") or []
            ),
            collected_at=data.get("collected_at") or now_iso(),
        )
