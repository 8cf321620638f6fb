"""Evidence providers: where raw evidence comes from.

The collector never captures evidence itself; a provider supplies it. CI jobs
typically write a JSON manifest that ``JsonEvidenceProvider`` reads.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from releasegate.logging_config import get_logger

from .models import (
    BrowserCompatibilityReport,
    EvidencePackage,
    PerformanceMetrics,
    Screenshot,
    TestResult,
    UserJourneyEvidence,
)

logger = get_logger(__name__)


class EvidenceProvider(ABC):
    """Supplies the five kinds of raw evidence."""

    @abstractmethod
    async def capture_screenshots(self) -> list[Screenshot]:
        ...

    @abstractmethod
    async def measure_performance(self) -> Optional[PerformanceMetrics]:
        ...

    @abstractmethod
    async def run_functional_tests(self) -> list[TestResult]:
        ...

    @abstractmethod
    async def replay_user_journey(self) -> list[UserJourneyEvidence]:
        ...

    @abstractmethod
    async def check_browser_compatibility(self) -> list[BrowserCompatibilityReport]:
        ...


class StaticEvidenceProvider(EvidenceProvider):
    """Return the sections of a fixed package."""

    def __init__(self, package: EvidencePackage):
        self.package = package

    async def capture_screenshots(self) -> list[Screenshot]:
        return list(self.package.screenshots)

    async def measure_performance(self) -> Optional[PerformanceMetrics]:
        return self.package.performance_metrics

    async def run_functional_tests(self) -> list[TestResult]:
        return list(self.package.test_results)

    async def replay_user_journey(self) -> list[UserJourneyEvidence]:
        return list(self.package.user_journey_proof)

    async def check_browser_compatibility(self) -> list[BrowserCompatibilityReport]:
        return list(self.package.browser_compatibility)


class JsonEvidenceProvider(EvidenceProvider):
    """Read evidence from a JSON manifest written by a CI job.

    The manifest is re-read on every call so each collection sees the latest
    evidence. A missing section yields an empty result.

    Manifest layout::

        {
          "screenshots": [{"filename", "resolution": {"width", "height"}, "quality", ...}],
          "performance_metrics": {"load_time_ms", "lcp_ms", "fid_ms", "cls", ...},
          "test_results": [{"test_name", "status", "duration_ms", "errors", ...}],
          "user_journey_proof": [{"step_name", "success", "details", ...}],
          "browser_compatibility": [{"browser", "version", "os", "tests", ...}]
        }
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            logger.warning(f"Evidence manifest not found: {self.path}")
            return {}
        with open(self.path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Evidence manifest must be a JSON object: {self.path}")
        return data

    async def _section(self, key: str) -> Any:
        data = await asyncio.to_thread(self._read)
        return data.get(key)

    async def capture_screenshots(self) -> list[Screenshot]:
        return [Screenshot.from_dict(s) for s in await self._section("screenshots") or []]

    async def measure_performance(self) -> Optional[PerformanceMetrics]:
        metrics = await self._section("performance_metrics")
        return PerformanceMetrics.from_dict(metrics) if metrics else None

    async def run_functional_tests(self) -> list[TestResult]:
        return [TestResult.from_dict(t) for t in await self._section("test_results") or []]

    async def replay_user_journey(self) -> list[UserJourneyEvidence]:
        return [
            UserJourneyEvidence.from_dict(j)
            for j in await self._section("user_journey_proof") or []
        ]

    async def check_browser_compatibility(self) -> list[BrowserCompatibilityReport]:
        return [
            BrowserCompatibilityReport.from_dict(b)
            for b in await self._section("browser_compatibility") or []
        ]
