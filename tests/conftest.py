from __future__ import annotations

import asyncio
import sys
import tempfile
import time
from pathlib import Path
from typing import Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from releasegate.evidence.models import (  # noqa: E402
    BrowserCompatibilityReport,
    EvidencePackage,
    PerformanceMetrics,
    Screenshot,
    TestResult,
    UserJourneyEvidence,
)
from releasegate.exceptions import ChannelSendFailed  # noqa: E402
from releasegate.health.models import HealthCheckResult, HealthProbe  # noqa: E402
from releasegate.notifications.base import Alert, AlertChannel  # noqa: E402


class RecordingChannel(AlertChannel):
    """Alert channel that keeps every alert it is given."""

    def __init__(self, name: str = "recording", available: bool = True, fail: bool = False):
        self.name = name
        self.available = available
        self.fail = fail
        self.sent: list[Alert] = []
        self.sent_at: list[float] = []

    def is_available(self) -> bool:
        return self.available

    def send(self, alert: Alert) -> None:
        if self.fail:
            raise ChannelSendFailed(self.name, "boom")
        self.sent.append(alert)
        self.sent_at.append(time.monotonic())

    @property
    def types(self) -> list[str]:
        return [alert.type for alert in self.sent]


def build_probe(
    name: str,
    healthy: bool = True,
    critical: bool = False,
    delay: float = 0.0,
    error: Optional[Exception] = None,
) -> HealthProbe:
    async def check() -> HealthCheckResult:
        if delay:
            await asyncio.sleep(delay)
        if error is not None:
            raise error
        return HealthCheckResult(healthy=healthy, error=None if healthy else f"{name} unhealthy")

    return HealthProbe(name, check, critical=critical)


def build_package(**overrides) -> EvidencePackage:
    """An evidence package that passes every category unless overridden."""
    passing = tuple(TestResult(f"test {i}", "passed", 100.0) for i in range(20))
    fields = {
        "screenshots": (
            Screenshot("home.png", 1920, 1080, 0.95),
            Screenshot("form.png", 1440, 900, 0.9),
        ),
        "performance_metrics": PerformanceMetrics(
            load_time_ms=1200, lcp_ms=1800, fid_ms=40, cls=0.05, dom_content_loaded_ms=800
        ),
        "test_results": passing,
        "user_journey_proof": tuple(
            UserJourneyEvidence(step, True, f"{step}.png") for step in ("landing", "generate", "export")
        ),
        "browser_compatibility": tuple(
            BrowserCompatibilityReport(browser, "latest", "linux", tests=passing[:5])
            for browser in ("Chrome", "Firefox", "Safari", "Edge")
        ),
    }
    fields.update(overrides)
    return EvidencePackage(**fields)


@pytest.fixture
def temp_dir() -> Path:
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def recording_channel():
    """Factory for recording alert channels."""
    return RecordingChannel


@pytest.fixture
def make_probe():
    """Factory for scripted health probes."""
    return build_probe


@pytest.fixture
def make_package():
    """Factory for evidence packages; passes every category by default."""
    return build_package


@pytest.fixture
def evidence_package() -> EvidencePackage:
    return build_package()


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Keep user and local config files out of every test."""
    monkeypatch.setenv("RELEASEGATE_IGNORE_USER_CONFIG", "1")
    monkeypatch.delenv("RELEASEGATE_CONFIG_PATH", raising=False)
    monkeypatch.chdir(tmp_path)
