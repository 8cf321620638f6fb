"""Evidence collection: models, providers, storage and the collector."""

from __future__ import annotations

from .collector import EvidenceCollector
from .models import (
    BrowserCompatibilityReport,
    EvidencePackage,
    PerformanceMetrics,
    Screenshot,
    TestResult,
    UserJourneyEvidence,
)
from .provider import EvidenceProvider, JsonEvidenceProvider, StaticEvidenceProvider
from .storage import EvidenceStorage, FileEvidenceStorage, InMemoryEvidenceStorage

__all__ = [
    "EvidenceCollector",
    "EvidencePackage",
    "Screenshot",
    "PerformanceMetrics",
    "TestResult",
    "UserJourneyEvidence",
    "BrowserCompatibilityReport",
    "EvidenceProvider",
    "JsonEvidenceProvider",
    "StaticEvidenceProvider",
    "EvidenceStorage",
    "InMemoryEvidenceStorage",
    "FileEvidenceStorage",
]
