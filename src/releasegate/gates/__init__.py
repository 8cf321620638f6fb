"""Quality gates: evidence scoring and functional probing."""

from __future__ import annotations

from .evidence_gate import CATEGORY_WEIGHTS, EvidenceQualityGate, EvidenceThresholds
from .functionality_gate import FunctionalityQualityGate, FunctionalProbe, FunctionalProbeResult
from .probes import FunctionalProbeSuite, default_functional_probes
from .results import QualityGateResult

__all__ = [
    "QualityGateResult",
    "EvidenceQualityGate",
    "EvidenceThresholds",
    "CATEGORY_WEIGHTS",
    "FunctionalityQualityGate",
    "FunctionalProbe",
    "FunctionalProbeResult",
    "FunctionalProbeSuite",
    "default_functional_probes",
]
