"""Quality gate result type."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class QualityGateResult:
    """Outcome of one gate invocation. Never mutated after creation."""

    gate: str
    passed: bool
    score: float
    issues: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def __post_init__(self) -> None:
        object.__setattr__(self, "score", max(0.0, min(100.0, float(self.score))))
        object.__setattr__(self, "issues", tuple(self.issues))
        object.__setattr__(self, "recommendations", tuple(self.recommendations))

    def to_dict(self) -> dict[str, Any]:
        return {
            "gate": self.gate,
            "passed": self.passed,
            "score": round(self.score, 2),
            "issues": list(self.issues),
            "recommendations": list(self.recommendations),
            "details": self.details,
            "timestamp": self.timestamp,
        }
