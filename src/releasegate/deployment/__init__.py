"""Deployment approval."""

from __future__ import annotations

from .gate import (
    DeploymentAttempt,
    DeploymentGateSystem,
    DeploymentValidationResult,
    GateResults,
    blocking_reason,
    generate_deployment_id,
)

__all__ = [
    "DeploymentGateSystem",
    "DeploymentValidationResult",
    "DeploymentAttempt",
    "GateResults",
    "blocking_reason",
    "generate_deployment_id",
]
