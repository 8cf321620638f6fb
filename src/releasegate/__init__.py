"""releasegate: quality gates and deployment approval."""

__version__ = "0.1.0"

from .config import ReleaseGateConfig, load_config, load_config_model
from .deployment import DeploymentGateSystem, DeploymentValidationResult
from .exceptions import ReleaseGateError
from .orchestrator import QualityGateOrchestrator, SystemState

__all__ = [
    "load_config",
    "load_config_model",
    "ReleaseGateConfig",
    "ReleaseGateError",
    "DeploymentGateSystem",
    "DeploymentValidationResult",
    "QualityGateOrchestrator",
    "SystemState",
]
