"""Configuration loading for releasegate.

Precedence (lowest to highest): built-in defaults, user config
(~/.config/releasegate/config.toml), local ./releasegate.toml, then an explicit
path (argument or RELEASEGATE_CONFIG_PATH).
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from .exceptions import ConfigError


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _expand_path(path: str | Path) -> Path:
    return Path(path).expanduser().resolve()


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _known_kwargs(cls: type, data: dict[str, Any]) -> dict[str, Any]:
    known_fields = set(cls.__dataclass_fields__.keys())
    return {k: v for k, v in data.items() if k in known_fields}


@dataclass
class DeploymentGateConfig:
    """Thresholds and policy for the deployment approval decision."""

    evidence_threshold: float = 85.0
    functionality_threshold: float = 95.0
    health_threshold: float = 80.0
    require_all_gates_passing: bool = True
    block_on_critical_failures: bool = True
    evidence_validation_enabled: bool = True
    validation_timeout_s: float = 60.0
    health_wait_s: float = 2.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeploymentGateConfig:
        """Create from dictionary, using defaults for missing keys."""
        return cls(**_known_kwargs(cls, data))


@dataclass
class MonitoringConfig:
    """Health monitoring cadence and bounds."""

    interval_s: float = 10.0
    probe_timeout_s: float = 10.0
    history_size: int = 100

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MonitoringConfig:
        return cls(**_known_kwargs(cls, data))


@dataclass
class EvidenceConfig:
    """Where evidence comes from and where collected packages are kept."""

    manifest: Path | None = None
    storage_dir: Path | None = None
    task_timeout_s: float = 30.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EvidenceConfig:
        kwargs = _known_kwargs(cls, data)
        for key in ("manifest", "storage_dir"):
            if kwargs.get(key):
                kwargs[key] = _expand_path(kwargs[key])
        return cls(**kwargs)


@dataclass
class TargetConfig:
    """The running application the probes exercise."""

    base_url: str = "http://localhost:3000"
    api_health_path: str = "/api/health"
    navigation_paths: list[str] = field(default_factory=lambda: ["/"])
    generation_path: str | None = None
    form_path: str | None = None
    request_timeout_s: float = 5.0

    def url(self, path: str) -> str:
        return self.base_url.rstrip("/") + "/" + path.lstrip("/")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TargetConfig:
        return cls(**_known_kwargs(cls, data))


@dataclass
class AlertConfig:
    """Alert routing storage and external channel settings."""

    history_size: int = 1000
    storage_path: Path | None = None
    webhook_url: str | None = None
    slack_webhook_url: str | None = None
    slack_channel: str | None = None
    smtp_host: str | None = None
    smtp_port: int | None = None
    smtp_user: str | None = None
    smtp_password: str | None = None
    from_email: str | None = None
    to_emails: list[str] = field(default_factory=list)
    desktop_sound: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AlertConfig:
        kwargs = _known_kwargs(cls, data)
        if kwargs.get("storage_path"):
            kwargs["storage_path"] = _expand_path(kwargs["storage_path"])
        return cls(**kwargs)


@dataclass
class ReleaseGateConfig:
    """Complete typed configuration."""

    deployment: DeploymentGateConfig = field(default_factory=DeploymentGateConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    evidence: EvidenceConfig = field(default_factory=EvidenceConfig)
    target: TargetConfig = field(default_factory=TargetConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReleaseGateConfig:
        return cls(
            deployment=DeploymentGateConfig.from_dict(data.get("deployment", {})),
            monitoring=MonitoringConfig.from_dict(data.get("monitoring", {})),
            evidence=EvidenceConfig.from_dict(data.get("evidence", {})),
            target=TargetConfig.from_dict(data.get("target", {})),
            alerts=AlertConfig.from_dict(data.get("alerts", {})),
        )


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}", {"path": str(path)}) from e
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}", {"path": str(path)}) from e


def load_config(config_path: Path | None = None, merge_user: bool = True) -> dict[str, Any]:
    """Load raw configuration data with precedence applied."""
    env_config = os.environ.get("RELEASEGATE_CONFIG_PATH")
    if config_path is None and env_config:
        config_path = Path(env_config).expanduser()

    config_data: dict[str, Any] = {}

    if merge_user and not _parse_bool(os.environ.get("RELEASEGATE_IGNORE_USER_CONFIG")):
        user_path = Path.home() / ".config" / "releasegate" / "config.toml"
        if user_path.exists():
            config_data = _deep_merge(config_data, _read_toml(user_path))

    local_path = Path("releasegate.toml")
    if local_path.exists():
        config_data = _deep_merge(config_data, _read_toml(local_path))

    if config_path is not None:
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}", {"path": str(config_path)})
        config_data = _deep_merge(config_data, _read_toml(config_path))

    return config_data


def load_config_model(config_path: Path | None = None, merge_user: bool = True) -> ReleaseGateConfig:
    """Load configuration and return a typed model."""
    return ReleaseGateConfig.from_dict(load_config(config_path=config_path, merge_user=merge_user))
