"""Exceptions raised by releasegate.

Everything inherits from ``ReleaseGateError`` so callers can catch the whole
family with one ``except`` clause. Gate-internal failures are folded into
results rather than raised; only the conditions below escape as exceptions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from releasegate.deployment.gate import DeploymentValidationResult


class ReleaseGateError(Exception):
    """Base exception for all releasegate errors."""

    def __init__(self, message: str = "", details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = details or {}


class ConfigError(ReleaseGateError):
    """Raised when a configuration file cannot be read or parsed."""


class CollectionInProgress(ReleaseGateError):
    """Raised when evidence collection is requested while one is running."""

    def __init__(self, message: str = "Evidence collection already in progress") -> None:
        super().__init__(message)


class ValidationInProgress(ReleaseGateError):
    """Raised when a single-flight validation is already running.

    Not fatal: the caller should retry once the running validation finishes.
    """

    def __init__(self, message: str = "Deployment validation already in progress") -> None:
        super().__init__(message)


class ValidationTimeout(ReleaseGateError):
    """Raised when the concurrent gate run exceeds its deadline.

    The blocked failure result has already been recorded and alerted by the
    time this is raised; it is available as ``result``.
    """

    def __init__(
        self,
        timeout_s: float,
        result: DeploymentValidationResult | None = None,
    ) -> None:
        super().__init__(
            f"Quality gates validation timed out after {timeout_s:g}s",
            {"timeout_s": timeout_s},
        )
        self.timeout_s = timeout_s
        self.result = result


class ProbeTimeout(ReleaseGateError):
    """Raised inside a probe wrapper when a single probe exceeds its timeout."""

    def __init__(self, probe_name: str, timeout_s: float) -> None:
        super().__init__(
            f"{probe_name} timed out after {timeout_s:g}s",
            {"probe": probe_name, "timeout_s": timeout_s},
        )
        self.probe_name = probe_name
        self.timeout_s = timeout_s


class ProbeSkipped(ReleaseGateError):
    """Raised by a functional probe that has nothing to check on this target.

    Skipped probes are reported but do not count toward the pass rate.
    """

    def __init__(self, probe_name: str, reason: str) -> None:
        super().__init__(f"{probe_name} skipped: {reason}", {"probe": probe_name, "reason": reason})
        self.probe_name = probe_name
        self.reason = reason


class CriticalProbeFailure(ReleaseGateError):
    """A critical functional probe failed; further probing is stopped.

    Used as a marker in functionality results. The gate still returns a
    valid, failing ``QualityGateResult``.
    """

    def __init__(self, probe_name: str, reason: str = "") -> None:
        super().__init__(
            f"Critical probe failed: {probe_name}" + (f" - {reason}" if reason else ""),
            {"probe": probe_name, "reason": reason},
        )
        self.probe_name = probe_name
        self.reason = reason


class ChannelUnavailable(ReleaseGateError):
    """Raised when an alert channel is unknown or not configured."""

    def __init__(self, channel: str) -> None:
        super().__init__(f"Alert channel not available: {channel}", {"channel": channel})
        self.channel = channel


class ChannelSendFailed(ReleaseGateError):
    """Raised by an alert channel when delivery fails."""

    def __init__(self, channel: str, reason: str = "") -> None:
        super().__init__(
            f"Failed to send alert via {channel}" + (f": {reason}" if reason else ""),
            {"channel": channel, "reason": reason},
        )
        self.channel = channel
        self.reason = reason


class SystemInitializationError(ReleaseGateError):
    """Raised when the orchestrator cannot be constructed. Fatal."""


class SystemStatusCritical(ReleaseGateError):
    """Raised when a full quality validation is refused because health is critical."""

    def __init__(self, message: str = "System status critical - cannot perform validation") -> None:
        super().__init__(message)
