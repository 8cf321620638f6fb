"""Command line interface for releasegate."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, NoReturn, Optional, TypeVar

import click

from releasegate.config import ReleaseGateConfig, load_config_model
from releasegate.deployment.gate import DeploymentValidationResult
from releasegate.exceptions import ReleaseGateError, ValidationTimeout
from releasegate.health.models import HealthStatus
from releasegate.logging_config import setup_logging
from releasegate.notifications.base import Alert, AlertSeverity, AlertType
from releasegate.notifications.router import AlertSystem
from releasegate.orchestrator import QualityGateOrchestrator

T = TypeVar("T")

EXIT_APPROVED = 0
EXIT_BLOCKED = 1
EXIT_ERROR = 2


def build_orchestrator(config: ReleaseGateConfig, start_monitoring: bool = True) -> QualityGateOrchestrator:
    """Create the orchestrator used by every command. Needs a running loop."""
    return QualityGateOrchestrator.from_config(config, start_monitoring=start_monitoring)


def _run(
    config: ReleaseGateConfig,
    action: Callable[[QualityGateOrchestrator], Awaitable[T]],
    start_monitoring: bool = True,
) -> T:
    async def runner() -> T:
        orchestrator = build_orchestrator(config, start_monitoring=start_monitoring)
        async with orchestrator:
            return await action(orchestrator)

    return asyncio.run(runner())


def _dump(data: Any) -> str:
    return json.dumps(data, indent=2, default=str)


def _fail(message: str) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    sys.exit(EXIT_ERROR)


def _config(ctx: click.Context) -> ReleaseGateConfig:
    try:
        return load_config_model(ctx.obj.get("config_path"))
    except ReleaseGateError as e:
        _fail(str(e))


def _echo_list(title: str, items: Iterable[str]) -> None:
    items = list(items)
    if not items:
        return
    click.echo(f"\n{title}:")
    for index, item in enumerate(items, 1):
        click.echo(f"  {index}. {item}")


def _echo_health(status: HealthStatus) -> None:
    click.echo(f"[{status.timestamp}] {status.overall.value.upper()} ({status.score}%)")
    for check in status.checks:
        mark = "✓" if check.healthy else "✗"
        line = f"  {mark} {check.name}"
        if check.error:
            line += f": {check.error}"
        click.echo(line)


def _echo_decision(result: DeploymentValidationResult) -> None:
    gates = result.gate_results
    click.echo("=" * 60)
    click.echo(f"Deployment {'APPROVED' if result.approved else 'BLOCKED'}")
    click.echo("=" * 60)
    if result.deployment_id:
        click.echo(f"ID: {result.deployment_id}")
    click.echo(f"Overall score: {result.overall_score}%")
    if gates.evidence is not None:
        click.echo(f"  Evidence: {'✓' if gates.evidence.passed else '✗'} ({gates.evidence.score:.1f}%)")
    if gates.functionality is not None:
        click.echo(
            f"  Functionality: {'✓' if gates.functionality.passed else '✗'} "
            f"({gates.functionality.score:.1f}%)"
        )
    if gates.health is not None:
        click.echo(f"  Health: {gates.health.overall.value} ({gates.health.score}%)")
    _echo_list("Critical issues", result.critical_issues)
    _echo_list("Warnings", result.warnings)
    _echo_list("Recommendations", result.recommendations)


@click.group("releasegate", help="Quality gates and deployment approval")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to a releasegate TOML config",
)
@click.option("-v", "--verbose", is_flag=True, help="Log at DEBUG level")
@click.option(
    "--log-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Also write plain and JSON log files here",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], verbose: bool, log_dir: Optional[Path]) -> None:
    """Quality gate orchestration."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    setup_logging(
        level=logging.DEBUG if verbose else logging.WARNING,
        log_dir=log_dir,
        enable_json=log_dir is not None,
        enable_rotation=log_dir is not None,
    )


@cli.command("validate", help="Decide whether the current build may be deployed")
@click.option("--json", "output_json", is_flag=True, help="Print the decision as JSON")
@click.option(
    "--output",
    type=click.Path(path_type=Path),
    default=None,
    help="Write the JSON decision to this file",
)
@click.pass_context
def validate_command(ctx: click.Context, output_json: bool, output: Optional[Path]) -> None:
    """Run the deployment gate.

    Exit codes: 0 approved, 1 blocked, 2 error.
    """
    config = _config(ctx)
    try:
        result = _run(config, lambda orchestrator: orchestrator.validate_for_deployment())
    except ValidationTimeout as e:
        if output is not None and e.result is not None:
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(_dump(e.result.to_dict()))
        _fail(str(e))
    except ReleaseGateError as e:
        _fail(str(e))

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(_dump(result.to_dict()))

    if output_json:
        click.echo(_dump(result.to_dict()))
    else:
        _echo_decision(result)
        if output is not None:
            click.echo(f"\nReport: {output}")

    sys.exit(EXIT_APPROVED if result.approved else EXIT_BLOCKED)


@cli.command("quality", help="Run every quality gate and print the full report")
@click.option("--json", "output_json", is_flag=True, help="Print the report as JSON")
@click.pass_context
def quality_command(ctx: click.Context, output_json: bool) -> None:
    config = _config(ctx)

    async def action(orchestrator: QualityGateOrchestrator):
        await orchestrator.health_monitor.run_health_check()
        return await orchestrator.perform_full_quality_validation()

    try:
        report = _run(config, action, start_monitoring=False)
    except ReleaseGateError as e:
        _fail(str(e))

    if output_json:
        click.echo(_dump(report.to_dict()))
        return

    click.echo(f"Quality validation {'PASSED' if report.passed else 'FAILED'} ({report.score}%)")
    click.echo(f"  Evidence: {report.evidence.score:.1f}%")
    click.echo(f"  Functionality: {report.functionality.score:.1f}%")
    if report.health is not None:
        click.echo(f"  Health: {report.health.overall.value} ({report.health.score}%)")
    _echo_list("Issues", [*report.evidence.issues, *report.functionality.issues])
    _echo_list("Recommendations", [*report.evidence.recommendations, *report.functionality.recommendations])


@cli.command("status", help="Run one health round and print the system status")
@click.option("--json", "output_json", is_flag=True, help="Print the status as JSON")
@click.pass_context
def status_command(ctx: click.Context, output_json: bool) -> None:
    config = _config(ctx)

    async def action(orchestrator: QualityGateOrchestrator):
        health = await orchestrator.health_monitor.run_health_check()
        return orchestrator.get_system_status(), health

    try:
        status, health = _run(config, action, start_monitoring=False)
    except ReleaseGateError as e:
        _fail(str(e))

    if output_json:
        click.echo(_dump({**status.to_dict(), "health": health.to_dict()}))
        return
    click.echo(f"System status: {status.overall_status.value}")
    _echo_health(health)


@cli.command("report", help="Print the merged system health report as JSON")
@click.pass_context
def report_command(ctx: click.Context) -> None:
    config = _config(ctx)

    async def action(orchestrator: QualityGateOrchestrator):
        await orchestrator.health_monitor.run_health_check()
        return orchestrator.get_system_health_report()

    try:
        report = _run(config, action, start_monitoring=False)
    except ReleaseGateError as e:
        _fail(str(e))
    click.echo(_dump(report))


@cli.command("monitor", help="Run health monitoring and print each round")
@click.option("--duration", type=float, default=60.0, show_default=True, help="Seconds to monitor")
@click.pass_context
def monitor_command(ctx: click.Context, duration: float) -> None:
    config = _config(ctx)

    async def action(orchestrator: QualityGateOrchestrator) -> int:
        monitor = orchestrator.health_monitor
        deadline = time.monotonic() + duration
        last_seen: Optional[str] = None
        rounds = 0
        while True:
            for status in monitor.get_health_history():
                if last_seen is not None and status.timestamp <= last_seen:
                    continue
                _echo_health(status)
                last_seen = status.timestamp
                rounds += 1
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return rounds
            await asyncio.sleep(min(0.5, remaining))

    try:
        rounds = _run(config, action)
    except ReleaseGateError as e:
        _fail(str(e))
    click.echo(f"Monitoring finished after {rounds} round(s)")


@cli.group("alerts", help="Alert routing commands")
def alerts_group() -> None:
    pass


@alerts_group.command("test", help="Send a test alert through the routing rules")
@click.option(
    "--severity",
    type=click.Choice([s.value for s in AlertSeverity]),
    default=AlertSeverity.LOW.value,
    show_default=True,
)
@click.option("--message", default="releasegate test alert", show_default=True)
@click.pass_context
def alerts_test_command(ctx: click.Context, severity: str, message: str) -> None:
    config = _config(ctx)
    alert_system = AlertSystem.from_config(config.alerts)
    alert = Alert(
        type=AlertType.TEST_ALERT,
        severity=AlertSeverity(severity),
        message=message,
        details={"source": "cli"},
    )
    entry = asyncio.run(alert_system.trigger_alert(alert))

    click.echo(f"Alert {entry.outcome.value} ({entry.response_time_ms:.0f}ms)")
    click.echo(f"  Channels: {', '.join(entry.channels) or '-'}")
    click.echo(f"  Delivered: {', '.join(entry.delivered) or '-'}")
    if not entry.success:
        sys.exit(EXIT_ERROR)


def main(argv: Iterable[str] | None = None) -> None:
    """Console script entry point."""
    cli.main(args=list(argv) if argv is not None else None, prog_name="releasegate", obj={})


if __name__ == "__main__":
    main()
