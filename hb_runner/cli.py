"""
Command-line interface for hostbench.

Exposes commands to list workloads, inspect host disks and run one workload
through the lifecycle engine.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from hb_common.errors import HBError
from hb_common.logging import configure_logging
from hb_plugins.registry import WorkloadRegistry
from hb_runner.engine.lifecycle import LifecycleOutcome, WorkloadLifecycle
from hb_runner.models.disks import Disk
from hb_runner.models.workload import WorkloadDescriptor
from hb_runner.provisioning.disks import LsblkDiskEnumerator
from hb_runner.provisioning.filters import enforce_data_disks, filter_disks
from hb_runner.settings import EngineSettings

EXIT_FAILED = 1
EXIT_CANCELLED = 130

console = Console()
app = typer.Typer(help="Run host benchmarks through the hostbench lifecycle engine.", no_args_is_help=True)


@app.callback()
def entry(
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging."),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Log level name."),
    json_logs: Optional[bool] = typer.Option(
        None, "--json-logs/--console-logs", help="Render logs as JSON lines."
    ),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Also write logs here."),
) -> None:
    """Configure logging before any command runs."""
    configure_logging(level=log_level, debug=debug, json=json_logs, log_file=log_file, force=True)


def parse_params(values: List[str]) -> Dict[str, Any]:
    """Turn ``key=value`` pairs into typed parameters (values are read as YAML scalars)."""
    params: Dict[str, Any] = {}
    for item in values:
        key, sep, raw = item.partition("=")
        key = key.strip()
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got '{item}'", param_hint="--param")
        if key in params:
            raise typer.BadParameter(f"Parameter '{key}' given more than once", param_hint="--param")
        try:
            params[key] = yaml.safe_load(raw) if raw.strip() else ""
        except yaml.YAMLError:
            params[key] = raw
    return params


def _format_bytes(size: int) -> str:
    value = float(size)
    for unit in ("B", "KiB", "MiB", "GiB", "TiB"):
        if value < 1024 or unit == "TiB":
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


def build_disk_table(disks: List[Disk], selected: Optional[List[Disk]] = None) -> Table:
    table = Table(title="Host Disks")
    table.add_column("Index", justify="right")
    table.add_column("Device")
    table.add_column("Capacity", justify="right")
    table.add_column("OS disk")
    table.add_column("Mount paths")
    if selected is not None:
        table.add_column("Matches filter")
    chosen = {disk.index for disk in selected or []}
    for disk in disks:
        row = [
            str(disk.index),
            disk.device_path or "-",
            _format_bytes(disk.capacity_bytes),
            "yes" if disk.is_os_disk else "no",
            ", ".join(disk.mount_paths) or "-",
        ]
        if selected is not None:
            row.append("yes" if disk.index in chosen else "")
        table.add_row(*row)
    return table


def build_outcome_table(outcome: LifecycleOutcome) -> Table:
    table = Table(title=f"{outcome.workload} / {outcome.scenario}: {outcome.state.value}")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_column("Unit")
    table.add_column("Relativity")
    for metric in outcome.metrics:
        table.add_row(metric.name, f"{metric.value:g}", metric.unit, metric.relativity.value)
    return table


@app.command("list")
def list_workloads() -> None:
    """List registered workloads."""
    registry = WorkloadRegistry()
    available = registry.available(load_entrypoints=True)
    if not available:
        console.print("[yellow]No workloads registered.[/yellow]")
        return
    table = Table(title="Available Workloads")
    table.add_column("Name")
    table.add_column("Description")
    table.add_column("Config")
    for name, behavior in sorted(available.items()):
        table.add_row(name, behavior.description, behavior.config_cls.__name__)
    console.print(table)


@app.command("disks")
def show_disks(
    filter_expression: Optional[str] = typer.Option(
        None, "--filter", "-f", help="Highlight disks matching this filter (OS disk excluded)."
    ),
) -> None:
    """Show host block devices as the provisioner sees them."""
    disks = LsblkDiskEnumerator().list_disks()
    if not disks:
        console.print("[red]No disks could be enumerated (is lsblk available?).[/red]")
        raise typer.Exit(EXIT_FAILED)
    selected = None
    if filter_expression is not None:
        try:
            selected = filter_disks(disks, enforce_data_disks(filter_expression))
        except HBError as exc:
            console.print(f"[red]{exc}[/red]")
            raise typer.Exit(EXIT_FAILED)
    console.print(build_disk_table(disks, selected))


@app.command("run")
def run_workload(
    workload: str = typer.Argument(..., help="Workload name (see `hb list`)."),
    scenario: str = typer.Option("default", "--scenario", "-s", help="Scenario name."),
    param: List[str] = typer.Option([], "--param", "-p", help="Workload parameter key=value."),
    tag: List[str] = typer.Option([], "--tag", "-t", help="Tag forwarded to telemetry."),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML workload config."),
    deadline: Optional[float] = typer.Option(None, "--deadline", help="Cancel after N seconds."),
    json_output: bool = typer.Option(False, "--json", help="Print the outcome as JSON."),
) -> None:
    """Run one workload: initialize, execute, tear down."""
    registry = WorkloadRegistry()
    try:
        behavior = registry.get(workload)
        descriptor = WorkloadDescriptor(
            workload=workload, scenario=scenario, parameters=parse_params(param), tags=tag
        )
    except HBError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(EXIT_FAILED)

    overrides: Dict[str, Any] = {}
    if deadline is not None:
        overrides["deadline_seconds"] = deadline
    settings = EngineSettings(**overrides)

    outcome = WorkloadLifecycle(
        behavior, descriptor, settings=settings, config_file=config
    ).run()

    if json_output:
        typer.echo(json.dumps(outcome.to_dict(), indent=2))
    else:
        console.print(build_outcome_table(outcome))
        if outcome.error:
            console.print(f"[red]{outcome.error['error_type']}: {outcome.error['error']}[/red]")
        for failure in outcome.teardown_failures:
            console.print(f"[yellow]Teardown: {failure['action']}: {failure['error']}[/yellow]")

    if outcome.cancelled:
        raise typer.Exit(EXIT_CANCELLED)
    if not outcome.succeeded:
        raise typer.Exit(EXIT_FAILED)


def main() -> None:
    """Console script entrypoint (Typer app)."""
    app()


if __name__ == "__main__":
    main()
