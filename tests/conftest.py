from collections import defaultdict

import pytest
from rich.console import Console
from rich.table import Table

OUTCOMES = ("passed", "failed", "skipped")


def _declared_markers(config: pytest.Config) -> set[str]:
    """Package markers declared in pyproject.toml, e.g. ``unit_runner``."""
    names = set()
    for line in config.getini("markers"):
        name = line.split(":", 1)[0].split("(", 1)[0].strip()
        if name.startswith("unit_") or name == "slow":
            names.add(name)
    return names


def _counted(report: pytest.TestReport) -> bool:
    return report.when == "call" or (report.when == "setup" and report.outcome == "skipped")


def pytest_terminal_summary(terminalreporter, exitstatus, config):
    """Print per-package test statistics after the session."""
    _ = exitstatus
    markers = _declared_markers(config)
    stats = defaultdict(lambda: {"total": 0, "duration": 0.0, **{o: 0 for o in OUTCOMES}})

    for outcome in OUTCOMES:
        for report in terminalreporter.stats.get(outcome, []):
            if not _counted(report):
                continue
            for marker in markers.intersection(report.keywords):
                row = stats[marker]
                row[outcome] += 1
                row["total"] += 1
                row["duration"] += getattr(report, "duration", 0.0)

    if not stats:
        return

    table = Table(title="hostbench tests by marker", header_style="bold magenta")
    table.add_column("Marker", style="cyan")
    table.add_column("Total", justify="right")
    table.add_column("Passed", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_column("Pass rate", justify="right")
    table.add_column("Duration (s)", justify="right", style="blue")

    for marker, row in sorted(stats.items()):
        ran = row["passed"] + row["failed"]
        rate = f"{100.0 * row['passed'] / ran:.0f}%" if ran else "-"
        table.add_row(
            marker,
            str(row["total"]),
            str(row["passed"]),
            str(row["failed"]),
            str(row["skipped"]),
            rate,
            f"{row['duration']:.2f}",
        )

    console = Console()
    console.print()
    console.print(table)
