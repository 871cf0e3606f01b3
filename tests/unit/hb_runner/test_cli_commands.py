"""Tests for the hostbench command line."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import typer
from typer.testing import CliRunner

from hb_runner import cli
from hb_runner.engine.lifecycle import LifecycleOutcome, LifecycleState
from hb_runner.models.metrics import Metric
from tests.helpers.fakes import host_disks

pytestmark = [pytest.mark.unit, pytest.mark.unit_runner]

runner = CliRunner()


@pytest.fixture(autouse=True)
def _no_logging_setup(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", MagicMock())


def _outcome(state=LifecycleState.COMPLETED, error=None):
    now = datetime.now(timezone.utc)
    return LifecycleOutcome(
        workload="ycsb_mongodb",
        scenario="default",
        state=state,
        started_at=now,
        finished_at=now,
        metrics=[Metric("OVERALL_Throughput", 1234.5, "ops/sec")],
        error=error,
    )


class TestParseParams:
    def test_values_are_typed(self):
        assert cli.parse_params(["thread_count=32", "profiling=true", "username=bench", "empty="]) == {
            "thread_count": 32,
            "profiling": True,
            "username": "bench",
            "empty": "",
        }

    def test_duplicate_key_rejected(self):
        with pytest.raises(typer.BadParameter, match="more than once"):
            cli.parse_params(["a=1", "a=2"])

    def test_missing_separator_rejected(self):
        with pytest.raises(typer.BadParameter, match="Expected key=value"):
            cli.parse_params(["thread_count"])


def test_list_shows_builtin_workloads():
    result = runner.invoke(cli.app, ["list"])
    assert result.exit_code == 0, result.output
    assert "ycsb_mongodb" in result.output
    assert "mlperf" in result.output


def test_disks_marks_filter_matches(monkeypatch, tmp_path):
    enumerator = MagicMock()
    enumerator.list_disks.return_value = host_disks(tmp_path)
    monkeypatch.setattr(cli, "LsblkDiskEnumerator", lambda: enumerator)

    result = runner.invoke(cli.app, ["disks", "--filter", "SizeGreaterThan:1000gb"])

    assert result.exit_code == 0, result.output
    assert "sdb" in result.output
    assert "Matches" in result.output


def test_disks_without_lsblk(monkeypatch):
    enumerator = MagicMock()
    enumerator.list_disks.return_value = []
    monkeypatch.setattr(cli, "LsblkDiskEnumerator", lambda: enumerator)
    assert runner.invoke(cli.app, ["disks"]).exit_code == cli.EXIT_FAILED


def test_run_unknown_workload():
    result = runner.invoke(cli.app, ["run", "nope"])
    assert result.exit_code == cli.EXIT_FAILED
    assert "not found" in result.output


def test_run_prints_json_outcome(monkeypatch):
    lifecycle_cls = MagicMock()
    lifecycle_cls.return_value.run.return_value = _outcome()
    monkeypatch.setattr(cli, "WorkloadLifecycle", lifecycle_cls)

    result = runner.invoke(
        cli.app,
        ["run", "ycsb_mongodb", "-p", "thread_count=8", "-t", "ci", "--deadline", "600", "--json"],
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["state"] == "completed"
    behavior, descriptor = lifecycle_cls.call_args.args
    assert behavior.name == "ycsb_mongodb"
    assert descriptor.parameters == {"thread_count": 8}
    assert descriptor.tags == ["ci"]
    assert lifecycle_cls.call_args.kwargs["settings"].deadline_seconds == 600


@pytest.mark.parametrize(
    "state, code",
    [(LifecycleState.CANCELLED, cli.EXIT_CANCELLED), (LifecycleState.FAILED, cli.EXIT_FAILED)],
)
def test_run_exit_codes(monkeypatch, state, code):
    error = {"error_type": "StopRequested", "error": "stopped", "error_reason": "cancelled", "error_context": {}}
    lifecycle_cls = MagicMock()
    lifecycle_cls.return_value.run.return_value = _outcome(state, error)
    monkeypatch.setattr(cli, "WorkloadLifecycle", lifecycle_cls)

    result = runner.invoke(cli.app, ["run", "ycsb_mongodb"])

    assert result.exit_code == code
    assert "StopRequested" in result.output
