"""Tests for the YCSB/MongoDB workload behavior."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from hb_plugins.plugins.ycsb_mongodb.plugin import (
    PLUGIN,
    MongoDBSession,
    YcsbCommandBuilder,
    YcsbMongoDBConfig,
)
from hb_runner.engine.lifecycle import LifecycleState
from hb_runner.engine.stop_token import StopToken
from tests.helpers.fakes import FakeProcessHost, RecordingTelemetry, build_lifecycle

pytestmark = [pytest.mark.unit, pytest.mark.unit_plugins]

LOAD_REPORT = """\
[OVERALL], RunTime(ms), 5000
[OVERALL], Throughput(ops/sec), 2000.0
[INSERT], Operations, 10000
[INSERT], AverageLatency(us), 480.5
"""

RUN_REPORT = """\
[OVERALL], RunTime(ms), 7000
[OVERALL], Throughput(ops/sec), 1428.57
[READ], Operations, 5000
[READ], AverageLatency(us), 300.0
[UPDATE], Operations, 5000
[UPDATE], AverageLatency(us), 510.0
"""


@pytest.fixture
def packages(tmp_path):
    root = tmp_path / "packages"
    for name in ("javadevelopmentkit", "mongodb", "ycsb"):
        (root / name).mkdir(parents=True)
    return root


def _host(run_output=(0, RUN_REPORT, "")):
    return FakeProcessHost(outputs={"ycsb load": (0, LOAD_REPORT, ""), "ycsb run": run_output})


class TestCommandBuilder:
    def _builder(self, tmp_path):
        config = YcsbMongoDBConfig(thread_count=8, record_count=100, operation_count=50)
        session = MongoDBSession(
            mongod=Path("/pkg/mongodb/bin/mongod"),
            mongodb_home=Path("/pkg/mongodb"),
            ycsb=Path("/pkg/ycsb/ycsb-0.5.0/bin/ycsb"),
            ycsb_home=Path("/pkg/ycsb/ycsb-0.5.0"),
            java_home=Path("/pkg/jdk"),
            db_path=Path("/tmp/mongodb"),
            log_path=Path("/tmp/mongod.log"),
        )
        return YcsbCommandBuilder(config, session)

    def test_phase_arguments(self, tmp_path):
        builder = self._builder(tmp_path)

        load = builder.phase("load")
        run = builder.phase("run")

        assert load.argument_string == (
            "load mongodb -s -P /pkg/ycsb/ycsb-0.5.0/workloads/workloada -p recordcount=100 -threads 8"
        )
        assert run.argument_string == (
            "run mongodb -s -P /pkg/ycsb/ycsb-0.5.0/workloads/workloada "
            "-p operationcount=50 -p recordcount=100 -threads 8"
        )
        assert load.elevated and load.working_dir == Path("/pkg/ycsb/ycsb-0.5.0")

    def test_service_commands(self, tmp_path):
        builder = self._builder(tmp_path)
        assert builder.start_service().argv == [
            "/pkg/mongodb/bin/mongod", "--fork", "--dbpath", "/tmp/mongodb", "--logpath", "/tmp/mongod.log",
        ]
        assert builder.shutdown_service().argv == [
            "/pkg/mongodb/bin/mongod", "--dbpath", "/tmp/mongodb", "--shutdown",
        ]
        assert builder.remove_artifacts().argv == ["rm", "-rf", "/tmp/mongodb", "/tmp/mongod.log"]


class TestYcsbMongoDBBehavior:
    def test_full_run(self, tmp_path, packages):
        host = _host()
        telemetry = RecordingTelemetry()
        sleep = MagicMock()
        lifecycle = build_lifecycle(PLUGIN, tmp_path, host=host, telemetry=telemetry, sleep=sleep)

        outcome = lifecycle.run()

        assert outcome.succeeded, outcome.error
        assert host.commands == ["chmod", "mkdir", "mongod", "ycsb", "ycsb", "mongod", "rm"]
        assert host.environments[0]["JAVA_HOME"] == str(packages / "javadevelopmentkit")
        assert [entry["category"] for entry in telemetry.metric_sets] == ["load", "run"]
        assert telemetry.metric_sets[0]["tool_name"] == "YcsbMongoDB"
        assert telemetry.metric_sets[1]["context"]["phase"] == "run"
        assert "operationcount=1000000" in telemetry.metric_sets[1]["context"]["arguments"]
        assert len(outcome.metrics) == 4 + 6
        sleep.assert_called_once_with(60.0)

    def test_parse_failure_shuts_down_once(self, tmp_path, packages):
        host = _host(run_output=(0, "Exception in thread main: connection refused\n", ""))
        lifecycle = build_lifecycle(PLUGIN, tmp_path, host=host)

        outcome = lifecycle.run()

        assert outcome.state is LifecycleState.FAILED
        assert outcome.error["error_type"] == "ResultsParsingError"
        assert host.commands.count("mongod") == 2
        assert host.commands[-2:] == ["mongod", "rm"]

    def test_refused_shutdown_keeps_parse_error(self, tmp_path, packages):
        host = FakeProcessHost(
            outputs={
                "ycsb load": (0, LOAD_REPORT, ""),
                "ycsb run": (0, "garbage\n", ""),
                "mongod --dbpath": (1, "", "shutdown refused"),
            }
        )
        sleep = MagicMock()
        lifecycle = build_lifecycle(PLUGIN, tmp_path, host=host, sleep=sleep)

        outcome = lifecycle.run()

        assert outcome.error["error_type"] == "ResultsParsingError"
        assert host.commands[-2:] == ["mongod", "rm"]
        assert host.commands.count("mongod") == 2
        sleep.assert_called_once_with(60.0)
        failure = outcome.teardown_failures[0]
        assert failure["action"] == "mongod shutdown"
        assert failure["error_context"]["stderr"] == "shutdown refused"

    def test_failed_artifact_removal_still_settles(self, tmp_path, packages):
        host = FakeProcessHost(
            outputs={
                "ycsb load": (0, LOAD_REPORT, ""),
                "ycsb run": (0, RUN_REPORT, ""),
                "rm": (1, "", "Device or resource busy"),
            }
        )
        sleep = MagicMock()

        outcome = build_lifecycle(PLUGIN, tmp_path, host=host, sleep=sleep).run()

        assert outcome.error["error_type"] == "ProcessExecutionError"
        assert outcome.error["error_context"]["command"] == "rm"
        assert len(outcome.metrics) == 10
        assert host.commands.count("rm") == 1
        sleep.assert_called_once_with(60.0)

    def test_cancel_during_run_still_shuts_down(self, tmp_path, packages):
        token = StopToken(enable_signals=False)
        host = FakeProcessHost(outputs={"ycsb load": (0, LOAD_REPORT, "")}, hang={"ycsb run"})
        host.on_wait = lambda handle: (
            token.request_stop() if handle.invocation.arguments[:1] == ("run",) else None
        )
        lifecycle = build_lifecycle(PLUGIN, tmp_path, host=host, stop_token=token)

        outcome = lifecycle.run()

        assert outcome.cancelled
        assert host.killed[0] == "ycsb"
        shutdown = [inv for inv in host.started if inv.arguments[-1:] == ("--shutdown",)]
        assert len(shutdown) == 1
        assert host.commands[-1] == "rm"

    def test_service_not_started_skips_shutdown(self, tmp_path, packages):
        host = FakeProcessHost(outputs={"mongod": (48, "", "Address already in use")})
        lifecycle = build_lifecycle(PLUGIN, tmp_path, host=host)

        outcome = lifecycle.run()

        assert outcome.error["error_context"]["stderr"] == "Address already in use"
        assert host.commands == ["chmod", "mkdir", "mongod"]

    def test_scratch_disk_for_data(self, tmp_path, packages):
        host = _host()
        lifecycle = build_lifecycle(
            PLUGIN, tmp_path, host=host, parameters={"use_scratch_disk": True, "shutdown_settle_seconds": 0}
        )

        assert lifecycle.run().succeeded
        assert lifecycle.context.session.db_path == tmp_path / "data" / "mongodb"
        mkdir = host.started[1]
        assert mkdir.arguments == ("-p", str(tmp_path / "data" / "mongodb"))

    def test_missing_package(self, tmp_path):
        outcome = build_lifecycle(PLUGIN, tmp_path).run()
        assert outcome.error["error_reason"] == "dependency_missing"


def test_required_packages_follow_config():
    config = YcsbMongoDBConfig(jdk_package="openjdk17")
    assert PLUGIN.required_packages(config) == ["openjdk17", "mongodb", "ycsb"]
