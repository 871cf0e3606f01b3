"""Tests for the structlog logging setup."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
import structlog

from hb_common.logging import (
    CONSOLE_HANDLER,
    FILE_HANDLER,
    LogOptions,
    bind_run_context,
    configure_logging,
)


pytestmark = [pytest.mark.unit, pytest.mark.unit_common]


@pytest.fixture
def restore_root_logger(monkeypatch):
    for name in ("HB_LOG_LEVEL", "HB_LOG_JSON", "HB_LOG_FILE"):
        monkeypatch.delenv(name, raising=False)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


def _json_lines(root: logging.Logger, path: Path) -> list[dict]:
    for handler in root.handlers:
        handler.flush()
    return [json.loads(line) for line in path.read_text().splitlines()]


def test_json_logs_are_written_to_file(tmp_path, restore_root_logger) -> None:
    log_file = tmp_path / "logs" / "hb.log"
    configure_logging(level="INFO", json=True, log_file=str(log_file), force=True)

    logging.getLogger("hostbench.test").info("mounted %s", "/dev/sdb")
    structlog.get_logger("hostbench.test").info("selected", disk=1)

    lines = _json_lines(restore_root_logger, log_file)
    assert lines[0]["event"] == "mounted /dev/sdb"
    assert lines[0]["level"] == "info"
    assert lines[0]["logger"] == "hostbench.test"
    assert lines[1]["event"] == "selected"
    assert lines[1]["disk"] == 1


def test_run_context_is_attached_while_bound(tmp_path, restore_root_logger) -> None:
    log_file = tmp_path / "hb.log"
    configure_logging(json=True, log_file=log_file, force=True)
    log = logging.getLogger("hb_runner.engine.lifecycle")

    with bind_run_context(workload="ycsb_mongodb", scenario="default", host=None):
        log.info("executing")
    log.info("idle")

    inside, outside = _json_lines(restore_root_logger, log_file)
    assert inside["workload"] == "ycsb_mongodb"
    assert inside["scenario"] == "default"
    assert "host" not in inside
    assert "workload" not in outside


def test_env_level_and_debug_flag(restore_root_logger, monkeypatch) -> None:
    monkeypatch.setenv("HB_LOG_LEVEL", "ERROR")
    configure_logging(force=True)
    assert restore_root_logger.level == logging.ERROR

    configure_logging(debug=True, force=True)
    assert restore_root_logger.level == logging.DEBUG


def test_reconfigure_replaces_only_own_handlers(restore_root_logger) -> None:
    foreign = logging.NullHandler()
    restore_root_logger.addHandler(foreign)

    configure_logging(force=True)
    configure_logging(force=True)
    configure_logging()

    names = [h.get_name() for h in restore_root_logger.handlers]
    assert names.count(CONSOLE_HANDLER) == 1
    assert FILE_HANDLER not in names
    assert foreign in restore_root_logger.handlers


class TestLogOptions:
    def test_environment_fallbacks(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HB_LOG_LEVEL", "warning")
        monkeypatch.setenv("HB_LOG_JSON", "yes")
        monkeypatch.setenv("HB_LOG_FILE", str(tmp_path / "run.log"))

        options = LogOptions.resolve()

        assert options == LogOptions(logging.WARNING, True, tmp_path / "run.log")

    def test_arguments_win(self, monkeypatch):
        monkeypatch.setenv("HB_LOG_LEVEL", "ERROR")
        monkeypatch.setenv("HB_LOG_JSON", "1")

        options = LogOptions.resolve(level="10", json=False)

        assert options.level == logging.DEBUG
        assert options.json is False

    def test_unknown_level_defaults_to_info(self, monkeypatch):
        monkeypatch.delenv("HB_LOG_LEVEL", raising=False)
        assert LogOptions.resolve(level="chatty").level == logging.INFO
