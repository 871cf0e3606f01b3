"""Tests for engine settings and their environment fallbacks."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from hb_runner.settings import EngineSettings

pytestmark = [pytest.mark.unit, pytest.mark.unit_runner]

_ENV_VARS = (
    "HB_STATE_DIR",
    "HB_PACKAGES_DIR",
    "HB_TELEMETRY_FILE",
    "HB_STOP_FILE",
    "HB_DEADLINE_SECONDS",
    "HB_PROFILING_INTERVAL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = EngineSettings()
    assert settings.state_dir.name == "state"
    assert settings.telemetry_file is None
    assert settings.deadline_seconds is None
    assert settings.mount_root == Path("/mnt")


def test_env_fallbacks(monkeypatch, tmp_path):
    monkeypatch.setenv("HB_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.setenv("HB_TELEMETRY_FILE", str(tmp_path / "t.jsonl"))
    monkeypatch.setenv("HB_DEADLINE_SECONDS", "90")
    monkeypatch.setenv("HB_PROFILING_INTERVAL", "not-a-number")

    settings = EngineSettings()

    assert settings.state_dir == tmp_path / "state"
    assert settings.telemetry_file == tmp_path / "t.jsonl"
    assert settings.deadline_seconds == 90.0
    assert settings.profiling_interval_seconds == 5.0


def test_explicit_values_win_over_env(monkeypatch, tmp_path):
    monkeypatch.setenv("HB_STATE_DIR", "/from/env")
    settings = EngineSettings(state_dir=tmp_path)
    assert settings.state_dir == tmp_path


def test_unknown_keys_ignored_and_bounds_checked():
    assert not hasattr(EngineSettings(legacy_option=1), "legacy_option")
    with pytest.raises(ValidationError):
        EngineSettings(deadline_seconds=0)
