"""Engine-wide settings with environment fallbacks."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, MutableMapping, Optional

from pydantic import BaseModel, Field, model_validator

from hb_common.config.env import parse_float_env, parse_path_env

DEFAULT_HOME = Path("~/.hostbench").expanduser()


class EngineSettings(BaseModel):
    """Where the engine keeps state and packages, and how it paces itself."""

    state_dir: Path = Field(
        default=DEFAULT_HOME / "state",
        description="Directory holding persisted provisioning state",
    )
    packages_dir: Path = Field(
        default=DEFAULT_HOME / "packages",
        description="Root directory of resolvable packages",
    )
    telemetry_file: Optional[Path] = Field(
        default=None,
        description="Optional JSONL file receiving telemetry records",
    )
    stop_file: Optional[Path] = Field(
        default=None,
        description="Presence of this file cancels the run",
    )
    mount_root: Path = Field(
        default=Path("/mnt"),
        description="Parent directory for mount points created on data disks",
    )
    deadline_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Cancel the run after this many seconds",
    )
    poll_interval_seconds: float = Field(
        default=0.5,
        gt=0,
        description="How often running processes are checked for cancellation",
    )
    profiling_interval_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Sampling interval of the background system profiler",
    )

    model_config = {
        "extra": "ignore",
    }

    @model_validator(mode="before")
    @classmethod
    def _apply_env_fallbacks(cls, values: Any) -> Any:
        if not isinstance(values, MutableMapping):
            return values
        values = dict(values)
        _fallback_path(values, "state_dir", "HB_STATE_DIR")
        _fallback_path(values, "packages_dir", "HB_PACKAGES_DIR")
        _fallback_path(values, "telemetry_file", "HB_TELEMETRY_FILE")
        _fallback_path(values, "stop_file", "HB_STOP_FILE")
        _fallback_float(values, "deadline_seconds", "HB_DEADLINE_SECONDS")
        _fallback_float(values, "profiling_interval_seconds", "HB_PROFILING_INTERVAL")
        return values


def _fallback_path(values: MutableMapping[str, Any], key: str, env_var: str) -> None:
    if values.get(key) is None:
        env_value = parse_path_env(os.environ.get(env_var))
        if env_value is not None:
            values[key] = env_value


def _fallback_float(values: MutableMapping[str, Any], key: str, env_var: str) -> None:
    if values.get(key) is None:
        env_value = parse_float_env(os.environ.get(env_var))
        if env_value is not None:
            values[key] = env_value
