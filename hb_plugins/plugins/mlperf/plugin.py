"""
MLPerf inference workload behavior for hostbench.

Drives NVIDIA's closed-division MLPerf inference harness inside its docker
container: one-time data/model preparation gated by persisted state, then a
performance and an accuracy run per benchmark config, with system profiling
in the background.
"""

from __future__ import annotations

import getpass
import logging
import shlex
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import Field, field_validator

from hb_common.errors import ConfigurationError, ErrorReason, PlatformError, ResultsParsingError
from hb_runner.engine.context import WorkloadContext
from hb_runner.models.process import ProcessInvocation

from ...interface import BaseWorkloadConfig, SimpleWorkloadBehavior
from .parser import ACCURACY_SUMMARY, PERFORMANCE_SUMMARY, MLPerfResultParser

logger = logging.getLogger(__name__)

TOOL_NAME = "MLPerf"
SCRATCH_ENV = "MLPERF_SCRATCH_PATH"
DEFAULT_MLPERF_DISK_FILTER = "SizeGreaterThan:1000gb"
MAKEFILE_INTERACTIVE_FLAGS = "DOCKER_INTERACTIVE_FLAGS = -it"
MAKEFILE_DETACHED_FLAGS = "DOCKER_INTERACTIVE_FLAGS = -i -d"
SCRATCH_SUBDIRS = ("data", "models", "preprocessed_data")

BENCHMARK_SCENARIOS: Dict[str, str] = {
    "bert": "Offline,Server,SingleStream",
    "rnnt": "Offline,Server,SingleStream",
    "ssd-mobilenet": "Offline,MultiStream,SingleStream",
    "ssd-resnet34": "Offline,Server,SingleStream,MultiStream",
}

BENCHMARK_CONFIGS: Dict[str, List[str]] = {
    "bert": ["default", "high_accuracy", "triton", "high_accuracy_triton"],
    "rnnt": ["default"],
    "ssd-mobilenet": ["default", "triton"],
    "ssd-resnet34": ["default", "triton"],
}

CONTAINER_ARCHITECTURES = ("x86_64", "arm64")
TEST_MODES = ("PerformanceOnly", "AccuracyOnly")


class MLPerfConfig(BaseWorkloadConfig):
    """Configuration for the MLPerf inference workload."""

    disk_filter: str = Field(
        default=DEFAULT_MLPERF_DISK_FILTER,
        description="Disk filter for the scratch disk; the OS disk is always excluded",
    )
    profiling: bool = Field(default=True)
    username: str = Field(
        default_factory=getpass.getuser,
        description="User owning the MLPerf container",
    )
    package: str = Field(default="mlperf", description="MLPerf repository package name")
    gpu_config_dir: Optional[Path] = Field(
        default=None,
        description="Extra GPU system/config files copied into the harness",
    )
    benchmarks: List[str] = Field(
        default_factory=lambda: list(BENCHMARK_SCENARIOS),
        description="Benchmarks whose data and models are prepared during setup",
    )

    @field_validator("benchmarks")
    @classmethod
    def _known_benchmarks(cls, value: List[str]) -> List[str]:
        unknown = [name for name in value if name not in BENCHMARK_SCENARIOS]
        if unknown:
            raise ValueError(f"Unknown MLPerf benchmarks: {', '.join(unknown)}")
        return value

    @field_validator("username")
    @classmethod
    def _username_not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("username must be non-empty")
        return value.strip()


@dataclass
class MLPerfSession:
    nvidia_dir: Path
    scratch: Path
    container: str

    @property
    def output_dir(self) -> Path:
        return self.nvidia_dir / "build" / "logs"

    @property
    def export_scratch(self) -> str:
        return f"export {SCRATCH_ENV}={shlex.quote(str(self.scratch))}"


def container_name(username: str, architecture: str) -> str:
    if architecture not in CONTAINER_ARCHITECTURES:
        raise PlatformError(
            f"The container name is not defined for the CPU architecture '{architecture}'.",
            reason=ErrorReason.PLATFORM_NOT_SUPPORTED,
            context={"architecture": architecture, "supported": CONTAINER_ARCHITECTURES},
        )
    return f"mlperf-inference-{username}-{architecture}"


def run_args(benchmark: str, config_ver: str, test_mode: str) -> str:
    return (
        f"--benchmarks={benchmark} --scenarios={BENCHMARK_SCENARIOS[benchmark]} "
        f"--config_ver={config_ver} --test_mode={test_mode} --fast"
    )


class MLPerfCommandBuilder:
    """Argument lists for host-side setup and in-container make targets."""

    def __init__(self, config: MLPerfConfig, session: MLPerfSession):
        self.config = config
        self.session = session

    def add_docker_group(self) -> ProcessInvocation:
        return ProcessInvocation.of(
            "usermod", "-aG", "docker", self.config.username,
            working_dir=self.session.nvidia_dir,
            elevated=True,
        )

    def prebuild(self) -> ProcessInvocation:
        return ProcessInvocation.of(
            "sudo", "-n", "-u", self.config.username,
            "make", "prebuild", f"{SCRATCH_ENV}={self.session.scratch}",
            working_dir=self.session.nvidia_dir,
        )

    def docker_ps(self) -> ProcessInvocation:
        return ProcessInvocation.of(
            "docker", "ps", working_dir=self.session.nvidia_dir, elevated=True
        )

    def make(self, *target: str) -> ProcessInvocation:
        """``make <target>`` inside the container with the scratch path exported."""
        script = f"{self.session.export_scratch} && make {' '.join(target)}"
        return ProcessInvocation.of(
            "docker", "exec", "-u", self.config.username, self.session.container,
            "sudo", "bash", "-c", script,
            working_dir=self.session.nvidia_dir,
            elevated=True,
        )

    def run(self, benchmark: str, config_ver: str, test_mode: str) -> ProcessInvocation:
        return self.make("run", f"RUN_ARGS={shlex.quote(run_args(benchmark, config_ver, test_mode))}")


class MLPerfBehavior(SimpleWorkloadBehavior):
    """Behavior definition for MLPerf inference; the scenario names the benchmark."""

    NAME = "mlperf"
    DESCRIPTION = "MLPerf inference (NVIDIA harness) in docker"
    CONFIG_CLS = MLPerfConfig
    supported_architectures = CONTAINER_ARCHITECTURES
    supported_distros = ("ubuntu", "debian", "centos:7", "rhel:7", "sles", "suse")

    def required_packages(self, config: MLPerfConfig) -> List[str]:
        return [config.package]

    def initialize(self, context: WorkloadContext) -> None:
        config: MLPerfConfig = context.config
        benchmark = context.descriptor.scenario
        if benchmark not in BENCHMARK_SCENARIOS:
            raise ConfigurationError(
                f"Unknown MLPerf benchmark scenario '{benchmark}'",
                context={"scenario": benchmark, "supported": sorted(BENCHMARK_SCENARIOS)},
            )

        container = container_name(config.username, context.platform.architecture)
        scratch = context.ensure_scratch_space(config.disk_filter, "scratch")
        context.runner.set_environment(SCRATCH_ENV, str(scratch))
        session = MLPerfSession(
            nvidia_dir=context.packages[config.package] / "closed" / "NVIDIA",
            scratch=scratch,
            container=container,
        )
        context.session = session
        context.run_once(lambda: self._setup(context, session))

    def _setup(self, context: WorkloadContext, session: MLPerfSession) -> None:
        config: MLPerfConfig = context.config
        commands = MLPerfCommandBuilder(config, session)

        context.run(commands.add_docker_group())
        if config.gpu_config_dir is not None:
            copy_gpu_config_files(config.gpu_config_dir, session.nvidia_dir)
        patch_makefile(session.nvidia_dir / "Makefile")
        for name in SCRATCH_SUBDIRS:
            (session.scratch / name).mkdir(parents=True, exist_ok=True)

        context.run(commands.prebuild())
        context.run(commands.docker_ps())
        context.run(commands.make("clean"))
        context.run(commands.make("link_dirs"))
        for benchmark in config.benchmarks:
            for target in ("download_data", "download_model", "preprocess_data"):
                context.raise_if_stopped(f"{target} {benchmark}")
                context.run(commands.make(target, f"BENCHMARKS={benchmark}"))
        context.run(commands.make("build"))

    def execute(self, context: WorkloadContext) -> None:
        session: MLPerfSession = context.session
        benchmark = context.descriptor.scenario
        commands = MLPerfCommandBuilder(context.config, session)

        start = datetime.now(timezone.utc)
        for config_ver in BENCHMARK_CONFIGS[benchmark]:
            for test_mode in TEST_MODES:
                context.raise_if_stopped(f"{benchmark} {config_ver} {test_mode}")
                context.run(commands.run(benchmark, config_ver, test_mode))
        end = datetime.now(timezone.utc)

        self.collect_results(context, session.output_dir, start, end)

    def collect_results(
        self, context: WorkloadContext, output_dir: Path, start: datetime, end: datetime
    ) -> None:
        """Emit every summary under ``output_dir`` and delete it once emitted."""
        if not output_dir.is_dir():
            raise ResultsParsingError(
                f"MLPerf output directory {output_dir} does not exist",
                context={"output_dir": output_dir},
            )
        collected = 0
        for filename, accuracy_mode, category in (
            (ACCURACY_SUMMARY, True, "AccuracyMode"),
            (PERFORMANCE_SUMMARY, False, "PerformanceMode"),
        ):
            parser = MLPerfResultParser(accuracy_mode)
            for path in sorted(output_dir.rglob(filename)):
                metrics = parser.parse(path.read_text())
                context.emit_metrics(
                    TOOL_NAME,
                    start,
                    end,
                    metrics,
                    category=category,
                    context={"summary": str(path)},
                )
                path.unlink()
                collected += 1
        if not collected:
            raise ResultsParsingError(
                f"No MLPerf summaries were produced under {output_dir}",
                context={
                    "output_dir": output_dir,
                    "expected": [ACCURACY_SUMMARY, PERFORMANCE_SUMMARY],
                },
            )


def patch_makefile(makefile: Path) -> None:
    """Run the harness container detached instead of interactive."""
    text = makefile.read_text()
    if MAKEFILE_INTERACTIVE_FLAGS in text:
        makefile.write_text(text.replace(MAKEFILE_INTERACTIVE_FLAGS, MAKEFILE_DETACHED_FLAGS))
        logger.info("Patched docker flags in %s", makefile)


def copy_gpu_config_files(source: Path, nvidia_dir: Path) -> None:
    """
    Add GPU definitions the harness does not ship.

    Top-level files go to ``code/common/systems``; ``<benchmark>/<scenario>/__init__.py``
    files go to the matching ``configs`` directory.
    """
    if not source.is_dir():
        raise ConfigurationError(
            f"GPU config directory {source} does not exist", context={"path": source}
        )
    systems_dir = nvidia_dir / "code" / "common" / "systems"
    systems_dir.mkdir(parents=True, exist_ok=True)
    for item in sorted(source.iterdir()):
        if item.is_file():
            shutil.copy2(item, systems_dir / item.name)
    for init_file in sorted(source.glob("*/*/__init__.py")):
        scenario_dir = init_file.parent
        target = nvidia_dir / "configs" / scenario_dir.parent.name / scenario_dir.name
        target.mkdir(parents=True, exist_ok=True)
        shutil.copy2(init_file, target / "__init__.py")


PLUGIN = MLPerfBehavior()
