from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Type

import yaml
from pydantic import BaseModel, Field, ValidationError

from hb_common.errors import ConfigurationError
from hb_runner.engine.stop_token import StopToken
from hb_runner.models.workload import WorkloadDescriptor
from hb_runner.provisioning.filters import DEFAULT_DISK_FILTER
from hb_runner.provisioning.platform import PlatformInfo, require_platform
from hb_runner.sampling import PROFILE_TOOL_NAME, SystemSampler

if TYPE_CHECKING:
    from hb_runner.engine.context import WorkloadContext

BackgroundTask = Callable[[StopToken], None]


def profiling_task(context: "WorkloadContext") -> BackgroundTask:
    """Sample host counters until stopped, then emit a SystemProfile metric set."""
    sampler = SystemSampler(context.settings.profiling_interval_seconds)

    def run(token: StopToken) -> None:
        sampler.run(token)
        metrics = sampler.to_metrics()
        if metrics and sampler.start_time and sampler.end_time:
            context.emit_metrics(
                PROFILE_TOOL_NAME,
                sampler.start_time,
                sampler.end_time,
                metrics,
                category="Profiling",
            )

    return run


class BaseWorkloadConfig(BaseModel):
    """Base model for common workload configuration fields."""

    disk_filter: str = Field(
        default=DEFAULT_DISK_FILTER,
        description="Disk filter expression selecting the scratch disk",
    )
    profiling: bool = Field(
        default=False,
        description="Sample system counters in the background while executing",
    )
    tags: List[str] = Field(
        default_factory=list,
        description="Tags associated with the workload",
    )

    model_config = {
        "extra": "ignore",
    }


class WorkloadBehavior(ABC):
    """
    Capability set plugged into the lifecycle driver for one benchmark family.

    The driver owns sequencing, retries, cancellation and teardown. A
    behavior owns only its commands, its configuration and its parsing:
    1. Configuration (schema)
    2. Initialize / Execute / ExtraTeardown hooks
    3. Optional background task run concurrently with Execute
    """

    supported_systems: tuple[str, ...] = ("Linux",)
    supported_architectures: Optional[tuple[str, ...]] = None
    supported_distros: Optional[tuple[str, ...]] = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for the workload (e.g., 'ycsb_mongodb')."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description."""

    @property
    @abstractmethod
    def config_cls(self) -> Type[BaseWorkloadConfig]:
        """The Pydantic model used for configuration."""

    def check_platform(self, info: PlatformInfo) -> None:
        """Raise PlatformError when the host cannot run this workload."""
        require_platform(
            info,
            systems=self.supported_systems,
            architectures=self.supported_architectures,
            distros=self.supported_distros,
        )

    def required_packages(self, config: BaseWorkloadConfig) -> List[str]:
        """Packages resolved before ``initialize``; results land in ``context.packages``."""
        return []

    @abstractmethod
    def initialize(self, context: "WorkloadContext") -> None:
        """Prepare host resources. Expensive one-time work goes through ``context.run_once``."""

    @abstractmethod
    def execute(self, context: "WorkloadContext") -> None:
        """Run the benchmark and emit its metrics."""

    def extra_teardown(self, context: "WorkloadContext") -> None:
        """Workload-defined shutdown; invoked on every exit path, at most once."""

    def background_task(self, context: "WorkloadContext") -> Optional[BackgroundTask]:
        """Return a callable run on a thread during ``execute``, or None.

        The default samples system counters when ``profiling`` is enabled.
        """
        if not getattr(context.config, "profiling", False):
            return None
        return profiling_task(context)

    def load_config_from_file(self, config_file_path: Path) -> Dict[str, Any]:
        """
        Load the raw configuration for this workload from a YAML file.

        The 'common' section is merged with the 'workloads.<name>' section;
        workload-specific settings override common ones.

        Raises:
            ConfigurationError: If the file is missing or not valid YAML.
        """
        if not config_file_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {config_file_path}",
                context={"path": config_file_path},
            )

        try:
            with open(config_file_path, "r") as f:
                full_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(
                f"Invalid YAML in {config_file_path}",
                context={"path": config_file_path},
                cause=exc,
            ) from exc

        common_data = full_data.get("common", {}) or {}
        workload_data = (full_data.get("workloads", {}) or {}).get(self.name, {}) or {}
        return {**common_data, **workload_data}

    def build_config(
        self,
        descriptor: WorkloadDescriptor,
        config_file_path: Optional[Path] = None,
    ) -> BaseWorkloadConfig:
        """
        Validate the run configuration.

        Descriptor parameters override file values; descriptor tags are
        appended to configured tags.
        """
        data: Dict[str, Any] = {}
        if config_file_path is not None:
            data.update(self.load_config_from_file(config_file_path))
        data.update(descriptor.parameters)
        if descriptor.tags:
            data["tags"] = [*data.get("tags", []), *descriptor.tags]
        try:
            return self.config_cls(**data)
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid configuration for workload '{self.name}'",
                context={"workload": self.name, "errors": exc.errors(include_url=False)},
                cause=exc,
            ) from exc


class SimpleWorkloadBehavior(WorkloadBehavior):
    """Lightweight behavior base that relies on class attributes."""

    NAME: str = ""
    DESCRIPTION: str = ""
    CONFIG_CLS: Type[BaseWorkloadConfig] = BaseWorkloadConfig
    REQUIRED_PACKAGES: List[str] = []

    @property
    def name(self) -> str:
        if not self.NAME:
            raise NotImplementedError("SimpleWorkloadBehavior.NAME must be set")
        return self.NAME

    @property
    def description(self) -> str:
        return self.DESCRIPTION

    @property
    def config_cls(self) -> Type[BaseWorkloadConfig]:
        if not self.CONFIG_CLS:
            raise NotImplementedError("SimpleWorkloadBehavior.CONFIG_CLS must be set")
        return self.CONFIG_CLS

    def required_packages(self, config: BaseWorkloadConfig) -> List[str]:
        return list(self.REQUIRED_PACKAGES)
