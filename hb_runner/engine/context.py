"""Request-scoped dependencies handed to workload behaviors."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional, Sequence

from hb_runner.engine.retry import INSTALLATION_RETRY, RetryPolicy, run_with_retry
from hb_runner.engine.stop_token import raise_if_stopped
from hb_runner.models.state import StateKey
from hb_runner.provisioning.state import run_once

if TYPE_CHECKING:
    from hb_runner.engine.cleanup import CleanupRegistry
    from hb_runner.engine.process import ProcessRunner
    from hb_runner.engine.stop_token import StopToken
    from hb_runner.models.metrics import Metric
    from hb_runner.models.process import ProcessInvocation, ProcessResult
    from hb_runner.models.workload import WorkloadDescriptor
    from hb_runner.provisioning.platform import PlatformInfo
    from hb_runner.provisioning.provisioner import ResourceProvisioner
    from hb_runner.provisioning.resolver import DependencyResolver
    from hb_runner.provisioning.state import StateStore
    from hb_runner.settings import EngineSettings
    from hb_runner.telemetry import TelemetrySink

logger = logging.getLogger(__name__)


@dataclass
class WorkloadContext:
    """Everything a behavior may touch during one run."""

    descriptor: WorkloadDescriptor
    config: Any
    runner: ProcessRunner
    provisioner: ResourceProvisioner
    state_store: StateStore
    resolver: DependencyResolver
    telemetry: TelemetrySink
    stop_token: StopToken
    cleanup: CleanupRegistry
    settings: EngineSettings
    platform: PlatformInfo
    retry_policy: RetryPolicy = INSTALLATION_RETRY
    sleep: Optional[Callable[[float], None]] = None
    session: Any = None
    packages: dict[str, Path] = field(default_factory=dict)
    metrics: list[Metric] = field(default_factory=list)

    def run(
        self,
        invocation: ProcessInvocation,
        accepted_exit_codes: Sequence[int] = (0,),
        cancellable: bool = True,
    ) -> ProcessResult:
        return self.runner.run(
            invocation, self.stop_token, accepted_exit_codes, cancellable=cancellable
        )

    def resolve_package(self, name: str) -> Path:
        """Resolve a package, retrying transient installation failures."""
        path = run_with_retry(
            lambda: self.resolver.resolve(name),
            self.retry_policy,
            stop_token=self.stop_token,
            description=f"resolving package '{name}'",
            sleep=self.sleep,
        )
        self.packages[name] = path
        return path

    def run_once(self, setup: Callable[[], None], state_kind: str = "provisioning") -> bool:
        key = StateKey(self.descriptor.workload_id, state_kind)
        return run_once(self.state_store, key, setup)

    def ensure_scratch_space(
        self, filter_expression: str | None, scratch_name: str = "scratch"
    ) -> Path:
        return self.provisioner.ensure_scratch_space(filter_expression, scratch_name)

    def raise_if_stopped(self, where: str = "") -> None:
        raise_if_stopped(self.stop_token, where=where)

    def pause(self, seconds: float) -> None:
        """Wait a settle interval that a stop request does not cut short."""
        if seconds <= 0:
            return
        (self.sleep or time.sleep)(seconds)

    def emit_metrics(
        self,
        tool_name: str,
        start: datetime,
        end: datetime,
        metrics: Sequence[Metric],
        category: str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        """Record metrics on the run and forward them to telemetry."""
        self.metrics.extend(metrics)
        self.telemetry.emit_metrics(
            tool_name,
            self.descriptor.scenario,
            start,
            end,
            list(metrics),
            category=category,
            tags=getattr(self.config, "tags", None) or self.descriptor.tags,
            context={"workload": self.descriptor.workload, **dict(context or {})},
        )
