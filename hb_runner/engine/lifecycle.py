"""
Fixed-phase driver for one workload run.

``WorkloadLifecycle`` sequences Initialize, Execute and Teardown around a
pluggable ``WorkloadBehavior``. Teardown runs exactly once on every exit
path; teardown failures are recorded on the outcome and never replace the
error that ended the run.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from hb_common.errors import HBError, StopRequested, error_to_payload
from hb_common.logging import bind_run_context
from hb_plugins.interface import BaseWorkloadConfig, WorkloadBehavior
from hb_runner.engine.cleanup import CleanupFailure, CleanupRegistry
from hb_runner.engine.context import WorkloadContext
from hb_runner.engine.process import ProcessHost, ProcessRunner
from hb_runner.engine.retry import INSTALLATION_RETRY, RetryPolicy
from hb_runner.engine.stop_token import StopToken, bound_stop_token
from hb_runner.models.metrics import Metric
from hb_runner.models.workload import WorkloadDescriptor
from hb_runner.provisioning.disks import DiskEnumerator, LsblkDiskEnumerator
from hb_runner.provisioning.platform import PlatformInfo, detect_platform
from hb_runner.provisioning.provisioner import ResourceProvisioner
from hb_runner.provisioning.resolver import (
    DependencyResolver,
    DirectoryPackageResolver,
    unpack_archive_installer,
)
from hb_runner.provisioning.state import JsonStateStore, StateStore
from hb_runner.settings import EngineSettings
from hb_runner.telemetry import (
    CompositeTelemetrySink,
    JsonlTelemetrySink,
    LoggingTelemetrySink,
    TelemetrySink,
)

logger = logging.getLogger(__name__)

BACKGROUND_JOIN_SECONDS = 30.0


class LifecycleState(str, Enum):
    CREATED = "created"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TORN_DOWN = "torn_down"


TERMINAL_STATES = frozenset(
    {LifecycleState.COMPLETED, LifecycleState.FAILED, LifecycleState.CANCELLED}
)


@dataclass
class LifecycleOutcome:
    """Summary of one run returned by ``WorkloadLifecycle.run``."""

    workload: str
    scenario: str
    state: LifecycleState
    started_at: datetime
    finished_at: datetime
    metrics: list[Metric] = field(default_factory=list)
    error: Optional[dict[str, Any]] = None
    teardown_failures: list[dict[str, Any]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state == LifecycleState.COMPLETED

    @property
    def cancelled(self) -> bool:
        return self.state == LifecycleState.CANCELLED

    def to_dict(self) -> dict[str, Any]:
        return {
            "workload": self.workload,
            "scenario": self.scenario,
            "state": self.state.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "metrics": [metric.to_dict() for metric in self.metrics],
            "error": self.error,
            "teardown_failures": list(self.teardown_failures),
        }


def default_telemetry(settings: EngineSettings) -> TelemetrySink:
    sinks: list[TelemetrySink] = [LoggingTelemetrySink()]
    if settings.telemetry_file is not None:
        sinks.append(JsonlTelemetrySink(settings.telemetry_file))
    return CompositeTelemetrySink(sinks)


class WorkloadLifecycle:
    """Drive one workload through Initialize, Execute and Teardown."""

    def __init__(
        self,
        behavior: WorkloadBehavior,
        descriptor: WorkloadDescriptor,
        *,
        settings: Optional[EngineSettings] = None,
        config: Optional[BaseWorkloadConfig] = None,
        config_file: Optional[Path] = None,
        telemetry: Optional[TelemetrySink] = None,
        host: Optional[ProcessHost] = None,
        state_store: Optional[StateStore] = None,
        resolver: Optional[DependencyResolver] = None,
        enumerator: Optional[DiskEnumerator] = None,
        stop_token: Optional[StopToken] = None,
        platform_info: Optional[PlatformInfo] = None,
        retry_policy: RetryPolicy = INSTALLATION_RETRY,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.behavior = behavior
        self.descriptor = descriptor
        self.settings = settings or EngineSettings()
        self.cleanup = CleanupRegistry()
        self._owns_stop_token = stop_token is None
        self.stop_token = stop_token or StopToken(
            stop_file=self.settings.stop_file,
            deadline_seconds=self.settings.deadline_seconds,
        )
        self._config = config
        self._config_file = config_file
        self._telemetry = telemetry or default_telemetry(self.settings)
        self._runner = ProcessRunner(
            self.cleanup,
            self._telemetry,
            host=host,
            stop_token=self.stop_token,
            poll_interval=self.settings.poll_interval_seconds,
        )
        self._state_store = state_store or JsonStateStore(self.settings.state_dir)
        self._resolver = resolver or DirectoryPackageResolver(
            self.settings.packages_dir, installer=unpack_archive_installer
        )
        self._enumerator = enumerator or LsblkDiskEnumerator(
            self._runner, mount_root=self.settings.mount_root
        )
        provisioner_kwargs: dict[str, Any] = {"sleep": sleep} if sleep is not None else {}
        self._provisioner = ResourceProvisioner(self._enumerator, **provisioner_kwargs)
        self._platform_info = platform_info
        self._retry_policy = retry_policy
        self._sleep = sleep
        self._context: Optional[WorkloadContext] = None
        self._state = LifecycleState.CREATED
        self._history: list[LifecycleState] = [LifecycleState.CREATED]
        self._teardown_lock = threading.Lock()
        self._teardown_failures: list[CleanupFailure] = []
        self._background_error: Optional[BaseException] = None

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def history(self) -> list[LifecycleState]:
        return list(self._history)

    @property
    def runner(self) -> ProcessRunner:
        return self._runner

    @property
    def teardown_failures(self) -> list[CleanupFailure]:
        return list(self._teardown_failures)

    @property
    def context(self) -> WorkloadContext:
        """Build the behavior context lazily so config errors surface inside the run."""
        if self._context is None:
            config = self._config or self.behavior.build_config(
                self.descriptor, self._config_file
            )
            self._context = WorkloadContext(
                descriptor=self.descriptor,
                config=config,
                runner=self._runner,
                provisioner=self._provisioner,
                state_store=self._state_store,
                resolver=self._resolver,
                telemetry=self._telemetry,
                stop_token=self.stop_token,
                cleanup=self.cleanup,
                settings=self.settings,
                platform=self._platform_info or detect_platform(),
                retry_policy=self._retry_policy,
                sleep=self._sleep,
            )
        return self._context

    def _transition(self, state: LifecycleState) -> None:
        logger.debug("%s: %s -> %s", self.descriptor.workload, self._state.value, state.value)
        self._state = state
        self._history.append(state)
        try:
            self._telemetry.emit_event(
                "workload.state",
                {
                    "workload": self.descriptor.workload,
                    "scenario": self.descriptor.scenario,
                    "state": state.value,
                },
            )
        except Exception:
            logger.exception("Failed to report state change to telemetry")

    def _require(self, expected: LifecycleState, phase: str) -> None:
        if self._state != expected:
            raise RuntimeError(
                f"Cannot {phase} workload '{self.descriptor.workload}' in state '{self._state.value}'"
            )

    def _fail(self, exc: BaseException) -> None:
        if self._state in TERMINAL_STATES or self._state == LifecycleState.TORN_DOWN:
            return
        if isinstance(exc, StopRequested):
            logger.warning("Workload '%s' cancelled: %s", self.descriptor.workload, exc)
            self._transition(LifecycleState.CANCELLED)
        else:
            logger.error("Workload '%s' failed: %s", self.descriptor.workload, exc)
            self._transition(LifecycleState.FAILED)

    def initialize(self) -> None:
        """Check preconditions, resolve packages and let the behavior provision the host."""
        self._require(LifecycleState.CREATED, "initialize")
        self._transition(LifecycleState.INITIALIZING)
        try:
            with bound_stop_token(self.stop_token):
                context = self.context
                context.raise_if_stopped("initialize")
                self.behavior.check_platform(context.platform)
                for package in self.behavior.required_packages(context.config):
                    context.resolve_package(package)
                self.behavior.initialize(context)
                context.raise_if_stopped("execute")
        except BaseException as exc:
            self._fail(exc)
            raise
        self._transition(LifecycleState.INITIALIZED)

    def execute(self) -> None:
        """Run the behavior; a background task shares the stop token and ends with execute."""
        self._require(LifecycleState.INITIALIZED, "execute")
        self._transition(LifecycleState.EXECUTING)
        context = self.context
        try:
            with bound_stop_token(self.stop_token):
                self._execute_with_background(context)
        except BaseException as exc:
            self._fail(exc)
            raise
        self._transition(LifecycleState.COMPLETED)

    def _execute_with_background(self, context: WorkloadContext) -> None:
        task = self.behavior.background_task(context)
        if task is None:
            self.behavior.execute(context)
            return

        background_token = self.stop_token.child()
        thread = threading.Thread(
            target=self._run_background,
            args=(task, background_token),
            name=f"{self.descriptor.workload}-background",
            daemon=True,
        )
        thread.start()
        try:
            self.behavior.execute(context)
        finally:
            background_token.request_stop()
            thread.join(
                timeout=max(self.settings.profiling_interval_seconds * 2, BACKGROUND_JOIN_SECONDS)
            )
            if thread.is_alive():
                logger.warning("Background task did not stop in time")
        if self._background_error is not None:
            raise self._background_error

    def _run_background(self, task: Callable[[StopToken], None], token: StopToken) -> None:
        try:
            with bound_stop_token(token):
                task(token)
        except StopRequested:
            logger.debug("Background task stopped")
        except Exception as exc:
            logger.exception("Background task failed")
            self._background_error = exc

    def teardown(self) -> list[CleanupFailure]:
        """
        Run the behavior's extra teardown, then drain the cleanup registry.

        Safe to call more than once; only the first call does any work.
        Returns the failures recorded by this call.
        """
        with self._teardown_lock:
            if self._state == LifecycleState.TORN_DOWN:
                logger.debug("Workload '%s' already torn down", self.descriptor.workload)
                return []
            failures: list[CleanupFailure] = []
            if self._context is not None:
                try:
                    self.behavior.extra_teardown(self._context)
                except Exception as exc:
                    logger.error("Extra teardown of '%s' failed: %s", self.descriptor.workload, exc)
                    failures.append(CleanupFailure("extra teardown", exc))
            failures.extend(self.cleanup.drain())
            if self._owns_stop_token:
                self.stop_token.restore()
            self._teardown_failures.extend(failures)
            self._transition(LifecycleState.TORN_DOWN)
        return failures

    def run(self, raise_on_error: bool = False) -> LifecycleOutcome:
        """Initialize, execute and always tear down; return the outcome."""
        started_at = datetime.now(timezone.utc)
        error: Optional[BaseException] = None
        with bind_run_context(workload=self.descriptor.workload, scenario=self.descriptor.scenario):
            try:
                self.initialize()
                self.execute()
            except (HBError, StopRequested) as exc:
                error = exc
            except Exception as exc:
                logger.exception("Unexpected failure in workload '%s'", self.descriptor.workload)
                self._fail(exc)
                error = exc
            finally:
                final_state = self._state
                self.teardown()

        outcome = LifecycleOutcome(
            workload=self.descriptor.workload,
            scenario=self.descriptor.scenario,
            state=final_state,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            metrics=list(self._context.metrics) if self._context is not None else [],
            error=error_to_payload(error) if error is not None else None,
            teardown_failures=[failure.to_dict() for failure in self._teardown_failures],
        )
        if raise_on_error and error is not None:
            raise error
        return outcome
