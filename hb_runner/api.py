"""Stable runner API surface."""

from hb_runner.engine.cleanup import CleanupFailure, CleanupRegistry
from hb_runner.engine.context import WorkloadContext
from hb_runner.engine.lifecycle import LifecycleOutcome, LifecycleState, WorkloadLifecycle
from hb_runner.engine.process import ProcessHandle, ProcessHost, ProcessRunner, SubprocessHost
from hb_runner.engine.retry import INSTALLATION_RETRY, NO_RETRY, RetryPolicy, run_with_retry
from hb_runner.engine.stop_token import StopToken
from hb_runner.metrics import MetricsParser
from hb_runner.models import (
    Disk,
    Metric,
    MetricRelativity,
    ProcessInvocation,
    ProcessResult,
    ProvisioningState,
    StateKey,
    WorkloadDescriptor,
)
from hb_runner.provisioning import (
    DirectoryPackageResolver,
    JsonStateStore,
    LsblkDiskEnumerator,
    ResourceProvisioner,
)
from hb_runner.sampling import SystemSampler
from hb_runner.settings import EngineSettings
from hb_runner.telemetry import (
    CompositeTelemetrySink,
    JsonlTelemetrySink,
    LoggingTelemetrySink,
    TelemetrySink,
)

__all__ = [
    "CleanupFailure",
    "CleanupRegistry",
    "CompositeTelemetrySink",
    "DirectoryPackageResolver",
    "Disk",
    "EngineSettings",
    "INSTALLATION_RETRY",
    "JsonStateStore",
    "JsonlTelemetrySink",
    "LifecycleOutcome",
    "LifecycleState",
    "LoggingTelemetrySink",
    "LsblkDiskEnumerator",
    "Metric",
    "MetricRelativity",
    "MetricsParser",
    "NO_RETRY",
    "ProcessHandle",
    "ProcessHost",
    "ProcessInvocation",
    "ProcessResult",
    "ProcessRunner",
    "ProvisioningState",
    "ResourceProvisioner",
    "RetryPolicy",
    "StateKey",
    "StopToken",
    "SubprocessHost",
    "SystemSampler",
    "TelemetrySink",
    "WorkloadContext",
    "WorkloadDescriptor",
    "WorkloadLifecycle",
    "run_with_retry",
]
