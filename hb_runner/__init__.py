"""Runner facade for hostbench components."""

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

__all__ = [
    "Disk",
    "Metric",
    "MetricRelativity",
    "ProcessInvocation",
    "ProcessResult",
    "ProvisioningState",
    "StateKey",
    "WorkloadDescriptor",
]
