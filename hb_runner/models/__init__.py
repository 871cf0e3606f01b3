"""Data model shared by the hostbench engine."""

from hb_runner.models.disks import Disk
from hb_runner.models.metrics import Metric, MetricRelativity
from hb_runner.models.process import ProcessInvocation, ProcessResult
from hb_runner.models.state import ProvisioningState, StateKey
from hb_runner.models.workload import WorkloadDescriptor

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
