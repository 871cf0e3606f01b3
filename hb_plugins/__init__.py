"""Workload behaviors for hostbench."""

from hb_plugins.interface import BaseWorkloadConfig, SimpleWorkloadBehavior, WorkloadBehavior
from hb_plugins.registry import WorkloadRegistry

__all__ = [
    "BaseWorkloadConfig",
    "SimpleWorkloadBehavior",
    "WorkloadBehavior",
    "WorkloadRegistry",
]
