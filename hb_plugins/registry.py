"""
Registry and discovery utilities for workload behaviors.
"""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Any, Callable, Dict, Iterable, Optional

from hb_common.errors import ConfigurationError

from .builtin import builtin_behaviors
from .interface import WorkloadBehavior

logger = logging.getLogger(__name__)
ENTRYPOINT_GROUP = "hostbench.workloads"


def discover_entrypoints(
    groups: Iterable[str],
) -> dict[str, importlib.metadata.EntryPoint]:
    """Collect entry points without importing them. Loaded on demand."""
    pending: dict[str, importlib.metadata.EntryPoint] = {}
    for group in groups:
        for entry_point in importlib.metadata.entry_points().select(group=group):
            pending.setdefault(entry_point.name, entry_point)
    return pending


def load_entrypoint(
    entry_point: importlib.metadata.EntryPoint,
    register: Callable[[Any], None],
) -> None:
    """Load a single entry point and register what it exports."""
    try:
        behavior = entry_point.load()
    except ImportError as exc:
        logger.debug(
            "Skipping workload entry point %s due to missing dependency: %s",
            entry_point.name,
            exc,
        )
        return
    if isinstance(behavior, type):
        behavior = behavior()
    register(behavior)


class WorkloadRegistry:
    """In-memory registry of built-in and entry-point workload behaviors."""

    def __init__(self, behaviors: Optional[Iterable[Any]] = None, discover: bool = True):
        self._workloads: Dict[str, WorkloadBehavior] = {}
        self._pending_entrypoints: Dict[str, importlib.metadata.EntryPoint] = {}
        for behavior in behaviors if behaviors is not None else builtin_behaviors():
            self.register(behavior)
        if discover:
            self._pending_entrypoints = discover_entrypoints([ENTRYPOINT_GROUP])

    def register(self, behavior: Any) -> None:
        """Register a new behavior."""
        if not isinstance(behavior, WorkloadBehavior):
            raise TypeError(f"Unknown workload behavior type: {type(behavior)}")
        if behavior.name in self._workloads:
            logger.debug("Replacing workload behavior %s", behavior.name)
        self._workloads[behavior.name] = behavior

    def get(self, name: str) -> WorkloadBehavior:
        if name not in self._workloads and name in self._pending_entrypoints:
            load_entrypoint(self._pending_entrypoints.pop(name), self.register)
        if name not in self._workloads:
            raise ConfigurationError(
                f"Workload '{name}' not found",
                context={"workload": name, "available": sorted(self.available())},
            )
        return self._workloads[name]

    def available(self, load_entrypoints: bool = False) -> Dict[str, WorkloadBehavior]:
        """
        Return available workload behaviors.

        When load_entrypoints is True, pending entry points are resolved and
        registered; otherwise only already-registered behaviors are returned.
        """
        if load_entrypoints:
            for name in list(self._pending_entrypoints):
                load_entrypoint(self._pending_entrypoints.pop(name), self.register)
        return dict(self._workloads)
