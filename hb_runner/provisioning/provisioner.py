"""Scratch space provisioning on a filtered data disk."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable

from hb_common.errors import DependencyError, ErrorReason, WorkloadError
from hb_runner.models.disks import Disk
from hb_runner.provisioning.disks import DiskEnumerator
from hb_runner.provisioning.filters import enforce_data_disks, filter_disks

logger = logging.getLogger(__name__)

MOUNT_SETTLE_SECONDS = 1.0


class ResourceProvisioner:
    """Select a data disk through a filter expression and prepare a scratch directory on it."""

    def __init__(
        self,
        enumerator: DiskEnumerator,
        settle_seconds: float = MOUNT_SETTLE_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._enumerator = enumerator
        self._settle_seconds = settle_seconds
        self._sleep = sleep

    def list_disks(self) -> list[Disk]:
        disks = self._enumerator.list_disks()
        if not disks:
            raise WorkloadError(
                "Unexpected scenario. The disks could not be enumerated.",
                reason=ErrorReason.UNEXPECTED_ANOMALY,
            )
        return disks

    def select_disk(self, filter_expression: str | None) -> Disk:
        """Return the lowest-index mounted disk matching ``filter_expression``."""
        expression = enforce_data_disks(filter_expression)
        disks = self.list_disks()
        qualifying = filter_disks(disks, expression)
        mounted = [disk for disk in qualifying if disk.is_mounted]

        if not mounted and qualifying:
            logger.info(
                "No mounted disk matches '%s'; creating mount points for %s",
                expression,
                ", ".join(str(disk) for disk in qualifying),
            )
            if self._enumerator.create_mount_points(qualifying):
                self._sleep(self._settle_seconds)
                qualifying = filter_disks(self.list_disks(), expression)
                mounted = [disk for disk in qualifying if disk.is_mounted]

        if not mounted:
            raise DependencyError(
                f"No disks matching the filter '{expression}' were found on the system.",
                reason=ErrorReason.DEPENDENCY_NOT_FOUND,
                context={
                    "filter": expression,
                    "disks": [str(disk) for disk in disks],
                },
            )

        selected = min(mounted, key=lambda disk: disk.index)
        logger.info("Selected %s for filter '%s'", selected, expression)
        return selected

    def ensure_scratch_space(
        self, filter_expression: str | None, scratch_name: str = "scratch"
    ) -> Path:
        """Return ``<access path>/<scratch_name>`` on the selected disk, creating it if absent."""
        disk = self.select_disk(filter_expression)
        scratch = Path(disk.preferred_access_path or "/") / scratch_name
        scratch.mkdir(parents=True, exist_ok=True)
        return scratch
