"""Block device enumeration and mount point creation."""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol

from hb_runner.engine.process import ProcessRunner
from hb_runner.models.disks import Disk
from hb_runner.models.process import ProcessInvocation

logger = logging.getLogger(__name__)

OS_MOUNT_POINTS = frozenset({"/", "/boot", "/boot/efi"})
LSBLK_COMMAND = ["lsblk", "-J", "-b", "-o", "NAME,PATH,SIZE,TYPE,FSTYPE,MOUNTPOINT"]


class DiskEnumerator(Protocol):
    """Discovers host disks and prepares mount points for them."""

    def list_disks(self) -> list[Disk]:
        ...

    def create_mount_points(self, disks: Iterable[Disk]) -> bool:
        """Mount unmounted filesystems on ``disks``; return True when anything changed."""
        ...


def _run(cmd: list[str], timeout: float = 10.0) -> str:
    """Run a command safely, returning stdout or empty string on failure."""
    try:
        result = subprocess.run(
            cmd, check=False, capture_output=True, text=True, timeout=timeout
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.debug("Command %s failed: %s", cmd, exc)
        return ""
    if result.returncode != 0:
        logger.debug("Command %s exited with %s: %s", cmd, result.returncode, result.stderr)
        return ""
    return result.stdout.strip()


def _json_output(cmd: list[str], run: Callable[[list[str]], str]) -> Any:
    """Run a command expected to emit JSON; return parsed object or None."""
    raw = run(cmd)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Unparseable JSON from %s", " ".join(cmd))
        return None


def _collect_mounts(node: dict[str, Any]) -> list[str]:
    mounts: list[str] = []
    mountpoint = node.get("mountpoint")
    if mountpoint and mountpoint.startswith("/"):
        mounts.append(str(mountpoint))
    for extra in node.get("mountpoints") or []:
        if extra and str(extra).startswith("/") and extra not in mounts:
            mounts.append(str(extra))
    for child in node.get("children") or []:
        mounts.extend(_collect_mounts(child))
    return mounts


def _unmounted_filesystems(node: dict[str, Any]) -> list[str]:
    """Device paths under ``node`` that carry a filesystem but no mount point."""
    children = node.get("children") or []
    if not children:
        if node.get("fstype") and not _collect_mounts(node):
            return [str(node.get("path") or f"/dev/{node.get('name')}")]
        return []
    devices: list[str] = []
    for child in children:
        devices.extend(_unmounted_filesystems(child))
    return devices


def parse_lsblk(payload: Any) -> tuple[list[Disk], dict[str, list[str]]]:
    """Convert ``lsblk -J`` output into disks plus their unmounted filesystem devices."""
    disks: list[Disk] = []
    unmounted: dict[str, list[str]] = {}
    if not isinstance(payload, dict):
        return disks, unmounted
    index = 0
    for block in payload.get("blockdevices", []):
        if block.get("type") != "disk":
            continue
        size = block.get("size")
        try:
            capacity = int(size)
        except (TypeError, ValueError):
            capacity = 0
        mounts = _collect_mounts(block)
        device_path = str(block.get("path") or f"/dev/{block.get('name')}")
        disks.append(
            Disk(
                index=index,
                capacity_bytes=capacity,
                mount_paths=tuple(mounts),
                is_os_disk=any(m in OS_MOUNT_POINTS for m in mounts),
                device_path=device_path,
            )
        )
        unmounted[device_path] = _unmounted_filesystems(block)
        index += 1
    return disks, unmounted


class LsblkDiskEnumerator:
    """DiskEnumerator backed by ``lsblk`` and elevated ``mount`` invocations."""

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        mount_root: Path = Path("/mnt"),
        command_runner: Callable[[list[str]], str] = _run,
    ) -> None:
        self._runner = runner
        self._mount_root = mount_root
        self._command_runner = command_runner
        self._unmounted: dict[str, list[str]] = {}

    def list_disks(self) -> list[Disk]:
        disks, self._unmounted = parse_lsblk(
            _json_output(LSBLK_COMMAND, self._command_runner)
        )
        logger.debug("Enumerated %s disks", len(disks))
        return disks

    def create_mount_points(self, disks: Iterable[Disk]) -> bool:
        if self._runner is None:
            logger.warning("No process runner configured; cannot create mount points")
            return False
        changed = False
        for disk in disks:
            if disk.is_mounted or disk.is_os_disk:
                continue
            devices = self._unmounted.get(disk.device_path or "", [])
            for position, device in enumerate(devices):
                suffix = f"_{position}" if position else ""
                mount_point = self._mount_root / f"hb_disk{disk.index}{suffix}"
                logger.info("Mounting %s at %s", device, mount_point)
                self._runner.run(ProcessInvocation.of("mkdir", "-p", mount_point, elevated=True))
                self._runner.run(ProcessInvocation.of("mount", device, mount_point, elevated=True))
                changed = True
        return changed
