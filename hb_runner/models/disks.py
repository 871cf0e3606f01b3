"""Block device snapshot produced by disk enumeration."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Disk:
    """One physical/virtual disk as seen at enumeration time."""

    index: int
    capacity_bytes: int
    mount_paths: tuple[str, ...] = field(default_factory=tuple)
    is_os_disk: bool = False
    device_path: str | None = None

    @property
    def is_mounted(self) -> bool:
        return bool(self.mount_paths)

    @property
    def preferred_access_path(self) -> str | None:
        """Return the mount path used to derive workload directories."""
        if not self.mount_paths:
            return None
        return sorted(self.mount_paths)[0]

    def __str__(self) -> str:
        mounts = ",".join(self.mount_paths) or "-"
        kind = "os" if self.is_os_disk else "data"
        return (
            f"disk{self.index}({self.device_path or '?'}, "
            f"{self.capacity_bytes}B, {kind}, mounts={mounts})"
        )
