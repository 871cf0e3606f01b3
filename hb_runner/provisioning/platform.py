"""Pass/fail gate for host platform and Linux distribution support."""

from __future__ import annotations

import platform as _platform
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from hb_common.errors import ErrorReason, PlatformError

OS_RELEASE_PATH = Path("/etc/os-release")

_ARCH_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "aarch64": "arm64",
}


def _read_os_release(path: Path = OS_RELEASE_PATH) -> dict[str, str]:
    """Parse /etc/os-release when available."""
    data: dict[str, str] = {}
    if not path.exists():
        return data
    for line in path.read_text().splitlines():
        if "=" not in line:
            continue
        key, val = line.split("=", 1)
        data[key.strip()] = val.strip().strip('"')
    return data


def normalize_architecture(machine: str) -> str:
    machine = (machine or "").lower()
    return _ARCH_ALIASES.get(machine, machine)


@dataclass(frozen=True)
class PlatformInfo:
    system: str
    architecture: str
    distro_id: str = ""
    distro_like: tuple[str, ...] = ()
    distro_version: str = ""

    @property
    def platform_id(self) -> str:
        return f"{self.system.lower()}-{self.architecture}"

    def matches_distro(self, entry: str) -> bool:
        """Match ``ubuntu`` or ``centos:7`` style entries against this host."""
        name, _, major = entry.lower().partition(":")
        ids = {self.distro_id.lower(), *(like.lower() for like in self.distro_like)}
        if name not in ids:
            return False
        if major and self.distro_version.split(".")[0] != major:
            return False
        return True


def detect_platform(os_release_path: Path = OS_RELEASE_PATH) -> PlatformInfo:
    os_release = _read_os_release(os_release_path)
    return PlatformInfo(
        system=_platform.system(),
        architecture=normalize_architecture(_platform.machine()),
        distro_id=os_release.get("ID", ""),
        distro_like=tuple(os_release.get("ID_LIKE", "").split()),
        distro_version=os_release.get("VERSION_ID", ""),
    )


def require_platform(
    info: PlatformInfo,
    *,
    systems: Iterable[str] = ("Linux",),
    architectures: Iterable[str] | None = None,
    distros: Iterable[str] | None = None,
) -> None:
    """Raise PlatformError unless ``info`` satisfies every given constraint."""
    systems = list(systems)
    if info.system not in systems:
        raise PlatformError(
            f"The platform '{info.platform_id}' is not supported.",
            reason=ErrorReason.PLATFORM_NOT_SUPPORTED,
            context={"system": info.system, "supported": systems},
        )
    if architectures is not None:
        architectures = list(architectures)
        if info.architecture not in architectures:
            raise PlatformError(
                f"The CPU architecture '{info.architecture}' is not supported.",
                reason=ErrorReason.PLATFORM_NOT_SUPPORTED,
                context={"architecture": info.architecture, "supported": architectures},
            )
    if distros is not None:
        distros = list(distros)
        if not any(info.matches_distro(entry) for entry in distros):
            raise PlatformError(
                f"The Linux distribution '{info.distro_id} {info.distro_version}' is not supported.",
                reason=ErrorReason.DISTRO_NOT_SUPPORTED,
                context={
                    "distro": info.distro_id,
                    "version": info.distro_version,
                    "supported": distros,
                },
            )
