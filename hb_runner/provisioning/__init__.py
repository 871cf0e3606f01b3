"""Host resource provisioning: disks, scratch space, packages and setup state."""

from hb_runner.provisioning.disks import DiskEnumerator, LsblkDiskEnumerator
from hb_runner.provisioning.filters import (
    DEFAULT_DISK_FILTER,
    enforce_data_disks,
    filter_disks,
    parse_filter,
    parse_size,
)
from hb_runner.provisioning.platform import PlatformInfo, detect_platform, require_platform
from hb_runner.provisioning.provisioner import ResourceProvisioner
from hb_runner.provisioning.resolver import DependencyResolver, DirectoryPackageResolver
from hb_runner.provisioning.state import (
    InMemoryStateStore,
    JsonStateStore,
    StateStore,
    run_once,
)

__all__ = [
    "DEFAULT_DISK_FILTER",
    "DependencyResolver",
    "DirectoryPackageResolver",
    "DiskEnumerator",
    "InMemoryStateStore",
    "JsonStateStore",
    "LsblkDiskEnumerator",
    "PlatformInfo",
    "ResourceProvisioner",
    "StateStore",
    "detect_platform",
    "enforce_data_disks",
    "filter_disks",
    "parse_filter",
    "parse_size",
    "require_platform",
    "run_once",
]
