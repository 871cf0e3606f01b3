"""Resolution of named packages to on-disk paths."""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Mapping, Protocol

from hb_common.errors import DependencyError, ErrorReason

logger = logging.getLogger(__name__)

# Returns False when there is nothing to install the package from.
PackageInstaller = Callable[[str, Path], bool]
ARCHIVE_SUFFIXES = (".tar.gz", ".tgz", ".tar", ".zip")


class DependencyResolver(Protocol):
    """Map a registered package name to the directory that holds it."""

    def resolve(self, name: str) -> Path:
        ...


def find_archive(name: str, directory: Path) -> Path | None:
    for suffix in ARCHIVE_SUFFIXES:
        archive = directory / f"{name}{suffix}"
        if archive.is_file():
            return archive
    return None


def unpack_archive_installer(name: str, target: Path) -> bool:
    """
    Install ``name`` by unpacking ``<name>.tar.gz``/``.zip`` found next to ``target``.

    Unpacking goes to a temporary sibling that is renamed onto ``target`` once
    complete; a failed unpack leaves ``target`` absent. Returns False when no
    archive exists.
    """
    archive = find_archive(name, target.parent)
    if archive is None:
        return False
    staging = Path(tempfile.mkdtemp(prefix=f".{name}-", dir=target.parent))
    try:
        logger.info("Unpacking %s into %s", archive, target)
        shutil.unpack_archive(str(archive), str(staging))
        staging.rename(target)
    except BaseException:
        shutil.rmtree(staging, ignore_errors=True)
        raise
    return True


class DirectoryPackageResolver:
    """
    Resolve packages as sub-directories of a packages root.

    Explicit ``registrations`` take precedence over the root layout. When a
    package directory is missing and an ``installer`` is configured, the
    installer is invoked; its failures surface as
    ``dependency_installation_failed`` so callers may retry them. A package
    with no installer, or one the installer has no source for, is
    ``dependency_missing``.
    """

    def __init__(
        self,
        root: Path,
        registrations: Mapping[str, Path] | None = None,
        installer: PackageInstaller | None = None,
    ) -> None:
        self.root = Path(root)
        self._registrations = {name: Path(path) for name, path in (registrations or {}).items()}
        self._installer = installer

    def register(self, name: str, path: Path) -> None:
        self._registrations[name] = Path(path)

    def resolve(self, name: str) -> Path:
        if not name:
            raise DependencyError("Package name is empty", reason=ErrorReason.DEPENDENCY_MISSING)
        registered = self._registrations.get(name)
        if registered is not None:
            if registered.exists():
                return registered
            raise DependencyError(
                f"The registered package '{name}' does not exist at {registered}",
                reason=ErrorReason.DEPENDENCY_MISSING,
                context={"package": name, "path": registered},
            )

        candidate = self.root / name
        if candidate.is_dir():
            return candidate
        if self._installer is None:
            raise self._missing(name)

        logger.info("Installing package '%s' into %s", name, candidate)
        try:
            installed = self._installer(name, candidate)
        except Exception as exc:
            raise DependencyError(
                f"Installation of package '{name}' failed: {exc}",
                reason=ErrorReason.DEPENDENCY_INSTALLATION_FAILED,
                context={"package": name, "packages_root": self.root},
                cause=exc,
            ) from exc
        if not installed:
            raise self._missing(name)
        if not candidate.is_dir():
            raise DependencyError(
                f"Installation of package '{name}' did not produce {candidate}",
                reason=ErrorReason.DEPENDENCY_INSTALLATION_FAILED,
                context={"package": name, "packages_root": self.root},
            )
        return candidate

    def _missing(self, name: str) -> DependencyError:
        return DependencyError(
            f"The expected package '{name}' does not exist on the system or is not registered.",
            reason=ErrorReason.DEPENDENCY_MISSING,
            context={"package": name, "packages_root": self.root},
        )
