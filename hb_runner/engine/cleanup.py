"""Per-run registry of deferred release actions."""

from __future__ import annotations

import logging
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from hb_common.errors import error_to_payload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CleanupFailure:
    """A deferred action that raised while the registry was drained."""

    description: str
    error: Exception

    def to_dict(self) -> dict[str, object]:
        return {"action": self.description, **error_to_payload(self.error)}


@dataclass(frozen=True)
class _CleanupAction:
    description: str
    action: Callable[[], None]


class CleanupRegistry:
    """
    Ordered set of zero-argument release actions scoped to one run.

    Actions are drained exactly once, in registration order. Every action is
    attempted even when an earlier one fails; failures are returned so the
    caller can record them without masking the error that triggered teardown.
    """

    def __init__(self) -> None:
        self._actions: list[_CleanupAction] = []
        self._lock = threading.Lock()
        self._drained = False
        self._failures: list[CleanupFailure] = []
        self._recorded: list[CleanupFailure] = []

    def __len__(self) -> int:
        return len(self._actions)

    @property
    def drained(self) -> bool:
        return self._drained

    @property
    def failures(self) -> list[CleanupFailure]:
        return list(self._failures)

    def register(self, action: Callable[[], None], description: str = "") -> None:
        """Append a release action; runs it immediately when the registry is already drained."""
        entry = _CleanupAction(description or getattr(action, "__name__", "action"), action)
        with self._lock:
            if not self._drained:
                self._actions.append(entry)
                return
        logger.warning(
            "Cleanup action '%s' registered after teardown; running it now",
            entry.description,
        )
        failure = self._run(entry)
        if failure is not None:
            self._failures.append(failure)

    def register_directory_removal(self, path: Path) -> None:
        """Register removal of a transient directory (no-op if already absent)."""
        self.register(lambda: remove_directory(path), f"remove {path}")

    def record_failure(self, description: str, error: Exception) -> None:
        """Keep a release step that failed outside the registry; reported by the next drain."""
        logger.error("Release step '%s' failed: %s", description, error)
        failure = CleanupFailure(description, error)
        with self._lock:
            if not self._drained:
                self._recorded.append(failure)
                return
        self._failures.append(failure)

    def drain(self) -> list[CleanupFailure]:
        """Run every registered action once, in order. Later calls are no-ops."""
        with self._lock:
            if self._drained:
                logger.debug("Cleanup registry already drained")
                return []
            self._drained = True
            failures = list(self._recorded)
            self._recorded.clear()
        index = 0
        while index < len(self._actions):
            failure = self._run(self._actions[index])
            if failure is not None:
                failures.append(failure)
            index += 1
        self._failures.extend(failures)
        return failures

    def _run(self, entry: _CleanupAction) -> CleanupFailure | None:
        logger.debug("Running cleanup action: %s", entry.description)
        try:
            entry.action()
        except Exception as exc:
            logger.error("Cleanup action '%s' failed: %s", entry.description, exc)
            return CleanupFailure(entry.description, exc)
        return None


def remove_directory(path: Path) -> None:
    """Delete a directory tree when it exists."""
    if not path.exists():
        logger.debug("Directory %s already absent", path)
        return
    logger.info("Removing %s", path)
    shutil.rmtree(path)
