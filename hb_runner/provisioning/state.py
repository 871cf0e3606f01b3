"""Persisted provisioning state and the one-time setup gate."""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Callable, Protocol

from pydantic import ValidationError

from hb_common.errors import ConfigurationError
from hb_runner.models.state import (
    PROVISIONING_STATE_SCHEMA_VERSION,
    ProvisioningState,
    StateKey,
)

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class StateStore(Protocol):
    """Loads and saves provisioning state records by namespaced key."""

    def load(self, key: StateKey) -> ProvisioningState | None:
        ...

    def save(self, key: StateKey, state: ProvisioningState) -> None:
        ...


class JsonStateStore:
    """Store one JSON document per key under a directory; writes are atomic renames."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def path_for(self, key: StateKey) -> Path:
        name = f"{_UNSAFE_CHARS.sub('_', key.workload_id)}.{_UNSAFE_CHARS.sub('_', key.state_kind)}.json"
        return self.directory / name

    def load(self, key: StateKey) -> ProvisioningState | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            state = ProvisioningState.model_validate(payload)
        except (json.JSONDecodeError, ValidationError) as exc:
            raise ConfigurationError(
                f"Corrupt provisioning state for '{key}'",
                context={"path": path},
                cause=exc,
            ) from exc
        if state.schema_version > PROVISIONING_STATE_SCHEMA_VERSION:
            raise ConfigurationError(
                f"Provisioning state for '{key}' has unsupported schema version {state.schema_version}",
                context={"path": path, "supported": PROVISIONING_STATE_SCHEMA_VERSION},
            )
        return state

    def save(self, key: StateKey, state: ProvisioningState) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".state-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(state.model_dump_json(indent=2))
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Saved provisioning state %s to %s", key, path)


class InMemoryStateStore:
    """Process-local StateStore, handy for dry runs and tests."""

    def __init__(self) -> None:
        self._records: dict[StateKey, ProvisioningState] = {}

    def load(self, key: StateKey) -> ProvisioningState | None:
        state = self._records.get(key)
        return state.model_copy() if state is not None else None

    def save(self, key: StateKey, state: ProvisioningState) -> None:
        self._records[key] = state.model_copy()


def run_once(store: StateStore, key: StateKey, setup: Callable[[], None]) -> bool:
    """
    Run the expensive ``setup`` unless ``key`` is already marked initialized.

    The flag is saved only after ``setup`` returns, so a failed or cancelled
    setup is attempted again on the next run. Returns True when setup ran.
    """
    state = store.load(key) or ProvisioningState()
    if state.initialized:
        logger.info("One-time setup for %s already completed; skipping", key)
        return False
    logger.info("Running one-time setup for %s", key)
    setup()
    state.initialized = True
    store.save(key, state)
    return True
