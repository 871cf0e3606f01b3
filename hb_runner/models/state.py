"""Persisted provisioning state."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, Field

PROVISIONING_STATE_SCHEMA_VERSION = 1


@dataclass(frozen=True)
class StateKey:
    """Namespaced key so workload variants sharing a state shape never collide."""

    workload_id: str
    state_kind: str = "provisioning"

    def __str__(self) -> str:
        return f"{self.workload_id}.{self.state_kind}"


class ProvisioningState(BaseModel):
    """One-time setup checkpoint; ``initialized`` is the sole idempotency flag."""

    schema_version: int = Field(default=PROVISIONING_STATE_SCHEMA_VERSION, ge=1)
    initialized: bool = False

    model_config = {
        "extra": "ignore",
    }
