"""Workload descriptor shared by the lifecycle engine and behaviors."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class WorkloadDescriptor(BaseModel):
    """Identify one workload run: which workload, which scenario, which knobs."""

    model_config = ConfigDict(frozen=True)

    workload: str = Field(description="Registered workload name (e.g. 'ycsb_mongodb')")
    scenario: str = Field(default="default", description="Named sub-configuration")
    parameters: Dict[str, Any] = Field(
        default_factory=dict,
        description="Workload parameters; keys are unique",
    )
    tags: List[str] = Field(default_factory=list, description="Tags forwarded to telemetry")

    @field_validator("workload")
    @classmethod
    def _workload_not_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("WorkloadDescriptor: 'workload' must be non-empty")
        return value.strip()

    def get(self, name: str, default: Optional[Any] = None) -> Any:
        """Return a parameter value, or ``default`` when unset."""
        return self.parameters.get(name, default)

    @property
    def workload_id(self) -> str:
        """Identifier used to namespace persisted state."""
        return self.workload
