"""Metric records produced by report parsers."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Mapping


class MetricRelativity(str, Enum):
    """Whether a higher or a lower value means better performance."""

    HIGHER_IS_BETTER = "higher_is_better"
    LOWER_IS_BETTER = "lower_is_better"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class Metric:
    name: str
    value: float
    unit: str = ""
    description: str = ""
    relativity: MetricRelativity = MetricRelativity.NEUTRAL
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["relativity"] = self.relativity.value
        payload["metadata"] = dict(self.metadata)
        return payload
