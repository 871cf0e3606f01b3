"""Telemetry sinks receiving engine events and benchmark metrics."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from json import JSONEncoder
from pathlib import Path
from typing import Any, Iterable, Mapping, Protocol, Sequence

import structlog

from hb_runner.models.metrics import Metric

logger = logging.getLogger(__name__)


class TelemetrySink(Protocol):
    """Receives traceability events and metric sets."""

    def emit_event(self, name: str, context: Mapping[str, Any]) -> None:
        ...

    def emit_metrics(
        self,
        tool_name: str,
        scenario: str,
        start: datetime,
        end: datetime,
        metrics: Sequence[Metric],
        category: str | None = None,
        tags: Sequence[str] | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        ...


class DateTimeEncoder(JSONEncoder):
    """JSON encoder that handles datetime and path objects."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Path):
            return str(obj)
        return super().default(obj)


@dataclass
class TelemetryRecord:
    """A structured record written by file-backed sinks."""

    kind: str
    name: str
    timestamp: str
    context: dict[str, Any] = field(default_factory=dict)
    metrics: list[dict[str, Any]] = field(default_factory=list)

    def to_json(self) -> str:
        return json.dumps(asdict(self), cls=DateTimeEncoder)


def _metrics_context(
    tool_name: str,
    scenario: str,
    start: datetime,
    end: datetime,
    category: str | None,
    tags: Sequence[str] | None,
    context: Mapping[str, Any] | None,
) -> dict[str, Any]:
    return {
        **dict(context or {}),
        "tool_name": tool_name,
        "scenario": scenario,
        "scenario_start": start.isoformat(),
        "scenario_end": end.isoformat(),
        "category": category,
        "tags": list(tags or []),
    }


class LoggingTelemetrySink:
    """Send telemetry through structlog so it lands in the configured log handlers."""

    def __init__(self, logger_name: str = "hostbench.telemetry") -> None:
        self._log = structlog.get_logger(logger_name)

    def emit_event(self, name: str, context: Mapping[str, Any]) -> None:
        self._log.info(name, **dict(context))

    def emit_metrics(
        self,
        tool_name: str,
        scenario: str,
        start: datetime,
        end: datetime,
        metrics: Sequence[Metric],
        category: str | None = None,
        tags: Sequence[str] | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        base = _metrics_context(tool_name, scenario, start, end, category, tags, context)
        for metric in metrics:
            self._log.info(
                "metric",
                metric_name=metric.name,
                metric_value=metric.value,
                metric_unit=metric.unit,
                metric_relativity=metric.relativity.value,
                **base,
            )


class JsonlTelemetrySink:
    """Append telemetry records as JSON lines to a file."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def emit_event(self, name: str, context: Mapping[str, Any]) -> None:
        self._write(TelemetryRecord(kind="event", name=name, timestamp=_now(), context=dict(context)))

    def emit_metrics(
        self,
        tool_name: str,
        scenario: str,
        start: datetime,
        end: datetime,
        metrics: Sequence[Metric],
        category: str | None = None,
        tags: Sequence[str] | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        self._write(
            TelemetryRecord(
                kind="metrics",
                name=tool_name,
                timestamp=_now(),
                context=_metrics_context(tool_name, scenario, start, end, category, tags, context),
                metrics=[metric.to_dict() for metric in metrics],
            )
        )

    def _write(self, record: TelemetryRecord) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(record.to_json() + "\n")


class CompositeTelemetrySink:
    """Fan telemetry out to several sinks; one failing sink does not starve the others."""

    def __init__(self, sinks: Iterable[TelemetrySink]) -> None:
        self._sinks = list(sinks)

    def emit_event(self, name: str, context: Mapping[str, Any]) -> None:
        for sink in self._sinks:
            try:
                sink.emit_event(name, context)
            except Exception:
                logger.exception("Telemetry sink %s failed to emit event %s", sink, name)

    def emit_metrics(
        self,
        tool_name: str,
        scenario: str,
        start: datetime,
        end: datetime,
        metrics: Sequence[Metric],
        category: str | None = None,
        tags: Sequence[str] | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        for sink in self._sinks:
            try:
                sink.emit_metrics(tool_name, scenario, start, end, metrics, category, tags, context)
            except Exception:
                logger.exception("Telemetry sink %s failed to emit metrics for %s", sink, tool_name)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
