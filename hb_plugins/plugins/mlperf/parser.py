"""Parser for MLPerf inference JSON summaries."""

from __future__ import annotations

import json
from typing import Any

from hb_runner.metrics import MetricsParser
from hb_runner.models.metrics import Metric, MetricRelativity

ACCURACY_SUMMARY = "accuracy_summary.json"
PERFORMANCE_SUMMARY = "perf_harness_summary.json"

_PASS_VALUES = {"PASSED": 1.0, "FAILED": 0.0}
_VALIDITY_VALUES = {"VALID": 1.0, "INVALID": 0.0}


def _relativity(measure: str) -> MetricRelativity:
    lowered = measure.lower()
    if "latency" in lowered or lowered.endswith("_ns") or lowered.endswith("_ms"):
        return MetricRelativity.LOWER_IS_BETTER
    if "per_second" in lowered or "qps" in lowered or "throughput" in lowered:
        return MetricRelativity.HIGHER_IS_BETTER
    return MetricRelativity.NEUTRAL


def _unit(measure: str) -> str:
    lowered = measure.lower()
    if lowered.endswith("_ns"):
        return "ns"
    if lowered.endswith("_ms"):
        return "ms"
    if "samples_per_second" in lowered:
        return "samples/s"
    if "qps" in lowered:
        return "queries/s"
    return ""


class MLPerfResultParser(MetricsParser):
    """
    Parse ``accuracy_summary.json`` or ``perf_harness_summary.json``.

    Accuracy summaries map each config to ``"PASSED"`` or ``"FAILED"`` and
    yield one 1/0 metric per config. Performance summaries map each config
    to an object holding ``result_validity`` and numeric measures; each
    config yields a validity metric followed by one metric per measure.
    """

    def __init__(self, accuracy_mode: bool):
        self.accuracy_mode = accuracy_mode
        self.format_name = ACCURACY_SUMMARY if accuracy_mode else PERFORMANCE_SUMMARY

    def parse(self, text: str) -> list[Metric]:
        try:
            payload = json.loads(text or "")
        except json.JSONDecodeError as exc:
            raise self.fail(text, f"not valid JSON ({exc.msg})") from exc
        if not isinstance(payload, dict) or not payload:
            raise self.fail(text, "expected a non-empty JSON object")
        if self.accuracy_mode:
            return self._parse_accuracy(text, payload)
        return self._parse_performance(text, payload)

    def _parse_accuracy(self, text: str, payload: dict[str, Any]) -> list[Metric]:
        metrics: list[Metric] = []
        for config, status in payload.items():
            value = _PASS_VALUES.get(str(status).upper()) if isinstance(status, str) else None
            if value is None:
                raise self.fail(text, f"unexpected accuracy status for '{config}'", status=status)
            metrics.append(
                Metric(
                    name=f"{config}-accuracy",
                    value=value,
                    unit="PASS/FAIL",
                    description=f"Accuracy check {status} for {config}",
                    relativity=MetricRelativity.HIGHER_IS_BETTER,
                    metadata={"config": config},
                )
            )
        return metrics

    def _parse_performance(self, text: str, payload: dict[str, Any]) -> list[Metric]:
        metrics: list[Metric] = []
        for config, summary in payload.items():
            if not isinstance(summary, dict) or "result_validity" not in summary:
                raise self.fail(text, f"missing result_validity for '{config}'")
            validity = str(summary["result_validity"]).upper()
            if validity not in _VALIDITY_VALUES:
                raise self.fail(text, f"unexpected result_validity for '{config}'", validity=validity)
            metrics.append(
                Metric(
                    name=f"{config}-result_validity",
                    value=_VALIDITY_VALUES[validity],
                    unit="VALID/INVALID",
                    relativity=MetricRelativity.HIGHER_IS_BETTER,
                    metadata={"config": config},
                )
            )
            for measure, value in summary.items():
                if measure == "result_validity":
                    continue
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise self.fail(text, f"non-numeric measure '{measure}' for '{config}'")
                metrics.append(
                    Metric(
                        name=f"{config}-{measure}",
                        value=float(value),
                        unit=_unit(measure),
                        relativity=_relativity(measure),
                        metadata={"config": config, "validity": validity},
                    )
                )
        return metrics
