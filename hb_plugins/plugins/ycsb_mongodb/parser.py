"""Parser for YCSB client summary reports."""

from __future__ import annotations

import re

from hb_runner.metrics import MetricsParser
from hb_runner.models.metrics import Metric, MetricRelativity

_LINE = re.compile(r"^\[(?P<section>[^\]]+)\],\s*(?P<measure>[^,]+?),\s*(?P<value>\S+)\s*$")
_MEASURE_UNIT = re.compile(r"^(?P<name>.+?)\((?P<unit>[^)]*)\)$")
_HISTOGRAM_BUCKET = re.compile(r"^>?\d+$")
_HEADER = re.compile(r"^\[OVERALL\],\s*RunTime\(", re.MULTILINE)


def _relativity(measure: str) -> MetricRelativity:
    lowered = measure.lower()
    if "throughput" in lowered:
        return MetricRelativity.HIGHER_IS_BETTER
    if "latency" in lowered or "time" in lowered:
        return MetricRelativity.LOWER_IS_BETTER
    return MetricRelativity.NEUTRAL


class YcsbResultParser(MetricsParser):
    """
    Parse ``[SECTION], Measure(unit), value`` lines emitted by ``ycsb load|run``.

    The ``[OVERALL], RunTime(...)`` line must be present. Histogram bucket
    lines such as ``[READ], 0, 1234`` or ``[READ], >1000, 3`` are skipped.
    Every other bracketed line becomes one metric named ``<SECTION>_<measure>``.
    """

    format_name = "YCSB report"

    def parse(self, text: str) -> list[Metric]:
        if not text or not text.strip():
            raise self.fail(text, "report is empty")
        if not _HEADER.search(text):
            raise self.fail(text, "missing '[OVERALL], RunTime' summary line")

        metrics: list[Metric] = []
        for line_number, raw in enumerate(text.splitlines(), start=1):
            line = raw.strip()
            if not line.startswith("["):
                continue
            match = _LINE.match(line)
            if not match:
                raise self.fail(text, f"malformed result line {line_number}", line=line)
            section = match.group("section").strip()
            measure = match.group("measure").strip()
            if _HISTOGRAM_BUCKET.match(measure):
                continue
            try:
                value = float(match.group("value"))
            except ValueError:
                raise self.fail(
                    text, f"non-numeric value on line {line_number}", line=line
                ) from None

            name, unit = measure, ""
            unit_match = _MEASURE_UNIT.match(measure)
            if unit_match:
                name, unit = unit_match.group("name"), unit_match.group("unit")
            metrics.append(
                Metric(
                    name=f"{section}_{name}",
                    value=value,
                    unit=unit,
                    description=f"{section} {measure}",
                    relativity=_relativity(name),
                    metadata={"section": section},
                )
            )
        return metrics
