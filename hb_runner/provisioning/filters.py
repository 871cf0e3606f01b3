"""
Disk filter expressions.

A filter is a set of ``&``-joined predicates of the form ``Name:value``,
for example ``SizeGreaterThan:1000gb&OSDisk:false``. A disk is selected only
when it satisfies every predicate. Unknown predicate names are configuration
errors.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable

from hb_common.errors import ConfigurationError
from hb_runner.models.disks import Disk

DEFAULT_DISK_FILTER = "BiggestSize"

_SIZE_UNITS = {
    "b": 1,
    "kb": 1024,
    "mb": 1024**2,
    "gb": 1024**3,
    "tb": 1024**4,
}
_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([kmgt]?b)?\s*$", re.IGNORECASE)
_TRUE = {"true", "1", "yes"}
_FALSE = {"false", "0", "no"}


def parse_size(value: str) -> int:
    """Convert ``1000gb``/``2tb``/``512`` into bytes (1024-based units)."""
    match = _SIZE_PATTERN.match(value or "")
    if not match:
        raise ConfigurationError(
            f"Invalid disk size '{value}'", context={"value": value}
        )
    number = float(match.group(1))
    unit = (match.group(2) or "b").lower()
    return int(number * _SIZE_UNITS[unit])


def _parse_bool(value: str) -> bool:
    lowered = (value or "").strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationError(f"Invalid boolean '{value}'", context={"value": value})


@dataclass(frozen=True)
class DiskPredicate:
    """One parsed filter predicate."""

    name: str
    value: str
    apply: Callable[[list[Disk]], list[Disk]]

    def __str__(self) -> str:
        return f"{self.name}:{self.value}" if self.value else self.name


def _size_compare(compare: Callable[[int, int], bool]) -> Callable[[str], Callable[[list[Disk]], list[Disk]]]:
    def build(value: str) -> Callable[[list[Disk]], list[Disk]]:
        threshold = parse_size(value)
        return lambda disks: [d for d in disks if compare(d.capacity_bytes, threshold)]

    return build


def _os_disk(value: str) -> Callable[[list[Disk]], list[Disk]]:
    expected = _parse_bool(value)
    return lambda disks: [d for d in disks if d.is_os_disk == expected]


def _extreme(pick: Callable[[Iterable[int]], int]) -> Callable[[str], Callable[[list[Disk]], list[Disk]]]:
    def build(value: str) -> Callable[[list[Disk]], list[Disk]]:
        def apply(disks: list[Disk]) -> list[Disk]:
            if not disks:
                return []
            target = pick(d.capacity_bytes for d in disks)
            return [d for d in disks if d.capacity_bytes == target]

        return apply

    return build


def _disk_path(value: str) -> Callable[[list[Disk]], list[Disk]]:
    paths = {item.strip() for item in value.split(",") if item.strip()}
    if not paths:
        raise ConfigurationError("DiskPath filter requires at least one path")
    return lambda disks: [
        d
        for d in disks
        if d.device_path in paths or any(mount in paths for mount in d.mount_paths)
    ]


def _none(value: str) -> Callable[[list[Disk]], list[Disk]]:
    return lambda disks: list(disks)


_PREDICATES: dict[str, Callable[[str], Callable[[list[Disk]], list[Disk]]]] = {
    "none": _none,
    "osdisk": _os_disk,
    "sizegreaterthan": _size_compare(lambda size, threshold: size > threshold),
    "sizelessthan": _size_compare(lambda size, threshold: size < threshold),
    "sizeequalto": _size_compare(lambda size, threshold: size == threshold),
    "biggestsize": _extreme(max),
    "smallestsize": _extreme(min),
    "diskpath": _disk_path,
}
_VALUE_REQUIRED = {"osdisk", "sizegreaterthan", "sizelessthan", "sizeequalto", "diskpath"}
_RANKING = {"biggestsize", "smallestsize"}


def parse_filter(expression: str | None) -> list[DiskPredicate]:
    """Parse a filter expression into predicates, in the order written."""
    expression = (expression or "").strip() or DEFAULT_DISK_FILTER
    predicates: list[DiskPredicate] = []
    for token in expression.split("&"):
        token = token.strip()
        if not token:
            continue
        name, _, value = token.partition(":")
        key = name.strip().lower()
        builder = _PREDICATES.get(key)
        if builder is None:
            raise ConfigurationError(
                f"Unknown disk filter '{name.strip()}'",
                context={"expression": expression, "supported": sorted(_PREDICATES)},
            )
        value = value.strip()
        if key in _VALUE_REQUIRED and not value:
            raise ConfigurationError(
                f"Disk filter '{name.strip()}' requires a value",
                context={"expression": expression},
            )
        predicates.append(DiskPredicate(name=name.strip(), value=value, apply=builder(value)))
    return predicates


def enforce_data_disks(expression: str | None) -> str:
    """Append ``OSDisk:false`` unless the expression already excludes the OS disk."""
    expression = (expression or "").strip() or DEFAULT_DISK_FILTER
    for token in expression.split("&"):
        name, _, value = token.partition(":")
        if name.strip().lower() == "osdisk" and value.strip().lower() in _FALSE:
            return expression
    return f"{expression}&OSDisk:false"


def filter_disks(disks: Iterable[Disk], expression: str | None) -> list[Disk]:
    """Return disks matching every predicate, ordered by index."""
    selected = sorted(disks, key=lambda d: d.index)
    predicates = parse_filter(expression)
    # Size-ranking predicates rank only the disks that passed every other predicate.
    ordered = sorted(predicates, key=lambda p: p.name.lower() in _RANKING)
    for predicate in ordered:
        selected = predicate.apply(selected)
    return selected
