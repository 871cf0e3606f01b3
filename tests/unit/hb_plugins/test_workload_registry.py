"""Tests for workload discovery and registration."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from hb_common.errors import ConfigurationError
from hb_plugins.builtin import builtin_behaviors
from hb_plugins.interface import SimpleWorkloadBehavior
from hb_plugins.registry import ENTRYPOINT_GROUP, WorkloadRegistry, load_entrypoint

pytestmark = [pytest.mark.unit, pytest.mark.unit_plugins]


class DummyBehavior(SimpleWorkloadBehavior):
    NAME = "dummy"
    DESCRIPTION = "does nothing"

    def initialize(self, context):
        pass

    def execute(self, context):
        pass


def test_builtin_behaviors_are_discovered():
    names = sorted(behavior.name for behavior in builtin_behaviors())
    assert names == ["mlperf", "ycsb_mongodb"]


def test_registry_get_and_available():
    registry = WorkloadRegistry(discover=False)
    assert registry.get("ycsb_mongodb").name == "ycsb_mongodb"
    assert set(registry.available()) == {"mlperf", "ycsb_mongodb"}


def test_unknown_workload_is_configuration_error():
    registry = WorkloadRegistry(behaviors=[DummyBehavior()], discover=False)
    with pytest.raises(ConfigurationError) as excinfo:
        registry.get("fio")
    assert excinfo.value.context["available"] == ["dummy"]


def test_register_rejects_non_behaviors():
    registry = WorkloadRegistry(behaviors=[], discover=False)
    with pytest.raises(TypeError):
        registry.register(object())


def test_entrypoint_loaded_on_demand(monkeypatch):
    entry_point = MagicMock()
    entry_point.name = "dummy"
    entry_point.load.return_value = DummyBehavior
    monkeypatch.setattr(
        "hb_plugins.registry.discover_entrypoints",
        lambda groups: {"dummy": entry_point} if ENTRYPOINT_GROUP in groups else {},
    )

    registry = WorkloadRegistry(behaviors=[])
    assert registry.available() == {}
    behavior = registry.get("dummy")

    assert isinstance(behavior, DummyBehavior)
    entry_point.load.assert_called_once()


def test_broken_entrypoint_is_skipped():
    entry_point = MagicMock()
    entry_point.load.side_effect = ImportError("missing optional dependency")
    register = MagicMock()
    load_entrypoint(entry_point, register)
    register.assert_not_called()
