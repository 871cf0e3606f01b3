"""Tests for disk filter expressions."""

from __future__ import annotations

import pytest

from hb_common.errors import ConfigurationError
from hb_runner.models.disks import Disk
from hb_runner.provisioning.filters import (
    enforce_data_disks,
    filter_disks,
    parse_filter,
    parse_size,
)
from tests.helpers.fakes import GB, TB, host_disks

pytestmark = [pytest.mark.unit, pytest.mark.unit_runner]


class TestParseSize:
    def test_units_are_binary(self):
        assert parse_size("1000gb") == 1000 * GB
        assert parse_size("2TB") == 2 * TB
        assert parse_size("512") == 512
        assert parse_size("1.5kb") == 1536

    @pytest.mark.parametrize("raw", ["", "big", "10xb", "-5gb"])
    def test_invalid_sizes(self, raw):
        with pytest.raises(ConfigurationError):
            parse_size(raw)


class TestParseFilter:
    def test_empty_expression_defaults_to_biggest(self):
        assert [str(p) for p in parse_filter(None)] == ["BiggestSize"]

    def test_predicates_keep_written_order(self):
        predicates = parse_filter("SizeGreaterThan:1000gb & OSDisk:false")
        assert [str(p) for p in predicates] == ["SizeGreaterThan:1000gb", "OSDisk:false"]

    def test_unknown_predicate_is_configuration_error(self):
        with pytest.raises(ConfigurationError, match="Unknown disk filter 'Fastest'"):
            parse_filter("Fastest")

    def test_value_required(self):
        with pytest.raises(ConfigurationError, match="requires a value"):
            parse_filter("SizeGreaterThan")


class TestFilterDisks:
    def test_size_and_os_disk(self, tmp_path):
        disks = host_disks(tmp_path)
        selected = filter_disks(disks, "SizeGreaterThan:1000gb&OSDisk:false")
        assert [d.index for d in selected] == [1]

    def test_ranking_applies_after_other_predicates(self):
        disks = host_disks()
        # The OS disk ties for biggest, but it is excluded before ranking.
        selected = filter_disks(disks, "BiggestSize&OSDisk:false")
        assert [d.index for d in selected] == [1]

    def test_smallest_and_disk_path(self):
        disks = host_disks()
        assert [d.index for d in filter_disks(disks, "SmallestSize")] == [2]
        assert [d.index for d in filter_disks(disks, "DiskPath:/dev/sdb,/data/small")] == [1, 2]

    def test_result_sorted_by_index(self):
        disks = [
            Disk(index=3, capacity_bytes=10),
            Disk(index=1, capacity_bytes=10),
        ]
        assert [d.index for d in filter_disks(disks, "none")] == [1, 3]

    def test_no_match_returns_empty(self):
        assert filter_disks(host_disks(), "SizeGreaterThan:10tb&OSDisk:false") == []


class TestEnforceDataDisks:
    def test_appends_os_disk_exclusion(self):
        assert enforce_data_disks("SizeGreaterThan:1000gb") == "SizeGreaterThan:1000gb&OSDisk:false"
        assert enforce_data_disks(None) == "BiggestSize&OSDisk:false"

    def test_existing_exclusion_kept(self):
        assert enforce_data_disks("osdisk:False&BiggestSize") == "osdisk:False&BiggestSize"

    def test_os_disk_true_is_overridden(self):
        expression = enforce_data_disks("OSDisk:true")
        assert filter_disks(host_disks(), expression) == []
