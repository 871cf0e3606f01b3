"""Tests for lsblk-based disk enumeration and mounting."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from hb_runner.provisioning.disks import LSBLK_COMMAND, LsblkDiskEnumerator, parse_lsblk

pytestmark = [pytest.mark.unit, pytest.mark.unit_runner]

LSBLK_PAYLOAD = {
    "blockdevices": [
        {
            "name": "sda",
            "path": "/dev/sda",
            "size": 256060514304,
            "type": "disk",
            "fstype": None,
            "mountpoint": None,
            "children": [
                {"name": "sda1", "path": "/dev/sda1", "size": 536870912, "type": "part",
                 "fstype": "vfat", "mountpoint": "/boot/efi"},
                {"name": "sda2", "path": "/dev/sda2", "size": 255521390592, "type": "part",
                 "fstype": "ext4", "mountpoint": "/"},
            ],
        },
        {
            "name": "nvme0n1",
            "path": "/dev/nvme0n1",
            "size": 2000398934016,
            "type": "disk",
            "fstype": None,
            "mountpoint": None,
            "children": [
                {"name": "nvme0n1p1", "path": "/dev/nvme0n1p1", "size": 2000397885440,
                 "type": "part", "fstype": "xfs", "mountpoint": None},
            ],
        },
        {"name": "loop0", "path": "/dev/loop0", "size": 4096, "type": "loop",
         "fstype": "squashfs", "mountpoint": "/snap/core/1"},
        {"name": "sdb", "path": "/dev/sdb", "size": 1000204886016, "type": "disk",
         "fstype": "ext4", "mountpoint": "/data"},
    ]
}


class TestParseLsblk:
    def test_disks_indexed_in_order(self):
        disks, unmounted = parse_lsblk(LSBLK_PAYLOAD)

        assert [d.index for d in disks] == [0, 1, 2]
        assert [d.device_path for d in disks] == ["/dev/sda", "/dev/nvme0n1", "/dev/sdb"]
        assert disks[0].is_os_disk
        assert disks[0].mount_paths == ("/boot/efi", "/")
        assert disks[0].preferred_access_path == "/"
        assert not disks[1].is_mounted
        assert disks[2].mount_paths == ("/data",)
        assert unmounted["/dev/nvme0n1"] == ["/dev/nvme0n1p1"]
        assert unmounted["/dev/sda"] == []

    def test_garbage_payload(self):
        assert parse_lsblk(None) == ([], {})
        assert parse_lsblk({"blockdevices": [{"type": "disk", "name": "sdz", "size": "n/a"}]})[0][0].capacity_bytes == 0


class TestLsblkDiskEnumerator:
    def test_list_disks_runs_lsblk(self):
        command_runner = MagicMock(return_value=json.dumps(LSBLK_PAYLOAD))
        enumerator = LsblkDiskEnumerator(command_runner=command_runner)

        assert len(enumerator.list_disks()) == 3
        command_runner.assert_called_once_with(LSBLK_COMMAND)

    def test_lsblk_failure_yields_no_disks(self):
        enumerator = LsblkDiskEnumerator(command_runner=MagicMock(return_value=""))
        assert enumerator.list_disks() == []

    def test_create_mount_points_mounts_unmounted_filesystems(self):
        runner = MagicMock()
        enumerator = LsblkDiskEnumerator(
            runner,
            mount_root=Path("/mnt"),
            command_runner=MagicMock(return_value=json.dumps(LSBLK_PAYLOAD)),
        )
        disks = enumerator.list_disks()

        assert enumerator.create_mount_points(disks) is True

        argv = [call.args[0].argv for call in runner.run.call_args_list]
        assert argv == [
            ["mkdir", "-p", "/mnt/hb_disk1"],
            ["mount", "/dev/nvme0n1p1", "/mnt/hb_disk1"],
        ]
        assert all(call.args[0].elevated for call in runner.run.call_args_list)

    def test_nothing_to_mount(self):
        runner = MagicMock()
        payload = {"blockdevices": [LSBLK_PAYLOAD["blockdevices"][3]]}
        enumerator = LsblkDiskEnumerator(runner, command_runner=MagicMock(return_value=json.dumps(payload)))
        assert enumerator.create_mount_points(enumerator.list_disks()) is False
        runner.run.assert_not_called()

    def test_without_runner_cannot_mount(self):
        enumerator = LsblkDiskEnumerator(command_runner=MagicMock(return_value=json.dumps(LSBLK_PAYLOAD)))
        assert enumerator.create_mount_points(enumerator.list_disks()) is False
