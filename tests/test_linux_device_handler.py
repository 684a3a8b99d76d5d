import json
import subprocess
from collections import namedtuple
from unittest.mock import MagicMock

import pytest

from drive_shredder.core.error_handler import DeviceQueryTimeout, EnumerationError, UnmountFailure
from drive_shredder.core.models import UNKNOWN, BusType, OverwriteSource
from drive_shredder.core.platforms import linux_device_handler
from drive_shredder.core.platforms.linux_device_handler import LinuxDeviceHandler, parse_udev_properties

Completed = namedtuple("Completed", "returncode stdout stderr")
Partition = namedtuple("Partition", "device mountpoint fstype opts")

LSBLK_LIST = {
    "blockdevices": [
        {"name": "sda", "path": "/dev/sda", "type": "disk", "size": 512110190592},
        {"name": "sr0", "path": "/dev/sr0", "type": "rom", "size": 1073741312},
        {"name": "sdb", "type": "disk", "size": "15376318464"},
    ]
}

LSBLK_DETAIL = {
    "blockdevices": [{
        "name": "sdb", "path": "/dev/sdb", "type": "disk", "size": 15376318464, "rm": "1",
        "tran": "usb", "vendor": "SanDisk ", "model": "Cruzer Blade", "serial": None,
        "fstype": None, "label": None, "mountpoint": None,
        "children": [
            {"name": "sdb1", "path": "/dev/sdb1", "type": "part", "size": 15375269888,
             "fstype": "vfat", "label": "STICK", "mountpoint": "/media/user/STICK"},
            {"name": "sdb2", "path": "/dev/sdb2", "type": "part", "size": 1048576,
             "fstype": "LVM2_member", "label": None, "mountpoint": None},
        ],
    }]
}

UDEV = "ID_BUS=usb\nID_SERIAL_SHORT=4C530001\nID_VENDOR=SanDisk\n"

@pytest.fixture
def handler():
    handler = LinuxDeviceHandler()
    handler.tool_manager = MagicMock()
    handler.tool_manager.get_tool_path.side_effect = lambda name: f"/usr/bin/{name}"
    return handler

def fake_run(responses):
    calls = []

    def run(cmd, **kwargs):
        calls.append(cmd)
        for prefix, response in responses:
            if cmd[0].endswith(prefix):
                if isinstance(response, Exception):
                    raise response
                return response
        raise AssertionError(f"unexpected command {cmd}")
    return run, calls

def test_enumerate_keeps_disks_only(monkeypatch, handler):
    run, calls = fake_run([("lsblk", Completed(0, json.dumps(LSBLK_LIST), ""))])
    monkeypatch.setattr(subprocess, "run", run)
    entries = handler.enumerate_block_devices(10)
    assert [(e.path, e.size_bytes) for e in entries] == [("/dev/sda", 512110190592), ("/dev/sdb", 15376318464)]
    assert "-d" in calls[0]

def test_enumerate_timeout_raises(monkeypatch, handler):
    run, _ = fake_run([("lsblk", subprocess.TimeoutExpired("lsblk", 10))])
    monkeypatch.setattr(subprocess, "run", run)
    with pytest.raises(EnumerationError, match="timed out"):
        handler.enumerate_block_devices(10)

def test_enumerate_nonzero_exit_raises(monkeypatch, handler):
    run, _ = fake_run([("lsblk", Completed(32, "", "lsblk: permission denied"))])
    monkeypatch.setattr(subprocess, "run", run)
    with pytest.raises(EnumerationError):
        handler.enumerate_block_devices(10)

def test_query_device_merges_lsblk_and_udev(monkeypatch, handler):
    run, _ = fake_run([
        ("lsblk", Completed(0, json.dumps(LSBLK_DETAIL), "")),
        ("udevadm", Completed(0, UDEV, "")),
    ])
    monkeypatch.setattr(subprocess, "run", run)
    attributes = handler.query_device("/dev/sdb", 5)

    assert attributes.vendor == "SanDisk"
    assert attributes.model == "Cruzer Blade"
    assert attributes.serial == "4C530001"
    assert attributes.bus_type == BusType.USB
    assert attributes.removable is True
    assert attributes.partitions == ("/dev/sdb1", "/dev/sdb2")
    assert attributes.mount_points == ("/media/user/STICK",)
    assert attributes.labels == ("STICK",)
    assert attributes.has_lvm_raid is True

def test_query_device_without_udevadm(monkeypatch, handler):
    handler.tool_manager.get_tool_path.side_effect = lambda name: None
    detail = {"blockdevices": [{"name": "sdc", "path": "/dev/sdc", "type": "disk", "rm": False,
                                "tran": None, "vendor": "  ", "model": None, "serial": None}]}
    run, _ = fake_run([("lsblk", Completed(0, json.dumps(detail), ""))])
    monkeypatch.setattr(subprocess, "run", run)
    attributes = handler.query_device("/dev/sdc", 5)
    assert attributes.vendor == UNKNOWN
    assert attributes.bus_type == BusType.UNKNOWN
    assert attributes.removable is False
    assert attributes.has_lvm_raid is False

def test_query_timeout_raises(monkeypatch, handler):
    run, _ = fake_run([("lsblk", subprocess.TimeoutExpired("lsblk", 5))])
    monkeypatch.setattr(subprocess, "run", run)
    with pytest.raises(DeviceQueryTimeout):
        handler.query_device("/dev/sdb", 5)

def test_read_mount_table_includes_swap(monkeypatch, handler, tmp_path):
    swaps = tmp_path / "swaps"
    swaps.write_text("Filename\tType\tSize\tUsed\tPriority\n/dev/sda3 partition 2097148 0 -2\n")
    monkeypatch.setattr(linux_device_handler, "PROC_SWAPS", str(swaps))
    monkeypatch.setattr(linux_device_handler.psutil, "disk_partitions", lambda all=False: [
        Partition("/dev/sda2", "/", "ext4", "rw"),
        Partition("/dev/sdb1", "/media/user/STICK", "vfat", "rw"),
        Partition("proc", "/proc", "proc", "rw"),
    ])
    table = handler.read_mount_table()
    assert table == {
        "/dev/sda2": ("/",),
        "/dev/sdb1": ("/media/user/STICK",),
        "/dev/sda3": ("[SWAP]",),
    }

def test_unmount_ignores_not_mounted(monkeypatch, handler):
    run, _ = fake_run([("umount", Completed(32, "", "umount: /dev/sdb1: not mounted."))])
    monkeypatch.setattr(subprocess, "run", run)
    handler.unmount("/dev/sdb1")

def test_unmount_busy_raises(monkeypatch, handler):
    run, _ = fake_run([("umount", Completed(32, "", "umount: /media/x: target is busy."))])
    monkeypatch.setattr(subprocess, "run", run)
    with pytest.raises(UnmountFailure, match="target is busy"):
        handler.unmount("/dev/sdb1")

def test_start_overwrite_builds_dd_command(monkeypatch, handler, tmp_path):
    popen = MagicMock()
    monkeypatch.setattr(subprocess, "Popen", popen)
    with open(tmp_path / "dd.log", "w") as log_file:
        handler.start_overwrite("/dev/sdb", OverwriteSource.ZERO, 1048576, "4M", log_file)
    cmd = popen.call_args[0][0]
    assert cmd[:3] == ["dd", "if=/dev/zero", "of=/dev/sdb"]
    assert "bs=4M" in cmd
    assert "count=1048576" in cmd
    assert "iflag=fullblock,count_bytes" in cmd

def test_get_size_bytes(monkeypatch, handler):
    run, _ = fake_run([("blockdev", Completed(0, "15376318464\n", ""))])
    monkeypatch.setattr(subprocess, "run", run)
    assert handler.get_size_bytes("/dev/sdb") == 15376318464

def test_parse_udev_properties():
    assert parse_udev_properties("A=1\nB=two=2\nnoise\n") == {"A": "1", "B": "two=2"}

def test_unmount_forces_untranslated_messages(monkeypatch, handler):
    seen = {}

    def run(cmd, **kwargs):
        seen.update(kwargs)
        return Completed(32, "", "umount: /dev/sdb1: not mounted.")

    monkeypatch.setenv("LANG", "de_DE.UTF-8")
    monkeypatch.setattr(subprocess, "run", run)
    handler.unmount("/dev/sdb1")
    assert seen["env"]["LC_ALL"] == "C"
    assert seen["env"]["LANG"] == "de_DE.UTF-8"
