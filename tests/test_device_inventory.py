import time

import pytest

from drive_shredder.core.config import DEFAULT_CONFIG, deep_merge_config
from drive_shredder.core.device_inventory import DeviceInventory
from drive_shredder.core.error_handler import (
    DeviceQueryTimeout, EnumerationError, ErrorCategory, error_handler,
)
from drive_shredder.core.models import UNKNOWN, BusType
from drive_shredder.core.platforms.base_handler import DeviceAttributes

from conftest import FakeHandler, make_device

def test_devices_sorted_by_path():
    handler = FakeHandler([make_device("/dev/sdc"), make_device("/dev/sdb"), make_device("/dev/nvme1n1")])
    devices = DeviceInventory(handler).list_devices()
    assert [d.path for d in devices] == ["/dev/nvme1n1", "/dev/sdb", "/dev/sdc"]

def test_attributes_flow_into_device_and_signature():
    handler = FakeHandler([make_device("/dev/sdb")])
    handler.attributes["/dev/sdb"] = DeviceAttributes(
        vendor="SanDisk", model="Ultra", serial="4C53", bus_type=BusType.USB, removable=True,
        partitions=("/dev/sdb1",), mount_points=("/media/stick",), fs_types=("vfat",),
        labels=("STICK",),
    )
    snapshot = DeviceInventory(handler).scan()
    device = snapshot.devices[0]
    assert device.display_name == "SanDisk Ultra"
    assert device.partitions == ("/dev/sdb1",)
    assert device.removable is True
    assert snapshot.signatures["/dev/sdb"].labels == ("STICK",)

def test_empty_enumeration_returns_empty_list():
    assert DeviceInventory(FakeHandler([])).list_devices() == []

def test_enumeration_failure_raises():
    handler = FakeHandler([make_device("/dev/sdb")])
    handler.enumeration_error = "lsblk: command failed"
    with pytest.raises(EnumerationError):
        DeviceInventory(handler).list_devices()

def test_failed_query_degrades_to_unknown(clean_error_history):
    handler = FakeHandler([make_device("/dev/sdb"), make_device("/dev/sdc")])
    handler.attributes["/dev/sdc"] = DeviceQueryTimeout("udev query timed out", device="/dev/sdc")
    devices = DeviceInventory(handler).list_devices()

    ok, stalled = devices
    assert ok.query_timed_out is False
    assert stalled.query_timed_out is True
    assert stalled.vendor_name == UNKNOWN
    assert stalled.bus_type == BusType.UNKNOWN
    assert stalled.removable is None
    assert stalled.size_bytes == 8_000_000_000
    assert error_handler.get_errors_for_device("/dev/sdc")[0].category == ErrorCategory.DEVICE_QUERY

def test_stalled_query_does_not_block_other_devices(clean_error_history):
    class SlowHandler(FakeHandler):
        def query_device(self, path, timeout):
            if path == "/dev/sdb":
                time.sleep(3)
            return super().query_device(path, timeout)

    config = deep_merge_config(DEFAULT_CONFIG, {"inventory": {"query_timeout_seconds": 1.0}})
    handler = SlowHandler([make_device("/dev/sdb"), make_device("/dev/sdc")])
    started = time.monotonic()
    devices = DeviceInventory(handler, config).list_devices()
    assert time.monotonic() - started < 2.5
    assert devices[0].query_timed_out is True
    assert devices[1].query_timed_out is False

def test_host_facts_reads_mount_table_fresh():
    handler = FakeHandler([make_device("/dev/sdb")])
    inventory = DeviceInventory(handler)
    snapshot = inventory.scan()
    handler.mount_table = {"/dev/sdb": ("/mnt/x",)}
    facts = inventory.host_facts(snapshot)
    assert facts.mounts_for(snapshot.devices[0]) == ("/mnt/x",)
