import threading

import pytest

from drive_shredder.core.error_handler import EnumerationError, UnmountFailure, error_handler
from drive_shredder.core.models import (
    BusType, ClassifiedDevice, Device, SafetyAssessment, SafetyLevel, SafetyReason,
)
from drive_shredder.core.platforms.base_handler import (
    BaseDeviceHandler, BlockDeviceEntry, DeviceAttributes,
)

GIB = 1024 ** 3

def make_device(path="/dev/sdb", size_bytes=8_000_000_000, bus_type=BusType.USB,
                mount_points=(), removable=None, partitions=(), **kwargs):
    return Device(path=path, size_bytes=size_bytes, bus_type=bus_type,
                  mount_points=tuple(mount_points), removable=removable,
                  partitions=tuple(partitions), **kwargs)

def make_classified(path="/dev/sdb", level=SafetyLevel.SAFE):
    reasons = {
        SafetyLevel.SAFE: (),
        SafetyLevel.CAUTION: (SafetyReason.MOUNTED,),
        SafetyLevel.DANGEROUS: (SafetyReason.INTERNAL,),
        SafetyLevel.SYSTEM: (SafetyReason.SYSTEM_MOUNT,),
    }[level]
    return ClassifiedDevice(make_device(path), SafetyAssessment(level, reasons))

class FakeProcess:
    """Stands in for a dd Popen handle"""

    def __init__(self, returncode=0, block=False):
        self._final = returncode
        self.returncode = None
        self.terminated = False
        self._release = threading.Event()
        if not block:
            self._release.set()

    def wait(self, timeout=None):
        self._release.wait(timeout)
        if self.returncode is None:
            self.returncode = self._final
        return self.returncode

    def poll(self):
        return self.returncode

    def terminate(self):
        self.terminated = True
        self.returncode = -15
        self._release.set()

    def release(self):
        self._release.set()

class FakeHandler(BaseDeviceHandler):
    """In-memory platform handler; never touches a real device"""

    def __init__(self, devices=(), attributes=None, mount_table=None):
        self.entries = [BlockDeviceEntry(d.path, d.size_bytes, "disk") for d in devices]
        self.attributes = attributes or {
            d.path: DeviceAttributes(bus_type=d.bus_type, removable=d.removable,
                                     partitions=d.partitions, mount_points=d.mount_points)
            for d in devices
        }
        self.mount_table = mount_table or {}
        self.enumeration_error = None
        self.unmount_failures = set()
        self.unmounted = []
        self.failing_passes = {}
        self.blocking = False
        self.overwrites = []
        self.processes = []
        self._lock = threading.Lock()

    def enumerate_block_devices(self, timeout):
        if self.enumeration_error:
            raise EnumerationError(self.enumeration_error)
        return list(self.entries)

    def query_device(self, path, timeout):
        value = self.attributes[path]
        if isinstance(value, Exception):
            raise value
        return value

    def read_mount_table(self):
        return dict(self.mount_table)

    def unmount(self, path):
        with self._lock:
            self.unmounted.append(path)
        if path in self.unmount_failures:
            raise UnmountFailure(f"umount {path} failed: target is busy", device=path)

    def start_overwrite(self, path, source, size_bytes, block_size, log_file):
        with self._lock:
            self.overwrites.append((path, source))
            pass_number = sum(1 for p, _ in self.overwrites if p == path)
        returncode = 1 if self.failing_passes.get(path) == pass_number else 0
        process = FakeProcess(returncode, block=self.blocking)
        with self._lock:
            self.processes.append(process)
        return process

    def sources_for(self, path):
        return [source for p, source in self.overwrites if p == path]

@pytest.fixture
def clean_error_history():
    error_handler.clear_history()
    yield
    error_handler.clear_history()

@pytest.fixture
def wipe_config(tmp_path):
    return {
        "wipe": {
            "stagger_delay_seconds": 0.0,
            "block_size": "1M",
            "report_dir": str(tmp_path / "reports"),
            "verify": False,
            "verify_sample_bytes": 1024,
            "pdf_certificates": False,
        },
    }
