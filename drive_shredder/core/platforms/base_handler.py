"""
Base class for platform-specific device handlers
The handler is the only place the shredder talks to the operating system
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, IO, List, Optional, Tuple

from ..models import BusType, OverwriteSource, UNKNOWN

@dataclass(frozen=True)
class BlockDeviceEntry:
    """One row of the OS block-device enumeration"""
    path: str
    size_bytes: int
    device_type: str

@dataclass(frozen=True)
class DeviceAttributes:
    """Result of the per-device attribute query"""
    vendor: str = UNKNOWN
    model: str = UNKNOWN
    serial: str = UNKNOWN
    bus_type: BusType = BusType.UNKNOWN
    removable: Optional[bool] = None
    partitions: Tuple[str, ...] = ()
    mount_points: Tuple[str, ...] = ()
    fs_types: Tuple[str, ...] = ()
    labels: Tuple[str, ...] = ()
    has_lvm_raid: bool = False

class BaseDeviceHandler(ABC):
    """Abstract base class for platform-specific device handlers"""

    @abstractmethod
    def enumerate_block_devices(self, timeout: float) -> List[BlockDeviceEntry]:
        """List whole-disk block devices; raises EnumerationError"""
        pass

    @abstractmethod
    def query_device(self, path: str, timeout: float) -> DeviceAttributes:
        """Query vendor/model/bus/mount facts; raises DeviceQueryTimeout"""
        pass

    @abstractmethod
    def read_mount_table(self) -> Dict[str, Tuple[str, ...]]:
        """Map source device paths to their mount points"""
        pass

    @abstractmethod
    def unmount(self, path: str):
        """Unmount a device or partition; raises UnmountFailure"""
        pass

    @abstractmethod
    def start_overwrite(self, path: str, source: OverwriteSource, size_bytes: int,
                        block_size: str, log_file: IO):
        """Start one overwrite pass and return the running process handle

        The handle must offer ``wait()``, ``poll()``, ``terminate()`` and
        ``returncode`` like ``subprocess.Popen``.
        """
        pass

    def get_size_bytes(self, path: str) -> int:
        """Size of a device in bytes, or 0 when unknown"""
        return 0
