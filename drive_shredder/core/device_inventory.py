"""
Device inventory
Enumerates block devices and normalizes them into Device records
"""

import logging
import concurrent.futures
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from .config import DEFAULT_CONFIG
from .error_handler import DeviceQueryTimeout, error_handler
from .models import BusType, Device, FilesystemSignature, HostFacts, sort_devices
from .platforms import get_platform_handler
from .platforms.base_handler import BaseDeviceHandler, BlockDeviceEntry

logger = logging.getLogger(__name__)

MAX_QUERY_WORKERS = 8

@dataclass(frozen=True)
class InventorySnapshot:
    """Devices and filesystem facts from one scan"""
    devices: Tuple[Device, ...] = ()
    signatures: Mapping[str, FilesystemSignature] = field(default_factory=dict)

class DeviceInventory:
    """Builds Device records from the platform handler"""

    def __init__(self, handler: Optional[BaseDeviceHandler] = None, config: Dict = None):
        self.handler = handler or get_platform_handler()
        inventory_config = (config or DEFAULT_CONFIG)["inventory"]
        self.query_timeout = float(inventory_config["query_timeout_seconds"])
        self.enumeration_timeout = float(inventory_config["enumeration_timeout_seconds"])

    def list_devices(self) -> List[Device]:
        """Get every whole-disk block device, sorted by path

        Raises:
            EnumerationError: the enumerator failed or timed out
        """
        return list(self.scan().devices)

    def scan(self) -> InventorySnapshot:
        """Enumerate devices and query their details concurrently"""
        entries = self.handler.enumerate_block_devices(self.enumeration_timeout)
        logger.info(f"Enumerated {len(entries)} block devices")
        if not entries:
            return InventorySnapshot()

        devices: List[Device] = []
        signatures: Dict[str, FilesystemSignature] = {}

        workers = min(MAX_QUERY_WORKERS, len(entries))
        # Not used as a context manager: leaving the block would wait on stalled queries
        executor = concurrent.futures.ThreadPoolExecutor(max_workers=workers)
        try:
            futures = [
                (entry, executor.submit(self.handler.query_device, entry.path, self.query_timeout))
                for entry in entries
            ]
            for entry, future in futures:
                device, signature = self._resolve(entry, future)
                devices.append(device)
                signatures[device.path] = signature
        finally:
            executor.shutdown(wait=False)

        return InventorySnapshot(tuple(sort_devices(devices)), signatures)

    def _resolve(self, entry: BlockDeviceEntry,
                 future: concurrent.futures.Future) -> Tuple[Device, FilesystemSignature]:
        """Turn a finished query into a Device, degrading to Unknown fields on failure"""
        try:
            attributes = future.result(timeout=self.query_timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            error = DeviceQueryTimeout(f"Detail query exceeded {self.query_timeout:.0f}s", device=entry.path)
            error_handler.handle_device_error(error, entry.path, "query")
            return self._unknown_device(entry), FilesystemSignature()
        except DeviceQueryTimeout as e:
            error_handler.handle_device_error(e, entry.path, "query")
            return self._unknown_device(entry), FilesystemSignature()
        except Exception as e:
            error = DeviceQueryTimeout(f"Detail query failed: {e}", device=entry.path)
            error_handler.handle_device_error(error, entry.path, "query")
            return self._unknown_device(entry), FilesystemSignature()

        device = Device(
            path=entry.path,
            vendor_name=attributes.vendor,
            model_name=attributes.model,
            serial=attributes.serial,
            size_bytes=entry.size_bytes,
            bus_type=attributes.bus_type,
            mount_points=attributes.mount_points,
            removable=attributes.removable,
            partitions=attributes.partitions,
        )
        signature = FilesystemSignature(
            fs_types=attributes.fs_types,
            labels=attributes.labels,
            has_lvm_raid=attributes.has_lvm_raid,
        )
        return device, signature

    def _unknown_device(self, entry: BlockDeviceEntry) -> Device:
        return Device(
            path=entry.path,
            size_bytes=entry.size_bytes,
            bus_type=BusType.UNKNOWN,
            removable=None,
            query_timed_out=True,
        )

    def host_facts(self, snapshot: InventorySnapshot) -> HostFacts:
        """Read the mount table fresh and pair it with the snapshot's signatures"""
        try:
            mount_table = self.handler.read_mount_table()
        except OSError as e:
            logger.warning(f"Could not read mount table: {e}")
            mount_table = {}
        return HostFacts(mount_table=mount_table, signatures=dict(snapshot.signatures))
