"""
Linux-specific device handling implementation
Uses lsblk and udevadm for discovery, psutil for the mount table, umount and dd for erasing
"""

import json
import os
import subprocess
import logging
import psutil
from typing import Dict, IO, List, Optional, Tuple

from .base_handler import BaseDeviceHandler, BlockDeviceEntry, DeviceAttributes
from ..error_handler import DeviceQueryTimeout, EnumerationError, UnmountFailure
from ..models import BusType, OverwriteSource, UNKNOWN
from ..tool_manager import tool_manager

logger = logging.getLogger(__name__)

LSBLK_DEVICE_COLUMNS = "NAME,PATH,TYPE,SIZE,RM,TRAN,VENDOR,MODEL,SERIAL,FSTYPE,LABEL,MOUNTPOINT"
LVM_RAID_FS_TYPES = ("lvm2_member", "linux_raid_member", "ddf_raid_member", "isw_raid_member")
LVM_RAID_NODE_TYPES = ("lvm", "raid0", "raid1", "raid4", "raid5", "raid6", "raid10", "md", "dmraid")
UNMOUNT_TIMEOUT = 30
PROC_SWAPS = "/proc/swaps"

def _parse_flag(value) -> Optional[bool]:
    """lsblk reports RM as true/false in newer releases and "0"/"1" in older ones"""
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    text = str(value).strip().lower()
    if text in ("1", "true"):
        return True
    if text in ("0", "false"):
        return False
    return None

def _clean(value) -> str:
    if value is None:
        return UNKNOWN
    text = str(value).strip()
    return text if text else UNKNOWN

def _parse_size(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0

def _node_path(node: Dict) -> str:
    return node.get("path") or f"/dev/{node.get('name', '')}"

def parse_udev_properties(output: str) -> Dict[str, str]:
    """Parse ``udevadm info --query=property`` KEY=VALUE lines"""
    properties = {}
    for line in output.splitlines():
        if "=" in line:
            key, _, value = line.partition("=")
            properties[key.strip()] = value.strip()
    return properties

class LinuxDeviceHandler(BaseDeviceHandler):
    """Linux-specific device handler"""

    def __init__(self):
        self.tool_manager = tool_manager

    def enumerate_block_devices(self, timeout: float) -> List[BlockDeviceEntry]:
        """Get whole disks from lsblk"""
        cmd = ["lsblk", "-J", "-b", "-d", "-o", "NAME,PATH,TYPE,SIZE"]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired:
            raise EnumerationError(f"lsblk timed out after {timeout:.0f}s")
        except OSError as e:
            raise EnumerationError(f"Could not run lsblk: {e}")

        if result.returncode != 0:
            raise EnumerationError(f"lsblk failed: {result.stderr.strip()}")

        try:
            data = json.loads(result.stdout or "{}")
        except ValueError as e:
            raise EnumerationError(f"Unreadable lsblk output: {e}")

        entries = []
        for node in data.get("blockdevices", []):
            if node.get("type") != "disk":
                continue
            entries.append(BlockDeviceEntry(
                path=_node_path(node),
                size_bytes=_parse_size(node.get("size")),
                device_type=node.get("type", ""),
            ))
        return entries

    def query_device(self, path: str, timeout: float) -> DeviceAttributes:
        """Get device details from lsblk, filling gaps from udev"""
        cmd = ["lsblk", "-J", "-b", "-o", LSBLK_DEVICE_COLUMNS, path]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired:
            raise DeviceQueryTimeout(f"Detail query timed out after {timeout:.0f}s", device=path)
        except OSError as e:
            raise DeviceQueryTimeout(f"Detail query failed: {e}", device=path)

        if result.returncode != 0:
            raise DeviceQueryTimeout(f"Detail query failed: {result.stderr.strip()}", device=path)

        try:
            nodes = json.loads(result.stdout or "{}").get("blockdevices", [])
        except ValueError as e:
            raise DeviceQueryTimeout(f"Unreadable lsblk output: {e}", device=path)
        if not nodes:
            raise DeviceQueryTimeout("Device disappeared during query", device=path)

        root = nodes[0]
        udev = self._query_udev(path, timeout)
        return self._build_attributes(root, udev)

    def _query_udev(self, path: str, timeout: float) -> Dict[str, str]:
        """udev properties, or an empty dict when udevadm is unavailable"""
        udevadm = self.tool_manager.get_tool_path('udevadm')
        if not udevadm:
            return {}
        try:
            result = subprocess.run([udevadm, "info", "--query=property", f"--name={path}"],
                                    capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired:
            raise DeviceQueryTimeout(f"udev query timed out after {timeout:.0f}s", device=path)
        except OSError as e:
            logger.debug(f"udevadm failed for {path}: {e}")
            return {}
        if result.returncode != 0:
            return {}
        return parse_udev_properties(result.stdout)

    def _build_attributes(self, root: Dict, udev: Dict[str, str]) -> DeviceAttributes:
        partitions: List[str] = []
        mount_points: List[str] = []
        fs_types: List[str] = []
        labels: List[str] = []
        has_lvm_raid = False

        stack = [root]
        while stack:
            node = stack.pop(0)
            node_type = (node.get("type") or "").lower()
            if node is not root and node_type == "part":
                partitions.append(_node_path(node))
            if node_type in LVM_RAID_NODE_TYPES:
                has_lvm_raid = True
            mount_point = node.get("mountpoint")
            if mount_point and mount_point not in mount_points:
                mount_points.append(mount_point)
            fs_type = node.get("fstype")
            if fs_type:
                fs_types.append(fs_type)
                if fs_type.lower() in LVM_RAID_FS_TYPES:
                    has_lvm_raid = True
            label = node.get("label")
            if label:
                labels.append(label)
            stack.extend(node.get("children") or [])

        if udev.get("ID_FS_TYPE", "").lower() in LVM_RAID_FS_TYPES:
            has_lvm_raid = True
        if any(key.startswith("MD_") for key in udev):
            has_lvm_raid = True
        if udev.get("ID_FS_LABEL") and udev["ID_FS_LABEL"] not in labels:
            labels.append(udev["ID_FS_LABEL"])

        bus_type = BusType.from_transport(root.get("tran") or udev.get("ID_BUS"))
        serial = _clean(root.get("serial"))
        if serial == UNKNOWN:
            serial = _clean(udev.get("ID_SERIAL_SHORT"))
        vendor = _clean(root.get("vendor"))
        if vendor == UNKNOWN:
            vendor = _clean(udev.get("ID_VENDOR"))
        model = _clean(root.get("model"))
        if model == UNKNOWN:
            model = _clean(udev.get("ID_MODEL"))

        return DeviceAttributes(
            vendor=vendor,
            model=model,
            serial=serial,
            bus_type=bus_type,
            removable=_parse_flag(root.get("rm")),
            partitions=tuple(partitions),
            mount_points=tuple(mount_points),
            fs_types=tuple(fs_types),
            labels=tuple(labels),
            has_lvm_raid=has_lvm_raid,
        )

    def read_mount_table(self) -> Dict[str, Tuple[str, ...]]:
        """Mounted filesystems from psutil plus active swap areas"""
        table: Dict[str, List[str]] = {}
        for partition in psutil.disk_partitions(all=True):
            if not partition.device.startswith("/dev/"):
                continue
            mounts = table.setdefault(partition.device, [])
            if partition.mountpoint not in mounts:
                mounts.append(partition.mountpoint)

        try:
            with open(PROC_SWAPS, 'r') as f:
                for line in f.readlines()[1:]:
                    parts = line.split()
                    if parts and parts[0].startswith("/dev/"):
                        table.setdefault(parts[0], []).append("[SWAP]")
        except FileNotFoundError:
            pass

        return {device: tuple(mounts) for device, mounts in table.items()}

    def unmount(self, path: str):
        """Unmount a partition or device; an already unmounted target is fine"""
        try:
            # umount messages are matched below, so force untranslated output
            result = subprocess.run(["umount", path], capture_output=True, text=True,
                                    timeout=UNMOUNT_TIMEOUT, env={**os.environ, "LC_ALL": "C"})
        except subprocess.TimeoutExpired:
            raise UnmountFailure(f"umount {path} timed out", device=path)
        except OSError as e:
            raise UnmountFailure(f"umount {path} failed: {e}", device=path)

        if result.returncode != 0:
            stderr = result.stderr.strip()
            if "not mounted" in stderr:
                return
            raise UnmountFailure(f"umount {path} failed: {stderr}", device=path)
        logger.info(f"Unmounted {path}")

    def get_size_bytes(self, path: str) -> int:
        """Device size from blockdev"""
        blockdev = self.tool_manager.get_tool_path('blockdev')
        if not blockdev:
            return 0
        try:
            result = subprocess.run([blockdev, "--getsize64", path],
                                    capture_output=True, text=True, timeout=10)
        except (subprocess.TimeoutExpired, OSError):
            return 0
        if result.returncode != 0:
            return 0
        return _parse_size(result.stdout.strip())

    def start_overwrite(self, path: str, source: OverwriteSource, size_bytes: int,
                        block_size: str, log_file: IO):
        """Start dd writing exactly size_bytes from source onto the device"""
        cmd = [
            "dd",
            f"if={source.value}",
            f"of={path}",
            f"bs={block_size}",
            f"count={size_bytes}",
            "iflag=fullblock,count_bytes",
            "conv=fsync",
            "status=progress",
        ]
        logger.debug(f"Running: {' '.join(cmd)}")
        return subprocess.Popen(cmd, stdout=log_file, stderr=subprocess.STDOUT)
