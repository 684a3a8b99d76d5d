"""
Data models for the drive shredder
Devices, safety assessments, selections and wipe task records
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple
from enum import Enum
import datetime

UNKNOWN = "Unknown"

class BusType(Enum):
    """Transport a block device is attached through"""
    USB = "usb"
    SATA = "sata"
    NVME = "nvme"
    SCSI = "scsi"
    UNKNOWN = "unknown"

    @classmethod
    def from_transport(cls, transport: Optional[str]) -> "BusType":
        """Map an lsblk TRAN / udev ID_BUS value onto a bus type"""
        if not transport:
            return cls.UNKNOWN
        value = transport.strip().lower()
        if value == "usb":
            return cls.USB
        if value in ("sata", "ata", "ide"):
            return cls.SATA
        if value == "nvme":
            return cls.NVME
        if value in ("scsi", "sas", "spi", "iscsi"):
            return cls.SCSI
        return cls.UNKNOWN

class SafetyLevel(Enum):
    """Ordered safety levels, least to most restrictive"""
    SAFE = 0
    CAUTION = 1
    DANGEROUS = 2
    SYSTEM = 3

    def __lt__(self, other):
        if not isinstance(other, SafetyLevel):
            return NotImplemented
        return self.value < other.value

    def __le__(self, other):
        if not isinstance(other, SafetyLevel):
            return NotImplemented
        return self.value <= other.value

    def __gt__(self, other):
        if not isinstance(other, SafetyLevel):
            return NotImplemented
        return self.value > other.value

    def __ge__(self, other):
        if not isinstance(other, SafetyLevel):
            return NotImplemented
        return self.value >= other.value

    @property
    def label(self) -> str:
        return self.name

class SafetyReason(Enum):
    """Rules that can fire during classification

    Each member carries the severity it imposes and the explanation shown
    to the operator.
    """
    SYSTEM_MOUNT = ("system mount point", SafetyLevel.SYSTEM)
    SWAP = ("active or configured swap", SafetyLevel.SYSTEM)
    VIRTUAL = ("virtual or loopback device", SafetyLevel.SYSTEM)
    INTERNAL = ("internal non-removable device", SafetyLevel.DANGEROUS)
    TOO_SMALL = ("smaller than 100 MiB", SafetyLevel.DANGEROUS)
    LINUX_FILESYSTEM = ("Linux filesystem on non-removable device", SafetyLevel.DANGEROUS)
    LVM_RAID = ("LVM/RAID metadata", SafetyLevel.DANGEROUS)
    INSTALL_MEDIA = ("installation media label", SafetyLevel.DANGEROUS)
    PRIMARY_DISK = ("conventional first system disk", SafetyLevel.DANGEROUS)
    QUERY_TIMEOUT = ("device details unavailable", SafetyLevel.CAUTION)
    MOUNTED = ("mounted at a non-critical path", SafetyLevel.CAUTION)
    LARGE_CAPACITY = ("1 TiB or larger with unclear removability", SafetyLevel.CAUTION)
    UNKNOWN_REMOVABILITY = ("removability cannot be determined", SafetyLevel.CAUTION)

    @property
    def description(self) -> str:
        return self.value[0]

    @property
    def severity(self) -> SafetyLevel:
        return self.value[1]

@dataclass(frozen=True)
class Device:
    """Immutable snapshot of a block device captured at scan time"""
    path: str
    vendor_name: str = UNKNOWN
    model_name: str = UNKNOWN
    serial: str = UNKNOWN
    size_bytes: int = 0
    bus_type: BusType = BusType.UNKNOWN
    mount_points: Tuple[str, ...] = ()
    removable: Optional[bool] = None
    partitions: Tuple[str, ...] = ()
    query_timed_out: bool = False

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def size_formatted(self) -> str:
        """Get formatted size string"""
        return format_size(self.size_bytes)

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.vendor_name, self.model_name) if p and p != UNKNOWN]
        return " ".join(parts) if parts else UNKNOWN

    @property
    def positively_removable(self) -> bool:
        """True when the OS reports a removable flag or a USB transport"""
        return self.removable is True or self.bus_type == BusType.USB

    def __str__(self):
        return f"{self.path} ({self.size_formatted}) - {self.display_name}"

@dataclass(frozen=True)
class FilesystemSignature:
    """Filesystem facts for a device and its partitions"""
    fs_types: Tuple[str, ...] = ()
    labels: Tuple[str, ...] = ()
    has_lvm_raid: bool = False

@dataclass(frozen=True)
class HostFacts:
    """Host-wide facts the classifier consults alongside a Device"""
    mount_table: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    signatures: Mapping[str, FilesystemSignature] = field(default_factory=dict)

    def mounts_for(self, device: Device) -> Tuple[str, ...]:
        """Every mount point of the device itself or any of its partitions"""
        mounts: List[str] = list(device.mount_points)
        for source in (device.path,) + tuple(device.partitions):
            for mount_point in self.mount_table.get(source, ()):
                if mount_point not in mounts:
                    mounts.append(mount_point)
        return tuple(mounts)

    def signature_for(self, device: Device) -> FilesystemSignature:
        return self.signatures.get(device.path, FilesystemSignature())

@dataclass(frozen=True)
class SafetyAssessment:
    """Classification result for one device"""
    level: SafetyLevel
    reasons: Tuple[SafetyReason, ...] = ()

    @property
    def descriptions(self) -> Tuple[str, ...]:
        return tuple(reason.description for reason in self.reasons)

    @property
    def is_safe(self) -> bool:
        return self.level == SafetyLevel.SAFE

@dataclass(frozen=True)
class ClassifiedDevice:
    """A device together with the assessment shown in the current round"""
    device: Device
    assessment: SafetyAssessment

    @property
    def path(self) -> str:
        return self.device.path

    @property
    def level(self) -> SafetyLevel:
        return self.assessment.level

@dataclass(frozen=True)
class SelectionSet:
    """Ordered, duplicate-free sequence of device paths

    Add-only: ``with_path`` returns a new set and never mutates this one.
    """
    paths: Tuple[str, ...] = ()

    def with_path(self, path: str) -> "SelectionSet":
        if path in self.paths:
            return self
        return SelectionSet(self.paths + (path,))

    def __contains__(self, path) -> bool:
        return path in self.paths

    def __len__(self) -> int:
        return len(self.paths)

    def __iter__(self):
        return iter(self.paths)

class WipeTaskState(Enum):
    """Lifecycle of a wipe task"""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (WipeTaskState.SUCCEEDED, WipeTaskState.FAILED)

class OverwriteSource(Enum):
    """Byte source fed to the overwrite primitive"""
    RANDOM = "/dev/urandom"
    ZERO = "/dev/zero"

@dataclass(frozen=True)
class OverwritePass:
    """One step of the erase sequence"""
    number: int
    description: str
    source: OverwriteSource

@dataclass
class PassResult:
    """Timing and outcome of one overwrite pass"""
    overwrite_pass: OverwritePass
    started_at: datetime.datetime
    finished_at: Optional[datetime.datetime] = None
    success: bool = False
    error_message: Optional[str] = None

    @property
    def duration_seconds(self) -> float:
        if not self.finished_at:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

@dataclass(frozen=True)
class WipeSummary:
    """Terminal record of one task, kept for the final report"""
    device: Device
    state: WipeTaskState
    report_path: str
    duration_seconds: float
    error_message: Optional[str] = None
    certificate_path: Optional[str] = None

def format_size(size_bytes: int) -> str:
    """Human readable size using binary units"""
    if size_bytes <= 0:
        return UNKNOWN
    size = float(size_bytes)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if size < 1024:
            return f"{size:.1f}{unit}" if unit != "B" else f"{int(size)}B"
        size /= 1024
    return f"{size:.1f}TiB"

def format_duration(seconds: float) -> str:
    """Format seconds as 1h 2m 3s"""
    total = int(seconds)
    hours = total // 3600
    minutes = (total % 3600) // 60
    secs = total % 60
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    elif minutes > 0:
        return f"{minutes}m {secs}s"
    else:
        return f"{secs}s"

def sort_devices(devices) -> List[Device]:
    """Stable, user-visible ordering of devices"""
    return sorted(devices, key=lambda device: device.path)

def group_by_level(classified) -> Dict[SafetyLevel, List[ClassifiedDevice]]:
    groups: Dict[SafetyLevel, List[ClassifiedDevice]] = {level: [] for level in SafetyLevel}
    for entry in classified:
        groups[entry.level].append(entry)
    return groups
