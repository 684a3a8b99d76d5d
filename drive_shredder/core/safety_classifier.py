"""
Safety classification for block devices
Rule-based assessment of how dangerous it would be to erase a device
"""

import fnmatch
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple

from .config import DEFAULT_CONFIG
from .models import (
    BusType, ClassifiedDevice, Device, FilesystemSignature, HostFacts,
    SafetyAssessment, SafetyLevel, SafetyReason,
)

logger = logging.getLogger(__name__)

SWAP_MARKERS = ("[SWAP]", "swap")

@dataclass(frozen=True)
class SafetyPolicy:
    """Thresholds and patterns the rules are evaluated against"""
    critical_mount_points: Tuple[str, ...]
    min_size_bytes: int
    large_capacity_bytes: int
    primary_disk_paths: Tuple[str, ...]
    virtual_device_prefixes: Tuple[str, ...]
    linux_filesystems: Tuple[str, ...]
    installation_media_patterns: Tuple[str, ...]

    @classmethod
    def from_config(cls, safety: Dict) -> "SafetyPolicy":
        return cls(
            critical_mount_points=tuple(safety["critical_mount_points"]),
            min_size_bytes=int(safety["min_size_bytes"]),
            large_capacity_bytes=int(safety["large_capacity_bytes"]),
            primary_disk_paths=tuple(safety["primary_disk_paths"]),
            virtual_device_prefixes=tuple(safety["virtual_device_prefixes"]),
            linux_filesystems=tuple(fs.lower() for fs in safety["linux_filesystems"]),
            installation_media_patterns=tuple(p.lower() for p in safety["installation_media_patterns"]),
        )

DEFAULT_POLICY = SafetyPolicy.from_config(DEFAULT_CONFIG["safety"])

@dataclass(frozen=True)
class _Facts:
    """Everything a rule may look at for one device"""
    device: Device
    mounts: Tuple[str, ...]
    signature: FilesystemSignature
    policy: SafetyPolicy

def _is_swap(mount_point: str) -> bool:
    return mount_point in SWAP_MARKERS

def _system_mount(facts: _Facts) -> bool:
    return any(mp in facts.policy.critical_mount_points for mp in facts.mounts)

def _swap(facts: _Facts) -> bool:
    if any(_is_swap(mp) for mp in facts.mounts):
        return True
    return any(fs.lower() == "swap" for fs in facts.signature.fs_types)

def _virtual(facts: _Facts) -> bool:
    return facts.device.path.startswith(facts.policy.virtual_device_prefixes)

def _internal(facts: _Facts) -> bool:
    return facts.device.removable is False and facts.device.bus_type != BusType.USB

def _too_small(facts: _Facts) -> bool:
    return facts.device.size_bytes < facts.policy.min_size_bytes

def _linux_filesystem(facts: _Facts) -> bool:
    if facts.device.removable is True:
        return False
    return any(fs.lower() in facts.policy.linux_filesystems for fs in facts.signature.fs_types)

def _lvm_raid(facts: _Facts) -> bool:
    return facts.signature.has_lvm_raid

def _install_media(facts: _Facts) -> bool:
    for label in facts.signature.labels:
        lowered = label.lower()
        if any(fnmatch.fnmatch(lowered, pattern) for pattern in facts.policy.installation_media_patterns):
            return True
    return False

def _primary_disk(facts: _Facts) -> bool:
    return facts.device.path in facts.policy.primary_disk_paths and not facts.device.positively_removable

def _query_timeout(facts: _Facts) -> bool:
    return facts.device.query_timed_out

def _mounted(facts: _Facts) -> bool:
    return any(
        mp not in facts.policy.critical_mount_points and not _is_swap(mp)
        for mp in facts.mounts
    )

def _large_capacity(facts: _Facts) -> bool:
    return (facts.device.size_bytes >= facts.policy.large_capacity_bytes
            and not facts.device.positively_removable)

def _unknown_removability(facts: _Facts) -> bool:
    return facts.device.removable is None and facts.device.bus_type != BusType.USB

# Display order of reasons follows this table.
RULES: List[Tuple[SafetyReason, Callable[[_Facts], bool]]] = [
    (SafetyReason.SYSTEM_MOUNT, _system_mount),
    (SafetyReason.SWAP, _swap),
    (SafetyReason.VIRTUAL, _virtual),
    (SafetyReason.INTERNAL, _internal),
    (SafetyReason.TOO_SMALL, _too_small),
    (SafetyReason.LINUX_FILESYSTEM, _linux_filesystem),
    (SafetyReason.LVM_RAID, _lvm_raid),
    (SafetyReason.INSTALL_MEDIA, _install_media),
    (SafetyReason.PRIMARY_DISK, _primary_disk),
    (SafetyReason.QUERY_TIMEOUT, _query_timeout),
    (SafetyReason.MOUNTED, _mounted),
    (SafetyReason.LARGE_CAPACITY, _large_capacity),
    (SafetyReason.UNKNOWN_REMOVABILITY, _unknown_removability),
]

def classify(device: Device, host_facts: HostFacts = None,
             policy: SafetyPolicy = DEFAULT_POLICY) -> SafetyAssessment:
    """Assess a device against every rule

    The level is the highest severity among the rules that fired. With no
    rule firing, a device is SAFE only when it is positively removable.
    """
    host_facts = host_facts or HostFacts()
    facts = _Facts(
        device=device,
        mounts=host_facts.mounts_for(device),
        signature=host_facts.signature_for(device),
        policy=policy,
    )

    reasons = tuple(reason for reason, rule in RULES if rule(facts))

    if not reasons:
        if device.positively_removable:
            return SafetyAssessment(SafetyLevel.SAFE, ())
        reasons = (SafetyReason.UNKNOWN_REMOVABILITY,)

    level = max(reason.severity for reason in reasons)
    return SafetyAssessment(level, reasons)

def classify_all(devices, host_facts: HostFacts,
                 policy: SafetyPolicy = DEFAULT_POLICY):
    """Classify a list of devices, keeping their order"""
    classified = []
    for device in devices:
        assessment = classify(device, host_facts, policy)
        logger.debug(f"{device.path}: {assessment.level.name} {list(assessment.descriptions)}")
        classified.append(ClassifiedDevice(device, assessment))
    return classified
