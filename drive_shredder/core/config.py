"""
Configuration loading for the drive shredder
JSON file deep-merged over built-in defaults, with clamping of numeric bounds
"""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "drive_shredder.json"

MAX_STAGGER_DELAY = 30.0

DEFAULT_CONFIG: Dict[str, Any] = {
    "safety": {
        "critical_mount_points": ["/", "/boot", "/boot/efi", "/home", "/usr", "/var", "/opt", "/etc"],
        "min_size_bytes": 100 * 1024 * 1024,
        "large_capacity_bytes": 1024 ** 4,
        "primary_disk_paths": ["/dev/sda", "/dev/vda", "/dev/hda", "/dev/nvme0n1"],
        "virtual_device_prefixes": ["/dev/loop", "/dev/ram", "/dev/zram", "/dev/dm-", "/dev/md"],
        "linux_filesystems": ["ext2", "ext3", "ext4", "xfs", "btrfs"],
        "installation_media_patterns": ["*ubuntu*", "*debian*", "*fedora*", "*archiso*", "*arch_*",
                                        "*mint*", "*centos*", "*rhel*", "*opensuse*", "*kali*"],
        "require_system_acknowledgment": True,
    },
    "inventory": {
        "query_timeout_seconds": 5.0,
        "enumeration_timeout_seconds": 10.0,
    },
    "wipe": {
        "stagger_delay_seconds": 2.0,
        "block_size": "1M",
        "report_dir": "/tmp/wipe_reports",
        "verify": False,
        "verify_sample_bytes": 1024 * 1024,
        "pdf_certificates": False,
    },
    "monitor": {
        "poll_interval_seconds": 2.0,
    },
    "logging": {
        "log_dir": "logs",
    },
}

def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp a number into [lower, upper]"""
    return max(lower, min(upper, value))

def deep_merge_config(default: Dict, user: Dict) -> Dict:
    """Deep merge user configuration with defaults"""
    result = copy.deepcopy(default)
    for key, value in user.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge_config(result[key], value)
        else:
            result[key] = value
    return result

def _normalize(config: Dict) -> Dict:
    """Coerce and clamp values that feed timeouts and delays"""
    inventory = config["inventory"]
    inventory["query_timeout_seconds"] = clamp(float(inventory["query_timeout_seconds"]), 1.0, 60.0)
    inventory["enumeration_timeout_seconds"] = clamp(float(inventory["enumeration_timeout_seconds"]), 1.0, 60.0)

    wipe = config["wipe"]
    wipe["stagger_delay_seconds"] = clamp(float(wipe["stagger_delay_seconds"]), 0.0, MAX_STAGGER_DELAY)

    monitor = config["monitor"]
    monitor["poll_interval_seconds"] = clamp(float(monitor["poll_interval_seconds"]), 0.1, 5.0)
    return config

def load_config(config_path: Optional[str] = None) -> Dict:
    """Load configuration from a JSON file

    An explicit path that cannot be read or parsed is an error. Without an
    explicit path, ``./drive_shredder.json`` is used when present, otherwise
    the defaults.
    """
    if config_path:
        path = Path(config_path)
        with open(path, 'r') as f:
            user_config = json.load(f)
        logger.info(f"Loaded configuration from {path}")
        return _normalize(deep_merge_config(DEFAULT_CONFIG, user_config))

    path = Path.cwd() / DEFAULT_CONFIG_NAME
    if path.exists():
        try:
            with open(path, 'r') as f:
                user_config = json.load(f)
            logger.info(f"Loaded configuration from {path}")
            return _normalize(deep_merge_config(DEFAULT_CONFIG, user_config))
        except (OSError, ValueError) as e:
            logger.error(f"Error loading configuration {path}: {e}; using defaults")

    logger.info("No configuration file found, using defaults")
    return _normalize(copy.deepcopy(DEFAULT_CONFIG))

def apply_overrides(config: Dict, overrides: Dict[str, Dict[str, Any]]) -> Dict:
    """Apply command-line overrides (None values are ignored) and re-clamp"""
    cleaned = {
        section: {key: value for key, value in values.items() if value is not None}
        for section, values in overrides.items()
    }
    return _normalize(deep_merge_config(config, cleaned))
