"""
Platform-specific device handlers
"""

import platform

from .base_handler import BaseDeviceHandler, BlockDeviceEntry, DeviceAttributes

def get_platform_handler() -> BaseDeviceHandler:
    """Return the device handler for the running operating system"""
    system = platform.system().lower()
    if system == "linux":
        from .linux_device_handler import LinuxDeviceHandler
        return LinuxDeviceHandler()
    raise NotImplementedError(f"Unsupported platform: {system}")
