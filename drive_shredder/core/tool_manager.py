"""
Tool Manager for the external commands the shredder shells out to
Resolves command paths once and reports what is missing
"""

import platform
import subprocess
import logging
from typing import Optional, Dict, List

from .error_handler import MissingToolError

logger = logging.getLogger(__name__)

REQUIRED_TOOLS = ['lsblk', 'dd', 'umount']
OPTIONAL_TOOLS = ['udevadm', 'blockdev']

# Package that ships each tool on Debian-family systems
TOOL_PACKAGES = {
    'lsblk': 'util-linux',
    'umount': 'util-linux',
    'blockdev': 'util-linux',
    'dd': 'coreutils',
    'udevadm': 'udev',
}

class ToolManager:
    """Manages detection of required and optional system tools"""

    def __init__(self):
        self.system = platform.system().lower()
        self.tool_paths: Dict[str, Optional[str]] = {}

    def get_tool_path(self, tool_name: str) -> Optional[str]:
        """
        Get the path to a tool

        Returns:
            Path to tool or None if not available
        """
        if tool_name in self.tool_paths:
            return self.tool_paths[tool_name]

        path = self._find_system_tool(tool_name)
        self.tool_paths[tool_name] = path
        if path:
            logger.debug(f"Using system {tool_name}: {path}")
        else:
            logger.debug(f"Tool {tool_name} not available")
        return path

    def _find_system_tool(self, command: str) -> Optional[str]:
        """Locate a command on PATH"""
        try:
            result = subprocess.run(["which", command],
                                    capture_output=True,
                                    text=True,
                                    timeout=5)
            if result.returncode == 0 and result.stdout.strip():
                return result.stdout.strip().splitlines()[0]
            return None
        except (subprocess.TimeoutExpired, FileNotFoundError):
            return None

    def is_tool_available(self, tool_name: str) -> bool:
        """Check if a tool is available"""
        return self.get_tool_path(tool_name) is not None

    def get_missing_tools(self, tools: List[str] = None) -> List[str]:
        """Get list of missing tools"""
        tools = REQUIRED_TOOLS if tools is None else tools
        return [tool for tool in tools if not self.is_tool_available(tool)]

    def get_installation_suggestions(self, missing: List[str]) -> Dict[str, str]:
        """Get installation suggestions for missing tools"""
        return {tool: f"sudo apt-get install {TOOL_PACKAGES.get(tool, tool)}" for tool in missing}

    def require_tools(self):
        """Raise MissingToolError unless every required tool is installed"""
        if self.system != "linux":
            raise MissingToolError(f"Unsupported platform: {self.system} (Linux only)")

        missing = self.get_missing_tools()
        if missing:
            suggestions = self.get_installation_suggestions(missing)
            hint = "; ".join(suggestions[tool] for tool in missing)
            raise MissingToolError(f"Missing required commands: {', '.join(missing)}. Install with: {hint}")

        for tool in self.get_missing_tools(OPTIONAL_TOOLS):
            logger.warning(f"Optional tool {tool} not found; some device details will be unavailable")

        logger.info(f"Tool check passed: {', '.join(REQUIRED_TOOLS)}")

# Global instance
tool_manager = ToolManager()
