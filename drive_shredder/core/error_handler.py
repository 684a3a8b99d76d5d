"""
Error taxonomy and error handling system for the drive shredder
Typed exceptions for every failure mode, plus a recorder that logs and summarizes them
"""

import logging
import traceback
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import threading

logger = logging.getLogger(__name__)

class ErrorSeverity(Enum):
    """Error severity levels"""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

class ErrorCategory(Enum):
    """Error categories"""
    ENUMERATION = "enumeration"
    DEVICE_QUERY = "device_query"
    SELECTION = "selection"
    CONFIRMATION = "confirmation"
    UNMOUNT = "unmount"
    WIPE = "wipe"
    VERIFICATION = "verification"
    SETUP = "setup"
    SYSTEM = "system"

class ShredderError(Exception):
    """Base class for every error raised by the drive shredder"""
    category = ErrorCategory.SYSTEM
    severity = ErrorSeverity.ERROR

    def __init__(self, message: str, device: Optional[str] = None):
        super().__init__(message)
        self.device = device

class EnumerationError(ShredderError):
    """The OS block-device enumerator failed or timed out"""
    category = ErrorCategory.ENUMERATION
    severity = ErrorSeverity.CRITICAL

class DeviceQueryTimeout(ShredderError):
    """A per-device attribute query stalled or failed"""
    category = ErrorCategory.DEVICE_QUERY
    severity = ErrorSeverity.WARNING

class InvalidSelectionInput(ShredderError):
    """Operator input could not be turned into a selection"""
    category = ErrorCategory.SELECTION
    severity = ErrorSeverity.INFO

class UnmountFailure(ShredderError):
    """A partition or device could not be unmounted; the erase still proceeds"""
    category = ErrorCategory.UNMOUNT
    severity = ErrorSeverity.WARNING

class WipePassFailure(ShredderError):
    """An overwrite pass failed; fatal to that device's task only"""
    category = ErrorCategory.WIPE
    severity = ErrorSeverity.ERROR

    def __init__(self, message: str, device: Optional[str] = None, pass_number: int = 0):
        super().__init__(message, device)
        self.pass_number = pass_number

class VerificationFailure(ShredderError):
    """Post-wipe sampling found non-zero data"""
    category = ErrorCategory.VERIFICATION
    severity = ErrorSeverity.ERROR

class ConfirmationMismatch(ShredderError):
    """The typed confirmation phrase did not match; the run is aborted"""
    category = ErrorCategory.CONFIRMATION
    severity = ErrorSeverity.INFO

class MissingToolError(ShredderError):
    """A required external command is not installed"""
    category = ErrorCategory.SETUP
    severity = ErrorSeverity.CRITICAL

class WipeInterrupted(ShredderError):
    """The operator interrupted running wipe tasks"""
    category = ErrorCategory.WIPE
    severity = ErrorSeverity.CRITICAL

@dataclass
class ErrorInfo:
    """Recorded error information"""
    error_id: str
    timestamp: datetime
    severity: ErrorSeverity
    category: ErrorCategory
    message: str
    device: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)
    suggestions: List[str] = field(default_factory=list)
    recoverable: bool = True
    traceback_info: str = ""

class ErrorHandler:
    """Records, logs and summarizes errors raised during a run

    Wipe tasks report from their own threads, so history updates are locked.
    """

    def __init__(self, max_history_size: int = 1000):
        self.error_history: List[ErrorInfo] = []
        self.max_history_size = max_history_size
        self._lock = threading.Lock()
        self._counter = 0

    def handle_error(self, error: Exception, context: Dict[str, Any] = None,
                     severity: ErrorSeverity = None,
                     category: ErrorCategory = None) -> ErrorInfo:
        """Record an error and log it"""
        context = context or {}
        if isinstance(error, ShredderError):
            severity = severity or error.severity
            category = category or error.category
            device = error.device or context.get("device")
        else:
            severity = severity or ErrorSeverity.ERROR
            category = category or ErrorCategory.SYSTEM
            device = context.get("device")

        with self._lock:
            self._counter += 1
            error_info = ErrorInfo(
                error_id=f"err_{int(datetime.now().timestamp())}_{self._counter}",
                timestamp=datetime.now(),
                severity=severity,
                category=category,
                message=str(error),
                device=device,
                context=context,
                suggestions=self._get_suggestions(category),
                recoverable=self._is_recoverable(category),
                traceback_info=traceback.format_exc() if severity in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL) else "",
            )
            self.error_history.append(error_info)
            if len(self.error_history) > self.max_history_size:
                self.error_history.pop(0)

        self._log_error(error_info)

        return error_info

    def handle_device_error(self, error: Exception, device: str, operation: str = "") -> ErrorInfo:
        """Record an error that belongs to a single device"""
        context = {
            "device": device,
            "operation": operation,
            "error_type": type(error).__name__
        }
        return self.handle_error(error, context)

    def _get_suggestions(self, category: ErrorCategory) -> List[str]:
        """Get suggestions for resolving the error"""
        if category == ErrorCategory.ENUMERATION:
            return ["Run as root", "Check that lsblk (util-linux) is installed"]
        elif category == ErrorCategory.DEVICE_QUERY:
            return ["Reconnect the device", "Use 'refresh' to rescan"]
        elif category == ErrorCategory.UNMOUNT:
            return ["Close programs using the device", "Check 'lsof' for open files"]
        elif category == ErrorCategory.WIPE:
            return ["Check the per-device log file", "Check dmesg for I/O errors",
                    "The device may be partially wiped; wipe it again"]
        elif category == ErrorCategory.VERIFICATION:
            return ["Wipe the device again", "The device may be failing"]
        elif category == ErrorCategory.SETUP:
            return ["Install the missing tools and retry"]
        return []

    def _is_recoverable(self, category: ErrorCategory) -> bool:
        """Determine if the error is recoverable"""
        return category not in (ErrorCategory.SETUP, ErrorCategory.ENUMERATION)

    def _log_error(self, error_info: ErrorInfo):
        """Log the error with appropriate level"""
        log_message = f"[{error_info.error_id}] {error_info.message}"
        if error_info.device:
            log_message += f" | Device: {error_info.device}"
        if not error_info.recoverable:
            log_message += " | not recoverable"

        if error_info.severity == ErrorSeverity.CRITICAL:
            logger.critical(log_message)
        elif error_info.severity == ErrorSeverity.ERROR:
            logger.error(log_message)
        elif error_info.severity == ErrorSeverity.WARNING:
            logger.warning(log_message)
        else:
            logger.info(log_message)

        if error_info.traceback_info and error_info.traceback_info.strip() != "NoneType: None":
            logger.debug(f"Traceback for {error_info.error_id}:\n{error_info.traceback_info}")

    def get_error_history(self, limit: int = None) -> List[ErrorInfo]:
        """Get error history"""
        with self._lock:
            if limit:
                return self.error_history[-limit:]
            return self.error_history.copy()

    def get_errors_for_device(self, device: str) -> List[ErrorInfo]:
        with self._lock:
            return [error for error in self.error_history if error.device == device]

    def clear_history(self):
        """Clear error history"""
        with self._lock:
            self.error_history.clear()
        logger.info("Error history cleared")

    def get_error_summary(self) -> Dict[str, Any]:
        """Get error summary statistics"""
        history = self.get_error_history()
        if not history:
            return {"total": 0}

        summary = {
            "total": len(history),
            "by_severity": {},
            "by_category": {},
        }
        for severity in ErrorSeverity:
            summary["by_severity"][severity.value] = sum(1 for e in history if e.severity == severity)
        for category in ErrorCategory:
            count = sum(1 for e in history if e.category == category)
            if count:
                summary["by_category"][category.value] = count
        return summary

# Global error handler instance
error_handler = ErrorHandler()
