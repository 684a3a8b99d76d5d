"""
Per-device wipe report files
Each wipe task owns one plain-text report and one raw dd log beside it
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import IO, Optional

from .models import Device, PassResult, WipeTaskState, format_duration

logger = logging.getLogger(__name__)

WIPE_STANDARD = "DoD 5220.22-M (3 passes + zero)"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

def report_paths(report_dir: str, device: Device, when: datetime = None):
    """Report and raw-log paths for a device, stamped with the start time"""
    when = when or datetime.now()
    stem = f"wipe_report_{device.name}_{when.strftime('%Y%m%d_%H%M%S')}"
    directory = Path(report_dir)
    return directory / f"{stem}.txt", directory / f"{stem}.log"

class WipeReport:
    """Append-only report for one device

    The header is written on ``open``; every later call appends so a crash
    still leaves a readable partial transcript.
    """

    def __init__(self, report_dir: str, device: Device, started_at: datetime = None):
        self.device = device
        self.started_at = started_at or datetime.now()
        self.path, self.log_path = report_paths(report_dir, device, self.started_at)

    def open(self):
        """Create the report directory and write the header"""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            f.write(f"Date: {self.started_at.strftime(TIMESTAMP_FORMAT)}\n")
            f.write(f"Device: {self.device.path}\n")
            f.write(f"Model: {self.device.display_name}\n")
            f.write(f"Size: {self.device.size_formatted}\n")
            f.write(f"Standard: {WIPE_STANDARD}\n")
            f.write("--- pass transcript ---\n")
        logger.info(f"Report for {self.device.path}: {self.path}")

    def open_log(self) -> IO:
        """Open the raw dd log in append mode; the caller closes it"""
        return open(self.log_path, 'a')

    def _append(self, line: str):
        with open(self.path, 'a') as f:
            f.write(line + "\n")

    def record_warning(self, message: str):
        self._append(f"Warning: {message}")

    def record_pass(self, result: PassResult, total_passes: int):
        overwrite_pass = result.overwrite_pass
        finished = result.finished_at.strftime(TIMESTAMP_FORMAT) if result.finished_at else "-"
        status = "OK" if result.success else "FAILED"
        self._append(
            f"Pass {overwrite_pass.number}/{total_passes}: {overwrite_pass.description} "
            f"start {result.started_at.strftime(TIMESTAMP_FORMAT)} "
            f"end {finished} "
            f"duration {format_duration(result.duration_seconds)} "
            f"{status}"
        )

    def record_verification(self, passed: bool, message: str):
        self._append(f"Verification: {'PASSED' if passed else 'FAILED'} - {message}")

    def record_error(self, message: str):
        self._append(f"Error: {message}")

    def finish(self, state: WipeTaskState, duration_seconds: float, error_message: Optional[str] = None):
        """Write the trailer with the final status"""
        if error_message:
            self.record_error(error_message)
        status = "SUCCESS" if state == WipeTaskState.SUCCEEDED else "FAILED"
        self._append(f"Final Status: {status}")
        self._append(f"Duration: {int(duration_seconds)} seconds ({format_duration(duration_seconds)})")
