"""
Command-line interface for the drive shredder
Interactive select, confirm, wipe loop plus a read-only device listing
"""

import argparse
import logging
import os
import platform
import time
from typing import Callable, Dict, List, Optional

from ..core.config import apply_overrides, load_config
from ..core.confirmation import required_phrase, require
from ..core.device_inventory import DeviceInventory
from ..core.error_handler import (
    ConfirmationMismatch, EnumerationError, MissingToolError, WipeInterrupted, error_handler,
)
from ..core.models import ClassifiedDevice, SafetyLevel, WipeSummary, WipeTaskState, format_duration
from ..core.platforms import get_platform_handler
from ..core.platforms.base_handler import BaseDeviceHandler
from ..core.progress_monitor import ProgressMonitor
from ..core.safety_classifier import SafetyPolicy, classify_all
from ..core.selection import SessionPhase, SelectionSession, render_device_list
from ..core.tool_manager import tool_manager
from ..core.wipe_orchestrator import WipeOrchestrator, summarize
from ..utils.logger import setup_logger

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_SETUP_ERROR = 1
EXIT_INTERRUPTED = 130

def create_parser() -> argparse.ArgumentParser:
    """Create command-line argument parser"""
    parser = argparse.ArgumentParser(
        prog="drive-shredder",
        description="Drive Shredder - concurrent DoD 5220.22-M style wipe of removable drives",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                         # Interactive select, confirm and wipe
  %(prog)s list                    # Show classified devices and exit
  %(prog)s --delay 5 --verify      # Stagger starts by 5s, spot-check zeros afterwards
        """
    )

    # Global options
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument('-v', '--verbose', action='store_true',
                           help='Enable debug logging')
    verbosity.add_argument('-q', '--quiet', action='store_true',
                           help='Only log warnings and errors')
    parser.add_argument('--config', metavar='PATH',
                        help='JSON configuration file (default: ./drive_shredder.json)')
    parser.add_argument('--delay', type=float, metavar='SECONDS',
                        help='Delay between starting wipes, 0-30 (default: 2)')
    parser.add_argument('--report-dir', metavar='DIR',
                        help='Directory for wipe reports (default: /tmp/wipe_reports)')
    parser.add_argument('--poll-interval', type=float, metavar='SECONDS',
                        help='Progress refresh interval (default: 2)')
    parser.add_argument('--verify', action='store_true', default=None,
                        help='Sample the device for zeros after wiping')
    parser.add_argument('--pdf-certificates', action='store_true', default=None,
                        help='Write a PDF certificate for every successful wipe')

    parser.add_argument('command', nargs='?', choices=['list'],
                        help="'list' prints the classified devices and exits")
    return parser

class CLIInterface:
    """Command-line interface for the drive shredder"""

    def __init__(self, handler: Optional[BaseDeviceHandler] = None,
                 input_fn: Callable[[str], str] = input,
                 output_fn: Callable[[str], None] = print,
                 sleep_fn: Callable[[float], None] = time.sleep):
        self.handler = handler
        self.input_fn = input_fn
        self.output_fn = output_fn
        self.sleep_fn = sleep_fn
        self.config: Dict = {}

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Run the CLI and return the process exit code"""
        parser = create_parser()
        args = parser.parse_args(argv)

        try:
            config = load_config(args.config)
        except (OSError, ValueError) as e:
            self.output_fn(f"❌ Could not load configuration {args.config}: {e}")
            return EXIT_SETUP_ERROR

        self.config = apply_overrides(config, {
            "wipe": {
                "stagger_delay_seconds": args.delay,
                "report_dir": args.report_dir,
                "verify": args.verify,
                "pdf_certificates": args.pdf_certificates,
            },
            "monitor": {"poll_interval_seconds": args.poll_interval},
        })

        # Configure logging level
        if args.verbose:
            log_level = logging.DEBUG
        elif args.quiet:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO
        setup_logger(log_level, self.config["logging"]["log_dir"])
        logger.info(f"Starting Drive Shredder on {platform.system()} {platform.release()}")

        if os.geteuid() != 0:
            self.output_fn("❌ Root privileges are required. Run with: sudo drive-shredder")
            return EXIT_SETUP_ERROR

        try:
            tool_manager.require_tools()
            if self.handler is None:
                self.handler = get_platform_handler()

            if args.command == 'list':
                return self._list_devices()
            return self._interactive()

        except MissingToolError as e:
            error_handler.handle_error(e)
            self.output_fn(f"❌ {e}")
            return EXIT_SETUP_ERROR
        except EnumerationError as e:
            error_handler.handle_error(e)
            self.output_fn(f"❌ Could not list block devices: {e}")
            return EXIT_SETUP_ERROR
        except NotImplementedError as e:
            self.output_fn(f"❌ {e}")
            return EXIT_SETUP_ERROR
        except WipeInterrupted as e:
            error_handler.handle_error(e)
            self.output_fn(f"\n🛑 {e}")
            return EXIT_INTERRUPTED
        except KeyboardInterrupt:
            self.output_fn("\nOperation cancelled by user")
            return EXIT_INTERRUPTED

    def _policy(self) -> SafetyPolicy:
        return SafetyPolicy.from_config(self.config["safety"])

    def _inventory(self) -> DeviceInventory:
        return DeviceInventory(self.handler, self.config)

    def _list_devices(self) -> int:
        """Print the classified inventory"""
        inventory = self._inventory()
        snapshot = inventory.scan()
        if not snapshot.devices:
            self.output_fn("❌ No block devices found")
            return EXIT_SETUP_ERROR

        devices = classify_all(snapshot.devices, inventory.host_facts(snapshot), self._policy())
        self.output_fn("💽 Block Devices:")
        for line in render_device_list(tuple(devices)):
            self.output_fn(line)
        return EXIT_OK

    def _interactive(self) -> int:
        """Select, confirm and wipe; a failed confirmation starts over with a fresh scan"""
        inventory = self._inventory()
        message = None

        while True:
            snapshot = inventory.scan()
            if not snapshot.devices:
                self.output_fn("❌ No block devices found")
                return EXIT_SETUP_ERROR

            session = SelectionSession(
                inventory, snapshot,
                input_fn=self.input_fn,
                output_fn=self.output_fn,
                policy=self._policy(),
                require_system_acknowledgment=self.config["safety"]["require_system_acknowledgment"],
            )
            state = session.run(message)
            if state.phase == SessionPhase.QUIT:
                self.output_fn("👋 No drives were wiped.")
                return EXIT_OK

            selected = state.selected_devices()
            try:
                self._confirm(selected)
            except ConfirmationMismatch as e:
                error_handler.handle_error(e)
                message = str(e)
                continue
            except EOFError:
                self.output_fn("\n👋 No drives were wiped.")
                return EXIT_OK

            summaries = self._wipe(selected)
            self._print_summary(summaries)
            return EXIT_OK

    def _confirm(self, selected: List[ClassifiedDevice]):
        phrase = required_phrase(selected)
        self.output_fn("\n⚠️  The following drives will be PERMANENTLY ERASED:")
        for entry in selected:
            reasons = f" ({', '.join(entry.assessment.descriptions)})" if entry.assessment.reasons else ""
            self.output_fn(f"   {entry.path}  {entry.device.size_formatted}  {entry.device.display_name}"
                           f"  [{entry.level.label}]{reasons}")
        if any(entry.level >= SafetyLevel.DANGEROUS for entry in selected):
            self.output_fn("\n🔴 Your selection includes DANGEROUS or SYSTEM drives.")
        answer = self.input_fn(f"\nType '{phrase}' to continue: ")
        require(selected, answer)

    def _wipe(self, selected: List[ClassifiedDevice]) -> List[WipeSummary]:
        orchestrator = WipeOrchestrator(self.handler, self.config,
                                        sleep_fn=self.sleep_fn, output_fn=self.output_fn)
        tasks = orchestrator.launch([entry.device for entry in selected])
        monitor = ProgressMonitor(self.config["monitor"]["poll_interval_seconds"],
                                  output_fn=self.output_fn, sleep_fn=self.sleep_fn)
        monitor.wait(tasks)
        return summarize(tasks)

    def _print_summary(self, summaries: List[WipeSummary]):
        """Final per-device report"""
        succeeded = sum(1 for s in summaries if s.state == WipeTaskState.SUCCEEDED)
        failed = sum(1 for s in summaries if s.state == WipeTaskState.FAILED)

        self.output_fn("\n📋 Wipe Summary")
        self.output_fn("=" * 80)
        for summary in summaries:
            icon = "✅" if summary.state == WipeTaskState.SUCCEEDED else "❌"
            self.output_fn(f"{icon} {summary.device.path:<16} {summary.state.name:<10} "
                           f"{format_duration(summary.duration_seconds)}")
            self.output_fn(f"   Report: {summary.report_path}")
            if summary.certificate_path:
                self.output_fn(f"   Certificate: {summary.certificate_path}")
            if summary.error_message:
                self.output_fn(f"   Error: {summary.error_message}")
                device_errors = error_handler.get_errors_for_device(summary.device.path)
                if device_errors and device_errors[-1].suggestions:
                    self.output_fn(f"   Hint: {'; '.join(device_errors[-1].suggestions)}")
        self.output_fn("=" * 80)
        self.output_fn(f"{succeeded} succeeded, {failed} failed")

        error_summary = error_handler.get_error_summary()
        if error_summary["total"]:
            logger.info(f"Error summary: {error_summary}")
