"""
Concurrent wipe orchestration
One thread per device: unmount, then random, random, random, zero passes
"""

import logging
import threading
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional

from .certificate_generator import CertificateData, generate_wipe_certificate
from .config import DEFAULT_CONFIG, MAX_STAGGER_DELAY, clamp
from .error_handler import (
    ShredderError, UnmountFailure, VerificationFailure, WipeInterrupted,
    WipePassFailure, error_handler,
)
from .models import (
    Device, OverwritePass, OverwriteSource, PassResult, WipeSummary, WipeTaskState,
)
from .platforms.base_handler import BaseDeviceHandler
from .report_writer import WipeReport
from .verification import VerificationManager
from ..utils.logger import WIPE_THREAD_PREFIX

logger = logging.getLogger(__name__)

PASS_SEQUENCE = (
    OverwritePass(1, "random data", OverwriteSource.RANDOM),
    OverwritePass(2, "random data", OverwriteSource.RANDOM),
    OverwritePass(3, "random data", OverwriteSource.RANDOM),
    OverwritePass(4, "zero fill", OverwriteSource.ZERO),
)

class WipeTask:
    """Erase of a single device on its own thread

    State is written by the task thread under ``_lock``; other threads only
    read it through the properties.
    """

    def __init__(self, device: Device, handler: BaseDeviceHandler, report_dir: str,
                 block_size: str = "1M", verifier: Optional[VerificationManager] = None,
                 pdf_certificates: bool = False):
        self.device = device
        self.handler = handler
        self.block_size = block_size
        self.verifier = verifier
        self.pdf_certificates = pdf_certificates
        self.report = WipeReport(report_dir, device)
        self.report_dir = report_dir

        self._lock = threading.Lock()
        self._cancel_event = threading.Event()
        self._process = None
        self._state = WipeTaskState.PENDING
        self._current_pass = 0
        self.started_at: Optional[datetime] = None
        self.finished_at: Optional[datetime] = None
        self.error_message: Optional[str] = None
        self.pass_results: List[PassResult] = []
        self.warnings: List[str] = []
        self.verification_message: Optional[str] = None
        self.certificate_path: Optional[str] = None
        self._thread = threading.Thread(target=self._run, name=f"{WIPE_THREAD_PREFIX}{device.name}", daemon=True)

    @property
    def log_path(self) -> str:
        return str(self.report.log_path)

    @property
    def report_path(self) -> str:
        return str(self.report.path)

    @property
    def state(self) -> WipeTaskState:
        with self._lock:
            return self._state

    @property
    def current_pass(self) -> int:
        with self._lock:
            return self._current_pass

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def elapsed_seconds(self) -> float:
        if not self.started_at:
            return 0.0
        end = self.finished_at or datetime.now()
        return (end - self.started_at).total_seconds()

    def start(self):
        with self._lock:
            self._state = WipeTaskState.RUNNING
            self.started_at = datetime.now()
        self._thread.start()

    def is_done(self) -> bool:
        return self.state.is_terminal

    def join(self, timeout: Optional[float] = None):
        self._thread.join(timeout)

    def cancel(self):
        """Stop after the current pass, terminating it if dd is running"""
        self._cancel_event.set()
        with self._lock:
            process = self._process
        if process is not None and process.poll() is None:
            logger.info(f"Terminating overwrite of {self.device.path}")
            process.terminate()

    def _run(self):
        error: Optional[ShredderError] = None
        try:
            self.report.open()
            self._unmount_all()
            size_bytes = self._resolve_size()
            for overwrite_pass in PASS_SEQUENCE:
                self._run_pass(overwrite_pass, size_bytes)
            if self.verifier is not None:
                self._verify(size_bytes)
        except (WipePassFailure, VerificationFailure) as e:
            error = e
        except OSError as e:
            error = WipePassFailure(f"I/O error: {e}", device=self.device.path, pass_number=self.current_pass)
        except Exception as e:
            logger.exception(f"Unexpected error wiping {self.device.path}")
            error = WipePassFailure(f"Unexpected error: {e}", device=self.device.path,
                                    pass_number=self.current_pass)

        final_state = WipeTaskState.FAILED if error is not None else WipeTaskState.SUCCEEDED
        try:
            if error is not None:
                self.error_message = str(error)
                error_handler.handle_device_error(error, self.device.path, "wipe")
            self.finished_at = datetime.now()
            self._finish_report(final_state)
            if final_state == WipeTaskState.SUCCEEDED and self.pdf_certificates:
                self._write_certificate()
        finally:
            # Terminal state is set even when reporting fails
            with self._lock:
                self._state = final_state
        logger.info(f"Wipe of {self.device.path} finished: {final_state.name}")

    def _finish_report(self, state: WipeTaskState):
        try:
            self.report.finish(state, self.elapsed_seconds, self.error_message)
        except Exception as e:
            logger.error(f"Could not finish report {self.report.path}: {e}")

    def _unmount_all(self):
        """Unmount every partition, then the device; failures are only warnings"""
        for target in tuple(self.device.partitions) + (self.device.path,):
            try:
                self.handler.unmount(target)
            except UnmountFailure as e:
                error_handler.handle_device_error(e, self.device.path, "unmount")
                self.warnings.append(str(e))
                self.report.record_warning(str(e))

    def _resolve_size(self) -> int:
        size_bytes = self.device.size_bytes or self.handler.get_size_bytes(self.device.path)
        if size_bytes <= 0:
            raise WipePassFailure("Could not determine device size", device=self.device.path, pass_number=1)
        return size_bytes

    def _run_pass(self, overwrite_pass: OverwritePass, size_bytes: int):
        total = len(PASS_SEQUENCE)
        result = PassResult(overwrite_pass, datetime.now())
        self.pass_results.append(result)
        logger.info(f"{self.device.path}: pass {overwrite_pass.number}/{total} ({overwrite_pass.description})")

        try:
            with self.report.open_log() as log_file:
                log_file.write(f"=== Pass {overwrite_pass.number}/{total}: {overwrite_pass.description} ===\n")
                log_file.flush()
                with self._lock:
                    if self._cancel_event.is_set():
                        raise WipePassFailure(f"Interrupted before pass {overwrite_pass.number}",
                                              device=self.device.path, pass_number=overwrite_pass.number)
                    self._current_pass = overwrite_pass.number
                    self._process = self.handler.start_overwrite(
                        self.device.path, overwrite_pass.source, size_bytes, self.block_size, log_file)
                returncode = self._process.wait()

            if returncode != 0:
                if self._cancel_event.is_set():
                    message = f"Interrupted during pass {overwrite_pass.number}"
                else:
                    message = f"Pass {overwrite_pass.number} failed: dd exited with code {returncode}"
                raise WipePassFailure(message, device=self.device.path, pass_number=overwrite_pass.number)
            result.success = True
        except OSError as e:
            result.error_message = str(e)
            raise WipePassFailure(f"Pass {overwrite_pass.number} could not run: {e}",
                                  device=self.device.path, pass_number=overwrite_pass.number)
        except WipePassFailure as e:
            result.error_message = str(e)
            raise
        finally:
            with self._lock:
                self._process = None
            result.finished_at = datetime.now()
            self.report.record_pass(result, total)

    def _verify(self, size_bytes: int):
        verification = self.verifier.verify_wipe(self.device.path, size_bytes)
        self.verification_message = verification.message
        self.report.record_verification(verification.passed, verification.message)
        if not verification.passed:
            raise VerificationFailure(f"Verification failed: {verification.message}", device=self.device.path)

    def _write_certificate(self):
        try:
            data = CertificateData(
                device=self.device,
                started_at=self.started_at,
                finished_at=self.finished_at,
                success=True,
                pass_results=list(self.pass_results),
                verification=self.verification_message or "Not Performed",
                report_path=self.report_path,
            )
            self.certificate_path = generate_wipe_certificate(self.report_dir, data)
        except Exception as e:
            logger.error(f"Certificate generation failed for {self.device.path}: {e}")

    def summary(self) -> WipeSummary:
        return WipeSummary(
            device=self.device,
            state=self.state,
            report_path=self.report_path,
            duration_seconds=self.elapsed_seconds,
            error_message=self.error_message,
            certificate_path=self.certificate_path,
        )

class WipeOrchestrator:
    """Fans the selected devices out into concurrently running WipeTasks"""

    def __init__(self, handler: BaseDeviceHandler, config: Dict = None,
                 sleep_fn: Callable[[float], None] = time.sleep,
                 output_fn: Callable[[str], None] = print):
        config = config or DEFAULT_CONFIG
        wipe_config = config["wipe"]
        self.handler = handler
        self.stagger_delay = clamp(float(wipe_config["stagger_delay_seconds"]), 0.0, MAX_STAGGER_DELAY)
        self.block_size = wipe_config["block_size"]
        self.report_dir = wipe_config["report_dir"]
        self.pdf_certificates = bool(wipe_config["pdf_certificates"])
        self.verifier = VerificationManager(int(wipe_config["verify_sample_bytes"])) if wipe_config["verify"] else None
        self.sleep_fn = sleep_fn
        self.output_fn = output_fn

    def create_task(self, device: Device) -> WipeTask:
        return WipeTask(device, self.handler, self.report_dir, block_size=self.block_size,
                        verifier=self.verifier, pdf_certificates=self.pdf_certificates)

    def launch(self, devices: List[Device]) -> List[WipeTask]:
        """Start one task per device, staggered by the configured delay

        Raises:
            WipeInterrupted: interrupted while launching; started tasks are cancelled
        """
        tasks: List[WipeTask] = []
        try:
            for index, device in enumerate(devices):
                if index > 0 and self.stagger_delay > 0:
                    self.sleep_fn(self.stagger_delay)
                task = self.create_task(device)
                task.start()
                tasks.append(task)
                self.output_fn(f"🚀 Started wipe of {device.path} (report: {task.report_path})")
        except KeyboardInterrupt:
            cancel_all(tasks)
            raise WipeInterrupted(f"Interrupted while starting wipes; {len(tasks)} device(s) may be partially wiped")
        logger.info(f"Launched {len(tasks)} wipe task(s)")
        return tasks

def cancel_all(tasks: List[WipeTask], join_timeout: float = 10.0):
    """Cancel every unfinished task and wait briefly for their threads"""
    for task in tasks:
        if not task.is_done():
            task.cancel()
    for task in tasks:
        task.join(join_timeout)

def summarize(tasks: List[WipeTask]) -> List[WipeSummary]:
    return [task.summary() for task in tasks]
