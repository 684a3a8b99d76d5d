"""
Progress monitoring for running wipe tasks
Polls task state and redraws a status block until every task is finished
"""

import itertools
import logging
import time
from typing import Callable, List

from .error_handler import WipeInterrupted
from .models import WipeTaskState, format_duration
from .wipe_orchestrator import PASS_SEQUENCE, WipeTask, cancel_all

logger = logging.getLogger(__name__)

SPINNER_FRAMES = ("-", "\\", "|", "/")

STATE_ICONS = {
    WipeTaskState.PENDING: "⏳",
    WipeTaskState.RUNNING: "🔄",
    WipeTaskState.SUCCEEDED: "✅",
    WipeTaskState.FAILED: "❌",
}

PARTIAL_WIPE_WARNING = (
    "⚠️  WARNING: interrupted devices are PARTIALLY WIPED. "
    "Their data is damaged but not securely erased; wipe them again."
)

class ProgressMonitor:
    """Progress monitoring for wipe tasks

    While tasks run the monitor is the only writer to the terminal.
    """

    def __init__(self, poll_interval: float = 2.0,
                 output_fn: Callable[[str], None] = print,
                 sleep_fn: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.poll_interval = poll_interval
        self.output_fn = output_fn
        self.sleep_fn = sleep_fn
        self.clock = clock
        self._spinner = itertools.cycle(SPINNER_FRAMES)

    def wait(self, tasks: List[WipeTask]):
        """Block until every task is terminal, rendering a frame per poll

        Raises:
            WipeInterrupted: on KeyboardInterrupt, after cancelling all tasks
        """
        started = self.clock()
        try:
            while True:
                self.render(tasks, self.clock() - started)
                if all(task.is_done() for task in tasks):
                    break
                self.sleep_fn(self.poll_interval)
        except KeyboardInterrupt:
            self._interrupt(tasks)

        for task in tasks:
            task.join()
        logger.info(f"All {len(tasks)} wipe task(s) finished")

    def _interrupt(self, tasks: List[WipeTask]):
        running = [task for task in tasks if not task.is_done()]
        self.output_fn("\n🛑 Interrupt received, cancelling running wipes...")
        logger.info(f"Interrupt received with {len(running)} task(s) running")
        cancel_all(tasks)
        for task in running:
            self.output_fn(f"   {task.device.path}: stopped during pass {task.current_pass}/{len(PASS_SEQUENCE)}")
        self.output_fn(PARTIAL_WIPE_WARNING)
        raise WipeInterrupted(f"Interrupted with {len(running)} device(s) partially wiped")

    def render(self, tasks: List[WipeTask], elapsed: float):
        """Draw one status frame"""
        active = sum(1 for task in tasks if task.state == WipeTaskState.RUNNING)
        frame = next(self._spinner)
        self.output_fn("")
        self.output_fn(f"[{frame}] Elapsed {format_duration(elapsed)} - {active} of {len(tasks)} active")
        for task in tasks:
            self.output_fn(self.format_task_line(task))

    def format_task_line(self, task: WipeTask) -> str:
        state = task.state
        line = f"  {STATE_ICONS[state]} {task.device.path:<16} {state.name:<10}"
        if state == WipeTaskState.RUNNING:
            line += f" pass {task.current_pass}/{len(PASS_SEQUENCE)}"
        line += f" {format_duration(task.elapsed_seconds)}"
        if state == WipeTaskState.FAILED and task.error_message:
            line += f" ({task.error_message})"
        return line
