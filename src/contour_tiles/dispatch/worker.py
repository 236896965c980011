"""
External Worker Invocation

Runs the per-tile contour generator as a child process, one invocation per
work unit. The worker receives the tile address and the shared parameters as
an argument vector and reports back only through its exit status; anything
it writes under the output directory is opaque to the orchestrator.
"""

import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Optional, Sequence, Set

import structlog

from ..tile_generation.work_unit import WorkUnit


# Keep the end of stderr only; workers can be chatty
STDERR_TAIL_CHARS = 2000


@dataclass(frozen=True)
class WorkResult:
    """Outcome of a single worker invocation."""
    unit: WorkUnit
    returncode: Optional[int]
    duration: float
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.returncode == 0 and self.error is None


class SubprocessWorker:
    """
    Invokes the external contour worker as a subprocess.

    Instances are shared by all pool threads. Running child processes are
    tracked so that ``terminate`` can stop them when a run is cancelled.
    """

    def __init__(self, command: Sequence[str], timeout: Optional[float] = None):
        """
        Initialize the worker.

        Args:
            command: Argument vector prefix of the worker program
            timeout: Seconds an invocation may run before it is killed
        """
        if not command:
            raise ValueError("Worker command must not be empty")

        self.command = list(command)
        self.timeout = timeout
        self.logger = structlog.get_logger(component="SubprocessWorker")

        self._lock = threading.Lock()
        self._running: Set[subprocess.Popen] = set()
        self._terminated = False

    def build_command(self, unit: WorkUnit) -> list:
        return self.command + unit.to_arguments()

    def __call__(self, unit: WorkUnit) -> WorkResult:
        """Run the worker for one tile and wait for it to exit."""
        cmd = self.build_command(unit)
        start_time = time.time()

        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace"
            )
        except OSError as e:
            return WorkResult(
                unit=unit,
                returncode=None,
                duration=time.time() - start_time,
                error=f"Failed to start worker: {e}"
            )

        with self._lock:
            self._running.add(proc)
            terminated = self._terminated
        if terminated:
            proc.kill()

        try:
            try:
                _, stderr = proc.communicate(timeout=self.timeout)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.communicate()
                return WorkResult(
                    unit=unit,
                    returncode=proc.returncode,
                    duration=time.time() - start_time,
                    error=f"Timeout after {self.timeout} seconds"
                )
        finally:
            with self._lock:
                self._running.discard(proc)

        error = None
        if proc.returncode != 0:
            error = (stderr or "").strip()[-STDERR_TAIL_CHARS:] or f"Exit status {proc.returncode}"

        return WorkResult(
            unit=unit,
            returncode=proc.returncode,
            duration=time.time() - start_time,
            error=error
        )

    def terminate(self) -> int:
        """
        Kill every running child process and refuse to keep new ones alive.

        Returns:
            Number of processes that were killed
        """
        with self._lock:
            self._terminated = True
            running = list(self._running)

        for proc in running:
            if proc.poll() is None:
                proc.kill()

        if running:
            self.logger.warning("Terminated running workers", count=len(running))
        return len(running)
