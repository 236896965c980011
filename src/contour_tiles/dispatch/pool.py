"""
Dispatch Pool

Bounded-concurrency fan-out of work units to the external worker.

Admission is continuous: a semaphore with ``max_concurrency`` slots guards
submission to a thread pool of the same size, and a slot is released as soon
as any invocation completes. Units are pulled from the input iterator only
when a slot is free, so arbitrarily large tile streams are never fully
materialized. Admission follows input order; completion order is
unconstrained.
"""

import concurrent.futures
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

import structlog

from ..errors import WorkerInvocationFailure
from ..monitoring.metrics import MetricsCollector
from ..tile_generation.work_unit import WorkUnit
from .worker import WorkResult


Worker = Callable[[WorkUnit], WorkResult]


@dataclass
class DispatchReport:
    """Aggregate outcome of a dispatch run."""
    max_concurrency: int
    admitted: int = 0
    succeeded: int = 0
    failures: List[WorkResult] = field(default_factory=list)
    peak_in_flight: int = 0
    cancelled: bool = False
    processing_time: float = 0.0

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def completed(self) -> int:
        return self.succeeded + self.failed

    @property
    def success(self) -> bool:
        return not self.failures and not self.cancelled

    def raise_for_failures(self) -> None:
        """Raise WorkerInvocationFailure if any invocation failed."""
        if self.failures:
            raise WorkerInvocationFailure(self.failures)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'admitted': self.admitted,
            'succeeded': self.succeeded,
            'failed': self.failed,
            'peak_in_flight': self.peak_in_flight,
            'cancelled': self.cancelled,
            'processing_time': self.processing_time
        }


class DispatchPool:
    """
    Bounded worker pool for per-tile invocations.

    At most ``max_concurrency`` invocations of ``worker`` run at once. Every
    outcome is collected in a DispatchReport; a failing tile never stops the
    batch.
    """

    def __init__(
        self,
        worker: Worker,
        max_concurrency: int = 8,
        metrics: Optional[MetricsCollector] = None,
        verbose: bool = False,
        terminate_on_cancel: bool = True
    ):
        """
        Initialize the dispatch pool.

        Args:
            worker: Callable invoked once per work unit
            max_concurrency: Maximum number of simultaneous invocations
            metrics: Optional metrics collector
            verbose: Log per-tile start/end events
            terminate_on_cancel: Kill in-flight invocations when the run is
                interrupted
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")

        self.worker = worker
        self.max_concurrency = max_concurrency
        self.metrics = metrics
        self.verbose = verbose
        self.terminate_on_cancel = terminate_on_cancel

        self.logger = structlog.get_logger(
            component="DispatchPool",
            max_concurrency=max_concurrency
        )

        self._lock = threading.Lock()
        self._in_flight = 0
        self._cancelled = threading.Event()

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self, terminate_running: bool = False) -> None:
        """
        Stop admitting work units. Safe to call from any thread.

        Args:
            terminate_running: Also ask the worker to kill in-flight
                invocations, if it supports termination
        """
        if not self._cancelled.is_set():
            self.logger.warning("Dispatch cancelled", terminate_running=terminate_running)
        self._cancelled.set()

        if terminate_running:
            terminate = getattr(self.worker, "terminate", None)
            if callable(terminate):
                terminate()

    def run(self, units: Iterable[WorkUnit]) -> DispatchReport:
        """
        Dispatch every work unit and wait for all invocations to finish.

        Args:
            units: Work units, consumed sequentially

        Returns:
            DispatchReport with per-run counts and the failed results
        """
        report = DispatchReport(max_concurrency=self.max_concurrency)
        slots = threading.BoundedSemaphore(self.max_concurrency)
        start_time = time.time()

        self.logger.debug("Dispatch started")

        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.max_concurrency,
            thread_name_prefix="tile-worker"
        )
        try:
            for unit in units:
                slots.acquire()
                if self._cancelled.is_set():
                    slots.release()
                    break

                with self._lock:
                    report.admitted += 1

                future = executor.submit(self._invoke, unit, report)
                future.add_done_callback(
                    lambda done, unit=unit: self._completed(done, unit, report, slots)
                )

            # Draining is part of the run; an interrupt here must cancel too
            executor.shutdown(wait=True)
        except KeyboardInterrupt:
            self.cancel(terminate_running=self.terminate_on_cancel)
            report.cancelled = True
            raise
        finally:
            executor.shutdown(wait=False)

        report.cancelled = report.cancelled or self._cancelled.is_set()
        report.processing_time = time.time() - start_time

        if self.metrics:
            status = 'cancelled' if report.cancelled else ('failed' if report.failures else 'success')
            self.metrics.increment_counter('dispatch_runs_total', labels={'status': status})

        self.logger.debug("Dispatch finished", **report.to_dict())
        return report

    def _invoke(self, unit: WorkUnit, report: DispatchReport) -> WorkResult:
        """Run the worker for one unit; counts are tallied on completion."""
        with self._lock:
            self._in_flight += 1
            report.peak_in_flight = max(report.peak_in_flight, self._in_flight)
            in_flight = self._in_flight
        if self.metrics:
            self.metrics.set_gauge('dispatch_in_flight', in_flight)

        if self.verbose:
            self.logger.debug(
                "process_tile: [START] Processing tile",
                zoom=unit.z, x=unit.x, y=unit.y
            )

        start_time = time.time()
        try:
            result = self.worker(unit)
        except Exception as e:
            result = WorkResult(
                unit=unit,
                returncode=None,
                duration=time.time() - start_time,
                error=str(e) or e.__class__.__name__
            )
        finally:
            with self._lock:
                self._in_flight -= 1
                in_flight = self._in_flight
            if self.metrics:
                self.metrics.set_gauge('dispatch_in_flight', in_flight)

        self._record(result)

        if self.verbose:
            self.logger.debug(
                f"process_tile: [END] Finished processing {unit.z}-{unit.x}-{unit.y}",
                success=result.success,
                duration=round(result.duration, 3)
            )

        return result

    def _completed(
        self,
        future: concurrent.futures.Future,
        unit: WorkUnit,
        report: DispatchReport,
        slots: threading.BoundedSemaphore
    ) -> None:
        """Tally a finished invocation and free its slot."""
        try:
            error = future.exception()
            if error is None:
                result = future.result()
            else:
                self.logger.error(
                    "Tile bookkeeping failed",
                    tile_id=unit.tile_id,
                    error=repr(error)
                )
                result = WorkResult(unit=unit, returncode=None, duration=0.0, error=repr(error))

            with self._lock:
                if result.success:
                    report.succeeded += 1
                else:
                    report.failures.append(result)
        finally:
            slots.release()

    def _record(self, result: WorkResult) -> None:
        if not result.success:
            self.logger.error(
                "Tile processing failed",
                tile_id=result.unit.tile_id,
                returncode=result.returncode,
                error=result.error
            )

        if self.metrics:
            status = 'success' if result.success else 'failed'
            self.metrics.increment_counter('tile_invocations_total', labels={'status': status})
            self.metrics.record_histogram(
                'tile_invocation_duration_seconds',
                result.duration,
                labels={'zoom_level': str(result.unit.z)}
            )
