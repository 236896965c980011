"""
Batch Orchestrator

Top-level driver of a contour tile batch: enumerates every tile at the
configured output minimum zoom, pairs each with the shared Configuration and
fans the resulting work units out to the external worker through a bounded
DispatchPool.

Start and end banners are always written to the output stream. Failed tiles
are collected and reported; they only affect the exit status when the
``fail_on_worker_error`` runtime setting is enabled.
"""

import sys
from enum import IntEnum
from typing import Iterable, Iterator, Optional, TextIO

import structlog

from .dispatch.pool import DispatchPool, DispatchReport, Worker
from .dispatch.worker import SubprocessWorker
from .errors import InvalidZoomError, WorkerInvocationFailure
from .monitoring.metrics import MetricsCollector
from .tile_generation.coordinates import TileAddress, enumerate_tiles, tile_count
from .tile_generation.work_unit import build_work_units
from .utils.config import Configuration, RuntimeSettings


class ExitStatus(IntEnum):
    """Process exit statuses of a batch run."""
    SUCCESS = 0
    FAILURE = 1
    WORKER_FAILURES = 2
    INTERRUPTED = 130


class Orchestrator:
    """
    Drives one batch run from configuration to completion.

    The run is synchronous: ``run`` returns once every enumerated tile has
    been admitted and every invocation has finished.
    """

    def __init__(
        self,
        settings: Optional[RuntimeSettings] = None,
        worker: Optional[Worker] = None,
        metrics: Optional[MetricsCollector] = None,
        stream: Optional[TextIO] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            settings: Runtime settings; defaults apply when omitted
            worker: Per-tile worker callable; a SubprocessWorker built from
                the settings is used when omitted
            metrics: Metrics collector; one is created when omitted
            stream: Banner output stream, stdout by default
        """
        self.settings = settings or RuntimeSettings()
        self.worker = worker or SubprocessWorker(
            self.settings.worker_command,
            timeout=self.settings.worker_timeout
        )
        self.metrics = metrics or MetricsCollector(pushgateway=self.settings.pushgateway)
        self.stream = stream
        self.pool: Optional[DispatchPool] = None

        self.logger = structlog.get_logger(component="Orchestrator")

    def _echo(self, message: str) -> None:
        print(message, file=self.stream or sys.stdout, flush=True)

    def run(self, config: Configuration) -> ExitStatus:
        """
        Process every tile at ``config.output_min_zoom``.

        Args:
            config: Validated processing configuration

        Returns:
            ExitStatus of the run
        """
        for label, value in config.summary().items():
            self._echo(f"{label}: {value}")
        self._echo("Main: [START] Processing tiles.")

        zoom = config.output_min_zoom
        try:
            addresses = enumerate_tiles(zoom, verbose=config.verbose)
        except InvalidZoomError as e:
            self.logger.error("Error generating tiles", zoom=zoom, error=str(e))
            print(f"Error: {e}", file=sys.stderr)
            print("Error generating tiles", file=sys.stderr)
            return ExitStatus.FAILURE

        total = tile_count(zoom)

        if config.verbose:
            self.logger.info(
                "Starting tile processing",
                zoom=zoom,
                tiles=total,
                max_workers=self.settings.max_workers
            )

        self.pool = DispatchPool(
            self.worker,
            max_concurrency=self.settings.max_workers,
            metrics=self.metrics,
            verbose=config.verbose,
            terminate_on_cancel=self.settings.terminate_on_cancel
        )

        try:
            report = self.pool.run(build_work_units(self._counted(addresses, zoom), config))
        except KeyboardInterrupt:
            self.cancel()
            self.logger.warning("Tile processing interrupted", zoom=zoom)
            self._echo(f"Main: [END] Interrupted while processing tiles at zoom level {zoom}.")
            self.metrics.push()
            return ExitStatus.INTERRUPTED

        if config.verbose:
            self.logger.info("Finished tile processing", zoom=zoom, **report.to_dict())

        self.metrics.push()
        return self._finish(zoom, report)

    def _counted(self, addresses: Iterable[TileAddress], zoom: int) -> Iterator[TileAddress]:
        labels = {'zoom_level': str(zoom)}
        for address in addresses:
            self.metrics.increment_counter('tiles_enumerated_total', labels=labels)
            yield address

    def cancel(self, terminate_running: Optional[bool] = None) -> None:
        """Cancel the active run, if any."""
        if terminate_running is None:
            terminate_running = self.settings.terminate_on_cancel
        if self.pool is not None:
            self.pool.cancel(terminate_running=terminate_running)

    def _finish(self, zoom: int, report: DispatchReport) -> ExitStatus:
        if report.failures:
            self.logger.warning(
                "Some tiles failed",
                failed=report.failed,
                succeeded=report.succeeded
            )
            self._echo(
                f"Main: [WARN] {report.failed} of {report.completed} tiles failed at zoom level {zoom}."
            )

        if report.cancelled:
            self._echo(f"Main: [END] Cancelled after {report.admitted} tiles at zoom level {zoom}.")
            return ExitStatus.INTERRUPTED

        self._echo(f"Main: [END] Finished processing all tiles at zoom level {zoom}.")

        if self.settings.fail_on_worker_error:
            try:
                report.raise_for_failures()
            except WorkerInvocationFailure as e:
                self.logger.error("Batch failed", error=str(e))
                return ExitStatus.WORKER_FAILURES

        return ExitStatus.SUCCESS
