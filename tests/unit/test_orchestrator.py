"""Unit tests for the batch orchestrator."""

import io
import signal
import sys
import threading
import time
import unittest
from unittest.mock import patch

import pytest

from contour_tiles.dispatch.worker import SubprocessWorker
from contour_tiles.monitoring.metrics import MetricsCollector
from contour_tiles.orchestrator import ExitStatus, Orchestrator
from contour_tiles.tile_generation.work_unit import build_work_units as real_build
from contour_tiles.utils.config import Configuration, RuntimeSettings

from ..conftest import RecordingWorker


class TestOrchestrator(unittest.TestCase):
    """Tests for Orchestrator.run."""

    def setUp(self):
        self.stream = io.StringIO()
        self.config = Configuration.create(
            source_path="https://example.com/terrain.pmtiles",
            output_dir="/tmp/contours",
            increment=20,
            source_max_zoom=12,
            source_encoding="terrarium",
            output_max_zoom=14,
            output_min_zoom=1
        )

    def make_orchestrator(self, worker, **settings):
        return Orchestrator(
            settings=RuntimeSettings(**settings),
            worker=worker,
            metrics=MetricsCollector(),
            stream=self.stream
        )

    def test_min_zoom_one_invokes_four_tiles(self):
        worker = RecordingWorker()

        status = self.make_orchestrator(worker).run(self.config)

        self.assertEqual(status, ExitStatus.SUCCESS)
        self.assertEqual(len(worker.units), 4)
        self.assertEqual(
            sorted((unit.x, unit.y) for unit in worker.units),
            [(0, 0), (0, 1), (1, 0), (1, 1)]
        )
        for unit in worker.units:
            self.assertEqual(unit.z, 1)
            self.assertIs(unit.config, self.config)
            parameters = unit.parameters()
            self.assertEqual(parameters["sFile"], "https://example.com/terrain.pmtiles")
            self.assertEqual(parameters["sEncoding"], "terrarium")
            self.assertEqual(parameters["sMaxZoom"], "12")
            self.assertEqual(parameters["increment"], "20")
            self.assertEqual(parameters["oMaxZoom"], "14")
            self.assertEqual(parameters["oDir"], "/tmp/contours")

    def test_banners(self):
        self.make_orchestrator(RecordingWorker()).run(self.config)

        output = self.stream.getvalue()
        self.assertIn("Source File: https://example.com/terrain.pmtiles", output)
        self.assertIn("Source Encoding: terrarium", output)
        self.assertIn("Contour Increment: 20", output)
        self.assertIn("Main: [START] Processing tiles.", output)
        self.assertIn("Main: [END] Finished processing all tiles at zoom level 1.", output)

    def test_negative_zoom_aborts_before_dispatch(self):
        worker = RecordingWorker()
        config = Configuration.create("in.pmtiles", "out", output_min_zoom=-1)
        orchestrator = self.make_orchestrator(worker)

        status = orchestrator.run(config)

        self.assertEqual(status, ExitStatus.FAILURE)
        self.assertEqual(worker.units, [])
        self.assertIsNone(orchestrator.pool)
        self.assertNotIn("[END]", self.stream.getvalue())

    def test_failed_tiles_keep_success_status_by_default(self):
        worker = RecordingWorker(fail_tiles={"1/0/0"})

        status = self.make_orchestrator(worker).run(self.config)

        self.assertEqual(status, ExitStatus.SUCCESS)
        output = self.stream.getvalue()
        self.assertIn("1 of 4 tiles failed", output)
        self.assertIn("Main: [END] Finished processing all tiles", output)

    def test_failed_tiles_with_fail_on_worker_error(self):
        worker = RecordingWorker(fail_tiles={"1/0/0", "1/1/1"})

        status = self.make_orchestrator(worker, fail_on_worker_error=True).run(self.config)

        self.assertEqual(status, ExitStatus.WORKER_FAILURES)

    def test_uses_configured_concurrency(self):
        worker = RecordingWorker(delay=0.02)
        config = Configuration.create("in.pmtiles", "out", output_min_zoom=2)
        orchestrator = self.make_orchestrator(worker, max_workers=3)

        orchestrator.run(config)

        self.assertEqual(orchestrator.pool.max_concurrency, 3)
        self.assertLessEqual(worker.peak, 3)

    def test_enumerated_tiles_counted(self):
        orchestrator = self.make_orchestrator(RecordingWorker())

        orchestrator.run(self.config)

        self.assertEqual(
            orchestrator.metrics.get_value('tiles_enumerated_total', {'zoom_level': '1'}), 4
        )

    def test_keyboard_interrupt_during_admission(self):
        worker = RecordingWorker()
        orchestrator = self.make_orchestrator(worker)

        def interrupted(addresses, config):
            for unit in real_build(addresses, config):
                yield unit
                raise KeyboardInterrupt

        with patch("contour_tiles.orchestrator.build_work_units", side_effect=interrupted):
            status = orchestrator.run(self.config)

        self.assertEqual(status, ExitStatus.INTERRUPTED)
        self.assertTrue(worker.terminated)
        self.assertTrue(orchestrator.pool.cancelled)
        self.assertIn("Interrupted", self.stream.getvalue())

    def test_cancel_before_run_is_noop(self):
        orchestrator = self.make_orchestrator(RecordingWorker())
        orchestrator.cancel()
        self.assertIsNone(orchestrator.pool)

    def test_default_worker_is_subprocess(self):
        orchestrator = Orchestrator(
            settings=RuntimeSettings(worker_command=("contour-worker",), worker_timeout=60)
        )

        self.assertIsInstance(orchestrator.worker, SubprocessWorker)
        self.assertEqual(orchestrator.worker.command, ["contour-worker"])
        self.assertEqual(orchestrator.worker.timeout, 60)


def test_end_to_end_with_subprocess_worker(temp_dir):
    """Each tile runs the real subprocess worker, which writes z-x-y files."""
    code = (
        "import sys, pathlib\n"
        "args = dict(zip(sys.argv[1::2], sys.argv[2::2]))\n"
        "out = pathlib.Path(args['--oDir'])\n"
        "name = '{}-{}-{}'.format(args['--z'], args['--x'], args['--y'])\n"
        "(out / name).write_text(args['--sEncoding'])\n"
    )
    settings = RuntimeSettings(worker_command=(sys.executable, "-c", code), max_workers=2)
    config = Configuration.create(
        "terrain.pmtiles", str(temp_dir), source_encoding="mapbox", output_min_zoom=1
    )

    status = Orchestrator(settings=settings, stream=io.StringIO()).run(config)

    assert status == ExitStatus.SUCCESS
    assert sorted(path.name for path in temp_dir.iterdir()) == ["1-0-0", "1-0-1", "1-1-0", "1-1-1"]
    assert (temp_dir / "1-1-1").read_text() == "mapbox"


@pytest.mark.skipif(not hasattr(signal, "pthread_kill"), reason="needs POSIX signals")
def test_ctrl_c_after_admission_kills_running_workers(temp_dir):
    settings = RuntimeSettings(
        worker_command=(sys.executable, "-c", "import time; time.sleep(60)"),
        max_workers=8
    )
    config = Configuration.create("terrain.pmtiles", str(temp_dir), output_min_zoom=1)
    stream = io.StringIO()
    orchestrator = Orchestrator(settings=settings, metrics=MetricsCollector(), stream=stream)
    timer = threading.Timer(
        1.0, signal.pthread_kill, args=(threading.main_thread().ident, signal.SIGINT)
    )

    start_time = time.time()
    timer.start()
    try:
        status = orchestrator.run(config)
    finally:
        timer.cancel()

    assert status == ExitStatus.INTERRUPTED
    assert time.time() - start_time < 30
    assert orchestrator.pool.cancelled
    assert orchestrator.worker._terminated
    assert "Interrupted" in stream.getvalue()
