"""Shared pytest fixtures for contour tile batch tests."""

import tempfile
import threading
import time
from pathlib import Path

import pytest

from contour_tiles.dispatch.worker import WorkResult


class RecordingWorker:
    """In-process stand-in for the external worker.

    Records every unit it is called with and the highest number of
    simultaneous calls it observed.
    """

    def __init__(self, delay=0.0, fail_tiles=(), raise_tiles=()):
        self.delay = delay
        self.fail_tiles = set(fail_tiles)
        self.raise_tiles = set(raise_tiles)
        self.units = []
        self.active = 0
        self.peak = 0
        self.terminated = False
        self.lock = threading.Lock()

    def __call__(self, unit):
        with self.lock:
            self.units.append(unit)
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if unit.tile_id in self.raise_tiles:
                raise RuntimeError(f"boom {unit.tile_id}")
            returncode = 1 if unit.tile_id in self.fail_tiles else 0
            return WorkResult(
                unit=unit,
                returncode=returncode,
                duration=self.delay,
                error="failed" if returncode else None
            )
        finally:
            with self.lock:
                self.active -= 1

    def terminate(self):
        self.terminated = True


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)

