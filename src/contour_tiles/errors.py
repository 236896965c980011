"""
Error Taxonomy

Exceptions raised by the contour tile batch orchestrator. Configuration and
enumeration errors are fatal and stop a run before anything is dispatched;
worker failures are collected per tile and only raised on request.
"""

from typing import List, Sequence


class ContourTilesError(Exception):
    """Base exception for contour tile batch errors."""
    pass


class ConfigValidationError(ContourTilesError):
    """A required option is missing or an option has an invalid value."""
    pass


class InvalidZoomError(ContourTilesError, ValueError):
    """Zoom level passed to tile enumeration is negative."""

    def __init__(self, zoom: int):
        self.zoom = zoom
        super().__init__(f"Invalid zoom level {zoom}. zoomLevel must be >= 0")


class WorkerInvocationFailure(ContourTilesError):
    """One or more external worker invocations did not succeed."""

    def __init__(self, results: Sequence):
        self.results: List = list(results)
        tiles = ", ".join(result.unit.tile_id for result in self.results[:5])
        if len(self.results) > 5:
            tiles += ", ..."
        super().__init__(f"{len(self.results)} tile(s) failed: {tiles}")
