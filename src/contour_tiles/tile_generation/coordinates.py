"""
Tile Coordinate Enumeration

Enumerates every tile address of a quadtree (slippy map) grid at a given
zoom level. At zoom z the grid has 2**z tiles per side, so a level holds
4**z tiles. Python integers are arbitrary precision, which keeps both counts
exact at any zoom.

Addresses are produced lazily in row-major order (y outer, x inner) so that
high zoom levels can be streamed into the dispatch pool without ever being
materialized.
"""

from dataclasses import dataclass
from typing import Iterator

import structlog

from ..errors import InvalidZoomError


logger = structlog.get_logger(component="CoordinateEnumerator")


@dataclass(frozen=True)
class TileAddress:
    """A single (zoom, x, y) cell of the quadtree grid."""
    z: int
    x: int
    y: int

    @property
    def tile_id(self) -> str:
        """Get unique tile identifier."""
        return f"{self.z}/{self.x}/{self.y}"


def _check_zoom(zoom: int) -> None:
    if zoom < 0:
        raise InvalidZoomError(zoom)


def tiles_per_side(zoom: int) -> int:
    """Number of tiles along one edge of the grid at ``zoom``."""
    _check_zoom(zoom)
    return 2 ** zoom


def tile_count(zoom: int) -> int:
    """Total number of tiles at ``zoom`` (4**zoom)."""
    return tiles_per_side(zoom) ** 2


def enumerate_tiles(zoom: int, verbose: bool = False) -> Iterator[TileAddress]:
    """
    Enumerate every tile address at a zoom level.

    The zoom level is validated immediately, so an invalid zoom raises here
    rather than on first iteration.

    Args:
        zoom: Zoom level to enumerate
        verbose: Log start/end events at debug level

    Returns:
        Iterator over TileAddress values in row-major order

    Raises:
        InvalidZoomError: If zoom is negative
    """
    side = tiles_per_side(zoom)

    def _generate() -> Iterator[TileAddress]:
        if verbose:
            logger.debug("[START] Generating coordinates", zoom=zoom, tiles=side * side)
        for y in range(side):
            for x in range(side):
                yield TileAddress(z=zoom, x=x, y=y)
        if verbose:
            logger.debug("[END] Generated coordinates", zoom=zoom)

    return _generate()
