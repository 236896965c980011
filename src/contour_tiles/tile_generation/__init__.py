"""
Tile Generation Module

Enumerates quadtree tile addresses and pairs them with the shared processing
configuration to form work units.
"""

from .coordinates import TileAddress, enumerate_tiles, tile_count, tiles_per_side
from .work_unit import WorkUnit, build_work_units

__all__ = [
    "TileAddress",
    "enumerate_tiles",
    "tile_count",
    "tiles_per_side",
    "WorkUnit",
    "build_work_units"
]
