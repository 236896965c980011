"""
Contour Tile Batch

Batch orchestrator for contour tile generation: enumerates every tile of a
quadtree zoom level and runs an external contour worker for each tile through
a bounded-concurrency worker pool.
"""

__version__ = "1.0.0"

# Core modules
from . import tile_generation
from . import dispatch
from . import monitoring
from . import utils

__all__ = [
    "tile_generation",
    "dispatch",
    "monitoring",
    "utils"
]
