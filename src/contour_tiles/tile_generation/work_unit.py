"""
Work Units

A work unit pairs one tile address with the run's shared Configuration.
Units are created lazily from the coordinate stream and consumed exactly
once by the dispatch pool.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List

from ..utils.config import Configuration
from .coordinates import TileAddress


@dataclass(frozen=True)
class WorkUnit:
    """One tile plus the parameters needed to process it."""
    address: TileAddress
    config: Configuration

    @property
    def z(self) -> int:
        return self.address.z

    @property
    def x(self) -> int:
        return self.address.x

    @property
    def y(self) -> int:
        return self.address.y

    @property
    def tile_id(self) -> str:
        return self.address.tile_id

    def parameters(self) -> Dict[str, str]:
        """Worker parameters keyed by option name, in invocation order."""
        config = self.config
        return {
            "x": str(self.x),
            "y": str(self.y),
            "z": str(self.z),
            "sFile": config.source_path,
            "sEncoding": config.source_encoding.value,
            "sMaxZoom": str(config.source_max_zoom),
            "increment": str(config.increment),
            "oMaxZoom": str(config.output_max_zoom),
            "oDir": config.output_dir,
        }

    def to_arguments(self) -> List[str]:
        """Command-line arguments for the external worker."""
        arguments = []
        for name, value in self.parameters().items():
            arguments.extend([f"--{name}", value])
        return arguments


def build_work_units(
    addresses: Iterable[TileAddress],
    config: Configuration
) -> Iterator[WorkUnit]:
    """Pair every address with the shared configuration, lazily."""
    for address in addresses:
        yield WorkUnit(address=address, config=config)
