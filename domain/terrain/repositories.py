"""Domain Port(s) for Terrain I/O.

Defines interfaces (Protocols) that infrastructure adapters and elevation
sources must implement. No concrete I/O here.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import BinaryIO, Protocol

from .value_objects import ElevationTile

ArchiveSource = bytes | bytearray | memoryview | Path | str | BinaryIO


class TileArchiveRepository(Protocol):
    """Port for obtaining elevation tiles from external archives.

    Implementations live in infrastructure (e.g., HGT ZIP adapter).
    """

    def read_tiles(self, source: ArchiveSource) -> Sequence[ElevationTile]:
        """Decode every usable tile in the archive."""
        ...


class ElevationModel(Protocol):
    """Anything that answers point elevation queries.

    Implementations must be total: unknown terrain is NaN, never an error.
    """

    def get_elevation(self, latitude: float, longitude: float) -> float:
        """Return ground elevation in meters, or NaN when unknown."""
        ...
