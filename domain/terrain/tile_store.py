"""Terrain Bounded Context - Elevation Tile Store.

In-memory mapping from tile key to ElevationTile, answering point
elevation queries by bilinear interpolation.

The store is owned explicitly and passed to consumers by reference. It is
replaced wholesale on each archive load (single writer) and read-only
between loads (many readers): `replace` builds the new mapping outside the
lock and swaps it in under the write side, so readers never observe a mix
of old and new tiles. Batch consumers (link evaluation, coverage rings)
wrap their queries in `consistent_reads` so a load waits for the batch.
"""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Iterable, Iterator
from contextlib import AbstractContextManager, contextmanager, nullcontext

from domain.terrain.services import bilinear_interpolate, tile_key_for
from domain.terrain.value_objects import ElevationTile

logger = logging.getLogger(__name__)


class _ReadWriteLock:
    """Writer-preferring readers-writer lock."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class TileStore:
    """Owned elevation tile cache (implements the ElevationModel port).

    Example:
        >>> store = TileStore()
        >>> HgtArchiveAdapter().load_into(store, archive_bytes)
        >>> store.get_elevation(59.5, 30.5)
    """

    def __init__(self, tiles: Iterable[ElevationTile] = ()) -> None:
        self._lock = _ReadWriteLock()
        self._tiles: dict[str, ElevationTile] = {t.key: t for t in tiles}

    # -- writer side -------------------------------------------------------
    def replace(self, tiles: Iterable[ElevationTile]) -> int:
        """Replace the whole store with the given tiles.

        Duplicate keys keep the last tile. Returns the number of tiles held.
        """
        fresh: dict[str, ElevationTile] = {}
        for tile in tiles:
            if tile.key in fresh:
                logger.debug("Tile %s supplied twice; keeping the later one", tile.key)
            fresh[tile.key] = tile
        with self._lock.write():
            self._tiles = fresh
        return len(fresh)

    def clear(self) -> None:
        with self._lock.write():
            self._tiles = {}

    # -- reader side -------------------------------------------------------
    @contextmanager
    def reading(self) -> Iterator["TileStore"]:
        """Hold the read side across a batch of queries.

        Queries issued inside the block see one consistent snapshot even if
        a load is waiting to swap the store.
        """
        with self._lock.read():
            yield self

    def get_elevation(self, latitude: float, longitude: float) -> float:
        """Return interpolated ground elevation in meters, or NaN.

        NaN when either coordinate is non-finite or out of range, when no
        tiles are loaded, or when the owning tile is absent.
        """
        if not (math.isfinite(latitude) and math.isfinite(longitude)):
            return math.nan
        if abs(latitude) > 90.0 or abs(longitude) > 180.0:
            return math.nan

        tiles = self._tiles  # one snapshot; replace() swaps the reference
        if not tiles:
            return math.nan
        tile = tiles.get(tile_key_for(latitude, longitude))
        if tile is None:
            return math.nan

        elevation, _ = bilinear_interpolate(tile, latitude, longitude)
        return elevation

    def has_data_at(self, latitude: float, longitude: float) -> bool:
        """True if the store knows the ground elevation at a coordinate."""
        return math.isfinite(self.get_elevation(latitude, longitude))

    def tile(self, key: str) -> ElevationTile | None:
        return self._tiles.get(key.upper())

    def keys(self) -> list[str]:
        return sorted(self._tiles)

    def __len__(self) -> int:
        return len(self._tiles)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.upper() in self._tiles


def consistent_reads(elevation: object) -> AbstractContextManager[object]:
    """Scope for a batch of elevation queries.

    Holds the read side when the source is a TileStore; any other
    ElevationModel gets a no-op scope. Not reentrant: a nested read behind
    a waiting writer would deadlock, so only the outermost batch enters.
    """
    if isinstance(elevation, TileStore):
        return elevation.reading()
    return nullcontext()
