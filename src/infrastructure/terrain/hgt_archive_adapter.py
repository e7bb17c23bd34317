"""HGT ZIP archive adapter for TileArchiveRepository.

Implements loading of SRTM elevation tiles packed in a ZIP archive,
decoding each entry into a domain ElevationTile Value Object.

Lifecycle:
1) Resolve the source (bytes, binary stream, or path with file guards)
2) Open the archive with zipfile; an unreadable archive is fatal
3) For each entry: match the tile name, check the length, detect byte order
4) Skip (log) entries that fail; one bad entry never aborts the rest
5) Return decoded tiles; `load_into` swaps them into a TileStore at once
"""

from __future__ import annotations

import io
import logging
import math
import re
import zipfile
import zlib
from pathlib import Path, PurePosixPath
from typing import BinaryIO

import numpy as np
from numpy.typing import NDArray

from domain.terrain.errors import (
    InsufficientMemoryError,
    InvalidArchiveError,
    InvalidTileError,
)
from domain.terrain.repositories import ArchiveSource
from domain.terrain.tile_store import TileStore
from domain.terrain.value_objects import ElevationTile
from shared.hgt_format import (
    ENDIAN_BAD_RATIO,
    ENDIAN_MAX_PLAUSIBLE_M,
    ENDIAN_MIN_PLAUSIBLE_M,
    ENDIAN_SAMPLE_COUNT,
    ENDIAN_SAMPLE_STRIDE,
    ENDIAN_SWAP_ARTIFACT_MIN,
    HGT_NODATA,
    ByteOrder,
    dtype_for,
)

# Module-level logger (reused across all calls)
logger = logging.getLogger(__name__)

_TILE_NAME = re.compile(r"^([NS]\d{2}[EW]\d{3})\.hgt$", re.IGNORECASE)


def tile_key_from_filename(name: str) -> str | None:
    """Return the upper-case tile key for an archive entry name, or None.

    Directories inside the archive are ignored; only the basename matters.
    Example: "srtm/n59e030.HGT" -> "N59E030"
    """
    base = PurePosixPath(name.replace("\\", "/")).name
    m = _TILE_NAME.match(base)
    return m.group(1).upper() if m else None


def _implausible(values: NDArray[np.int32]) -> NDArray[np.bool_]:
    magnitude = np.abs(values)
    return (
        (values < ENDIAN_MIN_PLAUSIBLE_M)
        | (values > ENDIAN_MAX_PLAUSIBLE_M)
        | ((magnitude >= ENDIAN_SWAP_ARTIFACT_MIN) & (magnitude % 256 == 0))
    )


def detect_byte_order(big_endian: NDArray[np.int16], nodata: int = HGT_NODATA) -> ByteOrder:
    """Guess the byte order of a tile from its big-endian decoding.

    Samples up to ENDIAN_SAMPLE_COUNT values at a prime stride. A value is
    implausible when it lies outside the physical elevation range or is a
    large multiple of 256 (the signature of swapped bytes). Void samples
    are ignored. More than ENDIAN_BAD_RATIO implausible -> little-endian.
    """
    flat = big_endian.reshape(-1)
    n = flat.shape[0]
    if n == 0:
        return "big"

    count = min(ENDIAN_SAMPLE_COUNT, n)
    idx = (np.arange(count, dtype=np.int64) * ENDIAN_SAMPLE_STRIDE) % n
    sampled = flat[idx].astype(np.int32)
    sampled = sampled[sampled != nodata]
    if sampled.size == 0:
        return "big"

    bad = int(np.count_nonzero(_implausible(sampled)))
    return "little" if bad > sampled.size * ENDIAN_BAD_RATIO else "big"


def decode_tile(key: str, payload: bytes, entry: str | None = None) -> ElevationTile:
    """Decode one raw HGT payload into an ElevationTile.

    Raises:
        InvalidTileError: If the length is not a square grid of int16 or
            the key names a cell outside the globe
    """
    entry = entry or key
    n_bytes = len(payload)
    if n_bytes == 0:
        raise InvalidTileError(entry, "empty entry")
    if n_bytes % 2:
        raise InvalidTileError(entry, f"odd byte length {n_bytes}")

    count = n_bytes // 2
    size = int(round(math.sqrt(count)))
    if size * size != count:
        raise InvalidTileError(entry, f"unexpected length {n_bytes} bytes")
    if size < 2:
        raise InvalidTileError(entry, f"grid too small ({size}x{size})")

    big = np.frombuffer(payload, dtype=dtype_for("big")).reshape(size, size)
    byte_order = detect_byte_order(big)
    if byte_order == "little":
        data = np.frombuffer(payload, dtype=dtype_for("little")).reshape(size, size)
        logger.warning("HGT %s: little-endian samples detected", entry)
    else:
        data = big

    try:
        return ElevationTile(key=key, data=data.astype(np.int16), byte_order=byte_order)
    except ValueError as e:
        # Name matched the pattern but names no cell on the globe
        raise InvalidTileError(entry, f"cell out of range ({key})") from e


class HgtArchiveAdapter:
    """Infrastructure adapter for loading SRTM tiles from ZIP archives.

    Parameters
    ----------
    max_bytes: int | None
        Optional memory budget for the decoded tiles (sum of entry sizes).
        If exceeded, the adapter raises InsufficientMemoryError before
        decoding anything.
    """

    def __init__(self, max_bytes: int | None = None) -> None:
        self.max_bytes = max_bytes

    def read_tiles(self, source: ArchiveSource) -> list[ElevationTile]:
        """Decode every usable tile in an archive.

        Raises:
            FileNotFoundError: If a path source does not exist
            InvalidArchiveError: If the archive cannot be opened at all
            InsufficientMemoryError: If entries exceed max_bytes
        """
        stream, label = self._open_source(source)

        try:
            with zipfile.ZipFile(stream) as zf:
                infos = [i for i in zf.infolist() if not i.is_dir()]
                candidates: list[tuple[str, zipfile.ZipInfo]] = []
                for info in infos:
                    key = tile_key_from_filename(info.filename)
                    if key is None:
                        logger.debug("Archive %s: skipping entry %s", label, info.filename)
                        continue
                    candidates.append((key, info))

                if self.max_bytes is not None:
                    total = sum(info.file_size for _, info in candidates)
                    if total > self.max_bytes:
                        raise InsufficientMemoryError(
                            f"Tiles total {total}B exceeds budget {self.max_bytes}B"
                        )

                tiles: list[ElevationTile] = []
                for key, info in candidates:
                    entry = PurePosixPath(info.filename).name
                    try:
                        payload = zf.read(info)
                        tile = decode_tile(key, payload, entry)
                    except InvalidTileError as e:
                        logger.warning("Archive %s: skipping %s", label, e)
                        continue
                    except (
                        zipfile.BadZipFile,
                        zlib.error,
                        NotImplementedError,
                        OSError,
                        EOFError,
                    ) as e:
                        logger.debug("Archive %s: unreadable entry %s: %s", label, entry, e)
                        continue
                    tiles.append(tile)
                    _log_tile_range(tile)
        except zipfile.BadZipFile as e:
            raise InvalidArchiveError(f"Corrupted or invalid archive {label}: {e}") from e
        except MemoryError as e:
            raise InsufficientMemoryError("Insufficient memory to load archive") from e

        return tiles

    def load_into(self, store: TileStore, source: ArchiveSource) -> int:
        """Decode an archive and replace the store's contents with it.

        The store is only touched once decoding succeeded, so an unreadable
        archive leaves the previous tiles in place. An archive without any
        usable tile empties the store.

        Returns:
            Number of tiles now held by the store
        """
        tiles = self.read_tiles(source)
        if not tiles:
            logger.warning("Archive contains no usable .hgt tiles")
        loaded = store.replace(tiles)
        logger.info("Loaded %d elevation tile(s)", loaded)
        return loaded

    def _open_source(self, source: ArchiveSource) -> tuple[BinaryIO, str]:
        if isinstance(source, (bytes, bytearray, memoryview)):
            if len(source) == 0:
                raise InvalidArchiveError("Empty archive")
            return io.BytesIO(bytes(source)), "<memory>"
        if isinstance(source, (str, Path)):
            return self._open_path(Path(source))
        return source, getattr(source, "name", "<stream>")

    def _open_path(self, path: Path) -> tuple[BinaryIO, str]:
        # Check existence first to ensure missing files surface as FileNotFoundError
        if not path.exists():
            raise FileNotFoundError(str(path))

        # Extension allowlist
        if path.suffix.lower() != ".zip":
            raise InvalidArchiveError(f"Unsupported file extension: {path.suffix}")

        try:
            # Reject symlinks explicitly to avoid traversal
            if path.is_symlink():
                raise InvalidArchiveError("Symlinks are not permitted")
            st = path.stat()
            if st.st_size == 0:
                raise InvalidArchiveError("Empty file")
            # Compressed size above 2x budget is certainly too large
            if self.max_bytes is not None and st.st_size > self.max_bytes * 2:
                raise InsufficientMemoryError(
                    f"File size {st.st_size}B exceeds 2x memory budget {self.max_bytes}B"
                )
            data = path.read_bytes()
        except PermissionError as e:
            # Re-raise with filename only to avoid leaking full path in logs
            raise PermissionError(path.name) from e
        except OSError as e:
            # Log only filename, errno, and strerror to avoid leaking absolute paths
            logger.error(
                "Failed to read %s (errno=%s, strerror=%s)",
                path.name,
                getattr(e, "errno", "unknown"),
                getattr(e, "strerror", "unknown"),
            )
            raise
        return io.BytesIO(data), path.name


def _log_tile_range(tile: ElevationTile) -> None:
    bounds = tile.bounds
    logger.debug(
        "HGT %s (%dx%d, %s): lat %.0f..%.0f, lng %.0f..%.0f",
        tile.key,
        tile.size,
        tile.size,
        tile.byte_order,
        bounds.min_y,
        bounds.max_y,
        bounds.min_x,
        bounds.max_x,
    )
    nodata_pct = tile.nodata_ratio() * 100.0
    if nodata_pct > 80.0:
        logger.warning("HGT %s: %.1f%% NoData samples", tile.key, nodata_pct)


def load_archive(store: TileStore, source: ArchiveSource) -> int:
    """Load an archive into a store with a default adapter."""
    return HgtArchiveAdapter().load_into(store, source)
