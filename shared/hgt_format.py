"""SRTM HGT format constants and archive builders.

Shared by the domain (nodata sentinel), the infrastructure adapter,
scripts/gen_archive.py and the test suites. Builders here produce
in-memory HGT payloads and ZIP archives so tests never need files on disk.

Location: shared/ (not tests/) to avoid scripts->tests dependency.
"""

from __future__ import annotations

import io
import zipfile
from collections.abc import Iterable, Mapping
from typing import Literal

import numpy as np
from numpy.typing import ArrayLike

# ---------------------------------------------------------------------------
# Format Constants
# ---------------------------------------------------------------------------
HGT_NODATA = -32768  # Reserved raw value: elevation unknown (void)
SRTM3_SIZE = 1201  # 3 arc-second tiles
SRTM1_SIZE = 3601  # 1 arc-second tiles
HGT_EXTENSION = ".hgt"

# Byte order detection heuristic (see infrastructure hgt_archive_adapter)
ENDIAN_SAMPLE_COUNT = 1000  # Max values inspected per tile
ENDIAN_SAMPLE_STRIDE = 977  # Prime stride avoids periodic bias
ENDIAN_MIN_PLAUSIBLE_M = -500
ENDIAN_MAX_PLAUSIBLE_M = 9000
ENDIAN_SWAP_ARTIFACT_MIN = 1024  # |v| >= this and multiple of 256 -> suspicious
ENDIAN_BAD_RATIO = 0.3  # Above this share of implausible values -> little-endian

ByteOrder = Literal["big", "little"]

_DTYPES: dict[str, str] = {"big": ">i2", "little": "<i2"}


def tile_filename(latitude: int, longitude: int) -> str:
    """Return the canonical HGT name for the cell whose SW corner is given.

    Example: tile_filename(59, 30) -> "N59E030.hgt"
    """
    ns = "N" if latitude >= 0 else "S"
    ew = "E" if longitude >= 0 else "W"
    return f"{ns}{abs(latitude):02d}{ew}{abs(longitude):03d}{HGT_EXTENSION}"


def dtype_for(byte_order: ByteOrder) -> str:
    """Return the numpy dtype string for signed 16-bit samples."""
    return _DTYPES[byte_order]


def encode_tile(values: ArrayLike, byte_order: ByteOrder = "big") -> bytes:
    """Encode a square grid of elevations as raw HGT bytes."""
    grid = np.asarray(values)
    if grid.ndim != 2 or grid.shape[0] != grid.shape[1]:
        raise ValueError(f"HGT grid must be square 2D, got shape {grid.shape}")
    return grid.astype(dtype_for(byte_order)).tobytes()


def constant_tile(
    elevation_m: int, size: int = SRTM3_SIZE, byte_order: ByteOrder = "big"
) -> bytes:
    """Encode a tile filled with one elevation value."""
    return encode_tile(np.full((size, size), elevation_m, dtype=np.int16), byte_order)


def build_archive(entries: Mapping[str, bytes] | Iterable[tuple[str, bytes]]) -> bytes:
    """Pack named payloads into an uncompressed in-memory ZIP archive."""
    items = entries.items() if isinstance(entries, Mapping) else entries
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_STORED) as zf:
        for name, payload in items:
            zf.writestr(name, payload)
    return buffer.getvalue()
