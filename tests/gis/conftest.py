"""Pytest configuration for archive integration tests.

This conftest is for tests/gis/ directory only.

Archives are built in memory with shared.hgt_format so the suite needs no
binary fixtures on disk; tests that exercise the path guards write the
same bytes under tmp_path.
"""

from __future__ import annotations

import io
import zipfile
from pathlib import Path

import numpy as np
import pytest

from shared.hgt_format import build_archive, constant_tile, encode_tile

SMALL = 101

ADAPTER_LOGGER = "infrastructure.terrain.hgt_archive_adapter"


def terrain_grid(seed: int = 7, size: int = SMALL) -> np.ndarray:
    """Plausible relief: random elevations between 100 and 3000 m."""
    rng = np.random.default_rng(seed)
    return rng.integers(100, 3000, size=(size, size)).astype(np.int16)


@pytest.fixture
def two_tile_archive() -> bytes:
    """Valid archive with N59E030 (120 m) and N59E031 (240 m)."""
    return build_archive(
        {
            "N59E030.hgt": constant_tile(120, size=SMALL),
            "N59E031.hgt": constant_tile(240, size=SMALL),
        }
    )


@pytest.fixture
def mixed_archive() -> bytes:
    """One good tile surrounded by entries that must be skipped."""
    return build_archive(
        [
            ("N59E030.hgt", encode_tile(terrain_grid())),
            ("N59E031.hgt", b"\x00" * 7),  # Odd byte length
            ("N60E030.hgt", b"\x00" * 6),  # 3 samples: not a square grid
            ("N61E030.hgt", b""),  # Empty entry
            ("N00E000.hgt", b"\x00\x00"),  # 1x1 grid
            ("N95E000.hgt", constant_tile(10, size=SMALL)),  # Latitude out of range
            ("S01E180.hgt", constant_tile(10, size=SMALL)),  # Longitude out of range
            ("README.txt", b"not a tile"),
        ]
    )


@pytest.fixture
def archive_path(tmp_path: Path, two_tile_archive: bytes) -> Path:
    p = tmp_path / "tiles.zip"
    p.write_bytes(two_tile_archive)
    return p


@pytest.fixture
def corrupt_deflate_archive() -> bytes:
    """Deflated archive whose first entry has a broken compressed stream.

    N60E030 comes first and its deflate data starts with a reserved block
    type; the valid N59E030 entry follows it.
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("N60E030.hgt", constant_tile(75, size=SMALL))
        zf.writestr("N59E030.hgt", constant_tile(120, size=SMALL))
    raw = bytearray(buffer.getvalue())

    # Local header: 30 fixed bytes, then name and extra field
    name_len = int.from_bytes(raw[26:28], "little")
    extra_len = int.from_bytes(raw[28:30], "little")
    start = 30 + name_len + extra_len
    raw[start : start + 4] = b"\xff\xff\xff\xff"
    return bytes(raw)
