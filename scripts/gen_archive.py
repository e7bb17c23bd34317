#!/usr/bin/env python3
"""Generate a synthetic SRTM HGT archive for manual testing.

The archive holds a small block of 3 arc-second tiles around N59E030 with
recognizable relief, plus entries that exercise the loader's tolerance:

    N59E030.hgt  gaussian hill (peak 800 m) on a 50 m plain
    N59E031.hgt  north-south ridge (600 m) at lng 31.5
    N60E030.hgt  plain with a void patch (NoData) in the middle
    N60E031.hgt  plain written little-endian (auto-detected on load)
    BROKEN.hgt   ignored: name does not match the tile pattern
    N61E030.hgt  skipped: truncated payload

Usage:
    python scripts/gen_archive.py [output.zip]

Output:
    demo_tiles.zip in the working directory unless a path is given

Dependencies:
    This script imports from shared/hgt_format.py (not tests/) to avoid
    a dependency from scripts on the tests package.
"""

from __future__ import annotations

import argparse
from pathlib import Path

import numpy as np
from numpy.typing import NDArray

from shared.hgt_format import (
    HGT_NODATA,
    SRTM3_SIZE,
    build_archive,
    encode_tile,
    tile_filename,
)

PLAIN_M = 50


def _axes(size: int = SRTM3_SIZE) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Fractional (x east, y south) coordinates of every sample in a tile."""
    t = np.linspace(0.0, 1.0, size)
    return np.meshgrid(t, t)


def gen_hill(peak_m: int = 800) -> NDArray[np.int16]:
    x, y = _axes()
    r2 = (x - 0.5) ** 2 + (y - 0.5) ** 2
    return (PLAIN_M + (peak_m - PLAIN_M) * np.exp(-r2 / 0.01)).astype(np.int16)


def gen_ridge(crest_m: int = 600) -> NDArray[np.int16]:
    x, _ = _axes()
    return (PLAIN_M + (crest_m - PLAIN_M) * np.exp(-((x - 0.5) ** 2) / 0.002)).astype(
        np.int16
    )


def gen_void_patch() -> NDArray[np.int16]:
    data = np.full((SRTM3_SIZE, SRTM3_SIZE), PLAIN_M, dtype=np.int16)
    lo, hi = SRTM3_SIZE // 3, 2 * SRTM3_SIZE // 3
    data[lo:hi, lo:hi] = HGT_NODATA
    return data


def build_demo_archive() -> bytes:
    plain = np.full((SRTM3_SIZE, SRTM3_SIZE), PLAIN_M + 70, dtype=np.int16)
    return build_archive(
        [
            (tile_filename(59, 30), encode_tile(gen_hill())),
            (tile_filename(59, 31), encode_tile(gen_ridge())),
            (tile_filename(60, 30), encode_tile(gen_void_patch())),
            (tile_filename(60, 31), encode_tile(plain, byte_order="little")),
            ("BROKEN.hgt", encode_tile(plain)),
            (tile_filename(61, 30), encode_tile(plain)[:-3]),
        ]
    )


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("output", nargs="?", default="demo_tiles.zip", type=Path)
    args = parser.parse_args()

    if args.output.suffix.lower() != ".zip":
        print(f"ERROR: output must end in .zip, got {args.output.name}")
        return 1

    payload = build_demo_archive()
    args.output.write_bytes(payload)

    print(f"Wrote {args.output} ({len(payload) / 1024:.1f}KB)")
    print("Expected on load: 4 tiles (N59E030, N59E031, N60E030, N60E031)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
