"""Tests for ElevationTile, tile addressing and the TileStore.

Covers key resolution at the poles and the antimeridian, bilinear
interpolation with per-corner NoData fallback, and wholesale replacement
of the store under concurrent readers.
"""

from __future__ import annotations

import math
import threading

import numpy as np
import pytest

from domain.terrain.services import bilinear_interpolate, grid_position, tile_key_for
from domain.terrain.tile_store import TileStore, consistent_reads
from domain.terrain.value_objects import ElevationTile, parse_tile_key
from shared.hgt_format import HGT_NODATA, SRTM3_SIZE
from tests.conftest_utils import FlatTerrain, constant_grid, make_tile, store_with

NODATA = HGT_NODATA


# ---------------------------------------------------------------------------
# Test Fixture Helpers
# ---------------------------------------------------------------------------
def create_known_tile() -> ElevationTile:
    """3x3 tile over N59E030 with distinct, easy-to-interpolate values."""
    return make_tile(
        "N59E030",
        [
            [0, 10, 20],
            [30, 40, 50],
            [60, 70, 80],
        ],
    )


# ===========================================================================
# TC-001: Tile Key Resolution
# ===========================================================================
@pytest.mark.parametrize(
    ("lat", "lng", "expected"),
    [
        (59.5, 30.5, "N59E030"),
        (0.0, 0.0, "N00E000"),
        (-0.5, -0.5, "S01W001"),
        (-33.9, 151.2, "S34E151"),
        (90.0, 180.0, "N89E179"),
        (-90.0, -180.0, "S90W180"),
        (45.0, -180.0, "N45W180"),
    ],
)
def test_tile_key_for(lat, lng, expected):
    """TC-001: Floor of lat/lng names the owning cell; edges nudge inward."""
    assert tile_key_for(lat, lng) == expected


def test_parse_tile_key_round_trips_hemispheres():
    """TC-001b: parse_tile_key returns the signed south-west corner."""
    assert parse_tile_key("N59E030") == (59, 30)
    assert parse_tile_key("s01w001") == (-1, -1)
    with pytest.raises(ValueError, match="Invalid tile key"):
        parse_tile_key("N5E030")


# ===========================================================================
# TC-002: Grid Index Always In Range
# ===========================================================================
@pytest.mark.parametrize("lat", [-90.0, -89.5, -0.000001, 0.0, 45.999999, 89.9999999, 90.0])
@pytest.mark.parametrize("lng", [-180.0, -0.5, 0.0, 179.9999999, 180.0])
def test_grid_position_within_tile(lat, lng):
    """TC-002: Fractional row/col stays inside [0, size - 1] everywhere."""
    tile = make_tile("N00E000", constant_grid(0, size=SRTM3_SIZE))

    u, v = grid_position(tile, lat, lng)

    assert 0.0 <= u <= SRTM3_SIZE - 1
    assert 0.0 <= v <= SRTM3_SIZE - 1


def test_get_elevation_at_exact_world_corners():
    """TC-002b: +-90 / +-180 queries resolve to existing edge cells."""
    store = store_with(
        make_tile("N89E179", constant_grid(5)),
        make_tile("S90W180", constant_grid(-7)),
    )

    assert store.get_elevation(90.0, 180.0) == pytest.approx(5.0)
    assert store.get_elevation(-90.0, -180.0) == pytest.approx(-7.0)


# ===========================================================================
# TC-003: Bilinear Interpolation
# ===========================================================================
def test_constant_tile_interpolates_to_constant():
    """TC-003a: A constant tile yields that value everywhere in its cell."""
    store = store_with(make_tile("N59E030", constant_grid(321)))

    for lat, lng in [(59.0, 30.0), (59.5, 30.5), (59.123, 30.987), (59.999, 30.001)]:
        assert store.get_elevation(lat, lng) == pytest.approx(321.0)


def test_bilinear_center_of_cell():
    """TC-003b: Mid-point of four samples is their average."""
    tile = create_known_tile()

    elevation, is_nodata = bilinear_interpolate(tile, 59.75, 30.25)

    assert elevation == pytest.approx(20.0)  # mean of 0, 10, 30, 40
    assert is_nodata is False


def test_bilinear_row_zero_is_north():
    """TC-003c: Row 0 is the northern edge, column 0 the western edge."""
    tile = create_known_tile()

    assert bilinear_interpolate(tile, 59.0, 30.0)[0] == pytest.approx(60.0)  # SW
    assert bilinear_interpolate(tile, 59.5, 30.0)[0] == pytest.approx(30.0)  # W middle
    assert bilinear_interpolate(tile, 59.5, 30.5)[0] == pytest.approx(40.0)  # center


# ===========================================================================
# TC-004: NoData Corners
# ===========================================================================
def test_single_void_corner_falls_back_to_valid_neighbor():
    """TC-004a: lerp(valid, NaN) keeps the valid side."""
    tile = make_tile("N59E030", [[100, NODATA], [100, 100]])

    elevation, is_nodata = bilinear_interpolate(tile, 59.5, 30.5)

    assert elevation == pytest.approx(100.0)
    assert is_nodata is False


def test_void_row_falls_back_to_other_row():
    """TC-004b: A fully void top row degrades to the bottom row."""
    tile = make_tile("N59E030", [[NODATA, NODATA], [200, 200]])

    elevation, _ = bilinear_interpolate(tile, 59.5, 30.5)

    assert elevation == pytest.approx(200.0)


def test_all_void_corners_is_nan():
    """TC-004c: Four void corners give NaN."""
    tile = make_tile("N59E030", np.full((2, 2), NODATA))
    store = store_with(tile)

    elevation, is_nodata = bilinear_interpolate(tile, 59.5, 30.5)

    assert math.isnan(elevation)
    assert is_nodata is True
    assert math.isnan(store.get_elevation(59.5, 30.5))
    assert store.has_data_at(59.5, 30.5) is False


# ===========================================================================
# TC-005: Missing Data Is NaN, Never An Error
# ===========================================================================
@pytest.mark.parametrize(
    ("lat", "lng"),
    [
        (math.nan, 30.5),
        (59.5, math.inf),
        (91.0, 30.5),
        (59.5, -180.5),
        (61.0, 30.5),  # No tile loaded there
    ],
)
def test_get_elevation_nan_cases(flat_store, lat, lng):
    """TC-005a: Unknown terrain is reported as NaN."""
    assert math.isnan(flat_store.get_elevation(lat, lng))


def test_empty_store_returns_nan():
    """TC-005b: An empty store answers NaN for any query."""
    store = TileStore()

    assert len(store) == 0
    assert math.isnan(store.get_elevation(59.5, 30.5))


# ===========================================================================
# TC-006: Store Replacement
# ===========================================================================
def test_replace_swaps_all_tiles(flat_store):
    """TC-006a: replace() discards previous tiles."""
    loaded = flat_store.replace([make_tile("N60E030", constant_grid(50))])

    assert loaded == 1
    assert flat_store.keys() == ["N60E030"]
    assert math.isnan(flat_store.get_elevation(59.5, 30.5))
    assert flat_store.get_elevation(60.5, 30.5) == pytest.approx(50.0)


def test_replace_duplicate_keys_keeps_last():
    """TC-006b: A key supplied twice keeps the later tile."""
    store = TileStore()

    loaded = store.replace(
        [make_tile("N59E030", constant_grid(1)), make_tile("N59E030", constant_grid(2))]
    )

    assert loaded == 1
    assert store.get_elevation(59.5, 30.5) == pytest.approx(2.0)


def test_clear_and_lookup_helpers(flat_store):
    """TC-006c: clear(), tile(), membership and len."""
    assert "n59e030" in flat_store
    assert flat_store.tile("N59E030") is not None
    assert flat_store.tile("N00E000") is None

    flat_store.clear()

    assert len(flat_store) == 0
    assert "N59E030" not in flat_store


def test_readers_never_see_mixed_state():
    """TC-006d: Concurrent readers observe either the old or the new tiles."""
    old = [make_tile("N59E030", constant_grid(100)), make_tile("N59E031", constant_grid(100))]
    new = [make_tile("N59E030", constant_grid(200)), make_tile("N59E031", constant_grid(200))]
    store = store_with(*old)
    seen: list[tuple[float, float]] = []
    errors: list[BaseException] = []

    def reader() -> None:
        try:
            for _ in range(200):
                with store.reading():
                    seen.append(
                        (store.get_elevation(59.5, 30.5), store.get_elevation(59.5, 31.5))
                    )
        except BaseException as e:  # pragma: no cover - surfaced below
            errors.append(e)

    def writer() -> None:
        for i in range(50):
            store.replace(new if i % 2 == 0 else old)

    threads = [threading.Thread(target=reader) for _ in range(4)]
    threads.append(threading.Thread(target=writer))
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert not errors
    assert len(seen) == 800
    assert all(a == b and a in (100.0, 200.0) for a, b in seen)


def test_consistent_reads_holds_off_a_load(flat_store):
    """TC-006e: A load waits until the batch scope is left."""
    writer = threading.Thread(target=flat_store.clear)

    with consistent_reads(flat_store):
        writer.start()
        writer.join(timeout=0.2)
        assert writer.is_alive()
        assert flat_store.get_elevation(59.5, 30.5) == pytest.approx(120.0)

    writer.join(timeout=5)
    assert not writer.is_alive()
    assert len(flat_store) == 0


def test_consistent_reads_is_a_no_op_for_other_models():
    """TC-006f: Fake terrains need no lock."""
    terrain = FlatTerrain(7.0)

    with consistent_reads(terrain) as scope:
        assert terrain.get_elevation(0.0, 0.0) == 7.0

    assert scope is None


# ===========================================================================
# TC-007: ElevationTile Invariants
# ===========================================================================
def test_tile_data_is_read_only_copy():
    """TC-007a: The tile owns a frozen copy of its grid."""
    source = constant_grid(10, size=3)
    tile = make_tile("N59E030", source)

    source[0, 0] = 99
    assert int(tile.data[0, 0]) == 10
    with pytest.raises(ValueError):
        tile.data[0, 0] = 1


def test_tile_geometry():
    """TC-007b: size, origin, bounds and nodata ratio."""
    data = constant_grid(10, size=4)
    data[0, :] = NODATA
    tile = make_tile("S01W001", data)

    assert tile.size == 4
    assert tile.origin == (-1, -1)
    assert tile.bounds.contains(-0.5, -0.5)
    assert not tile.bounds.contains(0.5, -0.5)
    assert tile.nodata_ratio() == pytest.approx(0.25)


@pytest.mark.parametrize(
    ("key", "data", "message"),
    [
        ("N59E030", np.zeros((3, 4), dtype=np.int16), "square"),
        ("N59E030", np.zeros((1, 1), dtype=np.int16), "too small"),
        ("N59E030", np.zeros((3, 3), dtype=np.float32), "int16"),
        ("N59E030", np.zeros(9, dtype=np.int16), "2D"),
        ("n59e030", np.zeros((3, 3), dtype=np.int16), "upper case"),
        ("N95E030", np.zeros((3, 3), dtype=np.int16), "out of range"),
        ("X59E030", np.zeros((3, 3), dtype=np.int16), "Invalid tile key"),
    ],
)
def test_tile_rejects_invalid_input(key, data, message):
    """TC-007c: Invalid tiles cannot be constructed."""
    with pytest.raises(ValueError, match=message):
        ElevationTile(key=key, data=data)
