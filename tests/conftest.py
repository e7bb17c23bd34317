"""Root pytest configuration for all tests.

Provides the common elevation sources used across bounded-context suites.
Imports resolve through `pythonpath = [".", "src"]` in pyproject.toml, so
`domain.*`, `infrastructure.*` and `shared.*` import the same way in tests
as in production code.
"""

from __future__ import annotations

import pytest

from domain.terrain.tile_store import TileStore
from domain.terrain.value_objects import GeoPoint
from tests.conftest_utils import FlatTerrain, NoTerrain, constant_grid, make_tile, store_with


@pytest.fixture
def origin() -> GeoPoint:
    """Reference point inside cell N59E030."""
    return GeoPoint(latitude=59.5, longitude=30.5)


@pytest.fixture
def flat_terrain() -> FlatTerrain:
    return FlatTerrain(100.0)


@pytest.fixture
def no_terrain() -> NoTerrain:
    return NoTerrain()


@pytest.fixture
def flat_store() -> TileStore:
    """Store holding one small constant tile (N59E030 at 120 m)."""
    return store_with(make_tile("N59E030", constant_grid(120)))
