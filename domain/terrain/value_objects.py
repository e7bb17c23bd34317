"""Terrain Bounded Context - Value Objects.

Immutable data structures representing geographic concepts.
All validation occurs at construction time via Pydantic.
"""

from __future__ import annotations

import math
import re
from typing import Literal

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict, Field, model_validator

from shared.hgt_format import HGT_NODATA

# ---------------------------------------------------------------------------
# Numeric Constants
# ---------------------------------------------------------------------------
# Tolerances for floating-point comparisons
DISTANCE_TOLERANCE_M = 0.1  # 10 cm - for distance invariants

# Tile key: hemisphere + 2-digit latitude + hemisphere + 3-digit longitude
TILE_KEY_PATTERN = re.compile(r"^([NS])(\d{2})([EW])(\d{3})$")


class BoundingBox(BaseModel):
    """Geographic extent in EPSG:4326 (Value Object).

    Invariants are enforced at construction time - invalid BoundingBox
    cannot be instantiated.
    """

    min_x: float  # Western boundary (longitude)
    min_y: float  # Southern boundary (latitude)
    max_x: float  # Eastern boundary (longitude)
    max_y: float  # Northern boundary (latitude)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_bounds(self) -> "BoundingBox":
        # Longitude range
        if not (-180 <= self.min_x <= 180):
            raise ValueError(f"min_x longitude out of range: {self.min_x}")
        if not (-180 <= self.max_x <= 180):
            raise ValueError(f"max_x longitude out of range: {self.max_x}")
        # Latitude range
        if not (-90 <= self.min_y <= 90):
            raise ValueError(f"min_y latitude out of range: {self.min_y}")
        if not (-90 <= self.max_y <= 90):
            raise ValueError(f"max_y latitude out of range: {self.max_y}")
        # Ordering
        if not (self.min_x < self.max_x):
            raise ValueError(
                f"Invalid x ordering: min_x={self.min_x} >= max_x={self.max_x}"
            )
        if not (self.min_y < self.max_y):
            raise ValueError(
                f"Invalid y ordering: min_y={self.min_y} >= max_y={self.max_y}"
            )
        return self

    def contains(self, latitude: float, longitude: float) -> bool:
        """Inclusive containment test."""
        return (
            self.min_x <= longitude <= self.max_x
            and self.min_y <= latitude <= self.max_y
        )


def parse_tile_key(key: str) -> tuple[int, int]:
    """Return the (latitude, longitude) of a tile key's south-west corner.

    Raises:
        ValueError: If the key does not match the tile naming pattern
    """
    m = TILE_KEY_PATTERN.match(key.upper())
    if m is None:
        raise ValueError(f"Invalid tile key: {key!r}")
    ns, lat, ew, lng = m.groups()
    latitude = int(lat) if ns == "N" else -int(lat)
    longitude = int(lng) if ew == "E" else -int(lng)
    return latitude, longitude


class ElevationTile(BaseModel):
    """One 1x1 degree DEM cell (Value Object).

    The grid is row-major with row 0 = northernmost and col 0 = westernmost,
    as stored in SRTM HGT files. Samples stay in their raw int16 form; the
    nodata sentinel is resolved per corner at interpolation time.

    Invariants:
        ET-1: data is a square 2D int16 array, size >= 2
        ET-2: key matches the tile naming pattern (upper case)
        ET-3: data is read-only after construction
    """

    key: str  # e.g. "N59E030"
    data: NDArray[np.int16]  # size x size, read-only
    byte_order: Literal["big", "little"] = "big"  # Detected source byte order
    nodata: int = HGT_NODATA

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @model_validator(mode="after")
    def validate_tile(self) -> "ElevationTile":
        # Key pattern (also range-checks the cell)
        lat0, lng0 = parse_tile_key(self.key)
        if not (-90 <= lat0 < 90) or not (-180 <= lng0 < 180):
            raise ValueError(f"Tile key out of range: {self.key}")
        if self.key != self.key.upper():
            raise ValueError(f"Tile key must be upper case: {self.key}")
        if self.data.ndim != 2:
            raise ValueError(f"Data must be 2D, got {self.data.ndim}D")
        if self.data.shape[0] != self.data.shape[1]:
            raise ValueError(f"Data must be square, got {self.data.shape}")
        if self.data.shape[0] < 2:
            raise ValueError(f"Grid too small: {self.data.shape}")
        if self.data.dtype != np.int16:
            raise ValueError(f"Data must be int16, got {self.data.dtype}")

        # Owned, native-endian, contiguous copy frozen against mutation.
        immutable = np.array(self.data, dtype=np.int16, copy=True, order="C")
        immutable.flags.writeable = False
        object.__setattr__(self, "data", immutable)
        return self

    @property
    def size(self) -> int:
        """Grid size (samples per row/column), typically 1201 or 3601."""
        return int(self.data.shape[0])

    @property
    def origin(self) -> tuple[int, int]:
        """(latitude, longitude) of the south-west corner."""
        return parse_tile_key(self.key)

    @property
    def bounds(self) -> BoundingBox:
        lat0, lng0 = self.origin
        return BoundingBox(
            min_x=float(lng0),
            min_y=float(lat0),
            max_x=float(lng0 + 1),
            max_y=float(lat0 + 1),
        )

    def nodata_ratio(self) -> float:
        """Return fraction of raw samples equal to the nodata sentinel."""
        return float(np.count_nonzero(self.data == self.nodata) / self.data.size)


# ---------------------------------------------------------------------------
# GeoPoint
# ---------------------------------------------------------------------------
class GeoPoint(BaseModel):
    """Geographic coordinate in WGS84 (Value Object).

    Represents a single point on the Earth's surface using latitude and longitude
    in the WGS84 coordinate reference system.

    Invariants:
        GP-1: latitude in [-90, 90]
        GP-2: longitude in [-180, 180]
    """

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# ProfileSample
# ---------------------------------------------------------------------------
class ProfileSample(BaseModel):
    """Single sample point along a terrain profile (Value Object).

    Represents an elevation sample at a specific distance along a profile path,
    including geographic location and NoData flagging.

    Invariants:
        PS-1: distance_m >= 0
        PS-2: If is_nodata == True, then elevation_m is NaN
        PS-3: If is_nodata == False, then elevation_m is finite
    """

    distance_m: float = Field(ge=0)  # Cumulative distance from start in meters
    elevation_m: float  # Elevation at this point (NaN if nodata)
    point: GeoPoint  # Geographic location of sample
    is_nodata: bool = False  # Explicit flag for NoData regions

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_nodata_consistency(self) -> "ProfileSample":
        """Validate consistency between is_nodata flag and elevation_m."""
        if self.is_nodata and not math.isnan(self.elevation_m):
            raise ValueError("is_nodata=True requires elevation_m=NaN")
        if not self.is_nodata and math.isnan(self.elevation_m):
            raise ValueError("is_nodata=False requires finite elevation_m")
        return self


# ---------------------------------------------------------------------------
# TerrainProfile
# ---------------------------------------------------------------------------
class TerrainProfile(BaseModel):
    """Elevation profile between two points (Value Object).

    Represents an ordered sequence of elevation samples along a geodesic path
    between a start and end point. Produced fresh per query, never persisted.

    Invariants:
        TP-1: len(samples) >= 2
        TP-2: samples[0].distance_m == 0
        TP-3: Samples strictly ordered by distance_m
        TP-4: samples[-1].distance_m == total_distance_m (within tolerance)
        TP-5: has_nodata matches actual samples
        TP-6: effective_step_m == total/(n-1) (within tolerance)
    """

    start: GeoPoint  # Profile origin
    end: GeoPoint  # Profile destination
    samples: tuple[ProfileSample, ...]  # Ordered samples from start to end
    total_distance_m: float = Field(gt=0)  # Total path length in meters
    step_m: float = Field(gt=0)  # Requested sample spacing
    effective_step_m: float = Field(gt=0)  # Actual average spacing: total/(n-1)
    has_nodata: bool  # True if any sample is nodata

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_profile(self) -> "TerrainProfile":
        """Validate all TerrainProfile invariants."""
        # TP-1: At least 2 samples (start and end)
        if len(self.samples) < 2:
            raise ValueError(f"Profile must have >= 2 samples, got {len(self.samples)}")

        # TP-2: First sample at distance 0
        if self.samples[0].distance_m != 0:
            raise ValueError(
                f"First sample must be at distance 0, got {self.samples[0].distance_m}"
            )

        # TP-3: Samples ordered by distance (strictly increasing)
        for i in range(1, len(self.samples)):
            if self.samples[i].distance_m <= self.samples[i - 1].distance_m:
                raise ValueError("Samples must be strictly ordered by distance")

        # TP-4: Last sample distance equals total_distance_m (within tolerance)
        if (
            abs(self.samples[-1].distance_m - self.total_distance_m)
            > DISTANCE_TOLERANCE_M
        ):
            raise ValueError(
                f"Last sample distance ({self.samples[-1].distance_m:.3f}) must equal "
                f"total_distance_m ({self.total_distance_m:.3f}) within {DISTANCE_TOLERANCE_M}m"
            )

        # TP-5: has_nodata consistency
        actual_has_nodata = any(s.is_nodata for s in self.samples)
        if self.has_nodata != actual_has_nodata:
            raise ValueError(
                f"has_nodata={self.has_nodata} but samples say {actual_has_nodata}"
            )

        # TP-6: effective_step_m consistency
        expected_effective = self.total_distance_m / (len(self.samples) - 1)
        if abs(self.effective_step_m - expected_effective) > DISTANCE_TOLERANCE_M:
            raise ValueError(
                f"effective_step_m ({self.effective_step_m:.3f}) must equal "
                f"total/(n-1) ({expected_effective:.3f})"
            )

        return self

    def elevations(self) -> tuple[float, ...]:
        """Return elevation values (may contain NaN)."""
        return tuple(s.elevation_m for s in self.samples)

    def distances(self) -> tuple[float, ...]:
        """Return cumulative distance values."""
        return tuple(s.distance_m for s in self.samples)

    def as_arrays(self) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        """Return (distances, elevations) as float64 arrays for vector math."""
        return (
            np.fromiter(self.distances(), dtype=np.float64, count=len(self.samples)),
            np.fromiter(self.elevations(), dtype=np.float64, count=len(self.samples)),
        )

    def nodata_count(self) -> int:
        """Return number of NoData samples."""
        return sum(1 for s in self.samples if s.is_nodata)

    def nodata_ratio(self) -> float:
        """Return fraction of samples that are NoData (0.0 to 1.0)."""
        return self.nodata_count() / len(self.samples)
