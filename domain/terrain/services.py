"""Terrain Bounded Context - Domain Services.

Pure domain logic for terrain calculations.
NO I/O operations - archive loading is implemented by infrastructure adapters
under `src/infrastructure/terrain/hgt_archive_adapter.py` via domain ports.

Every function that touches elevation is total: unknown terrain is NaN and
degrades to "no known obstruction", it never raises.
"""

from __future__ import annotations

import math

import numpy as np
from numpy.typing import ArrayLike, NDArray
from pyproj import Geod

from domain.terrain.errors import InvalidProfileError
from domain.terrain.repositories import ElevationModel
from domain.terrain.value_objects import (
    ElevationTile,
    GeoPoint,
    ProfileSample,
    TerrainProfile,
)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
LOS_STEP_M = 30.0  # Line-of-sight / link profile sampling interval
LOS_CLEARANCE_M = 2.0  # Margin above the reference line
TILE_EDGE_EPSILON = 1e-6  # Nudge for exact +-90 / +-180 inputs

# WGS84 ellipsoid for geodesic calculations (same as GPS, EPSG:4326)
_geod = Geod(ellps="WGS84")


# ---------------------------------------------------------------------------
# Geodesy
# ---------------------------------------------------------------------------
def geodesic_distance(start: GeoPoint, end: GeoPoint) -> float:
    """Calculate geodesic distance between two points in meters.

    Uses WGS84 ellipsoid for millimeter-level precision.

    Args:
        start: Starting geographic point
        end: Ending geographic point

    Returns:
        Distance in meters (always positive)
    """
    _, _, distance = _geod.inv(
        start.longitude, start.latitude, end.longitude, end.latitude
    )
    return float(abs(distance))  # Ensure positive, explicit float


def initial_bearing(start: GeoPoint, end: GeoPoint) -> float:
    """Forward azimuth from start to end in degrees, normalized to [0, 360)."""
    azimuth, _, _ = _geod.inv(
        start.longitude, start.latitude, end.longitude, end.latitude
    )
    bearing = float(azimuth) % 360.0
    if not math.isfinite(bearing) or bearing >= 360.0:
        return 0.0
    return bearing


def destination_point(origin: GeoPoint, bearing_deg: float, distance_m: float) -> GeoPoint:
    """Solve the direct geodesic problem for a single point."""
    lon, lat, _ = _geod.fwd(origin.longitude, origin.latitude, bearing_deg, distance_m)
    return GeoPoint(latitude=float(lat), longitude=_wrap_longitude(float(lon)))


def destination_points(
    origin: GeoPoint, bearing_deg: float, distances_m: ArrayLike
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Vectorized direct geodesic problem along one bearing.

    Returns:
        (latitudes, longitudes) arrays matching distances_m
    """
    dist = np.asarray(distances_m, dtype=np.float64)
    n = dist.shape[0]
    lons, lats, _ = _geod.fwd(
        np.full(n, origin.longitude),
        np.full(n, origin.latitude),
        np.full(n, bearing_deg),
        dist,
    )
    lons = (np.asarray(lons, dtype=np.float64) + 180.0) % 360.0 - 180.0
    return np.asarray(lats, dtype=np.float64), lons


def _wrap_longitude(lon: float) -> float:
    if lon > 180.0:
        return lon - 360.0
    if lon < -180.0:
        return lon + 360.0
    return lon


def interpolate_geodesic_path(
    start: GeoPoint, end: GeoPoint, num_intermediate: int
) -> list[GeoPoint]:
    """Interpolate points along geodesic path.

    Uses pyproj.Geod.npts for true geodesic interpolation (not linear in lat/lon).

    Args:
        start: Starting point
        end: Ending point
        num_intermediate: Number of points BETWEEN start and end

    Returns:
        List of all points: [start, ...intermediate..., end]
    """
    if num_intermediate <= 0:
        return [start, end]

    # npts returns intermediate points (excludes endpoints)
    intermediate = _geod.npts(
        start.longitude, start.latitude, end.longitude, end.latitude, num_intermediate
    )

    result = [start]
    for lon, lat in intermediate:
        result.append(GeoPoint(latitude=lat, longitude=lon))
    result.append(end)

    return result


# ---------------------------------------------------------------------------
# Tile Addressing
# ---------------------------------------------------------------------------
def _nudge_inward(latitude: float, longitude: float) -> tuple[float, float]:
    if latitude >= 90.0:
        latitude = 90.0 - TILE_EDGE_EPSILON
    elif latitude <= -90.0:
        latitude = -90.0 + TILE_EDGE_EPSILON
    if longitude >= 180.0:
        longitude = 180.0 - TILE_EDGE_EPSILON
    elif longitude <= -180.0:
        longitude = -180.0 + TILE_EDGE_EPSILON
    return latitude, longitude


def tile_key_for(latitude: float, longitude: float) -> str:
    """Return the key of the 1x1 degree cell owning a coordinate.

    Exact boundary values (+-90, +-180) are nudged inward so the key always
    names a cell that exists. Example: (59.5, 30.5) -> "N59E030".
    """
    latitude, longitude = _nudge_inward(latitude, longitude)
    lat_floor = math.floor(latitude)
    lng_floor = math.floor(longitude)
    ns = "N" if lat_floor >= 0 else "S"
    ew = "E" if lng_floor >= 0 else "W"
    return f"{ns}{abs(lat_floor):02d}{ew}{abs(lng_floor):03d}"


def grid_position(tile: ElevationTile, latitude: float, longitude: float) -> tuple[float, float]:
    """Return fractional (col, row) of a coordinate inside its tile.

    North-west origin: row 0 = northernmost, col 0 = westernmost.
    """
    latitude, longitude = _nudge_inward(latitude, longitude)
    last = tile.size - 1
    u = (longitude - math.floor(longitude)) * last
    v = (1.0 - (latitude - math.floor(latitude))) * last
    return u, v


# ---------------------------------------------------------------------------
# Bilinear Interpolation
# ---------------------------------------------------------------------------
def _lerp(a: float, b: float, t: float) -> float:
    """Linear interpolation that falls back to the valid side.

    lerp(valid, NaN) -> valid; lerp(NaN, NaN) -> NaN.
    """
    if math.isnan(a):
        return b
    if math.isnan(b):
        return a
    return a + (b - a) * t


def bilinear_interpolate(
    tile: ElevationTile, latitude: float, longitude: float
) -> tuple[float, bool]:
    """Interpolate elevation at arbitrary point using 4 nearest samples.

    Returns (elevation, is_nodata).

    NoData behavior:
        Each corner maps the sentinel to NaN individually. Interpolating
        between a valid and a NaN corner keeps the valid value, so a partly
        void neighborhood degrades to nearest-neighbor along that axis.
        Only when both sides are NaN is the result NaN.

    Boundary behavior:
        Indices are clamped into [0, size - 1]; on the east and south edges
        bilinear degrades to linear (on edges) or nearest (on corners).
    """
    u, v = grid_position(tile, latitude, longitude)
    last = tile.size - 1

    x0 = max(0, min(int(math.floor(u)), last))
    y0 = max(0, min(int(math.floor(v)), last))
    x1 = min(x0 + 1, last)
    y1 = min(y0 + 1, last)

    data = tile.data
    nodata = tile.nodata

    def corner(row: int, col: int) -> float:
        raw = int(data[row, col])
        return math.nan if raw == nodata else float(raw)

    q11 = corner(y0, x0)  # top-left
    q21 = corner(y0, x1)  # top-right
    q12 = corner(y1, x0)  # bottom-left
    q22 = corner(y1, x1)  # bottom-right

    fx = u - x0
    fy = v - y0

    top = _lerp(q11, q21, fx)
    bottom = _lerp(q12, q22, fx)
    elevation = _lerp(top, bottom, fy)

    if math.isnan(elevation):
        return (math.nan, True)
    return (float(elevation), False)


# ---------------------------------------------------------------------------
# Main Service: terrain_profile
# ---------------------------------------------------------------------------
def terrain_profile(
    elevation: ElevationModel,
    start: GeoPoint,
    end: GeoPoint,
    step_m: float = LOS_STEP_M,
) -> TerrainProfile:
    """Extract elevation profile between two geographic points.

    Creates a sequence of elevation samples along the geodesic path between
    start and end points. Samples where the terrain is unknown are kept and
    flagged (NaN elevation), never dropped.

    Args:
        elevation: Source of point elevations (usually a TileStore)
        start: Starting point (typically Tx location)
        end: Ending point (typically Rx location)
        step_m: Sample spacing in meters

    Returns:
        TerrainProfile with all samples and metadata

    Raises:
        InvalidProfileError: If start equals end (zero distance)
        ValueError: If step_m is not positive

    Example:
        >>> profile = terrain_profile(store, start, end)
        >>> print(f"Samples: {len(profile.samples)}")
    """
    if not (step_m > 0):
        raise ValueError("step_m must be positive")

    total_distance = geodesic_distance(start, end)
    if start == end or total_distance <= 0:
        raise InvalidProfileError("Start equals end")

    # n = max(2, floor(total / step) + 1)
    n_samples = max(2, int(math.floor(total_distance / step_m)) + 1)
    effective_step = total_distance / (n_samples - 1)

    path_points = interpolate_geodesic_path(start, end, n_samples - 2)

    samples: list[ProfileSample] = []
    has_nodata = False

    for i, point in enumerate(path_points):
        if i == 0:
            distance = 0.0
        elif i == len(path_points) - 1:
            distance = total_distance
        else:
            distance = i * effective_step

        h = elevation.get_elevation(point.latitude, point.longitude)
        is_nodata = not math.isfinite(h)
        if is_nodata:
            has_nodata = True
            h = math.nan

        samples.append(
            ProfileSample(
                distance_m=distance, elevation_m=h, point=point, is_nodata=is_nodata
            )
        )

    return TerrainProfile(
        start=start,
        end=end,
        samples=tuple(samples),
        total_distance_m=total_distance,
        step_m=step_m,
        effective_step_m=effective_step,
        has_nodata=has_nodata,
    )


# ---------------------------------------------------------------------------
# Line of Sight
# ---------------------------------------------------------------------------
def _finite_or_zero(value: float | None) -> float:
    if value is None or not math.isfinite(value):
        return 0.0
    return float(value)


def has_line_of_sight(
    elevation: ElevationModel,
    a: GeoPoint,
    height_a_m: float,
    b: GeoPoint,
    height_b_m: float,
    *,
    step_m: float = LOS_STEP_M,
    clearance_m: float = LOS_CLEARANCE_M,
) -> bool:
    """Straight-line visibility between two antennas.

    No Earth curvature or Fresnel zone: the reference line runs from ground
    at A (unknown -> 0) plus height A to ground at B plus height B. Interior
    samples with unknown ground are skipped (optimistic).

    Returns:
        False as soon as an interior sample rises above line + clearance,
        True otherwise (coincident points are visible).
    """
    start_alt = _finite_or_zero(elevation.get_elevation(a.latitude, a.longitude))
    end_alt = _finite_or_zero(elevation.get_elevation(b.latitude, b.longitude))
    start_alt += _finite_or_zero(height_a_m)
    end_alt += _finite_or_zero(height_b_m)

    dist = geodesic_distance(a, b)
    if not math.isfinite(dist) or dist <= 0:
        return True

    steps = max(2, math.ceil(dist / step_m))
    # npts(k) yields k interior points at fractions i / (k + 1)
    interior = _geod.npts(a.longitude, a.latitude, b.longitude, b.latitude, steps - 1)

    for i, (lon, lat) in enumerate(interior, start=1):
        h = elevation.get_elevation(lat, lon)
        if not math.isfinite(h):
            continue
        f = i / steps
        line_alt = start_alt + (end_alt - start_alt) * f + clearance_m
        if h > line_alt:
            return False
    return True
