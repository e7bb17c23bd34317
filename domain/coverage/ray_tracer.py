"""Coverage Bounded Context - Incremental Coverage Ray Tracer.

Traces one ray per sector (360 one-degree bearings by default) outward from
a node in fixed 100 m steps, computing the residual margin of a receiver at
every sample with the same link math as the one-way evaluator.

The tracer is pull-based and resumable: an external scheduler (e.g. one
call per animation frame) calls `extend` with a growing distance; each
call only appends samples beyond the boundary already computed. A sector
stops after a run of consecutive non-positive margins, and stopped sectors
are skipped from then on. Cancelling (or simply dropping) a session
releases all state; nothing needs cleaning up.

Usage:
    >>> session = begin_coverage(store, node, CoverageOptions(radius_m=5000))
    >>> while not session.is_complete:
    ...     extend(session, session.last_distance_m + 100)
    ...     draw(session.samples_between(prev, session.last_distance_m))
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence

import numpy as np
from numpy.typing import NDArray

from domain.coverage.diffraction import deygout_loss
from domain.coverage.link_budget import (
    excess_loss_db,
    free_space_path_loss_db,
    ground_elevation_m,
    path_loss_exponent,
    residual_margin_db,
)
from domain.coverage.settings import DEFAULT_SETTINGS, PropagationSettings
from domain.coverage.value_objects import (
    CoverageOptions,
    CoverageSample,
    MarginBand,
    RadioNode,
    ReceiverWindow,
)
from domain.terrain.repositories import ElevationModel
from domain.terrain.services import (
    destination_points,
    geodesic_distance,
    initial_bearing,
)
from domain.terrain.tile_store import consistent_reads
from domain.terrain.value_objects import GeoPoint

logger = logging.getLogger(__name__)

# Bearing rounding before sector lookup (absorbs geodesic round-off)
_BEARING_DECIMALS = 6


# ---------------------------------------------------------------------------
# Sector Geometry
# ---------------------------------------------------------------------------
def sector_index_for(bearing_deg: float, sectors: int = DEFAULT_SETTINGS.sectors) -> int:
    """Map a bearing to the nearest sector ray.

    Sector i points at bearing i * (360 / sectors). A bearing exactly half
    way between two rays goes to the clockwise one; 360 wraps to sector 0.
    """
    if not math.isfinite(bearing_deg):
        return 0
    step = 360.0 / sectors
    az = round(bearing_deg % 360.0, _BEARING_DECIMALS)
    return int(math.floor(az / step + 0.5)) % sectors


def build_receiver_windows(
    origin: GeoPoint,
    correspondents: Iterable[RadioNode],
    settings: PropagationSettings = DEFAULT_SETTINGS,
) -> list[list[ReceiverWindow]]:
    """Per-sector windows where a known node's receiver replaces the default.

    Each correspondent maps to the sector nearest its bearing; along that ray
    the window spans its distance +- the configured half window.
    """
    windows: list[list[ReceiverWindow]] = [[] for _ in range(settings.sectors)]
    half = settings.correspondent_half_window_m
    for node in correspondents:
        distance = geodesic_distance(origin, node.position)
        if not (distance > 0):
            continue
        sector = sector_index_for(initial_bearing(origin, node.position), settings.sectors)
        windows[sector].append(
            ReceiverWindow(
                sector=sector,
                start_m=max(0.0, distance - half),
                end_m=distance + half,
                node_id=node.node_id,
                rx_height_m=node.link.rx_height_m,
                rx_antenna_gain_db=node.link.rx_antenna_gain_db,
                rx_sensitivity_dbm=node.link.rx_sensitivity_dbm,
            )
        )
    return windows


def classify_margin(residual_db: float, has_terrain: bool = True) -> MarginBand:
    """Display band for a residual margin."""
    if not has_terrain or not math.isfinite(residual_db):
        return MarginBand.NO_DATA
    if residual_db < 0:
        return MarginBand.NONE
    if residual_db < 3:
        return MarginBand.WEAK
    if residual_db < 12:
        return MarginBand.FAIR
    return MarginBand.STRONG


# ---------------------------------------------------------------------------
# Per-Sector State
# ---------------------------------------------------------------------------
class SectorTrace:
    """Growable profile and stop state of one ray.

    Distances and elevations are mirrored in preallocated arrays so the
    diffraction model can run over the accumulated profile without copying.
    """

    def __init__(self, index: int, bearing_deg: float, capacity: int) -> None:
        self.index = index
        self.bearing_deg = bearing_deg
        self.samples: list[CoverageSample] = []
        self.stopped = False
        self.consecutive_bad = 0
        self.last_distance_m = 0.0
        self._distances: NDArray[np.float64] = np.empty(capacity, dtype=np.float64)
        self._elevations: NDArray[np.float64] = np.empty(capacity, dtype=np.float64)

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def distances(self) -> NDArray[np.float64]:
        return self._distances[: len(self.samples)]

    @property
    def elevations(self) -> NDArray[np.float64]:
        return self._elevations[: len(self.samples)]

    def append(self, sample: CoverageSample) -> None:
        n = len(self.samples)
        if n == self._distances.shape[0]:
            grow = max(1, n)
            self._distances = np.concatenate([self._distances, np.empty(grow)])
            self._elevations = np.concatenate([self._elevations, np.empty(grow)])
        self._distances[n] = sample.distance_m
        self._elevations[n] = sample.elevation_m
        self.samples.append(sample)
        self.last_distance_m = sample.distance_m

    def record_margin(self, residual_db: float, stop_after: int) -> None:
        if residual_db <= 0:
            self.consecutive_bad += 1
            if self.consecutive_bad >= stop_after:
                self.stopped = True
        else:
            self.consecutive_bad = 0


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------
class CoverageSession:
    """Transient state of one coverage visualization.

    Created by `begin_coverage`; advanced by `extend`; released by `cancel`.
    """

    def __init__(
        self,
        elevation: ElevationModel,
        node: RadioNode,
        radius_m: float,
        windows: Sequence[Sequence[ReceiverWindow]],
        settings: PropagationSettings = DEFAULT_SETTINGS,
    ) -> None:
        self.node = node
        self.origin = node.position
        self.settings = settings
        self.radius_m = radius_m
        self._elevation: ElevationModel | None = elevation
        self._windows = [list(w) for w in windows]
        self._last_distance_m = 0.0
        self._cancelled = False

        link = node.link
        self.tx_abs_height_m = ground_elevation_m(elevation, node) + link.tx_height_m

        capacity = int(math.ceil(radius_m / settings.ray_step_m)) + 1
        step_deg = 360.0 / settings.sectors
        self._sectors: list[SectorTrace] = [
            SectorTrace(i, i * step_deg, capacity) for i in range(settings.sectors)
        ]

    # -- properties -------------------------------------------------------
    @property
    def last_distance_m(self) -> float:
        """Outward boundary computed so far (never decreases)."""
        return self._last_distance_m

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def is_complete(self) -> bool:
        if self._cancelled:
            return True
        if self._last_distance_m >= self.radius_m:
            return True
        return all(s.stopped for s in self._sectors)

    @property
    def sectors(self) -> list[SectorTrace]:
        return self._sectors

    @property
    def profiles(self) -> list[list[CoverageSample]]:
        return [s.samples for s in self._sectors]

    def windows_for(self, sector: int) -> list[ReceiverWindow]:
        return self._windows[sector] if self._windows else []

    # -- operations -------------------------------------------------------
    def extend(self, target_m: float) -> int:
        """Grow every live sector out to `target_m` (rounded up to a step).

        The target is capped at the session radius and never moves the
        boundary inward. Returns the number of samples appended.

        Raises:
            ValueError: If target_m is not finite
        """
        if not math.isfinite(target_m):
            raise ValueError("target distance must be finite")
        elevation = self._elevation
        if self._cancelled or elevation is None:
            return 0

        step = self.settings.ray_step_m
        to_m = min(self.radius_m, max(self._last_distance_m, math.ceil(target_m / step) * step))
        if to_m <= self._last_distance_m:
            return 0

        first = max(step, self._last_distance_m + step)
        # Multiples of the step in [first, to_m]
        n_new = int(math.floor((to_m - first) / step + 1e-9)) + 1
        new_distances = first + step * np.arange(max(0, n_new), dtype=np.float64)

        added = 0
        if new_distances.size:
            with consistent_reads(elevation):
                for sector in self._sectors:
                    if sector.stopped:
                        continue
                    added += self._advance(sector, new_distances, elevation)

        self._last_distance_m = to_m
        return added

    def cancel(self) -> None:
        """Release all sector state; later `extend` calls are no-ops."""
        self._cancelled = True
        self._sectors = []
        self._windows = []
        self._elevation = None
        logger.debug("Coverage session for node %s cancelled", self.node.node_id)

    def samples_between(
        self, from_m: float, to_m: float
    ) -> list[tuple[GeoPoint | None, list[CoverageSample]]]:
        """Per sector, samples with from_m < distance <= to_m.

        Each entry carries a lead point: the last sample at or before
        from_m (or the origin when from_m <= 0) so a renderer can draw the
        ring as connected segments. Lead is None if no such point exists.
        """
        rings: list[tuple[GeoPoint | None, list[CoverageSample]]] = []
        for sector in self._sectors:
            lead: GeoPoint | None = self.origin if from_m <= 0 else None
            fresh: list[CoverageSample] = []
            for sample in sector.samples:
                if sample.distance_m <= from_m:
                    lead = sample.point
                    continue
                if sample.distance_m > to_m:
                    break
                fresh.append(sample)
            rings.append((lead, fresh))
        return rings

    # -- internals --------------------------------------------------------
    def _advance(
        self,
        sector: SectorTrace,
        distances: NDArray[np.float64],
        elevation: ElevationModel,
    ) -> int:
        settings = self.settings
        link = self.node.link
        windows = self._windows[sector.index]

        lats, lons = destination_points(self.origin, sector.bearing_deg, distances)

        added = 0
        for d, lat, lon in zip(distances.tolist(), lats.tolist(), lons.tolist()):
            if sector.stopped:
                break

            terrain = elevation.get_elevation(lat, lon)
            if not math.isfinite(terrain):
                terrain = math.nan

            rx_height = link.rx_height_m
            rx_gain = link.rx_antenna_gain_db
            rx_sens = link.rx_sensitivity_dbm
            for window in windows:
                if window.contains(d):
                    rx_height = window.rx_height_m
                    rx_gain = window.rx_antenna_gain_db
                    rx_sens = window.rx_sensitivity_dbm
                    break

            rx_abs = (0.0 if math.isnan(terrain) else terrain) + rx_height

            l_dif = 0.0
            if len(sector):
                l_dif = deygout_loss(
                    sector.distances,
                    sector.elevations,
                    0.0,
                    d,
                    self.tx_abs_height_m,
                    rx_abs,
                    link.frequency_mhz,
                    settings,
                )

            exponent = path_loss_exponent(link.tx_height_m, rx_height, settings)
            residual = residual_margin_db(
                tx_power_dbm=link.tx_power_dbm,
                tx_gain_db=link.tx_antenna_gain_db,
                rx_gain_db=rx_gain,
                rx_sensitivity_dbm=rx_sens,
                free_space_loss_db=free_space_path_loss_db(d, link.frequency_mhz, settings),
                diffraction_loss_db=l_dif,
                excess_loss_db=excess_loss_db(d, exponent, settings),
                settings=settings,
            )

            sector.append(
                CoverageSample(
                    distance_m=d,
                    point=GeoPoint(latitude=lat, longitude=lon),
                    elevation_m=terrain,
                    residual_db=residual,
                )
            )
            added += 1

            sector.record_margin(residual, settings.stop_after_bad_samples)
            if sector.stopped:
                logger.debug(
                    "Sector %d stopped at %.0f m (node %s)",
                    sector.index,
                    d,
                    self.node.node_id,
                )
        return added


# ---------------------------------------------------------------------------
# External Control Surface
# ---------------------------------------------------------------------------
def resolve_radius_m(
    options: CoverageOptions | None, settings: PropagationSettings = DEFAULT_SETTINGS
) -> float:
    """Requested radius floored to whole meters, clamped to [min, max]."""
    requested = options.radius_m if options is not None else None
    if requested is None or not math.isfinite(requested) or requested <= 0:
        requested = settings.default_radius_m
    radius = max(settings.min_radius_m, float(math.floor(requested)))
    return min(settings.max_radius_m, radius)


def begin_coverage(
    elevation: ElevationModel,
    node: RadioNode,
    options: CoverageOptions | None = None,
    correspondents: Iterable[RadioNode] = (),
    settings: PropagationSettings = DEFAULT_SETTINGS,
) -> CoverageSession:
    """Create a coverage session around a node.

    Args:
        elevation: Read-only elevation source for the session's lifetime
        node: Origin node; its own rx parameters are the default receiver
        options: Radius request (default/floor/cap from settings)
        correspondents: Other nodes whose real receivers are previewed
            along their bearing

    Returns:
        A session with no samples yet; call `extend` to compute rings.
    """
    others = [n for n in correspondents if n.node_id != node.node_id]
    radius = resolve_radius_m(options, settings)
    windows = build_receiver_windows(node.position, others, settings)
    session = CoverageSession(elevation, node, radius, windows, settings)
    logger.debug(
        "Coverage session for node %s: radius %.0f m, %d sector(s), %d correspondent(s)",
        node.node_id,
        radius,
        settings.sectors,
        len(others),
    )
    return session


def extend(session: CoverageSession, target_m: float) -> int:
    """Advance a session to `target_m`; see CoverageSession.extend."""
    return session.extend(target_m)


def cancel(session: CoverageSession) -> None:
    """Discard a session's state; see CoverageSession.cancel."""
    session.cancel()
