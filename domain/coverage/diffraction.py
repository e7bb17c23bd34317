"""Coverage Bounded Context - Deygout Diffraction Model.

Recursive multiple knife-edge diffraction over a terrain profile:

1. Inside the segment (start, end), find the sample with the largest
   Fresnel-Kirchhoff parameter v, measured from the chord between the
   endpoints and corrected for effective Earth curvature.
2. If v_max <= cutoff (or no interior sample, short span, depth cap), the
   segment contributes nothing.
3. Otherwise add the single knife-edge loss J(v_max) and recurse on the
   left (start -> apex) and right (apex -> end) sub-segments, with the
   apex ground elevation as the shared endpoint height.

Profiles are passed as parallel distance/elevation arrays sorted by
distance; recursion works on explicit index bounds with an explicit depth
counter.
"""

from __future__ import annotations

import math

import numpy as np
from numpy.typing import ArrayLike, NDArray

from domain.coverage.settings import (
    DEFAULT_SETTINGS,
    SPEED_OF_LIGHT_M_S,
    PropagationSettings,
)


def wavelength_m(frequency_mhz: float) -> float:
    return SPEED_OF_LIGHT_M_S / (frequency_mhz * 1e6)


def earth_bulge_m(
    d1_m: float, d2_m: float, settings: PropagationSettings = DEFAULT_SETTINGS
) -> float:
    """Height of the effective Earth surface above the chord at a point."""
    return (d1_m * d2_m) / (2.0 * settings.effective_earth_radius_m)


def fresnel_kirchhoff_v(
    obstruction_height_m: float, d1_m: float, d2_m: float, frequency_mhz: float
) -> float:
    """Diffraction parameter v for an edge h meters above the direct path.

    Returns -inf when the edge is not strictly between the endpoints.
    """
    if d1_m <= 0 or d2_m <= 0:
        return -math.inf
    lam = wavelength_m(frequency_mhz)
    return obstruction_height_m * math.sqrt((2.0 / lam) * ((d1_m + d2_m) / (d1_m * d2_m)))


def knife_edge_loss_db(v: float, cutoff: float = DEFAULT_SETTINGS.diffraction_v_cutoff) -> float:
    """Single knife-edge loss J(v) in dB (ITU-R P.526 approximation)."""
    if v <= cutoff:
        return 0.0
    t = math.sqrt((v - 0.1) ** 2 + 1.0) + v - 0.1
    return 6.9 + 20.0 * math.log10(t)


def find_dominant_obstruction(
    distances: NDArray[np.float64],
    elevations: NDArray[np.float64],
    lo: int,
    hi: int,
    start_m: float,
    end_m: float,
    start_height_m: float,
    end_height_m: float,
    frequency_mhz: float,
    settings: PropagationSettings = DEFAULT_SETTINGS,
) -> tuple[int, float]:
    """Return (index, v) of the sample in [lo, hi) with the largest v.

    Samples with unknown elevation never dominate. Returns (-1, -inf) if no
    candidate exists.
    """
    if hi <= lo:
        return -1, -math.inf

    span = end_m - start_m
    d = distances[lo:hi]
    h = elevations[lo:hi]
    d1 = d - start_m
    d2 = end_m - d

    valid = np.isfinite(h) & (d1 > 0) & (d2 > 0)
    if not valid.any():
        return -1, -math.inf

    d1 = d1[valid]
    d2 = d2[valid]
    chord = start_height_m + (end_height_m - start_height_m) * (d1 / span)
    bulge = (d1 * d2) / (2.0 * settings.effective_earth_radius_m)
    clearance = h[valid] + bulge - chord
    lam = wavelength_m(frequency_mhz)
    v = clearance * np.sqrt((2.0 / lam) * ((d1 + d2) / (d1 * d2)))

    best = int(np.argmax(v))
    index = lo + int(np.flatnonzero(valid)[best])
    return index, float(v[best])


def _deygout(
    distances: NDArray[np.float64],
    elevations: NDArray[np.float64],
    lo: int,
    hi: int,
    start_m: float,
    end_m: float,
    start_height_m: float,
    end_height_m: float,
    frequency_mhz: float,
    depth: int,
    settings: PropagationSettings,
) -> float:
    if depth > settings.diffraction_max_depth:
        return 0.0
    if not (end_m - start_m > settings.diffraction_min_segment_m):
        return 0.0

    apex, v_max = find_dominant_obstruction(
        distances,
        elevations,
        lo,
        hi,
        start_m,
        end_m,
        start_height_m,
        end_height_m,
        frequency_mhz,
        settings,
    )
    if apex < 0 or v_max <= settings.diffraction_v_cutoff:
        return 0.0

    edge = knife_edge_loss_db(v_max, settings.diffraction_v_cutoff)
    apex_m = float(distances[apex])
    apex_height_m = float(elevations[apex])

    left = _deygout(
        distances, elevations, lo, apex, start_m, apex_m,
        start_height_m, apex_height_m, frequency_mhz, depth + 1, settings,
    )
    right = _deygout(
        distances, elevations, apex + 1, hi, apex_m, end_m,
        apex_height_m, end_height_m, frequency_mhz, depth + 1, settings,
    )
    return edge + left + right


def deygout_loss(
    distances: ArrayLike,
    elevations: ArrayLike,
    start_m: float,
    end_m: float,
    start_height_m: float,
    end_height_m: float,
    frequency_mhz: float,
    settings: PropagationSettings = DEFAULT_SETTINGS,
) -> float:
    """Total multiple knife-edge diffraction loss in dB (>= 0).

    Args:
        distances: Sample distances from the transmitter, ascending (m)
        elevations: Absolute ground elevation per sample (NaN = unknown)
        start_m: Distance of the segment start (transmitter)
        end_m: Distance of the segment end (receiver)
        start_height_m: Absolute antenna height at start
        end_height_m: Absolute antenna height at end
        frequency_mhz: Carrier frequency

    Returns:
        Loss in dB; 0 for an empty profile or degenerate geometry.
    """
    d = np.asarray(distances, dtype=np.float64)
    h = np.asarray(elevations, dtype=np.float64)
    if d.size == 0 or not (frequency_mhz > 0):
        return 0.0
    if not all(math.isfinite(x) for x in (start_m, end_m, start_height_m, end_height_m)):
        return 0.0

    # Interior samples only: start_m < d < end_m
    lo = int(np.searchsorted(d, start_m, side="right"))
    hi = int(np.searchsorted(d, end_m, side="left"))

    loss = _deygout(
        d, h, lo, hi, start_m, end_m, start_height_m, end_height_m,
        frequency_mhz, 0, settings,
    )
    if not math.isfinite(loss) or loss < 0:
        return 0.0
    return loss
