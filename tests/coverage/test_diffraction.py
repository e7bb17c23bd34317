"""Tests for the Deygout multiple knife-edge diffraction model.

Profiles are tiny hand-built arrays so expected losses can be computed
directly from the knife-edge formula.
"""

from __future__ import annotations

import math

import numpy as np
import pytest

from domain.coverage.diffraction import (
    deygout_loss,
    earth_bulge_m,
    find_dominant_obstruction,
    fresnel_kirchhoff_v,
    knife_edge_loss_db,
)
from domain.coverage.settings import PropagationSettings

FREQ = 434.0
EFFECTIVE_R = 6_371_000 * 4 / 3
LAMBDA = 299_792_458 / (FREQ * 1e6)


def expected_edge_loss(h: float, d1: float, d2: float) -> float:
    """J(v) computed independently for a single edge."""
    h = h + d1 * d2 / (2 * EFFECTIVE_R)
    v = h * math.sqrt(2 / LAMBDA * (d1 + d2) / (d1 * d2))
    if v <= -0.78:
        return 0.0
    return 6.9 + 20 * math.log10(math.sqrt((v - 0.1) ** 2 + 1) + v - 0.1)


# ===========================================================================
# TC-001: Single Knife Edge
# ===========================================================================
def test_knife_edge_loss_at_grazing():
    """TC-001a: v = 0 (edge on the path) costs about 6 dB."""
    assert knife_edge_loss_db(0.0) == pytest.approx(6.03, abs=0.01)


@pytest.mark.parametrize("v", [-0.78, -1.0, -10.0, -math.inf])
def test_knife_edge_loss_below_cutoff(v):
    """TC-001b: Edges well below the path cost nothing."""
    assert knife_edge_loss_db(v) == 0.0


def test_knife_edge_loss_grows_with_v():
    """TC-001c: Loss is monotonic in v above the cutoff."""
    losses = [knife_edge_loss_db(v) for v in (-0.5, 0.0, 1.0, 5.0, 50.0)]

    assert losses == sorted(losses)
    assert losses[-1] > 40.0


def test_fresnel_v_degenerate_geometry():
    """TC-001d: An edge at an endpoint has v = -inf."""
    assert fresnel_kirchhoff_v(10.0, 0.0, 500.0, FREQ) == -math.inf
    assert fresnel_kirchhoff_v(10.0, 500.0, -1.0, FREQ) == -math.inf


def test_earth_bulge():
    """TC-001e: Bulge = d1 d2 / (2 k R)."""
    assert earth_bulge_m(10_000, 10_000) == pytest.approx(1e8 / (2 * EFFECTIVE_R))
    flat_earth = PropagationSettings(k_factor=1e12)
    assert earth_bulge_m(10_000, 10_000, flat_earth) == pytest.approx(0.0, abs=1e-9)


# ===========================================================================
# TC-002: Deygout Over Profiles
# ===========================================================================
def test_clear_profile_has_no_loss():
    """TC-002a: Tall masts over flat ground: nothing diffracts."""
    d = np.arange(0, 1001, 100, dtype=float)
    h = np.zeros_like(d)

    assert deygout_loss(d, h, 0.0, 1000.0, 100.0, 100.0, FREQ) == 0.0


def test_single_ridge_matches_knife_edge():
    """TC-002b: One interior obstacle gives exactly J(v)."""
    d = np.array([0.0, 500.0, 1000.0])
    h = np.array([0.0, 60.0, 0.0])

    loss = deygout_loss(d, h, 0.0, 1000.0, 10.0, 10.0, FREQ)

    assert loss == pytest.approx(expected_edge_loss(60.0 - 10.0, 500.0, 500.0))
    assert loss > 20.0


def test_two_ridges_add_secondary_loss():
    """TC-002c: The secondary edge adds loss beyond the dominant one."""
    d = np.array([0.0, 300.0, 700.0, 1000.0])
    h = np.array([0.0, 60.0, 50.0, 0.0])

    index, v = find_dominant_obstruction(d, h, 1, 3, 0.0, 1000.0, 10.0, 10.0, FREQ)
    loss = deygout_loss(d, h, 0.0, 1000.0, 10.0, 10.0, FREQ)

    assert index == 1  # The 60 m ridge dominates
    assert loss > knife_edge_loss_db(v)


def test_depth_cap_stops_recursion():
    """TC-002d: With depth 0 only the dominant edge is counted."""
    d = np.array([0.0, 300.0, 700.0, 1000.0])
    h = np.array([0.0, 60.0, 50.0, 0.0])
    shallow = PropagationSettings(diffraction_max_depth=0)

    _, v = find_dominant_obstruction(d, h, 1, 3, 0.0, 1000.0, 10.0, 10.0, FREQ)
    loss = deygout_loss(d, h, 0.0, 1000.0, 10.0, 10.0, FREQ, shallow)

    assert loss == pytest.approx(knife_edge_loss_db(v))


def test_short_segment_is_ignored():
    """TC-002e: Spans not longer than the minimum segment cost nothing."""
    d = np.array([0.0, 2.0, 5.0])
    h = np.array([0.0, 500.0, 0.0])

    assert deygout_loss(d, h, 0.0, 5.0, 1.0, 1.0, FREQ) == 0.0


def test_unknown_elevations_never_obstruct():
    """TC-002f: NaN samples are skipped when searching for the apex."""
    d = np.array([0.0, 500.0, 1000.0])
    h = np.array([0.0, math.nan, 0.0])

    assert deygout_loss(d, h, 0.0, 1000.0, 10.0, 10.0, FREQ) == 0.0


def test_endpoints_are_not_obstructions():
    """TC-002g: Only samples strictly between start and end count."""
    d = np.array([0.0, 1000.0])
    h = np.array([900.0, 900.0])

    assert deygout_loss(d, h, 0.0, 1000.0, 10.0, 10.0, FREQ) == 0.0


@pytest.mark.parametrize(
    ("distances", "freq", "start_h"),
    [
        ([], FREQ, 10.0),
        ([0.0, 500.0, 1000.0], 0.0, 10.0),
        ([0.0, 500.0, 1000.0], FREQ, math.nan),
    ],
)
def test_degenerate_inputs_cost_nothing(distances, freq, start_h):
    """TC-002h: Empty profiles and invalid parameters yield 0 dB."""
    h = [0.0, 500.0, 0.0][: len(distances)]

    assert deygout_loss(distances, h, 0.0, 1000.0, start_h, 10.0, freq) == 0.0


def test_prefix_of_longer_profile():
    """TC-002i: end_m inside the arrays limits the interior to the prefix."""
    d = np.array([0.0, 500.0, 1000.0, 1500.0])
    h = np.array([0.0, 60.0, 0.0, 5000.0])

    loss = deygout_loss(d, h, 0.0, 1000.0, 10.0, 10.0, FREQ)

    assert loss == pytest.approx(expected_edge_loss(50.0, 500.0, 500.0))
