"""Coverage Bounded Context - Link Budget Evaluator.

One-directional residual margin for a transmitter/receiver pair:

    Pr = Pt + Gt + Gr - (Lfs + Ldif + Lenv)
    margin = Pr - Sensitivity - design margin

A link is usable only when both directions have a finite, non-negative
margin; the directions differ because each side has its own power, gains,
heights and sensitivity.

All functions are total. Degenerate geometry yields -inf margin, unknown
terrain yields no diffraction loss.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

from domain.coverage.diffraction import deygout_loss
from domain.coverage.settings import DEFAULT_SETTINGS, PropagationSettings
from domain.coverage.value_objects import LinkAssessment, RadioNode
from domain.terrain.repositories import ElevationModel
from domain.terrain.services import (
    geodesic_distance,
    has_line_of_sight,
    terrain_profile,
)
from domain.terrain.tile_store import consistent_reads

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Loss Components
# ---------------------------------------------------------------------------
def free_space_path_loss_db(
    distance_m: float,
    frequency_mhz: float,
    settings: PropagationSettings = DEFAULT_SETTINGS,
) -> float:
    """FSPL = 32.45 + 20 log10(d_km) + 20 log10(f_MHz).

    Distance and frequency are floored at 1 m / 0.001 MHz.
    """
    d_km = max(0.001, distance_m / 1000.0)
    f = max(0.001, frequency_mhz)
    return settings.fspl_constant_db + 20.0 * math.log10(d_km) + 20.0 * math.log10(f)


def path_loss_exponent(
    tx_height_m: float,
    rx_height_m: float,
    settings: PropagationSettings = DEFAULT_SETTINGS,
) -> float:
    """Empirical exponent: steeper when both antennas sit near the ground."""
    near_ground = (
        tx_height_m < settings.near_ground_height_m
        and rx_height_m < settings.near_ground_height_m
    )
    return settings.near_ground_exponent if near_ground else settings.default_exponent


def excess_loss_db(
    distance_m: float,
    exponent: float,
    settings: PropagationSettings = DEFAULT_SETTINGS,
) -> float:
    """Environmental loss beyond free space: 10 (n - 2) log10(d / d_break).

    Zero up to the break distance and for n <= 2.
    """
    if not math.isfinite(distance_m) or distance_m <= settings.break_distance_m:
        return 0.0
    if exponent <= 2.0:
        return 0.0
    return 10.0 * (exponent - 2.0) * math.log10(distance_m / settings.break_distance_m)


def residual_margin_db(
    *,
    tx_power_dbm: float,
    tx_gain_db: float,
    rx_gain_db: float,
    rx_sensitivity_dbm: float,
    free_space_loss_db: float,
    diffraction_loss_db: float,
    excess_loss_db: float,
    settings: PropagationSettings = DEFAULT_SETTINGS,
) -> float:
    received = tx_power_dbm + tx_gain_db + rx_gain_db - (
        free_space_loss_db + diffraction_loss_db + excess_loss_db
    )
    return received - rx_sensitivity_dbm - settings.design_margin_db


def link_is_usable(forward_margin_db: float, reverse_margin_db: float) -> bool:
    """Both directions finite and >= 0."""
    return (
        math.isfinite(forward_margin_db)
        and math.isfinite(reverse_margin_db)
        and forward_margin_db >= 0
        and reverse_margin_db >= 0
    )


# ---------------------------------------------------------------------------
# Node Evaluation
# ---------------------------------------------------------------------------
def ground_elevation_m(elevation: ElevationModel, node: RadioNode) -> float:
    """Node ground elevation: surveyed value, else terrain lookup, else 0."""
    if node.elevation_m is not None:
        return node.elevation_m
    h = elevation.get_elevation(node.position.latitude, node.position.longitude)
    return h if math.isfinite(h) else 0.0


def evaluate_residual_one_way(
    elevation: ElevationModel,
    tx: RadioNode,
    rx: RadioNode,
    settings: PropagationSettings = DEFAULT_SETTINGS,
) -> float:
    """Residual margin (dB) of the tx -> rx direction.

    Uses the transmitter's frequency, power and gain, and the receiver's
    gain and sensitivity. Returns -inf when the nodes coincide.
    """
    distance = geodesic_distance(tx.position, rx.position)
    if not (distance > 0):
        return -math.inf

    a, b = tx.link, rx.link
    tx_abs = ground_elevation_m(elevation, tx) + a.tx_height_m
    rx_abs = ground_elevation_m(elevation, rx) + b.rx_height_m

    profile = terrain_profile(
        elevation, tx.position, rx.position, step_m=settings.link_profile_step_m
    )
    distances, elevations = profile.as_arrays()
    l_dif = deygout_loss(
        distances,
        elevations,
        0.0,
        profile.total_distance_m,
        tx_abs,
        rx_abs,
        a.frequency_mhz,
        settings,
    )

    exponent = path_loss_exponent(a.tx_height_m, b.rx_height_m, settings)
    return residual_margin_db(
        tx_power_dbm=a.tx_power_dbm,
        tx_gain_db=a.tx_antenna_gain_db,
        rx_gain_db=b.rx_antenna_gain_db,
        rx_sensitivity_dbm=b.rx_sensitivity_dbm,
        free_space_loss_db=free_space_path_loss_db(distance, a.frequency_mhz, settings),
        diffraction_loss_db=l_dif,
        excess_loss_db=excess_loss_db(distance, exponent, settings),
        settings=settings,
    )


def evaluate_link(
    elevation: ElevationModel,
    a: RadioNode,
    b: RadioNode,
    settings: PropagationSettings = DEFAULT_SETTINGS,
) -> LinkAssessment:
    """Evaluate both directions of a link plus straight-line visibility."""
    with consistent_reads(elevation):
        return _assess_link(elevation, a, b, settings)


def _assess_link(
    elevation: ElevationModel,
    a: RadioNode,
    b: RadioNode,
    settings: PropagationSettings,
) -> LinkAssessment:
    forward = evaluate_residual_one_way(elevation, a, b, settings)
    reverse = evaluate_residual_one_way(elevation, b, a, settings)
    los = has_line_of_sight(
        elevation, a.position, a.link.tx_height_m, b.position, b.link.rx_height_m
    )
    return LinkAssessment(
        forward_margin_db=forward,
        reverse_margin_db=reverse,
        usable=link_is_usable(forward, reverse),
        line_of_sight=los,
    )


def usable_links(
    elevation: ElevationModel,
    nodes: Sequence[RadioNode],
    settings: PropagationSettings = DEFAULT_SETTINGS,
) -> list[tuple[RadioNode, RadioNode, LinkAssessment]]:
    """All node pairs whose link is usable in both directions."""
    result: list[tuple[RadioNode, RadioNode, LinkAssessment]] = []
    with consistent_reads(elevation):
        for i in range(len(nodes)):
            for j in range(i + 1, len(nodes)):
                assessment = _assess_link(elevation, nodes[i], nodes[j], settings)
                if assessment.usable:
                    result.append((nodes[i], nodes[j], assessment))
    logger.debug("%d usable link(s) among %d node(s)", len(result), len(nodes))
    return result
