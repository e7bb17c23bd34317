"""Coverage Bounded Context - Propagation Settings.

Every tunable constant of the propagation engine, grouped in one frozen
Pydantic model so callers can override individual values without touching
module globals. DEFAULT_SETTINGS is used wherever no settings are passed.

The near-ground excess-loss constants (break distance, exponents) are kept
configurable as-is; their provenance is empirical.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

# ---------------------------------------------------------------------------
# Physical Constants
# ---------------------------------------------------------------------------
SPEED_OF_LIGHT_M_S = 299_792_458.0
EARTH_RADIUS_M = 6_371_000.0  # Mean Earth radius
K_FACTOR = 4.0 / 3.0  # Standard atmosphere effective-radius factor


class PropagationSettings(BaseModel):
    """Propagation model configuration (Value Object)."""

    # Link budget
    design_margin_db: float = 12.0  # Fixed safety margin below sensitivity
    fspl_constant_db: float = 32.45  # FSPL with d in km and f in MHz

    # Earth geometry
    earth_radius_m: float = Field(default=EARTH_RADIUS_M, gt=0)
    k_factor: float = Field(default=K_FACTOR, gt=0)

    # Environmental excess loss
    near_ground_height_m: float = 10.0  # Both antennas below -> near ground
    near_ground_exponent: float = Field(default=3.3, ge=2.0)
    default_exponent: float = Field(default=2.0, ge=2.0)
    break_distance_m: float = Field(default=1000.0, gt=0)

    # Deygout diffraction
    diffraction_v_cutoff: float = -0.78  # Below this edge loss is negligible
    diffraction_min_segment_m: float = Field(default=5.0, ge=0)
    diffraction_max_depth: int = Field(default=20, ge=0)

    # Sampling
    link_profile_step_m: float = Field(default=30.0, gt=0)
    ray_step_m: float = Field(default=100.0, gt=0)
    sectors: int = Field(default=360, gt=0)

    # Coverage radius
    default_radius_m: float = Field(default=20_000.0, gt=0)
    min_radius_m: float = Field(default=1_000.0, gt=0)
    max_radius_m: float = Field(default=20_000.0, gt=0)

    # Ray tracer behavior
    correspondent_half_window_m: float = Field(default=50.0, ge=0)
    stop_after_bad_samples: int = Field(default=10, gt=0)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_radius_range(self) -> "PropagationSettings":
        if self.min_radius_m > self.max_radius_m:
            raise ValueError(
                f"min_radius_m={self.min_radius_m} > max_radius_m={self.max_radius_m}"
            )
        return self

    @property
    def effective_earth_radius_m(self) -> float:
        return self.earth_radius_m * self.k_factor


DEFAULT_SETTINGS = PropagationSettings()
