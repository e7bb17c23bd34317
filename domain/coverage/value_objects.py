"""Coverage Bounded Context - Value Objects.

Radio parameters, nodes and the samples produced by the link evaluator and
the coverage ray tracer. Numeric inputs are normalized at construction:
missing or non-finite values fall back to the node defaults, so "no value"
never leaks into link math.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from domain.coverage.errors import InvalidRadioParametersError
from domain.terrain.value_objects import GeoPoint

# Accepted spellings per field (snake_case first, then stored-node keys)
_FIELD_KEYS: dict[str, tuple[str, ...]] = {
    "frequency_mhz": ("frequency_mhz", "freqMHz"),
    "tx_power_dbm": ("tx_power_dbm", "txPowerDbm"),
    "tx_antenna_gain_db": ("tx_antenna_gain_db", "txAntGainDb"),
    "rx_antenna_gain_db": ("rx_antenna_gain_db", "rxAntGainDb"),
    "rx_sensitivity_dbm": ("rx_sensitivity_dbm", "rxSensDbm"),
    "tx_height_m": ("tx_height_m", "txH"),
    "rx_height_m": ("rx_height_m", "rxH"),
}
_FREQUENCY_HZ_KEYS = ("frequency_hz", "freqHz")
_HEIGHT_FIELDS = ("tx_height_m", "rx_height_m")


def _as_number(key: str, value: Any) -> float | None:
    """Coerce a raw input to a finite float; None when missing or non-finite."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidRadioParametersError(key, value) from e
    return number if math.isfinite(number) else None


class LinkParameters(BaseModel):
    """Per-node radio parameters (Value Object).

    Immutable inputs to a single evaluation. Accepts snake_case names and
    the stored-node keys (txPowerDbm, freqHz, ...); a frequency may be given
    in MHz or in Hz. Missing, empty or non-finite values take the defaults
    below, as does a non-positive frequency.

    Raises:
        InvalidRadioParametersError: If a value is not numeric at all, or
            an antenna height is negative
    """

    frequency_mhz: float = Field(default=434.0, gt=0)
    tx_power_dbm: float = 30.0
    tx_antenna_gain_db: float = 0.0
    rx_antenna_gain_db: float = 0.0
    rx_sensitivity_dbm: float = -123.0
    tx_height_m: float = Field(default=10.0, ge=0)
    rx_height_m: float = Field(default=1.5, ge=0)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="before")
    @classmethod
    def normalize_inputs(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data

        normalized: dict[str, float] = {}
        for name, keys in _FIELD_KEYS.items():
            for key in keys:
                if key not in data:
                    continue
                number = _as_number(key, data[key])
                if number is None:
                    continue
                if name == "frequency_mhz" and number <= 0:
                    continue
                if name in _HEIGHT_FIELDS and number < 0:
                    raise InvalidRadioParametersError(key, data[key])
                normalized[name] = number
                break

        if "frequency_mhz" not in normalized:
            for key in _FREQUENCY_HZ_KEYS:
                hz = _as_number(key, data.get(key))
                if hz is not None and hz > 0:
                    normalized["frequency_mhz"] = hz / 1e6
                    break

        return normalized

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "LinkParameters":
        """Build parameters from a loose dictionary (e.g. a stored node)."""
        return cls.model_validate(dict(raw or {}))

    @property
    def wavelength_m(self) -> float:
        return 299_792_458.0 / (self.frequency_mhz * 1e6)


class RadioNode(BaseModel):
    """A deployed node: position, optional surveyed ground elevation, radio.

    Invariants:
        RN-1: elevation_m is None or finite
    """

    node_id: str | int
    position: GeoPoint
    elevation_m: float | None = None  # Stored ground elevation, if surveyed
    link: LinkParameters = Field(default_factory=LinkParameters)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_elevation(self) -> "RadioNode":
        if self.elevation_m is not None and not math.isfinite(self.elevation_m):
            object.__setattr__(self, "elevation_m", None)
        return self


class CoverageOptions(BaseModel):
    """Per-request coverage options."""

    radius_m: float | None = None  # None -> settings default

    model_config = ConfigDict(frozen=True)


class ReceiverWindow(BaseModel):
    """Along-ray window where a correspondent's receiver replaces the default.

    Invariants:
        RW-1: 0 <= start_m <= end_m
    """

    sector: int = Field(ge=0)
    start_m: float = Field(ge=0)
    end_m: float = Field(ge=0)
    node_id: str | int
    rx_height_m: float
    rx_antenna_gain_db: float
    rx_sensitivity_dbm: float

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_window(self) -> "ReceiverWindow":
        if self.start_m > self.end_m:
            raise ValueError(f"Window start {self.start_m} > end {self.end_m}")
        return self

    def contains(self, distance_m: float) -> bool:
        return self.start_m <= distance_m <= self.end_m


class CoverageSample(BaseModel):
    """One computed point on a coverage ray (Value Object)."""

    distance_m: float = Field(gt=0)
    point: GeoPoint
    elevation_m: float  # NaN where terrain is unknown
    residual_db: float  # Margin above sensitivity + design margin

    model_config = ConfigDict(frozen=True)


class LinkAssessment(BaseModel):
    """Bidirectional link evaluation result (Value Object)."""

    forward_margin_db: float  # a -> b
    reverse_margin_db: float  # b -> a
    usable: bool
    line_of_sight: bool

    model_config = ConfigDict(frozen=True)


class MarginBand(str, Enum):
    """Display band of a residual margin; colors belong to the renderer."""

    NO_DATA = "no_data"  # Terrain unknown at the sample
    NONE = "none"  # < 0 dB
    WEAK = "weak"  # [0, 3) dB
    FAIR = "fair"  # [3, 12) dB
    STRONG = "strong"  # >= 12 dB
