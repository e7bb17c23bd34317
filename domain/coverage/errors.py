"""Coverage Bounded Context - Error Hierarchy.

Link math is total and reports degenerate geometry through sentinels
(zero loss, negative-infinity margin). These errors cover malformed radio
parameters at the boundary.
"""

from __future__ import annotations


class CoverageError(Exception):
    """Base error for coverage operations."""


class InvalidRadioParametersError(CoverageError):
    """Radio parameters cannot be normalized (e.g. non-numeric input)."""

    def __init__(self, field: str, value: object) -> None:
        self.field = field
        self.value = value
        super().__init__(f"Invalid radio parameter {field}={value!r}")
