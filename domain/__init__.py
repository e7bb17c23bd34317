"""Link Planner Domain Layer.

This package contains the core propagation logic organized by bounded contexts:
- terrain: Elevation tiles, tile store, terrain profiles, line of sight
- coverage: RF propagation, diffraction, link budget, coverage ray tracing
"""

# Imports alphabetized per project style (isort)
from domain import coverage, terrain

__all__ = ["coverage", "terrain"]
