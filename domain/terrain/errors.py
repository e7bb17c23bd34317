"""Terrain Bounded Context - Error Hierarchy.

Custom exceptions for terrain operations.

Elevation queries never raise: missing terrain is reported as NaN. These
errors cover archive loading (whole-archive and per-entry failures) and
misuse of the profile service.
"""

from __future__ import annotations


class TerrainError(Exception):
    """Base error for terrain operations."""


class InvalidArchiveError(TerrainError):
    """Archive is not a readable ZIP, wrong extension, or empty file."""


class InvalidTileError(TerrainError):
    """A single archive entry cannot be decoded as an elevation tile.

    Raised while decoding one entry; the archive loader catches it, logs
    the entry name and moves on to the next entry.

    Attributes:
        entry: Archive entry name (basename only)
    """

    def __init__(self, entry: str, reason: str) -> None:
        self.entry = entry
        self.reason = reason
        super().__init__(f"{entry}: {reason}")


class InsufficientMemoryError(TerrainError):
    """Operation requires more memory than allowed or available."""


class InvalidProfileError(TerrainError):
    """Profile parameters are invalid."""

    pass
