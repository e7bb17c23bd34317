"""Infrastructure adapters for the terrain bounded context.

This module provides the infrastructure layer implementations for terrain
operations, including loading SRTM tiles from HGT ZIP archives.
"""

from .hgt_archive_adapter import HgtArchiveAdapter, load_archive

__all__ = ["HgtArchiveAdapter", "load_archive"]
