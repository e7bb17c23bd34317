"""Terrain Bounded Context.

Responsible for physical geography and spatial calculations:
- Value Objects: GeoPoint, BoundingBox, ElevationTile, TerrainProfile
- Store: TileStore (owned tile cache, bilinear elevation queries)
- Services: terrain_profile, has_line_of_sight, geodesy helpers
"""
