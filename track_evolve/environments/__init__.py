"""
The world the cars drive in.

- tile_map: the immutable track grid
- pathing: road distance to the finish line, with a bounded cache
"""

from .tile_map import TileKind, TileMap, sample_track
from .pathing import BoundedCache, PathDistanceOracle, UNREACHABLE_DISTANCE

__all__ = [
    "TileKind",
    "TileMap",
    "sample_track",
    "BoundedCache",
    "PathDistanceOracle",
    "UNREACHABLE_DISTANCE",
]
