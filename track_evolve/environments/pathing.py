"""
environments/pathing.py

How far is the finish line, walking the road?

Straight-line distance lies when walls are in the way. A breadth-first
search over the tile grid tells the truth, and a small cache keeps the
truth cheap to ask for again.
"""

from __future__ import annotations
from collections import OrderedDict, deque
from typing import Dict, Generic, Hashable, Optional, TypeVar
import logging

from track_evolve.errors import InvalidConfiguration
from .tile_map import Cell, TileMap

logger = logging.getLogger(__name__)

# No finish tile, or none reachable. Never a real distance.
UNREACHABLE_DISTANCE = 9999.0

# Up, right, down, left as (d_row, d_col)
NEIGHBOR_OFFSETS = ((-1, 0), (0, 1), (1, 0), (0, -1))

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class BoundedCache(Generic[K, V]):
    """
    Mapping with a fixed capacity.

    Eviction policies:
    - "fifo": once size exceeds capacity, drop the oldest inserted key.
      Reading a key does not refresh it.
    - "lru": same bound, but reads move a key to the young end.

    A performance aid, not a source of truth: an evicted value is simply
    recomputed on the next miss.
    """

    POLICIES = ("fifo", "lru")

    def __init__(self, capacity: int = 100, policy: str = "fifo"):
        if capacity <= 0:
            raise InvalidConfiguration(f"Cache capacity must be positive, got {capacity}")
        if policy not in self.POLICIES:
            raise InvalidConfiguration(f"Unknown eviction policy: {policy}")

        self.capacity = capacity
        self.policy = policy
        self._data: OrderedDict[K, V] = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, key: K) -> Optional[V]:
        if key not in self._data:
            self.misses += 1
            return None

        self.hits += 1
        if self.policy == "lru":
            self._data.move_to_end(key)
        return self._data[key]

    def put(self, key: K, value: V) -> None:
        if key in self._data and self.policy == "lru":
            self._data.move_to_end(key)
        self._data[key] = value

        while len(self._data) > self.capacity:
            self._data.popitem(last=False)
            self.evictions += 1

    def clear(self) -> None:
        self._data.clear()

    def keys(self):
        return list(self._data.keys())

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def stats(self) -> Dict[str, int]:
        return {
            "size": len(self._data),
            "capacity": self.capacity,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
        }

    def __repr__(self) -> str:
        return (
            f"BoundedCache(size={len(self._data)}, "
            f"capacity={self.capacity}, policy={self.policy})"
        )


class PathDistanceOracle:
    """
    Shortest road distance, in pixels, from a cell to the nearest finish tile.

    BFS over 4-connected walkable neighbours, so several finish tiles are
    handled naturally: the first one dequeued is the nearest. The start
    cell itself may be a wall (a car that just crashed still gets an answer
    from the road next to it).
    """

    def __init__(
        self,
        tile_map: TileMap,
        cache_capacity: int = 100,
        cache_policy: str = "fifo",
    ):
        self.tile_map = tile_map
        self.cache: BoundedCache[Cell, float] = BoundedCache(cache_capacity, cache_policy)
        self._finish = frozenset(tile_map.finish_cells)
        self.searches = 0

        if not self._finish:
            logger.warning("Track has no finish tile; every distance query is unreachable")

    @property
    def has_finish(self) -> bool:
        return bool(self._finish)

    def distance_at(self, x: float, y: float) -> float:
        """Distance from the cell under a pixel position."""
        return self.distance_from_cell(*self.tile_map.cell_at(x, y))

    def distance_from_cell(self, row: int, col: int) -> float:
        if not self._finish:
            return UNREACHABLE_DISTANCE

        cell = (row, col)
        cached = self.cache.get(cell)
        if cached is not None:
            return cached

        distance = self._search(cell)
        self.cache.put(cell, distance)
        return distance

    def _search(self, start: Cell) -> float:
        self.searches += 1

        if start in self._finish:
            return 0.0

        visited = {start}
        queue = deque([(start, 0)])

        while queue:
            (row, col), steps = queue.popleft()

            if (row, col) in self._finish:
                return steps * self.tile_map.cell_size

            for d_row, d_col in NEIGHBOR_OFFSETS:
                nxt = (row + d_row, col + d_col)
                if nxt not in visited and self.tile_map.is_walkable(*nxt):
                    visited.add(nxt)
                    queue.append((nxt, steps + 1))

        return UNREACHABLE_DISTANCE

    def get_statistics(self) -> Dict[str, int]:
        stats = self.cache.stats()
        stats["searches"] = self.searches
        return stats

    def __repr__(self) -> str:
        return (
            f"PathDistanceOracle(finish_tiles={len(self._finish)}, "
            f"cache={len(self.cache)}/{self.cache.capacity})"
        )
