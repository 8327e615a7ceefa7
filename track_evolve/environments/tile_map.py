"""
environments/tile_map.py

The track as a grid of tiles.

Road to drive on, walls to avoid, a spawn to start from,
a finish line to reach. Nothing else exists in this world.

The grid is read-only once built: every agent of every generation
sees the same track.
"""

from __future__ import annotations
from enum import IntEnum
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple, Union
import json
import math

import numpy as np
import yaml

from track_evolve.errors import InvalidConfiguration


class TileKind(IntEnum):
    """Tile codes as they appear in track files."""
    ROAD = 0
    WALL = 1
    FINISH = 2
    SPAWN = 3


WALKABLE_KINDS = frozenset({TileKind.ROAD, TileKind.FINISH, TileKind.SPAWN})

Cell = Tuple[int, int]


class TileMap:
    """
    Immutable grid of tile kinds with a fixed cell size in pixels.

    Anything outside the grid answers as a WALL. Sensors and collision
    checks rely on the border behaving like a wall, so out-of-bounds
    queries never raise.
    """

    def __init__(self, grid: Sequence[Sequence[int]], cell_size: float):
        if cell_size is None or cell_size <= 0:
            raise InvalidConfiguration(f"cell_size must be positive, got {cell_size}")

        rows = [list(row) for row in grid]
        if not rows or not rows[0]:
            raise InvalidConfiguration("Tile grid must have at least one row and one column")

        width = len(rows[0])
        for r, row in enumerate(rows):
            if len(row) != width:
                raise InvalidConfiguration(
                    f"Tile grid is not rectangular: row {r} has {len(row)} cells, expected {width}"
                )

        tiles = np.array(rows, dtype=np.int8)
        valid_codes = [kind.value for kind in TileKind]
        unknown = np.setdiff1d(np.unique(tiles), valid_codes)
        if unknown.size:
            raise InvalidConfiguration(f"Unknown tile codes: {unknown.tolist()}")

        tiles.flags.writeable = False
        self.tiles = tiles
        self.cell_size = float(cell_size)

        self._finish_cells = self._cells_of(TileKind.FINISH)
        self._spawn_cells = self._cells_of(TileKind.SPAWN)

    # ==================== Construction ====================

    @classmethod
    def from_rows(cls, rows: Sequence[str], cell_size: float) -> TileMap:
        """Build from rows of digit strings, e.g. ``["111", "130", "121"]``."""
        try:
            grid = [[int(ch) for ch in row.strip()] for row in rows if row.strip()]
        except ValueError as e:
            raise InvalidConfiguration(f"Tile rows must contain digits only: {e}") from e
        return cls(grid, cell_size)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TileMap:
        """Build from ``{"cell_size": ..., "grid": ...}``."""
        if "grid" not in data or "cell_size" not in data:
            raise InvalidConfiguration("Track data needs 'grid' and 'cell_size'")

        grid = data["grid"]
        if grid and isinstance(grid[0], str):
            return cls.from_rows(grid, data["cell_size"])
        return cls(grid, data["cell_size"])

    @classmethod
    def load(cls, path: Union[str, Path]) -> TileMap:
        """Load a track from a JSON or YAML file."""
        path = Path(path)
        with open(path) as f:
            if path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)

        if not isinstance(data, dict):
            raise InvalidConfiguration(f"Track file {path} does not hold a mapping")
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cell_size": self.cell_size,
            "grid": self.tiles.tolist(),
        }

    # ==================== Queries ====================

    @property
    def rows(self) -> int:
        return self.tiles.shape[0]

    @property
    def cols(self) -> int:
        return self.tiles.shape[1]

    @property
    def width(self) -> float:
        """Track width in pixels."""
        return self.cols * self.cell_size

    @property
    def height(self) -> float:
        """Track height in pixels."""
        return self.rows * self.cell_size

    def in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self.rows and 0 <= col < self.cols

    def kind_at(self, row: int, col: int) -> TileKind:
        """Tile kind at a cell; WALL outside the grid."""
        if not self.in_bounds(row, col):
            return TileKind.WALL
        return TileKind(int(self.tiles[row, col]))

    def is_walkable(self, row: int, col: int) -> bool:
        return self.kind_at(row, col) in WALKABLE_KINDS

    def cell_at(self, x: float, y: float) -> Cell:
        """Pixel position to (row, col)."""
        return (
            int(math.floor(y / self.cell_size)),
            int(math.floor(x / self.cell_size)),
        )

    def kind_at_point(self, x: float, y: float) -> TileKind:
        return self.kind_at(*self.cell_at(x, y))

    def cell_center(self, row: int, col: int) -> Tuple[float, float]:
        """Pixel centre (x, y) of a cell."""
        return (
            col * self.cell_size + self.cell_size / 2,
            row * self.cell_size + self.cell_size / 2,
        )

    @property
    def finish_cells(self) -> Tuple[Cell, ...]:
        return self._finish_cells

    @property
    def spawn_cells(self) -> Tuple[Cell, ...]:
        return self._spawn_cells

    def spawn_point(self) -> Tuple[float, float]:
        """
        Pixel centre of the spawn tile.

        With several spawn tiles the last one in row-major order is used.
        """
        if not self._spawn_cells:
            raise InvalidConfiguration("Track has no spawn tile")
        return self.cell_center(*self._spawn_cells[-1])

    def _cells_of(self, kind: TileKind) -> Tuple[Cell, ...]:
        rows, cols = np.nonzero(self.tiles == kind.value)
        return tuple(zip(rows.tolist(), cols.tolist()))

    def __repr__(self) -> str:
        return (
            f"TileMap(rows={self.rows}, cols={self.cols}, "
            f"cell_size={self.cell_size:g}, "
            f"finish={len(self._finish_cells)}, spawn={len(self._spawn_cells)})"
        )


# A small closed course: start at the bottom left, drive up and around,
# finish line across the bottom right corridor.
SAMPLE_TRACK_ROWS: List[str] = [
    "1111111111111111",
    "1000000000000001",
    "1000000000000001",
    "1001111111111001",
    "1001111111111001",
    "1001111111111001",
    "1001111111111001",
    "1001111111111001",
    "1001111111111001",
    "1001111111111221",
    "1030111111111001",
    "1111111111111111",
]

SAMPLE_TRACK_CELL_SIZE = 40.0


def sample_track() -> TileMap:
    """The bundled track used when no track file is given."""
    return TileMap.from_rows(SAMPLE_TRACK_ROWS, SAMPLE_TRACK_CELL_SIZE)
