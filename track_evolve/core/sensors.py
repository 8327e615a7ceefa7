"""
core/sensors.py

A car sees the track through a fan of rays.

Each ray walks outward in small steps until it touches a wall
or leaves the map. How far it got is all the car knows.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Tuple
import numpy as np

from track_evolve.environments.tile_map import TileKind, TileMap


@dataclass(frozen=True)
class SensorConfig:
    """Ray layout, fixed for the lifetime of a run."""
    # Offsets from heading in degrees; denser towards the front
    angles_deg: Tuple[float, ...] = (-90.0, -60.0, -40.0, -20.0, 0.0, 20.0, 40.0, 60.0, 90.0)
    step: float = 5.0           # Sampling step along a ray (px)
    max_range: float = 200.0    # Reported when nothing is hit (px)

    @property
    def count(self) -> int:
        return len(self.angles_deg)


class SensorArray:
    """
    Casts every ray at once against a TileMap.

    Rays sample at d = 0, step, 2*step, ... below max_range. The first
    sample that lands on a wall or off the map ends the ray; its d is the
    reading.
    """

    def __init__(self, tile_map: TileMap, config: Optional[SensorConfig] = None):
        self.tile_map = tile_map
        self.config = config or SensorConfig()

        self.offsets = np.radians(np.asarray(self.config.angles_deg, dtype=np.float64))
        self.samples = np.arange(0.0, self.config.max_range, self.config.step)

    @property
    def count(self) -> int:
        return self.config.count

    def cast(self, x: float, y: float, heading: float) -> np.ndarray:
        """Raw distances in pixels, one per ray, each in [0, max_range]."""
        if self.samples.size == 0:
            return np.full(self.count, self.config.max_range)

        angles = heading + self.offsets

        # (rays, samples) grids of sample points
        px = x + np.cos(angles)[:, None] * self.samples[None, :]
        py = y + np.sin(angles)[:, None] * self.samples[None, :]

        cell = self.tile_map.cell_size
        rows = np.floor(py / cell).astype(np.int64)
        cols = np.floor(px / cell).astype(np.int64)

        inside = (
            (rows >= 0) & (rows < self.tile_map.rows)
            & (cols >= 0) & (cols < self.tile_map.cols)
        )
        kinds = np.full(rows.shape, TileKind.WALL.value, dtype=np.int8)
        kinds[inside] = self.tile_map.tiles[rows[inside], cols[inside]]
        blocked = kinds == TileKind.WALL.value

        hit = blocked.any(axis=1)
        first = blocked.argmax(axis=1)
        return np.where(hit, self.samples[first], self.config.max_range)

    def normalize(self, readings: np.ndarray) -> np.ndarray:
        """Linear map of raw distance 0..max_range onto 1..0."""
        readings = np.asarray(readings, dtype=np.float64)
        return np.clip(1.0 - readings / self.config.max_range, 0.0, 1.0)

    def sense(self, x: float, y: float, heading: float) -> Tuple[np.ndarray, np.ndarray]:
        """Raw and normalized readings together."""
        raw = self.cast(x, y, heading)
        return raw, self.normalize(raw)

    def __repr__(self) -> str:
        return (
            f"SensorArray(rays={self.count}, "
            f"step={self.config.step:g}, range={self.config.max_range:g})"
        )
