"""
core/agent.py

A car is a body, a fan of sensors, and a small brain.

Each tick it looks, decides, moves, and is judged:
rewarded for speed and for getting closer to the finish,
punished for hitting walls and for standing still.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple
import logging

import numpy as np

from track_evolve.environments.pathing import PathDistanceOracle, UNREACHABLE_DISTANCE
from track_evolve.environments.tile_map import TileKind, TileMap
from .brain import NeuralPolicy
from .sensors import SensorArray

logger = logging.getLogger(__name__)


class AgentStatus(Enum):
    ALIVE = "alive"
    FINISHED = "finished"
    DEAD = "dead"


@dataclass
class AgentState:
    """
    Where a car is and where it is going.
    """
    position: np.ndarray          # (x, y) in pixels
    velocity: np.ndarray          # Pixels per tick
    heading: float = 0.0          # Radians
    alive: bool = True
    finished: bool = False

    def __post_init__(self):
        self.position = np.array(self.position, dtype=np.float64)
        self.velocity = np.array(self.velocity, dtype=np.float64)

    @property
    def speed(self) -> float:
        return float(np.linalg.norm(self.velocity))


@dataclass(frozen=True)
class AgentConfig:
    """
    Physics and scoring constants.
    Shared by every car of a run.
    """
    # Kinematics
    rotation_scale: float = 0.1        # Heading change per unit of rotation output
    thrust_scale: float = 0.3          # Velocity change per unit of throttle output
    friction: float = 0.95             # Velocity kept per tick

    # Idling
    idle_speed: float = 0.1            # Below this a tick counts as idle
    idle_limit: int = 300              # Idle ticks tolerated (~5 s at 60 fps)
    idle_penalty: float = 100.0

    # Speed reward
    fast_speed: float = 1.5
    fast_rate: float = 0.2
    cruise_speed: float = 0.5
    cruise_rate: float = 0.15

    # Progress and finish
    progress_rate: float = 0.3         # Score per pixel of road distance gained
    finish_bonus: float = 2000.0

    # Collisions
    collision_penalty: float = 40.0    # Multiplied by the collision count
    collision_limit: int = 2           # Collisions tolerated before dying

    # Fitness shaping
    death_factor: float = 0.7          # Applied to score when dead without finishing
    survival_rate: float = 0.1         # Per frame alive
    average_speed_rate: float = 50.0
    proximity_horizon: float = 1000.0  # Best distance below this earns a bonus
    proximity_rate: float = 0.2


@dataclass(frozen=True)
class AgentSnapshot:
    """Read-only view of a car for renderers and HUDs."""
    agent_id: str
    x: float
    y: float
    heading: float
    alive: bool
    finished: bool
    readings: Tuple[float, ...]
    score: float


class CarAgent:
    """
    One car of the population.

    Owns its state and its policy exclusively; the TileMap, the sensors'
    map reference and the PathDistanceOracle are shared and only read.

    Lifecycle: ALIVE -> FINISHED (reached a finish tile) or
    ALIVE -> DEAD (idle too long, too many collisions, or an error).
    Both end states are final for the generation.
    """

    def __init__(
        self,
        agent_id: str,
        position: Tuple[float, float],
        policy: NeuralPolicy,
        tile_map: TileMap,
        oracle: PathDistanceOracle,
        sensors: Optional[SensorArray] = None,
        config: Optional[AgentConfig] = None,
        heading: float = 0.0,
    ):
        self.id = agent_id
        self.config = config or AgentConfig()
        self.tile_map = tile_map
        self.oracle = oracle
        self.sensors = sensors or SensorArray(tile_map)

        # Never aliased with the caller's policy
        self.policy = policy.clone()

        self.state = AgentState(
            position=np.array(position, dtype=np.float64),
            velocity=np.zeros(2),
            heading=heading,
        )
        self.readings = np.full(self.sensors.count, self.sensors.config.max_range)

        # Fitness bookkeeping
        self.score = 0.0
        self.distance_travelled = 0.0
        self.last_position = self.state.position.copy()
        self.accumulated_speed = 0.0
        self.frames_alive = 0
        self.idle_frames = 0
        self.collisions = 0
        self.death_cause: Optional[str] = None

        self.dist_to_finish = self.oracle.distance_at(*self.state.position)
        self.best_dist_to_finish = self.dist_to_finish

    # ==================== Status ====================

    @property
    def alive(self) -> bool:
        return self.state.alive

    @property
    def finished(self) -> bool:
        return self.state.finished

    @property
    def status(self) -> AgentStatus:
        if self.state.finished:
            return AgentStatus.FINISHED
        if self.state.alive:
            return AgentStatus.ALIVE
        return AgentStatus.DEAD

    # ==================== Core Loop ====================

    def update(self) -> None:
        """
        Advance one tick. Does nothing once the car has stopped.

        Order matters: idle death returns before any scoring, and the
        finish check runs before the collision check.
        """
        if not self.state.alive:
            return

        cfg = self.config
        state = self.state

        # Distance since last tick
        self.distance_travelled += float(np.linalg.norm(state.position - self.last_position))
        self.last_position = state.position.copy()

        # Look
        self.readings, inputs = self.sensors.sense(state.position[0], state.position[1], state.heading)

        # Decide
        rotation, throttle = self.policy.infer(inputs)

        # Move
        state.heading += rotation * cfg.rotation_scale
        direction = np.array([np.cos(state.heading), np.sin(state.heading)])
        state.velocity = state.velocity + direction * (throttle * cfg.thrust_scale)
        state.velocity = state.velocity * cfg.friction
        state.position = state.position + state.velocity
        self.frames_alive += 1

        speed = state.speed

        # Standing still
        if speed < cfg.idle_speed:
            self.idle_frames += 1
        else:
            self.idle_frames = 0
        if self.idle_frames > cfg.idle_limit:
            state.alive = False
            self.score -= cfg.idle_penalty
            self.death_cause = "idle"
            return

        # Speed reward
        self.accumulated_speed += speed
        if speed > cfg.fast_speed:
            self.score += speed * cfg.fast_rate
        elif speed > cfg.cruise_speed:
            self.score += speed * cfg.cruise_rate

        # Progress along the road
        self._update_progress()

        tile = self.tile_map.kind_at_point(state.position[0], state.position[1])

        # Finish line
        if not state.finished and tile == TileKind.FINISH:
            state.finished = True
            state.alive = False
            self.score += cfg.finish_bonus

        # Walls (and everything off the map)
        if tile == TileKind.WALL:
            self.collisions += 1
            self.score -= cfg.collision_penalty * self.collisions
            if self.collisions > cfg.collision_limit:
                state.alive = False
                self.death_cause = "collision"

    def _update_progress(self) -> None:
        previous = self.dist_to_finish
        current = self.oracle.distance_at(*self.state.position)
        self.dist_to_finish = current

        # The sentinel is "no path", not a distance: no credit for leaving it
        measurable = previous < UNREACHABLE_DISTANCE and current < UNREACHABLE_DISTANCE
        if measurable and current < previous:
            self.score += (previous - current) * self.config.progress_rate

        if current < self.best_dist_to_finish:
            self.best_dist_to_finish = current

    def kill(self, reason: str) -> None:
        """Stop the car without further scoring."""
        if self.state.alive:
            self.state.alive = False
            self.death_cause = reason
            logger.warning(f"Agent {self.id} killed: {reason}")

    # ==================== Fitness ====================

    @property
    def average_speed(self) -> float:
        return self.accumulated_speed / max(1, self.frames_alive)

    def fitness(self) -> float:
        """
        Ranking value, computed on demand. Never negative.

        Dying without finishing scales the running score down; survival
        time, average speed and the closest approach to the finish are
        added on top.
        """
        cfg = self.config
        value = self.score
        if not self.state.alive and not self.state.finished:
            value *= cfg.death_factor

        value += self.frames_alive * cfg.survival_rate + self.average_speed * cfg.average_speed_rate
        value += max(0.0, (cfg.proximity_horizon - self.best_dist_to_finish) * cfg.proximity_rate)

        return max(0.0, value)

    # ==================== Utilities ====================

    def snapshot(self) -> AgentSnapshot:
        return AgentSnapshot(
            agent_id=self.id,
            x=float(self.state.position[0]),
            y=float(self.state.position[1]),
            heading=float(self.state.heading),
            alive=self.state.alive,
            finished=self.state.finished,
            readings=tuple(float(r) for r in self.readings),
            score=float(self.score),
        )

    def __repr__(self) -> str:
        return (
            f"CarAgent(id={self.id}, "
            f"pos=[{self.state.position[0]:.1f}, {self.state.position[1]:.1f}], "
            f"status={self.status.value}, "
            f"score={self.score:.1f})"
        )
