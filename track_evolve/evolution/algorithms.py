"""
evolution/algorithms.py

Generational elitist evolution, one tick at a time.

- Spawn a population at the start line (fast)
- Drive every car until all stop or time runs out (slow, per tick)
- Keep the best few brains, copy and jitter them (fast)

The engine is stepped by an external driver; it never loops on its own
except in run_generation(). Everything random flows from one seeded
generator, so a seed replays a run exactly.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union
import logging
import time

import numpy as np

from track_evolve.core.agent import AgentConfig, AgentSnapshot, CarAgent
from track_evolve.core.brain import NeuralPolicy, PolicyParameters
from track_evolve.core.sensors import SensorArray, SensorConfig
from track_evolve.environments.pathing import PathDistanceOracle
from track_evolve.environments.tile_map import TileMap
from track_evolve.errors import InvalidConfiguration
from .fitness import EvaluationResult, rank_by_fitness, select_elites, summarize

logger = logging.getLogger(__name__)


@dataclass
class EvolutionConfig:
    """Configuration for the genetic engine."""
    population_size: int = 30
    mutation_rate: float = 0.06      # Probability each weight is perturbed
    mutation_sigma: float = 0.1      # Std-dev of the perturbation
    max_frames: int = 3000           # Ticks per generation (~50 s at 60 fps)
    elite_count: int = 3             # Policies carried to the next generation
    cache_capacity: int = 100        # Path distance cache entries
    seed: Optional[int] = 42         # None = fresh entropy

    def validate(self) -> None:
        """Raise InvalidConfiguration for unusable settings."""
        if self.population_size <= 0:
            raise InvalidConfiguration(
                f"population_size must be positive, got {self.population_size}"
            )
        if self.elite_count < 1:
            raise InvalidConfiguration(f"elite_count must be at least 1, got {self.elite_count}")
        if self.elite_count > self.population_size:
            raise InvalidConfiguration(
                f"elite_count ({self.elite_count}) exceeds population_size ({self.population_size})"
            )
        if not 0.0 <= self.mutation_rate <= 1.0:
            raise InvalidConfiguration(f"mutation_rate must be in [0, 1], got {self.mutation_rate}")
        if self.mutation_sigma < 0:
            raise InvalidConfiguration(f"mutation_sigma must be non-negative, got {self.mutation_sigma}")
        if self.max_frames <= 0:
            raise InvalidConfiguration(f"max_frames must be positive, got {self.max_frames}")
        if self.cache_capacity <= 0:
            raise InvalidConfiguration(f"cache_capacity must be positive, got {self.cache_capacity}")


@dataclass(frozen=True)
class EngineSnapshot:
    """Everything a renderer or HUD needs after a tick."""
    generation: int
    frame: int
    max_frames: int
    alive: int
    total: int
    leader_id: Optional[str]
    leader_score: Optional[float]
    best_score_ever: float
    total_finished: int
    agents: Tuple[AgentSnapshot, ...]


class GeneticEngine:
    """
    Owns the population and its lifecycle.

    Per tick: step every living car in population order, find the leader
    (highest score among the living, first one wins ties), then end the
    generation if nobody is alive or the frame budget is exceeded.

    Per generation: rank by fitness, keep clones of the top K policies,
    spawn the next population from them.
    """

    def __init__(
        self,
        tile_map: TileMap,
        config: Optional[EvolutionConfig] = None,
        agent_config: Optional[AgentConfig] = None,
        sensor_config: Optional[SensorConfig] = None,
        seed_policy: Optional[NeuralPolicy] = None,
        spawn: Optional[Tuple[float, float]] = None,
        spawn_heading: float = 0.0,
    ):
        self.config = config or EvolutionConfig()
        self.config.validate()

        self.tile_map = tile_map
        self.agent_config = agent_config or AgentConfig()
        self.sensors = SensorArray(tile_map, sensor_config)
        self.oracle = PathDistanceOracle(tile_map, cache_capacity=self.config.cache_capacity)
        self.spawn = spawn if spawn is not None else tile_map.spawn_point()
        self.spawn_heading = spawn_heading

        self.rng = np.random.default_rng(self.config.seed)
        self.seed_policy = seed_policy.clone() if seed_policy is not None else None

        # Generation state
        self.generation = 1
        self.frame = 0
        self.elites: List[NeuralPolicy] = []
        self.population: List[CarAgent] = []
        self.best_score_ever = 0.0
        self.total_finished = 0
        self.history: List[Dict[str, Any]] = []

        # Per-tick view
        self.leader: Optional[CarAgent] = None
        self.alive_count = 0

        self._generation_start = time.time()
        self.spawn_generation()

        logger.info(
            f"Engine initialized: population={self.config.population_size}, "
            f"elites={self.config.elite_count}, max_frames={self.config.max_frames}, "
            f"seed={self.config.seed}"
        )

    # ==================== Generation lifecycle ====================

    def spawn_generation(self) -> None:
        """Build a fresh population at the spawn point."""
        self.frame = 0
        self.leader = None
        self._generation_start = time.time()

        self.population = [
            CarAgent(
                agent_id=f"g{self.generation}-{i}",
                position=self.spawn,
                policy=self._policy_for(i),
                tile_map=self.tile_map,
                oracle=self.oracle,
                sensors=self.sensors,
                config=self.agent_config,
                heading=self.spawn_heading,
            )
            for i in range(self.config.population_size)
        ]
        self.alive_count = len(self.population)

    def _policy_for(self, index: int) -> NeuralPolicy:
        """
        Policy source for agent ``index``:
        - elites exist: clone of elites[index mod K], mutated
        - seed policy: agent 0 gets it as is, the others mutated
        - otherwise: random
        """
        rate, sigma = self.config.mutation_rate, self.config.mutation_sigma

        if self.elites:
            parent = self.elites[index % len(self.elites)]
            return parent.clone().mutate(rate, self.rng, sigma)

        if self.seed_policy is not None:
            child = self.seed_policy.clone()
            if index > 0:
                child.mutate(rate, self.rng, sigma)
            return child

        return NeuralPolicy.random(self.rng)

    def step(self) -> bool:
        """
        Advance one tick.

        Returns True when this tick ended the generation (the next
        population is already spawned).
        """
        alive = 0
        leader: Optional[CarAgent] = None
        leader_score = float("-inf")

        for agent in self.population:
            if agent.alive:
                try:
                    agent.update()
                except Exception as e:
                    agent.kill(f"update failed: {e}")

            if agent.alive:
                alive += 1
                if agent.score > leader_score:
                    leader_score = agent.score
                    leader = agent

        self.frame += 1
        self.alive_count = alive
        self.leader = leader

        if leader is not None and leader_score > self.best_score_ever:
            self.best_score_ever = leader_score

        if self.is_generation_over():
            self.next_generation()
            return True
        return False

    def is_generation_over(self) -> bool:
        """Nobody left driving, or the frame budget exceeded (not merely reached)."""
        return self.alive_count == 0 or self.frame > self.config.max_frames

    def next_generation(self) -> Dict[str, Any]:
        """Select elites, record the generation, spawn the next one."""
        ranked = rank_by_fitness(self.population)
        self.elites = select_elites(ranked, self.config.elite_count)

        finished = sum(1 for agent in self.population if agent.finished)
        self.total_finished += finished

        results = [EvaluationResult.from_agent(agent) for agent, _ in ranked]
        record = {
            "generation": self.generation,
            "frames": self.frame,
            "finished": finished,
            "total_finished": self.total_finished,
            "best_score_ever": self.best_score_ever,
            "best_agent": results[0].agent_id if results else None,
            "generation_time": time.time() - self._generation_start,
            **summarize([r.fitness for r in results]),
        }
        self.history.append(record)

        logger.info(
            f"Generation {self.generation}: {self.frame} frames, "
            f"{finished} finished, best fitness {record['max_fitness']:.1f}, "
            f"mean {record['mean_fitness']:.1f}"
        )
        logger.debug(f"Path cache: {self.oracle.get_statistics()}")

        self.generation += 1
        self.spawn_generation()
        return record

    def run_generation(self, max_ticks: Optional[int] = None) -> Optional[Dict[str, Any]]:
        """
        Step until the current generation ends.

        Returns its history record, or None if ``max_ticks`` ran out first.
        """
        ticks = 0
        while max_ticks is None or ticks < max_ticks:
            ticks += 1
            if self.step():
                return self.history[-1]
        return None

    # ==================== Control ====================

    def best_agent(self) -> Optional[CarAgent]:
        """Fitness leader of the current population."""
        if not self.population:
            return None
        return rank_by_fitness(self.population)[0][0]

    def save_best(self) -> Optional[PolicyParameters]:
        """
        Parameters of the current fitness leader.

        On frame 0 of a bred generation nobody has driven yet, so the
        leader is the top elite of the generation that just ended.
        """
        if self.frame == 0 and self.elites:
            return self.elites[0].export_parameters()

        best = self.best_agent()
        if best is None:
            return None
        return best.policy.export_parameters()

    def load_policy(self, data: Union[NeuralPolicy, PolicyParameters, Dict[str, Any]]) -> None:
        """
        Restart from an external policy: it becomes the only elite,
        generation and all-time stats reset, a new population spawns.

        The data is validated first; a ShapeMismatch leaves the engine
        untouched.
        """
        if isinstance(data, NeuralPolicy):
            policy = data.clone()
        else:
            policy = NeuralPolicy.from_parameters(data)

        self.elites = [policy]
        self._reset_stats()
        self.spawn_generation()
        logger.info("Policy loaded; restarting from generation 1")

    def reset_all(self, seed_policy: Optional[NeuralPolicy] = None) -> None:
        """
        Forget elites and all-time stats; start again at generation 1.

        A ``seed_policy`` given here replaces the one the engine was built with.
        """
        if seed_policy is not None:
            self.seed_policy = seed_policy.clone()
        self.elites = []
        self._reset_stats()
        self.spawn_generation()
        logger.info("Simulation reset")

    def _reset_stats(self) -> None:
        self.generation = 1
        self.best_score_ever = 0.0
        self.total_finished = 0
        self.history = []

    # ==================== Presentation ====================

    def snapshot(self) -> EngineSnapshot:
        return EngineSnapshot(
            generation=self.generation,
            frame=self.frame,
            max_frames=self.config.max_frames,
            alive=self.alive_count,
            total=len(self.population),
            leader_id=self.leader.id if self.leader else None,
            leader_score=self.leader.score if self.leader else None,
            best_score_ever=self.best_score_ever,
            total_finished=self.total_finished,
            agents=tuple(agent.snapshot() for agent in self.population),
        )

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "generation": self.generation,
            "frame": self.frame,
            "alive": self.alive_count,
            "population_size": len(self.population),
            "elites": len(self.elites),
            "best_score_ever": self.best_score_ever,
            "total_finished": self.total_finished,
            "path_cache": self.oracle.get_statistics(),
        }

    def __repr__(self) -> str:
        return (
            f"GeneticEngine(generation={self.generation}, frame={self.frame}, "
            f"alive={self.alive_count}/{len(self.population)})"
        )
