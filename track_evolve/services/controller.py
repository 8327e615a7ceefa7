"""
track_evolve/services/controller.py

Simulation controller service.

The controller is the only thing that drives the engine:
1. Builds the track, the engine and the policy store from one config
2. Calls engine.step() at the current tick rate (or flat out, headless)
3. Exposes the control operations: save, load, reset, speed
4. Logs progress and saves the best policy on the way out

The engine never sees wall-clock time; the tick rate only decides how
often step() is called.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import Any

import yaml

from track_evolve.core.brain import NeuralPolicy, PolicyParameters
from track_evolve.environments.tile_map import TileMap, sample_track
from track_evolve.errors import InvalidConfiguration, ShapeMismatch
from track_evolve.evolution.algorithms import EvolutionConfig, GeneticEngine

from .persistence import DEFAULT_POLICY_KEY, PersistenceConfig, PolicyStore

logger = logging.getLogger(__name__)

MIN_TICK_RATE = 5.0
MAX_TICK_RATE = 240.0


@dataclass
class ControllerConfig:
    """Configuration for the simulation controller."""
    # Track (None = bundled sample track)
    track_path: str | None = None

    # Evolution parameters
    population_size: int = 30
    mutation_rate: float = 0.06
    max_frames: int = 3000
    elite_count: int = 3
    generations: int = 10  # Per run() call; 0 = until stopped

    # Pacing
    tick_rate: float = 60.0  # Ticks per second when realtime
    realtime: bool = False  # False = step as fast as possible
    status_interval: int = 600  # Ticks between progress logs (0 = off)

    # Persistence
    policy_path: str = "track_evolve_policies.json"
    persistence_enabled: bool = True
    load_saved_policy: bool = False  # Seed from the store at startup
    save_on_exit: bool = True

    # Random seed
    seed: int | None = 42

    @classmethod
    def from_yaml(cls, path: str) -> ControllerConfig:
        """
        Read a flat YAML mapping of field names to values.

        Unknown keys are rejected rather than silently ignored.
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise InvalidConfiguration(f"{path}: expected a mapping, got {type(data).__name__}")

        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise InvalidConfiguration(f"{path}: unknown settings {unknown}")

        return cls(**data)

    def evolution_config(self) -> EvolutionConfig:
        return EvolutionConfig(
            population_size=self.population_size,
            mutation_rate=self.mutation_rate,
            max_frames=self.max_frames,
            elite_count=self.elite_count,
            seed=self.seed,
        )

    def persistence_config(self) -> PersistenceConfig:
        return PersistenceConfig(path=self.policy_path, enabled=self.persistence_enabled)


def clamp_tick_rate(rate: float) -> float:
    return float(min(MAX_TICK_RATE, max(MIN_TICK_RATE, rate)))


class SimulationController:
    """
    Drives a GeneticEngine and implements the control interface.

    Control operations may be called between ticks from the same thread
    (or from a signal handler, which only flips ``running``).
    """

    def __init__(
        self,
        config: ControllerConfig | None = None,
        tile_map: TileMap | None = None,
        store: PolicyStore | None = None,
    ):
        self.config = config or ControllerConfig()

        if tile_map is None:
            tile_map = TileMap.load(self.config.track_path) if self.config.track_path else sample_track()
        self.tile_map = tile_map

        self.store = store or PolicyStore(self.config.persistence_config())

        # A stored policy seeds generation 1: agent 0 drives it unchanged
        seed_policy = self._stored_policy() if self.config.load_saved_policy else None
        self.engine = GeneticEngine(tile_map, self.config.evolution_config(), seed_policy=seed_policy)

        # Status
        self.tick_rate = clamp_tick_rate(self.config.tick_rate)
        self.running = False
        self.ticks = 0
        self.start_time: float | None = None

        logger.info(
            f"Controller initialized: {tile_map.rows}x{tile_map.cols} track, "
            f"tick rate {self.tick_rate:g}"
        )

    # ==================== Driving ====================

    def tick(self) -> bool:
        """One engine step. True if it ended a generation."""
        ended = self.engine.step()
        self.ticks += 1

        interval = self.config.status_interval
        if interval and self.ticks % interval == 0:
            snap = self.engine.snapshot()
            logger.info(
                f"Generation {snap.generation} frame {snap.frame}/{snap.max_frames}: "
                f"{snap.alive}/{snap.total} alive, best ever {snap.best_score_ever:.1f}"
            )
        return ended

    def run(
        self,
        generations: int | None = None,
        max_ticks: int | None = None,
        realtime: bool | None = None,
    ) -> dict[str, Any]:
        """
        Tick until ``generations`` generations have ended, ``max_ticks``
        ticks have run, or stop() is called.

        Args:
            generations: Generations to complete (default: from config; 0 = no limit)
            max_ticks: Hard cap on ticks for this call
            realtime: Sleep between ticks to hold the tick rate (default: from config)

        Returns:
            Final status
        """
        generations = self.config.generations if generations is None else generations
        realtime = self.config.realtime if realtime is None else realtime

        self.running = True
        self.start_time = time.time()
        completed = 0
        ticks = 0

        logger.info(
            f"Starting simulation at generation {self.engine.generation}"
            + (f" for {generations} generations" if generations else "")
        )

        try:
            while self.running:
                if generations and completed >= generations:
                    break
                if max_ticks is not None and ticks >= max_ticks:
                    break

                tick_start = time.time()
                if self.tick():
                    completed += 1
                ticks += 1

                if realtime:
                    remaining = 1.0 / self.tick_rate - (time.time() - tick_start)
                    if remaining > 0:
                        time.sleep(remaining)

        except KeyboardInterrupt:
            logger.info("Simulation interrupted by user")

        finally:
            self.running = False

        if self.config.save_on_exit:
            self.save_best()

        status = self.get_status()
        status["generations_completed"] = completed
        logger.info(
            f"Simulation stopped after {completed} generations, "
            f"best score ever: {self.engine.best_score_ever:.1f}"
        )
        return status

    def stop(self) -> None:
        """Stop the run loop after the current tick."""
        self.running = False
        logger.info("Stopping simulation...")

    # ==================== Control ====================

    def save_best(self, key: str = DEFAULT_POLICY_KEY) -> bool:
        """Store the current fitness leader's policy."""
        parameters = self.engine.save_best()
        if parameters is None:
            return False
        return self.store.save(parameters, key)

    def load_policy(
        self,
        data: NeuralPolicy | PolicyParameters | dict[str, Any] | None = None,
        key: str = DEFAULT_POLICY_KEY,
    ) -> bool:
        """
        Restart evolution from ``data``, or from the stored policy when
        no data is given.

        Returns False (engine untouched) if nothing is stored or the
        shapes do not fit the network.
        """
        if data is None:
            data = self.store.load(key)
            if data is None:
                logger.warning("No saved policy found; keeping current population")
                return False

        try:
            self.engine.load_policy(data)
        except (ShapeMismatch, TypeError, ValueError) as e:
            logger.error(f"Policy rejected: {e}")
            return False
        return True

    def reset_all(self) -> None:
        """Restart at generation 1, seeded from the stored policy if there is one."""
        self.engine.reset_all(seed_policy=self._stored_policy())

    def _stored_policy(self, key: str = DEFAULT_POLICY_KEY) -> NeuralPolicy | None:
        """The stored policy as a NeuralPolicy, or None if absent or unusable."""
        if not self.store.exists(key):
            return None

        parameters = self.store.load(key)
        if parameters is None:
            return None

        try:
            return NeuralPolicy.from_parameters(parameters)
        except ShapeMismatch as e:
            logger.error(f"Stored policy '{key}' rejected: {e}")
            return None

    def set_tick_rate(self, rate: float) -> float:
        """Set ticks per second, clamped to [5, 240]. Returns the rate applied."""
        self.tick_rate = clamp_tick_rate(rate)
        logger.info(f"Tick rate: {self.tick_rate:g}")
        return self.tick_rate

    def speed_up(self) -> float:
        return self.set_tick_rate(self.tick_rate * 2)

    def slow_down(self) -> float:
        return self.set_tick_rate(self.tick_rate / 2)

    # ==================== Status ====================

    def get_status(self) -> dict[str, Any]:
        """Get current controller status."""
        elapsed = 0.0
        if self.start_time:
            elapsed = time.time() - self.start_time

        snap = self.engine.snapshot()
        return {
            "running": self.running,
            "generation": snap.generation,
            "frame": snap.frame,
            "alive": snap.alive,
            "total": snap.total,
            "leader_score": snap.leader_score,
            "best_score_ever": snap.best_score_ever,
            "total_finished": snap.total_finished,
            "ticks": self.ticks,
            "tick_rate": self.tick_rate,
            "elapsed_time": elapsed,
        }


def run_controller(config: ControllerConfig | None = None) -> None:
    """
    Run the controller as a standalone process.

    This is the entry point for ``python -m track_evolve.services.controller``.
    """
    import argparse
    import signal

    parser = argparse.ArgumentParser(description="Track-Evolve Simulation Controller")
    parser.add_argument("--config", default=None, help="YAML file with controller settings")
    parser.add_argument("--track", dest="track_path", default=None, help="Track file (JSON or YAML)")
    parser.add_argument("--population-size", type=int, default=None)
    parser.add_argument("--mutation-rate", type=float, default=None)
    parser.add_argument("--max-frames", type=int, default=None)
    parser.add_argument("--elite-count", type=int, default=None)
    parser.add_argument("--generations", type=int, default=None)
    parser.add_argument("--tick-rate", type=float, default=None)
    parser.add_argument("--realtime", action="store_true", default=None)
    parser.add_argument("--policy-path", default=None)
    parser.add_argument("--load-policy", dest="load_saved_policy", action="store_true", default=None)
    parser.add_argument("--no-save", dest="save_on_exit", action="store_false", default=None)
    parser.add_argument("--seed", type=int, default=None)

    args = parser.parse_args()

    if config is None:
        config = ControllerConfig.from_yaml(args.config) if args.config else ControllerConfig()

        # Flags given on the command line win over the file
        overrides = {
            k: v for k, v in vars(args).items()
            if k != "config" and v is not None
        }
        config = dataclasses.replace(config, **overrides)

    controller = SimulationController(config)

    # Handle signals for graceful shutdown; run() saves on the way out
    def signal_handler(sig, frame):
        logger.info("Received shutdown signal")
        controller.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    controller.run()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_controller()
