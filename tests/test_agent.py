"""
Tests for the CarAgent core component.

Every scenario is a short drive on a tiny hand-made track.
"""

import numpy as np
import pytest

from track_evolve.core.agent import AgentConfig, AgentState, AgentStatus, CarAgent
from track_evolve.core.brain import NeuralPolicy, topology_shapes
from track_evolve.environments.pathing import PathDistanceOracle
from track_evolve.environments.tile_map import TileMap, sample_track


def make_agent(tile_map, position, policy=None, **kwargs):
    return CarAgent(
        agent_id="test",
        position=position,
        policy=policy or NeuralPolicy.zeros(),
        tile_map=tile_map,
        oracle=PathDistanceOracle(tile_map),
        **kwargs,
    )


def full_throttle_policy():
    """Ignores the sensors: no steering, throttle tanh(10)."""
    params = [np.zeros(s) for s in topology_shapes()]
    params[3] = np.array([0.0, 10.0])
    return NeuralPolicy(parameters=params)


class TestAgentState:
    """Tests for AgentState dataclass."""

    def test_state_from_lists(self):
        """Position and velocity become float arrays."""
        state = AgentState(position=[1, 2], velocity=[0, 0])
        assert isinstance(state.position, np.ndarray)
        assert state.position.dtype == np.float64
        assert state.alive
        assert not state.finished

    def test_speed(self):
        """Speed is the velocity magnitude."""
        state = AgentState(position=[0.0, 0.0], velocity=[3.0, 4.0])
        assert state.speed == 5.0


class TestAgentConfig:
    """Tests for AgentConfig."""

    def test_default_config(self):
        """Defaults are the tuned constants."""
        config = AgentConfig()
        assert config.rotation_scale == 0.1
        assert config.thrust_scale == 0.3
        assert config.friction == 0.95
        assert config.idle_limit == 300
        assert config.finish_bonus == 2000.0
        assert config.collision_limit == 2
        assert config.death_factor == 0.7


class TestCarAgent:
    """Tests for construction and ownership."""

    def test_agent_creation(self):
        """A new car is alive at its spawn with full-range readings."""
        tm = sample_track()
        agent = make_agent(tm, tm.spawn_point())
        assert agent.id == "test"
        assert agent.alive
        assert agent.status == AgentStatus.ALIVE
        assert agent.score == 0.0
        np.testing.assert_array_equal(agent.readings, np.full(9, 200.0))
        assert agent.dist_to_finish == 26 * 40.0

    def test_policy_is_cloned(self):
        """The car owns a copy; the caller's policy can change freely."""
        tm = sample_track()
        rng = np.random.default_rng(42)
        policy = NeuralPolicy.random(rng)
        original = policy.clone()

        agent = make_agent(tm, tm.spawn_point(), policy=policy)
        policy.mutate(1.0, rng)

        assert agent.policy.equals(original)
        assert agent.policy is not policy

    def test_snapshot(self):
        """Snapshots carry position, flags, readings and score."""
        tm = sample_track()
        agent = make_agent(tm, tm.spawn_point())
        agent.update()
        snap = agent.snapshot()
        assert (snap.x, snap.y) == (100.0, 420.0)
        assert snap.alive
        assert not snap.finished
        assert len(snap.readings) == 9
        assert snap.score == agent.score


class TestCarAgentUpdate:
    """Tests for the per-tick step."""

    def test_zero_policy_stands_still(self):
        """No throttle, no movement, no score."""
        tm = sample_track()
        agent = make_agent(tm, tm.spawn_point())
        for _ in range(10):
            agent.update()

        np.testing.assert_array_equal(agent.state.position, [100.0, 420.0])
        assert agent.score == 0.0
        assert agent.idle_frames == 10
        assert agent.frames_alive == 10

    def test_idle_death_on_tick_301(self):
        """300 idle ticks are tolerated; the 301st kills with -100."""
        tm = sample_track()
        agent = make_agent(tm, tm.spawn_point())

        for _ in range(300):
            agent.update()
        assert agent.alive
        assert agent.score == 0.0

        agent.update()
        assert not agent.alive
        assert not agent.finished
        assert agent.score == -100.0
        assert agent.death_cause == "idle"
        assert agent.status == AgentStatus.DEAD

    def test_finish_gives_exact_bonus(self):
        """A stationary car on a finish tile scores exactly +2000 and stops."""
        tm = TileMap.from_rows(["3002"], cell_size=10)
        agent = make_agent(tm, (35.0, 5.0))
        agent.update()

        assert agent.finished
        assert not agent.alive
        assert agent.score == 2000.0
        assert agent.status == AgentStatus.FINISHED

    def test_three_collisions_kill(self):
        """Penalties grow with the count: -40, -80, -120; dead after the third."""
        tm = sample_track()
        agent = make_agent(tm, (20.0, 20.0))  # Corner wall tile

        agent.update()
        assert agent.score == -40.0
        agent.update()
        assert agent.score == -120.0
        assert agent.alive

        agent.update()
        assert agent.score == -240.0
        assert agent.collisions == 3
        assert not agent.alive
        assert agent.death_cause == "collision"

    def test_drive_to_finish(self):
        """Full throttle down a straight corridor reaches the finish."""
        tm = TileMap.from_rows(["3000000002"], cell_size=10)
        agent = make_agent(tm, tm.spawn_point(), policy=full_throttle_policy())

        for _ in range(200):
            if not agent.alive:
                break
            agent.update()

        assert agent.finished
        assert agent.collisions == 0
        assert agent.score > 2000.0
        assert agent.best_dist_to_finish == 0.0
        assert agent.state.position[1] == 5.0

    def test_distance_travelled_lags_one_tick(self):
        """Movement is counted at the start of the next tick."""
        tm = TileMap.from_rows(["3000000002"], cell_size=10)
        agent = make_agent(tm, tm.spawn_point(), policy=full_throttle_policy())

        agent.update()
        assert agent.distance_travelled == 0.0

        agent.update()
        assert agent.distance_travelled == pytest.approx(0.3 * 0.95)

    def test_progress_is_rewarded(self):
        """Getting closer along the road earns score beyond speed alone."""
        tm = TileMap.from_rows(["3000000002"], cell_size=10)
        agent = make_agent(tm, tm.spawn_point(), policy=full_throttle_policy())
        start = agent.dist_to_finish

        while agent.dist_to_finish == start:
            agent.update()

        assert agent.dist_to_finish < start
        assert agent.score >= (start - agent.dist_to_finish) * 0.3

    def test_stopped_car_ignores_updates(self):
        """Dead and finished cars do nothing."""
        tm = TileMap.from_rows(["3002"], cell_size=10)
        agent = make_agent(tm, (35.0, 5.0))
        agent.update()
        frames, score = agent.frames_alive, agent.score

        agent.update()
        assert agent.frames_alive == frames
        assert agent.score == score

    def test_kill(self):
        """kill() stops the car without touching the score."""
        tm = sample_track()
        agent = make_agent(tm, tm.spawn_point())
        agent.kill("test")
        assert not agent.alive
        assert agent.death_cause == "test"
        assert agent.score == 0.0


class TestFitness:
    """Tests for fitness()."""

    def test_alive_formula(self):
        """Score plus survival, average speed and proximity terms."""
        tm = TileMap.from_rows(["3002"], cell_size=10)
        agent = make_agent(tm, (5.0, 5.0))
        agent.score = 100.0
        agent.frames_alive = 10
        agent.accumulated_speed = 20.0

        # 100 + 10*0.1 + 2*50 + (1000 - 30)*0.2
        assert agent.fitness() == pytest.approx(395.0)

    def test_death_factor(self):
        """Dying without finishing scales the score by 0.7."""
        tm = TileMap.from_rows(["3002"], cell_size=10)
        agent = make_agent(tm, (5.0, 5.0))
        agent.score = 100.0
        agent.frames_alive = 10
        agent.accumulated_speed = 20.0
        agent.kill("test")

        assert agent.fitness() == pytest.approx(365.0)

    def test_finished_not_scaled(self):
        """A finisher keeps its whole score."""
        tm = TileMap.from_rows(["3002"], cell_size=10)
        agent = make_agent(tm, (35.0, 5.0))
        agent.update()

        # 2000 + 1*0.1 + 0 + 1000*0.2
        assert agent.fitness() == pytest.approx(2200.1)

    def test_never_negative(self):
        """Heavy penalties clamp to zero."""
        tm = sample_track()
        agent = make_agent(tm, (20.0, 20.0))
        for _ in range(3):
            agent.update()
        assert agent.score < 0
        assert agent.fitness() == 0.0

    def test_non_negative_for_random_drivers(self):
        """Whatever happens on the road, fitness is at least zero."""
        tm = sample_track()
        rng = np.random.default_rng(42)
        oracle = PathDistanceOracle(tm)

        for i in range(10):
            agent = CarAgent(f"car{i}", tm.spawn_point(), NeuralPolicy.random(rng), tm, oracle)
            for _ in range(100):
                agent.update()
            assert agent.fitness() >= 0.0
