"""
track_evolve/evolution/fitness.py

Ranking cars at the end of a generation.

Score is what a car earns while driving. Fitness is what we rank by:
the score, reshaped once the race is over (see CarAgent.fitness).
Selection only ever looks at fitness.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Sequence, Tuple
import numpy as np

if TYPE_CHECKING:
    from track_evolve.core.agent import CarAgent
    from track_evolve.core.brain import NeuralPolicy


@dataclass
class EvaluationResult:
    """
    How one car did.

    Built at generation end so the numbers survive the population
    being replaced.
    """

    agent_id: str
    fitness: float
    score: float
    finished: bool
    frames_alive: int
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_agent(cls, agent: CarAgent) -> EvaluationResult:
        return cls(
            agent_id=agent.id,
            fitness=agent.fitness(),
            score=agent.score,
            finished=agent.finished,
            frames_alive=agent.frames_alive,
            metadata={
                "collisions": agent.collisions,
                "distance_travelled": agent.distance_travelled,
                "best_dist_to_finish": agent.best_dist_to_finish,
                "death_cause": agent.death_cause,
            },
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "fitness": self.fitness,
            "score": self.score,
            "finished": self.finished,
            "frames_alive": self.frames_alive,
            "metadata": self.metadata,
        }


def rank_by_fitness(agents: Sequence[CarAgent]) -> List[Tuple[CarAgent, float]]:
    """
    Agents with their fitness, best first.

    Stable: equal fitness keeps population order. Fitness is computed
    once per agent.
    """
    scored = [(agent, agent.fitness()) for agent in agents]
    # sorted() is stable; negate instead of reverse=True to keep ties in order
    return sorted(scored, key=lambda pair: -pair[1])


def select_elites(ranked: Sequence[Tuple[CarAgent, float]], count: int) -> List[NeuralPolicy]:
    """Independent copies of the top ``count`` policies of a ranking, best first."""
    return [agent.policy.clone() for agent, _ in ranked[:count]]


def summarize(fitnesses: Sequence[float]) -> Dict[str, float]:
    """Population statistics for history records."""
    if len(fitnesses) == 0:
        return {
            "mean_fitness": 0.0,
            "max_fitness": 0.0,
            "min_fitness": 0.0,
            "std_fitness": 0.0,
        }

    values = np.asarray(fitnesses, dtype=np.float64)
    return {
        "mean_fitness": float(values.mean()),
        "max_fitness": float(values.max()),
        "min_fitness": float(values.min()),
        "std_fitness": float(values.std()),
    }
