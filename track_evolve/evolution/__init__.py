"""
track_evolve/evolution/

Generational selection over a population of cars.

- Spawn a population from the elites (fast)
- Let every car drive until the generation ends (slow, tick by tick)
- Rank by fitness, keep the top few (fast)

There is no crossover. Variation comes only from Gaussian point
mutation of cloned elite policies.
"""

from .algorithms import EngineSnapshot, EvolutionConfig, GeneticEngine
from .fitness import EvaluationResult, rank_by_fitness, select_elites, summarize

__all__ = [
    "EngineSnapshot",
    "EvolutionConfig",
    "GeneticEngine",
    "EvaluationResult",
    "rank_by_fitness",
    "select_elites",
    "summarize",
]
