"""
track_evolve/services/

Everything around the engine that is not the simulation itself.

Architecture:
- Controller: owns the engine, drives the tick loop, exposes control operations
- Persistence: keyed policy records in a JSON file

The controller calls engine.step() at the chosen tick rate and talks to
the store on save and load. The engine never touches the filesystem.
"""

from .persistence import DEFAULT_POLICY_KEY, PersistenceConfig, PolicyStore
from .controller import ControllerConfig, SimulationController, run_controller

__all__ = [
    "DEFAULT_POLICY_KEY",
    "PersistenceConfig",
    "PolicyStore",
    "ControllerConfig",
    "SimulationController",
    "run_controller",
]
