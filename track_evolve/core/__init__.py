"""
Core components of a car.

- sensors: ray casts against the track
- brain: the NeuralPolicy and its parameter record
- agent: the CarAgent - physics, scoring, lifecycle
"""

from .sensors import SensorArray, SensorConfig
from .brain import NeuralPolicy, PolicyParameters, LAYER_SIZES
from .agent import CarAgent, AgentState, AgentConfig, AgentSnapshot, AgentStatus

__all__ = [
    "SensorArray",
    "SensorConfig",
    "NeuralPolicy",
    "PolicyParameters",
    "LAYER_SIZES",
    "CarAgent",
    "AgentState",
    "AgentConfig",
    "AgentSnapshot",
    "AgentStatus",
]
