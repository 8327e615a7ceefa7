"""
core/brain.py

The car's decision function.

Dense(9 -> 5, tanh) -> Dense(5 -> 2, tanh)
  Input  (9): sensor readings, 1 - distance / max_range
  Output (2): [rotation, acceleration], both in [-1, 1]

No gradients. The network only changes by being copied and jittered
between generations.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
import json
import logging

import numpy as np

from track_evolve.errors import ShapeMismatch

logger = logging.getLogger(__name__)

LAYER_SIZES: Tuple[int, ...] = (9, 5, 2)
MUTATION_SIGMA = 0.1


@dataclass
class PolicyParameters:
    """
    ``{shapes, values}`` record for a NeuralPolicy.

    shapes[i] is the dimension tuple of tensor i; values[i] is that tensor
    flattened in row-major order.
    """

    shapes: List[List[int]] = field(default_factory=list)
    values: List[List[float]] = field(default_factory=list)

    @classmethod
    def from_arrays(cls, arrays: Sequence[np.ndarray]) -> PolicyParameters:
        return cls(
            shapes=[list(a.shape) for a in arrays],
            values=[np.asarray(a, dtype=np.float64).ravel().tolist() for a in arrays],
        )

    def to_arrays(self) -> List[np.ndarray]:
        """Rebuild tensors; raises ShapeMismatch if a value list has the wrong length."""
        if len(self.shapes) != len(self.values):
            raise ShapeMismatch(
                f"{len(self.shapes)} shapes but {len(self.values)} value lists"
            )

        arrays = []
        for i, (shape, flat) in enumerate(zip(self.shapes, self.values)):
            expected = int(np.prod(shape)) if shape else 1
            if len(flat) != expected:
                raise ShapeMismatch(
                    f"Tensor {i}: shape {list(shape)} needs {expected} values, got {len(flat)}"
                )
            arrays.append(np.asarray(flat, dtype=np.float64).reshape(shape))
        return arrays

    def check_shapes(self, expected: Sequence[Tuple[int, ...]]) -> None:
        """Raise ShapeMismatch unless shapes equal ``expected`` exactly."""
        got = [tuple(s) for s in self.shapes]
        want = [tuple(s) for s in expected]
        if got != want:
            raise ShapeMismatch(f"Parameter shapes {got} do not match topology {want}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "shapes": [list(s) for s in self.shapes],
            "values": [list(v) for v in self.values],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PolicyParameters:
        if not isinstance(data, dict) or "shapes" not in data or "values" not in data:
            raise ShapeMismatch("Policy data needs 'shapes' and 'values'")
        return cls(
            shapes=[[int(d) for d in s] for s in data["shapes"]],
            values=[[float(v) for v in vals] for vals in data["values"]],
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, text: str) -> PolicyParameters:
        return cls.from_dict(json.loads(text))

    @property
    def parameter_count(self) -> int:
        return sum(len(v) for v in self.values)


def topology_shapes(layer_sizes: Sequence[int] = LAYER_SIZES) -> List[Tuple[int, ...]]:
    """Parameter shapes in storage order: kernel then bias, layer by layer."""
    shapes: List[Tuple[int, ...]] = []
    for fan_in, fan_out in zip(layer_sizes[:-1], layer_sizes[1:]):
        shapes.append((fan_in, fan_out))
        shapes.append((fan_out,))
    return shapes


class NeuralPolicy:
    """
    Fixed-topology feed-forward network.

    Parameters are owned numpy arrays; nothing is shared between two
    policies, so a clone can be mutated freely. Shapes are fixed at
    construction and every operation preserves them.
    """

    def __init__(
        self,
        parameters: Optional[Sequence[np.ndarray]] = None,
        rng: Optional[np.random.Generator] = None,
        layer_sizes: Sequence[int] = LAYER_SIZES,
    ):
        self.layer_sizes = tuple(layer_sizes)
        self.shapes = topology_shapes(self.layer_sizes)

        if parameters is None:
            self.parameters = self._glorot_init(rng or np.random.default_rng())
        else:
            arrays = [np.array(p, dtype=np.float64, copy=True) for p in parameters]
            got = [a.shape for a in arrays]
            if got != self.shapes:
                raise ShapeMismatch(f"Parameter shapes {got} do not match topology {self.shapes}")
            self.parameters = arrays

    # ==================== Construction ====================

    @classmethod
    def random(cls, rng: np.random.Generator, layer_sizes: Sequence[int] = LAYER_SIZES) -> NeuralPolicy:
        return cls(rng=rng, layer_sizes=layer_sizes)

    @classmethod
    def zeros(cls, layer_sizes: Sequence[int] = LAYER_SIZES) -> NeuralPolicy:
        """All weights and biases zero: outputs (0, 0) for any input."""
        return cls(parameters=[np.zeros(s) for s in topology_shapes(layer_sizes)], layer_sizes=layer_sizes)

    @classmethod
    def from_parameters(
        cls,
        data: Union[PolicyParameters, Dict[str, Any]],
        layer_sizes: Sequence[int] = LAYER_SIZES,
    ) -> NeuralPolicy:
        policy = cls.zeros(layer_sizes)
        policy.import_parameters(data)
        return policy

    def _glorot_init(self, rng: np.random.Generator) -> List[np.ndarray]:
        """Glorot-uniform kernels, zero biases."""
        params = []
        for shape in self.shapes:
            if len(shape) == 2:
                limit = np.sqrt(6.0 / (shape[0] + shape[1]))
                params.append(rng.uniform(-limit, limit, size=shape))
            else:
                params.append(np.zeros(shape))
        return params

    # ==================== Inference ====================

    def infer(self, inputs: Sequence[float]) -> Tuple[float, float]:
        """
        Forward pass: sensor readings -> (rotation, acceleration).

        Pure function of the current weights.
        """
        x = np.asarray(inputs, dtype=np.float64)
        if x.shape != (self.layer_sizes[0],):
            raise ValueError(
                f"Expected {self.layer_sizes[0]} inputs, got shape {x.shape}"
            )

        for i in range(0, len(self.parameters), 2):
            kernel, bias = self.parameters[i], self.parameters[i + 1]
            x = np.tanh(x @ kernel + bias)

        rotation, acceleration = float(x[0]), float(x[1])
        return rotation, acceleration

    # ==================== Evolution ====================

    def clone(self) -> NeuralPolicy:
        """Deep copy: same shapes, same values, no shared buffers."""
        return NeuralPolicy(parameters=self.parameters, layer_sizes=self.layer_sizes)

    def mutate(
        self,
        rate: float,
        rng: np.random.Generator,
        sigma: float = MUTATION_SIGMA,
    ) -> NeuralPolicy:
        """
        Gaussian point mutation, in place.

        Each weight and bias independently, with probability ``rate``,
        gets N(0, 1) * sigma added. Unselected values are left exactly as
        they were. Returns self for chaining.
        """
        if not 0.0 <= rate <= 1.0:
            raise ValueError(f"Mutation rate must be in [0, 1], got {rate}")

        mutated = []
        for param in self.parameters:
            selected = rng.random(param.shape) < rate
            noise = rng.standard_normal(param.shape) * sigma
            mutated.append(np.where(selected, param + noise, param))
        self.parameters = mutated
        return self

    # ==================== Persistence ====================

    def export_parameters(self) -> PolicyParameters:
        return PolicyParameters.from_arrays(self.parameters)

    def import_parameters(self, data: Union[PolicyParameters, Dict[str, Any]]) -> None:
        """
        Replace all weights from a ``{shapes, values}`` record.

        Shapes must match this topology exactly; on any mismatch
        ShapeMismatch is raised and the current weights are untouched.
        """
        if not isinstance(data, PolicyParameters):
            data = PolicyParameters.from_dict(data)

        data.check_shapes(self.shapes)
        self.parameters = data.to_arrays()
        logger.debug(f"Imported {data.parameter_count} parameters")

    # ==================== Utilities ====================

    @property
    def parameter_count(self) -> int:
        return sum(p.size for p in self.parameters)

    def flat(self) -> np.ndarray:
        """All parameters as one vector (copy)."""
        return np.concatenate([p.ravel() for p in self.parameters])

    def equals(self, other: NeuralPolicy) -> bool:
        """Exact parameter equality."""
        return self.shapes == other.shapes and all(
            np.array_equal(a, b) for a, b in zip(self.parameters, other.parameters)
        )

    def __repr__(self) -> str:
        arch = " -> ".join(str(n) for n in self.layer_sizes)
        return f"NeuralPolicy({arch}, params={self.parameter_count})"
