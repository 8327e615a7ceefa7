"""
Tests for track_evolve/core/brain.py

The brain never learns. It is copied, jittered, and judged.
"""

import numpy as np
import pytest

from track_evolve.core.brain import (
    LAYER_SIZES,
    NeuralPolicy,
    PolicyParameters,
    topology_shapes,
)
from track_evolve.errors import ShapeMismatch


class TestTopology:
    """Tests for the fixed network layout."""

    def test_shapes(self):
        """Kernel then bias, layer by layer."""
        assert LAYER_SIZES == (9, 5, 2)
        assert topology_shapes() == [(9, 5), (5,), (5, 2), (2,)]

    def test_parameter_count(self):
        """9*5 + 5 + 5*2 + 2 parameters."""
        assert NeuralPolicy.zeros().parameter_count == 62


class TestNeuralPolicyInference:
    """Tests for infer()."""

    def test_outputs_bounded(self):
        """Both outputs are tanh-bounded."""
        rng = np.random.default_rng(42)
        policy = NeuralPolicy.random(rng)
        for _ in range(20):
            rotation, acceleration = policy.infer(rng.random(9))
            assert -1.0 <= rotation <= 1.0
            assert -1.0 <= acceleration <= 1.0

    def test_returns_plain_floats(self):
        """Outputs are a tuple of two Python floats."""
        out = NeuralPolicy.random(np.random.default_rng(0)).infer(np.ones(9))
        assert isinstance(out, tuple)
        assert len(out) == 2
        assert all(isinstance(v, float) for v in out)

    def test_pure(self):
        """Same inputs, same outputs: no state between calls."""
        policy = NeuralPolicy.random(np.random.default_rng(1))
        inputs = np.linspace(0, 1, 9)
        assert policy.infer(inputs) == policy.infer(inputs)

    def test_zero_policy_outputs_zero(self):
        """All-zero weights give (0, 0)."""
        assert NeuralPolicy.zeros().infer(np.ones(9)) == (0.0, 0.0)

    def test_wrong_input_size(self):
        """Exactly nine inputs are required."""
        with pytest.raises(ValueError):
            NeuralPolicy.zeros().infer(np.ones(8))

    def test_bias_only_policy(self):
        """With zero kernels the output is tanh of the output bias."""
        params = [np.zeros(s) for s in topology_shapes()]
        params[3] = np.array([0.5, -2.0])
        policy = NeuralPolicy(parameters=params)
        rotation, acceleration = policy.infer(np.ones(9))
        assert rotation == pytest.approx(np.tanh(0.5))
        assert acceleration == pytest.approx(np.tanh(-2.0))


class TestNeuralPolicyConstruction:
    """Tests for creating policies."""

    def test_seeded_random_is_reproducible(self):
        """Same seed, same weights."""
        a = NeuralPolicy.random(np.random.default_rng(42))
        b = NeuralPolicy.random(np.random.default_rng(42))
        assert a.equals(b)

    def test_glorot_bounds(self):
        """Kernels lie within the Glorot limit; biases start at zero."""
        policy = NeuralPolicy.random(np.random.default_rng(7))
        limit = np.sqrt(6.0 / (9 + 5))
        assert np.all(np.abs(policy.parameters[0]) <= limit)
        np.testing.assert_array_equal(policy.parameters[1], np.zeros(5))

    def test_wrong_parameter_shapes(self):
        """Parameters must match the topology."""
        with pytest.raises(ShapeMismatch):
            NeuralPolicy(parameters=[np.zeros((9, 5)), np.zeros(5)])

    def test_constructor_copies_parameters(self):
        """Arrays passed in are not aliased."""
        params = [np.zeros(s) for s in topology_shapes()]
        policy = NeuralPolicy(parameters=params)
        params[0][0, 0] = 99.0
        assert policy.parameters[0][0, 0] == 0.0


class TestNeuralPolicyEvolution:
    """Tests for clone() and mutate()."""

    def test_clone_equal(self):
        """A clone has identical shapes and values."""
        policy = NeuralPolicy.random(np.random.default_rng(42))
        clone = policy.clone()
        assert clone.equals(policy)
        assert clone is not policy

    def test_clone_independent(self):
        """Mutating a clone never touches the original."""
        rng = np.random.default_rng(42)
        policy = NeuralPolicy.random(rng)
        before = policy.flat()

        clone = policy.clone()
        clone.mutate(1.0, rng)

        np.testing.assert_array_equal(policy.flat(), before)
        assert not clone.equals(policy)

    def test_rate_zero_changes_nothing(self):
        """Nothing is selected at rate 0."""
        rng = np.random.default_rng(42)
        policy = NeuralPolicy.random(rng)
        before = policy.flat()
        policy.mutate(0.0, rng)
        np.testing.assert_array_equal(policy.flat(), before)

    def test_rate_one_changes_everything(self):
        """Every value is perturbed at rate 1."""
        rng = np.random.default_rng(42)
        policy = NeuralPolicy.zeros()
        policy.mutate(1.0, rng)
        assert np.all(policy.flat() != 0.0)

    def test_seeded_mutation_reproducible(self):
        """Same seed, same perturbations."""
        a = NeuralPolicy.zeros().mutate(1.0, np.random.default_rng(9))
        b = NeuralPolicy.zeros().mutate(1.0, np.random.default_rng(9))
        assert a.equals(b)

    def test_mutation_is_small(self):
        """Perturbations have standard deviation 0.1."""
        rng = np.random.default_rng(42)
        deltas = []
        for _ in range(50):
            policy = NeuralPolicy.zeros()
            policy.mutate(1.0, rng)
            deltas.append(policy.flat())
        std = np.concatenate(deltas).std()
        assert 0.08 < std < 0.12

    def test_mutation_preserves_shapes(self):
        """Shapes survive mutation."""
        rng = np.random.default_rng(42)
        policy = NeuralPolicy.random(rng).mutate(0.5, rng)
        assert [p.shape for p in policy.parameters] == topology_shapes()

    def test_mutate_returns_self(self):
        """mutate() is in place and chainable."""
        rng = np.random.default_rng(42)
        policy = NeuralPolicy.zeros()
        assert policy.mutate(0.1, rng) is policy

    def test_invalid_rate(self):
        """Rates outside [0, 1] are rejected."""
        rng = np.random.default_rng(42)
        with pytest.raises(ValueError):
            NeuralPolicy.zeros().mutate(1.5, rng)
        with pytest.raises(ValueError):
            NeuralPolicy.zeros().mutate(-0.1, rng)


class TestPolicyParameters:
    """Tests for export and import."""

    def test_round_trip_exact(self):
        """import(export(p)) reproduces p exactly."""
        policy = NeuralPolicy.random(np.random.default_rng(42))
        restored = NeuralPolicy.from_parameters(policy.export_parameters())
        assert restored.equals(policy)

    def test_json_round_trip(self):
        """The JSON form carries the same record."""
        policy = NeuralPolicy.random(np.random.default_rng(3))
        text = policy.export_parameters().to_json()
        restored = NeuralPolicy.from_parameters(PolicyParameters.from_json(text))
        assert restored.equals(policy)

    def test_export_layout(self):
        """Shapes and flat values, row-major."""
        data = NeuralPolicy.zeros().export_parameters().to_dict()
        assert data["shapes"] == [[9, 5], [5], [5, 2], [2]]
        assert [len(v) for v in data["values"]] == [45, 5, 10, 2]

    def test_import_from_dict(self):
        """Plain dicts are accepted."""
        source = NeuralPolicy.random(np.random.default_rng(5))
        target = NeuralPolicy.zeros()
        target.import_parameters(source.export_parameters().to_dict())
        assert target.equals(source)

    def test_import_wrong_shapes_leaves_policy_untouched(self):
        """A shape mismatch fails before anything changes."""
        policy = NeuralPolicy.random(np.random.default_rng(42))
        before = policy.flat()

        bad = PolicyParameters(
            shapes=[[4, 5], [5], [5, 2], [2]],
            values=[[0.0] * 20, [0.0] * 5, [0.0] * 10, [0.0] * 2],
        )
        with pytest.raises(ShapeMismatch):
            policy.import_parameters(bad)

        np.testing.assert_array_equal(policy.flat(), before)

    def test_import_wrong_value_count(self):
        """Value lists must fill their shapes."""
        data = NeuralPolicy.zeros().export_parameters().to_dict()
        data["values"][0] = data["values"][0][:-1]
        with pytest.raises(ShapeMismatch):
            NeuralPolicy.from_parameters(data)

    def test_missing_keys(self):
        """Records need both shapes and values."""
        with pytest.raises(ShapeMismatch):
            PolicyParameters.from_dict({"shapes": []})

    def test_shape_mismatch_is_value_error(self):
        """Callers can catch it as a ValueError."""
        with pytest.raises(ValueError):
            NeuralPolicy.from_parameters({"shapes": [[1]], "values": [[0.0]]})
