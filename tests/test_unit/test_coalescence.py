"""
Unit tests for the coalescence engine.
"""

import numpy as np
import pytest
from scipy.linalg import expm

from qtcoal.core.coalescence import Checkpoint, CoalescenceEngine, validate_tree
from qtcoal.core.errors import (
    ConfigurationError,
    MessageDimensionError,
    ModelConfigurationError,
    TreeInvariantError,
)
from qtcoal.core.tree import Leaf, Node, WeightedLeaf
from qtcoal.inference.runtime import ParticleRuntime


def _leaf(index, sequence, character_state=0, age=0.0):
    return Leaf(
        index=index,
        character_state=character_state,
        sequence=np.array(sequence),
        age=age,
    )


class TestTwoLeafScenarios:
    """Coalescence of a single pair of leaves."""

    def test_identical_leaves_zero_dynamics(self, zero_dynamics, recording_runtime, two_leaf_tree):
        """Matching states with no evolution give probability one."""
        root = CoalescenceEngine(zero_dynamics, recording_runtime).coalesce(two_leaf_tree)

        assert recording_runtime.deltas == [0.0]
        assert root.log_weight == 0.0
        np.testing.assert_allclose(root.site_messages, [[1.0, 0.0, 0.0, 0.0]])
        np.testing.assert_allclose(root.character_message, [1.0, 0.0])

    def test_different_leaves_zero_dynamics(self, zero_dynamics, recording_runtime):
        """Mismatched states cannot be explained without evolution."""
        tree = Node(_leaf(0, [0]), _leaf(1, [1]), 1.0)

        root = CoalescenceEngine(zero_dynamics, recording_runtime).coalesce(tree)

        assert recording_runtime.deltas == [-np.inf]
        assert root.log_weight == -np.inf
        assert recording_runtime.n_checkpoints == 1

    def test_mismatched_character_zero_dynamics(self, zero_dynamics, recording_runtime):
        tree = Node(_leaf(0, [2], character_state=0), _leaf(1, [2], character_state=1), 1.0)
        root = CoalescenceEngine(zero_dynamics, recording_runtime).coalesce(tree)
        assert root.log_weight == -np.inf

    def test_missing_data_is_uninformative(self, zero_dynamics, recording_runtime):
        """A missing site is compatible with any state."""
        tree = Node(_leaf(0, [0, -1]), _leaf(1, [0, 3]), 1.0)
        root = CoalescenceEngine(zero_dynamics, recording_runtime).coalesce(tree)
        assert root.log_weight == 0.0

    def test_jc_pair_matches_transition_probabilities(self, jc_dynamics, recording_runtime):
        """The merge term equals log sum_x P(t)[a, x] P(t)[b, x]."""
        tree = Node(_leaf(0, [0, 1]), _leaf(1, [0, 2], character_state=1), 0.7)
        P = expm(jc_dynamics.molecular_generator * 0.7)
        Pc = expm(jc_dynamics.character_generator * 0.7)
        expected = (
            np.log(np.sum(P[0] * P[0]))
            + np.log(np.sum(P[1] * P[2]))
            + np.log(np.sum(Pc[0] * Pc[1]))
        )

        root = CoalescenceEngine(jc_dynamics, recording_runtime).coalesce(tree)

        np.testing.assert_allclose(root.log_weight, expected)
        np.testing.assert_allclose(recording_runtime.deltas, [expected])


class TestFourLeafTree:
    """Coalescence of a balanced four-leaf tree."""

    def test_root_weight_is_sum_of_terms(self, jc_dynamics, recording_runtime, balanced_tree):
        """The root log-weight accumulates every merge term exactly once."""
        root = CoalescenceEngine(jc_dynamics, recording_runtime).coalesce(balanced_tree)

        assert len(recording_runtime.deltas) == 3
        np.testing.assert_allclose(root.log_weight, sum(recording_runtime.deltas))
        assert np.isfinite(root.log_weight)

    def test_first_term(self, jc_dynamics, recording_runtime, balanced_tree):
        """The first merge is the left cherry at age 1."""
        CoalescenceEngine(jc_dynamics, recording_runtime).coalesce(balanced_tree)

        P = expm(jc_dynamics.molecular_generator * 1.0)
        Pc = expm(jc_dynamics.character_generator * 1.0)
        expected = (
            np.log(np.sum(P[0] * P[0]))
            + np.log(np.sum(P[1] * P[1]))
            + np.log(np.sum(P[2] * P[3]))
            + np.log(np.sum(Pc[0] * Pc[0]))
        )
        np.testing.assert_allclose(recording_runtime.deltas[0], expected)

    def test_adjust_before_checkpoint(self, jc_dynamics, recording_runtime, balanced_tree):
        """Each merge adjusts the weight and then reaches a checkpoint."""
        CoalescenceEngine(jc_dynamics, recording_runtime).coalesce(balanced_tree)
        assert recording_runtime.events == ["adjust", "checkpoint"] * 3

    def test_root_site_count(self, jc_dynamics, recording_runtime, balanced_tree):
        root = CoalescenceEngine(jc_dynamics, recording_runtime).coalesce(balanced_tree)
        assert root.site_messages.shape == (3, 4)
        assert root.character_message.shape == (2,)
        assert root.age == 2.0
        assert root.index == 0

    def test_checkpoints_are_yielded(self, jc_dynamics, recording_runtime, balanced_tree):
        engine = CoalescenceEngine(jc_dynamics, recording_runtime)
        checkpoints = list(engine.iter_coalesce(balanced_tree))

        assert all(isinstance(c, Checkpoint) for c in checkpoints)
        assert [c.node for c in checkpoints] == ["w0", "w2", "w0"]
        assert [c.age for c in checkpoints] == [1.0, 0.5, 2.0]
        np.testing.assert_allclose(
            [c.log_delta for c in checkpoints], recording_runtime.deltas
        )

    def test_children_order_does_not_matter(self, jc_dynamics, balanced_tree):
        """Swapping children at every node leaves the root weight unchanged."""
        def swap(node):
            if isinstance(node, Leaf):
                return node
            return Node(swap(node.right), swap(node.left), node.age)

        original = CoalescenceEngine(jc_dynamics, ParticleRuntime()).coalesce(balanced_tree)
        swapped = CoalescenceEngine(jc_dynamics, ParticleRuntime()).coalesce(swap(balanced_tree))

        np.testing.assert_allclose(swapped.log_weight, original.log_weight)
        np.testing.assert_allclose(swapped.site_messages, original.site_messages)

    def test_caterpillar_tree(self, jc_dynamics, recording_runtime):
        """Node/Leaf and Leaf/Node pairings both recurse into the node."""
        inner = Node(_leaf(0, [0]), _leaf(1, [1]), 0.5)
        left_heavy = Node(inner, _leaf(2, [2]), 1.0)
        right_heavy = Node(_leaf(3, [3]), left_heavy, 1.5)

        root = CoalescenceEngine(jc_dynamics, recording_runtime).coalesce(right_heavy)

        assert len(recording_runtime.deltas) == 3
        np.testing.assert_allclose(root.log_weight, sum(recording_runtime.deltas))
        assert root.index == 0

    def test_jumps_draw_through_runtime(self, jump_dynamics, balanced_tree):
        runtime = ParticleRuntime(seed=3)
        root = CoalescenceEngine(jump_dynamics, runtime).coalesce(balanced_tree)

        # one draw per branch, six branches
        assert len(runtime.trace) == 6
        np.testing.assert_allclose(runtime.log_weight, root.log_weight)
        assert runtime.n_checkpoints == 3


class TestMalformedTrees:
    """Unexpected shapes give zero likelihood instead of raising."""

    def test_weighted_child_in_raw_tree(self, jc_dynamics, recording_runtime):
        summary = WeightedLeaf(np.ones((1, 4)), np.ones(2), age=0.2, log_weight=0.0, index=4)
        tree = Node(summary, _leaf(1, [0]), 1.0)

        root = CoalescenceEngine(jc_dynamics, recording_runtime).coalesce(tree)

        assert root.log_weight == -np.inf
        assert recording_runtime.deltas == [-np.inf]
        assert recording_runtime.n_checkpoints == 0
        np.testing.assert_array_equal(root.site_messages, np.zeros((1, 4)))

    def test_leaf_root(self, jc_dynamics, recording_runtime):
        root = CoalescenceEngine(jc_dynamics, recording_runtime).coalesce(_leaf(0, [0, 1]))
        assert root.log_weight == -np.inf
        assert root.site_messages.shape == (2, 4)

    def test_malformed_subtree_poisons_root(self, jc_dynamics, recording_runtime):
        summary = WeightedLeaf(np.ones((1, 4)), np.ones(2), age=0.2, log_weight=0.0, index=4)
        bad = Node(summary, _leaf(1, [0]), 1.0)
        good = Node(_leaf(2, [0]), _leaf(3, [0]), 0.5)

        root = CoalescenceEngine(jc_dynamics, recording_runtime).coalesce(Node(bad, good, 2.0))

        assert root.log_weight == -np.inf


class TestConfigurationErrors:
    """Configuration errors name the node being merged."""

    def test_bad_molecular_state(self, jc_dynamics, recording_runtime):
        tree = Node(_leaf(0, [5]), _leaf(1, [0]), 1.0)
        with pytest.raises(MessageDimensionError, match="At node w0"):
            CoalescenceEngine(jc_dynamics, recording_runtime).coalesce(tree)

    def test_character_state_without_emission(self, jc_dynamics, recording_runtime):
        tree = Node(_leaf(0, [0]), _leaf(7, [0], character_state=4), 1.0)
        with pytest.raises(ModelConfigurationError, match="At node w0"):
            CoalescenceEngine(jc_dynamics, recording_runtime).coalesce(tree)

    def test_errors_are_value_errors(self):
        assert issubclass(ConfigurationError, ValueError)
        assert issubclass(TreeInvariantError, ConfigurationError)


class TestValidateTree:
    """Test the pre-flight tree check."""

    def test_valid_tree(self, balanced_tree):
        validate_tree(balanced_tree, 2)

    def test_leaf_root(self):
        with pytest.raises(TreeInvariantError, match="internal node"):
            validate_tree(_leaf(0, [0]), 2)

    def test_weighted_value(self):
        summary = WeightedLeaf(np.ones((1, 4)), np.ones(2), age=0.2, log_weight=0.0, index=4)
        with pytest.raises(TreeInvariantError, match="weighted_leaf"):
            validate_tree(Node(summary, _leaf(1, [0]), 1.0), 2)

    def test_unequal_sequence_lengths(self):
        tree = Node(_leaf(0, [0, 1]), _leaf(1, [0]), 1.0)
        with pytest.raises(TreeInvariantError, match="different sequence lengths"):
            validate_tree(tree, 2)

    def test_molecular_state_out_of_range(self):
        tree = Node(_leaf(0, [4]), _leaf(1, [0]), 1.0)
        with pytest.raises(MessageDimensionError):
            validate_tree(tree, 2)

    def test_character_state_out_of_range(self):
        tree = Node(_leaf(0, [0], character_state=2), _leaf(1, [0]), 1.0)
        with pytest.raises(ConfigurationError, match="emission table"):
            validate_tree(tree, 2)
