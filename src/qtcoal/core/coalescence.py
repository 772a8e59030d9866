"""
Coalescence engine: post-order reduction of a tree into one weighted leaf.

Every internal node is processed by pairing its two (coalesced or raw)
children and merging them across their branches (the "twig" merge). Each
merge reports its log-likelihood term to the inference runtime and then
reaches a resampling checkpoint, which :meth:`CoalescenceEngine.iter_coalesce`
also exposes as a yielded :class:`Checkpoint` so that a particle filter can
advance many particles in lockstep.
"""

from dataclasses import dataclass
from typing import Generator

import numpy as np

from .errors import ConfigurationError, MessageDimensionError, TreeInvariantError
from .evolution import branch_length, evolve_branch
from .likelihood import node_log_likelihood
from .tree import (
    Node,
    NodeKind,
    Tree,
    WeightedLeaf,
    WeightedNode,
    label,
    leaves,
    node_kind,
    n_sites,
    representative_index,
)


@dataclass(frozen=True)
class Checkpoint:
    """
    Resampling checkpoint reached after one twig merge.

    Attributes
    ----------
    node : str
        Label of the merged node
    age : float
        Age of the merged node
    log_delta : float
        Log-likelihood term reported to the runtime
    log_weight : float
        Cumulative log-weight of the new coalesced node
    """

    node: str
    age: float
    log_delta: float
    log_weight: float


CoalesceSteps = Generator[Checkpoint, None, WeightedLeaf]


class CoalescenceEngine:
    """
    Reduce a tree to a single :class:`WeightedLeaf` for one particle.

    Parameters
    ----------
    dynamics : ModelDynamics
        Process parameters of the particle (read-only)
    runtime : InferenceRuntime
        Receives jump-count draws, weight adjustments and checkpoints

    Examples
    --------
    >>> engine = CoalescenceEngine(dynamics, ParticleRuntime(seed=1))
    >>> root = engine.coalesce(tree)
    >>> root.log_weight  # total log-likelihood of this draw
    """

    def __init__(self, dynamics, runtime):
        self.dynamics = dynamics
        self.runtime = runtime

    def coalesce(self, tree: Tree) -> WeightedLeaf:
        """Coalesce the whole tree and return the root summary."""
        steps = self.iter_coalesce(tree)
        while True:
            try:
                next(steps)
            except StopIteration as stop:
                return stop.value

    def iter_coalesce(self, tree: Tree) -> CoalesceSteps:
        """
        Coalesce the tree one merge at a time.

        Yields
        ------
        Checkpoint
            After every twig merge

        Returns
        -------
        WeightedLeaf
            Root summary (as the generator's return value)
        """
        if node_kind(tree) != NodeKind.NODE:
            return self._zero_likelihood(tree)
        return (yield from self._coalesce_node(tree))

    def _coalesce_node(self, node: Node) -> CoalesceSteps:
        left_kind = node_kind(node.left)
        right_kind = node_kind(node.right)

        if left_kind == NodeKind.LEAF and right_kind == NodeKind.LEAF:
            pair = WeightedNode(node.left, node.right, node.age, 0.0)
        elif left_kind == NodeKind.NODE and right_kind == NodeKind.LEAF:
            left = yield from self._coalesce_node(node.left)
            pair = WeightedNode(left, node.right, node.age, left.log_weight)
        elif left_kind == NodeKind.LEAF and right_kind == NodeKind.NODE:
            right = yield from self._coalesce_node(node.right)
            pair = WeightedNode(node.left, right, node.age, right.log_weight)
        elif left_kind == NodeKind.NODE and right_kind == NodeKind.NODE:
            left = yield from self._coalesce_node(node.left)
            right = yield from self._coalesce_node(node.right)
            pair = WeightedNode(left, right, node.age, left.log_weight + right.log_weight)
        else:
            return self._zero_likelihood(node)

        return (yield from self.merge_twig(pair))

    def merge_twig(self, pair: WeightedNode) -> CoalesceSteps:
        """
        Merge the two children of a pairing node across their branches.

        Both children are evolved up to the pairing node's age, their
        messages are multiplied element-wise, and the log-likelihood of the
        merged messages is added to the baseline carried by ``pair``.

        Raises
        ------
        ConfigurationError
            On a negative branch length or a message of the wrong dimension,
            with the offending node named in the message
        """
        where = label(pair)
        try:
            left_sites, left_char = self._evolve_child(pair, pair.left)
            right_sites, right_char = self._evolve_child(pair, pair.right)
            if left_sites.shape != right_sites.shape:
                raise MessageDimensionError(
                    f"Children carry {left_sites.shape} and {right_sites.shape} site messages"
                )
            if left_char.shape != right_char.shape:
                raise MessageDimensionError(
                    f"Children carry character messages of shape "
                    f"{left_char.shape} and {right_char.shape}"
                )
        except ConfigurationError as e:
            raise type(e)(f"At node {where}: {e}") from e

        merged_sites = left_sites * right_sites
        merged_char = left_char * right_char

        term = node_log_likelihood(merged_sites, merged_char)
        log_weight = term + pair.log_weight

        self.runtime.adjust_weight(term)
        self.runtime.resampling_checkpoint()

        merged = WeightedLeaf(
            site_messages=merged_sites,
            character_message=merged_char,
            age=pair.age,
            log_weight=log_weight,
            index=representative_index(pair),
        )
        yield Checkpoint(node=where, age=pair.age, log_delta=term, log_weight=log_weight)
        return merged

    def initial_messages(self, child) -> tuple[np.ndarray, np.ndarray]:
        """
        Messages a child carries before evolving across its branch.

        A raw leaf contributes one-hot molecular vectors (all ones for
        missing data) and the emission vector of its character state; a
        coalesced child contributes its stored messages.
        """
        kind = node_kind(child)
        if kind == NodeKind.WEIGHTED_LEAF:
            return child.site_messages, child.character_message
        if kind != NodeKind.LEAF:
            raise TreeInvariantError(f"Cannot read messages from {kind.value} {label(child)}")

        n_states = self.dynamics.n_molecular_states
        sequence = np.asarray(child.sequence, dtype=int)
        if np.any(sequence >= n_states):
            raise MessageDimensionError(
                f"Leaf {child.index} has molecular states outside 0..{n_states - 1}"
            )
        sites = np.zeros((len(sequence), n_states))
        observed = sequence >= 0
        sites[np.flatnonzero(observed), sequence[observed]] = 1.0
        sites[~observed] = 1.0
        return sites, np.asarray(self.dynamics.emission(child.character_state), dtype=float)

    def _evolve_child(self, pair: WeightedNode, child) -> tuple[np.ndarray, np.ndarray]:
        t = branch_length(pair.age, child.age, label(child))
        sites, char = self.initial_messages(child)
        return evolve_branch(sites, char, self.dynamics, t, self.runtime)

    def _zero_likelihood(self, tree: Tree) -> WeightedLeaf:
        # Unexpected shape: kill the particle instead of aborting the run
        self.runtime.adjust_weight(-np.inf)
        return WeightedLeaf(
            site_messages=np.zeros((n_sites(tree), self.dynamics.n_molecular_states)),
            character_message=np.zeros(self.dynamics.n_character_states),
            age=tree.age,
            log_weight=-np.inf,
            index=representative_index(tree),
        )


def validate_tree(tree: Tree, n_observed_states: int) -> None:
    """
    Pre-flight check of a raw tree, run before any particle starts.

    Parameters
    ----------
    tree : Node
        Root of a tree made of :class:`Node` and :class:`Leaf` values only
    n_observed_states : int
        Number of rows in the emission table

    Raises
    ------
    TreeInvariantError
        If the root is not an internal node, a weighted value appears, ages
        are out of order, or sequence lengths differ
    MessageDimensionError
        If a molecular state falls outside 0..3
    ConfigurationError
        If a character state has no emission vector
    """
    if node_kind(tree) != NodeKind.NODE:
        raise TreeInvariantError(f"Tree root must be an internal node, got {label(tree)}")

    def check(node) -> None:
        kind = node_kind(node)
        if kind == NodeKind.LEAF:
            return
        if kind != NodeKind.NODE:
            raise TreeInvariantError(
                f"Unexpected {kind.value} {label(node)} in a raw tree"
            )
        for child in (node.left, node.right):
            if not child.age < node.age:
                raise TreeInvariantError(
                    f"Node {label(node)} (age {node.age}) is not older than "
                    f"child {label(child)} (age {child.age})"
                )
            check(child)

    check(tree)

    tips = leaves(tree)
    lengths = {len(leaf.sequence) for leaf in tips}
    if len(lengths) > 1:
        raise TreeInvariantError(f"Leaves have different sequence lengths: {sorted(lengths)}")
    for leaf in tips:
        if np.any(np.asarray(leaf.sequence) >= 4):
            raise MessageDimensionError(f"Leaf {leaf.index} has molecular states outside 0..3")
        if not 0 <= leaf.character_state < n_observed_states:
            raise ConfigurationError(
                f"Leaf {leaf.index} has character state {leaf.character_state}, "
                f"outside the emission table (0..{n_observed_states - 1})"
            )
