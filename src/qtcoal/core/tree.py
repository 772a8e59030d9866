"""
Typed tree representation for likelihood-weighted coalescence.

A tree is one of four immutable variants:

- :class:`Leaf`: an observed tip (raw data)
- :class:`Node`: an internal node that has not been processed yet
- :class:`WeightedNode`: a pairing of two children handed to the twig merge
- :class:`WeightedLeaf`: a coalesced subtree carrying evolved messages

Coalescence never mutates a value; it builds new ones as it walks upward.
Ages are measured backwards in time (root has the largest age).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Union

import numpy as np

from .errors import TreeInvariantError


class NodeKind(str, Enum):
    """Variant tag returned by :func:`node_kind`."""
    LEAF = "leaf"
    NODE = "node"
    WEIGHTED_LEAF = "weighted_leaf"
    WEIGHTED_NODE = "weighted_node"


@dataclass(frozen=True, eq=False)
class Leaf:
    """
    Observed tip.

    Attributes
    ----------
    index : int
        External identity (row of the alignment)
    character_state : int
        Observed discrete character state
    sequence : ndarray, shape (n_sites,)
        Molecular states (0-3); negative values mark missing data
    age : float
        Sampling time before present
    """

    index: int
    character_state: int
    sequence: np.ndarray
    age: float = 0.0

    def __post_init__(self):
        if not np.isfinite(self.age):
            raise TreeInvariantError(f"Leaf {self.index} has non-finite age {self.age}")


@dataclass(frozen=True, eq=False)
class Node:
    """
    Unprocessed internal node.

    Attributes
    ----------
    left, right : Leaf or Node
        Child subtrees
    age : float
        Node age, strictly greater than both children's ages
    """

    left: "RawTree"
    right: "RawTree"
    age: float

    def __post_init__(self):
        _check_child_ages(self, self.left, self.right)


@dataclass(frozen=True, eq=False)
class WeightedLeaf:
    """
    Result of coalescing a subtree, a synthetic tip.

    Attributes
    ----------
    site_messages : ndarray, shape (n_sites, n_molecular_states)
        One likelihood row vector per site
    character_message : ndarray, shape (n_character_states,)
        Likelihood row vector for the character trait
    age : float
        Age of the node this summary replaces
    log_weight : float
        Cumulative log-weight of everything coalesced beneath (may be -inf)
    index : int
        Representative tip index (smallest leaf index beneath)
    """

    site_messages: np.ndarray
    character_message: np.ndarray
    age: float
    log_weight: float
    index: int = -1

    def __post_init__(self):
        if not np.isfinite(self.age):
            raise TreeInvariantError(f"Coalesced node w{self.index} has non-finite age {self.age}")


@dataclass(frozen=True, eq=False)
class WeightedNode:
    """
    Pairing node whose children are ready to be merged.

    Children are raw leaves or coalesced summaries; ``log_weight`` is the
    baseline, i.e. the sum of the children's pre-merge log-weights.
    """

    left: "PairedTree"
    right: "PairedTree"
    age: float
    log_weight: float = 0.0

    def __post_init__(self):
        _check_child_ages(self, self.left, self.right)


RawTree = Union[Leaf, Node]
PairedTree = Union[Leaf, WeightedLeaf]
Tree = Union[Leaf, Node, WeightedLeaf, WeightedNode]

_KINDS = {
    Leaf: NodeKind.LEAF,
    Node: NodeKind.NODE,
    WeightedLeaf: NodeKind.WEIGHTED_LEAF,
    WeightedNode: NodeKind.WEIGHTED_NODE,
}


def node_kind(tree: Tree) -> NodeKind:
    """Classify a tree value into one of the four variants."""
    try:
        return _KINDS[type(tree)]
    except KeyError:
        raise TypeError(f"Not a tree value: {tree!r}") from None


def representative_index(tree: Tree) -> int:
    """Smallest tip index beneath ``tree`` (the index a coalesced node carries)."""
    kind = node_kind(tree)
    if kind in (NodeKind.LEAF, NodeKind.WEIGHTED_LEAF):
        return tree.index
    return min(representative_index(tree.left), representative_index(tree.right))


def label(tree: Tree) -> str:
    """
    Short human-readable label, for diagnostics only.

    Examples
    --------
    >>> a = Leaf(0, 0, np.array([0]))
    >>> b = Leaf(1, 0, np.array([0]))
    >>> label(Node(a, b, 1.0))
    '(0,1)'
    """
    kind = node_kind(tree)
    if kind == NodeKind.LEAF:
        return str(tree.index)
    if kind == NodeKind.NODE:
        return f"({label(tree.left)},{label(tree.right)})"
    return f"w{representative_index(tree)}"


def leaves(tree: Tree) -> list[Leaf]:
    """Raw leaves beneath ``tree``, left to right."""
    kind = node_kind(tree)
    if kind == NodeKind.LEAF:
        return [tree]
    if kind == NodeKind.WEIGHTED_LEAF:
        return []
    return leaves(tree.left) + leaves(tree.right)


def n_sites(tree: Tree) -> int:
    """Number of sites carried by the first tip (raw or coalesced) beneath ``tree``."""
    kind = node_kind(tree)
    if kind == NodeKind.LEAF:
        return len(tree.sequence)
    if kind == NodeKind.WEIGHTED_LEAF:
        return len(tree.site_messages)
    return n_sites(tree.left)


def _check_child_ages(parent, left, right) -> None:
    if not np.isfinite(parent.age):
        raise TreeInvariantError(f"Node {label(parent)} has non-finite age {parent.age}")
    for child in (left, right):
        if not child.age < parent.age:
            raise TreeInvariantError(
                f"Node {label(parent)} (age {parent.age}) is not older than "
                f"child {label(child)} (age {child.age})"
            )
