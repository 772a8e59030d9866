"""
Core algorithms for likelihood-weighted tree coalescence.

This module provides the low-level building blocks:

- **Tree model**: the four immutable tree variants
- **Branch evolution**: matrix exponential diffusion plus compound jumps
- **Likelihood aggregation**: log-likelihood of evolved messages
- **Coalescence engine**: post-order merge of a tree into one weighted leaf

The high-level API (:mod:`qtcoal.api`) provides easier access.
"""

from qtcoal.core.coalescence import Checkpoint, CoalescenceEngine, validate_tree
from qtcoal.core.errors import (
    BranchLengthError,
    ConfigurationError,
    MessageDimensionError,
    ModelConfigurationError,
    TreeInvariantError,
)
from qtcoal.core.likelihood import message_log_likelihood, node_log_likelihood
from qtcoal.core.tree import (
    Leaf,
    Node,
    NodeKind,
    WeightedLeaf,
    WeightedNode,
    label,
    node_kind,
)

__all__ = [
    "Checkpoint",
    "CoalescenceEngine",
    "validate_tree",
    "BranchLengthError",
    "ConfigurationError",
    "MessageDimensionError",
    "ModelConfigurationError",
    "TreeInvariantError",
    "message_log_likelihood",
    "node_log_likelihood",
    "Leaf",
    "Node",
    "NodeKind",
    "WeightedLeaf",
    "WeightedNode",
    "label",
    "node_kind",
]
