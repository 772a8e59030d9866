"""
Input/output for alignments, character states and trees.
"""

from .sequences import Alignment
from .traits import read_traits
from .trees import Tree, TreeNode, build_coalescent_tree

__all__ = ["Alignment", "read_traits", "Tree", "TreeNode", "build_coalescent_tree"]
