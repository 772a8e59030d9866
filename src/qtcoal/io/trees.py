"""
Newick tree parsing and conversion to an aged, typed tree.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import numpy as np

from ..core.tree import Leaf, Node
from .sequences import Alignment


@dataclass
class TreeNode:
    """
    Phylogenetic tree node.

    Attributes
    ----------
    id : int
        Node identifier
    name : Optional[str]
        Node name (for leaves)
    parent : Optional[TreeNode]
        Parent node
    children : list[TreeNode]
        Child nodes
    branch_length : float
        Branch length to parent
    """

    id: int
    name: Optional[str] = None
    parent: Optional["TreeNode"] = None
    children: list["TreeNode"] = field(default_factory=list)
    branch_length: float = 0.0

    @property
    def is_leaf(self) -> bool:
        """Check if node is a leaf."""
        return len(self.children) == 0


@dataclass
class Tree:
    """
    Phylogenetic tree.

    Attributes
    ----------
    root : TreeNode
        Root node of the tree
    n_nodes : int
        Total number of nodes
    n_leaves : int
        Number of leaf nodes
    leaf_names : list[str]
        Names of leaf nodes
    """

    root: TreeNode
    n_nodes: int
    n_leaves: int
    leaf_names: list[str]

    @classmethod
    def from_file(cls, filepath: Path | str) -> "Tree":
        """Parse the first Newick tree in a file."""
        return cls.from_newick(Path(filepath).read_text())

    @classmethod
    def from_newick(cls, newick_string: str) -> "Tree":
        """
        Parse Newick format tree string.

        Parameters
        ----------
        newick_string : str
            Newick format tree

        Returns
        -------
        Tree
            Parsed tree
        """
        # Remove [...] comments and surrounding whitespace
        newick = re.sub(r'\[.*?\]', '', newick_string, flags=re.DOTALL).strip()

        if ';' not in newick:
            raise ValueError("Invalid Newick format: missing semicolon")

        tree_line = newick[:newick.index(';')]
        tree_line = tree_line.replace('\n', '').replace('\t', '').replace('\r', '')
        if not tree_line.strip():
            raise ValueError("Invalid Newick format: no tree found")

        node_id_counter = [0]

        def skip_whitespace(s: str, pos: int) -> int:
            """Skip whitespace characters."""
            while pos < len(s) and s[pos] in ' \t\n\r':
                pos += 1
            return pos

        def parse_node(s: str, start: int, parent: Optional[TreeNode] = None) -> tuple[TreeNode, int]:
            """Parse a node from position start in string s."""
            node = TreeNode(id=node_id_counter[0])
            node_id_counter[0] += 1
            node.parent = parent
            pos = skip_whitespace(s, start)

            if pos < len(s) and s[pos] == '(':
                pos = skip_whitespace(s, pos + 1)
                while True:
                    child, pos = parse_node(s, pos, node)
                    node.children.append(child)
                    pos = skip_whitespace(s, pos)

                    if pos < len(s) and s[pos] == ',':
                        pos = skip_whitespace(s, pos + 1)
                        continue
                    elif pos < len(s) and s[pos] == ')':
                        pos = skip_whitespace(s, pos + 1)
                        break
                    else:
                        raise ValueError(f"Expected ',' or ')' at position {pos}")

            name_start = pos
            while pos < len(s) and s[pos] not in ',:(); \t\n\r':
                pos += 1
            if pos > name_start:
                node.name = s[name_start:pos]

            pos = skip_whitespace(s, pos)

            # Branch length (e.g., :0.123 or : 0.123)
            if pos < len(s) and s[pos] == ':':
                pos += 1
                pos = skip_whitespace(s, pos)
                length_start = pos
                while pos < len(s) and s[pos] not in ',(); \t\n\r':
                    pos += 1
                try:
                    node.branch_length = float(s[length_start:pos])
                except ValueError:
                    raise ValueError(f"Invalid branch length: {s[length_start:pos]}")

            return node, pos

        root, pos = parse_node(tree_line, 0, None)
        if skip_whitespace(tree_line, pos) != len(tree_line):
            raise ValueError(f"Unexpected characters after tree at position {pos}")

        def count_nodes(node: TreeNode) -> tuple[int, int, list[str]]:
            """Count total nodes, leaves, and collect leaf names."""
            if node.is_leaf:
                leaf_name = node.name if node.name else str(node.id)
                return 1, 1, [leaf_name]
            total_nodes = 1
            total_leaves = 0
            leaf_names = []
            for child in node.children:
                n, l, names = count_nodes(child)
                total_nodes += n
                total_leaves += l
                leaf_names.extend(names)
            return total_nodes, total_leaves, leaf_names

        n_nodes, n_leaves, leaf_names = count_nodes(root)

        return cls(
            root=root,
            n_nodes=n_nodes,
            n_leaves=n_leaves,
            leaf_names=leaf_names
        )

    def postorder(self) -> list[TreeNode]:
        """
        Return nodes in post-order traversal (leaves to root).

        Returns
        -------
        list[TreeNode]
            Nodes in post-order
        """
        result = []

        def traverse(node: TreeNode) -> None:
            for child in node.children:
                traverse(child)
            result.append(node)

        traverse(self.root)
        return result

    def node_ages(self) -> Dict[int, float]:
        """
        Age of every node, keyed by node id.

        Ages are heights above the tip farthest from the root, so the
        deepest tip has age 0 and the root has the largest age. The root's
        own branch length is ignored.
        """
        depths = {}

        def traverse(node: TreeNode, depth: float) -> None:
            depths[node.id] = depth
            for child in node.children:
                traverse(child, depth + child.branch_length)

        traverse(self.root, 0.0)
        height = max(depths.values())
        return {node_id: height - depth for node_id, depth in depths.items()}


def build_coalescent_tree(
    tree: Tree,
    alignment: Alignment,
    traits: Dict[str, int],
) -> Node:
    """
    Convert a parsed Newick tree into a raw ``Leaf``/``Node`` tree.

    Parameters
    ----------
    tree : Tree
        Rooted, strictly binary tree with positive branch lengths
    alignment : Alignment
        Sequences of every tip; a leaf's index is its alignment row
    traits : dict
        Observed character state of every tip

    Returns
    -------
    Node
        Root of the typed tree, with node ages derived from branch lengths

    Raises
    ------
    ValueError
        If the tree is not binary, or a tip has no sequence or no trait
    """
    if tree.root.is_leaf:
        raise ValueError("Tree must have at least two leaves")

    missing_seqs = set(tree.leaf_names) - set(alignment.names)
    if missing_seqs:
        raise ValueError(f"Tips without a sequence: {sorted(missing_seqs)}")
    missing_traits = set(tree.leaf_names) - set(traits)
    if missing_traits:
        raise ValueError(f"Tips without a character state: {sorted(missing_traits)}")

    ages = tree.node_ages()
    row = {name: i for i, name in enumerate(alignment.names)}

    def convert(node: TreeNode):
        if node.is_leaf:
            name = node.name if node.name else str(node.id)
            return Leaf(
                index=row[name],
                character_state=traits[name],
                sequence=np.asarray(alignment.sequences[row[name]], dtype=int),
                age=ages[node.id],
            )
        if len(node.children) != 2:
            raise ValueError(
                f"Tree must be strictly binary; node {node.name or node.id} "
                f"has {len(node.children)} children"
            )
        left, right = (convert(child) for child in node.children)
        return Node(left, right, ages[node.id])

    return convert(tree.root)
