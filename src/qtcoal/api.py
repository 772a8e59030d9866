"""
High-level API for qtcoal.

This module loads trees, alignments and character states from files and
runs the particle filter or a single fixed-rate coalescence.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .core.coalescence import CoalescenceEngine, validate_tree
from .core.tree import Node
from .inference.runtime import ParticleRuntime
from .inference.smc import ParticleFilter, SMCConfig, SMCResult
from .io.sequences import Alignment
from .io.traits import read_traits
from .io.trees import Tree, build_coalescent_tree
from .models.dynamics import ModelPriors


@dataclass
class CoalescenceResult:
    """
    Result of coalescing a tree at fixed rates.

    Attributes
    ----------
    log_weight : float
        Root log-weight, i.e. the total log-likelihood of the data
    params : dict
        Rates used
    n_sites : int
        Number of molecular sites
    """

    log_weight: float
    params: Dict[str, float]
    n_sites: int

    def summary(self) -> str:
        lines = [
            "=" * 60,
            "Fixed-rate tree coalescence",
            "=" * 60,
            "",
        ]
        for name, value in self.params.items():
            lines.append(f"  {name:<16}{value:.6f}")
        lines.append(f"  {'sites':<16}{self.n_sites}")
        lines.append("")
        lines.append(f"Log-likelihood: {self.log_weight:.6f}")
        lines.append("=" * 60)
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "log_weight": self.log_weight if self.log_weight != float('-inf') else None,
            "params": self.params,
            "n_sites": self.n_sites,
        }


def load_tree(
    tree: Union[str, Path],
    alignment: Union[str, Path],
    traits: Union[str, Path],
) -> Node:
    """
    Load a Newick tree, an alignment and a character-state table.

    Parameters
    ----------
    tree : str or Path
        Newick file (branch lengths are times)
    alignment : str or Path
        Nucleotide alignment (PHYLIP or FASTA)
    traits : str or Path
        Character-state table

    Returns
    -------
    Node
        Root of the raw typed tree
    """
    tree_obj = Tree.from_file(tree)
    aln = Alignment.from_file(alignment)
    return build_coalescent_tree(tree_obj, aln, read_traits(traits))


def _resolve_priors(priors: Optional[Union[ModelPriors, str, Path]]) -> ModelPriors:
    if priors is None:
        return ModelPriors()
    if isinstance(priors, ModelPriors):
        return priors
    return ModelPriors.from_json(priors)


def run_smc(
    tree: Union[str, Path],
    alignment: Union[str, Path],
    traits: Union[str, Path],
    priors: Optional[Union[ModelPriors, str, Path]] = None,
    n_particles: int = 100,
    ess_threshold: float = 0.5,
    seed: Optional[int] = None,
    verbose: bool = False,
) -> SMCResult:
    """
    Run the particle filter on data files.

    Examples
    --------
    >>> from qtcoal import run_smc
    >>> result = run_smc("tree.nwk", "alignment.fasta", "traits.tsv", n_particles=500, seed=1)
    >>> print(result.summary())
    """
    root = load_tree(tree, alignment, traits)
    config = SMCConfig(
        n_particles=n_particles,
        ess_threshold=ess_threshold,
        seed=seed,
        verbose=verbose,
    )
    return ParticleFilter(_resolve_priors(priors), config).run(root)


def coalesce_fixed(
    tree: Union[str, Path],
    alignment: Union[str, Path],
    traits: Union[str, Path],
    molecular_rate: float,
    character_rate: float,
    jump_rate: float,
    priors: Optional[Union[ModelPriors, str, Path]] = None,
    seed: Optional[int] = None,
) -> CoalescenceResult:
    """
    Coalesce the tree once, as a single particle with fixed rates.

    The jump counts are still random unless ``jump_rate`` is 0.
    """
    root = load_tree(tree, alignment, traits)
    model = _resolve_priors(priors)
    validate_tree(root, len(model.resolved_emission_table()))

    params = {
        "molecular_rate": float(molecular_rate),
        "character_rate": float(character_rate),
        "jump_rate": float(jump_rate),
    }
    dynamics = model.build_dynamics(params)
    engine = CoalescenceEngine(dynamics, ParticleRuntime(seed=seed))
    result = engine.coalesce(root)
    return CoalescenceResult(
        log_weight=float(result.log_weight),
        params=params,
        n_sites=len(result.site_messages),
    )
