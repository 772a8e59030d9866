"""
qtcoal: likelihood-weighted coalescence of phylogenetic trees.

Computes the likelihood of nucleotide sequences and a discrete character
observed at the tips of a time tree, under a joint model of continuous-time
Markov diffusion and compound Poisson jumps, inside a sequential Monte Carlo
(particle filter) loop.

Quick Start
-----------
Run the particle filter:

>>> from qtcoal import run_smc
>>> result = run_smc("tree.nwk", "alignment.fasta", "traits.tsv", n_particles=200, seed=1)
>>> print(result.summary())

Coalesce a tree at fixed rates:

>>> from qtcoal import coalesce_fixed
>>> result = coalesce_fixed("tree.nwk", "alignment.fasta", "traits.tsv",
...                         molecular_rate=1.0, character_rate=0.5, jump_rate=0.0)
>>> print(result.log_weight)
"""

__version__ = "0.1.0"

# High-level API
from .api import CoalescenceResult, coalesce_fixed, load_tree, run_smc

# Core (expert)
from .core.coalescence import CoalescenceEngine
from .core.tree import Leaf, Node, WeightedLeaf, WeightedNode

# Model and inference
from .inference.runtime import InferenceRuntime, ParticleRuntime
from .inference.smc import ParticleFilter, SMCConfig, SMCResult
from .models.dynamics import ModelDynamics, ModelPriors

__all__ = [
    # Simple API
    "run_smc",
    "coalesce_fixed",
    "load_tree",
    "CoalescenceResult",

    # Tree model
    "Leaf",
    "Node",
    "WeightedLeaf",
    "WeightedNode",

    # Engine and model
    "CoalescenceEngine",
    "ModelDynamics",
    "ModelPriors",

    # Inference
    "InferenceRuntime",
    "ParticleRuntime",
    "ParticleFilter",
    "SMCConfig",
    "SMCResult",

    # Version
    "__version__",
]
