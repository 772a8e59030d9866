"""Run command implementation."""

import sys
import json
import warnings
from pathlib import Path
from typing import Optional

from qtcoal.api import load_tree
from qtcoal.inference.smc import ParticleFilter, SMCConfig
from qtcoal.models.dynamics import ModelPriors


def run_filter(
    tree: Path,
    alignment: Path,
    traits: Path,
    priors: Optional[Path],
    n_particles: int,
    ess_threshold: float,
    seed: Optional[int],
    output: Optional[Path],
    format: str,
    verbose: bool,
    quiet: bool,
):
    """Run the particle filter on data files."""
    try:
        root = load_tree(tree, alignment, traits)
        model = ModelPriors.from_json(priors) if priors else ModelPriors()
        config = SMCConfig(
            n_particles=n_particles,
            ess_threshold=ess_threshold,
            seed=seed,
            verbose=verbose,
        )
    except (ValueError, OSError) as e:
        print("Error: Could not load input data", file=sys.stderr)
        print(f"Details: {e}", file=sys.stderr)
        sys.exit(1)

    if not quiet:
        print("Likelihood-weighted tree coalescence", file=sys.stderr)
        print("=" * 60, file=sys.stderr)
        print(f"Tree:      {tree}", file=sys.stderr)
        print(f"Alignment: {alignment}", file=sys.stderr)
        print(f"Traits:    {traits}", file=sys.stderr)
        print(f"Particles: {n_particles}", file=sys.stderr)
        print(file=sys.stderr)

    try:
        with warnings.catch_warnings():
            if quiet:
                warnings.simplefilter("ignore", UserWarning)
            result = ParticleFilter(model, config).run(root)
    except ValueError as e:
        print("Error: Invalid model configuration", file=sys.stderr)
        print(f"Details: {e}", file=sys.stderr)
        sys.exit(1)

    if format == "json":
        output_text = json.dumps(result.to_dict(), indent=2)
    else:
        output_text = result.summary()

    if output:
        with open(output, 'w') as f:
            f.write(output_text + '\n')
        if not quiet:
            print(f"\nResults written to {output}", file=sys.stderr)
    else:
        print(output_text)
