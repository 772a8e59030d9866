"""Coalesce command implementation."""

import sys
import json
from pathlib import Path
from typing import Optional

from qtcoal.api import coalesce_fixed


def run_coalesce(
    tree: Path,
    alignment: Path,
    traits: Path,
    priors: Optional[Path],
    molecular_rate: float,
    character_rate: float,
    jump_rate: float,
    seed: Optional[int],
    format: str,
):
    """Coalesce the tree once at fixed rates."""
    try:
        result = coalesce_fixed(
            tree,
            alignment,
            traits,
            molecular_rate=molecular_rate,
            character_rate=character_rate,
            jump_rate=jump_rate,
            priors=priors,
            seed=seed,
        )
    except (ValueError, OSError) as e:
        print("Error: Coalescence failed", file=sys.stderr)
        print(f"Details: {e}", file=sys.stderr)
        sys.exit(1)

    if format == "json":
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(result.summary())
