"""Main CLI application for qtcoal."""

import typer
from pathlib import Path
from typing import Optional
from enum import Enum

app = typer.Typer(
    name="qtcoal",
    help="Likelihood-weighted coalescence of phylogenetic trees with sequences and traits",
    no_args_is_help=True,
)


class OutputFormat(str, Enum):
    """Output format."""
    TEXT = "text"
    JSON = "json"


def _tree_option():
    return typer.Option(
        ...,
        "--tree", "-t",
        help="Time tree file (Newick format, branch lengths in time units)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    )


def _alignment_option():
    return typer.Option(
        ...,
        "--alignment", "-s",
        help="Nucleotide alignment file (FASTA or PHYLIP)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    )


def _traits_option():
    return typer.Option(
        ...,
        "--traits", "-c",
        help="Character-state table ('name state' per line)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    )


def _priors_option():
    return typer.Option(
        None,
        "--priors", "-p",
        help="Model priors JSON file (default: built-in priors)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    )


@app.command()
def run(
    tree: Path = _tree_option(),
    alignment: Path = _alignment_option(),
    traits: Path = _traits_option(),
    priors: Optional[Path] = _priors_option(),
    particles: int = typer.Option(
        100,
        "--particles", "-n",
        help="Number of particles",
        min=1,
    ),
    ess_threshold: float = typer.Option(
        0.5,
        "--ess-threshold",
        help="Resample when ESS falls below this fraction of the particles",
        min=0.0,
        max=1.0,
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Random seed for reproducibility",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output file (default: stdout)",
    ),
    format: OutputFormat = typer.Option(
        OutputFormat.TEXT,
        "--format",
        help="Output format",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Show progress at every resampling checkpoint",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet", "-q",
        help="Minimal output",
    ),
):
    """
    Run the particle filter and estimate the marginal likelihood.

    Example:
        qtcoal run -t tree.nwk -s alignment.fasta -c traits.tsv -n 500 --seed 1
    """
    from .commands.run import run_filter

    run_filter(
        tree=tree,
        alignment=alignment,
        traits=traits,
        priors=priors,
        n_particles=particles,
        ess_threshold=ess_threshold,
        seed=seed,
        output=output,
        format=format.value,
        verbose=verbose,
        quiet=quiet,
    )


@app.command()
def coalesce(
    tree: Path = _tree_option(),
    alignment: Path = _alignment_option(),
    traits: Path = _traits_option(),
    priors: Optional[Path] = _priors_option(),
    molecular_rate: float = typer.Option(
        1.0,
        "--molecular-rate",
        help="Molecular substitution rate",
        min=0.0,
    ),
    character_rate: float = typer.Option(
        1.0,
        "--character-rate",
        help="Character transition rate",
        min=0.0,
    ),
    jump_rate: float = typer.Option(
        0.0,
        "--jump-rate",
        help="Compound jump process rate",
        min=0.0,
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Random seed for the jump counts",
    ),
    format: OutputFormat = typer.Option(
        OutputFormat.TEXT,
        "--format",
        help="Output format",
    ),
):
    """
    Coalesce the tree once at fixed rates and report its log-likelihood.

    Example:
        qtcoal coalesce -t tree.nwk -s alignment.fasta -c traits.tsv --molecular-rate 0.8
    """
    from .commands.coalesce import run_coalesce

    run_coalesce(
        tree=tree,
        alignment=alignment,
        traits=traits,
        priors=priors,
        molecular_rate=molecular_rate,
        character_rate=character_rate,
        jump_rate=jump_rate,
        seed=seed,
        format=format.value,
    )


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
