"""
Sequential Monte Carlo driver for tree coalescence.

Each particle samples its rates from the priors, builds its own
:class:`~qtcoal.models.dynamics.ModelDynamics` and coalesces the tree. All
particles are advanced one merge at a time; the resampling checkpoint after
every merge is a global barrier at which weights are compared and, when the
effective sample size drops below the threshold, particles are resampled.
"""

import json
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
from scipy.special import logsumexp

from ..core.coalescence import CoalescenceEngine, validate_tree
from ..core.errors import ConfigurationError
from ..core.tree import Node, WeightedLeaf
from ..models.dynamics import ModelPriors, sample_parameters
from .runtime import ParticleRuntime


@dataclass
class SMCConfig:
    """
    Particle filter settings.

    Attributes
    ----------
    n_particles : int
        Number of particles
    ess_threshold : float
        Resample when ESS < ess_threshold * n_particles (1.0 resamples at
        every checkpoint, 0.0 never resamples)
    seed : int, optional
        Seed of the root ``SeedSequence``
    verbose : bool
        Print progress at every checkpoint
    """

    n_particles: int = 100
    ess_threshold: float = 0.5
    seed: Optional[int] = None
    verbose: bool = False

    def __post_init__(self):
        if self.n_particles < 1:
            raise ConfigurationError(f"n_particles must be at least 1, got {self.n_particles}")
        if not 0.0 <= self.ess_threshold <= 1.0:
            raise ConfigurationError(
                f"ess_threshold must be in [0, 1], got {self.ess_threshold}"
            )


@dataclass
class ParticleOutcome:
    """Sampled rates and root summary of one finished particle."""

    params: Dict[str, float]
    root: WeightedLeaf


@dataclass
class SMCResult:
    """
    Result of a particle filter run.

    Attributes
    ----------
    log_evidence : float
        Estimate of the log marginal likelihood of the data
    log_weights : ndarray, shape (n_particles,)
        Final (unnormalised) log-weights since the last resampling
    parameters : list of dict
        Sampled rates of each final particle
    root_log_weights : ndarray, shape (n_particles,)
        Root ``log_weight`` of each final particle (its total log-likelihood)
    ess_history : list of float
        Effective sample size at each checkpoint
    n_resamples : int
        Number of resampling events
    n_checkpoints : int
        Number of checkpoints (merges) per particle
    """

    log_evidence: float
    log_weights: np.ndarray
    parameters: List[Dict[str, float]]
    root_log_weights: np.ndarray
    ess_history: List[float] = field(default_factory=list)
    n_resamples: int = 0
    n_checkpoints: int = 0

    @property
    def n_particles(self) -> int:
        return len(self.log_weights)

    def normalized_weights(self) -> np.ndarray:
        """Normalised particle weights (zeros if every particle is dead)."""
        if np.all(np.isneginf(self.log_weights)):
            return np.zeros(self.n_particles)
        return np.exp(self.log_weights - logsumexp(self.log_weights))

    def posterior_mean(self, name: str) -> float:
        """
        Weighted posterior mean of a sampled rate.

        Parameters
        ----------
        name : str
            ``molecular_rate``, ``character_rate`` or ``jump_rate``
        """
        weights = self.normalized_weights()
        if not weights.any():
            return float('nan')
        values = np.array([p[name] for p in self.parameters])
        return float(np.dot(weights, values))

    def summary(self) -> str:
        """Formatted multi-line summary."""
        lines = []
        lines.append("=" * 60)
        lines.append("Likelihood-weighted tree coalescence (SMC)")
        lines.append("=" * 60)
        lines.append("")
        lines.append(f"Particles:        {self.n_particles}")
        lines.append(f"Checkpoints:      {self.n_checkpoints}")
        lines.append(f"Resampling steps: {self.n_resamples}")
        if self.ess_history:
            lines.append(f"Final ESS:        {self.ess_history[-1]:.2f}")
        lines.append(f"Log-evidence:     {self.log_evidence:.6f}")
        lines.append("")
        lines.append("Posterior means:")
        for name in ("molecular_rate", "character_rate", "jump_rate"):
            lines.append(f"  {name:<16}{self.posterior_mean(name):.6f}")
        lines.append("=" * 60)
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serialisable dictionary (``-inf`` becomes ``None``)."""
        def finite_or_none(x):
            return float(x) if np.isfinite(x) else None

        return {
            "log_evidence": finite_or_none(self.log_evidence),
            "n_particles": self.n_particles,
            "n_checkpoints": self.n_checkpoints,
            "n_resamples": self.n_resamples,
            "ess_history": [float(e) for e in self.ess_history],
            "log_weights": [finite_or_none(w) for w in self.log_weights],
            "root_log_weights": [finite_or_none(w) for w in self.root_log_weights],
            "parameters": self.parameters,
            "posterior_means": {
                name: finite_or_none(self.posterior_mean(name))
                for name in ("molecular_rate", "character_rate", "jump_rate")
            },
        }

    def to_json(self, filepath: Path | str) -> None:
        """Write the result to a JSON file."""
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def effective_sample_size(log_weights: np.ndarray) -> float:
    """
    Effective sample size ``1 / sum(w_i^2)`` of normalised weights.

    Returns 0.0 when every weight is zero.
    """
    log_weights = np.asarray(log_weights, dtype=float)
    if np.all(np.isneginf(log_weights)):
        return 0.0
    w = np.exp(log_weights - logsumexp(log_weights))
    return float(1.0 / np.sum(w ** 2))


def systematic_resample(weights: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """
    Systematic resampling.

    Parameters
    ----------
    weights : ndarray, shape (n,)
        Normalised weights
    rng : numpy.random.Generator
        Random number generator

    Returns
    -------
    ndarray, shape (n,)
        Ancestor index of each new particle (sorted)
    """
    n = len(weights)
    positions = (rng.random() + np.arange(n)) / n
    cumulative = np.cumsum(weights)
    cumulative[-1] = 1.0
    return np.searchsorted(cumulative, positions, side='right')


class _Particle:
    def __init__(self, runtime: ParticleRuntime, steps):
        self.runtime = runtime
        self.steps = steps
        self.outcome: Optional[ParticleOutcome] = None

    def advance(self) -> bool:
        """Run to the next checkpoint; return True once the program finished."""
        try:
            next(self.steps)
            return False
        except StopIteration as stop:
            self.outcome = stop.value
            return True


class ParticleFilter:
    """
    Lockstep particle filter over one tree.

    Parameters
    ----------
    priors : ModelPriors
        Priors of the rates and fixed model structure
    config : SMCConfig, optional
        Particle filter settings

    Examples
    --------
    >>> pf = ParticleFilter(ModelPriors(n_character_states=3), SMCConfig(n_particles=200, seed=1))
    >>> result = pf.run(tree)
    >>> print(result.summary())
    """

    def __init__(self, priors: ModelPriors, config: Optional[SMCConfig] = None):
        self.priors = priors
        self.config = config if config is not None else SMCConfig()

    def program(self, tree: Node, runtime: ParticleRuntime):
        """
        Program run by every particle.

        Samples the rates, builds the dynamics and coalesces the tree,
        yielding at every checkpoint.
        """
        params = sample_parameters(self.priors, runtime)
        dynamics = self.priors.build_dynamics(params)
        engine = CoalescenceEngine(dynamics, runtime)
        root = yield from engine.iter_coalesce(tree)
        return ParticleOutcome(params=params, root=root)

    def run(self, tree: Node) -> SMCResult:
        """
        Run the particle filter.

        Raises
        ------
        ConfigurationError
            If the tree fails its pre-flight check or the priors produce
            invalid dynamics; raised before any particle is advanced
        """
        validate_tree(tree, len(self.priors.resolved_emission_table()))
        # Build dynamics once from the prior means to surface matrix errors early
        self.priors.build_dynamics({
            name: float(np.prod(getattr(self.priors, name)))
            for name in ("molecular_rate", "character_rate", "jump_rate")
        })

        n = self.config.n_particles
        seeds = np.random.SeedSequence(self.config.seed)
        rng = np.random.default_rng(seeds.spawn(1)[0])
        particles = [
            self._start(tree, ParticleRuntime(seed=s)) for s in seeds.spawn(n)
        ]

        log_evidence = 0.0
        ess_history = []
        n_resamples = 0
        n_checkpoints = 0
        warned = False

        while True:
            finished = [p.advance() for p in particles]
            if all(finished):
                break
            if any(finished):
                raise RuntimeError("Particles reached different numbers of checkpoints")
            n_checkpoints += 1

            log_w = np.array([p.runtime.log_weight for p in particles])
            ess = effective_sample_size(log_w)
            ess_history.append(ess)
            if self.config.verbose:
                print(f"Checkpoint {n_checkpoints}: ESS = {ess:.2f} / {n}")

            if np.all(np.isneginf(log_w)):
                if not warned:
                    warnings.warn(
                        f"All particles have zero likelihood at checkpoint {n_checkpoints}",
                        UserWarning,
                    )
                    warned = True
                continue

            if ess < self.config.ess_threshold * n:
                log_evidence += logsumexp(log_w) - np.log(n)
                particles = self._resample(tree, particles, log_w, rng, seeds, n_checkpoints)
                n_resamples += 1
                if self.config.verbose:
                    print(f"  resampled ({n_resamples} so far)")

        log_w = np.array([p.runtime.log_weight for p in particles])
        if np.all(np.isneginf(log_w)):
            log_evidence = -np.inf
        else:
            log_evidence += logsumexp(log_w) - np.log(n)

        return SMCResult(
            log_evidence=float(log_evidence),
            log_weights=log_w,
            parameters=[p.outcome.params for p in particles],
            root_log_weights=np.array([p.outcome.root.log_weight for p in particles]),
            ess_history=ess_history,
            n_resamples=n_resamples,
            n_checkpoints=n_checkpoints,
        )

    def _start(self, tree: Node, runtime: ParticleRuntime) -> _Particle:
        return _Particle(runtime, self.program(tree, runtime))

    def _resample(
        self,
        tree: Node,
        particles: List[_Particle],
        log_w: np.ndarray,
        rng: np.random.Generator,
        seeds: np.random.SeedSequence,
        n_checkpoints: int,
    ) -> List[_Particle]:
        weights = np.exp(log_w - logsumexp(log_w))
        ancestors = systematic_resample(weights, rng)

        resampled = []
        taken = set()
        for a in ancestors:
            ancestor = particles[a]
            if a not in taken:
                taken.add(a)
                ancestor.runtime.log_weight = 0.0
                resampled.append(ancestor)
                continue
            # Duplicate: replay the ancestor's draws up to this checkpoint
            runtime = ancestor.runtime.fork(seed=seeds.spawn(1)[0])
            runtime.log_weight = 0.0
            child = self._start(tree, runtime)
            for _ in range(n_checkpoints):
                child.advance()
            resampled.append(child)
        return resampled
