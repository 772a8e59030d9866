"""
Evolutionary process parameters of one particle.

:class:`ModelDynamics` is the immutable bundle read by the coalescence
engine. :class:`ModelPriors` holds the configuration from which each particle
samples its rates and builds its own dynamics.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np
from scipy import stats

from ..core.errors import ModelConfigurationError
from ..core.matrix import (
    check_generator,
    check_stochastic,
    create_reversible_Q,
    equal_rates_Q,
    uniform_jump_matrix,
)

N_MOLECULAR_STATES = 4


@dataclass(frozen=True, eq=False)
class ModelDynamics:
    """
    Process parameters shared read-only across one particle's traversal.

    Attributes
    ----------
    molecular_generator : ndarray, shape (4, 4)
        Molecular generator matrix, already scaled by its sampled rate
    molecular_jump : ndarray, shape (4, 4)
        Row-stochastic molecular jump matrix
    character_generator : ndarray, shape (K, K)
        Character generator matrix, already scaled by its sampled rate
    character_jump : ndarray, shape (K, K)
        Row-stochastic character jump matrix
    jump_rate : float
        Joint rate of the compound jump process
    emission_table : ndarray, shape (n_observed, K)
        Initial character message for each observed character state

    Raises
    ------
    ModelConfigurationError
        On construction, if any matrix violates its invariant
    """

    molecular_generator: np.ndarray
    molecular_jump: np.ndarray
    character_generator: np.ndarray
    character_jump: np.ndarray
    jump_rate: float
    emission_table: np.ndarray

    def __post_init__(self):
        self.validate()

    @property
    def n_molecular_states(self) -> int:
        return N_MOLECULAR_STATES

    @property
    def n_character_states(self) -> int:
        return int(np.asarray(self.character_generator).shape[0])

    def emission(self, state: int) -> np.ndarray:
        """Initial character message for an observed character state."""
        if not 0 <= state < len(self.emission_table):
            raise ModelConfigurationError(
                f"Character state {state} has no emission vector "
                f"(table has {len(self.emission_table)} rows)"
            )
        return self.emission_table[state]

    def validate(self) -> None:
        """Check every matrix invariant, raising ``ModelConfigurationError``."""
        check_generator(self.molecular_generator, N_MOLECULAR_STATES, "molecular generator")
        check_stochastic(self.molecular_jump, N_MOLECULAR_STATES, "molecular jump matrix")

        Qc = np.asarray(self.character_generator)
        if Qc.ndim != 2 or Qc.shape[0] < 1:
            raise ModelConfigurationError(
                f"character generator has shape {Qc.shape}, expected (K, K)"
            )
        n_char = Qc.shape[0]
        check_generator(Qc, n_char, "character generator")
        check_stochastic(self.character_jump, n_char, "character jump matrix")

        emissions = np.asarray(self.emission_table)
        if emissions.ndim != 2 or emissions.shape[1] != n_char:
            raise ModelConfigurationError(
                f"emission table has shape {emissions.shape}, expected (n_observed, {n_char})"
            )
        if not np.isfinite(self.jump_rate) or self.jump_rate < 0:
            raise ModelConfigurationError(
                f"jump rate must be finite and non-negative, got {self.jump_rate}"
            )


@dataclass
class ModelPriors:
    """
    Priors and fixed structure from which particles build their dynamics.

    Rates have Gamma priors given as ``(shape, scale)``. The molecular base
    generator is the reversible matrix built from ``exchangeabilities`` and
    ``pi``; the character base generator has equal rates between all
    ``n_character_states`` states. Both are normalised to one expected change
    per time unit before being scaled by the sampled rates.

    Attributes
    ----------
    molecular_rate : tuple of float
        Gamma (shape, scale) prior of the molecular rate
    character_rate : tuple of float
        Gamma (shape, scale) prior of the character rate
    jump_rate : tuple of float
        Gamma (shape, scale) prior of the compound jump rate
    n_character_states : int
        Number of character states K
    pi : ndarray, shape (4,)
        Nucleotide equilibrium frequencies
    exchangeabilities : ndarray, shape (4, 4)
        Symmetric nucleotide exchangeabilities
    emission_table : ndarray, optional
        Emission vectors per observed state (default: identity, one-hot)
    molecular_jump : ndarray, optional
        Molecular jump matrix (default: uniform jump to another state)
    character_jump : ndarray, optional
        Character jump matrix (default: uniform jump to another state)
    """

    molecular_rate: tuple = (2.0, 0.5)
    character_rate: tuple = (2.0, 0.5)
    jump_rate: tuple = (1.0, 1.0)
    n_character_states: int = 2
    pi: np.ndarray = field(default_factory=lambda: np.ones(N_MOLECULAR_STATES) / N_MOLECULAR_STATES)
    exchangeabilities: np.ndarray = field(
        default_factory=lambda: np.ones((N_MOLECULAR_STATES, N_MOLECULAR_STATES))
    )
    emission_table: Optional[np.ndarray] = None
    molecular_jump: Optional[np.ndarray] = None
    character_jump: Optional[np.ndarray] = None

    def __post_init__(self):
        self.pi = np.asarray(self.pi, dtype=float)
        self.exchangeabilities = np.asarray(self.exchangeabilities, dtype=float)
        if self.n_character_states < 1:
            raise ModelConfigurationError(
                f"n_character_states must be at least 1, got {self.n_character_states}"
            )
        if self.pi.shape != (N_MOLECULAR_STATES,) or not np.isclose(self.pi.sum(), 1.0):
            raise ModelConfigurationError(f"pi must be 4 frequencies summing to 1, got {self.pi}")
        if self.exchangeabilities.shape != (N_MOLECULAR_STATES, N_MOLECULAR_STATES):
            raise ModelConfigurationError(
                f"exchangeabilities have shape {self.exchangeabilities.shape}, expected (4, 4)"
            )
        if not np.allclose(self.exchangeabilities, self.exchangeabilities.T):
            raise ModelConfigurationError("exchangeabilities must be symmetric")
        for name in ("molecular_rate", "character_rate", "jump_rate"):
            shape, scale = getattr(self, name)
            if shape <= 0 or scale <= 0:
                raise ModelConfigurationError(
                    f"{name} prior needs positive shape and scale, got ({shape}, {scale})"
                )
            setattr(self, name, (float(shape), float(scale)))

    def base_molecular_generator(self) -> np.ndarray:
        return create_reversible_Q(self.exchangeabilities, self.pi, normalize=True)

    def base_character_generator(self) -> np.ndarray:
        return equal_rates_Q(self.n_character_states)

    def resolved_emission_table(self) -> np.ndarray:
        if self.emission_table is None:
            return np.eye(self.n_character_states)
        return np.asarray(self.emission_table, dtype=float)

    def build_dynamics(self, params: Dict[str, float]) -> ModelDynamics:
        """
        Build the dynamics of one particle from its sampled rates.

        Parameters
        ----------
        params : dict
            ``molecular_rate``, ``character_rate`` and ``jump_rate``

        Returns
        -------
        ModelDynamics
            Validated process parameters
        """
        n_char = self.n_character_states
        molecular_jump = (
            uniform_jump_matrix(N_MOLECULAR_STATES)
            if self.molecular_jump is None
            else np.asarray(self.molecular_jump, dtype=float)
        )
        character_jump = (
            uniform_jump_matrix(n_char)
            if self.character_jump is None
            else np.asarray(self.character_jump, dtype=float)
        )
        return ModelDynamics(
            molecular_generator=self.base_molecular_generator() * params["molecular_rate"],
            molecular_jump=molecular_jump,
            character_generator=self.base_character_generator() * params["character_rate"],
            character_jump=character_jump,
            jump_rate=float(params["jump_rate"]),
            emission_table=self.resolved_emission_table(),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serialisable dictionary."""
        result = {
            "molecular_rate": list(self.molecular_rate),
            "character_rate": list(self.character_rate),
            "jump_rate": list(self.jump_rate),
            "n_character_states": self.n_character_states,
            "pi": self.pi.tolist(),
            "exchangeabilities": self.exchangeabilities.tolist(),
        }
        for name in ("emission_table", "molecular_jump", "character_jump"):
            value = getattr(self, name)
            if value is not None:
                result[name] = np.asarray(value).tolist()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModelPriors":
        """
        Build priors from a dictionary, e.g. a parsed JSON file.

        Unknown keys raise ``ModelConfigurationError``.
        """
        known = {
            "molecular_rate", "character_rate", "jump_rate", "n_character_states",
            "pi", "exchangeabilities", "emission_table", "molecular_jump", "character_jump",
        }
        unknown = set(data) - known
        if unknown:
            raise ModelConfigurationError(f"Unknown prior settings: {sorted(unknown)}")

        kwargs = dict(data)
        for name in ("molecular_rate", "character_rate", "jump_rate"):
            if name in kwargs:
                kwargs[name] = tuple(kwargs[name])
        for name in ("pi", "exchangeabilities", "emission_table", "molecular_jump", "character_jump"):
            if kwargs.get(name) is not None:
                kwargs[name] = np.asarray(kwargs[name], dtype=float)
        return cls(**kwargs)

    @classmethod
    def from_json(cls, filepath: Path | str) -> "ModelPriors":
        """Load priors from a JSON file."""
        with open(filepath) as f:
            return cls.from_dict(json.load(f))

    def to_json(self, filepath: Path | str) -> None:
        """Write priors to a JSON file."""
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def sample_parameters(priors: ModelPriors, runtime) -> Dict[str, float]:
    """
    Draw the rates of one particle from their Gamma priors.

    The draws go through ``runtime.sample`` so that they are recorded in the
    particle's trace.

    Returns
    -------
    dict
        ``molecular_rate``, ``character_rate`` and ``jump_rate``
    """
    params = {}
    for name in ("molecular_rate", "character_rate", "jump_rate"):
        shape, scale = getattr(priors, name)
        params[name] = float(runtime.sample(stats.gamma(a=shape, scale=scale)))
    return params
