"""
Boundary between the coalescence engine and the inference runtime.

The engine never samples, weights or resamples by itself. It calls three
operations on an :class:`InferenceRuntime`:

- ``sample(distribution)``: draw a value (rates, jump counts)
- ``adjust_weight(log_delta)``: multiply the particle weight by ``exp(log_delta)``
- ``resampling_checkpoint()``: signal that a cross-particle barrier was reached
"""

from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Optional

import numpy as np


class InferenceRuntime(ABC):
    """
    Abstract inference runtime seen by one particle.

    ``distribution`` arguments are frozen ``scipy.stats`` distributions, so
    the family and its parameters travel together, e.g.
    ``runtime.sample(stats.poisson(2.0), size=10)``.
    """

    @abstractmethod
    def sample(self, distribution, size: Optional[int] = None) -> Any:
        """Draw a value (or an array of ``size`` values) from ``distribution``."""
        pass

    @abstractmethod
    def adjust_weight(self, log_delta: float) -> None:
        """Multiply the running weight by ``exp(log_delta)``."""
        pass

    @abstractmethod
    def resampling_checkpoint(self) -> None:
        """Signal that a resampling barrier has been reached."""
        pass


class ParticleRuntime(InferenceRuntime):
    """
    Runtime state of a single particle.

    Keeps a seeded random generator, the running log-weight, the number of
    checkpoints passed and a trace of every value drawn. The trace makes a
    particle reproducible: :meth:`fork` returns a runtime that replays the
    trace (serving the recorded draws and ignoring weight adjustments) until
    it reaches the current checkpoint, then continues with fresh randomness.

    Parameters
    ----------
    seed : int, SeedSequence or Generator, optional
        Seed for the particle's random number generator
    log_weight : float
        Initial log-weight (default 0.0)
    """

    def __init__(self, seed=None, log_weight: float = 0.0):
        self.rng = np.random.default_rng(seed)
        self.log_weight = log_weight
        self.n_checkpoints = 0
        self.trace: list[Any] = []
        self._replay: deque = deque()
        self._replay_until = 0

    @property
    def replaying(self) -> bool:
        """True while the runtime is replaying an ancestor's trace."""
        return self.n_checkpoints < self._replay_until

    def sample(self, distribution, size: Optional[int] = None) -> Any:
        if self.replaying and self._replay:
            value = self._replay.popleft()
        else:
            value = distribution.rvs(size=size, random_state=self.rng)
        self.trace.append(value)
        return value

    def adjust_weight(self, log_delta: float) -> None:
        if self.replaying:
            return
        if np.isnan(log_delta):
            log_delta = -np.inf
        self.log_weight += log_delta

    def resampling_checkpoint(self) -> None:
        self.n_checkpoints += 1

    def fork(self, seed=None) -> "ParticleRuntime":
        """
        Create a copy of this particle that replays its history.

        The copy starts with this particle's log-weight. Running the same
        particle program against it reproduces this particle's state exactly
        at its current checkpoint.
        """
        child = ParticleRuntime(seed=seed, log_weight=self.log_weight)
        child._replay = deque(self.trace)
        child._replay_until = self.n_checkpoints
        return child

    def __repr__(self) -> str:
        return (
            f"ParticleRuntime(log_weight={self.log_weight:.6f}, "
            f"n_checkpoints={self.n_checkpoints}, n_draws={len(self.trace)})"
        )
