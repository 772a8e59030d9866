"""
Matrix operations for message evolution.

This module builds and checks the generator (rate) matrices and jump
matrices of the two Markov processes, and computes the transition operators
applied to likelihood messages along a branch.
"""

import numpy as np
from scipy.linalg import expm

from .errors import ModelConfigurationError


def matrix_exponential(Q: np.ndarray, t: float) -> np.ndarray:
    """
    Compute transition probability matrix P(t) = exp(Q*t).

    Uses scipy's matrix exponential implementation based on Padé
    approximation with scaling and squaring.

    Parameters
    ----------
    Q : ndarray, shape (n, n)
        Generator matrix (already scaled by its rate)
    t : float
        Branch length (time)

    Returns
    -------
    P : ndarray, shape (n, n)
        Transition probability matrix where P[i,j] is the probability
        of state i transitioning to state j over time t

    Notes
    -----
    The transition probability matrix satisfies:
    - Row sums equal 1 (stochastic matrix)
    - All entries are non-negative
    - P(0) = I (identity matrix)
    - P(t1 + t2) = P(t1) @ P(t2) (semigroup property)
    """
    return expm(Q * t)


def jump_operator(J: np.ndarray, k: int) -> np.ndarray:
    """
    Compute the operator of ``k`` jump events, J^k.

    ``J^0`` is the identity, so a branch without jumps leaves the message
    untouched.
    """
    return np.linalg.matrix_power(J, int(k))


def create_reversible_Q(
    rates: np.ndarray, pi: np.ndarray, normalize: bool = True
) -> np.ndarray:
    """
    Create a reversible rate matrix from exchangeability rates and stationary distribution.

    Parameters
    ----------
    rates : ndarray, shape (n, n)
        Symmetric exchangeability matrix (r[i,j] = r[j,i])
    pi : ndarray, shape (n,)
        Stationary distribution (equilibrium frequencies)
    normalize : bool, default=True
        If True, scale Q so that expected rate is 1 substitution per time unit

    Returns
    -------
    Q : ndarray, shape (n, n)
        Reversible rate matrix satisfying detailed balance

    Notes
    -----
    The rate matrix is constructed as Q[i,j] = r[i,j] * pi[j] for i ≠ j,
    and Q[i,i] = -sum(Q[i,j] for j ≠ i).

    Examples
    --------
    >>> # JC69 model
    >>> rates = np.ones((4, 4)) - np.eye(4)
    >>> pi = np.ones(4) / 4
    >>> Q = create_reversible_Q(rates, pi)
    """
    Q = np.asarray(rates, dtype=float) * pi[np.newaxis, :]

    np.fill_diagonal(Q, 0.0)
    row_sums = np.sum(Q, axis=1)
    np.fill_diagonal(Q, -row_sums)

    if normalize:
        # Expected rate = -sum(π_i * Q[i,i])
        expected_rate = -np.dot(pi, Q.diagonal())
        if expected_rate > 0:
            Q /= expected_rate

    return Q


def equal_rates_Q(n: int) -> np.ndarray:
    """
    Mk-style generator with equal rates between all ``n`` states.

    Normalised to one expected change per unit time.
    """
    return create_reversible_Q(np.ones((n, n)), np.ones(n) / n)


def uniform_jump_matrix(n: int) -> np.ndarray:
    """Jump matrix moving to any other state with equal probability."""
    if n < 2:
        return np.eye(n)
    return (np.ones((n, n)) - np.eye(n)) / (n - 1)


def check_generator(Q: np.ndarray, n: int, name: str = "generator", atol: float = 1e-8) -> None:
    """
    Check that ``Q`` is an ``n x n`` generator matrix.

    Raises
    ------
    ModelConfigurationError
        If the shape is wrong, an off-diagonal entry is negative or a row
        does not sum to zero
    """
    Q = np.asarray(Q)
    if Q.shape != (n, n):
        raise ModelConfigurationError(
            f"{name} has shape {Q.shape}, expected ({n}, {n})"
        )
    if not np.all(np.isfinite(Q)):
        raise ModelConfigurationError(f"{name} has non-finite entries")
    off_diagonal = Q[~np.eye(n, dtype=bool)]
    if np.any(off_diagonal < 0):
        raise ModelConfigurationError(f"{name} has negative off-diagonal entries")
    row_sums = Q.sum(axis=1)
    scale = max(1.0, float(np.max(np.abs(Q))))
    if not np.allclose(row_sums, 0.0, atol=atol * scale):
        raise ModelConfigurationError(
            f"{name} rows must sum to zero, got row sums {row_sums}"
        )


def check_stochastic(J: np.ndarray, n: int, name: str = "jump matrix", atol: float = 1e-8) -> None:
    """
    Check that ``J`` is an ``n x n`` row-stochastic matrix.

    Raises
    ------
    ModelConfigurationError
        If the shape is wrong, an entry is negative or a row does not sum to one
    """
    J = np.asarray(J)
    if J.shape != (n, n):
        raise ModelConfigurationError(
            f"{name} has shape {J.shape}, expected ({n}, {n})"
        )
    if not np.all(np.isfinite(J)) or np.any(J < 0):
        raise ModelConfigurationError(f"{name} has negative or non-finite entries")
    row_sums = J.sum(axis=1)
    if not np.allclose(row_sums, 1.0, atol=atol):
        raise ModelConfigurationError(
            f"{name} must be row-stochastic, got row sums {row_sums}"
        )
