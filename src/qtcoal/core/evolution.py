"""
Branch evolution of likelihood messages.

A message ``m`` (row vector) evolves across a branch of length ``t`` as

    m' = m @ J^k @ exp(Q t)

where ``Q`` is the generator of the diffusion process, ``J`` the jump matrix
of the compound process and ``k`` a Poisson number of jump events. The jump
operator is applied before the diffusion operator.

Molecular sites each draw their own jump count with mean
``jump_rate * t / n_sites``, so the expected number of jumps over all sites
of one branch is ``jump_rate * t``. The character message reuses the count of
the first site instead of drawing its own, so it shares that site's jump
history.
"""

from typing import Optional

import numpy as np
from scipy import stats

from .errors import BranchLengthError, MessageDimensionError
from .matrix import jump_operator, matrix_exponential


def branch_length(parent_age: float, child_age: float, where: Optional[str] = None) -> float:
    """
    Length of the branch between a parent and a child.

    Raises
    ------
    BranchLengthError
        If the child is older than its parent
    """
    length = parent_age - child_age
    if length < 0:
        location = f" on branch to {where}" if where else ""
        raise BranchLengthError(
            f"Negative branch length {length}{location} "
            f"(parent age {parent_age}, child age {child_age})"
        )
    return float(length)


def draw_jump_counts(
    runtime, jump_rate: float, t: float, n_sites: int
) -> np.ndarray:
    """
    Draw one Poisson jump count per site for a branch of length ``t``.

    Parameters
    ----------
    runtime : InferenceRuntime
        Runtime providing the draws
    jump_rate : float
        Joint compound-process rate
    t : float
        Branch length
    n_sites : int
        Number of sites evolved together

    Returns
    -------
    ndarray, shape (n_sites,), dtype int
        Independent jump counts, all zero when the Poisson mean is zero
    """
    if n_sites == 0:
        return np.zeros(0, dtype=int)
    mean = jump_rate * t / n_sites
    if mean <= 0:
        return np.zeros(n_sites, dtype=int)
    counts = runtime.sample(stats.poisson(mean), size=n_sites)
    return np.asarray(counts, dtype=int).reshape(n_sites)


def evolve_message(
    message: np.ndarray,
    Q: np.ndarray,
    J: np.ndarray,
    t: float,
    k: int,
) -> np.ndarray:
    """
    Evolve a single message: ``message @ J^k @ exp(Q t)``.

    Raises
    ------
    MessageDimensionError
        If the message length does not match the generator
    """
    message = np.asarray(message, dtype=float)
    _check_dimension(message.shape[-1], Q)
    return message @ jump_operator(J, k) @ matrix_exponential(Q, t)


def evolve_messages(
    messages: np.ndarray,
    Q: np.ndarray,
    J: np.ndarray,
    t: float,
    jump_counts: np.ndarray,
) -> np.ndarray:
    """
    Evolve a block of per-site messages, each with its own jump count.

    Parameters
    ----------
    messages : ndarray, shape (n_sites, n_states)
        One row vector per site
    Q : ndarray, shape (n_states, n_states)
        Generator matrix
    J : ndarray, shape (n_states, n_states)
        Jump matrix
    t : float
        Branch length
    jump_counts : ndarray, shape (n_sites,)
        Jump count for each site

    Returns
    -------
    ndarray, shape (n_sites, n_states)
        Evolved messages
    """
    messages = np.asarray(messages, dtype=float)
    if messages.ndim != 2:
        raise MessageDimensionError(
            f"Site messages must be a 2-D array, got shape {messages.shape}"
        )
    _check_dimension(messages.shape[1], Q)
    if len(jump_counts) != len(messages):
        raise MessageDimensionError(
            f"Got {len(jump_counts)} jump counts for {len(messages)} sites"
        )

    P = matrix_exponential(Q, t)
    evolved = np.empty_like(messages)
    # Sites sharing a jump count share the same operator
    for k in np.unique(jump_counts):
        mask = jump_counts == k
        evolved[mask] = messages[mask] @ jump_operator(J, k) @ P
    return evolved


def evolve_branch(
    site_messages: np.ndarray,
    character_message: np.ndarray,
    dynamics,
    t: float,
    runtime,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Evolve all messages of one child across its branch.

    Parameters
    ----------
    site_messages : ndarray, shape (n_sites, 4)
        Molecular messages of the child
    character_message : ndarray, shape (K,)
        Character message of the child
    dynamics : ModelDynamics
        Process parameters of the current particle
    t : float
        Branch length
    runtime : InferenceRuntime
        Runtime providing the jump-count draws

    Returns
    -------
    tuple of ndarray
        Evolved site messages and evolved character message
    """
    counts = draw_jump_counts(runtime, dynamics.jump_rate, t, len(site_messages))
    character_count = int(counts[0]) if len(counts) else 0
    evolved_sites = evolve_messages(
        site_messages, dynamics.molecular_generator, dynamics.molecular_jump, t, counts
    )
    evolved_character = evolve_message(
        character_message,
        dynamics.character_generator,
        dynamics.character_jump,
        t,
        character_count,
    )
    return evolved_sites, evolved_character


def _check_dimension(n_states: int, Q: np.ndarray) -> None:
    if n_states != Q.shape[0]:
        raise MessageDimensionError(
            f"Message has {n_states} states but the process has {Q.shape[0]}"
        )
