"""
Likelihood aggregation for coalesced messages.

A message is a row vector of per-state likelihoods. Its contribution to the
log-likelihood is the log of the sum of its entries. A zero (or otherwise
unusable) sum means the current parameter draw cannot explain the data; it
is reported as ``-inf`` rather than raised, so the particle carrying it is
simply removed at the next resampling step.
"""

import numpy as np


def message_log_likelihood(message: np.ndarray) -> float:
    """
    Log-likelihood contribution of a single message.

    Parameters
    ----------
    message : ndarray, shape (n_states,)
        Evolved likelihood row vector

    Returns
    -------
    float
        ``log(message @ 1)``, or ``-inf`` if the sum is zero, negative or
        not finite

    Examples
    --------
    >>> message_log_likelihood(np.array([1.0, 0.0, 0.0, 0.0]))
    0.0
    >>> message_log_likelihood(np.zeros(4))
    -inf
    """
    total = float(np.dot(message, np.ones(len(message))))
    if not np.isfinite(total) or total <= 0.0:
        return -np.inf
    return float(np.log(total))


def sites_log_likelihood(site_messages: np.ndarray) -> float:
    """
    Sum of per-site log-likelihood contributions.

    Parameters
    ----------
    site_messages : ndarray, shape (n_sites, n_states)
        One merged message per site

    Returns
    -------
    float
        Sum over sites; ``-inf`` as soon as any site is incompatible
    """
    totals = np.asarray(site_messages, dtype=float).sum(axis=1)
    if np.any(~np.isfinite(totals) | (totals <= 0.0)):
        return -np.inf
    return float(np.sum(np.log(totals)))


def node_log_likelihood(site_messages: np.ndarray, character_message: np.ndarray) -> float:
    """Total log-likelihood term of a merge: all sites plus the character."""
    site_term = sites_log_likelihood(site_messages)
    character_term = message_log_likelihood(character_message)
    if site_term == -np.inf or character_term == -np.inf:
        return -np.inf
    return site_term + character_term
