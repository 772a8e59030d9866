"""
Configuration errors raised before or during tree coalescence.

Zero likelihoods are not errors: they propagate as ``-inf`` log-weights.
The exceptions below signal setup bugs (bad trees, bad matrices) and are
meant to halt the whole run.
"""


class ConfigurationError(ValueError):
    """Base class for invariant violations in the tree or model setup."""


class TreeInvariantError(ConfigurationError):
    """A node is older than (or as old as) its parent, or the tree is not binary."""


class BranchLengthError(ConfigurationError):
    """A branch has negative length."""


class MessageDimensionError(ConfigurationError):
    """A message does not match the dimension of the process evolving it."""


class ModelConfigurationError(ConfigurationError):
    """A generator, jump matrix or emission table is invalid."""
