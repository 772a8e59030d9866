"""
Evolutionary process parameters.

- ModelDynamics: generator and jump matrices, jump rate and emission table
  of one particle
- ModelPriors: rate priors and fixed model structure
"""

from .dynamics import ModelDynamics, ModelPriors, sample_parameters

__all__ = ["ModelDynamics", "ModelPriors", "sample_parameters"]
