"""
Inference runtime and particle filter.
"""

from .runtime import InferenceRuntime, ParticleRuntime
from .smc import ParticleFilter, SMCConfig, SMCResult

__all__ = [
    "InferenceRuntime",
    "ParticleRuntime",
    "ParticleFilter",
    "SMCConfig",
    "SMCResult",
]
