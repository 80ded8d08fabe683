"""dgps package - Data Generating Processes."""

from dgps.one_sample_dgp import (
    NormalDGP, ExponentialDGP, StudentTDGP, UniformDGP, FAMILIES, one_sample_dgp,
)
from dgps.anova_dgp import HeteroskedasticANOVADGP

__all__ = [
    "NormalDGP",
    "ExponentialDGP",
    "StudentTDGP",
    "UniformDGP",
    "HeteroskedasticANOVADGP",
    "FAMILIES",
    "one_sample_dgp",
]
