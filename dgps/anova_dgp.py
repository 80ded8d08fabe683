"""
dgps/anova_dgp.py - k-group normal data with unequal variances.

DGP: y_ij = mu_j + sqrt(sigma_sq_j) * eps_ij, eps_ij ~ N(0, 1),
     j = 1..k, i = 1..sample_size_j

Rows are emitted grouped: all of group 1, then group 2, ...
"""

from typing import Optional, Sequence

import numpy as np
import pandas as pd

from exceptions import InvalidParameterError
from validation import check_equal_lengths


class HeteroskedasticANOVADGP:
    """
    One-way layout with group-specific means, variances and sizes.

    Used to compare the classical ANOVA F test with Welch's test: when
    group sizes and variances are paired, the classical test's Type-I
    error drifts away from its nominal level.

    Parameters
    ----------
    mu : sequence of float
        Group means.
    sigma_sq : sequence of float
        Group variances, all > 0.
    sample_size : sequence of int
        Group sizes, all >= 1.

    Raises
    ------
    InvalidParameterError
        If the three vectors differ in length. Values are never recycled.

    Example
    -------
    >>> dgp = HeteroskedasticANOVADGP(mu=[1, 2, 5, 6], sigma_sq=[3, 2, 5, 1],
    ...                               sample_size=[3, 6, 2, 4])
    >>> dgp.sample(np.random.default_rng(7)).shape
    (15, 2)
    """

    def __init__(self, mu: Sequence[float], sigma_sq: Sequence[float],
                 sample_size: Sequence[int]):
        self.n_groups = check_equal_lengths(
            mu=mu, sigma_sq=sigma_sq, sample_size=sample_size)

        self.mu = np.asarray(mu, dtype=float)
        self.sigma_sq = np.asarray(sigma_sq, dtype=float)
        self.sample_size = np.asarray(sample_size)

        if not np.all(np.isfinite(self.mu)):
            raise InvalidParameterError("mu must be finite")
        if not np.all(np.isfinite(self.sigma_sq)) or np.any(self.sigma_sq <= 0):
            raise InvalidParameterError(f"sigma_sq must be > 0, got {list(sigma_sq)}")
        if (not np.issubdtype(self.sample_size.dtype, np.integer)
                or np.any(self.sample_size < 1)):
            raise InvalidParameterError(
                f"sample_size must be integers >= 1, got {list(sample_size)}")

    def sample(self, rng: np.random.Generator) -> pd.DataFrame:
        group = np.repeat(np.arange(1, self.n_groups + 1), self.sample_size)
        idx = group - 1
        y = rng.normal(self.mu[idx], np.sqrt(self.sigma_sq[idx]))
        return pd.DataFrame({"group": group, "y": y})

    @property
    def N(self) -> int:
        return int(self.sample_size.sum())

    @property
    def true_value(self) -> Optional[float]:
        """No scalar target: the omnibus tests only carry a null/alternative truth."""
        return None

    @property
    def null_true(self) -> bool:
        return bool(np.all(self.mu == self.mu[0]))

    @property
    def params(self):
        return {
            "mu": self.mu.tolist(),
            "sigma_sq": self.sigma_sq.tolist(),
            "sample_size": self.sample_size.tolist(),
        }

    def describe(self) -> str:
        """Return a description of the DGP configuration."""
        lines = [
            f"Heteroskedastic ANOVA DGP ({self.n_groups} groups, N={self.N}):",
        ]
        for j in range(self.n_groups):
            lines.append(
                f"  group {j + 1}: mu={self.mu[j]}, sigma_sq={self.sigma_sq[j]}, "
                f"n={self.sample_size[j]}")
        lines.append(f"  Null (equal means) holds: {self.null_true}")
        return "\n".join(lines)
