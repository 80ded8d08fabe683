"""
analyzers/anova.py - Omnibus tests of equal group means.

Contains:
- OneWayANOVA: classical F test, pooled variance (scipy)
- WelchANOVA: Welch's F test, group-specific variances (statsmodels)

Both report the F statistic as ``estimate`` and its p-value; neither has an
interval or a standard error.

References
----------
Welch, B. L. (1951). On the comparison of several mean values: an
alternative approach. Biometrika, 38(3/4), 330-336.
"""

import warnings

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.oneway import anova_oneway

from exceptions import InsufficientDataError, InvalidParameterError, SmallSampleWarning
from results import TrialResult


class OneWayANOVA:
    """
    One-way ANOVA F test of H0: all group means are equal.

    Parameters
    ----------
    use_var : {'equal', 'unequal'}
        'equal' gives the classical pooled-variance F test, 'unequal'
        gives Welch's test.
    y : str
        Name of outcome column
    group : str
        Name of group label column
    """

    _labels = {"equal": "ANOVA F", "unequal": "Welch F"}

    def __init__(self, use_var: str = "equal", y: str = "y", group: str = "group"):
        if use_var not in self._labels:
            raise InvalidParameterError(
                f"use_var must be one of {sorted(self._labels)}, got {use_var!r}")
        self.use_var = use_var
        self.y = y
        self.group = group

    def analyze(self, data: pd.DataFrame) -> TrialResult:
        groups = [g[self.y].to_numpy(dtype=float)
                  for _, g in data.groupby(self.group, sort=True)]
        if len(groups) < 2:
            raise InsufficientDataError(
                f"ANOVA needs at least 2 groups, got {len(groups)}")

        sizes = np.array([len(g) for g in groups])
        singletons = int((sizes < 2).sum())
        if singletons:
            if self.use_var == "unequal":
                raise InsufficientDataError(
                    f"Welch F needs 2+ observations per group; "
                    f"{singletons} group(s) have one")
            warnings.warn(
                f"{singletons} group(s) with a single observation",
                SmallSampleWarning, stacklevel=2)

        if self.use_var == "unequal" and any(np.var(g) == 0 for g in groups):
            raise InsufficientDataError("Welch F is undefined with a zero-variance group")

        if self.use_var == "equal":
            res = stats.f_oneway(*groups)
        else:
            res = anova_oneway(groups, use_var="unequal")

        return TrialResult(
            estimate=float(res.statistic),
            p_value=float(res.pvalue),
        )

    @property
    def name(self) -> str:
        """Analyzer name for reporting."""
        return self._labels[self.use_var]


class WelchANOVA(OneWayANOVA):
    """Welch's heteroskedasticity-robust F test."""

    def __init__(self, y: str = "y", group: str = "group"):
        super().__init__(use_var="unequal", y=y, group=group)
