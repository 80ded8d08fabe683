"""
protocols.py - Interface definitions for DGPs and analyzers.

Uses typing.Protocol for structural subtyping: classes do NOT need to
explicitly inherit from these; they just need the right methods/properties.
"""
from typing import Optional, Protocol, runtime_checkable

import numpy as np
import pandas as pd

from results import TrialResult


@runtime_checkable
class DGPProtocol(Protocol):
    """Protocol for data generating processes."""

    def sample(self, rng: np.random.Generator) -> pd.DataFrame:
        """Generate one dataset.
        Must draw only from ``rng``; the same stream yields the same dataset.
        """
        ...

    @property
    def true_value(self) -> Optional[float]:
        """True value of the target parameter, or None if there is none.
        Must be derivable from the DGP's parameters alone."""
        ...

    @property
    def null_true(self) -> bool:
        """Whether the tested null hypothesis holds by construction."""
        ...


@runtime_checkable
class AnalyzerProtocol(Protocol):
    """Protocol for estimators and tests applied to one dataset.

    Analyzers testing a point null may also expose ``null_value``; the
    summary then labels rejections as Type-I error only when it equals the
    DGP's ``true_value``.
    """

    def analyze(self, data: pd.DataFrame) -> TrialResult:
        """Analyze one dataset (simulated or real) and return one result row."""
        ...

    @property
    def name(self) -> str:
        """Analyzer name for reporting."""
        ...
