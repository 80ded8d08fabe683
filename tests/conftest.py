"""
Pytest configuration file providing shared fixtures and helper analyzers.
"""
import warnings

import numpy as np
import pandas as pd
import pytest

from exceptions import InsufficientDataError, InvalidParameterError, SimulationWarning
from results import ResultCollection, TrialResult, ROW_COLUMNS


class FirstObsAnalyzer:
    """Fails whenever the first observation exceeds ``cutoff``."""

    def __init__(self, cutoff: float = 2.0, label: str = "flaky"):
        self.cutoff = cutoff
        self.label = label

    def analyze(self, data):
        y0 = float(data["y"].iloc[0])
        if y0 > self.cutoff:
            raise InsufficientDataError(f"first observation {y0:.3f} too large")
        return TrialResult(estimate=float(data["y"].mean()))

    @property
    def name(self):
        return self.label


class WarningAnalyzer:
    """Warns on every call but still returns an estimate."""

    def analyze(self, data):
        warnings.warn("numerical trouble", SimulationWarning)
        return TrialResult(estimate=float(data["y"].mean()))

    @property
    def name(self):
        return "warner"


class ConfigErrorAnalyzer:
    """Raises a configuration error, which must never be captured."""

    def analyze(self, data):
        raise InvalidParameterError("misconfigured analyzer")

    @property
    def name(self):
        return "misconfigured"


class AlwaysFailsAnalyzer:
    def analyze(self, data):
        raise RuntimeError("did not converge")

    @property
    def name(self):
        return "broken"


@pytest.fixture
def flaky_analyzer():
    return FirstObsAnalyzer()


@pytest.fixture
def warning_analyzer():
    return WarningAnalyzer()


@pytest.fixture
def config_error_analyzer():
    return ConfigErrorAnalyzer()


@pytest.fixture
def failing_analyzer():
    return AlwaysFailsAnalyzer()


@pytest.fixture
def normal_data():
    """Small normal sample with known mean 0."""
    rng = np.random.default_rng(42)
    return pd.DataFrame({"id": np.arange(1, 21), "y": rng.normal(0.0, 1.0, 20)})


@pytest.fixture
def make_collection():
    """
    Build a single-analyzer ResultCollection from interval/p-value columns.

    Usage: make_collection(estimate=[...], ci_lower=[...], ...).
    """
    def _make(true_value=1.0, n_attempted=None, n_dropped=0, analyzer="a",
              policy="drop", **columns):
        n = len(next(iter(columns.values()))) if columns else 0
        rows = pd.DataFrame({
            "trial": np.arange(n),
            "analyzer": [analyzer] * n,
            "estimate": columns.get("estimate", [np.nan] * n),
            "std_error": columns.get("std_error", [np.nan] * n),
            "p_value": columns.get("p_value", [np.nan] * n),
            "ci_lower": columns.get("ci_lower", [np.nan] * n),
            "ci_upper": columns.get("ci_upper", [np.nan] * n),
            "warned": columns.get("warned", [False] * n),
            "failed": columns.get("failed", [False] * n),
            "message": [""] * n,
        }, columns=ROW_COLUMNS)
        return ResultCollection(
            rows=rows,
            analyzers=(analyzer,),
            n_attempted=n + n_dropped if n_attempted is None else n_attempted,
            n_dropped=n_dropped,
            true_value=true_value,
            null_true=True,
            policy=policy,
        )
    return _make
