"""
results.py - Trial result rows, failure capture, and per-scenario result collections.
"""

import dataclasses
import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from exceptions import IncompleteResultsError, InvalidParameterError, SimulationWarning

ROW_COLUMNS = [
    "trial", "analyzer", "estimate", "std_error", "p_value",
    "ci_lower", "ci_upper", "warned", "failed", "message",
]

# recorded on the trial result; anything else goes to the caller's filters
RECORDED_WARNINGS = (SimulationWarning, RuntimeWarning)


@dataclass(frozen=True)
class TrialResult:
    """
    One analyzer's output for one dataset.

    Every analyzer returns this same shape; quantities an analyzer does not
    produce stay NaN.

    Attributes
    ----------
    estimate : float
        Point estimate (or test statistic for omnibus tests).
    std_error : float
        Standard error of the estimate.
    p_value : float
        p-value of the analyzer's hypothesis test.
    ci_lower, ci_upper : float
        Confidence interval bounds.
    warned : bool
        True if the analysis emitted a warning.
    failed : bool
        True if the analysis raised instead of returning a value.
    message : str
        Warning or error text, empty when neither occurred.
    """
    estimate: float = np.nan
    std_error: float = np.nan
    p_value: float = np.nan
    ci_lower: float = np.nan
    ci_upper: float = np.nan
    warned: bool = False
    failed: bool = False
    message: str = ""

    @classmethod
    def failure(cls, message: str) -> "TrialResult":
        return cls(failed=True, message=message)

    def as_row(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    def __str__(self):
        if self.failed:
            return f"FAILED: {self.message}"
        return (f"estimate={self.estimate:.4f} se={self.std_error:.4f} "
                f"p={self.p_value:.4f} CI=[{self.ci_lower:.4f}, {self.ci_upper:.4f}]")


def safely(analyzer, data: pd.DataFrame, fail_on_warning: bool = False,
           capture: bool = True,
           categories: Tuple[type, ...] = RECORDED_WARNINGS) -> TrialResult:
    """
    Run ``analyzer.analyze(data)`` and return its result or its failure.

    Exceptions raised by the analyzer become ``TrialResult.failure``; warnings
    of the given ``categories`` emitted during the analysis set
    ``warned=True`` on the result, or turn it into a failure when
    ``fail_on_warning`` is True. Other warnings (e.g. a library's
    DeprecationWarning) are re-issued to the caller's filters and leave the
    result untouched. InvalidParameterError is a configuration problem and
    always propagates.

    Parameters
    ----------
    analyzer : AnalyzerProtocol
        Analyzer to run.
    data : pd.DataFrame
        One dataset.
    fail_on_warning : bool
        Treat a recorded warning as a failure.
    capture : bool
        If False, analyzer exceptions propagate; warnings are still recorded.
    categories : tuple of Warning subclasses
        Warning categories recorded on the result.

    Returns
    -------
    TrialResult
    """
    failure = None
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        try:
            result = analyzer.analyze(data)
        except InvalidParameterError:
            raise
        except Exception as e:
            if not capture:
                raise
            failure = TrialResult.failure(f"{type(e).__name__}: {e}")

    recorded = []
    for w in caught:
        if issubclass(w.category, categories):
            recorded.append(w)
        else:
            warnings.warn_explicit(w.message, w.category, w.filename, w.lineno)

    if failure is not None:
        return failure

    if not isinstance(result, TrialResult):
        raise TypeError(
            f"analyzer {analyzer.name!r} returned {type(result).__name__}, "
            f"expected TrialResult"
        )

    if recorded:
        message = "; ".join(sorted({str(w.message) for w in recorded}))
        if fail_on_warning:
            return TrialResult.failure(f"warning: {message}")
        result = dataclasses.replace(result, warned=True, message=message)
    return result


@dataclass
class ResultCollection:
    """
    All result rows for one scenario, in long format.

    ``rows`` holds one row per (completed trial, analyzer), with columns
    ``ROW_COLUMNS``. ``len()`` is the number of completed trials: attempted
    trials minus those dropped by the runner's ``drop`` policy.

    Attributes
    ----------
    rows : pd.DataFrame
        Long-format results.
    analyzers : tuple of str
        Analyzer names, in the order they were run.
    n_attempted : int
        Number of trials the runner executed.
    n_dropped : int
        Trials excluded for every analyzer because one of them failed.
    true_value : float or None
        The DGP's true value of the target parameter.
    null_true : bool or None
        Whether the DGP's null hypothesis holds.
    policy : str
        Failure policy the runner used.
    params : mapping
        Scenario parameters the DGP was built from.
    null_values : mapping
        Null value tested by each analyzer that declares one (its
        ``null_value`` attribute). The summary compares it to ``true_value``
        to decide whether that analyzer's rejections are Type-I errors or
        power; ``null_true`` is the fallback for the other analyzers.
    """
    rows: pd.DataFrame
    analyzers: Tuple[str, ...]
    n_attempted: int
    n_dropped: int = 0
    true_value: Optional[float] = None
    null_true: Optional[bool] = None
    policy: str = "drop"
    params: Mapping[str, Any] = field(default_factory=dict)
    null_values: Mapping[str, float] = field(default_factory=dict)

    def __len__(self) -> int:
        return self.n_attempted - self.n_dropped

    def completed_trials(self) -> np.ndarray:
        """Sorted indices of trials that contributed rows."""
        return np.sort(self.rows["trial"].unique())

    def for_analyzer(self, name: str) -> pd.DataFrame:
        if name not in self.analyzers:
            raise KeyError(f"unknown analyzer {name!r}; have {list(self.analyzers)}")
        return self.rows[self.rows["analyzer"] == name]

    def validate(self) -> None:
        """
        Check that every analyzer has exactly one row per completed trial.

        Raises
        ------
        IncompleteResultsError
            If rows name an unknown analyzer, an analyzer is missing rows,
            or analyzers cover different trials.
        """
        unknown = set(self.rows["analyzer"]) - set(self.analyzers)
        if unknown:
            raise IncompleteResultsError(f"rows for unknown analyzers: {sorted(unknown)}")

        expected = len(self)
        reference = None
        for name in self.analyzers:
            trials = self.for_analyzer(name)["trial"]
            if len(trials) != expected or trials.nunique() != expected:
                raise IncompleteResultsError(
                    f"analyzer {name!r} has {len(trials)} rows for "
                    f"{expected} completed trials"
                )
            trial_set = set(trials)
            if reference is None:
                reference = trial_set
            elif trial_set != reference:
                raise IncompleteResultsError(
                    f"analyzer {name!r} covers different trials than "
                    f"{self.analyzers[0]!r}"
                )
