"""
summary.py - Performance summaries of a result collection.

Reduces the rows of one scenario to one summary per analyzer: point-estimate
performance (mean, bias, SD, RMSE), interval coverage, rejection rate, and
failure/warning rates. Every Monte Carlo estimate carries its own simulation
uncertainty: Wilson intervals for proportions, MCSE-based intervals for bias.

References
----------
Morris, T. P., White, I. R., & Crowther, M. J. (2019). Using simulation
studies to evaluate statistical methods. Statistics in Medicine, 38(11),
2074-2102.
"""

import logging
from dataclasses import asdict, dataclass, fields
from typing import Optional, Tuple

import numpy as np
import pandas as pd
from scipy import stats

from exceptions import EmptyResultsError
from results import ResultCollection
from validation import check_probability

logger = logging.getLogger(__name__)


@dataclass
class PerformanceSummary:
    """Performance of one analyzer over one scenario's trials."""
    analyzer: str
    n_trials: int
    n_valid: int
    n_failed: int
    failure_rate: float
    warning_rate: float
    true_value: float
    null_true: Optional[bool]
    mean: float
    bias: float
    bias_mcse: float
    bias_lower: float
    bias_upper: float
    sd: float
    rmse: float
    rmse_mcse: float
    coverage: float
    coverage_lower: float
    coverage_upper: float
    mean_width: float
    rejection_rate: float
    rejection_lower: float
    rejection_upper: float
    alpha: float
    conf_level: float

    def __str__(self):
        return (f"Mean={self.mean:.4f}, Bias={self.bias:.4f}, "
                f"SD={self.sd:.4f}, RMSE={self.rmse:.4f}, "
                f"Coverage={self.coverage:.4f} [{self.coverage_lower:.4f}, "
                f"{self.coverage_upper:.4f}], Reject={self.rejection_rate:.4f}, "
                f"N={self.n_valid}/{self.n_trials}")


SUMMARY_COLUMNS = [f.name for f in fields(PerformanceSummary)]


def wilson_interval(k: int, n: int, conf_level: float = 0.95) -> Tuple[float, float]:
    """
    Wilson score interval for a binomial proportion k/n.

    Returns (nan, nan) when n == 0.

    >>> lo, hi = wilson_interval(9500, 10000)
    >>> round(lo, 4), round(hi, 4)
    (0.9456, 0.9541)
    """
    if n == 0:
        return np.nan, np.nan
    ci = stats.binomtest(int(k), int(n)).proportion_ci(
        confidence_level=conf_level, method="wilson")
    return float(ci.low), float(ci.high)


def mcse_bias(estimates: np.ndarray) -> float:
    """Monte Carlo standard error of the mean of ``estimates``."""
    n = len(estimates)
    if n < 2:
        return np.nan
    return float(estimates.std(ddof=1) / np.sqrt(n))


def mcse_rmse(errors: np.ndarray) -> float:
    """Monte Carlo standard error of sqrt(mean(errors**2)) by the delta method."""
    n = len(errors)
    if n < 2:
        return np.nan
    sq = errors ** 2
    mse = sq.mean()
    if mse == 0:
        return 0.0
    mcse_mse = sq.std(ddof=1) / np.sqrt(n)
    return float(mcse_mse / (2.0 * np.sqrt(mse)))


def _proportion(hits: np.ndarray, conf_level: float) -> Tuple[float, float, float]:
    n = len(hits)
    if n == 0:
        return np.nan, np.nan, np.nan
    k = int(hits.sum())
    lo, hi = wilson_interval(k, n, conf_level)
    return k / n, lo, hi


def summarize_analyzer(collection: ResultCollection, name: str,
                       alpha: float = 0.05, conf_level: float = 0.95) -> PerformanceSummary:
    """
    Compute the performance summary of one analyzer.

    Parameters
    ----------
    collection : ResultCollection
        Complete results of one scenario.
    name : str
        Analyzer to summarize.
    alpha : float
        Significance threshold; a trial rejects when ``p_value < alpha``.
    conf_level : float
        Confidence level of the simulation-uncertainty intervals.

    Returns
    -------
    PerformanceSummary
        Metrics the analyzer does not support (no interval, no p-value, or a
        DGP without a true value) are NaN.
    """
    rows = collection.for_analyzer(name)
    failed = rows["failed"].to_numpy(dtype=bool)
    ok = rows[~failed]

    n_trials = collection.n_attempted
    n_failed = collection.n_dropped + int(failed.sum())
    failure_rate = n_failed / n_trials
    warned = ok["warned"].to_numpy(dtype=bool)
    warning_rate = float(warned.mean()) if len(ok) else np.nan

    truth = collection.true_value
    truth = np.nan if truth is None else float(truth)

    # the analyzer's own null value decides Type-I error vs power
    null_true = collection.null_true
    null_value = collection.null_values.get(name)
    if null_value is not None and not np.isnan(truth):
        null_true = bool(np.isclose(null_value, truth))

    est = ok["estimate"].to_numpy(dtype=float)
    est = est[~np.isnan(est)]
    n_valid = len(est)

    mean = bias = b_mcse = b_lo = b_hi = sd = rmse = r_mcse = np.nan
    if n_valid:
        mean = float(est.mean())
        sd = float(est.std(ddof=1)) if n_valid > 1 else 0.0
        if not np.isnan(truth):
            diff = est - truth
            bias = float(diff.mean())
            rmse = float(np.sqrt((diff ** 2).mean()))
            b_mcse = mcse_bias(est)
            r_mcse = mcse_rmse(diff)
            z = stats.norm.ppf(0.5 + conf_level / 2.0)
            b_lo, b_hi = bias - z * b_mcse, bias + z * b_mcse

    lower = ok["ci_lower"].to_numpy(dtype=float)
    upper = ok["ci_upper"].to_numpy(dtype=float)
    has_ci = ~(np.isnan(lower) | np.isnan(upper))
    coverage = cov_lo = cov_hi = mean_width = np.nan
    if has_ci.any():
        mean_width = float((upper[has_ci] - lower[has_ci]).mean())
        if not np.isnan(truth):
            covered = (lower[has_ci] <= truth) & (truth <= upper[has_ci])
            coverage, cov_lo, cov_hi = _proportion(covered, conf_level)

    p = ok["p_value"].to_numpy(dtype=float)
    p = p[~np.isnan(p)]
    rejection_rate, rej_lo, rej_hi = _proportion(p < alpha, conf_level)

    return PerformanceSummary(
        analyzer=name,
        n_trials=n_trials,
        n_valid=n_valid,
        n_failed=n_failed,
        failure_rate=failure_rate,
        warning_rate=warning_rate,
        true_value=truth,
        null_true=null_true,
        mean=mean,
        bias=bias,
        bias_mcse=b_mcse,
        bias_lower=b_lo,
        bias_upper=b_hi,
        sd=sd,
        rmse=rmse,
        rmse_mcse=r_mcse,
        coverage=coverage,
        coverage_lower=cov_lo,
        coverage_upper=cov_hi,
        mean_width=mean_width,
        rejection_rate=rejection_rate,
        rejection_lower=rej_lo,
        rejection_upper=rej_hi,
        alpha=alpha,
        conf_level=conf_level,
    )


def summarize(collection: ResultCollection, alpha: float = 0.05,
              conf_level: float = 0.95) -> pd.DataFrame:
    """
    Summarize every analyzer of a result collection.

    Parameters
    ----------
    collection : ResultCollection
        Results of one scenario, as returned by ``SimulationRunner.simulate``.
    alpha : float
        Significance threshold for rejection rates.
    conf_level : float
        Confidence level of the simulation-uncertainty intervals.

    Returns
    -------
    pd.DataFrame
        One row per analyzer, columns ``SUMMARY_COLUMNS``.

    Raises
    ------
    EmptyResultsError
        If no trials were attempted.
    IncompleteResultsError
        If some analyzer lacks rows for a completed trial.
    """
    alpha = check_probability(alpha, "alpha")
    conf_level = check_probability(conf_level, "conf_level")

    if collection.n_attempted == 0:
        raise EmptyResultsError("cannot summarize a result collection with zero trials")
    collection.validate()

    if len(collection) == 0:
        logger.warning("All %d trials failed; point metrics are undefined",
                       collection.n_attempted)

    rows = [asdict(summarize_analyzer(collection, name, alpha, conf_level))
            for name in collection.analyzers]
    return pd.DataFrame(rows, columns=SUMMARY_COLUMNS)
