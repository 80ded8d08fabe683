"""
Tests for the performance summaries.

Covers boundary-inclusive coverage, strict rejection, Wilson intervals, MCSE
formulas, failure/warning rates, and the aggregation preconditions.
"""

import numpy as np
import pandas as pd
import pytest

from analyzers import OneSampleTTest, OneWayANOVA
from dgps import ExponentialDGP, HeteroskedasticANOVADGP
from exceptions import EmptyResultsError, IncompleteResultsError, InvalidParameterError
from results import ResultCollection
from runner import SimulationRunner
from summary import (
    SUMMARY_COLUMNS,
    mcse_bias,
    mcse_rmse,
    summarize,
    summarize_analyzer,
    wilson_interval,
)


class TestWilsonInterval:

    def test_known_values(self):
        lo, hi = wilson_interval(9500, 10000)
        assert lo == pytest.approx(0.94555, abs=1e-4)
        assert hi == pytest.approx(0.95410, abs=1e-4)

    def test_extremes_stay_in_unit_interval(self):
        lo, hi = wilson_interval(0, 20)
        assert lo == 0.0 and 0.0 < hi < 0.2
        lo, hi = wilson_interval(20, 20)
        assert 0.8 < lo < 1.0 and hi == pytest.approx(1.0)

    def test_zero_trials_is_nan(self):
        lo, hi = wilson_interval(0, 0)
        assert np.isnan(lo) and np.isnan(hi)

    def test_higher_level_is_wider(self):
        lo95, hi95 = wilson_interval(30, 100, 0.95)
        lo99, hi99 = wilson_interval(30, 100, 0.99)
        assert lo99 < lo95 and hi99 > hi95


class TestMCSE:

    def test_mcse_bias(self):
        est = np.array([1.0, 2.0, 3.0, 4.0])
        assert mcse_bias(est) == pytest.approx(est.std(ddof=1) / 2.0)
        assert np.isnan(mcse_bias(np.array([1.0])))

    def test_mcse_rmse_zero_errors(self):
        assert mcse_rmse(np.zeros(10)) == 0.0

    def test_mcse_rmse_delta_method(self):
        err = np.array([-1.0, 1.0, -2.0, 2.0])
        sq = err ** 2
        expected = sq.std(ddof=1) / 2.0 / (2 * np.sqrt(sq.mean()))
        assert mcse_rmse(err) == pytest.approx(expected)


class TestCoverageAndRejection:

    def test_endpoints_are_inclusive(self, make_collection):
        coll = make_collection(
            true_value=1.0,
            estimate=[1.0, 1.0, 1.0, 1.0],
            ci_lower=[1.0, 0.0, 0.5, 1.0001],
            ci_upper=[2.0, 1.0, 1.5, 2.0],
        )
        s = summarize_analyzer(coll, "a")
        assert s.coverage == pytest.approx(0.75)

    def test_rejection_is_strict(self, make_collection):
        coll = make_collection(p_value=[0.01, 0.05, 0.049999, 0.5])
        s = summarize_analyzer(coll, "a", alpha=0.05)
        assert s.rejection_rate == pytest.approx(0.5)

    def test_alpha_threshold_configurable(self, make_collection):
        coll = make_collection(p_value=[0.01, 0.05, 0.08, 0.5])
        assert summarize_analyzer(coll, "a", alpha=0.10).rejection_rate == pytest.approx(0.75)

    def test_proportion_intervals_reported(self, make_collection):
        coll = make_collection(
            estimate=[1.0] * 10,
            ci_lower=[0.0] * 9 + [2.0],
            ci_upper=[2.0] * 10,
            p_value=[0.01] * 3 + [0.5] * 7,
        )
        s = summarize_analyzer(coll, "a")
        assert s.coverage == pytest.approx(0.9)
        assert (s.coverage_lower, s.coverage_upper) == pytest.approx(wilson_interval(9, 10))
        assert (s.rejection_lower, s.rejection_upper) == pytest.approx(wilson_interval(3, 10))

    def test_mean_width(self, make_collection):
        coll = make_collection(estimate=[0.0, 0.0], ci_lower=[-1.0, -2.0], ci_upper=[1.0, 2.0])
        assert summarize_analyzer(coll, "a").mean_width == pytest.approx(3.0)

    def test_missing_interval_gives_nan_not_zero(self, make_collection):
        coll = make_collection(estimate=[1.0, 2.0], p_value=[0.2, 0.01])
        s = summarize_analyzer(coll, "a")
        assert np.isnan(s.coverage)
        assert np.isnan(s.coverage_lower)
        assert np.isnan(s.mean_width)
        assert s.rejection_rate == pytest.approx(0.5)

    def test_missing_pvalue_gives_nan(self, make_collection):
        coll = make_collection(estimate=[1.0, 2.0])
        assert np.isnan(summarize_analyzer(coll, "a").rejection_rate)


class TestPointEstimates:

    def test_bias_sd_rmse(self, make_collection):
        est = [0.5, 1.5, 2.0, 1.0]
        coll = make_collection(true_value=1.0, estimate=est)
        s = summarize_analyzer(coll, "a")
        diff = np.array(est) - 1.0
        assert s.mean == pytest.approx(1.25)
        assert s.bias == pytest.approx(0.25)
        assert s.sd == pytest.approx(np.std(est, ddof=1))
        assert s.rmse == pytest.approx(np.sqrt((diff ** 2).mean()))
        assert s.bias_lower < s.bias < s.bias_upper
        assert s.bias_mcse == pytest.approx(np.std(est, ddof=1) / 2.0)

    def test_nan_estimates_are_ignored(self, make_collection):
        coll = make_collection(true_value=0.0, estimate=[1.0, np.nan, 3.0])
        s = summarize_analyzer(coll, "a")
        assert s.n_valid == 2
        assert s.mean == pytest.approx(2.0)

    def test_single_trial_sd_zero(self, make_collection):
        s = summarize_analyzer(make_collection(estimate=[2.0]), "a")
        assert s.sd == 0.0
        assert np.isnan(s.bias_mcse)

    def test_no_truth_leaves_truth_metrics_nan(self, make_collection):
        coll = make_collection(true_value=None, estimate=[3.0, 4.0],
                               ci_lower=[2.0, 3.0], ci_upper=[4.0, 5.0], p_value=[0.01, 0.2])
        s = summarize_analyzer(coll, "a")
        assert s.mean == pytest.approx(3.5)
        assert np.isnan(s.bias) and np.isnan(s.rmse) and np.isnan(s.coverage)
        assert np.isnan(s.true_value)
        assert s.rejection_rate == pytest.approx(0.5)


class TestFailureRates:

    def test_flagged_failures_excluded_from_point_summaries(self, make_collection):
        coll = make_collection(
            policy="flag",
            true_value=0.0,
            estimate=[1.0, 3.0, np.nan],
            ci_lower=[-1.0, 2.0, np.nan],
            ci_upper=[2.0, 4.0, np.nan],
            failed=[False, False, True],
        )
        s = summarize_analyzer(coll, "a")
        assert s.n_trials == 3
        assert s.n_failed == 1
        assert s.failure_rate == pytest.approx(1 / 3)
        assert s.n_valid == 2
        assert s.coverage == pytest.approx(0.5)

    def test_dropped_trials_count_as_failures(self, make_collection):
        coll = make_collection(estimate=[1.0, 1.0, 1.0], n_dropped=1)
        s = summarize_analyzer(coll, "a")
        assert s.n_trials == 4
        assert s.failure_rate == pytest.approx(0.25)

    def test_warning_rate(self, make_collection):
        coll = make_collection(estimate=[1.0] * 4, warned=[True, False, False, True])
        assert summarize_analyzer(coll, "a").warning_rate == pytest.approx(0.5)


class TestSummarize:
    """Table-level summary and its preconditions."""

    def test_empty_collection_raises(self):
        runner = SimulationRunner(ExponentialDGP(n=10), OneSampleTTest(mu0=1.0))
        coll = runner.simulate(n_sim=0, seed=1)
        with pytest.raises(EmptyResultsError, match="zero trials"):
            summarize(coll)

    def test_incomplete_collection_raises(self):
        runner = SimulationRunner(ExponentialDGP(n=10), OneSampleTTest(mu0=1.0))
        coll = runner.simulate(n_sim=10, seed=1)
        broken = ResultCollection(coll.rows.iloc[:-1], coll.analyzers, coll.n_attempted,
                                  true_value=coll.true_value)
        with pytest.raises(IncompleteResultsError):
            summarize(broken)

    def test_all_trials_failed_reports_failure_rate(self, failing_analyzer):
        runner = SimulationRunner(ExponentialDGP(n=10), [OneSampleTTest(mu0=1.0), failing_analyzer])
        table = summarize(runner.simulate(n_sim=20, seed=1))
        assert (table["failure_rate"] == 1.0).all()
        assert table["coverage"].isna().all()
        assert table["mean"].isna().all()
        assert (table["n_valid"] == 0).all()

    def test_one_row_per_analyzer_fixed_columns(self, flaky_analyzer):
        runner = SimulationRunner(ExponentialDGP(n=10), [OneSampleTTest(mu0=1.0), flaky_analyzer])
        table = summarize(runner.simulate(n_sim=200, seed=5))
        assert list(table.columns) == SUMMARY_COLUMNS
        assert table["analyzer"].tolist() == ["t-test", "flaky"]
        assert table["n_valid"].nunique() == 1
        assert (table["failure_rate"] > 0).all()

    def test_deterministic(self):
        runner = SimulationRunner(ExponentialDGP(n=10), OneSampleTTest(mu0=1.0))
        coll = runner.simulate(n_sim=100, seed=4)
        pd.testing.assert_frame_equal(summarize(coll), summarize(coll))

    def test_null_label_follows_analyzer_null_value(self):
        dgp = ExponentialDGP(n=10, rate=1.0)
        wrong_null = summarize(SimulationRunner(dgp, OneSampleTTest()).simulate(n_sim=50, seed=3))
        right_null = summarize(
            SimulationRunner(dgp, OneSampleTTest(mu0=1.0)).simulate(n_sim=50, seed=3))
        assert not bool(wrong_null.loc[0, "null_true"])
        assert wrong_null.loc[0, "rejection_rate"] > 0.5
        assert bool(right_null.loc[0, "null_true"])

    def test_null_label_falls_back_to_dgp(self, make_collection):
        coll = make_collection(estimate=[1.0, 2.0], p_value=[0.2, 0.01])
        assert summarize_analyzer(coll, "a").null_true is True

    def test_type_one_error_labelled(self):
        dgp = HeteroskedasticANOVADGP(mu=[0, 0], sigma_sq=[1, 1], sample_size=[5, 5])
        table = summarize(SimulationRunner(dgp, OneWayANOVA()).simulate(n_sim=50, seed=2))
        assert bool(table.loc[0, "null_true"])
        assert np.isnan(table.loc[0, "coverage"])
        assert 0.0 <= table.loc[0, "rejection_rate"] <= 1.0

    @pytest.mark.parametrize("kwargs", [{"alpha": 0.0}, {"alpha": 1.0}, {"conf_level": 1.2}])
    def test_invalid_levels(self, make_collection, kwargs):
        with pytest.raises(InvalidParameterError):
            summarize(make_collection(estimate=[1.0]), **kwargs)
