"""
sweep.py - Multi-scenario simulation studies.

Runs the generate -> analyze -> repeat -> summarize pipeline once per point of
a factorial design (or an explicit list of design points) and stacks the
per-scenario summaries into one study results table, one row per
(scenario, analyzer).
"""

import itertools
import logging
from concurrent.futures import FIRST_COMPLETED, ProcessPoolExecutor, wait
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from exceptions import InvalidParameterError
from runner import FailurePolicy, SeedLike, SimulationRunner, as_policy, fresh_seed_sequence
from summary import SUMMARY_COLUMNS, summarize
from validation import check_positive_int, check_probability

logger = logging.getLogger(__name__)

Design = Union[Mapping[str, Sequence[Any]], Sequence[Mapping[str, Any]]]


@dataclass(frozen=True)
class Scenario:
    """One point of the design space. ``params`` is read-only."""
    index: int
    params: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))

    @property
    def label(self) -> str:
        return ", ".join(f"{k}={v}" for k, v in self.params.items())


def expand_grid(factors: Mapping[str, Sequence[Any]]) -> List[Dict[str, Any]]:
    """
    Cross all factor levels into a full factorial design.

    The last factor varies fastest.

    >>> expand_grid({"n": [10, 20], "rate": [1, 2]})
    [{'n': 10, 'rate': 1}, {'n': 10, 'rate': 2}, {'n': 20, 'rate': 1}, {'n': 20, 'rate': 2}]
    """
    if not factors:
        raise InvalidParameterError("a factorial design needs at least one factor")
    for name, levels in factors.items():
        if isinstance(levels, (str, bytes)) or not isinstance(levels, Sequence):
            raise InvalidParameterError(
                f"levels of factor {name!r} must be a sequence, got {type(levels).__name__}")
        if len(levels) == 0:
            raise InvalidParameterError(f"factor {name!r} has no levels")

    names = list(factors)
    return [dict(zip(names, combo))
            for combo in itertools.product(*(factors[k] for k in names))]


def run_scenario(dgp, analyzers, n_sim: int, seed_seq: np.random.SeedSequence,
                 policy: FailurePolicy, fail_on_warning: bool, alpha: float,
                 conf_level: float, n_workers: int = 1,
                 params: Optional[Mapping[str, Any]] = None,
                 verbose: bool = False) -> pd.DataFrame:
    """Repeat and summarize one scenario. Module-level so worker processes can run it."""
    runner = SimulationRunner(dgp, analyzers, policy=policy,
                              fail_on_warning=fail_on_warning)
    collection = runner.simulate(n_sim=n_sim, seed=seed_seq, n_workers=n_workers,
                                 params=params, verbose=verbose)
    return summarize(collection, alpha=alpha, conf_level=conf_level)


class ScenarioSweep:
    """
    Scenario sweep over a design of DGP parameters.

    Parameters
    ----------
    dgp_factory : callable
        Called as ``dgp_factory(**fixed, **params)`` for each scenario; usually
        a DGP class.
    analyzers : AnalyzerProtocol or sequence of them
        Analyzers applied in every trial of every scenario.
    n_sim : int
        Trials per scenario.
    seed : int, sequence of int, SeedSequence or None
        Master seed. Scenario i uses the i-th child of ``SeedSequence(seed)``.
    policy : {'drop', 'abort', 'flag'}
        Failure policy passed to each SimulationRunner.
    fixed : mapping, optional
        Parameters shared by every scenario.
    alpha : float
        Significance threshold for rejection rates.
    conf_level : float
        Confidence level of the simulation-uncertainty intervals.
    fail_on_warning : bool
        Treat analyzer warnings as failures.
    failure_warn_threshold : float
        Scenarios whose failure rate exceeds this are logged at WARNING.

    Example
    -------
    >>> from dgps import ExponentialDGP
    >>> from analyzers import OneSampleTTest
    >>> sweep = ScenarioSweep(ExponentialDGP, OneSampleTTest(mu0=1.0),
    ...                       n_sim=1000, seed=20, fixed={"rate": 1.0})
    >>> table = sweep.run({"n": [5, 10, 20, 40]})
    >>> len(table)
    4
    """

    def __init__(self, dgp_factory: Callable[..., Any], analyzers, n_sim: int = 1000,
                 seed: SeedLike = None, policy: Union[str, FailurePolicy] = "drop",
                 fixed: Optional[Mapping[str, Any]] = None, alpha: float = 0.05,
                 conf_level: float = 0.95, fail_on_warning: bool = False,
                 failure_warn_threshold: float = 0.1):
        if not callable(dgp_factory):
            raise InvalidParameterError("dgp_factory must be callable")
        self.dgp_factory = dgp_factory
        self.analyzers = analyzers
        self.n_sim = check_positive_int(n_sim, "n_sim")
        self.seed = seed
        self.policy = as_policy(policy)
        self.fixed = dict(fixed or {})
        self.alpha = check_probability(alpha, "alpha")
        self.conf_level = check_probability(conf_level, "conf_level")
        self.fail_on_warning = bool(fail_on_warning)
        self.failure_warn_threshold = float(failure_warn_threshold)

    def scenarios(self, design: Design) -> List[Scenario]:
        """
        Resolve a design into scenarios.

        A mapping of factor -> levels is crossed into a full factorial; a
        sequence of mappings is taken as an explicit (partial) design.
        """
        if isinstance(design, Mapping):
            points = expand_grid(design)
        else:
            points = [dict(p) for p in design]
            if not points:
                raise InvalidParameterError("design has no scenarios")

        out = []
        for i, params in enumerate(points):
            clash = set(params) & set(self.fixed)
            if clash:
                raise InvalidParameterError(
                    f"scenario {i} sets fixed parameter(s) {sorted(clash)}")
            reserved = set(params) & (set(SUMMARY_COLUMNS) | {"scenario"})
            if reserved:
                raise InvalidParameterError(
                    f"factor name(s) {sorted(reserved)} collide with result columns")
            out.append(Scenario(index=i, params=params))
        return out

    def build_dgp(self, scenario: Scenario):
        """Construct the scenario's DGP; invalid parameters raise immediately."""
        return self.dgp_factory(**self.fixed, **scenario.params)

    def run(self, design: Design, n_workers: int = 1, scenario_workers: int = 1,
            cancel=None, verbose: bool = False) -> pd.DataFrame:
        """
        Run every scenario and stack the summaries.

        Parameters
        ----------
        design : mapping or sequence of mappings
            Factorial design (factor -> levels) or explicit scenario list.
        n_workers : int
            Worker processes per scenario (trial-level parallelism).
        scenario_workers : int
            Worker processes across scenarios (one scenario per worker).
            Cannot be combined with ``n_workers > 1``.
        cancel : event-like, optional
            Object with ``is_set()``, e.g. ``threading.Event``. Checked
            between scenarios: running scenarios finish, no new ones start.
        verbose : bool
            Log trial progress at INFO.

        Returns
        -------
        pd.DataFrame
            Columns ``scenario``, the design's factor columns, then the
            summary columns; one row per (scenario, analyzer), ordered by
            scenario. ``attrs['cancelled']`` and ``attrs['n_scenarios']``
            record whether the sweep stopped early.
        """
        n_workers = check_positive_int(n_workers, "n_workers")
        scenario_workers = check_positive_int(scenario_workers, "scenario_workers")
        if n_workers > 1 and scenario_workers > 1:
            raise InvalidParameterError(
                "use either trial-level workers (n_workers) or scenario-level "
                "workers (scenario_workers), not both")

        scenarios = self.scenarios(design)
        # every DGP is built before any trial runs
        dgps = [self.build_dgp(sc) for sc in scenarios]
        seed_seqs = fresh_seed_sequence(self.seed).spawn(len(scenarios))

        logger.info("Sweep: %d scenarios x %d trials (policy=%s)",
                    len(scenarios), self.n_sim, self.policy.value)

        jobs = [
            (sc, dict(analyzers=self.analyzers, n_sim=self.n_sim, seed_seq=ss,
                      policy=self.policy, fail_on_warning=self.fail_on_warning,
                      alpha=self.alpha, conf_level=self.conf_level,
                      n_workers=n_workers, params=dict(sc.params), verbose=verbose),
             dgp)
            for sc, ss, dgp in zip(scenarios, seed_seqs, dgps)
        ]

        if scenario_workers > 1 and len(jobs) > 1:
            frames = self._run_parallel(jobs, scenario_workers, cancel)
        else:
            frames = self._run_sequential(jobs, cancel)

        cancelled = len(frames) < len(scenarios)
        if cancelled:
            logger.warning("Sweep cancelled: %d of %d scenarios not run",
                           len(scenarios) - len(frames), len(scenarios))

        factor_names = list(dict.fromkeys(k for sc in scenarios for k in sc.params))
        if frames:
            table = pd.concat([frames[i] for i in sorted(frames)], ignore_index=True)
        else:
            table = pd.DataFrame(columns=["scenario"] + factor_names)
        table.attrs["cancelled"] = cancelled
        table.attrs["n_scenarios"] = len(scenarios)
        return table

    def _run_sequential(self, jobs, cancel) -> Dict[int, pd.DataFrame]:
        frames = {}
        for sc, kwargs, dgp in jobs:
            if cancel is not None and cancel.is_set():
                break
            frames[sc.index] = self._finish(sc, run_scenario(dgp, **kwargs))
        return frames

    def _run_parallel(self, jobs, scenario_workers, cancel) -> Dict[int, pd.DataFrame]:
        frames = {}
        pending = iter(jobs)
        in_flight = {}

        with ProcessPoolExecutor(max_workers=min(scenario_workers, len(jobs))) as ex:

            def submit_next() -> bool:
                if cancel is not None and cancel.is_set():
                    return False
                job = next(pending, None)
                if job is None:
                    return False
                sc, kwargs, dgp = job
                in_flight[ex.submit(run_scenario, dgp, **kwargs)] = sc
                return True

            for _ in range(scenario_workers):
                if not submit_next():
                    break

            while in_flight:
                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for fut in done:
                    sc = in_flight.pop(fut)
                    frames[sc.index] = self._finish(sc, fut.result())
                    submit_next()
        return frames

    def _finish(self, scenario: Scenario, summary: pd.DataFrame) -> pd.DataFrame:
        """Tag one scenario's summary with its design point."""
        summary = summary.copy()
        for k, (name, value) in enumerate(scenario.params.items()):
            # list-valued levels (per-group vectors) stay one cell per row
            summary.insert(k, name, pd.Series([value] * len(summary), index=summary.index))
        summary.insert(0, "scenario", scenario.index)

        worst = summary["failure_rate"].max()
        if worst > self.failure_warn_threshold:
            logger.warning("Scenario %d (%s): failure rate %.1f%%",
                           scenario.index, scenario.label, 100 * worst)
        else:
            logger.info("Scenario %d (%s) done", scenario.index, scenario.label)
        return summary
