#runner.py - Monte Carlo simulation runner.

import logging
from concurrent.futures import ProcessPoolExecutor, as_completed
from enum import Enum
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from exceptions import InvalidParameterError, TrialFailedError
from protocols import AnalyzerProtocol, DGPProtocol
from results import ROW_COLUMNS, ResultCollection, TrialResult, safely
from validation import check_positive_int

logger = logging.getLogger(__name__)

SeedLike = Union[None, int, Sequence[int], np.random.SeedSequence]

PROGRESS_EVERY = 1000
CHUNKS_PER_WORKER = 4


class FailurePolicy(str, Enum):
    """What the runner does when an analyzer fails on a trial."""
    ABORT = "abort"   # raise TrialFailedError, stop the batch
    DROP = "drop"     # trial contributes no row to any analyzer
    FLAG = "flag"     # keep the row with failed=True


def as_policy(policy: Union[str, FailurePolicy]) -> FailurePolicy:
    try:
        return FailurePolicy(policy)
    except ValueError:
        choices = [p.value for p in FailurePolicy]
        raise InvalidParameterError(
            f"policy must be one of {choices}, got {policy!r}") from None


def fresh_seed_sequence(seed: SeedLike) -> np.random.SeedSequence:
    """
    Return a SeedSequence that has not spawned any children yet.

    ``SeedSequence.spawn`` advances the parent's child counter, so a caller's
    sequence is copied rather than spawned from directly; reusing the same
    seed object therefore reproduces the same trial streams.
    """
    if isinstance(seed, np.random.SeedSequence):
        return np.random.SeedSequence(
            entropy=seed.entropy, spawn_key=seed.spawn_key, pool_size=seed.pool_size)
    return np.random.SeedSequence(seed)


def make_blocks(n: int, block_size: int) -> List[Tuple[int, int]]:
    """
    Partition ``[0, n)`` into contiguous half-open blocks.

    >>> make_blocks(5, block_size=2)
    [(0, 2), (2, 4), (4, 5)]
    """
    blocks = []
    i = 0
    while i < n:
        j = min(i + block_size, n)
        blocks.append((i, j))
        i = j
    return blocks


def run_trial(dgp, analyzers, seed_seq: np.random.SeedSequence, trial: int,
              policy: FailurePolicy, fail_on_warning: bool = False) -> List[TrialResult]:
    """
    Execute one trial: one dataset, every analyzer once on it.

    Under ``abort`` an analyzer exception is re-raised as TrialFailedError;
    otherwise failures come back as failed TrialResults.
    """
    rng = np.random.default_rng(seed_seq)
    data = dgp.sample(rng)

    results = []
    for analyzer in analyzers:
        if policy is FailurePolicy.ABORT:
            try:
                res = safely(analyzer, data, fail_on_warning, capture=False)
            except InvalidParameterError:
                raise
            except Exception as e:
                raise TrialFailedError(
                    f"analyzer {analyzer.name!r} failed on trial {trial}: "
                    f"{type(e).__name__}: {e}",
                    trial=trial, analyzer=analyzer.name) from e
            if res.failed:
                raise TrialFailedError(
                    f"analyzer {analyzer.name!r} failed on trial {trial}: {res.message}",
                    trial=trial, analyzer=analyzer.name)
        else:
            res = safely(analyzer, data, fail_on_warning)
        results.append(res)
    return results


def _run_block(dgp, analyzers, seed_seqs, start, policy, fail_on_warning):
    """Worker entry point: run trials ``start .. start + len(seed_seqs) - 1``."""
    return [
        run_trial(dgp, analyzers, ss, start + k, policy, fail_on_warning)
        for k, ss in enumerate(seed_seqs)
    ]


class SimulationRunner:
    """
    Monte Carlo simulation runner.

    Pairs a DGP with one or more analyzers and runs R independent trials.
    Each trial draws one dataset and applies every analyzer to it.

    Parameters
    ----------
    dgp : DGPProtocol
        Data generating process with .sample(rng), .true_value and .null_true
    analyzers : AnalyzerProtocol or sequence of them
        Analyzers with .analyze(df) and .name; names must be unique
    policy : {'drop', 'abort', 'flag'}
        Failure policy. 'flag' is only allowed with a single analyzer, so
        that no analyzer is compared on a different set of trials.
    fail_on_warning : bool
        Treat warnings emitted by an analyzer as failures.

    Example
    -------
    >>> from dgps import ExponentialDGP
    >>> from analyzers import OneSampleTTest
    >>> dgp = ExponentialDGP(n=10, rate=1.0)
    >>> runner = SimulationRunner(dgp, OneSampleTTest(mu0=1.0))
    >>> results = runner.simulate(n_sim=1000, seed=42)
    >>> len(results)
    1000
    """

    def __init__(self, dgp, analyzers, policy: Union[str, FailurePolicy] = "drop",
                 fail_on_warning: bool = False):
        if not isinstance(dgp, DGPProtocol):
            raise InvalidParameterError(
                f"dgp must provide sample(rng), true_value and null_true; "
                f"got {type(dgp).__name__}")
        if isinstance(analyzers, AnalyzerProtocol):
            analyzers = [analyzers]
        analyzers = list(analyzers)
        if not analyzers:
            raise InvalidParameterError("at least one analyzer is required")
        for a in analyzers:
            if not isinstance(a, AnalyzerProtocol):
                raise InvalidParameterError(
                    f"analyzer must provide analyze(df) and name; got {type(a).__name__}")

        names = [a.name for a in analyzers]
        if len(set(names)) != len(names):
            raise InvalidParameterError(f"analyzer names must be unique, got {names}")

        self.policy = as_policy(policy)
        if self.policy is FailurePolicy.FLAG and len(analyzers) > 1:
            raise InvalidParameterError(
                "policy='flag' keeps failed rows per analyzer and would compare "
                "analyzers on different trials; use policy='drop' with several analyzers")

        self.dgp = dgp
        self.analyzers = analyzers
        self.fail_on_warning = bool(fail_on_warning)

    @property
    def analyzer_names(self) -> Tuple[str, ...]:
        return tuple(a.name for a in self.analyzers)

    def simulate(self, n_sim: int = 1000, seed: SeedLike = None, n_workers: int = 1,
                 params: Optional[Mapping[str, Any]] = None,
                 verbose: bool = False) -> ResultCollection:
        """
        Run Monte Carlo simulation.

        Parameters
        ----------
        n_sim : int
            Number of trials (0 is allowed and yields an empty collection)
        seed : int, sequence of int, SeedSequence or None
            Master seed. Trial i uses the i-th child of ``SeedSequence(seed)``,
            so results do not depend on ``n_workers``.
        n_workers : int
            Maximum number of worker processes. 1 runs in-process.
        params : mapping, optional
            Scenario parameters recorded on the collection; defaults to the
            DGP's ``params`` attribute when it has one.
        verbose : bool
            Log progress at INFO instead of DEBUG

        Returns
        -------
        ResultCollection
            One row per (completed trial, analyzer)
        """
        n_sim = check_positive_int(n_sim, "n_sim", minimum=0)
        n_workers = check_positive_int(n_workers, "n_workers")
        seed_seqs = fresh_seed_sequence(seed).spawn(n_sim)
        level = logging.INFO if verbose else logging.DEBUG

        logger.log(level, "Running %d trials of %s with %s (policy=%s, workers=%d)",
                   n_sim, type(self.dgp).__name__, list(self.analyzer_names),
                   self.policy.value, n_workers)

        if n_workers > 1 and n_sim > 1:
            outputs = self._run_parallel(seed_seqs, n_workers, level)
        else:
            outputs = self._run_sequential(seed_seqs, level)

        collection = self._collect(outputs, n_sim, params)
        if collection.n_dropped:
            logger.log(level, "Dropped %d/%d trials with a failed analyzer",
                       collection.n_dropped, n_sim)
        return collection

    def _run_sequential(self, seed_seqs, level) -> List[List[TrialResult]]:
        n_sim = len(seed_seqs)
        outputs = []
        for r, ss in enumerate(seed_seqs):
            outputs.append(run_trial(self.dgp, self.analyzers, ss, r,
                                     self.policy, self.fail_on_warning))
            if n_sim > 1 and (r + 1) % PROGRESS_EVERY == 0:
                logger.log(level, "%d/%d trials done...", r + 1, n_sim)
        return outputs

    def _run_parallel(self, seed_seqs, n_workers, level) -> List[List[TrialResult]]:
        n_sim = len(seed_seqs)
        block_size = max(1, -(-n_sim // (n_workers * CHUNKS_PER_WORKER)))
        blocks = make_blocks(n_sim, block_size)
        outputs: List[Optional[List[TrialResult]]] = [None] * n_sim
        completed = 0

        with ProcessPoolExecutor(max_workers=min(n_workers, len(blocks))) as ex:
            futures = {
                ex.submit(_run_block, self.dgp, self.analyzers, seed_seqs[i:j], i,
                          self.policy, self.fail_on_warning): (i, j)
                for i, j in blocks
            }
            try:
                for fut in as_completed(futures):
                    i, j = futures[fut]
                    outputs[i:j] = fut.result()
                    completed += j - i
                    logger.log(level, "%d/%d trials done...", completed, n_sim)
            except BaseException:
                for fut in futures:
                    fut.cancel()
                raise
        return outputs

    def _collect(self, outputs, n_sim, params) -> ResultCollection:
        names = self.analyzer_names
        rows = []
        n_dropped = 0
        for trial, results in enumerate(outputs):
            if self.policy is FailurePolicy.DROP and any(r.failed for r in results):
                n_dropped += 1
                continue
            for name, res in zip(names, results):
                rows.append({"trial": trial, "analyzer": name, **res.as_row()})

        if params is None:
            params = getattr(self.dgp, "params", {})

        null_values = {}
        for a in self.analyzers:
            value = getattr(a, "null_value", None)
            if value is not None:
                null_values[a.name] = float(value)

        return ResultCollection(
            rows=pd.DataFrame(rows, columns=ROW_COLUMNS),
            analyzers=names,
            n_attempted=n_sim,
            n_dropped=n_dropped,
            true_value=self.dgp.true_value,
            null_true=self.dgp.null_true,
            policy=self.policy.value,
            params=dict(params),
            null_values=null_values,
        )
