"""
exceptions.py - Exception and warning hierarchy for the simulation driver.

Configuration errors always surface to the caller. Trial-level failures are
absorbed by the runner according to its failure policy. Aggregation errors
are raised instead of returning a degenerate summary.
"""


class SimulationError(Exception):
    """
    Base exception class for all simulation-driver errors.

    Catch this to handle any error raised by the library:

        try:
            table = sweep.run(design)
        except SimulationError as e:
            print(f"simulation error: {e}")
    """
    pass


class InvalidParameterError(SimulationError):
    """
    Exception raised when scenario or driver parameters are inconsistent.

    Common triggers:

    - Per-group parameter vectors of different lengths (never recycled)
    - Non-positive sample sizes, variances or rates
    - An unknown failure policy, or ``policy='flag'`` with several analyzers
    - Requesting trial-level and scenario-level workers at the same time

    Raised when a generator is constructed or a runner/sweep is configured,
    and never captured by the runner's failure policy.
    """
    pass


class InsufficientDataError(SimulationError):
    """
    Exception raised when an analyzer cannot be computed on a dataset.

    Examples are a one-sample t-test on fewer than two observations or a
    Welch ANOVA with a single-observation group. This is a recoverable,
    trial-level failure: the runner records it under its failure policy.
    """
    pass


class TrialFailedError(SimulationError):
    """
    Exception raised by the runner under the ``abort`` policy.

    Chained from the analyzer's original exception (``__cause__``).

    Attributes
    ----------
    trial : int
        Zero-based index of the failing trial.
    analyzer : str
        Name of the analyzer that failed.
    """

    def __init__(self, message: str, trial: int, analyzer: str):
        super().__init__(message)
        self.trial = trial
        self.analyzer = analyzer

    def __reduce__(self):
        return (self.__class__, (self.args[0], self.trial, self.analyzer))


class AggregationError(SimulationError):
    """Base class for errors raised while summarizing results."""
    pass


class EmptyResultsError(AggregationError):
    """
    Exception raised when summarizing a result collection with no trials.

    A coverage or rejection rate over zero trials is undefined, so it is
    never reported as 0% or 100%.
    """
    pass


class IncompleteResultsError(AggregationError):
    """
    Exception raised when a result collection is not fully composed.

    Triggered when an analyzer's row count differs from the number of
    completed trials, or when rows reference an unknown analyzer.
    """
    pass


class SimulationWarning(UserWarning):
    """
    Base warning class for non-fatal conditions raised by analyzers.

    Inherits from :class:`UserWarning` so existing filters keep working.
    The runner records any warning emitted during an analysis as the
    trial's ``warned`` flag.
    """
    pass


class SmallSampleWarning(SimulationWarning):
    """Warning issued when a group is too small for reliable inference."""
    pass
