"""
validation.py - Precondition checks shared by generators, runner and sweep.

Each helper raises InvalidParameterError with a message naming the offending
parameter. Checks run once, at construction time.
"""

import numbers
from typing import Dict, Sequence

import numpy as np

from exceptions import InvalidParameterError


def check_positive_int(value, name: str, minimum: int = 1) -> int:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise InvalidParameterError(
            f"{name} must be an integer, got {type(value).__name__}"
        )
    if value < minimum:
        raise InvalidParameterError(f"{name} must be >= {minimum}, got {value}")
    return int(value)


def check_positive(value, name: str) -> float:
    value = check_finite(value, name)
    if value <= 0:
        raise InvalidParameterError(f"{name} must be > 0, got {value}")
    return value


def check_finite(value, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidParameterError(
            f"{name} must be a real number, got {type(value).__name__}"
        )
    if not np.isfinite(value):
        raise InvalidParameterError(f"{name} must be finite, got {value}")
    return float(value)


def check_probability(value, name: str) -> float:
    """Validate a level or threshold strictly inside (0, 1)."""
    value = check_finite(value, name)
    if not 0.0 < value < 1.0:
        raise InvalidParameterError(f"{name} must be in (0, 1), got {value}")
    return value


def check_equal_lengths(**vectors: Sequence) -> int:
    """
    Validate that per-group parameter vectors all have the same length.

    Mismatched lengths are an error, never recycled or truncated.

    Parameters
    ----------
    **vectors : sequence
        Named per-group vectors, e.g. ``mu=[1, 2, 3], sigma_sq=[1, 1, 1]``.

    Returns
    -------
    int
        The common length.

    Raises
    ------
    InvalidParameterError
        If any vector is scalar or empty, or the lengths differ.

    Examples
    --------
    >>> check_equal_lengths(mu=[1, 2, 5, 6], sample_size=[3, 6, 2])
    Traceback (most recent call last):
    ...
    exceptions.InvalidParameterError: per-group parameters must have equal lengths, got mu=4, sample_size=3
    """
    lengths: Dict[str, int] = {}
    for name, vec in vectors.items():
        if np.ndim(vec) != 1:
            raise InvalidParameterError(f"{name} must be a one-dimensional sequence")
        lengths[name] = len(vec)
        if lengths[name] == 0:
            raise InvalidParameterError(f"{name} must not be empty")

    if len(set(lengths.values())) > 1:
        detail = ", ".join(f"{k}={v}" for k, v in lengths.items())
        raise InvalidParameterError(
            f"per-group parameters must have equal lengths, got {detail}"
        )
    return next(iter(lengths.values()))
