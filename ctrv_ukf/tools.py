"""Evaluation helpers for judging a filter run after the fact."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from .exceptions import InvalidInputError


def calculate_rmse(estimations: Sequence[np.ndarray], ground_truth: Sequence[np.ndarray]) -> np.ndarray:
    """Per-component root mean squared error over a run.

    Parameters
    ----------
    estimations : sequence of array_like
        Estimated vectors, one per time step.
    ground_truth : sequence of array_like
        True vectors, same length and dimension as *estimations*.

    Returns
    -------
    numpy.ndarray
        RMSE of each component.

    Raises
    ------
    InvalidInputError
        If either sequence is empty or their shapes differ.

    Examples
    --------
    >>> calculate_rmse([[1.0, 2.0], [3.0, 4.0]], [[1.0, 2.0], [3.0, 6.0]])
    array([0.        , 1.41421356])
    """
    est = np.asarray(estimations, dtype=np.float64)
    truth = np.asarray(ground_truth, dtype=np.float64)
    if est.size == 0 or truth.size == 0:
        raise InvalidInputError("cannot compute RMSE of an empty run")
    if est.shape != truth.shape:
        raise InvalidInputError(
            f"estimations {est.shape} and ground truth {truth.shape} differ in shape"
        )
    return np.sqrt(np.mean((est - truth) ** 2, axis=0))


def nis_consistency(nis_values: Sequence[float], threshold: float) -> float:
    """Fraction of NIS values at or below *threshold*.

    For a consistent filter about 95% of values should fall below the 95%
    chi-squared bound (see ``ctrv_ukf.config.NIS_95_THRESHOLD``).

    Raises
    ------
    InvalidInputError
        If *nis_values* is empty.
    """
    values = np.asarray(nis_values, dtype=np.float64)
    if values.size == 0:
        raise InvalidInputError("no NIS values given")
    return float(np.mean(values <= threshold))
