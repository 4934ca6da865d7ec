"""Numerical helpers shared by the motion models and the estimator.

Provides angle wrapping, input validation and the two guarded
linear-algebra primitives the filter needs: a Cholesky factorization
that regularizes before giving up, and a matrix inverse that refuses
singular input.
"""

from __future__ import annotations

import logging

import numpy as np

from .config import CHOLESKY_JITTER, CHOLESKY_MAX_TRIES
from .exceptions import InvalidInputError, NumericalFailureError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Angles
# ---------------------------------------------------------------------------


def normalize_angle(angle):
    """Wrap an angle (or array of angles) into ``(-pi, pi]``.

    Uses the two-argument arctangent, which is exact for already-wrapped
    input and needs no loop for large multiples of ``2*pi``.

    Parameters
    ----------
    angle : float or numpy.ndarray
        Angle(s) in radians.

    Returns
    -------
    float or numpy.ndarray
        Wrapped angle(s), same shape as the input.

    Examples
    --------
    >>> round(normalize_angle(3 * np.pi / 2), 6)
    -1.570796
    """
    wrapped = np.arctan2(np.sin(angle), np.cos(angle))
    if np.ndim(wrapped) == 0:
        wrapped = float(wrapped)
        # -pi itself maps to +pi.
        if wrapped == -np.pi:
            wrapped = np.pi
        return wrapped
    return np.where(wrapped == -np.pi, np.pi, wrapped)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def validate_square(arr: np.ndarray, size: int, name: str = "matrix") -> np.ndarray:
    """Ensure *arr* is a finite ``size`` x ``size`` float64 array.

    Parameters
    ----------
    arr : array_like
        Input to validate.
    size : int
        Expected number of rows and columns.
    name : str
        Human-readable name for error messages.

    Returns
    -------
    numpy.ndarray
        Validated copy of the array.

    Raises
    ------
    InvalidInputError
        If the array has the wrong shape or holds NaN/Inf.
    """
    arr = np.array(arr, dtype=np.float64)
    if arr.shape != (size, size):
        raise InvalidInputError(
            f"{name} must have shape ({size}, {size}), got {arr.shape}"
        )
    if not np.all(np.isfinite(arr)):
        raise InvalidInputError(f"{name} contains non-finite values")
    return arr


def validate_vector(arr: np.ndarray, length: int, name: str = "vector") -> np.ndarray:
    """Ensure *arr* is a finite 1-D float64 array of the given length.

    Parameters
    ----------
    arr : array_like
        Input to validate.
    length : int
        Expected number of elements.
    name : str
        Human-readable name for error messages.

    Returns
    -------
    numpy.ndarray
        Validated 1-D copy.

    Raises
    ------
    InvalidInputError
        If the length does not match or a value is NaN/Inf.
    """
    try:
        arr = np.array(arr, dtype=np.float64).ravel()
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"{name} is not numeric: {exc}") from exc
    if arr.shape[0] != length:
        raise InvalidInputError(
            f"{name} must have {length} elements, got {arr.shape[0]}"
        )
    if not np.all(np.isfinite(arr)):
        raise InvalidInputError(f"{name} contains non-finite values: {arr}")
    return arr


# ---------------------------------------------------------------------------
# Guarded linear algebra
# ---------------------------------------------------------------------------


def symmetrize(mat: np.ndarray) -> np.ndarray:
    """Return ``(mat + mat.T) / 2``."""
    return 0.5 * (mat + mat.T)


def robust_cholesky(
    mat: np.ndarray,
    jitter: float = CHOLESKY_JITTER,
    max_tries: int = CHOLESKY_MAX_TRIES,
) -> np.ndarray:
    """Lower-triangular Cholesky factor with diagonal regularization.

    The plain factorization is attempted first.  If it fails, the matrix
    is symmetrized and ``jitter * I`` is added, growing the jitter tenfold
    on each of up to *max_tries* retries.

    Parameters
    ----------
    mat : numpy.ndarray
        Square matrix expected to be symmetric positive definite.
    jitter : float
        First diagonal increment tried.
    max_tries : int
        Number of regularized attempts.

    Returns
    -------
    numpy.ndarray
        ``L`` such that ``L @ L.T`` equals *mat* (plus any jitter).

    Raises
    ------
    NumericalFailureError
        If *mat* holds NaN/Inf or every attempt fails.
    """
    if not np.all(np.isfinite(mat)):
        raise NumericalFailureError("cannot factorize a matrix with NaN/Inf entries")

    try:
        return np.linalg.cholesky(mat)
    except np.linalg.LinAlgError:
        pass

    sym = symmetrize(mat)
    eye = np.eye(sym.shape[0])
    for attempt in range(max_tries):
        eps = jitter * 10.0**attempt
        try:
            factor = np.linalg.cholesky(sym + eps * eye)
        except np.linalg.LinAlgError:
            continue
        logger.warning("Cholesky factorization needed diagonal jitter %.1e", eps)
        return factor

    raise NumericalFailureError(
        f"matrix is not positive definite after {max_tries} regularized attempts"
    )


def safe_inverse(mat: np.ndarray, name: str = "matrix") -> np.ndarray:
    """Invert *mat*, refusing singular or ill-conditioned input.

    Raises
    ------
    NumericalFailureError
        If *mat* is singular to working precision or the inverse is not
        finite.
    """
    if not np.all(np.isfinite(mat)):
        raise NumericalFailureError(f"{name} contains NaN/Inf entries")
    if np.linalg.cond(mat) > 1.0 / np.finfo(np.float64).eps:
        raise NumericalFailureError(f"{name} is singular to working precision")
    try:
        inv = np.linalg.inv(mat)
    except np.linalg.LinAlgError as exc:
        raise NumericalFailureError(f"{name} is singular: {exc}") from exc
    if not np.all(np.isfinite(inv)):
        raise NumericalFailureError(f"inverse of {name} is not finite")
    return inv


def ensure_psd(mat: np.ndarray) -> np.ndarray:
    """Symmetrize *mat* and clip any negative eigenvalues to zero.

    The unscented transform with a negative centre weight can return a
    covariance with slightly negative eigenvalues; those directions are
    projected onto the nearest positive semi-definite matrix.
    """
    sym = symmetrize(mat)
    eigvals, eigvecs = np.linalg.eigh(sym)
    if eigvals[0] >= 0.0:
        return sym
    logger.debug("clipping negative covariance eigenvalue %.3e", eigvals[0])
    clipped = (eigvecs * np.maximum(eigvals, 0.0)) @ eigvecs.T
    return symmetrize(clipped)
