"""Exception hierarchy for the CTRV filter."""


class UKFError(RuntimeError):
    """Base exception for filter errors."""


class InvalidInputError(UKFError, ValueError):
    """Raised for caller contract violations.

    Covers malformed measurement vectors, non-monotonic timestamps,
    negative time steps and bad noise parameters.
    """


class NumericalFailureError(UKFError):
    """Raised when a factorization or inversion cannot be completed."""
