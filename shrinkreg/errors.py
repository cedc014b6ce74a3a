"""Exception hierarchy for the shrinkage-regression sampler."""
from __future__ import annotations


class ShrinkregError(Exception):
    """Base class for all errors raised by shrinkreg."""


class InvalidConfiguration(ShrinkregError, ValueError):
    """Raised before sampling when the dataset, model or sampler settings are malformed."""


class NonFiniteDensity(ShrinkregError, FloatingPointError):
    """Raised when the log density or its gradient is infinite or NaN at a point."""


class InitializationError(ShrinkregError, RuntimeError):
    """Raised when no initial point with a finite log density could be found."""
