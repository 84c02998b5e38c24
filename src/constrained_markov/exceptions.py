"""Error taxonomy for constrained Markov sequence generation.

Callers can tell three situations apart:

- ``TrainingError``: the corpus cannot produce a model.
- ``InvalidConstraintError``: the constraints are malformed.
- ``UnsatisfiableConstraintsError``: the constraints are well formed but no
  sequence of the requested length satisfies them under the trained model.

``InternalConsistencyError`` signals a defect in table construction and is
never meant to be recovered from.
"""

from typing import Any, Optional


class ConstrainedMarkovError(Exception):
    """Base class for all errors raised by the package."""


class TrainingError(ConstrainedMarkovError, ValueError):
    """Raised when a corpus yields no usable training windows."""


class ConfigurationError(ConstrainedMarkovError, ValueError):
    """Raised for missing or malformed configuration values."""


class InvalidConstraintError(ConstrainedMarkovError, ValueError):
    """Raised when a constraint is out of range, empty or uses an unknown symbol.

    Parameters
    ----------
    message : str
        Human readable description
    position : Optional[int]
        Offending sequence position, if any
    symbol : Any
        Offending symbol, if any
    """

    def __init__(self, message: str, position: Optional[int] = None, symbol: Any = None):
        super().__init__(message)
        self.position = position
        self.symbol = symbol


class UnsatisfiableConstraintsError(ConstrainedMarkovError):
    """Raised when forward or backward mass collapses to zero.

    ``position`` is the first position at which no constraint-satisfying
    mass survives, or ``None`` when the failure is only visible globally.
    """

    def __init__(self, message: str, position: Optional[int] = None):
        super().__init__(message)
        self.position = position


class InternalConsistencyError(ConstrainedMarkovError, AssertionError):
    """Raised when sampling weights contradict the backward table."""
