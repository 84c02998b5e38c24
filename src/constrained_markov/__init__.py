"""
constrained_markov - constrained sequence generation from fixed-order Markov chains.

Train a Markov model once from a symbol corpus, then draw fixed-length
sequences that are guaranteed to satisfy positional constraints while
following the learned transition probabilities.
"""

__version__ = "0.1.0"

from .exceptions import (
    ConstrainedMarkovError,
    TrainingError,
    ConfigurationError,
    InvalidConstraintError,
    UnsatisfiableConstraintsError,
    InternalConsistencyError,
)
from .core.transition_model import TransitionModel, train
from .core.sampler import ConstrainedSampler
from .core.emission_model import HiddenMarkovModel, train_hidden
from .data.constraint_system import ConstraintSet, parse_constraint
from .data.sequence_generator import SequenceGenerator, HiddenSequenceGenerator, generate, generate_hidden

__all__ = [
    '__version__',
    'train',
    'generate',
    'train_hidden',
    'generate_hidden',
    'HiddenMarkovModel',
    'HiddenSequenceGenerator',
    'TransitionModel',
    'ConstrainedSampler',
    'ConstraintSet',
    'SequenceGenerator',
    'parse_constraint',
    'ConstrainedMarkovError',
    'TrainingError',
    'ConfigurationError',
    'InvalidConstraintError',
    'UnsatisfiableConstraintsError',
    'InternalConsistencyError',
]
