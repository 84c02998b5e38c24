"""Core algorithms for constrained Markov generation.

This module contains the fundamental components:
- Symbol and state interning
- Fixed-order transition model training
- Forward and backward mass propagation
- Constraint-aware sampling
- Hidden Markov models (tag chain plus emissions) and their sampler
"""

from .state_space import SymbolTable, StateIndex, MassLayer, State, EMPTY_STATE, extend_state
from .transition_model import TransitionModel, ContextDistribution, train, UNSEEN_CONTEXT_POLICIES
from .forward import ForwardTable, build_forward_table
from .backward import BackwardTable, build_backward_table
from .sampler import ConstrainedSampler, SamplingStep
from .emission_model import (TaggedToken, TOKEN_SEPARATOR, split_token, EmissionModel,
                             HiddenMarkovModel, train_hidden)
from .hidden_sampler import HiddenMarkovSampler

__all__ = [
    # State space
    'SymbolTable',
    'StateIndex',
    'MassLayer',
    'State',
    'EMPTY_STATE',
    'extend_state',

    # Transition model
    'TransitionModel',
    'ContextDistribution',
    'train',
    'UNSEEN_CONTEXT_POLICIES',

    # Dynamic programming tables
    'ForwardTable',
    'build_forward_table',
    'BackwardTable',
    'build_backward_table',

    # Sampling
    'ConstrainedSampler',
    'SamplingStep',

    # Hidden Markov models
    'TaggedToken',
    'TOKEN_SEPARATOR',
    'split_token',
    'EmissionModel',
    'HiddenMarkovModel',
    'train_hidden',
    'HiddenMarkovSampler',
]
