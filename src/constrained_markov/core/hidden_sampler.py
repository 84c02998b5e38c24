"""Constrained sampling from a hidden Markov model.

Observed-layer constraints are folded into the hidden chain as per-position
symbol weights: at position ``i`` tag ``h`` is weighted by the probability
that it emits an allowed observed token,

    beta_i(h) = sum over o allowed at i of P(o | h)

The hidden sequence is then drawn by ``ConstrainedSampler`` with those
weights, which conditions it exactly on both layers' constraints. Each
observed token is finally drawn from its tag's emissions restricted to the
tokens allowed at that position.
"""

import math
import numpy as np
from typing import Any, List, Sequence

from .emission_model import HiddenMarkovModel, TaggedToken, split_token
from .sampler import ConstrainedSampler
from ..config.random_state import RandomSource, make_random_source
from ..exceptions import InvalidConstraintError, InternalConsistencyError


class HiddenMarkovSampler:
    """Draws tagged sequences satisfying observed and hidden constraints.

    Parameters
    ----------
    model : HiddenMarkovModel
        Trained model
    observed_constraints : ConstraintSet
        Constraints on observed tokens, built against ``model.observed_symbols``
    hidden_constraints : ConstraintSet
        Constraints on hidden tags, built against ``model.hidden_symbols``
    rtol : float
        Relative tolerance of the conservation check

    Raises
    ------
    InvalidConstraintError
        If the two constraint sets disagree on length or alphabet
    UnsatisfiableConstraintsError
        If no tagged sequence satisfies both layers
    """

    def __init__(self, model: HiddenMarkovModel, observed_constraints, hidden_constraints,
                 rtol: float = 1e-6):
        if observed_constraints.length != hidden_constraints.length:
            raise InvalidConstraintError(
                f"Observed constraints have length {observed_constraints.length}, "
                f"hidden constraints {hidden_constraints.length}")
        if observed_constraints.symbols != model.observed_symbols:
            raise InvalidConstraintError("Observed constraints were built for a different alphabet")

        self._model = model
        self._observed = observed_constraints
        emission_weights = {position: model.emissions.emission_masses(observed_constraints.allowed_ids(position))
                            for position in observed_constraints.positions}
        self._hidden = hidden_constraints.with_weights(emission_weights)
        self._sampler = ConstrainedSampler(model.transitions, self._hidden, rtol=rtol)

    @property
    def model(self) -> HiddenMarkovModel:
        return self._model

    @property
    def observed_constraints(self):
        return self._observed

    @property
    def hidden_constraints(self):
        """Hidden constraints with the observed layer folded in as weights."""
        return self._hidden

    @property
    def length(self) -> int:
        return self._observed.length

    @property
    def log_partition(self) -> float:
        """log P(both layers satisfy their constraints) under the unconstrained model."""
        return self._sampler.log_partition

    def sample(self, random_source: RandomSource = None) -> List[TaggedToken]:
        """Draw one tagged sequence."""
        rng = make_random_source(random_source)
        hidden_ids = self._sampler.sample_ids(rng)
        hidden = self._model.hidden_symbols.decode(hidden_ids)
        observed_symbols = self._model.observed_symbols

        tokens = []
        for position, (hidden_id, tag) in enumerate(zip(hidden_ids, hidden)):
            allowed = self._observed.allowed_ids(position)
            candidates = [(o, p) for o, p in self._model.emissions.distribution(hidden_id).items()
                          if allowed is None or o in allowed]
            total = sum(p for _, p in candidates)
            if not total > 0.0:
                raise InternalConsistencyError(
                    f"Tag {tag!r} at position {position} cannot emit an allowed token")
            probabilities = np.array([p for _, p in candidates], dtype=np.float64) / total
            choice = candidates[int(rng.choice(len(candidates), p=probabilities))][0]
            tokens.append(TaggedToken(observed_symbols.symbol_of(choice), tag))
        return tokens

    def constrained_log_probability(self, sequence: Sequence[Any]) -> float:
        """Log probability of a tagged sequence under the constrained distribution."""
        tokens = [split_token(token) for token in sequence]
        observed = [t.observed for t in tokens]
        hidden = [t.hidden for t in tokens]
        if not (self._observed.is_satisfied_by(observed)
                and self._hidden.is_satisfied_by(hidden)):
            return -math.inf
        log_probability = self._model.sequence_log_probability(tokens)
        if log_probability == -math.inf:
            return -math.inf
        return log_probability - self.log_partition

    def __repr__(self) -> str:
        return (f"HiddenMarkovSampler(length={self.length}, n_observed_constrained={len(self._observed)}, "
                f"n_hidden_constrained={len(self._hidden)}, log_partition={self.log_partition:.4f})")
