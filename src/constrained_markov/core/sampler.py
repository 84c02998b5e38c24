"""Constrained sampler combining forward state, transitions and backward mass.

The sampler sweeps positions 0..L-1 once. At position ``i`` the weight of a
candidate symbol ``x`` is::

    w(x) = sum over running (s', mass) of mass * P(x | s') * w_i(x) * backward[i][extend(s', x)]

where ``w_i(x)`` is the constraint set's symbol weight (1 when none is attached).

Normalizing ``w`` and drawing from it yields exactly the chain's distribution
conditioned on all constraints. Because ``backward[i]`` is zero for every
state without a valid completion, no choice can lead to a dead end and no
backtracking is needed.

Conservation law: the weights at position ``i`` sum to the running states'
backward mass at ``i - 1`` (after correcting for the per-layer scales). The
sampler checks this at every step; a violation means the tables are
inconsistent and raises ``InternalConsistencyError``.
"""

import math
import numpy as np
from dataclasses import dataclass
from typing import Dict, Hashable, List, Sequence, Tuple

from .state_space import State
from .transition_model import TransitionModel
from .forward import ForwardTable, build_forward_table
from .backward import BackwardTable, build_backward_table
from ..config.random_state import RandomSource, make_random_source
from ..exceptions import InternalConsistencyError


@dataclass(frozen=True)
class SamplingStep:
    """Record of one sampling decision.

    Attributes
    ----------
    position : int
        Sequence position
    candidates : Tuple[int, ...]
        Candidate symbol ids with non-zero weight, ascending
    weights : np.ndarray
        Unnormalized weight of each candidate
    probabilities : np.ndarray
        Normalized weights the draw used
    chosen : int
        Drawn symbol id
    expected_mass : float
        Backward mass of the running states, in the units of ``weights``
    """
    position: int
    candidates: Tuple[int, ...]
    weights: np.ndarray
    probabilities: np.ndarray
    chosen: int
    expected_mass: float


class ConstrainedSampler:
    """Draws constraint-satisfying sequences for one generation request.

    The forward and backward tables are built once on construction and then
    only read, so ``sample`` may be called concurrently from several threads
    as long as each call gets its own random source.

    Parameters
    ----------
    model : TransitionModel
        Trained model
    constraints : ConstraintSet
        Validated constraints, also fixing the sequence length
    rtol : float
        Relative tolerance of the conservation check

    Raises
    ------
    UnsatisfiableConstraintsError
        If no sequence satisfies the constraints
    """

    def __init__(self, model: TransitionModel, constraints, rtol: float = 1e-6):
        self._model = model
        self._constraints = constraints
        self._rtol = rtol
        self._forward = build_forward_table(model, constraints)
        self._backward = build_backward_table(model, constraints, self._forward)

    @property
    def model(self) -> TransitionModel:
        return self._model

    @property
    def constraints(self):
        return self._constraints

    @property
    def length(self) -> int:
        return self._constraints.length

    @property
    def forward(self) -> ForwardTable:
        return self._forward

    @property
    def backward(self) -> BackwardTable:
        return self._backward

    @property
    def log_partition(self) -> float:
        return self._forward.log_partition

    def sample(self, random_source: RandomSource = None) -> List[Hashable]:
        """Draw one sequence of symbols."""
        ids, _ = self._run(make_random_source(random_source), record=False)
        return self._model.symbols.decode(ids)

    def sample_ids(self, random_source: RandomSource = None) -> List[int]:
        ids, _ = self._run(make_random_source(random_source), record=False)
        return ids

    def sample_with_trace(self, random_source: RandomSource = None) -> Tuple[List[Hashable], List[SamplingStep]]:
        """Draw one sequence and return the per-position sampling record."""
        ids, steps = self._run(make_random_source(random_source), record=True)
        return self._model.symbols.decode(ids), steps

    def constrained_log_probability(self, sequence: Sequence[Hashable]) -> float:
        """Log probability of ``sequence`` under the constrained distribution.

        Equals the chain's log probability (times any symbol weights) minus
        the log partition, or ``-inf`` if the sequence violates a constraint.
        """
        if not self._constraints.is_satisfied_by(sequence):
            return -math.inf
        log_probability = self._model.sequence_log_probability(sequence)
        if log_probability == -math.inf:
            return -math.inf
        for position, symbol in enumerate(sequence):
            weights = self._constraints.weights_at(position)
            if weights is not None:
                log_probability += math.log(weights[self._model.symbols.id_of(symbol)])
        return log_probability - self._forward.log_partition

    def _step_weights(self, position: int, running: Dict[State, float]) -> Dict[int, float]:
        allowed = self._constraints.allowed_ids(position)
        symbol_weights = self._constraints.weights_at(position)
        layer = self._backward[position]
        weights: Dict[int, float] = {}
        for state, mass in running.items():
            for symbol_id, p in self._model.distribution(state).items():
                if allowed is not None and symbol_id not in allowed:
                    continue
                if symbol_weights is not None:
                    p *= symbol_weights.get(symbol_id, 0.0)
                w = mass * p * layer.mass_of(self._model.extend(state, symbol_id))
                if w > 0.0:
                    weights[symbol_id] = weights.get(symbol_id, 0.0) + w
        return weights

    def _expected_mass(self, position: int, running: Dict[State, float]) -> float:
        previous = self._backward[position - 1]
        mass = sum(m * previous.mass_of(state) for state, m in running.items())
        return mass * self._backward.scale_ratio(position - 1, position)

    def _check_step(self, position: int, total: float, expected: float) -> None:
        if not (total > 0.0 and math.isfinite(total)):
            raise InternalConsistencyError(
                f"Aggregate sampling weight is {total} at position {position}; "
                f"the backward table promised a valid completion")
        if not math.isclose(total, expected, rel_tol=self._rtol):
            raise InternalConsistencyError(
                f"Sampling weights at position {position} sum to {total!r}, "
                f"backward table expects {expected!r}")

    def _run(self, rng: np.random.Generator, record: bool) -> Tuple[List[int], List[SamplingStep]]:
        running: Dict[State, float] = dict(self._forward.initial.items())
        chosen_ids: List[int] = []
        steps: List[SamplingStep] = []

        for position in range(self.length):
            weights = self._step_weights(position, running)
            candidates = tuple(sorted(weights))
            weight_array = np.array([weights[x] for x in candidates], dtype=np.float64)
            total = float(weight_array.sum())
            expected = self._expected_mass(position, running)
            self._check_step(position, total, expected)

            probabilities = weight_array / total
            chosen = candidates[int(rng.choice(len(candidates), p=probabilities))]
            chosen_ids.append(chosen)

            if record:
                steps.append(SamplingStep(position=position, candidates=candidates,
                                          weights=weight_array, probabilities=probabilities,
                                          chosen=chosen, expected_mass=expected))

            # Keep only states consistent with the choice, renormalized
            layer = self._backward[position]
            next_running: Dict[State, float] = {}
            for state, mass in running.items():
                p = self._model.probability(state, chosen)
                next_state = self._model.extend(state, chosen)
                if p > 0.0 and layer.mass_of(next_state) > 0.0:
                    next_running[next_state] = next_running.get(next_state, 0.0) + mass * p
            norm = sum(next_running.values())
            running = {state: mass / norm for state, mass in next_running.items()}

        return chosen_ids, steps

    def __repr__(self) -> str:
        return (f"ConstrainedSampler(length={self.length}, n_constrained={len(self._constraints)}, "
                f"log_partition={self.log_partition:.4f})")
