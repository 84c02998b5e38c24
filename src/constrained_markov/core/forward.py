"""Forward pass: constraint-consistent prefix mass per position and state.

``forward[i][s]`` is the probability mass of all constraint-satisfying
prefixes of length ``i + 1`` that end in state ``s``::

    forward[-1][()] = 1
    forward[i][s]   = sum over s', x with s = extend(s', x) and x allowed at i
                      of forward[i-1][s'] * P(x | s') * w_i(x)

where ``w_i(x)`` is the constraint set's symbol weight (1 unless weights are
attached, see ``ConstraintSet.with_weights``).

Each layer is renormalized to sum to one and the removed factor is
accumulated in log space, so long sequences do not underflow. The final
accumulated log factor is the log probability that a length-L draw from the
unconstrained chain satisfies every constraint.
"""

import logging
import math
import numpy as np
from typing import List, Tuple

from .state_space import MassLayer, StateIndex, State, initial_layer, check_layer_size
from .transition_model import TransitionModel
from ..exceptions import InvalidConstraintError, UnsatisfiableConstraintsError

logger = logging.getLogger(__name__)


class ForwardTable:
    """Position-indexed forward masses for one generation request.

    Index ``-1`` returns the initial layer (empty state, mass 1); indices
    ``0 .. L-1`` return the layer after that many + 1 symbols.
    """

    def __init__(self, initial: MassLayer, layers: List[MassLayer]):
        self._initial = initial
        self._layers = tuple(layers)

    @property
    def initial(self) -> MassLayer:
        return self._initial

    @property
    def layers(self) -> Tuple[MassLayer, ...]:
        return self._layers

    @property
    def length(self) -> int:
        return len(self._layers)

    @property
    def log_partition(self) -> float:
        """log P(all constraints satisfied) under the unconstrained chain."""
        return self._layers[-1].log_scale

    def states_at(self, position: int) -> Tuple[State, ...]:
        return self[position].states.states

    def __getitem__(self, position: int) -> MassLayer:
        if position == -1:
            return self._initial
        if not 0 <= position < len(self._layers):
            raise IndexError(f"Position {position} out of range [-1, {len(self._layers)})")
        return self._layers[position]

    def __len__(self) -> int:
        return len(self._layers)

    def __repr__(self) -> str:
        sizes = [len(layer) for layer in self._layers]
        return f"ForwardTable(length={self.length}, max_states={max(sizes)}, log_partition={self.log_partition:.4f})"


def build_forward_table(model: TransitionModel, constraints) -> ForwardTable:
    """
    Propagate prefix mass from the empty state over positions 0..L-1.

    Parameters
    ----------
    model : TransitionModel
        Trained model
    constraints : ConstraintSet
        Validated constraints built against ``model.symbols``

    Returns
    -------
    ForwardTable
        Renormalized forward layers

    Raises
    ------
    InvalidConstraintError
        If the constraints refer to a different alphabet
    UnsatisfiableConstraintsError
        If all mass vanishes at some position
    """
    if constraints.symbols != model.symbols:
        raise InvalidConstraintError("Constraint set was built for a different alphabet")

    initial = initial_layer()
    previous = initial
    layers: List[MassLayer] = []
    log_scale = 0.0

    for position in range(constraints.length):
        allowed = constraints.allowed_ids(position)
        weights = constraints.weights_at(position)
        states = StateIndex()
        accumulated: List[float] = []

        for state, mass in previous.items():
            if mass == 0.0:
                continue
            for symbol_id, p in model.distribution(state).items():
                if allowed is not None and symbol_id not in allowed:
                    continue
                if weights is not None:
                    p *= weights.get(symbol_id, 0.0)
                handle = states.intern(model.extend(state, symbol_id))
                if handle == len(accumulated):
                    accumulated.append(0.0)
                accumulated[handle] += mass * p

        masses = np.asarray(accumulated, dtype=np.float64)
        total = float(masses.sum())
        if not total > 0.0:
            raise UnsatisfiableConstraintsError(
                f"No constraint-satisfying prefix reaches position {position}",
                position=position)

        check_layer_size(len(states), position)
        log_scale += math.log(total)
        layer = MassLayer(position=position, states=states, masses=masses / total, log_scale=log_scale)
        layers.append(layer)
        previous = layer

    table = ForwardTable(initial, layers)
    logger.debug("Forward table: %d positions, %d states in widest layer, log Z = %.6f",
                 table.length, max(len(layer) for layer in layers), table.log_partition)
    return table
