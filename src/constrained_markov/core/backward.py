"""Backward pass: constraint-satisfying completion mass per position and state.

``backward[i][s]`` is the total probability mass of all ways to complete a
sequence from state ``s`` at position ``i`` through position ``L-1`` while
satisfying every remaining constraint::

    backward[L-1][s] = 1 if the last symbol of s is allowed at L-1 else 0
    backward[i][s]   = sum over x allowed at i+1 of
                       P(x | s) * w_{i+1}(x) * backward[i+1][extend(s, x)]

with the same symbol weights ``w`` as the forward pass.

Only states reachable in the forward table are evaluated; unreachable states
can never be visited by the sampler. Layers are rescaled by their maximum and
the factors accumulated in log space.
"""

import logging
import math
import numpy as np
from typing import List, Optional, Tuple

from .state_space import MassLayer, EMPTY_STATE, initial_layer
from .transition_model import TransitionModel
from .forward import ForwardTable
from ..exceptions import UnsatisfiableConstraintsError

logger = logging.getLogger(__name__)


class BackwardTable:
    """Position-indexed completion masses for one generation request.

    Index ``-1`` holds the completion mass of the empty initial state.
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
    def log_total_mass(self) -> float:
        """Log of the total completion mass from the empty state."""
        return self._initial.log_scale

    def scale_ratio(self, from_position: int, to_position: int) -> float:
        """Factor converting stored masses at ``from_position`` into the units of ``to_position``."""
        return math.exp(self[from_position].log_scale - self[to_position].log_scale)

    def __getitem__(self, position: int) -> MassLayer:
        if position == -1:
            return self._initial
        if not 0 <= position < len(self._layers):
            raise IndexError(f"Position {position} out of range [-1, {len(self._layers)})")
        return self._layers[position]

    def __len__(self) -> int:
        return len(self._layers)

    def __repr__(self) -> str:
        return f"BackwardTable(length={self.length}, log_total_mass={self.log_total_mass:.4f})"


def _completion_mass(model: TransitionModel, state, allowed, weights, next_layer: MassLayer) -> float:
    total = 0.0
    for symbol_id, p in model.distribution(state).items():
        if allowed is not None and symbol_id not in allowed:
            continue
        if weights is not None:
            p *= weights.get(symbol_id, 0.0)
        total += p * next_layer.mass_of(model.extend(state, symbol_id))
    return total


def build_backward_table(model: TransitionModel,
                         constraints,
                         forward: ForwardTable) -> BackwardTable:
    """
    Propagate completion mass from position L-1 back to the empty state.

    Parameters
    ----------
    model : TransitionModel
        Trained model
    constraints : ConstraintSet
        Validated constraints
    forward : ForwardTable
        Forward table for the same request; supplies the reachable states

    Returns
    -------
    BackwardTable
        Rescaled backward layers plus the initial completion mass

    Raises
    ------
    UnsatisfiableConstraintsError
        If a layer, or the initial state, has no completion mass
    """
    length = constraints.length
    if forward.length != length:
        raise ValueError(f"Forward table length {forward.length} != constraint length {length}")

    layers: List[Optional[MassLayer]] = [None] * length

    last = length - 1
    allowed = constraints.allowed_ids(last)
    final_states = forward[last].states
    masses = np.array([1.0 if allowed is None or state[-1] in allowed else 0.0
                       for state in final_states])
    if not masses.any():
        raise UnsatisfiableConstraintsError(
            f"No reachable state satisfies the constraint at position {last}", position=last)
    layers[last] = MassLayer(position=last, states=final_states, masses=masses, log_scale=0.0)

    log_scale = 0.0
    for position in range(length - 2, -1, -1):
        allowed = constraints.allowed_ids(position + 1)
        weights = constraints.weights_at(position + 1)
        next_layer = layers[position + 1]
        states = forward[position].states
        masses = np.array([_completion_mass(model, state, allowed, weights, next_layer) for state in states],
                          dtype=np.float64)

        peak = float(masses.max()) if len(masses) else 0.0
        if not peak > 0.0:
            raise UnsatisfiableConstraintsError(
                f"No state at position {position} can be completed to a valid sequence",
                position=position)
        log_scale += math.log(peak)
        layers[position] = MassLayer(position=position, states=states, masses=masses / peak,
                                     log_scale=log_scale)

    start_mass = _completion_mass(model, EMPTY_STATE, constraints.allowed_ids(0),
                                  constraints.weights_at(0), layers[0])
    if not start_mass > 0.0:
        raise UnsatisfiableConstraintsError(
            "No valid sequence can start from the empty state", position=0)

    table = BackwardTable(initial_layer(log_scale=log_scale + math.log(start_mass)), layers)
    logger.debug("Backward table: %d positions, log total mass = %.6f",
                 table.length, table.log_total_mass)
    return table
