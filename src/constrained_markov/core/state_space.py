"""Symbol interning and state representation for fixed-order Markov chains.

Symbols are interned to small integer ids by a ``SymbolTable``. A state is a
tuple of at most ``order`` symbol ids (the sliding context window); before a
full window exists the tuple is shorter, and the empty tuple is the initial
state. Per-position tables intern states to dense handles with a
``StateIndex`` so masses can live in flat numpy arrays.
"""

import numpy as np
from typing import Dict, Hashable, Iterable, Iterator, List, Optional, Sequence, Tuple
from dataclasses import dataclass
import warnings

State = Tuple[int, ...]

EMPTY_STATE: State = ()


class SymbolTable:
    """Bidirectional mapping between symbols and small integer ids.

    Ids are assigned in first-seen order. Once frozen the table rejects new
    symbols, which keeps a trained model's alphabet immutable.

    Parameters
    ----------
    symbols : Optional[Iterable[Hashable]]
        Initial symbols to intern in order

    Examples
    --------
    >>> table = SymbolTable(['C4', 'E4', 'G4'])
    >>> table.id_of('E4')
    1
    >>> table.decode((2, 0))
    ['G4', 'C4']
    """

    def __init__(self, symbols: Optional[Iterable[Hashable]] = None):
        self._symbols: List[Hashable] = []
        self._ids: Dict[Hashable, int] = {}
        self._frozen = False
        for symbol in symbols or ():
            self.intern(symbol)

    def intern(self, symbol: Hashable) -> int:
        """Return the id of ``symbol``, assigning a new one if needed."""
        symbol_id = self._ids.get(symbol)
        if symbol_id is not None:
            return symbol_id
        if self._frozen:
            raise ValueError(f"Cannot add symbol {symbol!r} to a frozen symbol table")
        symbol_id = len(self._symbols)
        self._symbols.append(symbol)
        self._ids[symbol] = symbol_id
        return symbol_id

    def freeze(self) -> 'SymbolTable':
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def symbols(self) -> Tuple[Hashable, ...]:
        return tuple(self._symbols)

    def id_of(self, symbol: Hashable) -> int:
        try:
            return self._ids[symbol]
        except KeyError:
            raise KeyError(f"Unknown symbol {symbol!r}") from None
        except TypeError:
            # Unhashable values can never be interned symbols
            raise KeyError(f"Unknown symbol {symbol!r}") from None

    def symbol_of(self, symbol_id: int) -> Hashable:
        if not 0 <= symbol_id < len(self._symbols):
            raise IndexError(f"Symbol id {symbol_id} out of range [0, {len(self._symbols)})")
        return self._symbols[symbol_id]

    def encode(self, symbols: Iterable[Hashable]) -> State:
        """Encode a sequence of symbols into a tuple of ids."""
        return tuple(self.id_of(symbol) for symbol in symbols)

    def decode(self, symbol_ids: Iterable[int]) -> List[Hashable]:
        """Decode a sequence of ids back into symbols."""
        return [self._symbols[symbol_id] for symbol_id in symbol_ids]

    def __contains__(self, symbol: object) -> bool:
        try:
            return symbol in self._ids
        except TypeError:
            return False

    def __len__(self) -> int:
        return len(self._symbols)

    def __iter__(self) -> Iterator[Hashable]:
        return iter(self._symbols)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SymbolTable):
            return NotImplemented
        return self._symbols == other._symbols

    def __hash__(self) -> int:
        return hash(tuple(self._symbols))

    def __repr__(self) -> str:
        return f"SymbolTable(size={len(self)}, frozen={self._frozen})"


def extend_state(state: State, symbol_id: int, order: int) -> State:
    """Append ``symbol_id`` to ``state`` and keep the last ``order`` ids."""
    return (state + (symbol_id,))[-order:]


class StateIndex:
    """Interns states to dense integer handles in insertion order."""

    def __init__(self, states: Optional[Iterable[State]] = None):
        self._states: List[State] = []
        self._handles: Dict[State, int] = {}
        for state in states or ():
            self.intern(state)

    def intern(self, state: State) -> int:
        handle = self._handles.get(state)
        if handle is None:
            handle = len(self._states)
            self._states.append(state)
            self._handles[state] = handle
        return handle

    def handle_of(self, state: State) -> Optional[int]:
        return self._handles.get(state)

    def state_of(self, handle: int) -> State:
        return self._states[handle]

    @property
    def states(self) -> Tuple[State, ...]:
        return tuple(self._states)

    def __contains__(self, state: object) -> bool:
        return state in self._handles

    def __len__(self) -> int:
        return len(self._states)

    def __iter__(self) -> Iterator[State]:
        return iter(self._states)

    def __repr__(self) -> str:
        return f"StateIndex(n_states={len(self)})"


@dataclass
class MassLayer:
    """States at one sequence position together with their masses.

    Masses are stored renormalized. The true (unscaled) mass of a state is
    ``masses[handle] * exp(log_scale)``.

    Attributes
    ----------
    position : int
        Sequence position, ``-1`` for the initial layer
    states : StateIndex
        Interned states present at this position
    masses : np.ndarray, shape (len(states),)
        Renormalized masses indexed by state handle
    log_scale : float
        Log of the factor that maps stored masses to true masses
    """
    position: int
    states: StateIndex
    masses: np.ndarray
    log_scale: float = 0.0

    def __post_init__(self):
        if self.masses.shape != (len(self.states),):
            raise ValueError(f"Mass vector shape {self.masses.shape} != ({len(self.states)},)")
        self.masses.setflags(write=False)

    def mass_of(self, state: State) -> float:
        """Stored mass of ``state``, zero for states absent from the layer."""
        handle = self.states.handle_of(state)
        if handle is None:
            return 0.0
        return float(self.masses[handle])

    def items(self) -> Iterator[Tuple[State, float]]:
        return zip(self.states, self.masses.tolist())

    @property
    def total(self) -> float:
        return float(self.masses.sum())

    def __len__(self) -> int:
        return len(self.states)


def initial_layer(log_scale: float = 0.0) -> MassLayer:
    """Layer holding only the empty state with unit stored mass."""
    return MassLayer(position=-1, states=StateIndex([EMPTY_STATE]),
                     masses=np.ones(1), log_scale=log_scale)


def check_layer_size(n_states: int, position: int, limit: int = 100_000) -> None:
    if n_states > limit:
        warnings.warn(f"Large state layer ({n_states} states) at position {position} may be slow")


def describe_state(state: Sequence[int], symbols: SymbolTable) -> str:
    """Readable form of a state, e.g. ``'(C4 E4)'``."""
    return "(" + " ".join(str(symbol) for symbol in symbols.decode(state)) + ")"
