"""Fixed-order Markov transition model trained once from a symbol corpus.

Training slides a window of width ``order`` over every training sequence and
counts each ``(context, next symbol)`` occurrence. The growing prefixes of
each sequence are counted as contexts too, so positions before a full window
exists have learned distributions (the empty context holds the distribution
of first symbols). Counts are normalized per context.

A trained model never changes. It can be shared by any number of concurrent
generation requests without locking.
"""

import logging
import math
import numpy as np
from collections import Counter, defaultdict
from typing import Dict, Hashable, Iterable, List, Mapping, Sequence, Tuple, Any
from dataclasses import dataclass
import warnings

from .state_space import SymbolTable, StateIndex, State, EMPTY_STATE, extend_state, describe_state
from ..exceptions import TrainingError

logger = logging.getLogger(__name__)

UNSEEN_CONTEXT_POLICIES = ('reject', 'uniform')


@dataclass(frozen=True)
class ContextDistribution:
    """Next-symbol distribution of one context.

    Attributes
    ----------
    symbols : np.ndarray, shape (k,)
        Symbol ids with non-zero probability, sorted ascending
    probabilities : np.ndarray, shape (k,)
        Matching probabilities, summing to 1 (or empty)
    """
    symbols: np.ndarray
    probabilities: np.ndarray

    def __post_init__(self):
        self.symbols.setflags(write=False)
        self.probabilities.setflags(write=False)

    def items(self) -> Iterable[Tuple[int, float]]:
        return zip(self.symbols.tolist(), self.probabilities.tolist())

    def probability_of(self, symbol_id: int) -> float:
        idx = np.searchsorted(self.symbols, symbol_id)
        if idx < len(self.symbols) and self.symbols[idx] == symbol_id:
            return float(self.probabilities[idx])
        return 0.0

    def __len__(self) -> int:
        return len(self.symbols)


def _distribution_from_counts(counts: Mapping[int, int]) -> ContextDistribution:
    symbol_ids = np.array(sorted(counts), dtype=np.int64)
    weights = np.array([counts[s] for s in symbol_ids.tolist()], dtype=np.float64)
    return ContextDistribution(symbols=symbol_ids, probabilities=weights / weights.sum())


class TransitionModel:
    """Immutable mapping from context state to next-symbol distribution.

    Parameters
    ----------
    symbols : SymbolTable
        Trained alphabet (frozen on construction)
    order : int
        Markov order m
    distributions : Mapping[State, ContextDistribution]
        Learned distribution for each observed context
    unseen_context : str
        Fallback policy for contexts never observed in training:
        ``'reject'`` gives them no continuations (zero mass),
        ``'uniform'`` continues uniformly over the alphabet
    n_windows : int
        Number of full-width training windows counted
    n_skipped : int
        Number of training sequences shorter than ``order + 1``
    """

    def __init__(self,
                 symbols: SymbolTable,
                 order: int,
                 distributions: Mapping[State, ContextDistribution],
                 unseen_context: str = 'reject',
                 n_windows: int = 0,
                 n_skipped: int = 0):
        if order < 1:
            raise ValueError("Markov order must be at least 1")
        if unseen_context not in UNSEEN_CONTEXT_POLICIES:
            raise ValueError(f"Unknown unseen-context policy '{unseen_context}'. "
                             f"Available: {list(UNSEEN_CONTEXT_POLICIES)}")

        self._symbols = symbols.freeze()
        self._order = order
        self._unseen_context = unseen_context
        self._contexts = StateIndex(distributions)
        self._distributions = tuple(distributions[state] for state in self._contexts)
        self._n_windows = n_windows
        self._n_skipped = n_skipped

        n = len(self._symbols)
        self._empty = ContextDistribution(np.zeros(0, dtype=np.int64), np.zeros(0))
        self._uniform = ContextDistribution(np.arange(n, dtype=np.int64),
                                            np.full(n, 1.0 / n) if n else np.zeros(0))

    @property
    def symbols(self) -> SymbolTable:
        return self._symbols

    @property
    def alphabet(self) -> Tuple[Hashable, ...]:
        return self._symbols.symbols

    @property
    def order(self) -> int:
        return self._order

    @property
    def unseen_context(self) -> str:
        return self._unseen_context

    @property
    def contexts(self) -> Tuple[State, ...]:
        return self._contexts.states

    @property
    def n_contexts(self) -> int:
        return len(self._contexts)

    @property
    def n_windows(self) -> int:
        return self._n_windows

    def has_context(self, state: State) -> bool:
        return state in self._contexts

    def distribution(self, state: State) -> ContextDistribution:
        """Next-symbol distribution of ``state`` after applying the fallback policy."""
        handle = self._contexts.handle_of(state)
        if handle is not None:
            return self._distributions[handle]
        if self._unseen_context == 'uniform':
            return self._uniform
        return self._empty

    def probability(self, state: State, symbol_id: int) -> float:
        """P(symbol | state)."""
        return self.distribution(state).probability_of(symbol_id)

    def extend(self, state: State, symbol_id: int) -> State:
        return extend_state(state, symbol_id, self._order)

    def encode(self, sequence: Iterable[Hashable]) -> State:
        """Encode symbols to ids, raising ``KeyError`` for unknown symbols."""
        return self._symbols.encode(sequence)

    def sequence_log_probability(self, sequence: Sequence[Hashable]) -> float:
        """Log probability of generating ``sequence`` from the empty state.

        Returns ``-inf`` when the sequence uses an unknown symbol or a
        transition with zero probability.
        """
        if any(symbol not in self._symbols for symbol in sequence):
            return -math.inf
        state = EMPTY_STATE
        log_probability = 0.0
        for symbol_id in self._symbols.encode(sequence):
            p = self.probability(state, symbol_id)
            if p <= 0.0:
                return -math.inf
            log_probability += math.log(p)
            state = self.extend(state, symbol_id)
        return log_probability

    def to_dict(self) -> Dict[Tuple[Hashable, ...], Dict[Hashable, float]]:
        """Transition probabilities keyed by symbols instead of ids."""
        table = {}
        for state, dist in zip(self._contexts, self._distributions):
            context = tuple(self._symbols.decode(state))
            table[context] = {self._symbols.symbol_of(s): p for s, p in dist.items()}
        return table

    def summary(self) -> Dict[str, Any]:
        full_contexts = sum(1 for state in self._contexts if len(state) == self._order)
        return {
            'order': self._order,
            'alphabet_size': len(self._symbols),
            'n_contexts': self.n_contexts,
            'n_full_contexts': full_contexts,
            'n_windows': self._n_windows,
            'n_skipped_sequences': self._n_skipped,
            'unseen_context': self._unseen_context,
        }

    def describe(self, state: State) -> str:
        return describe_state(state, self._symbols)

    def __repr__(self) -> str:
        return (f"TransitionModel(order={self._order}, alphabet_size={len(self._symbols)}, "
                f"n_contexts={self.n_contexts}, unseen_context='{self._unseen_context}')")


def train(corpus: Iterable[Sequence[Hashable]],
          order: int,
          unseen_context: str = 'reject') -> TransitionModel:
    """
    Train a fixed-order Markov model from a corpus of symbol sequences.

    Parameters
    ----------
    corpus : Iterable[Sequence[Hashable]]
        Training sequences, e.g. ``[['C4', 'E4', 'G4'], ...]`` or a list of strings
        (each character is then a symbol)
    order : int
        Markov order m (context width)
    unseen_context : str
        Fallback policy for contexts never seen in training, see ``TransitionModel``

    Returns
    -------
    TransitionModel
        Immutable trained model

    Raises
    ------
    TrainingError
        If ``order`` is not a positive integer, the policy is unknown, or no
        sequence is long enough to produce a single window

    Examples
    --------
    >>> model = train(["AABAB"], order=2)
    >>> model.to_dict()[('A', 'A')]
    {'B': 1.0}
    """
    if isinstance(order, bool) or not isinstance(order, (int, np.integer)) or order < 1:
        raise TrainingError(f"Markov order must be a positive integer, got {order!r}")
    if unseen_context not in UNSEEN_CONTEXT_POLICIES:
        raise TrainingError(f"Unknown unseen-context policy '{unseen_context}'. "
                            f"Available: {list(UNSEEN_CONTEXT_POLICIES)}")
    order = int(order)

    symbols = SymbolTable()
    counts: Dict[State, Counter] = defaultdict(Counter)
    n_sequences = 0
    n_skipped = 0
    n_windows = 0

    for sequence in corpus:
        n_sequences += 1
        sequence = list(sequence)
        if len(sequence) < order + 1:
            n_skipped += 1
            continue

        ids: List[int] = [symbols.intern(symbol) for symbol in sequence]

        # Growing prefix contexts: (), (s0,), ..., (s0 .. s_{m-2},)
        for k in range(order):
            counts[tuple(ids[:k])][ids[k]] += 1

        for start in range(len(ids) - order):
            counts[tuple(ids[start:start + order])][ids[start + order]] += 1
            n_windows += 1

    if n_windows == 0:
        if n_sequences == 0:
            raise TrainingError("Training corpus is empty")
        raise TrainingError(f"Markov order {order} is too large: none of the {n_sequences} "
                            f"training sequences has at least {order + 1} symbols")

    distributions = {state: _distribution_from_counts(counter) for state, counter in counts.items()}

    n_possible = len(symbols) ** order
    if n_possible > 1_000_000:
        warnings.warn(f"Large context space ({len(symbols)}^{order} = {n_possible}) may be slow")

    model = TransitionModel(symbols, order, distributions,
                            unseen_context=unseen_context,
                            n_windows=n_windows,
                            n_skipped=n_skipped)
    logger.info("Trained order-%d model: %d symbols, %d contexts, %d windows (%d of %d sequences skipped)",
                order, len(symbols), model.n_contexts, n_windows, n_skipped, n_sequences)
    return model
