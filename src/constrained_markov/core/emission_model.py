"""Hidden Markov model: a fixed-order chain over hidden tags plus emissions.

Training tokens are written ``observed:hidden`` (for example ``Mary:NNP``).
The hidden tags form a ``TransitionModel`` of the requested order; every tag
emits observed tokens with a first-order distribution ``P(observed | tag)``
learned from the same corpus. Constraints may then restrict either layer.
"""

import logging
import math
from collections import Counter, defaultdict
from typing import Any, Dict, FrozenSet, Hashable, Iterable, List, NamedTuple, Optional, Sequence

from .state_space import SymbolTable
from .transition_model import (TransitionModel, ContextDistribution, UNSEEN_CONTEXT_POLICIES,
                               train, _distribution_from_counts)
from ..exceptions import TrainingError

logger = logging.getLogger(__name__)

TOKEN_SEPARATOR = ':'


class TaggedToken(NamedTuple):
    """One position of a hidden-model sequence."""
    observed: Hashable
    hidden: Hashable

    def __str__(self) -> str:
        return f"{self.observed}{TOKEN_SEPARATOR}{self.hidden}"


def split_token(token: Any, separator: str = TOKEN_SEPARATOR) -> TaggedToken:
    """
    Split a training token into its observed and hidden parts.

    The hidden tag is the text after the last separator, so observed tokens
    may themselves contain the separator. Pairs are accepted as they are.

    Raises
    ------
    TrainingError
        If a string token has no separator

    Examples
    --------
    >>> split_token('Fred:NNP')
    TaggedToken(observed='Fred', hidden='NNP')
    >>> split_token('Fred:')
    TaggedToken(observed='Fred', hidden='')
    """
    if isinstance(token, tuple) and len(token) == 2:
        return TaggedToken(*token)
    text = str(token)
    observed, found, hidden = text.rpartition(separator)
    if not found:
        raise TrainingError(f"Token {text!r} has no '{separator}' separating observed and hidden parts")
    return TaggedToken(observed, hidden)


class EmissionModel:
    """Per-tag distribution over observed tokens.

    Parameters
    ----------
    observed : SymbolTable
        Observed alphabet (frozen on construction)
    distributions : Sequence[ContextDistribution]
        Emission distribution of hidden id ``h`` at index ``h``
    """

    def __init__(self, observed: SymbolTable, distributions: Sequence[ContextDistribution]):
        self._observed = observed.freeze()
        self._distributions = tuple(distributions)

    @property
    def symbols(self) -> SymbolTable:
        return self._observed

    @property
    def n_hidden(self) -> int:
        return len(self._distributions)

    def distribution(self, hidden_id: int) -> ContextDistribution:
        return self._distributions[hidden_id]

    def probability(self, hidden_id: int, observed_id: int) -> float:
        return self._distributions[hidden_id].probability_of(observed_id)

    def emission_masses(self, allowed: Optional[FrozenSet[int]]) -> Dict[int, float]:
        """Probability that each hidden tag emits one of the ``allowed`` observed ids."""
        if allowed is None:
            return {h: 1.0 for h in range(self.n_hidden)}
        masses = {}
        for h, dist in enumerate(self._distributions):
            masses[h] = sum(p for o, p in dist.items() if o in allowed)
        return masses

    def __repr__(self) -> str:
        return f"EmissionModel(n_hidden={self.n_hidden}, n_observed={len(self._observed)})"


class HiddenMarkovModel:
    """Immutable hidden Markov model: tag transitions plus tag emissions.

    Parameters
    ----------
    transitions : TransitionModel
        Chain over hidden tags
    emissions : EmissionModel
        Emission distribution for every tag of ``transitions.symbols``
    """

    def __init__(self, transitions: TransitionModel, emissions: EmissionModel):
        if emissions.n_hidden != len(transitions.symbols):
            raise ValueError(f"Emission model covers {emissions.n_hidden} tags, "
                             f"transition model has {len(transitions.symbols)}")
        self._transitions = transitions
        self._emissions = emissions

    @property
    def transitions(self) -> TransitionModel:
        return self._transitions

    @property
    def emissions(self) -> EmissionModel:
        return self._emissions

    @property
    def order(self) -> int:
        return self._transitions.order

    @property
    def hidden_symbols(self) -> SymbolTable:
        return self._transitions.symbols

    @property
    def observed_symbols(self) -> SymbolTable:
        return self._emissions.symbols

    def sequence_log_probability(self, sequence: Sequence[Any]) -> float:
        """Joint log probability of tagged tokens (pairs or ``'obs:hidden'`` strings).

        Returns ``-inf`` for unknown symbols or zero-probability steps.
        """
        tokens = [split_token(token) for token in sequence]
        log_probability = self._transitions.sequence_log_probability([t.hidden for t in tokens])
        if log_probability == -math.inf:
            return -math.inf
        for token in tokens:
            if token.observed not in self.observed_symbols:
                return -math.inf
            p = self._emissions.probability(self.hidden_symbols.id_of(token.hidden),
                                            self.observed_symbols.id_of(token.observed))
            if p <= 0.0:
                return -math.inf
            log_probability += math.log(p)
        return log_probability

    def emission_table(self) -> Dict[Hashable, Dict[Hashable, float]]:
        """Emission probabilities keyed by tag and observed token."""
        table = {}
        for h, tag in enumerate(self.hidden_symbols):
            dist = self._emissions.distribution(h)
            table[tag] = {self.observed_symbols.symbol_of(o): p for o, p in dist.items()}
        return table

    def summary(self) -> Dict[str, Any]:
        summary = self._transitions.summary()
        summary['hidden_alphabet_size'] = summary.pop('alphabet_size')
        summary['observed_alphabet_size'] = len(self.observed_symbols)
        return summary

    def __repr__(self) -> str:
        return (f"HiddenMarkovModel(order={self.order}, n_hidden={len(self.hidden_symbols)}, "
                f"n_observed={len(self.observed_symbols)})")


def train_hidden(corpus: Iterable[Sequence[Any]],
                 order: int,
                 unseen_context: str = 'reject',
                 separator: str = TOKEN_SEPARATOR) -> HiddenMarkovModel:
    """
    Train a hidden Markov model from tagged sequences.

    Parameters
    ----------
    corpus : Iterable[Sequence[Any]]
        Training sequences of ``'observed:hidden'`` strings or
        ``(observed, hidden)`` pairs
    order : int
        Markov order of the hidden chain
    unseen_context : str
        Fallback policy of the hidden chain, see ``TransitionModel``
    separator : str
        Separator between observed and hidden parts of a string token

    Returns
    -------
    HiddenMarkovModel
        Immutable trained model

    Raises
    ------
    TrainingError
        For malformed tokens and for every failure of ``train``

    Examples
    --------
    >>> model = train_hidden([["Ted:NNP", "likes:VBZ"], ["Mary:NNP", "sees:VBZ"]], order=1)
    >>> model.emission_table()['VBZ']
    {'likes': 0.5, 'sees': 0.5}
    """
    if unseen_context not in UNSEEN_CONTEXT_POLICIES:
        raise TrainingError(f"Unknown unseen-context policy '{unseen_context}'. "
                            f"Available: {list(UNSEEN_CONTEXT_POLICIES)}")

    tagged: List[List[TaggedToken]] = [[split_token(token, separator) for token in sequence]
                                       for sequence in corpus]
    transitions = train([[t.hidden for t in sequence] for sequence in tagged], order,
                        unseen_context=unseen_context)

    # Emissions come from the same sequences the chain was trained on
    observed = SymbolTable()
    counts: Dict[int, Counter] = defaultdict(Counter)
    for sequence in tagged:
        if len(sequence) < transitions.order + 1:
            continue
        for token in sequence:
            counts[transitions.symbols.id_of(token.hidden)][observed.intern(token.observed)] += 1

    distributions = [_distribution_from_counts(counts[h]) for h in range(len(transitions.symbols))]
    model = HiddenMarkovModel(transitions, EmissionModel(observed, distributions))
    logger.info("Trained hidden model: %d tags, %d observed tokens",
                len(model.hidden_symbols), len(model.observed_symbols))
    return model
