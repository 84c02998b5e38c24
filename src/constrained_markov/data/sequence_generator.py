"""Constrained sequence generation from a trained Markov model.

Implements the generation pipeline: validate constraints, build the forward
and backward tables once per request, then draw any number of independent
sequences from them. Batch draws get one random stream each, spawned from a
single seed, so results are identical whether they run serially or in a
thread pool.
"""

import logging
import time
import numpy as np
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, List, Optional, Sequence, Tuple, Union

from .constraint_system import ConstraintSet, layered_constraints_from_spec
from ..core.transition_model import TransitionModel
from ..core.emission_model import HiddenMarkovModel, TaggedToken, TOKEN_SEPARATOR
from ..core.sampler import ConstrainedSampler
from ..core.hidden_sampler import HiddenMarkovSampler
from ..config.random_state import RandomSource, spawn_random_sources
from ..exceptions import InvalidConstraintError

logger = logging.getLogger(__name__)

ConstraintsLike = Union[None, ConstraintSet, Dict[int, Any], str, Sequence[str]]


@dataclass
class GenerationConfig:
    """Configuration for one generation request."""
    length: Optional[int] = None
    constraints: Any = None
    n_sequences: int = 1
    seed: Optional[int] = None
    n_parallel: int = 1

    def __post_init__(self):
        if self.n_sequences < 1:
            raise ValueError("n_sequences must be at least 1")
        if self.n_parallel < 1:
            raise ValueError("n_parallel must be at least 1")


def _draw_batch(sample: Callable[[np.random.Generator], Any],
                length: int,
                n_sequences: int,
                seed: Optional[Union[int, np.random.SeedSequence]],
                n_parallel: int) -> List[Any]:
    """Draw ``n_sequences`` samples, the i-th from the i-th spawned stream."""
    if n_sequences < 1:
        raise ValueError(f"n_sequences must be at least 1, got {n_sequences}")
    if n_parallel < 1:
        raise ValueError(f"n_parallel must be at least 1, got {n_parallel}")

    sources = spawn_random_sources(seed, n_sequences)
    start = time.perf_counter()
    if n_parallel == 1 or n_sequences == 1:
        sequences = [sample(rng) for rng in sources]
    else:
        with ThreadPoolExecutor(max_workers=n_parallel) as executor:
            sequences = list(executor.map(sample, sources))
    logger.info("Generated %d sequence(s) of length %d in %.3fs",
                n_sequences, length, time.perf_counter() - start)
    return sequences


def build_constraint_set(model: TransitionModel,
                         constraints: ConstraintsLike = None,
                         length: Optional[int] = None) -> ConstraintSet:
    """
    Turn any accepted constraint form into a ``ConstraintSet`` for ``model``.

    Parameters
    ----------
    model : TransitionModel
        Trained model whose alphabet the constraints refer to
    constraints : ConstraintsLike
        An existing ``ConstraintSet``, a mapping ``{position: allowed}``, a
        positional predicate spec, or ``None``
    length : Optional[int]
        Sequence length; required unless implied by ``constraints``

    Raises
    ------
    InvalidConstraintError
        If the constraints are malformed or no length is available
    """
    if isinstance(constraints, ConstraintSet):
        if length is not None and length != constraints.length:
            raise ValueError(f"Length {length} does not match constraint set length {constraints.length}")
        return constraints
    return ConstraintSet.from_spec(constraints, model.symbols, length=length)


def generate(model: TransitionModel,
             constraints: ConstraintsLike = None,
             length: Optional[int] = None,
             random_source: RandomSource = None) -> List[Hashable]:
    """
    Draw one constraint-satisfying sequence.

    Parameters
    ----------
    model : TransitionModel
        Trained model
    constraints : ConstraintsLike
        Positional constraints, see ``build_constraint_set``
    length : Optional[int]
        Sequence length L
    random_source : RandomSource
        Seed or ``numpy.random.Generator``

    Returns
    -------
    List[Hashable]
        Sequence of L symbols satisfying every constraint

    Raises
    ------
    InvalidConstraintError
        If the constraints are malformed
    UnsatisfiableConstraintsError
        If no sequence of length L satisfies the constraints

    Examples
    --------
    >>> from constrained_markov.core.transition_model import train
    >>> model = train(["AABAB"], order=2)
    >>> ''.join(generate(model, {0: {'A'}}, length=5, random_source=0))
    'AABAB'
    """
    constraint_set = build_constraint_set(model, constraints, length)
    return ConstrainedSampler(model, constraint_set).sample(random_source)


class SequenceGenerator:
    """Draws batches of sequences for one (model, constraints) request.

    Parameters
    ----------
    model : TransitionModel
        Trained model, shared read-only
    constraints : ConstraintsLike
        Positional constraints
    length : Optional[int]
        Sequence length; required unless implied by ``constraints``
    """

    def __init__(self,
                 model: TransitionModel,
                 constraints: ConstraintsLike = None,
                 length: Optional[int] = None):
        self.model = model
        self.constraints = build_constraint_set(model, constraints, length)

        start = time.perf_counter()
        self.sampler = ConstrainedSampler(model, self.constraints)
        logger.debug("Built forward/backward tables for length %d in %.3fs",
                     self.constraints.length, time.perf_counter() - start)

    @property
    def length(self) -> int:
        return self.constraints.length

    @property
    def log_partition(self) -> float:
        """Log probability that an unconstrained draw satisfies the constraints."""
        return self.sampler.log_partition

    def generate_one(self, random_source: RandomSource = None) -> List[Hashable]:
        return self.sampler.sample(random_source)

    def generate(self,
                 n_sequences: int = 1,
                 seed: Optional[Union[int, np.random.SeedSequence]] = None,
                 n_parallel: int = 1) -> List[List[Hashable]]:
        """
        Draw ``n_sequences`` independent sequences.

        Parameters
        ----------
        n_sequences : int
            Number of sequences
        seed : Optional[Union[int, np.random.SeedSequence]]
            Root seed; sequence ``i`` uses the i-th spawned child stream
        n_parallel : int
            Worker threads; results do not depend on this value

        Returns
        -------
        List[List[Hashable]]
            Sequences in draw order
        """
        return _draw_batch(self.sampler.sample, self.length, n_sequences, seed, n_parallel)

    def generate_from_config(self, config: GenerationConfig) -> List[List[Hashable]]:
        return self.generate(config.n_sequences, seed=config.seed, n_parallel=config.n_parallel)

    def constrained_log_probability(self, sequence: Sequence[Hashable]) -> float:
        return self.sampler.constrained_log_probability(sequence)

    def __repr__(self) -> str:
        return (f"SequenceGenerator(order={self.model.order}, length={self.length}, "
                f"n_constrained={len(self.constraints)})")


HiddenConstraintsLike = Union[None, Tuple[ConstraintSet, ConstraintSet], Dict[int, Any], str, Sequence[str]]


def build_hidden_constraint_sets(model: HiddenMarkovModel,
                                 constraints: HiddenConstraintsLike = None,
                                 length: Optional[int] = None,
                                 separator: str = TOKEN_SEPARATOR) -> Tuple[ConstraintSet, ConstraintSet]:
    """
    Turn any accepted hidden-model constraint form into ``(observed, hidden)`` sets.

    Parameters
    ----------
    model : HiddenMarkovModel
        Trained model
    constraints : HiddenConstraintsLike
        A pair of ``ConstraintSet`` objects, an ``OBS:HIDDEN`` line spec, a
        mapping (see ``layered_constraints_from_spec``), or ``None``
    length : Optional[int]
        Sequence length; required unless implied by ``constraints``
    separator : str
        Separator between the observed and hidden predicate of a line

    Raises
    ------
    InvalidConstraintError
        If the constraints are malformed or no length is available
    """
    if isinstance(constraints, tuple) and len(constraints) == 2 and all(
            isinstance(c, ConstraintSet) for c in constraints):
        observed, hidden = constraints
        if length is not None and length != observed.length:
            raise ValueError(f"Length {length} does not match constraint set length {observed.length}")
        return observed, hidden

    observed_spec, hidden_spec, implied_length = layered_constraints_from_spec(constraints, separator)
    if length is None:
        length = implied_length
    if length is None:
        raise InvalidConstraintError("Sequence length is required when constraints "
                                     "do not imply one")
    return (ConstraintSet(observed_spec, length, model.observed_symbols),
            ConstraintSet(hidden_spec, length, model.hidden_symbols))


def generate_hidden(model: HiddenMarkovModel,
                    constraints: HiddenConstraintsLike = None,
                    length: Optional[int] = None,
                    random_source: RandomSource = None,
                    separator: str = TOKEN_SEPARATOR) -> List[TaggedToken]:
    """
    Draw one tagged sequence satisfying observed and hidden constraints.

    Examples
    --------
    >>> from constrained_markov.core.emission_model import train_hidden
    >>> model = train_hidden([["Ted:NNP", "likes:VBZ", "red:NN"]], order=1)
    >>> [str(t) for t in generate_hidden(model, "SW(t):NNP\\nNC*2", random_source=0)]
    ['Ted:NNP', 'likes:VBZ', 'red:NN']
    """
    observed, hidden = build_hidden_constraint_sets(model, constraints, length, separator)
    return HiddenMarkovSampler(model, observed, hidden).sample(random_source)


class HiddenSequenceGenerator:
    """Draws batches of tagged sequences for one (hidden model, constraints) request.

    Parameters
    ----------
    model : HiddenMarkovModel
        Trained model, shared read-only
    constraints : HiddenConstraintsLike
        Constraints on both layers
    length : Optional[int]
        Sequence length; required unless implied by ``constraints``
    separator : str
        Separator between the observed and hidden predicate of a line
    """

    def __init__(self,
                 model: HiddenMarkovModel,
                 constraints: HiddenConstraintsLike = None,
                 length: Optional[int] = None,
                 separator: str = TOKEN_SEPARATOR):
        self.model = model
        self.observed_constraints, hidden = build_hidden_constraint_sets(
            model, constraints, length, separator)

        start = time.perf_counter()
        self.sampler = HiddenMarkovSampler(model, self.observed_constraints, hidden)
        logger.debug("Built hidden-model tables for length %d in %.3fs",
                     self.length, time.perf_counter() - start)

    @property
    def hidden_constraints(self) -> ConstraintSet:
        return self.sampler.hidden_constraints

    @property
    def length(self) -> int:
        return self.observed_constraints.length

    @property
    def log_partition(self) -> float:
        return self.sampler.log_partition

    def generate_one(self, random_source: RandomSource = None) -> List[TaggedToken]:
        return self.sampler.sample(random_source)

    def generate(self,
                 n_sequences: int = 1,
                 seed: Optional[Union[int, np.random.SeedSequence]] = None,
                 n_parallel: int = 1) -> List[List[TaggedToken]]:
        """Draw ``n_sequences`` independent tagged sequences, see ``SequenceGenerator.generate``."""
        return _draw_batch(self.sampler.sample, self.length, n_sequences, seed, n_parallel)

    def generate_from_config(self, config: GenerationConfig) -> List[List[TaggedToken]]:
        return self.generate(config.n_sequences, seed=config.seed, n_parallel=config.n_parallel)

    def constrained_log_probability(self, sequence: Sequence[Any]) -> float:
        return self.sampler.constrained_log_probability(sequence)

    def __repr__(self) -> str:
        return (f"HiddenSequenceGenerator(order={self.model.order}, length={self.length}, "
                f"n_observed_constrained={len(self.observed_constraints)}, "
                f"n_hidden_constrained={len(self.hidden_constraints)})")


def generate_sequences(model: TransitionModel,
                       config: GenerationConfig) -> List[List[Hashable]]:
    """Generate all sequences described by ``config``."""
    generator = SequenceGenerator(model, config.constraints, config.length)
    return generator.generate_from_config(config)


def validate_generated_sequences(sequences: List[Sequence[Hashable]],
                                 constraints: ConstraintSet) -> Dict[str, Any]:
    """
    Validate generated sequences against a constraint set.

    Parameters
    ----------
    sequences : List[Sequence[Hashable]]
        Generated sequences to validate
    constraints : ConstraintSet
        Constraints they should satisfy

    Returns
    -------
    dict
        Validation results
    """
    results = {
        'total_sequences': len(sequences),
        'valid_sequences': 0,
        'errors': []
    }

    for i, seq in enumerate(sequences):
        if len(seq) != constraints.length:
            results['errors'].append(f"Sequence {i}: Length {len(seq)} != {constraints.length}")
            continue

        unknown = [symbol for symbol in seq if symbol not in constraints.symbols]
        if unknown:
            results['errors'].append(f"Sequence {i}: Unknown symbol '{unknown[0]}'")
            continue

        bad_positions = constraints.violations(seq)
        if bad_positions:
            results['errors'].append(f"Sequence {i}: Constraint violated at positions {bad_positions}")
            continue

        results['valid_sequences'] += 1

    total = results['total_sequences']
    results['validation_rate'] = results['valid_sequences'] / total if total else 0.0
    return results


def analyze_sequence_statistics(sequences: List[Sequence[Hashable]],
                                alphabet: Sequence[Hashable]) -> Dict[str, Any]:
    """
    Analyze statistical properties of generated sequences.

    Parameters
    ----------
    sequences : List[Sequence[Hashable]]
        Generated sequences to analyze
    alphabet : Sequence[Hashable]
        Symbol alphabet

    Returns
    -------
    dict
        Length, symbol usage, transition and diversity statistics
    """
    if not sequences:
        return {'error': 'No sequences to analyze'}

    lengths = [len(seq) for seq in sequences]

    symbol_counts = {symbol: 0 for symbol in alphabet}
    total_symbols = 0
    for seq in sequences:
        for symbol in seq:
            if symbol in symbol_counts:
                symbol_counts[symbol] += 1
                total_symbols += 1

    symbol_frequencies = {symbol: count / total_symbols if total_symbols > 0 else 0
                          for symbol, count in symbol_counts.items()}

    # First-order transitions
    transitions: Dict[tuple, int] = {}
    for seq in sequences:
        for i in range(len(seq) - 1):
            transition = (seq[i], seq[i + 1])
            transitions[transition] = transitions.get(transition, 0) + 1

    common_transitions = sorted(transitions.items(), key=lambda x: x[1], reverse=True)
    n_unique = len(set(tuple(seq) for seq in sequences))

    return {
        'n_sequences': len(sequences),
        'length_stats': {
            'mean': float(np.mean(lengths)),
            'std': float(np.std(lengths)),
            'min': min(lengths),
            'max': max(lengths),
        },
        'symbol_usage': {
            'counts': symbol_counts,
            'frequencies': symbol_frequencies,
            'total_symbols': total_symbols
        },
        'transition_stats': {
            'unique_transitions': len(transitions),
            'most_common': common_transitions[:5]
        },
        'diversity_metrics': {
            'unique_sequences': n_unique,
            'repetition_rate': 1 - n_unique / len(sequences)
        }
    }
