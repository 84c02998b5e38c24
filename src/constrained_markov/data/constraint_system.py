"""Positional constraints for constrained sequence generation.

A ``ConstraintSet`` maps sequence positions to the non-empty set of symbols
allowed there; positions without an entry are unconstrained. Constraints can
be given directly as symbol sets or as predicates that are resolved against
the trained alphabet:

=============  ==================================================
``NC``         no constraint
``SW(x)``      symbol starts with letter ``x`` (case-insensitive)
``EQ(text)``   symbol equals ``text`` (case-insensitive)
``IN(a,b)``    symbol is exactly one of the listed values
``ANY(p|q)``   any of the nested predicates holds
``ALL(p|q)``   all of the nested predicates hold
``RW(word)``   symbol rhymes with ``word`` (CMU pronouncing dictionary)
``text``       shorthand for ``EQ(text)``
=============  ==================================================

A constraint spec is a multi-line string with one predicate per position;
``PRED*N`` repeats a predicate for N consecutive positions, and the number of
expanded lines is the implied sequence length.

For hidden Markov models each line may carry two predicates, ``OBS:HIDDEN``,
constraining the observed token and the hidden tag separately (e.g.
``SW(f):NNP``). A line without a separator constrains the observed layer only.
"""

import copy
import re
import numpy as np
import pronouncing
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import (AbstractSet, Any, Dict, FrozenSet, Hashable, Iterable, List, Mapping,
                    Optional, Sequence, Tuple, Union)

from ..core.state_space import SymbolTable
from ..exceptions import InvalidConstraintError, UnsatisfiableConstraintsError


class Constraint(ABC):
    """Predicate over single symbols."""

    @abstractmethod
    def is_satisfied_by(self, symbol: Hashable) -> bool:
        ...

    def resolve(self, symbols: SymbolTable) -> FrozenSet[int]:
        """Ids of all alphabet symbols satisfying the predicate."""
        return frozenset(i for i, symbol in enumerate(symbols) if self.is_satisfied_by(symbol))

    @property
    def is_unconstrained(self) -> bool:
        return False


@dataclass(frozen=True)
class NoConstraint(Constraint):
    def is_satisfied_by(self, symbol: Hashable) -> bool:
        return True

    @property
    def is_unconstrained(self) -> bool:
        return True

    def __str__(self) -> str:
        return "NC"


@dataclass(frozen=True)
class StartsWith(Constraint):
    letter: str

    def __post_init__(self):
        if not self.letter:
            raise InvalidConstraintError("SW() needs a letter")
        # Only the first character counts: SW(fred) is SW(f)
        object.__setattr__(self, 'letter', self.letter[0])

    def is_satisfied_by(self, symbol: Hashable) -> bool:
        text = str(symbol)
        return bool(text) and text[0].lower() == self.letter.lower()

    def __str__(self) -> str:
        return f"SW({self.letter})"


@dataclass(frozen=True)
class Matches(Constraint):
    text: str

    def is_satisfied_by(self, symbol: Hashable) -> bool:
        return str(symbol).lower() == self.text.lower()

    def __str__(self) -> str:
        return f"EQ({self.text})"


@dataclass(frozen=True)
class OneOf(Constraint):
    values: FrozenSet[Hashable]

    def is_satisfied_by(self, symbol: Hashable) -> bool:
        return symbol in self.values

    def __str__(self) -> str:
        return "IN(" + ",".join(sorted(str(v) for v in self.values)) + ")"


@dataclass(frozen=True)
class AnyOf(Constraint):
    constraints: Tuple[Constraint, ...]

    def is_satisfied_by(self, symbol: Hashable) -> bool:
        return any(c.is_satisfied_by(symbol) for c in self.constraints)

    def __str__(self) -> str:
        return "ANY(" + "|".join(str(c) for c in self.constraints) + ")"


@dataclass(frozen=True)
class AllOf(Constraint):
    constraints: Tuple[Constraint, ...]

    def is_satisfied_by(self, symbol: Hashable) -> bool:
        return all(c.is_satisfied_by(symbol) for c in self.constraints)

    def __str__(self) -> str:
        return "ALL(" + "|".join(str(c) for c in self.constraints) + ")"


@lru_cache(maxsize=4096)
def rhyming_parts(word: str) -> FrozenSet[str]:
    """Rhyming parts (phones from the last stressed vowel) of every pronunciation of ``word``.

    Empty for words missing from the CMU pronouncing dictionary.

    Examples
    --------
    >>> sorted(rhyming_parts('red'))
    ['EH1 D']
    """
    phones = pronouncing.phones_for_word(word.lower())
    return frozenset(pronouncing.rhyming_part(p) for p in phones)


@dataclass(frozen=True)
class RhymesWith(Constraint):
    """Symbol rhymes with ``word``: the two share a rhyming part.

    Symbols that are not words of the dictionary never satisfy the predicate.
    """
    word: str

    def __post_init__(self):
        if not self.word:
            raise InvalidConstraintError("RW() needs a word")
        if not rhyming_parts(self.word):
            raise InvalidConstraintError(f"RW(): no pronunciation known for {self.word!r}")

    def is_satisfied_by(self, symbol: Hashable) -> bool:
        return not rhyming_parts(self.word).isdisjoint(rhyming_parts(str(symbol)))

    def __str__(self) -> str:
        return f"RW({self.word})"


_CALL_RE = re.compile(r"^(SW|EQ|IN|ANY|ALL|RW)\((.*)\)$", re.DOTALL)
_REPEAT_RE = re.compile(r"^(.*)\*\s*(\d+)$")


def _split_top_level(text: str, separator: str) -> List[str]:
    """Split on ``separator`` outside of parentheses."""
    parts, depth, current = [], 0, []
    for char in text:
        if char == '(':
            depth += 1
        elif char == ')':
            depth -= 1
        if char == separator and depth == 0:
            parts.append(''.join(current))
            current = []
        else:
            current.append(char)
    parts.append(''.join(current))
    return [part.strip() for part in parts]


def parse_constraint(text: str) -> Constraint:
    """
    Parse a single predicate expression.

    Parameters
    ----------
    text : str
        Expression such as ``'SW(c)'``, ``'ANY(C4|E4)'`` or ``'NC'``

    Returns
    -------
    Constraint
        Parsed predicate

    Examples
    --------
    >>> parse_constraint('SW(f)').is_satisfied_by('Fred')
    True
    >>> parse_constraint('ANY(SW(x)|mary)').is_satisfied_by('Mary')
    True
    """
    text = text.strip()
    if not text:
        raise InvalidConstraintError("Empty constraint expression")
    if text == 'NC':
        return NoConstraint()

    match = _CALL_RE.match(text)
    if match is None:
        return Matches(text)

    name, argument = match.group(1), match.group(2).strip()
    if name == 'SW':
        return StartsWith(argument)
    if name == 'EQ':
        return Matches(argument)
    if name == 'RW':
        return RhymesWith(argument)
    if name == 'IN':
        values = frozenset(v for v in _split_top_level(argument, ',') if v)
        if not values:
            raise InvalidConstraintError(f"IN() needs at least one symbol: {text!r}")
        return OneOf(values)

    nested = tuple(parse_constraint(part) for part in _split_top_level(argument, '|'))
    return AnyOf(nested) if name == 'ANY' else AllOf(nested)


def _split_repeat(line: str) -> Tuple[str, int]:
    repeat = _REPEAT_RE.match(line)
    if repeat is None:
        return line, 1
    return repeat.group(1).strip(), int(repeat.group(2))


def _spec_lines(spec: Union[str, Sequence[str]]) -> List[Tuple[str, int]]:
    lines = spec.splitlines() if isinstance(spec, str) else list(spec)
    return [_split_repeat(line) for line in (str(raw).strip() for raw in lines) if line]


def parse_constraint_lines(spec: Union[str, Sequence[str]]) -> List[Constraint]:
    """
    Parse a positional constraint spec into one predicate per position.

    Parameters
    ----------
    spec : Union[str, Sequence[str]]
        Newline separated string or list of lines. ``PRED*N`` repeats
        ``PRED`` N times; blank lines are ignored.

    Returns
    -------
    List[Constraint]
        Predicate for each position, in order
    """
    constraints: List[Constraint] = []
    for body, count in _spec_lines(spec):
        constraints.extend([parse_constraint(body)] * count)
    return constraints


def _parse_layer(text: str) -> Constraint:
    return parse_constraint(text) if text else NoConstraint()


def parse_layered_constraint(text: str, separator: str = ':') -> Tuple[Constraint, Constraint]:
    """
    Parse ``OBS:HIDDEN`` into ``(observed, hidden)`` predicates.

    Either side may be empty (no constraint). Without a separator the
    expression constrains the observed layer only.

    Examples
    --------
    >>> parse_layered_constraint('SW(f):NNP')
    (StartsWith(letter='f'), Matches(text='NNP'))
    """
    parts = _split_top_level(text.strip(), separator)
    if len(parts) == 1:
        return parse_constraint(parts[0]), NoConstraint()
    if len(parts) == 2:
        return _parse_layer(parts[0]), _parse_layer(parts[1])
    raise InvalidConstraintError(f"Expected at most one '{separator}' in {text!r}")


def parse_layered_constraint_lines(spec: Union[str, Sequence[str]],
                                   separator: str = ':') -> Tuple[List[Constraint], List[Constraint]]:
    """
    Parse a hidden-model constraint spec into observed and hidden predicates.

    Same line syntax as ``parse_constraint_lines``; each line may be
    ``OBS:HIDDEN`` and ``OBS:HIDDEN*N`` repeats both.

    Returns
    -------
    Tuple[List[Constraint], List[Constraint]]
        Observed and hidden predicate per position, equal lengths
    """
    observed: List[Constraint] = []
    hidden: List[Constraint] = []
    for body, count in _spec_lines(spec):
        obs, hid = parse_layered_constraint(body, separator)
        observed.extend([obs] * count)
        hidden.extend([hid] * count)
    return observed, hidden


ConstraintValue = Union[Constraint, str, Hashable, Iterable[Hashable]]


def _is_expression(text: str) -> bool:
    text = text.strip()
    return text == 'NC' or _CALL_RE.match(text) is not None


def _mapping_value(value: Any) -> ConstraintValue:
    """Strings in predicate syntax become predicates; other strings name one symbol."""
    if isinstance(value, str) and _is_expression(value):
        return parse_constraint(value)
    return value


def _mapping_position(key: Any) -> int:
    try:
        return int(key)
    except (TypeError, ValueError):
        raise InvalidConstraintError(f"Constraint position {key!r} is not an integer",
                                     position=None) from None


def constraints_from_spec(spec: Any) -> Tuple[Dict[int, ConstraintValue], Optional[int]]:
    """
    Normalize a configuration value into ``(constraints, implied_length)``.

    Accepts a positional spec (string or list of lines; the implied length is
    the number of expanded lines) or a mapping ``{position: value}`` (no
    implied length). In a mapping a value is a symbol, a list of allowed
    symbols, or a string in predicate syntax (``NC``, ``SW(..)``, ``EQ(..)``,
    ``IN(..)``, ``ANY(..)``, ``ALL(..)``, ``RW(..)``); any other string names
    exactly one symbol. ``None`` means no constraints.
    """
    if spec is None:
        return {}, None
    if isinstance(spec, Mapping):
        constraints = {_mapping_position(key): _mapping_value(value) for key, value in spec.items()}
        return constraints, None
    if isinstance(spec, (str, list, tuple)):
        lines = parse_constraint_lines(spec)
        constraints = {i: c for i, c in enumerate(lines) if not c.is_unconstrained}
        return constraints, len(lines)
    raise InvalidConstraintError(f"Unsupported constraint spec of type {type(spec).__name__}")


def layered_constraints_from_spec(spec: Any, separator: str = ':') -> Tuple[
        Dict[int, ConstraintValue], Dict[int, ConstraintValue], Optional[int]]:
    """
    Normalize a hidden-model configuration value.

    Returns ``(observed, hidden, implied_length)``. A positional spec uses
    ``OBS:HIDDEN`` lines. In a mapping, a value is either a mapping with
    ``observed`` and/or ``hidden`` keys, or a plain value for the observed
    layer, read as in ``constraints_from_spec``.
    """
    if spec is None:
        return {}, {}, None
    if isinstance(spec, Mapping):
        observed: Dict[int, ConstraintValue] = {}
        hidden: Dict[int, ConstraintValue] = {}
        for key, value in spec.items():
            position = _mapping_position(key)
            if isinstance(value, Mapping):
                unknown = set(value) - {'observed', 'hidden'}
                if unknown:
                    raise InvalidConstraintError(
                        f"Unknown constraint layer(s) {sorted(unknown)} at position {position}",
                        position=position)
                if 'observed' in value:
                    observed[position] = _mapping_value(value['observed'])
                if 'hidden' in value:
                    hidden[position] = _mapping_value(value['hidden'])
            else:
                observed[position] = _mapping_value(value)
        return observed, hidden, None
    if isinstance(spec, (str, list, tuple)):
        obs_lines, hid_lines = parse_layered_constraint_lines(spec, separator)
        observed = {i: c for i, c in enumerate(obs_lines) if not c.is_unconstrained}
        hidden = {i: c for i, c in enumerate(hid_lines) if not c.is_unconstrained}
        return observed, hidden, len(obs_lines)
    raise InvalidConstraintError(f"Unsupported constraint spec of type {type(spec).__name__}")


class ConstraintSet:
    """Validated, immutable mapping from position to allowed symbol ids.

    Parameters
    ----------
    constraints : Mapping[int, ConstraintValue]
        Position to predicate, to an iterable of allowed symbols, or to a
        single symbol (strings are always single symbols). Non-string
        symbols missing from the alphabet fall back to their string form,
        so ``60`` matches the corpus token ``'60'``
    length : int
        Sequence length L
    symbols : SymbolTable
        Trained alphabet the constraints refer to

    Raises
    ------
    InvalidConstraintError
        If a position lies outside ``[0, L)``, an allowed set is empty, or a
        symbol is not in the alphabet
    """

    def __init__(self,
                 constraints: Mapping[int, ConstraintValue],
                 length: int,
                 symbols: SymbolTable):
        if isinstance(length, bool) or not isinstance(length, (int, np.integer)) or length < 1:
            raise InvalidConstraintError(f"Sequence length must be a positive integer, got {length!r}")
        self._length = int(length)
        self._symbols = symbols

        allowed: Dict[int, FrozenSet[int]] = {}
        for position, value in constraints.items():
            if isinstance(position, bool) or not isinstance(position, (int, np.integer)):
                raise InvalidConstraintError(f"Constraint position {position!r} is not an integer",
                                             position=None)
            position = int(position)
            if not 0 <= position < self._length:
                raise InvalidConstraintError(
                    f"Constraint position {position} out of range [0, {self._length})",
                    position=position)
            ids = self._resolve(position, value)
            if len(ids) < len(symbols):
                allowed[position] = ids

        self._allowed = MappingProxyType(dict(sorted(allowed.items())))
        self._weights: Mapping[int, Mapping[int, float]] = MappingProxyType({})

    def _resolve(self, position: int, value: ConstraintValue) -> FrozenSet[int]:
        if isinstance(value, Constraint):
            ids = value.resolve(self._symbols)
            if not ids:
                raise InvalidConstraintError(
                    f"Constraint {value} at position {position} matches no symbol of the alphabet",
                    position=position)
            return ids

        if isinstance(value, str) or value in self._symbols or not isinstance(value, Iterable):
            values = [value]
        else:
            values = list(value)
        if not values:
            raise InvalidConstraintError(f"Empty allowed-symbol set at position {position}",
                                         position=position)
        return frozenset(self._symbol_id(position, symbol) for symbol in values)

    def _symbol_id(self, position: int, symbol: Any) -> int:
        if symbol in self._symbols:
            return self._symbols.id_of(symbol)
        if not isinstance(symbol, str) and str(symbol) in self._symbols:
            return self._symbols.id_of(str(symbol))
        raise InvalidConstraintError(
            f"Unknown symbol {symbol!r} in constraint at position {position}",
            position=position, symbol=symbol)

    def with_weights(self, weights: Mapping[int, Mapping[int, float]]) -> 'ConstraintSet':
        """
        Attach per-position symbol weights.

        The dynamic program multiplies the probability of emitting symbol
        ``x`` at position ``i`` by ``weights[i][x]``; ids with zero or
        missing weight are no longer allowed there. Hidden Markov models use
        this to fold observed-layer constraints into the hidden chain.

        Parameters
        ----------
        weights : Mapping[int, Mapping[int, float]]
            Position to symbol id to non-negative weight

        Returns
        -------
        ConstraintSet
            New constraint set; ``self`` is unchanged

        Raises
        ------
        UnsatisfiableConstraintsError
            If no allowed symbol keeps a positive weight at some position
        """
        allowed = dict(self._allowed)
        stored: Dict[int, Mapping[int, float]] = dict(self._weights)
        for position, row in weights.items():
            if not 0 <= position < self._length:
                raise InvalidConstraintError(
                    f"Weight position {position} out of range [0, {self._length})", position=position)
            previous = stored.get(position)
            current = allowed.get(position)
            combined = {}
            for symbol_id, weight in row.items():
                if weight > 0.0 and (current is None or symbol_id in current):
                    factor = 1.0 if previous is None else previous.get(symbol_id, 0.0)
                    if factor > 0.0:
                        combined[symbol_id] = float(weight) * factor
            if not combined:
                raise UnsatisfiableConstraintsError(
                    f"No symbol keeps a positive weight at position {position}", position=position)
            ids = frozenset(combined)
            if len(ids) < len(self._symbols):
                allowed[position] = ids
            else:
                allowed.pop(position, None)
            stored[position] = MappingProxyType(combined)

        weighted = copy.copy(self)
        weighted._allowed = MappingProxyType(dict(sorted(allowed.items())))
        weighted._weights = MappingProxyType(stored)
        return weighted

    @classmethod
    def unconstrained(cls, length: int, symbols: SymbolTable) -> 'ConstraintSet':
        return cls({}, length, symbols)

    @classmethod
    def from_spec(cls,
                  spec: Any,
                  symbols: SymbolTable,
                  length: Optional[int] = None) -> 'ConstraintSet':
        """
        Build a constraint set from a configuration value.

        ``length`` overrides the length implied by a positional spec. One of
        the two must be available.
        """
        constraints, implied_length = constraints_from_spec(spec)
        if length is None:
            length = implied_length
        if length is None:
            raise InvalidConstraintError("Sequence length is required when constraints "
                                         "do not imply one")
        return cls(constraints, length, symbols)

    @property
    def length(self) -> int:
        return self._length

    @property
    def symbols(self) -> SymbolTable:
        return self._symbols

    @property
    def positions(self) -> Tuple[int, ...]:
        return tuple(self._allowed)

    def allowed_ids(self, position: int) -> Optional[FrozenSet[int]]:
        """Allowed ids at ``position``, ``None`` when unconstrained."""
        return self._allowed.get(position)

    def weights_at(self, position: int) -> Optional[Mapping[int, float]]:
        """Symbol weights at ``position``, ``None`` when every symbol has weight 1."""
        return self._weights.get(position)

    @property
    def is_weighted(self) -> bool:
        return bool(self._weights)

    def allowed_symbols(self, position: int) -> Optional[FrozenSet[Hashable]]:
        ids = self._allowed.get(position)
        if ids is None:
            return None
        return frozenset(self._symbols.decode(ids))

    def permits(self, position: int, symbol_id: int) -> bool:
        ids = self._allowed.get(position)
        return ids is None or symbol_id in ids

    def violations(self, sequence: Sequence[Hashable]) -> List[int]:
        """Positions at which ``sequence`` breaks a constraint."""
        bad = []
        for position, ids in self._allowed.items():
            if position >= len(sequence):
                bad.append(position)
                continue
            symbol = sequence[position]
            if symbol not in self._symbols or self._symbols.id_of(symbol) not in ids:
                bad.append(position)
        return bad

    def is_satisfied_by(self, sequence: Sequence[Hashable]) -> bool:
        return len(sequence) == self._length and not self.violations(sequence)

    def as_dict(self) -> Dict[int, AbstractSet[Hashable]]:
        return {position: self.allowed_symbols(position) for position in self._allowed}

    def __contains__(self, position: object) -> bool:
        return position in self._allowed

    def __len__(self) -> int:
        return len(self._allowed)

    def __repr__(self) -> str:
        return f"ConstraintSet(length={self._length}, n_constrained={len(self._allowed)})"
