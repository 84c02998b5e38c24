"""Constraints, corpus I/O and batch generation for constrained_markov.

Key Components
--------------
- Constraint system: positional predicates resolved against the alphabet
- Sequence generation: N independent draws from one set of tables
- Corpus I/O: reading training files and writing generated sequences

Examples
--------
>>> from constrained_markov import train
>>> from constrained_markov.data import SequenceGenerator
>>>
>>> model = train([line.split() for line in ["C D E C", "E F G", "C D C"]], order=1)
>>> generator = SequenceGenerator(model, "SW(c)\\nNC*2\\nC", length=None)
>>> len(generator.generate(3, seed=0))
3
"""

from .constraint_system import (
    Constraint,
    NoConstraint,
    StartsWith,
    Matches,
    OneOf,
    AnyOf,
    AllOf,
    RhymesWith,
    ConstraintSet,
    parse_constraint,
    parse_constraint_lines,
    parse_layered_constraint,
    parse_layered_constraint_lines,
    layered_constraints_from_spec,
    constraints_from_spec,
)

from .sequence_generator import (
    SequenceGenerator,
    GenerationConfig,
    generate,
    generate_sequences,
    build_constraint_set,
    HiddenSequenceGenerator,
    generate_hidden,
    build_hidden_constraint_sets,
    validate_generated_sequences,
    analyze_sequence_statistics,
)

from .corpus import (
    parse_corpus,
    read_corpus,
    format_sequence,
    write_sequences,
    print_sequences,
)

__all__ = [
    # Constraints
    'Constraint',
    'NoConstraint',
    'StartsWith',
    'Matches',
    'OneOf',
    'AnyOf',
    'AllOf',
    'RhymesWith',
    'ConstraintSet',
    'parse_constraint',
    'parse_constraint_lines',
    'parse_layered_constraint',
    'parse_layered_constraint_lines',
    'layered_constraints_from_spec',
    'constraints_from_spec',

    # Generation
    'SequenceGenerator',
    'GenerationConfig',
    'generate',
    'generate_sequences',
    'build_constraint_set',
    'HiddenSequenceGenerator',
    'generate_hidden',
    'build_hidden_constraint_sets',

    # Analysis and validation
    'validate_generated_sequences',
    'analyze_sequence_statistics',

    # Corpus I/O
    'parse_corpus',
    'read_corpus',
    'format_sequence',
    'write_sequences',
    'print_sequences',
]
