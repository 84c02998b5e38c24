"""Default configuration parameters for different generation scenarios."""

from dataclasses import dataclass
from typing import List, Optional


@dataclass
class DefaultConfig:
    """Base configuration structure for constrained generation."""

    # Model parameters
    markov_order: int
    unseen_context: str

    # Generation parameters
    sequence_length: Optional[int]
    n_sequences: int

    # Processing parameters
    n_parallel: int


# Single-letter toy corpora and tests
MINIMAL_CONFIG = DefaultConfig(
    markov_order=1,
    unseen_context="reject",
    sequence_length=5,
    n_sequences=1,
    n_parallel=1,
)

# Note-level melodies (symbols such as C4, E4, G4)
MELODY_CONFIG = DefaultConfig(
    markov_order=2,  # Two preceding notes capture short melodic motifs
    unseen_context="reject",
    sequence_length=16,
    n_sequences=10,
    n_parallel=1,
)

# Word-level lyrics (symbols are words)
LYRICS_CONFIG = DefaultConfig(
    markov_order=1,  # Word corpora are sparse; higher orders rarely connect
    unseen_context="reject",
    sequence_length=None,  # Usually implied by the constraint lines
    n_sequences=5,
    n_parallel=1,
)

GENERATION_CONFIGS = {
    "minimal": MINIMAL_CONFIG,
    "melody": MELODY_CONFIG,
    "lyrics": LYRICS_CONFIG,
}

UNSEEN_CONTEXT_OPTIONS = [
    "reject",   # Unseen contexts have no continuations
    "uniform",  # Unseen contexts continue uniformly over the alphabet
]

# Practical limits
MAX_RECOMMENDED_ORDER = 5
MAX_RECOMMENDED_LENGTH = 10_000
MAX_RECOMMENDED_PARALLEL = 32


def validate_config(config: DefaultConfig) -> List[str]:
    """Validate configuration parameters and return list of warnings."""
    warnings = []

    if config.markov_order > MAX_RECOMMENDED_ORDER:
        warnings.append(f"Markov order {config.markov_order} is very high, "
                        f"most contexts will be unseen in training")

    if config.unseen_context not in UNSEEN_CONTEXT_OPTIONS:
        warnings.append(f"Unseen-context policy '{config.unseen_context}' not recognized")

    if config.sequence_length is not None and config.sequence_length > MAX_RECOMMENDED_LENGTH:
        warnings.append(f"Sequence length {config.sequence_length} may be slow to generate")

    if config.n_parallel > MAX_RECOMMENDED_PARALLEL:
        warnings.append(f"{config.n_parallel} worker threads is more than useful for CPU-bound sampling")

    if config.n_parallel > config.n_sequences:
        warnings.append(f"n_parallel={config.n_parallel} exceeds n_sequences={config.n_sequences}")

    return warnings
