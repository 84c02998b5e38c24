"""
Pytest configuration and shared fixtures for the constrained_markov test suite.
"""

import itertools
import math
import pytest
import numpy as np
import sys
from pathlib import Path

# Add src to path for testing
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from constrained_markov.core.transition_model import train


@pytest.fixture(scope="session")
def global_test_seed():
    """Seed shared by tests that need reproducible draws."""
    return 42


@pytest.fixture
def aabab_corpus():
    """Single-sequence corpus used by the worked examples."""
    return ["AABAB"]


@pytest.fixture
def cyclic_corpus():
    """Corpus in which every context of order 1 and 2 has a continuation."""
    return ["ABCABCAB", "ACBACBAC", "BBCCAABB", "CABBCAAC"]


@pytest.fixture
def melody_corpus():
    """Token-level corpus with multi-character symbols."""
    return [
        ['C4', 'E4', 'G4', 'E4', 'C4'],
        ['C4', 'D4', 'E4', 'F4', 'G4'],
        ['G4', 'F4', 'E4', 'D4', 'C4'],
        ['E4', 'G4', 'C4', 'E4', 'G4'],
    ]


@pytest.fixture
def tagged_corpus():
    """Part-of-speech tagged sentences in observed:hidden form."""
    return [
        "Ted:NNP now:RB likes:VBZ green:NN".split(),
        "Mary:NNP likes:VBZ red:NN".split(),
        "Mary:NNP now:RB loves:VBZ red:NN".split(),
        "Fred:NNP sees:VBZ Mary:NNP sometimes:RB".split(),
    ]


@pytest.fixture
def cyclic_model(cyclic_corpus):
    return train(cyclic_corpus, order=1)


@pytest.fixture
def cyclic_model_order2(cyclic_corpus):
    return train(cyclic_corpus, order=2)


class BruteForce:
    """Exhaustive enumeration helpers for checking the dynamic program."""

    @staticmethod
    def valid_sequences(model, constraints):
        """All sequences with non-zero model probability satisfying ``constraints``."""
        results = {}
        for candidate in itertools.product(model.alphabet, repeat=constraints.length):
            if not constraints.is_satisfied_by(candidate):
                continue
            log_p = model.sequence_log_probability(candidate)
            if log_p > -math.inf:
                results[candidate] = math.exp(log_p)
        return results

    @staticmethod
    def partition(model, constraints):
        return sum(BruteForce.valid_sequences(model, constraints).values())


@pytest.fixture
def brute_force():
    return BruteForce


def pytest_collection_modifyitems(config, items):
    """Automatically mark integration tests."""
    for item in items:
        if "integration" in item.nodeid or "end_to_end" in item.nodeid:
            item.add_marker(pytest.mark.integration)
