"""Tests for constrained sampling from a hidden Markov model."""

import itertools
import math
import pytest
from collections import Counter

from constrained_markov.core.emission_model import TaggedToken, train_hidden
from constrained_markov.core.hidden_sampler import HiddenMarkovSampler
from constrained_markov.data.constraint_system import (
    ConstraintSet, layered_constraints_from_spec
)
from constrained_markov.exceptions import InvalidConstraintError, UnsatisfiableConstraintsError


@pytest.fixture
def hidden_model(tagged_corpus):
    return train_hidden(tagged_corpus, order=1)


def _sampler(model, spec):
    observed, hidden, length = layered_constraints_from_spec(spec)
    return HiddenMarkovSampler(model,
                               ConstraintSet(observed, length, model.observed_symbols),
                               ConstraintSet(hidden, length, model.hidden_symbols))


def _valid_tagged_sequences(sampler):
    """Every tagged sequence with non-zero probability satisfying both layers."""
    model = sampler.model
    emissions = model.emission_table()
    results = {}
    for tags in itertools.product(model.hidden_symbols, repeat=sampler.length):
        for words in itertools.product(*(emissions[tag] for tag in tags)):
            if not (sampler.observed_constraints.is_satisfied_by(words)
                    and sampler.hidden_constraints.is_satisfied_by(tags)):
                continue
            tokens = [TaggedToken(w, t) for w, t in zip(words, tags)]
            log_p = model.sequence_log_probability(tokens)
            if log_p > -math.inf:
                results[tuple(tokens)] = math.exp(log_p)
    return results


class TestPartition:
    """Test suite for the probability of satisfying both layers."""

    def test_both_layers_at_first_position(self, hidden_model):
        sampler = _sampler(hidden_model, "SW(f):NNP\nNC*3")
        # Surviving tag paths of length 4 carry 0.7, P(Fred | NNP) = 0.2
        assert math.exp(sampler.log_partition) == pytest.approx(0.7 * 0.2)

    def test_rhyme_on_last_position(self, hidden_model):
        sampler = _sampler(hidden_model, "NC*3\nRW(red):")
        # NNP RB VBZ NN emits red (2/3), NNP RB VBZ NNP emits Ted or Fred (0.4)
        assert math.exp(sampler.log_partition) == pytest.approx(0.45 * 2 / 3 + 0.15 * 0.4)

    @pytest.mark.parametrize("spec", [
        "SW(f):NNP\nNC*3",
        "NC*3\nRW(red):",
        "NC\n:VBZ\nANY(red|Mary)",
        "Mary:\nNC\nSW(l):VBZ",
    ])
    def test_matches_enumeration(self, hidden_model, spec):
        sampler = _sampler(hidden_model, spec)
        valid = _valid_tagged_sequences(sampler)
        assert math.exp(sampler.log_partition) == pytest.approx(sum(valid.values()))

    def test_constrained_probabilities_sum_to_one(self, hidden_model):
        sampler = _sampler(hidden_model, "NC\n:VBZ\nANY(red|Mary)")
        total = sum(math.exp(sampler.constrained_log_probability(seq))
                    for seq in _valid_tagged_sequences(sampler))
        assert total == pytest.approx(1.0)

    def test_constrained_probability_of_violation(self, hidden_model):
        sampler = _sampler(hidden_model, "SW(f):NNP\nNC*3")
        assert sampler.constrained_log_probability(
            ["Mary:NNP", "now:RB", "likes:VBZ", "red:NN"]) == -math.inf


class TestSampling:
    """Test suite for drawing tagged sequences."""

    def test_samples_satisfy_both_layers(self, hidden_model):
        sampler = _sampler(hidden_model, "SW(f):NNP\nNC\n:VBZ\nRW(red):")
        for seed in range(50):
            tokens = sampler.sample(seed)
            assert len(tokens) == 4
            assert all(isinstance(token, TaggedToken) for token in tokens)
            assert tokens[0] == TaggedToken('Fred', 'NNP')
            assert tokens[2].hidden == 'VBZ'
            assert tokens[3].observed in {'red', 'Ted', 'Fred'}
            assert hidden_model.sequence_log_probability(tokens) > -math.inf

    def test_reproducible(self, hidden_model):
        sampler = _sampler(hidden_model, "NC*4")
        assert sampler.sample(7) == sampler.sample(7)

    def test_frequencies_follow_conditional_distribution(self, hidden_model):
        sampler = _sampler(hidden_model, "NC*3\nRW(red):")
        counts = Counter(str(sampler.sample(seed)[-1]) for seed in range(1500))
        # P(red:NN | constraints) = 0.3 / 0.36
        assert counts['red:NN'] / 1500 == pytest.approx(0.3 / 0.36, abs=0.04)
        assert set(counts) <= {'red:NN', 'Ted:NNP', 'Fred:NNP'}


class TestErrors:
    """Test suite for invalid and unsatisfiable requests."""

    def test_hidden_layer_unsatisfiable(self, hidden_model):
        with pytest.raises(UnsatisfiableConstraintsError):
            _sampler(hidden_model, ":NN\nNC")

    def test_observed_layer_unsatisfiable(self, hidden_model):
        with pytest.raises(UnsatisfiableConstraintsError):
            _sampler(hidden_model, "likes\nNC")

    def test_layers_conflict(self, hidden_model):
        with pytest.raises(UnsatisfiableConstraintsError):
            _sampler(hidden_model, "Mary:VBZ\nNC")

    def test_length_mismatch(self, hidden_model):
        observed = ConstraintSet({}, 3, hidden_model.observed_symbols)
        hidden = ConstraintSet({}, 4, hidden_model.hidden_symbols)
        with pytest.raises(InvalidConstraintError):
            HiddenMarkovSampler(hidden_model, observed, hidden)

    def test_wrong_alphabet(self, hidden_model):
        observed = ConstraintSet({}, 3, hidden_model.hidden_symbols)
        hidden = ConstraintSet({}, 3, hidden_model.hidden_symbols)
        with pytest.raises(InvalidConstraintError):
            HiddenMarkovSampler(hidden_model, observed, hidden)

    def test_repr(self, hidden_model):
        assert "length=2" in repr(_sampler(hidden_model, "NC*2"))
