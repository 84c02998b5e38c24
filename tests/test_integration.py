"""
Integration tests for the complete training-to-generation pipeline.
"""

import math
import pytest

from constrained_markov import train, generate, SequenceGenerator, ConstraintSet
from constrained_markov.data import read_corpus, write_sequences, validate_generated_sequences
from constrained_markov.exceptions import TrainingError, UnsatisfiableConstraintsError


LYRICS = """\
Mary had a little lamb
little lamb little lamb
Mary had a little lamb
its fleece was white as snow
and everywhere that Mary went
Mary went Mary went
everywhere that Mary went
the lamb was sure to go
"""


class TestBasicIntegration:
    """Basic integration tests."""

    @pytest.mark.integration
    def test_corpus_file_to_output_file(self, tmp_path, global_test_seed):
        """Read a corpus, train, generate with predicate constraints, write results."""
        corpus_path = tmp_path / "lyrics.txt"
        corpus_path.write_text(LYRICS, encoding="utf-8")

        model = train(read_corpus(corpus_path), order=1)
        generator = SequenceGenerator(model, "Mary\nNC*3\nSW(l)")
        sequences = generator.generate(12, seed=global_test_seed, n_parallel=3)

        assert validate_generated_sequences(sequences, generator.constraints)['validation_rate'] == 1.0
        for seq in sequences:
            assert seq[0] == 'Mary'
            assert seq[-1] in {'little', 'lamb'}
            assert model.sequence_log_probability(seq) > -math.inf

        out = write_sequences(sequences, tmp_path / "out.txt")
        assert len(out.read_text(encoding="utf-8").splitlines()) == 12

    @pytest.mark.integration
    def test_reproducibility(self, cyclic_corpus):
        """Same corpus, constraints, length and seed give identical output."""

        def run_pipeline(seed):
            model = train(cyclic_corpus, order=2)
            return SequenceGenerator(model, {0: {'B'}, 6: {'A'}}, length=9).generate(5, seed=seed)

        assert run_pipeline(42) == run_pipeline(42)

    @pytest.mark.integration
    def test_error_taxonomy(self, aabab_corpus):
        """Training, malformed and unsatisfiable failures are distinguishable."""
        with pytest.raises(TrainingError):
            train([], order=2)

        model = train(aabab_corpus, order=2)
        with pytest.raises(UnsatisfiableConstraintsError):
            generate(model, {4: {'A'}}, length=5)
        with pytest.raises(ValueError):
            generate(model, {7: {'A'}}, length=5)

    @pytest.mark.integration
    def test_shared_model_across_requests(self, melody_corpus):
        """One trained model serves independent requests with different lengths."""
        model = train(melody_corpus, order=2)
        short = ConstraintSet({0: ['C4']}, 4, model.symbols)
        long = ConstraintSet({0: ['C4'], 11: ['G4']}, 12, model.symbols)

        first = SequenceGenerator(model, short).generate(3, seed=1)
        second = SequenceGenerator(model, long).generate(3, seed=1)
        assert all(len(seq) == 4 and seq[0] == 'C4' for seq in first)
        assert all(len(seq) == 12 and seq[0] == 'C4' and seq[-1] == 'G4' for seq in second)
