"""Tests for corpus reading and sequence output."""

import io
import pytest

from constrained_markov.data.corpus import (
    parse_corpus, read_corpus, format_sequence, write_sequences, print_sequences
)


class TestCorpusReading:
    """Test suite for parse_corpus and read_corpus."""

    def test_parse_skips_blank_and_comment_lines(self):
        text = "# melodies\nC4 E4 G4\n\n   \nG4  E4\tC4\n"
        assert parse_corpus(text) == [['C4', 'E4', 'G4'], ['G4', 'E4', 'C4']]

    def test_read_corpus(self, tmp_path):
        path = tmp_path / "corpus.txt"
        path.write_text("Mary had a little lamb\nlittle lamb\n", encoding="utf-8")
        assert read_corpus(path) == [['Mary', 'had', 'a', 'little', 'lamb'], ['little', 'lamb']]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Training file not found"):
            read_corpus(tmp_path / "missing.txt")


class TestSequenceOutput:
    """Test suite for writing generated sequences."""

    def test_format_sequence(self):
        assert format_sequence(['C4', 'E4']) == "C4 E4"
        assert format_sequence([1, 2, 3], separator=',') == "1,2,3"

    def test_write_sequences_creates_parents(self, tmp_path):
        path = write_sequences([['A', 'B'], ['B', 'A']], tmp_path / "out" / "seqs.txt")
        assert path.read_text(encoding="utf-8") == "A B\nB A\n"

    def test_print_sequences(self):
        stream = io.StringIO()
        print_sequences([['A', 'B'], ['C']], stream=stream)
        assert stream.getvalue() == "A B\nC\n"
