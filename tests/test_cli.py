"""Tests for the command-line interface."""

import pytest
from unittest.mock import patch

import cli


@pytest.fixture(autouse=True)
def no_log_files():
    with patch.object(cli, "_setup_logging"):
        yield


@pytest.fixture
def corpus_file(tmp_path):
    path = tmp_path / "corpus.txt"
    path.write_text("A A B A B\n", encoding="utf-8")
    return path


def _run(argv):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(argv)
    return exc_info.value.code


class TestGenerateCommand:
    """Test suite for the ``generate`` sub-command."""

    def test_generate_to_stdout(self, corpus_file, tmp_path, capsys, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = tmp_path / "run.yaml"
        config.write_text("constraints:\n  0: [A]\nsequence_length: 5\n")
        code = _run(["generate", "-c", str(config), "-f", str(corpus_file), "-m", "2", "--seed", "1"])
        assert code == 0
        assert capsys.readouterr().out.splitlines() == ["A A B A B"]

    def test_flags_override_config(self, corpus_file, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = tmp_path / "run.yaml"
        config.write_text(f"training_file: {corpus_file}\nmarkov_order: 1\nconstraints: |\n  A\n  NC*4\n")
        out = tmp_path / "out.txt"
        code = _run(["generate", "-c", str(config), "-m", "2", "-n", "3", "-o", str(out), "--seed", "4"])
        assert code == 0
        assert out.read_text().splitlines() == ["A A B A B"] * 3

    def test_default_config_file(self, corpus_file, tmp_path, capsys, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "config.yaml").write_text(
            f"training_file: {corpus_file}\nmarkov_order: 2\nsequence_length: 5\n")
        assert _run(["generate", "--seed", "0"]) == 0
        assert capsys.readouterr().out.strip() == "A A B A B"

    def test_parallel_matches_serial(self, tmp_path, capsys, monkeypatch):
        monkeypatch.chdir(tmp_path)
        corpus = tmp_path / "c.txt"
        corpus.write_text("A B C A B C A B\nA C B A C B A C\n")
        base = ["generate", "-f", str(corpus), "-l", "10", "-n", "6", "--seed", "5"]
        assert _run(base) == 0
        serial = capsys.readouterr().out
        assert _run(base + ["-p", "3"]) == 0
        assert capsys.readouterr().out == serial

    def test_unsatisfiable_exit_code(self, corpus_file, tmp_path, monkeypatch, caplog):
        monkeypatch.chdir(tmp_path)
        code = _run(["generate", "-f", str(corpus_file), "-m", "2", "-l", "5", "-c", str(
            _write(tmp_path / "c.yaml", "constraints:\n  4: [A]\n"))])
        assert code == 2
        assert "position=4" in caplog.text

    def test_numeric_constraint(self, tmp_path, capsys, monkeypatch):
        monkeypatch.chdir(tmp_path)
        corpus = _write(tmp_path / "notes.txt", "60 62 64 60\n")
        config = _write(tmp_path / "n.yaml", "constraints:\n  0: 60\nsequence_length: 3\n")
        assert _run(["generate", "-c", str(config), "-f", str(corpus), "-m", "1", "--seed", "0"]) == 0
        assert capsys.readouterr().out.splitlines() == ["60 62 64"]

    def test_unknown_numeric_constraint(self, tmp_path, monkeypatch, caplog):
        monkeypatch.chdir(tmp_path)
        corpus = _write(tmp_path / "notes.txt", "60 62 64 60\n")
        config = _write(tmp_path / "n.yaml", "constraints:\n  1: 61\nsequence_length: 3\n")
        assert _run(["generate", "-c", str(config), "-f", str(corpus), "-m", "1"]) == 2
        assert "position=1" in caplog.text

    def test_unknown_symbol_exit_code(self, corpus_file, tmp_path, monkeypatch, caplog):
        monkeypatch.chdir(tmp_path)
        code = _run(["generate", "-f", str(corpus_file), "-l", "3", "-c", str(
            _write(tmp_path / "c.yaml", "constraints:\n  1: [Z]\n"))])
        assert code == 2
        assert "'Z'" in caplog.text

    def test_missing_training_file_setting(self, tmp_path, monkeypatch, caplog):
        monkeypatch.chdir(tmp_path)
        assert _run(["generate", "-l", "3"]) == 2
        assert "training_file" in caplog.text

    def test_missing_corpus(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert _run(["generate", "-f", str(tmp_path / "nope.txt"), "-l", "3"]) == 2

    def test_order_too_large(self, corpus_file, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert _run(["generate", "-f", str(corpus_file), "-m", "9", "-l", "3"]) == 2

    def test_invalid_setting(self, corpus_file, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert _run(["generate", "-f", str(corpus_file), "-n", "0", "-l", "3"]) == 2

    def test_unexpected_error_exit_code(self, corpus_file, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with patch.object(cli, "print_sequences", side_effect=RuntimeError("boom")):
            assert _run(["generate", "-f", str(corpus_file), "-l", "3"]) == 1


class TestHiddenModel:
    """Test suite for ``--hidden`` runs on observed:hidden corpora."""

    @pytest.fixture
    def tagged_file(self, tmp_path, tagged_corpus):
        path = tmp_path / "tagged.txt"
        path.write_text("\n".join(" ".join(line) for line in tagged_corpus) + "\n", encoding="utf-8")
        return path

    def test_generate(self, tagged_file, tmp_path, capsys, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = _write(tmp_path / "h.yaml", "constraints: |\n  SW(f):NNP\n  NC\n  :VBZ\n  RW(red):\n")
        code = _run(["generate", "--hidden", "-c", str(config), "-f", str(tagged_file),
                     "-m", "1", "-n", "5", "--seed", "3"])
        assert code == 0
        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 5
        for line in lines:
            tokens = line.split()
            assert tokens[0] == "Fred:NNP"
            assert tokens[2].endswith(":VBZ")
            assert tokens[3] in {"red:NN", "Ted:NNP", "Fred:NNP"}

    def test_hidden_model_from_config(self, tagged_file, tmp_path, capsys, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = _write(tmp_path / "h.yaml",
                        f"training_file: {tagged_file}\nhidden_model: true\nmarkov_order: 1\n"
                        "sequence_length: 2\nconstraints:\n  0: Mary\n")
        assert _run(["generate", "-c", str(config), "--seed", "0"]) == 0
        assert capsys.readouterr().out.split()[0] == "Mary:NNP"

    def test_check(self, tagged_file, tmp_path, capsys, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = _write(tmp_path / "h.yaml", "constraints: |\n  SW(f):NNP\n  NC*3\n")
        assert _run(["check", "--hidden", "-c", str(config), "-f", str(tagged_file), "-m", "1"]) == 0
        out = capsys.readouterr().out
        assert "4 tags, 10 observed tokens" in out
        assert "observed position 0: Fred" in out
        assert "hidden position 0: NNP" in out
        assert "(p = 1.400e-01)" in out

    def test_untagged_corpus(self, corpus_file, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert _run(["generate", "--hidden", "-f", str(corpus_file), "-m", "1", "-l", "3"]) == 2


class TestOtherCommands:
    """Test suite for ``check`` and ``env``."""

    def test_check_reports_partition(self, corpus_file, tmp_path, capsys, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = _write(tmp_path / "c.yaml", "constraints:\n  0: [A]\n")
        assert _run(["check", "-f", str(corpus_file), "-m", "2", "-l", "5", "-c", str(config)]) == 0
        out = capsys.readouterr().out
        assert "Length: 5" in out
        assert "position 0: A" in out
        assert "0.000000" in out

    def test_check_unsatisfiable(self, corpus_file, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = _write(tmp_path / "c.yaml", "constraints:\n  4: [A]\n")
        assert _run(["check", "-f", str(corpus_file), "-m", "2", "-l", "5", "-c", str(config)]) == 2

    def test_env(self, capsys):
        assert _run(["env"]) == 0
        assert "numpy" in capsys.readouterr().out

    def test_command_required(self):
        assert _run([]) == 2


def _write(path, text):
    path.write_text(text)
    return path
