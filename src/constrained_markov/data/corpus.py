"""Reading training corpora and writing generated sequences.

Corpus format: one training sequence per line, symbols separated by
whitespace. Blank lines and lines starting with ``#`` are ignored.
"""

import logging
import sys
from pathlib import Path
from typing import Hashable, Iterable, List, Optional, Sequence, TextIO, Union

logger = logging.getLogger(__name__)


def parse_corpus(text: str) -> List[List[str]]:
    """
    Split corpus text into training sequences.

    Examples
    --------
    >>> parse_corpus("C4 E4 G4\\n# comment\\n\\nG4 E4")
    [['C4', 'E4', 'G4'], ['G4', 'E4']]
    """
    sequences = []
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        sequences.append(line.split())
    return sequences


def read_corpus(path: Union[str, Path], encoding: str = 'utf-8') -> List[List[str]]:
    """
    Read a training corpus file.

    Parameters
    ----------
    path : Union[str, Path]
        Corpus file
    encoding : str
        Text encoding

    Returns
    -------
    List[List[str]]
        Training sequences

    Raises
    ------
    FileNotFoundError
        If ``path`` does not exist
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Training file not found: {path}")
    sequences = parse_corpus(path.read_text(encoding=encoding))
    logger.debug("Read %d training sequences from %s", len(sequences), path)
    return sequences


def format_sequence(sequence: Sequence[Hashable], separator: str = ' ') -> str:
    return separator.join(str(symbol) for symbol in sequence)


def write_sequences(sequences: Iterable[Sequence[Hashable]],
                    path: Union[str, Path],
                    separator: str = ' ') -> Path:
    """Write one sequence per line, creating parent directories as needed."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [format_sequence(seq, separator) for seq in sequences]
    path.write_text('\n'.join(lines) + '\n', encoding='utf-8')
    logger.info("Wrote %d sequence(s) to %s", len(lines), path)
    return path


def print_sequences(sequences: Iterable[Sequence[Hashable]],
                    stream: Optional[TextIO] = None,
                    separator: str = ' ') -> None:
    stream = stream if stream is not None else sys.stdout
    for seq in sequences:
        print(format_sequence(seq, separator), file=stream)
