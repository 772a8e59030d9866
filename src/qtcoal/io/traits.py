"""
Character-state table parsing.

The table has one ``name state`` pair per line, separated by whitespace or
a tab. Blank lines and lines starting with ``#`` are ignored.
"""

from pathlib import Path
from typing import Dict


def parse_traits(text: str) -> Dict[str, int]:
    """
    Parse a character-state table.

    Examples
    --------
    >>> parse_traits("human 0\\nchimp\\t1\\n")
    {'human': 0, 'chimp': 1}
    """
    traits = {}
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        parts = line.rsplit(None, 1)
        if len(parts) != 2:
            raise ValueError(f"Line {lineno}: expected 'name state', got {line!r}")
        name, state = parts
        try:
            value = int(state)
        except ValueError:
            raise ValueError(f"Line {lineno}: invalid character state {state!r}")
        if value < 0:
            raise ValueError(f"Line {lineno}: character state must be non-negative, got {value}")
        if name in traits:
            raise ValueError(f"Line {lineno}: duplicate entry for {name!r}")
        traits[name] = value
    return traits


def read_traits(filepath: Path | str) -> Dict[str, int]:
    """Read a character-state table from a file."""
    return parse_traits(Path(filepath).read_text())
