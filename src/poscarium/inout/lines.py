"""Line reading and tokenizing for line-oriented structure files.

Extended Summary
----------------
The readers never index into a list of lines: they pull numbered lines from
a `LineCursor`, so that every error can name the line it happened on and
running out of input is reported the same way everywhere.

Routine Listings
----------------
read_lines : function
    Lazily number the lines of a text stream
split_tokens : function
    Whitespace-separated tokens of a line with their end offsets
LineCursor : class
    Single-pass line source with one line of lookahead
"""

import re

from beartype import beartype
from beartype.typing import Iterable, Iterator, List, Optional, Tuple

from poscarium.types import ParseError, ParseErrorKind

_TOKEN = re.compile(r"\S+")


@beartype
def read_lines(stream: Iterable[str]) -> Iterator[Tuple[int, str]]:
    """
    Description
    -----------
    Lazily pair every line of `stream` with its 1-based line number.

    Parameters
    ----------
    - `stream` (Iterable[str]):
        An open text file, ``io.StringIO`` or any iterable of lines.

    Returns
    -------
    - `lines` (Iterator[Tuple[int, str]]):
        1-based line numbers paired with the line text. Only the line
        terminator is removed; a last line without one is kept as is.

    Raises
    ------
    - TypeError:
        If `stream` is a single string. A string iterates character by
        character, never line by line.
    """
    if isinstance(stream, str):
        raise TypeError(
            "expected a text stream or an iterable of lines, got a str; "
            "use parse_poscar_string to read POSCAR text held in memory"
        )
    return _numbered(stream)


def _numbered(stream: Iterable[str]) -> Iterator[Tuple[int, str]]:
    for number, line in enumerate(stream, start=1):
        if line.endswith("\r\n"):
            line = line[:-2]
        elif line.endswith(("\n", "\r")):
            line = line[:-1]
        yield number, line


def split_tokens(text: str) -> List[Tuple[str, int]]:
    """Tokens of `text` paired with the offset just past each token."""
    return [(match.group(), match.end()) for match in _TOKEN.finditer(text)]


class LineCursor:
    """
    Description
    -----------
    Wraps `read_lines` with a one-line lookahead buffer.

    Attributes
    ----------
    - `line_number` (int):
        Number of the last consumed line, 0 before the first.
    """

    def __init__(self, stream: Iterable[str]) -> None:
        self._lines = read_lines(stream)
        self._peeked: Optional[Tuple[int, str]] = None
        self.line_number = 0

    def _fill(self) -> Optional[Tuple[int, str]]:
        if self._peeked is None:
            self._peeked = next(self._lines, None)
        return self._peeked

    def peek(self) -> Tuple[int, str]:
        """Return the next line without consuming it."""
        entry = self._fill()
        if entry is None:
            raise ParseError(
                ParseErrorKind.UNEXPECTED_EOF,
                self.line_number + 1,
                "unexpected end of file",
            )
        return entry

    def next(self) -> Tuple[int, str]:
        """Consume and return the next line."""
        entry = self.peek()
        self._peeked = None
        self.line_number = entry[0]
        return entry

    def at_eof(self) -> bool:
        return self._fill() is None

    def rest(self) -> List[str]:
        """Consume every remaining line and return their texts."""
        remaining = []
        while not self.at_eof():
            remaining.append(self.next()[1])
        return remaining
