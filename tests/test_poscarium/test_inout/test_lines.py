"""Tests for line numbering, tokenizing and the line cursor."""

import io

import chex
import pytest

from poscarium.inout.lines import LineCursor, read_lines, split_tokens
from poscarium.types import ParseError, ParseErrorKind


class TestReadLines(chex.TestCase):
    """Test numbered line reading."""

    def test_numbers_are_one_based(self) -> None:
        """First line is numbered 1."""
        lines = list(read_lines(io.StringIO("a\nb\nc\n")))
        assert lines == [(1, "a"), (2, "b"), (3, "c")]

    def test_missing_final_newline(self) -> None:
        """Last line without terminator is kept."""
        lines = list(read_lines(io.StringIO("a\nb")))
        assert lines == [(1, "a"), (2, "b")]

    def test_crlf_terminators_removed(self) -> None:
        """Windows line endings are stripped, nothing else."""
        lines = list(read_lines(["a \r\n", "b\r\n", "c"]))
        assert lines == [(1, "a "), (2, "b"), (3, "c")]

    def test_whitespace_preserved(self) -> None:
        """Leading and trailing spaces are not trimmed."""
        lines = list(read_lines(io.StringIO("  x  \n\t\n")))
        assert lines == [(1, "  x  "), (2, "\t")]

    def test_trailing_blank_lines_kept(self) -> None:
        """Blank lines at the end are real lines."""
        lines = list(read_lines(io.StringIO("a\n\n\n")))
        assert lines == [(1, "a"), (2, ""), (3, "")]

    def test_str_rejected(self) -> None:
        """A single string would be read one character per line."""
        with pytest.raises(TypeError, match="got a str"):
            read_lines("a\nb\n")

    def test_lazy(self) -> None:
        """Lines are pulled from the stream on demand."""
        stream = io.StringIO("a\nb\n")
        lines = read_lines(stream)
        assert next(lines) == (1, "a")
        assert stream.read() == "b\n"


class TestSplitTokens(chex.TestCase):
    """Test whitespace tokenizing with offsets."""

    def test_offsets(self) -> None:
        """Each token carries the offset just past its end."""
        assert split_tokens("  aa b   ccc  ") == [
            ("aa", 4),
            ("b", 6),
            ("ccc", 12),
        ]

    def test_empty(self) -> None:
        """Blank text has no tokens."""
        assert split_tokens(" \t ") == []


class TestLineCursor(chex.TestCase):
    """Test lookahead and end-of-file reporting."""

    def test_peek_does_not_consume(self) -> None:
        """peek() returns the same line that next() then consumes."""
        cursor = LineCursor(io.StringIO("first\nsecond\n"))
        assert cursor.peek() == (1, "first")
        assert cursor.peek() == (1, "first")
        assert cursor.line_number == 0
        assert cursor.next() == (1, "first")
        assert cursor.line_number == 1
        assert cursor.next() == (2, "second")

    def test_eof_names_expected_line(self) -> None:
        """Running out reports the line at which data was expected."""
        cursor = LineCursor(io.StringIO("only\n"))
        cursor.next()
        with pytest.raises(ParseError) as excinfo:
            cursor.next()
        assert excinfo.value.kind is ParseErrorKind.UNEXPECTED_EOF
        assert excinfo.value.line == 2
        assert "line 2" in str(excinfo.value)

    def test_rest(self) -> None:
        """rest() drains everything that is left, blanks included."""
        cursor = LineCursor(io.StringIO("a\nb\n\nc"))
        cursor.next()
        assert cursor.rest() == ["b", "", "c"]
        assert cursor.at_eof()
        assert cursor.rest() == []
