"""
Module: types.errors
--------------------
Structured errors raised while reading or validating POSCAR data.

Classes
-------
- `ParseErrorKind`:
    Enumeration of syntactic failure categories
- `ParseError`:
    Raised by the readers, carries the kind and the offending line number
- `ValidationErrorKind`:
    Enumeration of semantic failure categories
- `ValidationError`:
    Raised by the validator, carries the kind of the first violated invariant

Notes
-----
Both error classes derive from ``ValueError`` so that callers catching the
generic bad-input error keep working. The ``kind`` attribute is the stable,
machine-inspectable part; the message is for humans only.
"""

import enum

from beartype.typing import Optional


class ParseErrorKind(enum.Enum):
    """Categories of syntactic failures."""

    UNEXPECTED_EOF = "unexpected end of file"
    MALFORMED_NUMBER = "malformed number"
    MALFORMED_INTEGER = "malformed integer"
    MALFORMED_FLAG = "malformed selective dynamics flag"
    WRONG_TOKEN_COUNT = "wrong number of tokens"
    INVALID_COORDINATE_SYSTEM_LETTER = "invalid coordinate system line"


class ParseError(ValueError):
    """
    Description
    -----------
    A syntactic error found while reading a POSCAR stream.

    Attributes
    ----------
    - `kind` (ParseErrorKind):
        What went wrong.
    - `line` (Optional[int]):
        1-based number of the offending line. For ``UNEXPECTED_EOF`` this
        is the line at which more data was expected.
    - `message` (str):
        Human readable detail.
    """

    def __init__(
        self, kind: ParseErrorKind, line: Optional[int], message: str = ""
    ) -> None:
        self.kind = kind
        self.line = line
        self.message = message or kind.value
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.line is None:
            return self.message
        return f"line {self.line}: {self.message}"

    def __reduce__(self):
        return (type(self), (self.kind, self.line, self.message))


class ValidationErrorKind(enum.Enum):
    """Categories of semantic failures, in the order they are checked."""

    DEGENERATE_LATTICE = "degenerate lattice"
    ZERO_SCALE = "zero scale"
    NEGATIVE_COUNT = "negative count"
    SYMBOL_COUNT_MISMATCH = "symbol count mismatch"
    INVALID_SYMBOL = "invalid symbol"
    COUNT_MISMATCH = "count mismatch"
    NON_FINITE_VALUE = "non-finite value"
    INVALID_TEXT = "invalid text"


class ValidationError(ValueError):
    """
    A semantic error found while validating a raw structure.

    Only the first violated invariant is reported.
    """

    def __init__(self, kind: ValidationErrorKind, message: str = "") -> None:
        self.kind = kind
        self.message = message or kind.value
        super().__init__(self.message)

    def __reduce__(self):
        return (type(self), (self.kind, self.message))
