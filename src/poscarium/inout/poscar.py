"""VASP POSCAR/CONTCAR reading.

Extended Summary
----------------
Reads the POSCAR "structure description" format into a `RawPoscar` that
mirrors the file line for line, optionally validating it into a `Poscar`.
The species symbols line only exists in VASP 5 and later; whether it is
present is decided from the content of the line itself.

Routine Listings
----------------
read_raw_poscar : function
    Parse a text stream into an unvalidated RawPoscar
read_poscar : function
    Parse and validate a text stream into a Poscar
parse_poscar_string : function
    Parse and validate POSCAR text held in a string
parse_poscar : function
    Parse and validate a POSCAR file on disk
extract_velocities : function
    Interpret the trailing lines of a structure as a CONTCAR velocity block

Notes
-----
Everything after the position block is kept verbatim in
``trailing_lines``. Velocity blocks and predictor-corrector data differ too
much between producers to be interpreted while reading; `extract_velocities`
offers an interpretation on demand without altering the structure.
"""

import io
import logging
import re
from pathlib import Path

import jax
import jax.numpy as jnp
from beartype import beartype
from beartype.typing import Iterable, List, Optional, Tuple, Union
from jaxtyping import Array, Float

from poscarium.types import (
    CoordinateSystem,
    ParseError,
    ParseErrorKind,
    Poscar,
    PoscarLike,
    RawPoscar,
    validate_poscar,
)

from .lines import LineCursor, split_tokens

jax.config.update("jax_enable_x64", True)

logger = logging.getLogger(__name__)

_DECIMAL = re.compile(
    r"[+-]?(?:(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|inf(?:inity)?|nan)",
    re.IGNORECASE,
)
_UNSIGNED = re.compile(r"[0-9]+")


def _parse_decimal(token: str, line: int) -> float:
    if _DECIMAL.fullmatch(token) is None:
        raise ParseError(
            ParseErrorKind.MALFORMED_NUMBER, line, f"invalid number: {token!r}"
        )
    return float(token)


def _is_unsigned(token: str) -> bool:
    return _UNSIGNED.fullmatch(token) is not None


def _parse_logical(token: str, line: int) -> bool:
    # Fortran list-directed LOGICAL: optional dot, then T or F, rest ignored.
    body = token[1:] if token.startswith(".") else token
    letter = body[:1].upper()
    if letter == "T":
        return True
    if letter == "F":
        return False
    raise ParseError(
        ParseErrorKind.MALFORMED_FLAG,
        line,
        f"invalid selective dynamics flag: {token!r}",
    )


def _parse_vector(text: str, line: int, what: str) -> Tuple[List[float], int]:
    """First three decimals of a line and the offset just past them."""
    tokens = split_tokens(text)
    if len(tokens) < 3:
        raise ParseError(
            ParseErrorKind.WRONG_TOKEN_COUNT,
            line,
            f"expected three components for {what}, found {len(tokens)}",
        )
    vector = [_parse_decimal(token, line) for token, _ in tokens[:3]]
    return vector, tokens[2][1]


def _parse_scale(cursor: LineCursor) -> float:
    line, text = cursor.next()
    tokens = [token for token, _ in split_tokens(text)]
    if not tokens:
        raise ParseError(
            ParseErrorKind.WRONG_TOKEN_COUNT, line, "expected scale"
        )
    scale = _parse_decimal(tokens[0], line)
    # Three leading floats here almost always mean a forgotten scale line.
    if len(tokens) > 1 and _DECIMAL.fullmatch(tokens[1]) is not None:
        raise ParseError(
            ParseErrorKind.WRONG_TOKEN_COUNT,
            line,
            "too many numbers on scale line (expected just one)",
        )
    return scale


def _parse_counts(tokens: List[str], line: int) -> Tuple[int, ...]:
    for token in tokens:
        if not _is_unsigned(token):
            raise ParseError(
                ParseErrorKind.MALFORMED_INTEGER,
                line,
                f"invalid species count: {token!r}",
            )
    return tuple(int(token) for token in tokens)


def _parse_species(
    cursor: LineCursor,
) -> Tuple[Optional[Tuple[str, ...]], Tuple[int, ...]]:
    """
    Resolve whether the line after the lattice holds symbols or counts.

    A line made only of unsigned integers is the counts line of a VASP 4
    file. Anything else is a VASP 5 symbols line, and the counts line must
    follow it.
    """
    line, text = cursor.next()
    tokens = [token for token, _ in split_tokens(text)]
    if not tokens:
        raise ParseError(
            ParseErrorKind.WRONG_TOKEN_COUNT,
            line,
            "expected species symbols or counts",
        )
    if all(_is_unsigned(token) for token in tokens):
        logger.debug("line %d: no species symbols line", line)
        return None, _parse_counts(tokens, line)

    symbols = tuple(tokens)
    line, text = cursor.next()
    count_tokens = [token for token, _ in split_tokens(text)]
    counts = _parse_counts(count_tokens, line)
    if len(counts) != len(symbols):
        raise ParseError(
            ParseErrorKind.WRONG_TOKEN_COUNT,
            line,
            f"{len(counts)} species counts for {len(symbols)} symbols",
        )
    return symbols, counts


def _parse_coordinate_system(cursor: LineCursor) -> CoordinateSystem:
    line, text = cursor.next()
    stripped = text.strip()
    if not stripped:
        raise ParseError(
            ParseErrorKind.INVALID_COORDINATE_SYSTEM_LETTER,
            line,
            "expected Direct or Cartesian",
        )
    if stripped[0] not in "dDcCkK":
        logger.warning(
            "line %d: coordinate system %r read as Direct", line, stripped
        )
    return CoordinateSystem.from_control_line(stripped)


def _parse_positions(
    cursor: LineCursor, n_atoms: int, selective: bool
) -> Tuple[List[List[float]], List[List[bool]], List[str]]:
    positions = []
    flags = []
    labels = []
    for _ in range(n_atoms):
        line, text = cursor.next()
        position, end = _parse_vector(text, line, "site coordinates")
        if selective:
            tokens = split_tokens(text)[3:6]
            if len(tokens) < 3:
                raise ParseError(
                    ParseErrorKind.WRONG_TOKEN_COUNT,
                    line,
                    "expected three selective dynamics flags",
                )
            flags.append([_parse_logical(token, line) for token, _ in tokens])
            end = tokens[2][1]
        positions.append(position)
        labels.append(text[end:].strip())
    return positions, flags, labels


@beartype
def read_raw_poscar(stream: Iterable[str]) -> RawPoscar:
    """
    Description
    -----------
    Parse a POSCAR text stream into an unvalidated structure.

    Parameters
    ----------
    - `stream` (Iterable[str]):
        An open text file, ``io.StringIO`` or a list of lines.

    Returns
    -------
    - `raw` (RawPoscar):
        Structure mirroring the file. Lines after the position block are
        kept verbatim in ``trailing_lines``.

    Raises
    ------
    - ParseError:
        At the first malformed line, or ``UNEXPECTED_EOF`` when the stream
        ends before the position block is complete.
    - TypeError:
        If `stream` is a str. Use `parse_poscar_string` for text.

    Flow
    ----
    - Comment line, verbatim
    - Scale line: exactly one leading number
    - Three lattice vector lines
    - Symbols line if the next line is not all unsigned integers,
      then the counts line
    - Optional "Selective dynamics" line (first letter S, any case)
    - Coordinate system line
    - sum(counts) site lines, with three flags each under selective dynamics
    - Everything left over becomes trailing_lines
    """
    cursor = LineCursor(stream)
    comment = cursor.next()[1]
    scale = _parse_scale(cursor)
    lattice = []
    for _ in range(3):
        line, text = cursor.next()
        lattice.append(_parse_vector(text, line, "lattice vector")[0])
    symbols, counts = _parse_species(cursor)

    selective = cursor.peek()[1].strip()[:1] in ("s", "S")
    if selective:
        cursor.next()
    coordinate_system = _parse_coordinate_system(cursor)

    n_atoms = sum(counts)
    positions, flags, labels = _parse_positions(cursor, n_atoms, selective)
    trailing_lines = tuple(cursor.rest())

    return RawPoscar(
        comment=comment,
        scale=scale,
        lattice=jnp.asarray(lattice, dtype=jnp.float64),
        symbols=symbols,
        counts=counts,
        coordinate_system=coordinate_system,
        positions=jnp.asarray(positions, dtype=jnp.float64).reshape(n_atoms, 3),
        selective_dynamics=(
            jnp.asarray(flags, dtype=jnp.bool_).reshape(n_atoms, 3)
            if selective
            else None
        ),
        site_labels=tuple(labels),
        trailing_lines=trailing_lines,
    )


@beartype
def read_poscar(stream: Iterable[str]) -> Poscar:
    """Parse and validate a POSCAR text stream."""
    return validate_poscar(read_raw_poscar(stream))


@beartype
def parse_poscar_string(text: str) -> Poscar:
    """Parse and validate POSCAR text held in memory."""
    return read_poscar(io.StringIO(text))


@beartype
def parse_poscar(poscar_path: Union[str, Path]) -> Poscar:
    """
    Description
    -----------
    Parse a VASP POSCAR or CONTCAR file into a validated structure.

    Parameters
    ----------
    - `poscar_path` (Union[str, Path]):
        Path to the file. Any file name is accepted.

    Returns
    -------
    - `poscar` (Poscar):
        Validated structure.

    Raises
    ------
    - FileNotFoundError:
        If the file does not exist.
    - ParseError:
        If the file is syntactically malformed.
    - ValidationError:
        If the structure it describes is not legal.
    """
    poscar_path = Path(poscar_path)
    if not poscar_path.exists():
        raise FileNotFoundError(f"POSCAR file not found: {poscar_path}")
    with poscar_path.open("r") as stream:
        return read_poscar(stream)


def _header_line_count(structure: PoscarLike) -> int:
    """Number of file lines that come before the trailing lines."""
    count = 1 + 1 + 3 + 1 + structure.n_atoms + 1
    if structure.symbols is not None:
        count += 1
    if structure.has_selective_dynamics:
        count += 1
    return count


@beartype
def extract_velocities(
    structure: PoscarLike,
) -> Optional[Tuple[CoordinateSystem, Float[Array, "N 3"]]]:
    """
    Description
    -----------
    Interpret the trailing lines of a structure as a CONTCAR velocity block.

    Parameters
    ----------
    - `structure` (PoscarLike):
        A parsed or validated structure. It is not modified.

    Returns
    -------
    - `velocities` (Optional[Tuple[CoordinateSystem, Float[Array, "N 3"]]]):
        The coordinate system of the block and one velocity per site, or
        None when the trailing lines hold no velocities.

    Raises
    ------
    - ParseError:
        If a velocity block is started but malformed or cut short, or if
        text follows the blank lines that mark a file without velocities.
        Line numbers refer to the file the structure was read from.

    Flow
    ----
    - No trailing lines: no velocities
    - A blank control line followed by nothing or by another blank line:
      no velocities, and every later line must be blank too
    - Otherwise the control line picks Direct (blank or non-C/K letter) or
      Cartesian, and one line of three numbers per site follows
    """
    trailing = structure.trailing_lines
    if not trailing:
        return None
    first_line = _header_line_count(structure) + 1
    control = trailing[0]
    if not control.strip() and (len(trailing) == 1 or not trailing[1].strip()):
        # Without velocities nothing else may follow.
        for offset, text in enumerate(trailing[2:], start=2):
            if text.strip():
                raise ParseError(
                    ParseErrorKind.WRONG_TOKEN_COUNT,
                    first_line + offset,
                    "expected end of file",
                )
        return None

    coordinate_system = CoordinateSystem.from_control_line(control)
    n_atoms = structure.n_atoms
    rows = trailing[1 : 1 + n_atoms]
    if len(rows) < n_atoms:
        raise ParseError(
            ParseErrorKind.UNEXPECTED_EOF,
            first_line + 1 + len(rows),
            "velocity block ends early",
        )
    velocities = [
        _parse_vector(text, first_line + 1 + offset, "velocity")[0]
        for offset, text in enumerate(rows)
    ]
    return (
        coordinate_system,
        jnp.asarray(velocities, dtype=jnp.float64).reshape(n_atoms, 3),
    )
