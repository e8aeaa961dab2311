"""VASP POSCAR writing.

Extended Summary
----------------
Serializes a `RawPoscar` or `Poscar` back to POSCAR text. Floats are written
with the shortest decimal that reads back to the identical float64, so
repeated read/write cycles reach a fixed point instead of drifting. Numbers
in the same column are right-aligned.

Routine Listings
----------------
format_float : function
    Shortest round-trip-exact decimal for a float
poscar_to_string : function
    Serialize a structure to POSCAR text
write_poscar : function
    Serialize a structure to a file on disk
format_velocity_lines : function
    Render a CONTCAR velocity block as trailing lines
"""

from pathlib import Path

import jax.numpy as jnp
from beartype import beartype
from beartype.typing import List, Sequence, Tuple, Union
from jaxtyping import Array, Float, jaxtyped

from poscarium.types import (
    CoordinateSystem,
    PoscarLike,
    ValidationError,
    ValidationErrorKind,
    scalar_num,
)


@beartype
def format_float(value: scalar_num) -> str:
    """
    Description
    -----------
    Shortest decimal representation that parses back to the same float64.

    Parameters
    ----------
    - `value` (scalar_num):
        Number to format.

    Returns
    -------
    - `text` (str):
        For example ``0.333333333333333`` for the float read from that
        text, never ``0.33333333333333298``. Non-finite values are written
        as ``inf``, ``-inf`` and ``nan``.
    """
    return repr(float(value))


def _column_widths(rows: Sequence[Sequence[str]]) -> List[int]:
    widths: List[int] = []
    for row in rows:
        for column, cell in enumerate(row):
            if column == len(widths):
                widths.append(0)
            widths[column] = max(widths[column], len(cell))
    return widths


def _aligned(rows: Sequence[Sequence[str]], indent: str) -> List[str]:
    widths = _column_widths(rows)
    return [
        indent + " ".join(cell.rjust(width) for cell, width in zip(row, widths))
        for row in rows
    ]


def _format_vectors(vectors: Float[Array, "N 3"]) -> List[List[str]]:
    return [[format_float(x) for x in row] for row in vectors.tolist()]


@beartype
def poscar_to_string(structure: PoscarLike) -> str:
    """
    Description
    -----------
    Serialize a structure to POSCAR text.

    Parameters
    ----------
    - `structure` (PoscarLike):
        A RawPoscar or a Poscar. Raw structures are written as they are;
        only a validated Poscar is guaranteed to read back unchanged.

    Returns
    -------
    - `text` (str):
        The file contents. Every line, including the last, ends in a
        newline.

    Flow
    ----
    - Comment, then the scale indented by two spaces
    - Lattice rows indented by four spaces, columns right-aligned
    - Symbols line (only when symbols are present) and counts line, sharing
      column widths
    - "Selective dynamics" when flags are present
    - "Direct" or "Cartesian"
    - One line per site: coordinates, T/F flags, label. A raw structure
      with fewer labels than sites gets no label on the remaining sites
    - Trailing lines verbatim

    Raises
    ------
    - ValidationError:
        ``COUNT_MISMATCH`` when a raw structure has more site labels or a
        different number of selective dynamics rows than positions, since
        such a structure has no POSCAR text.
    """
    lines = [structure.comment, "  " + format_float(structure.scale)]
    lattice = jnp.asarray(structure.lattice)
    lines.extend(_aligned(_format_vectors(lattice), "    "))

    species_rows = [[str(count) for count in structure.counts]]
    if structure.symbols is not None:
        species_rows.insert(0, list(structure.symbols))
    widths = [max(2, width) for width in _column_widths(species_rows)]
    for cells in species_rows:
        lines.append("  " + " ".join(c.rjust(w) for c, w in zip(cells, widths)))

    if structure.has_selective_dynamics:
        lines.append("Selective dynamics")
    lines.append(structure.coordinate_system.value)

    positions = jnp.asarray(structure.positions)
    n_atoms = int(positions.shape[0])
    site_lines = _aligned(_format_vectors(positions), "  ")
    labels = tuple(structure.site_labels)
    if len(labels) > n_atoms:
        raise ValidationError(
            ValidationErrorKind.COUNT_MISMATCH,
            f"{len(labels)} site labels for {n_atoms} sites",
        )
    if structure.has_selective_dynamics:
        flags = jnp.asarray(structure.selective_dynamics).tolist()
        if len(flags) != n_atoms:
            raise ValidationError(
                ValidationErrorKind.COUNT_MISMATCH,
                f"{len(flags)} selective dynamics rows for {n_atoms} sites",
            )
    for index in range(n_atoms):
        text = site_lines[index]
        if structure.has_selective_dynamics:
            text += " " + " ".join("T" if flag else "F" for flag in flags[index])
        label = labels[index] if index < len(labels) else ""
        lines.append(f"{text} {label}" if label else text)

    lines.extend(structure.trailing_lines)
    return "\n".join(lines) + "\n"


@beartype
def write_poscar(structure: PoscarLike, poscar_path: Union[str, Path]) -> Path:
    """Write `structure` to `poscar_path` and return the path."""
    poscar_path = Path(poscar_path)
    poscar_path.write_text(poscar_to_string(structure))
    return poscar_path


@jaxtyped(typechecker=beartype)
def format_velocity_lines(
    velocities: Float[Array, "N 3"],
    coordinate_system: CoordinateSystem = CoordinateSystem.DIRECT,
) -> Tuple[str, ...]:
    """
    Description
    -----------
    Render per-site velocities as a CONTCAR velocity block, ready to be used
    as the ``trailing_lines`` of a structure.

    Parameters
    ----------
    - `velocities` (Float[Array, "N 3"]):
        One velocity per site.
    - `coordinate_system` (CoordinateSystem, optional):
        Direct blocks start with a blank control line, as VASP writes them;
        Cartesian blocks start with "Cartesian". Default is Direct.

    Returns
    -------
    - `lines` (Tuple[str, ...]):
        Control line followed by one line per site.
    """
    control = "" if coordinate_system is CoordinateSystem.DIRECT else "Cartesian"
    return (control,) + tuple(_aligned(_format_vectors(velocities), "  "))
