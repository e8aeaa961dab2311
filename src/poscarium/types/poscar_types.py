"""
Module: types.poscar_types
--------------------------
Data structures, validation and factory functions for POSCAR structures.

Classes
-------
- `CoordinateSystem`:
    Whether site coordinates are fractional (Direct) or absolute (Cartesian)
- `RawPoscar`:
    Unvalidated, order-preserving mirror of a POSCAR file
- `Poscar`:
    Validated POSCAR structure, guaranteed to serialize to a legal file

Functions
---------
- `validate_poscar`:
    Check every structural invariant of a RawPoscar and return a Poscar
- `create_poscar`:
    Factory function to build a validated Poscar from arrays and sequences

Type Aliases
------------
- `PoscarLike`:
    Either structure type; everything the writer needs is present on both
"""

import enum
import functools
import math

import jax
import jax.numpy as jnp
from beartype import beartype
from beartype.typing import List, NamedTuple, Optional, Tuple, Union
from jax.tree_util import register_pytree_node_class
from jaxtyping import Array, Bool, Float, jaxtyped

from .custom_types import scalar_float
from .errors import ValidationError, ValidationErrorKind

jax.config.update("jax_enable_x64", True)

_ARRAY_FIELDS = ("lattice", "positions", "selective_dynamics")
_AUX_FIELDS = (
    "comment",
    "scale",
    "symbols",
    "counts",
    "coordinate_system",
    "site_labels",
    "trailing_lines",
)

# |det| of the lattice with every row scaled to unit length must exceed
# this for a cell to count as non-degenerate.
DEGENERACY_TOLERANCE = 1e-10


class CoordinateSystem(enum.Enum):
    """Interpretation of the position block."""

    DIRECT = "Direct"
    CARTESIAN = "Cartesian"

    @classmethod
    def from_control_line(cls, text: str) -> "CoordinateSystem":
        """First non-blank letter C or K (any case) is Cartesian, else Direct."""
        if text.lstrip()[:1] in ("c", "C", "k", "K"):
            return cls.CARTESIAN
        return cls.DIRECT


@register_pytree_node_class
class RawPoscar(NamedTuple):
    """
    Description
    -----------
    An unvalidated POSCAR structure. Every field mirrors one part of the file
    in file order. Produced by the reader and consumed by either
    `validate_poscar` or the writer.

    Attributes
    ----------
    - `comment` (str):
        First line of the file, verbatim.
    - `scale` (float):
        Universal scale factor. A negative value is the target cell volume
        and is kept with its sign.
    - `lattice` (Float[Array, "3 3"]):
        Lattice vectors as rows, before scaling.
    - `symbols` (Optional[Tuple[str, ...]]):
        Species labels, or None when the file has no symbols line.
    - `counts` (Tuple[int, ...]):
        Number of sites in each species group.
    - `coordinate_system` (CoordinateSystem):
        Direct or Cartesian.
    - `positions` (Float[Array, "N 3"]):
        Site coordinates in file order.
    - `selective_dynamics` (Optional[Bool[Array, "N 3"]]):
        Per-axis "allowed to move" flags, or None when absent.
    - `site_labels` (Tuple[str, ...]):
        Text following the numeric columns of each site line, "" if none.
    - `trailing_lines` (Tuple[str, ...]):
        Lines after the position block, verbatim and uninterpreted.

    Notes
    -----
    Registered as a PyTree: the three arrays are children, every other field
    is auxiliary data. Two structures therefore compare equal under
    ``chex.assert_trees_all_equal`` exactly when every field agrees.
    """

    comment: str
    scale: float
    lattice: Float[Array, "3 3"]
    symbols: Optional[Tuple[str, ...]]
    counts: Tuple[int, ...]
    coordinate_system: CoordinateSystem
    positions: Float[Array, "N 3"]
    selective_dynamics: Optional[Bool[Array, "N 3"]]
    site_labels: Tuple[str, ...]
    trailing_lines: Tuple[str, ...]

    @property
    def has_selective_dynamics(self) -> bool:
        return self.selective_dynamics is not None

    @property
    def n_atoms(self) -> int:
        return int(self.positions.shape[0])

    def tree_flatten(self):
        return _flatten(self)

    @classmethod
    def tree_unflatten(cls, aux_data, children):
        return _unflatten(cls, aux_data, children)


class _PoscarFields(NamedTuple):
    comment: str
    scale: float
    lattice: Float[Array, "3 3"]
    symbols: Optional[Tuple[str, ...]]
    counts: Tuple[int, ...]
    coordinate_system: CoordinateSystem
    positions: Float[Array, "N 3"]
    selective_dynamics: Optional[Bool[Array, "N 3"]]
    site_labels: Tuple[str, ...]
    trailing_lines: Tuple[str, ...]


@register_pytree_node_class
class Poscar(_PoscarFields):
    """
    Description
    -----------
    A validated POSCAR structure. Carries the same fields as `RawPoscar`,
    with every invariant checked on construction.

    Notes
    -----
    Every way of building a Poscar runs the checks of `validate_poscar`:
    calling the class, ``_make``, ``replace``/``_replace``, copying and
    unpickling, and PyTree unflattening with concrete arrays, e.g. the
    result of ``jax.tree_util.tree_map``. Unflattening skips the checks
    only when an array leaf is not a concrete JAX array: a tracer while
    JAX traces a function under ``jit`` or ``vmap``, or a placeholder
    object used by JAX internals.
    """

    __slots__ = ()

    def __new__(
        cls,
        comment,
        scale,
        lattice,
        symbols,
        counts,
        coordinate_system,
        positions,
        selective_dynamics,
        site_labels,
        trailing_lines,
    ):
        fields = _checked_fields(
            comment=comment,
            scale=scale,
            lattice=lattice,
            symbols=symbols,
            counts=counts,
            coordinate_system=coordinate_system,
            positions=positions,
            selective_dynamics=selective_dynamics,
            site_labels=site_labels,
            trailing_lines=trailing_lines,
        )
        return super().__new__(cls, **fields)

    @classmethod
    def _make(cls, iterable) -> "Poscar":
        return cls(*iterable)

    @property
    def has_selective_dynamics(self) -> bool:
        return self.selective_dynamics is not None

    @property
    def n_atoms(self) -> int:
        return int(self.positions.shape[0])

    def replace(self, **changes) -> "Poscar":
        """Return a new validated Poscar with some fields changed."""
        fields = self._asdict()
        fields.update(changes)
        return Poscar(**fields)

    def _replace(self, **changes) -> "Poscar":
        return self.replace(**changes)

    def to_raw(self) -> RawPoscar:
        return RawPoscar(**self._asdict())

    def tree_flatten(self):
        return _flatten(self)

    @classmethod
    def tree_unflatten(cls, aux_data, children):
        if all(_is_concrete(child) for child in children[:2]) and (
            children[2] is None or _is_concrete(children[2])
        ):
            return _unflatten(cls, aux_data, children)
        return _unflatten(
            functools.partial(_PoscarFields.__new__, cls), aux_data, children
        )


PoscarLike = Union[RawPoscar, Poscar]


def _flatten(structure):
    children = tuple(getattr(structure, name) for name in _ARRAY_FIELDS)
    aux_data = tuple(getattr(structure, name) for name in _AUX_FIELDS)
    return children, aux_data


def _unflatten(make, aux_data, children):
    fields = dict(zip(_ARRAY_FIELDS, children))
    fields.update(zip(_AUX_FIELDS, aux_data))
    return make(**fields)


def _is_concrete(leaf) -> bool:
    return isinstance(leaf, jax.Array) and not isinstance(leaf, jax.core.Tracer)


def is_valid_symbol(symbol: str) -> bool:
    """Non-empty, no whitespace, no leading digit."""
    if not symbol:
        return False
    if any(char.isspace() for char in symbol):
        return False
    return symbol[0] not in "0123456789"


def _checked_fields(**fields) -> dict:
    lattice = jnp.asarray(fields["lattice"], dtype=jnp.float64)
    positions = jnp.asarray(fields["positions"], dtype=jnp.float64)
    dynamics = fields["selective_dynamics"]
    if dynamics is not None:
        dynamics = jnp.asarray(dynamics, dtype=jnp.bool_)
    counts = tuple(int(count) for count in fields["counts"])
    symbols = None if fields["symbols"] is None else tuple(fields["symbols"])
    site_labels = tuple(fields["site_labels"])
    trailing_lines = tuple(fields["trailing_lines"])
    scale = float(fields["scale"])
    comment = fields["comment"]

    def fail(kind: ValidationErrorKind, message: str):
        raise ValidationError(kind, message)

    def check_lattice():
        if lattice.shape != (3, 3):
            fail(
                ValidationErrorKind.DEGENERATE_LATTICE,
                f"lattice must have shape (3, 3), got {lattice.shape}",
            )
        if not bool(jnp.all(jnp.isfinite(lattice))):
            fail(
                ValidationErrorKind.NON_FINITE_VALUE,
                "lattice contains non-finite values",
            )
        row_max = jnp.max(jnp.abs(lattice), axis=1)
        if not bool(jnp.all(row_max > 0.0)):
            fail(
                ValidationErrorKind.DEGENERATE_LATTICE,
                "lattice contains a zero vector",
            )
        # Rows go to unit length in two steps so that neither the norm nor
        # the determinant can overflow or underflow.
        scaled = lattice / row_max[:, None]
        unit = scaled / jnp.linalg.norm(scaled, axis=1, keepdims=True)
        if not abs(float(jnp.linalg.det(unit))) > DEGENERACY_TOLERANCE:
            fail(
                ValidationErrorKind.DEGENERATE_LATTICE,
                "lattice vectors are linearly dependent",
            )

    def check_scale():
        if not math.isfinite(scale):
            fail(ValidationErrorKind.NON_FINITE_VALUE, "scale is not finite")
        if scale == 0.0:
            fail(ValidationErrorKind.ZERO_SCALE, "scale cannot be zero")

    def check_counts():
        if not counts:
            fail(
                ValidationErrorKind.COUNT_MISMATCH,
                "there must be at least one species group",
            )
        for count in counts:
            if count < 0:
                fail(
                    ValidationErrorKind.NEGATIVE_COUNT,
                    f"species count cannot be negative: {count}",
                )

    def check_symbols():
        if symbols is None:
            return
        if len(symbols) != len(counts):
            fail(
                ValidationErrorKind.SYMBOL_COUNT_MISMATCH,
                f"{len(symbols)} symbols for {len(counts)} species counts",
            )
        for symbol in symbols:
            if not is_valid_symbol(symbol):
                fail(
                    ValidationErrorKind.INVALID_SYMBOL,
                    f"invalid species symbol: {symbol!r}",
                )

    def check_sites():
        n_atoms = sum(counts)
        if positions.ndim != 2 or positions.shape[1] != 3:
            fail(
                ValidationErrorKind.COUNT_MISMATCH,
                f"positions must have shape (N, 3), got {positions.shape}",
            )
        if positions.shape[0] != n_atoms:
            fail(
                ValidationErrorKind.COUNT_MISMATCH,
                f"species counts sum to {n_atoms} "
                f"but {positions.shape[0]} positions are present",
            )
        if dynamics is not None and dynamics.shape != positions.shape:
            fail(
                ValidationErrorKind.COUNT_MISMATCH,
                f"selective dynamics must have shape {positions.shape}, "
                f"got {dynamics.shape}",
            )
        if len(site_labels) != n_atoms:
            fail(
                ValidationErrorKind.COUNT_MISMATCH,
                f"{len(site_labels)} site labels for {n_atoms} sites",
            )

    def check_finite_positions():
        if not bool(jnp.all(jnp.isfinite(positions))):
            fail(
                ValidationErrorKind.NON_FINITE_VALUE,
                "positions contain non-finite values",
            )

    def check_text():
        for text in (comment,) + site_labels + trailing_lines:
            if "\n" in text or "\r" in text:
                fail(
                    ValidationErrorKind.INVALID_TEXT,
                    f"line break inside single-line text: {text!r}",
                )
        for label in site_labels:
            if label != label.strip():
                fail(
                    ValidationErrorKind.INVALID_TEXT,
                    f"site label has surrounding whitespace: {label!r}",
                )

    check_lattice()
    check_scale()
    check_counts()
    check_symbols()
    check_sites()
    check_finite_positions()
    check_text()
    return dict(
        comment=comment,
        scale=scale,
        lattice=lattice,
        symbols=symbols,
        counts=counts,
        coordinate_system=fields["coordinate_system"],
        positions=positions,
        selective_dynamics=dynamics,
        site_labels=site_labels,
        trailing_lines=trailing_lines,
    )


@beartype
def validate_poscar(raw: RawPoscar) -> Poscar:
    """
    Description
    -----------
    Check every invariant of a raw structure and return the validated
    structure. The input is left untouched.

    Parameters
    ----------
    - `raw` (RawPoscar):
        Structure as produced by the reader or assembled by hand.

    Returns
    -------
    - `poscar` (Poscar):
        Validated structure with float64 arrays and tuple fields.

    Raises
    ------
    - ValidationError:
        For the first invariant that does not hold. ``error.kind`` names it.

    Flow
    ----
    - check_lattice(): shape (3, 3), finite, no zero vector, and the
      determinant of the row-normalized lattice above the tolerance
    - check_scale(): finite and non-zero
    - check_counts(): at least one group, no negative counts
    - check_symbols(): one symbol per group, each a legal symbol token
    - check_sites(): positions, flags and labels all sized sum(counts)
    - check_finite_positions(): no NaN or infinite coordinate
    - check_text(): no line breaks inside single-line fields
    """
    return Poscar(**raw._asdict())


@jaxtyped(typechecker=beartype)
def create_poscar(
    lattice: Float[Array, "3 3"],
    counts: Union[List[int], Tuple[int, ...]],
    positions: Float[Array, "N 3"],
    comment: str = "",
    scale: scalar_float = 1.0,
    symbols: Optional[Union[List[str], Tuple[str, ...]]] = None,
    coordinate_system: CoordinateSystem = CoordinateSystem.DIRECT,
    selective_dynamics: Optional[Bool[Array, "N 3"]] = None,
    site_labels: Optional[Union[List[str], Tuple[str, ...]]] = None,
    trailing_lines: Union[List[str], Tuple[str, ...]] = (),
) -> Poscar:
    """
    Description
    -----------
    Factory function to create a validated Poscar instance.

    Parameters
    ----------
    - `lattice` (Float[Array, "3 3"]):
        Lattice vectors as rows.
    - `counts` (Union[List[int], Tuple[int, ...]]):
        Number of sites per species group.
    - `positions` (Float[Array, "N 3"]):
        Site coordinates, grouped by species in the order of `counts`.
    - `comment` (str, optional):
        First line of the file. Default is "".
    - `scale` (scalar_float, optional):
        Scale factor, or negative target volume. Default is 1.0.
    - `symbols` (Optional[Union[List[str], Tuple[str, ...]]], optional):
        Species labels. Omit to write a file without a symbols line.
    - `coordinate_system` (CoordinateSystem, optional):
        Interpretation of `positions`. Default is Direct.
    - `selective_dynamics` (Optional[Bool[Array, "N 3"]], optional):
        Per-axis movable flags.
    - `site_labels` (Optional[Union[List[str], Tuple[str, ...]]], optional):
        Text written after each site line. Defaults to no labels.
    - `trailing_lines` (Union[List[str], Tuple[str, ...]], optional):
        Lines written verbatim after the positions, e.g. a velocity block.

    Returns
    -------
    - `poscar` (Poscar):
        Validated structure.

    Raises
    ------
    - ValidationError:
        If the assembled structure breaks an invariant.
    """
    positions = jnp.asarray(positions, dtype=jnp.float64)
    if site_labels is None:
        site_labels = ("",) * positions.shape[0]
    raw = RawPoscar(
        comment=comment,
        scale=float(scale),
        lattice=jnp.asarray(lattice, dtype=jnp.float64),
        symbols=None if symbols is None else tuple(symbols),
        counts=tuple(counts),
        coordinate_system=coordinate_system,
        positions=positions,
        selective_dynamics=selective_dynamics,
        site_labels=tuple(site_labels),
        trailing_lines=tuple(trailing_lines),
    )
    return validate_poscar(raw)
