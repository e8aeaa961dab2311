"""Custom types and data structures for POSCAR files.

Extended Summary
----------------
This module defines the JAX-compatible structures produced by the readers
and consumed by the writer, the validator that turns a raw structure into a
validated one, and the structured errors raised along the way. Both
structure types are PyTrees.

Routine Listings
----------------
CoordinateSystem : class
    Direct (fractional) or Cartesian coordinates
RawPoscar : class
    Unvalidated, order-preserving mirror of a POSCAR file
Poscar : class
    Validated POSCAR structure
ParseError : class
    Syntactic error with kind and line number
ParseErrorKind : class
    Categories of ParseError
ValidationError : class
    Semantic error with kind
ValidationErrorKind : class
    Categories of ValidationError
create_poscar : function
    Factory function to create validated Poscar instances
validate_poscar : function
    Convert a RawPoscar into a Poscar, checking every invariant
is_valid_symbol : function
    Whether a string may appear on the species symbols line

Type Aliases
------------
- `PoscarLike`:
    Either RawPoscar or Poscar
- `scalar_float`:
    Union type for scalar float values (float or JAX scalar array)
- `scalar_int`:
    Union type for scalar integer values (int or JAX scalar array)
- `scalar_num`:
    Union type for scalar numeric values (int, float, or JAX scalar array)
- `non_jax_number`:
    Union type for non-JAX numeric values (int or float)
"""

from .custom_types import non_jax_number, scalar_float, scalar_int, scalar_num
from .errors import (
    ParseError,
    ParseErrorKind,
    ValidationError,
    ValidationErrorKind,
)
from .poscar_types import (
    CoordinateSystem,
    Poscar,
    PoscarLike,
    RawPoscar,
    create_poscar,
    is_valid_symbol,
    validate_poscar,
)

__all__ = [
    "CoordinateSystem",
    "Poscar",
    "PoscarLike",
    "RawPoscar",
    "create_poscar",
    "is_valid_symbol",
    "validate_poscar",
    "ParseError",
    "ParseErrorKind",
    "ValidationError",
    "ValidationErrorKind",
    "scalar_float",
    "scalar_int",
    "scalar_num",
    "non_jax_number",
]
