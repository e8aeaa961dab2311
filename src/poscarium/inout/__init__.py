"""POSCAR input/output.

Extended Summary
----------------
This module provides functions for reading and writing VASP POSCAR and
CONTCAR files. Reading produces an unvalidated RawPoscar that mirrors the
file, or a validated Poscar; writing accepts either.

Routine Listings
----------------
extract_velocities : function
    Interpret trailing lines as a CONTCAR velocity block
format_float : function
    Shortest round-trip-exact decimal for a float
format_velocity_lines : function
    Render a velocity block as trailing lines
parse_poscar : function
    Parse and validate a POSCAR file on disk
parse_poscar_string : function
    Parse and validate POSCAR text held in a string
poscar_to_string : function
    Serialize a structure to POSCAR text
read_lines : function
    Number the lines of a text stream
read_poscar : function
    Parse and validate a text stream
read_raw_poscar : function
    Parse a text stream without validating
write_poscar : function
    Serialize a structure to a file on disk

Notes
-----
All arrays are float64 JAX arrays, so written files read back bit for bit.
"""

from .lines import read_lines
from .poscar import (
    extract_velocities,
    parse_poscar,
    parse_poscar_string,
    read_poscar,
    read_raw_poscar,
)
from .writer import (
    format_float,
    format_velocity_lines,
    poscar_to_string,
    write_poscar,
)

__all__ = [
    "extract_velocities",
    "format_float",
    "format_velocity_lines",
    "parse_poscar",
    "parse_poscar_string",
    "poscar_to_string",
    "read_lines",
    "read_poscar",
    "read_raw_poscar",
    "write_poscar",
]
