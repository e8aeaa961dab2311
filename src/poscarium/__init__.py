"""
=========================================================

POSCARIUM Package (:mod:`poscarium`)

=========================================================

This is the root of the poscarium package, containing submodules for:
- POSCAR input/output (`inout`)
- Structure types, validation and errors (`types`)

Each submodule can be directly accessed after importing poscarium.
"""

from . import inout, types
