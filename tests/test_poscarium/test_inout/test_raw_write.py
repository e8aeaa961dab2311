"""Tests for POSCAR serialization and number formatting."""

import tempfile
from pathlib import Path

import chex
import jax.numpy as jnp
import numpy as np
import pytest
from absl.testing import parameterized

from poscarium.inout.writer import format_float, poscar_to_string, write_poscar
from poscarium.types import (
    CoordinateSystem,
    RawPoscar,
    ValidationError,
    ValidationErrorKind,
    create_poscar,
)

CUBIC = jnp.array([[5.43, 0.0, 0.0], [0.0, 5.43, 0.0], [0.0, 0.0, 5.43]])


class TestFormatFloat(chex.TestCase):
    """Test shortest round-trip float formatting."""

    @parameterized.named_parameters(
        ("tenth", 0.1, "0.1"),
        ("fifteen_threes", 0.333333333333333, "0.333333333333333"),
        ("third", 1.0 / 3.0, "0.3333333333333333"),
        ("one", 1.0, "1.0"),
        ("negative_zero", -0.0, "-0.0"),
        ("tiny", 1e-20, "1e-20"),
        ("lattice", 5.43, "5.43"),
        ("negative", -2.715, "-2.715"),
        ("integer", 3, "3.0"),
    )
    def test_known_values(self, value: float, expected: str) -> None:
        """Shortest decimal for well-known values."""
        assert format_float(value) == expected

    def test_no_precision_expansion(self) -> None:
        """The decimal read from a file is written back unchanged."""
        text = format_float(float("0.333333333333333"))
        assert text == "0.333333333333333"
        assert text != "0.33333333333333298"

    def test_bit_exact_round_trip(self) -> None:
        """Formatting then parsing gives back the identical float."""
        values = np.random.default_rng(7).normal(scale=10.0, size=200)
        for value in values.tolist():
            assert float(format_float(value)) == value

    def test_jax_scalar(self) -> None:
        """JAX float64 scalars format like Python floats."""
        assert format_float(jnp.array(0.25, dtype=jnp.float64)) == "0.25"


class TestPoscarToString(chex.TestCase):
    """Test the written layout."""

    def test_vasp5_layout(self) -> None:
        """Exact text for a two-atom structure with symbols."""
        poscar = create_poscar(
            lattice=CUBIC,
            counts=[1, 1],
            positions=jnp.array([[0.0, 0.0, 0.0], [0.5, 0.5, 0.5]]),
            comment="MgO",
            symbols=["Mg", "O"],
        )
        expected = (
            "MgO\n"
            "  1.0\n"
            "    5.43  0.0  0.0\n"
            "     0.0 5.43  0.0\n"
            "     0.0  0.0 5.43\n"
            "  Mg  O\n"
            "   1  1\n"
            "Direct\n"
            "  0.0 0.0 0.0\n"
            "  0.5 0.5 0.5\n"
        )
        assert poscar_to_string(poscar) == expected

    def test_columns_right_aligned(self) -> None:
        """Numbers in the same column end at the same offset."""
        poscar = create_poscar(
            lattice=CUBIC,
            counts=[2],
            positions=jnp.array([[-0.25, 0.5, 0.0], [0.125, -1.0, 10.0]]),
            coordinate_system=CoordinateSystem.CARTESIAN,
        )
        lines = poscar_to_string(poscar).splitlines()
        assert lines[-3] == "Cartesian"
        assert lines[-2] == "  -0.25  0.5  0.0"
        assert lines[-1] == "  0.125 -1.0 10.0"

    def test_vasp4_omits_symbols_line(self) -> None:
        """Without symbols the counts line follows the lattice."""
        poscar = create_poscar(
            lattice=CUBIC,
            counts=[1, 1],
            positions=jnp.array([[0.0, 0.0, 0.0], [0.5, 0.5, 0.5]]),
        )
        lines = poscar_to_string(poscar).splitlines()
        assert len(lines) == 9
        assert lines[5] == "   1  1"
        assert lines[6] == "Direct"

    def test_long_symbols_widen_columns(self) -> None:
        """Symbols and counts share column widths."""
        poscar = create_poscar(
            lattice=CUBIC,
            counts=[12, 1],
            positions=jnp.zeros((13, 3)),
            symbols=["Fe_pv", "O"],
        )
        lines = poscar_to_string(poscar).splitlines()
        assert lines[5] == "  Fe_pv  O"
        assert lines[6] == "     12  1"

    def test_selective_dynamics_flags(self) -> None:
        """Each site gets exactly three T/F tokens after the coordinates."""
        poscar = create_poscar(
            lattice=CUBIC,
            counts=[2],
            positions=jnp.array([[0.0, 0.0, 0.0], [0.5, 0.5, 0.5]]),
            symbols=["Si"],
            selective_dynamics=jnp.array([[True, False, True], [False, False, False]]),
            site_labels=["Si1", ""],
        )
        lines = poscar_to_string(poscar).splitlines()
        assert lines[7] == "Selective dynamics"
        assert lines[8] == "Direct"
        assert lines[9] == "  0.0 0.0 0.0 T F T Si1"
        assert lines[10] == "  0.5 0.5 0.5 F F F"

    def test_negative_scale_written_signed(self) -> None:
        """A target volume keeps its minus sign."""
        poscar = create_poscar(
            lattice=CUBIC, counts=[1], positions=jnp.zeros((1, 3)), scale=-160.1
        )
        assert poscar_to_string(poscar).splitlines()[1] == "  -160.1"

    def test_trailing_lines_last(self) -> None:
        """Trailing lines close the file, each on its own line."""
        trailing = ["", "  0.1 0.2 0.3", "garbage  with   spacing "]
        poscar = create_poscar(
            lattice=CUBIC,
            counts=[1],
            positions=jnp.zeros((1, 3)),
            trailing_lines=trailing,
        )
        text = poscar_to_string(poscar)
        assert text.endswith("\n" + "\n".join(trailing) + "\n")

    def test_single_final_newline(self) -> None:
        """The text ends with exactly one newline."""
        poscar = create_poscar(lattice=CUBIC, counts=[1], positions=jnp.zeros((1, 3)))
        text = poscar_to_string(poscar)
        assert text.endswith("0.0\n")
        assert not text.endswith("\n\n")

    def test_raw_structure_written_unvalidated(self) -> None:
        """A raw structure is written as is, even when inconsistent."""
        raw = RawPoscar(
            comment="inconsistent",
            scale=0.0,
            lattice=jnp.zeros((3, 3)),
            symbols=("Si",),
            counts=(2,),
            coordinate_system=CoordinateSystem.DIRECT,
            positions=jnp.zeros((1, 3)),
            selective_dynamics=None,
            site_labels=("",),
            trailing_lines=(),
        )
        lines = poscar_to_string(raw).splitlines()
        assert lines[1] == "  0.0"
        assert lines[6] == "   2"
        assert len(lines) == 9

    def _raw_two_sites(self, **changes) -> RawPoscar:
        fields = dict(
            comment="hand built",
            scale=1.0,
            lattice=CUBIC,
            symbols=("Si",),
            counts=(2,),
            coordinate_system=CoordinateSystem.DIRECT,
            positions=jnp.array([[0.1, 0.2, 0.3], [0.4, 0.5, 0.6]]),
            selective_dynamics=None,
            site_labels=(),
            trailing_lines=(),
        )
        fields.update(changes)
        return RawPoscar(**fields)

    def test_raw_missing_labels_keeps_every_site(self) -> None:
        """Sites without a label are still written."""
        lines = poscar_to_string(self._raw_two_sites()).splitlines()
        assert lines[-2:] == ["  0.1 0.2 0.3", "  0.4 0.5 0.6"]

    def test_raw_partial_labels(self) -> None:
        """Labels fill the first sites, the rest go unlabeled."""
        raw = self._raw_two_sites(site_labels=("Si1",))
        lines = poscar_to_string(raw).splitlines()
        assert lines[-2:] == ["  0.1 0.2 0.3 Si1", "  0.4 0.5 0.6"]

    def test_raw_flag_rows_mismatch(self) -> None:
        """Flags for fewer sites than positions cannot be written."""
        raw = self._raw_two_sites(
            selective_dynamics=jnp.array([[True, True, True]]),
            site_labels=("", ""),
        )
        with pytest.raises(ValidationError) as excinfo:
            poscar_to_string(raw)
        assert excinfo.value.kind is ValidationErrorKind.COUNT_MISMATCH

    def test_raw_extra_labels(self) -> None:
        """More labels than sites cannot be written."""
        raw = self._raw_two_sites(site_labels=("a", "b", "c"))
        with pytest.raises(ValidationError) as excinfo:
            poscar_to_string(raw)
        assert excinfo.value.kind is ValidationErrorKind.COUNT_MISMATCH


class TestWritePoscar(chex.TestCase):
    """Test writing to disk."""

    def test_writes_text(self) -> None:
        """The file holds exactly the serialized text."""
        poscar = create_poscar(
            lattice=CUBIC, counts=[1], positions=jnp.zeros((1, 3)), symbols=["Si"]
        )
        with tempfile.TemporaryDirectory() as tmp_dir:
            target = Path(tmp_dir) / "POSCAR"
            written = write_poscar(poscar, str(target))

            assert written == target
            assert target.read_text() == poscar_to_string(poscar)
