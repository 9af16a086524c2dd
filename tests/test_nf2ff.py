"""Tests for nf2ff box sizing and mesh injection."""

from __future__ import annotations

import logging

import pytest

from kicad_openems.board import Board
from kicad_openems.mesh import Axis, Mesh
from kicad_openems.nf2ff import nf2ff_ratio, size_nf2ff_box
from kicad_openems.spec import BoundaryCondition
from kicad_openems.units import wavelength

LAMBDA_FF = wavelength(2.4e9)


def _size(board: Board, reference: str | None, boundary: BoundaryCondition = BoundaryCondition.PML):
    return size_nf2ff_box(
        board,
        reference,
        far_field_freq=2.4e9,
        lambda_mesh_ratio=20,
        boundary=boundary,
    )


def test_ratio_depends_on_boundary() -> None:
    assert nf2ff_ratio(20, BoundaryCondition.PML) == 2
    assert nf2ff_ratio(20, BoundaryCondition.MUR) == 20


class TestSizeNF2FFBox:
    """Tests for box sizing around a footprint."""

    def test_no_footprint_no_box(self, board: Board) -> None:
        assert _size(board, None) is None
        assert _size(board, "") is None

    def test_missing_footprint_warns(self, board: Board, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            assert _size(board, "ANT1") is None
        assert "ANT1" in caplog.text

    def test_centred_on_footprint(self, board: Board) -> None:
        box = _size(board, "J1")
        assert box is not None
        assert (box.center.x, box.center.y) == (10.0, 8.0)
        assert box.center.z == pytest.approx(1.6)

    def test_margins_under_pml(self, board: Board) -> None:
        box = _size(board, "J1")
        assert box is not None
        step = LAMBDA_FF / 2
        assert box.step == pytest.approx(step)
        # J1 is 10 from both x edges and 8 from the top edge
        assert box.x_margin == pytest.approx(10.0 + step)
        assert box.y_margin == pytest.approx(8.0 + step)
        assert box.z_margin == pytest.approx(LAMBDA_FF / 2)

    def test_margins_under_mur(self, board: Board) -> None:
        box = _size(board, "J1", BoundaryCondition.MUR)
        assert box is not None
        step = LAMBDA_FF / 20
        assert box.step == pytest.approx(step)
        # Half a wavelength exceeds the edge distance plus one step
        assert box.x_margin == pytest.approx(LAMBDA_FF / 2)
        assert box.z_margin == pytest.approx(LAMBDA_FF / 2)


class TestNF2FFBox:
    """Tests for face lines and rendered statements."""

    def test_face_lines_outside_box(self, board: Board) -> None:
        box = _size(board, "J1")
        assert box is not None
        low, high = box.face_lines()[Axis.X]
        assert low == pytest.approx(10.0 - box.x_margin - box.step)
        assert high == pytest.approx(10.0 + box.x_margin + box.step)

    def test_inject_two_lines_per_axis(self, board: Board) -> None:
        box = _size(board, "J1")
        assert box is not None
        mesh = Mesh()
        box.inject_mesh_lines(mesh, 99)
        for axis in Axis:
            lines = mesh.axis(axis).lines
            assert len(lines) == 2
            assert all(line.priority == 99 for line in lines)

    def test_statements(self, board: Board) -> None:
        box = _size(board, "J1")
        assert box is not None
        statements = box.to_statements()
        assert statements[0] == "far_field_freq = 2.4e+09;"
        assert statements[1] == "nf2ff_cx = 1.000000e+01; nf2ff_cy = 8.000000e+00; nf2ff_cz = 1.600000e+00;"
        assert statements[-1] == "[CSX nf2ff] = CreateNF2FFBox(CSX, 'nf2ff', nf2ff_start, nf2ff_stop);"
