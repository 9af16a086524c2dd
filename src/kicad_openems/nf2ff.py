"""Near-to-far-field box sizing.

The nf2ff box is centred on a designated footprint (its placement and the
z of its layer). Without a designated footprint no box is produced.

Half-extents:
- x/y: ``max(dist to farther edge + lambda / r, lambda / 2)``
- z: ``max(board thickness * r, lambda / 2)``

where ``lambda`` is the free-space wavelength at the far-field frequency and
``r`` is ``lambda_mesh_ratio / 10`` under PML or ``lambda_mesh_ratio`` under
MUR boundaries. One mesh line is injected one ``lambda / r`` step outside
each of the six faces.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from .board import Board
from .csx_primitives import Point3D
from .mesh import Axis, Mesh
from .spec import BoundaryCondition
from .units import DEFAULT_UNIT_M, wavelength

logger = logging.getLogger(__name__)


def nf2ff_ratio(lambda_mesh_ratio: float, boundary: BoundaryCondition) -> float:
    if BoundaryCondition(boundary) == BoundaryCondition.PML:
        return lambda_mesh_ratio / 10
    return lambda_mesh_ratio


@dataclass(frozen=True, slots=True)
class NF2FFBox:
    """Sized nf2ff box.

    Attributes:
        center: Box centre.
        x_margin: Half-extent along x.
        y_margin: Half-extent along y.
        z_margin: Half-extent along z.
        step: Clearance step ``lambda / r`` between a face and its mesh line.
        far_field_freq: Frequency the box was sized for (Hz).
    """

    center: Point3D
    x_margin: float
    y_margin: float
    z_margin: float
    step: float
    far_field_freq: float

    def face_lines(self) -> dict[Axis, tuple[float, float]]:
        """Mesh line coordinates just outside the two faces on each axis."""
        c = self.center
        return {
            Axis.X: (c.x - self.x_margin - self.step, c.x + self.x_margin + self.step),
            Axis.Y: (c.y - self.y_margin - self.step, c.y + self.y_margin + self.step),
            Axis.Z: (c.z - self.z_margin - self.step, c.z + self.z_margin + self.step),
        }

    def inject_mesh_lines(self, mesh: Mesh, priority: int) -> None:
        for axis, (low, high) in self.face_lines().items():
            mesh.axis(axis).insert(low, priority)
            mesh.axis(axis).insert(high, priority)

    def to_statements(self) -> list[str]:
        c = self.center
        return [
            f"far_field_freq = {self.far_field_freq:g};",
            f"nf2ff_cx = {c.x:e}; nf2ff_cy = {c.y:e}; nf2ff_cz = {c.z:e};",
            f"x_margin = {self.x_margin:e}; y_margin = {self.y_margin:e}; z_margin = {self.z_margin:e};",
            "nf2ff_start = [nf2ff_cx - x_margin, nf2ff_cy - y_margin, nf2ff_cz - z_margin];",
            "nf2ff_stop = [nf2ff_cx + x_margin, nf2ff_cy + y_margin, nf2ff_cz + z_margin];",
            "[CSX nf2ff] = CreateNF2FFBox(CSX, 'nf2ff', nf2ff_start, nf2ff_stop);",
        ]


def size_nf2ff_box(
    board: Board,
    footprint_reference: str | None,
    *,
    far_field_freq: float,
    lambda_mesh_ratio: float,
    boundary: BoundaryCondition,
    unit: float = DEFAULT_UNIT_M,
) -> NF2FFBox | None:
    """Size the box around a footprint; None when no usable footprint is set."""
    if not footprint_reference:
        return None
    footprint = board.footprint(footprint_reference)
    if footprint is None:
        logger.warning("nf2ff footprint %s not found on board, no nf2ff box", footprint_reference)
        return None
    try:
        cz = board.layer_z(footprint.layer)
    except KeyError:
        logger.warning("nf2ff footprint %s is on unknown layer %s", footprint_reference, footprint.layer)
        return None

    cx = footprint.at.x
    cy = footprint.at.y
    lam = wavelength(far_field_freq, unit)
    ratio = nf2ff_ratio(lambda_mesh_ratio, boundary)
    step = lam / ratio

    x_margin = max(abs(cx - board.edge_left) + step, abs(cx - board.edge_right) + step, lam / 2)
    y_margin = max(abs(cy - board.edge_top) + step, abs(cy - board.edge_bottom) + step, lam / 2)
    z_margin = max(board.board_thickness() * ratio, lam / 2)
    return NF2FFBox(Point3D(cx, cy, cz), x_margin, y_margin, z_margin, step, far_field_freq)
