"""Axis mesh assembler for openEMS FDTD simulations.

This module finalizes the three per-axis mesh line sets of a session and
renders them as the body of the mesh function.

Z axis:
- One line per non-mask layer boundary (copper skipped when its thickness is
  ignored) plus the top of the stack.
- Widened by ``max(lambda(f0 + fc), 20 * board thickness)`` on both sides (a
  flat fallback margin when the stackup yields fewer than two boundary lines).
- Boundaries, domain bounds and the lines registered on z (ranges, nf2ff
  faces) are cleaned together at the z minimum gap.
- Lines inside the stack are smoothed at the thinnest layer thickness, the
  full set again at ``c0 / max_freq / unit / lambda_mesh_ratio``.

XY axes:
- The extreme lines are pushed out to ``lambda(f0 + fc) / r`` beyond the
  board edges, ``r = lambda_mesh_ratio / 10`` under PML and ``/ 4`` under
  MUR. An extent that is already wider is kept.
- Cleaned at the x/y minimum gaps and smoothed at the same resolution as z.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from .board import Board, LayerType
from .mesh import Mesh, MeshAxis
from .spec import BoundaryCondition, GeneratorConfig
from .units import wavelength

logger = logging.getLogger(__name__)

# z margin is at least this many board thicknesses
BOARD_THICKNESS_MARGIN_FACTOR = 20.0


def xy_margin_ratio(lambda_mesh_ratio: float, boundary: BoundaryCondition) -> float:
    """Divisor of the wavelength giving the xy clearance around the board."""
    if BoundaryCondition(boundary) == BoundaryCondition.PML:
        return lambda_mesh_ratio / 10
    return lambda_mesh_ratio / 4


def _render_array(name: str, values: np.ndarray) -> str:
    body = " ".join(f"{v:f}" for v in values)
    return f"{name} = [{body}];"


@dataclass(frozen=True, slots=True)
class ZAxisResult:
    """Finalized z axis.

    ``layer_lines`` and ``outer_lines`` are disjoint parts of one cleaned
    line set.

    Attributes:
        layer_lines: Cleaned lines within the stack, smoothed finely.
        fine_resolution: Resolution of the first smoothing pass.
        outer_lines: Cleaned lines outside the stack, domain bounds included.
        margin: Margin applied beyond the stack.
        raw_line_count: Per-layer boundary lines before cleaning.
        used_fallback: Whether the flat fallback margin was used.
    """

    layer_lines: np.ndarray
    fine_resolution: float
    outer_lines: np.ndarray
    margin: float
    raw_line_count: int
    used_fallback: bool

    @property
    def lines(self) -> np.ndarray:
        """All emitted z lines, sorted."""
        return np.union1d(self.layer_lines, self.outer_lines)

    @property
    def low(self) -> float:
        return float(self.lines[0])

    @property
    def high(self) -> float:
        return float(self.lines[-1])


@dataclass(frozen=True, slots=True)
class MeshResult:
    """Finalized grid of a session, ready to render."""

    z: ZAxisResult
    x: np.ndarray
    y: np.ndarray
    lambda_mesh_ratio: float
    smooth_ratio: float

    def _coarse_resolution(self) -> str:
        return f"max_res = c0 / (max_freq) / unit / {self.lambda_mesh_ratio:f};"

    def z_statements(self) -> list[str]:
        z = self.z
        bounds_text = ", ".join(f"{v:f}" for v in z.outer_lines)
        return [
            _render_array("mesh.z", z.layer_lines),
            f"max_res = {z.fine_resolution:f};",
            f"mesh.z = SmoothMeshLines(mesh.z, max_res, {self.smooth_ratio:g});",
            f"mesh.z = unique([mesh.z, {bounds_text}]);",
            self._coarse_resolution(),
            f"mesh.z = SmoothMeshLines(mesh.z, max_res, {self.smooth_ratio:g});",
        ]

    def xy_statements(self) -> list[str]:
        return [
            _render_array("mesh.x", self.x),
            _render_array("mesh.y", self.y),
            self._coarse_resolution(),
            f"mesh.x = SmoothMeshLines(mesh.x, max_res, {self.smooth_ratio:g});",
            f"mesh.y = SmoothMeshLines(mesh.y, max_res, {self.smooth_ratio:g});",
        ]

    def to_statements(self) -> list[str]:
        return [*self.z_statements(), "", *self.xy_statements()]


class AxisMeshAssembler:
    """Finalizes a session mesh against the board stackup and outline.

    :meth:`assemble` mutates ``mesh`` (ranges applied, xy extended and
    cleaned) and must run once per session.
    """

    def __init__(self, board: Board, mesh: Mesh, config: GeneratorConfig) -> None:
        self.board = board
        self.mesh = mesh
        self.config = config

    def assemble(self) -> MeshResult:
        self.mesh.apply_ranges()
        z = self.assemble_z()
        x, y = self.assemble_xy()
        logger.info("Mesh finalized: %d x, %d y, %d z lines", len(x), len(y), len(z.lines))
        return MeshResult(
            z=z,
            x=x,
            y=y,
            lambda_mesh_ratio=self.config.lambda_mesh_ratio,
            smooth_ratio=self.config.smooth_ratio,
        )

    def _excitation_wavelength(self) -> float:
        return wavelength(self.config.f0 + self.config.fc, self.config.unit)

    def layer_boundaries(self) -> list[float]:
        """Per-layer boundary z values, bottom to top, without the stack top."""
        board = self.board
        lines: list[float] = []
        for layer in board.layers_bottom_up():
            if layer.type in (LayerType.TOP_SOLDER_MASK, LayerType.BOTTOM_SOLDER_MASK):
                continue
            if board.ignore_cu_thickness and layer.type == LayerType.COPPER:
                continue
            lines.append(board.layer_z(layer.name))
        return lines

    def fine_z_resolution(self) -> float:
        board = self.board
        if board.ignore_cu_thickness:
            resolution = board.min_thickness(LayerType.DIELECTRIC)
        else:
            resolution = board.cu_min_thickness()
        if resolution <= 0:
            resolution = self.config.mesh_z_min_gap
        return resolution

    def assemble_z(self) -> ZAxisResult:
        boundaries = self.layer_boundaries()
        axis = MeshAxis()
        for value in boundaries:
            axis.insert(value, 0)
        axis.insert(self.board.board_thickness(), 0)
        axis.clean(self.config.mesh_z_min_gap)
        bottom = axis.lines[0].value
        top = axis.lines[-1].value

        if len(boundaries) >= 2:
            margin = max(self._excitation_wavelength(), self.board.board_thickness() * BOARD_THICKNESS_MARGIN_FACTOR)
            used_fallback = False
        else:
            margin = self.config.z_fallback_margin
            used_fallback = True
            logger.debug("Stackup yields %d z boundary lines, using flat z margin %g", len(boundaries), margin)

        registered = self.mesh.z
        low = bottom - margin
        high = top + margin
        if registered.first is not None and registered.last is not None:
            low = min(low, registered.first.value)
            high = max(high, registered.last.value)
        for line in registered:
            axis.insert(line.value, line.priority)
        axis.insert(low, 0)
        axis.insert(high, 0)
        axis.clean(self.config.mesh_z_min_gap)

        values = axis.values()
        inside = (values >= bottom) & (values <= top)
        return ZAxisResult(
            layer_lines=values[inside],
            fine_resolution=self.fine_z_resolution(),
            outer_lines=values[~inside],
            margin=margin,
            raw_line_count=len(boundaries),
            used_fallback=used_fallback,
        )

    def assemble_xy(self) -> tuple[np.ndarray, np.ndarray]:
        board = self.board
        step = self._excitation_wavelength() / xy_margin_ratio(self.config.lambda_mesh_ratio, self.config.boundary)
        _extend(self.mesh.x, board.edge_left - step, board.edge_right + step, "x")
        _extend(self.mesh.y, board.edge_top - step, board.edge_bottom + step, "y")
        self.mesh.x.clean(self.config.mesh_x_min_gap)
        self.mesh.y.clean(self.config.mesh_y_min_gap)
        return self.mesh.x.values(), self.mesh.y.values()


def _extend(axis: MeshAxis, low: float, high: float, name: str) -> None:
    """Push the extreme lines of ``axis`` out to ``low``/``high`` if they fall short."""
    first = axis.first
    last = axis.last
    if first is None or last is None:
        logger.warning("No %s mesh lines registered, %s axis left empty", name, name)
        return
    if first.value > low:
        axis.insert(low, first.priority)
    if last.value < high:
        axis.insert(high, last.priority)
