"""Lumped port and lumped element construction for openEMS simulations.

Ports and elements are boxes between two 3D endpoints with an orientation
axis. They are built in one of three ways:
- Pad pair: two pads on possibly different footprints and layers, with an
  explicit direction.
- Implicit footprint: a two-pad footprint such as ``R1``; the direction is
  the axis along which the pads are further apart and the value comes from
  the footprint's value field.
- Points: two explicit board points with their layers (no pad lookup).

Coordinate snapping:
- Coordinates along the port axis are rounded to 0.1 board units.
- With mesh generation the perpendicular coordinates are rounded too, so
  that the port's mesh lines coincide with neighbouring ones.
- Without mesh generation the perpendicular span is centred on the first pad
  and sized by half the smallest pad dimension.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .csx_primitives import CSXLumpedElement, CSXLumpedPort, Point3D
from .mesh import Axis
from .units import round_to_grid

if TYPE_CHECKING:
    from .board import Board, Footprint, Pad, Point

logger = logging.getLogger(__name__)

_DIRECTION_INDEX = {Axis.X: 0, Axis.Y: 1, Axis.Z: 2}


class ElementType(str, Enum):
    """Lumped element kinds."""

    R = "R"
    """Resistor."""

    L = "L"
    """Inductor."""

    C = "C"
    """Capacitor."""

    @classmethod
    def from_reference(cls, reference: str) -> ElementType | None:
        """Element type from a reference designator's first letter, if any."""
        if not reference:
            return None
        try:
            return cls(reference[0].upper())
        except ValueError:
            return None


def direction_vector(direction: Axis) -> tuple[int, int, int]:
    axis = Axis(direction)
    return (int(axis == Axis.X), int(axis == Axis.Y), int(axis == Axis.Z))


@dataclass(frozen=True, slots=True)
class PortGeometry:
    """Resolved endpoints and orientation of a port or element box."""

    start: Point3D
    end: Point3D
    direction: Axis


@dataclass(frozen=True, slots=True)
class Excitation:
    """A registered lumped port; its registration index is its port number.

    Attributes:
        start: First corner of the port box.
        end: Opposite corner of the port box.
        direction: Axis the port drives along.
        resistance: Port resistance in Ohm.
        excite: Whether the port is driven (otherwise it only terminates).
        generate_mesh: Whether the port contributes mesh lines.
    """

    start: Point3D
    end: Point3D
    direction: Axis
    resistance: float
    excite: bool = True
    generate_mesh: bool = True

    def to_primitive(self, port_number: int) -> CSXLumpedPort:
        return CSXLumpedPort(
            port_number=port_number,
            resistance=self.resistance,
            start=self.start,
            stop=self.end,
            direction_vector=direction_vector(self.direction),
            excite=self.excite,
        )


@dataclass(frozen=True, slots=True)
class LumpedElement:
    """A registered R, L or C element."""

    name: str
    element_type: ElementType
    value: float
    direction: Axis
    start: Point3D
    end: Point3D
    generate_mesh: bool = True

    def to_primitive(self) -> CSXLumpedElement:
        return CSXLumpedElement(
            name=self.name,
            direction_index=_DIRECTION_INDEX[Axis(self.direction)],
            element_type=self.element_type.value,
            value=self.value,
            start=self.start,
            stop=self.end,
        )


def pad_pair_element_name(fp1: str, pad1: str, layer1: str, fp2: str, pad2: str, layer2: str) -> str:
    return f"LE_{fp1}{pad1}{layer1}_{fp2}{pad2}{layer2}"


def footprint_element_name(reference: str) -> str:
    return f"LE_{reference}"


def point_element_name(start: Point, start_layer: str, end: Point, end_layer: str) -> str:
    return f"LE_{start_layer}_x{start.x:.2f}_y{start.y:.2f}_{end_layer}_x{end.x:.2f}_y{end.y:.2f}"


class PortBuilder:
    """Derives port and element geometry from board queries.

    Every builder returns ``None`` after logging a warning when a footprint,
    pad or layer lookup fails or the footprint has the wrong shape.
    """

    def __init__(self, board: Board) -> None:
        self.board = board

    def from_pads(
        self,
        fp1: str,
        pad1_number: str,
        layer1: str,
        fp2: str,
        pad2_number: str,
        layer2: str,
        direction: Axis,
        generate_mesh: bool,
    ) -> PortGeometry | None:
        footprint1 = self.board.footprint(fp1)
        footprint2 = self.board.footprint(fp2)
        pad1 = self.board.pad(fp1, pad1_number)
        pad2 = self.board.pad(fp2, pad2_number)
        if footprint1 is None or footprint2 is None or pad1 is None or pad2 is None:
            logger.warning("Pad lookup failed for %s.%s / %s.%s", fp1, pad1_number, fp2, pad2_number)
            return None
        z_start = self._layer_z(layer1)
        z_end = self._layer_z(layer2)
        if z_start is None or z_end is None:
            return None
        p1 = self.board.pad_position(footprint1, pad1)
        p2 = self.board.pad_position(footprint2, pad2)
        return _snap(p1, p2, pad1, pad2, z_start, z_end, Axis(direction), generate_mesh)

    def from_footprint(self, reference: str, generate_mesh: bool) -> tuple[PortGeometry, Footprint] | None:
        """Geometry between the two pads of a two-terminal footprint."""
        footprint = self.board.footprint(reference)
        if footprint is None:
            logger.warning("Footprint %s not found on board", reference)
            return None
        if len(footprint.pads) != 2:
            logger.warning("Footprint %s has %d pads, expected 2", reference, len(footprint.pads))
            return None
        z = self._layer_z(footprint.layer)
        if z is None:
            return None
        pad1, pad2 = footprint.pads
        p1 = self.board.pad_position(footprint, pad1)
        p2 = self.board.pad_position(footprint, pad2)
        direction = Axis.X if abs(p1.x - p2.x) > abs(p1.y - p2.y) else Axis.Y
        return _snap(p1, p2, pad1, pad2, z, z, direction, generate_mesh), footprint

    def from_points(
        self,
        start: Point,
        start_layer: str,
        end: Point,
        end_layer: str,
        direction: Axis,
    ) -> PortGeometry | None:
        z_start = self._layer_z(start_layer)
        z_end = self._layer_z(end_layer)
        if z_start is None or z_end is None:
            return None
        return PortGeometry(Point3D(start.x, start.y, z_start), Point3D(end.x, end.y, z_end), Axis(direction))

    def _layer_z(self, layer: str) -> float | None:
        try:
            return self.board.layer_z(layer)
        except KeyError:
            logger.warning("Unknown layer %s", layer)
            return None


def _snap(
    p1: Point,
    p2: Point,
    pad1: Pad,
    pad2: Pad,
    z_start: float,
    z_end: float,
    direction: Axis,
    generate_mesh: bool,
) -> PortGeometry:
    size = min(pad1.size_w, pad1.size_h, pad2.size_w, pad2.size_h) / 2

    def along(v1: float, v2: float) -> tuple[float, float]:
        return round_to_grid(v1), round_to_grid(v2)

    def across(v1: float, v2: float) -> tuple[float, float]:
        if generate_mesh:
            return round_to_grid(v1), round_to_grid(v2)
        return v1 - size, v1 + size

    if direction == Axis.X:
        x1, x2 = along(p1.x, p2.x)
        y1, y2 = across(p1.y, p2.y)
    elif direction == Axis.Y:
        x1, x2 = across(p1.x, p2.x)
        y1, y2 = along(p1.y, p2.y)
    else:
        x1, x2 = across(p1.x, p2.x)
        y1, y2 = across(p1.y, p2.y)
    return PortGeometry(Point3D(x1, y1, z_start), Point3D(x2, y2, z_end), direction)
