"""CSX primitive dataclasses for openEMS CSXCAD geometry.

This module defines the internal representation of the solid bodies the
model generator emits. Each primitive renders itself as an ordered list of
Octave statements against the openEMS CSXCAD API, so the generator core can
be tested on statement sequences without touching the filesystem.

Coordinates are board units (mm); the emitted scripts scale them with
``unit = 1e-3`` when the grid is defined.

Primitive types used for PCB geometry:
- Box: dielectric layers and lumped element bodies
- LinPoly: extruded polygons for tracks, zones, pads and graphics
- Cylinder: via barrels, pad drills and round pads
"""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum


class CSXPrimitiveType(Enum):
    """CSXCAD primitive geometry types."""

    BOX = "box"
    """Axis-aligned 3D box."""

    CYLINDER = "cylinder"
    """Cylinder with circular cross-section along z."""

    LINPOLY = "linpoly"
    """Polygon in the xy plane extruded along z."""


# Primitive priorities. Higher priority wins where bodies overlap.
PRIORITY_LUMPED_BOX = 0
PRIORITY_DIELECTRIC = 1
PRIORITY_NET = 2
PRIORITY_GRAPHIC = 2
PRIORITY_PAD = 3


def _f(value: float) -> str:
    return f"{value:f}"


@dataclass(frozen=True, slots=True)
class Point3D:
    """3D point in board units.

    Attributes:
        x: X coordinate.
        y: Y coordinate.
        z: Z coordinate (layer resolved).
    """

    x: float
    y: float
    z: float

    def render(self) -> str:
        return f"[{_f(self.x)} {_f(self.y)} {_f(self.z)}]"


@dataclass(frozen=True, slots=True)
class CSXDielectricBox:
    """Dielectric layer body spanning the board outline."""

    name: str
    start: Point3D
    stop: Point3D
    epsilon_r: float
    priority: int = PRIORITY_DIELECTRIC

    @property
    def primitive_type(self) -> CSXPrimitiveType:
        return CSXPrimitiveType.BOX

    def to_statements(self) -> list[str]:
        return [
            f"start = {self.start.render()};",
            f"stop = {self.stop.render()};",
            f"CSX = AddMaterial(CSX, '{self.name}');",
            f"CSX = SetMaterialProperty(CSX, '{self.name}', 'Epsilon', {_f(self.epsilon_r)});",
            f"CSX = AddBox(CSX, '{self.name}', {self.priority}, start, stop);",
        ]


@dataclass(frozen=True, slots=True)
class CSXMetal:
    """Metal property declaration shared by all bodies of a net or footprint."""

    name: str

    def to_statements(self) -> list[str]:
        return [f"CSX = AddMetal(CSX, '{self.name}');"]


@dataclass(frozen=True, slots=True)
class CSXLinPoly:
    """Polygon extruded from ``z`` by ``thickness``.

    Attributes:
        name: Name of the metal property the body belongs to.
        priority: CSXCAD primitive priority.
        z: Bottom of the extrusion.
        thickness: Extrusion height (may be zero).
        vertices: Polygon vertices in the xy plane, in drawing order.
    """

    name: str
    priority: int
    z: float
    thickness: float
    vertices: tuple[tuple[float, float], ...] = field(default_factory=tuple)

    @property
    def primitive_type(self) -> CSXPrimitiveType:
        return CSXPrimitiveType.LINPOLY

    def to_statements(self) -> list[str]:
        statements = [
            f"p(1, {idx}) = {_f(x)}; p(2, {idx}) = {_f(y)};" for idx, (x, y) in enumerate(self.vertices, start=1)
        ]
        statements.append(
            f"CSX = AddLinPoly(CSX, '{self.name}', {self.priority}, 2, {_f(self.z)}, p, {_f(self.thickness)}, 'CoordSystem', 0);"
        )
        statements.append("clear p;")
        return statements


@dataclass(frozen=True, slots=True)
class CSXCylinder:
    """Cylinder along z between two points with the same xy."""

    name: str
    priority: int
    start: Point3D
    stop: Point3D
    radius: float

    @property
    def primitive_type(self) -> CSXPrimitiveType:
        return CSXPrimitiveType.CYLINDER

    def to_statements(self) -> list[str]:
        return [
            f"CSX = AddCylinder(CSX, '{self.name}', {self.priority}, {self.start.render()}, {self.stop.render()}, {_f(self.radius)});"
        ]


@dataclass(frozen=True, slots=True)
class CSXLumpedPort:
    """Lumped port with its port number, resistance and excitation vector."""

    port_number: int
    resistance: float
    start: Point3D
    stop: Point3D
    direction_vector: tuple[int, int, int]
    excite: bool

    def to_statements(self) -> list[str]:
        dx, dy, dz = self.direction_vector
        flag = "true" if self.excite else "false"
        return [
            f"[CSX] = AddLumpedPort(CSX, 1, {self.port_number}, {_f(self.resistance)}, "
            f"{self.start.render()}, {self.stop.render()}, [{dx} {dy} {dz}], {flag});"
        ]


@dataclass(frozen=True, slots=True)
class CSXLumpedElement:
    """Lumped R, L or C element and the box that carries it."""

    name: str
    direction_index: int
    element_type: str
    value: float
    start: Point3D
    stop: Point3D
    priority: int = PRIORITY_LUMPED_BOX

    def to_statements(self) -> list[str]:
        return [
            f"[CSX] = AddLumpedElement(CSX, '{self.name}', {self.direction_index}, 'Caps', 1, '{self.element_type}', {self.value:g});",
            f"[CSX] = AddBox(CSX, '{self.name}', {self.priority}, {self.start.render()}, {self.stop.render()});",
        ]


def render_all(primitives: Sequence[CSXDielectricBox | CSXMetal | CSXLinPoly | CSXCylinder]) -> list[str]:
    """Concatenate the statements of several primitives in order."""
    statements: list[str] = []
    for primitive in primitives:
        statements.extend(primitive.to_statements())
    return statements
