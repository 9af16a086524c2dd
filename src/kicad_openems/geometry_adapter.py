"""Geometry mapper from board entities to openEMS CSX primitives.

This module maps the PCB board model (tracks, arcs, vias, zones, footprint
graphics, pads) to CSXCAD solid bodies and feeds landmark coordinates into
the session mesh.

The mapper handles:
- Dielectric layers -> boxes spanning the board outline
- Straight tracks -> 10-vertex capsule polygons
- Arc tracks -> polygons sampled along the arc
- Zones -> polygons from the zone outline
- Vias and through-hole drills -> cylinders spanning the copper layers
- Filled footprint graphics and pads -> polygons and cylinders

Mesh contributions:
- Landmark meshing inserts the coordinates of polygon vertices, via centres
  and pad features at the net's or footprint's priority.
- Uniform-grid meshing accumulates a bounding box instead and queues one
  :class:`MeshLineRange` per axis once the whole net or footprint is mapped.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

import numpy as np

from .board import (
    Board,
    FillType,
    Footprint,
    Graphic,
    GraphicType,
    LayerType,
    Pad,
    PadShape,
    PadType,
    Point,
    Segment,
    Via,
    Zone,
    arc_center_radius,
    rotate_point,
)
from .csx_primitives import (
    PRIORITY_GRAPHIC,
    PRIORITY_NET,
    PRIORITY_PAD,
    CSXCylinder,
    CSXDielectricBox,
    CSXLinPoly,
    CSXMetal,
    Point3D,
)
from .mesh import Mesh, MeshLineRange

logger = logging.getLogger(__name__)

# Footprint uniform-grid margin bounds (board units)
FOOTPRINT_MARGIN_MIN = 1.0
FOOTPRINT_MARGIN_MAX = 5.0
FOOTPRINT_MARGIN_DIVISOR = 20.0

# Points per semicircular track cap
_CAP_STEPS = 4

Primitive = CSXDielectricBox | CSXMetal | CSXLinPoly | CSXCylinder


@dataclass(frozen=True, slots=True)
class MeshInfo:
    """Per-net or per-footprint meshing directive.

    Attributes:
        generate_mesh: Contribute mesh lines at all.
        zone_generate_mesh: Contribute zone outline vertices (nets only).
        priority: Priority of every contributed line.
        use_uniform_grid: Mesh the bounding box uniformly instead of landmarks.
        x_gap: Uniform grid spacing along x.
        y_gap: Uniform grid spacing along y.
    """

    generate_mesh: bool = True
    zone_generate_mesh: bool = False
    priority: int = 0
    use_uniform_grid: bool = False
    x_gap: float = 0.0
    y_gap: float = 0.0

    def __post_init__(self) -> None:
        if self.use_uniform_grid and not (self.x_gap > 0 and self.y_gap > 0):
            raise ValueError("Uniform grid meshing needs positive x_gap and y_gap")

    @classmethod
    def landmarks(cls, generate_mesh: bool = True, zone_generate_mesh: bool = False, priority: int = 0) -> MeshInfo:
        return cls(generate_mesh=generate_mesh, zone_generate_mesh=zone_generate_mesh, priority=priority)

    @classmethod
    def uniform(cls, x_gap: float, y_gap: float, zone_generate_mesh: bool = False, priority: int = 0) -> MeshInfo:
        return cls(
            generate_mesh=True,
            zone_generate_mesh=zone_generate_mesh,
            priority=priority,
            use_uniform_grid=True,
            x_gap=x_gap,
            y_gap=y_gap,
        )

    @property
    def emits_landmarks(self) -> bool:
        return self.generate_mesh and not self.use_uniform_grid

    @property
    def emits_ranges(self) -> bool:
        return self.generate_mesh and self.use_uniform_grid


@dataclass(slots=True)
class RangeAccumulator:
    """Running xy bounding box of the geometry mapped for one net or footprint."""

    x_min: float = math.inf
    x_max: float = -math.inf
    y_min: float = math.inf
    y_max: float = -math.inf

    def add(self, x: float, y: float) -> None:
        self.x_min = min(self.x_min, x)
        self.x_max = max(self.x_max, x)
        self.y_min = min(self.y_min, y)
        self.y_max = max(self.y_max, y)

    def add_expanded(self, x: float, y: float, amount: float) -> None:
        self.add(x - amount, y - amount)
        self.add(x + amount, y + amount)

    @property
    def is_empty(self) -> bool:
        return self.x_min > self.x_max or self.y_min > self.y_max

    @property
    def has_area(self) -> bool:
        return self.x_min < self.x_max and self.y_min < self.y_max


def footprint_margin(span: float) -> float:
    """Uniform-grid margin around a footprint: ``clamp(span / 20, 1, 5)``."""
    return min(FOOTPRINT_MARGIN_MAX, max(FOOTPRINT_MARGIN_MIN, span / FOOTPRINT_MARGIN_DIVISOR))


def segment_polygon(start: Point, end: Point, width: float) -> list[tuple[float, float]]:
    """Capsule outline of a straight track: two semicircular caps of 5 points."""
    direction = math.atan2(end.y - start.y, end.x - start.x)
    half = width / 2
    steps = np.arange(_CAP_STEPS + 1) * math.pi / _CAP_STEPS
    vertices: list[tuple[float, float]] = []
    for center, base in ((start, direction + math.pi / 2), (end, direction - math.pi / 2)):
        angles = base + steps
        xs = center.x + half * np.cos(angles)
        ys = center.y + half * np.sin(angles)
        vertices.extend(zip(xs.tolist(), ys.tolist()))
    return vertices


@dataclass(slots=True)
class MappedGeometry:
    """Primitives of one model, grouped in emission order."""

    dielectrics: list[Primitive] = field(default_factory=list)
    metals: list[Primitive] = field(default_factory=list)
    segments: list[Primitive] = field(default_factory=list)
    vias: list[Primitive] = field(default_factory=list)
    zones: list[Primitive] = field(default_factory=list)
    footprints: list[Primitive] = field(default_factory=list)

    def sections(self) -> list[list[Primitive]]:
        return [self.dielectrics, self.metals, self.segments, self.vias, self.zones, self.footprints]

    def __len__(self) -> int:
        return sum(len(section) for section in self.sections())


class GeometryMapper:
    """Turns registered nets and footprints into primitives and mesh lines.

    The mapper reads the board and writes only into ``mesh``. Nets and
    footprints are processed in the order they are given.
    """

    def __init__(
        self,
        board: Board,
        mesh: Mesh,
        *,
        arc_step: float = 0.1,
        pad_z_extension: float = 0.001,
    ) -> None:
        if not arc_step > 0:
            raise ValueError(f"arc_step must be positive, got {arc_step!r}")
        self.board = board
        self.mesh = mesh
        self.arc_step = arc_step
        self.pad_z_extension = pad_z_extension

    def map(
        self,
        nets: list[tuple[int, MeshInfo]],
        footprints: list[tuple[str, MeshInfo]],
    ) -> MappedGeometry:
        geometry = MappedGeometry()
        geometry.dielectrics = self.dielectric_boxes()
        geometry.metals = [CSXMetal(self.board.net_name(net_id)) for net_id, _ in nets]
        for net_id, info in nets:
            geometry.segments.extend(self.map_net_segments(net_id, info))
        for net_id, info in nets:
            geometry.vias.extend(self.map_net_vias(net_id, info))
        for net_id, info in nets:
            geometry.zones.extend(self.map_net_zones(net_id, info))
        for reference, info in footprints:
            geometry.footprints.extend(self.map_footprint(reference, info))
        logger.debug("Mapped %d primitives", len(geometry))
        return geometry

    # ------------------------------------------------------------------
    # Dielectrics
    # ------------------------------------------------------------------

    def dielectric_boxes(self) -> list[Primitive]:
        board = self.board
        boxes: list[Primitive] = []
        for layer in board.layers:
            if layer.type != LayerType.DIELECTRIC:
                continue
            z1 = board.layer_z(layer.name)
            z2 = z1 + board.layer_thickness(layer.name)
            boxes.append(
                CSXDielectricBox(
                    name=layer.name,
                    start=Point3D(board.edge_left, board.edge_top, z1),
                    stop=Point3D(board.edge_right, board.edge_bottom, z2),
                    epsilon_r=layer.epsilon_r,
                )
            )
        return boxes

    # ------------------------------------------------------------------
    # Nets
    # ------------------------------------------------------------------

    def map_net_segments(self, net_id: int, info: MeshInfo) -> list[Primitive]:
        name = self.board.net_name(net_id)
        accumulator = RangeAccumulator()
        primitives: list[Primitive] = []
        for segment in self.board.segments(net_id):
            primitive = self._map_segment(segment, name, info)
            if primitive is None:
                continue
            primitives.append(primitive)
            for point in (segment.start, segment.end, segment.mid):
                if point is not None:
                    accumulator.add_expanded(point.x, point.y, segment.width)

        if info.emits_ranges and accumulator.has_area:
            self.mesh.x.add_range(MeshLineRange(accumulator.x_min, accumulator.x_max, info.x_gap, info.priority))
            self.mesh.y.add_range(MeshLineRange(accumulator.y_min, accumulator.y_max, info.y_gap, info.priority))
        return primitives

    def _map_segment(self, segment: Segment, name: str, info: MeshInfo) -> CSXLinPoly | None:
        chord = math.hypot(segment.end.x - segment.start.x, segment.end.y - segment.start.y)
        if chord < segment.width * 0.5:
            logger.debug("Skipping degenerate track on %s (length %g, width %g)", name, chord, segment.width)
            return None
        try:
            z1 = self.board.layer_z(segment.layer)
            thickness = self.board.layer_thickness(segment.layer)
        except KeyError:
            logger.warning("Track on net %s references unknown layer %s", name, segment.layer)
            return None

        if segment.mid is not None:
            try:
                center, _ = arc_center_radius(segment.start, segment.mid, segment.end)
            except ValueError:
                center = None
            if center is not None:
                vertices = self._arc_polygon(segment, center)
                return CSXLinPoly(name, PRIORITY_NET, z1, thickness, tuple(vertices))
            logger.debug("Arc on %s has collinear points, mapped as a straight track", name)

        vertices = segment_polygon(segment.start, segment.end, segment.width)
        if info.emits_landmarks:
            for x, y in vertices:
                self.mesh.insert_xy(x, y, info.priority)
        return CSXLinPoly(name, PRIORITY_NET, z1, thickness, tuple(vertices))

    def _arc_polygon(self, segment: Segment, center: Point) -> list[tuple[float, float]]:
        length = self.board.segment_length(segment)
        offsets: list[float] = []
        k = 0
        while k * self.arc_step < length:
            offsets.append(k * self.arc_step)
            k += 1
        offsets.append(length)

        half = segment.width / 2
        outer: list[tuple[float, float]] = []
        inner: list[tuple[float, float]] = []
        for offset in offsets:
            pos = self.board.segment_position(segment, offset)
            radial = np.array([pos.x - center.x, pos.y - center.y])
            norm = float(np.linalg.norm(radial))
            if norm == 0:
                continue
            unit = radial / norm
            outer.append((pos.x + unit[0] * half, pos.y + unit[1] * half))
            inner.append((pos.x - unit[0] * half, pos.y - unit[1] * half))
        return list(reversed(inner)) + outer

    def map_net_vias(self, net_id: int, info: MeshInfo) -> list[Primitive]:
        name = self.board.net_name(net_id)
        primitives: list[Primitive] = []
        for via in self.board.vias(net_id):
            primitive = self._map_via(via, name, info)
            if primitive is not None:
                primitives.append(primitive)
        return primitives

    def _map_via(self, via: Via, name: str, info: MeshInfo) -> CSXCylinder | None:
        span = self._z_span(self.board.via_layers(via))
        if span is None:
            logger.debug("Via at (%g, %g) on %s spans no copper layer", via.at.x, via.at.y, name)
            return None
        z_min, z_max = span
        if info.emits_landmarks:
            self.mesh.insert_xy(via.at.x, via.at.y, info.priority)
        return CSXCylinder(
            name,
            PRIORITY_NET,
            Point3D(via.at.x, via.at.y, z_min),
            Point3D(via.at.x, via.at.y, z_max),
            via.drill / 2,
        )

    def map_net_zones(self, net_id: int, info: MeshInfo) -> list[Primitive]:
        name = self.board.net_name(net_id)
        primitives: list[Primitive] = []
        for zone in self.board.zones(net_id):
            primitive = self._map_zone(zone, name, info)
            if primitive is not None:
                primitives.append(primitive)
        return primitives

    def _map_zone(self, zone: Zone, name: str, info: MeshInfo) -> CSXLinPoly | None:
        try:
            z1 = self.board.layer_z(zone.layer)
            thickness = self.board.layer_thickness(zone.layer)
        except KeyError:
            logger.warning("Zone on net %s references unknown layer %s", name, zone.layer)
            return None
        vertices = tuple((p.x, p.y) for p in zone.points)
        if info.zone_generate_mesh:
            for x, y in vertices:
                self.mesh.insert_xy(x, y, info.priority)
        return CSXLinPoly(name, PRIORITY_NET, z1, thickness, vertices)

    def _z_span(self, layers: list[str]) -> tuple[float, float] | None:
        """Union of the z ranges of ``layers``; None when the list is empty."""
        bounds: list[float] = []
        for layer in layers:
            z1 = self.board.layer_z(layer)
            bounds.extend((z1, z1 + self.board.layer_thickness(layer)))
        if not bounds:
            return None
        return min(bounds), max(bounds)

    # ------------------------------------------------------------------
    # Footprints
    # ------------------------------------------------------------------

    def map_footprint(self, reference: str, info: MeshInfo) -> list[Primitive]:
        footprint = self.board.footprint(reference)
        if footprint is None:
            logger.warning("Footprint %s not found on board", reference)
            return []

        accumulator = RangeAccumulator()
        primitives: list[Primitive] = [CSXMetal(reference)]
        for graphic in footprint.graphics:
            if not self.board.is_copper_layer(graphic.layer):
                continue
            primitive = self._map_graphic(footprint, graphic, accumulator, info)
            if primitive is not None:
                primitives.append(primitive)
        for pad in footprint.pads:
            primitives.extend(self._map_pad(footprint, pad, accumulator, info))

        if info.emits_ranges and not accumulator.is_empty:
            x_margin = footprint_margin(accumulator.x_max - accumulator.x_min)
            y_margin = footprint_margin(accumulator.y_max - accumulator.y_min)
            self.mesh.x.add_range(
                MeshLineRange(accumulator.x_min - x_margin, accumulator.x_max + x_margin, info.x_gap, info.priority)
            )
            self.mesh.y.add_range(
                MeshLineRange(accumulator.y_min - y_margin, accumulator.y_max + y_margin, info.y_gap, info.priority)
            )
        return primitives

    def _landmark(self, x: float, y: float, accumulator: RangeAccumulator, info: MeshInfo) -> None:
        accumulator.add(x, y)
        if info.emits_landmarks:
            self.mesh.insert_xy(x, y, info.priority)

    def _map_graphic(
        self,
        footprint: Footprint,
        graphic: Graphic,
        accumulator: RangeAccumulator,
        info: MeshInfo,
    ) -> Primitive | None:
        if graphic.fill != FillType.SOLID:
            return None
        name = footprint.reference
        z1 = self.board.layer_z(graphic.layer)
        thickness = self.board.layer_thickness(graphic.layer)

        if graphic.type == GraphicType.POLY:
            corners = [rotate_point(footprint.at, footprint.angle, p) for p in graphic.points]
        elif graphic.type == GraphicType.RECT:
            if graphic.start is None or graphic.end is None:
                return None
            start, end = graphic.start, graphic.end
            local = [
                Point(x=start.x, y=start.y),
                Point(x=end.x, y=start.y),
                Point(x=end.x, y=end.y),
                Point(x=start.x, y=end.y),
            ]
            corners = [rotate_point(footprint.at, footprint.angle, p) for p in local]
        elif graphic.type == GraphicType.CIRCLE:
            if graphic.start is None or graphic.end is None:
                return None
            center = rotate_point(footprint.at, footprint.angle, graphic.start)
            edge = rotate_point(footprint.at, footprint.angle, graphic.end)
            radius = math.hypot(edge.x - center.x, edge.y - center.y)
            self._landmark(center.x, center.y, accumulator, info)
            return CSXCylinder(
                name,
                PRIORITY_GRAPHIC,
                Point3D(center.x, center.y, z1),
                Point3D(center.x, center.y, z1 + thickness),
                radius,
            )
        else:
            return None

        if not corners:
            return None
        for corner in corners:
            self._landmark(corner.x, corner.y, accumulator, info)
        return CSXLinPoly(name, PRIORITY_GRAPHIC, z1, thickness, tuple((c.x, c.y) for c in corners))

    def _pad_point(self, footprint: Footprint, pad: Pad, dx: float, dy: float) -> Point:
        local = rotate_point(pad.at, pad.angle, Point(x=dx, y=dy))
        return rotate_point(footprint.at, footprint.angle, local)

    def _map_pad(
        self,
        footprint: Footprint,
        pad: Pad,
        accumulator: RangeAccumulator,
        info: MeshInfo,
    ) -> list[Primitive]:
        name = footprint.reference
        layers = self.board.pad_layers(pad)
        center = self._pad_point(footprint, pad, 0.0, 0.0)
        primitives: list[Primitive] = []

        if pad.type == PadType.THRU_HOLE:
            span = self._z_span(layers)
            if span is not None:
                radius = pad.drill / 2
                primitives.append(
                    CSXCylinder(
                        name,
                        PRIORITY_PAD,
                        Point3D(center.x, center.y, span[0]),
                        Point3D(center.x, center.y, span[1]),
                        radius,
                    )
                )
                accumulator.add(center.x, center.y)
                if info.emits_landmarks:
                    self.mesh.insert_xy(center.x + radius, center.y + radius, info.priority)
                    self.mesh.insert_xy(center.x - radius, center.y - radius, info.priority)

        for layer in layers:
            z1 = self.board.layer_z(layer)
            thickness = self.board.layer_thickness(layer)
            if pad.shape in (PadShape.RECT, PadShape.ROUNDRECT):
                half_w = pad.size_w / 2
                half_h = pad.size_h / 2
                corners = [
                    self._pad_point(footprint, pad, -half_w, half_h),
                    self._pad_point(footprint, pad, half_w, half_h),
                    self._pad_point(footprint, pad, half_w, -half_h),
                    self._pad_point(footprint, pad, -half_w, -half_h),
                ]
                for corner in corners:
                    self._landmark(corner.x, corner.y, accumulator, info)
                primitives.append(CSXLinPoly(name, PRIORITY_PAD, z1, thickness, tuple((c.x, c.y) for c in corners)))
            elif pad.shape == PadShape.CIRCLE:
                z2 = z1 + thickness
                if self.board.ignore_cu_thickness:
                    z2 += self.pad_z_extension
                self._landmark(center.x, center.y, accumulator, info)
                primitives.append(
                    CSXCylinder(
                        name,
                        PRIORITY_PAD,
                        Point3D(center.x, center.y, z1),
                        Point3D(center.x, center.y, z2),
                        pad.size_w / 2,
                    )
                )
            else:
                logger.debug("Pad %s.%s has unsupported shape %s", name, pad.number, pad.shape.value)
        return primitives
