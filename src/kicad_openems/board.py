"""Board model and read-only geometric query service.

The board model holds the layers, nets, tracks, vias, zones and footprints of
a KiCad-style PCB, in board units (mm) with the KiCad convention that y grows
downward. Entities are Pydantic models validated on construction; the
:class:`Board` wrapper answers the queries the model generator needs
(layer z-positions, rotated footprint points, arc sampling, board extents).

Stackup convention:
- ``BoardSpec.layers`` lists layers top to bottom, as KiCad does.
- z grows upward from the bottom of the lowest non-mask layer.
- When copper thickness is ignored, copper layers have zero effective
  thickness and sit at the z of the adjacent dielectric.
"""
from __future__ import annotations

import math
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class _SpecBase(BaseModel):
    """Base model with strict validation - no extra fields allowed."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class LayerType(str, Enum):
    """Stackup layer classification."""

    COPPER = "copper"
    DIELECTRIC = "dielectric"
    TOP_SOLDER_MASK = "top_solder_mask"
    BOTTOM_SOLDER_MASK = "bottom_solder_mask"


class GraphicType(str, Enum):
    """Footprint graphic item types."""

    POLY = "poly"
    RECT = "rect"
    CIRCLE = "circle"
    LINE = "line"
    ARC = "arc"
    TEXT = "text"


class FillType(str, Enum):
    NONE = "none"
    SOLID = "solid"


class PadType(str, Enum):
    SMD = "smd"
    THRU_HOLE = "thru_hole"


class PadShape(str, Enum):
    """Pad shape types matching KiCad pad shapes."""

    RECT = "rect"
    CIRCLE = "circle"
    ROUNDRECT = "roundrect"
    OVAL = "oval"


class Point(_SpecBase):
    """2D point in board units. Accepts ``{"x": .., "y": ..}`` or ``[x, y]``."""

    x: float
    y: float

    @model_validator(mode="before")
    @classmethod
    def _from_sequence(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            if len(data) != 2:
                raise ValueError("Point sequence must have exactly two items")
            return {"x": data[0], "y": data[1]}
        return data


class Layer(_SpecBase):
    name: str = Field(..., min_length=1)
    type: LayerType
    thickness: float = Field(0.0, ge=0)
    epsilon_r: float = Field(1.0, gt=0)


class Net(_SpecBase):
    id: int = Field(..., ge=0)
    name: str


class Segment(_SpecBase):
    """Copper track. A segment with a ``mid`` point is an arc through it."""

    start: Point
    end: Point
    mid: Point | None = None
    width: float = Field(..., ge=0)
    layer: str
    net: int = 0


class Via(_SpecBase):
    at: Point
    size: float = Field(..., ge=0)
    drill: float = Field(..., ge=0)
    layers: list[str] = Field(..., min_length=1, description="End layers of the via span")
    net: int = 0


class Zone(_SpecBase):
    points: list[Point] = Field(..., min_length=3)
    layer: str
    net: int = 0


class Graphic(_SpecBase):
    """Footprint graphic item in footprint-local coordinates.

    ``start`` is the first corner of a rectangle or the centre of a circle;
    ``end`` is the opposite corner or a point on the circle.
    """

    type: GraphicType
    layer: str
    fill: FillType = FillType.NONE
    points: list[Point] = Field(default_factory=list)
    start: Point | None = None
    mid: Point | None = None
    end: Point | None = None
    stroke_width: float = Field(0.0, ge=0)


class Pad(_SpecBase):
    """Footprint pad; ``at`` and ``angle`` are relative to the footprint."""

    number: str
    type: PadType = PadType.SMD
    shape: PadShape = PadShape.RECT
    at: Point
    angle: float = 0.0
    size_w: float = Field(0.0, ge=0)
    size_h: float = Field(0.0, ge=0)
    drill: float = Field(0.0, ge=0)
    layers: list[str] = Field(default_factory=list)
    net: int = 0


class Footprint(_SpecBase):
    reference: str = Field(..., min_length=1)
    value: str = ""
    layer: str
    at: Point
    angle: float = 0.0
    graphics: list[Graphic] = Field(default_factory=list)
    pads: list[Pad] = Field(default_factory=list)


class BoardEdges(_SpecBase):
    """Outer rectangle of the board outline (KiCad y-down: top < bottom)."""

    left: float
    right: float
    top: float
    bottom: float

    @model_validator(mode="after")
    def _check_order(self) -> BoardEdges:
        if self.left > self.right:
            raise ValueError("Board edge left must not exceed right")
        if self.top > self.bottom:
            raise ValueError("Board edge top must not exceed bottom")
        return self


class BoardSpec(_SpecBase):
    """Complete board description as loaded from a job file."""

    layers: list[Layer] = Field(..., min_length=1)
    edges: BoardEdges
    nets: list[Net] = Field(default_factory=list)
    segments: list[Segment] = Field(default_factory=list)
    vias: list[Via] = Field(default_factory=list)
    zones: list[Zone] = Field(default_factory=list)
    footprints: list[Footprint] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_unique_names(self) -> BoardSpec:
        names = [layer.name for layer in self.layers]
        if len(names) != len(set(names)):
            raise ValueError("Layer names must be unique")
        refs = [fp.reference for fp in self.footprints]
        if len(refs) != len(set(refs)):
            raise ValueError("Footprint references must be unique")
        return self


_MASK_TYPES = (LayerType.TOP_SOLDER_MASK, LayerType.BOTTOM_SOLDER_MASK)


def rotate_point(pivot: Point, angle_deg: float, local: Point) -> Point:
    """Place a footprint-local point on the board.

    KiCad angles are counter-clockwise on screen with y pointing down, which
    makes the rotation matrix the transpose of the textbook one.
    """
    rad = math.radians(angle_deg)
    cos_a = math.cos(rad)
    sin_a = math.sin(rad)
    x = local.x * cos_a + local.y * sin_a
    y = -local.x * sin_a + local.y * cos_a
    return Point(x=pivot.x + x, y=pivot.y + y)


def arc_center_radius(start: Point, mid: Point, end: Point) -> tuple[Point, float]:
    """Centre and radius of the circle through three points.

    Raises:
        ValueError: If the points are collinear.
    """
    ax, ay = start.x, start.y
    bx, by = mid.x, mid.y
    cx, cy = end.x, end.y
    d = 2 * (ax * (by - cy) + bx * (cy - ay) + cx * (ay - by))
    if abs(d) < 1e-12:
        raise ValueError("Arc points are collinear")
    ux = ((ax * ax + ay * ay) * (by - cy) + (bx * bx + by * by) * (cy - ay) + (cx * cx + cy * cy) * (ay - by)) / d
    uy = ((ax * ax + ay * ay) * (cx - bx) + (bx * bx + by * by) * (ax - cx) + (cx * cx + cy * cy) * (bx - ax)) / d
    radius = math.hypot(ax - ux, ay - uy)
    return Point(x=ux, y=uy), radius


def _arc_sweep(start: Point, mid: Point, end: Point) -> tuple[Point, float, float, float]:
    """Return (centre, radius, start angle, signed sweep) of a three-point arc."""
    center, radius = arc_center_radius(start, mid, end)
    two_pi = 2 * math.pi
    a_start = math.atan2(start.y - center.y, start.x - center.x)
    a_mid = math.atan2(mid.y - center.y, mid.x - center.x)
    a_end = math.atan2(end.y - center.y, end.x - center.x)
    ccw_to_mid = (a_mid - a_start) % two_pi
    ccw_to_end = (a_end - a_start) % two_pi
    if ccw_to_mid < ccw_to_end:
        sweep = ccw_to_end
    else:
        sweep = -(two_pi - ccw_to_end)
    return center, radius, a_start, sweep


class Board:
    """Read-only query service over a :class:`BoardSpec`.

    The only state the generator changes is :attr:`ignore_cu_thickness`,
    set once when the generator is constructed.
    """

    def __init__(self, spec: BoardSpec, *, ignore_cu_thickness: bool = False) -> None:
        self.spec = spec
        self.ignore_cu_thickness = ignore_cu_thickness
        self._layers = {layer.name: layer for layer in spec.layers}
        self._footprints = {fp.reference: fp for fp in spec.footprints}
        self._net_names = {net.id: net.name for net in spec.nets}

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, ignore_cu_thickness: bool = False) -> Board:
        return cls(BoardSpec.model_validate(data), ignore_cu_thickness=ignore_cu_thickness)

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------

    @property
    def layers(self) -> list[Layer]:
        """Layers in stackup order, top to bottom."""
        return list(self.spec.layers)

    def layers_bottom_up(self) -> list[Layer]:
        return list(reversed(self.spec.layers))

    def has_layer(self, name: str) -> bool:
        return name in self._layers

    def layer(self, name: str) -> Layer:
        try:
            return self._layers[name]
        except KeyError:
            raise KeyError(f"Unknown layer: {name}") from None

    def is_copper_layer(self, name: str) -> bool:
        layer = self._layers.get(name)
        return layer is not None and layer.type == LayerType.COPPER

    def copper_layers(self) -> list[str]:
        return [layer.name for layer in self.spec.layers if layer.type == LayerType.COPPER]

    def layer_thickness(self, name: str) -> float:
        """Effective thickness; zero for copper when copper thickness is ignored."""
        layer = self.layer(name)
        if self.ignore_cu_thickness and layer.type == LayerType.COPPER:
            return 0.0
        return layer.thickness

    def layer_z(self, name: str) -> float:
        """z of the bottom face of a layer."""
        target = self.layer(name)
        if target.type == LayerType.TOP_SOLDER_MASK:
            return self.board_thickness()
        if target.type == LayerType.BOTTOM_SOLDER_MASK:
            return -target.thickness
        z = 0.0
        for layer in self.layers_bottom_up():
            if layer.type in _MASK_TYPES:
                continue
            if layer.name == name:
                return z
            z += self.layer_thickness(layer.name)
        raise KeyError(f"Unknown layer: {name}")

    def layer_epsilon_r(self, name: str) -> float:
        return self.layer(name).epsilon_r

    def board_thickness(self) -> float:
        return sum(self.layer_thickness(layer.name) for layer in self.spec.layers if layer.type not in _MASK_TYPES)

    def min_thickness(self, layer_type: LayerType) -> float:
        """Smallest nominal thickness among layers of a type (0 when none)."""
        values = [layer.thickness for layer in self.spec.layers if layer.type == layer_type]
        return min(values) if values else 0.0

    def cu_min_thickness(self) -> float:
        return self.min_thickness(LayerType.COPPER)

    # ------------------------------------------------------------------
    # Nets and net entities
    # ------------------------------------------------------------------

    def net_name(self, net_id: int) -> str:
        return self._net_names.get(net_id, f"net{net_id}")

    def net_id(self, name: str) -> int | None:
        for net_id, net_name in self._net_names.items():
            if net_name == name:
                return net_id
        return None

    def has_net(self, net_id: int) -> bool:
        return net_id in self._net_names

    def segments(self, net_id: int) -> list[Segment]:
        return [s for s in self.spec.segments if s.net == net_id]

    def vias(self, net_id: int) -> list[Via]:
        return [v for v in self.spec.vias if v.net == net_id]

    def zones(self, net_id: int) -> list[Zone]:
        return [z for z in self.spec.zones if z.net == net_id]

    def via_layers(self, via: Via) -> list[str]:
        """Copper layers spanned by a via, in stackup order."""
        copper = self.copper_layers()
        indices = [copper.index(name) for name in via.layers if name in copper]
        if not indices:
            return []
        return copper[min(indices) : max(indices) + 1]

    # ------------------------------------------------------------------
    # Footprints and pads
    # ------------------------------------------------------------------

    @property
    def footprints(self) -> list[Footprint]:
        return list(self.spec.footprints)

    def footprint(self, reference: str) -> Footprint | None:
        return self._footprints.get(reference)

    def pad(self, reference: str, pad_number: str) -> Pad | None:
        footprint = self._footprints.get(reference)
        if footprint is None:
            return None
        for pad in footprint.pads:
            if pad.number == pad_number:
                return pad
        return None

    def pad_position(self, footprint: Footprint, pad: Pad) -> Point:
        return rotate_point(footprint.at, footprint.angle, pad.at)

    def pad_layers(self, pad: Pad) -> list[str]:
        """Copper layers a pad sits on; ``*.Cu`` expands to every copper layer."""
        copper = self.copper_layers()
        if "*.Cu" in pad.layers:
            return copper
        return [name for name in copper if name in pad.layers]

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    rotate_point = staticmethod(rotate_point)
    arc_center_radius = staticmethod(arc_center_radius)

    def segment_length(self, segment: Segment) -> float:
        if segment.mid is None:
            return math.hypot(segment.end.x - segment.start.x, segment.end.y - segment.start.y)
        try:
            _, radius, _, sweep = _arc_sweep(segment.start, segment.mid, segment.end)
        except ValueError:
            return math.hypot(segment.end.x - segment.start.x, segment.end.y - segment.start.y)
        return abs(sweep) * radius

    def segment_position(self, segment: Segment, offset: float) -> Point:
        """Point reached after travelling ``offset`` from the start along the track.

        The offset is clamped to the track length.
        """
        length = self.segment_length(segment)
        offset = min(max(offset, 0.0), length)
        if segment.mid is not None:
            try:
                center, radius, a_start, sweep = _arc_sweep(segment.start, segment.mid, segment.end)
            except ValueError:
                center = None
            if center is not None and radius > 0:
                angle = a_start + math.copysign(offset / radius, sweep)
                return Point(x=center.x + radius * math.cos(angle), y=center.y + radius * math.sin(angle))
        if length == 0:
            return segment.start
        t = offset / length
        return Point(
            x=segment.start.x + (segment.end.x - segment.start.x) * t,
            y=segment.start.y + (segment.end.y - segment.start.y) * t,
        )

    # ------------------------------------------------------------------
    # Outline
    # ------------------------------------------------------------------

    @property
    def edge_left(self) -> float:
        return self.spec.edges.left

    @property
    def edge_right(self) -> float:
        return self.spec.edges.right

    @property
    def edge_top(self) -> float:
        return self.spec.edges.top

    @property
    def edge_bottom(self) -> float:
        return self.spec.edges.bottom
