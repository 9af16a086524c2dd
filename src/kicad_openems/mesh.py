"""Prioritized mesh line sets for the three grid axes.

Each axis holds a value-sorted set of :class:`MeshLine` plus a bag of pending
:class:`MeshLineRange` directives. Ranges are expanded into discrete lines by
:meth:`MeshAxis.apply_ranges` and then deduplicated by :meth:`MeshAxis.clean`:

- Two lines closer than the minimum gap with equal priority merge into one
  line at their mean.
- With unequal priority the lower-priority line is dropped.
- Passes repeat until a full scan changes nothing.

Ordering:
- Lines are ordered by value; an exact duplicate keeps the higher priority.
- Ranges are ordered by ``(start, end, gap, priority)``; earlier ranges win
  where intervals overlap.
"""
from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

logger = logging.getLogger(__name__)


class Axis(str, Enum):
    """Spatial axis of the simulation grid."""

    X = "x"
    Y = "y"
    Z = "z"


@dataclass(frozen=True, slots=True)
class MeshLine:
    """A single grid coordinate with its merge priority."""

    value: float
    priority: int = 0


@dataclass(frozen=True, slots=True)
class MeshLineRange:
    """Uniform grid directive: a line every ``gap`` across ``[start, end)``.

    Attributes:
        start: First sample coordinate.
        end: Exclusive upper bound of the samples.
        gap: Sample spacing, must be positive.
        priority: Priority of every generated line.
    """

    start: float
    end: float
    gap: float
    priority: int = 0

    def __post_init__(self) -> None:
        if not self.gap > 0:
            raise ValueError(f"Mesh range gap must be positive, got {self.gap!r}")

    @property
    def sort_key(self) -> tuple[float, float, float, int]:
        return (self.start, self.end, self.gap, self.priority)

    def contains(self, value: float) -> bool:
        return self.start <= value < self.end

    def samples(self) -> list[float]:
        """Sample points ``start + k * gap`` below ``end``."""
        points: list[float] = []
        k = 0
        value = self.start
        while value < self.end:
            points.append(value)
            k += 1
            value = self.start + k * self.gap
        return points


@dataclass(slots=True)
class MeshAxis:
    """Sorted mesh line set for one axis plus its pending ranges."""

    lines: list[MeshLine] = field(default_factory=list)
    ranges: list[MeshLineRange] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.lines)

    def __iter__(self):
        return iter(self.lines)

    def insert(self, value: float, priority: int = 0) -> None:
        """Insert a line; an existing line at the same value keeps the higher priority."""
        value = float(value)
        idx = bisect.bisect_left(self.lines, value, key=lambda line: line.value)
        if idx < len(self.lines) and self.lines[idx].value == value:
            if priority > self.lines[idx].priority:
                self.lines[idx] = MeshLine(value, priority)
            return
        self.lines.insert(idx, MeshLine(value, priority))

    def add_range(self, line_range: MeshLineRange) -> None:
        self.ranges.append(line_range)

    def values(self) -> np.ndarray:
        return np.array([line.value for line in self.lines], dtype=float)

    @property
    def first(self) -> MeshLine | None:
        return self.lines[0] if self.lines else None

    @property
    def last(self) -> MeshLine | None:
        return self.lines[-1] if self.lines else None

    def ordered_ranges(self) -> list[MeshLineRange]:
        return sorted(self.ranges, key=lambda r: r.sort_key)

    def apply_ranges(self) -> int:
        """Expand pending ranges into lines and clear them.

        A sample is skipped when an earlier range in the ordering already
        covers it.

        Returns:
            Number of lines inserted.
        """
        ordered = self.ordered_ranges()
        inserted = 0
        for idx, line_range in enumerate(ordered):
            earlier = ordered[:idx]
            for value in line_range.samples():
                if any(prev.contains(value) for prev in earlier):
                    continue
                self.insert(value, line_range.priority)
                inserted += 1
        self.ranges.clear()
        return inserted

    def clean(self, min_gap: float) -> int:
        """Merge lines closer than ``min_gap`` until a pass changes nothing.

        Returns:
            Number of passes run, including the final unchanged one.
        """
        passes = 0
        if len(self.lines) < 2:
            return passes
        changed = True
        while changed:
            changed = False
            passes += 1
            i = 0
            while i + 1 < len(self.lines):
                low = self.lines[i]
                high = self.lines[i + 1]
                if abs(high.value - low.value) >= min_gap:
                    i += 1
                    continue
                changed = True
                if low.priority == high.priority:
                    # The mean lies between both neighbours, so position i stays sorted
                    self.lines[i : i + 2] = [MeshLine((low.value + high.value) * 0.5, low.priority)]
                elif low.priority > high.priority:
                    del self.lines[i + 1]
                else:
                    del self.lines[i]
        logger.debug("Mesh clean at min gap %g: %d passes, %d lines", min_gap, passes, len(self.lines))
        return passes


@dataclass(slots=True)
class Mesh:
    """The three per-axis mesh line sets of one generation session."""

    x: MeshAxis = field(default_factory=MeshAxis)
    y: MeshAxis = field(default_factory=MeshAxis)
    z: MeshAxis = field(default_factory=MeshAxis)

    def axis(self, axis: Axis) -> MeshAxis:
        return {Axis.X: self.x, Axis.Y: self.y, Axis.Z: self.z}[Axis(axis)]

    def insert_xy(self, x: float, y: float, priority: int) -> None:
        self.x.insert(x, priority)
        self.y.insert(y, priority)

    def apply_ranges(self) -> None:
        for axis in Axis:
            count = self.axis(axis).apply_ranges()
            if count:
                logger.debug("Mesh ranges added %d %s lines", count, axis.value)
