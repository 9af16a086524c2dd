"""Tests for prioritized mesh line sets and range expansion."""

from __future__ import annotations

import numpy as np
import pytest

from kicad_openems.mesh import Axis, Mesh, MeshAxis, MeshLine, MeshLineRange


def _gaps(axis: MeshAxis) -> np.ndarray:
    return np.diff(axis.values())


class TestMeshAxisInsert:
    """Tests for sorted insertion."""

    def test_lines_are_sorted(self) -> None:
        axis = MeshAxis()
        for value in (3.0, 1.0, 2.0):
            axis.insert(value)
        assert axis.values().tolist() == [1.0, 2.0, 3.0]

    def test_duplicate_keeps_higher_priority(self) -> None:
        axis = MeshAxis()
        axis.insert(1.0, 2)
        axis.insert(1.0, 5)
        axis.insert(1.0, 1)
        assert axis.lines == [MeshLine(1.0, 5)]

    def test_first_and_last(self) -> None:
        axis = MeshAxis()
        assert axis.first is None
        assert axis.last is None
        axis.insert(4.0, 1)
        axis.insert(-2.0, 3)
        assert axis.first == MeshLine(-2.0, 3)
        assert axis.last == MeshLine(4.0, 1)


class TestMeshAxisClean:
    """Tests for min-gap cleaning."""

    def test_equal_priority_merges_to_mean(self) -> None:
        axis = MeshAxis()
        axis.insert(1.0, 0)
        axis.insert(1.04, 0)
        axis.clean(0.1)
        assert len(axis) == 1
        assert axis.lines[0].value == pytest.approx(1.02)

    def test_higher_priority_survives(self) -> None:
        axis = MeshAxis()
        axis.insert(1.0, 0)
        axis.insert(1.04, 7)
        axis.clean(0.1)
        assert axis.lines == [MeshLine(1.04, 7)]

    def test_lower_line_with_higher_priority_survives(self) -> None:
        axis = MeshAxis()
        axis.insert(1.0, 7)
        axis.insert(1.04, 0)
        axis.clean(0.1)
        assert axis.lines == [MeshLine(1.0, 7)]

    def test_result_respects_min_gap(self) -> None:
        axis = MeshAxis()
        for i, value in enumerate([0.0, 0.03, 0.07, 0.12, 0.5, 0.55, 0.58, 1.0, 1.01]):
            axis.insert(value, i % 3)
        axis.clean(0.1)
        assert np.all(_gaps(axis) >= 0.1)
        assert np.all(_gaps(axis) > 0)

    def test_pass_count_includes_final_unchanged_pass(self) -> None:
        axis = MeshAxis()
        axis.insert(0.0)
        axis.insert(0.05)
        assert axis.clean(0.1) == 2

    def test_already_clean_axis_takes_one_pass(self) -> None:
        axis = MeshAxis()
        axis.insert(0.0)
        axis.insert(1.0)
        assert axis.clean(0.1) == 1
        assert axis.values().tolist() == [0.0, 1.0]

    def test_single_line_is_untouched(self) -> None:
        axis = MeshAxis()
        axis.insert(3.0)
        assert axis.clean(0.1) == 0
        assert len(axis) == 1


class TestMeshLineRange:
    """Tests for uniform range directives."""

    def test_samples_exclude_end(self) -> None:
        assert MeshLineRange(0.0, 1.0, 0.25).samples() == [0.0, 0.25, 0.5, 0.75]

    @pytest.mark.parametrize("gap", [0.0, -0.5])
    def test_non_positive_gap_rejected(self, gap: float) -> None:
        with pytest.raises(ValueError, match="gap"):
            MeshLineRange(0.0, 1.0, gap)

    def test_contains_is_half_open(self) -> None:
        line_range = MeshLineRange(0.0, 1.0, 0.5)
        assert line_range.contains(0.0)
        assert not line_range.contains(1.0)

    def test_empty_interval_has_no_samples(self) -> None:
        assert MeshLineRange(2.0, 1.0, 0.5).samples() == []


class TestApplyRanges:
    """Tests for range expansion into lines."""

    def test_earlier_range_wins_overlap(self) -> None:
        axis = MeshAxis()
        axis.add_range(MeshLineRange(0.5, 2.0, 0.5, priority=2))
        axis.add_range(MeshLineRange(0.0, 1.0, 0.25, priority=1))

        inserted = axis.apply_ranges()

        assert inserted == 6
        assert axis.values().tolist() == [0.0, 0.25, 0.5, 0.75, 1.0, 1.5]
        priorities = {line.value: line.priority for line in axis.lines}
        assert priorities[0.5] == 1
        assert priorities[1.0] == 2

    def test_ranges_cleared_after_apply(self) -> None:
        axis = MeshAxis()
        axis.add_range(MeshLineRange(0.0, 1.0, 0.5))
        axis.apply_ranges()
        assert axis.ranges == []
        assert axis.apply_ranges() == 0

    def test_ordering_key(self) -> None:
        axis = MeshAxis()
        late = MeshLineRange(0.0, 2.0, 0.1)
        early = MeshLineRange(0.0, 1.0, 0.1)
        axis.add_range(late)
        axis.add_range(early)
        assert axis.ordered_ranges() == [early, late]


class TestMesh:
    def test_axis_lookup_accepts_strings(self) -> None:
        mesh = Mesh()
        assert mesh.axis("x") is mesh.x
        assert mesh.axis(Axis.Z) is mesh.z

    def test_insert_xy(self) -> None:
        mesh = Mesh()
        mesh.insert_xy(1.0, 2.0, 3)
        assert mesh.x.lines == [MeshLine(1.0, 3)]
        assert mesh.y.lines == [MeshLine(2.0, 3)]
        assert len(mesh.z) == 0

    def test_apply_ranges_on_every_axis(self) -> None:
        mesh = Mesh()
        mesh.z.add_range(MeshLineRange(0.0, 0.3, 0.1))
        mesh.apply_ranges()
        assert len(mesh.z) == 3
