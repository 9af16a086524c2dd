"""Tests for the openEMS model generator session.

These tests validate:
- Directive registration and its failure policy
- Port numbering and port mesh lines
- Model, mesh and driver script statement order
- Determinism of the emitted text
- Writing the scenario files
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import numpy as np
import pytest

from kicad_openems.board import Board
from kicad_openems.generator import (
    ANTENNA_SCRIPT,
    MESH_FUNCTION,
    MODEL_FUNCTION,
    TWO_PORT_SCRIPT,
    OpenEMSModelGenerator,
)
from kicad_openems.mesh import Axis, MeshLine
from kicad_openems.ports import ElementType
from kicad_openems.spec import BoundaryCondition, GeneratorConfig


@pytest.fixture
def generator(board_dict: dict[str, Any]) -> OpenEMSModelGenerator:
    return OpenEMSModelGenerator(Board.from_dict(board_dict))


def _antenna_session(board_dict: dict[str, Any]) -> OpenEMSModelGenerator:
    generator = OpenEMSModelGenerator(Board.from_dict(board_dict))
    generator.add_net("SIG")
    generator.add_net(1, zone_generate_mesh=True)
    generator.add_footprint("J1")
    generator.add_lumped_port_from_footprint("R1", excite=True)
    generator.add_lumped_element_from_footprint("C1")
    generator.add_freq(2.4e9)
    generator.set_nf2ff_footprint("J1")
    return generator


# =============================================================================
# Registration
# =============================================================================


class TestConstruction:
    def test_applies_copper_setting_to_board(self, board_dict: dict[str, Any]) -> None:
        board = Board.from_dict(board_dict, ignore_cu_thickness=False)
        OpenEMSModelGenerator(board)
        assert board.ignore_cu_thickness

    def test_config_respected(self, board_dict: dict[str, Any]) -> None:
        board = Board.from_dict(board_dict, ignore_cu_thickness=True)
        OpenEMSModelGenerator(board, GeneratorConfig(ignore_cu_thickness=False))
        assert not board.ignore_cu_thickness


class TestNetRegistration:
    """Tests for net and footprint directives."""

    def test_by_id_and_name(self, generator: OpenEMSModelGenerator) -> None:
        assert generator.add_net("SIG")
        assert generator.add_net(1)
        assert [net_id for net_id, _ in generator.nets] == [2, 1]

    def test_unknown_net(self, generator: OpenEMSModelGenerator, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            assert not generator.add_net("VCC")
            assert not generator.add_net(42)
        assert generator.nets == []
        assert "VCC" in caplog.text

    def test_duplicate_keeps_first(self, generator: OpenEMSModelGenerator) -> None:
        assert generator.add_net(2, priority=1)
        assert not generator.add_net("SIG", priority=5)
        ((_, info),) = generator.nets
        assert info.priority == 1

    def test_uniform_grid_net(self, generator: OpenEMSModelGenerator) -> None:
        assert generator.add_net_uniform_grid("SIG", 0.5, 0.5)
        assert not generator.add_net_uniform_grid("GND", 0.0, 0.5)
        ((_, info),) = generator.nets
        assert info.use_uniform_grid

    def test_footprints(self, generator: OpenEMSModelGenerator) -> None:
        assert generator.add_footprint("J1")
        assert generator.add_footprint_uniform_grid("R1", 0.2, 0.2)
        assert not generator.add_footprint("U1")
        assert not generator.add_footprint("J1")
        assert [ref for ref, _ in generator.footprints] == ["J1", "R1"]

    def test_mesh_range(self, generator: OpenEMSModelGenerator) -> None:
        assert generator.add_mesh_range(0.0, 1.0, 0.1, "z")
        assert not generator.add_mesh_range(0.0, 1.0, 0.0, Axis.X)
        assert len(generator.mesh.z.ranges) == 1
        assert generator.mesh.x.ranges == []

    def test_config_setters(self, generator: OpenEMSModelGenerator) -> None:
        generator.set_boundary_cond("mur")
        generator.set_excitation_freq(1e9, 2e9)
        generator.set_far_field_freq(1.5e9)
        generator.set_mesh_min_gap(0.2, 0.3, 0.02)
        config = generator.config
        assert config.boundary == BoundaryCondition.MUR
        assert (config.f0, config.fc) == (1e9, 2e9)
        assert config.far_field_freq == 1.5e9
        assert (config.mesh_x_min_gap, config.mesh_y_min_gap, config.mesh_z_min_gap) == (0.2, 0.3, 0.02)

    @pytest.mark.parametrize(("name", "expected"), [("PML", BoundaryCondition.PML), ("MUR", BoundaryCondition.MUR)])
    def test_boundary_names_case_insensitive(
        self, generator: OpenEMSModelGenerator, name: str, expected: BoundaryCondition
    ) -> None:
        generator.set_boundary_cond(name)
        assert generator.config.boundary == expected

    def test_unknown_boundary_rejected(self, generator: OpenEMSModelGenerator) -> None:
        with pytest.raises(ValueError):
            generator.set_boundary_cond("open")

    def test_closed_after_generation(self, generator: OpenEMSModelGenerator) -> None:
        generator.add_net("SIG")
        generator.build_model()
        assert not generator.is_open
        with pytest.raises(RuntimeError):
            generator.add_net("GND")
        with pytest.raises(RuntimeError):
            generator.set_boundary_cond("mur")


class TestPortRegistration:
    """Tests for ports and lumped elements."""

    def test_resistor_footprint_port(self, generator: OpenEMSModelGenerator) -> None:
        assert generator.add_lumped_port_from_footprint("R1", excite=True)
        (port,) = generator.excitations
        assert port.resistance == 4700.0
        assert port.direction == Axis.X
        assert port.excite

    def test_port_footprint_must_be_resistor(self, generator: OpenEMSModelGenerator) -> None:
        assert not generator.add_lumped_port_from_footprint("C1")
        assert generator.excitations == []

    def test_port_mesh_lines(self, generator: OpenEMSModelGenerator) -> None:
        generator.add_lumped_port_from_footprint("R1")
        assert MeshLine(4.0, 99) in generator.mesh.x.lines
        assert MeshLine(6.0, 99) in generator.mesh.x.lines
        assert MeshLine(2.0, 99) in generator.mesh.y.lines

    def test_port_without_mesh(self, generator: OpenEMSModelGenerator) -> None:
        generator.add_lumped_port_from_footprint("R1", generate_mesh=False)
        assert len(generator.mesh.x) == 0

    def test_port_numbers_follow_registration(self, generator: OpenEMSModelGenerator) -> None:
        assert generator.add_excitation("R1", "1", "F.Cu", "R1", "2", "F.Cu", "x")
        assert generator.add_lumped_port_at([1.0, 1.0], "F.Cu", [1.0, 1.0], "B.Cu", "z", resistance=75.0)
        assert not generator.add_excitation("R1", "1", "F.Cu", "R7", "2", "F.Cu", "x")
        ports = generator.excitations
        assert [p.excite for p in ports] == [True, False]
        assert [p.resistance for p in ports] == [50.0, 75.0]

    def test_excitation_at_points(self, generator: OpenEMSModelGenerator) -> None:
        assert generator.add_excitation_at({"x": 2.0, "y": 2.0}, "F.Cu", {"x": 2.0, "y": 2.0}, "B.Cu", Axis.Z)
        (port,) = generator.excitations
        assert port.excite
        assert port.start.z == pytest.approx(1.6)
        assert port.end.z == 0.0

    def test_lumped_elements(self, generator: OpenEMSModelGenerator) -> None:
        assert generator.add_lumped_element_from_footprint("C1")
        assert generator.add_lumped_element("R1", "1", "F.Cu", "R1", "2", "F.Cu", "x", "L", 1e-9)
        assert generator.add_lumped_element_at([0, 0], "F.Cu", [0, 1], "F.Cu", "y", ElementType.R, 10.0)
        assert not generator.add_lumped_element_from_footprint("J1")
        names = [element.name for element in generator.lumped_elements]
        assert names == ["LE_C1", "LE_R11F.Cu_R12F.Cu", "LE_F.Cu_x0.00_y0.00_F.Cu_x0.00_y1.00"]
        assert generator.lumped_elements[0].value == pytest.approx(1e-8)
        assert generator.lumped_elements[0].element_type == ElementType.C


# =============================================================================
# Builders
# =============================================================================


class TestBuildModel:
    """Tests for the model function."""

    def test_header_and_footer(self, board_dict: dict[str, Any]) -> None:
        statements = _antenna_session(board_dict).build_model().statements
        assert statements[:3] == [
            f"function [CSX] = {MODEL_FUNCTION}(CSX, max_freq)",
            "physical_constants;",
            "unit = 0.001;",
        ]
        assert statements[-1] == "end"

    def test_section_order(self, board_dict: dict[str, Any]) -> None:
        statements = _antenna_session(board_dict).build_model().statements
        material = statements.index("CSX = AddMaterial(CSX, 'core');")
        sig_metal = statements.index("CSX = AddMetal(CSX, 'SIG');")
        gnd_metal = statements.index("CSX = AddMetal(CSX, 'GND');")
        j1_metal = statements.index("CSX = AddMetal(CSX, 'J1');")
        assert material < sig_metal < gnd_metal < j1_metal

    def test_custom_function_name(self, generator: OpenEMSModelGenerator) -> None:
        statements = generator.build_model("my_model").statements
        assert statements[0] == "function [CSX] = my_model(CSX, max_freq)"


class TestBuildMesh:
    def test_header(self, board_dict: dict[str, Any]) -> None:
        statements = _antenna_session(board_dict).build_mesh().statements
        assert statements[0] == f"function [CSX, mesh] = {MESH_FUNCTION}(CSX, max_freq)"
        assert statements[-1] == "end"

    def test_nf2ff_lines_in_mesh(self, board_dict: dict[str, Any]) -> None:
        generator = _antenna_session(board_dict)
        generator.build_mesh()
        box = generator.nf2ff_box()
        assert box is not None
        low, high = box.face_lines()[Axis.X]
        xs = generator.mesh.x.values().tolist()
        assert xs[0] == pytest.approx(low)
        assert xs[-1] == pytest.approx(high)

    def test_fine_z_range_respects_min_gap(self, generator: OpenEMSModelGenerator) -> None:
        generator.add_mesh_range(0.0, 0.05, 0.001, "z", 0)
        z = generator.finalize_mesh().z
        assert len(z.lines) > 2
        assert np.all(np.diff(z.lines) >= generator.config.mesh_z_min_gap)

    def test_z_range_lines_emitted(self, generator: OpenEMSModelGenerator) -> None:
        generator.add_mesh_range(-3.0, -1.0, 0.5, "z", 5)
        z = generator.finalize_mesh().z
        assert z.outer_lines.tolist() == pytest.approx([-20.0, -3.0, -2.5, -2.0, -1.5, 21.6])
        statement = next(s for s in generator.build_mesh().statements if s.startswith("mesh.z = unique("))
        assert "-2.500000" in statement

    def test_nf2ff_z_faces_cleaned_with_stack(self, board_dict: dict[str, Any]) -> None:
        generator = _antenna_session(board_dict)
        generator.set_mesh_min_gap(0.1, 0.1, 5.0)
        z = generator.finalize_mesh().z
        assert np.all(np.diff(z.lines) >= 5.0)

    def test_mesh_finalized_once(self, board_dict: dict[str, Any]) -> None:
        generator = _antenna_session(board_dict)
        assert generator.finalize_mesh() is generator.finalize_mesh()


class TestDriverScripts:
    """Tests for the antenna and two-port scripts."""

    def test_antenna_script_order(self, board_dict: dict[str, Any]) -> None:
        statements = _antenna_session(board_dict).build_antenna_script().statements
        assert statements[0] == "close all; clear; clc;"
        assert "max_timesteps = 1e9; min_decrement = 1e-5;" in statements
        bc = statements.index("BC = {'PML_8' 'PML_8' 'PML_8' 'PML_8' 'PML_8' 'PML_8'};")
        element = next(i for i, s in enumerate(statements) if s.startswith("[CSX] = AddLumpedElement"))
        port = next(i for i, s in enumerate(statements) if s.startswith("[CSX] = AddLumpedPort"))
        nf2ff = next(i for i, s in enumerate(statements) if s.startswith("[CSX nf2ff] = CreateNF2FFBox"))
        run = statements.index("sim_path = 'ant_sim'; plot_path = 'plot'; sim_csx = 'ant.xml';")
        s11 = statements.index("# plot reflection coefficient S11")
        far_field = statements.index("# NFFF contour plots")
        assert bc < element < port < nf2ff < run < s11 < far_field

    def test_antenna_script_without_nf2ff(self, generator: OpenEMSModelGenerator) -> None:
        generator.add_lumped_port_from_footprint("R1", excite=True)
        statements = generator.build_antenna_script().statements
        assert not any(s.startswith("[CSX nf2ff]") for s in statements)
        assert "# NFFF contour plots" not in statements

    def test_mur_boundary(self, generator: OpenEMSModelGenerator) -> None:
        generator.set_boundary_cond(BoundaryCondition.MUR)
        statements = generator.build_antenna_script().statements
        assert "BC = {'MUR' 'MUR' 'MUR' 'MUR' 'MUR' 'MUR'};" in statements

    def test_two_port_script(self, generator: OpenEMSModelGenerator) -> None:
        generator.add_excitation("R1", "1", "F.Cu", "R1", "2", "F.Cu", "x")
        generator.add_lumped_port("C1", "1", "F.Cu", "C1", "2", "F.Cu", "y", resistance=75.0)
        statements = generator.build_two_port_script().statements
        assert "max_timesteps = 1e9; min_decrement = 1e-2;" in statements
        assert "sim_path = 'two_sparam'; plot_path = 'plot'; sim_csx = 'two_sparam.xml';" in statements
        assert "s21 = uf_ref1 ./ uf_inc0;" in statements
        assert "uf_inc1 = 0.5*(U1.FD{1}.val + I1.FD{1}.val * 75.000000);" in statements

    @pytest.mark.parametrize("count", [1, 3])
    def test_two_port_section_needs_two_ports(
        self, generator: OpenEMSModelGenerator, count: int, caplog: pytest.LogCaptureFixture
    ) -> None:
        generator.add_excitation("R1", "1", "F.Cu", "R1", "2", "F.Cu", "x")
        for _ in range(count - 1):
            generator.add_lumped_port("C1", "1", "F.Cu", "C1", "2", "F.Cu", "y")
        with caplog.at_level(logging.WARNING):
            statements = generator.build_two_port_script().statements
        assert "exactly 2 ports" in caplog.text
        assert "s21 = uf_ref1 ./ uf_inc0;" not in statements
        assert "I0 = ReadUI('port_it0', [sim_path '/'], freq);" in statements
        assert "# plot feed point impedance" in statements

    def test_antenna_sections_with_three_ports(self, board_dict: dict[str, Any]) -> None:
        generator = _antenna_session(board_dict)
        generator.add_lumped_port("C1", "1", "F.Cu", "C1", "2", "F.Cu", "y")
        generator.add_excitation("R1", "1", "F.Cu", "R1", "2", "F.Cu", "x")
        statements = generator.build_antenna_script().statements
        assert len(generator.excitations) == 3
        assert statements.count("# plot vswr") == 3
        assert "# plot feed point impedance" in statements
        assert "# NFFF contour plots" in statements
        assert "s21 = uf_ref1 ./ uf_inc0;" not in statements

    def test_excitation_frequency_rendered(self, generator: OpenEMSModelGenerator) -> None:
        generator.set_excitation_freq(2e9, 1e9)
        statements = generator.build_two_port_script().statements
        assert "f0 = 2.000000e+09; fc = 1.000000e+09;" in statements


class TestDeterminism:
    def test_identical_sessions_emit_identical_text(self, board_dict: dict[str, Any]) -> None:
        first = _antenna_session(board_dict)
        second = _antenna_session(board_dict)
        assert first.build_model().render() == second.build_model().render()
        assert first.build_mesh().render() == second.build_mesh().render()
        assert first.build_antenna_script().render() == second.build_antenna_script().render()


# =============================================================================
# Writers
# =============================================================================


class TestWriters:
    """Tests for file output."""

    def test_antenna_files(self, board_dict: dict[str, Any], tmp_path: Path) -> None:
        written = _antenna_session(board_dict).gen_antenna_simulation_scripts(tmp_path / "out")
        assert [p.name for p in written] == [f"{ANTENNA_SCRIPT}.m", f"{MODEL_FUNCTION}.m", f"{MESH_FUNCTION}.m"]
        for path in written:
            assert path.read_text(encoding="utf-8").endswith("\n")

    def test_two_port_files(self, generator: OpenEMSModelGenerator, tmp_path: Path) -> None:
        written = generator.gen_two_port_sparam_scripts(tmp_path)
        assert written[0] == tmp_path / f"{TWO_PORT_SCRIPT}.m"
        assert all(path.exists() for path in written)

    def test_file_matches_builder(self, board_dict: dict[str, Any], tmp_path: Path) -> None:
        expected = _antenna_session(board_dict).build_model().render()
        path = _antenna_session(board_dict).gen_model(tmp_path)
        assert path.read_text(encoding="utf-8") == expected

    def test_no_temp_files_left(self, generator: OpenEMSModelGenerator, tmp_path: Path) -> None:
        generator.gen_model(tmp_path)
        assert [p.name for p in tmp_path.iterdir()] == [f"{MODEL_FUNCTION}.m"]
