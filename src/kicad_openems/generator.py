"""openEMS model generator: directive registration and script emission.

A generator session runs in four steps:
1. Construct :class:`OpenEMSModelGenerator` over a board. This applies the
   ignore-copper-thickness setting to the board once.
2. Register directives in a caller-determined order. Registration order
   fixes port numbers, net/footprint emission order and mesh tie-breaks.
3. Build or write the model function, mesh function and driver scripts.
   Geometry is mapped once, on first use; the mesh is finalized once, on
   first use. Registration is closed from then on.
4. Discard the generator. Nothing is carried to another session.

Failure policy:
- A directive whose footprint, pad, net or layer lookup fails, or whose
  footprint has the wrong shape, logs a warning and returns ``False``.
- Writers raise ``OSError`` for the file that could not be written; files
  written before it stay in place.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from .board import Board, Point
from .csx_primitives import Point3D, render_all
from .geometry_adapter import GeometryMapper, MappedGeometry, MeshInfo
from .mesh import Axis, Mesh, MeshLineRange
from .mesh_generator import AxisMeshAssembler, MeshResult
from .nf2ff import NF2FFBox, size_nf2ff_box
from .ports import (
    ElementType,
    Excitation,
    LumpedElement,
    PortBuilder,
    PortGeometry,
    footprint_element_name,
    pad_pair_element_name,
    point_element_name,
)
from .reports import (
    far_field_statements,
    feed_point_impedance_statements,
    read_ui_statements,
    s11_statements,
    two_port_statements,
    vswr_statements,
)
from .script_writer import ScriptWriter
from .spec import (
    BoundaryCondition,
    GeneratorConfig,
    JobSpec,
    PadTerminal,
)
from .units import parse_si_value

logger = logging.getLogger(__name__)

MODEL_FUNCTION = "load_pcb_model"
MESH_FUNCTION = "load_pcb_mesh"
ANTENNA_SCRIPT = "antenna_simulation_scripts"
TWO_PORT_SCRIPT = "two_port_sparam"

_SECTION_GAP = 4


def _as_point(value: Point | Any) -> Point:
    if isinstance(value, Point):
        return value
    return Point.model_validate(value)


class OpenEMSModelGenerator:
    """Builds openEMS model, mesh and driver scripts for one board session."""

    def __init__(self, board: Board, config: GeneratorConfig | None = None) -> None:
        self.config = config if config is not None else GeneratorConfig()
        self.board = board
        self.board.ignore_cu_thickness = self.config.ignore_cu_thickness
        self.mesh = Mesh()
        self._ports = PortBuilder(board)
        self._nets: dict[int, MeshInfo] = {}
        self._footprints: dict[str, MeshInfo] = {}
        self._excitations: list[Excitation] = []
        self._lumped_elements: list[LumpedElement] = []
        self._frequencies: list[float] = []
        self._nf2ff_footprint: str | None = None
        self._geometry: MappedGeometry | None = None
        self._nf2ff_box: NF2FFBox | None = None
        self._nf2ff_sized = False
        self._mesh_result: MeshResult | None = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def nets(self) -> list[tuple[int, MeshInfo]]:
        return list(self._nets.items())

    @property
    def footprints(self) -> list[tuple[str, MeshInfo]]:
        return list(self._footprints.items())

    @property
    def excitations(self) -> list[Excitation]:
        return list(self._excitations)

    @property
    def lumped_elements(self) -> list[LumpedElement]:
        return list(self._lumped_elements)

    @property
    def frequencies(self) -> list[float]:
        return list(self._frequencies)

    @property
    def is_open(self) -> bool:
        """Whether directives can still be registered."""
        return self._geometry is None and self._mesh_result is None and not self._nf2ff_sized

    def _check_open(self) -> None:
        if not self.is_open:
            raise RuntimeError("Directives cannot be registered after model or mesh generation has started")

    # ------------------------------------------------------------------
    # Configuration directives
    # ------------------------------------------------------------------

    def _update_config(self, **changes: Any) -> None:
        self._check_open()
        self.config = GeneratorConfig.model_validate({**self.config.model_dump(), **changes})

    def set_boundary_cond(self, boundary: BoundaryCondition | str) -> None:
        self._update_config(boundary=BoundaryCondition(boundary))

    def set_excitation_freq(self, f0: float, fc: float) -> None:
        self._update_config(f0=f0, fc=fc)

    def set_far_field_freq(self, freq: float) -> None:
        self._update_config(far_field_freq=freq)

    def set_mesh_min_gap(self, x_min_gap: float, y_min_gap: float, z_min_gap: float) -> None:
        self._update_config(mesh_x_min_gap=x_min_gap, mesh_y_min_gap=y_min_gap, mesh_z_min_gap=z_min_gap)

    def set_nf2ff_footprint(self, reference: str) -> None:
        self._check_open()
        self._nf2ff_footprint = reference

    def add_freq(self, freq: float) -> None:
        """Register a frequency of interest for the report sections."""
        self._frequencies.append(float(freq))

    def add_mesh_range(self, start: float, end: float, gap: float, axis: Axis | str, priority: int = 0) -> bool:
        self._check_open()
        try:
            line_range = MeshLineRange(start, end, gap, priority)
        except ValueError as exc:
            logger.warning("Mesh range [%g, %g) on %s dropped: %s", start, end, axis, exc)
            return False
        self.mesh.axis(Axis(axis)).add_range(line_range)
        return True

    # ------------------------------------------------------------------
    # Nets and footprints
    # ------------------------------------------------------------------

    def _resolve_net(self, net: int | str) -> int | None:
        if isinstance(net, str):
            net_id = self.board.net_id(net)
            if net_id is None:
                logger.warning("Net %r not found on board", net)
            return net_id
        if not self.board.has_net(net):
            logger.warning("Net id %d not found on board", net)
            return None
        return net

    def _register_net(self, net: int | str, info: MeshInfo) -> bool:
        self._check_open()
        net_id = self._resolve_net(net)
        if net_id is None:
            return False
        if net_id in self._nets:
            logger.warning("Net %s already registered, keeping the first directive", self.board.net_name(net_id))
            return False
        self._nets[net_id] = info
        return True

    def add_net(
        self,
        net: int | str,
        generate_mesh: bool = True,
        zone_generate_mesh: bool = False,
        priority: int = 0,
    ) -> bool:
        """Include a net, meshed at its geometric landmarks."""
        return self._register_net(net, MeshInfo.landmarks(generate_mesh, zone_generate_mesh, priority))

    def add_net_uniform_grid(
        self,
        net: int | str,
        x_gap: float,
        y_gap: float,
        zone_generate_mesh: bool = False,
        priority: int = 0,
    ) -> bool:
        """Include a net, meshed uniformly over the bounding box of its tracks."""
        try:
            info = MeshInfo.uniform(x_gap, y_gap, zone_generate_mesh, priority)
        except ValueError as exc:
            logger.warning("Net %r dropped: %s", net, exc)
            return False
        return self._register_net(net, info)

    def _register_footprint(self, reference: str, info: MeshInfo) -> bool:
        self._check_open()
        if self.board.footprint(reference) is None:
            logger.warning("Footprint %s not found on board", reference)
            return False
        if reference in self._footprints:
            logger.warning("Footprint %s already registered, keeping the first directive", reference)
            return False
        self._footprints[reference] = info
        return True

    def add_footprint(self, reference: str, generate_mesh: bool = True, priority: int = 0) -> bool:
        return self._register_footprint(reference, MeshInfo.landmarks(generate_mesh, False, priority))

    def add_footprint_uniform_grid(self, reference: str, x_gap: float, y_gap: float, priority: int = 0) -> bool:
        try:
            info = MeshInfo.uniform(x_gap, y_gap, False, priority)
        except ValueError as exc:
            logger.warning("Footprint %s dropped: %s", reference, exc)
            return False
        return self._register_footprint(reference, info)

    # ------------------------------------------------------------------
    # Ports
    # ------------------------------------------------------------------

    def _insert_port_lines(self, start: Point3D, end: Point3D) -> None:
        priority = self.config.port_mesh_priority
        self.mesh.x.insert(start.x, priority)
        self.mesh.x.insert(end.x, priority)
        self.mesh.y.insert(start.y, priority)
        self.mesh.y.insert(end.y, priority)

    def _register_port(self, geometry: PortGeometry, resistance: float, excite: bool, generate_mesh: bool) -> bool:
        excitation = Excitation(
            start=geometry.start,
            end=geometry.end,
            direction=geometry.direction,
            resistance=resistance,
            excite=excite,
            generate_mesh=generate_mesh,
        )
        self._excitations.append(excitation)
        if generate_mesh:
            self._insert_port_lines(excitation.start, excitation.end)
        logger.debug("Registered port %d along %s", len(self._excitations) - 1, excitation.direction.value)
        return True

    def add_excitation(
        self,
        fp1: str,
        fp1_pad: str,
        fp1_layer: str,
        fp2: str,
        fp2_pad: str,
        fp2_layer: str,
        direction: Axis | str,
        resistance: float = 50.0,
        generate_mesh: bool = True,
    ) -> bool:
        """Driven port between two pads."""
        return self.add_lumped_port(
            fp1, fp1_pad, fp1_layer, fp2, fp2_pad, fp2_layer, direction, resistance, True, generate_mesh
        )

    def add_excitation_at(
        self,
        start: Point | Any,
        start_layer: str,
        end: Point | Any,
        end_layer: str,
        direction: Axis | str,
        resistance: float = 50.0,
        generate_mesh: bool = True,
    ) -> bool:
        """Driven port between two explicit points."""
        return self.add_lumped_port_at(start, start_layer, end, end_layer, direction, resistance, True, generate_mesh)

    def add_lumped_port(
        self,
        fp1: str,
        fp1_pad: str,
        fp1_layer: str,
        fp2: str,
        fp2_pad: str,
        fp2_layer: str,
        direction: Axis | str,
        resistance: float = 50.0,
        excite: bool = False,
        generate_mesh: bool = True,
    ) -> bool:
        self._check_open()
        geometry = self._ports.from_pads(
            fp1, fp1_pad, fp1_layer, fp2, fp2_pad, fp2_layer, Axis(direction), generate_mesh
        )
        if geometry is None:
            return False
        return self._register_port(geometry, resistance, excite, generate_mesh)

    def add_lumped_port_at(
        self,
        start: Point | Any,
        start_layer: str,
        end: Point | Any,
        end_layer: str,
        direction: Axis | str,
        resistance: float = 50.0,
        excite: bool = False,
        generate_mesh: bool = True,
    ) -> bool:
        self._check_open()
        geometry = self._ports.from_points(_as_point(start), start_layer, _as_point(end), end_layer, Axis(direction))
        if geometry is None:
            return False
        return self._register_port(geometry, resistance, excite, generate_mesh)

    def add_lumped_port_from_footprint(self, reference: str, excite: bool = False, generate_mesh: bool = True) -> bool:
        """Port across a two-pad resistor footprint; resistance from its value."""
        self._check_open()
        if ElementType.from_reference(reference) != ElementType.R:
            logger.warning("Lumped port footprint %s must be a resistor (R...)", reference)
            return False
        resolved = self._ports.from_footprint(reference, generate_mesh)
        if resolved is None:
            return False
        geometry, footprint = resolved
        return self._register_port(geometry, parse_si_value(footprint.value), excite, generate_mesh)

    # ------------------------------------------------------------------
    # Lumped elements
    # ------------------------------------------------------------------

    def _register_element(
        self,
        name: str,
        geometry: PortGeometry,
        element_type: ElementType,
        value: float,
        generate_mesh: bool,
    ) -> bool:
        element = LumpedElement(
            name=name,
            element_type=element_type,
            value=value,
            direction=geometry.direction,
            start=geometry.start,
            end=geometry.end,
            generate_mesh=generate_mesh,
        )
        self._lumped_elements.append(element)
        if generate_mesh:
            self._insert_port_lines(element.start, element.end)
        logger.debug("Registered lumped element %s", name)
        return True

    def add_lumped_element(
        self,
        fp1: str,
        fp1_pad: str,
        fp1_layer: str,
        fp2: str,
        fp2_pad: str,
        fp2_layer: str,
        direction: Axis | str,
        element_type: ElementType | str,
        value: float,
        generate_mesh: bool = True,
    ) -> bool:
        self._check_open()
        geometry = self._ports.from_pads(
            fp1, fp1_pad, fp1_layer, fp2, fp2_pad, fp2_layer, Axis(direction), generate_mesh
        )
        if geometry is None:
            return False
        name = pad_pair_element_name(fp1, fp1_pad, fp1_layer, fp2, fp2_pad, fp2_layer)
        return self._register_element(name, geometry, ElementType(element_type), value, generate_mesh)

    def add_lumped_element_from_footprint(self, reference: str, generate_mesh: bool = True) -> bool:
        """Element across a two-pad R, L or C footprint; value from its value field."""
        self._check_open()
        element_type = ElementType.from_reference(reference)
        if element_type is None:
            logger.warning("Lumped element footprint %s must start with R, L or C", reference)
            return False
        resolved = self._ports.from_footprint(reference, generate_mesh)
        if resolved is None:
            return False
        geometry, footprint = resolved
        return self._register_element(
            footprint_element_name(reference), geometry, element_type, parse_si_value(footprint.value), generate_mesh
        )

    def add_lumped_element_at(
        self,
        start: Point | Any,
        start_layer: str,
        end: Point | Any,
        end_layer: str,
        direction: Axis | str,
        element_type: ElementType | str,
        value: float,
        generate_mesh: bool = True,
    ) -> bool:
        self._check_open()
        start_point = _as_point(start)
        end_point = _as_point(end)
        geometry = self._ports.from_points(start_point, start_layer, end_point, end_layer, Axis(direction))
        if geometry is None:
            return False
        name = point_element_name(start_point, start_layer, end_point, end_layer)
        return self._register_element(name, geometry, ElementType(element_type), value, generate_mesh)

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    def geometry(self) -> MappedGeometry:
        """Primitives of the registered nets and footprints, mapped once."""
        if self._geometry is None:
            mapper = GeometryMapper(
                self.board,
                self.mesh,
                arc_step=self.config.arc_step,
                pad_z_extension=self.config.pad_z_extension,
            )
            self._geometry = mapper.map(self.nets, self.footprints)
        return self._geometry

    def nf2ff_box(self) -> NF2FFBox | None:
        """The nf2ff box, sized once; its face lines go into the session mesh."""
        if not self._nf2ff_sized:
            self._nf2ff_sized = True
            self._nf2ff_box = size_nf2ff_box(
                self.board,
                self._nf2ff_footprint,
                far_field_freq=self.config.far_field_freq,
                lambda_mesh_ratio=self.config.lambda_mesh_ratio,
                boundary=self.config.boundary,
                unit=self.config.unit,
            )
            if self._nf2ff_box is not None:
                self._nf2ff_box.inject_mesh_lines(self.mesh, self.config.port_mesh_priority)
        return self._nf2ff_box

    def finalize_mesh(self) -> MeshResult:
        if self._mesh_result is None:
            self.geometry()
            self.nf2ff_box()
            self._mesh_result = AxisMeshAssembler(self.board, self.mesh, self.config).assemble()
        return self._mesh_result

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    def _function_header(self, signature: str) -> list[str]:
        return [f"function {signature}", "physical_constants;", f"unit = {self.config.unit:g};"]

    def build_model(self, func_name: str = MODEL_FUNCTION) -> ScriptWriter:
        writer = ScriptWriter(self._function_header(f"[CSX] = {func_name}(CSX, max_freq)"))
        for section in self.geometry().sections():
            writer.extend(render_all(section))
            writer.blank(_SECTION_GAP)
        writer.emit("end")
        return writer

    def build_mesh(self, func_name: str = MESH_FUNCTION) -> ScriptWriter:
        result = self.finalize_mesh()
        writer = ScriptWriter(self._function_header(f"[CSX, mesh] = {func_name}(CSX, max_freq)"))
        writer.extend(result.to_statements())
        writer.emit("end")
        return writer

    def _driver_header(self, writer: ScriptWriter, min_decrement: str) -> None:
        writer.extend(
            [
                "close all; clear; clc;",
                "show_model = 1;",
                "plot_only = 0;",
                "physical_constants;",
                f"unit = {self.config.unit:g};",
                f"max_timesteps = 1e9; min_decrement = {min_decrement};",
                "FDTD = InitFDTD('NrTS', max_timesteps, 'EndCriteria', min_decrement);",
                f"f0 = {self.config.f0:e}; fc = {self.config.fc:e};",
                "FDTD = SetGaussExcite(FDTD, f0, fc);",
                self.config.boundary.to_statement(),
                "FDTD = SetBoundaryCond(FDTD, BC);",
                "",
                "CSX = InitCSX();",
            ]
        )

    def _elements_and_ports(self, writer: ScriptWriter) -> None:
        for element in self._lumped_elements:
            writer.extend(element.to_primitive().to_statements())
        writer.blank(_SECTION_GAP)
        for port_number, excitation in enumerate(self._excitations):
            writer.extend(excitation.to_primitive(port_number).to_statements())
        writer.blank(_SECTION_GAP)

    def _run_block(self, writer: ScriptWriter, sim_path: str, sim_csx: str) -> None:
        writer.extend(
            [
                f"sim_path = '{sim_path}'; plot_path = 'plot'; sim_csx = '{sim_csx}';",
                "if (plot_only == 0)",
                f"    CSX = {MODEL_FUNCTION}(CSX, f0 + fc);",
                f"    [CSX, mesh] = {MESH_FUNCTION}(CSX, f0 + fc);",
                "    CSX = DefineRectGrid(CSX, unit, mesh);",
                "",
                "    rmdir(sim_path, 's');",
                "    mkdir(sim_path);",
                "    mkdir(plot_path);",
                "    WriteOpenEMS([sim_path '/' sim_csx], FDTD, CSX);",
                "    if (show_model == 1)",
                "        CSXGeomPlot([sim_path '/' sim_csx], ['--export-STL=' sim_path]);",
                "    end",
                "    RunOpenEMS(sim_path, sim_csx, '--debug-PEC');",
                "end",
                "printf('\\n\\n');",
            ]
        )

    def build_antenna_script(self) -> ScriptWriter:
        """Driver for a radiating structure: S11, VSWR, impedance and far field."""
        writer = ScriptWriter()
        self._driver_header(writer, "1e-5")
        self._elements_and_ports(writer)
        box = self.nf2ff_box()
        if box is not None:
            writer.extend(box.to_statements())
            writer.blank(_SECTION_GAP)
        self._run_block(writer, "ant_sim", "ant.xml")
        writer.extend(read_ui_statements(self._excitations))
        writer.extend(s11_statements(self._excitations, self._frequencies))
        writer.extend(vswr_statements(self._excitations, self._frequencies))
        writer.extend(feed_point_impedance_statements(self._excitations, self._frequencies))
        writer.extend(far_field_statements(self._excitations, self._frequencies, box is not None))
        writer.blank(2)
        return writer

    def build_two_port_script(self) -> ScriptWriter:
        """Driver for a two-port: S11/S21 and input impedance."""
        writer = ScriptWriter()
        self._driver_header(writer, "1e-2")
        self._elements_and_ports(writer)
        self._run_block(writer, "two_sparam", "two_sparam.xml")
        writer.extend(read_ui_statements(self._excitations))
        writer.extend(two_port_statements(self._excitations))
        writer.extend(feed_point_impedance_statements(self._excitations, self._frequencies))
        writer.blank(2)
        return writer

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    def gen_model(self, out_dir: Path | str, func_name: str = MODEL_FUNCTION) -> Path:
        return self.build_model(func_name).write(Path(out_dir) / f"{func_name}.m")

    def gen_mesh(self, out_dir: Path | str, func_name: str = MESH_FUNCTION) -> Path:
        return self.build_mesh(func_name).write(Path(out_dir) / f"{func_name}.m")

    def gen_antenna_simulation_scripts(self, out_dir: Path | str) -> list[Path]:
        out = Path(out_dir)
        script = self.build_antenna_script().write(out / f"{ANTENNA_SCRIPT}.m")
        return [script, self.gen_model(out), self.gen_mesh(out)]

    def gen_two_port_sparam_scripts(self, out_dir: Path | str) -> list[Path]:
        out = Path(out_dir)
        script = self.build_two_port_script().write(out / f"{TWO_PORT_SCRIPT}.m")
        return [script, self.gen_model(out), self.gen_mesh(out)]


def apply_job_spec(job: JobSpec) -> OpenEMSModelGenerator:
    """Build a generator for a job and register its directives in file order."""
    board = Board(job.board)
    generator = OpenEMSModelGenerator(board, job.config)

    for net in job.nets:
        if net.uniform_grid is not None:
            generator.add_net_uniform_grid(
                net.net, net.uniform_grid.x_gap, net.uniform_grid.y_gap, net.zone_generate_mesh, net.priority
            )
        else:
            generator.add_net(net.net, net.generate_mesh, net.zone_generate_mesh, net.priority)

    for fp in job.footprints:
        if fp.uniform_grid is not None:
            generator.add_footprint_uniform_grid(fp.reference, fp.uniform_grid.x_gap, fp.uniform_grid.y_gap, fp.priority)
        else:
            generator.add_footprint(fp.reference, fp.generate_mesh, fp.priority)

    for ex in job.excitations:
        if isinstance(ex.start, PadTerminal):
            generator.add_excitation(*_pad_args(ex.start, ex.end), ex.direction, ex.resistance, ex.generate_mesh)
        else:
            generator.add_excitation_at(*_point_args(ex.start, ex.end), ex.direction, ex.resistance, ex.generate_mesh)

    for port in job.lumped_ports:
        if port.footprint is not None:
            generator.add_lumped_port_from_footprint(port.footprint, port.excite, port.generate_mesh)
        elif isinstance(port.start, PadTerminal):
            generator.add_lumped_port(
                *_pad_args(port.start, port.end), port.direction, port.resistance, port.excite, port.generate_mesh
            )
        else:
            generator.add_lumped_port_at(
                *_point_args(port.start, port.end), port.direction, port.resistance, port.excite, port.generate_mesh
            )

    for element in job.lumped_elements:
        if element.footprint is not None:
            generator.add_lumped_element_from_footprint(element.footprint, element.generate_mesh)
        elif isinstance(element.start, PadTerminal):
            generator.add_lumped_element(
                *_pad_args(element.start, element.end),
                element.direction,
                element.type,
                element.value,
                element.generate_mesh,
            )
        else:
            generator.add_lumped_element_at(
                *_point_args(element.start, element.end),
                element.direction,
                element.type,
                element.value,
                element.generate_mesh,
            )

    for mesh_range in job.mesh_ranges:
        generator.add_mesh_range(mesh_range.start, mesh_range.end, mesh_range.gap, mesh_range.axis, mesh_range.priority)

    for freq in job.frequencies:
        generator.add_freq(freq)

    if job.nf2ff_footprint:
        generator.set_nf2ff_footprint(job.nf2ff_footprint)

    return generator


def _pad_args(start: Any, end: Any) -> tuple[str, str, str, str, str, str]:
    return (start.footprint, start.pad, start.layer, end.footprint, end.pad, end.layer)


def _point_args(start: Any, end: Any) -> tuple[Point, str, Point, str]:
    return (start.at, start.layer, end.at, end.layer)
