"""Generator configuration and job file specification.

This module defines the Pydantic models for a model-generation job:
- Strict validation via ConfigDict(extra="forbid")
- Frequencies accept plain numbers or strings like ``"2.4GHz"``
- Component values accept plain numbers or SI strings like ``"4.7k"``

A job file holds the board model, the generator configuration and the
ordered directive lists. Directives are registered in file order.
"""
from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Annotated, Any

import yaml
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator

from .board import BoardSpec, Point
from .mesh import Axis
from .ports import ElementType
from .units import DEFAULT_UNIT_M, FrequencyHz, parse_si_value


class _SpecBase(BaseModel):
    """Base model with strict validation - no extra fields allowed."""

    model_config = ConfigDict(extra="forbid")


def _parse_component_value(value: Any) -> Any:
    if isinstance(value, str):
        return parse_si_value(value)
    return value


ComponentValue = Annotated[float, BeforeValidator(_parse_component_value)]


# =============================================================================
# Boundary Conditions
# =============================================================================


class BoundaryCondition(str, Enum):
    """Grid-edge termination of the simulation domain."""

    PML = "pml"
    """Perfectly matched layer (8 cells) on every face."""

    MUR = "mur"
    """First-order Mur absorbing boundary on every face."""

    @classmethod
    def _missing_(cls, value: object) -> BoundaryCondition | None:
        # "PML" and "MUR" are accepted as well
        if isinstance(value, str):
            for member in cls:
                if member.value == value.lower():
                    return member
        return None

    @property
    def cell(self) -> str:
        return "PML_8" if self == BoundaryCondition.PML else "MUR"

    def to_statement(self) -> str:
        cells = " ".join(f"'{self.cell}'" for _ in range(6))
        return f"BC = {{{cells}}};"


# =============================================================================
# Generator Configuration
# =============================================================================


class GeneratorConfig(_SpecBase):
    """Tunable parameters of a generation session.

    Lengths are board units (mm), frequencies Hz.
    """

    mesh_x_min_gap: float = Field(0.1, gt=0, description="Minimum mesh line spacing along x")
    mesh_y_min_gap: float = Field(0.1, gt=0, description="Minimum mesh line spacing along y")
    mesh_z_min_gap: float = Field(0.01, gt=0, description="Minimum mesh line spacing along z")
    lambda_mesh_ratio: float = Field(20, gt=0, description="Mesh cells per wavelength at max frequency")
    ignore_cu_thickness: bool = Field(True, description="Treat copper layers as zero thickness")
    boundary: BoundaryCondition = Field(BoundaryCondition.PML, description="Boundary condition on all faces")
    f0: FrequencyHz = Field(0.0, ge=0, description="Gaussian excitation centre frequency")
    fc: FrequencyHz = Field(3e9, gt=0, description="Gaussian excitation bandwidth (20dB cutoff)")
    far_field_freq: FrequencyHz = Field(2.4e9, gt=0, description="Frequency the nf2ff box is sized for")
    unit: float = Field(DEFAULT_UNIT_M, gt=0, description="Metres per board unit")
    port_mesh_priority: int = Field(99, description="Priority of port, element and nf2ff mesh lines")
    arc_step: float = Field(0.1, gt=0, description="Arc rasterization step along the arc")
    pad_z_extension: float = Field(0.001, ge=0, description="Round pad z extension when copper is ignored")
    z_fallback_margin: float = Field(20.0, gt=0, description="Flat z margin for stackups with one boundary")
    smooth_ratio: float = Field(1.3, gt=1.0, description="Grading ratio passed to SmoothMeshLines")


# =============================================================================
# Directives
# =============================================================================


class UniformGridSpec(_SpecBase):
    x_gap: float = Field(..., gt=0)
    y_gap: float = Field(..., gt=0)


class NetDirective(_SpecBase):
    """Net to include in the model, by id or by name."""

    net: int | str
    generate_mesh: bool = True
    zone_generate_mesh: bool = False
    priority: int = 0
    uniform_grid: UniformGridSpec | None = None


class FootprintDirective(_SpecBase):
    reference: str = Field(..., min_length=1)
    generate_mesh: bool = True
    priority: int = 0
    uniform_grid: UniformGridSpec | None = None


class PadTerminal(_SpecBase):
    """Port terminal on a footprint pad."""

    footprint: str
    pad: str
    layer: str


class PointTerminal(_SpecBase):
    """Port terminal at an explicit board point."""

    at: Point
    layer: str


Terminal = PadTerminal | PointTerminal


class _TwoTerminalDirective(_SpecBase):
    start: Terminal | None = None
    end: Terminal | None = None
    direction: Axis | None = None

    def _check_terminals(self) -> None:
        if self.start is None or self.end is None:
            raise ValueError("start and end terminals are required")
        if type(self.start) is not type(self.end):
            raise ValueError("start and end terminals must both be pads or both be points")
        if self.direction is None:
            raise ValueError("direction is required with explicit terminals")


class ExcitationDirective(_TwoTerminalDirective):
    """Driven port between two terminals."""

    resistance: float = Field(50.0, gt=0)
    generate_mesh: bool = True

    @model_validator(mode="after")
    def _validate_terminals(self) -> ExcitationDirective:
        self._check_terminals()
        return self


class LumpedPortDirective(_TwoTerminalDirective):
    """Lumped port between two terminals or across a two-pad ``R`` footprint."""

    footprint: str | None = None
    resistance: float = Field(50.0, gt=0)
    excite: bool = False
    generate_mesh: bool = True

    @model_validator(mode="after")
    def _validate_form(self) -> LumpedPortDirective:
        if self.footprint is None:
            self._check_terminals()
        elif self.start is not None or self.end is not None:
            raise ValueError("footprint form takes no start/end terminals")
        return self


class LumpedElementDirective(_TwoTerminalDirective):
    """R, L or C element between two terminals or across a two-pad footprint."""

    footprint: str | None = None
    type: ElementType | None = None
    value: ComponentValue | None = None
    generate_mesh: bool = True

    @model_validator(mode="after")
    def _validate_form(self) -> LumpedElementDirective:
        if self.footprint is None:
            self._check_terminals()
            if self.type is None or self.value is None:
                raise ValueError("type and value are required with explicit terminals")
        elif self.start is not None or self.end is not None:
            raise ValueError("footprint form takes no start/end terminals")
        return self


class MeshRangeDirective(_SpecBase):
    axis: Axis
    start: float
    end: float
    gap: float = Field(..., gt=0)
    priority: int = 0


# =============================================================================
# Job
# =============================================================================


class JobSpec(_SpecBase):
    """Complete generation job: board, configuration and directives."""

    board: BoardSpec
    config: GeneratorConfig = Field(default_factory=lambda: GeneratorConfig())
    nets: list[NetDirective] = Field(default_factory=list)
    footprints: list[FootprintDirective] = Field(default_factory=list)
    excitations: list[ExcitationDirective] = Field(default_factory=list)
    lumped_ports: list[LumpedPortDirective] = Field(default_factory=list)
    lumped_elements: list[LumpedElementDirective] = Field(default_factory=list)
    mesh_ranges: list[MeshRangeDirective] = Field(default_factory=list)
    frequencies: list[FrequencyHz] = Field(default_factory=list)
    nf2ff_footprint: str | None = None


def load_job_spec_data(data: dict[str, Any]) -> JobSpec:
    """Validate a JobSpec from a dictionary.

    Raises:
        pydantic.ValidationError: If data fails validation.
    """
    return JobSpec.model_validate(data)


def load_job_spec(path: Path | str) -> JobSpec:
    """Load a job file; ``.yaml``/``.yml`` as YAML, anything else as JSON.

    Raises:
        OSError: If the file cannot be read.
        pydantic.ValidationError: If the content fails validation.
    """
    path = Path(path)
    content = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(content)
    else:
        data = json.loads(content)
    if not isinstance(data, dict):
        raise ValueError(f"Job file {path} must contain a mapping at the top level")
    return load_job_spec_data(data)
