from .board import Board, BoardSpec, LayerType, Point
from .generator import (
    ANTENNA_SCRIPT,
    MESH_FUNCTION,
    MODEL_FUNCTION,
    TWO_PORT_SCRIPT,
    OpenEMSModelGenerator,
    apply_job_spec,
)
from .mesh import Axis, Mesh, MeshAxis, MeshLine, MeshLineRange
from .ports import ElementType, Excitation, LumpedElement
from .spec import BoundaryCondition, GeneratorConfig, JobSpec, load_job_spec
from .units import FrequencyHz, parse_frequency_hz, parse_si_value, round_to_grid

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Board model
    "Board",
    "BoardSpec",
    "LayerType",
    "Point",
    # Mesh
    "Axis",
    "Mesh",
    "MeshAxis",
    "MeshLine",
    "MeshLineRange",
    # Ports and elements
    "ElementType",
    "Excitation",
    "LumpedElement",
    # Generator
    "ANTENNA_SCRIPT",
    "MESH_FUNCTION",
    "MODEL_FUNCTION",
    "TWO_PORT_SCRIPT",
    "OpenEMSModelGenerator",
    "apply_job_spec",
    # Configuration
    "BoundaryCondition",
    "GeneratorConfig",
    "JobSpec",
    "load_job_spec",
    # Units
    "FrequencyHz",
    "parse_frequency_hz",
    "parse_si_value",
    "round_to_grid",
]
