__version__ = "1.0.0"

# Imports from common
from .common.domain import StructuredGrid
from .common.elements import DegenerateElementError, Quad4, Hex8, element_for_dim, exact_conductivity_matrix
from .common.passive import PassiveRegions
from .common.scenarios import LoadScenario, ClampedPatch, ImportedGeometry, scenario_for
from .common.checkpoint import RestartFiles

# Import solvers
from . import solvers

from .assembly import AssembleConductivity, simp_interpolation
from .heat import LinearHeatConduction
from .io import write_to_vti, PlotDomain
from .logging_config import setup_logging

# Further helper routines
from .routines import finite_difference

__all__ = [
    "LinearHeatConduction",
    "finite_difference",
    "setup_logging",
    # Common
    "StructuredGrid",
    "DegenerateElementError",
    "Quad4",
    "Hex8",
    "element_for_dim",
    "exact_conductivity_matrix",
    "PassiveRegions",
    "LoadScenario",
    "ClampedPatch",
    "ImportedGeometry",
    "scenario_for",
    "RestartFiles",
    "solvers",
    # Assembly
    "AssembleConductivity",
    "simp_interpolation",
    # Output
    "write_to_vti",
    "PlotDomain",
]
