__version__ = "1.0.0"

# Imports from common
from .common.domain import VoxelDomain
from .common.hierarchy import BoundaryConditions, Hierarchy, GridLevel, EmptyLevel
from .common.context import SolverContext
from .common.convergence import ConvergenceState
from .common.mma import MMA
from .common.optimizers import Optimizer, OC

# Import solvers
from . import solvers

from .errors import RobustOptimizationError, InvalidModeError, NumericalDivergenceError, InvalidResultError
from .parameters import Parameters, WorkMode

# Import modules
from .modules.design import DensityDesign, SplineDesign
from .modules.power_method import ModifiedPowerMethod, WorstCase
from .modules.projection import ForceProjection
from .modules.aggregation import PNorm, HFunction, Overhang, KSFunction, make_aggregation
from .modules.manufacturing import OverhangConstraint, DripConstraint
from .modules.io import ScalarToFile, ResultsWriter
from .optimization import RobustOptimization, OptimizationResult, Status

# Further helper routines
from .routines import finite_difference, optimize_robust

__all__ = [
    "finite_difference",
    "optimize_robust",
    # Common
    "VoxelDomain",
    "BoundaryConditions",
    "Hierarchy",
    "GridLevel",
    "EmptyLevel",
    "SolverContext",
    "ConvergenceState",
    "MMA",
    "OC",
    "Optimizer",
    "solvers",
    # Configuration and errors
    "Parameters",
    "WorkMode",
    "RobustOptimizationError",
    "InvalidModeError",
    "NumericalDivergenceError",
    "InvalidResultError",
    # Modules
    "DensityDesign",
    "SplineDesign",
    "ModifiedPowerMethod",
    "WorstCase",
    "ForceProjection",
    "PNorm",
    "HFunction",
    "Overhang",
    "KSFunction",
    "make_aggregation",
    "OverhangConstraint",
    "DripConstraint",
    "ScalarToFile",
    "ResultsWriter",
    "RobustOptimization",
    "OptimizationResult",
    "Status",
]
