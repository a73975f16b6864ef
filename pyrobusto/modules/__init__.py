from .assembly import StiffnessAssembler, element_stiffness
from .filter import DensityFilter, HeavisideProjection
from .spline import BSplineMap
from .design import Design, DensityDesign, SplineDesign
from .projection import ForceProjection, rigid_body_modes
from .power_method import ModifiedPowerMethod, WorstCase
from .aggregation import Aggregation, PNorm, HFunction, Overhang, KSFunction, Squared, make_aggregation
from .manufacturing import LocalConstraint, OverhangConstraint, DripConstraint
from .sensitivity import SensitivityEngine
from .io import ScalarToFile, ResultsWriter

__all__ = ["StiffnessAssembler", "element_stiffness",
           "DensityFilter", "HeavisideProjection",
           "BSplineMap",
           "Design", "DensityDesign", "SplineDesign",
           "ForceProjection", "rigid_body_modes",
           "ModifiedPowerMethod", "WorstCase",
           "Aggregation", "PNorm", "HFunction", "Overhang", "KSFunction", "Squared", "make_aggregation",
           "LocalConstraint", "OverhangConstraint", "DripConstraint",
           "SensitivityEngine",
           "ScalarToFile", "ResultsWriter"]
