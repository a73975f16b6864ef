from .solvers import LinearSolver
from .dense import SolverDensePseudoInverse, SolverDenseCholesky
from .sparse import SolverSparseLU
from .iterative import Preconditioner, DampedJacobi, SOR, orth
from .multigrid import VCycle

__all__ = ['LinearSolver',
           'SolverDensePseudoInverse', 'SolverDenseCholesky',
           'SolverSparseLU',
           'Preconditioner', 'DampedJacobi', 'SOR', 'orth',
           'VCycle',
           ]
