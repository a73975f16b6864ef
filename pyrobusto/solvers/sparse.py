import scipy.sparse as sps
from scipy.sparse.linalg import splu
from .solvers import LinearSolver


class SolverSparseLU(LinearSolver):
    """Solver for sparse (square) matrices using an LU decomposition.

    Internally, `scipy` uses the SuperLU library. Used for coarsest multigrid levels that are too large to factorize
    as a dense matrix.

    References:
      - `Scipy LU <https://docs.scipy.org/doc/scipy/reference/generated/scipy.sparse.linalg.splu.html>`_
    """

    def update(self, A):
        r"""Factorize the matrix as :math:`\mathbf{A}=\mathbf{L}\mathbf{U}`, where :math:`\mathbf{L}` is a lower
        triangular matrix and :math:`\mathbf{U}` is upper triangular.
        """
        self.inv = splu(sps.csc_matrix(A))
        return self

    def solve(self, rhs, x0=None):
        r"""Solves the linear system of equations :math:`\mathbf{A} \mathbf{x} = \mathbf{b}` by forward and backward
        substitution of :math:`\mathbf{x} = \mathbf{U}^{-1}\mathbf{L}^{-1}\mathbf{b}`.
        """
        return self.inv.solve(rhs)
