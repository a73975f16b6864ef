import warnings
import numpy as np
import scipy.linalg as spla  # Dense matrix solvers
import scipy.sparse as sps
from .solvers import LinearSolver


def _to_dense(A):
    return A.toarray() if sps.issparse(A) else np.asarray(A)


class SolverDensePseudoInverse(LinearSolver):
    r""" Solver for symmetric positive semi-definite matrices using an eigenvalue decomposition

    Eigenvalues below ``rcond`` times the largest eigenvalue are treated as zero, so the minimum-norm solution is
    returned for singular systems. This is used on the coarsest multigrid level of unsupported structures, of which
    the stiffness matrix has six rigid-body modes in its null space.

    Args:
        A (optional): The matrix
        rcond (optional): Relative cut-off for small eigenvalues
    """
    def __init__(self, A=None, rcond=1e-10):
        self.rcond = rcond
        self.rank = None
        super().__init__(A)

    def update(self, A):
        lam, v = spla.eigh(_to_dense(A))
        keep = lam > self.rcond * np.max(np.abs(lam))
        self.rank = np.sum(keep)
        self.v = v[:, keep]
        self.lam = lam[keep]
        return self

    def solve(self, rhs, x0=None):
        r""" Solves with :math:`\mathbf{x} = \mathbf{V} \mathbf{\Lambda}^{-1} \mathbf{V}^\text{T} \mathbf{b}` """
        if rhs.ndim == 1:
            return self.v @ ((self.v.T @ rhs) / self.lam)
        return self.v @ ((self.v.T @ rhs) / self.lam[:, None])


class SolverDenseCholesky(LinearSolver):
    """ Solver for symmetric positive-definite matrices using a Cholesky factorization.
    In case the matrix is singular and factorization fails, a backup-solver is used
    (:class:`.SolverDensePseudoInverse`).
    """
    def __init__(self, *args, **kwargs):
        self.backup_solver = SolverDensePseudoInverse()
        self.success = None
        super().__init__(*args, **kwargs)

    def update(self, A):
        r""" Factorize the matrix as :math:`\mathbf{A}=\mathbf{U}^{\text{T}}\mathbf{U}`, where :math:`\mathbf{U}` is an
        upper triangular matrix.
        """
        A = _to_dense(A)
        try:
            self.cho = spla.cho_factor(A)
            self.success = True
        except np.linalg.LinAlgError as err:
            warnings.warn(f"{type(self).__name__}: {err} -- using {type(self.backup_solver).__name__} instead")
            self.backup_solver.update(A)
            self.success = False
        return self

    def solve(self, rhs, x0=None):
        if self.success:
            return spla.cho_solve(self.cho, rhs)
        else:
            return self.backup_solver.solve(rhs)
