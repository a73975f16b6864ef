import numpy as np
import scipy.sparse as sps
from scipy.sparse.linalg import splu
from .solvers import LinearSolver


class Preconditioner(LinearSolver):
    """ Abstract base class for smoothers and preconditioners; the default is the identity """
    def update(self, A):
        return self

    def solve(self, rhs, x0=None):
        return rhs.copy()


class DampedJacobi(Preconditioner):
    r""" Damped Jacobi smoother
    :math:`M = \frac{1}{\omega} D`

    Args:
        A (optional): The matrix
        w (optional): Weight factor :math:`0 < \omega \leq 1`
    """
    def __init__(self, A=None, w=0.5):
        assert 0 < w <= 1, 'w must be between 0 and 1'
        self.w = w
        self.D = None
        super().__init__(A)

    def update(self, A):
        self.D = A.diagonal()
        return self

    def solve(self, rhs, x0=None):
        return self.w * (rhs.T / self.D).T


class SOR(Preconditioner):
    r""" Symmetric successive over-relaxation smoother
    The matrix :math:`A = L + D + U` is split into a lower triangular, diagonal, and upper triangular part.
    :math:`M = \left(\frac{D}{\omega} + L\right) \frac{\omega D^{-1}}{2-\omega} \left(\frac{D}{\omega} + U\right)`

    For :math:`\omega = 1` one application is a forward Gauss-Seidel sweep followed by a backward sweep.

    Args:
        A (optional): The matrix
        w (optional): Weight factor :math:`0 < \omega < 2`
    """
    def __init__(self, A=None, w=1.0):
        assert 0 < w < 2, 'w must be between 0 and 2'
        self.w = w
        self.L = None
        self.U = None
        self.Dw = None
        super().__init__(A)

    def update(self, A):
        diag = A.diagonal()
        diagw = sps.diags(diag) / self.w
        self.L = splu(sps.csc_matrix(sps.tril(A, k=-1) + diagw), permc_spec="NATURAL", diag_pivot_thresh=0.0)
        self.U = splu(sps.csc_matrix(sps.triu(A, k=1) + diagw), permc_spec="NATURAL", diag_pivot_thresh=0.0)
        self.Dw = diag * (2 - self.w) / self.w
        return self

    def solve(self, rhs, x0=None):
        u1 = self.L.solve(rhs)
        u1 = (u1.T * self.Dw).T
        return self.U.solve(u1)


def orth(u, normalize=True, zero_rtol=1e-12):
    """ Create orthogonal basis from a set of vectors using (modified) Gram-Schmidt

    Args:
        u: Set of vectors of size (#dof, #vectors)
        normalize: Also normalize the basis vectors
        zero_rtol: Relative tolerance for detection of zero vectors (in case of a rank-deficient basis)

    Returns:
        v: Orthogonal basis vectors (#dof, #non-zero-vectors)
    """
    if u.ndim == 1:
        u = u[:, None]
    elif u.ndim > 2:
        raise TypeError("Only valid for 1D or 2D matrix")

    orth_vecs = []
    for i in range(u.shape[-1]):
        vi = np.array(u[:, i], dtype=float)
        beta_i = vi @ vi
        if beta_i == 0:
            continue
        for vj in orth_vecs:
            alpha_jj = 1.0 if normalize else vj @ vj
            vi -= vj * (vi @ vj) / alpha_jj
        beta_i_new = vi @ vi
        if beta_i_new / beta_i < zero_rtol:  # Detect zero vector
            continue
        if normalize:
            vi /= np.sqrt(beta_i_new)
        orth_vecs.append(vi)
    if len(orth_vecs) == 0:
        return np.zeros((u.shape[0], 0))
    return np.stack(orth_vecs, axis=-1)
