import numpy as np


class LinearSolver:
    """ Base class of all linear solvers

    Keyword Args:
        A (matrix): Optionally provide a matrix, which is used in :method:`update` right away.
    """

    def __init__(self, A=None):
        if A is not None:
            self.update(A)

    def update(self, A):
        """ Updates with a new matrix of the same structure

        Args:
            A (matrix): The new matrix of size ``(N, N)``

        Returns:
            self
        """
        raise NotImplementedError("Solver not implemented")

    def solve(self, rhs, x0=None):
        r""" Solves the linear system of equations :math:`\mathbf{A} \mathbf{x} = \mathbf{b}`

        Args:
            rhs: Right hand side :math:`\mathbf{b}` of shape ``(N)`` or ``(N, K)`` for multiple right-hand-sides
            x0 (optional): Initial guess for the solution

        Returns:
            Solution vector :math:`\mathbf{x}` of same shape as :math:`\mathbf{b}`
        """
        raise NotImplementedError("Solver not implemented")

    @staticmethod
    def residual(A, x, b):
        r""" Calculates the relative residual of the linear system of equations

        The residual is calculated as
        :math:`r = \frac{\left| \mathbf{A} \mathbf{x} - \mathbf{b} \right|}{\left| \mathbf{b} \right|}`.
        For a zero right-hand side the absolute residual is returned.

        Args:
            A: The matrix
            x: Solution vector
            b: Right-hand side

        Returns:
            Residual value
        """
        assert x.shape == b.shape
        bnrm = np.linalg.norm(b, axis=0)
        rnrm = np.linalg.norm(A @ x - b, axis=0)
        return np.where(bnrm > 0, rnrm / np.where(bnrm > 0, bnrm, 1.0), rnrm)
