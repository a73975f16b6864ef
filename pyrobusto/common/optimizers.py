from abc import ABC, abstractmethod
from typing import Sequence
import warnings

import numpy as np


class Optimizer(ABC):
    """ General abstract optimizer working on plain arrays

    The caller evaluates the responses and their sensitivities and hands them to :meth:`step`. The first response is
    minimized, the others are constraints in negative null form (:math:`g_i \\leq 0`).

    Args:
        n: Number of design variables
        xmin: Minimum design variable (scalar or vector)
        xmax: Maximum design variable (scalar or vector)
        move (optional): Move limit on the variable change per iteration, relative to ``xmax - xmin``
        tags (optional): Names of the responses, used for printing
        verbosity (optional): Level of information to print
          0 - No prints
          1 - Only convergence message
          2 - Convergence and iteration info (default)
          3 - Additional info on variables and inner iteration info
    """
    def __init__(self, n: int, xmin=0.0, xmax=1.0, move=0.1, tags: Sequence[str] = None, verbosity: int = 2):
        self.n = n
        self.verbosity = verbosity
        self.xmin = self._parse_bound(xmin, which='xmin')
        self.xmax = self._parse_bound(xmax, which='xmax')
        if np.any(self.xmin >= self.xmax):
            raise ValueError("Lower bounds must be smaller than upper bounds")
        self.move = self._parse_bound(move, which='move') if np.asarray(move).size > 1 else move
        self.dx = self.xmax - self.xmin
        self.tags = None if tags is None else list(tags)
        self.iter = 0

    def _parse_bound(self, xbnd, which='bounds'):
        """ Helper function to get upper and lower bound vector"""
        xbnd = np.asarray(xbnd, dtype=float)
        if xbnd.size == 1:
            return np.full(self.n, float(xbnd))
        elif xbnd.size == self.n:
            return xbnd.ravel().copy()
        raise ValueError(f"Size of {which} ({xbnd.size}) should be either 1 or equal to the number of design "
                         f"variables ({self.n})")

    def print_iteration_info(self, g: np.ndarray, xold: np.ndarray = None, xnew: np.ndarray = None):
        """ Print iteration information

        Args:
            g: Response values
            xold (optional): If provided, shows information on design change
            xnew (optional): If provided, shows information on design change
        """
        tags = self.tags if self.tags is not None and len(self.tags) == g.size else [f"g{i}" for i in range(g.size)]
        msgs = ["{0:s}: {1:+.4e}".format(t, v) for t, v in zip(tags, g)]
        if g.size > 1:
            feasibility_tag = "[f] " if max(g[1:]) <= 0 else "[ ] "
        else:
            feasibility_tag = ""
        print("It. {0: 4d}, {1:s}{2}".format(self.iter, feasibility_tag, ", ".join(msgs)))

        if xnew is not None and xold is not None:
            x_diff = np.abs(xnew - xold)
            print(f"  | Changes: Δx = {'%.2g' % np.min(x_diff)}…{'%.2g' % np.max(x_diff)}")

    @abstractmethod
    def step(self, x: np.ndarray, g: np.ndarray, dg: np.ndarray):
        """ Performs a single optimization step

        Args:
            x: The current design vector
            g: The response values, objective first
            dg: The design sensitivities of the responses, size (#responses, n)

        Returns:
            xnew: New design vector
            g: Response values
            dg: Design sensitivities
        """
        raise NotImplementedError()


class OC(Optimizer):
    r""" Optimality criteria update with a single volume-type constraint

    The update :math:`x^\text{new}_i = x_i \left(-\frac{\partial f/\partial x_i}{\lambda\, \partial g/\partial x_i}
    \right)^\eta` is clipped to the move limit and bounds, and the multiplier :math:`\lambda` is found by bisection
    such that the linearized constraint :math:`g + \nabla g \cdot (\mathbf{x}^\text{new} - \mathbf{x}) \leq 0` is
    active.

    Args:
        n: Number of design variables
        xmin: Minimum design variable
        xmax: Maximum design variable
        move (optional): Move limit, relative to ``xmax - xmin``
        damp_ratio (optional): Damping exponent :math:`\eta`
        l1init (optional): Initial lower bound of the multiplier
        l2init (optional): Initial upper bound of the multiplier
        l1l2tol (optional): Relative tolerance of the bisection
        verbosity (optional): Level of information to print
    """
    def __init__(self, n: int, xmin=0.0, xmax=1.0, move=0.1, damp_ratio: float = 0.5, l1init: float = 0.0,
                 l2init: float = 1e9, l1l2tol: float = 1e-4, verbosity: int = 2, **kwargs):
        super().__init__(n, xmin, xmax, move=move, verbosity=verbosity, **kwargs)
        if np.any(self.xmin < 0):
            raise ValueError("OC only works for non-negative design variables")
        self.damp_ratio = damp_ratio
        self.l1init = l1init
        self.l2init = l2init
        self.l1l2tol = l1l2tol

    def step(self, x, g, dg):
        g = np.asarray(g, dtype=float)
        dg = np.atleast_2d(dg)
        if dg.shape[0] != 2:
            raise ValueError(f"OC needs exactly one constraint, got {dg.shape[0] - 1}")

        # Clip positive sensitivities
        df = dg[0]
        maxdg = df.max()
        if maxdg > 1e-15:
            warnings.warn(f"OC only works for negative sensitivities: max(dgdx) = {maxdg}. Clipping positive values.")
        df = np.minimum(df, 0)
        dv = np.maximum(dg[1], 1e-30)

        lb = np.maximum(self.xmin, x - self.move * self.dx)
        ub = np.minimum(self.xmax, x + self.move * self.dx)

        xnew = x.copy()
        l1, l2 = self.l1init, self.l2init
        while (l2 - l1) / (l1 + l2) > self.l1l2tol and l2 > 1e-40:
            lmid = 0.5 * (l1 + l2)
            xnew[:] = np.clip(x * (-df / (lmid * dv)) ** self.damp_ratio, lb, ub)
            l1, l2 = (lmid, l2) if g[1] + dg[1] @ (xnew - x) > 0 else (l1, lmid)

        self.iter += 1
        return xnew, g, dg
