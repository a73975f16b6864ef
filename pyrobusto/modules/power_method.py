""" Worst-case load analysis by a modified power method """
import warnings
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from ..errors import InvalidResultError, NumericalDivergenceError
from ..utils import colored


@dataclass
class WorstCase:
    """ Result of a worst-case analysis

    Attributes:
        compliance: Worst-case compliance :math:`\\mathbf{u}^\\text{T}\\mathbf{K}\\mathbf{u}` for the unit worst force
        force: The worst admissible force (unit norm), size (3 * #nodes)
        displacement: Displacement of the finest level at the worst force
        iterations: Number of power iterations
        fch: Final relative change of the support force
        residual: Final relative residual of the multigrid solve
        converged: Whether both tolerances were met within the iteration cap
        support_force: The worst force on the load nodes, size (#load nodes, 3)
    """
    compliance: float
    force: np.ndarray
    displacement: np.ndarray
    iterations: int
    fch: float
    residual: float
    converged: bool
    support_force: np.ndarray = None


class ModifiedPowerMethod:
    r""" Finds the admissible unit load with maximum compliance

    The worst load is the dominant eigenvector of :math:`\mathbf{P}\mathbf{K}^{-1}\mathbf{P}`, where
    :math:`\mathbf{P}` is the force projection. Each power iteration only runs a few multigrid cycles on
    :math:`\mathbf{K}\mathbf{u}=\mathbf{f}` instead of solving it exactly, so the linear solve and the eigenvalue
    iteration converge together. The iteration continues while the relative change of the support force ``fch`` or the
    relative residual exceeds its tolerance.

    Args:
        context: The :class:`~pyrobusto.common.context.SolverContext`, providing the finest level and the random
          generator
        projection: The :class:`~pyrobusto.modules.projection.ForceProjection`
        vcycle: Callable performing one multigrid cycle and returning the relative residual
        max_it (optional): Maximum number of power iterations
        fch_tol (optional): Tolerance on the relative change of the support force
        res_tol (optional): Tolerance on the relative residual
        divergence (optional): Residual above which the solve is considered diverged
        cycles (optional): Number of multigrid cycles per power iteration
        on_failure (optional): Called as ``on_failure(support_force, displacement)`` once before an error is raised
        verbosity (optional): Log level
    """
    def __init__(self, context, projection, vcycle: Callable[[], float], max_it: int = 500, fch_tol: float = 1e-4,
                 res_tol: float = 1e-2, divergence: float = 1e4, cycles: int = 1,
                 on_failure: Optional[Callable] = None, verbosity: int = 0):
        self.context = context
        self.projection = projection
        self.vcycle = vcycle
        self.max_it = max_it
        self.fch_tol = fch_tol
        self.res_tol = res_tol
        self.divergence = divergence
        self.cycles = cycles
        self.on_failure = on_failure
        self.verbosity = verbosity

    def __call__(self, f0: np.ndarray = None) -> WorstCase:
        """ Run the power method to full convergence

        Args:
            f0 (optional): Initial force, e.g. the worst force of the previous design. A random force if not given.
        """
        return self._iterate(f0, self.fch_tol, self.res_tol, self.max_it)

    def incomplete(self, f0: np.ndarray = None, fch_tol: float = 1e-2, max_it: int = 50) -> WorstCase:
        """ Approximate worst case, converged on the force change only """
        return self._iterate(f0, fch_tol, None, max_it)

    def _fail(self, err):
        if self.on_failure is not None:
            self.on_failure(err.support_force, err.displacement)
        raise err

    def _iterate(self, f0, fch_tol, res_tol, max_it):
        level = self.context.level
        proj = self.projection

        f = self.context.random_force() if f0 is None else np.array(f0, dtype=float)
        f = proj.normalize(proj.project(f))
        level.force[:] = f
        level.reset()
        fs = proj.support_force(f)

        fch, res = 1.0, 1.0
        it = 0
        while it < max_it and (fch > fch_tol or (res_tol is not None and res > res_tol)):
            it += 1
            for _ in range(self.cycles):
                res = self.vcycle()

            if not self.context.has_support:
                level.displacement[:] = proj.complementary(level.displacement)

            if not np.isfinite(res) or res > self.divergence:
                self._fail(NumericalDivergenceError(res, iteration=it, support_force=fs,
                                                    displacement=level.displacement.copy()))
            if not np.all(np.isfinite(level.displacement)):
                self._fail(InvalidResultError(f"Non-finite displacement in power iteration {it}", support_force=fs,
                                              displacement=level.displacement.copy()))

            # The displacement is the next force candidate
            fproj = proj.project(level.displacement)
            if np.linalg.norm(fproj) == 0.0:
                self._fail(InvalidResultError(f"Projected displacement vanishes in power iteration {it}", value=0.0,
                                              support_force=fs, displacement=level.displacement.copy()))
            f = proj.normalize(fproj)
            level.force[:] = f

            fs_new = proj.support_force(f)
            fch = np.linalg.norm(fs_new - fs) / np.linalg.norm(fs_new)
            fs = fs_new

            if self.verbosity >= 3:
                print(f"  --[{it:3d}] r_rel {res * 100:6.2f}%, fch {fch * 100:5.2f}%")

        converged = fch <= fch_tol and (res_tol is None or res <= res_tol)
        if not converged:
            warnings.warn(f"Power method stopped at the iteration limit ({max_it}) with fch = {fch:.3e} and "
                          f"residual = {res:.3e}")

        c = level.compliance()
        if not np.isfinite(c):
            self._fail(InvalidResultError(f"Compliance is {c}", value=c, support_force=fs,
                                          displacement=level.displacement.copy()))

        if self.verbosity >= 2:
            print(f"  {colored(0, 200, 0, '[ModiPM]')} {it} iterations, r_rel {res:.2e}, fch {fch:.2e}, "
                  f"worst compliance {c:.4e}")
        return WorstCase(compliance=c, force=f.copy(), displacement=level.displacement.copy(), iterations=it,
                         fch=fch, residual=res, converged=converged, support_force=fs)
