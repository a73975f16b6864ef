import time
import warnings
import numpy as np


class VCycle:
    r""" Geometric multigrid V-cycle on a grid :class:`Hierarchy`

    One call performs a single cycle on the equations :math:`\mathbf{K}_0\mathbf{u}_0 = \mathbf{f}_0` of the finest
    level, updating the displacement of level 0 in place:

    1. Relax on level 0, starting from its current displacement
    2. For every coarser active level, restrict the residual of the next finer active level with
       :math:`\mathbf{R} = \mathbf{P}^\text{T}`, reset the displacement to zero and relax
    3. Solve the coarsest level directly
    4. Going back up, add the prolongated coarse correction and relax again

    Skipped levels are never visited; their interpolation is contained in the prolongation of the next coarser
    active level.

    Args:
        hierarchy: The grid hierarchy, with up-to-date stiffness operators
        presmooth (optional): Number of smoothing sweeps on the way down
        postsmooth (optional): Number of smoothing sweeps on the way up
        verbosity (optional): Log level
    """
    def __init__(self, hierarchy, presmooth: int = 1, postsmooth: int = 1, verbosity: int = 0):
        self.hierarchy = hierarchy
        self.presmooth = presmooth
        self.postsmooth = postsmooth
        self.verbosity = verbosity
        self.ncycles = 0

    def __call__(self):
        """ Perform one V-cycle and return the relative residual at level 0 """
        levels = self.hierarchy.active_levels()
        if len(levels) == 1:
            levels[0].solve_direct()
            self.ncycles += 1
            return levels[0].relative_residual()

        # Restriction
        for i, lvl in enumerate(levels[:-1]):
            if i > 0:
                lvl.restrict(levels[i - 1].update_residual())
                lvl.reset()
            lvl.relax(self.presmooth)

        coarsest = levels[-1]
        coarsest.restrict(levels[-2].update_residual())
        coarsest.solve_direct()

        # Prolongation
        for i in range(len(levels) - 2, -1, -1):
            levels[i].displacement += levels[i + 1].prolongate()
            levels[i].relax(self.postsmooth)

        self.ncycles += 1
        return levels[0].relative_residual()

    def solve(self, tol: float = 1e-4, maxit: int = None):
        """ Repeat V-cycles until the relative residual at level 0 drops below ``tol``

        Args:
            tol (optional): Relative residual tolerance
            maxit (optional): Maximum number of cycles, unbounded by default

        Returns:
            The final relative residual
        """
        tstart = time.perf_counter()
        res = np.inf
        i = 0
        while res > tol:
            if maxit is not None and i >= maxit:
                warnings.warn(f"V-cycle did not converge in {maxit} cycles, final residual {res:.3e}")
                break
            res = self()
            i += 1
            if self.verbosity >= 3:
                print(f"  cycle {i:3d}, r_rel = {res * 100:6.2f}%")
        if self.verbosity >= 2:
            print(f"Multigrid solve in {i} cycles and {np.round(time.perf_counter() - tstart, 3)}s, "
                  f"residual {res:.3e}")
        return res
