import dataclasses
import warnings
from typing import Callable

import numpy as np

from .common.context import SolverContext
from .common.domain import VoxelDomain
from .common.hierarchy import BoundaryConditions
from .errors import InvalidModeError, NumericalDivergenceError
from .modules.aggregation import make_aggregation
from .modules.design import DensityDesign, SplineDesign
from .modules.io import ResultsWriter
from .modules.manufacturing import OverhangConstraint, DripConstraint
from .optimization import RobustOptimization, OptimizationResult
from .parameters import Parameters

DESIGNS = {"density": DensityDesign, "spline": SplineDesign}


def finite_difference(fn: Callable, x: np.ndarray, dfdx: np.ndarray, dx: float = 1e-6, relative_dx: bool = False,
                      tol: float = 1e-5, indices=None, test_fn: Callable = None, verbose: bool = True):
    """Performs a central finite difference check of a scalar function

    Args:
        fn: The scalar function ``f(x)``
        x: The point of evaluation
        dfdx: The analytical gradient at ``x``

    Keyword Args:
        dx: Perturbation size
        relative_dx: Use a relative perturbation size or not
        tol: Tolerance on the relative error
        indices: Entries of ``x`` to perturb, default is all
        test_fn: A generic test function ``(x, dx, df_an, df_fd)``, called for every perturbed entry
        verbose: Print extra information to console

    Returns:
        The maximum relative error
    """
    x = np.asarray(x, dtype=float)
    dfdx = np.asarray(dfdx, dtype=float).ravel()
    indices = range(x.size) if indices is None else indices

    if verbose:
        print("\n=========================================================================================================")
        print(f'Starting finite difference of "{getattr(fn, "__name__", type(fn).__name__)}" with dx = {dx}, '
              f'and tol = {tol}')
        print("i\tdf_an\t\tdf_fd\t\terror")

    max_error = 0.0
    for i in indices:
        h = dx * abs(x.flat[i]) if relative_dx and x.flat[i] != 0 else dx
        xp, xm = x.copy(), x.copy()
        xp.flat[i] += h
        xm.flat[i] -= h
        df_fd = (fn(xp) - fn(xm)) / (2 * h)
        df_an = dfdx[i]
        error = abs(df_an - df_fd) / max(abs(df_an), abs(df_fd), 1e-14)
        if abs(df_an - df_fd) < tol * 1e-3:  # Both practically zero
            error = 0.0
        max_error = max(max_error, error)
        if verbose:
            print(f"{i}\t{df_an:+.4e}\t{df_fd:+.4e}\t{error:.2e} {'OK' if error <= tol else 'FAIL'}")
        if test_fn is not None:
            test_fn(x, h, df_an, df_fd)

    if verbose:
        print(f"Maximum relative error {max_error:.2e}")
        print("=========================================================================================================\n")
    return max_error


def optimize_robust(domain: VoxelDomain, bcs: BoundaryConditions, params: Parameters = None, design: str = "density",
                    ss: bool = False, drip: bool = False, active: np.ndarray = None, outdir=None, retries: int = 2,
                    n_levels: int = None, verbosity: int = 2) -> OptimizationResult:
    """ Set up and run a robust topology optimization

    A worst-case analysis that diverges is retried up to ``retries`` times with a new random seed and half the design
    step. Invalid results (NaN compliance) are re-raised after the diagnostics are written, and invalid modes are never
    caught.

    Args:
        domain: The voxel domain
        bcs: Boundary conditions
        params (optional): Run parameters
        design (optional): Design parametrization, ``"density"`` or ``"spline"``
        ss (optional): Enable the self-support constraint at the optimization print angle
        drip (optional): Enable the drip constraint
        active (optional): Boolean mask of the elements in the design domain
        outdir (optional): Output directory for records, fields and diagnostics
        retries (optional): Number of retries after numerical divergence
        n_levels (optional): Maximum number of multigrid levels
        verbosity (optional): Level of information to print

    Returns:
        The result of the successful attempt
    """
    params = Parameters() if params is None else params
    if design not in DESIGNS:
        raise InvalidModeError("design", design, DESIGNS.keys())

    attempt_params = params
    for attempt in range(retries + 1):
        context = SolverContext.create(domain, bcs, attempt_params, active=active, n_levels=n_levels,
                                       verbosity=verbosity - 1)
        dsgn = DESIGNS[design](domain, attempt_params, active=active)
        ss_con, drip_con = None, None
        if ss:
            ss_con = OverhangConstraint(domain, angle=attempt_params.opt_print_angle, active=dsgn.active,
                                        aggregation=make_aggregation("self-support", attempt_params.ss_mode))
        if drip:
            drip_con = DripConstraint(domain, active=dsgn.active,
                                      aggregation=make_aggregation("drip", attempt_params.drip_mode))

        writer = None
        if outdir is not None:
            writer = ResultsWriter(outdir, domain, log_density=attempt_params.log_density,
                                   log_support_force=attempt_params.log_compliance)
            writer.write_parameters(attempt_params, extra=f"[attempt] {attempt}")

        opt = RobustOptimization(context, attempt_params, dsgn, ss=ss_con, drip=drip_con, writer=writer,
                                 verbosity=verbosity)
        try:
            return opt.run()
        except NumericalDivergenceError as err:
            if attempt == retries:
                raise
            seed = None if attempt_params.seed is None else attempt_params.seed + 1
            attempt_params = dataclasses.replace(attempt_params, seed=seed,
                                                 design_step=attempt_params.design_step / 2)
            warnings.warn(f"Attempt {attempt + 1} failed in {opt.state.value} ({err}). Retrying with seed {seed} "
                          f"and design step {attempt_params.design_step}")
