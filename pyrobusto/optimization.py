""" The robust topology optimization loop """
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np

from .common.context import SolverContext
from .common.convergence import ConvergenceState
from .common.mma import MMA
from .common.optimizers import OC
from .common.schedules import volume_goal, ss_scale, drip_scale, heaviside_beta
from .errors import InvalidResultError
from .modules.design import Design
from .modules.io import ResultsWriter
from .modules.manufacturing import LocalConstraint, OverhangConstraint
from .modules.power_method import ModifiedPowerMethod, WorstCase
from .modules.sensitivity import SensitivityEngine
from .parameters import Parameters
from .utils import _concatenate_to_array, colored


class State(Enum):
    INIT = "init"
    STENCIL_UPDATE = "stencil update"
    WORST_CASE = "worst-case analysis"
    CONSTRAINTS = "constraint evaluation"
    CONVERGENCE_CHECK = "convergence check"
    SENSITIVITY = "sensitivity computation"
    DESIGN_UPDATE = "design update"
    TERMINAL = "terminal"


class Status(Enum):
    CONVERGED = "converged"
    MAX_ITERATIONS = "max_iterations"


@dataclass
class OptimizationResult:
    """ Outcome of a robust optimization run

    Attributes:
        status: Why the loop terminated
        iterations: Number of outer iterations performed
        compliance: Worst-case compliance of the final design
        volume: Volume fraction of the final design
        design: Final design variables
        density: Final element densities
        history: Per-iteration records (``cworst``, ``vrec``, ``goal``, ``trec`` and, when enabled, ``ssrec`` and
          ``driprec``)
        worst_case: The worst-case analysis of the final design
        overhang: Fraction of elements of the final design that overhang at the default print angle
    """
    status: Status
    iterations: int
    compliance: float
    volume: float
    design: np.ndarray
    density: np.ndarray
    history: dict = field(default_factory=dict)
    worst_case: Optional[WorstCase] = None
    overhang: float = None


class RobustOptimization:
    r""" Minimizes the worst-case compliance under volume continuation and optional manufacturing constraints

    Each outer iteration runs through the states

    ``STENCIL_UPDATE -> WORST_CASE -> CONSTRAINTS -> CONVERGENCE_CHECK -> SENSITIVITY -> DESIGN_UPDATE``

    until the convergence check passes (:attr:`Status.CONVERGED`) or the iteration cap is reached
    (:attr:`Status.MAX_ITERATIONS`). The volume goal shrinks geometrically from ``start_ratio`` to ``volume_ratio``.
    The loop has converged when the compliance, the volume and the manufacturing constraint values are stable over the
    convergence window, the volume goal has reached its target and, with a self-support constraint, the self-support
    value is at most 1e-6. The window tracks the volume of the design rather than the goal, so it can settle as soon
    as the goal has clamped at ``volume_ratio``.

    The responses passed to the optimizer are the compliance scaled to 100 in the first iteration, the volume
    constraint :math:`10^3 (v - v_\text{goal})` and the manufacturing constraints times their scale schedules.

    Args:
        context: The solver context
        params: Run parameters
        design: Design parametrization
        ss (optional): Self-support constraint
        drip (optional): Drip constraint
        writer (optional): Writer for records, fields and diagnostics
        verbosity (optional): Level of information to print
          0 - No prints
          1 - Only start and termination messages
          2 - Iteration info (default)
          3 - Additional info on the worst-case analysis and the design update
    """
    volume_scale = 1e3

    def __init__(self, context: SolverContext, params: Parameters, design: Design, ss: LocalConstraint = None,
                 drip: LocalConstraint = None, writer: ResultsWriter = None, verbosity: int = 2):
        self.context = context
        self.params = params
        self.design = design
        self.ss = ss
        self.drip = drip
        self.writer = writer
        self.verbosity = verbosity
        self.state = State.INIT

        self.sens = SensitivityEngine(context.hierarchy, design)
        self.power_method = ModifiedPowerMethod(context, context.projection, context.vcycle,
                                                on_failure=None if writer is None else writer.dump_diagnostics,
                                                verbosity=verbosity)

        self.tags = ["c", "vol"] + (["ss"] if ss is not None else []) + (["drip"] if drip is not None else [])
        n_constraints = len(self.tags) - 1
        nonnegative = bool(np.all(np.asarray(design.xmin) >= 0))
        self.optimizer_name = params.optimizer.lower()
        if self.optimizer_name == "auto":
            self.optimizer_name = "oc" if n_constraints == 1 and nonnegative else "mma"
        if self.optimizer_name == "oc":
            if n_constraints > 1:
                raise ValueError("OC only supports a volume constraint; use the MMA optimizer for manufacturing "
                                 "constraints")
            if not nonnegative:
                raise ValueError(f"OC only works for non-negative design variables; use the MMA optimizer for a "
                                 f"{type(design).__name__}")
            self.optimizer = OC(design.n, design.xmin, design.xmax, move=params.design_step,
                                damp_ratio=params.damp_ratio, tags=self.tags, verbosity=verbosity)
        else:
            self.optimizer = MMA(design.n, design.xmin, design.xmax, m=n_constraints, move=params.design_step,
                                 tags=self.tags, verbosity=verbosity)

        window, tol = design.convergence
        if params.convergence_window is not None:
            window = params.convergence_window
        if params.convergence_tol is not None:
            tol = params.convergence_tol
        self.convergence = ConvergenceState(n_constraints, window=window, tol=tol)

    def _worst_case(self, it: int, goal: float, f0: np.ndarray) -> WorstCase:
        p = self.params
        if p.incomplete_worst_case and self.ss is not None and it > 1 and goal > p.volume_ratio:
            return self.power_method.incomplete(f0)
        return self.power_method(f0)

    def _check_compliance(self, worst: WorstCase):
        c = worst.compliance
        if not np.isfinite(c) or abs(c) < 1e-11:
            if self.writer is not None:
                self.writer.dump_diagnostics(worst.support_force, worst.displacement)
            raise InvalidResultError(f"Invalid worst-case compliance {c}", value=c, support_force=worst.support_force,
                                     displacement=worst.displacement)

    def run(self, x0: np.ndarray = None) -> OptimizationResult:
        """ Run the optimization loop

        Args:
            x0 (optional): Initial design variables. By default a uniform design at the start ratio with a small
              random perturbation.
        """
        p = self.params
        design = self.design
        x = design.initial(p.start_ratio, self.context.rng) if x0 is None else np.asarray(x0, dtype=float).copy()

        history = {"cworst": [], "vrec": [], "goal": [], "trec": []}
        if self.ss is not None:
            history["ssrec"] = []
        if self.drip is not None:
            history["driprec"] = []

        if self.verbosity >= 1:
            info = f"{type(design).__name__}, {p.work_mode.value}, {self.optimizer_name.upper()}"
            print(colored(255, 200, 0, f"Robust optimization of {design.n} design variables ({info})"))

        status = Status.MAX_ITERATIONS
        worst, rho, vol, c0 = None, None, None, None
        f_prev = None
        it = 0
        while it < p.max_iterations:
            it += 1
            goal = volume_goal(it, p.start_ratio, p.volume_ratio, p.volume_decrease)
            beta = heaviside_beta(it) if p.heaviside else None

            self.state = State.STENCIL_UPDATE
            rho = design(x, beta)
            vol = design.volume(rho)
            self.context.update_stencil(rho)

            self.state = State.WORST_CASE
            tstart = time.perf_counter()
            worst = self._worst_case(it, goal, f_prev)
            self._check_compliance(worst)
            f_prev = worst.force
            c = worst.compliance

            self.state = State.CONSTRAINTS
            tracked = [vol]
            g = [c, self.volume_scale * (vol - goal)]
            ss_val, dss, drip_val, ddrip = None, None, None, None
            if self.ss is not None:
                ss_val, dss = self.sens.constraint(self.ss, rho)
                tracked.append(ss_val)
                history["ssrec"].append(ss_val)
            if self.drip is not None:
                drip_val, ddrip = self.sens.constraint(self.drip, rho)
                tracked.append(drip_val)
                history["driprec"].append(drip_val)
            history["cworst"].append(c)
            history["vrec"].append(vol)
            history["goal"].append(goal)
            history["trec"].append(time.perf_counter() - tstart)

            if self.writer is not None:
                self.writer.support_force(it, worst.support_force)
                record = dict(compliance=c, volume=vol, goal=goal)
                if ss_val is not None:
                    record["ss"] = ss_val
                if drip_val is not None:
                    record["drip"] = drip_val
                self.writer.record(**record, time=history["trec"][-1])

            self.state = State.CONVERGENCE_CHECK
            stable = self.convergence.update(c, tracked)
            if self.verbosity >= 2:
                msg = f"It. {it: 4d}, c = {c:.4e}, v = {vol:.4f} (goal {goal:.4f})"
                if ss_val is not None:
                    msg += f", ss = {ss_val:.3e}"
                if drip_val is not None:
                    msg += f", drip = {drip_val:.3e}"
                print(msg + f", Δ = {self.convergence.change:.2e}")
            if stable and goal <= p.volume_ratio + 1e-3 and (ss_val is None or ss_val <= 1e-6):
                status = Status.CONVERGED
                break

            self.state = State.SENSITIVITY
            if c0 is None:
                c0 = c
            g[0] = 100 * c / c0
            dc_rho, dc = self.sens.compliance(worst.displacement, 100 / c0)
            dg = [dc, self.sens.volume(self.volume_scale)]
            if self.ss is not None:
                g.append(ss_scale(it) * ss_val)
                dg.append(ss_scale(it) * dss)
            if self.drip is not None:
                g.append(drip_scale(it) * drip_val)
                dg.append(drip_scale(it) * ddrip)

            self.state = State.DESIGN_UPDATE
            gvec, _ = _concatenate_to_array(g)
            xnew, _, _ = self.optimizer.step(x, gvec, np.vstack(dg))
            if self.verbosity >= 3:
                self.optimizer.print_iteration_info(gvec, xold=x, xnew=xnew)
            if self.writer is not None:
                self.writer.fields(rho, dc_rho, it=it)
            x = xnew

        self.state = State.TERMINAL
        overhang_g, _ = OverhangConstraint(design.domain, angle=p.default_print_angle, active=design.active).local(rho)
        result = OptimizationResult(status=status, iterations=it, compliance=worst.compliance, volume=vol, design=x,
                                    density=rho, history=history, worst_case=worst,
                                    overhang=float(np.mean(overhang_g > 0)) if overhang_g.size > 0 else 0.0)

        if self.writer is not None:
            self.writer.fields(rho, final=True)
            self.writer.save_history(history)
            self.writer.finish(worst.support_force, worst.displacement)

        if self.verbosity >= 1:
            tag = colored(0, 200, 0, "converged") if status == Status.CONVERGED else colored(255, 80, 0, status.value)
            print(f"Optimization {tag} after {it} iterations: c = {result.compliance:.4e}, v = {vol:.4f}")
        return result
