""" Exceptions raised when a robust optimization cannot continue

All fatal conditions derive from :class:`RobustOptimizationError`, so a driver can catch the whole family with one
``except`` clause and decide per type whether to persist diagnostics, retry, or give up.
"""
import numpy as np


class RobustOptimizationError(Exception):
    """ Base class for all fatal errors of the robust optimization """


class InvalidModeError(RobustOptimizationError, ValueError):
    """ An unrecognized mode selector was given

    Args:
        kind: Which selector was set, e.g. ``"work"``, ``"self-support"`` or ``"drip"``
        value: The rejected value
        options: The accepted values
    """
    def __init__(self, kind: str, value, options):
        self.kind = kind
        self.value = value
        self.options = tuple(options)
        super().__init__(f"Unsupported {kind} mode '{value}'. Options are {list(self.options)}")


class NumericalDivergenceError(RobustOptimizationError, ArithmeticError):
    """ The multigrid solve diverged during the worst-case analysis

    Attributes:
        residual: Relative residual at the moment of failure
        iteration: Power iteration in which the divergence was detected
        support_force: Force on the load nodes at the moment of failure
        displacement: Displacement at the moment of failure
    """
    def __init__(self, residual: float, iteration: int = None, support_force: np.ndarray = None,
                 displacement: np.ndarray = None, msg: str = None):
        self.residual = residual
        self.iteration = iteration
        self.support_force = support_force
        self.displacement = displacement
        if msg is None:
            msg = f"Relative residual diverged to {residual:.3e}"
            if iteration is not None:
                msg += f" in iteration {iteration}"
        super().__init__(msg)


class InvalidResultError(RobustOptimizationError, ArithmeticError):
    """ A computed quantity is NaN, infinite or otherwise unusable

    Attributes:
        value: The offending value
        support_force: Force on the load nodes, when available
        displacement: Displacement field, when available
    """
    def __init__(self, msg: str, value=None, support_force: np.ndarray = None, displacement: np.ndarray = None):
        self.value = value
        self.support_force = support_force
        self.displacement = displacement
        super().__init__(msg)
