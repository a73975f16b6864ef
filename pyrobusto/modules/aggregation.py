""" Aggregation of local manufacturing constraint values into a single constraint """
import abc
import numpy as np
import scipy.special as spsp

from ..errors import InvalidModeError
from ..parameters import SS_MODES, DRIP_MODES


class Aggregation:
    """ Generic aggregation strategy (cannot be used directly, but can only be used as superclass)

    Local constraint values :math:`g_i \\leq 0` are aggregated into one value :math:`G(\\mathbf{g})`, which is zero (or
    close to zero) when all local constraints are satisfied.
    """
    @abc.abstractmethod
    def aggregation_function(self, x):
        """ Calculates f(x) """
        raise NotImplementedError()

    @abc.abstractmethod
    def aggregation_derivative(self, x):
        """" Calculates df(x) / dx """
        raise NotImplementedError()

    def __call__(self, x):
        x = np.asarray(x, dtype=float)
        if x.size == 0:
            return 0.0
        return float(self.aggregation_function(x))

    def derivative(self, x):
        x = np.asarray(x, dtype=float)
        if x.size == 0:
            return np.zeros(0)
        return self.aggregation_derivative(x)


class PNorm(Aggregation):
    r""" P-norm aggregation of the violations

    :math:`G = \left( \sum_i \max(g_i, 0)^p \right)^{1/p}`

    Args:
        p: Power of the p-norm
    """
    def __init__(self, p: float = 8.0):
        self.p = p

    def aggregation_function(self, x):
        xp = np.maximum(x, 0.0)
        return np.sum(xp ** self.p) ** (1 / self.p)

    def aggregation_derivative(self, x):
        xp = np.maximum(x, 0.0)
        s = np.sum(xp ** self.p)
        if s == 0:
            return np.zeros_like(x)
        return s ** (1 / self.p - 1) * xp ** (self.p - 1)


class HFunction(Aggregation):
    r""" Mean of the violations, switched on by a smooth Heaviside function

    :math:`G = \frac{1}{n} \sum_i g_i h(g_i)`, with :math:`h(g) = \frac{1}{1 + \exp(-\alpha g)}`

    Args:
        alpha: Sharpness of the Heaviside function
    """
    def __init__(self, alpha: float = 20.0):
        self.alpha = alpha

    def aggregation_function(self, x):
        return np.mean(x * spsp.expit(self.alpha * x))

    def aggregation_derivative(self, x):
        h = spsp.expit(self.alpha * x)
        return (h + x * self.alpha * h * (1 - h)) / x.size


class Overhang(Aggregation):
    r""" Smoothly counted fraction of violated local constraints

    :math:`G = \frac{1}{n} \sum_i h(g_i)`, with :math:`h(g) = \frac{1}{1 + \exp(-\alpha g)}`

    Args:
        alpha: Sharpness of the Heaviside function
    """
    def __init__(self, alpha: float = 20.0):
        self.alpha = alpha

    def aggregation_function(self, x):
        return np.mean(spsp.expit(self.alpha * x))

    def aggregation_derivative(self, x):
        h = spsp.expit(self.alpha * x)
        return self.alpha * h * (1 - h) / x.size


class KSFunction(Aggregation):
    r""" Kreisselmeier and Steinhauser function, normalized by the number of values

    :math:`G = \frac{1}{\rho} \ln \left( \frac{1}{n} \sum_i \exp(\rho g_i) \right)`

    Args:
        rho: Scaling factor of the KS function
    """
    def __init__(self, rho: float = 20.0):
        self.rho = rho

    def aggregation_function(self, x):
        return (spsp.logsumexp(self.rho * x) - np.log(x.size)) / self.rho

    def aggregation_derivative(self, x):
        return spsp.softmax(self.rho * x)


class Squared(Aggregation):
    r""" Applies an aggregation to the signed squares :math:`g_i |g_i|` of the local values """
    def __init__(self, base: Aggregation):
        self.base = base

    def aggregation_function(self, x):
        return self.base.aggregation_function(x * np.abs(x))

    def aggregation_derivative(self, x):
        return self.base.aggregation_derivative(x * np.abs(x)) * 2 * np.abs(x)


_BASE = {"p": PNorm, "h": HFunction, "oh": Overhang, "exp": KSFunction}


def make_aggregation(kind: str, mode: str, **kwargs) -> Aggregation:
    """ Create the aggregation strategy for a mode selector

    Args:
        kind: ``"self-support"`` or ``"drip"``
        mode: The mode selector, e.g. ``"p"`` or ``"oh2"``
        **kwargs: Passed to the base aggregation

    Returns:
        The aggregation strategy
    """
    if kind == "self-support":
        options = SS_MODES
    elif kind == "drip":
        options = DRIP_MODES
    else:
        raise ValueError(f"Unknown constraint kind '{kind}'. Options are ['self-support', 'drip']")
    if mode not in options:
        raise InvalidModeError(kind, mode, options)
    squared = mode.endswith("2")
    agg = _BASE[mode[:-1] if squared else mode](**kwargs)
    return Squared(agg) if squared else agg
