""" Design parametrizations: from bounded design variables to element densities """
import numpy as np

from ..common.domain import VoxelDomain
from ..parameters import Parameters
from .filter import DensityFilter, HeavisideProjection
from .spline import BSplineMap


class Design:
    """ Base class of a design parametrization

    A design maps a vector of ``n`` bounded variables in ``[xmin, xmax]`` to element densities of the full domain.
    Elements outside of the design domain get density zero.

    Attributes:
        convergence: Default ``(window, tolerance)`` of the convergence check for this type of design
    """
    convergence = (2, 5e-3)

    def __init__(self, domain: VoxelDomain, params: Parameters, active: np.ndarray = None):
        self.domain = domain
        self.params = params
        self.active = np.ones(domain.nel, dtype=bool) if active is None else np.asarray(active, dtype=bool)
        if self.active.size != domain.nel:
            raise ValueError(f"Active element mask has wrong size ({self.active.size}), expected {domain.nel}")
        self.nactive = int(np.sum(self.active))
        if self.nactive == 0:
            raise ValueError("The design domain does not contain any element")
        self.min_density = params.min_density
        self.heaviside = HeavisideProjection() if params.heaviside else None
        self.beta = None
        self.n, self.xmin, self.xmax = None, None, None

    def _scatter(self, rho_active):
        rho = np.zeros(self.domain.nel)
        rho[self.active] = rho_active
        return rho

    def _project(self, t, beta):
        """ Density from an intermediate field in [0, 1], with the Heaviside projection if enabled """
        if self.heaviside is None:
            return np.clip(t, self.min_density, 1.0)
        self.beta = beta
        return self.min_density + (1 - self.min_density) * self.heaviside(t, beta)

    def _project_derivative(self, t):
        if self.heaviside is None:
            return np.logical_and(t >= self.min_density, t <= 1.0).astype(float)
        return (1 - self.min_density) * self.heaviside.derivative(t, self.beta)

    def initial(self, ratio: float, rng: np.random.Generator = None):
        raise NotImplementedError()

    def __call__(self, x: np.ndarray, beta: float = None):
        raise NotImplementedError()

    def backward(self, drho: np.ndarray):
        raise NotImplementedError()

    def volume(self, rho: np.ndarray):
        """ Volume fraction of the design domain """
        return float(np.sum(rho[self.active]) / self.nactive)

    def volume_gradient(self):
        return self.backward(self.active / self.nactive)


class DensityDesign(Design):
    """ Element densities of the design domain as design variables, with a density filter

    Args:
        domain: The voxel domain
        params: Run parameters (filter radius, minimum density, Heaviside projection)
        active (optional): Boolean mask of the elements in the design domain
    """
    convergence = (2, 5e-3)

    def __init__(self, domain: VoxelDomain, params: Parameters, active: np.ndarray = None):
        super().__init__(domain, params, active)
        self.filter = DensityFilter(domain, params.filter_radius, active=self.active)
        self.n = self.nactive
        self.xmin, self.xmax = params.min_density, 1.0
        self._filtered = None

    def initial(self, ratio: float, rng: np.random.Generator = None):
        """ Uniform densities at the given ratio, with a small random perturbation when a generator is given """
        x = np.full(self.n, float(ratio))
        if rng is not None:
            x -= rng.uniform(0.0, 0.01, self.n)
        return np.clip(x, self.xmin, self.xmax)

    def __call__(self, x, beta: float = None):
        self._filtered = self.filter(x)
        return self._scatter(self._project(self._filtered, beta))

    def backward(self, drho):
        return self.filter.backward(drho[self.active] * self._project_derivative(self._filtered))


class SplineDesign(Design):
    r""" B-spline coefficients as design variables

    The coefficients :math:`c \in [c_\text{min}, c_\text{max}]` are mapped to
    :math:`t = (\mathbf{S}\mathbf{c} - c_\text{min}) / (c_\text{max} - c_\text{min})`, which is projected to a density.
    The material boundary is the isosurface at the mid-value of the coefficient bounds.

    Args:
        domain: The voxel domain
        params: Run parameters (spline partition and order, coefficient bounds, Heaviside projection)
        active (optional): Boolean mask of the elements in the design domain
    """
    convergence = (10, 5e-4)

    def __init__(self, domain: VoxelDomain, params: Parameters, active: np.ndarray = None):
        super().__init__(domain, params, active)
        self.spline = BSplineMap(domain, params.spline_partition, params.spline_order)
        self.S = self.spline.S[self.active]
        self.n = self.spline.n_coefficients
        self.xmin, self.xmax = params.min_coefficient, params.max_coefficient
        self.range = self.xmax - self.xmin
        if self.heaviside is not None:
            self.heaviside.eta = (params.isosurface_value - self.xmin) / self.range
        self._t = None

    def initial(self, ratio: float, rng: np.random.Generator = None):
        """ Uniform coefficients with density ``ratio``, lowered by at most 0.01 when a generator is given """
        x = np.full(self.n, self.xmin + float(ratio) * self.range)
        if rng is not None:
            x -= rng.uniform(0.0, 0.01, self.n)
        return np.clip(x, self.xmin, self.xmax)

    def __call__(self, x, beta: float = None):
        self._t = (self.S @ x - self.xmin) / self.range
        return self._scatter(self._project(self._t, beta))

    def backward(self, drho):
        return self.S.T @ (drho[self.active] * self._project_derivative(self._t)) / self.range
