""" Local manufacturing constraints for additive manufacturing, evaluated on the element density field """
import numpy as np
import scipy.sparse as sps

from ..common.domain import VoxelDomain
from .aggregation import Aggregation, PNorm


def difference_matrix(n: int, h: float = 1.0):
    """ Central differences on ``n`` points with spacing ``h``, one-sided at the ends """
    if n == 1:
        return sps.csr_matrix((1, 1))
    D = sps.diags([-0.5 * np.ones(n - 1), 0.5 * np.ones(n - 1)], [-1, 1], format='lil')
    D[0, 0], D[0, 1] = -1.0, 1.0
    D[n - 1, n - 2], D[n - 1, n - 1] = -1.0, 1.0
    return D.tocsr() / h


def second_difference_matrix(n: int, h: float = 1.0):
    """ Second differences on ``n`` points with zero-flux ends """
    if n == 1:
        return sps.csr_matrix((1, 1))
    main = -2.0 * np.ones(n)
    main[0] = main[-1] = -1.0
    return sps.diags([np.ones(n - 1), main, np.ones(n - 1)], [-1, 0, 1], format='csr') / h ** 2


def gradient_operators(domain: VoxelDomain):
    """ Sparse operators of the density gradient in x, y and z, each of size (#elements, #elements) """
    h = domain.unit
    Ix, Iy, Iz = (sps.identity(n, format='csr') for n in domain.size)
    Gx = sps.kron(Iz, sps.kron(Iy, difference_matrix(domain.nelx, h)))
    Gy = sps.kron(Iz, sps.kron(difference_matrix(domain.nely, h), Ix))
    Gz = sps.kron(difference_matrix(domain.nelz, h), sps.kron(Iy, Ix))
    return [G.tocsr() for G in (Gx, Gy, Gz)]


class LocalConstraint:
    """ Base class of local manufacturing constraints :math:`g_i(\\boldsymbol{\\rho}) \\leq 0`

    The local values are evaluated for every element of the design domain except the bottom layer, which rests on the
    build plate. The aggregated value and its gradient with respect to the element densities are available through
    :meth:`__call__` and :meth:`sensitivity`.

    Args:
        domain: The voxel domain
        direction (optional): Build direction
        active (optional): Boolean mask of the elements in the design domain
        aggregation (optional): Aggregation strategy of the local values
    """
    def __init__(self, domain: VoxelDomain, direction=(0.0, 0.0, 1.0), active: np.ndarray = None,
                 aggregation: Aggregation = None):
        self.domain = domain
        d = np.asarray(direction, dtype=float)
        if d.shape != (3,) or np.linalg.norm(d) == 0:
            raise ValueError(f"Build direction must be a nonzero 3D vector, got {direction}")
        self.direction = d / np.linalg.norm(d)
        self.aggregation = PNorm() if aggregation is None else aggregation

        self.G = gradient_operators(domain)
        self.Gd = (self.direction[0] * self.G[0] + self.direction[1] * self.G[1] + self.direction[2] * self.G[2]).tocsr()

        active = np.ones(domain.nel, dtype=bool) if active is None else np.asarray(active, dtype=bool)
        height = domain.get_element_centers() @ self.direction
        bottom = height < np.min(height[active]) + domain.unit / 2
        self.mask = np.logical_and(active, ~bottom)
        self.select = sps.identity(domain.nel, format='csr')[self.mask]

    def local(self, rho: np.ndarray):
        """ Local constraint values and their Jacobian with respect to the element densities

        Returns:
            Tuple of the values of size (#constrained elements) and the sparse Jacobian of size
            (#constrained elements, #elements)
        """
        raise NotImplementedError()

    def __call__(self, rho: np.ndarray):
        g, _ = self.local(rho)
        return self.aggregation(g)

    def sensitivity(self, rho: np.ndarray):
        """ Value of the aggregated constraint and its gradient with respect to the element densities """
        g, J = self.local(rho)
        return self.aggregation(g), J.T @ self.aggregation.derivative(g)


class OverhangConstraint(LocalConstraint):
    r""" Self-supporting surfaces: downward-facing surfaces must not be flatter than the print angle

    For the outward surface normal :math:`\mathbf{n} = -\nabla\rho / |\nabla\rho|` and build direction
    :math:`\mathbf{d}`, a surface overhangs when :math:`-\mathbf{n}\cdot\mathbf{d} > \cos\theta`, with :math:`\theta`
    the print angle measured from the horizontal plane. The smooth local constraint is

    :math:`g_i = \mathbf{d}\cdot\nabla\rho_i - \cos\theta \sqrt{|\nabla\rho_i|^2 + \varepsilon^2} \leq 0`

    Args:
        domain: The voxel domain
        direction (optional): Build direction
        angle (optional): Print angle in degrees
        eps (optional): Smoothing of the gradient norm
        active (optional): Boolean mask of the elements in the design domain
        aggregation (optional): Aggregation strategy of the local values
    """
    def __init__(self, domain: VoxelDomain, direction=(0.0, 0.0, 1.0), angle: float = 45.0, eps: float = 1e-3,
                 active: np.ndarray = None, aggregation: Aggregation = None):
        super().__init__(domain, direction, active, aggregation)
        if not 0 < angle < 90:
            raise ValueError(f"Print angle must be between 0 and 90 degrees, got {angle}")
        self.angle = angle
        self.cos = np.cos(np.deg2rad(angle))
        self.eps = eps

    def local(self, rho):
        grads = [G @ rho for G in self.G]
        nrm = np.sqrt(sum(g * g for g in grads) + self.eps ** 2)
        g = self.Gd @ rho - self.cos * nrm

        dnrm = sum(sps.diags(gi / nrm) @ Gi for gi, Gi in zip(grads, self.G))
        J = self.Gd - self.cos * dnrm
        return g[self.mask], (self.select @ J).tocsr()


class DripConstraint(LocalConstraint):
    r""" Drip avoidance: no downward-pointing material tips

    A drip is a downward-facing surface that is convex, i.e. the density decreases towards the build plate and the
    material is more concentrated than in the horizontal neighborhood. With :math:`L_h` the horizontal Laplacian

    :math:`g_i = (\mathbf{d}\cdot\nabla\rho_i) (-L_h \rho_i) \leq 0`

    Args:
        domain: The voxel domain
        direction (optional): Build direction
        active (optional): Boolean mask of the elements in the design domain
        aggregation (optional): Aggregation strategy of the local values
    """
    def __init__(self, domain: VoxelDomain, direction=(0.0, 0.0, 1.0), active: np.ndarray = None,
                 aggregation: Aggregation = None):
        super().__init__(domain, direction, active, aggregation)
        h = domain.unit
        Ix, Iy, Iz = (sps.identity(n, format='csr') for n in domain.size)
        L = [sps.kron(Iz, sps.kron(Iy, second_difference_matrix(domain.nelx, h))),
             sps.kron(Iz, sps.kron(second_difference_matrix(domain.nely, h), Ix)),
             sps.kron(second_difference_matrix(domain.nelz, h), sps.kron(Iy, Ix))]
        # Only the components perpendicular to the build direction
        w = 1.0 - self.direction ** 2
        self.Lh = (w[0] * L[0] + w[1] * L[1] + w[2] * L[2]).tocsr()

    def local(self, rho):
        gd = self.Gd @ rho
        lh = -(self.Lh @ rho)
        J = sps.diags(lh) @ self.Gd - sps.diags(gd) @ self.Lh
        return (gd * lh)[self.mask], (self.select @ J).tocsr()
