""" Density filtering and Heaviside projection """
import numpy as np
from scipy.sparse import coo_matrix

from ..common.domain import VoxelDomain


class DensityFilter:
    r"""Standard density filter for a voxel domain

    The filtered densities are calculated as

    :math:`y_i = \sum_j \frac{H_{ij}}{s_i}x_j`,

    where :math:`H_{ij}=\max \left( r - \sqrt{ (x_j - x_i)^2 + (y_j - y_i)^2 + (z_j - z_i)^2 } , 0 \right)`,

    and :math:`s_i=\sum_j H_{ij}`.

    Args:
        domain: The voxel domain
        radius (optional): The filtering radius (in absolute units of elements)
        active (optional): Boolean mask of the elements to filter over. The filter then acts on vectors of the active
          elements only, and elements outside of the mask do not contribute.

    References:
      - Bruns & Tortorelli (2001). *Topology optimization of non-linear elastic structures and compliant mechanisms*.
        Computer Methods in Applied Mechanics and Engineering, 190(26–27), 3443–3459.
        `doi: 10.1016/S0045-7825(00)00278-4 <https://doi.org/10.1016/S0045-7825(00)00278-4>`_
    """
    def __init__(self, domain: VoxelDomain, radius: float = 2.0, active: np.ndarray = None):
        if radius <= 0:
            raise ValueError(f"Filter radius must be positive, got {radius}")
        self.domain = domain
        self.radius = radius
        self.H = self._calculate_h(domain, radius).tocsr()
        if active is not None:
            active = np.asarray(active, dtype=bool)
            self.H = self.H[active][:, active]
        self.Hs = np.asarray(self.H.sum(axis=1)).ravel()

    @staticmethod
    def _calculate_h(domain: VoxelDomain, radius=2.0):
        """ Assemble the filter weights, looping over all offsets within the filter window """
        delem = int(np.ceil(radius))
        nx, ny, nz = domain.nelx, domain.nely, domain.nelz
        ix, iy, iz = np.meshgrid(np.arange(nx), np.arange(ny), np.arange(nz), indexing="ij")
        els = domain.get_elemnumber(ix, iy, iz)

        h_rows, h_cols, h_values = [], [], []
        for dx in range(-delem, delem + 1):
            for dy in range(-delem, delem + 1):
                for dz in range(-delem, delem + 1):
                    w = radius - np.sqrt(dx * dx + dy * dy + dz * dz)
                    if w <= 0:
                        continue
                    jx, jy, jz = ix + dx, iy + dy, iz + dz
                    inside = (jx >= 0) & (jx < nx) & (jy >= 0) & (jy < ny) & (jz >= 0) & (jz < nz)
                    h_rows.append(els[inside])
                    h_cols.append(domain.get_elemnumber(jx[inside], jy[inside], jz[inside]))
                    h_values.append(np.full(np.sum(inside), w))

        return coo_matrix((np.concatenate(h_values), (np.concatenate(h_rows), np.concatenate(h_cols))),
                          shape=(domain.nel, domain.nel))

    def __call__(self, x):
        return self.H @ x / self.Hs

    def backward(self, dfdy):
        return self.H.T @ (dfdy / self.Hs)


class HeavisideProjection:
    r""" Smoothed Heaviside projection of a density field

    :math:`\tilde{\rho} = \frac{\tanh(\beta\eta) + \tanh(\beta(\rho-\eta))}{\tanh(\beta\eta) + \tanh(\beta(1-\eta))}`

    The sharpness :math:`\beta` is raised during the optimization, see :func:`pyrobusto.common.schedules.heaviside_beta`.

    Args:
        beta (optional): Sharpness of the projection
        eta (optional): Threshold value

    References:
      - Wang, Lazarov & Sigmund (2011). *On projection methods, convergence and robust formulations in topology
        optimization*. Structural and Multidisciplinary Optimization, 43(6), 767-784.
    """
    def __init__(self, beta: float = 4.0, eta: float = 0.5):
        self.beta = beta
        self.eta = eta

    def __call__(self, x, beta: float = None):
        b = self.beta if beta is None else beta
        num = np.tanh(b * self.eta) + np.tanh(b * (x - self.eta))
        den = np.tanh(b * self.eta) + np.tanh(b * (1 - self.eta))
        return num / den

    def derivative(self, x, beta: float = None):
        b = self.beta if beta is None else beta
        den = np.tanh(b * self.eta) + np.tanh(b * (1 - self.eta))
        return b * (1 - np.tanh(b * (x - self.eta)) ** 2) / den
