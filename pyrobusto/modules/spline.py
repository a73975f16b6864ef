""" Tensor-product B-spline parametrization of a density field """
from typing import Tuple

import numpy as np
import scipy.sparse as sps
from scipy.interpolate import BSpline

from ..common.domain import VoxelDomain


def clamped_knots(partition: int, order: int):
    """ Open uniform knot vector on [0, 1] with ``partition`` spans for B-splines of degree ``order`` """
    return np.concatenate([np.zeros(order), np.linspace(0.0, 1.0, partition + 1), np.ones(order)])


class BSplineMap:
    r""" Maps B-spline coefficients to values at the element centers

    The field is :math:`t(\mathbf{x}) = \sum_{ijk} c_{ijk} N_i(x) N_j(y) N_k(z)`, with clamped uniform B-splines in
    every direction. The evaluation at all element centers is a sparse matrix
    :math:`\mathbf{S} = \mathbf{B}_z \otimes \mathbf{B}_y \otimes \mathbf{B}_x`, so :math:`\mathbf{t}=\mathbf{S}\mathbf{c}`
    and the sensitivities follow from :math:`\mathbf{S}^\text{T}`.

    Coefficients are numbered ``(k * ncy + j) * ncx + i``, the same way as the elements of the domain.

    Args:
        domain: The voxel domain
        partition (optional): Number of knot spans in x, y and z
        order (optional): Polynomial degree of the B-splines
    """
    def __init__(self, domain: VoxelDomain, partition: Tuple[int, int, int] = (8, 8, 8), order: int = 2):
        if len(partition) != 3:
            raise ValueError(f"Partition needs three entries, got {partition}")
        if order < 0 or min(partition) < 1:
            raise ValueError("Spline order must be non-negative and each partition at least 1")
        self.domain = domain
        self.partition = tuple(int(p) for p in partition)
        self.order = int(order)
        self.knots = [clamped_knots(p, self.order) for p in self.partition]
        self.shape = tuple(p + self.order for p in self.partition)

        B = []
        for nel, t in zip(domain.size, self.knots):
            centers = (np.arange(nel) + 0.5) / nel
            B.append(sps.csr_matrix(BSpline.design_matrix(centers, t, self.order)))
        Bx, By, Bz = B
        self.S = sps.kron(Bz, sps.kron(By, Bx)).tocsr()

    @property
    def n_coefficients(self):
        return int(np.prod(self.shape))

    def __call__(self, c):
        return self.S @ c

    def backward(self, dfdt):
        return self.S.T @ dfdt
