""" Finite element building blocks for linear elasticity on a voxel domain """
import numpy as np
import scipy.sparse as sps
from ..common.domain import VoxelDomain


def get_B(dN_dx):
    """Gets the strain-displacement relation (Cook, eq 3.1-9, P.80) in Voigt notation

      [ε_x; ε_y; ε_z; γ_yz; γ_zx; γ_xy]_i = B [u, v, w]_i

    Args:
        dN_dx: Shape function derivatives [dNi_dxj] of size (3, #shapefn.)

    Returns:
        B strain-displacement relation of size (6, #shapefn.*3)
    """
    n_dim, n_shapefn = dN_dx.shape
    if n_dim != 3:
        raise ValueError(f"Only 3D elements are supported, got {n_dim} dimensions")
    B = np.zeros((6, n_shapefn * 3), dtype=dN_dx.dtype)
    for i in range(n_shapefn):
        dx, dy, dz = dN_dx[:, i]
        B[:, 3 * i: 3 * (i + 1)] = np.array([[dx, 0, 0],
                                             [0, dy, 0],
                                             [0, 0, dz],
                                             [0, dz, dy],
                                             [dz, 0, dx],
                                             [dy, dx, 0]])
    return B


def get_D(E: float, nu: float):
    """Get the isotropic material constitutive relation for 3D linear elasticity

    Args:
        E: Young's modulus
        nu: Poisson's ratio

    Returns:
        Material matrix of size (6, 6)
    """
    mu = E / (2 * (1 + nu))
    lam = (E * nu) / ((1 + nu) * (1 - 2 * nu))
    c1 = 2 * mu + lam
    return np.array([[c1, lam, lam, 0, 0, 0],
                     [lam, c1, lam, 0, 0, 0],
                     [lam, lam, c1, 0, 0, 0],
                     [0, 0, 0, mu, 0, 0],
                     [0, 0, 0, 0, mu, 0],
                     [0, 0, 0, 0, 0, mu]])


def element_stiffness(domain: VoxelDomain, e_modulus: float = 1.0, poisson_ratio: float = 0.3):
    """ Element stiffness matrix of a trilinear hexahedron, integrated with 2x2x2 Gauss points

    Returns:
        Element matrix of size (24, 24), ordered as the element dof connectivity
    """
    D = get_D(e_modulus, poisson_ratio)
    siz = domain.element_size
    w = np.prod(siz / 2)
    KE = np.zeros((3 * domain.elemnodes, 3 * domain.elemnodes))
    for n in domain.node_numbering:
        pos = n * (siz / 2) / np.sqrt(3)  # Sampling point
        B = get_B(domain.eval_shape_fun_der(pos))
        KE += w * B.T @ D @ B
    return KE


class StiffnessAssembler:
    r"""Assembles the global stiffness matrix :math:`\mathbf{K} = \sum_e s_e \mathbf{K}_e`

    Dirichlet conditions are imposed by zeroing the rows and columns of the constrained dofs and placing a finite
    value on their diagonal.

    Args:
        domain: The voxel domain
        element_matrix: Element stiffness matrix of unit Young's modulus, size (24, 24)
        bcdiagval (optional): Diagonal value at constrained dofs, default is the maximum of the element matrix
    """
    def __init__(self, domain: VoxelDomain, element_matrix: np.ndarray, bcdiagval: float = None):
        self.domain = domain
        self.KE = element_matrix
        self.n = domain.ndof
        self.bcdiagval = np.max(element_matrix) if bcdiagval is None else bcdiagval
        self.dofconn = domain.get_dofconnectivity(3)
        ndof_el = self.dofconn.shape[1]
        self.rows = np.kron(self.dofconn, np.ones((1, ndof_el), dtype=int)).ravel()
        self.cols = np.kron(self.dofconn, np.ones((ndof_el, 1), dtype=int)).ravel()

    def __call__(self, scale: np.ndarray, constrained: np.ndarray = None):
        """ Assemble the stiffness matrix

        Args:
            scale: Stiffness scaling of each element, size (#elements)
            constrained (optional): Boolean mask of the constrained dofs, size (#dofs)

        Returns:
            Sparse CSR matrix of size (#dofs, #dofs)
        """
        if scale.size != self.domain.nel:
            raise ValueError(f"Input vector wrong size ({scale.size}), must be equal to #nel ({self.domain.nel})")
        vals = (self.KE.ravel()[None, :] * scale.ravel()[:, None]).ravel()
        K = sps.coo_matrix((vals, (self.rows, self.cols)), shape=(self.n, self.n)).tocsr()
        if constrained is not None and np.any(constrained):
            free = sps.diags((~constrained).astype(float))
            K = free @ K @ free + sps.diags(constrained * float(self.bcdiagval))
        return K.tocsr()

    def element_energies(self, u: np.ndarray):
        r""" Unscaled strain energy of each element :math:`\mathbf{u}_e^\text{T}\mathbf{K}_e\mathbf{u}_e` """
        ue = u[self.dofconn]
        return np.einsum('ij,jk,ik->i', ue, self.KE, ue)
