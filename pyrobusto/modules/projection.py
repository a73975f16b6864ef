""" Projection of nodal forces onto the admissible load subspace """
import numpy as np

from ..errors import InvalidResultError
from ..parameters import WorkMode
from ..solvers.iterative import orth


def rigid_body_modes(positions: np.ndarray, mask: np.ndarray = None, center: np.ndarray = None):
    """ The six rigid body displacement modes of a set of nodes

    Args:
        positions: Node positions of size (#nodes, 3)
        mask (optional): Boolean mask of nodes to include; the modes are zero on the other nodes
        center (optional): Center of rotation, defaults to the centroid of the included nodes

    Returns:
        Modes of size (3 * #nodes, 6): translations in x, y and z, followed by rotations about x, y and z
    """
    n = positions.shape[0]
    mask = np.ones(n, dtype=bool) if mask is None else np.asarray(mask, dtype=bool)
    if center is None:
        center = positions[mask].mean(axis=0) if np.any(mask) else np.zeros(3)
    x, y, z = (positions - center).T
    zero, one = np.zeros(n), np.ones(n)

    modes = np.zeros((n, 3, 6))
    modes[:, 0, 0] = one
    modes[:, 1, 1] = one
    modes[:, 2, 2] = one
    modes[:, :, 3] = np.stack([zero, -z, y], axis=-1)
    modes[:, :, 4] = np.stack([z, zero, -x], axis=-1)
    modes[:, :, 5] = np.stack([-y, x, zero], axis=-1)
    modes[~mask] = 0.0
    return modes.reshape(3 * n, 6)


class ForceProjection:
    r""" Linear projector onto the forces that are admissible in a given structural mode

    With support (``wsff``, ``wscf``) any force on the load region can be carried by the fixed region. Without support
    (``nsff``, ``nscf``) the load must be in equilibrium on its own, so its net force and net moment are removed.

    ========= ============================================================================================
    Mode      Projection
    --------- --------------------------------------------------------------------------------------------
    ``wsff``  :math:`\mathbf{M}\mathbf{f}`, with :math:`\mathbf{M}` selecting the load dofs
    ``wscf``  per load node only the component along the prescribed direction :math:`\mathbf{d}_i`
    ``nsff``  :math:`(\mathbf{I}-\mathbf{Q}\mathbf{Q}^\text{T})\mathbf{M}\mathbf{f}`, with :math:`\mathbf{Q}` an
              orthonormal basis of the rigid modes on the load dofs
    ``nscf``  :math:`\mathbf{D}(\mathbf{I}-\mathbf{Q}_\alpha\mathbf{Q}_\alpha^\text{T})\mathbf{D}^\text{T}\mathbf{f}`,
              directional loads with self-equilibrated magnitudes
    ========= ============================================================================================

    Args:
        positions: Node positions of size (#nodes, 3)
        fixed_mask: Boolean mask of the nodes in the fixed region
        load_mask: Boolean mask of the nodes in the load region
        mode: The structural mode (:class:`WorkMode` or its string value)
        load_directions (optional): Prescribed load direction of each node, size (#nodes, 3), needed for the
          constrained-direction modes
        active_mask (optional): Boolean mask of the nodes of the structure, used for :meth:`complementary`
    """
    def __init__(self, positions: np.ndarray, fixed_mask: np.ndarray, load_mask: np.ndarray, mode,
                 load_directions: np.ndarray = None, active_mask: np.ndarray = None):
        self.mode = WorkMode.parse(mode)
        self.positions = np.asarray(positions, dtype=float)
        self.nnodes = self.positions.shape[0]
        self.fixed_mask = np.asarray(fixed_mask, dtype=bool)
        self.load_mask = np.asarray(load_mask, dtype=bool)
        if self.mode.has_support:
            self.load_mask = np.logical_and(self.load_mask, ~self.fixed_mask)
        if not np.any(self.load_mask):
            raise ValueError("Admissible load subspace is empty: no load nodes")
        self.load_dofs = np.repeat(self.load_mask, 3)
        self.active_mask = np.ones(self.nnodes, dtype=bool) if active_mask is None else np.asarray(active_mask,
                                                                                                   dtype=bool)

        self.Q = None
        if not self.mode.free_direction:
            if load_directions is None:
                raise ValueError(f"Load directions are required for mode '{self.mode.value}'")
            dirs = np.asarray(load_directions, dtype=float).reshape(self.nnodes, 3)
            nrm = np.linalg.norm(dirs, axis=-1)
            self.dir_nodes = np.argwhere(np.logical_and(self.load_mask, nrm > 0)).ravel()
            if self.dir_nodes.size == 0:
                raise ValueError("Admissible load subspace is empty: no nonzero load direction in the load region")
            self.directions = dirs[self.dir_nodes] / nrm[self.dir_nodes, None]

        if not self.mode.has_support:
            R = rigid_body_modes(self.positions, self.load_mask)
            if self.mode.free_direction:
                self.Q = orth(R)
                nfree = np.sum(self.load_dofs) - self.Q.shape[1]
            else:
                self.Q = orth(self._dir_T(R))
                nfree = self.dir_nodes.size - self.Q.shape[1]
            if nfree <= 0:
                raise ValueError(f"Admissible load subspace is empty in mode '{self.mode.value}': the load region "
                                 f"cannot carry a self-equilibrated load")

        # Rigid displacement basis of the whole structure
        self.Qc = orth(rigid_body_modes(self.positions, self.active_mask)) if not self.mode.has_support else None

    def _dir_T(self, f):
        r""" Magnitudes along the load directions :math:`\mathbf{D}^\text{T}\mathbf{f}` """
        fn = f.reshape((self.nnodes, 3) + f.shape[1:])[self.dir_nodes]
        if f.ndim == 1:
            return np.sum(fn * self.directions, axis=1)
        return np.einsum('nd...,nd->n...', fn, self.directions)

    def _dir(self, alpha):
        r""" Directional force :math:`\mathbf{D}\boldsymbol{\alpha}` """
        f = np.zeros((self.nnodes, 3))
        f[self.dir_nodes] = alpha[:, None] * self.directions
        return f.ravel()

    def project(self, f: np.ndarray):
        """ Project a nodal force of size (3 * #nodes) onto the admissible subspace """
        f = np.asarray(f, dtype=float)
        if self.mode == WorkMode.WITH_SUPPORT_FREE:
            return np.where(self.load_dofs, f, 0.0)
        elif self.mode == WorkMode.NO_SUPPORT_FREE:
            fm = np.where(self.load_dofs, f, 0.0)
            return fm - self.Q @ (self.Q.T @ fm)
        alpha = self._dir_T(f)
        if self.mode == WorkMode.NO_SUPPORT_CONSTRAINED:
            alpha = alpha - self.Q @ (self.Q.T @ alpha)
        return self._dir(alpha)

    def __call__(self, f: np.ndarray):
        return self.project(f)

    def complementary(self, u: np.ndarray):
        """ Remove the rigid body components from a displacement field; identity for supported structures """
        if self.Qc is None:
            return u
        return u - self.Qc @ (self.Qc.T @ u)

    def support_force(self, f: np.ndarray):
        """ The force on the load nodes, of size (#load nodes, 3) """
        return np.asarray(f).reshape(self.nnodes, 3)[self.load_mask].copy()

    @staticmethod
    def normalize(f: np.ndarray):
        """ Scale to unit Euclidean norm """
        nrm = np.linalg.norm(f)
        if not np.isfinite(nrm) or nrm == 0.0:
            raise InvalidResultError(f"Cannot normalize a force with norm {nrm}", value=nrm)
        return f / nrm
