""" Multigrid hierarchy of voxel grids for the elasticity problem """
from dataclasses import dataclass
from typing import Callable, List, Union
import warnings

import numpy as np
import scipy.sparse as sps

from .domain import VoxelDomain
from ..modules.assembly import element_stiffness, StiffnessAssembler
from ..solvers.dense import SolverDenseCholesky, SolverDensePseudoInverse
from ..solvers.iterative import SOR, DampedJacobi
from ..solvers.sparse import SolverSparseLU
from ..utils import _parse_to_list


@dataclass
class BoundaryConditions:
    """ Boundary-condition collaborator

    All functions are vectorized and receive node positions of size (#nodes, 3).

    Attributes:
        fixed: Returns a boolean mask of nodes in the fixed (support) region
        load: Returns a boolean mask of nodes in the load region
        force: Returns the prescribed load direction of each node, size (#nodes, 3); only used when the load
          direction is constrained
    """
    fixed: Callable[[np.ndarray], np.ndarray]
    load: Callable[[np.ndarray], np.ndarray]
    force: Callable[[np.ndarray], np.ndarray] = None

    def evaluate(self, positions: np.ndarray):
        """ Evaluate the fixed mask, load mask and load directions at given positions """
        n = positions.shape[0]
        fixed = np.broadcast_to(np.asarray(self.fixed(positions), dtype=bool), (n,)).copy()
        load = np.broadcast_to(np.asarray(self.load(positions), dtype=bool), (n,)).copy()
        if self.force is None:
            directions = np.zeros((n, 3))
        else:
            directions = np.broadcast_to(np.asarray(self.force(positions), dtype=float), (n, 3)).copy()
        return fixed, load, directions


def interpolation_matrix(fine: VoxelDomain, coarse: VoxelDomain, ndof: int = 3):
    """ Trilinear interpolation from the nodes of a coarse domain to a fine domain with twice the resolution

    Returns:
        Sparse matrix of size (ndof * fine.nnodes, ndof * coarse.nnodes)
    """
    w = np.ones((3, 3, 3)) * 0.125
    w[1, :, :] = 0.25
    w[:, 1, :] = 0.25
    w[:, :, 1] = 0.25
    w[1, 1, :] = 0.5
    w[1, :, 1] = 0.5
    w[:, 1, 1] = 0.5
    w[1, 1, 1] = 1.0

    rows, cols, vals = [], [], []
    for i in [-1, 0, 1]:
        ix = np.arange(max(-i, 0), min(coarse.nelx + 1 - i, coarse.nelx + 1))
        for j in [-1, 0, 1]:
            iy = np.arange(max(-j, 0), min(coarse.nely + 1 - j, coarse.nely + 1))
            for k in [-1, 0, 1]:
                iz = np.arange(max(-k, 0), min(coarse.nelz + 1 - k, coarse.nelz + 1))
                cx, cy, cz = np.meshgrid(ix, iy, iz, indexing='ij')
                nod_c = coarse.get_nodenumber(cx, cy, cz).ravel()
                nod_f = fine.get_nodenumber(2 * cx + i, 2 * cy + j, 2 * cz + k).ravel()
                for d in range(ndof):
                    rows.append(nod_f * ndof + d)
                    cols.append(nod_c * ndof + d)
                    vals.append(np.full(nod_c.size, w[1 + i, 1 + j, 1 + k]))

    P = sps.coo_matrix((np.concatenate(vals), (np.concatenate(rows), np.concatenate(cols))),
                       shape=(ndof * fine.nnodes, ndof * coarse.nnodes))
    return P.tocsr()


class GridLevel:
    """ One resolution level of the finite element discretization

    Attributes:
        index: Position in the hierarchy (0 is the finest)
        domain: The voxel domain of this level
        density: Element densities of this level
        displacement: Nodal displacements, size (3 * #nodes)
        force: Nodal forces, size (3 * #nodes)
        residual: Nodal residual ``force - stiffness @ displacement``
        stiffness: Sparse stiffness operator of this level
        constrained: Boolean mask of dofs that are held at zero
        prolongation: Interpolation from this level to the next finer active level (None on level 0)
    """
    is_dummy = False

    def __init__(self, index: int, domain: VoxelDomain, smoother: str = "sor"):
        self.index = index
        self.domain = domain
        self.density = np.ones(domain.nel)
        self.displacement = np.zeros(domain.ndof)
        self.force = np.zeros(domain.ndof)
        self.residual = np.zeros(domain.ndof)
        self.stiffness = None
        self.constrained = np.zeros(domain.ndof, dtype=bool)
        self.prolongation = None
        if smoother.lower() == "sor":
            self.smoother = SOR(w=1.0)
        elif smoother.lower() == "jacobi":
            self.smoother = DampedJacobi(w=0.5)
        else:
            raise ValueError(f"Unknown smoother '{smoother}'. Options are ['sor', 'jacobi']")
        self.coarse_solver = None

    def __repr__(self):
        return f"GridLevel({self.index}, {self.domain.size.tolist()}, ndof={self.ndof})"

    @property
    def ndof(self):
        return self.domain.ndof

    def set_stiffness(self, K, coarsest: bool = False, singular: bool = False):
        self.stiffness = K.tocsr()
        if coarsest:
            if singular:
                self.coarse_solver = SolverDensePseudoInverse(self.stiffness)
            elif self.ndof <= Hierarchy.max_dense_dofs:
                self.coarse_solver = SolverDenseCholesky(self.stiffness)
            else:
                self.coarse_solver = SolverSparseLU(self.stiffness)
        else:
            self.coarse_solver = None
            self.smoother.update(self.stiffness)

    def reset(self):
        self.displacement[:] = 0.0

    def update_residual(self):
        self.residual[:] = self.force - self.stiffness @ self.displacement
        return self.residual

    def relax(self, n: int = 1):
        """ Smooth the displacement with ``n`` sweeps of the smoother """
        for _ in range(n):
            self.displacement += self.smoother.solve(self.update_residual())

    def solve_direct(self):
        self.displacement[:] = self.coarse_solver.solve(self.force)

    def restrict(self, fine_residual: np.ndarray):
        """ Set the force of this level to the restricted residual of the next finer active level """
        self.force[:] = self.prolongation.T @ fine_residual

    def prolongate(self):
        """ Interpolated correction of this level for the next finer active level """
        return self.prolongation @ self.displacement

    def relative_residual(self):
        fnrm = np.linalg.norm(self.force)
        rnrm = np.linalg.norm(self.update_residual())
        return rnrm / fnrm if fnrm > 0 else rnrm

    def compliance(self):
        r""" Compliance :math:`\mathbf{u}^\text{T}\mathbf{K}\mathbf{u}` of the current displacement """
        return float(self.displacement @ (self.stiffness @ self.displacement))


class EmptyLevel:
    """ A skipped resolution level, which carries no buffers """
    is_dummy = True

    def __init__(self, index: int, domain: VoxelDomain):
        self.index = index
        self.domain = domain

    def __repr__(self):
        return f"EmptyLevel({self.index}, {self.domain.size.tolist()})"


LevelT = Union[GridLevel, EmptyLevel]


class Hierarchy:
    """ Ordered sequence of grid levels, from the finest (0) to the coarsest

    Level 0 holds the finite element problem. Coarser levels use Galerkin operators
    :math:`\\mathbf{K}_c = \\mathbf{P}^\\text{T} \\mathbf{K}_f \\mathbf{P}` with trilinear interpolation. Skipped levels
    (:class:`EmptyLevel`) are bridged by the product of the interpolation operators across them.

    Use :meth:`build` to construct a hierarchy for a domain.
    """
    max_dense_dofs = 3000

    def __init__(self, levels: List[LevelT], fixed_nodes: np.ndarray, load_nodes: np.ndarray,
                 load_directions: np.ndarray, has_support: bool, active: np.ndarray = None,
                 e_modulus: float = 1.0, poisson_ratio: float = 0.3, power_penalty: float = 3.0):
        self.levels = levels
        self.fixed_nodes = fixed_nodes
        self.load_nodes = load_nodes
        self.load_directions = load_directions
        self.has_support = has_support
        self.e_modulus = e_modulus
        self.poisson_ratio = poisson_ratio
        self.power_penalty = power_penalty

        fine = self.finest.domain
        self.active = np.ones(fine.nel, dtype=bool) if active is None else np.asarray(active, dtype=bool)
        if self.active.size != fine.nel:
            raise ValueError(f"Active element mask has wrong size ({self.active.size}), expected {fine.nel}")
        self.active_nodes = fine.get_node_mask(self.active)

        if levels[0].is_dummy or levels[-1].is_dummy:
            raise ValueError("The finest and coarsest levels cannot be skipped")
        ndofs = [lvl.domain.ndof for lvl in levels]
        if any(n1 <= n2 for n1, n2 in zip(ndofs[:-1], ndofs[1:])):
            raise ValueError(f"Degrees of freedom must decrease strictly from fine to coarse, got {ndofs}")

        self.KE = element_stiffness(fine, 1.0, poisson_ratio)
        self.assembler = StiffnessAssembler(fine, self.KE)

        # Dofs without stiffness or in the support region are held at zero
        constrained_nodes = ~self.active_nodes
        if has_support:
            constrained_nodes = np.logical_or(constrained_nodes, fixed_nodes)
        self.constrained = np.repeat(constrained_nodes, 3)
        self.finest.constrained = self.constrained

        # Interpolation operators between adjacent active levels
        active = self.active_levels()
        for fine_lvl, coarse_lvl in zip(active[:-1], active[1:]):
            P = None
            for i in range(fine_lvl.index, coarse_lvl.index):
                Pi = interpolation_matrix(levels[i].domain, levels[i + 1].domain)
                P = Pi if P is None else P @ Pi
            # No corrections on constrained fine dofs
            P = sps.diags((~fine_lvl.constrained).astype(float)) @ P
            coarse_lvl.prolongation = P.tocsr()
            coarse_lvl.constrained = np.asarray(np.abs(P).sum(axis=0)).ravel() == 0

    @classmethod
    def build(cls, domain: VoxelDomain, bcs: BoundaryConditions, has_support: bool = True, active=None,
              n_levels: int = None, skip=None, skip_layer: bool = False, smoother: str = "sor",
              min_coarse_elements: int = 1, **kwargs):
        """ Construct a hierarchy by halving the resolution as long as the domain allows

        Args:
            domain: The finest voxel domain
            bcs: Boundary condition collaborator
            has_support (optional): If False, the fixed region is ignored and the structure is unsupported
            active (optional): Boolean mask of elements that belong to the design domain
            n_levels (optional): Maximum number of levels
            skip (optional): Indices of levels to skip
            skip_layer (optional): Skip level 1 (the first coarsening) when there are at least three levels
            smoother (optional): ``"sor"`` (symmetric Gauss-Seidel) or ``"jacobi"`` (damped Jacobi)
            min_coarse_elements (optional): Minimum number of elements in every direction on the coarsest level
            **kwargs: Material properties ``e_modulus``, ``poisson_ratio`` and ``power_penalty``
        """
        domains = [domain]
        while domains[-1].can_coarsen() and np.all(domains[-1].size // 2 >= min_coarse_elements):
            if n_levels is not None and len(domains) >= n_levels:
                break
            domains.append(domains[-1].coarsen())

        skip = set(_parse_to_list(skip))
        if skip_layer and len(domains) >= 3:
            skip.add(1)
        skip.discard(0)
        skip.discard(len(domains) - 1)

        levels = [EmptyLevel(i, d) if i in skip else GridLevel(i, d, smoother=smoother)
                  for i, d in enumerate(domains)]

        fixed, load, directions = bcs.evaluate(domain.get_node_position())
        if has_support:
            load = np.logical_and(load, ~fixed)
        return cls(levels, fixed, load, directions, has_support, active=active, **kwargs)

    @property
    def finest(self) -> GridLevel:
        return self.levels[0]

    @property
    def coarsest(self) -> GridLevel:
        return self.levels[-1]

    def __len__(self):
        return len(self.levels)

    def __getitem__(self, item) -> LevelT:
        return self.levels[item]

    def active_levels(self) -> List[GridLevel]:
        return [lvl for lvl in self.levels if not lvl.is_dummy]

    def element_scaling(self, density: np.ndarray):
        r""" SIMP stiffness scaling :math:`E \rho_e^p` of each element, zero outside of the design domain """
        return self.e_modulus * np.where(self.active, density, 0.0) ** self.power_penalty

    def update_stencil(self, density: np.ndarray):
        """ Reassemble the stiffness operators of all levels after a density change """
        density = np.asarray(density, dtype=float)
        if density.size != self.finest.domain.nel:
            raise ValueError(f"Density has wrong size ({density.size}), expected {self.finest.domain.nel}")
        if not np.all(np.isfinite(density)):
            raise ValueError("Density contains non-finite values")

        active = self.active_levels()
        singular = not self.has_support
        K = self.assembler(self.element_scaling(density), self.constrained)
        self.finest.density[:] = density
        self.finest.set_stiffness(K, coarsest=len(active) == 1, singular=singular)

        for fine_lvl, coarse_lvl in zip(active[:-1], active[1:]):
            P = coarse_lvl.prolongation
            Kc = (P.T @ fine_lvl.stiffness @ P).tocsr()
            diag = Kc.diagonal()
            if np.any(coarse_lvl.constrained):
                Kc = Kc + sps.diags(coarse_lvl.constrained * np.mean(diag[~coarse_lvl.constrained]))
            coarse_lvl.density[:] = self._coarsen_density(fine_lvl, coarse_lvl)
            coarse_lvl.set_stiffness(Kc, coarsest=coarse_lvl is active[-1], singular=singular)

    def _coarsen_density(self, fine_lvl: GridLevel, coarse_lvl: GridLevel):
        """ Average of the fine element densities within each coarse element """
        f = fine_lvl.domain
        factor = f.nelx // coarse_lvl.domain.nelx
        rho = fine_lvl.density.reshape(f.nelz, f.nely, f.nelx)
        nz, ny, nx = f.nelz // factor, f.nely // factor, f.nelx // factor
        return rho.reshape(nz, factor, ny, factor, nx, factor).mean(axis=(1, 3, 5)).ravel()

    def reset(self):
        for lvl in self.active_levels():
            lvl.reset()

    def summary(self):
        lines = []
        for lvl in self.levels:
            tag = "skipped" if lvl.is_dummy else f"{lvl.ndof} dofs"
            lines.append(f"  level {lvl.index}: {lvl.domain.nelx} x {lvl.domain.nely} x {lvl.domain.nelz} ({tag})")
        return "\n".join(lines)


def check_load_region(hierarchy: Hierarchy):
    if not np.any(hierarchy.load_nodes):
        raise ValueError("The load region does not contain any node")
    if hierarchy.has_support and not np.any(hierarchy.fixed_nodes):
        warnings.warn("No nodes in the fixed region; the stiffness matrix is singular")
