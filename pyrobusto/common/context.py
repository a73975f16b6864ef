""" Explicit owner of the numerical state shared by the worst-case analysis and the optimization loop """
import numpy as np

from .domain import VoxelDomain
from .hierarchy import BoundaryConditions, Hierarchy, check_load_region
from ..modules.projection import ForceProjection
from ..parameters import Parameters
from ..solvers.multigrid import VCycle


class SolverContext:
    """ Holds the grid hierarchy, the force projection, the V-cycle solver and the random generator of one run

    Components borrow the level buffers for the duration of a call. The worst force and displacement of the finest
    level are the only fields that persist between outer iterations.

    Args:
        hierarchy: The grid hierarchy
        projection: Force projection of the structural mode
        vcycle: Multigrid cycle on the hierarchy
        rng: Random generator used for seeding forces and designs
    """
    def __init__(self, hierarchy: Hierarchy, projection: ForceProjection, vcycle: VCycle,
                 rng: np.random.Generator = None):
        self.hierarchy = hierarchy
        self.projection = projection
        self.vcycle = vcycle
        self.rng = np.random.default_rng() if rng is None else rng

    @classmethod
    def create(cls, domain: VoxelDomain, bcs: BoundaryConditions, params: Parameters = None, active=None,
               n_levels: int = None, skip=None, presmooth: int = 1, postsmooth: int = 1, smoother: str = "sor",
               verbosity: int = 0):
        """ Build the hierarchy and its collaborators for a domain

        Args:
            domain: The finest voxel domain
            bcs: Boundary conditions
            params (optional): Run parameters (material, structural mode, skip-layer preference, seed)
            active (optional): Boolean mask of elements that belong to the design domain
            n_levels (optional): Maximum number of grid levels
            skip (optional): Indices of levels to skip
            presmooth (optional): Smoothing sweeps on the way down of the V-cycle
            postsmooth (optional): Smoothing sweeps on the way up of the V-cycle
            smoother (optional): ``"sor"`` or ``"jacobi"``
            verbosity (optional): Log level
        """
        params = Parameters() if params is None else params
        mode = params.work_mode
        hierarchy = Hierarchy.build(domain, bcs, has_support=mode.has_support, active=active, n_levels=n_levels,
                                    skip=skip, skip_layer=params.skip_layer, smoother=smoother,
                                    e_modulus=params.youngs_modulus, poisson_ratio=params.poisson_ratio,
                                    power_penalty=params.power_penalty)
        check_load_region(hierarchy)
        if verbosity >= 1:
            print(f"Grid hierarchy with {len(hierarchy.active_levels())} active levels of {len(hierarchy)}:")
            print(hierarchy.summary())

        projection = ForceProjection(domain.get_node_position(), hierarchy.fixed_nodes, hierarchy.load_nodes, mode,
                                     load_directions=hierarchy.load_directions, active_mask=hierarchy.active_nodes)
        vcycle = VCycle(hierarchy, presmooth=presmooth, postsmooth=postsmooth, verbosity=verbosity)
        return cls(hierarchy, projection, vcycle, rng=np.random.default_rng(params.seed))

    @property
    def level(self):
        """ The finest grid level, on which compliance and worst force are measured """
        return self.hierarchy.finest

    @property
    def has_support(self) -> bool:
        return self.hierarchy.has_support

    def random_force(self):
        """ Uniformly random nodal force in [-1, 1] """
        return self.rng.uniform(-1.0, 1.0, size=self.level.ndof)

    def update_stencil(self, density: np.ndarray):
        self.hierarchy.update_stencil(density)
