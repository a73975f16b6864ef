""" Configuration of a robust topology optimization run """
import dataclasses
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from .errors import InvalidModeError


class WorkMode(Enum):
    """ Structural mode: whether the structure is supported, and whether the load direction is free

    ======== ============ ====================
    Value    Support      Load direction
    -------- ------------ --------------------
    ``nscf`` none         constrained per node
    ``nsff`` none         free
    ``wscf`` fixed region constrained per node
    ``wsff`` fixed region free
    ======== ============ ====================
    """
    NO_SUPPORT_CONSTRAINED = "nscf"
    NO_SUPPORT_FREE = "nsff"
    WITH_SUPPORT_CONSTRAINED = "wscf"
    WITH_SUPPORT_FREE = "wsff"

    @property
    def has_support(self) -> bool:
        return self.value.startswith("ws")

    @property
    def free_direction(self) -> bool:
        return self.value.endswith("ff")

    @classmethod
    def parse(cls, mode):
        if isinstance(mode, cls):
            return mode
        for m in cls:
            if m.value == mode:
                return m
        raise InvalidModeError("work", mode, [m.value for m in cls])


SS_MODES = ("p", "p2", "h", "h2", "oh", "oh2")
"""Aggregation modes of the self-support constraint: p-norm, h-function and overhang (``2`` for squared)"""

DRIP_MODES = SS_MODES + ("exp", "exp2")
"""Aggregation modes of the drip constraint: the self-support modes and an exponential (KS) aggregation"""


@dataclass
class Parameters:
    """ All options of a robust optimization run

    Mode selectors (:attr:`work_mode`, :attr:`ss_mode`, :attr:`drip_mode`) should be changed with their setters, which
    validate the value before assigning it.

    The :attr:`optimizer` is ``"oc"``, ``"mma"`` or ``"auto"``. With ``"auto"`` the optimization uses OC for a density
    design with only the volume constraint, and MMA otherwise (spline coefficients, manufacturing constraints).

    :attr:`grid_resolution` and :attr:`shell_width` belong to the voxelization of the input geometry, which happens
    before a :class:`~pyrobusto.common.domain.VoxelDomain` is created. They are only logged with the run.
    """
    # Volume continuation
    volume_ratio: float = 0.3
    volume_decrease: float = 0.05
    start_ratio: float = 1.0

    # Design update
    design_step: float = 0.03
    damp_ratio: float = 0.5
    optimizer: str = "auto"
    max_iterations: int = 100

    # Material and filtering
    filter_radius: float = 2.0
    power_penalty: float = 3.0
    min_density: float = 1e-3
    youngs_modulus: float = 1.0
    poisson_ratio: float = 0.3
    heaviside: bool = False

    # Grid
    grid_resolution: int = 128
    shell_width: int = 3
    skip_layer: bool = True

    # Output
    log_density: bool = False
    log_compliance: bool = False

    # Spline design
    spline_partition: Tuple[int, int, int] = (8, 8, 8)
    spline_order: int = 2
    min_coefficient: float = -1.0
    max_coefficient: float = 1.0

    # Manufacturing
    default_print_angle: float = 45.0
    opt_print_angle: float = 45.0

    # Convergence window and tolerance; None lets the design type decide
    convergence_window: Optional[int] = None
    convergence_tol: Optional[float] = None
    incomplete_worst_case: bool = False

    seed: Optional[int] = None

    work_mode: WorkMode = WorkMode.WITH_SUPPORT_FREE
    ss_mode: str = "p"
    drip_mode: str = "p"

    def __post_init__(self):
        self.work_mode = WorkMode.parse(self.work_mode)
        self.set_ss_mode(self.ss_mode)
        self.set_drip_mode(self.drip_mode)
        self.spline_partition = tuple(int(p) for p in self.spline_partition)
        if len(self.spline_partition) != 3:
            raise ValueError(f"Spline partition needs three entries (x, y, z), got {self.spline_partition}")
        if not 0 < self.volume_ratio <= 1:
            raise ValueError(f"Volume ratio ({self.volume_ratio}) must be in (0, 1]")
        if not 0 <= self.volume_decrease < 1:
            raise ValueError(f"Volume decrease ({self.volume_decrease}) must be in [0, 1)")
        if self.min_coefficient >= self.max_coefficient:
            raise ValueError("Minimum spline coefficient must be smaller than the maximum")
        if self.max_iterations < 1:
            raise ValueError(f"Maximum number of iterations must be at least 1, got {self.max_iterations}")
        if self.optimizer.lower() not in ("auto", "oc", "mma"):
            raise ValueError(f"Unknown optimizer '{self.optimizer}'. Options are ['auto', 'oc', 'mma']")

    @property
    def isosurface_value(self) -> float:
        """Coefficient value at the material boundary of a spline design"""
        return (self.min_coefficient + self.max_coefficient) / 2

    def set_work_mode(self, mode):
        self.work_mode = WorkMode.parse(mode)

    def set_ss_mode(self, mode: str):
        if mode not in SS_MODES:
            raise InvalidModeError("self-support", mode, SS_MODES)
        self.ss_mode = mode

    def set_drip_mode(self, mode: str):
        if mode not in DRIP_MODES:
            raise InvalidModeError("drip", mode, DRIP_MODES)
        self.drip_mode = mode

    def as_dict(self) -> dict:
        d = dataclasses.asdict(self)
        d['work_mode'] = self.work_mode.value
        return d

    def write(self, filename, version: str = None, extra: str = None):
        """ Logs the parameters of this run to a text file

        Args:
            filename: File location
            version (optional): Version tag to write in the header, defaults to the package version
            extra (optional): Additional line to write, e.g. the command line used to start the run
        """
        if version is None:
            from . import __version__ as version
        Path(filename).parent.mkdir(parents=True, exist_ok=True)
        with open(filename, "w") as f:
            f.write(f"[version] {version}\n")
            if extra is not None:
                f.write(f"{extra}\n")
            for key, val in self.as_dict().items():
                f.write(f"{key} = {val}\n")
