""" Design sensitivities of the worst-case compliance, the volume and the manufacturing constraints """
import numpy as np


class SensitivityEngine:
    r""" Computes gradients with respect to the design variables

    At a converged worst case the state is self-adjoint, so the compliance sensitivity follows from the worst
    displacement without an adjoint solve:

    :math:`\frac{\partial c}{\partial \rho_e} = -p \rho_e^{p-1} E \mathbf{u}_e^\text{T} \mathbf{K}_0 \mathbf{u}_e`

    All element sensitivities are chained to the design variables through the ``backward`` of the design.

    Args:
        hierarchy: The grid hierarchy, of which the finest level holds the current density
        design: The design parametrization
    """
    def __init__(self, hierarchy, design):
        self.hierarchy = hierarchy
        self.design = design

    def element_compliance(self, displacement: np.ndarray):
        """ Compliance sensitivity with respect to the element densities """
        h = self.hierarchy
        rho = h.finest.density
        p = h.power_penalty
        energies = h.assembler.element_energies(displacement)
        drho = np.zeros_like(rho)
        act = h.active
        drho[act] = -p * h.e_modulus * rho[act] ** (p - 1) * energies[act]
        return drho

    def compliance(self, displacement: np.ndarray, scale: float = 1.0):
        """ Compliance sensitivity to the element densities, and its scaled design gradient """
        drho = self.element_compliance(displacement)
        return drho, scale * self.design.backward(drho)

    def volume(self, scale: float = 1.0):
        return scale * self.design.volume_gradient()

    def constraint(self, constraint, rho: np.ndarray, scale: float = 1.0):
        """ Aggregated value and scaled design gradient of a manufacturing constraint

        Returns:
            Tuple of the (unscaled) constraint value and the scaled gradient
        """
        value, drho = constraint.sensitivity(rho)
        return value, scale * self.design.backward(np.asarray(drho).ravel())
