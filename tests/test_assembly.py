import unittest

import numpy as np
import numpy.testing as npt

import pyrobusto as pyr
from pyrobusto.modules.assembly import element_stiffness, get_D, StiffnessAssembler
from pyrobusto.modules.projection import rigid_body_modes


class TestElementStiffness(unittest.TestCase):
    def test_symmetry_and_rigid_modes(self):
        domain = pyr.VoxelDomain(1, 1, 1)
        KE = element_stiffness(domain, 1.0, 0.3)
        self.assertEqual(KE.shape, (24, 24))
        npt.assert_allclose(KE, KE.T, atol=1e-14)

        lam = np.linalg.eigvalsh(KE)
        self.assertEqual(np.sum(np.abs(lam) < 1e-10 * lam.max()), 6)
        self.assertTrue(np.all(lam > -1e-12))

        # Rigid body motions do not produce forces
        pos = domain.get_node_position(domain.conn[0])
        R = rigid_body_modes(pos)
        npt.assert_allclose(KE @ R, 0.0, atol=1e-12)

    def test_known_value(self):
        KE = element_stiffness(pyr.VoxelDomain(1, 1, 1), 1.0, 0.3)
        npt.assert_allclose(KE[0, 0], 0.2350427, rtol=1e-6)

    def test_scaling(self):
        d1 = pyr.VoxelDomain(1, 1, 1, unit=1.0)
        d2 = pyr.VoxelDomain(1, 1, 1, unit=2.0)
        # Stiffness of a hexahedron scales linearly with its size and Young's modulus
        npt.assert_allclose(element_stiffness(d2, 3.0), 2 * 3 * element_stiffness(d1, 1.0))

    def test_material_matrix(self):
        D = get_D(1.0, 0.3)
        npt.assert_allclose(D, D.T)
        npt.assert_allclose(D[3, 3], 1 / (2 * 1.3))


class TestStiffnessAssembler(unittest.TestCase):
    def setUp(self):
        self.domain = pyr.VoxelDomain(3, 2, 2)
        self.KE = element_stiffness(self.domain)
        self.asm = StiffnessAssembler(self.domain, self.KE)

    def test_assembly(self):
        K = self.asm(np.ones(self.domain.nel))
        self.assertEqual(K.shape, (self.domain.ndof, self.domain.ndof))
        npt.assert_allclose((K - K.T).toarray(), 0.0, atol=1e-14)
        R = rigid_body_modes(self.domain.get_node_position())
        npt.assert_allclose(K @ R, 0.0, atol=1e-11)

    def test_constrained(self):
        constrained = np.zeros(self.domain.ndof, dtype=bool)
        constrained[:6] = True
        K = self.asm(np.ones(self.domain.nel), constrained).toarray()
        npt.assert_allclose(np.diag(K)[:6], np.max(self.KE))
        npt.assert_allclose(K[:6, 6:], 0.0)
        npt.assert_allclose(K[6:, :6], 0.0)

    def test_element_energies(self):
        scale = np.random.default_rng(0).uniform(0.1, 1.0, self.domain.nel)
        u = np.random.default_rng(1).uniform(-1.0, 1.0, self.domain.ndof)
        K = self.asm(scale)
        npt.assert_allclose(np.sum(scale * self.asm.element_energies(u)), u @ (K @ u))

    def test_wrong_size(self):
        with self.assertRaises(ValueError):
            self.asm(np.ones(self.domain.nel + 1))
