import unittest

import numpy as np
import numpy.testing as npt

import pyrobusto as pyr
from pyrobusto.modules.projection import ForceProjection, rigid_body_modes


class TestRigidBodyModes(unittest.TestCase):
    def test_shape_and_rank(self):
        pos = pyr.VoxelDomain(2, 2, 2).get_node_position()
        R = rigid_body_modes(pos)
        self.assertEqual(R.shape, (3 * pos.shape[0], 6))
        self.assertEqual(np.linalg.matrix_rank(R), 6)

    def test_mask(self):
        pos = pyr.VoxelDomain(2, 2, 2).get_node_position()
        mask = pos[:, 2] == 2
        R = rigid_body_modes(pos, mask).reshape(-1, 3, 6)
        npt.assert_allclose(R[~mask], 0.0)
        # Rotations are about the centroid of the selected nodes
        npt.assert_allclose(np.sum(R[mask][:, :, 3:], axis=0), 0.0, atol=1e-14)


class TestForceProjection(unittest.TestCase):
    def setUp(self):
        self.domain = pyr.VoxelDomain(2, 2, 2)
        self.pos = self.domain.get_node_position()
        self.fixed = self.pos[:, 2] == 0
        self.load = self.pos[:, 2] == 2
        self.dirs = np.tile([0.0, 0.0, -2.0], (self.domain.nnodes, 1))
        self.f = np.random.default_rng(0).uniform(-1, 1, self.domain.ndof)

    def make(self, mode):
        return ForceProjection(self.pos, self.fixed, self.load, mode, load_directions=self.dirs)

    def test_idempotent(self):
        for mode in ["wsff", "wscf", "nsff", "nscf"]:
            with self.subTest(mode=mode):
                proj = self.make(mode)
                pf = proj(self.f)
                npt.assert_allclose(proj(pf), pf, atol=1e-12)
                self.assertGreater(np.linalg.norm(pf), 0.0)

    def test_load_region_only(self):
        for mode in ["wsff", "wscf", "nsff", "nscf"]:
            with self.subTest(mode=mode):
                pf = self.make(mode)(self.f).reshape(-1, 3)
                npt.assert_allclose(pf[~self.load], 0.0)

    def test_wsff(self):
        pf = self.make("wsff")(self.f)
        npt.assert_allclose(pf.reshape(-1, 3)[self.load], self.f.reshape(-1, 3)[self.load])

    def test_constrained_direction(self):
        for mode in ["wscf", "nscf"]:
            with self.subTest(mode=mode):
                pf = self.make(mode)(self.f).reshape(-1, 3)
                npt.assert_allclose(pf[:, :2], 0.0)

    def test_self_equilibrated(self):
        R = rigid_body_modes(self.pos, self.load)
        for mode in ["nsff", "nscf"]:
            with self.subTest(mode=mode):
                pf = self.make(mode)(self.f)
                npt.assert_allclose(R.T @ pf, 0.0, atol=1e-12)

    def test_complementary(self):
        u = np.random.default_rng(1).uniform(-1, 1, self.domain.ndof)
        proj = self.make("nsff")
        uc = proj.complementary(u)
        npt.assert_allclose(rigid_body_modes(self.pos).T @ uc, 0.0, atol=1e-12)
        npt.assert_allclose(self.make("wsff").complementary(u), u)

    def test_support_force(self):
        fs = self.make("wsff").support_force(self.f)
        self.assertEqual(fs.shape, (np.sum(self.load), 3))

    def test_normalize(self):
        npt.assert_allclose(np.linalg.norm(ForceProjection.normalize(self.f)), 1.0)
        with self.assertRaises(pyr.InvalidResultError):
            ForceProjection.normalize(np.zeros(5))
        with self.assertRaises(pyr.InvalidResultError):
            ForceProjection.normalize(np.array([np.nan, 1.0]))

    def test_support_excluded_from_load(self):
        proj = ForceProjection(self.pos, self.fixed, np.ones(self.domain.nnodes, dtype=bool), "wsff")
        self.assertFalse(np.any(proj.load_mask & self.fixed))

    def test_empty_subspace(self):
        with self.assertRaises(ValueError):
            ForceProjection(self.pos, self.fixed, self.fixed, "wsff")
        with self.assertRaises(ValueError):
            ForceProjection(self.pos, self.fixed, self.load, "wscf")
        # A single node cannot carry a self-equilibrated load
        single = np.zeros(self.domain.nnodes, dtype=bool)
        single[-1] = True
        with self.assertRaises(ValueError):
            ForceProjection(self.pos, self.fixed, single, "nsff")

    def test_invalid_mode(self):
        with self.assertRaises(pyr.InvalidModeError):
            self.make("xxxx")


if __name__ == '__main__':
    unittest.main()
