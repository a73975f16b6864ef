import unittest

import numpy as np
import numpy.testing as npt

import pyrobusto as pyr
from pyrobusto.common.hierarchy import interpolation_matrix, check_load_region, GridLevel, EmptyLevel, Hierarchy


def bottom_fixed_top_loaded(domain):
    top = domain.domain_size[2]
    return pyr.BoundaryConditions(fixed=lambda p: np.isclose(p[:, 2], 0.0),
                                  load=lambda p: np.isclose(p[:, 2], top))


class TestInterpolation(unittest.TestCase):
    def test_constant_preserved(self):
        fine = pyr.VoxelDomain(4, 6, 2)
        coarse = fine.coarsen()
        P = interpolation_matrix(fine, coarse)
        self.assertEqual(P.shape, (fine.ndof, coarse.ndof))
        npt.assert_allclose(P @ np.ones(coarse.ndof), 1.0)

    def test_linear_field_preserved(self):
        fine = pyr.VoxelDomain(4, 4, 4)
        coarse = fine.coarsen()
        P = interpolation_matrix(fine, coarse, ndof=1)
        xc = coarse.get_node_position()
        xf = fine.get_node_position()
        field = lambda x: 1.0 + 2.0 * x[:, 0] - x[:, 1] + 0.5 * x[:, 2]
        npt.assert_allclose(P @ field(xc), field(xf))

    def test_coincident_nodes(self):
        fine = pyr.VoxelDomain(2, 2, 2)
        coarse = fine.coarsen()
        P = interpolation_matrix(fine, coarse, ndof=1).toarray()
        # Fine node at the corner coincides with the coarse corner node
        npt.assert_allclose(P[fine.get_nodenumber(2, 2, 2), coarse.get_nodenumber(1, 1, 1)], 1.0)
        # The center node is the average of all eight coarse nodes
        npt.assert_allclose(P[fine.get_nodenumber(1, 1, 1)], 0.125)


class TestHierarchy(unittest.TestCase):
    def setUp(self):
        self.domain = pyr.VoxelDomain(8, 4, 4)
        self.bcs = bottom_fixed_top_loaded(self.domain)

    def test_build(self):
        h = Hierarchy.build(self.domain, self.bcs)
        self.assertEqual(len(h), 3)
        ndofs = [lvl.domain.ndof for lvl in h.levels]
        self.assertTrue(all(n1 > n2 for n1, n2 in zip(ndofs[:-1], ndofs[1:])))
        self.assertFalse(np.any(h.load_nodes & h.fixed_nodes))
        self.assertEqual(np.sum(h.fixed_nodes), 9 * 5)

    def test_skip_layer(self):
        h = Hierarchy.build(self.domain, self.bcs, skip_layer=True)
        self.assertTrue(h[1].is_dummy)
        self.assertEqual(len(h.active_levels()), 2)
        P = h.coarsest.prolongation
        self.assertEqual(P.shape, (h.finest.ndof, h.coarsest.ndof))

        # Interpolation over two levels still reproduces constants away from the support
        v = P @ np.ones(h.coarsest.ndof)
        free = ~h.constrained
        npt.assert_allclose(v[free], 1.0)
        npt.assert_allclose(v[~free], 0.0)

    def test_skip_ignores_finest_and_coarsest(self):
        h = Hierarchy.build(self.domain, self.bcs, skip=[0, 2])
        self.assertTrue(all(not lvl.is_dummy for lvl in h.levels))

    def test_n_levels(self):
        h = Hierarchy.build(self.domain, self.bcs, n_levels=2)
        self.assertEqual(len(h), 2)

    def test_invalid_levels(self):
        d0 = self.domain
        d1 = d0.coarsen()
        fixed = np.zeros(d0.nnodes, dtype=bool)
        load = np.ones(d0.nnodes, dtype=bool)
        dirs = np.zeros((d0.nnodes, 3))
        with self.assertRaises(ValueError):
            Hierarchy([GridLevel(0, d0), EmptyLevel(1, d1)], fixed, load, dirs, True)
        with self.assertRaises(ValueError):
            Hierarchy([GridLevel(0, d0), GridLevel(1, d0)], fixed, load, dirs, True)

    def test_update_stencil(self):
        h = Hierarchy.build(self.domain, self.bcs)
        rho = np.random.default_rng(0).uniform(0.1, 1.0, self.domain.nel)
        h.update_stencil(rho)
        npt.assert_allclose(h.finest.density, rho)
        levels = h.active_levels()
        for fine, coarse in zip(levels[:-1], levels[1:]):
            Kc = coarse.stiffness
            npt.assert_allclose((Kc - Kc.T).toarray(), 0.0, atol=1e-12)
            free = ~coarse.constrained
            Kg = (coarse.prolongation.T @ fine.stiffness @ coarse.prolongation).toarray()
            npt.assert_allclose(Kc.toarray()[np.ix_(free, free)], Kg[np.ix_(free, free)], atol=1e-12)
            npt.assert_allclose(np.mean(coarse.density), np.mean(fine.density))
        self.assertIsNotNone(h.coarsest.coarse_solver)

    def test_update_stencil_invalid(self):
        h = Hierarchy.build(self.domain, self.bcs)
        with self.assertRaises(ValueError):
            h.update_stencil(np.ones(self.domain.nel - 1))
        rho = np.ones(self.domain.nel)
        rho[3] = np.nan
        with self.assertRaises(ValueError):
            h.update_stencil(rho)

    def test_inactive_elements(self):
        active = np.ones(self.domain.nel, dtype=bool)
        active[self.domain.elements[:4, :, :].ravel()] = False
        h = Hierarchy.build(self.domain, self.bcs, active=active)
        npt.assert_allclose(h.element_scaling(np.ones(self.domain.nel))[~active], 0.0)
        # Nodes without any stiffness are constrained
        inactive_nodes = ~self.domain.get_node_mask(active)
        self.assertTrue(np.all(h.constrained[np.repeat(inactive_nodes, 3)]))

    def test_empty_load_region(self):
        bcs = pyr.BoundaryConditions(fixed=lambda p: np.isclose(p[:, 2], 0.0),
                                     load=lambda p: np.isclose(p[:, 2], 0.0))
        h = Hierarchy.build(self.domain, bcs)
        with self.assertRaises(ValueError):
            check_load_region(h)


if __name__ == '__main__':
    unittest.main()
