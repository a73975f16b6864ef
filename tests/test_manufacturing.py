import unittest

import numpy as np
import numpy.testing as npt

import pyrobusto as pyr
from pyrobusto.modules.aggregation import PNorm, HFunction, KSFunction, Squared
from pyrobusto.modules.manufacturing import (difference_matrix, second_difference_matrix, gradient_operators,
                                             OverhangConstraint, DripConstraint)


def fd_testfn(x0, dx, df_an, df_fd, rtol=1e-4, atol=1e-7):
    npt.assert_allclose(df_an, df_fd, rtol=rtol, atol=atol)


class TestDifferenceOperators(unittest.TestCase):
    def test_linear(self):
        x = np.arange(6) * 0.5
        npt.assert_allclose(difference_matrix(6, 0.5) @ (3 * x + 1), 3.0)
        npt.assert_allclose(second_difference_matrix(6, 0.5)[1:-1] @ (3 * x + 1), 0.0, atol=1e-12)

    def test_quadratic(self):
        x = np.arange(6.0)
        npt.assert_allclose((second_difference_matrix(6) @ x ** 2)[1:-1], 2.0)

    def test_single(self):
        self.assertEqual(difference_matrix(1).nnz, 0)

    def test_gradient(self):
        domain = pyr.VoxelDomain(4, 3, 5, unit=0.5)
        c = domain.get_element_centers()
        field = 2 * c[:, 0] - c[:, 1] + 4 * c[:, 2]
        for G, slope in zip(gradient_operators(domain), [2.0, -1.0, 4.0]):
            npt.assert_allclose(G @ field, slope)


class TestOverhang(unittest.TestCase):
    def setUp(self):
        self.domain = pyr.VoxelDomain(4, 4, 6)
        z = self.domain.get_element_centers()[:, 2]
        self.upper = np.where(z > 3, 1.0, 0.0)
        self.lower = np.where(z < 3, 1.0, 0.0)

    def test_mask(self):
        con = OverhangConstraint(self.domain)
        self.assertEqual(np.sum(con.mask), self.domain.nel - 16)

    def test_solid(self):
        con = OverhangConstraint(self.domain)
        g, _ = con.local(np.ones(self.domain.nel))
        self.assertTrue(np.all(g < 0))
        self.assertEqual(con(np.ones(self.domain.nel)), 0.0)

    def test_floating_plate(self):
        con = OverhangConstraint(self.domain, angle=45)
        self.assertGreater(con(self.upper), 0.0)
        self.assertEqual(con(self.lower), 0.0)

    def test_angle(self):
        # A 45 degree slope is allowed at a print angle of 30 degrees, but not at 60 degrees
        c = self.domain.get_element_centers()
        rho = np.clip(c[:, 2] - c[:, 0] - 0.5, 0, 1)
        el = self.domain.elements
        interior = el[1:-1, :, 1:-1].ravel()
        for angle, allowed in [(30, True), (60, False)]:
            con = OverhangConstraint(self.domain, angle=angle)
            g = np.full(self.domain.nel, -1.0)
            g[con.mask], _ = con.local(rho)
            if allowed:
                self.assertTrue(np.all(g[interior] < 0))
            else:
                self.assertTrue(np.any(g[interior] > 0))

    def test_sensitivity(self):
        rho = np.random.default_rng(0).uniform(0.1, 1.0, self.domain.nel)
        for agg in [PNorm(), HFunction(), Squared(KSFunction())]:
            with self.subTest(agg=type(agg).__name__):
                con = OverhangConstraint(self.domain, aggregation=agg)
                val, drho = con.sensitivity(rho)
                npt.assert_allclose(val, con(rho))
                pyr.finite_difference(con, rho, drho, indices=range(0, self.domain.nel, 7), test_fn=fd_testfn,
                                      verbose=False)

    def test_build_direction(self):
        con = OverhangConstraint(self.domain, direction=(0, 0, -1))
        # Upside down, the lower block is floating
        self.assertGreater(con(self.lower), 0.0)

    def test_invalid(self):
        with self.assertRaises(ValueError):
            OverhangConstraint(self.domain, angle=90)
        with self.assertRaises(ValueError):
            OverhangConstraint(self.domain, direction=(0, 0, 0))


class TestDrip(unittest.TestCase):
    def setUp(self):
        self.domain = pyr.VoxelDomain(5, 5, 6)

    def test_tip(self):
        # A downward-pointing column ending in mid-air
        rho = np.zeros(self.domain.nel)
        el = self.domain.elements
        rho[el[2, 2, 3:].ravel()] = 1.0
        con = DripConstraint(self.domain, aggregation=PNorm())
        self.assertGreater(con(rho), 0.0)
        self.assertEqual(con(np.ones(self.domain.nel)), 0.0)

    def test_sensitivity(self):
        rho = np.random.default_rng(1).uniform(0.1, 1.0, self.domain.nel)
        con = DripConstraint(self.domain, aggregation=KSFunction(rho=5.0))
        val, drho = con.sensitivity(rho)
        pyr.finite_difference(con, rho, drho, indices=range(0, self.domain.nel, 5), test_fn=fd_testfn, verbose=False)

    def test_active(self):
        active = np.ones(self.domain.nel, dtype=bool)
        active[self.domain.elements[:, :, :2].ravel()] = False
        con = DripConstraint(self.domain, active=active)
        # The lowest active layer rests on the build plate
        self.assertEqual(np.sum(con.mask), self.domain.nel - 3 * 25)


if __name__ == '__main__':
    unittest.main()
