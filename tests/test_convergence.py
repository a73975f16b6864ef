import unittest

import numpy as np

from pyrobusto.common.convergence import ConvergenceState


class TestConvergenceState(unittest.TestCase):
    def test_window_not_full(self):
        cs = ConvergenceState(1, window=3, tol=1e-2)
        self.assertFalse(cs.update(1.0, [0.1]))
        self.assertFalse(cs.update(1.0, [0.1]))
        self.assertEqual(cs.change, np.inf)
        self.assertTrue(cs.update(1.0, [0.1]))
        self.assertEqual(cs.change, 0.0)

    def test_relative_change(self):
        cs = ConvergenceState(0, window=2, tol=5e-3)
        cs.update(100.0)
        self.assertFalse(cs.update(101.0))
        self.assertAlmostEqual(cs.change, 1 / 101)
        self.assertTrue(cs.update(101.1))

    def test_sliding(self):
        cs = ConvergenceState(0, window=2, tol=1e-3)
        for c in [10.0, 5.0, 2.0, 2.0]:
            stable = cs.update(c)
        self.assertTrue(stable)
        self.assertEqual(len(cs), 2)

    def test_constraint_change(self):
        cs = ConvergenceState(2, window=2, tol=1e-3)
        cs.update(1.0, [0.5, 0.0])
        # Objective is stable, but a constraint is not
        self.assertFalse(cs.update(1.0, [0.5, 0.1]))
        self.assertTrue(cs.update(1.0, [0.5, 0.1]))

    def test_zero_values(self):
        cs = ConvergenceState(1, window=2, tol=1e-3)
        cs.update(1.0, [0.0])
        self.assertTrue(cs.update(1.0, [0.0]))

    def test_invalid(self):
        with self.assertRaises(ValueError):
            ConvergenceState(1, window=1)
        cs = ConvergenceState(2)
        with self.assertRaises(ValueError):
            cs.update(1.0, [0.0])


if __name__ == '__main__':
    unittest.main()
