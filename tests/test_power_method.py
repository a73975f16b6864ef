import unittest
from types import SimpleNamespace
from unittest import mock
import warnings

import numpy as np
import numpy.testing as npt
import pytest

import pyrobusto as pyr
from pyrobusto.modules.power_method import ModifiedPowerMethod
from pyrobusto.modules.projection import ForceProjection, rigid_body_modes


class DiagonalLevel:
    """ A single-node level with stiffness ``k * I`` """
    def __init__(self, k=4.0):
        self.k = k
        self.ndof = 3
        self.force = np.zeros(3)
        self.displacement = np.zeros(3)

    def reset(self):
        self.displacement[:] = 0.0

    def compliance(self):
        return float(self.displacement @ (self.k * self.displacement))


def make_single_node(k=4.0, residual=0.0):
    level = DiagonalLevel(k)
    context = SimpleNamespace(level=level, has_support=True,
                              random_force=lambda: np.array([0.3, -0.2, 0.5]))

    def vcycle():
        level.displacement[:] = level.force / level.k
        return residual
    proj = ForceProjection(np.zeros((1, 3)), np.array([False]), np.array([True]), "wsff")
    return context, proj, vcycle


class TestSingleNode(unittest.TestCase):
    def test_worst_case(self):
        context, proj, vcycle = make_single_node()
        pm = ModifiedPowerMethod(context, proj, vcycle)
        wc = pm()
        npt.assert_allclose(wc.compliance, 0.25)
        npt.assert_allclose(np.linalg.norm(wc.force), 1.0)
        self.assertTrue(wc.converged)
        self.assertEqual(wc.support_force.shape, (1, 3))

    def test_initial_force(self):
        context, proj, vcycle = make_single_node()
        wc = ModifiedPowerMethod(context, proj, vcycle)(f0=np.array([0.0, 0.0, 2.0]))
        npt.assert_allclose(wc.force, [0.0, 0.0, 1.0])

    def test_divergence(self):
        context, proj, vcycle = make_single_node(residual=1e5)
        hook = mock.Mock()
        pm = ModifiedPowerMethod(context, proj, vcycle, on_failure=hook)
        with self.assertRaises(pyr.NumericalDivergenceError) as cm:
            pm()
        hook.assert_called_once()
        self.assertEqual(cm.exception.iteration, 1)
        self.assertIsNotNone(cm.exception.displacement)

    def test_nan_displacement(self):
        level = DiagonalLevel()
        context = SimpleNamespace(level=level, has_support=True, random_force=lambda: np.ones(3))

        def vcycle():
            level.displacement[:] = np.nan
            return 0.5
        proj = ForceProjection(np.zeros((1, 3)), np.array([False]), np.array([True]), "wsff")
        hook = mock.Mock()
        with self.assertRaises(pyr.InvalidResultError):
            ModifiedPowerMethod(context, proj, vcycle, on_failure=hook)()
        hook.assert_called_once()

    def test_iteration_limit(self):
        context, proj, _ = make_single_node()
        level = context.level

        def vcycle():
            level.displacement[:] = level.force / level.k
            return 0.5
        pm = ModifiedPowerMethod(context, proj, vcycle, max_it=7)
        with warnings.catch_warnings(record=True) as w:
            warnings.simplefilter("always")
            wc = pm()
        self.assertEqual(wc.iterations, 7)
        self.assertFalse(wc.converged)
        self.assertTrue(any("iteration limit" in str(wi.message) for wi in w))

    def test_incomplete_ignores_residual(self):
        context, proj, _ = make_single_node()
        level = context.level

        def vcycle():
            level.displacement[:] = level.force / level.k
            return 0.5
        wc = ModifiedPowerMethod(context, proj, vcycle).incomplete()
        self.assertTrue(wc.converged)
        self.assertEqual(wc.iterations, 1)


class TestCantilever(unittest.TestCase):
    def test_dominant_eigenvalue(self):
        domain = pyr.VoxelDomain(4, 4, 4)
        bcs = pyr.BoundaryConditions(fixed=lambda p: np.isclose(p[:, 2], 0.0),
                                     load=lambda p: np.isclose(p[:, 2], 4.0))
        params = pyr.Parameters(seed=0, skip_layer=False)
        context = pyr.SolverContext.create(domain, bcs, params)
        context.update_stencil(np.ones(domain.nel))
        pm = ModifiedPowerMethod(context, context.projection, context.vcycle)
        wc = pm()
        self.assertTrue(wc.converged)

        K = context.level.stiffness.toarray()
        load = np.repeat(context.hierarchy.load_nodes, 3)
        lam = np.linalg.eigvalsh(np.linalg.inv(K)[np.ix_(load, load)])
        npt.assert_allclose(wc.compliance, lam[-1], rtol=2e-2)

        # Restarting from the worst force converges to the same worst case
        wc2 = pm(f0=wc.force)
        npt.assert_allclose(wc2.compliance, wc.compliance, rtol=2e-2)



def free_block(nx, ny, nz):
    """ Unsupported block, loaded vertically on its top and bottom faces """
    domain = pyr.VoxelDomain(nx, ny, nz)
    bcs = pyr.BoundaryConditions(fixed=lambda p: np.zeros(p.shape[0], dtype=bool),
                                 load=lambda p: np.logical_or(np.isclose(p[:, 2], 0.0), np.isclose(p[:, 2], nz)),
                                 force=lambda p: np.tile([0.0, 0.0, 1.0], (p.shape[0], 1)))
    return domain, bcs


@pytest.mark.parametrize("mode", ["nsff", "nscf"])
@pytest.mark.parametrize("size", [(4, 4, 4), (8, 4, 4)])
def test_unsupported_worst_case(mode, size):
    domain, bcs = free_block(*size)
    context = pyr.SolverContext.create(domain, bcs, pyr.Parameters(work_mode=mode, seed=0))
    assert not context.has_support
    context.update_stencil(np.ones(domain.nel))
    assert isinstance(context.hierarchy.coarsest.coarse_solver, pyr.solvers.SolverDensePseudoInverse)

    pm = ModifiedPowerMethod(context, context.projection, context.vcycle, max_it=2000)
    wc = pm()
    assert wc.converged

    # The worst load is self-equilibrated and the displacement has no rigid body motion
    R = rigid_body_modes(domain.get_node_position())
    npt.assert_allclose(R.T @ wc.force, 0.0, atol=1e-10)
    npt.assert_allclose(R.T @ wc.displacement, 0.0, atol=1e-8 * np.linalg.norm(wc.displacement))

    # Largest eigenvalue of P K^+ P
    K = context.level.stiffness.toarray()
    P = np.column_stack([context.projection.project(e) for e in np.eye(K.shape[0])])
    A = P @ np.linalg.pinv(K, rcond=1e-10, hermitian=True) @ P
    lam = np.linalg.eigvalsh(0.5 * (A + A.T))
    npt.assert_allclose(wc.compliance, lam[-1], rtol=1e-3)
