import unittest

import numpy as np
import numpy.testing as npt

import pyrobusto as pyr


class TestVoxelDomain(unittest.TestCase):
    def test_numbering(self):
        domain = pyr.VoxelDomain(4, 3, 2)
        self.assertEqual(domain.nel, 24)
        self.assertEqual(domain.nnodes, 5 * 4 * 3)
        self.assertEqual(domain.ndof, 3 * 60)
        self.assertEqual(domain.get_elemnumber(1, 2, 1), (1 * 3 + 2) * 4 + 1)
        self.assertEqual(domain.get_nodenumber(1, 2, 1), (1 * 4 + 2) * 5 + 1)
        npt.assert_equal(domain.get_dofnumber(2), [6, 7, 8])

    def test_element_connectivity(self):
        domain = pyr.VoxelDomain(2, 2, 2)
        conn = domain.conn[domain.get_elemnumber(1, 1, 1)]
        pos = domain.get_node_position(conn)
        npt.assert_allclose(pos.min(axis=0), [1, 1, 1])
        npt.assert_allclose(pos.max(axis=0), [2, 2, 2])
        # The first node is the minimum corner, the last node the maximum corner
        npt.assert_allclose(pos[0], [1, 1, 1])
        npt.assert_allclose(pos[-1], [2, 2, 2])

    def test_positions_with_unit_and_origin(self):
        domain = pyr.VoxelDomain(2, 2, 2, unit=0.5, origin=(1.0, 0.0, -1.0))
        npt.assert_allclose(domain.get_node_position(domain.nnodes - 1), [2.0, 1.0, 0.0])
        npt.assert_allclose(domain.get_element_centers()[0], [1.25, 0.25, -0.75])
        npt.assert_allclose(domain.domain_size, [1, 1, 1])

    def test_node_mask(self):
        domain = pyr.VoxelDomain(3, 1, 1)
        mask = domain.get_node_mask(np.array([True, False, False]))
        self.assertEqual(np.sum(mask), 8)
        pos = domain.get_node_position()[mask]
        self.assertLessEqual(pos[:, 0].max(), 1.0)

    def test_coarsen(self):
        domain = pyr.VoxelDomain(8, 4, 2, unit=0.5)
        self.assertTrue(domain.can_coarsen())
        coarse = domain.coarsen()
        npt.assert_equal(coarse.size, [4, 2, 1])
        self.assertEqual(coarse.unit, 1.0)
        npt.assert_allclose(coarse.domain_size, domain.domain_size)
        self.assertFalse(coarse.can_coarsen())
        with self.assertRaises(ValueError):
            coarse.coarsen()

    def test_invalid_sizes(self):
        with self.assertRaises(ValueError):
            pyr.VoxelDomain(0, 1, 1)
        with self.assertRaises(ValueError):
            pyr.VoxelDomain(1, 1, 1, unit=0.0)


def test_write_vti(tmp_path):
    domain = pyr.VoxelDomain(2, 3, 4)
    fname = tmp_path / "field.vti"
    domain.write_to_vti({"density": np.ones(domain.nel), "u": np.zeros(domain.ndof)}, filename=str(fname))
    content = fname.read_bytes()
    assert b'WholeExtent="0 2 0 3 0 4"' in content
    assert b'Name="density"' in content
    assert b'Name="u" NumberOfComponents="3"' in content
