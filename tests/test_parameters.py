import unittest

import pyrobusto as pyr
from pyrobusto.parameters import WorkMode, SS_MODES, DRIP_MODES


class TestWorkMode(unittest.TestCase):
    def test_properties(self):
        self.assertTrue(WorkMode("wsff").has_support)
        self.assertTrue(WorkMode("wsff").free_direction)
        self.assertTrue(WorkMode("wscf").has_support)
        self.assertFalse(WorkMode("wscf").free_direction)
        self.assertFalse(WorkMode("nsff").has_support)
        self.assertFalse(WorkMode("nscf").free_direction)

    def test_parse(self):
        self.assertIs(WorkMode.parse("nscf"), WorkMode.NO_SUPPORT_CONSTRAINED)
        self.assertIs(WorkMode.parse(WorkMode.WITH_SUPPORT_FREE), WorkMode.WITH_SUPPORT_FREE)
        with self.assertRaises(pyr.InvalidModeError) as cm:
            WorkMode.parse("wsxx")
        self.assertIn("wsxx", str(cm.exception))
        self.assertEqual(cm.exception.kind, "work")


class TestParameters(unittest.TestCase):
    def test_defaults(self):
        p = pyr.Parameters()
        self.assertEqual(p.volume_ratio, 0.3)
        self.assertEqual(p.volume_decrease, 0.05)
        self.assertEqual(p.work_mode, WorkMode.WITH_SUPPORT_FREE)
        self.assertEqual(p.ss_mode, "p")
        self.assertEqual(p.isosurface_value, 0.0)

    def test_string_mode(self):
        p = pyr.Parameters(work_mode="nsff")
        self.assertIs(p.work_mode, WorkMode.NO_SUPPORT_FREE)

    def test_invalid_mode_keeps_configuration(self):
        p = pyr.Parameters(ss_mode="h2", drip_mode="exp")
        with self.assertRaises(pyr.InvalidModeError):
            p.set_work_mode("abcd")
        with self.assertRaises(pyr.InvalidModeError):
            p.set_ss_mode("exp")
        with self.assertRaises(pyr.InvalidModeError):
            p.set_drip_mode("q")
        self.assertEqual(p.work_mode, WorkMode.WITH_SUPPORT_FREE)
        self.assertEqual(p.ss_mode, "h2")
        self.assertEqual(p.drip_mode, "exp")

    def test_modes(self):
        self.assertIn("exp2", DRIP_MODES)
        self.assertNotIn("exp", SS_MODES)
        p = pyr.Parameters()
        p.set_drip_mode("exp2")
        self.assertEqual(p.drip_mode, "exp2")

    def test_invalid_values(self):
        with self.assertRaises(ValueError):
            pyr.Parameters(volume_ratio=0.0)
        with self.assertRaises(ValueError):
            pyr.Parameters(volume_decrease=1.0)
        with self.assertRaises(ValueError):
            pyr.Parameters(max_iterations=0)
        with self.assertRaises(ValueError):
            pyr.Parameters(optimizer="sgd")
        with self.assertRaises(ValueError):
            pyr.Parameters(spline_partition=(4, 4))
        with self.assertRaises(ValueError):
            pyr.Parameters(min_coefficient=1.0, max_coefficient=1.0)

    def test_invalid_mode_is_value_error(self):
        with self.assertRaises(ValueError):
            pyr.Parameters(ss_mode="x")


def test_write(tmp_path):
    p = pyr.Parameters(volume_ratio=0.25, work_mode="nscf")
    fname = tmp_path / "out" / "parameters.txt"
    p.write(fname, extra="[cmd] run")
    lines = fname.read_text().splitlines()
    assert lines[0] == f"[version] {pyr.__version__}"
    assert lines[1] == "[cmd] run"
    assert "volume_ratio = 0.25" in lines
    assert "work_mode = nscf" in lines


def test_write_voxelization_settings(tmp_path):
    p = pyr.Parameters(grid_resolution=64, shell_width=2)
    fname = tmp_path / "parameters.txt"
    p.write(fname)
    lines = fname.read_text().splitlines()
    assert "grid_resolution = 64" in lines
    assert "shell_width = 2" in lines
    assert "optimizer = auto" in lines
