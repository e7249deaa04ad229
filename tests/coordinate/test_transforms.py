import unittest
import numpy as np
from pygnssmeas.coordinate.transforms import (
    xyz2lla, lla2xyz, rot_ecef2ned, lla2ned, lla2hd, ecef2ned_velocity
)
from pygnssmeas.core.constants import RE_WGS84, E2_WGS84
from pygnssmeas.core.exceptions import InputShapeError


class TestCoordinateTransforms(unittest.TestCase):

    def setUp(self):
        # Test points
        self.mountain_view = np.array([37.422578, -122.081678, -28.0])
        self.tokyo = np.array([35.6762, 139.6503, 40.0])
        self.equator = np.array([0.0, 0.0, 0.0])

    def test_lla2xyz_equator(self):
        np.testing.assert_allclose(lla2xyz(self.equator), [RE_WGS84, 0.0, 0.0], atol=1e-9)

    def test_lla2xyz_pole(self):
        xyz = lla2xyz(np.array([90.0, 0.0, 0.0]))
        self.assertAlmostEqual(xyz[2], RE_WGS84 * np.sqrt(1 - E2_WGS84), delta=1e-6)
        self.assertLess(abs(xyz[0]), 1e-6)

    def test_round_trip(self):
        lla = np.vstack([self.mountain_view, self.tokyo, [-33.86, 151.21, 1500.0]])
        back = xyz2lla(lla2xyz(lla))
        self.assertEqual(back.shape, (3, 3))
        np.testing.assert_allclose(back[:, :2], lla[:, :2], atol=1e-8)
        np.testing.assert_allclose(back[:, 2], lla[:, 2], atol=1e-3)

    def test_single_row_shape(self):
        self.assertEqual(xyz2lla(lla2xyz(self.tokyo)).shape, (3,))

    def test_on_axis_is_nan(self):
        lla = xyz2lla(np.array([0.0, 0.0, 6.4e6]))
        self.assertTrue(np.all(np.isnan(lla)))

    def test_bad_shape(self):
        with self.assertRaises(InputShapeError):
            xyz2lla(np.zeros((2, 2)))
        with self.assertRaises(InputShapeError):
            lla2xyz(np.zeros(4))

    def test_rotation_matrix(self):
        R = rot_ecef2ned(0.0, 0.0)
        np.testing.assert_allclose(R, [[0, 0, 1], [0, 1, 0], [-1, 0, 0]], atol=1e-15)

        R = rot_ecef2ned(self.mountain_view[0], self.mountain_view[1])
        np.testing.assert_allclose(R @ R.T, np.eye(3), atol=1e-12)
        # down points at the ellipsoid normal, opposite to up
        up = lla2xyz(self.mountain_view + [0, 0, 1.0]) - lla2xyz(self.mountain_view)
        np.testing.assert_allclose(R @ up, [0.0, 0.0, -1.0], atol=1e-6)

    def test_ecef2ned_velocity(self):
        np.testing.assert_allclose(ecef2ned_velocity([0.0, 0.0, 1.0], 0.0, 0.0), [1.0, 0.0, 0.0], atol=1e-15)

    def test_lla2ned_north(self):
        north = self.equator + [1e-3, 0.0, 0.0]
        ned = lla2ned(north, self.equator)
        meridian_radius = RE_WGS84 * (1 - E2_WGS84)
        self.assertAlmostEqual(ned[0], meridian_radius * np.radians(1e-3), delta=1e-2)
        self.assertAlmostEqual(ned[1], 0.0, delta=1e-6)
        self.assertEqual(ned[2], 0.0)

    def test_lla2ned_down(self):
        above = self.mountain_view + [0.0, 0.0, 10.0]
        ned = lla2ned(above, self.mountain_view)
        np.testing.assert_allclose(ned, [0.0, 0.0, -10.0], atol=1e-6)

    def test_lla2ned_rows(self):
        lla1 = np.vstack([self.mountain_view, self.mountain_view + [1e-4, 1e-4, 0.0]])
        ned = lla2ned(lla1, self.mountain_view)
        self.assertEqual(ned.shape, (2, 3))
        self.assertGreater(ned[1, 0], 0.0)
        self.assertGreater(ned[1, 1], 0.0)

        with self.assertRaises(InputShapeError):
            lla2ned(lla1, np.vstack([self.mountain_view] * 3))

    def test_lla2hd(self):
        east = self.equator + [0.0, 1e-3, 0.0]
        dist, ne = lla2hd(east, self.equator)
        self.assertAlmostEqual(dist[0], RE_WGS84 * np.radians(1e-3), delta=1e-2)
        self.assertEqual(ne.shape, (1, 2))
        self.assertAlmostEqual(ne[0, 1], dist[0], delta=1e-6)


if __name__ == '__main__':
    unittest.main()
