#!/usr/bin/env python3
"""Test suite for reference trajectories and horizontal error"""

import unittest

import numpy as np

from pygnssmeas.core.data_structures import PvtEstimate, PvtTimeSeries
from pygnssmeas.core.exceptions import FatalInputError, InputShapeError
from pygnssmeas.gnss.reference import ReferencePvt, get_ref_pvti, horizontal_error_from_pvt

LLA0 = np.array([37.422578, -122.081678, -28.0])


class TestReferencePvt(unittest.TestCase):

    def test_stationary(self):
        ref = ReferencePvt.stationary(LLA0)
        self.assertTrue(ref.is_stationary)
        self.assertEqual(ref.lla_deg_deg_m.shape, (1, 3))
        self.assertIs(get_ref_pvti(ref, 12345.0), ref)

    def test_bad_shapes(self):
        with self.assertRaises(InputShapeError):
            ReferencePvt(lla_deg_deg_m=np.zeros((2, 2)))
        with self.assertRaises(InputShapeError):
            ReferencePvt(lla_deg_deg_m=np.zeros((2, 3)), fct_seconds=[1.0, 2.0, 3.0])


class TestGetRefPvti(unittest.TestCase):
    """Test reference lookup at measurement times"""

    def setUp(self):
        lla = np.vstack([LLA0, LLA0 + [1e-5, 0.0, 1.0], LLA0 + [2e-5, 0.0, 2.0], LLA0 + [3e-5, 0.0, 3.0]])
        vel = np.array([[1.0, 0.0, 0.0]] * 3 + [[3.0, 0.0, 0.0]])
        self.ref = ReferencePvt(lla_deg_deg_m=lla, fct_seconds=[100.0, 101.0, 102.0, 110.0], vel_ned_mps=vel)

    def test_exact_match(self):
        ref = get_ref_pvti(self.ref, 101.0)
        np.testing.assert_array_equal(ref.lla_deg_deg_m[0], self.ref.lla_deg_deg_m[1])
        np.testing.assert_array_equal(ref.fct_seconds, [101.0])

    def test_interpolated(self):
        ref = get_ref_pvti(self.ref, 101.25)
        expected = 0.75 * self.ref.lla_deg_deg_m[1] + 0.25 * self.ref.lla_deg_deg_m[2]
        np.testing.assert_allclose(ref.lla_deg_deg_m[0], expected, rtol=1e-12)
        np.testing.assert_allclose(ref.vel_ned_mps[0], [1.0, 0.0, 0.0])

    def test_gap_too_large(self):
        self.assertIsNone(get_ref_pvti(self.ref, 105.0))

    def test_outside_span(self):
        self.assertIsNone(get_ref_pvti(self.ref, 99.0))
        self.assertIsNone(get_ref_pvti(self.ref, 111.0))

    def test_decreasing_times(self):
        ref = ReferencePvt(lla_deg_deg_m=np.vstack([LLA0, LLA0]), fct_seconds=[2.0, 1.0])
        with self.assertRaises(FatalInputError):
            get_ref_pvti(ref, 1.5)


class TestHorizontalError(unittest.TestCase):

    def _pvt(self, lat_offsets, hdop=1.0):
        pvt = PvtTimeSeries()
        for k, dlat in enumerate(lat_offsets):
            if np.isnan(dlat):
                pvt.append(PvtEstimate(fct_seconds=float(k)))
            else:
                pvt.append(PvtEstimate(fct_seconds=float(k), lla_deg_deg_m=LLA0 + [dlat, 0.0, 0.0],
                                       xyz_m=np.zeros(3), hdop=hdop))
        return pvt

    def test_stationary_reference(self):
        # 1e-5 deg of latitude is about 1.11 m
        err = horizontal_error_from_pvt(self._pvt([0.0, 1e-5, np.nan]), LLA0)
        self.assertAlmostEqual(err.dist_m[0], 0.0, delta=1e-6)
        self.assertAlmostEqual(err.dist_m[1], 1.109, delta=0.01)
        self.assertTrue(np.isnan(err.dist_m[2]))
        self.assertGreater(err.test_ne_m[1, 0], 0.0)
        np.testing.assert_allclose(err.ref_ne_m[:2], 0.0, atol=1e-6)

    def test_hdop_threshold(self):
        err = horizontal_error_from_pvt(self._pvt([1e-5, 1e-5], hdop=5.0), LLA0, hdop_threshold=3.0)
        self.assertTrue(np.all(np.isnan(err.dist_m)))

    def test_moving_reference(self):
        ref = ReferencePvt(lla_deg_deg_m=np.vstack([LLA0, LLA0 + [1e-5, 0.0, 0.0]]), fct_seconds=[0.0, 1.0])
        err = horizontal_error_from_pvt(self._pvt([0.0, 0.0, 0.0]), ref)
        self.assertAlmostEqual(err.dist_m[0], 0.0, delta=1e-6)
        self.assertAlmostEqual(err.dist_m[1], 1.109, delta=0.01)
        self.assertTrue(np.isnan(err.dist_m[2]))


if __name__ == '__main__':
    unittest.main()
