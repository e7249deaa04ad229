#!/usr/bin/env python3
"""Test suite for weighted least squares PVT"""

import unittest
from dataclasses import replace

import numpy as np

from pygnssmeas.coordinate.transforms import rot_ecef2ned, xyz2lla
from pygnssmeas.core.constants import CLIGHT
from pygnssmeas.core.data_structures import DiagnosticsReport
from pygnssmeas.core.exceptions import (
    DegenerateGeometryError, InputShapeError, WlsDidNotConvergeError
)
from pygnssmeas.gnss.wls_pvt import gps_wls_pvt, wls_pvt
from pygnssmeas.observation.measurements import process_gnss_meas
from pygnssmeas.satellite.ephemeris import EphemerisStore
from pygnssmeas.satellite.satellite_position import eph2xyz, flight_time_correction
from tests.synthetic import (
    RX_CLOCK_BIAS_S, RX_LLA, TOW0, WEEK, flight_times, make_constellation, make_prs,
    make_raw_table, rx_xyz, visible_satellites
)


class TestWlsPvt(unittest.TestCase):
    """Test single epoch solution"""

    def setUp(self):
        self.truth = rx_xyz()
        self.ephs = visible_satellites(make_constellation(), self.truth)
        self.prs = make_prs(self.ephs, self.truth)

    def test_enough_satellites_visible(self):
        self.assertGreaterEqual(len(self.ephs), 5)

    def test_converges_from_earth_centre(self):
        sol = wls_pvt(self.prs, self.ephs, np.zeros(8))
        self.assertLess(np.linalg.norm(sol.x_hat[:3] - self.truth), 1e-3)
        self.assertAlmostEqual(sol.x_hat[3], CLIGHT * RX_CLOCK_BIAS_S, delta=1e-2)
        np.testing.assert_allclose(sol.x_hat[4:7], 0.0, atol=0.05)
        self.assertAlmostEqual(sol.x_hat[7], 0.0, delta=0.05)
        self.assertGreater(sol.iterations, 1)

        n = len(self.ephs)
        self.assertEqual(sol.z.shape, (2 * n,))
        self.assertLess(np.max(np.abs(sol.z[:n])), 1e-2)
        self.assertEqual(sol.H.shape, (n, 4))
        self.assertEqual(sol.sv_pos.shape, (n, 5))
        np.testing.assert_array_equal(sol.sv_pos[:, 0], self.prs[:, 2])

    def test_warm_start(self):
        xo = np.zeros(8)
        xo[:3] = self.truth
        xo[3] = CLIGHT * RX_CLOCK_BIAS_S
        sol = wls_pvt(self.prs, self.ephs, xo)
        self.assertEqual(sol.iterations, 1)
        self.assertLess(np.linalg.norm(sol.x_hat[:4]), 1e-2)

    def test_unusable_rates(self):
        prs = self.prs.copy()
        prs[0, 5] = np.nan
        sol = wls_pvt(prs, self.ephs, np.zeros(8))
        self.assertLess(np.linalg.norm(sol.x_hat[:3] - self.truth), 1e-3)
        np.testing.assert_allclose(sol.x_hat[4:7], 0.0, atol=0.05)
        self.assertEqual(sol.Wrr[0, 0], 0.0)

        prs = self.prs.copy()
        prs[:-3, 6] = 0.0
        prs[-1, 6] = np.nan
        sol = wls_pvt(prs, self.ephs, np.zeros(8))
        self.assertLess(np.linalg.norm(sol.x_hat[:3] - self.truth), 1e-3)
        self.assertTrue(np.all(np.isnan(sol.x_hat[4:])))

    def test_too_few_satellites(self):
        self.assertIsNone(wls_pvt(self.prs[:3], self.ephs[:3], np.zeros(8)))

    def test_shape_errors(self):
        with self.assertRaises(InputShapeError):
            wls_pvt(self.prs[:, :6], self.ephs, np.zeros(8))
        with self.assertRaises(InputShapeError):
            wls_pvt(self.prs, self.ephs[:-1], np.zeros(8))
        with self.assertRaises(InputShapeError):
            wls_pvt(self.prs, self.ephs[::-1], np.zeros(8))
        with self.assertRaises(InputShapeError):
            wls_pvt(self.prs, self.ephs, np.zeros(4))

        prs = self.prs.copy()
        prs[0, 1] += 1e-3
        with self.assertRaises(InputShapeError):
            wls_pvt(prs, self.ephs, np.zeros(8))

    def test_degenerate_geometry(self):
        eph = self.ephs[0]
        ephs = [replace(eph, prn=prn) for prn in (1, 2, 3, 4)]
        prs = np.repeat(self.prs[:1], 4, axis=0)
        prs[:, 2] = [1, 2, 3, 4]
        with self.assertRaises(DegenerateGeometryError):
            wls_pvt(prs, ephs, np.zeros(8))

    def test_iteration_cap(self):
        with self.assertRaises(WlsDidNotConvergeError) as ctx:
            wls_pvt(self.prs, self.ephs, np.zeros(8), max_iter=1)
        self.assertEqual(ctx.exception.iterations, 1)


class TestGpsWlsPvt(unittest.TestCase):
    """Test the per-epoch driver"""

    @classmethod
    def setUpClass(cls):
        raw, ephs = make_raw_table(num_epochs=4)
        cls.store = EphemerisStore(ephs)
        cls.meas = process_gnss_meas(raw)

    def test_positions(self):
        diagnostics = DiagnosticsReport()
        pvt = gps_wls_pvt(self.meas, self.store, diagnostics)
        self.assertEqual(len(pvt), 4)
        errors = np.linalg.norm(pvt.xyz_m - rx_xyz(), axis=1)
        self.assertLess(np.max(errors), 1.0)
        np.testing.assert_allclose(pvt.lla_deg_deg_m[:, 2], RX_LLA[2], atol=1.0)
        np.testing.assert_allclose(pvt.bc_m, CLIGHT * RX_CLOCK_BIAS_S, atol=1.0)
        np.testing.assert_allclose(pvt.vel_ned_mps, 0.0, atol=0.1)
        np.testing.assert_array_equal(pvt.num_svs, self.meas.num_svs)
        self.assertTrue(np.all((pvt.hdop > 0) & (pvt.hdop < 10)))
        self.assertTrue(np.all(pvt.sigma_pos_ned_m[:, :2] > 0))
        self.assertEqual(diagnostics.epoch_skips, {})

    def test_hdop_matches_geometry(self):
        xyz = rx_xyz()
        sel = visible_satellites(make_constellation(), xyz)
        t_rx_true = TOW0 - RX_CLOCK_BIAS_S
        tau = flight_times(sel, WEEK, t_rx_true, xyz)
        sv_xyz, _ = eph2xyz(sel, WEEK, t_rx_true - tau)
        los = xyz - flight_time_correction(sv_xyz, tau)
        los = los / np.linalg.norm(los, axis=1)[:, None]
        H = np.column_stack([los @ rot_ecef2ned(RX_LLA[0], RX_LLA[1]).T, np.ones(len(sel))])
        P = np.linalg.inv(H.T @ H)

        pvt = gps_wls_pvt(self.meas, self.store)
        self.assertAlmostEqual(pvt.hdop[0], np.sqrt(P[0, 0] + P[1, 1]), delta=1e-6)

    def test_independent_epochs(self):
        warm = gps_wls_pvt(self.meas, self.store)
        cold = gps_wls_pvt(self.meas, self.store, warm_start=False)
        np.testing.assert_allclose(cold.xyz_m, warm.xyz_m, atol=1e-2)

    def test_insufficient_satellites(self):
        meas = process_gnss_meas(make_raw_table(num_epochs=3)[0])
        meas.pr_m[1, 3:] = np.nan
        diagnostics = DiagnosticsReport()
        pvt = gps_wls_pvt(meas, self.store, diagnostics)
        self.assertEqual(len(pvt), 3)
        self.assertFalse(pvt[1].is_valid)
        self.assertEqual(pvt[1].num_svs, 3)
        self.assertTrue(np.isnan(pvt.hdop[1]))
        self.assertTrue(pvt[2].is_valid)
        self.assertEqual(diagnostics.epoch_skips, {1: ['insufficient_satellites']})

    def test_no_ephemeris(self):
        store = EphemerisStore(replace(eph, toe=eph.toe + 86400.0, toc=eph.toc + 86400.0)
                               for eph in self.store)
        diagnostics = DiagnosticsReport()
        pvt = gps_wls_pvt(self.meas, store, diagnostics)
        self.assertTrue(np.all(np.isnan(pvt.xyz_m)))
        self.assertEqual(diagnostics.skip_counts['insufficient_satellites'], 4)

    def test_failure_recorded(self):
        diagnostics = DiagnosticsReport()
        pvt = gps_wls_pvt(self.meas, self.store, diagnostics, max_iter=1)
        self.assertEqual(len(pvt), 4)
        self.assertTrue(np.all(np.isnan(pvt.xyz_m)))
        self.assertEqual(diagnostics.skip_counts['WlsDidNotConvergeError'], 4)

    def test_unusable_sigmas(self):
        meas = process_gnss_meas(make_raw_table(num_epochs=4)[0])
        meas.pr_sigma_m[0, 0] = 0.0
        meas.pr_sigma_m[1, 1] = np.nan
        meas.prr_sigma_mps[2, 2] = np.nan
        meas.prr_mps[3, 3] = np.nan
        diagnostics = DiagnosticsReport()
        pvt = gps_wls_pvt(meas, self.store, diagnostics)
        self.assertEqual(len(pvt), 4)
        np.testing.assert_array_equal(pvt.num_svs, [meas.num_svs - 1, meas.num_svs - 1,
                                                    meas.num_svs, meas.num_svs])
        errors = np.linalg.norm(pvt.xyz_m - rx_xyz(), axis=1)
        self.assertLess(np.max(errors), 1.0)
        np.testing.assert_allclose(pvt.vel_ned_mps, 0.0, atol=0.1)
        self.assertEqual(diagnostics.epoch_skips, {})

    def test_dataframe(self):
        df = gps_wls_pvt(self.meas, self.store).to_dataframe()
        self.assertEqual(len(df), 4)
        lla = xyz2lla(rx_xyz())
        np.testing.assert_allclose(df['LatDeg'], lla[0], atol=1e-5)


if __name__ == '__main__':
    unittest.main()
