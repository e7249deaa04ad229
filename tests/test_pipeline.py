#!/usr/bin/env python3
"""End to end tests of the measurement processing run"""

import logging
import unittest

import numpy as np
import pandas as pd

from pygnssmeas import ProcessingConfig, process_gnss_run
from pygnssmeas.core.exceptions import (
    AllMeasurementsFilteredError, FatalInputError, MissingReferencePositionError
)
from pygnssmeas.satellite.ephemeris import EphemerisStore
from tests.synthetic import RX_LLA, make_raw_table, rx_xyz


class TestProcessGnssRun(unittest.TestCase):
    """Test the whole run on a synthetic static receiver"""

    @classmethod
    def setUpClass(cls):
        cls.raw, cls.ephs = make_raw_table(num_epochs=5)
        cls.raw_adr, _ = make_raw_table(num_epochs=5, with_adr=True)

    def test_positions(self):
        result = process_gnss_run(self.raw, self.ephs)
        self.assertEqual(len(result.pvt), 5)
        errors = np.linalg.norm(result.pvt.xyz_m - rx_xyz(), axis=1)
        self.assertLess(np.max(errors), 1.0)
        self.assertTrue(np.all(np.isfinite(result.pvt.hdop)))
        self.assertEqual(result.diagnostics.api_pass_fail, 'PASS')
        self.assertEqual(result.diagnostics.summary()['epoch_skips'], {})
        self.assertIsNone(result.del_pr_minus_adr_m)
        self.assertTrue(result.adr_residuals.is_empty)

    def test_accepts_store_and_dicts(self):
        store = EphemerisStore(self.ephs)
        result = process_gnss_run(self.raw, store)
        self.assertEqual(len(result.pvt), 5)

        records = [{'PRN': e.prn, 'Toc': e.toc, 'Toe': e.toe, 'GPS_Week': e.gps_week,
                    'Asqrt': e.asqrt, 'e': e.e, 'i0': e.i0, 'OMEGA': e.omega0,
                    'omega': e.omega, 'M0': e.m0, 'Fit_interval': e.fit_interval}
                   for e in self.ephs]
        from_dicts = process_gnss_run(self.raw, records)
        np.testing.assert_allclose(from_dicts.pvt.xyz_m, result.pvt.xyz_m, atol=1e-6)

    def test_carrier_phase_with_reference(self):
        config = ProcessingConfig(reference_lla=RX_LLA.tolist())
        result = process_gnss_run(self.raw_adr, self.ephs, config)
        self.assertEqual(result.del_pr_minus_adr_m.shape, result.measurements.pr_m.shape)
        self.assertLess(np.nanmax(np.abs(result.del_pr_minus_adr_m)), 0.1)
        resid = result.adr_residuals
        self.assertFalse(resid.is_empty)
        self.assertEqual(resid.svid0, int(result.measurements.svid[0]))
        self.assertLess(np.nanmax(np.abs(resid.resid_m)), 1e-2)

    def test_carrier_phase_without_reference(self):
        with self.assertRaises(MissingReferencePositionError):
            process_gnss_run(self.raw_adr, self.ephs)

    def test_unusable_rate_fields(self):
        for column in ('PseudorangeRateMetersPerSecond', 'PseudorangeRateUncertaintyMetersPerSecond'):
            raw = self.raw.copy()
            raw.loc[0, column] = np.nan
            result = process_gnss_run(raw, self.ephs)
            self.assertEqual(len(result.pvt), 5)
            errors = np.linalg.norm(result.pvt.xyz_m - rx_xyz(), axis=1)
            self.assertLess(np.max(errors), 1.0)
            np.testing.assert_allclose(result.pvt.vel_ned_mps, 0.0, atol=0.1)
            self.assertEqual(result.diagnostics.epoch_skips, {})

    def test_constellation_filter(self):
        other = self.raw.iloc[:3].copy()
        other['ConstellationType'] = 3
        other['Svid'] = [1, 2, 3]
        raw = pd.concat([self.raw, other], ignore_index=True)
        result = process_gnss_run(raw, self.ephs)
        self.assertEqual(result.diagnostics.filtered['constellation'], 3)
        errors = np.linalg.norm(result.pvt.xyz_m - rx_xyz(), axis=1)
        self.assertLess(np.max(errors), 1.0)

        with self.assertRaises(AllMeasurementsFilteredError):
            process_gnss_run(self.raw, self.ephs, ProcessingConfig(constellation=5))

    def test_missing_fields_reported(self):
        raw = self.raw.drop(columns=['Cn0DbHz'])
        result = process_gnss_run(raw, self.ephs)
        self.assertEqual(result.diagnostics.missing_measurement_fields, ['Cn0DbHz'])
        self.assertEqual(len(result.pvt), 5)

    def test_fatal_input(self):
        with self.assertRaises(FatalInputError):
            process_gnss_run(self.raw.drop(columns=['TimeNanos']), self.ephs)

    def test_logging_config(self):
        package_logger = logging.getLogger('pygnssmeas')
        self.addCleanup(package_logger.setLevel, package_logger.level)
        config = ProcessingConfig(logging={'default_level': 'WARNING', 'console': False})
        result = process_gnss_run(self.raw, self.ephs, config)
        self.assertEqual(len(result.pvt), 5)


if __name__ == '__main__':
    unittest.main()
