#!/usr/bin/env python3
"""Test suite for raw measurement alignment"""

import unittest

import numpy as np

from pygnssmeas.core.constants import CLIGHT, WEEKSEC
from pygnssmeas.core.data_structures import DiagnosticsReport
from pygnssmeas.core.exceptions import (
    AllMeasurementsFilteredError, ClockNotReadyError, ClockSignError,
    InconsistentDiscontinuityCountError, MissingFieldError, WeekRolloverUnresolvedError
)
from pygnssmeas.observation.measurements import (
    ALL_RX_MILLIS, check_gnss_clock, check_week_rollover, filter_valid,
    get_del_pr, process_gnss_meas
)
from tests.synthetic import (
    RX_CLOCK_BIAS_S, TOW0, WEEK, flight_times, make_raw_table, rx_xyz, visible_satellites
)


class TestCheckGnssClock(unittest.TestCase):
    """Test receiver clock field checks"""

    def setUp(self):
        self.raw, _ = make_raw_table(num_epochs=2)

    def test_complete_table(self):
        raw, diagnostics = check_gnss_clock(self.raw)
        self.assertEqual(diagnostics.api_pass_fail, 'PASS')
        self.assertIn(ALL_RX_MILLIS, raw.columns)
        self.assertNotIn(ALL_RX_MILLIS, self.raw.columns)
        millis = raw[ALL_RX_MILLIS].unique()
        self.assertEqual(len(millis), 2)
        self.assertEqual(millis[1] - millis[0], 1000)
        self.assertEqual(millis[0], WEEK * WEEKSEC * 1000 + int(TOW0) * 1000)

    def test_missing_required(self):
        with self.assertRaises(MissingFieldError) as ctx:
            check_gnss_clock(self.raw.drop(columns=['FullBiasNanos']))
        self.assertEqual(ctx.exception.field_name, 'FullBiasNanos')
        with self.assertRaises(MissingFieldError):
            check_gnss_clock(self.raw.drop(columns=['TimeNanos']))

    def test_all_nan_counts_as_missing(self):
        raw = self.raw.copy()
        raw['FullBiasNanos'] = np.nan
        with self.assertRaises(MissingFieldError):
            check_gnss_clock(raw)

    def test_optional_defaults(self):
        raw = self.raw.drop(columns=['BiasNanos', 'HardwareClockDiscontinuityCount', 'LeapSecond'])
        raw, diagnostics = check_gnss_clock(raw)
        self.assertTrue(np.all(raw['BiasNanos'] == 0))
        self.assertTrue(np.all(raw['HardwareClockDiscontinuityCount'] == 0))
        self.assertEqual(diagnostics.missing_clock_fields,
                         ['LeapSecond', 'HardwareClockDiscontinuityCount', 'BiasNanos'])
        self.assertEqual(diagnostics.warnings['missing_discontinuity_count'], 1)
        self.assertEqual(diagnostics.api_pass_fail, 'FAIL BECAUSE OF MISSING FIELDS')

    def test_wrong_sign_repaired(self):
        raw = self.raw.copy()
        raw['FullBiasNanos'] = -raw['FullBiasNanos']
        fixed, diagnostics = check_gnss_clock(raw)
        self.assertEqual(diagnostics.clock_errors, ['FullBiasNanos wrong sign.'])
        self.assertTrue(np.all(fixed['FullBiasNanos'] < 0))
        expected, _ = check_gnss_clock(self.raw)
        np.testing.assert_array_equal(fixed[ALL_RX_MILLIS], expected[ALL_RX_MILLIS])

    def test_sign_change_within_log(self):
        raw = self.raw.copy()
        raw.loc[raw.index[0], 'FullBiasNanos'] = -raw['FullBiasNanos'].iloc[0]
        with self.assertRaises(ClockSignError):
            check_gnss_clock(raw)


class TestFilterValid(unittest.TestCase):

    def setUp(self):
        self.raw, _ = make_raw_table(num_epochs=2)

    def test_nothing_removed(self):
        self.assertIs(filter_valid(self.raw), self.raw)

    def test_gates(self):
        raw = self.raw.copy()
        raw.loc[raw.index[0], 'ReceivedSvTimeUncertaintyNanos'] = 1000.0
        raw.loc[raw.index[1], 'PseudorangeRateUncertaintyMetersPerSecond'] = 20.0
        raw.loc[raw.index[2], 'ReceivedSvTimeUncertaintyNanos'] = 1000.0
        raw.loc[raw.index[2], 'PseudorangeRateUncertaintyMetersPerSecond'] = 20.0
        diagnostics = DiagnosticsReport()
        kept = filter_valid(raw, diagnostics)
        self.assertEqual(len(kept), len(raw) - 3)
        self.assertEqual(diagnostics.filtered['tow_uncertainty'], 2)
        self.assertEqual(diagnostics.filtered['prr_uncertainty'], 1)

    def test_custom_thresholds(self):
        kept = filter_valid(self.raw, max_tow_unc_ns=100.0, max_prr_unc_mps=1.0)
        self.assertEqual(len(kept), len(self.raw))

    def test_all_removed(self):
        with self.assertRaises(AllMeasurementsFilteredError):
            filter_valid(self.raw, max_tow_unc_ns=1.0)


class TestWeekRollover(unittest.TestCase):

    def test_no_rollover(self):
        pr, t_rx, unresolved = check_week_rollover(np.array([100.07]), np.array([100.0]))
        np.testing.assert_allclose(pr, [0.07])
        np.testing.assert_array_equal(t_rx, [100.07])
        self.assertEqual(unresolved.size, 0)

    def test_rollover_corrected(self):
        t_rx = np.array([0.05, 100.07])
        t_tx = np.array([WEEKSEC - 0.02, 100.0])
        pr, t_rx_fixed, unresolved = check_week_rollover(t_rx, t_tx)
        np.testing.assert_allclose(pr, [0.07, 0.07], atol=1e-9)
        np.testing.assert_allclose(t_rx_fixed, [WEEKSEC + 0.05, 100.07])
        self.assertEqual(unresolved.size, 0)
        np.testing.assert_array_equal(t_rx, [0.05, 100.07])

    def test_unresolved(self):
        t_rx = np.array([400000.0, 100.07])
        t_tx = np.array([0.0, 100.0])
        with self.assertRaises(WeekRolloverUnresolvedError) as ctx:
            check_week_rollover(t_rx, t_tx)
        np.testing.assert_array_equal(ctx.exception.indices, [0])

        _, _, unresolved = check_week_rollover(t_rx, t_tx, raise_unresolved=False)
        np.testing.assert_array_equal(unresolved, [0])


class TestDelPr(unittest.TestCase):

    def test_discontinuity_and_gap(self):
        pr = np.array([[10.0, np.nan],
                       [12.0, 5.0],
                       [15.0, 7.0],
                       [20.0, 9.0]])
        del_pr = get_del_pr(pr, np.array([0, 0, 1, 1]))
        expected = np.array([[0.0, np.nan],
                             [2.0, 0.0],
                             [0.0, 0.0],
                             [5.0, 2.0]])
        np.testing.assert_array_equal(del_pr, expected)

    def test_restart_after_tracking_break(self):
        pr = np.array([[10.0], [12.0], [np.nan], [20.0], [25.0]])
        del_pr = get_del_pr(pr, np.zeros(5))
        np.testing.assert_array_equal(del_pr[:, 0], [0.0, 2.0, np.nan, 0.0, 5.0])

    def test_empty(self):
        self.assertEqual(get_del_pr(np.zeros((0, 3)), np.zeros(0)).shape, (0, 3))


class TestProcessGnssMeas(unittest.TestCase):
    """Test alignment of raw events into epoch x satellite arrays"""

    def setUp(self):
        self.raw, self.ephs = make_raw_table(num_epochs=4)
        self.visible = visible_satellites(self.ephs, rx_xyz())

    def test_alignment(self):
        meas = process_gnss_meas(self.raw)
        self.assertEqual(meas.num_epochs, 4)
        np.testing.assert_array_equal(meas.svid, sorted(e.prn for e in self.visible))
        np.testing.assert_allclose(np.diff(meas.fct_seconds), 1.0, atol=1e-6)
        np.testing.assert_array_equal(meas.week_numbers, WEEK)
        np.testing.assert_allclose(meas.t_rx_seconds[2], TOW0 + 2, atol=1e-9)
        np.testing.assert_allclose(meas.pr_sigma_m, 3.0, rtol=1e-9)
        self.assertFalse(meas.has_adr)

    def test_pseudoranges(self):
        meas = process_gnss_meas(self.raw)
        order = np.argsort([e.prn for e in self.visible])
        tau = flight_times(self.visible, WEEK, TOW0 + 1 - RX_CLOCK_BIAS_S, rx_xyz())
        expected = CLIGHT * (tau + RX_CLOCK_BIAS_S)
        np.testing.assert_allclose(meas.pr_m[1], expected[order], atol=0.1)

    def test_del_pr(self):
        meas = process_gnss_meas(self.raw)
        np.testing.assert_array_equal(meas.del_pr_m[0], 0.0)
        np.testing.assert_allclose(meas.del_pr_m[3], meas.pr_m[3] - meas.pr_m[0])

    def test_clock_not_ready(self):
        raw = self.raw.copy()
        raw.loc[raw.index[0], 'State'] = 1
        with self.assertRaises(ClockNotReadyError):
            process_gnss_meas(raw)

    def test_inconsistent_discontinuity_count(self):
        raw = self.raw.copy()
        raw.loc[raw.index[1], 'HardwareClockDiscontinuityCount'] = 1
        with self.assertRaises(InconsistentDiscontinuityCountError):
            process_gnss_meas(raw)

    def test_discontinuity_resets_del_pr(self):
        raw = self.raw.copy()
        epoch2 = raw['TimeNanos'] >= raw['TimeNanos'].min() + 2 * 10 ** 9
        raw.loc[epoch2, 'HardwareClockDiscontinuityCount'] = 1
        meas = process_gnss_meas(raw)
        np.testing.assert_array_equal(meas.clk_dcount, [0, 0, 1, 1])
        np.testing.assert_array_equal(meas.del_pr_m[2], 0.0)

    def test_missing_svid(self):
        with self.assertRaises(MissingFieldError):
            process_gnss_meas(self.raw.drop(columns=['Svid']))

    def test_unresolved_rollover_dropped(self):
        raw = self.raw.copy()
        raw.loc[raw.index[0], 'ReceivedSvTimeNanos'] = (TOW0 - 400000.0) * 1e9
        diagnostics = DiagnosticsReport()
        meas = process_gnss_meas(raw, diagnostics)
        self.assertEqual(diagnostics.filtered['week_rollover_unresolved'], 1)
        svid = int(raw['Svid'].iloc[0])
        self.assertTrue(np.isnan(meas.pr_m[0, meas.sv_index[svid]]))
        self.assertTrue(np.isfinite(meas.pr_m[1, meas.sv_index[svid]]))

        with self.assertRaises(WeekRolloverUnresolvedError):
            process_gnss_meas(raw, drop_unresolved_rollover=False)


if __name__ == '__main__':
    unittest.main()
