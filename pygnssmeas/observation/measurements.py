# Copyright 2024 inuex35
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Raw measurement alignment

Turns a table of raw receiver measurement events (one row per satellite
per hardware clock reading, GnssLogger column names) into time-aligned,
satellite-aligned measurement arrays.
"""

from typing import Optional, Tuple

import numpy as np
import pandas as pd

from ..core.constants import (CLIGHT, GNSS_CLOCK_FIELDS, GNSS_MEASUREMENT_FIELDS, HALFWEEKSEC,
                              MAXPRRUNCMPS, MAXROLLOVERBIASSECONDS, MAXTOWUNCNS, WEEKNANOS, WEEKSEC)
from ..core.data_structures import DiagnosticsReport, GnssMeasurements, has_code_lock, has_tow_decoded
from ..core.exceptions import (AllMeasurementsFilteredError, ClockNotReadyError, ClockSignError,
                               FatalInputError, InconsistentDiscontinuityCountError,
                               MissingFieldError, WeekRolloverUnresolvedError)
from ..logger import get_logger

logger = get_logger(__name__)

__all__ = ['check_gnss_clock', 'filter_valid', 'check_week_rollover', 'get_del_pr',
           'process_gnss_meas', 'ALL_RX_MILLIS']

ALL_RX_MILLIS = 'AllRxMillis'


def _column_missing(raw: pd.DataFrame, name: str) -> bool:
    return name not in raw.columns or not raw[name].notna().any()


def _int64_column(raw: pd.DataFrame, name: str) -> np.ndarray:
    values = raw[name].to_numpy()
    if np.issubdtype(values.dtype, np.integer):
        return values.astype(np.int64)
    return np.round(values.astype(np.float64)).astype(np.int64)


def check_gnss_clock(raw: pd.DataFrame,
                     diagnostics: Optional[DiagnosticsReport] = None
                     ) -> Tuple[pd.DataFrame, DiagnosticsReport]:
    """
    Check and complete the receiver clock fields of a raw table.

    Parameters
    ----------
    raw : pd.DataFrame
        Raw measurement events with GnssLogger column names
    diagnostics : DiagnosticsReport, optional
        Report to append to; a new one is created if omitted

    Returns
    -------
    raw : pd.DataFrame
        Copy of the table with defaults filled in and an ``AllRxMillis``
        column (integer full cycle time of each event in milliseconds)
    diagnostics : DiagnosticsReport
        Missing standard fields and repaired clock errors

    Raises
    ------
    MissingFieldError
        If TimeNanos or FullBiasNanos is absent
    ClockSignError
        If FullBiasNanos changes sign within the log
    """
    if diagnostics is None:
        diagnostics = DiagnosticsReport()

    for name in GNSS_CLOCK_FIELDS:
        if _column_missing(raw, name) and name not in diagnostics.missing_clock_fields:
            diagnostics.missing_clock_fields.append(name)
    for name in GNSS_MEASUREMENT_FIELDS:
        if _column_missing(raw, name) and name not in diagnostics.missing_measurement_fields:
            diagnostics.missing_measurement_fields.append(name)

    if _column_missing(raw, 'TimeNanos'):
        raise MissingFieldError('TimeNanos')
    if _column_missing(raw, 'FullBiasNanos'):
        raise MissingFieldError('FullBiasNanos', "FullBiasNanos is missing, it is needed to get the GPS week")

    raw = raw.copy()
    n = len(raw)
    if _column_missing(raw, 'BiasNanos'):
        raw['BiasNanos'] = np.zeros(n)
    if _column_missing(raw, 'TimeOffsetNanos'):
        raw['TimeOffsetNanos'] = np.zeros(n)
    if _column_missing(raw, 'HardwareClockDiscontinuityCount'):
        raw['HardwareClockDiscontinuityCount'] = np.zeros(n, dtype=np.int64)
        logger.warning("Added HardwareClockDiscontinuityCount because it is missing from the raw table")
        diagnostics.record_warning('missing_discontinuity_count')

    full_bias = _int64_column(raw, 'FullBiasNanos')
    if np.any(full_bias > 0):
        full_bias = -full_bias
        logger.warning("FullBiasNanos wrong sign, should be negative; sign changed")
        diagnostics.clock_errors.append('FullBiasNanos wrong sign.')
    if np.any(full_bias > 0):
        raise ClockSignError("FullBiasNanos changes sign within log file")
    raw['FullBiasNanos'] = full_bias

    time_nanos = _int64_column(raw, 'TimeNanos')
    raw['TimeNanos'] = time_nanos
    raw[ALL_RX_MILLIS] = (time_nanos - full_bias + 500_000) // 1_000_000
    return raw, diagnostics


def filter_valid(raw: pd.DataFrame,
                 diagnostics: Optional[DiagnosticsReport] = None,
                 max_tow_unc_ns: float = MAXTOWUNCNS,
                 max_prr_unc_mps: float = MAXPRRUNCMPS) -> pd.DataFrame:
    """
    Remove measurement events failing the quality gates.

    Parameters
    ----------
    raw : pd.DataFrame
        Raw measurement events
    diagnostics : DiagnosticsReport, optional
        Receives the removal counts by reason
    max_tow_unc_ns : float
        Maximum ReceivedSvTimeUncertaintyNanos
    max_prr_unc_mps : float
        Maximum PseudorangeRateUncertaintyMetersPerSecond

    Returns
    -------
    pd.DataFrame
        Rows that passed both gates

    Raises
    ------
    AllMeasurementsFilteredError
        If every row would be removed
    """
    n = len(raw)
    tow_unc = raw.get('ReceivedSvTimeUncertaintyNanos', pd.Series(np.full(n, np.nan), index=raw.index))
    prr_unc = raw.get('PseudorangeRateUncertaintyMetersPerSecond',
                      pd.Series(np.full(n, np.nan), index=raw.index))
    i_tow = (tow_unc > max_tow_unc_ns).to_numpy()
    i_prr = (prr_unc > max_prr_unc_mps).to_numpy()
    i_bad = i_tow | i_prr

    if not np.any(i_bad):
        return raw
    if np.all(i_bad):
        raise AllMeasurementsFilteredError(f"Removing all {n} measurements in the raw table")

    logger.info(f"Removed {int(i_bad.sum())} bad measurements: "
                f"towUnc > {max_tow_unc_ns:.0f} ns ({int(i_tow.sum())}), "
                f"prrUnc > {max_prr_unc_mps:.0f} m/s ({int(i_prr.sum())})")
    if diagnostics is not None:
        diagnostics.record_filtered('tow_uncertainty', int(i_tow.sum()))
        diagnostics.record_filtered('prr_uncertainty', int((i_prr & ~i_tow).sum()))
    return raw.loc[~i_bad]


def check_week_rollover(t_rx_seconds: np.ndarray, t_tx_seconds: np.ndarray,
                        max_bias_seconds: float = MAXROLLOVERBIASSECONDS,
                        raise_unresolved: bool = True
                        ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Form pseudorange seconds and remove GPS week crossings.

    Where |tRx - tTx| exceeds half a week, the nearest whole number of
    weeks is removed from both the pseudorange and tRx.

    Parameters
    ----------
    t_rx_seconds : np.ndarray
        Time of reception, seconds of week
    t_tx_seconds : np.ndarray
        Time of transmission, seconds of week
    max_bias_seconds : float
        Largest pseudorange accepted after the correction
    raise_unresolved : bool
        Raise instead of returning unresolved indices

    Returns
    -------
    pr_seconds : np.ndarray
        Pseudorange in seconds
    t_rx_seconds : np.ndarray
        Corrected time of reception
    unresolved : np.ndarray
        Indices whose pseudorange still exceeds ``max_bias_seconds``

    Raises
    ------
    WeekRolloverUnresolvedError
        If ``raise_unresolved`` and some pseudoranges could not be corrected
    """
    t_rx = np.array(t_rx_seconds, dtype=np.float64)
    pr_seconds = t_rx - np.asarray(t_tx_seconds, dtype=np.float64)
    unresolved = np.zeros(0, dtype=np.int64)

    i_rollover = np.abs(pr_seconds) > HALFWEEKSEC
    if np.any(i_rollover):
        logger.warning(f"Week rollover detected in {int(i_rollover.sum())} time tags, adjusting")
        del_s = np.round(pr_seconds[i_rollover] / WEEKSEC) * WEEKSEC
        pr_seconds[i_rollover] -= del_s
        t_rx[i_rollover] -= del_s

        idx = np.flatnonzero(i_rollover)
        unresolved = idx[np.abs(pr_seconds[idx]) > max_bias_seconds]
        if unresolved.size and raise_unresolved:
            raise WeekRolloverUnresolvedError(unresolved)
        if unresolved.size == 0:
            logger.info("Corrected week rollover")

    return pr_seconds, t_rx, unresolved


def get_del_pr(pr_m: np.ndarray, clk_dcount: np.ndarray) -> np.ndarray:
    """
    Change in pseudorange since the last clock discontinuity.

    The baseline moves to the current epoch at a hardware clock
    discontinuity or after a break in tracking, so the first sample of
    each continuous span is zero.

    Parameters
    ----------
    pr_m : np.ndarray
        (N, M) pseudoranges, NaN where missing
    clk_dcount : np.ndarray
        (N,) hardware clock discontinuity count

    Returns
    -------
    np.ndarray
        (N, M) DelPrM
    """
    pr_m = np.asarray(pr_m, dtype=np.float64)
    n, m = pr_m.shape
    clock_dis = np.concatenate([[False], np.diff(np.asarray(clk_dcount)) != 0])

    del_pr = np.full((n, m), np.nan)
    if n == 0:
        return del_pr
    del_pr[0] = np.where(np.isfinite(pr_m[0]), 0.0, np.nan)
    for j in range(m):
        i0 = 0
        for i in range(1, n):
            if clock_dis[i] or np.isnan(pr_m[i0, j]) or np.isnan(pr_m[i - 1, j]):
                i0 = i
            del_pr[i, j] = pr_m[i, j] - pr_m[i0, j]
    return del_pr


def _float_column(raw: pd.DataFrame, name: str, default: float = np.nan) -> np.ndarray:
    if name not in raw.columns:
        return np.full(len(raw), default)
    return raw[name].to_numpy(dtype=np.float64)


def process_gnss_meas(raw: pd.DataFrame,
                      diagnostics: Optional[DiagnosticsReport] = None,
                      max_tow_unc_ns: float = MAXTOWUNCNS,
                      max_prr_unc_mps: float = MAXPRRUNCMPS,
                      max_rollover_bias_s: float = MAXROLLOVERBIASSECONDS,
                      drop_unresolved_rollover: bool = True) -> GnssMeasurements:
    """
    Align raw measurement events into epoch x satellite arrays.

    Parameters
    ----------
    raw : pd.DataFrame
        Raw measurement events. Tables without ``AllRxMillis`` are first
        passed through ``check_gnss_clock``.
    diagnostics : DiagnosticsReport, optional
        Receives filter counts and dropped events
    max_tow_unc_ns, max_prr_unc_mps : float
        Quality gates of ``filter_valid``
    max_rollover_bias_s : float
        Sanity bound of ``check_week_rollover``
    drop_unresolved_rollover : bool
        Drop events whose week rollover cannot be corrected instead of
        raising ``WeekRolloverUnresolvedError``

    Returns
    -------
    GnssMeasurements
        Aligned measurements; epochs are the unique integer milliseconds
        of reception, columns the sorted satellite ids
    """
    if diagnostics is None:
        diagnostics = DiagnosticsReport()
    if ALL_RX_MILLIS not in raw.columns:
        raw, diagnostics = check_gnss_clock(raw, diagnostics)
    for name in ('Svid', 'ReceivedSvTimeNanos', 'State'):
        if _column_missing(raw, name):
            raise MissingFieldError(name)

    raw = filter_valid(raw, diagnostics, max_tow_unc_ns, max_prr_unc_mps)

    full_bias = _int64_column(raw, 'FullBiasNanos')
    time_nanos = _int64_column(raw, 'TimeNanos')
    week = (-full_bias) // WEEKNANOS

    state = int(raw['State'].iloc[0])
    if not (has_code_lock(state) and has_tow_decoded(state)):
        raise ClockNotReadyError(
            f"State of the first measurement is {state}; code lock and TOW decoded bits must be set")

    t_rx_nanos = time_nanos - full_bias[0] - week * WEEKNANOS
    if np.any(t_rx_nanos < 0):
        raise FatalInputError("Time of reception is negative, FullBiasNanos is inconsistent")

    t_rx_seconds = (t_rx_nanos.astype(np.float64) - _float_column(raw, 'TimeOffsetNanos', 0.0)
                    - _float_column(raw, 'BiasNanos', 0.0)) * 1e-9
    t_tx_seconds = _float_column(raw, 'ReceivedSvTimeNanos') * 1e-9

    pr_seconds, t_rx_seconds, unresolved = check_week_rollover(
        t_rx_seconds, t_tx_seconds, max_rollover_bias_s, raise_unresolved=not drop_unresolved_rollover)
    keep = np.ones(len(raw), dtype=bool)
    if unresolved.size:
        logger.warning(f"Failed to correct week rollover, dropping {unresolved.size} measurements")
        diagnostics.record_filtered('week_rollover_unresolved', unresolved.size)
        keep[unresolved] = False
        if not np.any(keep):
            raise AllMeasurementsFilteredError("Every measurement failed week rollover correction")

    raw = raw.loc[keep]
    pr_seconds = pr_seconds[keep]
    t_rx_seconds = t_rx_seconds[keep]
    t_tx_seconds = t_tx_seconds[keep]

    pr_m = pr_seconds * CLIGHT
    pr_sigma_m = _float_column(raw, 'ReceivedSvTimeUncertaintyNanos') * 1e-9 * CLIGHT

    all_rx_millis = raw[ALL_RX_MILLIS].to_numpy(dtype=np.int64)
    millis, epoch_idx = np.unique(all_rx_millis, return_inverse=True)
    svid, sv_col = np.unique(raw['Svid'].to_numpy(dtype=np.int64), return_inverse=True)

    dcount = raw['HardwareClockDiscontinuityCount'].to_numpy(dtype=np.int64)
    counts_per_epoch = pd.Series(dcount).groupby(epoch_idx).nunique().to_numpy()
    if np.any(counts_per_epoch > 1):
        bad = int(np.flatnonzero(counts_per_epoch > 1)[0])
        raise InconsistentDiscontinuityCountError(millis[bad] * 1e-3)

    meas = GnssMeasurements.allocate(millis * 1e-3, svid)
    meas.clk_dcount[epoch_idx] = dcount

    meas.t_rx_seconds[epoch_idx, sv_col] = t_rx_seconds
    meas.t_tx_seconds[epoch_idx, sv_col] = t_tx_seconds
    meas.pr_m[epoch_idx, sv_col] = pr_m
    meas.pr_sigma_m[epoch_idx, sv_col] = pr_sigma_m
    meas.prr_mps[epoch_idx, sv_col] = _float_column(raw, 'PseudorangeRateMetersPerSecond')
    meas.prr_sigma_mps[epoch_idx, sv_col] = _float_column(raw, 'PseudorangeRateUncertaintyMetersPerSecond')
    meas.adr_m[epoch_idx, sv_col] = _float_column(raw, 'AccumulatedDeltaRangeMeters')
    meas.adr_sigma_m[epoch_idx, sv_col] = _float_column(raw, 'AccumulatedDeltaRangeUncertaintyMeters')
    adr_state = np.nan_to_num(_float_column(raw, 'AccumulatedDeltaRangeState', 0.0))
    meas.adr_state[epoch_idx, sv_col] = adr_state.astype(np.int64)
    meas.cn0_dbhz[epoch_idx, sv_col] = _float_column(raw, 'Cn0DbHz')

    meas.del_pr_m = get_del_pr(meas.pr_m, meas.clk_dcount)
    logger.debug(f"Aligned {len(raw)} measurements into {meas.num_epochs} epochs x {meas.num_svs} satellites")
    return meas
