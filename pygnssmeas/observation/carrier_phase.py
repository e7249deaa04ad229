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

"""Carrier phase (accumulated delta range) processing"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..coordinate.transforms import lla2xyz
from ..core.constants import CLIGHT
from ..core.data_structures import AdrResiduals, GnssMeasurements, is_adr_reset, is_adr_valid
from ..core.exceptions import MissingReferencePositionError
from ..logger import get_logger
from ..satellite.ephemeris import EphemerisStore
from ..satellite.satellite_position import eph2dtsv, eph2xyz, flight_time_correction

logger = get_logger(__name__)

__all__ = ['AdrContinuityState', 'process_adr', 'expected_pseudoranges', 'gps_adr_residuals']


@dataclass
class AdrContinuityState:
    """
    Continuity record of one satellite for the DelPr minus ADR channel.

    Attributes
    ----------
    baseline : float
        DelPrM - AdrM at the start of the current continuous span, NaN
        while no span is open
    last_valid_index : int
        Last epoch that extended the span, -1 if none
    """
    baseline: float = np.nan
    last_valid_index: int = -1

    def update(self, i: int, del_pr_m: float, adr_m: float, reset: bool) -> float:
        """Advance to epoch i and return DelPrM - baseline - AdrM"""
        if np.isfinite(adr_m) and adr_m != 0 and np.isfinite(del_pr_m) and not reset:
            if np.isnan(self.baseline):
                self.baseline = del_pr_m - adr_m
            self.last_valid_index = i
        else:
            self.baseline = np.nan
        return del_pr_m - self.baseline - adr_m


def process_adr(meas: GnssMeasurements) -> Optional[np.ndarray]:
    """
    Compare pseudorange change with accumulated delta range.

    For each satellite, tracks DelPrM - DelPrM0 - AdrM where DelPrM0 is
    re-initialized whenever the ADR is invalid, zero, non-finite or
    flagged reset.

    Parameters
    ----------
    meas : GnssMeasurements
        Aligned measurements

    Returns
    -------
    np.ndarray or None
        (N, M) DelPrMinusAdrM, or None if no ADR was recorded
    """
    if not meas.has_adr:
        logger.info("No ADR recorded")
        return None

    n, m = meas.num_epochs, meas.num_svs
    del_pr_minus_adr = np.full((n, m), np.nan)
    for j in range(m):
        adr = meas.adr_m[:, j].copy()
        adr[~is_adr_valid(meas.adr_state[:, j])] = np.nan
        reset = is_adr_reset(meas.adr_state[:, j])
        del_pr = meas.del_pr_m[:, j]

        state = AdrContinuityState()
        for i in range(n):
            del_pr_minus_adr[i, j] = state.update(i, del_pr[i], adr[i], bool(reset[i]))
    return del_pr_minus_adr


def expected_pseudoranges(meas: GnssMeasurements, store: EphemerisStore,
                          xyz0_m: np.ndarray) -> np.ndarray:
    """
    Pseudoranges expected at a known receiver position.

    Parameters
    ----------
    meas : GnssMeasurements
        Aligned measurements (transmit times and epochs)
    store : EphemerisStore
        Broadcast ephemerides
    xyz0_m : np.ndarray
        Receiver ECEF position (m)

    Returns
    -------
    np.ndarray
        (N, M) geometric range minus satellite clock, NaN where there is
        no transmit time or no valid ephemeris
    """
    xyz0 = np.asarray(xyz0_m, dtype=np.float64)
    weeks = meas.week_numbers
    pr_hat = np.full((meas.num_epochs, meas.num_svs), np.nan)

    for i in range(meas.num_epochs):
        t_tx = meas.t_tx_seconds[i]
        cols = np.flatnonzero(np.isfinite(t_tx))
        if cols.size == 0:
            continue
        ephs, i_sv = store.closest(meas.svid[cols], meas.fct_seconds[i])
        if not ephs:
            continue
        cols = cols[i_sv]

        # True GPS time of transmission
        ttx = t_tx[cols] - eph2dtsv(ephs, t_tx[cols])
        sv_xyz, dtsv = eph2xyz(ephs, np.full(cols.size, weeks[i]), ttx)
        dt_flight = np.linalg.norm(xyz0 - sv_xyz, axis=1) / CLIGHT
        sv_xyz_rx = flight_time_correction(sv_xyz, dt_flight)
        pr_hat[i, cols] = np.linalg.norm(xyz0 - sv_xyz_rx, axis=1) - CLIGHT * dtsv
    return pr_hat


def gps_adr_residuals(meas: GnssMeasurements, store: EphemerisStore,
                      lla_deg_deg_m: Optional[np.ndarray]) -> AdrResiduals:
    """
    Single-difference ADR residuals against a reference satellite.

    The reference satellite is the one with the most ADR-valid epochs.
    For each other satellite a common start epoch i0 is set at the first
    epoch where both satellites have valid ADR and expected pseudoranges,
    and is cleared when its ADR becomes invalid. The residual at epoch i is

        [(ADR_j(i) - ADR_0(i)) - (ADR_j(i0) - ADR_0(i0))]
      - [(prHat_j(i) - prHat_0(i)) - (prHat_j(i0) - prHat_0(i0))]

    Parameters
    ----------
    meas : GnssMeasurements
        Aligned measurements
    store : EphemerisStore
        Broadcast ephemerides
    lla_deg_deg_m : np.ndarray
        Known receiver position (deg, deg, m)

    Returns
    -------
    AdrResiduals
        Empty when no ADR data was recorded

    Raises
    ------
    MissingReferencePositionError
        If ADR data is present but no receiver position is given
    """
    if not meas.has_adr:
        return AdrResiduals.empty(meas.svid)
    if lla_deg_deg_m is None or np.size(lla_deg_deg_m) != 3:
        raise MissingReferencePositionError("ADR residuals need the true position as lat, lon, alt")

    xyz0 = lla2xyz(np.asarray(lla_deg_deg_m, dtype=np.float64).ravel())
    n, m = meas.num_epochs, meas.num_svs

    valid = is_adr_valid(meas.adr_state)
    num_valid = np.count_nonzero(valid, axis=0)
    j0 = int(np.argmax(num_valid))
    svid0 = int(meas.svid[j0])
    logger.debug(f"Reference satellite for ADR residuals: {svid0}")

    pr_hat = expected_pseudoranges(meas, store, xyz0)
    adr = meas.adr_m
    resid = np.full((n, m), np.nan)

    i_t0 = np.full(m, -1)
    for i in range(n):
        if not valid[i, j0]:
            continue
        for j in range(m):
            if j == j0:
                continue
            if not valid[i, j]:
                i_t0[j] = -1
                continue
            both_finite = np.isfinite(pr_hat[i, j]) and np.isfinite(pr_hat[i, j0])
            if i_t0[j] < 0 and both_finite:
                i_t0[j] = i
            i0 = i_t0[j]
            if i0 >= 0 and i > i0 and both_finite:
                del_adr = (adr[i, j] - adr[i, j0]) - (adr[i0, j] - adr[i0, j0])
                del_pr_hat = (pr_hat[i, j] - pr_hat[i, j0]) - (pr_hat[i0, j] - pr_hat[i0, j0])
                resid[i, j] = del_adr - del_pr_hat

    return AdrResiduals(fct_seconds=meas.fct_seconds.copy(), svid0=svid0,
                        svid=meas.svid.copy(), resid_m=resid)
