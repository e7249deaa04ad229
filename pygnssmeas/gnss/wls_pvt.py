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

"""Weighted least squares position, velocity and time"""

from dataclasses import dataclass
from typing import List, Optional

import numpy as np
from numpy.linalg import norm
from scipy import linalg

from ..coordinate.transforms import rot_ecef2ned, xyz2lla
from ..core.constants import CLIGHT, MAXDELPOSFORNAVM, MIN_NUM_SVS, WLS_MAXITR
from ..core.data_structures import (DiagnosticsReport, GnssMeasurements, GpsEphemeris,
                                    PvtEstimate, PvtTimeSeries)
from ..core.exceptions import (DegenerateGeometryError, EpochSolveError, InputShapeError,
                               WlsDidNotConvergeError)
from ..logger import get_logger
from ..satellite.ephemeris import EphemerisStore
from ..satellite.satellite_position import eph2dtsv, eph2pvt, flight_time_correction

logger = get_logger(__name__)

# Columns of the prs matrix
J_WK, J_SEC, J_SV, J_PR, J_PR_SIG, J_PRR, J_PRR_SIG = range(7)


@dataclass
class WlsSolution:
    """
    Single epoch WLS result.

    Attributes
    ----------
    x_hat : np.ndarray
        (8,) state update [dx, dy, dz, dbc, vx, vy, vz, dbc_dot]
    z : np.ndarray
        (2n,) a posteriori pseudorange and pseudorange rate residuals
    sv_pos : np.ndarray
        (n, 5) [svid, x, y, z, dtsv] with positions at reception time
    H : np.ndarray
        (n, 4) ECEF observation matrix [unit vectors, 1]
    Wpr, Wrr : np.ndarray
        (n, n) pseudorange and pseudorange rate weight matrices
    iterations : int
        Gauss-Newton iterations used
    """
    x_hat: np.ndarray
    z: np.ndarray
    sv_pos: np.ndarray
    H: np.ndarray
    Wpr: np.ndarray
    Wrr: np.ndarray
    iterations: int


def _check_inputs(prs: np.ndarray, ephs: List[GpsEphemeris], xo: np.ndarray) -> int:
    if prs.ndim != 2 or prs.shape[1] != 7:
        raise InputShapeError(f"prs must have 7 columns, got shape {prs.shape}")
    num_val = prs.shape[0]
    if num_val and np.ptp(prs[:, J_SEC]) > np.finfo(float).eps:
        raise InputShapeError("All measurements must share one time of reception")
    if len(ephs) != num_val:
        raise InputShapeError(f"{len(ephs)} ephemerides for {num_val} measurements")
    if np.any(prs[:, J_SV] != np.array([eph.prn for eph in ephs])):
        raise InputShapeError("Ephemeris PRNs are not aligned with measurement svids")
    if xo.shape != (8,):
        raise InputShapeError(f"xo must have 8 elements, got shape {xo.shape}")
    return num_val


def _usable(value: np.ndarray, sigma: np.ndarray) -> np.ndarray:
    return np.isfinite(value) & np.isfinite(sigma) & (sigma > 0)


def _weighted_solve(W: np.ndarray, H: np.ndarray, z: np.ndarray) -> np.ndarray:
    dx, _, rank, _ = linalg.lstsq(W @ H, W @ z)
    if rank < H.shape[1]:
        raise DegenerateGeometryError(f"Observation matrix rank {rank} < {H.shape[1]}")
    return dx


def wls_pvt(prs: np.ndarray, ephs: List[GpsEphemeris], xo: np.ndarray,
            max_iter: int = WLS_MAXITR,
            max_del_pos: float = MAXDELPOSFORNAVM) -> Optional[WlsSolution]:
    """
    Weighted least squares PVT for one epoch.

    Parameters
    ----------
    prs : np.ndarray
        (n, 7) matrix [trxWeek, trxSeconds, svid, prM, prSigmaM, prrMps,
        prrSigmaMps], one row per satellite, all with the same time of
        reception
    ephs : list of GpsEphemeris
        Ephemeris of each row, same order
    xo : np.ndarray
        (8,) a priori state [x, y, z, bc, vx, vy, vz, bc_dot] (m, m/s)
    max_iter : int
        Gauss-Newton iteration cap
    max_del_pos : float
        Iteration stops once the position update is at most this (m)

    Returns
    -------
    WlsSolution or None
        None when fewer than four measurements are given

    Raises
    ------
    InputShapeError
        Misaligned inputs
    WlsDidNotConvergeError
        Iteration cap exceeded
    DegenerateGeometryError
        Rank deficient observation matrix

    Notes
    -----
    Position and clock bias are solved by Gauss-Newton with the earth
    rotation during signal flight applied at each step. Velocity and clock
    drift follow from a single extra step with the pseudorange rates.
    Rows whose rate or rate sigma is not finite and positive are left out
    of that step, and the velocity is NaN when fewer than four remain.
    """
    prs = np.asarray(prs, dtype=np.float64)
    xo = np.asarray(xo, dtype=np.float64).ravel()
    num_val = _check_inputs(prs, ephs, xo)
    if num_val < MIN_NUM_SVS:
        return None

    xyz0 = xo[:3].copy()
    bc = xo[3]

    # Transmit time by satellite clock, then true GPS time
    ttx_week = prs[:, J_WK]
    ttx_seconds = prs[:, J_SEC] - prs[:, J_PR] / CLIGHT
    dtsv = eph2dtsv(ephs, ttx_seconds)
    ttx = ttx_seconds - dtsv
    sv_xyz_ttx, dtsv, sv_xyz_dot, dtsv_dot = eph2pvt(ephs, ttx_week, ttx)

    Wpr = np.diag(1.0 / prs[:, J_PR_SIG])
    # Rows without a usable rate get zero weight and stay out of the velocity solve
    rr_ok = _usable(prs[:, J_PRR], prs[:, J_PRR_SIG])
    Wrr = np.diag(np.where(rr_ok, 1.0 / np.where(rr_ok, prs[:, J_PRR_SIG], 1.0), 0.0))

    x_hat = np.zeros(4)
    dx = np.full(4, np.inf)
    iterations = 0
    while norm(dx[:3]) > max_del_pos:
        iterations += 1
        if iterations > max_iter:
            raise WlsDidNotConvergeError(max_iter)

        dt_flight = (prs[:, J_PR] - bc) / CLIGHT + dtsv
        sv_xyz_trx = flight_time_correction(sv_xyz_ttx, dt_flight)

        # Line of sight unit vectors from satellite to receiver
        v = xyz0 - sv_xyz_trx
        rng = norm(v, axis=1)
        v = v / rng[:, None]

        pr_hat = rng + bc - CLIGHT * dtsv
        z_pr = prs[:, J_PR] - pr_hat
        H = np.column_stack([v, np.ones(num_val)])

        dx = _weighted_solve(Wpr, H, z_pr)
        x_hat = x_hat + dx
        xyz0 = xyz0 + dx[:3]
        bc = bc + dx[3]
        z_pr = z_pr - H @ dx

    sv_pos = np.column_stack([prs[:, J_SV], sv_xyz_trx, dtsv])

    # Velocity and clock drift
    rr = -np.sum(sv_xyz_dot * v, axis=1)
    prr_hat = rr + xo[7] - CLIGHT * dtsv_dot
    z_prr = prs[:, J_PRR] - prr_hat
    if np.count_nonzero(rr_ok) >= MIN_NUM_SVS:
        v_hat = _weighted_solve(Wrr[np.ix_(rr_ok, rr_ok)], H[rr_ok], z_prr[rr_ok])
    else:
        logger.debug(f"{np.count_nonzero(rr_ok)} usable pseudorange rates, velocity not solved")
        v_hat = np.full(4, np.nan)

    return WlsSolution(x_hat=np.concatenate([x_hat, v_hat]),
                       z=np.concatenate([z_pr, z_prr]),
                       sv_pos=sv_pos, H=H, Wpr=Wpr, Wrr=Wrr,
                       iterations=iterations)


def _epoch_estimate(fct_seconds: float, xo: np.ndarray, sol: WlsSolution, num_svs: int) -> PvtEstimate:
    lla = xyz2lla(xo[:3])
    re2n = rot_ecef2ned(lla[0], lla[1])

    # Observation matrix in NED
    H = np.column_stack([sol.H[:, :3] @ re2n.T, np.ones(num_svs)])
    P = linalg.inv(H.T @ H)
    hdop = np.sqrt(P[0, 0] + P[1, 1])
    P = linalg.inv(H.T @ (sol.Wpr.T @ sol.Wpr) @ H)
    sigma_pos = np.sqrt(np.diag(P[:3, :3]))
    rr_ok = np.diag(sol.Wrr) > 0
    if np.count_nonzero(rr_ok) >= MIN_NUM_SVS:
        Wrr = sol.Wrr[np.ix_(rr_ok, rr_ok)]
        P = linalg.inv(H[rr_ok].T @ (Wrr.T @ Wrr) @ H[rr_ok])
        sigma_vel = np.sqrt(np.diag(P[:3, :3]))
    else:
        sigma_vel = np.full(3, np.nan)

    return PvtEstimate(
        fct_seconds=fct_seconds,
        xyz_m=xo[:3].copy(),
        lla_deg_deg_m=lla,
        bc_m=float(xo[3]),
        vel_ned_mps=re2n @ xo[4:7],
        bc_dot_mps=float(xo[7]),
        sigma_pos_ned_m=sigma_pos,
        sigma_vel_ned_mps=sigma_vel,
        num_svs=num_svs,
        hdop=float(hdop),
        iterations=sol.iterations,
    )


def gps_wls_pvt(meas: GnssMeasurements, store: EphemerisStore,
                diagnostics: Optional[DiagnosticsReport] = None,
                warm_start: bool = True,
                max_iter: int = WLS_MAXITR,
                max_del_pos: float = MAXDELPOSFORNAVM,
                exclude_unhealthy: bool = False) -> PvtTimeSeries:
    """
    WLS PVT for every epoch of a measurement batch.

    Parameters
    ----------
    meas : GnssMeasurements
        Aligned measurements
    store : EphemerisStore
        Broadcast ephemerides
    diagnostics : DiagnosticsReport, optional
        Receives the skip and failure reasons of each epoch
    warm_start : bool
        Start each epoch from the previous solution (velocity re-zeroed).
        When False every epoch starts at the centre of the Earth, so
        epochs are independent of each other.
    max_iter, max_del_pos
        Passed to ``wls_pvt``
    exclude_unhealthy : bool
        Skip ephemerides with a non-zero health word

    Returns
    -------
    PvtTimeSeries
        One estimate per epoch, NaN where no solution was computed
    """
    if diagnostics is None:
        diagnostics = DiagnosticsReport()

    pvt = PvtTimeSeries()
    xo = np.zeros(8)
    weeks = meas.week_numbers

    for i in range(meas.num_epochs):
        fct = float(meas.fct_seconds[i])
        if not warm_start:
            xo = np.zeros(8)

        i_valid = np.flatnonzero(_usable(meas.pr_m[i], meas.pr_sigma_m[i]))
        ephs, i_sv = store.closest(meas.svid[i_valid], fct, exclude_unhealthy)
        cols = i_valid[i_sv]
        num_svs = cols.size
        if num_svs < MIN_NUM_SVS:
            logger.debug(f"Epoch {i}: {num_svs} satellites with ephemeris, skipped")
            diagnostics.record_skip(i, 'insufficient_satellites')
            pvt.append(PvtEstimate(fct_seconds=fct, num_svs=num_svs))
            continue

        prs = np.column_stack([
            np.full(num_svs, weeks[i], dtype=np.float64),
            meas.t_rx_seconds[i, cols],
            meas.svid[cols],
            meas.pr_m[i, cols],
            meas.pr_sigma_m[i, cols],
            meas.prr_mps[i, cols],
            meas.prr_sigma_mps[i, cols],
        ])

        xo[4:7] = 0.0
        try:
            sol = wls_pvt(prs, ephs, xo, max_iter=max_iter, max_del_pos=max_del_pos)
            x_new = xo + sol.x_hat
            estimate = _epoch_estimate(fct, x_new, sol, num_svs)
        except (EpochSolveError, linalg.LinAlgError) as e:
            logger.warning(f"Epoch {i} (fct {fct:.3f}): {e}")
            reason = type(e).__name__ if isinstance(e, EpochSolveError) else 'DegenerateGeometryError'
            diagnostics.record_skip(i, reason)
            pvt.append(PvtEstimate(fct_seconds=fct, num_svs=num_svs))
            continue

        # Warm start without a velocity when the rates gave none
        xo = np.where(np.isfinite(x_new), x_new, 0.0)
        pvt.append(estimate)

    return pvt
