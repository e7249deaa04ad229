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

"""Satellite position computation from ephemeris"""

from typing import Sequence, Tuple, Union

import numpy as np
from numba import njit

from ..core.constants import (CLIGHT, FIT_INTERVAL_PROPAGATE_H, FREL, HALFWEEKSEC, HOURSEC,
                              KEPLER_MAXITR, KEPLER_TOL, MU_GPS, OMGE, WEEKSEC)
from ..core.data_structures import GpsEphemeris, IterationResult
from ..core.exceptions import InputShapeError
from ..logger import get_logger

logger = get_logger(__name__)

__all__ = ['kepler', 'eph2xyz', 'eph2dtsv', 'eph2pvt', 'propagate',
           'flight_time_correction', 'geometric_range', 'signal_flight_time']

EphemerisSet = Union[GpsEphemeris, Sequence[GpsEphemeris]]


@njit(cache=True)
def _kepler_iterate(mk, e, tol, max_iter):
    """Fixed point iteration E <- E - (E - M - e sin E) on whole arrays"""
    ek = mk.copy()
    iterations = 0
    max_err = np.inf
    while max_err > tol and iterations < max_iter:
        err = ek - mk - e * np.sin(ek)
        ek = ek - err
        iterations += 1
        max_err = 0.0
        for k in range(err.size):
            a = abs(err[k])
            if a > max_err:
                max_err = a
    return ek, iterations, max_err


def kepler(mk, e, tol: float = KEPLER_TOL, max_iter: int = KEPLER_MAXITR) -> IterationResult:
    """
    Solve Kepler's equation Ek - e sin(Ek) = Mk for the eccentric anomaly.

    Parameters
    ----------
    mk : float or array_like
        Mean anomaly (rad)
    e : float or array_like
        Eccentricity, broadcast against ``mk``
    tol : float
        Convergence tolerance on the residual (rad)
    max_iter : int
        Iteration cap

    Returns
    -------
    IterationResult
        ``value`` holds Ek (float for scalar inputs, array otherwise). When
        the cap is hit a warning is logged and the last iterate is returned
        with ``converged=False``.
    """
    scalar = np.ndim(mk) == 0 and np.ndim(e) == 0
    mk_arr, e_arr = np.broadcast_arrays(np.atleast_1d(np.asarray(mk, dtype=np.float64)),
                                        np.atleast_1d(np.asarray(e, dtype=np.float64)))
    if mk_arr.ndim > 1:
        raise InputShapeError("mk and e must be scalars or vectors, not matrices")
    if mk_arr.size == 0:
        return IterationResult(mk_arr.copy(), 0, True)

    ek, iterations, max_err = _kepler_iterate(np.array(mk_arr, dtype=np.float64),
                                              np.array(e_arr, dtype=np.float64),
                                              float(tol), int(max_iter))
    converged = bool(max_err <= tol)
    if not converged:
        logger.warning(f"Failed convergence on Kepler's equation after {iterations} iterations "
                       f"(residual {max_err:.3e} rad)")
    value = float(ek[0]) if scalar else ek
    return IterationResult(value, int(iterations), converged)


def _as_list(ephs: EphemerisSet):
    if isinstance(ephs, GpsEphemeris):
        return [ephs]
    return list(ephs)


def _eph_field(ephs, name: str) -> np.ndarray:
    return np.array([getattr(eph, name) for eph in ephs], dtype=np.float64)


def _check_inputs(ephs: EphemerisSet, gps_week, ttx_seconds):
    """Validate and broadcast ephemerides against transmit times"""
    ephs = _as_list(ephs)
    week = np.atleast_1d(np.asarray(gps_week, dtype=np.float64))
    ttx = np.atleast_1d(np.asarray(ttx_seconds, dtype=np.float64))
    if week.ndim > 1 or ttx.ndim > 1:
        raise InputShapeError("gps_week and ttx_seconds must be scalars or vectors")
    p = len(ephs)
    if p == 0:
        raise InputShapeError("At least one ephemeris is required")
    if week.size != ttx.size and week.size != 1:
        raise InputShapeError(f"gps_week has {week.size} entries, ttx_seconds has {ttx.size}")
    pt = ttx.size
    if p > 1 and pt != p:
        raise InputShapeError(f"{p} ephemerides given for {pt} times; lengths must match")
    n = max(p, pt)
    week = np.broadcast_to(week, (n,))
    ttx = np.broadcast_to(ttx, (n,))
    if p == 1 and n > 1:
        ephs = ephs * n
    return ephs, week, ttx


def eph2xyz(ephs: EphemerisSet, gps_week, ttx_seconds) -> Tuple[np.ndarray, np.ndarray]:
    """
    Compute satellite ECEF position and clock bias from broadcast ephemeris.

    Parameters
    ----------
    ephs : GpsEphemeris or sequence of GpsEphemeris
        One record per time, or a single record for all times
    gps_week : int or array_like
        GPS week of transmission
    ttx_seconds : float or array_like
        Transmit time, seconds of ``gps_week``

    Returns
    -------
    xyz_m : np.ndarray
        (P, 3) satellite ECEF position (m)
    dtsv_s : np.ndarray
        (P,) satellite clock bias including relativity and TGD (s)

    Notes
    -----
    Follows IS-GPS-200 Table 20-IV. Weeks are differenced before seconds
    to keep precision. Times further than the fit interval from toe only
    raise a warning.
    """
    ephs, week, ttx = _check_inputs(ephs, gps_week, ttx_seconds)
    p = len(ephs)

    fit_h = _eph_field(ephs, 'fit_interval')
    fit_h[fit_h == 0] = FIT_INTERVAL_PROPAGATE_H
    fit_s = fit_h * HOURSEC

    tgd = _eph_field(ephs, 'tgd')
    toc = _eph_field(ephs, 'toc')
    af0 = _eph_field(ephs, 'af0')
    af1 = _eph_field(ephs, 'af1')
    af2 = _eph_field(ephs, 'af2')
    crs = _eph_field(ephs, 'crs')
    crc = _eph_field(ephs, 'crc')
    cus = _eph_field(ephs, 'cus')
    cuc = _eph_field(ephs, 'cuc')
    cis = _eph_field(ephs, 'cis')
    cic = _eph_field(ephs, 'cic')
    delta_n = _eph_field(ephs, 'delta_n')
    m0 = _eph_field(ephs, 'm0')
    e = _eph_field(ephs, 'e')
    asqrt = _eph_field(ephs, 'asqrt')
    toe = _eph_field(ephs, 'toe')
    omega0 = _eph_field(ephs, 'omega0')
    omega = _eph_field(ephs, 'omega')
    i0 = _eph_field(ephs, 'i0')
    omega_dot = _eph_field(ephs, 'omega_dot')
    idot = _eph_field(ephs, 'idot')
    eph_week = _eph_field(ephs, 'gps_week')

    # Time from ephemeris reference epoch
    tk = (week - eph_week) * WEEKSEC + (ttx - toe)
    outside = np.abs(tk) > fit_s
    if np.any(outside):
        logger.warning(f"{int(np.count_nonzero(outside))} times outside fit interval")

    # Mean anomaly and Kepler's equation
    a = asqrt ** 2
    n = np.sqrt(MU_GPS / a ** 3) + delta_n
    mk = m0 + n * tk
    ek = kepler(mk, e).value

    # Clock correction
    dt = (week - eph_week) * WEEKSEC + (ttx - toc)
    sin_ek = np.sin(ek)
    cos_ek = np.cos(ek)
    dtsv = af0 + af1 * dt + af2 * dt ** 2 + FREL * e * asqrt * sin_ek - tgd

    # True anomaly and argument of latitude
    vk = np.arctan2(np.sqrt(1 - e ** 2) * sin_ek / (1 - e * cos_ek),
                    (cos_ek - e) / (1 - e * cos_ek))
    phik = vk + omega

    # Second harmonic perturbations
    sin_2phik = np.sin(2 * phik)
    cos_2phik = np.cos(2 * phik)
    duk = cus * sin_2phik + cuc * cos_2phik
    drk = crc * cos_2phik + crs * sin_2phik
    dik = cic * cos_2phik + cis * sin_2phik

    uk = phik + duk
    rk = a * ((1 - e ** 2) / (1 + e * np.cos(vk))) + drk
    ik = i0 + idot * tk + dik

    # Position in orbital plane
    xkp = rk * np.cos(uk)
    ykp = rk * np.sin(uk)

    # Corrected longitude of ascending node
    wk = omega0 + (omega_dot - OMGE) * tk - OMGE * toe

    sin_wk = np.sin(wk)
    cos_wk = np.cos(wk)
    sin_ik = np.sin(ik)
    cos_ik = np.cos(ik)

    xyz = np.zeros((p, 3))
    xyz[:, 0] = xkp * cos_wk - ykp * cos_ik * sin_wk
    xyz[:, 1] = xkp * sin_wk + ykp * cos_ik * cos_wk
    xyz[:, 2] = ykp * sin_ik
    return xyz, dtsv


def eph2dtsv(ephs: EphemerisSet, t_seconds) -> np.ndarray:
    """
    Satellite clock bias from time of week only.

    Used to correct the transmit time before the full orbit computation.
    Differences to toe and toc are wrapped by a week when they exceed
    half a week.

    Parameters
    ----------
    ephs : GpsEphemeris or sequence of GpsEphemeris
        One record per time, or a single record for all times
    t_seconds : float or array_like
        Time of week (s)

    Returns
    -------
    np.ndarray
        (P,) satellite clock bias (s)
    """
    ephs, _, t = _check_inputs(ephs, 0, t_seconds)

    tgd = _eph_field(ephs, 'tgd')
    toc = _eph_field(ephs, 'toc')
    af0 = _eph_field(ephs, 'af0')
    af1 = _eph_field(ephs, 'af1')
    af2 = _eph_field(ephs, 'af2')
    delta_n = _eph_field(ephs, 'delta_n')
    m0 = _eph_field(ephs, 'm0')
    e = _eph_field(ephs, 'e')
    asqrt = _eph_field(ephs, 'asqrt')
    toe = _eph_field(ephs, 'toe')

    tk = _wrap_half_week(t - toe)
    a = asqrt ** 2
    n = np.sqrt(MU_GPS / a ** 3) + delta_n
    mk = m0 + n * tk
    ek = kepler(mk, e).value

    dt = _wrap_half_week(t - toc)
    return af0 + af1 * dt + af2 * dt ** 2 + FREL * e * asqrt * np.sin(ek) - tgd


def _wrap_half_week(dt: np.ndarray) -> np.ndarray:
    dt = np.array(dt, dtype=np.float64)
    dt[dt > HALFWEEKSEC] -= WEEKSEC
    dt[dt < -HALFWEEKSEC] += WEEKSEC
    return dt


def eph2pvt(ephs: EphemerisSet, gps_week, ttx_seconds
            ) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Satellite position, clock bias, velocity and clock drift.

    Velocity and clock drift are central differences of ``eph2xyz``
    evaluated 0.5 s either side of the transmit time.

    Returns
    -------
    xyz_m : np.ndarray
        (P, 3) ECEF position (m)
    dtsv_s : np.ndarray
        (P,) clock bias (s)
    vel_mps : np.ndarray
        (P, 3) ECEF velocity (m/s)
    dtsv_dot : np.ndarray
        (P,) clock drift (s/s)
    """
    ttx = np.asarray(ttx_seconds, dtype=np.float64)
    xyz, dtsv = eph2xyz(ephs, gps_week, ttx)
    xyz_plus, dtsv_plus = eph2xyz(ephs, gps_week, ttx + 0.5)
    xyz_minus, dtsv_minus = eph2xyz(ephs, gps_week, ttx - 0.5)
    return xyz, dtsv, xyz_plus - xyz_minus, dtsv_plus - dtsv_minus


def propagate(ephs: EphemerisSet, gps_week, ttx_seconds, with_velocity: bool = False):
    """
    Propagate broadcast orbits to the given transmit times.

    Returns ``(xyz_m, dtsv_s)``, or ``(xyz_m, dtsv_s, vel_mps, dtsv_dot)``
    when ``with_velocity`` is set.
    """
    if with_velocity:
        return eph2pvt(ephs, gps_week, ttx_seconds)
    return eph2xyz(ephs, gps_week, ttx_seconds)


def flight_time_correction(xyz_m: np.ndarray, dt_flight_s) -> np.ndarray:
    """
    Rotate satellite ECEF positions by the earth rotation during signal flight.

    Parameters
    ----------
    xyz_m : np.ndarray
        (3,) or (P, 3) ECEF position at transmit time
    dt_flight_s : float or array_like
        Flight time (s), one per position

    Returns
    -------
    np.ndarray
        Positions expressed in the ECEF frame of reception time, same
        shape as ``xyz_m``
    """
    xyz = np.asarray(xyz_m, dtype=np.float64)
    single = xyz.ndim == 1
    xyz = np.atleast_2d(xyz)
    theta = OMGE * np.broadcast_to(np.asarray(dt_flight_s, dtype=np.float64), (xyz.shape[0],))
    c = np.cos(theta)
    s = np.sin(theta)

    rot = np.empty_like(xyz)
    rot[:, 0] = c * xyz[:, 0] + s * xyz[:, 1]
    rot[:, 1] = -s * xyz[:, 0] + c * xyz[:, 1]
    rot[:, 2] = xyz[:, 2]
    return rot[0] if single else rot


def geometric_range(rx_xyz_m: np.ndarray, sv_xyz_m: np.ndarray) -> np.ndarray:
    """Distance from a receiver to (P, 3) satellite positions"""
    return np.linalg.norm(np.atleast_2d(sv_xyz_m) - np.asarray(rx_xyz_m), axis=1)


def signal_flight_time(pr_m, bc_m, dtsv_s):
    """Flight time from pseudorange, receiver clock bias (m) and satellite clock bias (s)"""
    return (np.asarray(pr_m) - bc_m) / CLIGHT + np.asarray(dtsv_s)
