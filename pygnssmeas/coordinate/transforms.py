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

"""Coordinate transformation utilities"""


import numpy as np

from ..core.constants import D2R, E2_WGS84, R2D, RE_WGS84
from ..core.exceptions import InputShapeError


def _as_rows(values: np.ndarray, name: str):
    arr = np.asarray(values, dtype=np.float64)
    single = arr.ndim == 1
    arr = np.atleast_2d(arr)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise InputShapeError(f"{name} must have three columns, got shape {np.shape(values)}")
    return arr, single


def xyz2lla(xyz: np.ndarray) -> np.ndarray:
    """Convert ECEF coordinates to geodetic coordinates

    Closed form solution (Hofmann-Wellenhof, Lichtenegger and Collins),
    no iteration.

    Parameters
    ----------
    xyz : np.ndarray
        ECEF coordinates [x, y, z] in meters, shape (3,) or (N, 3)

    Returns
    -------
    np.ndarray
        Geodetic coordinates [lat, lon, alt] (deg, deg, m), same shape as
        the input. Rows with x = y = 0 are NaN.

    Examples
    --------
    >>> xyz2lla(np.array([-2700404.0, -4292605.0, 3855137.0]))  # Mountain View approx.
    """
    xyz, single = _as_rows(xyz, 'xyz')
    xyz = xyz.copy()
    xyz[(xyz[:, 0] == 0) & (xyz[:, 1] == 0), :] = np.nan
    x, y, z = xyz[:, 0], xyz[:, 1], xyz[:, 2]

    a = RE_WGS84
    a2 = a ** 2
    b2 = a2 * (1 - E2_WGS84)
    b = np.sqrt(b2)
    ep2 = (a2 - b2) / b2

    p = np.sqrt(x ** 2 + y ** 2)

    # Parametric latitude
    s1 = z * a
    s2 = p * b
    h = np.sqrt(s1 ** 2 + s2 ** 2)
    sin_theta = s1 / h
    cos_theta = s2 / h

    s1 = z + ep2 * b * sin_theta ** 3
    s2 = p - a * E2_WGS84 * cos_theta ** 3
    h = np.sqrt(s1 ** 2 + s2 ** 2)
    sin_lat = s1 / h
    cos_lat = s2 / h
    lat = np.arctan(s1 / s2)

    n = a2 * (a2 * cos_lat ** 2 + b2 * sin_lat ** 2) ** -0.5
    alt = p / cos_lat - n

    lon = np.arctan2(y, x)

    lla = np.column_stack([lat * R2D, lon * R2D, alt])
    return lla[0] if single else lla


def lla2xyz(lla: np.ndarray) -> np.ndarray:
    """Convert geodetic coordinates to ECEF coordinates

    Parameters
    ----------
    lla : np.ndarray
        Geodetic coordinates [lat, lon, alt] (deg, deg, m), shape (3,)
        or (N, 3)

    Returns
    -------
    np.ndarray
        ECEF coordinates [x, y, z] in meters, same shape as the input
    """
    lla, single = _as_rows(lla, 'lla')
    lat = lla[:, 0] * D2R
    lon = lla[:, 1] * D2R
    alt = lla[:, 2]

    slat = np.sin(lat)
    clat = np.cos(lat)
    slon = np.sin(lon)
    clon = np.cos(lon)

    r0 = RE_WGS84 / np.sqrt(1.0 - E2_WGS84 * slat * slat)

    xyz = np.column_stack([
        (alt + r0) * clat * clon,
        (alt + r0) * clat * slon,
        (alt + r0 * (1.0 - E2_WGS84)) * slat,
    ])
    return xyz[0] if single else xyz


def rot_ecef2ned(lat_deg: float, lon_deg: float) -> np.ndarray:
    """Compute rotation matrix from ECEF to NED coordinates

    Parameters
    ----------
    lat_deg : float
        Geodetic latitude in degrees
    lon_deg : float
        Longitude in degrees

    Returns
    -------
    np.ndarray
        Rotation matrix (3x3); v_ned = R @ v_ecef
    """
    lat = lat_deg * D2R
    lon = lon_deg * D2R
    slat = np.sin(lat)
    clat = np.cos(lat)
    slon = np.sin(lon)
    clon = np.cos(lon)

    return np.array([
        [-slat * clon, -slat * slon, clat],
        [-slon, clon, 0.0],
        [-clat * clon, -clat * slon, -slat]
    ])


def lla2ned(lla1: np.ndarray, lla2: np.ndarray) -> np.ndarray:
    """
    NED vector from lla2 to lla1

    North and east are rotated at the midpoint of the two positions, down
    is the altitude difference.

    Parameters:
    -----------
    lla1 : np.ndarray
        Geodetic coordinates (deg, deg, m), shape (3,) or (N, 3)
    lla2 : np.ndarray
        Geodetic coordinates (deg, deg, m), one row or N rows

    Returns:
    --------
    ned : np.ndarray
        Local NED coordinates [n, e, d] (m), one row per lla1 row
    """
    lla1, single = _as_rows(lla1, 'lla1')
    lla2, _ = _as_rows(lla2, 'lla2')
    m1 = lla1.shape[0]
    if lla2.shape[0] == 1:
        lla2 = np.repeat(lla2, m1, axis=0)
    elif lla2.shape[0] != m1:
        raise InputShapeError("Second input must have one row or the same number of rows as the first")

    xyz1 = lla2xyz(lla1)
    xyz2 = lla2xyz(lla2)
    ref_lla = xyz2lla((xyz1 + xyz2) / 2)

    ned = np.zeros((m1, 3))
    for i in range(m1):
        v = rot_ecef2ned(ref_lla[i, 0], ref_lla[i, 1]) @ (xyz1[i] - xyz2[i])
        ned[i, 0] = v[0]
        ned[i, 1] = v[1]
    ned[:, 2] = -lla1[:, 2] + lla2[:, 2]
    return ned[0] if single else ned


def lla2hd(lla1: np.ndarray, lla2: np.ndarray):
    """Horizontal distance and north/east offsets of lla1 relative to lla2"""
    ned = np.atleast_2d(lla2ned(lla1, lla2))
    ne = ned[:, :2]
    dist = np.sqrt(ned[:, 0] ** 2 + ned[:, 1] ** 2)
    return dist, ne


def ecef2ned_velocity(vel_ecef: np.ndarray, lat_deg: float, lon_deg: float) -> np.ndarray:
    """Rotate an ECEF velocity into NED at the given position"""
    return rot_ecef2ned(lat_deg, lon_deg) @ np.asarray(vel_ecef, dtype=np.float64)
