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

"""Reference position and solution error"""

from dataclasses import dataclass, field
from typing import Optional, Union

import numpy as np

from ..coordinate.transforms import lla2hd
from ..core.constants import REFPVTDELTASECONDS
from ..core.data_structures import PvtTimeSeries
from ..core.exceptions import FatalInputError, InputShapeError


@dataclass
class ReferencePvt:
    """
    Known receiver trajectory, or a single stationary position.

    Attributes
    ----------
    lla_deg_deg_m : np.ndarray
        (N, 3) latitude (deg), longitude (deg), altitude (m)
    fct_seconds : np.ndarray, optional
        (N,) time tags, empty for a stationary reference
    vel_ned_mps : np.ndarray, optional
        (N, 3) velocity, zeros if omitted
    """
    lla_deg_deg_m: np.ndarray
    fct_seconds: np.ndarray = field(default_factory=lambda: np.zeros(0))
    vel_ned_mps: Optional[np.ndarray] = None

    def __post_init__(self):
        self.lla_deg_deg_m = np.atleast_2d(np.asarray(self.lla_deg_deg_m, dtype=np.float64))
        self.fct_seconds = np.atleast_1d(np.asarray(self.fct_seconds, dtype=np.float64))
        if self.vel_ned_mps is None:
            self.vel_ned_mps = np.zeros_like(self.lla_deg_deg_m)
        self.vel_ned_mps = np.atleast_2d(np.asarray(self.vel_ned_mps, dtype=np.float64))
        if self.lla_deg_deg_m.shape[1] != 3 or self.vel_ned_mps.shape != self.lla_deg_deg_m.shape:
            raise InputShapeError("Reference lla and velocity must be (N, 3) arrays of equal shape")
        if self.fct_seconds.size and self.fct_seconds.size != self.lla_deg_deg_m.shape[0]:
            raise InputShapeError("Reference time tags must match the number of positions")

    @classmethod
    def stationary(cls, lla_deg_deg_m) -> 'ReferencePvt':
        return cls(lla_deg_deg_m=lla_deg_deg_m)

    @property
    def is_stationary(self) -> bool:
        return (self.fct_seconds.size == 0 and self.lla_deg_deg_m.shape[0] == 1
                and bool(np.all(self.vel_ned_mps == 0)))


def get_ref_pvti(ref: ReferencePvt, fct_seconds: float) -> Optional[ReferencePvt]:
    """
    Reference position at a given time.

    Parameters
    ----------
    ref : ReferencePvt
        Reference trajectory
    fct_seconds : float
        Query time, GPS full cycle seconds

    Returns
    -------
    ReferencePvt or None
        The reference itself when stationary, the matching row for an
        exact time tag, the linear interpolation of a straddling pair
        whose time tags are both within 2 s, otherwise None

    Raises
    ------
    FatalInputError
        If the reference time tags are decreasing
    """
    if ref.is_stationary:
        return ref

    all_seconds = ref.fct_seconds
    if all_seconds.size == 0:
        return None
    if np.any(np.diff(all_seconds) < 0):
        raise FatalInputError("Reference time tags must be non-decreasing")

    i_equal = np.flatnonzero(all_seconds == fct_seconds)
    if i_equal.size:
        k = i_equal[0]
        return ReferencePvt(lla_deg_deg_m=ref.lla_deg_deg_m[k], fct_seconds=[fct_seconds],
                            vel_ned_mps=ref.vel_ned_mps[k])

    i_l = np.flatnonzero(all_seconds < fct_seconds)
    i_r = np.flatnonzero(all_seconds > fct_seconds)
    if i_l.size == 0 or i_r.size == 0:
        return None
    i_l = i_l[-1]
    i_r = i_r[0]

    dt_l = fct_seconds - all_seconds[i_l]
    dt_r = all_seconds[i_r] - fct_seconds
    if dt_l > REFPVTDELTASECONDS or dt_r > REFPVTDELTASECONDS:
        return None

    lla = (ref.lla_deg_deg_m[i_l] * dt_r + ref.lla_deg_deg_m[i_r] * dt_l) / (dt_l + dt_r)
    vel = (ref.vel_ned_mps[i_l] * dt_r + ref.vel_ned_mps[i_r] * dt_l) / (dt_l + dt_r)
    return ReferencePvt(lla_deg_deg_m=lla, fct_seconds=[fct_seconds], vel_ned_mps=vel)


@dataclass
class HorizontalError:
    """Horizontal distance between a solution and its reference, per epoch"""
    fct_seconds: np.ndarray
    dist_m: np.ndarray
    test_ne_m: np.ndarray
    ref_ne_m: np.ndarray


def horizontal_error_from_pvt(pvt: PvtTimeSeries, ref: Union[ReferencePvt, np.ndarray],
                              hdop_threshold: float = np.inf) -> HorizontalError:
    """
    Horizontal error of a PVT series against a reference.

    North/east offsets of both the solution and the reference are taken
    relative to the first reference position found.

    Parameters
    ----------
    pvt : PvtTimeSeries
        Solutions to evaluate
    ref : ReferencePvt or np.ndarray
        Reference trajectory, or a fixed lla triple
    hdop_threshold : float
        Epochs with a larger HDOP are left NaN

    Returns
    -------
    HorizontalError
    """
    if not isinstance(ref, ReferencePvt):
        ref = ReferencePvt.stationary(ref)

    fct = pvt.fct_seconds
    lla_all = pvt.lla_deg_deg_m
    hdop = pvt.hdop
    n = len(fct)
    dist = np.full(n, np.nan)
    test_ne = np.full((n, 2), np.nan)
    ref_ne = np.full((n, 2), np.nan)

    lla0 = None
    for i in range(n):
        ref_i = get_ref_pvti(ref, fct[i])
        if ref_i is None:
            continue
        if lla0 is None:
            lla0 = ref_i.lla_deg_deg_m[0]
        if hdop[i] > hdop_threshold or not np.all(np.isfinite(lla_all[i])):
            continue
        _, ne = lla2hd(lla_all[i], lla0)
        test_ne[i] = ne[0]
        _, ne = lla2hd(ref_i.lla_deg_deg_m[0], lla0)
        ref_ne[i] = ne[0]
        dist[i] = np.linalg.norm(test_ne[i] - ref_ne[i])

    return HorizontalError(fct_seconds=fct, dist_m=dist, test_ne_m=test_ne, ref_ne_m=ref_ne)
