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

"""Core data structures for GNSS measurement processing"""

from collections import Counter
from dataclasses import dataclass, field, fields
from enum import IntFlag
from typing import Any, Dict, List, Mapping, Optional

import numpy as np
import pandas as pd

from .constants import WEEKSEC


class MeasurementState(IntFlag):
    """Synchronization state bits reported with each raw measurement.

    Attributes
    ----------
    CODE_LOCK : int
        Code tracking is locked (bit 0)
    BIT_SYNC : int
        Bit synchronization achieved (bit 1)
    SUBFRAME_SYNC : int
        Subframe synchronization achieved (bit 2)
    TOW_DECODED : int
        Time of week decoded from the navigation message (bit 3)
    MSEC_AMBIGUOUS : int
        Millisecond ambiguity present (bit 4)
    """
    UNKNOWN = 0
    CODE_LOCK = 1 << 0
    BIT_SYNC = 1 << 1
    SUBFRAME_SYNC = 1 << 2
    TOW_DECODED = 1 << 3
    MSEC_AMBIGUOUS = 1 << 4


class AdrState(IntFlag):
    """Accumulated delta range state bits.

    The ADR is only accurate when VALID is set.
    """
    UNKNOWN = 0
    VALID = 1 << 0
    RESET = 1 << 1
    CYCLE_SLIP = 1 << 2


def _bit_set(value, flag: int):
    bits = np.bitwise_and(np.asarray(value, dtype=np.int64), int(flag)) != 0
    if bits.ndim == 0:
        return bool(bits)
    return bits


def has_code_lock(state):
    """True where the code-lock bit of State is set"""
    return _bit_set(state, MeasurementState.CODE_LOCK)


def has_tow_decoded(state):
    """True where the TOW-decoded bit of State is set"""
    return _bit_set(state, MeasurementState.TOW_DECODED)


def is_adr_valid(adr_state):
    """True where the ADR-valid bit of AccumulatedDeltaRangeState is set"""
    return _bit_set(adr_state, AdrState.VALID)


def is_adr_reset(adr_state):
    """True where the ADR-reset bit of AccumulatedDeltaRangeState is set"""
    return _bit_set(adr_state, AdrState.RESET)


def has_cycle_slip(adr_state):
    """True where the cycle-slip bit of AccumulatedDeltaRangeState is set"""
    return _bit_set(adr_state, AdrState.CYCLE_SLIP)


@dataclass(frozen=True)
class IterationResult:
    """Outcome of a capped iterative solve.

    Attributes
    ----------
    value : Any
        Converged value, or the last iterate if the cap was hit
    iterations : int
        Number of iterations performed
    converged : bool
        False when the iteration cap was exceeded
    """
    value: Any
    iterations: int
    converged: bool


# RINEX 2.x navigation message names of the GpsEphemeris fields
_RINEX_KEYS = {
    'PRN': 'prn',
    'Toc': 'toc',
    'Toe': 'toe',
    'GPS_Week': 'gps_week',
    'af0': 'af0',
    'af1': 'af1',
    'af2': 'af2',
    'TGD': 'tgd',
    'Asqrt': 'asqrt',
    'e': 'e',
    'i0': 'i0',
    'OMEGA': 'omega0',
    'omega': 'omega',
    'M0': 'm0',
    'Crs': 'crs',
    'Crc': 'crc',
    'Cus': 'cus',
    'Cuc': 'cuc',
    'Cis': 'cis',
    'Cic': 'cic',
    'Delta_n': 'delta_n',
    'OMEGA_DOT': 'omega_dot',
    'IDOT': 'idot',
    'health': 'health',
    'Fit_interval': 'fit_interval',
    'IODE': 'iode',
}


@dataclass(frozen=True)
class GpsEphemeris:
    """GPS broadcast ephemeris for one satellite and validity window.

    Field names follow IS-GPS-200; the RINEX 2.1 names are accepted by
    ``from_dict``.

    Attributes
    ----------
    prn : int
        Satellite PRN
    toc, toe : float
        Clock and ephemeris reference times (seconds of GPS week)
    gps_week : int
        GPS week of toe
    af0, af1, af2 : float
        Clock polynomial coefficients (s, s/s, s/s^2)
    tgd : float
        Group delay (s)
    asqrt, e, i0, omega0, omega, m0 : float
        Keplerian elements (omega0 is the RINEX OMEGA, longitude of node)
    crs, crc, cus, cuc, cis, cic : float
        Second harmonic perturbation coefficients
    delta_n, omega_dot, idot : float
        Secular rates (rad/s)
    health : int
        SV health, 0 means healthy
    fit_interval : float
        Fit interval (hours), 0 if unknown
    """
    prn: int
    toc: float
    toe: float
    gps_week: int
    af0: float = 0.0
    af1: float = 0.0
    af2: float = 0.0
    tgd: float = 0.0
    asqrt: float = 0.0
    e: float = 0.0
    i0: float = 0.0
    omega0: float = 0.0
    omega: float = 0.0
    m0: float = 0.0
    crs: float = 0.0
    crc: float = 0.0
    cus: float = 0.0
    cuc: float = 0.0
    cis: float = 0.0
    cic: float = 0.0
    delta_n: float = 0.0
    omega_dot: float = 0.0
    idot: float = 0.0
    health: int = 0
    fit_interval: float = 0.0
    iode: Optional[int] = None

    @classmethod
    def from_dict(cls, record: Mapping[str, Any]) -> 'GpsEphemeris':
        """Build from a RINEX-keyed (or field-named) mapping; unknown keys are ignored"""
        names = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in record.items():
            name = _RINEX_KEYS.get(key, key)
            if name in names:
                kwargs[name] = value
        kwargs['prn'] = int(kwargs['prn'])
        kwargs['gps_week'] = int(kwargs['gps_week'])
        return cls(**kwargs)

    @property
    def fct_toe(self) -> float:
        """Full cycle time of toe"""
        return self.gps_week * WEEKSEC + self.toe


@dataclass
class EpochObservationSet:
    """Aligned measurements of every satellite column at one epoch.

    All arrays have one entry per satellite of ``svid``; missing
    satellites hold NaN (``adr_state`` holds 0).
    """
    fct_seconds: float
    clk_dcount: int
    svid: np.ndarray
    t_rx_seconds: np.ndarray
    t_tx_seconds: np.ndarray
    pr_m: np.ndarray
    pr_sigma_m: np.ndarray
    del_pr_m: np.ndarray
    prr_mps: np.ndarray
    prr_sigma_mps: np.ndarray
    adr_m: np.ndarray
    adr_sigma_m: np.ndarray
    adr_state: np.ndarray
    cn0_dbhz: np.ndarray

    @property
    def valid(self) -> np.ndarray:
        """Column indices with a finite pseudorange"""
        return np.flatnonzero(np.isfinite(self.pr_m))


@dataclass
class GnssMeasurements:
    """Time-aligned, satellite-aligned measurements of a processing run.

    Row i corresponds to ``fct_seconds[i]``, column j to ``svid[j]``.

    Attributes
    ----------
    fct_seconds : np.ndarray
        (N,) full cycle time tags of the epochs (s)
    clk_dcount : np.ndarray
        (N,) hardware clock discontinuity count
    svid : np.ndarray
        (M,) satellite ids found in the raw table, ascending
    t_rx_seconds, t_tx_seconds : np.ndarray
        (N, M) time of reception / transmission, seconds of GPS week
    pr_m, pr_sigma_m : np.ndarray
        (N, M) pseudorange and its 1-sigma (m)
    del_pr_m : np.ndarray
        (N, M) change in pseudorange while the clock is continuous (m)
    prr_mps, prr_sigma_mps : np.ndarray
        (N, M) pseudorange rate and its 1-sigma (m/s)
    adr_m, adr_sigma_m : np.ndarray
        (N, M) accumulated delta range and its 1-sigma (m)
    adr_state : np.ndarray
        (N, M) AccumulatedDeltaRangeState bits
    cn0_dbhz : np.ndarray
        (N, M) carrier to noise density (dB-Hz)
    """
    fct_seconds: np.ndarray
    clk_dcount: np.ndarray
    svid: np.ndarray
    t_rx_seconds: np.ndarray
    t_tx_seconds: np.ndarray
    pr_m: np.ndarray
    pr_sigma_m: np.ndarray
    del_pr_m: np.ndarray
    prr_mps: np.ndarray
    prr_sigma_mps: np.ndarray
    adr_m: np.ndarray
    adr_sigma_m: np.ndarray
    adr_state: np.ndarray
    cn0_dbhz: np.ndarray
    sv_index: Dict[int, int] = field(init=False)

    def __post_init__(self):
        self.sv_index = {int(sv): j for j, sv in enumerate(self.svid)}

    @classmethod
    def allocate(cls, fct_seconds: np.ndarray, svid: np.ndarray) -> 'GnssMeasurements':
        """Allocate NaN-filled arrays for the given epochs and satellites"""
        n, m = len(fct_seconds), len(svid)

        def nan():
            return np.full((n, m), np.nan)

        return cls(
            fct_seconds=np.asarray(fct_seconds, dtype=float),
            clk_dcount=np.zeros(n, dtype=np.int64),
            svid=np.asarray(svid, dtype=np.int64),
            t_rx_seconds=nan(), t_tx_seconds=nan(),
            pr_m=nan(), pr_sigma_m=nan(), del_pr_m=nan(),
            prr_mps=nan(), prr_sigma_mps=nan(),
            adr_m=nan(), adr_sigma_m=nan(),
            adr_state=np.zeros((n, m), dtype=np.int64),
            cn0_dbhz=nan(),
        )

    @property
    def num_epochs(self) -> int:
        return len(self.fct_seconds)

    @property
    def num_svs(self) -> int:
        return len(self.svid)

    @property
    def week_numbers(self) -> np.ndarray:
        """GPS week of each epoch"""
        return np.floor(self.fct_seconds / WEEKSEC).astype(np.int64)

    @property
    def has_adr(self) -> bool:
        """True if any ADR value is finite and non-zero"""
        return bool(np.any(np.isfinite(self.adr_m) & (self.adr_m != 0)))

    def epoch(self, i: int) -> EpochObservationSet:
        """Measurements of epoch i"""
        return EpochObservationSet(
            fct_seconds=float(self.fct_seconds[i]),
            clk_dcount=int(self.clk_dcount[i]),
            svid=self.svid,
            t_rx_seconds=self.t_rx_seconds[i],
            t_tx_seconds=self.t_tx_seconds[i],
            pr_m=self.pr_m[i],
            pr_sigma_m=self.pr_sigma_m[i],
            del_pr_m=self.del_pr_m[i],
            prr_mps=self.prr_mps[i],
            prr_sigma_mps=self.prr_sigma_mps[i],
            adr_m=self.adr_m[i],
            adr_sigma_m=self.adr_sigma_m[i],
            adr_state=self.adr_state[i],
            cn0_dbhz=self.cn0_dbhz[i],
        )

    def __iter__(self):
        for i in range(self.num_epochs):
            yield self.epoch(i)

    def __len__(self):
        return self.num_epochs


def _nan3() -> np.ndarray:
    return np.full(3, np.nan)


@dataclass
class PvtEstimate:
    """Weighted least squares position, velocity and time at one epoch.

    Attributes
    ----------
    fct_seconds : float
        Epoch time tag (GPS full cycle time, s)
    xyz_m : np.ndarray
        ECEF position (m)
    lla_deg_deg_m : np.ndarray
        Latitude (deg), longitude (deg), altitude (m)
    bc_m : float
        Receiver clock bias (m)
    vel_ned_mps : np.ndarray
        Velocity in North-East-Down (m/s)
    bc_dot_mps : float
        Receiver clock drift (m/s)
    sigma_pos_ned_m, sigma_vel_ned_mps : np.ndarray
        1-sigma position / velocity uncertainty in NED
    num_svs : int
        Satellites with ephemeris used at this epoch
    hdop : float
        Horizontal dilution of precision
    iterations : int
        Gauss-Newton iterations used
    """
    fct_seconds: float
    xyz_m: np.ndarray = field(default_factory=_nan3)
    lla_deg_deg_m: np.ndarray = field(default_factory=_nan3)
    bc_m: float = np.nan
    vel_ned_mps: np.ndarray = field(default_factory=_nan3)
    bc_dot_mps: float = np.nan
    sigma_pos_ned_m: np.ndarray = field(default_factory=_nan3)
    sigma_vel_ned_mps: np.ndarray = field(default_factory=_nan3)
    num_svs: int = 0
    hdop: float = np.nan
    iterations: int = 0

    @property
    def is_valid(self) -> bool:
        return bool(np.all(np.isfinite(self.xyz_m)))


class PvtTimeSeries:
    """Append-only series of PvtEstimate, one per input epoch"""

    def __init__(self):
        self._estimates: List[PvtEstimate] = []

    def append(self, estimate: PvtEstimate) -> None:
        self._estimates.append(estimate)

    def __len__(self):
        return len(self._estimates)

    def __getitem__(self, i: int) -> PvtEstimate:
        return self._estimates[i]

    def __iter__(self):
        return iter(self._estimates)

    def _stack(self, name: str) -> np.ndarray:
        return np.array([getattr(est, name) for est in self._estimates], dtype=float)

    @property
    def fct_seconds(self) -> np.ndarray:
        return self._stack('fct_seconds')

    @property
    def xyz_m(self) -> np.ndarray:
        return self._stack('xyz_m').reshape(-1, 3)

    @property
    def lla_deg_deg_m(self) -> np.ndarray:
        return self._stack('lla_deg_deg_m').reshape(-1, 3)

    @property
    def bc_m(self) -> np.ndarray:
        return self._stack('bc_m')

    @property
    def vel_ned_mps(self) -> np.ndarray:
        return self._stack('vel_ned_mps').reshape(-1, 3)

    @property
    def bc_dot_mps(self) -> np.ndarray:
        return self._stack('bc_dot_mps')

    @property
    def sigma_pos_ned_m(self) -> np.ndarray:
        return self._stack('sigma_pos_ned_m').reshape(-1, 3)

    @property
    def sigma_vel_ned_mps(self) -> np.ndarray:
        return self._stack('sigma_vel_ned_mps').reshape(-1, 3)

    @property
    def num_svs(self) -> np.ndarray:
        return np.array([est.num_svs for est in self._estimates], dtype=np.int64)

    @property
    def hdop(self) -> np.ndarray:
        return self._stack('hdop')

    def to_dataframe(self) -> pd.DataFrame:
        """One row per epoch, NaN where no fix was computed"""
        lla = self.lla_deg_deg_m
        vel = self.vel_ned_mps
        sig_pos = self.sigma_pos_ned_m
        sig_vel = self.sigma_vel_ned_mps
        return pd.DataFrame({
            'FctSeconds': self.fct_seconds,
            'LatDeg': lla[:, 0], 'LonDeg': lla[:, 1], 'AltM': lla[:, 2],
            'BcMeters': self.bc_m,
            'VelNorthMps': vel[:, 0], 'VelEastMps': vel[:, 1], 'VelDownMps': vel[:, 2],
            'BcDotMps': self.bc_dot_mps,
            'SigmaNorthM': sig_pos[:, 0], 'SigmaEastM': sig_pos[:, 1], 'SigmaDownM': sig_pos[:, 2],
            'SigmaVelNorthMps': sig_vel[:, 0], 'SigmaVelEastMps': sig_vel[:, 1],
            'SigmaVelDownMps': sig_vel[:, 2],
            'NumSvs': self.num_svs,
            'Hdop': self.hdop,
        })


@dataclass
class AdrResidualEpoch:
    """Single-difference carrier residuals at one epoch"""
    fct_seconds: float
    svid0: Optional[int]
    svid: np.ndarray
    resid_m: np.ndarray


@dataclass
class AdrResiduals:
    """Single-difference ADR residuals against reference satellite svid0.

    ``resid_m`` is (N, M) aligned with GnssMeasurements; it has zero rows
    when the run carries no carrier-phase data.
    """
    fct_seconds: np.ndarray
    svid0: Optional[int]
    svid: np.ndarray
    resid_m: np.ndarray

    @classmethod
    def empty(cls, svid: np.ndarray) -> 'AdrResiduals':
        return cls(fct_seconds=np.zeros(0), svid0=None, svid=np.asarray(svid),
                   resid_m=np.zeros((0, len(svid))))

    @property
    def is_empty(self) -> bool:
        return len(self.fct_seconds) == 0

    def epoch(self, i: int) -> AdrResidualEpoch:
        return AdrResidualEpoch(float(self.fct_seconds[i]), self.svid0, self.svid, self.resid_m[i])

    def __len__(self):
        return len(self.fct_seconds)


@dataclass
class DiagnosticsReport:
    """Structured report of input problems, skips and warnings of a run.

    Attributes
    ----------
    missing_clock_fields : list
        Standard GnssClock fields absent (or all NaN) in the raw table
    missing_measurement_fields : list
        Standard GnssMeasurement fields absent (or all NaN)
    clock_errors : list
        Clock problems that were repaired, e.g. FullBiasNanos sign
    filtered : Counter
        Raw measurements removed, by reason
    epoch_skips : dict
        Epoch index -> list of reasons the epoch (or part of it) was skipped
    warnings : Counter
        Soft numerical warnings, by kind
    """
    missing_clock_fields: List[str] = field(default_factory=list)
    missing_measurement_fields: List[str] = field(default_factory=list)
    clock_errors: List[str] = field(default_factory=list)
    filtered: Counter = field(default_factory=Counter)
    epoch_skips: Dict[int, List[str]] = field(default_factory=dict)
    warnings: Counter = field(default_factory=Counter)

    def record_filtered(self, reason: str, count: int = 1) -> None:
        if count:
            self.filtered[reason] += int(count)

    def record_skip(self, epoch: int, reason: str) -> None:
        self.epoch_skips.setdefault(int(epoch), []).append(reason)

    def record_warning(self, kind: str, count: int = 1) -> None:
        if count:
            self.warnings[kind] += int(count)

    @property
    def skip_counts(self) -> Counter:
        return Counter(reason for reasons in self.epoch_skips.values() for reason in reasons)

    @property
    def api_pass_fail(self) -> str:
        if self.missing_clock_fields or self.missing_measurement_fields:
            return 'FAIL BECAUSE OF MISSING FIELDS'
        return 'PASS'

    @property
    def gnss_clock_errors(self) -> str:
        text = 'GnssClock Errors.'
        if self.clock_errors:
            text += ' ' + ' '.join(self.clock_errors)
        if self.missing_clock_fields:
            text += ' Missing Fields: ' + ', '.join(self.missing_clock_fields) + '.'
        return text

    @property
    def gnss_measurement_errors(self) -> str:
        text = 'GnssMeasurement Errors.'
        if self.missing_measurement_fields:
            text += ' Missing Fields: ' + ', '.join(self.missing_measurement_fields) + '.'
        return text

    def summary(self) -> Dict[str, Any]:
        """Counts and reasons for every skip/failure category"""
        return {
            'api_pass_fail': self.api_pass_fail,
            'missing_clock_fields': list(self.missing_clock_fields),
            'missing_measurement_fields': list(self.missing_measurement_fields),
            'clock_errors': list(self.clock_errors),
            'filtered': dict(self.filtered),
            'epoch_skips': dict(self.skip_counts),
            'warnings': dict(self.warnings),
        }
