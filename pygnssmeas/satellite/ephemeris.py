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

"""Ephemeris storage, selection and validation"""

from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from ..core.constants import FIT_INTERVAL_SELECT_H, HOURSEC, MINNUMGPSEPH
from ..core.data_structures import GpsEphemeris
from ..logger import get_logger

logger = get_logger(__name__)

__all__ = ['EphemerisStore', 'is_ephemeris_valid', 'selection_window']

EphemerisLike = Union[GpsEphemeris, Mapping]


def selection_window(eph: GpsEphemeris) -> float:
    """
    Half-width of the selection window of an ephemeris.

    Parameters
    ----------
    eph : GpsEphemeris
        Ephemeris record

    Returns
    -------
    float
        (fit_interval / 2) hours in seconds; an unknown (zero) fit
        interval is taken as 4 hours
    """
    fit = eph.fit_interval if eph.fit_interval > 0 else FIT_INTERVAL_SELECT_H
    return fit / 2.0 * HOURSEC


def is_ephemeris_valid(eph: GpsEphemeris, fct_seconds: float, exclude_unhealthy: bool = False) -> bool:
    """
    Check if ephemeris may be used at a given full cycle time.

    Parameters
    ----------
    eph : GpsEphemeris
        Ephemeris record to validate
    fct_seconds : float
        Query time, GPS full cycle seconds
    exclude_unhealthy : bool
        Also reject records with a non-zero health word

    Returns
    -------
    bool
        True if |fct - fctToe| is inside the selection window
    """
    if exclude_unhealthy and eph.health != 0:
        return False
    return abs(eph.fct_toe - fct_seconds) < selection_window(eph)


class EphemerisStore:
    """
    Broadcast ephemeris records of a processing run.

    Records are grouped per PRN and kept in order of toe. The store is
    immutable after construction and can be shared between workers.

    Parameters
    ----------
    ephemerides : iterable of GpsEphemeris
        Parsed navigation records
    """

    def __init__(self, ephemerides: Iterable[GpsEphemeris] = ()):
        self._by_prn: Dict[int, List[GpsEphemeris]] = {}
        count = 0
        for eph in ephemerides:
            self._by_prn.setdefault(int(eph.prn), []).append(eph)
            count += 1
        for records in self._by_prn.values():
            records.sort(key=lambda e: e.fct_toe)
        self._count = count

    @classmethod
    def from_records(cls, records: Iterable[EphemerisLike]) -> 'EphemerisStore':
        """Build a store from GpsEphemeris values or RINEX-keyed dicts"""
        ephs = [rec if isinstance(rec, GpsEphemeris) else GpsEphemeris.from_dict(rec)
                for rec in records]
        if len(ephs) < MINNUMGPSEPH:
            logger.warning(f"Only {len(ephs)} GPS ephemeris records, expected at least {MINNUMGPSEPH}")
        return cls(ephs)

    def __len__(self):
        return self._count

    def __iter__(self):
        for prn in sorted(self._by_prn):
            yield from self._by_prn[prn]

    @property
    def prns(self) -> List[int]:
        return sorted(self._by_prn)

    def for_prn(self, prn: int) -> List[GpsEphemeris]:
        return list(self._by_prn.get(int(prn), []))

    def closest_one(self, prn: int, fct_seconds: float,
                    exclude_unhealthy: bool = False) -> Optional[GpsEphemeris]:
        """
        Select the freshest valid ephemeris for one satellite.

        Parameters
        ----------
        prn : int
            Satellite PRN
        fct_seconds : float
            Query time, GPS full cycle seconds
        exclude_unhealthy : bool
            Skip records with a non-zero health word

        Returns
        -------
        GpsEphemeris or None
            Record with toe closest to the query time, or None if that
            record lies outside its selection window
        """
        best = None
        min_dt = float('inf')
        for eph in self._by_prn.get(int(prn), ()):
            if exclude_unhealthy and eph.health != 0:
                continue
            dt = abs(eph.fct_toe - fct_seconds)
            if dt < min_dt:
                min_dt = dt
                best = eph

        if best is None or min_dt >= selection_window(best):
            return None
        return best

    def closest(self, prns: Sequence[int], fct_seconds: float,
                exclude_unhealthy: bool = False) -> Tuple[List[GpsEphemeris], np.ndarray]:
        """
        Select the closest valid ephemeris for each requested satellite.

        Parameters
        ----------
        prns : sequence of int
            Satellites of interest
        fct_seconds : float
            Query time, GPS full cycle seconds
        exclude_unhealthy : bool
            Skip records with a non-zero health word

        Returns
        -------
        ephs : list of GpsEphemeris
            Selected records, in the order of ``prns``
        idx : np.ndarray
            Indices into ``prns`` of the satellites that have a record
        """
        ephs = []
        idx = []
        missing = []
        for k, prn in enumerate(prns):
            eph = self.closest_one(prn, fct_seconds, exclude_unhealthy)
            if eph is None:
                missing.append(int(prn))
                continue
            ephs.append(eph)
            idx.append(k)

        if missing:
            logger.info(f"No valid ephemeris at fct {fct_seconds:.3f} for PRN {missing}")
        return ephs, np.asarray(idx, dtype=np.int64)
