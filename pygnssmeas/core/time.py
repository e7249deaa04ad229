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

"""GPS Time System and UTC Conversions

Full cycle time (fct) is the number of GPS seconds since the GPS epoch,
1980-01-06 00:00:00 UTC. UTC times are handled as 6-tuples
``(year, month, day, hour, minute, second)``; ``datetime`` objects are
accepted wherever a UTC time is an input.
"""

import calendar
import math
from datetime import date, datetime, timedelta
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from .constants import (
    DAYSEC,
    FCT2100,
    GPS_YEAR_MAX,
    GPS_YEAR_MIN,
    GPSEPOCHJD,
    GPST0,
    HALFWEEKSEC,
    HOURSEC,
    MINSEC,
    WEEKSEC,
)
from .exceptions import RangeError

UtcTime = Tuple[int, int, int, int, int, float]

# UTC times right after each leap second insertion since the GPS epoch.
# Append the new entry when IERS Bulletin C announces another leap second.
LEAP_SECOND_TABLE = [
    (1982, 1, 1, 0, 0, 0),
    (1982, 7, 1, 0, 0, 0),
    (1983, 7, 1, 0, 0, 0),
    (1985, 7, 1, 0, 0, 0),
    (1988, 1, 1, 0, 0, 0),
    (1990, 1, 1, 0, 0, 0),
    (1991, 1, 1, 0, 0, 0),
    (1992, 7, 1, 0, 0, 0),
    (1993, 7, 1, 0, 0, 0),
    (1994, 7, 1, 0, 0, 0),
    (1996, 1, 1, 0, 0, 0),
    (1997, 7, 1, 0, 0, 0),
    (1999, 1, 1, 0, 0, 0),
    (2006, 1, 1, 0, 0, 0),
    (2009, 1, 1, 0, 0, 0),
    (2012, 7, 1, 0, 0, 0),
    (2015, 7, 1, 0, 0, 0),
    (2017, 1, 1, 0, 0, 0),
]


def _utc_fields(utc: Union[datetime, Sequence[float]]) -> UtcTime:
    """Validate a UTC time and return it as a 6-tuple

    Raises
    ------
    RangeError
        If the time has the wrong number of fields, non-integer date
        fields, or any field outside its valid range
    """
    if isinstance(utc, datetime):
        return (utc.year, utc.month, utc.day, utc.hour, utc.minute,
                utc.second + utc.microsecond * 1e-6)

    try:
        fields = [float(v) for v in utc]
    except (TypeError, ValueError) as e:
        raise RangeError(f"utcTime must be 6 numbers [y,m,d,h,mi,s]: {e}") from e
    if len(fields) != 6:
        raise RangeError(f"utcTime must have 6 fields, got {len(fields)}")
    if any(not math.isfinite(v) for v in fields):
        raise RangeError("utcTime fields must be finite")

    year, month, day, hour, minute, second = fields
    if any(v != int(v) for v in (year, month, day)):
        raise RangeError("year, month & day must be integers")
    if not GPS_YEAR_MIN <= year <= GPS_YEAR_MAX:
        raise RangeError(f"year must be in the range [{GPS_YEAR_MIN}, {GPS_YEAR_MAX}]")
    if not 1 <= month <= 12:
        raise RangeError("month must be in the set [1:12]")
    if not 1 <= day <= calendar.monthrange(int(year), int(month))[1]:
        raise RangeError(f"day {int(day)} is not valid for {int(year)}-{int(month):02d}")
    if not 0 <= hour < 24:
        raise RangeError("hour must be in the range [0, 24)")
    if not 0 <= minute < 60:
        raise RangeError("minutes must be in the range [0, 60)")
    # seconds can equal 60 exactly, on the second a leap second is added
    if not 0 <= second <= 60:
        raise RangeError("seconds must be in the range [0, 60]")

    return (int(year), int(month), int(day), hour, minute, second)


def julian_day(year: int, month: int, day: int,
               hour: float = 0.0, minute: float = 0.0, second: float = 0.0) -> float:
    """
    Julian day of a calendar date and time

    Meeus (1991) Astronomical Algorithms. Valid from 1901 through 2099.

    Returns
    -------
    float
        Julian day, including the fraction of the day
    """
    if not 1901 <= year <= 2099:
        raise RangeError(f"year {year} not in allowed range: 1900 < year < 2100")

    h = hour + minute / 60.0 + second / 3600.0
    if month <= 2:
        month += 12
        year -= 1

    return (math.floor(365.25 * year) + math.floor(30.6001 * (month + 1))
            - 15 + 1720996.5 + day + h / 24.0)


def day_of_year(utc: Union[datetime, Sequence[float]]) -> int:
    """Day number of the year, 1 on January 1st"""
    year, month, day, _, _, _ = _utc_fields(utc)
    return int(julian_day(year, month, day) - julian_day(year, 1, 1)) + 1


def leap_seconds(utc: Union[datetime, Sequence[float]],
                 table: Optional[Sequence[Sequence[int]]] = None) -> int:
    """
    Number of leap seconds between the GPS epoch and a UTC time

    Parameters
    ----------
    utc : datetime or sequence
        UTC time [year, month, day, hour, minute, second]
    table : sequence, optional
        Leap second table, defaults to LEAP_SECOND_TABLE

    Returns
    -------
    int
        Count of leap second insertions at or before utc
    """
    if table is None:
        table = LEAP_SECOND_TABLE
    jd = julian_day(*_utc_fields(utc))
    return sum(1 for entry in table if julian_day(*entry) <= jd)


def utc2gps(utc: Union[datetime, Sequence[float]]) -> Tuple[int, float, float]:
    """
    Convert UTC time to GPS week, seconds of week and full cycle time

    Parameters
    ----------
    utc : datetime or sequence
        UTC time [year, month, day, hour, minute, second], 1980 <= year <= 2099

    Returns
    -------
    tuple
        (gps_week, gps_seconds, fct_seconds)

    Raises
    ------
    RangeError
        If the year is out of range or a field is malformed
    """
    year, month, day, hour, minute, second = _utc_fields(utc)

    days_since_epoch = int(round(julian_day(year, month, day) - GPSEPOCHJD))
    if days_since_epoch < 0:
        raise RangeError("UTC time precedes the GPS epoch 1980-01-06")

    gps_week = days_since_epoch // 7
    day_of_week = days_since_epoch % 7
    # seconds since Sunday at midnight
    gps_seconds = day_of_week * DAYSEC + hour * HOURSEC + minute * MINSEC + second

    # utc stands still for a leap second, so gps time gets further ahead
    fct_seconds = gps_week * WEEKSEC + gps_seconds + leap_seconds(utc)

    gps_week = int(fct_seconds // WEEKSEC)
    gps_seconds = fct_seconds - gps_week * WEEKSEC

    return gps_week, gps_seconds, fct_seconds


def fct2ymdhms(fct_seconds: float) -> UtcTime:
    """Convert full cycle time to [y, m, d, h, mi, s], ignoring leap seconds"""
    days = int(fct_seconds // DAYSEC)
    ymd = date(*GPST0[:3]) + timedelta(days=days)

    since_midnight = fct_seconds - days * DAYSEC
    hours = int(since_midnight // HOURSEC)
    last_hour = since_midnight - hours * HOURSEC
    minutes = int(last_hour // MINSEC)
    seconds = last_hour - minutes * MINSEC

    return (ymd.year, ymd.month, ymd.day, hours, minutes, seconds)


def gps2utc(gps_week: Optional[int] = None, gps_seconds: Optional[float] = None,
            fct_seconds: Optional[float] = None) -> UtcTime:
    """
    Convert GPS time to UTC

    Either (gps_week, gps_seconds) or fct_seconds must be given. If
    fct_seconds is given the week and seconds are ignored.

    Leap seconds: a first UTC estimate without leap seconds gives ls, the
    time gps-ls gives ls1; if they differ the time straddles an insertion
    and gps-ls1 is used. No ``23:59:60`` is produced; across a leap second
    the UTC sequence is 23:59:59, 00:00:00, 00:00:00.

    Raises
    ------
    RangeError
        If the time is outside [0, 2100-01-01)
    """
    if fct_seconds is None:
        if gps_week is None or gps_seconds is None:
            raise RangeError("gps2utc needs (gps_week, gps_seconds) or fct_seconds")
        fct_seconds = gps_week * WEEKSEC + gps_seconds

    if not 0 <= fct_seconds < FCT2100:
        raise RangeError("gpsTime must be in this range: [0,0] <= gpsTime < [6260, 432000]")

    time = fct2ymdhms(fct_seconds)
    ls = leap_seconds(time)
    time_mls = fct2ymdhms(fct_seconds - ls)
    ls1 = leap_seconds(time_mls)
    if ls1 == ls:
        return time_mls
    return fct2ymdhms(fct_seconds - ls1)


def correct_week_rollover(dt_seconds):
    """
    Remove whole weeks from a time difference that exceeds half a week

    Parameters
    ----------
    dt_seconds : float or np.ndarray
        Time difference (s), e.g. time of reception minus time of transmission

    Returns
    -------
    float or np.ndarray
        Difference in [-302400, 302400] seconds; values already inside
        that range are returned unchanged
    """
    dt = np.asarray(dt_seconds, dtype=float)
    rollover = np.abs(dt) > HALFWEEKSEC
    corrected = np.where(rollover, dt - np.round(dt / WEEKSEC) * WEEKSEC, dt)
    if np.ndim(dt_seconds) == 0:
        return float(corrected)
    return corrected


class GpsTime:
    """GPS week and time of week

    Time of week is normalized to [0, 604800) on construction.
    """

    def __init__(self, week: int = 0, tow: float = 0.0):
        self.week = int(week)
        self.tow = float(tow)

        while self.tow >= WEEKSEC:
            self.week += 1
            self.tow -= WEEKSEC
        while self.tow < 0:
            self.week -= 1
            self.tow += WEEKSEC

    @classmethod
    def from_fct(cls, fct_seconds: float) -> 'GpsTime':
        """Create GpsTime from full cycle time"""
        week = int(fct_seconds // WEEKSEC)
        return cls(week, fct_seconds - week * WEEKSEC)

    @classmethod
    def from_utc(cls, utc: Union[datetime, Sequence[float]]) -> 'GpsTime':
        """Create GpsTime from a UTC time"""
        week, tow, _ = utc2gps(utc)
        return cls(week, tow)

    def to_fct(self) -> float:
        """Full cycle time in seconds"""
        return self.week * WEEKSEC + self.tow

    def to_utc(self) -> UtcTime:
        """UTC time as [y, m, d, h, mi, s]"""
        return gps2utc(self.week, self.tow)

    def __add__(self, seconds: float) -> 'GpsTime':
        if isinstance(seconds, (int, float)):
            return GpsTime(self.week, self.tow + seconds)
        raise TypeError(f"Cannot add {type(seconds)} to GpsTime")

    def __sub__(self, other: Union['GpsTime', float]) -> Union[float, 'GpsTime']:
        """Subtract time (returns seconds) or seconds (returns GpsTime)"""
        if isinstance(other, GpsTime):
            # weeks first to avoid precision loss
            return (self.week - other.week) * WEEKSEC + (self.tow - other.tow)
        if isinstance(other, (int, float)):
            return GpsTime(self.week, self.tow - other)
        raise TypeError(f"Cannot subtract {type(other)} from GpsTime")

    def __lt__(self, other: 'GpsTime') -> bool:
        if not isinstance(other, GpsTime):
            return NotImplemented
        return (self.week, self.tow) < (other.week, other.tow)

    def __le__(self, other: 'GpsTime') -> bool:
        if not isinstance(other, GpsTime):
            return NotImplemented
        return (self.week, self.tow) <= (other.week, other.tow)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GpsTime):
            return NotImplemented
        return self.week == other.week and abs(self.tow - other.tow) < 1e-9

    def __hash__(self):
        return hash((self.week, round(self.tow, 9)))

    def __str__(self):
        return f"GPS Week: {self.week}, TOW: {self.tow:.3f}"

    def __repr__(self):
        return f"GpsTime({self.week}, {self.tow})"
