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

"""
Satellite computation module for GPS broadcast ephemeris.

Modules
-------
ephemeris : module
    Ephemeris storage and selection of the freshest valid record
satellite_position : module
    Kepler solver, satellite position, clock bias, velocity and clock
    drift from broadcast ephemeris, earth rotation correction

Usage Examples
--------------
Select ephemerides and propagate orbits:

    >>> from pygnssmeas.satellite import EphemerisStore, eph2pvt
    >>> store = EphemerisStore.from_records(records)
    >>> ephs, idx = store.closest(prns, fct_seconds)
    >>> xyz, dtsv, vel, dtsv_dot = eph2pvt(ephs, week, ttx_seconds)

Notes
-----
Time systems: all functions expect GPS time, either as (week, seconds of
week) or as full cycle seconds.

Coordinate systems: positions are Earth-Centered Earth-Fixed (WGS84) at
the transmit time; use flight_time_correction to express them in the
frame of the reception time.
"""

from .ephemeris import *
from .satellite_position import *
