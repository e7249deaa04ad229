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

"""Core GNSS Measurement Processing Module.

This module provides the fundamental components shared by every stage of
the measurement pipeline:

- **Constants**: WGS84 and IS-GPS-200 physical constants, time constants,
  iteration caps and measurement quality thresholds
- **Data Structures**: broadcast ephemeris records, aligned measurement
  arrays, PVT estimates, carrier residuals and the diagnostics report
- **Time System**: GPS/UTC conversion with leap seconds, Julian days,
  full cycle time and week rollover arithmetic
- **Exceptions**: fatal input errors and per-epoch solve errors

Example Usage:
    >>> from pygnssmeas.core import *
    >>>
    >>> week, tow, fct = utc2gps([2016, 5, 1, 12, 0, 0])
    >>> gps_time = GpsTime.from_fct(fct)
    >>> utc = gps2utc(fct_seconds=fct)
"""

from .constants import *
from .data_structures import *
from .exceptions import *
from .time import *
