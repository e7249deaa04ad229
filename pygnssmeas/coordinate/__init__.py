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

"""Coordinate transformation utilities

This module provides the geodetic transforms used by the measurement
pipeline:
- ECEF <-> geodetic latitude, longitude, altitude (WGS84, degrees)
- ECEF to North-East-Down rotation
- NED offset and horizontal distance between geodetic positions
"""

from .transforms import ecef2ned_velocity, lla2hd, lla2ned, lla2xyz, rot_ecef2ned, xyz2lla
