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

"""GNSS positioning module.

Key Components:
- Weighted least squares position, velocity and time (WLS PVT) for a
  single epoch and for a whole measurement batch
- Reference trajectories and horizontal error of a solution

Examples:
    Position for every epoch of a run:

    >>> from pygnssmeas.gnss import gps_wls_pvt
    >>> pvt = gps_wls_pvt(meas, store)
    >>> print(pvt.lla_deg_deg_m)
"""

from .reference import HorizontalError, ReferencePvt, get_ref_pvti, horizontal_error_from_pvt
from .wls_pvt import WlsSolution, gps_wls_pvt, wls_pvt

__all__ = ['wls_pvt', 'gps_wls_pvt', 'WlsSolution',
           'ReferencePvt', 'get_ref_pvti', 'horizontal_error_from_pvt', 'HorizontalError']
