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

"""GPS Constants and Processing Thresholds"""

import numpy as np

# Physical Constants (WGS84 / IS-GPS-200)
CLIGHT = 2.99792458E8          # speed of light in a vacuum (m/s)
MU_GPS = 3.986005E14           # WGS84 universal gravitational parameter (m^3/s^2)
OMGE = 7.2921151467E-5         # WGS84 earth rotation rate (rad/s)
FREL = -4.442807633E-10        # clock relativity parameter (s/m^1/2)

# Earth Parameters (WGS84)
RE_WGS84 = 6378137.0           # earth semimajor axis (m)
E2_WGS84 = 6.69437999014E-3    # earth eccentricity squared

# Time Parameters
WEEKSEC = 604800               # seconds in a week
HALFWEEKSEC = WEEKSEC // 2     # half a week (s)
DAYSEC = 86400                 # seconds in a day
HOURSEC = 3600
MINSEC = 60
WEEKNANOS = WEEKSEC * 1_000_000_000
GPSEPOCHJD = 2444244.5         # GPS epoch (1980-01-06 00:00 UTC) in Julian days
GPST0 = [1980, 1, 6, 0, 0, 0]  # GPS time reference epoch
GPS_YEAR_MIN = 1980
GPS_YEAR_MAX = 2099
FCT2100 = 6260 * WEEKSEC + 432000  # full cycle time of 2100-01-01 00:00:00

# Ephemeris Parameters
FIT_INTERVAL_SELECT_H = 4.0    # assumed fit interval for selection when unknown (h)
FIT_INTERVAL_PROPAGATE_H = 2.0 # assumed fit interval for propagation checks (h)

# Iteration Limits
KEPLER_TOL = 1E-8              # residual tolerance on Kepler's equation (rad)
KEPLER_MAXITR = 20             # max fixed point iterations on Kepler's equation
WLS_MAXITR = 100               # max Gauss-Newton iterations in WLS

# Measurement Thresholds
MAXDELPOSFORNAVM = 20.0        # max position update keeping los change under 1 microradian (m)
MAXPRRUNCMPS = 10.0            # max pseudorange rate uncertainty (m/s)
MAXTOWUNCNS = 500.0            # max time of week uncertainty (ns)
MAXROLLOVERBIASSECONDS = 10.0  # max common bias left after week rollover correction (s)
MINNUMGPSEPH = 24              # minimum number of GPS ephemeris considered OK
MIN_NUM_SVS = 4                # minimum satellites for a position fix

# Analysis Thresholds
REFPVTDELTASECONDS = 2.0       # max time from a reference PVT time tag (s)

# Unit conversions
R2D = 180.0 / np.pi            # radians to degrees
D2R = np.pi / 180.0            # degrees to radians

# GNSS System IDs (ConstellationType in the raw log)
SYS_GPS = 1

# Raw log clock fields
GNSS_CLOCK_FIELDS = (
    'TimeNanos',
    'TimeUncertaintyNanos',
    'LeapSecond',
    'FullBiasNanos',
    'BiasUncertaintyNanos',
    'DriftNanosPerSecond',
    'DriftUncertaintyNanosPerSecond',
    'HardwareClockDiscontinuityCount',
    'BiasNanos',
)

# Raw log measurement fields
GNSS_MEASUREMENT_FIELDS = (
    'Cn0DbHz',
    'ConstellationType',
    'MultipathIndicator',
    'PseudorangeRateMetersPerSecond',
    'PseudorangeRateUncertaintyMetersPerSecond',
    'ReceivedSvTimeNanos',
    'ReceivedSvTimeUncertaintyNanos',
    'State',
    'Svid',
    'AccumulatedDeltaRangeMeters',
    'AccumulatedDeltaRangeUncertaintyMeters',
)
