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

"""Exceptions raised by the measurement processing pipeline

Two families are defined:

- ``FatalInputError``: corrupt or misaligned input. The run is aborted.
- ``EpochSolveError``: a numerical failure confined to one epoch (or to a
  few measurements). The driver records it and moves on.
"""


class GnssMeasError(Exception):
    """Base class for all pygnssmeas errors"""


class FatalInputError(GnssMeasError, ValueError):
    """Input is malformed and processing cannot continue"""


class RangeError(FatalInputError):
    """Time value outside the supported range or with malformed fields"""


class InputShapeError(FatalInputError):
    """Vector/matrix inputs have mismatched lengths or shapes"""


class MissingFieldError(FatalInputError):
    """A required raw measurement field is absent"""

    def __init__(self, field_name: str, message: str = ""):
        self.field_name = field_name
        super().__init__(message or f"{field_name} data missing from raw measurements")


class ClockSignError(FatalInputError):
    """FullBiasNanos changes sign within one log"""


class ClockNotReadyError(FatalInputError):
    """Receiver clock state does not allow a reliable GPS week"""


class AllMeasurementsFilteredError(FatalInputError):
    """Quality gates removed every raw measurement"""


class InconsistentDiscontinuityCountError(FatalInputError):
    """HardwareClockDiscontinuityCount changed within one epoch"""

    def __init__(self, fct_seconds: float):
        self.fct_seconds = fct_seconds
        super().__init__(
            f"HardwareClockDiscontinuityCount changed within the same epoch "
            f"(FctSeconds={fct_seconds:.3f})")


class MissingReferencePositionError(FatalInputError):
    """Carrier residuals need a known receiver position"""


class EpochSolveError(GnssMeasError, ArithmeticError):
    """Numerical failure limited to a single epoch"""


class WlsDidNotConvergeError(EpochSolveError):
    """Weighted least squares exceeded its iteration cap"""

    def __init__(self, iterations: int):
        self.iterations = iterations
        super().__init__(f"WLS did not converge after {iterations} iterations")


class DegenerateGeometryError(EpochSolveError):
    """Observation matrix is rank deficient"""


class WeekRolloverUnresolvedError(EpochSolveError):
    """Pseudorange still too large after removing whole weeks"""

    def __init__(self, indices, message: str = ""):
        self.indices = indices
        super().__init__(message or f"Failed to correct week rollover for {len(indices)} measurements")
