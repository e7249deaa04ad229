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
pygnssmeas - GNSS Raw Measurement Processing Library

A Python library that turns raw receiver measurements and GPS broadcast
ephemeris into weighted least squares position, velocity and clock
estimates, with carrier phase (accumulated delta range) diagnostics.
"""

__version__ = "1.0.0"
__author__ = "pygnssmeas Development Team"
__title__ = "pygnssmeas"
__description__ = "GNSS raw measurement to position processing library"

from .core import *
from .satellite import *
from .observation import *
from .coordinate import *
from .gnss import *
from .config import ProcessingConfig
from .pipeline import ProcessingResult, process_gnss_run
