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

"""Processing configuration"""

import json
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import numpy as np
import yaml

from .core.constants import (MAXDELPOSFORNAVM, MAXPRRUNCMPS, MAXROLLOVERBIASSECONDS, MAXTOWUNCNS,
                             SYS_GPS, WLS_MAXITR)
from .core.exceptions import InputShapeError


@dataclass
class ProcessingConfig:
    """
    Settings of a processing run.

    Attributes
    ----------
    max_tow_unc_ns : float
        Quality gate on ReceivedSvTimeUncertaintyNanos
    max_prr_unc_mps : float
        Quality gate on PseudorangeRateUncertaintyMetersPerSecond
    max_rollover_bias_s : float
        Largest pseudorange accepted after week rollover correction (s)
    drop_unresolved_rollover : bool
        Drop events whose week rollover cannot be corrected instead of
        aborting the run
    constellation : int or None
        Keep only rows of this ConstellationType (GPS by default); None
        keeps every row
    wls_max_iter : int
        Gauss-Newton iteration cap
    max_del_pos_m : float
        WLS stops once the position update is at most this (m)
    warm_start : bool
        Seed each epoch with the previous solution
    exclude_unhealthy : bool
        Skip ephemerides with a non-zero health word
    reference_lla : list, optional
        Known receiver position [lat deg, lon deg, alt m], enables the
        carrier residuals
    logging : dict
        Passed to ``setup_logger_from_config`` when non-empty
    """
    max_tow_unc_ns: float = MAXTOWUNCNS
    max_prr_unc_mps: float = MAXPRRUNCMPS
    max_rollover_bias_s: float = MAXROLLOVERBIASSECONDS
    drop_unresolved_rollover: bool = True
    constellation: Optional[int] = SYS_GPS
    wls_max_iter: int = WLS_MAXITR
    max_del_pos_m: float = MAXDELPOSFORNAVM
    warm_start: bool = True
    exclude_unhealthy: bool = False
    reference_lla: Optional[list] = None
    logging: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.reference_lla is not None:
            ref = np.asarray(self.reference_lla, dtype=np.float64).ravel()
            if ref.size != 3:
                raise InputShapeError("reference_lla must be [lat_deg, lon_deg, alt_m]")
            self.reference_lla = ref.tolist()

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'ProcessingConfig':
        """Build from a dictionary; unknown keys raise ValueError"""
        names = {f.name for f in fields(cls)}
        unknown = set(data) - names
        if unknown:
            raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")
        return cls(**data)

    def save_to_file(self, filepath: Union[str, Path], format: str = 'yaml') -> None:
        """
        Save configuration to file

        Parameters:
        -----------
        filepath : str or Path
            Path to save file
        format : str
            File format: 'yaml' or 'json'
        """
        data = self.to_dict()
        filepath = Path(filepath)
        if format == 'yaml':
            with open(filepath, 'w') as f:
                yaml.safe_dump(data, f, default_flow_style=False)
        elif format == 'json':
            with open(filepath, 'w') as f:
                json.dump(data, f, indent=2)
        else:
            raise ValueError(f"Unsupported format: {format}")

    @classmethod
    def load_from_file(cls, filepath: Union[str, Path]) -> 'ProcessingConfig':
        """
        Load configuration from file.

        The file format is determined from the extension (.yaml, .yml or
        .json). Missing keys keep their defaults.

        Raises:
            ValueError: If the file format is not supported
            FileNotFoundError: If the file doesn't exist
        """
        filepath = Path(filepath)
        if filepath.suffix in ['.yaml', '.yml']:
            with open(filepath) as f:
                data = yaml.safe_load(f) or {}
        elif filepath.suffix == '.json':
            with open(filepath) as f:
                data = json.load(f)
        else:
            raise ValueError(f"Unsupported file format: {filepath.suffix}")
        return cls.from_dict(data)
