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

"""Measurement-to-position processing of a whole run"""

from dataclasses import dataclass
from typing import Iterable, Optional, Union

import numpy as np
import pandas as pd

from .config import ProcessingConfig
from .core.data_structures import AdrResiduals, DiagnosticsReport, GnssMeasurements, PvtTimeSeries
from .core.exceptions import AllMeasurementsFilteredError
from .gnss.wls_pvt import gps_wls_pvt
from .logger import get_logger, setup_logger_from_config
from .observation.carrier_phase import gps_adr_residuals, process_adr
from .observation.measurements import check_gnss_clock, process_gnss_meas
from .satellite.ephemeris import EphemerisLike, EphemerisStore

logger = get_logger(__name__)


@dataclass
class ProcessingResult:
    """
    Outputs of ``process_gnss_run``.

    Attributes
    ----------
    measurements : GnssMeasurements
        Aligned measurements
    pvt : PvtTimeSeries
        One WLS estimate per epoch
    del_pr_minus_adr_m : np.ndarray or None
        (N, M) pseudorange change minus ADR, None without ADR data
    adr_residuals : AdrResiduals
        Single-difference carrier residuals, empty without ADR data
    diagnostics : DiagnosticsReport
        Missing fields, skips and warnings of the run
    """
    measurements: GnssMeasurements
    pvt: PvtTimeSeries
    del_pr_minus_adr_m: Optional[np.ndarray]
    adr_residuals: AdrResiduals
    diagnostics: DiagnosticsReport


def _keep_constellation(raw: pd.DataFrame, constellation: Optional[int],
                        diagnostics: DiagnosticsReport) -> pd.DataFrame:
    if constellation is None or 'ConstellationType' not in raw.columns:
        return raw
    keep = (raw['ConstellationType'] == constellation).to_numpy()
    if not np.any(keep):
        raise AllMeasurementsFilteredError(f"No measurements with ConstellationType == {constellation}")
    diagnostics.record_filtered('constellation', int((~keep).sum()))
    return raw.loc[keep]


def process_gnss_run(raw: pd.DataFrame,
                     ephemerides: Union[EphemerisStore, Iterable[EphemerisLike]],
                     config: Optional[ProcessingConfig] = None) -> ProcessingResult:
    """
    Process raw measurements of one run into PVT and carrier diagnostics.

    Parameters
    ----------
    raw : pd.DataFrame
        Raw measurement events with GnssLogger column names
    ephemerides : EphemerisStore or iterable
        Broadcast ephemerides, as a store, GpsEphemeris values or
        RINEX-keyed dicts
    config : ProcessingConfig, optional
        Run settings, defaults if omitted

    Returns
    -------
    ProcessingResult

    Raises
    ------
    FatalInputError
        Corrupt or misaligned input; per-epoch failures are recorded in
        the diagnostics instead
    MissingReferencePositionError
        ADR data is present but ``config.reference_lla`` is not set
    """
    if config is None:
        config = ProcessingConfig()
    if config.logging:
        setup_logger_from_config(config.logging)

    store = ephemerides if isinstance(ephemerides, EphemerisStore) else EphemerisStore.from_records(ephemerides)
    diagnostics = DiagnosticsReport()

    raw = _keep_constellation(raw, config.constellation, diagnostics)
    raw, diagnostics = check_gnss_clock(raw, diagnostics)
    if diagnostics.api_pass_fail != 'PASS':
        logger.warning(f"{diagnostics.gnss_clock_errors} {diagnostics.gnss_measurement_errors}")

    meas = process_gnss_meas(raw, diagnostics,
                             max_tow_unc_ns=config.max_tow_unc_ns,
                             max_prr_unc_mps=config.max_prr_unc_mps,
                             max_rollover_bias_s=config.max_rollover_bias_s,
                             drop_unresolved_rollover=config.drop_unresolved_rollover)

    pvt = gps_wls_pvt(meas, store, diagnostics,
                      warm_start=config.warm_start,
                      max_iter=config.wls_max_iter,
                      max_del_pos=config.max_del_pos_m,
                      exclude_unhealthy=config.exclude_unhealthy)

    del_pr_minus_adr = process_adr(meas)
    adr_residuals = gps_adr_residuals(meas, store, config.reference_lla)

    num_fixed = int(np.count_nonzero(np.isfinite(pvt.xyz_m[:, 0]))) if len(pvt) else 0
    logger.info(f"Processed {meas.num_epochs} epochs, {num_fixed} with a position fix")
    return ProcessingResult(measurements=meas, pvt=pvt, del_pr_minus_adr_m=del_pr_minus_adr,
                            adr_residuals=adr_residuals, diagnostics=diagnostics)
