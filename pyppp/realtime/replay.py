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

"""Observation tables for file mode

A table holds one row per station, epoch and satellite:

    station,time,sat,P1,P2,L1,L2[,LLI1,LLI2]

with time in GPS seconds, code in meters and phase in cycles.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Union

import pandas as pd

from ..core.exceptions import ConfigurationError
from ..core.types import SatID, StationObservationBatch, TypeID

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["station", "time", "sat", "P1", "P2", "L1", "L2"]
OPTIONAL_COLUMNS = ["LLI1", "LLI2"]


def read_observation_table(path: Union[str, Path]) -> List[StationObservationBatch]:
    """
    Read an observation table into batches ordered by time

    Parameters:
    -----------
    path : str or Path
        CSV file

    Returns:
    --------
    List[StationObservationBatch]
        One batch per station and epoch, sorted by time then station

    Raises:
    -------
    ConfigurationError
        File missing or required columns absent
    """
    table_path = Path(path)
    if not table_path.exists():
        raise ConfigurationError(f"Observation file not found: {table_path}")

    logger.info(f"Loading observations from {table_path}")
    df = pd.read_csv(table_path, comment="#", skipinitialspace=True)
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ConfigurationError(f"{table_path}: missing columns {missing}")
    return table_to_batches(df)


def table_to_batches(df: pd.DataFrame) -> List[StationObservationBatch]:
    """Group a table by epoch and station"""
    types = [TypeID(c) for c in REQUIRED_COLUMNS[3:] + OPTIONAL_COLUMNS if c in df.columns]
    df = df.dropna(subset=REQUIRED_COLUMNS).sort_values(["time", "station", "sat"], kind="stable")

    batches = []
    for (time, station), group in df.groupby(["time", "station"], sort=True):
        observations = {}
        for row in group.itertuples(index=False):
            values = {t: getattr(row, t.value) for t in types}
            observations[SatID.from_string(row.sat)] = {t: float(v) for t, v in values.items()
                                                         if not pd.isna(v)}
        batches.append(StationObservationBatch(str(station), float(time), observations))
    logger.info(f"{len(batches)} station epochs, {df['station'].nunique()} stations")
    return batches


def batches_to_table(batches: Iterable[StationObservationBatch]) -> pd.DataFrame:
    """Flatten batches into an observation table"""
    rows = []
    for batch in batches:
        for sat in batch.satellites:
            row = {"station": batch.station, "time": batch.time, "sat": str(sat)}
            row.update({t.value: v for t, v in batch.observations[sat].items()})
            rows.append(row)
    columns = REQUIRED_COLUMNS + [c for c in OPTIONAL_COLUMNS
                                  if any(c in r for r in rows)]
    return pd.DataFrame(rows, columns=columns)


def write_observation_table(batches: Iterable[StationObservationBatch], path: Union[str, Path]):
    batches_to_table(batches).to_csv(path, index=False, float_format="%.4f")
