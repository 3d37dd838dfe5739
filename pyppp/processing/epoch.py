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

"""Working data of one station epoch"""

from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from ..core.types import (DOP, SatID, SatPositionClock, StationObservationBatch,
                          TypeID, observation_dict)


class EpochData:
    """Mutable copy of a StationObservationBatch enriched by the pipeline steps

    Attributes
    ----------
    body : dict
        SatID -> {TypeID: value}, observables plus modeled values
    position : np.ndarray or None
        A priori receiver ECEF position
    snapshot : EphemerisSnapshot or None
        Orbit/clock snapshot of the epoch
    sat_pos : dict
        SatID -> SatPositionClock at transmission time
    los : dict
        SatID -> receiver-to-satellite unit vector
    float_position, float_covariance : np.ndarray or None
        Receiver position and covariance before ambiguity constraints
    """

    def __init__(self, batch: StationObservationBatch, snapshot=None,
                 position: Optional[np.ndarray] = None):
        self.station = batch.station
        self.time = batch.time
        self.body: Dict[SatID, Dict[TypeID, float]] = observation_dict(batch)
        self.snapshot = snapshot
        self.position = None if position is None else np.asarray(position, dtype=float)
        self.sat_pos: Dict[SatID, SatPositionClock] = {}
        self.los: Dict[SatID, np.ndarray] = {}
        self.slips = set()
        self.dry_zenith = 0.0
        self.dop: Optional[DOP] = None
        self.postfit: Dict[Tuple[SatID, TypeID], float] = {}
        self.fix = None
        self.float_position: Optional[np.ndarray] = None
        self.float_covariance: Optional[np.ndarray] = None

    @property
    def satellites(self) -> List[SatID]:
        return sorted(self.body)

    @property
    def num_satellites(self) -> int:
        return len(self.body)

    def value(self, sat: SatID, type_id: TypeID, default=None):
        return self.body.get(sat, {}).get(type_id, default)

    def set(self, sat: SatID, type_id: TypeID, value: float):
        self.body[sat][type_id] = float(value)

    def extract(self, type_id: TypeID) -> Dict[SatID, float]:
        return {sat: values[type_id] for sat, values in self.body.items() if type_id in values}

    def remove_satellites(self, sats: Iterable[SatID]) -> List[SatID]:
        removed = []
        for sat in sats:
            if self.body.pop(sat, None) is not None:
                self.sat_pos.pop(sat, None)
                self.los.pop(sat, None)
                removed.append(sat)
        return removed

    def phase_residuals(self) -> Dict[Tuple[SatID, TypeID], float]:
        return {key: value for key, value in self.postfit.items()
                if key[1] in (TypeID.L1, TypeID.L2)}
