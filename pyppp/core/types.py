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

"""Core data structures shared by the estimator and the orchestrator"""

from dataclasses import dataclass, field
from enum import Enum
from functools import total_ordering
from types import MappingProxyType
from typing import Dict, List, Mapping, NamedTuple, Optional

import numpy as np

from .constants import SYSTEM_ORDER


@total_ordering
@dataclass(frozen=True)
class SatID:
    """Satellite identifier (system letter and PRN)

    Ordering follows the canonical system order G, R, E, C, J then PRN,
    which fixes the order of satellite-indexed state variables.
    """
    system: str
    prn: int

    def __post_init__(self):
        if self.system not in SYSTEM_ORDER:
            raise ValueError(f"Unknown satellite system: {self.system}")
        if self.prn <= 0:
            raise ValueError(f"Invalid PRN: {self.prn}")

    @property
    def rank(self) -> int:
        return SYSTEM_ORDER.index(self.system)

    def __lt__(self, other):
        if not isinstance(other, SatID):
            return NotImplemented
        return (self.rank, self.prn) < (other.rank, other.prn)

    def __str__(self):
        return f"{self.system}{self.prn:02d}"

    @classmethod
    def from_string(cls, text: str) -> "SatID":
        """Parse a RINEX style identifier such as ``G05``"""
        text = text.strip()
        if len(text) < 2:
            raise ValueError(f"Invalid satellite identifier: {text!r}")
        try:
            return cls(text[0].upper(), int(text[1:]))
        except ValueError as exc:
            raise ValueError(f"Invalid satellite identifier: {text!r}") from exc


class TypeID(Enum):
    """Observable, model value and unknown types"""
    # Raw observables (code in meters, phase in cycles)
    P1 = "P1"
    P2 = "P2"
    L1 = "L1"
    L2 = "L2"
    LLI1 = "LLI1"
    LLI2 = "LLI2"
    # Linear combinations (meters)
    PC = "PC"
    PI = "PI"
    LI = "LI"
    MW = "MW"
    # Model values
    RHO = "rho"
    DTS = "dtSat"
    ELEVATION = "elevation"
    AZIMUTH = "azimuth"
    DRY_TROPO = "tropoSlant"
    WET_MAP = "wetMap"
    TIDE = "tide"
    WINDUP = "windUp"
    WEIGHT = "weight"
    SAT_ARC = "satArc"
    CS_FLAG = "CSL1"
    # Unknowns
    X = "x"
    Y = "y"
    Z = "z"
    CDT = "cdt"
    ZWD = "zwd"
    IONO = "ionoL1"
    BL1 = "BL1"
    BL2 = "BL2"

    def __str__(self):
        return self.value


CODE_TYPES = (TypeID.P1, TypeID.P2)
PHASE_TYPES = (TypeID.L1, TypeID.L2)
OBSERVABLE_TYPES = (TypeID.P1, TypeID.P2, TypeID.L1, TypeID.L2)

# Canonical ordering of state variables
RECEIVER_TYPES = (TypeID.X, TypeID.Y, TypeID.Z, TypeID.CDT, TypeID.ZWD)
SATELLITE_TYPES = (TypeID.IONO, TypeID.BL1, TypeID.BL2)
AMBIGUITY_TYPES = frozenset({TypeID.BL1, TypeID.BL2})


@dataclass(frozen=True)
class Variable:
    """Identity of an unknown: type, optional satellite, optional station"""
    type: TypeID
    sat: Optional[SatID] = None
    station: Optional[str] = None

    @property
    def is_satellite_indexed(self) -> bool:
        return self.sat is not None

    def __str__(self):
        parts = [str(self.type)]
        if self.sat is not None:
            parts.append(str(self.sat))
        return ":".join(parts)


def _freeze(observations: Mapping[SatID, Mapping[TypeID, float]]):
    return MappingProxyType({
        sat: MappingProxyType({t: float(v) for t, v in values.items()})
        for sat, values in observations.items()
    })


@dataclass(frozen=True)
class StationObservationBatch:
    """One epoch of code/phase observations of one station

    The observation mappings are read-only once the batch is built.
    """
    station: str
    time: float
    observations: Mapping[SatID, Mapping[TypeID, float]] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "observations", _freeze(self.observations))

    @property
    def satellites(self) -> List[SatID]:
        return sorted(self.observations)

    def __len__(self):
        return len(self.observations)


class SatPositionClock(NamedTuple):
    """Satellite ECEF position (m) and clock bias (s)"""
    position: np.ndarray
    clock: float


class DOP(NamedTuple):
    gdop: float
    pdop: float
    hdop: float
    vdop: float
    tdop: float


def observation_dict(batch: StationObservationBatch) -> Dict[SatID, Dict[TypeID, float]]:
    """Mutable deep copy of the observations of a batch"""
    return {sat: dict(values) for sat, values in batch.observations.items()}
