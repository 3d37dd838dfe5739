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

"""External collaborators of the pipeline

Orbit/clock records, the lock-guarded ephemeris store and its immutable
snapshots, the correction stream clock, and the tide/bias/troposphere
interfaces consumed by the modeling steps.
"""

import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Protocol, Tuple

import numpy as np

from ..core.types import SatID, SatPositionClock, TypeID


@dataclass(frozen=True)
class OrbitClockRecord:
    """Corrected orbit/clock state of a satellite at a reference time

    Position and clock are extrapolated linearly with the velocity and
    clock drift over the validity interval.
    """
    time: float
    position: Tuple[float, float, float]
    clock: float                                        # s
    velocity: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    clock_drift: float = 0.0                            # s/s
    validity: float = 300.0                             # s

    def evaluate(self, time: float) -> SatPositionClock:
        dt = time - self.time
        if abs(dt) > self.validity:
            raise KeyError(f"orbit record of {self.time:.1f} not valid at {time:.1f}")
        position = np.asarray(self.position, dtype=float) + np.asarray(self.velocity, dtype=float) * dt
        return SatPositionClock(position, self.clock + self.clock_drift * dt)


class EphemerisSnapshot:
    """Read-only copy of the ephemeris store"""

    def __init__(self, records: Mapping[SatID, OrbitClockRecord]):
        self._records = MappingProxyType(dict(records))

    def position_and_clock(self, sat: SatID, time: float) -> SatPositionClock:
        """Satellite position (m) and clock bias (s); KeyError when unavailable"""
        record = self._records.get(sat)
        if record is None:
            raise KeyError(f"no orbit/clock for {sat}")
        return record.evaluate(time)

    @property
    def satellites(self):
        return sorted(self._records)

    def __contains__(self, sat: SatID) -> bool:
        return sat in self._records

    def __len__(self) -> int:
        return len(self._records)


class EphemerisStore:
    """Thread-safe store of the latest orbit/clock record of each satellite"""

    def __init__(self):
        self._records: Dict[SatID, OrbitClockRecord] = {}
        self._lock = threading.Lock()

    def update(self, sat: SatID, record: OrbitClockRecord):
        with self._lock:
            current = self._records.get(sat)
            if current is None or record.time >= current.time:
                self._records[sat] = record

    def update_many(self, records: Mapping[SatID, OrbitClockRecord]):
        with self._lock:
            for sat, record in records.items():
                current = self._records.get(sat)
                if current is None or record.time >= current.time:
                    self._records[sat] = record

    def position_and_clock(self, sat: SatID, time: float) -> SatPositionClock:
        with self._lock:
            record = self._records.get(sat)
        if record is None:
            raise KeyError(f"no orbit/clock for {sat}")
        return record.evaluate(time)

    def snapshot(self) -> EphemerisSnapshot:
        """Copy the records under the lock"""
        with self._lock:
            return EphemerisSnapshot(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class CorrectionStream:
    """Arrival clock of a real-time orbit/clock correction stream"""

    def __init__(self, mount: str = ""):
        self.mount = mount
        self._latest: Optional[float] = None
        self._lock = threading.Lock()

    def update(self, time: float):
        """Register a correction message with reference time ``time``"""
        with self._lock:
            if self._latest is None or time > self._latest:
                self._latest = time

    def latest_correction_time(self) -> Optional[float]:
        with self._lock:
            return self._latest


class EphemerisSource(Protocol):
    def position_and_clock(self, sat: SatID, time: float) -> SatPositionClock:
        ...


class TideModel(Protocol):
    def displacement(self, time: float, position: np.ndarray) -> np.ndarray:
        """Station displacement (ECEF, m) at time"""
        ...


class BiasProvider(Protocol):
    def biases(self, sat: SatID) -> Mapping[TypeID, float]:
        """Satellite code/phase biases in meters keyed by observable"""
        ...


class TroposphereModel(Protocol):
    def zenith_delays(self, llh) -> Tuple[float, float]:
        ...

    def mapping(self, llh, elevation: float) -> Tuple[float, float]:
        ...


class NullTideModel:
    """Tide model without displacement"""

    def displacement(self, time: float, position: np.ndarray) -> np.ndarray:
        return np.zeros(3)


class StaticBiasProvider:
    """Constant satellite biases, e.g. from a bias file or SSR message"""

    def __init__(self, biases: Optional[Mapping[SatID, Mapping[TypeID, float]]] = None):
        self._biases = {sat: dict(values) for sat, values in (biases or {}).items()}

    def biases(self, sat: SatID) -> Mapping[TypeID, float]:
        return self._biases.get(sat, {})

    def satellites(self) -> Iterable[SatID]:
        return sorted(self._biases)
