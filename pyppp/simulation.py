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

"""Synthetic dual-frequency observations of a static station

Satellites are held fixed in ECEF at chosen azimuth/elevation, and code and
phase follow the uncombined observation model with known receiver clock,
troposphere, ionosphere, phase wind-up and integer ambiguities. Used to
exercise the engine end to end without receiver data.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .coordinate.transforms import compute_rotation_matrix_enu, llh2ecef
from .core.constants import CLIGHT, GAMMA, WAVELENGTH_L1, WAVELENGTH_L2
from .core.time import epoch2gpst
from .core.types import SatID, StationObservationBatch, TypeID
from .gnss.geometry import geodist, satazel
from .gnss.sun import sun_position_ecef
from .gnss.troposphere import saastamoinen_zenith, simple_mapping
from .gnss.windup import phase_windup
from .processing.collaborators import EphemerisStore, OrbitClockRecord

ORBIT_RADIUS = 26_560e3

DEFAULT_SKY = ((0.0, 80.0), (45.0, 35.0), (100.0, 50.0), (150.0, 30.0),
               (200.0, 60.0), (250.0, 40.0), (300.0, 45.0), (330.0, 30.0))


@dataclass
class SyntheticSatellite:
    sat: SatID
    position: np.ndarray
    clock: float                      # s
    n1: int
    n2: int
    iono: float                       # m, L1 slant delay
    slips: Dict[int, Tuple[int, int]] = field(default_factory=dict)

    def ambiguities(self, k: int) -> Tuple[int, int]:
        n1, n2 = self.n1, self.n2
        for epoch, (d1, d2) in self.slips.items():
            if k >= epoch:
                n1 += d1
                n2 += d2
        return n1, n2


class SyntheticScenario:
    """Static receiver tracking static satellites"""

    def __init__(self, llh_deg: Sequence[float] = (35.7, 139.7, 50.0),
                 sky: Sequence[Tuple[float, float]] = DEFAULT_SKY,
                 station: str = "SIM1",
                 start_time: Optional[float] = None,
                 interval: float = 30.0,
                 zwd: float = 0.12,
                 code_sigma: float = 0.2,
                 phase_sigma: float = 0.002,
                 windup: bool = True,
                 seed: int = 0):
        self.station = station
        self.llh = np.array([np.radians(llh_deg[0]), np.radians(llh_deg[1]), llh_deg[2]])
        self.position = llh2ecef(self.llh)
        self.start_time = epoch2gpst(2024, 3, 1) if start_time is None else start_time
        self.interval = interval
        self.zwd = zwd
        self.code_sigma = code_sigma
        self.phase_sigma = phase_sigma
        self.windup = windup
        self._windup: Dict[SatID, List[float]] = {}
        self._rng = np.random.default_rng(seed)

        R = compute_rotation_matrix_enu(self.llh)
        self.satellites: Dict[SatID, SyntheticSatellite] = {}
        for i, (az, el) in enumerate(sky):
            az, el = np.radians(az), np.radians(el)
            u = R.T @ np.array([np.cos(el) * np.sin(az), np.cos(el) * np.cos(az), np.sin(el)])
            b = self.position @ u
            rng = -b + np.sqrt(b * b - self.position @ self.position + ORBIT_RADIUS ** 2)
            sat = SatID("G", i + 1)
            self.satellites[sat] = SyntheticSatellite(
                sat=sat, position=self.position + rng * u,
                clock=1e-5 * (i + 1) - 4e-5,
                n1=int(self._rng.integers(-1000, 1000)),
                n2=int(self._rng.integers(-1000, 1000)),
                iono=2.0 + 4.0 * (1.0 - np.sin(el)))

    def epoch_time(self, k: int) -> float:
        return self.start_time + k * self.interval

    def receiver_clock(self, k: int) -> float:
        """Receiver clock bias (m) at epoch k"""
        return 150.0 + 0.5 * k

    def phase_windup(self, sat: SatID, k: int) -> float:
        """Wind-up (cycles) at epoch k, unwrapped epoch by epoch from epoch 0"""
        history = self._windup.setdefault(sat, [])
        position = self.satellites[sat].position
        while len(history) <= k:
            previous = history[-1] if history else 0.0
            sun = sun_position_ecef(self.epoch_time(len(history)))
            history.append(phase_windup(position, self.position, sun, previous))
        return history[k]

    def add_slip(self, sat: SatID, epoch: int, cycles_l1: int, cycles_l2: int = 0):
        self.satellites[sat].slips[epoch] = (cycles_l1, cycles_l2)

    def orbit_records(self, validity: float = 1e7) -> Dict[SatID, OrbitClockRecord]:
        t0 = self.start_time
        return {sat: OrbitClockRecord(t0, tuple(s.position), s.clock, validity=validity)
                for sat, s in self.satellites.items()}

    def ephemeris(self) -> EphemerisStore:
        store = EphemerisStore()
        store.update_many(self.orbit_records())
        return store

    def elevation(self, sat: SatID) -> float:
        _, e = geodist(self.satellites[sat].position, self.position)
        return satazel(self.llh, e)[1]

    def batch(self, k: int, satellites: Optional[Sequence[SatID]] = None,
              noise: bool = True) -> StationObservationBatch:
        """Observations of epoch k"""
        zhd, _ = saastamoinen_zenith(self.llh)
        cdt = self.receiver_clock(k)
        observations = {}
        for sat in (satellites if satellites is not None else sorted(self.satellites)):
            s = self.satellites[sat]
            rho, e = geodist(s.position, self.position)
            el = satazel(self.llh, e)[1]
            m = simple_mapping(el)
            common = rho + cdt - CLIGHT * s.clock + (zhd + self.zwd) * m
            iono = s.iono + 1e-3 * k
            n1, n2 = s.ambiguities(k)
            windup = self.phase_windup(sat, k) if self.windup else 0.0
            scale = 1.0 / np.sin(el)
            code_noise, phase_noise = (
                (self._rng.normal(0.0, self.code_sigma * scale, 2),
                 self._rng.normal(0.0, self.phase_sigma * scale, 2))
                if noise else (np.zeros(2), np.zeros(2)))
            observations[sat] = {
                TypeID.P1: common + iono + code_noise[0],
                TypeID.P2: common + GAMMA * iono + code_noise[1],
                TypeID.L1: (common - iono + phase_noise[0]) / WAVELENGTH_L1 + n1 + windup,
                TypeID.L2: (common - GAMMA * iono + phase_noise[1]) / WAVELENGTH_L2 + n2 + windup,
                TypeID.LLI1: 0.0,
                TypeID.LLI2: 0.0,
            }
        return StationObservationBatch(self.station, self.epoch_time(k), observations)

    def batches(self, count: int, noise: bool = True) -> List[StationObservationBatch]:
        return [self.batch(k, noise=noise) for k in range(count)]
