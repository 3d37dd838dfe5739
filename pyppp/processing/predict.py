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

"""Prediction steps: geometry model, satellite exclusion and time update"""

import logging
from typing import Dict

import numpy as np

from ..core.constants import CLIGHT, GAMMA, WAVELENGTH_L1, WAVELENGTH_L2
from ..core.types import TypeID, Variable
from ..coordinate.transforms import ecef2llh
from ..gnss.geometry import geodist, satazel
from ..gnss.sun import in_earth_shadow, sun_position_ecef
from ..gnss.windup import phase_windup
from .pipeline import CONTINUE, ProcessingStep, StepOutcome

logger = logging.getLogger(__name__)


class BasicModel(ProcessingStep):
    """Satellite state at transmission time, range, azimuth/elevation and cutoff"""

    def __init__(self, cutoff_elevation: float = 10.0):
        self.cutoff_elevation = cutoff_elevation

    def process(self, epoch) -> StepOutcome:
        if epoch.position is None:
            return StepOutcome.insufficient("no a priori receiver position")
        if epoch.snapshot is None:
            return StepOutcome.insufficient("no ephemeris snapshot")

        pos = epoch.position
        llh = ecef2llh(pos)
        drop = []
        for sat, values in epoch.body.items():
            try:
                t_tx = epoch.time - values[TypeID.P1] / CLIGHT
                t_tx -= epoch.snapshot.position_and_clock(sat, t_tx).clock
                state = epoch.snapshot.position_and_clock(sat, t_tx)
            except KeyError:
                drop.append(sat)
                continue

            rho, e = geodist(state.position, pos)
            az, el = satazel(llh, e)
            if np.degrees(el) < self.cutoff_elevation:
                drop.append(sat)
                continue

            values[TypeID.RHO] = rho
            values[TypeID.DTS] = CLIGHT * state.clock
            values[TypeID.ELEVATION] = float(np.degrees(el))
            values[TypeID.AZIMUTH] = float(np.degrees(az))
            epoch.sat_pos[sat] = state
            epoch.los[sat] = e

        if drop:
            logger.debug(f"{epoch.station}: no orbit or below cutoff {[str(s) for s in sorted(drop)]}")
        epoch.remove_satellites(drop)
        return CONTINUE


class EclipsedSatFilter(ProcessingStep):
    """Exclude satellites in the earth shadow and during the post-shadow period"""

    def __init__(self, post_shadow_period: float = 1800.0, enabled: bool = True):
        self.post_shadow_period = post_shadow_period
        self.enabled = enabled
        self._shadow_exit: Dict = {}

    def process(self, epoch) -> StepOutcome:
        if not self.enabled or not epoch.sat_pos:
            return CONTINUE
        sun = sun_position_ecef(epoch.time)
        drop = []
        for sat, state in epoch.sat_pos.items():
            if in_earth_shadow(state.position, sun):
                self._shadow_exit[sat] = epoch.time
                drop.append(sat)
            elif sat in self._shadow_exit:
                if epoch.time - self._shadow_exit[sat] < self.post_shadow_period:
                    drop.append(sat)
                else:
                    del self._shadow_exit[sat]
        if drop:
            logger.debug(f"{epoch.station}: eclipsed {[str(s) for s in sorted(drop)]}")
        epoch.remove_satellites(drop)
        return CONTINUE


class ComputeWindUp(ProcessingStep):
    """Remove the carrier phase wind-up from L1 and L2 (cycles)"""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._previous: Dict = {}

    def process(self, epoch) -> StepOutcome:
        if not self.enabled or not epoch.sat_pos:
            return CONTINUE
        sun = sun_position_ecef(epoch.time)
        for sat, values in epoch.body.items():
            windup = phase_windup(epoch.sat_pos[sat].position, epoch.position, sun,
                                  self._previous.get(sat, 0.0))
            self._previous[sat] = windup
            values[TypeID.WINDUP] = windup
            values[TypeID.L1] -= windup
            values[TypeID.L2] -= windup
        return CONTINUE


class FilterPredict(ProcessingStep):
    """Activate the epoch's variables and run the time update"""

    def __init__(self, ppp_filter, min_satellites: int = 4):
        self.filter = ppp_filter
        self.min_satellites = min_satellites

    def process(self, epoch) -> StepOutcome:
        sats = epoch.satellites
        if len(sats) < self.min_satellites:
            return StepOutcome.insufficient(f"{len(sats)} satellites, {self.min_satellites} required")

        self.filter.begin_epoch(epoch.time, sats)
        last = self.filter.last_time
        dt = 0.0 if last is None else epoch.time - last
        self.filter.predict(dt, self.seeds(epoch))
        epoch.position = self.filter.position
        return CONTINUE

    def seeds(self, epoch) -> Dict[Variable, float]:
        """Initial values of new variables and white noise variables from code and phase"""
        registry = self.filter.registry
        seeds = {}
        for type_id, value in zip((TypeID.X, TypeID.Y, TypeID.Z), epoch.position):
            seeds[registry.variable(type_id)] = float(value)

        clocks = [values[TypeID.PC] - values[TypeID.RHO] + values[TypeID.DTS]
                  for values in epoch.body.values()]
        if clocks:
            seeds[registry.variable(TypeID.CDT)] = float(np.median(clocks))

        for sat, values in epoch.body.items():
            p1, p2 = values[TypeID.P1], values[TypeID.P2]
            iono = (p2 - p1) / (GAMMA - 1.0)
            seeds[registry.variable(TypeID.IONO, sat)] = iono
            seeds[registry.variable(TypeID.BL1, sat)] = (
                values[TypeID.L1] * WAVELENGTH_L1 - p1 + 2.0 * iono) / WAVELENGTH_L1
            seeds[registry.variable(TypeID.BL2, sat)] = (
                values[TypeID.L2] * WAVELENGTH_L2 - p2 + 2.0 * GAMMA * iono) / WAVELENGTH_L2
        return seeds
