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

"""Preprocessing steps: observable screening, combinations, cycle slips, arcs"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

from ..core.constants import (FREQ_L1, FREQ_L2, WAVELENGTH_L1, WAVELENGTH_L2,
                              WAVELENGTH_WL, GAMMA)
from ..core.types import OBSERVABLE_TYPES, SatID, TypeID
from .pipeline import CONTINUE, ProcessingStep, StepOutcome

logger = logging.getLogger(__name__)


class RequireObservables(ProcessingStep):
    """Drop satellites missing any of the required observables"""

    def __init__(self, types: Sequence[TypeID] = OBSERVABLE_TYPES):
        self.types = tuple(types)

    def process(self, epoch) -> StepOutcome:
        missing = [sat for sat, values in epoch.body.items()
                   if any(t not in values for t in self.types)]
        epoch.remove_satellites(missing)
        return CONTINUE


class SimpleFilter(ProcessingStep):
    """Drop satellites whose observables fall outside a plausible range"""

    def __init__(self, types: Sequence[TypeID] = (TypeID.P1, TypeID.P2),
                 min_value: float = 15.0e6, max_value: float = 30.0e6,
                 enabled: bool = True):
        self.types = tuple(types)
        self.min_value = min_value
        self.max_value = max_value
        self.enabled = enabled

    def process(self, epoch) -> StepOutcome:
        if not self.enabled:
            return CONTINUE
        bad = []
        for sat, values in epoch.body.items():
            for t in self.types:
                v = values.get(t)
                if v is None or not (self.min_value <= v <= self.max_value):
                    bad.append(sat)
                    break
        if bad:
            logger.debug(f"{epoch.station}: {self.types[0]} out of range for {[str(s) for s in bad]}")
        epoch.remove_satellites(bad)
        return CONTINUE


class ComputeCombinations(ProcessingStep):
    """Ionosphere-free code, geometry-free and Melbourne-Wubbena combinations (m)"""

    def process(self, epoch) -> StepOutcome:
        for values in epoch.body.values():
            p1, p2 = values[TypeID.P1], values[TypeID.P2]
            l1 = values[TypeID.L1] * WAVELENGTH_L1
            l2 = values[TypeID.L2] * WAVELENGTH_L2
            values[TypeID.PC] = (GAMMA * p1 - p2) / (GAMMA - 1.0)
            values[TypeID.PI] = p2 - p1
            values[TypeID.LI] = l1 - l2
            values[TypeID.MW] = ((FREQ_L1 * l1 - FREQ_L2 * l2) / (FREQ_L1 - FREQ_L2)
                                 - (FREQ_L1 * p1 + FREQ_L2 * p2) / (FREQ_L1 + FREQ_L2))
        return CONTINUE


class LLIDetector(ProcessingStep):
    """Cycle slips flagged by the receiver loss-of-lock indicators"""

    def process(self, epoch) -> StepOutcome:
        for sat, values in epoch.body.items():
            flags = (int(values.get(TypeID.LLI1, 0)), int(values.get(TypeID.LLI2, 0)))
            if any(f & 1 for f in flags):
                epoch.slips.add(sat)
        return CONTINUE


class LICSDetector(ProcessingStep):
    """Geometry-free phase jump detector"""

    def __init__(self, threshold: float = 0.05, max_gap: float = 61.0):
        self.threshold = threshold
        self.max_gap = max_gap
        self._last: Dict[SatID, Tuple[float, float]] = {}

    def process(self, epoch) -> StepOutcome:
        for sat, values in epoch.body.items():
            li = values[TypeID.LI]
            last = self._last.get(sat)
            if last is not None:
                t0, li0 = last
                if epoch.time - t0 > self.max_gap or abs(li - li0) > self.threshold:
                    epoch.slips.add(sat)
                    logger.debug(f"{epoch.station}: LI jump {li - li0:.3f} m on {sat}")
            self._last[sat] = (epoch.time, li)
        return CONTINUE


class MWCSDetector(ProcessingStep):
    """Melbourne-Wubbena detector against the running mean of the arc"""

    def __init__(self, threshold: float = 4.0, max_gap: float = 61.0):
        self.threshold = threshold
        self.max_gap = max_gap
        self._state: Dict[SatID, Tuple[float, float, int]] = {}

    def process(self, epoch) -> StepOutcome:
        for sat, values in epoch.body.items():
            mw = values[TypeID.MW] / WAVELENGTH_WL
            state = self._state.get(sat)
            if state is None or sat in epoch.slips:
                self._state[sat] = (epoch.time, mw, 1)
                continue
            t0, mean, count = state
            if epoch.time - t0 > self.max_gap or abs(mw - mean) > self.threshold:
                epoch.slips.add(sat)
                logger.debug(f"{epoch.station}: MW jump {mw - mean:.2f} cycles on {sat}")
                self._state[sat] = (epoch.time, mw, 1)
                continue
            count += 1
            self._state[sat] = (epoch.time, mean + (mw - mean) / count, count)
        return CONTINUE


class SatArcMarker(ProcessingStep):
    """Open a new arc in the variable registry for every slipped satellite"""

    def __init__(self, registry):
        self.registry = registry

    def process(self, epoch) -> StepOutcome:
        for sat in sorted(epoch.slips):
            if sat in epoch.body:
                self.registry.mark_arc_reset(sat)
                epoch.set(sat, TypeID.CS_FLAG, 1.0)
        for sat in epoch.body:
            epoch.set(sat, TypeID.SAT_ARC, self.registry.next_arc(sat))
        return CONTINUE


@dataclass(frozen=True)
class AlignmentOffset:
    arc: int
    l1: int
    l2: int


class PhaseCodeAlignment(ProcessingStep):
    """Shift each phase arc by whole cycles so it starts near the code

    The offsets are chosen at the first epoch of a satellite arc from the
    ionosphere corrected code and held for the rest of the arc.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self.offsets: Dict[SatID, AlignmentOffset] = {}

    def process(self, epoch) -> StepOutcome:
        if not self.enabled:
            return CONTINUE
        for sat, values in epoch.body.items():
            arc = int(values[TypeID.SAT_ARC])
            offset = self.offsets.get(sat)
            if offset is None or offset.arc != arc:
                p1, p2 = values[TypeID.P1], values[TypeID.P2]
                iono = (p2 - p1) / (GAMMA - 1.0)
                k1 = round(values[TypeID.L1] - (p1 - 2.0 * iono) / WAVELENGTH_L1)
                k2 = round(values[TypeID.L2] - (p2 - 2.0 * GAMMA * iono) / WAVELENGTH_L2)
                offset = AlignmentOffset(arc, int(k1), int(k2))
                self.offsets[sat] = offset
                logger.debug(f"{epoch.station}: phase alignment of {sat} arc {arc}: {k1} {k2} cycles")
            values[TypeID.L1] -= offset.l1
            values[TypeID.L2] -= offset.l2
        return CONTINUE


class Decimate(ProcessingStep):
    """Skip epochs that are not multiples of the decimation interval"""

    def __init__(self, interval: float = 0.0, tolerance: float = 0.5):
        self.interval = interval
        self.tolerance = tolerance

    def process(self, epoch) -> StepOutcome:
        if self.interval <= 0.0:
            return CONTINUE
        r = math.fmod(epoch.time, self.interval)
        if min(r, self.interval - r) > self.tolerance:
            return StepOutcome.decimate(f"{epoch.time:.1f} not on a {self.interval:g} s boundary")
        return CONTINUE
