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
Undifferenced ambiguity resolution
==================================

Two stages per epoch on the float state of a PPPFilter:

1. Widelane: N1 - N2 of each satellite is fixed by rounding when its
   standard deviation and fractional part are small enough.
2. L1: N1 of satellites with a fixed widelane are searched jointly with
   MLAMBDA and accepted on the ratio test, dropping the least precise
   candidate until the test passes.

Fixes enter the filter as constraints (covariance-consistent conditioning),
are re-applied every epoch and are withdrawn when the phase residuals of
the satellite stay large for several epochs. A fix belongs to the satellite
arc it was made in and is ignored once a cycle slip opens a new arc.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Mapping, Optional, Tuple

import numpy as np

from ..core.exceptions import SVNumException
from ..core.types import PHASE_TYPES, SatID, TypeID
from .datum import AmbiguityDatum, FixedAmbiguity
from .mlambda import bootstrap_success_rate, mlambda, ratio_test

logger = logging.getLogger(__name__)


class FixStatus(Enum):
    FLOAT = "float"
    WIDELANE = "widelane"
    FIXED = "fixed"
    INSUFFICIENT_SATELLITES = "insufficient"


@dataclass
class FixOutcome:
    """Result of the ambiguity resolution stage of one epoch"""
    time: float
    status: FixStatus = FixStatus.FLOAT
    widelane_fixed: List[SatID] = field(default_factory=list)
    l1_fixed: List[SatID] = field(default_factory=list)
    withdrawn: List[SatID] = field(default_factory=list)
    ratio: Optional[float] = None
    success_rate: Optional[float] = None
    message: str = ""


@dataclass
class FixStatistics:
    """Time-to-first-fix of each filter run (one entry per reinitialization cycle)"""
    start_times: List[float] = field(default_factory=list)
    ttff_wl: List[Optional[float]] = field(default_factory=list)
    ttff_l1: List[Optional[float]] = field(default_factory=list)
    wl_fix_count: int = 0
    l1_fix_count: int = 0

    def start_cycle(self, time: float):
        self.start_times.append(time)
        self.ttff_wl.append(None)
        self.ttff_l1.append(None)

    def record_widelane(self, time: float, count: int = 1):
        self.wl_fix_count += count
        if self.ttff_wl and self.ttff_wl[-1] is None:
            self.ttff_wl[-1] = time - self.start_times[-1]

    def record_l1(self, time: float, count: int = 1):
        self.l1_fix_count += count
        if self.ttff_l1 and self.ttff_l1[-1] is None:
            self.ttff_l1[-1] = time - self.start_times[-1]


class AmbiguityResolver:
    """Widelane then L1 ambiguity fixing for one station's filter"""

    def __init__(self, station: str = "",
                 wl_sigma_threshold: float = 0.15,
                 wl_decision_threshold: float = 0.25,
                 ratio_threshold: float = 3.0,
                 success_rate_threshold: float = 0.999,
                 min_satellites: int = 4,
                 fix_variance: float = 1e-6,
                 rollback_tolerance: float = 0.05,
                 rollback_epochs: int = 3,
                 fix_widelane: bool = True,
                 fix_l1: bool = True):
        self.station = station
        self.wl_sigma_threshold = wl_sigma_threshold
        self.wl_decision_threshold = wl_decision_threshold
        self.ratio_threshold = ratio_threshold
        self.success_rate_threshold = success_rate_threshold
        self.min_satellites = min_satellites
        self.fix_variance = fix_variance
        self.rollback_tolerance = rollback_tolerance
        self.rollback_epochs = rollback_epochs
        self.widelane_enabled = fix_widelane
        self.l1_enabled = fix_l1

        self.widelane = AmbiguityDatum("WL")
        self.l1 = AmbiguityDatum("L1")
        self.statistics = FixStatistics()
        self._bad_epochs = defaultdict(int)
        self._cycle_open = False

    @classmethod
    def from_config(cls, config, station: str = "") -> "AmbiguityResolver":
        return cls(station=station,
                   wl_sigma_threshold=config.wl_sigma_threshold,
                   wl_decision_threshold=config.wl_decision_threshold,
                   ratio_threshold=config.ratio_threshold,
                   success_rate_threshold=config.success_rate_threshold,
                   min_satellites=config.min_fix_satellites,
                   fix_variance=config.fix_variance,
                   rollback_tolerance=config.rollback_tolerance,
                   rollback_epochs=config.rollback_epochs,
                   fix_widelane=config.fix_widelane,
                   fix_l1=config.fix_l1)

    # ------------------------------------------------------------------
    # Filter events
    # ------------------------------------------------------------------
    def satellites_removed(self, sats):
        self._forget(sats)

    def arcs_reset(self, arcs: Mapping[SatID, int]):
        """Discard the fixes of arcs closed by a cycle slip

        Fixes already made in the new arc are kept.
        """
        arcs = dict(arcs)
        dropped = sorted(set(self.widelane.remove_stale(arcs)) | set(self.l1.remove_stale(arcs)))
        for sat in dropped:
            self._bad_epochs.pop(sat, None)
        if dropped:
            logger.info(f"{self.station}: fixes discarded after cycle slip {[str(s) for s in dropped]}")

    def filter_reset(self, time):
        self.widelane.clear()
        self.l1.clear()
        self._bad_epochs.clear()
        self._cycle_open = False

    def _forget(self, sats) -> List[SatID]:
        sats = list(sats)
        dropped = set(self.widelane.remove_satellites(sats)) | set(self.l1.remove_satellites(sats))
        for sat in sats:
            self._bad_epochs.pop(sat, None)
        return sorted(dropped)

    # ------------------------------------------------------------------
    # Epoch processing
    # ------------------------------------------------------------------
    def resolve(self, ppp_filter, time: float,
                residuals: Optional[Mapping[Tuple[SatID, TypeID], float]] = None) -> FixOutcome:
        """
        Run consistency checks and both fixing stages

        Parameters:
        -----------
        ppp_filter : PPPFilter
            Filter after the measurement update of the epoch
        time : float
            Epoch time
        residuals : Optional[Mapping]
            Postfit residuals keyed by (satellite, observable)

        Returns:
        --------
        FixOutcome
            Never raises for too few satellites; the float solution stands
        """
        if not self._cycle_open:
            self.statistics.start_cycle(time)
            self._cycle_open = True

        outcome = FixOutcome(time)
        if residuals:
            outcome.withdrawn = self.check_consistency(ppp_filter, residuals)
        self.apply_constraints(ppp_filter)

        try:
            available = ppp_filter.num_satellites
            if available < self.min_satellites:
                raise SVNumException(available, self.min_satellites)
            if self.widelane_enabled:
                outcome.widelane_fixed = self.fix_widelane(ppp_filter, time)
            if self.l1_enabled:
                outcome.l1_fixed, outcome.ratio, outcome.success_rate = self.fix_l1(ppp_filter, time)
        except SVNumException as exc:
            logger.info(f"{self.station}: ambiguity fixing skipped, {exc}")
            outcome.status = FixStatus.INSUFFICIENT_SATELLITES
            outcome.message = str(exc)
            return outcome

        registry = ppp_filter.registry
        if self._current(self.l1, registry):
            outcome.status = FixStatus.FIXED
        elif self._current(self.widelane, registry):
            outcome.status = FixStatus.WIDELANE
        return outcome

    @staticmethod
    def _current(datum: AmbiguityDatum, registry) -> List[Tuple[SatID, FixedAmbiguity]]:
        """Fixes of active satellites made in their current arc"""
        return [(sat, datum.get(sat)) for sat in registry.satellites
                if datum.is_fixed(sat, registry.arc(sat))]

    def apply_constraints(self, ppp_filter):
        """Re-condition the state on every fix of the active satellites"""
        registry = ppp_filter.registry
        for sat, fix in self._current(self.widelane, registry):
            ppp_filter.condition({registry.variable(TypeID.BL1, sat): 1.0,
                                  registry.variable(TypeID.BL2, sat): -1.0},
                                 fix.value, self.fix_variance)
        for sat, fix in self._current(self.l1, registry):
            ppp_filter.condition({registry.variable(TypeID.BL1, sat): 1.0},
                                 fix.value, self.fix_variance)

    def check_consistency(self, ppp_filter, residuals) -> List[SatID]:
        """Withdraw fixes of satellites with repeatedly large phase residuals"""
        withdrawn = []
        for sat, _ in self._current(self.widelane, ppp_filter.registry):
            values = [abs(residuals[(sat, t)]) for t in PHASE_TYPES if (sat, t) in residuals]
            if not values:
                continue
            if max(values) > self.rollback_tolerance:
                self._bad_epochs[sat] += 1
            else:
                self._bad_epochs[sat] = 0
            if self._bad_epochs[sat] >= self.rollback_epochs:
                self.withdraw(ppp_filter, sat)
                withdrawn.append(sat)
        if withdrawn:
            logger.warning(f"{self.station}: fixes withdrawn {[str(s) for s in withdrawn]}")
        return withdrawn

    def withdraw(self, ppp_filter, sat: SatID):
        """Return a satellite's ambiguities to float status"""
        self.widelane.withdraw(sat)
        self.l1.withdraw(sat)
        self._bad_epochs.pop(sat, None)
        registry = ppp_filter.registry
        for type_id in (TypeID.BL1, TypeID.BL2):
            var = registry.variable(type_id, sat)
            if var in registry:
                ppp_filter.release(var, ppp_filter.models[type_id].prior_variance())

    def fix_widelane(self, ppp_filter, time: float) -> List[SatID]:
        """Fix widelane ambiguities by rounding"""
        registry = ppp_filter.registry
        x, P = ppp_filter.x, ppp_filter.P
        fixed = []
        for sat in registry.satellites:
            if self.widelane.is_fixed(sat, registry.arc(sat)):
                continue
            v1 = registry.variable(TypeID.BL1, sat)
            v2 = registry.variable(TypeID.BL2, sat)
            i1, i2 = registry.index(v1), registry.index(v2)
            n_wl = x[i1] - x[i2]
            var = P[i1, i1] + P[i2, i2] - 2.0 * P[i1, i2]
            if var <= 0.0 or np.sqrt(var) > self.wl_sigma_threshold:
                continue
            value = int(np.round(n_wl))
            if abs(n_wl - value) > self.wl_decision_threshold:
                continue
            if not ppp_filter.condition({v1: 1.0, v2: -1.0}, value, self.fix_variance):
                continue
            self.widelane.add(sat, value, registry.arc(sat), time)
            fixed.append(sat)

        if fixed:
            self.statistics.record_widelane(time, len(fixed))
            logger.debug(f"{self.station}: widelane fixed {[str(s) for s in fixed]}")
        return fixed

    def fix_l1(self, ppp_filter, time: float) -> Tuple[List[SatID], Optional[float], Optional[float]]:
        """Fix L1 ambiguities of widelane-fixed satellites with MLAMBDA"""
        registry = ppp_filter.registry
        candidates = [sat for sat in registry.satellites
                      if self.widelane.is_fixed(sat, registry.arc(sat))
                      and not self.l1.is_fixed(sat, registry.arc(sat))]
        if not candidates:
            return [], None, None

        ratio = success = None
        while True:
            variables = [registry.variable(TypeID.BL1, sat) for sat in candidates]
            a = ppp_filter.values_of(variables)
            Q = ppp_filter.covariance_of(variables)
            try:
                afix, s = mlambda(a, Q, 2)
            except ValueError as exc:
                logger.debug(f"{self.station}: L1 search failed: {exc}")
                passed = False
            else:
                passed, ratio = ratio_test(s, self.ratio_threshold)
                if passed:
                    success = bootstrap_success_rate(Q)
                    passed = success >= self.success_rate_threshold
            if passed:
                break
            if len(candidates) == 1:
                return [], ratio, success
            # Partial fixing: drop the least precise candidate
            candidates.pop(int(np.argmax(np.diag(Q))))

        fixed = []
        for sat, var, value in zip(candidates, variables, afix[:, 0]):
            if ppp_filter.condition({var: 1.0}, value, self.fix_variance):
                self.l1.add(sat, int(value), registry.arc(sat), time)
                fixed.append(sat)

        if fixed:
            self.statistics.record_l1(time, len(fixed))
            logger.debug(f"{self.station}: L1 fixed {[str(s) for s in fixed]} ratio {ratio:.1f}")
        return fixed, ratio, success

    @property
    def fixed_satellites(self) -> List[SatID]:
        return self.l1.satellites
