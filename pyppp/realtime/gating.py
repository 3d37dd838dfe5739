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

"""Correction freshness gate"""

from enum import Enum
from typing import Optional


class GateDecision(Enum):
    PROCEED = "proceed"
    BYPASS = "bypass"
    STALE = "stale"
    NOT_ARRIVED = "not_arrived"
    NO_CORRECTION = "no_correction"

    @property
    def proceed(self) -> bool:
        return self in (GateDecision.PROCEED, GateDecision.BYPASS)


class CorrectionGate:
    """Decide whether an epoch may use the latest correction

    The correction age is ``epoch_time - latest_correction_time``. An epoch
    proceeds when ``min_age < age <= max_age``.
    """

    def __init__(self, min_age: float = 0.0, max_age: float = 5.0, enabled: bool = True):
        if max_age <= min_age:
            raise ValueError("max_age must be greater than min_age")
        self.min_age = min_age
        self.max_age = max_age
        self.enabled = enabled

    @classmethod
    def from_config(cls, config) -> "CorrectionGate":
        return cls(config.min_correction_age, config.max_correction_wait, config.gating_enabled)

    def age(self, epoch_time: float, latest_correction_time: Optional[float]) -> Optional[float]:
        if latest_correction_time is None:
            return None
        return epoch_time - latest_correction_time

    def check(self, epoch_time: float, latest_correction_time: Optional[float]) -> GateDecision:
        if not self.enabled:
            return GateDecision.BYPASS
        age = self.age(epoch_time, latest_correction_time)
        if age is None:
            return GateDecision.NO_CORRECTION
        if age > self.max_age:
            return GateDecision.STALE
        if age <= self.min_age:
            return GateDecision.NOT_ARRIVED
        return GateDecision.PROCEED
