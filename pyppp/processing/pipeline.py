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

"""Composable processing steps

Every step returns a StepOutcome. A ProcessingList runs its steps in the
declared order and stops at the first outcome that is not CONTINUE; the
caller decides what a stop means for the station epoch.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, Iterator, List

logger = logging.getLogger(__name__)


class StepStatus(Enum):
    CONTINUE = "continue"
    DECIMATE = "decimate"
    INSUFFICIENT_SATELLITES = "insufficient_satellites"
    INVALID_SOLVER = "invalid_solver"


@dataclass(frozen=True)
class StepOutcome:
    status: StepStatus = StepStatus.CONTINUE
    message: str = ""
    step: str = ""

    @property
    def ok(self) -> bool:
        return self.status is StepStatus.CONTINUE

    @classmethod
    def decimate(cls, message: str = "") -> "StepOutcome":
        return cls(StepStatus.DECIMATE, message)

    @classmethod
    def insufficient(cls, message: str = "") -> "StepOutcome":
        return cls(StepStatus.INSUFFICIENT_SATELLITES, message)

    @classmethod
    def invalid(cls, message: str = "") -> "StepOutcome":
        return cls(StepStatus.INVALID_SOLVER, message)


CONTINUE = StepOutcome()


class ProcessingStep:
    """Base class of pipeline steps"""

    @property
    def name(self) -> str:
        return type(self).__name__

    def process(self, epoch) -> StepOutcome:
        raise NotImplementedError


class ProcessingList:
    """Ordered sequence of steps forming one pipeline stage"""

    def __init__(self, name: str, steps: Iterable[ProcessingStep] = ()):
        self.name = name
        self.steps: List[ProcessingStep] = list(steps)

    def append(self, step: ProcessingStep) -> "ProcessingList":
        self.steps.append(step)
        return self

    def process(self, epoch) -> StepOutcome:
        for step in self.steps:
            outcome = step.process(epoch)
            if not outcome.ok:
                logger.debug(f"{epoch.station}: {self.name} stopped at {step.name}: {outcome.status.value}")
                return outcome if outcome.step else replace(outcome, step=step.name)
        return CONTINUE

    def __iter__(self) -> Iterator[ProcessingStep]:
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)
