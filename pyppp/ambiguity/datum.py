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

"""Fixed ambiguity constraints of one frequency"""

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from ..core.types import SatID


@dataclass(frozen=True)
class FixedAmbiguity:
    value: int
    arc: int
    time: float


class AmbiguityDatum:
    """Integer constraints of one frequency, at most one per satellite arc"""

    def __init__(self, name: str):
        self.name = name
        self._fixes: Dict[SatID, FixedAmbiguity] = {}

    def add(self, sat: SatID, value: int, arc: int, time: float) -> FixedAmbiguity:
        """Record a fix; a second fix of the same satellite arc raises ValueError"""
        current = self._fixes.get(sat)
        if current is not None and current.arc == arc:
            raise ValueError(f"{self.name} ambiguity of {sat} already fixed in arc {arc}")
        fix = FixedAmbiguity(int(value), arc, time)
        self._fixes[sat] = fix
        return fix

    def withdraw(self, sat: SatID) -> Optional[FixedAmbiguity]:
        return self._fixes.pop(sat, None)

    def remove_satellites(self, sats: Iterable[SatID]) -> List[SatID]:
        return [sat for sat in sats if self._fixes.pop(sat, None) is not None]

    def remove_stale(self, arcs: Mapping[SatID, int]) -> List[SatID]:
        """Remove fixes made in an arc other than the satellite's current one"""
        stale = [sat for sat, arc in arcs.items()
                 if sat in self._fixes and self._fixes[sat].arc != arc]
        for sat in stale:
            del self._fixes[sat]
        return stale

    def clear(self):
        self._fixes.clear()

    def get(self, sat: SatID) -> Optional[FixedAmbiguity]:
        return self._fixes.get(sat)

    def is_fixed(self, sat: SatID, arc: Optional[int] = None) -> bool:
        fix = self._fixes.get(sat)
        return fix is not None and (arc is None or fix.arc == arc)

    @property
    def satellites(self) -> List[SatID]:
        return sorted(self._fixes)

    def items(self):
        return sorted(self._fixes.items())

    def __contains__(self, sat: SatID) -> bool:
        return sat in self._fixes

    def __iter__(self) -> Iterator[SatID]:
        return iter(self.satellites)

    def __len__(self) -> int:
        return len(self._fixes)
