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

"""Variable registry

Maps the unknowns tracked in the current epoch to positions in the dense
state vector. Ordering is receiver variables in canonical order, then
satellite variables by satellite, then by type. A variable keeps its key
across epochs, so index changes between epochs are a pure permutation.

Activation is transactional: the committed set only advances on commit(),
so a discarded epoch leaves the registry describing the last persisted
state.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Set

from ..core.types import (AMBIGUITY_TYPES, RECEIVER_TYPES, SATELLITE_TYPES,
                          SatID, TypeID, Variable)

logger = logging.getLogger(__name__)


class VariableRegistry:
    """Ordered set of active unknowns for one station"""

    def __init__(self, station: Optional[str] = None,
                 receiver_types: Sequence[TypeID] = RECEIVER_TYPES,
                 satellite_types: Sequence[TypeID] = SATELLITE_TYPES):
        self.station = station
        self.receiver_types = tuple(receiver_types)
        self.satellite_types = tuple(satellite_types)

        self._committed: Set[Variable] = set()
        self._committed_sats: Set[SatID] = set()
        self._arcs: Dict[SatID, int] = {}
        self._pending_resets: Set[SatID] = set()

        self._variables: List[Variable] = []
        self._index: Dict[Variable, int] = {}
        self._new: Set[Variable] = set()
        self._epoch_arcs: Dict[SatID, int] = {}
        self._consumed_resets: Set[SatID] = set()

        self.removed_satellites: List[SatID] = []
        self.reset_satellites: List[SatID] = []

    def variable(self, type_id: TypeID, sat: Optional[SatID] = None) -> Variable:
        return Variable(type_id, sat, self.station)

    def _type_order(self, satellite_types: Optional[Iterable[TypeID]]) -> List[TypeID]:
        if satellite_types is None:
            return list(self.satellite_types)
        requested = set(satellite_types)
        unknown = requested - set(self.satellite_types)
        if unknown:
            raise ValueError(f"Unsupported satellite variable types: {sorted(t.value for t in unknown)}")
        return [t for t in self.satellite_types if t in requested]

    def activate(self, satellites: Iterable[SatID],
                 satellite_types: Optional[Iterable[TypeID]] = None) -> List[Variable]:
        """
        Build the ordered variable list of the current epoch

        Parameters:
        -----------
        satellites : Iterable[SatID]
            Satellites tracked this epoch
        satellite_types : Optional[Iterable[TypeID]]
            Satellite variable types, defaults to every registered type

        Returns:
        --------
        List[Variable]
            Variables in state vector order
        """
        sats = sorted(set(satellites))
        types = self._type_order(satellite_types)

        variables = [self.variable(t) for t in self.receiver_types]
        for sat in sats:
            variables.extend(self.variable(t, sat) for t in types)

        current = set(sats)
        self._consumed_resets = self._pending_resets & current
        self.removed_satellites = sorted(self._committed_sats - current)
        self.reset_satellites = sorted(self._consumed_resets & self._committed_sats)

        self._epoch_arcs = {}
        for sat in sats:
            opens_arc = sat not in self._committed_sats or sat in self._consumed_resets
            self._epoch_arcs[sat] = self._arcs.get(sat, 0) + 1 if opens_arc else self._arcs[sat]

        self._new = set()
        for var in variables:
            if var not in self._committed:
                self._new.add(var)
            elif var.sat in self._consumed_resets and var.type in AMBIGUITY_TYPES:
                self._new.add(var)

        self._variables = variables
        self._index = {var: i for i, var in enumerate(variables)}
        return list(variables)

    def mark_arc_reset(self, sat: SatID):
        """Start a new arc for a satellite after a cycle slip

        The satellite's ambiguities become new variables at the next
        activation. The reset stays pending until an epoch is committed.
        """
        if sat not in self._pending_resets:
            logger.debug(f"{self.station}: arc reset pending for {sat}")
        self._pending_resets.add(sat)

    def commit(self):
        """Make the current activation the persisted variable set"""
        self._committed = set(self._variables)
        self._committed_sats = {var.sat for var in self._variables if var.sat is not None}
        self._arcs.update(self._epoch_arcs)
        self._pending_resets -= self._consumed_resets
        self._consumed_resets = set()

    def reset(self):
        """Forget every committed variable (filter reinitialization)"""
        self._committed = set()
        self._committed_sats = set()
        self._pending_resets = set()
        self._consumed_resets = set()
        self._variables = []
        self._index = {}
        self._new = set()
        self._epoch_arcs = {}
        self.removed_satellites = []
        self.reset_satellites = []

    @property
    def variables(self) -> List[Variable]:
        return list(self._variables)

    @property
    def satellites(self) -> List[SatID]:
        return sorted(self._epoch_arcs)

    @property
    def new_variables(self) -> List[Variable]:
        return [var for var in self._variables if var in self._new]

    @property
    def pending_resets(self) -> Set[SatID]:
        return set(self._pending_resets)

    def index(self, var: Variable) -> int:
        return self._index[var]

    def index_of(self, type_id: TypeID, sat: Optional[SatID] = None) -> int:
        return self._index[self.variable(type_id, sat)]

    def is_new(self, var: Variable) -> bool:
        return var in self._new

    def arc(self, sat: SatID) -> int:
        """Arc number of a satellite in the current epoch"""
        if sat in self._epoch_arcs:
            return self._epoch_arcs[sat]
        return self._arcs.get(sat, 0)

    def next_arc(self, sat: SatID) -> int:
        """Arc number the satellite takes at the next activation"""
        arc = self._arcs.get(sat, 0)
        if sat not in self._committed_sats or sat in self._pending_resets:
            arc += 1
        return arc

    def __contains__(self, var: Variable) -> bool:
        return var in self._index

    def __len__(self) -> int:
        return len(self._variables)
