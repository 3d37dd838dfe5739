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

"""Core module for PyPPP"""

from .constants import *
from .exceptions import (ConfigurationError, InvalidSolver, PPPError,
                         ProcessingException, SVNumException)
from .time import epoch2gpst, gpst2week_tow, gpst2ydsod
from .types import (AMBIGUITY_TYPES, CODE_TYPES, DOP, OBSERVABLE_TYPES,
                    PHASE_TYPES, RECEIVER_TYPES, SATELLITE_TYPES, SatID,
                    SatPositionClock, StationObservationBatch, TypeID, Variable)
