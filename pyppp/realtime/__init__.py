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

"""Real-time orchestration: queue, correction gate, stations and output"""

from .gating import CorrectionGate, GateDecision
from .orchestrator import RealTimeOrchestrator
from .output import ModelWriter, SolutionRecord, SolutionWriter, read_solution_file
from .queue import ObservationQueue
from .replay import batches_to_table, read_observation_table, write_observation_table
from .station import StationProcessor, StationSolution
