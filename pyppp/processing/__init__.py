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

"""Per-epoch processing steps of the PPP pipeline"""

from .bootstrap import bancroft, bootstrap_position
from .collaborators import (CorrectionStream, EphemerisSnapshot, EphemerisStore,
                            NullTideModel, OrbitClockRecord, StaticBiasProvider)
from .correct import (AmbiguityFixing, ComputeDOP, ComputeElevWeights, ComputeTropModel,
                      CorrectObservables, FilterCorrect)
from .epoch import EpochData
from .pipeline import CONTINUE, ProcessingList, ProcessingStep, StepOutcome, StepStatus
from .predict import BasicModel, ComputeWindUp, EclipsedSatFilter, FilterPredict
from .preprocess import (AlignmentOffset, ComputeCombinations, Decimate, LICSDetector,
                         LLIDetector, MWCSDetector, PhaseCodeAlignment, RequireObservables,
                         SatArcMarker, SimpleFilter)
