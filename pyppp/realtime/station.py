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

"""Per-station processing: estimator state and the three pipeline stages"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..ambiguity.resolver import AmbiguityResolver, FixOutcome
from ..core.exceptions import ProcessingException, SVNumException
from ..core.types import DOP, StationObservationBatch, TypeID
from ..estimation.convergence import ConvergenceBuffer
from ..estimation.equations import EquationBuilder
from ..estimation.filter import PPPFilter
from ..estimation.stochastic import build_model_table
from ..estimation.variables import VariableRegistry
from ..gnss.troposphere import SaastamoinenTropModel
from ..processing.bootstrap import bootstrap_position
from ..processing.correct import (AmbiguityFixing, ComputeDOP, ComputeElevWeights,
                                  ComputeTropModel, CorrectObservables, FilterCorrect)
from ..processing.epoch import EpochData
from ..processing.pipeline import CONTINUE, ProcessingList, StepOutcome, StepStatus
from ..processing.predict import (BasicModel, ComputeWindUp, EclipsedSatFilter,
                                  FilterPredict)
from ..processing.preprocess import (ComputeCombinations, Decimate, LICSDetector,
                                     LLIDetector, MWCSDetector, PhaseCodeAlignment,
                                     RequireObservables, SatArcMarker, SimpleFilter)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StationSolution:
    """Committed solution of one station epoch

    position and covariance include the ambiguity constraints of the epoch,
    float_position and float_covariance are the same state before them.
    """
    station: str
    index: int
    time: float
    position: np.ndarray
    covariance: np.ndarray
    clock: float
    zwd: float
    ztd: float
    num_satellites: int
    converged: bool
    dop: Optional[DOP] = None
    fix: Optional[FixOutcome] = None
    float_position: Optional[np.ndarray] = None
    float_covariance: Optional[np.ndarray] = None


class StationProcessor:
    """Owns one station's filter, registry, ambiguity data and pipeline steps"""

    def __init__(self, index: int, station: str, config,
                 trop_model=None, tide_model=None, bias_provider=None):
        """
        Initialize station processor

        Parameters:
        -----------
        index : int
            Processor index assigned by the orchestrator
        station : str
            Station identifier
        config : PPPConfig
            Processing configuration
        trop_model, tide_model, bias_provider : optional
            Model collaborators shared read-only with other stations
        """
        self.index = index
        self.station = station
        self.config = config

        self.registry = VariableRegistry(station)
        self.filter = PPPFilter(
            station, build_model_table(config),
            reinit_interval=config.reinit_interval,
            convergence=ConvergenceBuffer(config.convergence_buffer_size,
                                          config.convergence_threshold),
            registry=self.registry)
        self.resolver = AmbiguityResolver.from_config(config, station)
        self.filter.add_listener(self.resolver)
        self.alignment = PhaseCodeAlignment(enabled=config.phase_alignment)

        self.preprocess = ProcessingList("preprocess", [
            RequireObservables(),
            SimpleFilter(enabled=config.filter_code),
            ComputeCombinations(),
            LLIDetector(),
            LICSDetector(config.li_threshold, config.max_arc_gap),
            MWCSDetector(config.mw_threshold, config.max_arc_gap),
            SatArcMarker(self.registry),
            self.alignment,
            Decimate(config.decimation_interval, config.decimation_tolerance),
        ])
        self.predict = ProcessingList("predict", [
            BasicModel(config.cutoff_elevation),
            EclipsedSatFilter(enabled=config.eclipse_filter),
            ComputeWindUp(enabled=config.windup),
            FilterPredict(self.filter, config.min_satellites),
        ])
        correct = [
            ComputeElevWeights(),
            CorrectObservables(tide_model, bias_provider),
            ComputeTropModel(trop_model or SaastamoinenTropModel()),
            SimpleFilter((TypeID.PC,), enabled=config.filter_pc),
            FilterCorrect(self.filter, EquationBuilder(config.code_sigma, config.phase_sigma)),
            ComputeDOP(),
        ]
        if config.fix_widelane or config.fix_l1:
            correct.append(AmbiguityFixing(self.resolver, self.filter))
        self.correct = ProcessingList("correct", correct)

        self.position: Optional[np.ndarray] = None
        self.last_epoch: Optional[EpochData] = None
        self.last_outcome: Optional[StepOutcome] = None
        self.epochs_processed = 0
        self.epochs_abandoned = 0

    def __repr__(self):
        return f"StationProcessor({self.index}, {self.station!r})"

    @property
    def label(self) -> str:
        return f"[{self.index}] {self.station}"

    def process(self, batch: StationObservationBatch, snapshot) -> Optional[StationSolution]:
        """
        Run one epoch through preprocess, predict and correct

        Any failure abandons the epoch and leaves the filter at its last
        committed state. Exceptions never leave this method.

        Returns:
        --------
        Optional[StationSolution]
            Committed solution, None when the epoch was abandoned
        """
        self.last_epoch = None
        try:
            return self._process(batch, snapshot)
        except ProcessingException as exc:
            logger.warning(f"{self.label}: epoch {batch.time:.1f} abandoned: {exc}")
        except Exception:
            logger.exception(f"{self.label}: unexpected failure at epoch {batch.time:.1f}")
        self.epochs_abandoned += 1
        return None

    def _process(self, batch, snapshot) -> Optional[StationSolution]:
        epoch = EpochData(batch, snapshot, self.position)
        self.last_epoch = epoch

        outcome = self.preprocess.process(epoch)
        if outcome.ok and epoch.position is None:
            outcome = self._bootstrap(epoch)
        if outcome.ok:
            outcome = self.predict.process(epoch)
        if outcome.ok:
            outcome = self.correct.process(epoch)
        self.last_outcome = outcome

        if not outcome.ok:
            self._abandon(epoch, outcome)
            return None

        self.filter.persist()
        self.position = self.filter.position
        self.epochs_processed += 1
        solution = self._solution(epoch)
        logger.debug(f"{self.label}: epoch {epoch.time:.1f} {solution.num_satellites} sats, "
                     f"converged={solution.converged}")
        return solution

    def _bootstrap(self, epoch) -> StepOutcome:
        try:
            epoch.position, _ = bootstrap_position(epoch)
        except SVNumException as exc:
            return StepOutcome.insufficient(str(exc))
        return CONTINUE

    def _abandon(self, epoch, outcome: StepOutcome):
        self.epochs_abandoned += 1
        message = f"{self.label}: epoch {epoch.time:.1f} skipped at {outcome.step}: " \
                  f"{outcome.status.value} {outcome.message}"
        if outcome.status is StepStatus.DECIMATE:
            logger.debug(message)
        else:
            logger.info(message)

    def _solution(self, epoch) -> StationSolution:
        f = self.filter
        zwd = f.solution(TypeID.ZWD)
        resolved = epoch.float_position is not None
        return StationSolution(
            station=self.station, index=self.index, time=epoch.time,
            position=f.position, covariance=f.position_covariance,
            clock=f.clock, zwd=zwd, ztd=epoch.dry_zenith + zwd,
            num_satellites=f.num_satellites, converged=f.converged,
            dop=epoch.dop, fix=epoch.fix,
            float_position=epoch.float_position if resolved else f.position,
            float_covariance=epoch.float_covariance if resolved else f.position_covariance)

    def reinitialize(self):
        """Request a filter restart at the next epoch"""
        self.filter.request_reinitialization()
