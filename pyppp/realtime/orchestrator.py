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

"""Real-time orchestrator

A single consumer loop waits for observation batches, gates the earliest
pending epoch on correction freshness, copies the ephemeris snapshot under
its lock and runs every station of the epoch through its pipeline without
holding any lock. Producers submit observations and corrections from their
own threads.
"""

import logging
import threading
import time as _time
from typing import Callable, Dict, List, Optional

from ..core.types import StationObservationBatch
from ..processing.collaborators import CorrectionStream, EphemerisStore
from .gating import CorrectionGate, GateDecision
from .output import ModelWriter, SolutionWriter
from .queue import ObservationQueue
from .replay import read_observation_table
from .station import StationProcessor, StationSolution

logger = logging.getLogger(__name__)


class RealTimeOrchestrator:
    """Multi-station PPP driver"""

    def __init__(self, config,
                 ephemeris: Optional[EphemerisStore] = None,
                 corrections: Optional[CorrectionStream] = None,
                 trop_model=None, tide_model=None, bias_provider=None,
                 solution_writer: Optional[SolutionWriter] = None,
                 model_writer: Optional[ModelWriter] = None,
                 clock: Callable[[], float] = _time.monotonic):
        """
        Initialize orchestrator

        Parameters:
        -----------
        config : PPPConfig
            Processing configuration
        ephemeris : EphemerisStore, optional
            Shared orbit/clock store updated by producers
        corrections : CorrectionStream, optional
            Arrival clock of the correction stream
        trop_model, tide_model, bias_provider : optional
            Model collaborators passed to every station
        solution_writer, model_writer : optional
            Output streams, built from the configuration when omitted
        clock : callable
            Wall clock used to expire deferred batches
        """
        self.config = config
        self.ephemeris = ephemeris or EphemerisStore()
        self.corrections = corrections or CorrectionStream(config.correction_mount)
        self.trop_model = trop_model
        self.tide_model = tide_model
        self.bias_provider = bias_provider
        self.solution_writer = solution_writer or SolutionWriter.from_config(config)
        if model_writer is None and config.print_model:
            model_writer = ModelWriter(config.model_file or None, config.precision)
        self.model_writer = model_writer

        self.queue = ObservationQueue(clock=clock)
        self.gate = CorrectionGate.from_config(config)
        self.stations: Dict[str, StationProcessor] = {}
        self.last_decision: Optional[GateDecision] = None
        self.dropped = 0
        self._deferred = False

        for station in config.stations:
            self.add_station(station)

    def add_station(self, station: str) -> StationProcessor:
        """Register a station; processing order follows registration order"""
        if station in self.stations:
            return self.stations[station]
        processor = StationProcessor(len(self.stations), station, self.config,
                                     trop_model=self.trop_model,
                                     tide_model=self.tide_model,
                                     bias_provider=self.bias_provider)
        self.stations[station] = processor
        logger.info(f"Station {station} registered as processor {processor.index}")
        return processor

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------
    def submit(self, batch: StationObservationBatch) -> bool:
        """Queue an observation batch (thread safe)"""
        return self.queue.put(batch)

    def update_correction(self, time: float):
        """Register a correction arrival and wake the consumer (thread safe)"""
        self.corrections.update(time)
        self.queue.notify()

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------
    def step(self, timeout: Optional[float] = 1.0) -> List[StationSolution]:
        """
        Wait for data and process at most one epoch

        Returns:
        --------
        List[StationSolution]
            Solutions committed in this step (empty when nothing was
            pending, the epoch was deferred or every station failed)
        """
        if not self.queue.wait(timeout, new_only=self._deferred):
            self._deferred = False
            return []

        epoch_time = self.queue.next_epoch()
        if epoch_time is None:
            return []

        decision = self.gate.check(epoch_time, self.corrections.latest_correction_time())
        self.last_decision = decision
        if not decision.proceed:
            self._defer(epoch_time, decision)
            return []

        self._deferred = False
        return self.process_epoch(self.queue.pop_epoch(epoch_time))

    def _defer(self, epoch_time: float, decision: GateDecision):
        logger.debug(f"Epoch {epoch_time:.1f} deferred: {decision.value}")
        dropped = self.queue.drop_expired(self.config.max_correction_wait)
        if dropped:
            self.dropped += len(dropped)
            logger.warning(f"Dropped {len(dropped)} batches after waiting "
                           f"{self.config.max_correction_wait:g} s for corrections ({decision.value})")
            self._deferred = False
        else:
            self._deferred = True

    def process_epoch(self, batches: List[StationObservationBatch]) -> List[StationSolution]:
        """Run the batches of one epoch station by station in registration order"""
        if not batches:
            return []
        by_station = {batch.station: batch for batch in batches}
        for station in by_station:
            if station not in self.stations:
                if self.config.stations:
                    logger.warning(f"Batch of unconfigured station {station} ignored")
                    continue
                self.add_station(station)

        snapshot = self.ephemeris.snapshot()
        solutions = []
        for station, processor in self.stations.items():
            batch = by_station.get(station)
            if batch is None:
                continue
            solution = processor.process(batch, snapshot)
            if self.model_writer is not None and processor.last_epoch is not None:
                self.model_writer.write(processor.last_epoch)
            if solution is not None:
                self.solution_writer.write(solution)
                solutions.append(solution)
        return solutions

    def run(self, stop_event: threading.Event, timeout: float = 1.0) -> int:
        """Consumer loop until stop_event is set; returns the number of solutions"""
        logger.info(f"Real-time processing started for {len(self.stations)} stations")
        count = 0
        while not stop_event.is_set():
            count += len(self.step(timeout))
        logger.info(f"Real-time processing stopped after {count} solutions")
        return count

    def run_file(self, path: Optional[str] = None) -> List[StationSolution]:
        """Replay an observation table through the pipeline without gating"""
        batches = read_observation_table(path or self.config.observation_file)
        solutions = []
        i = 0
        while i < len(batches):
            j = i
            while j < len(batches) and batches[j].time == batches[i].time:
                j += 1
            solutions.extend(self.process_epoch(batches[i:j]))
            i = j
        logger.info(f"File processing finished: {len(solutions)} solutions")
        return solutions

    def close(self):
        self.solution_writer.close()
        if self.model_writer is not None:
            self.model_writer.close()
