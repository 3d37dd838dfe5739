#!/usr/bin/env python3
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

"""Real-time loop with observation and correction producer threads

Two synthetic stations stream observations while a third thread publishes
correction reference times. The consumer loop gates every epoch on the
freshness of the latest correction.
"""

import threading
import time

from pyppp import PPPConfig, RealTimeOrchestrator
from pyppp.logger import setup_logger
from pyppp.simulation import SyntheticScenario

EPOCHS = 20
# Replay speed: seconds of wall time per epoch
PACE = 0.05


def observation_producer(orchestrator, scenario, stop_event):
    for k in range(EPOCHS):
        if stop_event.is_set():
            return
        orchestrator.submit(scenario.batch(k))
        time.sleep(PACE)


def correction_producer(orchestrator, scenario, stop_event):
    for k in range(EPOCHS):
        if stop_event.is_set():
            return
        # Corrections refer to a time two seconds before the epoch
        orchestrator.update_correction(scenario.epoch_time(k) - 2.0)
        time.sleep(PACE)


def main():
    setup_logger(level="INFO")

    stations = [SyntheticScenario(station="SIM1"), SyntheticScenario(station="SIM2", seed=1)]
    config = PPPConfig(real_time=True, correction_mount="SYNTH", max_correction_wait=5.0,
                       eclipse_filter=False, stations=tuple(s.station for s in stations))
    orchestrator = RealTimeOrchestrator(config, ephemeris=stations[0].ephemeris())

    stop_event = threading.Event()
    threads = [threading.Thread(target=correction_producer, args=(orchestrator, stations[0], stop_event))]
    threads += [threading.Thread(target=observation_producer, args=(orchestrator, s, stop_event))
                for s in stations]
    consumer = threading.Thread(target=orchestrator.run, args=(stop_event, 0.2))

    consumer.start()
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    # Let the consumer drain the queue
    deadline = time.monotonic() + 5.0
    while len(orchestrator.queue) and time.monotonic() < deadline:
        time.sleep(0.1)
    stop_event.set()
    consumer.join()
    orchestrator.close()

    for name, processor in orchestrator.stations.items():
        print(f"{processor.label}: {processor.epochs_processed} epochs processed, "
              f"{processor.epochs_abandoned} abandoned")
    print(f"Batches dropped by the correction gate: {orchestrator.dropped}")


if __name__ == "__main__":
    main()
