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

"""Process a synthetic static station in file mode and plot its convergence"""

import argparse

import numpy as np

from pyppp import PPPConfig, RealTimeOrchestrator
from pyppp.logger import setup_logger
from pyppp.plot import enu_errors, plot_convergence
from pyppp.simulation import SyntheticScenario


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--epochs", type=int, default=120)
    parser.add_argument("--slip", type=int, default=0, help="epoch of a 10 cycle L1 slip on G03")
    parser.add_argument("--output", default=None, help="solution file")
    parser.add_argument("--plot", default=None, help="convergence plot (png)")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    setup_logger(level=args.log_level)

    scenario = SyntheticScenario()
    if args.slip > 0:
        scenario.add_slip(sorted(scenario.satellites)[2], args.slip, 10)

    config = PPPConfig(real_time=False, eclipse_filter=False,
                       output_file=args.output or "")
    orchestrator = RealTimeOrchestrator(config, ephemeris=scenario.ephemeris())

    solutions = []
    try:
        for batch in scenario.batches(args.epochs):
            solutions.extend(orchestrator.process_epoch([batch]))
    finally:
        orchestrator.close()

    if not solutions:
        print("No solutions")
        return

    _, enu = enu_errors(solutions, scenario.position)
    processor = orchestrator.stations[scenario.station]
    print(f"\n{len(solutions)} solutions, {processor.epochs_abandoned} epochs abandoned")
    print(f"Final ENU error: {np.round(enu[-1], 3)} m (3D {np.linalg.norm(enu[-1]):.3f} m)")
    print(f"Converged: {solutions[-1].converged}")

    resolver = processor.resolver
    print(f"Widelane fixed: {[str(s) for s in resolver.widelane.satellites]}")
    print(f"L1 fixed: {[str(s) for s in resolver.l1.satellites]}")
    stats = resolver.statistics
    if stats.ttff_wl:
        print(f"TTFF widelane: {stats.ttff_wl[-1]} s, L1: {stats.ttff_l1[-1]} s")

    if args.plot:
        plot_convergence(solutions, scenario.position, output=args.plot, title=scenario.station)
        print(f"Plot saved to {args.plot}")


if __name__ == "__main__":
    main()
