"""End-to-end tests of the real-time orchestrator on synthetic data"""

import io
import os
import tempfile
import unittest
from unittest import mock

import numpy as np

from pyppp.ambiguity.resolver import FixStatus
from pyppp.config import PPPConfig
from pyppp.core.types import SatID, TypeID
from pyppp.realtime.gating import GateDecision
from pyppp.realtime.orchestrator import RealTimeOrchestrator
from pyppp.realtime.output import SolutionWriter, read_solution_file
from pyppp.realtime.replay import write_observation_table
from pyppp.simulation import SyntheticScenario

G3 = SatID("G", 3)


class FakeClock:

    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


def file_mode_config(**options):
    options.setdefault("real_time", False)
    options.setdefault("eclipse_filter", False)
    return PPPConfig(**options)


def make_orchestrator(scenario, config, **kwargs):
    kwargs.setdefault("solution_writer", SolutionWriter(io.StringIO()))
    return RealTimeOrchestrator(config, ephemeris=scenario.ephemeris(), **kwargs)


def aligned(processor, sat, n1, n2):
    """Integer ambiguities of a truth arc after the processor's phase alignment"""
    offset = processor.alignment.offsets[sat]
    return n1 - offset.l1, n2 - offset.l2


class TestFileMode(unittest.TestCase):

    def test_static_convergence(self):
        """Static float solution converges and widelane fixes match the truth"""
        scenario = SyntheticScenario(code_sigma=0.02)
        config = file_mode_config(code_sigma=0.02, phase_sigma=0.002, fix_l1=False)
        orchestrator = make_orchestrator(scenario, config)
        solutions = []
        for b in scenario.batches(60):
            solutions.extend(orchestrator.process_epoch([b]))

        self.assertEqual(len(solutions), 60)
        final = solutions[-1]
        self.assertLess(np.linalg.norm(final.position - scenario.position), 1.0)
        self.assertTrue(final.converged)
        self.assertEqual(final.num_satellites, 8)
        self.assertIsNotNone(final.dop)

        processor = orchestrator.stations["SIM1"]
        resolver = processor.resolver
        self.assertGreaterEqual(len(resolver.widelane), 4)
        for sat, fix in resolver.widelane.items():
            n1, n2 = aligned(processor, sat, *scenario.satellites[sat].ambiguities(59))
            self.assertEqual(fix.value, n1 - n2)

    def test_kinematic_convergence(self):
        """Kinematic filtering of a static receiver reaches sub-meter accuracy"""
        scenario = SyntheticScenario()
        orchestrator = make_orchestrator(scenario, file_mode_config(kinematic=True))
        solutions = []
        for b in scenario.batches(60):
            solutions.extend(orchestrator.process_epoch([b]))

        self.assertEqual(len(solutions), 60)
        self.assertLess(np.linalg.norm(solutions[-1].position - scenario.position), 1.0)

    def test_l1_fix(self):
        """Precise code leads to accepted L1 fixes equal to the true integers"""
        scenario = SyntheticScenario(code_sigma=0.002)
        config = file_mode_config(code_sigma=0.002, phase_sigma=0.002)
        orchestrator = make_orchestrator(scenario, config)
        processor = orchestrator.add_station("SIM1")
        solutions = []
        for b in scenario.batches(80):
            solutions.extend(orchestrator.process_epoch([b]))

        self.assertEqual(len(solutions), 80)
        resolver = processor.resolver
        self.assertGreaterEqual(len(resolver.l1), 4)
        for sat, fix in resolver.l1.items():
            n1, _ = aligned(processor, sat, *scenario.satellites[sat].ambiguities(79))
            self.assertEqual(fix.value, n1)

        final = solutions[-1]
        self.assertEqual(final.fix.status, FixStatus.FIXED)
        self.assertIsNotNone(final.float_position)
        self.assertEqual(final.float_covariance.shape, (3, 3))
        self.assertLess(np.linalg.norm(final.position - scenario.position), 0.1)
        self.assertLess(np.linalg.norm(final.float_position - scenario.position), 1.0)

    def test_float_solution_without_fixing(self):
        """Float and fixed solutions coincide when ambiguity fixing is disabled"""
        scenario = SyntheticScenario()
        config = file_mode_config(fix_widelane=False, fix_l1=False)
        orchestrator = make_orchestrator(scenario, config)
        solution = orchestrator.process_epoch([scenario.batch(0)])[0]
        np.testing.assert_array_equal(solution.float_position, solution.position)
        np.testing.assert_array_equal(solution.float_covariance, solution.covariance)
        self.assertIsNone(solution.fix)

    def test_cycle_slip_opens_new_arc(self):
        """A slip makes the ambiguity new and keeps only fixes of the new arc"""
        scenario = SyntheticScenario()
        scenario.add_slip(G3, 30, 10)
        orchestrator = make_orchestrator(scenario, file_mode_config())
        processor = orchestrator.add_station("SIM1")
        for k in range(30):
            orchestrator.process_epoch([scenario.batch(k)])

        resolver = processor.resolver
        before = {sat: fix for sat, fix in resolver.widelane.items() if sat != G3}
        self.assertTrue(before)
        self.assertEqual(processor.alignment.offsets[G3].arc, 1)

        solutions = orchestrator.process_epoch([scenario.batch(30)])
        self.assertEqual(len(solutions), 1)
        registry = processor.registry
        self.assertEqual(registry.arc(G3), 2)
        self.assertEqual(processor.alignment.offsets[G3].arc, 2)
        self.assertTrue(registry.is_new(registry.variable(TypeID.BL1, G3)))
        self.assertFalse(registry.is_new(registry.variable(TypeID.IONO, G3)))
        fix = resolver.widelane.get(G3)
        if fix is not None:
            n1, n2 = aligned(processor, G3, *scenario.satellites[G3].ambiguities(30))
            self.assertEqual(fix.arc, 2)
            self.assertEqual(fix.value, n1 - n2)
        for sat, fix in before.items():
            self.assertFalse(registry.is_new(registry.variable(TypeID.BL1, sat)))
            self.assertEqual(resolver.widelane.get(sat), fix)

    def test_convergence_settings_reach_filter(self):
        """Configured convergence buffer drives the station filter"""
        scenario = SyntheticScenario()
        config = file_mode_config(convergence_buffer_size=3)
        processor = make_orchestrator(scenario, config).add_station("SIM1")
        self.assertEqual(processor.filter.convergence.capacity, 3)
        self.assertIs(processor.filter.registry, processor.registry)

    def test_run_file(self):
        """Observation file is processed to a solution file"""
        scenario = SyntheticScenario()
        with tempfile.TemporaryDirectory() as tmp:
            obs = os.path.join(tmp, "obs.csv")
            out = os.path.join(tmp, "solution.pos")
            write_observation_table(scenario.batches(5), obs)
            config = file_mode_config(observation_file=obs, output_file=out)
            orchestrator = RealTimeOrchestrator(config, ephemeris=scenario.ephemeris())
            try:
                solutions = orchestrator.run_file()
            finally:
                orchestrator.close()
            records = read_solution_file(out)

        self.assertEqual(len(solutions), 5)
        self.assertEqual(len(records), 5)
        self.assertEqual(records[0].station, "SIM1")
        self.assertEqual((records[0].year, records[0].doy), (2024, 61))
        self.assertAlmostEqual(records[-1].coordinates[0], 35.7, places=2)

    def test_station_order_and_fault_isolation(self):
        """Stations keep their order and a failing one does not stop others"""
        first, second = SyntheticScenario(station="SIM1"), SyntheticScenario(station="SIM2")
        config = file_mode_config(stations=("SIM2", "SIM1"))
        orchestrator = make_orchestrator(first, config)
        solutions = orchestrator.process_epoch([first.batch(0), second.batch(0)])
        self.assertEqual([s.station for s in solutions], ["SIM2", "SIM1"])
        self.assertEqual([s.index for s in solutions], [0, 1])

        failing = orchestrator.stations["SIM2"]
        with mock.patch.object(failing.predict, "process", side_effect=RuntimeError("boom")):
            solutions = orchestrator.process_epoch([first.batch(1), second.batch(1)])
        self.assertEqual([s.station for s in solutions], ["SIM1"])
        self.assertEqual(failing.epochs_abandoned, 1)
        self.assertEqual(failing.epochs_processed, 1)

        solutions = orchestrator.process_epoch([first.batch(2), second.batch(2)])
        self.assertEqual(len(solutions), 2)

    def test_unconfigured_station_ignored(self):
        """Stations not listed in the configuration are ignored"""
        scenario = SyntheticScenario()
        other = SyntheticScenario(station="OTHER")
        orchestrator = make_orchestrator(scenario, file_mode_config(stations=("SIM1",)))
        solutions = orchestrator.process_epoch([scenario.batch(0), other.batch(0)])
        self.assertEqual([s.station for s in solutions], ["SIM1"])
        self.assertNotIn("OTHER", orchestrator.stations)

    def test_too_few_satellites(self):
        """Too few satellites abandon the epoch"""
        scenario = SyntheticScenario()
        orchestrator = make_orchestrator(scenario, file_mode_config())
        sats = sorted(scenario.satellites)[:3]
        solutions = orchestrator.process_epoch([scenario.batch(0, satellites=sats)])
        self.assertEqual(solutions, [])
        processor = orchestrator.stations["SIM1"]
        self.assertEqual(processor.epochs_abandoned, 1)
        self.assertIsNone(processor.position)


class TestCorrectionGating(unittest.TestCase):

    def setUp(self):
        self.scenario = SyntheticScenario()
        self.clock = FakeClock()
        config = PPPConfig(real_time=True, correction_mount="SSRA00BKG0",
                           max_correction_wait=5.0, eclipse_filter=False)
        self.orchestrator = make_orchestrator(self.scenario, config, clock=self.clock)

    def test_waits_for_fresh_correction(self):
        """Epoch waits until a fresh correction arrives"""
        orch = self.orchestrator
        t0 = self.scenario.epoch_time(0)
        orch.submit(self.scenario.batch(0))

        self.assertEqual(orch.step(0.01), [])
        self.assertEqual(orch.last_decision, GateDecision.NO_CORRECTION)
        self.assertEqual(orch.queue.pending(), 1)

        orch.update_correction(t0 - 3.0)
        solutions = orch.step(0.01)
        self.assertEqual(orch.last_decision, GateDecision.PROCEED)
        self.assertEqual(len(solutions), 1)
        self.assertEqual(orch.queue.pending(), 0)

    def test_correction_ahead_of_epoch(self):
        """Correction newer than the epoch is not used"""
        orch = self.orchestrator
        t0 = self.scenario.epoch_time(0)
        orch.update_correction(t0 + 1.0)
        orch.submit(self.scenario.batch(0))
        self.assertEqual(orch.step(0.01), [])
        self.assertEqual(orch.last_decision, GateDecision.NOT_ARRIVED)
        self.assertEqual(orch.queue.pending(), 1)

    def test_stale_epoch_dropped_after_max_wait(self):
        """Stale epochs are dropped after the maximum wait"""
        orch = self.orchestrator
        t0 = self.scenario.epoch_time(0)
        orch.update_correction(t0 - 10.0)
        orch.submit(self.scenario.batch(0))

        self.assertEqual(orch.step(0.01), [])
        self.assertEqual(orch.last_decision, GateDecision.STALE)
        self.assertEqual(orch.dropped, 0)

        self.clock.now = 6.0
        self.assertEqual(orch.step(0.01), [])
        self.assertEqual(orch.dropped, 1)
        self.assertEqual(orch.queue.pending(), 0)
        self.assertEqual(orch.stations, {})

    def test_idle_step(self):
        """Empty queue gives no solutions"""
        self.assertEqual(self.orchestrator.step(0.01), [])
        self.assertIsNone(self.orchestrator.last_decision)


if __name__ == '__main__':
    unittest.main()
