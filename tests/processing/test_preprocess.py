"""Tests for processing lists and the preprocessing steps"""

import unittest

import numpy as np

from pyppp.core.constants import GAMMA, WAVELENGTH_L1, WAVELENGTH_L2
from pyppp.core.types import SatID, StationObservationBatch, TypeID
from pyppp.estimation.variables import VariableRegistry
from pyppp.processing.epoch import EpochData
from pyppp.processing.pipeline import (CONTINUE, ProcessingList, ProcessingStep,
                                       StepOutcome, StepStatus)
from pyppp.processing.preprocess import (AlignmentOffset, ComputeCombinations, Decimate,
                                         LICSDetector, LLIDetector, MWCSDetector,
                                         PhaseCodeAlignment, RequireObservables,
                                         SatArcMarker, SimpleFilter)
from pyppp.simulation import SyntheticScenario

G1, G2, G3 = (SatID("G", i) for i in range(1, 4))


class Recorder(ProcessingStep):

    def __init__(self, calls, outcome=CONTINUE):
        self.calls = calls
        self.outcome = outcome

    def process(self, epoch):
        self.calls.append(self)
        return self.outcome


def epoch_of(scenario, k, **kwargs):
    return EpochData(scenario.batch(k, **kwargs))


class TestProcessingList(unittest.TestCase):

    def test_runs_in_order(self):
        """Steps run in order"""
        calls = []
        steps = [Recorder(calls) for _ in range(3)]
        outcome = ProcessingList("test", steps).process(EpochData(StationObservationBatch("A", 0.0)))
        self.assertTrue(outcome.ok)
        self.assertEqual(calls, steps)

    def test_stops_at_first_failure(self):
        """Processing stops at the first failing step"""
        calls = []
        first = Recorder(calls)
        failing = Recorder(calls, StepOutcome.insufficient("too few"))
        last = Recorder(calls)
        stage = ProcessingList("test", [first, failing])
        stage.append(last)
        outcome = stage.process(EpochData(StationObservationBatch("A", 0.0)))

        self.assertEqual(calls, [first, failing])
        self.assertEqual(outcome.status, StepStatus.INSUFFICIENT_SATELLITES)
        self.assertEqual(outcome.step, "Recorder")
        self.assertEqual(outcome.message, "too few")
        self.assertEqual(len(stage), 3)


class TestDecimate(unittest.TestCase):

    def epoch(self, t):
        return EpochData(StationObservationBatch("A", t))

    def test_boundaries(self):
        """Epochs near the interval boundary are kept"""
        step = Decimate(30.0, 0.5)
        self.assertTrue(step.process(self.epoch(60.0)).ok)
        self.assertTrue(step.process(self.epoch(60.2)).ok)
        self.assertTrue(step.process(self.epoch(89.7)).ok)
        outcome = step.process(self.epoch(45.0))
        self.assertEqual(outcome.status, StepStatus.DECIMATE)

    def test_disabled(self):
        """Zero interval disables decimation"""
        self.assertTrue(Decimate(0.0).process(self.epoch(45.0)).ok)


class TestScreening(unittest.TestCase):

    def setUp(self):
        self.scenario = SyntheticScenario()

    def test_require_observables(self):
        """Satellites missing observables are dropped"""
        batch = StationObservationBatch("A", 0.0, {
            G1: {TypeID.P1: 2.1e7, TypeID.P2: 2.1e7, TypeID.L1: 1.0, TypeID.L2: 1.0},
            G2: {TypeID.P1: 2.1e7, TypeID.P2: 2.1e7, TypeID.L1: 1.0},
        })
        epoch = EpochData(batch)
        RequireObservables().process(epoch)
        self.assertEqual(epoch.satellites, [G1])

    def test_simple_filter(self):
        """Implausible code is dropped unless the filter is disabled"""
        batch = StationObservationBatch("A", 0.0, {
            G1: {TypeID.P1: 2.1e7, TypeID.P2: 2.1e7},
            G2: {TypeID.P1: 1.0e6, TypeID.P2: 2.1e7},
            G3: {TypeID.P1: 2.1e7, TypeID.P2: 4.0e7},
        })
        epoch = EpochData(batch)
        SimpleFilter(enabled=False).process(epoch)
        self.assertEqual(epoch.num_satellites, 3)
        SimpleFilter().process(epoch)
        self.assertEqual(epoch.satellites, [G1])

    def test_combinations(self):
        """Linear combinations of code and phase"""
        epoch = epoch_of(self.scenario, 0, noise=False)
        ComputeCombinations().process(epoch)
        s = self.scenario.satellites[G1]
        values = epoch.body[G1]
        self.assertAlmostEqual(values[TypeID.PI], (GAMMA - 1.0) * s.iono, places=6)
        # Ionosphere-free code removes the ionosphere
        self.assertAlmostEqual(values[TypeID.PC], values[TypeID.P1] - s.iono, places=5)
        li = values[TypeID.L1] * WAVELENGTH_L1 - values[TypeID.L2] * WAVELENGTH_L2
        self.assertAlmostEqual(values[TypeID.LI], li)


class TestCycleSlipDetection(unittest.TestCase):

    def run_detector(self, detector, scenario, count):
        flagged = []
        for k in range(count):
            epoch = epoch_of(scenario, k, noise=False)
            ComputeCombinations().process(epoch)
            detector.process(epoch)
            flagged.append(sorted(epoch.slips))
        return flagged

    def test_li_detects_slip(self):
        """Geometry-free jump flags a slip"""
        scenario = SyntheticScenario()
        scenario.add_slip(G2, 3, 10)
        flagged = self.run_detector(LICSDetector(), scenario, 5)
        self.assertEqual(flagged, [[], [], [], [G2], []])

    def test_mw_detects_slip(self):
        """Melbourne-Wubbena jump flags a slip"""
        scenario = SyntheticScenario()
        scenario.add_slip(G3, 2, 10, 0)
        flagged = self.run_detector(MWCSDetector(), scenario, 5)
        self.assertEqual(flagged, [[], [], [G3], [], []])

    def test_li_detects_equal_cycle_slips(self):
        """Equal slips on both carriers are detected"""
        scenario = SyntheticScenario()
        scenario.add_slip(G1, 2, 5, 5)
        flagged = self.run_detector(LICSDetector(), scenario, 3)
        self.assertEqual(flagged[2], [G1])

    def test_data_gap_flags_slip(self):
        """A long data gap flags a slip"""
        scenario = SyntheticScenario()
        detector = LICSDetector(max_gap=61.0)
        for k in (0, 1, 4):
            epoch = epoch_of(scenario, k, noise=False)
            ComputeCombinations().process(epoch)
            detector.process(epoch)
        self.assertEqual(sorted(epoch.slips), sorted(scenario.satellites))

    def test_lli(self):
        """Loss of lock indicators flag slips"""
        batch = StationObservationBatch("A", 0.0, {
            G1: {TypeID.LLI1: 1.0},
            G2: {TypeID.LLI1: 2.0, TypeID.LLI2: 0.0},
            G3: {TypeID.LLI2: 3.0},
        })
        epoch = EpochData(batch)
        LLIDetector().process(epoch)
        self.assertEqual(sorted(epoch.slips), [G1, G3])


class TestSatArcMarker(unittest.TestCase):

    def test_marks_slipped_satellites(self):
        """Slipped satellites get a new arc"""
        registry = VariableRegistry("A")
        registry.activate([G1, G2])
        registry.commit()

        epoch = EpochData(SyntheticScenario().batch(0, satellites=[G1, G2]))
        epoch.slips.add(G2)
        SatArcMarker(registry).process(epoch)

        self.assertEqual(registry.pending_resets, {G2})
        self.assertEqual(epoch.value(G2, TypeID.CS_FLAG), 1.0)
        self.assertIsNone(epoch.value(G1, TypeID.CS_FLAG))
        self.assertEqual(epoch.value(G1, TypeID.SAT_ARC), 1.0)
        self.assertEqual(epoch.value(G2, TypeID.SAT_ARC), 2.0)

        registry.activate([G1, G2])
        self.assertEqual(registry.arc(G2), 2)
        self.assertTrue(registry.is_new(registry.variable(TypeID.BL1, G2)))
        self.assertFalse(registry.is_new(registry.variable(TypeID.IONO, G2)))

    def test_next_arc(self):
        """Arc number a satellite takes at its next activation"""
        registry = VariableRegistry("A")
        self.assertEqual(registry.next_arc(G1), 1)
        registry.activate([G1])
        registry.commit()
        self.assertEqual(registry.next_arc(G1), 1)
        registry.mark_arc_reset(G1)
        self.assertEqual(registry.next_arc(G1), 2)
        registry.activate([G2])
        registry.commit()
        self.assertEqual(registry.next_arc(G1), 2)


class TestPhaseCodeAlignment(unittest.TestCase):

    def setUp(self):
        self.scenario = SyntheticScenario()
        self.step = PhaseCodeAlignment()

    def aligned_epoch(self, k, arc=1):
        epoch = epoch_of(self.scenario, k, noise=False)
        for sat in epoch.satellites:
            epoch.set(sat, TypeID.SAT_ARC, arc)
        self.assertTrue(self.step.process(epoch).ok)
        return epoch

    def test_arc_start_offsets(self):
        """Offsets bring phase to the code at the arc start"""
        epoch = self.aligned_epoch(0)
        for sat, s in self.scenario.satellites.items():
            offset = self.step.offsets[sat]
            self.assertEqual((offset.arc, offset.l1, offset.l2), (1, s.n1, s.n2))
            values = epoch.body[sat]
            iono = (values[TypeID.P2] - values[TypeID.P1]) / (GAMMA - 1.0)
            q1 = (values[TypeID.P1] - 2.0 * iono) / WAVELENGTH_L1
            self.assertAlmostEqual(values[TypeID.L1] - q1, self.scenario.phase_windup(sat, 0), places=5)

    def test_offsets_held_for_the_arc(self):
        """Offsets are held for the arc and renewed with the next one"""
        self.scenario.add_slip(G1, 1, 10)
        self.aligned_epoch(0)
        n1 = self.scenario.satellites[G1].n1

        epoch = self.aligned_epoch(1)
        self.assertEqual(self.step.offsets[G1].l1, n1)
        raw = self.scenario.batch(1, noise=False).observations[G1][TypeID.L1]
        self.assertAlmostEqual(epoch.value(G1, TypeID.L1), raw - n1, places=6)

        self.aligned_epoch(2, arc=2)
        self.assertEqual(self.step.offsets[G1], AlignmentOffset(2, n1 + 10, self.scenario.satellites[G1].n2))

    def test_disabled(self):
        """Disabled alignment leaves the phase"""
        self.step = PhaseCodeAlignment(enabled=False)
        epoch = self.aligned_epoch(0)
        raw = self.scenario.batch(0, noise=False).observations
        for sat in epoch.satellites:
            self.assertEqual(epoch.value(sat, TypeID.L1), raw[sat][TypeID.L1])
        self.assertEqual(self.step.offsets, {})


if __name__ == '__main__':
    unittest.main()
