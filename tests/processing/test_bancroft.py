"""Tests for the closed-form position bootstrap"""

import unittest

import numpy as np

from pyppp.core.exceptions import SVNumException
from pyppp.processing.bootstrap import bancroft, bootstrap_position
from pyppp.processing.collaborators import EphemerisSnapshot
from pyppp.processing.epoch import EpochData
from pyppp.simulation import SyntheticScenario


class TestBancroft(unittest.TestCase):

    def setUp(self):
        self.scenario = SyntheticScenario()
        self.receiver = self.scenario.position
        self.sats = np.array([s.position for s in self.scenario.satellites.values()])

    def test_clean_ranges(self):
        """Exact ranges give the true position and clock"""
        clock = 1234.5
        ranges = np.linalg.norm(self.sats - self.receiver, axis=1) + clock
        position, b = bancroft(self.sats, ranges)
        np.testing.assert_allclose(position, self.receiver, atol=1e-3)
        self.assertAlmostEqual(b, clock, places=3)

    def test_four_satellites(self):
        """Four satellites give a usable position"""
        sats = self.sats[[0, 2, 4, 6]]
        ranges = np.linalg.norm(sats - self.receiver, axis=1) - 50.0
        position, b = bancroft(sats, ranges)
        self.assertLess(np.linalg.norm(position - self.receiver), 10.0)
        self.assertAlmostEqual(b, -50.0, delta=10.0)

    def test_too_few_satellites(self):
        """Fewer than four satellites raise an error"""
        sats = self.sats[:3]
        ranges = np.linalg.norm(sats - self.receiver, axis=1)
        with self.assertRaises(SVNumException) as ctx:
            bancroft(sats, ranges)
        self.assertEqual(ctx.exception.available, 3)
        self.assertEqual(ctx.exception.required, 4)


class TestBootstrapPosition(unittest.TestCase):

    def test_from_observations(self):
        """Bootstrap position from an epoch of observations"""
        scenario = SyntheticScenario()
        snapshot = scenario.ephemeris().snapshot()
        epoch = EpochData(scenario.batch(0), snapshot)
        position, clock = bootstrap_position(epoch)
        # Troposphere and ionosphere are not modeled in the closed-form solution
        self.assertLess(np.linalg.norm(position - scenario.position), 50.0)
        self.assertAlmostEqual(clock, scenario.receiver_clock(0), delta=30.0)

    def test_missing_orbits(self):
        """Too few satellites with orbits raise SVNumException"""
        scenario = SyntheticScenario()
        records = scenario.orbit_records()
        snapshot = EphemerisSnapshot({sat: records[sat] for sat in sorted(records)[:3]})
        epoch = EpochData(scenario.batch(0), snapshot)
        with self.assertRaises(SVNumException):
            bootstrap_position(epoch)


if __name__ == '__main__':
    unittest.main()
