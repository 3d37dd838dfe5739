"""Tests for stochastic models"""

import unittest

import numpy as np

from pyppp.config import PPPConfig
from pyppp.core.types import TypeID
from pyppp.estimation.stochastic import ModelKind, StochasticModel, build_model_table


class TestStochasticModel(unittest.TestCase):

    def test_constant(self):
        """Constant model adds no process noise"""
        model = StochasticModel(ModelKind.CONSTANT, prior_sigma=10.0)
        self.assertEqual(model.transition_coefficient(30.0), 1.0)
        self.assertEqual(model.process_noise_variance(30.0), 0.0)
        self.assertEqual(model.prior_variance(), 100.0)
        self.assertFalse(model.resets_each_epoch)

    def test_white_noise(self):
        """White noise model forgets the previous value"""
        model = StochasticModel(ModelKind.WHITE_NOISE, prior_sigma=100.0)
        self.assertEqual(model.transition_coefficient(1.0), 0.0)
        self.assertEqual(model.process_noise_variance(1.0), 1e4)
        self.assertTrue(model.resets_each_epoch)

    def test_random_walk(self):
        """Random walk noise grows with the interval"""
        model = StochasticModel(ModelKind.RANDOM_WALK, prior_sigma=0.5, noise_sigma=0.01)
        self.assertEqual(model.transition_coefficient(30.0), 1.0)
        self.assertAlmostEqual(model.process_noise_variance(30.0), 1e-4 * 30.0)
        self.assertAlmostEqual(model.process_noise_variance(-30.0), 1e-4 * 30.0)

    def test_gauss_markov(self):
        """Gauss-Markov model decays toward zero"""
        model = StochasticModel(ModelKind.GAUSS_MARKOV, noise_sigma=2.0, tau=100.0)
        self.assertAlmostEqual(model.transition_coefficient(100.0), np.exp(-1.0))
        self.assertAlmostEqual(model.process_noise_variance(100.0), 4.0 * (1.0 - np.exp(-2.0)))
        self.assertEqual(model.process_noise_variance(0.0), 0.0)

    def test_phase_ambiguity(self):
        """Ambiguity model carries no process noise"""
        model = StochasticModel(ModelKind.PHASE_AMBIGUITY, prior_sigma=30.0)
        self.assertEqual(model.transition_coefficient(30.0), 1.0)
        self.assertEqual(model.process_noise_variance(30.0), 0.0)


class TestModelTable(unittest.TestCase):

    def test_static(self):
        """Static mode keeps the position constant"""
        table = build_model_table(PPPConfig())
        self.assertEqual(table[TypeID.X].kind, ModelKind.CONSTANT)
        self.assertEqual(table[TypeID.CDT].kind, ModelKind.WHITE_NOISE)
        self.assertEqual(table[TypeID.ZWD].kind, ModelKind.RANDOM_WALK)
        self.assertEqual(table[TypeID.ZWD].initial_value, 0.1)
        self.assertEqual(table[TypeID.IONO].kind, ModelKind.RANDOM_WALK)
        self.assertIs(table[TypeID.BL1], table[TypeID.BL2])
        self.assertEqual(table[TypeID.BL1].kind, ModelKind.PHASE_AMBIGUITY)

    def test_kinematic(self):
        """Kinematic mode turns the position into a random walk"""
        table = build_model_table(PPPConfig(kinematic=True, kinematic_sigma=2.0))
        self.assertEqual(table[TypeID.Z].kind, ModelKind.RANDOM_WALK)
        self.assertAlmostEqual(table[TypeID.Z].process_noise_variance(1.0), 4.0)


if __name__ == '__main__':
    unittest.main()
