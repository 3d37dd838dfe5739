"""Tests for the PPP Kalman filter"""

import unittest

import numpy as np

from pyppp.ambiguity.resolver import AmbiguityResolver
from pyppp.config import PPPConfig
from pyppp.core.exceptions import InvalidSolver
from pyppp.core.types import SatID, TypeID
from pyppp.estimation.convergence import ConvergenceBuffer
from pyppp.estimation.filter import PPPFilter
from pyppp.estimation.stochastic import build_model_table
from pyppp.estimation.variables import VariableRegistry

G1, G2, G3, G4 = (SatID("G", i) for i in range(1, 5))


def make_filter(**options):
    config = PPPConfig(**options)
    return PPPFilter("TEST", build_model_table(config),
                     reinit_interval=config.reinit_interval,
                     convergence=ConvergenceBuffer(3, 0.05))


def observe(ppp_filter, rng, types=(TypeID.X, TypeID.Y, TypeID.Z, TypeID.ZWD)):
    """Direct noisy observations of receiver states and every satellite ionosphere"""
    registry = ppp_filter.registry
    rows = [registry.index_of(t) for t in types]
    rows += [registry.index_of(TypeID.IONO, s) for s in registry.satellites]
    H = np.zeros((len(rows), ppp_filter.x.size))
    H[np.arange(len(rows)), rows] = 1.0
    z = rng.normal(0.0, 1.0, len(rows))
    return ppp_filter.correct(z, H, weight=np.ones(len(rows)))


class TestConstruction(unittest.TestCase):

    def test_uses_given_registry_and_buffer(self):
        """Registry and convergence buffer passed in are the ones used"""
        registry = VariableRegistry("TEST")
        buffer = ConvergenceBuffer(3, 0.05)
        f = PPPFilter("TEST", build_model_table(PPPConfig()), convergence=buffer, registry=registry)
        self.assertIs(f.registry, registry)
        self.assertIs(f.convergence, buffer)

    def test_defaults(self):
        """Omitted registry and buffer are created for the station"""
        f = PPPFilter("TEST", build_model_table(PPPConfig()))
        self.assertEqual(f.registry.station, "TEST")
        self.assertEqual(f.convergence.capacity, 10)


class TestPredict(unittest.TestCase):

    def test_new_variables_use_priors_and_seeds(self):
        """New variables start from their priors or seeds"""
        f = make_filter()
        f.begin_epoch(0.0, [G1])
        seed = {f.registry.variable(TypeID.BL1, G1): 12.5}
        f.predict(0.0, seed)
        self.assertEqual(f.solution(TypeID.BL1, G1), 12.5)
        self.assertEqual(f.solution(TypeID.ZWD), 0.1)
        self.assertEqual(f.variance(TypeID.X), 100.0 ** 2)
        self.assertEqual(f.variance(TypeID.BL2, G1), 30.0 ** 2)
        np.testing.assert_array_equal(f.P, np.diag(np.diag(f.P)))

    def test_process_noise(self):
        """Time update adds the process noise of each model"""
        f = make_filter()
        f.begin_epoch(0.0, [G1])
        f.predict(0.0)
        observe(f, np.random.default_rng(1))
        f.persist()
        zwd_var = f.variance(TypeID.ZWD)
        iono_var = f.variance(TypeID.IONO, G1)
        x_var = f.variance(TypeID.X)

        f.begin_epoch(30.0, [G1])
        f.predict(30.0, {f.registry.variable(TypeID.CDT): 42.0})
        self.assertAlmostEqual(f.variance(TypeID.ZWD), zwd_var + 1e-8 * 30.0)
        self.assertAlmostEqual(f.variance(TypeID.IONO, G1), iono_var + 1e-4 * 30.0)
        self.assertAlmostEqual(f.variance(TypeID.X), x_var)
        # White noise clock restarts from the seed with no memory
        self.assertEqual(f.clock, 42.0)
        self.assertEqual(f.variance(TypeID.CDT), 100.0 ** 2)
        i = f.registry.index_of(TypeID.CDT)
        self.assertEqual(np.count_nonzero(f.P[i]), 1)


class TestCorrect(unittest.TestCase):

    def setUp(self):
        self.filter = make_filter()
        self.filter.begin_epoch(0.0, [G1, G2])
        self.filter.predict(0.0)
        self.n = self.filter.x.size

    def test_exact_fit_zero_noise(self):
        """Zero noise and an identity design reproduce the predicted state"""
        x_pred = self.filter.x.copy()
        postfit = self.filter.correct(np.zeros(self.n), np.eye(self.n), noise=np.zeros(self.n))
        np.testing.assert_allclose(self.filter.x, x_pred, atol=1e-9)
        np.testing.assert_allclose(postfit, 0.0, atol=1e-9)
        np.testing.assert_allclose(self.filter.P, 0.0, atol=1e-6)

    def test_exact_fit_moves_to_observation(self):
        """Noise-free identity observations move the state onto them"""
        x_pred = self.filter.x.copy()
        z = np.random.default_rng(0).normal(0.0, 5.0, self.n)
        self.filter.correct(z, np.eye(self.n), noise=np.zeros(self.n))
        np.testing.assert_allclose(self.filter.x, x_pred + z, atol=1e-6)

    def test_covariance_symmetric_after_update(self):
        """Updated covariance stays symmetric and positive semidefinite"""
        rng = np.random.default_rng(3)
        H = rng.normal(size=(6, self.n))
        self.filter.correct(rng.normal(size=6), H, weight=np.full(6, 4.0))
        np.testing.assert_array_equal(self.filter.P, self.filter.P.T)
        self.assertGreaterEqual(np.linalg.eigvalsh(self.filter.P).min(), -1e-6)

    def test_invalid_solver_leaves_state(self):
        """Failed updates raise InvalidSolver and leave the state"""
        x, P = self.filter.x.copy(), self.filter.P.copy()
        H = np.zeros((1, self.n))
        H[0, 0] = 1.0
        with self.assertRaises(InvalidSolver):
            self.filter.correct([1.0], H, noise=np.array([-1e6]))
        with self.assertRaises(InvalidSolver):
            self.filter.correct([1.0, 1.0], np.vstack([H, H]), noise=np.array([[1.0, 0.5], [0.0, 1.0]]))
        with self.assertRaises(InvalidSolver):
            self.filter.correct([1.0], H, weight=np.array([0.0]))
        np.testing.assert_array_equal(self.filter.x, x)
        np.testing.assert_array_equal(self.filter.P, P)

    def test_shape_mismatch(self):
        """Design matrix width must match the state"""
        with self.assertRaises(ValueError):
            self.filter.correct([1.0], np.ones((1, self.n + 1)))


class TestPersistence(unittest.TestCase):

    def test_unrelated_changes_keep_covariance(self):
        """Surviving variables keep values and covariance across epochs"""
        f = make_filter()
        f.begin_epoch(0.0, [G1, G2, G3])
        f.predict(0.0)
        rng = np.random.default_rng(5)
        H = rng.normal(size=(12, f.x.size))
        f.correct(rng.normal(size=12), H, weight=np.ones(12))
        f.persist()
        kept = [f.registry.variable(TypeID.X), f.registry.variable(TypeID.ZWD),
                f.registry.variable(TypeID.BL1, G2), f.registry.variable(TypeID.IONO, G3)]
        before = f.covariance_of(kept).copy()
        values = f.values_of(kept).copy()

        f.begin_epoch(0.0, [G2, G3, G4])
        f.predict(0.0)
        np.testing.assert_array_equal(f.covariance_of(kept), before)
        np.testing.assert_array_equal(f.values_of(kept), values)
        self.assertEqual(f.variance(TypeID.BL1, G4), 30.0 ** 2)
        i4 = f.registry.index_of(TypeID.BL1, G4)
        self.assertEqual(np.count_nonzero(f.P[i4]), 1)

    def test_abandoned_epoch_restores_committed_state(self):
        """An unpersisted epoch is rolled back at the next one"""
        f = make_filter()
        f.begin_epoch(0.0, [G1])
        f.predict(0.0)
        observe(f, np.random.default_rng(2))
        f.persist()
        committed = f.solution(TypeID.X)

        f.begin_epoch(30.0, [G1, G2])
        f.predict(30.0)
        observe(f, np.random.default_rng(3))
        # No persist: epoch abandoned

        f.begin_epoch(60.0, [G1])
        f.predict(30.0)
        self.assertEqual(f.solution(TypeID.X), committed)


class TestCondition(unittest.TestCase):

    def setUp(self):
        self.filter = make_filter()
        self.filter.begin_epoch(0.0, [G1])
        self.filter.predict(0.0)
        registry = self.filter.registry
        self.b1 = registry.variable(TypeID.BL1, G1)
        self.b2 = registry.variable(TypeID.BL2, G1)
        # Correlate the two ambiguities through one observation of their sum
        H = np.zeros((1, self.filter.x.size))
        H[0, [registry.index(self.b1), registry.index(self.b2)]] = 1.0
        self.filter.correct([10.3], H, weight=[1.0])

    def test_constraint_conditions_correlated_variables(self):
        """Constraint propagates to correlated variables"""
        f = self.filter
        before = f.values_of([self.b2])[0]
        self.assertTrue(f.condition({self.b1: 1.0, self.b2: -1.0}, 3.0))
        v1, v2 = f.values_of([self.b1, self.b2])
        self.assertAlmostEqual(v1 - v2, 3.0, places=9)
        self.assertNotAlmostEqual(v2, before)
        # Rank reduced along the constraint direction
        h = np.zeros(f.x.size)
        h[[f.registry.index(self.b1), f.registry.index(self.b2)]] = [1.0, -1.0]
        self.assertAlmostEqual(h @ f.P @ h, 0.0, places=9)

    def test_constraint_with_variance(self):
        """Soft constraint pulls the variable to the value"""
        f = self.filter
        self.assertTrue(f.condition({self.b1: 1.0}, 7.0, variance=1e-6))
        self.assertLess(f.variance(TypeID.BL1, G1), 1e-5)
        self.assertAlmostEqual(f.solution(TypeID.BL1, G1), 7.0, places=4)

    def test_determined_direction(self):
        """Constraint along a determined direction is skipped"""
        f = self.filter
        f.condition({self.b1: 1.0}, 7.0)
        self.assertFalse(f.condition({self.b1: 1.0}, 7.0))

    def test_release(self):
        """Released variable regains a large variance"""
        f = self.filter
        f.condition({self.b1: 1.0}, 7.0)
        f.release(self.b1, 900.0)
        self.assertGreater(f.variance(TypeID.BL1, G1), 899.0)


class TestReinitialization(unittest.TestCase):

    def run_epoch(self, f, t, sats=(G1, G2, G3, G4)):
        f.begin_epoch(t, list(sats))
        f.predict(0.0 if f.last_time is None else t - f.last_time)
        observe(f, np.random.default_rng(int(t)))
        f.persist()

    def test_interval_clears_buffer_and_datum(self):
        """Reinitialization interval clears convergence and fixes"""
        f = make_filter(reinit_interval=100.0)
        resolver = AmbiguityResolver("TEST")
        f.add_listener(resolver)
        self.run_epoch(f, 0.0)
        self.run_epoch(f, 30.0)
        resolver.widelane.add(G1, 5, f.registry.arc(G1), 30.0)
        resolver.l1.add(G1, 12, f.registry.arc(G1), 30.0)
        self.assertEqual(len(f.convergence), 2)

        f.begin_epoch(120.0, [G1, G2, G3, G4])
        self.assertEqual(len(f.convergence), 0)
        self.assertEqual(len(resolver.widelane), 0)
        self.assertEqual(len(resolver.l1), 0)
        self.assertEqual(f.registry.new_variables, f.registry.variables)
        self.assertEqual(f.first_time, 120.0)
        self.assertIsNone(f.last_time)

    def test_explicit_request(self):
        """Requested reinitialization restarts from priors"""
        f = make_filter()
        events = []

        class Listener:
            def filter_reset(self, time):
                events.append(time)

        f.add_listener(Listener())
        self.run_epoch(f, 0.0)
        f.request_reinitialization()
        f.begin_epoch(30.0, [G1, G2, G3, G4])
        self.assertEqual(events, [30.0])
        f.predict(0.0)
        self.assertEqual(f.variance(TypeID.X), 100.0 ** 2)

    def test_listener_events(self):
        """Removals and arc resets are reported when the epoch persists"""
        f = make_filter()
        removed, reset = [], []

        class Listener:
            def satellites_removed(self, sats):
                removed.extend(sats)

            def arcs_reset(self, arcs):
                reset.append(dict(arcs))

        f.add_listener(Listener())
        self.run_epoch(f, 0.0)
        f.registry.mark_arc_reset(G2)
        f.begin_epoch(30.0, [G2, G3, G4])
        self.assertEqual((removed, reset), ([], []))
        f.predict(30.0)
        f.persist()
        self.assertEqual(removed, [G1])
        self.assertEqual(reset, [{G2: 2}])

    def test_abandoned_epoch_keeps_fixes(self):
        """Fixes survive an abandoned epoch and go with the next persisted one"""
        f = make_filter()
        resolver = AmbiguityResolver("TEST")
        f.add_listener(resolver)
        self.run_epoch(f, 0.0)
        resolver.widelane.add(G1, 5, f.registry.arc(G1), 0.0)
        resolver.widelane.add(G2, 3, f.registry.arc(G2), 0.0)

        f.registry.mark_arc_reset(G2)
        f.begin_epoch(30.0, [G2, G3, G4])
        f.predict(30.0)
        # No persist: epoch abandoned
        self.assertEqual(resolver.widelane.satellites, [G1, G2])

        self.run_epoch(f, 60.0, (G2, G3, G4))
        self.assertEqual(resolver.widelane.satellites, [])


class TestConvergenceBuffer(unittest.TestCase):

    def test_converges_after_stable_run(self):
        """Converged after a full buffer of small position changes"""
        buffer = ConvergenceBuffer(3, 0.05)
        self.assertFalse(buffer.push_position([0.0, 0.0, 0.0]))
        for _ in range(3):
            buffer.push_position([0.0, 0.0, 0.01])
        self.assertTrue(buffer.converged)
        buffer.push_position([0.0, 0.0, 1.0])
        self.assertFalse(buffer.converged)

    def test_clear(self):
        """Clearing empties the buffer"""
        buffer = ConvergenceBuffer(2)
        buffer.push(True)
        buffer.push(True)
        self.assertTrue(buffer.converged)
        buffer.clear()
        self.assertFalse(buffer.converged)
        self.assertEqual(len(buffer), 0)
        with self.assertRaises(ValueError):
            ConvergenceBuffer(0)


if __name__ == '__main__':
    unittest.main()
