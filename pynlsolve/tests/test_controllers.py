from unittest import TestCase

import numpy as np


# ======================================================================

class TestIController(TestCase):
    def test_stepsize(self):
        from pynlsolve import IController

        ctrl = IController()

        # Zero error:  maximum growth, qold untouched.
        self.assertAlmostEqual(ctrl.stepsize(0.0, 1.0), 0.1)
        self.assertEqual(ctrl.qold, 1e-4)

        q = ctrl.stepsize(0.45, 1.0)
        self.assertAlmostEqual(q, 0.5)
        self.assertAlmostEqual(ctrl.qold, 2.0)

        # Clamped to [1/qmax, 1/qmin].
        self.assertAlmostEqual(ctrl.stepsize(1e-6, 1.0), 0.1)
        self.assertAlmostEqual(ctrl.stepsize(100.0, 1.0), 5.0)

    def test_accept(self):
        from pynlsolve import IController

        ctrl = IController()
        alpha, accepted = ctrl.update(0.45, 1.0)
        self.assertTrue(accepted)
        self.assertAlmostEqual(alpha, 2.0)

        alpha, accepted = ctrl.update(0.0, 1.0)
        self.assertTrue(accepted)
        self.assertAlmostEqual(alpha, 10.0)

    def test_steady_band(self):
        from pynlsolve import IController

        # q = 0.5 lies within the band so alpha is unchanged.
        ctrl = IController(qsteady_min=0.4, qsteady_max=1.2)
        alpha, accepted = ctrl.update(0.45, 3.0)
        self.assertTrue(accepted)
        self.assertEqual(alpha, 3.0)

        self.assertEqual(ctrl.step_accept(3.0, 0.3), 10.0)

    def test_reject(self):
        from pynlsolve import IController

        # EEst > 1:  alpha rolls back to qold = alpha / q.
        ctrl = IController()
        alpha, accepted = ctrl.update(9.0, 1.0)
        self.assertFalse(accepted)
        self.assertAlmostEqual(alpha, 0.2)
        self.assertAlmostEqual(ctrl.step_reject(), 0.2)

    def test_copy(self):
        from pynlsolve import IController

        ctrl = IController()
        c2 = ctrl.copy()
        c2.stepsize(0.45, 1.0)
        self.assertEqual(ctrl.qold, 1e-4)
        self.assertAlmostEqual(c2.qold, 2.0)

    def test_invalid(self):
        from pynlsolve import IController

        with self.assertRaises(ValueError):
            IController(qmin=2.0)
        with self.assertRaises(ValueError):
            IController(qsteady_min=2.0, qsteady_max=1.0)
        with self.assertRaises(ValueError):
            IController(gamma=0.0)


class TestEstimateError(TestCase):
    def test_estimate_error(self):
        from pynlsolve.controllers import estimate_error

        u_prev2, u_prev = np.array([0.0]), np.array([1.0])

        # Constant pseudo-velocity:  no error.
        self.assertAlmostEqual(estimate_error(
            np.array([2.0]), u_prev, u_prev2, 1.0, 1.0, 1.0, 0.0), 0.0)

        # 7/12 · |2/2 - 1/2| = 7/24.
        self.assertAlmostEqual(estimate_error(
            np.array([3.0]), u_prev, u_prev2, 1.0, 1.0, 1.0, 0.0), 7 / 24)

        # Scaled by abstol + reltol·max(|u_prev|, |u|).
        self.assertAlmostEqual(estimate_error(
            np.array([3.0]), u_prev, u_prev2, 1.0, 1.0, 0.0, 1.0), 7 / 72)

        # Independent of the number of unknowns.
        n = 100
        self.assertAlmostEqual(estimate_error(
            np.full(n, 3.0), np.ones(n), np.zeros(n), 1.0, 1.0, 1.0, 0.0),
            7 / 24)
        self.assertAlmostEqual(estimate_error(
            np.full(n, 3.0), np.ones(n), np.zeros(n), 1.0, 1.0, 1.0, 0.0,
            norm=np.linalg.norm), 7 / 24 * np.sqrt(n))

        # Velocity scaling with the step size gives no error.
        self.assertAlmostEqual(estimate_error(
            np.array([3.0]), u_prev, u_prev2, 2.0, 1.0, 1.0, 0.0), 0.0)


class TestTrustRadiusController(TestCase):
    def test_initial_radius(self):
        from pynlsolve import RadiusUpdateSchemes
        from pynlsolve.controllers import TrustRadiusController

        tr = TrustRadiusController().for_solve(np.array([0.0, 1.0]), 2.0)
        self.assertAlmostEqual(tr.max_trust_radius, 2.0)
        self.assertAlmostEqual(tr.radius, 2.0 / 11)

        tr = TrustRadiusController(RadiusUpdateSchemes.NLSOLVE).for_solve(
            np.array([0.0, 1.0]), 2.0)
        self.assertAlmostEqual(tr.radius, 1.0)
        self.assertEqual(tr.step_threshold, 0.05)

    def test_simple(self):
        from pynlsolve.controllers import TrustRadiusController

        tr = TrustRadiusController(max_trust_radius=1.0,
                                   initial_trust_radius=0.2)
        tr = tr.for_solve(np.zeros(2), 1.0)

        # Poor agreement:  shrink but still accept.
        self.assertTrue(tr.update(0.1, 0.2))
        self.assertAlmostEqual(tr.radius, 0.05)

        # Good agreement on the boundary:  expand.
        self.assertTrue(tr.update(0.9, 0.05))
        self.assertAlmostEqual(tr.radius, 0.1)

        # Good agreement inside:  unchanged.
        self.assertTrue(tr.update(0.9, 0.01))
        self.assertAlmostEqual(tr.radius, 0.1)

        # Increase in residual:  reject.
        self.assertFalse(tr.update(-1.0, 0.1))
        self.assertFalse(tr.update(np.nan, 0.1))

    def test_nlsolve(self):
        from pynlsolve.controllers import TrustRadiusController

        tr = TrustRadiusController('nlsolve', max_trust_radius=1.0,
                                   initial_trust_radius=0.2)
        tr = tr.for_solve(np.zeros(2), 1.0)
        self.assertTrue(tr.update(0.8, 0.15))
        self.assertAlmostEqual(tr.radius, 0.3)
        self.assertFalse(tr.update(0.01, 0.3))
        self.assertAlmostEqual(tr.radius, 0.15)

    def test_hei(self):
        from pynlsolve.controllers import TrustRadiusController

        tr = TrustRadiusController('hei', max_trust_radius=10.0,
                                   initial_trust_radius=1.0)
        tr = tr.for_solve(np.zeros(2), 1.0)
        self.assertTrue(tr.update(1.0, 1.0))
        self.assertGreater(tr.radius, 1.0)
        r = tr.radius
        tr.update(0.0, r)
        self.assertLess(tr.radius, r)

    def test_stall(self):
        from pynlsolve import SolverStalled
        from pynlsolve.controllers import TrustRadiusController

        tr = TrustRadiusController(max_shrink_times=2,
                                   initial_trust_radius=1.0)
        tr = tr.for_solve(np.zeros(2), 1.0)
        tr.update(-1.0, 1.0)
        tr.update(-1.0, 1.0)
        with self.assertRaises(SolverStalled):
            tr.update(-1.0, 1.0)
