from unittest import TestCase

import numpy as np
from numpy.testing import assert_allclose

from .tst_problems import quadratic, exp_fit, FIT_T, FIT_Y, FIT_EXACT


# ======================================================================

class TestTrustRegion(TestCase):
    def test_scalar_quadratic(self):
        from pynlsolve import (NonlinearProblem, TrustRegion,
                               RadiusUpdateSchemes, solve)

        prob = NonlinearProblem(quadratic, 1.0, 2.0)
        for scheme in RadiusUpdateSchemes:
            sol = solve(prob, TrustRegion(scheme))
            self.assertTrue(sol.success, msg=f"Scheme {scheme.name}")
            self.assertLess(sol.stats.nsteps, 1000)
            self.assertAlmostEqual(sol.u, np.sqrt(2.0), places=10)

    def test_two_equations(self):
        from pynlsolve import NonlinearProblem, TrustRegion, solve

        prob = NonlinearProblem(quadratic, [1.0, 1.0], [4.0, 9.0])
        sol = solve(prob, TrustRegion('nlsolve'), abstol=1e-10)
        self.assertTrue(sol.success)
        assert_allclose(sol.u, [2.0, 3.0])

    def test_least_squares(self):
        from pynlsolve import (NonlinearLeastSquaresProblem, TrustRegion,
                               solve)

        prob = NonlinearLeastSquaresProblem(exp_fit, [1.0, 0.0],
                                            (FIT_T, FIT_Y))
        sol = solve(prob, TrustRegion(), abstol=1e-10)
        self.assertTrue(sol.success)
        assert_allclose(sol.u, FIT_EXACT, atol=1e-8)

    def test_jacobian_only_after_accept(self):
        from pynlsolve import NonlinearProblem, TrustRegion, solve

        # A tiny initial radius with no expansion beyond it forces many
        # short steps;  every step is accepted so J is new each time.
        prob = NonlinearProblem(quadratic, 1.0, 2.0)
        sol = solve(prob, TrustRegion(initial_trust_radius=1e-3,
                                      max_trust_radius=1e-3),
                    maxiters=5)
        self.assertEqual(sol.stats.nsteps, 5)
        self.assertEqual(sol.stats.njacs, 5)
        assert_allclose(sol.u, 1.005, rtol=1e-12)

    def test_dogleg(self):
        from pynlsolve.algorithms.trust_region import _dogleg

        J = np.array([[2.0, 0.0], [0.0, 1.0]])
        fu = np.array([2.0, 2.0])
        δN = -np.linalg.solve(J, fu)  # [-1, -2]
        g = J.T @ fu
        Jg = J @ g

        # Newton step inside the region.
        assert_allclose(_dogleg(δN, g, Jg, 10.0), δN)

        # Steepest descent cut at a small radius.
        δ = _dogleg(δN, g, Jg, 0.1)
        assert_allclose(np.linalg.norm(δ), 0.1)
        assert_allclose(δ / np.linalg.norm(δ), -g / np.linalg.norm(g))

        # Between the Cauchy point and Newton step:  on the boundary.
        δC = -(g @ g) / (Jg @ Jg) * g
        r = 0.5 * (np.linalg.norm(δC) + np.linalg.norm(δN))
        δ = _dogleg(δN, g, Jg, r)
        assert_allclose(np.linalg.norm(δ), r)

    def test_invalid(self):
        from pynlsolve import TrustRegion

        with self.assertRaises(ValueError):
            TrustRegion('unknown')
        with self.assertRaises(ValueError):
            TrustRegion(shrink_factor=1.5)
