from unittest import TestCase

import numpy as np
from numpy.testing import assert_allclose
import scipy.sparse as sp

from .tst_problems import quadratic, exp_fit, FIT_T, FIT_Y, FIT_EXACT


# ======================================================================

class TestLevenbergMarquardt(TestCase):
    def test_scalar_quadratic(self):
        from pynlsolve import NonlinearProblem, LevenbergMarquardt, solve

        prob = NonlinearProblem(quadratic, 1.0, 2.0)
        for geodesic in (False, True):
            sol = solve(prob, LevenbergMarquardt(
                geodesic_acceleration=geodesic))
            self.assertTrue(sol.success)
            self.assertLess(sol.stats.nsteps, 1000)
            self.assertAlmostEqual(sol.u, np.sqrt(2.0), places=10)

    def test_least_squares(self):
        from pynlsolve import (NonlinearLeastSquaresProblem,
                               LevenbergMarquardt, solve)

        prob = NonlinearLeastSquaresProblem(exp_fit, [1.0, 0.0],
                                            (FIT_T, FIT_Y))
        sol = solve(prob, LevenbergMarquardt(), abstol=1e-10)
        self.assertTrue(sol.success)
        assert_allclose(sol.u, FIT_EXACT, atol=1e-8)

    def test_rosenbrock(self):
        from pynlsolve import (NonlinearLeastSquaresProblem,
                               LevenbergMarquardt, solve)

        # Residual form of the Rosenbrock function, minimum at [1, 1].
        def f(u, p):
            return np.array([10 * (u[1] - u[0] ** 2), 1 - u[0]])

        prob = NonlinearLeastSquaresProblem(f, [-1.2, 1.0])
        sol = solve(prob, LevenbergMarquardt(), abstol=1e-10)
        self.assertTrue(sol.success)
        assert_allclose(sol.u, [1.0, 1.0], atol=1e-8)

    def test_sparse(self):
        from pynlsolve import NonlinearProblem, LevenbergMarquardt, init

        n = 5
        p = np.arange(1.0, n + 1)
        prob = NonlinearProblem(quadratic, np.ones(n), p,
                                jac_prototype=sp.identity(n))
        cache = init(prob, LevenbergMarquardt())
        sol = cache.solve()
        self.assertTrue(sol.success)
        assert_allclose(sol.u, np.sqrt(p))
        self.assertTrue(sp.issparse(cache.ext.JᵀJ))

    def test_damping(self):
        from pynlsolve import NonlinearProblem, LevenbergMarquardt, init

        # First step from u0 = 1 is accepted, reducing λ by 3.
        prob = NonlinearProblem(quadratic, 1.0, 2.0)
        cache = init(prob, LevenbergMarquardt(damping_initial=1.0))
        cache.step()
        self.assertLess(abs(cache.fu[0]), 1.0)
        self.assertAlmostEqual(cache.ext.λ, 1 / 3)
        self.assertTrue(np.all(cache.ext.DᵀD >= 4.0 - 1e-6))

    def test_invalid(self):
        from pynlsolve import LevenbergMarquardt

        with self.assertRaises(ValueError):
            LevenbergMarquardt(damping_initial=0.0)
        with self.assertRaises(ValueError):
            LevenbergMarquardt(damping_increase_factor=0.5)
