from unittest import TestCase

import numpy as np
from numpy.testing import assert_allclose

from .tst_problems import (quadratic, quadratic_jac, exp_fit,
                           exp_fit_inplace, FIT_T, FIT_Y, FIT_EXACT)


# ======================================================================

class TestGaussNewton(TestCase):
    def test_scalar_quadratic(self):
        from pynlsolve import NonlinearProblem, GaussNewton, solve

        prob = NonlinearProblem(quadratic, 1.0, 2.0)
        sol = solve(prob, GaussNewton())
        self.assertTrue(sol.success)
        self.assertLess(sol.stats.nsteps, 1000)
        self.assertAlmostEqual(sol.u, np.sqrt(2.0), places=10)

    def test_least_squares(self):
        from pynlsolve import (NonlinearLeastSquaresProblem, GaussNewton,
                               solve)

        prob = NonlinearLeastSquaresProblem(exp_fit, [1.0, 0.0],
                                            (FIT_T, FIT_Y))
        sol = solve(prob, GaussNewton(), abstol=1e-10)
        self.assertTrue(sol.success)
        assert_allclose(sol.u, FIT_EXACT, atol=1e-8)
        self.assertEqual(np.shape(sol.resid), (10,))

        # In-place form needs the residual shape.
        prob = NonlinearLeastSquaresProblem(
            exp_fit_inplace, [1.0, 0.0], (FIT_T, FIT_Y),
            resid_prototype=np.zeros(10))
        sol = solve(prob, GaussNewton(linesearch='armijo'), abstol=1e-10)
        self.assertTrue(sol.success)
        assert_allclose(sol.u, FIT_EXACT, atol=1e-8)

    def test_reuse(self):
        from pynlsolve import NonlinearProblem, GaussNewton, solve

        prob = NonlinearProblem(quadratic, 1.5, 2.0)
        sol = solve(prob, GaussNewton(reuse=True))
        self.assertTrue(sol.success)
        self.assertLess(sol.stats.njacs, sol.stats.nsteps)

    def test_singular(self):
        from pynlsolve import (NonlinearProblem, GaussNewton, solve,
                               ReturnCode, LinearSolveSingular)

        prob = NonlinearProblem(quadratic, 0.0, 2.0, jac=quadratic_jac)
        sol = solve(prob, GaussNewton())
        self.assertEqual(sol.retcode, ReturnCode.FAILURE)
        self.assertIsInstance(sol.error, LinearSolveSingular)
