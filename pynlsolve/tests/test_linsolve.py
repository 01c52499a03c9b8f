from unittest import TestCase

import numpy as np
from numpy.testing import assert_allclose
import scipy.sparse as sp
import scipy.sparse.linalg as spla


A = np.array([[4.0, 1.0, 0.0],
              [2.0, 3.0, 1.0],
              [0.0, 1.0, 5.0]])
b = np.array([1.0, 2.0, 3.0])


# ======================================================================

class TestLinearSolver(TestCase):
    def test_methods(self):
        from pynlsolve import LinearSolver

        x_exact = np.linalg.solve(A, b)
        for method, A_in in (('lu', A), ('splu', sp.csc_matrix(A)),
                             ('gmres', A), ('lstsq', A)):
            ls = LinearSolver(method, rtol=1e-12)
            ls.factorize(A_in)
            assert_allclose(ls.solve(b), x_exact, rtol=1e-8,
                            err_msg=method)

    def test_default_method(self):
        from pynlsolve import LinearSolver

        cases = ((A, 'lu'), (sp.csr_matrix(A), 'splu'),
                 (spla.aslinearoperator(A), 'gmres'),
                 (np.ones((4, 2)), 'lstsq'))
        for A_in, method in cases:
            ls = LinearSolver()
            ls.factorize(A_in)
            self.assertEqual(ls.method, method)

    def test_least_squares(self):
        from pynlsolve import LinearSolver

        M = np.array([[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])
        y = np.array([1.0, 2.0, 3.0])
        ls = LinearSolver()
        ls.factorize(M)
        assert_allclose(ls.solve(y), [1.0, 2.0])

    def test_reuse_counts(self):
        from pynlsolve import LinearSolver
        from pynlsolve.solution import NLStats

        stats = NLStats()
        ls = LinearSolver('lu', stats=stats)
        self.assertFalse(ls.has_matrix)
        ls.factorize(A)
        ls.solve(b)
        ls.solve(2 * b)
        self.assertEqual(stats.nfactors, 1)
        self.assertEqual(stats.nsolve, 2)

    def test_singular(self):
        from pynlsolve import LinearSolver, LinearSolveSingular

        S = np.array([[1.0, 2.0], [2.0, 4.0]])
        with self.assertRaises(LinearSolveSingular):
            LinearSolver('lu').factorize(S)

        S = sp.csc_matrix(np.array([[1.0, 0.0], [0.0, 0.0]]))
        with self.assertRaises(LinearSolveSingular):
            LinearSolver('splu').factorize(S)

    def test_invalid(self):
        from pynlsolve import LinearSolver

        with self.assertRaises(ValueError):
            LinearSolver('cholesky')
        with self.assertRaises(RuntimeError):
            LinearSolver('lu').solve(b)
        with self.assertRaises(TypeError):
            LinearSolver('lu').factorize(spla.aslinearoperator(A))
