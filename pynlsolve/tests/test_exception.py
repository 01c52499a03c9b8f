from unittest import TestCase


# ======================================================================

class TestSolverError(TestCase):
    def test_details(self):
        from pynlsolve import SolverError

        e = SolverError("Failed.", flag=3, details="Bad step.", radius=0.1)
        self.assertEqual(e.flag, 3)
        self.assertEqual(e.radius, 0.1)
        s = str(e)
        self.assertTrue(s.startswith("Failed."))
        self.assertIn("flag -> 3", s)
        self.assertIn("details -> Bad step.", s)
        self.assertIn("radius -> 0.1", s)

        # Unset details are not shown.
        self.assertEqual(str(SolverError("Failed.")), "Failed.")

    def test_retcodes(self):
        from pynlsolve import (ReturnCode, SolverError, MaxItersExceeded,
                               LinearSolveSingular, DifferentiationFailure,
                               NumericalDivergence, SolverStalled,
                               ResidualFailure)

        cases = ((SolverError, ReturnCode.FAILURE),
                 (MaxItersExceeded, ReturnCode.MAX_ITERS),
                 (LinearSolveSingular, ReturnCode.FAILURE),
                 (ResidualFailure, ReturnCode.FAILURE),
                 (DifferentiationFailure, ReturnCode.FAILURE),
                 (NumericalDivergence, ReturnCode.DIVERGED),
                 (SolverStalled, ReturnCode.STALLED))
        for exc_type, retcode in cases:
            self.assertEqual(exc_type.retcode, retcode)
            self.assertTrue(issubclass(exc_type, RuntimeError))
