"""
.. This module acts as the top-level API documentation.

.. module: pynlsolve

**pynlsolve** solves systems of nonlinear equations :math:`F(u, p) = 0`
and nonlinear least squares problems :math:`\\min_u ½\\|F(u, p)\\|^2`.

A problem is defined once and can then be solved by any of the step
strategies, which all share the same iteration loop, Jacobian handling,
line search and termination options::

    >>> import numpy as np
    >>> from pynlsolve import NonlinearProblem, TrustRegion, solve
    >>> prob = NonlinearProblem(lambda u, p: u ** 2 - p, [1.0, 1.0],
    ...                         [4.0, 9.0])
    >>> sol = solve(prob, TrustRegion(), abstol=1e-10)
    >>> sol.success, np.round(sol.u, 8)
    (True, array([2., 3.]))

Subpackages
-----------

.. autosummary::
    :toctree: generated/

    algorithms
    util
"""

__version__ = "0.1.0"

import sys

# ======================================================================

assert sys.version_info >= (3, 10)

from .algorithms import (NonlinearAlgorithm, NewtonRaphson, GaussNewton,
                         TrustRegion, LevenbergMarquardt, PseudoTransient,
                         DFSane)
from .cache import SolverCache
from .controllers import IController, RadiusUpdateSchemes
from .exception import (SolverError, MaxItersExceeded, LinearSolveSingular,
                        DifferentiationFailure, NumericalDivergence,
                        ResidualFailure,
                        SolverStalled)
from .linesearch import LineSearch
from .linsolve import LinearSolver
from .problem import NonlinearProblem, NonlinearLeastSquaresProblem
from .solution import ReturnCode, NonlinearSolution, TraceEntry
from .solver import init, solve
from .termination import TerminationCondition
