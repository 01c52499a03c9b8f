from __future__ import annotations

from pynlsolve.algorithms.base import NonlinearAlgorithm
from pynlsolve.cache import SolverCache
from pynlsolve.problem import NonlinearProblem
from pynlsolve.solution import NonlinearSolution


# ----------------------------------------------------------------------

def init(prob: NonlinearProblem, alg: NonlinearAlgorithm,
         **kwargs) -> SolverCache:
    """
    Create the solver cache for solving `prob` with `alg`, without
    taking any steps.  The cache may then be advanced manually using
    ``cache.step()`` or run to completion using ``cache.solve()``.

    Parameters
    ----------
    prob : NonlinearProblem
        Problem to solve.
    alg : NonlinearAlgorithm
        Algorithm configuration, e.g. ``NewtonRaphson()``.
    kwargs :
        Solve options ``maxiters``, ``abstol``, ``reltol``,
        ``termination``, ``norm``, ``store_trace`` and
        ``display_level``.  See `SolverCache`.

    Returns
    -------
    SolverCache
        Freshly initialised cache.

    Raises
    ------
    TypeError
        If `alg` is not a `NonlinearAlgorithm`.
    ValueError
        If the options are invalid or `alg` cannot be applied to the
        problem (e.g. non-square system for a Newton method).
    """
    if not isinstance(alg, NonlinearAlgorithm):
        raise TypeError(f"Expected a NonlinearAlgorithm, got "
                        f"{type(alg).__name__}.")
    if not isinstance(prob, NonlinearProblem):
        raise TypeError(f"Expected a NonlinearProblem, got "
                        f"{type(prob).__name__}.")

    return SolverCache(prob, alg, **kwargs)


def solve(prob: NonlinearProblem, alg: NonlinearAlgorithm,
          **kwargs) -> NonlinearSolution:
    """
    Solve `prob` using `alg`.  Equivalent to ``init(prob, alg,
    **kwargs).solve()``.

    Failures during the iteration are not raised;  they are reported
    by ``sol.retcode`` and ``sol.error``.  Use
    ``sol.raise_for_retcode()`` to convert an unsuccessful solve into
    an exception.

    Examples
    --------
    >>> from pynlsolve import NonlinearProblem, NewtonRaphson, solve
    >>> prob = NonlinearProblem(lambda u, p: u ** 2 - p, 1.0, 2.0)
    >>> sol = solve(prob, NewtonRaphson(), abstol=1e-10)
    >>> print(f"{sol.retcode.name}, u = {sol.u:.8f}")
    SUCCESS, u = 1.41421356
    """
    return init(prob, alg, **kwargs).solve()
