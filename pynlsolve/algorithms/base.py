"""
Common definitions for the step strategies.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, TYPE_CHECKING

from pynlsolve.jacobian import JacobianManager
from pynlsolve.linesearch import LineSearch
from pynlsolve.linsolve import LinearSolver

if TYPE_CHECKING:
    from pynlsolve.cache import SolverCache


# ======================================================================

class NonlinearAlgorithm(ABC):
    """
    Base class for a nonlinear solve step strategy.  Algorithm objects
    hold configuration only and may be shared between solves;  all
    mutable state belongs to the solver cache.

    A strategy provides two operations used by the generic iteration
    loop:

        - `init_cache`: Build the strategy's own working state, which is
          stored as ``cache.ext``.
        - `perform_step`: Advance ``cache.u`` and ``cache.fu`` by one
          step (or leave them unchanged for a rejected trial step),
          calling ``cache.check_and_update()`` at the end.

    Failures within a step are signalled by raising a `SolverError`
    subclass;  the loop converts these into the solution return code.
    """

    # -- Public Methods ------------------------------------------------

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def init_cache(self, cache: SolverCache) -> Any:
        """
        Return the algorithm specific state for a new solve.  Raises
        `ValueError` if the algorithm cannot be applied to the problem.
        """
        raise NotImplementedError

    @abstractmethod
    def perform_step(self, cache: SolverCache):
        """Perform one step of the algorithm, updating `cache`."""
        raise NotImplementedError


# ----------------------------------------------------------------------

def require_square(alg: NonlinearAlgorithm, cache: SolverCache):
    """Raise `ValueError` if the problem is not a square system."""
    if cache.fu.size != cache.u.size:
        raise ValueError(f"{alg.name} requires a square system, got "
                         f"{cache.fu.size} equations in {cache.u.size} "
                         f"unknowns.")


def make_jacobian_manager(cache: SolverCache, *, autodiff: str,
                          concrete_jac: bool = True, reuse: bool = False,
                          reusetol: float = 0.1) -> JacobianManager:
    return JacobianManager(cache.F, cache.stats, autodiff=autodiff,
                           concrete_jac=concrete_jac, reuse=reuse,
                           reusetol=reusetol)


def make_linear_solver(linsolve: str | LinearSolver | None,
                       cache: SolverCache, *,
                       matrix_free: bool = False) -> LinearSolver:
    """
    Create a new linear solver handle for `cache` from the algorithm's
    `linsolve` setting:  `None` (automatic choice), a method name or a
    `LinearSolver` whose settings are copied.
    """
    if isinstance(linsolve, LinearSolver):
        ls = LinearSolver(linsolve.method, rtol=linsolve.rtol,
                          restart=linsolve.restart,
                          maxiter=linsolve.maxiter, stats=cache.stats)
    else:
        ls = LinearSolver(linsolve, stats=cache.stats)

    if matrix_free and ls.method not in (None, 'gmres'):
        raise ValueError(f"Linear solve method '{ls.method}' requires a "
                         f"concrete Jacobian.  Use 'gmres' or "
                         f"concrete_jac=True.")
    return ls


def make_linesearch(linesearch) -> LineSearch:
    if isinstance(linesearch, LineSearch):
        return linesearch
    return LineSearch(linesearch)
