from __future__ import annotations

from typing import Any, TYPE_CHECKING

import numpy as np
import numpy.typing as npt

from pynlsolve.exception import SolverError
from pynlsolve.problem import NonlinearProblem, ResidualFunction
from pynlsolve.solution import (NLStats, NonlinearSolution, ReturnCode,
                                TraceEntry)
from pynlsolve.termination import TerminationCondition
from pynlsolve.util.print_styles import (PrintStylesMixin, FormatStyle,
                                         AddDotStyle, AddStarStyle,
                                         ruled_line, sci2str, vec2str)

if TYPE_CHECKING:
    from pynlsolve.algorithms.base import NonlinearAlgorithm

DEFAULT_TOL = float(np.finfo(float).eps ** 0.8)


# ======================================================================

class SolverCache(PrintStylesMixin):
    """
    Mutable state of a single solve.  The cache exclusively owns the
    iterate `u`, residual `fu`, statistics and return code;  the
    algorithm's own working state lives in `ext`, created by
    ``alg.init_cache(cache)``.

    The generic iteration loop (`solve`) only uses the common fields
    and works with any `NonlinearAlgorithm`.

    Parameters
    ----------
    prob : NonlinearProblem
        Problem to solve.
    alg : NonlinearAlgorithm
        Step strategy.
    maxiters : int, default = 1000
        Maximum number of steps.
    abstol, reltol : float, optional
        Convergence tolerances.  Default :math:`\\epsilon^{4/5}`.
    termination : TerminationCondition, optional
        Convergence test configuration.  Default ``'abs_norm'``.
    norm : Callable, optional
        Vector norm used for convergence and step control.  Default
        is the 2-norm.
    store_trace : bool, default = False
        Keep a `TraceEntry` for each step in the solution.
    display_level : int, default = 0
        Progress output:  0 = none, 1 = heading and result, 2 = also
        each iteration, 3 = also rejected steps and other notices.

    Attributes
    ----------
    u, u_prev, fu, du : ndarray
        Current iterate, iterate before the last step, residual at `u`
        and the last step direction.
    stats : NLStats
    retcode : ReturnCode
    force_stop : bool
        When set, the loop stops at the next step boundary.
    error : SolverError or None
        Classification of a failure.
    step_alpha : float
        Damping / controller value reported by the last step (shown in
        progress output and trace).
    ext : Any
        Algorithm specific state.
    """

    def __init__(self, prob: NonlinearProblem, alg: NonlinearAlgorithm, *,
                 maxiters: int = 1000, abstol: float = None,
                 reltol: float = None,
                 termination: TerminationCondition = None,
                 norm=None, store_trace: bool = False,
                 display_level: int = 0):
        super().__init__(display_level=display_level)

        if maxiters < 0:
            raise ValueError("'maxiters' must be >= 0.")

        self.prob, self.alg = prob, alg
        self.maxiters = int(maxiters)
        self.abstol = DEFAULT_TOL if abstol is None else abstol
        self.reltol = DEFAULT_TOL if reltol is None else reltol
        self.norm = np.linalg.norm if norm is None else norm

        # -- Iterate State ---------------------------------------------

        self.stats = NLStats()
        self.F = ResidualFunction(prob, self.stats)

        u0 = prob.u0
        self.u = np.array(u0, dtype=np.result_type(u0.dtype, float)).ravel()
        self.u_prev = self.u.copy()
        self.fu = self.F(self.u)
        self.du = np.zeros_like(self.u)
        self.step_alpha = 1.0

        if not prob.least_squares and self.fu.size != self.u.size:
            raise ValueError(f"Function result size ({self.fu.size}) "
                             f"does not match problem dimension "
                             f"({self.u.size}).  Use "
                             f"NonlinearLeastSquaresProblem for "
                             f"non-square systems.")

        # -- Control State ---------------------------------------------

        self.force_stop = False
        self.retcode = ReturnCode.DEFAULT
        self.error: SolverError | None = None
        self.store_trace = store_trace
        self.trace: list[TraceEntry] = []

        if termination is None:
            termination = TerminationCondition()
        self.tc = termination.for_solve(self.fu, self.u, abstol=self.abstol,
                                        reltol=self.reltol, norm=self.norm)

        # Setup formatting for printed output.
        self.pstyles.add('solver', FormatStyle())
        self.pstyles.add('iteration', AddDotStyle(), parent='solver')
        self.pstyles.add('notice', AddStarStyle(), parent='iteration')

        # Algorithm state last, so it may use all of the above.
        self.ext: Any = alg.init_cache(self)

    # -- Public Methods ------------------------------------------------

    @property
    def nsteps(self) -> int:
        return self.stats.nsteps

    def not_terminated(self) -> bool:
        return not self.force_stop and self.stats.nsteps < self.maxiters

    def step(self):
        """
        Perform a single step of the algorithm.  A `SolverError` raised
        by the step is converted into the return code and stops the
        solve.
        """
        u_before, fu_before = self.u.copy(), self.fu
        try:
            self.alg.perform_step(self)
        except SolverError as e:
            # Step failed after moving `u` but before its residual was
            # evaluated.
            if self.fu is fu_before:
                self.u = u_before
            self._fail(e)

        self.stats.nsteps += 1
        self._record(u_before)

    def solve(self) -> NonlinearSolution:
        """
        Run the iteration loop until converged, failed, stopped or the
        iteration limit is reached, and return the solution.
        """
        self.pstyles.print('solver', f"{self.alg.name} - Solving "
                                     f"{self.u.size} Equations:")
        while self.not_terminated():
            self.step()

        if self.retcode is ReturnCode.DEFAULT:
            if self.stats.nsteps >= self.maxiters:
                self.retcode = ReturnCode.MAX_ITERS
            else:
                self.retcode = ReturnCode.SUCCESS

        self.pstyles.print('solver', ruled_line(
            f"{self.retcode.name}: ||F(u)|| = "
            f"{sci2str(self.norm(self.fu))} after {self.stats.nsteps} "
            f"steps", above=None, min_length=None))

        return self.build_solution()

    def check_and_update(self) -> bool:
        """
        Apply the termination check to the current `u`, `fu` (called by
        strategies once the step is complete).  On convergence sets the
        return code and `force_stop`.

        Raises
        ------
        NumericalDivergence, SolverStalled
            As raised by the termination condition.
        """
        if self.tc.check(self.fu, self.u, self.u_prev):
            self.retcode = ReturnCode.SUCCESS
            self.force_stop = True
            return True
        return False

    def build_solution(self) -> NonlinearSolution:
        return NonlinearSolution(
            u=self.F.to_user(self.u.copy()),
            resid=self.F.resid_to_user(self.fu.copy()),
            retcode=self.retcode, stats=self.stats.snapshot(),
            alg=self.alg, prob=self.prob, error=self.error,
            trace=list(self.trace))

    def notice(self, s: str):
        """Print a notice such as a rejected step (display level 3)."""
        self.pstyles.print('notice', s)

    # -- Private Methods -----------------------------------------------

    def _fail(self, e: SolverError):
        self.error = e
        self.retcode = e.retcode
        self.force_stop = True
        self.notice(f"{type(e).__name__}: {e.args[0] if e.args else ''}")

        # Non-finite values are never returned;  fall back to the last
        # finite (or best, for safe modes) iterate.
        finite = (np.all(np.isfinite(self.u)) and
                  np.all(np.isfinite(self.fu)))
        if self.tc.safe or not finite:
            u = self.tc.fallback_u()
            if not np.array_equal(u, self.u):
                try:
                    fu = self.F(u)
                except SolverError:
                    return
                self.u, self.fu = u, fu

    def _record(self, u_before: npt.NDArray):
        fnorm = float(self.norm(self.fu))
        du_norm = float(self.norm(self.u - u_before))
        if self.store_trace:
            self.trace.append(TraceEntry(step=self.stats.nsteps,
                                         fnorm=fnorm, du_norm=du_norm,
                                         alpha=float(self.step_alpha)))

        u_str = vec2str(self.u)
        self.pstyles.print('iteration', (
                f"Iteration {self.stats.nsteps}: ||F(u)|| = "
                f"{sci2str(fnorm)}, ||Δu|| = {sci2str(du_norm)}, "
                f"α = {self.step_alpha:.4G}" +
                (f", u = {u_str}" if u_str else '')))
