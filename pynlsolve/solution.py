from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np
import numpy.typing as npt


# ======================================================================

class ReturnCode(Enum):
    """
    Final status of a solve.  Set exactly once, when the iteration loop
    terminates.
    """
    DEFAULT = 0  # Not yet terminated.
    SUCCESS = 1
    MAX_ITERS = 2
    FAILURE = 3
    STALLED = 4
    DIVERGED = 5

    @property
    def successful(self) -> bool:
        return self is ReturnCode.SUCCESS


# ----------------------------------------------------------------------

class NLStats:
    """
    Running solver statistics.  All counters are monotonically
    non-decreasing and are only reset by creating a new cache.

    Attributes
    ----------
    nf : int
        Number of residual function evaluations (including the initial
        evaluation and any line search / trial point evaluations).
    njacs : int
        Number of Jacobian constructions.
    nfactors : int
        Number of linear system factorisations.
    nsolve : int
        Number of linear solves.
    nsteps : int
        Number of completed iteration steps.
    """
    __slots__ = ('nf', 'njacs', 'nfactors', 'nsolve', 'nsteps')

    def __init__(self, nf: int = 0, njacs: int = 0, nfactors: int = 0,
                 nsolve: int = 0, nsteps: int = 0):
        self.nf, self.njacs, self.nfactors = nf, njacs, nfactors
        self.nsolve, self.nsteps = nsolve, nsteps

    def __repr__(self):
        return (f"NLStats(nf={self.nf}, njacs={self.njacs}, "
                f"nfactors={self.nfactors}, nsolve={self.nsolve}, "
                f"nsteps={self.nsteps})")

    def snapshot(self) -> StatsRecord:
        """Return an immutable copy of the current counters."""
        return StatsRecord(nf=self.nf, njacs=self.njacs,
                           nfactors=self.nfactors, nsolve=self.nsolve,
                           nsteps=self.nsteps)


@dataclass(frozen=True, kw_only=True)
class StatsRecord:
    """Frozen copy of `NLStats` attached to a `NonlinearSolution`."""
    nf: int
    njacs: int
    nfactors: int
    nsolve: int
    nsteps: int


@dataclass(frozen=True, kw_only=True)
class TraceEntry:
    """One row of the iteration history (see ``store_trace``)."""
    step: int
    fnorm: float
    du_norm: float
    alpha: float


# ----------------------------------------------------------------------

@dataclass(frozen=True, kw_only=True)
class NonlinearSolution:
    # noinspection PyUnresolvedReferences
    """
    The result of a nonlinear solve.  This is the only externally
    observed artifact of a solve and is always well-formed, even when
    the solve failed.

    Parameters
    ----------
    u : ndarray or scalar
        Final iterate, in the same form (scalar or array shape) as the
        problem `u0`.
    resid : ndarray or scalar
        Residual `F(u)` at the final iterate.
    retcode : ReturnCode
        Termination status.
    stats : StatsRecord
        Counters at termination.
    alg : NonlinearAlgorithm
        Algorithm used.
    prob : NonlinearProblem
        The problem solved.
    error : SolverError, optional
        For failed solves, the exception giving the classification and
        details of the failure.
    trace : list[TraceEntry]
        Iteration history, if ``store_trace=True`` was requested.
    """
    u: npt.NDArray | float
    resid: npt.NDArray | float
    retcode: ReturnCode
    stats: StatsRecord
    alg: Any = None
    prob: Any = None
    error: Exception | None = None
    trace: list[TraceEntry] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.retcode.successful

    @property
    def resid_norm(self) -> float:
        return float(np.linalg.norm(np.ravel(self.resid)))

    def raise_for_retcode(self):
        """
        Raise the failure as an exception if the solve was not
        successful, otherwise do nothing.

        Raises
        ------
        SolverError
            The stored error if there is one, otherwise a
            `MaxItersExceeded` or generic `SolverError` built from the
            return code.
        """
        from pynlsolve.exception import MaxItersExceeded, SolverError

        if self.success:
            return
        if self.error is not None:
            raise self.error
        if self.retcode is ReturnCode.MAX_ITERS:
            raise MaxItersExceeded(
                f"Reached maximum iteration limit: {self.stats.nsteps}",
                flag=self.retcode.value, u=self.u)

        raise SolverError(f"Solve terminated with {self.retcode.name}.",
                          flag=self.retcode.value, u=self.u)
