from __future__ import annotations

from pynlsolve.solution import ReturnCode


# ======================================================================

class SolverError(RuntimeError):
    """
    This exception is raised when an algorithm / solver / etc fails to
    converge or find a solution.  Additional information (optional) is
    included to allow the reason for the failure to be determined.

    Within the iteration loop (see `SolverCache.solve`) a `SolverError`
    never escapes;  it is caught at the step boundary and converted to
    the return code given by the class attribute `retcode`, with the
    exception itself stored in ``NonlinearSolution.error``.

    Notes
    -----
    `SolverError` may also have additional attributes not listed here
    depending on the specific solver being used.
    """

    retcode: ReturnCode = ReturnCode.FAILURE

    def __init__(self, *args, flag: int = None, details: str = None,
                 **kwargs):
        """
        Parameters
        ----------
        args :
            Passed to `RuntimeError`.
        flag : int, default = None
            Numeric status code giving some information about the
            result. Typically `flag` != 0 as many error code systems
            assume that `flag` == 0 implies that the solution was
            successful.
        details : str, default = None
            Additional text can be included relating to the specific
            type of failure.
        kwargs :
            Additional attributes can be added to the object using
            keyword arguments.
        """
        super().__init__(*args)
        self.flag, self.details = flag, details
        for k, v in kwargs.items():
            setattr(self, k, v)

    def __str__(self):
        """Add additional details below the main failure notice."""
        error_str = super().__str__()
        for k, v in self.__dict__.items():
            if v is not None:
                error_str += f"\n{k} -> {v}"
        return error_str


# ----------------------------------------------------------------------

class MaxItersExceeded(SolverError):
    """
    The iteration limit was reached before convergence.  This is not
    fatal; the best available iterate is still returned in the solution.
    Only raised on request via `NonlinearSolution.raise_for_retcode`.
    """
    retcode = ReturnCode.MAX_ITERS


class LinearSolveSingular(SolverError):
    """The linear system for the step was singular or could not be
    solved."""
    retcode = ReturnCode.FAILURE


class ResidualFailure(SolverError):
    """The user residual function raised an exception.  The original
    exception is available as ``__cause__``."""
    retcode = ReturnCode.FAILURE


class DifferentiationFailure(SolverError):
    """The differentiation backend failed to produce a usable
    Jacobian."""
    retcode = ReturnCode.FAILURE


class NumericalDivergence(SolverError):
    """Non-finite values appeared in `u` or `F(u)`, or the residual
    norm grew beyond the protective threshold."""
    retcode = ReturnCode.DIVERGED


class SolverStalled(SolverError):
    """No further progress is possible with the current strategy (e.g.
    trust region collapsed or line search exhausted)."""
    retcode = ReturnCode.STALLED
