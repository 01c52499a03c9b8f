"""
Problem definitions and residual evaluation.

Problems are immutable records owned by the caller.  Internally the
solvers work with flat 1-D vectors;  `ResidualFunction` takes care of
converting between this working form and the shape of the user's `u0`
(which may be a scalar).
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from typing import Any

import numpy as np
import numpy.typing as npt
import scipy.sparse as sp

from pynlsolve.exception import ResidualFailure, SolverError
from pynlsolve.solution import NLStats


# ======================================================================

class NonlinearProblem:
    """
    A square system of nonlinear equations :math:`F(u, p) = 0`.

    Parameters
    ----------
    f : Callable
        Residual function, either out-of-place ``f(u, p) -> fu`` or
        in-place ``f(fu, u, p)`` writing into `fu`.
    u0 : array_like or scalar
        Initial guess.  If a scalar is given, `f` is called with 0-d
        arrays and the solution is returned as a scalar.
    p : Any, optional
        Parameters passed through to `f` (and `jac`) unchanged.
    jac : Callable, optional
        Analytic Jacobian ``jac(u, p) -> J`` returning a dense array or
        `scipy.sparse` matrix.  If omitted, the algorithm's
        differentiation backend is used.
    jac_prototype : array_like or sparse matrix, optional
        Sparsity structure of the Jacobian.  Nonzero entries mark the
        possible nonzero derivatives;  passed to the finite difference
        backend to reduce the number of evaluations.
    inplace : bool, optional
        Force the in-place / out-of-place calling convention.  If
        `None` (default) this is detected from the signature of `f`:
        three required positional parameters means in-place.
    """

    def __init__(self, f: Callable, u0: npt.ArrayLike, p: Any = None, *,
                 jac: Callable = None, jac_prototype=None,
                 inplace: bool = None):
        if not callable(f):
            raise TypeError("Residual function 'f' must be callable.")
        if jac is not None and not callable(jac):
            raise TypeError("'jac' must be callable.")

        u0_arr = np.asarray(u0)
        if not (np.issubdtype(u0_arr.dtype, np.number) or
                u0_arr.dtype == bool):
            raise TypeError(f"Initial guess must be numeric, got dtype "
                            f"{u0_arr.dtype}.")
        if u0_arr.size == 0:
            raise ValueError("Initial guess cannot be empty.")

        self._f, self._u0, self._p = f, u0_arr.copy(), p
        self._jac = jac
        self._jac_prototype = jac_prototype
        self._inplace = (_detect_inplace(f) if inplace is None
                         else bool(inplace))

    # -- Public Methods ------------------------------------------------

    @property
    def f(self) -> Callable:
        return self._f

    @property
    def u0(self) -> npt.NDArray:
        return self._u0.copy()

    @property
    def p(self) -> Any:
        return self._p

    @property
    def jac(self) -> Callable | None:
        return self._jac

    @property
    def jac_prototype(self):
        return self._jac_prototype

    @property
    def inplace(self) -> bool:
        return self._inplace

    @property
    def scalar(self) -> bool:
        """`True` if `u0` was given as a scalar."""
        return self._u0.ndim == 0

    @property
    def n(self) -> int:
        """Number of unknowns."""
        return self._u0.size

    @property
    def least_squares(self) -> bool:
        return False

    def resid_shape(self) -> tuple[int, ...]:
        """Shape of the residual array for in-place evaluation."""
        return self._u0.shape


# ----------------------------------------------------------------------

class NonlinearLeastSquaresProblem(NonlinearProblem):
    """
    A nonlinear least squares problem :math:`\\min_u ½\\|F(u, p)\\|^2`
    where the residual may have a different length `m` to the number
    of unknowns `n`.

    Parameters
    ----------
    resid_prototype : array_like, optional
        Array of the same shape as the residual.  Required for in-place
        residual functions where ``m != n``.
    f, u0, p, jac, jac_prototype, inplace :
        See `NonlinearProblem`.
    """

    def __init__(self, f: Callable, u0: npt.ArrayLike, p: Any = None, *,
                 resid_prototype: npt.ArrayLike = None, **kwargs):
        super().__init__(f, u0, p, **kwargs)
        self._resid_proto = (None if resid_prototype is None else
                             np.asarray(resid_prototype))

    @property
    def least_squares(self) -> bool:
        return True

    def resid_shape(self) -> tuple[int, ...]:
        if self._resid_proto is not None:
            return self._resid_proto.shape
        return super().resid_shape()


# ======================================================================

class ResidualFunction:
    """
    Wraps the user residual function for use by the solvers.  Accepts
    and returns flat 1-D vectors and counts every evaluation in
    ``stats.nf``.

    Parameters
    ----------
    prob : NonlinearProblem
        Problem supplying `f`, `p` and the shape of `u0`.
    stats : NLStats
        Statistics record to update.
    """

    def __init__(self, prob: NonlinearProblem, stats: NLStats):
        self.prob = prob
        self.stats = stats
        self._u_shape = prob.u0.shape
        self._resid_shape = None

    def __call__(self, u: npt.NDArray) -> npt.NDArray:
        """
        Evaluate `F(u)` for a flat vector `u`, returning a flat vector.

        Raises
        ------
        ResidualFailure
            If the user function raised any exception other than a
            `SolverError`.
        """
        u_user = self.restructure(u)
        self.stats.nf += 1

        try:
            if self.prob.inplace:
                dtype = np.result_type(u_user.dtype, float)
                fu = np.zeros(self.prob.resid_shape(), dtype=dtype)
                self.prob.f(fu, u_user, self.prob.p)
            else:
                fu = self.prob.f(u_user, self.prob.p)

            fu = np.array(fu, copy=True)

        except SolverError:
            raise
        except Exception as e:
            raise ResidualFailure(
                f"Residual function failed: {e}", flag=1,
                details=type(e).__name__) from e

        if self._resid_shape is None:
            self._resid_shape = fu.shape
        return fu.ravel()

    def restructure(self, x: npt.NDArray) -> npt.NDArray:
        """Reshape a flat working vector to the shape of `u0`."""
        return np.reshape(x, self._u_shape)

    def jac(self, u: npt.NDArray):
        """
        Evaluate the user supplied analytic Jacobian at flat vector `u`,
        returning a 2-D dense array or sparse matrix.
        """
        J = self.prob.jac(self.restructure(u), self.prob.p)
        if sp.issparse(J):
            return sp.csc_matrix(J)
        return np.atleast_2d(np.asarray(J))

    def to_user(self, x: npt.NDArray, shape: tuple[int, ...] = None):
        """
        Convert a flat working vector to the form returned in solutions:
        a scalar if the problem was scalar, otherwise an array of
        `shape` (default `u0` shape).
        """
        if shape is None:
            shape = self._u_shape
        x = np.asarray(x)
        if self.prob.scalar and x.size == 1:
            return x.reshape(())[()]
        return x.reshape(shape)

    def resid_to_user(self, fu: npt.NDArray):
        """As for `to_user`, using the shape returned by `f`."""
        shape = self._resid_shape
        if shape is None or int(np.prod(shape)) != np.size(fu):
            shape = (np.size(fu),)
        return self.to_user(fu, shape)


# ----------------------------------------------------------------------

def _detect_inplace(f: Callable) -> bool:
    # Counts required positional parameters;  three means the
    # ``f(fu, u, p)`` form.  Builtins without signatures are treated as
    # out-of-place.
    try:
        sig = inspect.signature(f)
    except (TypeError, ValueError):
        return False

    n_req = 0
    for param in sig.parameters.values():
        if param.kind in (param.POSITIONAL_ONLY,
                          param.POSITIONAL_OR_KEYWORD) and \
                param.default is param.empty:
            n_req += 1
        elif param.kind == param.VAR_POSITIONAL:
            return False

    return n_req == 3
