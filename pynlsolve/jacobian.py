from __future__ import annotations

import numpy as np
import numpy.typing as npt
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from pynlsolve.exception import DifferentiationFailure
from pynlsolve.problem import ResidualFunction
from pynlsolve.solution import NLStats

# noinspection PyProtectedMember
from scipy.optimize._numdiff import approx_derivative

_AUTODIFF = ('2-point', '3-point', 'cs')


# ======================================================================

class JacobianManager:
    """
    Builds, caches and (optionally) re-uses the Jacobian `J` of the
    residual function.

    The Jacobian comes from one of the following, in order of
    preference:

        - The problem's analytic ``jac(u, p)`` if provided.
        - A matrix-free `LinearOperator` computing ``J @ v`` by finite
          differences if ``concrete_jac=False``.
        - Finite differences / complex step using SciPy's
          `approx_derivative`, exploiting the problem's
          `jac_prototype` sparsity structure if given (giving a sparse
          result).

    Parameters
    ----------
    resid : ResidualFunction
        Wrapped residual.
    stats : NLStats
        Jacobian constructions are counted in ``njacs``.
    autodiff : {'2-point', '3-point', 'cs'}, default = '2-point'
        Finite difference scheme for `approx_derivative`.  ``'cs'``
        (complex step) is exact to rounding for residual functions that
        accept complex input.
    concrete_jac : bool, default = True
        If `False` (and no analytic Jacobian is available) only
        Jacobian-vector products are available, through a
        `LinearOperator`.
    reuse : bool, default = False
        Enable the Jacobian reuse policy (see `needs_rebuild`).
    reusetol : float, default = 0.1
        Maximum accumulated step size since the last rebuild for which
        an old Jacobian may be reused.
    """

    def __init__(self, resid: ResidualFunction, stats: NLStats, *,
                 autodiff: str = '2-point', concrete_jac: bool = True,
                 reuse: bool = False, reusetol: float = 0.1):
        if autodiff not in _AUTODIFF:
            raise ValueError(f"Unknown autodiff method '{autodiff}', "
                             f"expected one of {_AUTODIFF}.")
        if reusetol < 0:
            raise ValueError("'reusetol' must be >= 0.")

        self.resid, self.stats = resid, stats
        self.autodiff = autodiff
        self.concrete_jac = concrete_jac
        self.reuse, self.reusetol = reuse, reusetol

        prob = resid.prob
        # Always sparse:  approx_derivative reads a length 2 dense
        # pattern as a (structure, groups) pair.
        self._sparsity = prob.jac_prototype
        if self._sparsity is not None and not sp.issparse(self._sparsity):
            self._sparsity = sp.csc_matrix(
                np.atleast_2d(np.asarray(self._sparsity) != 0))

        self.J = None

    # -- Public Methods ------------------------------------------------

    @property
    def matrix_free(self) -> bool:
        """`True` if only Jacobian-vector products are available."""
        return self.resid.prob.jac is None and not self.concrete_jac

    def jacobian(self, u: npt.NDArray, fu: npt.NDArray = None):
        """
        Compute `J` at `u`, store it and return it.  `fu` (the residual
        at `u`) saves one evaluation where finite differences are used.

        Raises
        ------
        DifferentiationFailure
            If the backend raised an error or returned non-finite
            values or the wrong shape.
        """
        m = fu.size if fu is not None else None
        try:
            if self.resid.prob.jac is not None:
                J = self.resid.jac(u)

            elif not self.concrete_jac:
                J = approx_derivative(self.resid, u, method=self.autodiff,
                                      f0=fu, as_linear_operator=True)

            else:
                J = approx_derivative(self.resid, u, method=self.autodiff,
                                      f0=fu, sparsity=self._sparsity)
                if not sp.issparse(J):
                    J = np.atleast_2d(J)

        except DifferentiationFailure:
            raise
        except Exception as e:
            raise DifferentiationFailure(
                f"Jacobian evaluation failed: {e}", flag=1,
                details=type(e).__name__) from e

        if m is not None and J.shape != (m, u.size):
            raise DifferentiationFailure(
                f"Jacobian has shape {J.shape}, expected "
                f"{(m, u.size)}.", flag=2)

        if not _all_finite(J):
            raise DifferentiationFailure(
                "Jacobian contains non-finite values.", flag=3)

        self.stats.njacs += 1
        self.J = J
        return J

    def needs_rebuild(self, res_norm: float, res_norm_prev: float,
                      du_norm: float) -> bool:
        """
        Reuse policy.  Returns `True` if a new Jacobian is required
        before the next linear solve.  This is always the case when
        reuse is disabled or no Jacobian exists yet.  Otherwise a new
        Jacobian is required if the residual norm increased over the
        last step or the accumulated step since the last rebuild
        exceeds `reusetol`.
        """
        if not self.reuse or self.J is None:
            return True
        return res_norm > res_norm_prev or du_norm > self.reusetol


# ----------------------------------------------------------------------

def _all_finite(J) -> bool:
    if isinstance(J, spla.LinearOperator):
        return True
    if sp.issparse(J):
        return bool(np.all(np.isfinite(J.data)))
    return bool(np.all(np.isfinite(J)))
