from __future__ import annotations

import warnings
from collections.abc import Callable

import numpy as np
import numpy.typing as npt

from pynlsolve.exception import SolverError

# Importing internal SciPy components required; sometimes these change
# location.
try:
    # noinspection PyProtectedMember
    from scipy.optimize._linesearch import (scalar_search_armijo,
                                            scalar_search_wolfe1)
except ImportError:
    # noinspection PyUnresolvedReferences
    from scipy.optimize.linesearch import (scalar_search_armijo,
                                           scalar_search_wolfe1)

_METHODS = ('armijo', 'wolfe')


# ======================================================================

class LineSearch:
    """
    Line search adapter.  Given the current point `u`, residual `fu`
    and Newton-type direction `du` (the step being ``u - α·du``),
    returns the damping factor `α` in (0, 1].

    Parameters
    ----------
    method : {None, 'armijo', 'wolfe'} or Callable, default = None
        - `None`: No line search, always returns ``α = 1``.
        - ``'armijo'``: Backtracking search with quadratic / cubic
          interpolation (SciPy ``scalar_search_armijo``).
        - ``'wolfe'``: Search satisfying the strong Wolfe conditions
          (SciPy ``scalar_search_wolfe1``).
        - Callable: External backend called as
          ``method(u, fu, du, F)`` where `F` evaluates the residual of
          a flat vector.  It must return a float in (0, 1].

        The SciPy searches are applied to the merit function
        :math:`\\phi(s) = \\|F(u - s\\,du)\\|^2` using a finite
        difference slope, in the same manner as SciPy's own nonlinear
        solvers.

    alpha_min : float, default = 1e-2
        Smallest step the SciPy searches may return before giving up.
    rdiff : float, default = 1e-8
        Relative step used for the finite difference slope of `φ`.
    """

    def __init__(self, method: str | Callable | None = None, *,
                 alpha_min: float = 1e-2, rdiff: float = 1e-8):
        if not (method is None or callable(method) or method in _METHODS):
            raise ValueError(f"Unknown line search method '{method}'.")
        if not (0 < alpha_min <= 1):
            raise ValueError("'alpha_min' must be in (0, 1].")

        self.method = method
        self.alpha_min, self.rdiff = alpha_min, rdiff

    def __repr__(self):
        return f"LineSearch(method={self.method!r})"

    # -- Public Methods ------------------------------------------------

    @property
    def active(self) -> bool:
        return self.method is not None

    def __call__(self, F: Callable[[npt.NDArray], npt.NDArray],
                 u: npt.NDArray, fu: npt.NDArray,
                 du: npt.NDArray) -> float:
        """
        Return the damping factor `α` for the step ``u - α·du``.

        Raises
        ------
        SolverError
            If an external backend raises an exception or returns a
            value outside (0, 1].
        """
        if self.method is None:
            return 1.0

        if callable(self.method):
            try:
                α = float(self.method(u, fu, du, F))
            except SolverError:
                raise
            except Exception as e:
                raise SolverError(f"Line search failed: {e}", flag=2,
                                  details=type(e).__name__) from e

            if not (0.0 < α <= 1.0):
                raise SolverError(f"Line search returned α = {α}, "
                                  f"expected 0 < α <= 1.", flag=1)
            return α

        return self._scipy_search(F, u, fu, du)

    # -- Private Methods -----------------------------------------------

    def _scipy_search(self, F, u, fu, du) -> float:
        phi0 = np.linalg.norm(fu) ** 2
        du_norm = np.linalg.norm(du)
        if du_norm == 0.0 or phi0 == 0.0:
            return 1.0

        u_scl = np.linalg.norm(u) / du_norm
        last = {0.0: phi0}  # Most recent phi(s) to avoid re-evaluating.

        def phi(s):
            if s in last:
                return last[s]
            with np.errstate(over='ignore', invalid='ignore'):
                val = np.linalg.norm(F(u - s * du)) ** 2
            if not np.isfinite(val):
                val = np.inf
            last.clear()
            last[s] = val
            return val

        def derphi(s):
            ds = (abs(s) + u_scl + 1) * self.rdiff
            with np.errstate(over='ignore', invalid='ignore'):
                phi_ds = np.linalg.norm(F(u - (s + ds) * du)) ** 2
            return (phi_ds - phi(s)) / ds

        if self.method == 'wolfe':
            α, _, _ = scalar_search_wolfe1(phi, derphi, phi0, xtol=1e-2,
                                           amin=self.alpha_min)
        else:
            # Exact Newton direction has phi'(0) = -2*phi0;  SciPy's
            # nonlinear solvers pass -phi0 here.
            α, _ = scalar_search_armijo(phi, phi0, -phi0,
                                        amin=self.alpha_min)

        if α is None:
            warnings.warn(f"Line search '{self.method}' failed, using "
                          f"full step.", RuntimeWarning)
            return 1.0

        return float(min(α, 1.0))
