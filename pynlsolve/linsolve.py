"""
Linear solve backends.

A `LinearSolver` is a reusable *handle*: `factorize` is called when a
new matrix is available and `solve` may then be called any number of
times, re-using the stored factorisation.  This is what allows the
Jacobian reuse policy to skip both the Jacobian construction and the
factorisation on steps where the old Jacobian is retained.
"""

from __future__ import annotations

import warnings

import numpy as np
import numpy.typing as npt
import scipy.linalg as sla
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from pynlsolve.exception import LinearSolveSingular
from pynlsolve.solution import NLStats

_METHODS = ('lu', 'splu', 'gmres', 'lstsq')


# ======================================================================

class LinearSolver:
    """
    Handle for solving :math:`Ax = b` with a retained factorisation.

    Parameters
    ----------
    method : {'lu', 'splu', 'gmres', 'lstsq'}, optional
        Backend to use:

        - ``'lu'``: Dense LU factorisation (`scipy.linalg.lu_factor`).
        - ``'splu'``: Sparse LU factorisation
          (`scipy.sparse.linalg.splu`).
        - ``'gmres'``: Restarted GMRES Krylov iteration
          (`scipy.sparse.linalg.gmres`).  Works with matrix-free
          `LinearOperator` matrices.  Each solve is warm-started from
          the previous solution.
        - ``'lstsq'``: Minimum norm least squares solution
          (`scipy.linalg.lstsq`), also suitable for non-square `A`.

        If `None` (default) the method is chosen from the first matrix
        given: ``'lstsq'`` if non-square, ``'gmres'`` for operators,
        ``'splu'`` for sparse matrices, otherwise ``'lu'``.

    rtol : float, default = 1e-8
        Relative tolerance for ``'gmres'``.
    restart, maxiter : int, optional
        Passed to GMRES.
    stats : NLStats, optional
        Statistics record; factorisations and solves are counted in
        ``nfactors`` and ``nsolve``.
    """

    def __init__(self, method: str = None, *, rtol: float = 1e-8,
                 restart: int = None, maxiter: int = None,
                 stats: NLStats = None):
        if method is not None and method not in _METHODS:
            raise ValueError(f"Unknown linear solve method '{method}', "
                             f"expected one of {_METHODS}.")
        self.method = method
        self.rtol, self.restart, self.maxiter = rtol, restart, maxiter
        self.stats = stats if stats is not None else NLStats()

        self._A = None
        self._factors = None
        self._x_last = None

    # -- Public Methods ------------------------------------------------

    @property
    def has_matrix(self) -> bool:
        return self._A is not None

    def factorize(self, A):
        """
        Store `A` and factorise it for subsequent solves.

        Raises
        ------
        LinearSolveSingular
            If `A` is found to be singular.
        """
        if self.method is None:
            self.method = _default_method(A)

        self._A = A
        self._factors = None
        if self.method == 'lu':
            self._factors = _lu_factor(_dense(A))
            self.stats.nfactors += 1

        elif self.method == 'splu':
            try:
                self._factors = spla.splu(sp.csc_matrix(A))
            except RuntimeError as e:  # "Factor is exactly singular"
                raise LinearSolveSingular(
                    "Sparse LU factorisation failed.", flag=1,
                    details=str(e)) from e
            self.stats.nfactors += 1

        elif self.method == 'gmres':
            # Nothing to factorise;  a new operator resets the warm start
            # only if the size changes.
            if (self._x_last is not None and
                    self._x_last.shape[0] != A.shape[1]):
                self._x_last = None

        elif self.method == 'lstsq':
            self._factors = _dense(A)

    def solve(self, b: npt.NDArray) -> npt.NDArray:
        """
        Solve :math:`Ax = b` using the most recently factorised `A`.

        Raises
        ------
        LinearSolveSingular
            If the system could not be solved or the solution contained
            non-finite values.
        """
        if not self.has_matrix:
            raise RuntimeError("factorize() must be called before "
                               "solve().")

        self.stats.nsolve += 1
        if self.method == 'lu':
            x = sla.lu_solve(self._factors, b, check_finite=False)

        elif self.method == 'splu':
            x = self._factors.solve(np.asarray(b))

        elif self.method == 'gmres':
            x, info = spla.gmres(self._A, b, x0=self._x_last,
                                 rtol=self.rtol, atol=0.0,
                                 restart=self.restart,
                                 maxiter=self.maxiter)
            if info < 0:
                raise LinearSolveSingular(
                    "GMRES breakdown (illegal input or singular "
                    "operator).", flag=2, details=f"info = {info}")
            if info > 0:
                warnings.warn(f"GMRES did not reach rtol = {self.rtol:.3G} "
                              f"after {info} iterations.", RuntimeWarning)

        else:
            x = sla.lstsq(self._factors, b)[0]

        if not np.all(np.isfinite(x)):
            raise LinearSolveSingular("Linear solve gave non-finite "
                                      "values.", flag=3)

        self._x_last = np.array(x, copy=True)
        return x


# ----------------------------------------------------------------------

def _default_method(A) -> str:
    if A.shape[0] != A.shape[1]:
        return 'lstsq'
    if isinstance(A, spla.LinearOperator):
        return 'gmres'
    if sp.issparse(A):
        return 'splu'
    return 'lu'


def _dense(A) -> npt.NDArray:
    if sp.issparse(A):
        return A.toarray()
    if isinstance(A, spla.LinearOperator):
        raise TypeError(f"A concrete matrix is required for this linear "
                        f"solve method, got {type(A).__name__}.")
    return np.atleast_2d(np.asarray(A))


def _lu_factor(A: npt.NDArray):
    # A zero (or negligible) pivot means A is singular to working
    # precision.  SciPy only warns in this case, so it is checked here.
    n = A.shape[0]
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', sla.LinAlgWarning)
        lu, piv = sla.lu_factor(A, check_finite=False)

    diag = np.abs(np.diag(lu))
    d_max = np.max(diag) if diag.size else 0.0
    tiny = n * np.finfo(float).eps * d_max
    if d_max == 0.0 or np.any(diag <= tiny) or not np.isfinite(d_max):
        raise LinearSolveSingular(
            "Matrix is singular to working precision.", flag=1,
            details=f"min |U_ii| = {np.min(diag):.3E}, "
                    f"max |U_ii| = {d_max:.3E}")

    return lu, piv
