from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from pynlsolve.algorithms.base import (NonlinearAlgorithm, require_square,
                                       make_jacobian_manager,
                                       make_linear_solver, make_linesearch)
from pynlsolve.jacobian import JacobianManager
from pynlsolve.linesearch import LineSearch
from pynlsolve.linsolve import LinearSolver


# ======================================================================

@dataclass
class NewtonState:
    """Working state of `NewtonRaphson` and `GaussNewton`."""
    jm: JacobianManager
    linsolve: LinearSolver
    linesearch: LineSearch
    Δu: npt.NDArray  # Accumulated step since the last Jacobian rebuild.
    res_norm_prev: float


# ----------------------------------------------------------------------

class NewtonTypeAlgorithm(NonlinearAlgorithm):
    """
    Shared step for the Newton family.  Each step solves a linear
    system built from the Jacobian `J` and residual `fu` for the
    direction `du` and moves to ``u - α·du``, with `α` supplied by the
    line search.

    The Jacobian reuse policy is applied here:  a new `J` (and
    factorisation) is only made when the policy calls for it, otherwise
    the stored factorisation is used again.
    """

    def __init__(self, *, autodiff: str = '2-point',
                 concrete_jac: bool = True, linsolve=None,
                 linesearch=None, reuse: bool = False,
                 reusetol: float = 0.1):
        if reusetol < 0:
            raise ValueError("'reusetol' must be >= 0.")

        self.autodiff = autodiff
        self.concrete_jac = concrete_jac
        self.linsolve = linsolve
        self.linesearch = make_linesearch(linesearch)
        self.reuse, self.reusetol = reuse, reusetol

    def __repr__(self):
        return (f"{self.name}(autodiff={self.autodiff!r}, "
                f"linesearch={self.linesearch!r}, reuse={self.reuse})")

    # -- Public Methods ------------------------------------------------

    def init_cache(self, cache) -> NewtonState:
        jm = make_jacobian_manager(cache, autodiff=self.autodiff,
                                   concrete_jac=self.concrete_jac,
                                   reuse=self.reuse,
                                   reusetol=self.reusetol)
        ls = make_linear_solver(self.linsolve, cache,
                                matrix_free=jm.matrix_free)
        return NewtonState(jm=jm, linsolve=ls, linesearch=self.linesearch,
                           Δu=np.zeros_like(cache.u),
                           res_norm_prev=float(cache.norm(cache.fu)))

    def perform_step(self, cache):
        ext: NewtonState = cache.ext
        u, fu = cache.u, cache.fu

        res_norm = float(cache.norm(fu))
        if ext.jm.needs_rebuild(res_norm, ext.res_norm_prev,
                                float(cache.norm(ext.Δu))):
            J = ext.jm.jacobian(u, fu)
            ext.linsolve.factorize(self._system_matrix(J))
            ext.Δu = np.zeros_like(u)
        ext.res_norm_prev = res_norm

        du = ext.linsolve.solve(self._system_rhs(ext.jm.J, fu))

        α = (ext.linesearch(cache.F, u, fu, du) if ext.linesearch.active
             else 1.0)
        cache.u_prev = u
        cache.u = u - α * du
        cache.du, cache.step_alpha = du, α
        cache.fu = cache.F(cache.u)

        ext.Δu += cache.u - cache.u_prev
        cache.check_and_update()

    # -- Private Methods -----------------------------------------------

    def _system_matrix(self, J):
        return J

    def _system_rhs(self, J, fu: npt.NDArray) -> npt.NDArray:
        return fu


# ----------------------------------------------------------------------

class NewtonRaphson(NewtonTypeAlgorithm):
    """
    Newton-Raphson method for square systems, solving :math:`J \\delta u
    = F(u)` each step and setting :math:`u \\leftarrow u - \\alpha
    \\delta u`.

    Parameters
    ----------
    autodiff : {'2-point', '3-point', 'cs'}, default = '2-point'
        Differentiation scheme used when the problem has no analytic
        Jacobian.  See `JacobianManager`.
    concrete_jac : bool, default = True
        If `False` the Jacobian is never formed;  the linear systems
        are solved by GMRES using finite difference Jacobian-vector
        products.
    linsolve : str or LinearSolver, optional
        Linear solve method (``'lu'``, ``'splu'``, ``'gmres'``,
        ``'lstsq'``) or a configured `LinearSolver`.  Default is chosen
        from the type of Jacobian.
    linesearch : str, Callable or LineSearch, optional
        Line search used to damp the step.  Default is the full step.
    reuse : bool, default = False
        Reuse the Jacobian (and its factorisation) between steps.  A new
        Jacobian is taken if the residual norm increases or the
        accumulated step since the last one exceeds `reusetol`.
    reusetol : float, default = 0.1
        See `reuse`.
    """

    def init_cache(self, cache) -> NewtonState:
        require_square(self, cache)
        return super().init_cache(cache)
