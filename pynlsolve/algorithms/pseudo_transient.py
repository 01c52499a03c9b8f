from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import numpy.typing as npt
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from pynlsolve.algorithms.base import (NonlinearAlgorithm, require_square,
                                       make_jacobian_manager,
                                       make_linear_solver)
from pynlsolve.controllers import IController, estimate_error
from pynlsolve.jacobian import JacobianManager
from pynlsolve.linsolve import LinearSolver


# ======================================================================

@dataclass
class PseudoTransientState:
    jm: JacobianManager
    linsolve: LinearSolver
    controller: IController  # Per-solve copy.
    alpha: float
    alpha_prev: float
    u_prev2: npt.NDArray
    EEst: float = 0.0


# ----------------------------------------------------------------------

class PseudoTransient(NonlinearAlgorithm):
    r"""
    Pseudo-transient continuation (implicit Euler pseudo-time stepping)
    with an adaptive pseudo-time step.  Each step solves

    .. math::
        (J + I / \alpha)\,\delta u = F(u)

    and sets :math:`u \leftarrow u - \delta u`.  For small `alpha` this
    follows the pseudo-time trajectory :math:`du/dt = -F(u)` closely;
    as `alpha` grows the step approaches a Newton step.

    After each step a local error estimate `EEst` is formed from the
    last three iterates (see `estimate_error`, reduced with the RMS norm
    independently of the solve `norm`) and `alpha` is adjusted
    by an `IController`.  A rejected step is *not* undone;  only
    `alpha` is reduced to the controller's rollback value.

    Parameters
    ----------
    alpha_initial : float, default = 1e-3
        Initial pseudo-time step.
    controller : IController, optional
        Step size controller configuration.  Default
        ``IController()``.  Each solve uses its own copy.
    autodiff, concrete_jac, linsolve :
        As for `NewtonRaphson`.
    """

    def __init__(self, *, alpha_initial: float = 1e-3,
                 controller: IController = None,
                 autodiff: str = '2-point', concrete_jac: bool = True,
                 linsolve=None):
        if not alpha_initial > 0:
            raise ValueError("'alpha_initial' must be > 0.")

        self.alpha_initial = alpha_initial
        self.controller = (controller if controller is not None
                           else IController())
        self.autodiff = autodiff
        self.concrete_jac = concrete_jac
        self.linsolve = linsolve

    def __repr__(self):
        return (f"PseudoTransient(alpha_initial={self.alpha_initial}, "
                f"controller={self.controller!r})")

    # -- Public Methods ------------------------------------------------

    def init_cache(self, cache) -> PseudoTransientState:
        require_square(self, cache)
        jm = make_jacobian_manager(cache, autodiff=self.autodiff,
                                   concrete_jac=self.concrete_jac)
        ls = make_linear_solver(self.linsolve, cache,
                                matrix_free=jm.matrix_free)
        return PseudoTransientState(
            jm=jm, linsolve=ls, controller=self.controller.copy(),
            alpha=self.alpha_initial, alpha_prev=self.alpha_initial,
            u_prev2=cache.u.copy())

    def perform_step(self, cache):
        ext: PseudoTransientState = cache.ext
        u, fu = cache.u, cache.fu

        J = ext.jm.jacobian(u, fu)
        ext.linsolve.factorize(_shifted(J, 1 / ext.alpha))
        du = ext.linsolve.solve(fu)

        cache.u_prev = u
        cache.u = u - du
        cache.du, cache.step_alpha = du, ext.alpha
        cache.fu = cache.F(cache.u)

        if cache.check_and_update():
            return

        # Error estimate and controller update, then shift the buffers.
        ctrl = ext.controller
        ext.EEst = estimate_error(cache.u, cache.u_prev, ext.u_prev2,
                                  ext.alpha, ext.alpha_prev,
                                  ctrl.abstol, ctrl.reltol)
        alpha_new, accepted = ctrl.update(ext.EEst, ext.alpha)
        if not accepted:
            cache.notice(f"Pseudo-time step rejected: EEst = "
                         f"{ext.EEst:.4G}, α -> {alpha_new:.4G}")

        ext.u_prev2 = cache.u_prev
        ext.alpha_prev, ext.alpha = ext.alpha, alpha_new


# ----------------------------------------------------------------------

def _shifted(J, shift: float):
    """Return ``J + shift·I`` in the same form as `J`."""
    n = J.shape[0]
    if isinstance(J, spla.LinearOperator):
        return spla.LinearOperator(
            J.shape, matvec=lambda v: J @ v + shift * v, dtype=J.dtype)
    if sp.issparse(J):
        return sp.csc_matrix(J + shift * sp.identity(n, format='csc'))
    return J + shift * np.eye(n)
