from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import numpy.typing as npt
import scipy.sparse as sp

from pynlsolve.algorithms.base import (NonlinearAlgorithm,
                                       make_jacobian_manager,
                                       make_linear_solver)
from pynlsolve.jacobian import JacobianManager
from pynlsolve.linsolve import LinearSolver


# ======================================================================

@dataclass
class LevenbergMarquardtState:
    jm: JacobianManager
    linsolve: LinearSolver
    λ: float
    λ_factor: float
    DᵀD: npt.NDArray  # Diagonal of the scaling matrix.
    JᵀJ: object = None
    Jᵀf: npt.NDArray = None
    v_old: npt.NDArray = None  # Last accepted velocity.
    loss_old: float = np.inf
    make_new_J: bool = True


# ----------------------------------------------------------------------

class LevenbergMarquardt(NonlinearAlgorithm):
    r"""
    Levenberg-Marquardt method for nonlinear least squares problems
    (and square systems), following Transtrum & Sethna (2012).

    Each step solves the damped normal equations for the "velocity"
    `v`:

    .. math::
        (J^T J + \lambda D^T D) v = -J^T F(u)

    where the scaling :math:`D^T D` is the running maximum of
    :math:`diag(J^T J)` (floored at `min_damping_D`).  Optionally a
    second order "geodesic acceleration" correction `a` is added,
    giving the step :math:`\delta = v + a/2`.

    A step is accepted if :math:`(1 - \beta)^{b_{uphill}}\|F(u +
    \delta)\| \le \|F(u)\|`, where :math:`\beta` is the cosine of the
    angle between `v` and the last accepted velocity.  This allows some
    uphill steps that continue in the same direction.  When geodesic
    acceleration is used, the step also requires :math:`2\|a\| /
    \|v\| \le \alpha_{geodesic}`.  Accepted steps divide the damping
    :math:`\lambda` by `damping_decrease_factor`;  rejected steps
    multiply it by `damping_increase_factor`.  A new Jacobian is only
    computed after an accepted step.

    Parameters
    ----------
    autodiff : {'2-point', '3-point', 'cs'}, default = '2-point'
        See `NewtonRaphson`.
    linsolve : str or LinearSolver, optional
        See `NewtonRaphson`.
    damping_initial : float, default = 1.0
        Initial :math:`\lambda`.
    damping_increase_factor : float, default = 2.0
    damping_decrease_factor : float, default = 3.0
    min_damping_D : float, default = 1e-8
        Minimum value of the scaling diagonal.
    geodesic_acceleration : bool, default = False
        Include the second order correction.
    finite_diff_step_geodesic : float, default = 0.1
        Step `h` along `v` for the finite difference second directional
        derivative.
    α_geodesic : float, default = 0.75
        Largest allowed ratio :math:`2\|a\| / \|v\|`.
    b_uphill : float, default = 1.0
        Exponent of the uphill acceptance criterion.
    """

    def __init__(self, *, autodiff: str = '2-point', linsolve=None,
                 damping_initial: float = 1.0,
                 damping_increase_factor: float = 2.0,
                 damping_decrease_factor: float = 3.0,
                 min_damping_D: float = 1e-8,
                 geodesic_acceleration: bool = False,
                 finite_diff_step_geodesic: float = 0.1,
                 α_geodesic: float = 0.75, b_uphill: float = 1.0):
        if damping_initial <= 0:
            raise ValueError("'damping_initial' must be > 0.")
        if damping_increase_factor <= 1 or damping_decrease_factor <= 1:
            raise ValueError("Damping increase and decrease factors must "
                             "be > 1.")
        if min_damping_D <= 0:
            raise ValueError("'min_damping_D' must be > 0.")

        self.autodiff = autodiff
        self.linsolve = linsolve
        self.damping_initial = damping_initial
        self.damping_increase_factor = damping_increase_factor
        self.damping_decrease_factor = damping_decrease_factor
        self.min_damping_D = min_damping_D
        self.geodesic_acceleration = geodesic_acceleration
        self.finite_diff_step_geodesic = finite_diff_step_geodesic
        self.α_geodesic = α_geodesic
        self.b_uphill = b_uphill

    def __repr__(self):
        return (f"LevenbergMarquardt(damping_initial="
                f"{self.damping_initial}, geodesic_acceleration="
                f"{self.geodesic_acceleration})")

    # -- Public Methods ------------------------------------------------

    def init_cache(self, cache) -> LevenbergMarquardtState:
        jm = make_jacobian_manager(cache, autodiff=self.autodiff)
        return LevenbergMarquardtState(
            jm=jm, linsolve=make_linear_solver(self.linsolve, cache),
            λ=self.damping_initial,
            λ_factor=self.damping_increase_factor,
            DᵀD=np.full(cache.u.size, self.min_damping_D),
            loss_old=float(cache.norm(cache.fu)))

    def perform_step(self, cache):
        ext: LevenbergMarquardtState = cache.ext
        u, fu = cache.u, cache.fu

        if ext.make_new_J:
            J = ext.jm.jacobian(u, fu)
            ext.JᵀJ = J.T @ J
            ext.DᵀD = np.maximum(ext.DᵀD, _diagonal(ext.JᵀJ))
            ext.make_new_J = False
        J = ext.jm.J
        ext.Jᵀf = J.T @ fu

        # Velocity.
        ext.linsolve.factorize(_damped(ext.JᵀJ, ext.λ * ext.DᵀD))
        v = -ext.linsolve.solve(ext.Jᵀf)
        v_norm = float(np.linalg.norm(v))

        # Geodesic acceleration.
        if self.geodesic_acceleration:
            h = self.finite_diff_step_geodesic
            fu_h = cache.F(u + h * v)
            if np.all(np.isfinite(fu_h)):
                rhs = (2 / h) * ((fu_h - fu) / h - J @ v)
                a = -ext.linsolve.solve(J.T @ rhs)
                geodesic_ok = (2 * np.linalg.norm(a) <=
                               self.α_geodesic * v_norm)
                δ = v + a / 2
            else:
                geodesic_ok, δ = False, v
        else:
            geodesic_ok = True
            δ = v

        accepted = False
        if geodesic_ok:
            u_trial = u + δ
            fu_trial = cache.F(u_trial)
            loss = float(cache.norm(fu_trial))

            # Cosine with the previous velocity (zero on the first step).
            if ext.v_old is None or v_norm == 0.0:
                β = 0.0
            else:
                β = float(np.dot(v, ext.v_old) /
                          (v_norm * np.linalg.norm(ext.v_old)))

            if (np.isfinite(loss) and
                    (1 - β) ** self.b_uphill * loss <= ext.loss_old):
                cache.u_prev = u
                cache.u, cache.fu, cache.du = u_trial, fu_trial, δ
                ext.v_old, ext.loss_old = v, loss
                ext.λ_factor = 1 / self.damping_decrease_factor
                ext.make_new_J = True
                accepted = True

        if not accepted:
            cache.notice(f"Step rejected: λ = {ext.λ:.4G}")

        cache.step_alpha = ext.λ
        ext.λ *= ext.λ_factor
        ext.λ_factor = self.damping_increase_factor

        cache.check_and_update()


# ----------------------------------------------------------------------

def _diagonal(A) -> npt.NDArray:
    if sp.issparse(A):
        return A.diagonal()
    return np.diag(A).copy()


def _damped(JᵀJ, d: npt.NDArray):
    if sp.issparse(JᵀJ):
        return sp.csc_matrix(JᵀJ + sp.diags(d))
    return JᵀJ + np.diag(d)
