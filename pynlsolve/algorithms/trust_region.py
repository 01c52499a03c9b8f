from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from pynlsolve.algorithms.base import (NonlinearAlgorithm,
                                       make_jacobian_manager,
                                       make_linear_solver)
from pynlsolve.controllers import RadiusUpdateSchemes, TrustRadiusController
from pynlsolve.jacobian import JacobianManager
from pynlsolve.linsolve import LinearSolver


# ======================================================================

@dataclass
class TrustRegionState:
    jm: JacobianManager
    linsolve: LinearSolver
    radius: TrustRadiusController
    make_new_J: bool = True
    δN: npt.NDArray = None  # Newton (or least squares) step.
    g: npt.NDArray = None  # Gradient Jᵀ·F of ½||F||².
    Jg: npt.NDArray = None


# ----------------------------------------------------------------------

class TrustRegion(NonlinearAlgorithm):
    """
    Dogleg trust region method.  Each step combines the Newton step
    (minimum norm least squares step for non-square systems) and the
    Cauchy point :math:`-(\\|g\\|^2 / \\|Jg\\|^2) g`, where :math:`g =
    J^T F(u)`, into a step of length no greater than the trust radius.
    The step is accepted or rejected based on the ratio of actual to
    predicted reduction in :math:`½\\|F\\|^2`:

    .. math::
        \\rho = \\frac{½\\|F(u)\\|^2 - ½\\|F(u + \\delta)\\|^2}
                      {½\\|F(u)\\|^2 - ½\\|F(u) + J\\delta\\|^2}

    and the radius is updated by a `TrustRadiusController`.  A new
    Jacobian is only computed after an accepted step.

    Parameters
    ----------
    radius_update_scheme : RadiusUpdateSchemes or str, default = SIMPLE
        Radius update rule.
    autodiff : {'2-point', '3-point', 'cs'}, default = '2-point'
        See `NewtonRaphson`.
    linsolve : str or LinearSolver, optional
        See `NewtonRaphson`.
    max_trust_radius, initial_trust_radius, step_threshold,
    shrink_threshold, expand_threshold, shrink_factor, expand_factor,
    max_shrink_times :
        See `TrustRadiusController`.
    """

    def __init__(self, radius_update_scheme=RadiusUpdateSchemes.SIMPLE, *,
                 autodiff: str = '2-point', linsolve=None,
                 max_trust_radius: float = None,
                 initial_trust_radius: float = None,
                 step_threshold: float = None,
                 shrink_threshold: float = 0.25,
                 expand_threshold: float = 0.75,
                 shrink_factor: float = 0.25, expand_factor: float = 2.0,
                 max_shrink_times: int = 32):
        self.autodiff = autodiff
        self.linsolve = linsolve
        self.radius_controller = TrustRadiusController(
            radius_update_scheme, max_trust_radius=max_trust_radius,
            initial_trust_radius=initial_trust_radius,
            step_threshold=step_threshold,
            shrink_threshold=shrink_threshold,
            expand_threshold=expand_threshold, shrink_factor=shrink_factor,
            expand_factor=expand_factor, max_shrink_times=max_shrink_times)

    def __repr__(self):
        return (f"TrustRegion(radius_update_scheme="
                f"{self.radius_controller.scheme.name})")

    # -- Public Methods ------------------------------------------------

    def init_cache(self, cache) -> TrustRegionState:
        jm = make_jacobian_manager(cache, autodiff=self.autodiff)
        return TrustRegionState(
            jm=jm, linsolve=make_linear_solver(self.linsolve, cache),
            radius=self.radius_controller.for_solve(
                cache.u, float(np.linalg.norm(cache.fu))))

    def perform_step(self, cache):
        ext: TrustRegionState = cache.ext
        u, fu = cache.u, cache.fu

        if ext.make_new_J:
            J = ext.jm.jacobian(u, fu)
            ext.linsolve.factorize(J)
            ext.δN = -ext.linsolve.solve(fu)
            ext.g = J.T @ fu
            ext.Jg = J @ ext.g
            ext.make_new_J = False

        J = ext.jm.J
        δ = _dogleg(ext.δN, ext.g, ext.Jg, ext.radius.radius)
        δ_norm = float(np.linalg.norm(δ))

        u_trial = u + δ
        fu_trial = cache.F(u_trial)

        # Reduction ratio.
        loss = 0.5 * np.linalg.norm(fu) ** 2
        with np.errstate(over='ignore', invalid='ignore'):
            actual = loss - 0.5 * np.linalg.norm(fu_trial) ** 2
        predicted = loss - 0.5 * np.linalg.norm(fu + J @ δ) ** 2
        if predicted > 0:
            rho = actual / predicted
        else:
            rho = -np.inf

        accept = ext.radius.update(rho, δ_norm)
        cache.step_alpha = ext.radius.radius
        if accept:
            cache.u_prev = u
            cache.u, cache.fu, cache.du = u_trial, fu_trial, δ
            ext.make_new_J = True
        else:
            cache.notice(f"Step rejected: ρ = {rho:.4G}, trust radius -> "
                         f"{ext.radius.radius:.4G}")

        cache.check_and_update()


# ----------------------------------------------------------------------

def _dogleg(δN: npt.NDArray, g: npt.NDArray, Jg: npt.NDArray,
            radius: float) -> npt.NDArray:
    # Newton step inside the region.
    δN_norm = np.linalg.norm(δN)
    if δN_norm <= radius:
        return δN

    g_norm = np.linalg.norm(g)
    Jg_norm2 = np.dot(Jg, Jg)
    if g_norm == 0.0 or Jg_norm2 == 0.0:
        return δN * (radius / δN_norm)

    # Cauchy point outside the region:  steepest descent to the boundary.
    δC = -(g_norm ** 2 / Jg_norm2) * g
    δC_norm = np.linalg.norm(δC)
    if δC_norm >= radius:
        return -(radius / g_norm) * g

    # Otherwise find τ in [0, 1] with ||δC + τ(δN - δC)|| = radius.
    d = δN - δC
    a = np.dot(d, d)
    b = 2 * np.dot(δC, d)
    c = δC_norm ** 2 - radius ** 2
    τ = (-b + np.sqrt(b ** 2 - 4 * a * c)) / (2 * a)
    return δC + τ * d
