"""
Derivative free spectral residual method.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from pynlsolve.algorithms.base import NonlinearAlgorithm, require_square
from pynlsolve.exception import SolverStalled


# Written following: La Cruz, W., Martínez, J. M. and Raydan, M.,
# "Spectral residual method without gradient information for solving
# large-scale nonlinear systems of equations", Mathematics of
# Computation, Vol. 75, No. 255, 2006, pp 1429-1448.

# ======================================================================

@dataclass
class DFSaneState:
    σ_n: float
    f_1: float  # Merit value at u0.
    history: npt.NDArray  # Last M merit values.


# ----------------------------------------------------------------------

class DFSane(NonlinearAlgorithm):
    r"""
    DF-SANE spectral residual method for square systems.  No Jacobian
    is used;  the search direction is :math:`d = -\sigma_n F(u)` with
    spectral coefficient :math:`\sigma_n = s^T s / s^T y` from the last
    step :math:`s` and residual change :math:`y`.

    Steps are found by a non-monotone line search trying :math:`u +
    \alpha_+ d` and :math:`u - \alpha_- d` in turn, accepting when the
    merit :math:`f = \|F\|^{n_{exp}}` satisfies

    .. math::
        f(u_{new}) \le \bar{f} + \eta_k - \gamma \alpha^2 f(u)

    where :math:`\bar{f}` is the largest of the last `M` merit values.
    Trial steps are reduced by safeguarded quadratic interpolation
    within :math:`[\tau_{min}\alpha, \tau_{max}\alpha]`.

    Parameters
    ----------
    σ_min, σ_max : float, default = 1e-10, 1e10
        Bounds on :math:`|\sigma_n|`.  Outside these it is reset to
        :math:`clamp(1/\|y\|, 1, 10^5)`.
    σ_1 : float, default = 1.0
        Initial spectral coefficient.
    M : int, default = 10
        Length of the merit history for the non-monotone condition.
    γ : float, default = 1e-4
        Sufficient decrease parameter.
    τ_min, τ_max : float, default = 0.1, 0.5
        Safeguards on the interpolated step reduction.
    n_exp : int, default = 2
        Exponent of the merit function.
    η_strategy : Callable, optional
        ``η_strategy(f_1, k, u, fu) -> η_k`` giving the non-monotone
        tolerance at step `k` (from 1).  Default :math:`f_1 / k^2`.
    max_inner_iterations : int, default = 1000
        Line search iteration limit.  If reached, the solve stops with
        return code ``STALLED``.
    """

    def __init__(self, *, σ_min: float = 1e-10, σ_max: float = 1e10,
                 σ_1: float = 1.0, M: int = 10, γ: float = 1e-4,
                 τ_min: float = 0.1, τ_max: float = 0.5, n_exp: int = 2,
                 η_strategy: Callable = None,
                 max_inner_iterations: int = 1000):
        if not (0 < σ_min <= σ_max):
            raise ValueError("Require 0 < σ_min <= σ_max.")
        if M < 1:
            raise ValueError("'M' must be >= 1.")
        if not (0 < τ_min <= τ_max < 1):
            raise ValueError("Require 0 < τ_min <= τ_max < 1.")
        if max_inner_iterations < 1:
            raise ValueError("'max_inner_iterations' must be >= 1.")

        self.σ_min, self.σ_max, self.σ_1 = σ_min, σ_max, σ_1
        self.M, self.γ = M, γ
        self.τ_min, self.τ_max = τ_min, τ_max
        self.n_exp = n_exp
        self.η_strategy = (η_strategy if η_strategy is not None
                           else _default_η)
        self.max_inner_iterations = max_inner_iterations

    def __repr__(self):
        return f"DFSane(σ_1={self.σ_1}, M={self.M}, n_exp={self.n_exp})"

    # -- Public Methods ------------------------------------------------

    def init_cache(self, cache) -> DFSaneState:
        require_square(self, cache)
        f_1 = self._merit(cache, cache.fu)
        return DFSaneState(σ_n=self.σ_1, f_1=f_1,
                           history=np.full(self.M, f_1))

    def perform_step(self, cache):
        ext: DFSaneState = cache.ext
        u, fu = cache.u, cache.fu
        F = cache.F

        f_old = self._merit(cache, fu)
        f_bar = np.max(ext.history)
        d = -ext.σ_n * fu
        k = cache.nsteps + 1
        η = self.η_strategy(ext.f_1, k, u, fu)

        def accept(α, f_new):
            return f_new <= f_bar + η - self.γ * α ** 2 * f_old

        α_p, α_m = 1.0, 1.0
        u_new = u + α_p * d
        fu_new = F(u_new)
        f_new = self._merit(cache, fu_new)
        α = α_p

        for _ in range(self.max_inner_iterations):
            if accept(α_p, f_new):
                α = α_p
                break

            α_tp = _interpolate(α_p, f_new, f_old)

            u_new = u - α_m * d
            fu_new = F(u_new)
            f_new = self._merit(cache, fu_new)
            if accept(α_m, f_new):
                α = -α_m
                break

            α_tm = _interpolate(α_m, f_new, f_old)
            α_p = _clamp(α_tp, self.τ_min * α_p, self.τ_max * α_p)
            α_m = _clamp(α_tm, self.τ_min * α_m, self.τ_max * α_m)

            u_new = u + α_p * d
            fu_new = F(u_new)
            f_new = self._merit(cache, fu_new)

        else:
            raise SolverStalled(
                f"Line search did not satisfy the non-monotone condition "
                f"in {self.max_inner_iterations} iterations.", flag=1,
                σ_n=ext.σ_n)

        # Spectral coefficient update.
        s, y = u_new - u, fu_new - fu
        sᵀy = np.dot(s, y)
        σ_n = np.dot(s, s) / sᵀy if sᵀy != 0 else np.inf
        if not (self.σ_min <= abs(σ_n) <= self.σ_max):
            y_norm = np.linalg.norm(y)
            σ_n = _clamp(1 / y_norm if y_norm > 0 else np.inf, 1.0, 1e5)
        ext.σ_n = float(σ_n)

        cache.u_prev = u
        cache.u, cache.fu, cache.du = u_new, fu_new, d
        cache.step_alpha = α
        ext.history[cache.nsteps % self.M] = f_new

        cache.check_and_update()

    # -- Private Methods -----------------------------------------------

    def _merit(self, cache, fu: npt.NDArray) -> float:
        with np.errstate(over='ignore', invalid='ignore'):
            f = float(np.float64(cache.norm(fu)) ** self.n_exp)
        return f if np.isfinite(f) else np.inf


# ----------------------------------------------------------------------

def _clamp(x: float, lo: float, hi: float) -> float:
    return min(max(x, lo), hi)


def _interpolate(α: float, f_new: float, f_old: float) -> float:
    # Quadratic interpolation step.  A non-positive denominator returns
    # inf, which the caller clamps to the smallest reduction.
    denom = f_new + (2 * α - 1) * f_old
    return α ** 2 * f_old / denom if denom > 0 else np.inf


def _default_η(f_1: float, k: int, u, fu) -> float:
    return f_1 / k ** 2
