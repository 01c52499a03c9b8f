"""
Step size and trust region controllers.

These decide whether a proposed step is acceptable and how the
controlling scalar (pseudo-time step `alpha` or trust radius) changes
as a result.  Controller objects given to algorithms are configuration
only;  each solve works on its own copy (see `IController.copy`).
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from enum import Enum

import numpy as np
import numpy.typing as npt

from pynlsolve.exception import SolverStalled


# ======================================================================

class IController:
    r"""
    Integral (I) step size controller for pseudo-transient
    continuation, in the manner of adaptive ODE integrator controllers.
    Each step the local error estimate `EEst` gives a gain `q` and the
    pseudo-time step is updated as :math:`\alpha \leftarrow \alpha /
    q`.

    Parameters
    ----------
    qmin, qmax : float, default = 0.2, 10.0
        Limits on the change of `alpha` in one step, i.e. the gain `q`
        is clamped to :math:`[1/q_{max}, 1/q_{min}]`.
    qsteady_min, qsteady_max : float, default = 1.0, 1.0
        Steady band.  If an accepted step gives `q` within this band
        `alpha` is left unchanged.
    gamma : float, default = 0.9
        Safety factor, :math:`q = EEst / \gamma`.
    qold : float, default = 1e-4
        Rollback value of `alpha` used on rejection.  Replaced by
        :math:`\alpha / q` whenever a nonzero `EEst` is processed.
    abstol, reltol : float, default = 1e-6, 1e-3
        Tolerances used to scale the error estimate (see
        `estimate_error`).
    """

    def __init__(self, *, qmin: float = 0.2, qmax: float = 10.0,
                 qsteady_min: float = 1.0, qsteady_max: float = 1.0,
                 gamma: float = 0.9, qold: float = 1e-4,
                 abstol: float = 1e-6, reltol: float = 1e-3):
        if not (0 < qmin <= 1 <= qmax):
            raise ValueError("Require 0 < qmin <= 1 <= qmax.")
        if qsteady_min > qsteady_max:
            raise ValueError("Require qsteady_min <= qsteady_max.")
        if gamma <= 0:
            raise ValueError("'gamma' must be > 0.")
        if abstol < 0 or reltol < 0 or abstol + reltol <= 0:
            raise ValueError("Invalid error estimate tolerances.")

        self.qmin, self.qmax = qmin, qmax
        self.qsteady_min, self.qsteady_max = qsteady_min, qsteady_max
        self.gamma, self.qold = gamma, qold
        self.abstol, self.reltol = abstol, reltol

    def __repr__(self):
        return (f"IController(qmin={self.qmin}, qmax={self.qmax}, "
                f"qsteady_min={self.qsteady_min}, "
                f"qsteady_max={self.qsteady_max}, gamma={self.gamma}, "
                f"qold={self.qold})")

    # -- Public Methods ------------------------------------------------

    def copy(self) -> IController:
        """Independent copy holding per-solve state (`qold`)."""
        return copy.copy(self)

    def stepsize(self, EEst: float, alpha: float) -> float:
        """
        Compute the gain `q` for error estimate `EEst`.  If `EEst` is
        nonzero, this also records the rollback value
        ``qold = alpha / q``.
        """
        if EEst == 0:
            return 1 / self.qmax

        q = min(max(EEst / self.gamma, 1 / self.qmax), 1 / self.qmin)
        self.qold = alpha / q
        return q

    @staticmethod
    def accept(EEst: float) -> bool:
        return EEst <= 1

    def step_accept(self, alpha: float, q: float) -> float:
        """New `alpha` after an accepted step."""
        if self.qsteady_min <= q <= self.qsteady_max:
            q = 1.0
        return alpha / q

    def step_reject(self) -> float:
        """New `alpha` after a rejected step:  the stored rollback
        value."""
        return self.qold

    def update(self, EEst: float, alpha: float) -> tuple[float, bool]:
        """
        Full controller update for one step, returning the new `alpha`
        and whether the step was accepted.  The order is fixed: gain
        (which also records `qold`), then the accept / reject decision,
        then the corresponding transform.
        """
        q = self.stepsize(EEst, alpha)
        if self.accept(EEst):
            return self.step_accept(alpha, q), True
        else:
            return self.step_reject(), False


def rms_norm(x: npt.NDArray) -> float:
    r"""Root mean square norm, :math:`\|x\|_2 / \sqrt{n}`."""
    x = np.ravel(x)
    return float(np.sqrt(np.mean(np.abs(x) ** 2))) if x.size else 0.0


def estimate_error(u: npt.NDArray, u_prev: npt.NDArray,
                   u_prev2: npt.NDArray, alpha: float, alpha_prev: float,
                   abstol: float, reltol: float,
                   norm: Callable = rms_norm) -> float:
    r"""
    Local error estimate for pseudo-transient continuation from the
    last three iterates and last two pseudo-time steps.  This is the
    scaled difference of consecutive secant slopes:

    .. math::
        tmp_i = \tfrac{7}{12}\alpha^2 \left|
            \frac{u_i - u^{prev}_i}{\alpha(\alpha + \alpha_{prev})} -
            \frac{u^{prev}_i - u^{prev2}_i}
                 {\alpha_{prev}(\alpha + \alpha_{prev})}\right|

    normalised component-wise by :math:`abstol + reltol
    \max(|u^{prev}_i|, |u_i|)` and reduced with `norm`.  The default
    RMS norm makes `EEst` independent of the number of unknowns, as
    for adaptive ODE integrators.
    """
    alpha1 = alpha * (alpha + alpha_prev)
    alpha2 = alpha_prev * (alpha + alpha_prev)
    r = (7 / 12) * alpha ** 2

    tmp = r * np.abs((u - u_prev) / alpha1 - (u_prev - u_prev2) / alpha2)
    scale = abstol + reltol * np.maximum(np.abs(u_prev), np.abs(u))
    return float(norm(tmp / scale))


# ======================================================================

class RadiusUpdateSchemes(Enum):
    """
    Trust region radius update rules.

    - `SIMPLE`: Fixed shrink / expand factors on ratio thresholds.
    - `NLSOLVE`: Halve on poor agreement, :math:`\\max(r, 2\\|δ\\|)` on
      good agreement (as used by NLsolve / MINPACK-style codes).
    - `HEI`: Smooth radius function of the ratio (Hei, 2003).
    """
    SIMPLE = 'simple'
    NLSOLVE = 'nlsolve'
    HEI = 'hei'


class TrustRadiusController:
    """
    Trust region radius management.  `update` is called with the ratio
    `rho` of actual to predicted reduction and the length of the trial
    step, adjusts the radius and returns whether the step is accepted.

    Parameters
    ----------
    scheme : RadiusUpdateSchemes, default = SIMPLE
    max_trust_radius : float, optional
        Upper limit on the radius.  Default is
        :math:`\\max(\\|F(u_0)\\|, \\max u_0 - \\min u_0)`.
    initial_trust_radius : float, optional
        Default is ``max_trust_radius / 11`` (or :math:`\\|u_0\\|` for
        `NLSOLVE`).
    step_threshold : float, optional
        Steps with ``rho`` at or below this are rejected.  Default 1e-4
        (0.05 for `NLSOLVE`).
    shrink_threshold, expand_threshold : float, default = 0.25, 0.75
    shrink_factor, expand_factor : float, default = 0.25, 2.0
    max_shrink_times : int, default = 32
        Consecutive shrinks allowed before the solve is stopped as
        stalled.
    """

    def __init__(self, scheme: RadiusUpdateSchemes = RadiusUpdateSchemes.SIMPLE,
                 *, max_trust_radius: float = None,
                 initial_trust_radius: float = None,
                 step_threshold: float = None,
                 shrink_threshold: float = 0.25,
                 expand_threshold: float = 0.75,
                 shrink_factor: float = 0.25, expand_factor: float = 2.0,
                 max_shrink_times: int = 32):
        self.scheme = RadiusUpdateSchemes(scheme)
        if step_threshold is None:
            step_threshold = (0.05 if self.scheme is
                              RadiusUpdateSchemes.NLSOLVE else 1e-4)
        if not (0 <= step_threshold < shrink_threshold < expand_threshold):
            raise ValueError("Require 0 <= step_threshold < "
                             "shrink_threshold < expand_threshold.")
        if not (0 < shrink_factor < 1 < expand_factor):
            raise ValueError("Require 0 < shrink_factor < 1 < "
                             "expand_factor.")

        self.max_trust_radius = max_trust_radius
        self.initial_trust_radius = initial_trust_radius
        self.step_threshold = step_threshold
        self.shrink_threshold = shrink_threshold
        self.expand_threshold = expand_threshold
        self.shrink_factor = shrink_factor
        self.expand_factor = expand_factor
        self.max_shrink_times = max_shrink_times

        self.radius = None
        self.shrink_counter = 0

        # Parameters of the Hei radius function.
        self._hei_M, self._hei_β = 5.0, 0.1
        self._hei_γ1, self._hei_γ2 = 0.15, 0.15

    # -- Public Methods ------------------------------------------------

    def for_solve(self, u0: npt.NDArray,
                  fu0_norm: float) -> TrustRadiusController:
        """Return a copy with the radius initialised for a new solve."""
        tr = copy.copy(self)
        max_r = self.max_trust_radius
        if max_r is None:
            max_r = max(fu0_norm, float(np.max(u0) - np.min(u0)))
            if not max_r > 0:
                max_r = 1.0
        tr.max_trust_radius = max_r

        init_r = self.initial_trust_radius
        if init_r is None:
            if self.scheme is RadiusUpdateSchemes.NLSOLVE:
                init_r = float(np.linalg.norm(u0)) or 1.0
                init_r = min(init_r, max_r)
            else:
                init_r = max_r / 11
        tr.radius = init_r
        tr.shrink_counter = 0
        return tr

    def update(self, rho: float, step_norm: float) -> bool:
        """
        Adjust the radius for a trial step with reduction ratio `rho`
        and length `step_norm`.  Returns `True` if the step is to be
        accepted.

        Raises
        ------
        SolverStalled
            If the radius has been shrunk more than `max_shrink_times`
            consecutive times.
        """
        if not np.isfinite(rho):
            rho = -np.inf

        if self.scheme is RadiusUpdateSchemes.SIMPLE:
            if rho < self.shrink_threshold:
                self._shrink(self.shrink_factor * self.radius)
            else:
                self.shrink_counter = 0
                on_boundary = (abs(step_norm - self.radius) <
                               1e-6 * self.radius)
                if rho > self.expand_threshold and on_boundary:
                    self.radius = min(self.expand_factor * self.radius,
                                      self.max_trust_radius)

        elif self.scheme is RadiusUpdateSchemes.NLSOLVE:
            if rho < 0.25:
                self._shrink(0.5 * self.radius)
            else:
                self.shrink_counter = 0
                if rho >= 0.75:
                    self.radius = min(max(self.radius, 2 * step_norm),
                                      self.max_trust_radius)

        else:
            new_r = self._hei_rfunc(rho) * step_norm
            if rho < self.shrink_threshold:
                self._shrink(min(new_r, self.shrink_factor * self.radius))
            else:
                self.shrink_counter = 0
                self.radius = min(max(new_r, 1e-3 * self.radius),
                                  self.max_trust_radius)

        return rho > self.step_threshold

    # -- Private Methods -----------------------------------------------

    def _shrink(self, new_radius: float):
        self.radius = new_radius
        self.shrink_counter += 1
        if self.shrink_counter > self.max_shrink_times:
            raise SolverStalled(
                f"Trust region shrunk {self.shrink_counter} consecutive "
                f"times.", flag=1, radius=self.radius)

    def _hei_rfunc(self, rho: float) -> float:
        M, β, γ1, γ2 = self._hei_M, self._hei_β, self._hei_γ1, self._hei_γ2
        c2 = self.shrink_threshold
        if rho >= c2:
            return 2 * (M - 1 - γ2) * np.arctan(rho - c2) / np.pi + 1 + γ2
        else:
            return (1 - γ1 - β) * np.exp(rho - c2) + β
