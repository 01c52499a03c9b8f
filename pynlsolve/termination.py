from __future__ import annotations

from collections import deque
from collections.abc import Callable

import numpy as np
import numpy.typing as npt

from pynlsolve.exception import NumericalDivergence, SolverStalled

_MODES = ('abs', 'rel', 'abs_norm', 'rel_norm', 'abs_safe', 'rel_safe')


# ======================================================================

class TerminationCondition:
    """
    Convergence test applied after every step.  The object is stateful:
    it records the initial residual norm and (for the ``*_safe`` modes)
    a history of objective values, so a fresh copy is made for each
    solve (see `for_solve`).

    Parameters
    ----------
    mode : str, default = 'abs_norm'
        Convergence criterion:

        - ``'abs'``: All :math:`|F_i| \\le abstol`.
        - ``'rel'``: All :math:`|F_i| \\le reltol |F_i + u_i|`.
        - ``'abs_norm'``: :math:`\\|F\\| \\le abstol`.
        - ``'rel_norm'``: :math:`\\|F\\| \\le reltol \\|F + u\\|`.
        - ``'abs_safe'``, ``'rel_safe'``: As for the ``*_norm``
          modes, with additional protective checks.  The solve is
          stopped as diverged if :math:`\\|F\\|` exceeds
          ``protective_threshold`` times its initial value, and as
          stalled if the objective has not converged and has varied by
          less than ``min_max_factor`` over the last
          ``patience_steps`` steps while remaining above
          ``patience_objective_multiplier`` times the criterion.  The
          best iterate seen is kept and restored on these
          terminations.

    protective_threshold : float, default = 1e3
    patience_steps : int, default = 100
    patience_objective_multiplier : float, default = 3.0
    min_max_factor : float, default = 1.3
        Parameters of the ``*_safe`` modes.

    Notes
    -----
    In all modes, non-finite values in `u` or `F(u)` raise
    `NumericalDivergence`.
    """

    def __init__(self, mode: str = 'abs_norm', *,
                 protective_threshold: float = 1e3,
                 patience_steps: int = 100,
                 patience_objective_multiplier: float = 3.0,
                 min_max_factor: float = 1.3):
        if mode not in _MODES:
            raise ValueError(f"Unknown termination mode '{mode}', "
                             f"expected one of {_MODES}.")
        if patience_steps < 1:
            raise ValueError("'patience_steps' must be >= 1.")

        self.mode = mode
        self.protective_threshold = protective_threshold
        self.patience_steps = patience_steps
        self.patience_objective_multiplier = patience_objective_multiplier
        self.min_max_factor = min_max_factor

        self.abstol, self.reltol = None, None
        self.norm = np.linalg.norm
        self._init_objective = None
        self._history = None
        self.best_u, self.best_objective = None, np.inf
        self.last_good_u = None

    def __repr__(self):
        return f"TerminationCondition(mode={self.mode!r})"

    # -- Public Methods ------------------------------------------------

    @property
    def safe(self) -> bool:
        return self.mode.endswith('_safe')

    def for_solve(self, fu: npt.NDArray, u: npt.NDArray, *,
                  abstol: float, reltol: float,
                  norm: Callable = None) -> TerminationCondition:
        """
        Return a new checker with the same configuration, initialised
        for a solve starting at (`u`, `fu`).
        """
        tc = TerminationCondition(
            self.mode, protective_threshold=self.protective_threshold,
            patience_steps=self.patience_steps,
            patience_objective_multiplier=(
                self.patience_objective_multiplier),
            min_max_factor=self.min_max_factor)

        tc.abstol, tc.reltol = abstol, reltol
        if norm is not None:
            tc.norm = norm
        tc._init_objective = tc.norm(fu)
        tc._history = deque(maxlen=self.patience_steps)
        tc.best_u = np.array(u, copy=True)
        tc.best_objective = tc._init_objective
        tc.last_good_u = np.array(u, copy=True)
        return tc

    def fallback_u(self) -> npt.NDArray:
        """
        Iterate to return after a divergence or stall:  the best seen
        for ``*_safe`` modes, otherwise the last finite iterate.
        """
        if self.safe and self.best_u is not None:
            return self.best_u.copy()
        return self.last_good_u.copy()

    def check(self, fu: npt.NDArray, u: npt.NDArray,
              u_prev: npt.NDArray) -> bool:
        """
        Returns `True` if converged at (`u`, `fu`).  `u_prev` is the
        iterate before the last step.

        Raises
        ------
        NumericalDivergence
            Non-finite values, or the protective threshold exceeded
            (``*_safe`` modes).
        SolverStalled
            Patience exhausted (``*_safe`` modes).
        """
        if not (np.all(np.isfinite(fu)) and np.all(np.isfinite(u))):
            raise NumericalDivergence(
                "Non-finite values in u or F(u).", flag=1,
                step_norm=float(self.norm(u - u_prev)))

        self.last_good_u = np.array(u, copy=True)

        if self.mode == 'abs':
            return bool(np.all(np.abs(fu) <= self.abstol))

        if self.mode == 'rel':
            return bool(np.all(np.abs(fu) <= self.reltol *
                               np.abs(fu + u)))

        objective = self.norm(fu)
        if self.mode.startswith('abs'):
            criterion = self.abstol
        else:
            criterion = self.reltol * self.norm(fu + u)

        if objective <= criterion:
            return True

        if self.safe:
            self._safe_checks(objective, criterion, u)

        return False

    # -- Private Methods -----------------------------------------------

    def _safe_checks(self, objective: float, criterion: float,
                     u: npt.NDArray):
        if objective < self.best_objective:
            self.best_objective = objective
            self.best_u = np.array(u, copy=True)

        if objective > self.protective_threshold * self._init_objective:
            raise NumericalDivergence(
                "Residual norm exceeded protective threshold.", flag=2,
                objective=objective, initial=self._init_objective)

        self._history.append(objective)
        if (len(self._history) == self.patience_steps and
                objective >= self.patience_objective_multiplier *
                criterion):
            h_min, h_max = min(self._history), max(self._history)
            if h_max < self.min_max_factor * h_min:
                raise SolverStalled(
                    f"No significant progress in the last "
                    f"{self.patience_steps} steps.", flag=1,
                    objective=objective)
