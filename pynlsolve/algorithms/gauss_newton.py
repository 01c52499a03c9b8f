from __future__ import annotations

import numpy.typing as npt

from pynlsolve.algorithms.newton import NewtonTypeAlgorithm


# ======================================================================

class GaussNewton(NewtonTypeAlgorithm):
    """
    Gauss-Newton method for nonlinear least squares problems (and
    square systems).  Each step solves the normal equations
    :math:`J^T J \\delta u = J^T F(u)` without damping, then sets
    :math:`u \\leftarrow u - \\alpha \\delta u`.

    A singular (rank deficient) :math:`J^T J` stops the solve with
    return code ``FAILURE``.

    Parameters
    ----------
    autodiff, linsolve, linesearch, reuse, reusetol :
        As for `NewtonRaphson`.  A concrete Jacobian is always formed.
    """

    def __init__(self, *, autodiff: str = '2-point', linsolve=None,
                 linesearch=None, reuse: bool = False,
                 reusetol: float = 0.1):
        super().__init__(autodiff=autodiff, concrete_jac=True,
                         linsolve=linsolve, linesearch=linesearch,
                         reuse=reuse, reusetol=reusetol)

    # -- Private Methods -----------------------------------------------

    def _system_matrix(self, J):
        return J.T @ J

    def _system_rhs(self, J, fu: npt.NDArray) -> npt.NDArray:
        return J.T @ fu
