"""
========================================
Algorithms (:mod:`pynlsolve.algorithms`)
========================================

.. currentmodule:: pynlsolve.algorithms

Step strategies that plug into the generic iteration loop.

.. autosummary::
    :toctree:

    NonlinearAlgorithm
    NewtonRaphson
    GaussNewton
    TrustRegion
    LevenbergMarquardt
    PseudoTransient
    DFSane
"""

from .base import NonlinearAlgorithm
from .dfsane import DFSane
from .gauss_newton import GaussNewton
from .levenberg import LevenbergMarquardt
from .newton import NewtonRaphson, NewtonTypeAlgorithm
from .pseudo_transient import PseudoTransient
from .trust_region import TrustRegion
