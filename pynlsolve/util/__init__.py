"""
==================================
Utilities (:mod:`pynlsolve.util`)
==================================

.. currentmodule:: pynlsolve.util

Display helpers used for solver progress output.

.. autosummary::
    :toctree:

    FormatStyle
    PrintStyles
    PrintStylesMixin
    ruled_line
    sci2str
    vec2str
"""

from .print_styles import (
    FormatStyle, PrintStyles, PrintStylesMixin,
    AddDotStyle, AddStarStyle,
    ruled_line, sci2str, vec2str)
