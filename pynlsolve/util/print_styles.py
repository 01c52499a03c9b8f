from __future__ import annotations

import math
import warnings

import numpy as np


# ======================================================================


class FormatStyle:
    """
    `FormatStyle` defines a base class for discrete formatting
    operations that can be applied to a string. The style may optionally
    incoporate features of a linked parent style.

    Derived classes provide their own implementation of the `apply(s)`
    method to accomplish the formatting.

    Parameters
    ----------
    parent : FormatStyle, Optional
        The parent style, if any.
    """

    def __init__(self, parent: FormatStyle = None):
        self.parent = parent

    # -- Public Methods ------------------------------------------------

    def apply(self, s: str) -> str:
        """
        Format or modify `s`, as well as applying any formatting from
        parent styles if desired.  At the base level this returns `s`
        unchanged.
        """
        return s

    @property
    def level(self) -> int:
        """
        Returns the level of this `FormatStyle` object in the tree
        of styles.  The top (root) style has a level of 1.
        """
        if self.parent:
            return self.parent.level + 1
        else:
            return 1


# ----------------------------------------------------------------------

class PrintStyles:
    """
    `PrintStyles` holds an organised collection of `FormatStyle` objects
    that may include parent / child relationships.  Solvers use these
    to print progress at different levels of detail.

    Parameters
    ----------
    display_level : int, default = 0
        Lowest number style level to display.  The highest level is
        **1**. Setting ``display_level=0`` will suppress output.

    Examples
    --------
    A two level hierarchy such as used by the solver cache, with
    iteration lines indented below the heading:
    >>> fmt = PrintStyles(display_level=2)
    >>> fmt.add('solver', FormatStyle())  # Level 1.
    >>> fmt.add('iteration', AddDotStyle(), parent='solver')  # Level 2.
    >>> fmt.print('solver', "NewtonRaphson - Solving 2 Equations:")
    NewtonRaphson - Solving 2 Equations:

    >>> fmt.apply('iteration', "Iteration 1: ||F(u)|| = 3.0E+00")
    '... Iteration 1: ||F(u)|| = 3.0E+00'

    Reducing the display level hides the lower level:
    >>> fmt.display_level = 1
    >>> fmt.print('iteration', "Iteration 2: ||F(u)|| = 1.1E-01")
    """

    def __init__(self, display_level: int = 0):
        self.display_level = display_level
        self._styles: dict[str, FormatStyle] = {}  # Flat file.

    # -- Public Methods ------------------------------------------------

    def add(self, name: str, style: FormatStyle, parent: str = None):
        """
        Adds a new style to the collection of formatting styles.

        Parameters
        ----------
        name : str
            Name of added style.
        style : FormatStyle
            Style object.
        parent : str, Optional
            Name of parent style (to insert below).

        Raises
        ------
        ValueError
            If `name` already exists or `parent` does not exist.
        """
        if name in self._styles:
            raise ValueError(f"Print style '{name}' already defined.")

        if parent:
            try:
                style.parent = self._styles[parent]
            except KeyError:
                raise ValueError(f"Parent print style '{parent}' not found.")
        else:
            style.parent = None

        self._styles[name] = style

    def apply(self, name: str, s: str) -> str:
        """
        Apply format style `name` to string `s`, including any parent
        styles (where applicable).

        Raises
        ------
        ValueError
            If `name` is not found.
        """
        try:
            style = self._styles[name]
        except KeyError:
            raise ValueError(f"Style '{name}' not found.")

        return style.apply(s)

    def print(self, name: str | None, s: str = '', *args,
              display_level: int = None, **kwargs):
        """
        Print string `s` after applying formatting, if style `name` is
        at or above the `display_level`.

        Parameters
        ----------
        name : str
            Name of format style to apply, or `None` to bypass
            formatting.

            .. note::If `name` is not found, a warning is generated
               and `s` is printed without formatting.

        s : str, default = ''
            String to format.

        display_level : int
            If supplied, sets the `display_level` parameter for this
            print operation only.

        *args, **kwargs :
            Remaining positional and keyword arguments passed directly
            to `print` after `s`.
        """
        if name is None:
            print(s, *args, **kwargs)
            return

        try:
            style = self._styles[name]
        except KeyError:
            print(s, *args, **kwargs)
            warnings.warn(f"Format style '{name}' not found.")
            return

        if display_level is None:
            display_level = self.display_level

        if style.level <= display_level:
            print(style.apply(s), *args, **kwargs)


# ----------------------------------------------------------------------

class PrintStylesMixin:
    """
    Mixin class that adds a `PrintStyles` object and methods to a
    class.

    .. note::This mixin should appear first (leftmost) in the list of
       parent classes.

    Parameters
    ----------
    display_level : int, default = 0
        Lowest number style level to display.  The highest level is
        **1**. Setting ``display_level=0`` will suppress output.
    """

    def __init__(self, *args, display_level: int = 0, **kwargs):
        super().__init__(*args, **kwargs)
        self.__pstyles = PrintStyles(display_level=display_level)

    # -- Public Methods ------------------------------------------------

    @property
    def display_level(self):
        return self.__pstyles.display_level

    @display_level.setter
    def display_level(self, level: int):
        self.__pstyles.display_level = level

    @property
    def pstyles(self) -> PrintStyles:
        return self.__pstyles


# ======================================================================

# Standard format styles.

class AddDotStyle(FormatStyle):
    """
    If the style has a parent, prepends three dots and a space
    (``... ``) to the string before applying the parent style.
    """

    def apply(self, s: str) -> str:
        if self.parent:
            return self.parent.apply('... ' + s)
        else:
            return s


class AddStarStyle(FormatStyle):
    """
    If the style has a parent, prepends three stars and a space
    (``*** ``) to the string before applying the parent style.  Used
    for notices such as rejected steps.
    """

    def apply(self, s: str) -> str:
        if self.parent:
            return self.parent.apply('*** ' + s)
        else:
            return s


# ======================================================================

def ruled_line(s: str, above: str | None = '-', below: str | None = '-',
               *, max_length: int | None = 72, min_length: int | None = 72
               ) -> str:
    """
    Returns a string containing `s` with a optional ruled lines above
    and/or below.  The length of the ruled lines is the same as `s`
    unless modified by  `min_length` or `max_length`.

    Examples
    --------
    >>> print(ruled_line('Converged: SUCCESS', max_length=30))
    ------------------------------
    Converged: SUCCESS
    ------------------------------
    """
    length = len(s)
    if min_length is not None:
        length = max(length, min_length)

    def _make_ruled_line(pattern: str) -> str:
        line_str = pattern * math.ceil(length / len(pattern))
        if max_length is not None:
            line_str = line_str[:max_length]
        return line_str

    result = s
    if above:
        result = _make_ruled_line(above) + '\n' + result
    if below:
        result = result + '\n' + _make_ruled_line(below)

    return result


# ======================================================================

def sci2str(x: float, *, sf: int = 5) -> str:
    """
    Fixed width scientific notation string for norms and step sizes,
    showing `sf` significant figures.  Non-finite values are shown as
    words.
    """
    if not np.isfinite(x):
        return f"{str(x):>{sf + 6}s}"
    return f"{x:.{sf - 1}E}"


def vec2str(x, *, max_n: int = 6) -> str:
    """
    Short string of a vector for progress output.  Vectors longer than
    `max_n` give an empty string.
    """
    x = np.ravel(x)
    if x.size > max_n:
        return ''
    return ', '.join(f"{x_i:.6G}" for x_i in x)
