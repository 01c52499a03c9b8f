from unittest import TestCase


# ======================================================================

class TestPrintStyles(TestCase):
    def test_levels(self):
        import io
        from contextlib import redirect_stdout

        from pynlsolve.util import (PrintStyles, FormatStyle, AddDotStyle,
                                    AddStarStyle)

        ps = PrintStyles(display_level=1)
        ps.add('solver', FormatStyle())
        ps.add('iteration', AddDotStyle(), parent='solver')
        ps.add('notice', AddStarStyle(), parent='iteration')

        self.assertEqual(ps.apply('iteration', 'x'), '... x')
        self.assertEqual(ps.apply('notice', 'x'), '... *** x')

        buf = io.StringIO()
        with redirect_stdout(buf):
            ps.print('solver', 'A')
            ps.print('iteration', 'B')
            ps.print('iteration', 'C', display_level=2)
        self.assertEqual(buf.getvalue(), 'A\n... C\n')

        with self.assertRaises(ValueError):
            ps.add('solver', FormatStyle())
        with self.assertRaises(ValueError):
            ps.add('other', FormatStyle(), parent='missing')
        with self.assertRaises(ValueError):
            ps.apply('missing', 'x')

    def test_mixin(self):
        from pynlsolve.util import PrintStylesMixin

        class Thing(PrintStylesMixin):
            pass

        t = Thing(display_level=2)
        self.assertEqual(t.display_level, 2)
        t.display_level = 0
        self.assertEqual(t.pstyles.display_level, 0)

    def test_strings(self):
        import numpy as np

        from pynlsolve.util import ruled_line, sci2str, vec2str

        self.assertEqual(ruled_line('abc', min_length=5), '-----\nabc\n-----')
        self.assertEqual(ruled_line('abc', below=None, min_length=None),
                         '---\nabc')
        self.assertEqual(sci2str(1234.5), '1.2345E+03')
        self.assertEqual(sci2str(np.inf, sf=3).strip(), 'inf')
        self.assertEqual(vec2str([1.0, 0.5]), '1, 0.5')
        self.assertEqual(vec2str(np.zeros(10)), '')
